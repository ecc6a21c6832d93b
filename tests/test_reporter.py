"""Tests for report generation."""

import json

import pytest

from apns_keystore.keystore import Keystore
from apns_keystore.reporter import (
    generate_json_report,
    generate_text_report,
    set_color_output,
    summarize_keystore,
)


@pytest.fixture
def sample_summary(cert_chain):
    """Summary of a harvested-style keystore plus a key entry."""
    keystore = Keystore()
    keystore.set_certificate_entry("feedback.push.apple.com-1", cert_chain["leaf"])
    keystore.set_key_entry("client", cert_chain["leaf_key"], [cert_chain["leaf"], cert_chain["intermediate"]])
    return summarize_keystore(keystore, "feedback.push.apple.com:2196", endpoint="feedback.push.apple.com:2196")


@pytest.fixture(autouse=True)
def no_color():
    set_color_output(False)
    yield
    set_color_output(True)


def test_text_report(sample_summary):
    report = generate_text_report(sample_summary)

    assert "Keystore Report" in report
    assert "Endpoint: feedback.push.apple.com:2196" in report
    assert "Entries: 2" in report
    assert "Alias: feedback.push.apple.com-1" in report
    assert "Type:       Certificate" in report
    assert "Type:       Private key" in report
    assert "Chain:      2 certificate(s)" in report
    assert "CN=localhost" in report


def test_text_report_with_color(sample_summary):
    set_color_output(True)
    report = generate_text_report(sample_summary)
    assert "Certificate" in report
    assert "\x1b[" in report


def test_json_report(sample_summary, cert_chain):
    data = json.loads(generate_json_report(sample_summary))

    assert data["keystore_type"] == "PKCS12"
    assert data["endpoint"] == "feedback.push.apple.com:2196"
    assert [e["alias"] for e in data["entries"]] == ["feedback.push.apple.com-1", "client"]
    assert data["entries"][0]["entry_type"] == "certificate"
    assert data["entries"][1]["entry_type"] == "private_key"
    assert data["entries"][0]["serial_number"] == format(cert_chain["leaf"].serial_number, "x")
