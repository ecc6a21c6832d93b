"""Tests for credential reference validation and streaming."""

import io
from pathlib import Path

import pytest

from apns_keystore.credentials import (
    BytesReference,
    CredentialReference,
    PathReference,
    StreamReference,
    credential_reference,
    stream_keystore,
    validate_keystore,
)
from apns_keystore.exceptions import InvalidKeystoreReferenceError
from apns_keystore.models import PushServer


class TestValidateKeystore:
    """Tests for eager reference validation."""

    def test_none_is_rejected(self):
        with pytest.raises(InvalidKeystoreReferenceError, match="null"):
            validate_keystore(None)

    def test_unsupported_type_is_rejected(self):
        with pytest.raises(InvalidKeystoreReferenceError, match="unsupported type int"):
            validate_keystore(42)

    def test_empty_bytes_are_rejected(self):
        with pytest.raises(InvalidKeystoreReferenceError, match="Byte array is empty"):
            validate_keystore(b"")

    def test_non_empty_bytes_are_accepted(self):
        reference = validate_keystore(b"\x30\x82")
        assert isinstance(reference, BytesReference)

    def test_bytearray_is_accepted(self):
        assert isinstance(validate_keystore(bytearray(b"abc")), BytesReference)

    def test_missing_file_is_rejected(self, tmp_path):
        missing = tmp_path / "missing.p12"
        with pytest.raises(InvalidKeystoreReferenceError, match="File does not exist"):
            validate_keystore(str(missing))

    def test_directory_is_rejected(self, tmp_path):
        with pytest.raises(InvalidKeystoreReferenceError, match="does not refer to a valid file"):
            validate_keystore(tmp_path)

    def test_empty_file_is_rejected(self, tmp_path):
        empty = tmp_path / "empty.p12"
        empty.write_bytes(b"")
        with pytest.raises(InvalidKeystoreReferenceError, match="File is empty"):
            validate_keystore(empty)

    def test_message_names_absolute_path(self, tmp_path):
        missing = tmp_path / "missing.p12"
        with pytest.raises(InvalidKeystoreReferenceError) as exc_info:
            validate_keystore(missing)
        assert str(missing.absolute()) in str(exc_info.value)

    def test_str_and_path_files_are_accepted(self, p12_file):
        assert isinstance(validate_keystore(str(p12_file)), PathReference)
        assert isinstance(validate_keystore(p12_file), PathReference)

    def test_stream_is_accepted_without_checks(self):
        reference = validate_keystore(io.BytesIO(b""))
        assert isinstance(reference, StreamReference)

    def test_reference_passes_through(self):
        reference = BytesReference(b"abc")
        assert credential_reference(reference) is reference

    def test_incomplete_reference_cannot_be_created(self):
        class NoLockTarget(CredentialReference):
            def validate(self):
                pass

            def open(self):
                return io.BytesIO(b"abc")

            def describe(self):
                return "<incomplete>"

        with pytest.raises(TypeError):
            NoLockTarget()


class TestLockTarget:
    """Tests for the default lock identity of a reference."""

    def test_path_resolves(self, tmp_path):
        nested = tmp_path / "sub" / ".." / "store.p12"
        assert PathReference(nested).lock_target() == PathReference(tmp_path / "store.p12").lock_target()

    def test_stream_identity(self):
        stream = io.BytesIO(b"abc")
        assert StreamReference(stream).lock_target() == StreamReference(stream).lock_target()
        assert StreamReference(stream).lock_target() != StreamReference(io.BytesIO(b"abc")).lock_target()

    def test_bytes_identity(self):
        data = b"keystore"
        assert credential_reference(data).lock_target() == credential_reference(data).lock_target()


class TestStreamKeystore:
    """Tests for resolving references into streams."""

    def test_bytes_are_wrapped(self):
        stream = stream_keystore(b"keystore")
        assert stream.read() == b"keystore"

    def test_file_is_opened(self, p12_file, p12_bytes):
        with stream_keystore(p12_file) as stream:
            assert stream.read() == p12_bytes

    def test_stream_is_passed_through(self):
        original = io.BytesIO(b"data")
        assert stream_keystore(original) is original

    def test_open_failure_is_reported_as_invalid_reference(self, p12_file, monkeypatch):
        def deny(self):
            raise PermissionError("denied")

        monkeypatch.setattr(PathReference, "open", deny)
        with pytest.raises(InvalidKeystoreReferenceError, match="Invalid keystore reference: denied"):
            stream_keystore(p12_file)


class TestPushServer:
    """Tests for the server configuration collaborator."""

    def test_target_id_defaults_to_host_and_port(self):
        server = PushServer("gateway.push.apple.com", 2195)
        assert server.target_id == "gateway.push.apple.com:2195"

    def test_target_id_uses_name(self):
        server = PushServer("gateway.push.apple.com", 2195, name="production")
        assert server.target_id == "production"

    def test_credential_stream_reads_configured_keystore(self, p12_file, p12_bytes):
        server = PushServer("gateway.push.apple.com", 2195, keystore=Path(p12_file))
        with server.credential_stream() as stream:
            assert stream.read() == p12_bytes

    def test_credential_stream_rejects_missing_keystore(self):
        server = PushServer("gateway.push.apple.com", 2195)
        with pytest.raises(InvalidKeystoreReferenceError):
            server.credential_stream()
