"""Shared fixtures: generated certificate chains and keystores."""

import ipaddress
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID


def _build_cert(subject_cn, issuer_cn, key, issuer_key, ca, path_length=None, san=None):
    now = datetime.now(timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, subject_cn)]))
        .issuer_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, issuer_cn)]))
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=path_length), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_key.public_key()),
            critical=False,
        )
    )
    if ca:
        builder = builder.add_extension(
            x509.KeyUsage(
                digital_signature=False,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
    else:
        builder = builder.add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        builder = builder.add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]),
            critical=False,
        )
    if san:
        builder = builder.add_extension(x509.SubjectAlternativeName(san), critical=False)
    return builder.sign(issuer_key, hashes.SHA256())


@pytest.fixture(scope="session")
def cert_chain():
    """Root, intermediate and leaf certificates with their keys, leaf valid for localhost/127.0.0.1."""
    root_key = ec.generate_private_key(ec.SECP256R1())
    intermediate_key = ec.generate_private_key(ec.SECP256R1())
    leaf_key = ec.generate_private_key(ec.SECP256R1())

    root = _build_cert("Test Root CA", "Test Root CA", root_key, root_key, ca=True)
    intermediate = _build_cert(
        "Test Intermediate CA", "Test Root CA", intermediate_key, root_key, ca=True, path_length=0
    )
    leaf = _build_cert(
        "localhost",
        "Test Intermediate CA",
        leaf_key,
        intermediate_key,
        ca=False,
        san=[x509.DNSName("localhost"), x509.IPAddress(ipaddress.ip_address("127.0.0.1"))],
    )
    return {
        "root": root,
        "intermediate": intermediate,
        "leaf": leaf,
        "root_key": root_key,
        "leaf_key": leaf_key,
    }


@pytest.fixture(scope="session")
def p12_bytes(cert_chain):
    """PKCS12 keystore with one key entry "push-client", password "secret"."""
    return pkcs12.serialize_key_and_certificates(
        b"push-client",
        cert_chain["leaf_key"],
        cert_chain["leaf"],
        [cert_chain["intermediate"]],
        serialization.BestAvailableEncryption(b"secret"),
    )


@pytest.fixture
def p12_file(tmp_path, p12_bytes):
    path = tmp_path / "client.p12"
    path.write_bytes(p12_bytes)
    return path


@pytest.fixture(scope="session")
def encrypted_pem_bytes(cert_chain):
    """PEM keystore: encrypted private key (password "secret") followed by the leaf certificate."""
    key_pem = cert_chain["leaf_key"].private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.BestAvailableEncryption(b"secret"),
    )
    return key_pem + cert_chain["leaf"].public_bytes(serialization.Encoding.PEM)


@pytest.fixture(scope="session")
def plain_pem_bytes(cert_chain):
    key_pem = cert_chain["leaf_key"].private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return key_pem + cert_chain["leaf"].public_bytes(serialization.Encoding.PEM)
