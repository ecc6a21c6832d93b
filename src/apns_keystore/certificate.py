"""Certificate helpers: PEM splitting, fingerprints and diagnostics."""

import logging
import re
from pathlib import Path
from typing import List, Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes

from apns_keystore.models import EntryInfo, EntryType

logger = logging.getLogger(__name__)

_PEM_BLOCK = re.compile(
    rb"-----BEGIN ([A-Z0-9 ]+)-----\r?\n.*?-----END \1-----\r?\n?",
    re.DOTALL,
)
_FRIENDLY_NAME = re.compile(rb"friendlyName:\s*(.+)")


def split_pem_blocks(data: bytes) -> List[Tuple[str, bytes, Optional[str]]]:
    """
    Split PEM data into individual blocks.

    Text preceding a block (as written by `openssl pkcs12 -nodes`) is searched
    for a "friendlyName:" bag attribute.

    Returns:
        List of (label, pem_block, friendly_name) tuples in file order
    """
    blocks: List[Tuple[str, bytes, Optional[str]]] = []
    previous_end = 0
    for match in _PEM_BLOCK.finditer(data):
        preamble = data[previous_end:match.start()]
        name_match = _FRIENDLY_NAME.search(preamble)
        friendly_name = name_match.group(1).strip().decode("utf-8", errors="replace") if name_match else None
        blocks.append((match.group(1).decode("ascii"), match.group(0), friendly_name))
        previous_end = match.end()
    return blocks


def load_ca_bundle(path: Path) -> List[x509.Certificate]:
    """Load every parseable certificate from a PEM bundle, skipping broken ones."""
    with open(path, "rb") as f:
        data = f.read()

    certs: List[x509.Certificate] = []
    for label, block, _ in split_pem_blocks(data):
        if label != "CERTIFICATE":
            continue
        try:
            certs.append(x509.load_pem_x509_certificate(block))
        except ValueError as e:
            logger.debug(f"Error parsing CA bundle certificate: {e}")
    logger.debug(f"Loaded {len(certs)} certificate(s) from {path}")
    return certs


def hex_digest(digest: bytes) -> str:
    """Format a digest as space separated lowercase hex, e.g. "3f 0a ..."."""
    return " ".join(f"{b:02x}" for b in digest)


def fingerprint(cert: x509.Certificate, algorithm: hashes.HashAlgorithm) -> str:
    return hex_digest(cert.fingerprint(algorithm))


def log_chain(chain: List[x509.Certificate]) -> None:
    """Log subject, issuer and fingerprints of every certificate in a chain."""
    logger.debug(f"Server sent {len(chain)} certificate(s):")
    for i, cert in enumerate(chain):
        logger.debug(f" {i + 1} Subject {cert.subject.rfc4514_string()}")
        logger.debug(f"   Issuer  {cert.issuer.rfc4514_string()}")
        logger.debug(f"   sha1    {fingerprint(cert, hashes.SHA1())}")
        logger.debug(f"   md5     {fingerprint(cert, hashes.MD5())}")


def describe_certificate(
    alias: str,
    cert: x509.Certificate,
    entry_type: EntryType = EntryType.CERTIFICATE,
    chain_length: int = 1,
) -> EntryInfo:
    """Build an EntryInfo for a certificate stored under alias."""
    return EntryInfo(
        alias=alias,
        entry_type=entry_type,
        subject=cert.subject.rfc4514_string(),
        issuer=cert.issuer.rfc4514_string(),
        serial_number=format(cert.serial_number, "x"),
        not_before=cert.not_valid_before_utc.isoformat(),
        not_after=cert.not_valid_after_utc.isoformat(),
        fingerprint_sha1=fingerprint(cert, hashes.SHA1()),
        fingerprint_md5=fingerprint(cert, hashes.MD5()),
        chain_length=chain_length,
    )
