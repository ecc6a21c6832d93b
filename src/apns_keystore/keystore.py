"""In-memory keystore: alias-keyed certificates and private keys."""

import logging
from dataclasses import dataclass
from typing import BinaryIO, Dict, List, Optional, Union

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from apns_keystore.certificate import describe_certificate, split_pem_blocks
from apns_keystore.exceptions import KeystoreError
from apns_keystore.models import (
    DEFAULT_KEYSTORE_TYPE,
    KEYSTORE_TYPE_PEM,
    KEYSTORE_TYPE_PKCS12,
    EntryInfo,
    EntryType,
)

logger = logging.getLogger(__name__)

SUPPORTED_KEYSTORE_TYPES = (KEYSTORE_TYPE_PKCS12, KEYSTORE_TYPE_PEM)


@dataclass
class CertificateEntry:
    """A trusted certificate."""

    certificate: x509.Certificate


@dataclass
class PrivateKeyEntry:
    """A private key with its certificate chain, leaf first."""

    private_key: pkcs12.PKCS12PrivateKeyTypes
    certificate_chain: List[x509.Certificate]


KeystoreEntry = Union[CertificateEntry, PrivateKeyEntry]


def normalize_keystore_type(keystore_type: Optional[str]) -> str:
    """Map a case-insensitive keystore type name to a supported type."""
    if not keystore_type:
        return DEFAULT_KEYSTORE_TYPE
    normalized = keystore_type.strip().upper()
    if normalized in ("P12", "PFX"):
        normalized = KEYSTORE_TYPE_PKCS12
    if normalized not in SUPPORTED_KEYSTORE_TYPES:
        raise KeystoreError(
            f"Keystore exception: {keystore_type} not found. "
            f"Supported types: {', '.join(SUPPORTED_KEYSTORE_TYPES)}"
        )
    return normalized


def _encode_password(password: Optional[str]) -> Optional[bytes]:
    return password.encode("utf-8") if password is not None else None


class Keystore:
    """
    Alias-keyed store of certificates and private keys.

    Entries keep insertion order. A Keystore returned by the loader or the
    harvester is always fully loaded.
    """

    def __init__(self, keystore_type: Optional[str] = DEFAULT_KEYSTORE_TYPE):
        self.keystore_type = normalize_keystore_type(keystore_type)
        self._entries: Dict[str, KeystoreEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, alias: str) -> bool:
        return self.contains_alias(alias)

    def __repr__(self) -> str:
        return f"Keystore(type={self.keystore_type!r}, aliases={self.aliases()!r})"

    def aliases(self) -> List[str]:
        return list(self._entries)

    def contains_alias(self, alias: str) -> bool:
        return alias in self._entries

    def get_entry(self, alias: str) -> Optional[KeystoreEntry]:
        return self._entries.get(alias)

    def get_certificate(self, alias: str) -> Optional[x509.Certificate]:
        """Return the trusted certificate, or the leaf of a key entry's chain."""
        entry = self._entries.get(alias)
        if isinstance(entry, CertificateEntry):
            return entry.certificate
        if isinstance(entry, PrivateKeyEntry):
            return entry.certificate_chain[0]
        return None

    def get_certificate_chain(self, alias: str) -> Optional[List[x509.Certificate]]:
        entry = self._entries.get(alias)
        if isinstance(entry, PrivateKeyEntry):
            return list(entry.certificate_chain)
        return None

    def get_key(self, alias: str) -> Optional[pkcs12.PKCS12PrivateKeyTypes]:
        entry = self._entries.get(alias)
        if isinstance(entry, PrivateKeyEntry):
            return entry.private_key
        return None

    def is_certificate_entry(self, alias: str) -> bool:
        return isinstance(self._entries.get(alias), CertificateEntry)

    def is_key_entry(self, alias: str) -> bool:
        return isinstance(self._entries.get(alias), PrivateKeyEntry)

    def set_certificate_entry(self, alias: str, certificate: x509.Certificate) -> None:
        if self.is_key_entry(alias):
            raise KeystoreError(f"Cannot overwrite key entry with certificate: {alias}")
        self._entries[alias] = CertificateEntry(certificate)

    def set_key_entry(
        self,
        alias: str,
        private_key: pkcs12.PKCS12PrivateKeyTypes,
        certificate_chain: List[x509.Certificate],
    ) -> None:
        if not certificate_chain:
            raise KeystoreError(f"Private key entry requires a certificate chain: {alias}")
        self._entries[alias] = PrivateKeyEntry(private_key, list(certificate_chain))

    def delete_entry(self, alias: str) -> None:
        self._entries.pop(alias, None)

    def entry_infos(self) -> List[EntryInfo]:
        infos: List[EntryInfo] = []
        for alias, entry in self._entries.items():
            if isinstance(entry, PrivateKeyEntry):
                infos.append(
                    describe_certificate(
                        alias,
                        entry.certificate_chain[0],
                        EntryType.PRIVATE_KEY,
                        chain_length=len(entry.certificate_chain),
                    )
                )
            else:
                infos.append(describe_certificate(alias, entry.certificate))
        return infos

    # Loading

    def load(self, stream: BinaryIO, password: Optional[str]) -> None:
        """
        Replace the contents of this keystore with the keystore read from stream.

        Raises whatever the underlying decoder raises; callers classify.
        """
        data = stream.read()
        entries_before = self._entries
        self._entries = {}
        try:
            if self.keystore_type == KEYSTORE_TYPE_PKCS12:
                self._load_pkcs12(data, password)
            else:
                self._load_pem(data, password)
        except Exception:
            self._entries = entries_before
            raise
        logger.debug(f"Loaded {self.keystore_type} keystore with {len(self)} entr{'y' if len(self) == 1 else 'ies'}")

    def _load_pkcs12(self, data: bytes, password: Optional[str]) -> None:
        # OpenSSL tries both the empty and the absent password for blank input.
        p12 = pkcs12.load_pkcs12(data, _encode_password(password or ""))

        certs = ([p12.cert] if p12.cert is not None else []) + list(p12.additional_certs)
        if p12.key is not None:
            leaf = p12.cert or (certs[0] if certs else None)
            if leaf is None:
                raise ValueError("Could not deserialize PKCS12 data: private key without certificate")
            key_alias = _friendly_name(leaf) or "1"
            # Certificates without their own friendly name belong to the key's chain
            chain = [leaf.certificate] + [
                c.certificate for c in certs if c is not leaf and c.friendly_name is None
            ]
            self.set_key_entry(key_alias, p12.key, chain)
            trusted = [c for c in certs if c is not leaf and c.friendly_name is not None]
        else:
            trusted = certs

        for index, cert in enumerate(trusted, start=1):
            self.set_certificate_entry(_friendly_name(cert) or str(index), cert.certificate)

    def _load_pem(self, data: bytes, password: Optional[str]) -> None:
        # cryptography rejects b"" for unencrypted keys, so empty means "no password" here
        key_password = _encode_password(password) if password else None

        blocks = split_pem_blocks(data)
        if not blocks:
            raise ValueError("Could not deserialize PEM keystore: no PEM blocks found")

        key = None
        key_alias: Optional[str] = None
        certs: List[tuple] = []
        for label, block, friendly_name in blocks:
            if label.endswith("PRIVATE KEY"):
                if key is not None:
                    raise ValueError("Could not deserialize PEM keystore: more than one private key")
                key = serialization.load_pem_private_key(block, password=key_password)
                key_alias = friendly_name
            elif label == "CERTIFICATE":
                certs.append((x509.load_pem_x509_certificate(block), friendly_name))
            else:
                logger.debug(f"Ignoring PEM block {label}")

        if key is not None:
            if not certs:
                raise ValueError("Could not deserialize PEM keystore: private key without certificate")
            key_alias = key_alias or certs[0][1] or "1"
            chain = [cert for cert, name in certs if name is None or name == key_alias]
            if not chain:
                chain = [certs[0][0]]
            self.set_key_entry(key_alias, key, chain)
            trusted = [(cert, name) for cert, name in certs if name is not None and name != key_alias]
        else:
            trusted = certs

        for index, (cert, name) in enumerate(trusted, start=1):
            self.set_certificate_entry(name or str(index), cert)

    # Serialization

    def store(self, password: Optional[str] = None, keystore_type: Optional[str] = None) -> bytes:
        """
        Serialize the keystore.

        Args:
            password: Encrypts PKCS12 output and PEM private keys; None or "" stores unencrypted
            keystore_type: Output type, defaults to the keystore's own type

        Returns:
            Encoded keystore bytes
        """
        output_type = normalize_keystore_type(keystore_type or self.keystore_type)
        if not self._entries:
            raise KeystoreError("Cannot store an empty keystore")

        key_entries = [(a, e) for a, e in self._entries.items() if isinstance(e, PrivateKeyEntry)]
        if len(key_entries) > 1:
            raise KeystoreError("Only a single private key entry can be stored")

        if password:
            encryption = serialization.BestAvailableEncryption(password.encode("utf-8"))
        else:
            encryption = serialization.NoEncryption()

        if output_type == KEYSTORE_TYPE_PKCS12:
            return self._store_pkcs12(key_entries, encryption)
        return self._store_pem(encryption)

    def _store_pkcs12(self, key_entries, encryption) -> bytes:
        name = key = cert = None
        cas: List[pkcs12.PKCS12Certificate] = []
        if key_entries:
            alias, entry = key_entries[0]
            name = alias.encode("utf-8")
            key = entry.private_key
            cert = entry.certificate_chain[0]
            cas.extend(pkcs12.PKCS12Certificate(c, None) for c in entry.certificate_chain[1:])
        for alias, entry in self._entries.items():
            if isinstance(entry, CertificateEntry):
                cas.append(pkcs12.PKCS12Certificate(entry.certificate, alias.encode("utf-8")))
        return pkcs12.serialize_key_and_certificates(name, key, cert, cas or None, encryption)

    def _store_pem(self, encryption) -> bytes:
        parts: List[bytes] = []
        for alias, entry in self._entries.items():
            header = f"Bag Attributes\n    friendlyName: {alias}\n".encode("utf-8")
            if isinstance(entry, PrivateKeyEntry):
                parts.append(header)
                parts.append(
                    entry.private_key.private_bytes(
                        serialization.Encoding.PEM,
                        serialization.PrivateFormat.PKCS8,
                        encryption,
                    )
                )
                parts.append(header)
                parts.append(entry.certificate_chain[0].public_bytes(serialization.Encoding.PEM))
                for cert in entry.certificate_chain[1:]:
                    parts.append(cert.public_bytes(serialization.Encoding.PEM))
            else:
                parts.append(header)
                parts.append(entry.certificate.public_bytes(serialization.Encoding.PEM))
        return b"".join(parts)


def _friendly_name(cert: pkcs12.PKCS12Certificate) -> Optional[str]:
    if cert.friendly_name is None:
        return None
    return cert.friendly_name.decode("utf-8", errors="replace")
