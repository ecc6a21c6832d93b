"""Data models for endpoints, server configuration and keystore entries."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, BinaryIO, Hashable, List, Optional


KEYSTORE_TYPE_PKCS12 = "PKCS12"
KEYSTORE_TYPE_PEM = "PEM"
DEFAULT_KEYSTORE_TYPE = KEYSTORE_TYPE_PKCS12

DEFAULT_HANDSHAKE_TIMEOUT = 10.0


@dataclass(frozen=True)
class Endpoint:
    """A remote TLS endpoint."""

    host: str
    port: int
    timeout: float = DEFAULT_HANDSHAKE_TIMEOUT

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


FEEDBACK_PRODUCTION = Endpoint("feedback.push.apple.com", 2196)
FEEDBACK_SANDBOX = Endpoint("feedback.sandbox.push.apple.com", 2196)
GATEWAY_PRODUCTION = Endpoint("gateway.push.apple.com", 2195)
GATEWAY_SANDBOX = Endpoint("gateway.sandbox.push.apple.com", 2195)


class EntryType(str, Enum):
    """Kind of a keystore entry."""

    CERTIFICATE = "certificate"
    PRIVATE_KEY = "private_key"


@dataclass
class PushServer:
    """
    Configuration of a push server a keystore is intended for.

    `keystore` is the raw credential object (bytes, path, Path or binary stream).
    `target_id` identifies the server for load serialization; it defaults to
    "host:port" so two configurations for the same server share a lock.
    """

    host: str
    port: int
    keystore: Any = None
    keystore_type: str = DEFAULT_KEYSTORE_TYPE
    keystore_password: Optional[str] = None
    name: Optional[str] = None

    @property
    def target_id(self) -> Hashable:
        return self.name or f"{self.host}:{self.port}"

    def credential_stream(self) -> BinaryIO:
        """
        Return a byte stream over the configured keystore.

        Raises:
            InvalidKeystoreReferenceError: If the configured keystore is not usable
        """
        from apns_keystore.credentials import stream_keystore

        return stream_keystore(self.keystore)


@dataclass
class EntryInfo:
    """Printable information about a single keystore entry."""

    alias: str
    entry_type: EntryType
    subject: str
    issuer: str
    serial_number: str
    not_before: Optional[str]
    not_after: Optional[str]
    fingerprint_sha1: str
    fingerprint_md5: str
    chain_length: int = 1


@dataclass
class KeystoreSummary:
    """Overall description of a keystore, as produced by harvest or inspect."""

    source: str
    keystore_type: str
    entries: List[EntryInfo] = field(default_factory=list)
    endpoint: Optional[str] = None
