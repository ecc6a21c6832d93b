"""Structured exception taxonomy for keystore loading and certificate harvesting."""

from typing import Optional


class ApnsKeystoreError(Exception):
    """Base exception for all apns-keystore errors."""

    pass


class KeystoreError(ApnsKeystoreError):
    """Generic keystore loading error."""

    pass


class InvalidKeystoreReferenceError(KeystoreError):
    """The credential reference is missing, unsupported or points to nothing usable."""

    def __init__(self, message: Optional[str] = None, reference: object = None):
        if message is None:
            if reference is None:
                message = "Invalid keystore reference: null"
            else:
                message = f"Invalid keystore reference: unsupported type {type(reference).__name__}"
        super().__init__(message)
        self.reference = reference


class InvalidKeystorePasswordError(KeystoreError):
    """The keystore could not be decrypted with the given password."""

    def __init__(self, message: str = "Invalid keystore password"):
        super().__init__(message)


class InvalidKeystoreFormatError(KeystoreError):
    """The byte stream is not a valid keystore of the declared type."""

    def __init__(self, message: str = "Invalid keystore format"):
        super().__init__(message)


class CertificateTrustError(ApnsKeystoreError):
    """A presented certificate chain was rejected by a trust manager."""

    pass


class HarvestError(ApnsKeystoreError):
    """Network-related errors while harvesting a certificate (connection, timeout, DNS, TLS)."""

    def __init__(self, message: str, host: Optional[str] = None, port: Optional[int] = None):
        super().__init__(message)
        self.host = host
        self.port = port


class ConnectionTimeoutError(HarvestError):
    """Connection or handshake timeout."""

    pass


class TLSHandshakeError(HarvestError):
    """TLS handshake failed for a reason other than trust validation."""

    pass


class ChainNotObtainedError(HarvestError):
    """The connection attempt completed but no certificate chain was recorded."""

    pass
