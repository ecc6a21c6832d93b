"""Trust managers deciding whether a server certificate chain is accepted."""

import ipaddress
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

import certifi
from cryptography import x509
from cryptography.x509.verification import PolicyBuilder, Store, VerificationError

from apns_keystore.certificate import load_ca_bundle
from apns_keystore.exceptions import CertificateTrustError
from apns_keystore.keystore import Keystore

logger = logging.getLogger(__name__)


class TrustManager(ABC):
    """
    Decides whether certificate chains presented by peers are trusted.

    Only server chains are required; the client-side operations are optional.
    """

    @abstractmethod
    def check_server_trusted(self, chain: List[x509.Certificate], auth_type: str) -> None:
        """
        Accept or reject a server certificate chain.

        Args:
            chain: Certificates as presented by the server, leaf first
            auth_type: Key exchange / authentication type of the negotiated cipher,
                e.g. "ECDHE_RSA", or "GENERIC" for TLS 1.3

        Raises:
            CertificateTrustError: If the chain is not trusted
        """

    def check_client_trusted(self, chain: List[x509.Certificate], auth_type: str) -> None:
        raise NotImplementedError(f"{type(self).__name__} does not check client chains")

    def get_accepted_issuers(self) -> List[x509.Certificate]:
        raise NotImplementedError(f"{type(self).__name__} does not expose accepted issuers")


def _subject_for(server_name: str) -> x509.GeneralName:
    try:
        return x509.IPAddress(ipaddress.ip_address(server_name))
    except ValueError:
        return x509.DNSName(server_name)


class DefaultTrustManager(TrustManager):
    """Validates server chains against a fixed set of trust anchors and the server name."""

    def __init__(self, anchors: List[x509.Certificate], server_name: str):
        self._anchors = list(anchors)
        self.server_name = server_name

    @classmethod
    def from_ca_bundle(cls, server_name: str, ca_bundle: Optional[Path] = None) -> "DefaultTrustManager":
        """Trust the certifi bundle, or a custom PEM CA bundle."""
        bundle = Path(ca_bundle) if ca_bundle else Path(certifi.where())
        return cls(load_ca_bundle(bundle), server_name)

    @classmethod
    def from_keystore(cls, keystore: Keystore, server_name: str) -> "DefaultTrustManager":
        """Trust the certificate entries of a keystore. An empty keystore trusts nothing."""
        anchors = [
            keystore.get_certificate(alias)
            for alias in keystore.aliases()
            if keystore.is_certificate_entry(alias)
        ]
        return cls(anchors, server_name)

    def get_accepted_issuers(self) -> List[x509.Certificate]:
        return list(self._anchors)

    def check_server_trusted(self, chain: List[x509.Certificate], auth_type: str) -> None:
        if not chain:
            raise CertificateTrustError("Empty server certificate chain")
        if not self._anchors:
            raise CertificateTrustError("No trust anchors configured, server certificate not trusted")

        try:
            verifier = (
                PolicyBuilder()
                .store(Store(self._anchors))
                .build_server_verifier(_subject_for(self.server_name))
            )
            verifier.verify(chain[0], chain[1:])
        except VerificationError as e:
            raise CertificateTrustError(f"Server certificate chain not trusted: {e}") from e
        except ValueError as e:
            raise CertificateTrustError(f"Server certificate chain could not be verified: {e}") from e
        logger.debug(f"Server certificate chain for {self.server_name} trusted ({auth_type})")


class RecordingTrustManager(TrustManager):
    """
    Wraps another trust manager and records the server chain it is asked about.

    The chain is stored before the wrapped manager decides, so it is available
    even when validation fails. This is how the harvester gets hold of
    certificates that are not (yet) trusted.
    """

    def __init__(self, delegate: TrustManager):
        self._delegate = delegate
        self.chain: Optional[List[x509.Certificate]] = None

    def check_server_trusted(self, chain: List[x509.Certificate], auth_type: str) -> None:
        self.chain = list(chain)
        self._delegate.check_server_trusted(chain, auth_type)

    def check_client_trusted(self, chain: List[x509.Certificate], auth_type: str) -> None:
        raise NotImplementedError("RecordingTrustManager only checks server chains")

    def get_accepted_issuers(self) -> List[x509.Certificate]:
        raise NotImplementedError("RecordingTrustManager does not expose accepted issuers")
