"""Network operations: harvest the certificate presented by a TLS endpoint."""

import ipaddress
import logging
import select
import socket
import time
from pathlib import Path
from typing import Dict, List, Optional

from cryptography import x509
from OpenSSL import SSL

from apns_keystore.certificate import log_chain
from apns_keystore.exceptions import (
    CertificateTrustError,
    ChainNotObtainedError,
    ConnectionTimeoutError,
    HarvestError,
    TLSHandshakeError,
)
from apns_keystore.keystore import Keystore
from apns_keystore.models import DEFAULT_KEYSTORE_TYPE, FEEDBACK_PRODUCTION, Endpoint
from apns_keystore.trust import DefaultTrustManager, RecordingTrustManager, TrustManager

logger = logging.getLogger(__name__)


def _open_connection(endpoint: Endpoint) -> socket.socket:
    """Open a TCP connection bounded by the endpoint timeout."""
    try:
        sock = socket.create_connection((endpoint.host, endpoint.port), timeout=endpoint.timeout)
    except socket.timeout:
        raise ConnectionTimeoutError(
            f"Connection timeout after {endpoint.timeout}s", endpoint.host, endpoint.port
        )
    except socket.gaierror as e:
        raise HarvestError(f"DNS resolution failed for {endpoint.host}: {e}", endpoint.host, endpoint.port)
    except OSError as e:
        raise HarvestError(f"Connection to {endpoint} failed: {e}", endpoint.host, endpoint.port)
    logger.debug(f"TCP connection established to {endpoint}")
    return sock


_KEY_EXCHANGE_TOKENS = {"ECDHE", "DHE", "EDH", "ECDH", "DH", "RSA", "ECDSA", "DSS", "PSK", "SRP", "ADH", "AECDH"}


def auth_type_for(cipher_name: Optional[str]) -> str:
    """
    Key exchange / authentication part of an OpenSSL cipher name.

    "ECDHE-RSA-AES128-GCM-SHA256" gives "ECDHE_RSA" and "AES256-SHA" gives
    "RSA". TLS 1.3 suites do not name one and give "GENERIC".
    """
    if not cipher_name:
        return "UNKNOWN"
    if cipher_name.startswith("TLS_"):
        return "GENERIC"
    parts = []
    for token in cipher_name.split("-"):
        if token not in _KEY_EXCHANGE_TOKENS:
            break
        parts.append(token)
    return "_".join(parts) or "RSA"


class ChainCollector:
    """
    set_verify callback keeping the certificate OpenSSL checks at each depth.

    The callback runs while the server Certificate message is processed, so
    the chain is known even if the server aborts the handshake afterwards
    (e.g. because it requires a client certificate). Every certificate is
    accepted here; the trust manager decides once the chain is complete.
    """

    def __init__(self) -> None:
        self._by_depth: Dict[int, x509.Certificate] = {}

    def __call__(self, conn: SSL.Connection, cert, errno: int, depth: int, ok: int) -> bool:
        self._by_depth[depth] = cert.to_cryptography()
        return True

    @property
    def chain(self) -> List[x509.Certificate]:
        """Collected certificates, leaf first."""
        return [self._by_depth[depth] for depth in sorted(self._by_depth)]


def _create_tls_connection(
    sock: socket.socket, endpoint: Endpoint, collector: ChainCollector
) -> SSL.Connection:
    """
    Wrap a connected socket in a client TLS connection.

    OpenSSL never rejects the peer: the collector accepts every certificate,
    so a chain that fails validation is still received.
    """
    context = SSL.Context(SSL.TLS_CLIENT_METHOD)
    context.set_verify(SSL.VERIFY_PEER, collector)

    conn = SSL.Connection(context, sock)
    try:
        ipaddress.ip_address(endpoint.host)
    except ValueError:
        conn.set_tlsext_host_name(endpoint.host.encode("idna"))
    conn.set_connect_state()
    return conn


def _do_handshake(conn: SSL.Connection, sock: socket.socket, endpoint: Endpoint) -> None:
    """Drive the handshake on a non-blocking socket until done or the deadline passes."""
    sock.setblocking(False)
    deadline = time.monotonic() + endpoint.timeout
    while True:
        try:
            conn.do_handshake()
            return
        except SSL.WantReadError:
            want_read = True
        except SSL.WantWriteError:
            want_read = False
        except SSL.Error as e:
            raise TLSHandshakeError(f"TLS handshake failed: {e}", endpoint.host, endpoint.port)

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise ConnectionTimeoutError(
                f"TLS handshake timeout after {endpoint.timeout}s", endpoint.host, endpoint.port
            )
        if want_read:
            ready = select.select([sock], [], [], remaining)[0]
        else:
            ready = select.select([], [sock], [], remaining)[1]
        if not ready:
            raise ConnectionTimeoutError(
                f"TLS handshake timeout after {endpoint.timeout}s", endpoint.host, endpoint.port
            )


def _check_peer_chain(conn: SSL.Connection, collector: ChainCollector, trust_manager: TrustManager) -> None:
    """Hand the presented chain to the trust manager, if the server sent one."""
    peer_chain = conn.get_peer_cert_chain()
    if peer_chain:
        chain = [cert.to_cryptography() for cert in peer_chain]
    else:
        # Not kept by every OpenSSL version after a failed handshake
        chain = collector.chain
    if not chain:
        logger.warning("Server did not present a certificate chain")
        return
    trust_manager.check_server_trusted(chain, auth_type_for(conn.get_cipher_name()))
    logger.debug("No errors, certificate is already trusted")


def _close_quietly(conn: Optional[SSL.Connection], sock: socket.socket) -> None:
    if conn is not None:
        try:
            conn.shutdown()
        except (SSL.Error, OSError) as e:
            logger.debug(f"Error during TLS shutdown: {e}")
    try:
        sock.close()
    except OSError as e:
        logger.debug(f"Error closing socket: {e}")


def fetch_endpoint_chain(
    endpoint: Endpoint = FEEDBACK_PRODUCTION,
    trust_manager: Optional[TrustManager] = None,
    ca_bundle: Optional[Path] = None,
) -> List[x509.Certificate]:
    """
    Connect to an endpoint and return the certificate chain it presents.

    The chain is recorded whether or not it is trusted, and also when the
    server ends the handshake after presenting it.

    Args:
        endpoint: Target endpoint (host, port, handshake timeout)
        trust_manager: Trust manager to wrap, defaults to the certifi bundle (or ca_bundle)
        ca_bundle: Custom CA bundle for the default trust manager

    Returns:
        Presented certificates, leaf first

    Raises:
        HarvestError: On connection, timeout or non-trust handshake failure
        ChainNotObtainedError: If no chain was recorded
    """
    if trust_manager is None:
        trust_manager = DefaultTrustManager.from_ca_bundle(endpoint.host, ca_bundle)
    recorder = RecordingTrustManager(trust_manager)
    collector = ChainCollector()

    logger.debug(f"Opening connection to {endpoint}...")
    sock = _open_connection(endpoint)
    conn: Optional[SSL.Connection] = None
    try:
        conn = _create_tls_connection(sock, endpoint, collector)
        logger.debug("Starting TLS handshake...")
        try:
            _do_handshake(conn, sock, endpoint)
            logger.debug("TLS handshake completed")
        except TLSHandshakeError as e:
            if not collector.chain:
                raise
            logger.debug(f"Handshake failed after the server certificate was received: {e}")
        _check_peer_chain(conn, collector, recorder)
    except CertificateTrustError as e:
        # Expected: the certificate is usually not trusted yet, the chain is recorded anyway
        logger.debug(f"Certificate not trusted, keeping recorded chain: {e}")
    finally:
        _close_quietly(conn, sock)

    if recorder.chain is None:
        raise ChainNotObtainedError(
            "Could not obtain server certificate chain", endpoint.host, endpoint.port
        )
    return recorder.chain


def harvest_certificate(
    endpoint: Endpoint = FEEDBACK_PRODUCTION,
    trust_manager: Optional[TrustManager] = None,
    ca_bundle: Optional[Path] = None,
) -> Keystore:
    """
    Fetch the certificate presented by an endpoint and store it in a new keystore.

    This deliberately bypasses chain validation to harvest a certificate for
    pinning. Do not use the result as proof that the server is trustworthy.

    Returns:
        Keystore holding the leaf certificate under alias "<host>-1"
    """
    keystore = Keystore(DEFAULT_KEYSTORE_TYPE)

    chain = fetch_endpoint_chain(endpoint, trust_manager, ca_bundle)
    log_chain(chain)

    alias = f"{endpoint.host}-1"
    keystore.set_certificate_entry(alias, chain[0])
    logger.info(f"Harvested certificate from {endpoint} as {alias}")
    return keystore
