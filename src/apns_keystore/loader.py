"""Keystore loading: resolve credential references and decode them into keystores."""

import logging
import threading
from typing import Any, BinaryIO, Dict, Hashable, Optional

from apns_keystore.credentials import stream_keystore, validate_keystore
from apns_keystore.exceptions import (
    InvalidKeystoreFormatError,
    InvalidKeystorePasswordError,
    KeystoreError,
)
from apns_keystore.keystore import Keystore
from apns_keystore.models import DEFAULT_KEYSTORE_TYPE, PushServer

logger = logging.getLogger(__name__)

BLANK_PASSWORD_MESSAGE = (
    "Blank passwords not supported (#38). "
    "You must create your keystore with a non-empty password."
)

_BLANK_PASSWORD_PATTERNS = ("division by zero", "divide by zero", "Get Key failed: / by zero")
_PASSWORD_PATTERNS = (
    "Invalid password",
    "Bad decrypt",
    "Incorrect password",
    "Password was not given",
    "Password was given but",
    "mac verify failure",
)
_FORMAT_PATTERNS = (
    "Could not deserialize",
    "Unable to load",
    "ASN.1",
    "asn1",
    "lengthTag",
)


class TargetLockRegistry:
    """
    One lock per logical target, created on first use and never removed.

    Loads for the same target serialize; loads for different targets do not
    block each other.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}

    def lock_for(self, target: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(target)
            if lock is None:
                lock = threading.Lock()
                self._locks[target] = lock
            return lock

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


_target_locks = TargetLockRegistry()


def keystore_password_for(password: Optional[str]) -> str:
    """Normalize an absent password to the empty string."""
    if password is None:
        return ""
    return password


def wrap_keystore_exception(exc: BaseException) -> KeystoreError:
    """
    Translate a low-level load failure into the keystore error taxonomy.

    Args:
        exc: Exception raised while decoding a keystore

    Returns:
        InvalidKeystorePasswordError, InvalidKeystoreFormatError or a generic KeystoreError
    """
    if isinstance(exc, KeystoreError):
        return exc

    msg = f"{type(exc).__name__}: {exc}"
    if isinstance(exc, ZeroDivisionError) or any(p in msg for p in _BLANK_PASSWORD_PATTERNS):
        return InvalidKeystorePasswordError(BLANK_PASSWORD_MESSAGE)
    if any(p in msg for p in _PASSWORD_PATTERNS):
        return InvalidKeystorePasswordError()
    if any(p in msg for p in _FORMAT_PATTERNS):
        return InvalidKeystoreFormatError()
    return KeystoreError(f"Keystore exception: {exc}")


def _close_stream(stream: BinaryIO) -> None:
    try:
        stream.close()
    except Exception as e:
        logger.debug(f"Error closing keystore stream: {e}")


def load_keystore(
    keystore: Any,
    keystore_type: Optional[str] = DEFAULT_KEYSTORE_TYPE,
    password: Optional[str] = None,
    target: Optional[Hashable] = None,
    registry: Optional[TargetLockRegistry] = None,
) -> Keystore:
    """
    Load a keystore.

    Args:
        keystore: bytes, a file path (str or os.PathLike), a binary stream or a CredentialReference
        keystore_type: Keystore type, e.g. "PKCS12" or "PEM"
        password: Keystore password; None is treated as ""
        target: Logical target the keystore is intended for; loads for the same target serialize.
            Defaults to the identity of the reference: the resolved file path, or the
            buffer or stream object itself
        registry: Lock registry, defaults to the module-wide one

    Returns:
        A loaded Keystore

    Raises:
        InvalidKeystoreReferenceError: If the reference is unusable
        InvalidKeystorePasswordError: If the password is wrong or blank passwords are not supported
        InvalidKeystoreFormatError: If the data is not a keystore of the given type
        KeystoreError: For any other load failure
    """
    reference = validate_keystore(keystore)
    if target is None:
        target = reference.lock_target()

    lock = (registry or _target_locks).lock_for(target)
    with lock:
        stream = stream_keystore(reference)
        try:
            loaded = Keystore(keystore_type)
            loaded.load(stream, keystore_password_for(password))
        except KeystoreError:
            raise
        except Exception as e:
            error = wrap_keystore_exception(e)
            logger.debug(f"Keystore load failed for target {target!r}: {e}")
            raise error from e
        finally:
            _close_stream(stream)
    return loaded


def load_server_keystore(server: PushServer, keystore: Any = None) -> Keystore:
    """
    Load the keystore a push server is configured with.

    Args:
        server: Server configuration providing type, password and target identity
        keystore: Explicit keystore reference, defaults to server.keystore

    Returns:
        A loaded Keystore
    """
    if keystore is None:
        keystore = server.keystore
    return load_keystore(
        keystore,
        server.keystore_type,
        server.keystore_password,
        target=server.target_id,
    )
