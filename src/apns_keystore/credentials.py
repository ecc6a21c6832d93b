"""Credential references: where keystore bytes live and how to stream them."""

import io
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Hashable

from apns_keystore.exceptions import InvalidKeystoreReferenceError

logger = logging.getLogger(__name__)


class CredentialReference(ABC):
    """Base class of the supported credential reference variants."""

    @abstractmethod
    def validate(self) -> None:
        """Raise InvalidKeystoreReferenceError if the reference cannot be used."""

    @abstractmethod
    def open(self) -> BinaryIO:
        """Return a binary stream over the keystore bytes."""

    @abstractmethod
    def describe(self) -> str:
        """Short human readable description of where the keystore comes from, for logs."""

    @abstractmethod
    def lock_target(self) -> Hashable:
        """Identity of the referenced keystore, used to serialize loads when no target is given."""


@dataclass(frozen=True)
class BytesReference(CredentialReference):
    """Keystore held in memory."""

    data: bytes

    def validate(self) -> None:
        if len(self.data) == 0:
            raise InvalidKeystoreReferenceError("Invalid keystore reference. Byte array is empty", self.data)

    def open(self) -> BinaryIO:
        return io.BytesIO(self.data)

    def describe(self) -> str:
        return f"<{len(self.data)} bytes>"

    def lock_target(self) -> Hashable:
        return ("bytes", id(self.data))


@dataclass(frozen=True)
class PathReference(CredentialReference):
    """Keystore stored in a file."""

    path: Path

    def validate(self) -> None:
        absolute = self.path.absolute()
        if not self.path.exists():
            raise InvalidKeystoreReferenceError(
                f"Invalid keystore reference. File does not exist: {absolute}", self.path
            )
        if not self.path.is_file():
            raise InvalidKeystoreReferenceError(
                f"Invalid keystore reference. Path does not refer to a valid file: {absolute}", self.path
            )
        if self.path.stat().st_size <= 0:
            raise InvalidKeystoreReferenceError(
                f"Invalid keystore reference. File is empty: {absolute}", self.path
            )

    def open(self) -> BinaryIO:
        return open(self.path, "rb")

    def describe(self) -> str:
        return str(self.path)

    def lock_target(self) -> Hashable:
        return ("path", str(self.path.resolve()))


@dataclass(frozen=True)
class StreamReference(CredentialReference):
    """Keystore readable from an already open stream. Size cannot be checked upfront."""

    stream: BinaryIO

    def validate(self) -> None:
        return None

    def open(self) -> BinaryIO:
        return self.stream

    def describe(self) -> str:
        return getattr(self.stream, "name", None) or "<stream>"

    def lock_target(self) -> Hashable:
        return ("stream", id(self.stream))


def credential_reference(keystore: Any) -> CredentialReference:
    """
    Coerce a caller-supplied keystore object into a credential reference.

    Args:
        keystore: bytes, a path (str or os.PathLike), a binary stream, or a CredentialReference

    Returns:
        The matching CredentialReference variant

    Raises:
        InvalidKeystoreReferenceError: If keystore is None or of an unsupported type
    """
    if keystore is None:
        raise InvalidKeystoreReferenceError(reference=None)
    if isinstance(keystore, CredentialReference):
        return keystore
    if isinstance(keystore, (bytes, bytearray, memoryview)):
        return BytesReference(bytes(keystore))
    if isinstance(keystore, (str, os.PathLike)):
        return PathReference(Path(keystore))
    if isinstance(keystore, io.IOBase) or callable(getattr(keystore, "read", None)):
        return StreamReference(keystore)
    raise InvalidKeystoreReferenceError(reference=keystore)


def validate_keystore(keystore: Any) -> CredentialReference:
    """
    Check that a keystore reference points to something loadable, without opening it.

    Returns:
        The validated CredentialReference

    Raises:
        InvalidKeystoreReferenceError: If the reference is not usable
    """
    reference = credential_reference(keystore)
    reference.validate()
    return reference


def stream_keystore(keystore: Any) -> BinaryIO:
    """
    Given an object representing a keystore, return a binary stream over it.

    Raises:
        InvalidKeystoreReferenceError: If the reference is invalid or cannot be opened
    """
    reference = validate_keystore(keystore)
    try:
        stream = reference.open()
    except OSError as e:
        raise InvalidKeystoreReferenceError(f"Invalid keystore reference: {e}", keystore) from e
    logger.debug(f"Streaming keystore from {reference.describe()}")
    return stream
