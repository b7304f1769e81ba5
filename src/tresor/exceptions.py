"""Custom exception hierarchy for tresor.

This module provides the exception hierarchy used across the package.
All exceptions inherit from KdbxError.

Exception Hierarchy:
    KdbxError (base)
    ├── FormatError
    │   ├── InvalidSignatureError
    │   ├── UnsupportedVersionError
    │   ├── MissingHeaderFieldError
    │   ├── InvalidHeaderFieldError
    │   ├── UnknownCipherError
    │   └── UnsupportedStreamError
    ├── BadLengthError
    ├── CryptoError
    │   └── DecryptionError
    ├── CorruptedDataError
    │   └── InvalidXmlError
    ├── DatabaseError
    │   ├── InvalidStateError
    │   ├── PathNotFoundError
    │   ├── InvalidPathError
    │   └── BinaryNotFoundError
    └── UndoError
        ├── AtOldestChange
        └── AtNewestChange

Security Note:
    Exception messages are designed to avoid leaking sensitive information.
    They provide enough context for debugging without exposing secrets.
"""

from __future__ import annotations


class KdbxError(Exception):
    """Base exception for all tresor errors.

    All exceptions raised by tresor inherit from this class,
    making it easy to catch all library-specific errors.
    """


# --- Format Errors ---


class FormatError(KdbxError):
    """Error in the KDBX file preamble or header.

    Raised when the file doesn't conform to the KDBX 3.1 layout. The only
    way to recover is to pick a different file.
    """


class InvalidSignatureError(FormatError):
    """Invalid KDBX file or version signature (magic bytes)."""

    def __init__(self, message: str = "invalid signature") -> None:
        super().__init__(message)


class UnsupportedVersionError(FormatError):
    """Unsupported KDBX version.

    Only 3.1 is read and written.
    """

    def __init__(self, version_major: int, version_minor: int) -> None:
        self.version_major = version_major
        self.version_minor = version_minor
        super().__init__(
            f"unsupported version: {version_major}.{version_minor}"
        )


class MissingHeaderFieldError(FormatError):
    """An obligatory header field was not present before EOH."""

    def __init__(self, field_code: int, field_name: str) -> None:
        self.field_code = field_code
        self.field_name = field_name
        super().__init__(f"missing header field {field_name} ({field_code})")


class InvalidHeaderFieldError(FormatError):
    """A header field has an invalid size or value."""


class UnknownCipherError(FormatError):
    """Unknown or unsupported cipher algorithm.

    The database uses a cipher other than AES-256-CBC.
    """

    def __init__(self, cipher_uuid: bytes) -> None:
        self.cipher_uuid = cipher_uuid
        super().__init__(f"unknown cipher: {cipher_uuid.hex()}")


class UnsupportedStreamError(FormatError):
    """The inner random stream is recognized but cannot be used (ARC4)."""

    def __init__(self, stream_id: int) -> None:
        self.stream_id = stream_id
        super().__init__(f"unsupported inner random stream: {stream_id}")


# --- Length Errors ---


class BadLengthError(KdbxError):
    """Length mismatch.

    Raised for ciphertext that is not a whole number of AES blocks and for
    header fields too large to be written.
    """


# --- Crypto Errors ---


class CryptoError(KdbxError):
    """Error in cryptographic operations."""


class DecryptionError(CryptoError):
    """Failed to decrypt database content.

    Raised only when the stream start bytes don't match, which is the
    signal for a wrong password. Integrity failures after a successful
    decryption raise CorruptedDataError instead.
    """

    def __init__(self, message: str = "wrong password") -> None:
        super().__init__(message)


# --- Integrity Errors ---


class CorruptedDataError(KdbxError):
    """Decrypted payload failed an integrity check.

    Covers block hash mismatches, duplicate block ids, gzip failures and
    a missing or mismatched header hash.
    """


class InvalidXmlError(CorruptedDataError):
    """Inner XML document is malformed.

    Covers XML syntax errors, malformed Bool values, bad integers, bad
    UUIDs and base64 failures on protected values.
    """


# --- Database Errors ---


class DatabaseError(KdbxError):
    """Error in database navigation or lifecycle."""


class InvalidStateError(DatabaseError):
    """Operation is not allowed in the database's current state."""

    def __init__(self, operation: str, state: object) -> None:
        self.operation = operation
        self.state = state
        super().__init__(f"cannot {operation} in state {state}")


class PathNotFoundError(DatabaseError):
    """A UUID along a path names no child of the previous group."""

    def __init__(self, index: int, message: str = "path not found") -> None:
        self.index = index
        super().__init__(f"{message} (step {index})")


class InvalidPathError(DatabaseError):
    """An entry appears at a non-final position of a path."""


class BinaryNotFoundError(DatabaseError):
    """No attachment in Meta has the requested id."""

    def __init__(self, binary_id: int) -> None:
        self.binary_id = binary_id
        super().__init__(f"binary not found: {binary_id}")


# --- Undo Errors ---


class UndoError(KdbxError):
    """Base class for undo/redo boundary signals.

    These are expected outcomes rather than failures.
    """


class AtOldestChange(UndoError):
    """Nothing left to undo."""

    def __init__(self, message: str = "already at oldest change") -> None:
        super().__init__(message)


class AtNewestChange(UndoError):
    """Nothing left to redo."""

    def __init__(self, message: str = "already at newest change") -> None:
        super().__init__(message)
