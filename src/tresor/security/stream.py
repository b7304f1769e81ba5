"""Inner random stream for protected values.

KDBX 3.1 masks protected string values in the inner XML by XOR-ing them
with a Salsa20 keystream. The keystream is a single sequence consumed in
document order: every protected value advances the same counter, on read
and on write alike. A stream object is therefore created per parse or
emit and handed explicitly to the XML reader/writer.
"""

from __future__ import annotations

import hashlib
from enum import IntEnum
from typing import Protocol

from Cryptodome.Cipher import Salsa20

from tresor.exceptions import UnsupportedStreamError

# Fixed nonce used by KeePass for the inner Salsa20 stream
SALSA20_NONCE = b"\xE8\x30\x09\x4B\x97\x20\x5D\x2A"


class InnerRandomStreamType(IntEnum):
    """InnerRandomStreamID values from the KDBX 3.1 header."""

    NONE = 0
    ARC4 = 1
    SALSA20 = 2


class ProtectedStream(Protocol):
    """Stateful XOR transform applied to protected values in document order."""

    def transform(self, data: bytes) -> bytes: ...


class Salsa20Stream:
    """Salsa20 keystream with one position shared by all transform calls.

    Encryption and decryption are the same XOR, so `encrypt` and `decrypt`
    are aliases of `transform`.
    """

    def __init__(self, key: bytes) -> None:
        """Initialize the stream.

        Args:
            key: 32-byte Salsa20 key (already derived from the header's
                ProtectedStreamKey, see from_protected_stream_key)
        """
        if len(key) != 32:
            raise ValueError("Salsa20 key must be 32 bytes")
        self._cipher = Salsa20.new(key=key, nonce=SALSA20_NONCE)

    @classmethod
    def from_protected_stream_key(cls, protected_stream_key: bytes) -> Salsa20Stream:
        """Create the stream for a header's ProtectedStreamKey.

        The Salsa20 key is SHA-256 of the raw header value.
        """
        return cls(hashlib.sha256(protected_stream_key).digest())

    def transform(self, data: bytes) -> bytes:
        """XOR data with the next len(data) keystream bytes."""
        return self._cipher.encrypt(data)

    encrypt = transform
    decrypt = transform


class NullStream:
    """Identity stream for files whose InnerRandomStreamID is None."""

    def transform(self, data: bytes) -> bytes:
        return data

    encrypt = transform
    decrypt = transform


def create_protected_stream(stream_id: int, protected_stream_key: bytes) -> ProtectedStream:
    """Build the inner stream named by a header's InnerRandomStreamID.

    Args:
        stream_id: 0 (None), 1 (ARC4) or 2 (Salsa20)
        protected_stream_key: Raw ProtectedStreamKey header value

    Returns:
        A fresh stream positioned at offset 0

    Raises:
        UnsupportedStreamError: For ARC4 or an unknown id
    """
    if stream_id == InnerRandomStreamType.SALSA20:
        return Salsa20Stream.from_protected_stream_key(protected_stream_key)
    if stream_id == InnerRandomStreamType.NONE:
        return NullStream()
    raise UnsupportedStreamError(stream_id)
