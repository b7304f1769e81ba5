"""KDBX 3.1 outer header parsing and building.

The outer header is stored in plaintext ahead of the encrypted payload:
- File signature 03 D9 A2 9A and version signature 67 FB 4B B5
- Version as two u16 LE words, minor first (only 3.1 is accepted)
- TLV fields: code u8, length u16 LE, value
- End-of-header field (code 0) carrying 0D 0A 0D 0A

The exact bytes from the file signature through the end-of-header field
are kept in `raw_header`; their SHA-256 is stored in the inner XML and
checked by Database.verify_header().
"""

from __future__ import annotations

import hashlib
import logging
import struct
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum

from tresor.exceptions import (
    BadLengthError,
    FormatError,
    InvalidHeaderFieldError,
    InvalidSignatureError,
    MissingHeaderFieldError,
    UnsupportedStreamError,
    UnsupportedVersionError,
)
from tresor.security.crypto import Cipher, secure_random_bytes
from tresor.security.kdf import DEFAULT_TRANSFORM_ROUNDS
from tresor.security.stream import InnerRandomStreamType

logger = logging.getLogger(__name__)

KDBX_MAGIC = b"\x03\xd9\xa2\x9a"
KDBX3_MAGIC = b"\x67\xfb\x4b\xb5"
EOH_DATA = b"\r\n\r\n"
MAX_FIELD_LENGTH = 0xFFFF


class KdbxVersion(Enum):
    """Container versions understood by this package."""

    KDBX31 = (3, 1)

    @property
    def major(self) -> int:
        return self.value[0]

    @property
    def minor(self) -> int:
        return self.value[1]


class HeaderFieldType(IntEnum):
    """TLV codes of the KDBX 3.1 outer header."""

    END = 0
    COMMENT = 1
    CIPHER_ID = 2
    COMPRESSION_FLAGS = 3
    MASTER_SEED = 4
    TRANSFORM_SEED = 5
    TRANSFORM_ROUNDS = 6
    ENCRYPTION_IV = 7
    PROTECTED_STREAM_KEY = 8
    STREAM_START_BYTES = 9
    INNER_RANDOM_STREAM_ID = 10


class CompressionType(IntEnum):
    """Payload compression flag."""

    NONE = 0
    GZIP = 1


# Every one of these must appear before EOH
OBLIGATORY_FIELDS = (
    HeaderFieldType.CIPHER_ID,
    HeaderFieldType.COMPRESSION_FLAGS,
    HeaderFieldType.MASTER_SEED,
    HeaderFieldType.TRANSFORM_SEED,
    HeaderFieldType.TRANSFORM_ROUNDS,
    HeaderFieldType.ENCRYPTION_IV,
    HeaderFieldType.PROTECTED_STREAM_KEY,
    HeaderFieldType.STREAM_START_BYTES,
    HeaderFieldType.INNER_RANDOM_STREAM_ID,
)

# Exact value sizes
_FIELD_SIZES = {
    HeaderFieldType.CIPHER_ID: 16,
    HeaderFieldType.COMPRESSION_FLAGS: 4,
    HeaderFieldType.MASTER_SEED: 32,
    HeaderFieldType.TRANSFORM_SEED: 32,
    HeaderFieldType.TRANSFORM_ROUNDS: 8,
    HeaderFieldType.ENCRYPTION_IV: 16,
    HeaderFieldType.PROTECTED_STREAM_KEY: 32,
    HeaderFieldType.STREAM_START_BYTES: 32,
    HeaderFieldType.INNER_RANDOM_STREAM_ID: 4,
}


@dataclass(slots=True)
class KdbxHeader:
    """Parsed KDBX 3.1 outer header.

    Attributes:
        cipher: Payload cipher (always AES-256-CBC)
        compression: Payload compression flag
        master_seed: 32-byte seed hashed into the master key
        transform_seed: 32-byte AES key for the round transform
        transform_rounds: Number of AES rounds in the key schedule
        encryption_iv: 16-byte CBC initialization vector
        protected_stream_key: 32-byte key material for the inner stream
        stream_start_bytes: 32 bytes expected at the start of the plaintext
        inner_random_stream: Inner stream algorithm
        version: Container version
        comment: Optional comment field (read only, never written)
        raw_header: Exact header bytes, signature through EOH inclusive
    """

    cipher: Cipher
    compression: CompressionType
    master_seed: bytes
    transform_seed: bytes
    transform_rounds: int
    encryption_iv: bytes
    protected_stream_key: bytes
    stream_start_bytes: bytes
    inner_random_stream: InnerRandomStreamType = InnerRandomStreamType.SALSA20
    version: KdbxVersion = KdbxVersion.KDBX31
    comment: bytes | None = None
    raw_header: bytes = field(default=b"", repr=False)

    @property
    def hash(self) -> bytes:
        """SHA-256 of raw_header."""
        return hashlib.sha256(self.raw_header).digest()

    @classmethod
    def parse(cls, data: bytes) -> tuple[KdbxHeader, int]:
        """Parse the outer header from the start of a file.

        Args:
            data: File contents (at least the full header)

        Returns:
            Tuple of (header, offset of the first ciphertext byte)

        Raises:
            InvalidSignatureError: If either signature doesn't match
            UnsupportedVersionError: If the version isn't 3.1
            MissingHeaderFieldError: If an obligatory field is absent
            InvalidHeaderFieldError: If a field has a bad size or value
            UnknownCipherError: If the cipher isn't AES-256
            UnsupportedStreamError: If the inner stream is ARC4
            FormatError: If the header is truncated
        """
        if data[:4] != KDBX_MAGIC or data[4:8] != KDBX3_MAGIC:
            raise InvalidSignatureError()
        if len(data) < 12:
            raise FormatError("file truncated")

        version_minor, version_major = struct.unpack_from("<HH", data, 8)
        if (version_major, version_minor) != KdbxVersion.KDBX31.value:
            raise UnsupportedVersionError(version_major, version_minor)
        logger.debug("KDBX version %d.%d", version_major, version_minor)

        offset = 12
        fields: dict[HeaderFieldType, bytes] = {}
        comment: bytes | None = None

        while True:
            if offset + 3 > len(data):
                raise FormatError("file truncated")
            code = data[offset]
            (length,) = struct.unpack_from("<H", data, offset + 1)
            offset += 3
            if offset + length > len(data):
                raise FormatError("file truncated")
            value = data[offset : offset + length]
            offset += length

            if code == HeaderFieldType.END:
                break
            if code == HeaderFieldType.COMMENT:
                comment = value
                continue
            try:
                field_type = HeaderFieldType(code)
            except ValueError:
                logger.warning("Skipping unknown header field %d (%d bytes)", code, length)
                continue
            fields[field_type] = value

        for field_type in OBLIGATORY_FIELDS:
            if field_type not in fields:
                raise MissingHeaderFieldError(int(field_type), field_type.name)

        for field_type, size in _FIELD_SIZES.items():
            if len(fields[field_type]) != size:
                raise InvalidHeaderFieldError(
                    f"{field_type.name} has length {len(fields[field_type])}, expected {size}"
                )

        cipher = Cipher.from_uuid(fields[HeaderFieldType.CIPHER_ID])

        (compression_flag,) = struct.unpack("<I", fields[HeaderFieldType.COMPRESSION_FLAGS])
        try:
            compression = CompressionType(compression_flag)
        except ValueError:
            raise InvalidHeaderFieldError(
                f"invalid compression flag: {compression_flag}"
            ) from None

        (transform_rounds,) = struct.unpack("<Q", fields[HeaderFieldType.TRANSFORM_ROUNDS])
        if transform_rounds < 1:
            raise InvalidHeaderFieldError("transform rounds must be at least 1")

        (stream_id,) = struct.unpack("<I", fields[HeaderFieldType.INNER_RANDOM_STREAM_ID])
        try:
            inner_random_stream = InnerRandomStreamType(stream_id)
        except ValueError:
            raise InvalidHeaderFieldError(
                f"invalid inner random stream id: {stream_id}"
            ) from None
        if inner_random_stream == InnerRandomStreamType.ARC4:
            raise UnsupportedStreamError(stream_id)

        logger.debug("Header parsed: %d transform rounds, %s", transform_rounds, compression.name)

        header = cls(
            cipher=cipher,
            compression=compression,
            master_seed=fields[HeaderFieldType.MASTER_SEED],
            transform_seed=fields[HeaderFieldType.TRANSFORM_SEED],
            transform_rounds=transform_rounds,
            encryption_iv=fields[HeaderFieldType.ENCRYPTION_IV],
            protected_stream_key=fields[HeaderFieldType.PROTECTED_STREAM_KEY],
            stream_start_bytes=fields[HeaderFieldType.STREAM_START_BYTES],
            inner_random_stream=inner_random_stream,
            comment=comment,
            raw_header=bytes(data[:offset]),
        )
        return header, offset

    def to_bytes(self) -> bytes:
        """Serialize the header in canonical field order.

        Returns:
            Header bytes, signature through EOH inclusive

        Raises:
            BadLengthError: If a field value doesn't fit a u16 length
        """
        parts = [
            KDBX_MAGIC,
            KDBX3_MAGIC,
            struct.pack("<HH", self.version.minor, self.version.major),
        ]

        def add_field(field_type: HeaderFieldType, value: bytes) -> None:
            if len(value) > MAX_FIELD_LENGTH:
                raise BadLengthError(
                    f"header field {field_type.name} is {len(value)} bytes"
                )
            parts.append(struct.pack("<BH", field_type, len(value)))
            parts.append(value)

        add_field(HeaderFieldType.CIPHER_ID, self.cipher.value)
        add_field(HeaderFieldType.COMPRESSION_FLAGS, struct.pack("<I", self.compression))
        add_field(HeaderFieldType.MASTER_SEED, self.master_seed)
        add_field(HeaderFieldType.TRANSFORM_SEED, self.transform_seed)
        add_field(HeaderFieldType.TRANSFORM_ROUNDS, struct.pack("<Q", self.transform_rounds))
        add_field(HeaderFieldType.ENCRYPTION_IV, self.encryption_iv)
        add_field(HeaderFieldType.PROTECTED_STREAM_KEY, self.protected_stream_key)
        add_field(HeaderFieldType.STREAM_START_BYTES, self.stream_start_bytes)
        add_field(
            HeaderFieldType.INNER_RANDOM_STREAM_ID,
            struct.pack("<I", self.inner_random_stream),
        )
        add_field(HeaderFieldType.END, EOH_DATA)

        return b"".join(parts)

    def randomized(self) -> KdbxHeader:
        """Return a copy with every seed, IV and key drawn fresh.

        Transform rounds and compression are preserved. The inner stream
        is always Salsa20 on write. raw_header is set to the new bytes.
        """
        header = replace(
            self,
            master_seed=secure_random_bytes(32),
            transform_seed=secure_random_bytes(32),
            encryption_iv=secure_random_bytes(self.cipher.iv_size),
            protected_stream_key=secure_random_bytes(32),
            stream_start_bytes=secure_random_bytes(32),
            inner_random_stream=InnerRandomStreamType.SALSA20,
            version=KdbxVersion.KDBX31,
            comment=None,
        )
        header.raw_header = header.to_bytes()
        return header

    @classmethod
    def create(
        cls,
        transform_rounds: int = DEFAULT_TRANSFORM_ROUNDS,
        compression: CompressionType = CompressionType.GZIP,
    ) -> KdbxHeader:
        """Create a header for a new database with random seeds.

        Args:
            transform_rounds: AES rounds for the key schedule
            compression: Payload compression

        Returns:
            New KdbxHeader with raw_header set
        """
        if transform_rounds < 1:
            raise ValueError("transform rounds must be at least 1")
        header = cls(
            cipher=Cipher.AES256_CBC,
            compression=compression,
            master_seed=b"",
            transform_seed=b"",
            transform_rounds=transform_rounds,
            encryption_iv=b"",
            protected_stream_key=b"",
            stream_start_bytes=b"",
        )
        return header.randomized()
