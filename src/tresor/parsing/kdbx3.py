"""KDBX 3.1 payload encryption and decryption.

This module handles the cryptographic operations for KDBX 3.1 files:
- Master key derivation from the composite key
- AES-256-CBC decryption and encryption of the payload
- Wrong-password detection via the stream start bytes
- Hashed block envelope and optional gzip stage

KDBX 3.1 structure:
1. Outer header (plaintext, signature through EOH)
2. AES-256-CBC ciphertext, PKCS#7 padded
   - 32 bytes: StreamStartBytes
   - Hashed block sequence
     - XML database content (optionally gzipped)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from tresor.exceptions import BadLengthError, DecryptionError
from tresor.security import (
    AES_BLOCK_SIZE,
    AesKdfConfig,
    SecureBytes,
    add_pkcs7_padding,
    aes_cbc_decrypt,
    aes_cbc_encrypt,
    constant_time_compare,
    derive_composite_key,
    derive_master_key,
)

from . import compression
from .blocks import BLOCK_SIZE as DEFAULT_BLOCK_SIZE
from .blocks import build_hashed_blocks, read_hashed_blocks
from .header import CompressionType, KdbxHeader

logger = logging.getLogger(__name__)

STREAM_START_SIZE = 32


@dataclass(slots=True)
class DecryptedPayload:
    """Result of decrypting a KDBX 3.1 file.

    Contains the header and the inner XML document.
    """

    header: KdbxHeader
    xml_data: bytes


def _master_key(header: KdbxHeader, composite_key: SecureBytes) -> SecureBytes:
    config = AesKdfConfig(rounds=header.transform_rounds, salt=header.transform_seed)
    return derive_master_key(composite_key, header.master_seed, config)


class Kdbx3Reader:
    """Reader for KDBX 3.1 database files.

    Constructing a reader parses and validates the outer header; decrypt()
    does the expensive work.
    """

    def __init__(self, data: bytes) -> None:
        """Initialize reader with file data.

        Args:
            data: Complete KDBX 3.1 file contents

        Raises:
            FormatError: If the header is invalid
            BadLengthError: If the ciphertext isn't a whole number of blocks
        """
        self._header, header_end = KdbxHeader.parse(data)
        self._ciphertext = data[header_end:]
        if len(self._ciphertext) % AES_BLOCK_SIZE != 0:
            raise BadLengthError(
                f"ciphertext length {len(self._ciphertext)} is not a multiple of {AES_BLOCK_SIZE}"
            )
        logger.debug("Loaded header, %d bytes of ciphertext", len(self._ciphertext))

    @property
    def header(self) -> KdbxHeader:
        return self._header

    @property
    def ciphertext(self) -> bytes:
        return self._ciphertext

    def decrypt(self, composite_key: SecureBytes) -> DecryptedPayload:
        """Decrypt the payload.

        Args:
            composite_key: Output of derive_composite_key

        Returns:
            DecryptedPayload with header and XML

        Raises:
            DecryptionError: If the stream start bytes don't match
            CorruptedDataError: If the block envelope or gzip stage is bad
        """
        header = self._header
        with _master_key(header, composite_key) as master_key:
            plaintext = aes_cbc_decrypt(master_key.data, header.encryption_iv, self._ciphertext)

        if not constant_time_compare(plaintext[:STREAM_START_SIZE], header.stream_start_bytes):
            raise DecryptionError()

        payload = read_hashed_blocks(plaintext[STREAM_START_SIZE:])
        if header.compression == CompressionType.GZIP:
            payload = compression.decompress(payload)
        logger.debug("Decrypted payload: %d bytes of XML", len(payload))

        return DecryptedPayload(header=header, xml_data=payload)


class Kdbx3Writer:
    """Writer for KDBX 3.1 database files."""

    # Block envelope chunk size (1 MiB)
    BLOCK_SIZE = DEFAULT_BLOCK_SIZE

    def encrypt(
        self,
        header: KdbxHeader,
        xml_data: bytes,
        composite_key: SecureBytes,
    ) -> bytes:
        """Encrypt database to KDBX 3.1 format.

        The header is written with to_bytes(); callers that embed the header
        hash in the XML must compute it from the same bytes.

        Args:
            header: Outer header with the seeds to use
            xml_data: XML database content
            composite_key: Output of derive_composite_key

        Returns:
            Complete KDBX 3.1 file as bytes
        """
        payload = xml_data
        if header.compression == CompressionType.GZIP:
            payload = compression.compress(payload)

        plaintext = header.stream_start_bytes + build_hashed_blocks(payload, self.BLOCK_SIZE)
        plaintext = add_pkcs7_padding(plaintext)

        with _master_key(header, composite_key) as master_key:
            ciphertext = aes_cbc_encrypt(master_key.data, header.encryption_iv, plaintext)

        logger.debug("Encrypted payload: %d bytes of ciphertext", len(ciphertext))
        return header.to_bytes() + ciphertext


def read_kdbx3(data: bytes, password: str) -> DecryptedPayload:
    """Convenience function to read a KDBX 3.1 file.

    Args:
        data: Complete file contents
        password: Database password

    Returns:
        DecryptedPayload with header and XML
    """
    reader = Kdbx3Reader(data)
    with derive_composite_key(password) as composite_key:
        return reader.decrypt(composite_key)


def write_kdbx3(header: KdbxHeader, xml_data: bytes, password: str) -> bytes:
    """Convenience function to write a KDBX 3.1 file.

    Args:
        header: Outer header with the seeds to use
        xml_data: XML database content
        password: Database password

    Returns:
        Complete KDBX 3.1 file as bytes
    """
    writer = Kdbx3Writer()
    with derive_composite_key(password) as composite_key:
        return writer.encrypt(header=header, xml_data=xml_data, composite_key=composite_key)
