"""AES primitives and small cryptographic helpers.

This module wraps pycryptodomex for the operations a KDBX 3.1 file needs:
- AES-256-CBC encryption and decryption of the payload (no implicit padding)
- AES-256-ECB round transform used by the key schedule
- PKCS#7 padding on write
- Constant-time comparison and CSPRNG access
"""

from __future__ import annotations

import hmac
import os
from enum import Enum

from Cryptodome.Cipher import AES
from Cryptodome.Util.Padding import pad

from tresor.exceptions import BadLengthError, UnknownCipherError

AES_BLOCK_SIZE = 16


class Cipher(Enum):
    """Payload ciphers recognized in the KDBX header.

    The UUID values are defined by KeePass.
    """

    AES256_CBC = bytes.fromhex("31c1f2e6bf714350be5805216afc5aff")

    @property
    def key_size(self) -> int:
        return 32

    @property
    def iv_size(self) -> int:
        return 16

    @property
    def display_name(self) -> str:
        return "AES-256-CBC"

    @classmethod
    def from_uuid(cls, uuid_bytes: bytes) -> Cipher:
        """Look up a cipher by its KDBX UUID.

        Args:
            uuid_bytes: 16-byte cipher identifier from the header

        Returns:
            The corresponding Cipher member

        Raises:
            UnknownCipherError: If the UUID isn't AES-256
        """
        for cipher in cls:
            if cipher.value == uuid_bytes:
                return cipher
        raise UnknownCipherError(uuid_bytes)


def _check_block_length(data: bytes, what: str) -> None:
    if len(data) % AES_BLOCK_SIZE != 0:
        raise BadLengthError(
            f"{what} length {len(data)} is not a multiple of {AES_BLOCK_SIZE}"
        )


def aes_cbc_decrypt(key: bytes, iv: bytes, ciphertext: bytes) -> bytes:
    """Decrypt AES-256-CBC ciphertext.

    Trailing PKCS#7 padding is left in place; the block envelope stops at
    its terminator and never looks at it.

    Raises:
        BadLengthError: If ciphertext isn't a whole number of blocks
    """
    _check_block_length(ciphertext, "ciphertext")
    return AES.new(key, AES.MODE_CBC, iv=iv).decrypt(ciphertext)


def aes_cbc_encrypt(key: bytes, iv: bytes, plaintext: bytes) -> bytes:
    """Encrypt with AES-256-CBC without adding padding.

    Callers pad with add_pkcs7_padding() first.

    Raises:
        BadLengthError: If plaintext isn't a whole number of blocks
    """
    _check_block_length(plaintext, "plaintext")
    return AES.new(key, AES.MODE_CBC, iv=iv).encrypt(plaintext)


def add_pkcs7_padding(data: bytes) -> bytes:
    """Pad data to a multiple of 16 bytes (always adds 1-16 bytes)."""
    return pad(data, AES_BLOCK_SIZE, style="pkcs7")


def aes_transform_rounds(data: bytes, seed: bytes, rounds: int) -> bytes:
    """Encrypt every 16-byte unit of data `rounds` times with AES-256-ECB.

    ECB treats each unit independently, so encrypting the whole buffer in
    one call per round is the same as looping over the units.

    Args:
        data: Input whose length is a multiple of 16
        seed: 32-byte AES key (the header's TransformSeed)
        rounds: Number of successive encryptions

    Returns:
        Transformed bytes of the same length

    Raises:
        BadLengthError: If data isn't a whole number of blocks
    """
    _check_block_length(data, "transform input")
    cipher = AES.new(seed, AES.MODE_ECB)
    for _ in range(rounds):
        data = cipher.encrypt(data)
    return data


def constant_time_compare(a: bytes, b: bytes) -> bool:
    """Compare two byte strings in constant time."""
    return hmac.compare_digest(a, b)


def secure_random_bytes(n: int) -> bytes:
    """Return n bytes from the operating system CSPRNG."""
    return os.urandom(n)
