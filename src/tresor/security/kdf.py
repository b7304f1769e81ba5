"""Key schedule for KDBX 3.1 databases.

This module turns a password into the AES key for the payload:
- Composite key: SHA-256(SHA-256(utf8(password)))
- Transformed key: SHA-256(AES-ECB^rounds(composite, TransformSeed))
- Master key: SHA-256(MasterSeed || transformed key)

Security considerations:
- The round transform dominates load time; rounds come from the header
- All derived keys are returned as SecureBytes for explicit zeroization
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from .crypto import aes_transform_rounds
from .memory import SecureBytes

# KeePass 2.x default for new databases
DEFAULT_TRANSFORM_ROUNDS = 60000


@dataclass(frozen=True, slots=True)
class AesKdfConfig:
    """Configuration for the AES round transform.

    Attributes:
        rounds: Number of AES encryption rounds (header TransformRounds)
        salt: 32-byte AES key (header TransformSeed)
    """

    rounds: int
    salt: bytes

    def __post_init__(self) -> None:
        """Validate configuration."""
        if len(self.salt) != 32:
            raise ValueError("AES-KDF salt must be exactly 32 bytes")
        if self.rounds < 1:
            raise ValueError("AES-KDF rounds must be at least 1")


def derive_composite_key(password: str) -> SecureBytes:
    """Create the composite key for a password.

    Args:
        password: Database password

    Returns:
        32-byte composite key wrapped in SecureBytes
    """
    pwd_bytes = bytearray(password.encode("utf-8"))
    pwd_hash = SecureBytes(hashlib.sha256(pwd_bytes).digest())
    try:
        return SecureBytes(hashlib.sha256(pwd_hash.data).digest())
    finally:
        pwd_hash.zeroize()
        for i in range(len(pwd_bytes)):
            pwd_bytes[i] = 0


def derive_key_aes_kdf(composite_key: bytes, config: AesKdfConfig) -> SecureBytes:
    """Run the AES round transform and hash the result.

    Args:
        composite_key: 32-byte composite key
        config: Transform rounds and seed

    Returns:
        32-byte transformed key wrapped in SecureBytes

    Raises:
        ValueError: If composite_key is not 32 bytes
    """
    if len(composite_key) != 32:
        raise ValueError("AES-KDF requires 32-byte input")

    transformed = bytearray(aes_transform_rounds(composite_key, config.salt, config.rounds))
    try:
        return SecureBytes(hashlib.sha256(transformed).digest())
    finally:
        for i in range(len(transformed)):
            transformed[i] = 0


def derive_master_key(
    composite_key: SecureBytes,
    master_seed: bytes,
    config: AesKdfConfig,
) -> SecureBytes:
    """Derive the payload key from a composite key.

    Args:
        composite_key: Output of derive_composite_key
        master_seed: Header MasterSeed
        config: Transform rounds and seed

    Returns:
        32-byte master key wrapped in SecureBytes
    """
    with derive_key_aes_kdf(composite_key.data, config) as transformed:
        return SecureBytes(hashlib.sha256(master_seed + transformed.data).digest())


def generate_master_key(
    password: str,
    master_seed: bytes,
    transform_seed: bytes,
    rounds: int,
) -> SecureBytes:
    """Derive the master key straight from a password.

    Args:
        password: Database password
        master_seed: Header MasterSeed
        transform_seed: Header TransformSeed
        rounds: Header TransformRounds

    Returns:
        32-byte master key wrapped in SecureBytes
    """
    config = AesKdfConfig(rounds=rounds, salt=transform_seed)
    with derive_composite_key(password) as composite:
        return derive_master_key(composite, master_seed, config)
