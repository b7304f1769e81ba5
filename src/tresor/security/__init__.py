"""Security-critical components for tresor.

This module contains all security-sensitive code including:
- Secure memory handling (SecureBytes)
- AES primitives
- The password key schedule
- The inner random stream for protected values

All code in this module should be audited carefully.
"""

from .crypto import (
    AES_BLOCK_SIZE,
    Cipher,
    add_pkcs7_padding,
    aes_cbc_decrypt,
    aes_cbc_encrypt,
    aes_transform_rounds,
    constant_time_compare,
    secure_random_bytes,
)
from .kdf import (
    DEFAULT_TRANSFORM_ROUNDS,
    AesKdfConfig,
    derive_composite_key,
    derive_key_aes_kdf,
    derive_master_key,
    generate_master_key,
)
from .memory import SecureBytes
from .stream import (
    SALSA20_NONCE,
    InnerRandomStreamType,
    NullStream,
    ProtectedStream,
    Salsa20Stream,
    create_protected_stream,
)

__all__ = [
    # Memory
    "SecureBytes",
    # Crypto
    "AES_BLOCK_SIZE",
    "Cipher",
    "add_pkcs7_padding",
    "aes_cbc_decrypt",
    "aes_cbc_encrypt",
    "aes_transform_rounds",
    "constant_time_compare",
    "secure_random_bytes",
    # KDF
    "DEFAULT_TRANSFORM_ROUNDS",
    "AesKdfConfig",
    "derive_composite_key",
    "derive_key_aes_kdf",
    "derive_master_key",
    "generate_master_key",
    # Inner stream
    "SALSA20_NONCE",
    "InnerRandomStreamType",
    "NullStream",
    "ProtectedStream",
    "Salsa20Stream",
    "create_protected_stream",
]
