"""KDBX binary format parsing and building.

This module handles low-level binary format operations:
- Header parsing and validation
- Hashed block envelope and gzip stage
- KDBX 3.1 payload encryption/decryption

The XML codec lives in tresor.parsing.payload; it depends on the models
and is imported from there directly.

All parsing uses Python's struct module for binary operations.
"""

from .blocks import BLOCK_SIZE, build_hashed_blocks, read_hashed_blocks
from .header import (
    KDBX3_MAGIC,
    KDBX_MAGIC,
    CompressionType,
    HeaderFieldType,
    KdbxHeader,
    KdbxVersion,
)
from .kdbx3 import (
    DecryptedPayload,
    Kdbx3Reader,
    Kdbx3Writer,
    read_kdbx3,
    write_kdbx3,
)

__all__ = [
    # Header
    "KDBX3_MAGIC",
    "KDBX_MAGIC",
    "CompressionType",
    "HeaderFieldType",
    "KdbxHeader",
    "KdbxVersion",
    # Blocks
    "BLOCK_SIZE",
    "build_hashed_blocks",
    "read_hashed_blocks",
    # KDBX 3.1
    "DecryptedPayload",
    "Kdbx3Reader",
    "Kdbx3Writer",
    "read_kdbx3",
    "write_kdbx3",
]
