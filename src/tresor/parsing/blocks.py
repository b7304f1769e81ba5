"""Hashed block envelope of the KDBX 3.1 payload.

After the stream start bytes, the decrypted payload is a sequence of
blocks:

    block id (u32 LE) | SHA-256 of data (32 bytes) | size (u32 LE) | data

The sequence ends at the first block whose size is zero. Whatever follows
the terminator (the CBC padding) is ignored.
"""

from __future__ import annotations

import hashlib
import logging
import struct

from tresor.exceptions import CorruptedDataError
from tresor.security.crypto import constant_time_compare

logger = logging.getLogger(__name__)

# 1 MiB
BLOCK_SIZE = 1024 * 1024

_BLOCK_HEADER = struct.Struct("<I32sI")
_ZERO_HASH = b"\x00" * 32


def read_hashed_blocks(data: bytes) -> bytes:
    """Verify and reassemble a hashed block sequence.

    Blocks are concatenated in ascending id order, not file order.

    Args:
        data: Bytes starting at the first block header

    Returns:
        Reassembled payload

    Raises:
        CorruptedDataError: On a duplicate id, hash mismatch, truncated
            block or missing terminator
    """
    blocks: dict[int, bytes] = {}
    offset = 0

    while True:
        if offset + _BLOCK_HEADER.size > len(data):
            raise CorruptedDataError("truncated block header")
        block_id, block_hash, block_size = _BLOCK_HEADER.unpack_from(data, offset)
        offset += _BLOCK_HEADER.size

        if block_size == 0:
            break

        if block_id in blocks:
            raise CorruptedDataError("duplicate block id")
        if offset + block_size > len(data):
            raise CorruptedDataError("truncated block data")

        block_data = data[offset : offset + block_size]
        offset += block_size

        if not constant_time_compare(hashlib.sha256(block_data).digest(), block_hash):
            raise CorruptedDataError("block hash mismatch")
        blocks[block_id] = block_data

    logger.debug("Read %d payload blocks", len(blocks))
    return b"".join(blocks[block_id] for block_id in sorted(blocks))


def build_hashed_blocks(data: bytes, block_size: int = BLOCK_SIZE) -> bytes:
    """Split a payload into hashed blocks.

    Args:
        data: Payload to split
        block_size: Maximum data bytes per block

    Returns:
        Block sequence including the zero-size terminator
    """
    if block_size < 1:
        raise ValueError("block size must be positive")

    parts = []
    block_id = 0
    for offset in range(0, len(data), block_size):
        chunk = data[offset : offset + block_size]
        parts.append(_BLOCK_HEADER.pack(block_id, hashlib.sha256(chunk).digest(), len(chunk)))
        parts.append(chunk)
        block_id += 1

    parts.append(_BLOCK_HEADER.pack(block_id, _ZERO_HASH, 0))
    logger.debug("Built %d payload blocks", block_id)
    return b"".join(parts)
