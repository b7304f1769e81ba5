"""Gzip stage of the KDBX payload."""

from __future__ import annotations

import gzip
import zlib

from tresor.exceptions import CorruptedDataError


def compress(data: bytes) -> bytes:
    """Gzip data.

    The header timestamp is fixed at zero so the same input always
    produces the same bytes.
    """
    return gzip.compress(data, compresslevel=6, mtime=0)


def decompress(data: bytes) -> bytes:
    """Gunzip data.

    Raises:
        CorruptedDataError: If data isn't a valid gzip stream
    """
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise CorruptedDataError(f"gzip: {e}") from e
