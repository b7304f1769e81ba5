"""Zeroizable byte buffers for key material.

Python offers no guarantee that freed memory is wiped, but keys held in a
mutable buffer can at least be overwritten as soon as they are no longer
needed. Every derived key in tresor is returned as SecureBytes.
"""

from __future__ import annotations

import hmac
from types import TracebackType


class SecureBytes:
    """Mutable byte buffer that can be explicitly zeroized.

    Example:
        with derive_composite_key("secret") as key:
            use(key.data)
        # key is zeroized here
    """

    __slots__ = ("_buffer", "_zeroized")

    def __init__(self, data: bytes | bytearray) -> None:
        self._buffer = bytearray(data)
        self._zeroized = False

    @property
    def data(self) -> bytes:
        """Return an immutable copy of the buffer contents.

        Raises:
            ValueError: If the buffer has already been zeroized
        """
        if self._zeroized:
            raise ValueError("SecureBytes has been zeroized")
        return bytes(self._buffer)

    @property
    def is_zeroized(self) -> bool:
        return self._zeroized

    def zeroize(self) -> None:
        """Overwrite the buffer with zeros."""
        for i in range(len(self._buffer)):
            self._buffer[i] = 0
        self._zeroized = True

    def __len__(self) -> int:
        return len(self._buffer)

    def __enter__(self) -> SecureBytes:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.zeroize()

    def __repr__(self) -> str:
        # Never expose contents
        state = "zeroized" if self._zeroized else f"{len(self._buffer)} bytes"
        return f"SecureBytes(<{state}>)"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SecureBytes):
            if self._zeroized or other._zeroized:
                return False
            return hmac.compare_digest(self._buffer, other._buffer)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]
