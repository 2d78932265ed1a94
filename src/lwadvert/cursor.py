"""
cursor — Forward-only, bounds-checked reader over one datagram.

A :class:`ByteCursor` is created per decode call and passed explicitly to
every parsing function; there is no shared parse position.
"""

import struct

from lwadvert.errors import Truncated


class ByteCursor:
    """Sequential reader over an immutable byte buffer.

    The position only ever moves forward and never exceeds the buffer
    length.  A failed read leaves the position untouched.
    """

    __slots__ = ("_data", "_pos")

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._pos = 0

    @property
    def position(self) -> int:
        return self._pos

    def __len__(self) -> int:
        return len(self._data)

    def remaining(self) -> int:
        return len(self._data) - self._pos

    def at_end(self) -> bool:
        return self._pos == len(self._data)

    def read_exact(self, n: int) -> bytes:
        """Return the next *n* bytes and advance past them.

        Raises:
            Truncated: if fewer than *n* bytes remain.
            ValueError: if *n* is negative.
        """
        if n < 0:
            raise ValueError(f"cannot read a negative number of bytes ({n})")
        if n > self.remaining():
            raise Truncated(n, self.remaining())
        chunk = self._data[self._pos:self._pos + n]
        self._pos += n
        return chunk

    # Big-endian helpers used throughout the wire format.

    def read_u8(self) -> int:
        return self.read_exact(1)[0]

    def read_u16(self) -> int:
        return struct.unpack(">H", self.read_exact(2))[0]

    def read_u32(self) -> int:
        return struct.unpack(">I", self.read_exact(4))[0]
