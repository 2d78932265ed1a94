"""
header — Fixed 16-byte preamble of every advertisement datagram.

Wire layout (big-endian)::

  Offset  Size  Field
  ------  ----  -----
   0       4    magic    — 03 00 02 07
   4       4    counter  — increments per message from one sender (uint32)
   8       8    padding  — observed all-zero

A wrong magic or non-zero padding is reported as an assumption violation and
decoding carries on; the exact meaning of these fields is not confirmed.
"""

from typing import NamedTuple

from lwadvert.cursor import ByteCursor
from lwadvert.diagnostics import Diagnostics

HEADER_MAGIC: bytes = bytes.fromhex("03000207")
HEADER_LEN: int = 16
_PADDING_LEN: int = 8


class Header(NamedTuple):
    magic: bytes    # 4 bytes
    counter: int    # uint32, recorded only
    padding: bytes  # 8 bytes


def read_header(cursor: ByteCursor, diag: Diagnostics) -> Header:
    """Read and check the 16-byte header.

    Raises:
        Truncated: if fewer than 16 bytes are available.
    """
    raw = cursor.read_exact(HEADER_LEN)
    magic, counter_raw, padding = raw[:4], raw[4:8], raw[8:]
    header = Header(
        magic=magic,
        counter=int.from_bytes(counter_raw, "big"),
        padding=padding,
    )
    if magic != HEADER_MAGIC:
        diag.violation("header magic", HEADER_MAGIC.hex(), magic.hex())
    if padding != bytes(_PADDING_LEN):
        diag.violation("header padding", "all-zero", padding.hex())
    diag.state("AWAITING_HEADER -> IN_NEST")
    return header
