"""
phrase — Reader for the protocol's atomic ``[opcode][type][operand]`` unit.

Wire layout of one phrase (big-endian)::

  Offset  Size  Field
  ------  ----  -----
   0       4    opcode    — four-character tag, may embed digits ("S001")
   4       1    data type — selects the operand shape below
   5       n    operand

  Type  Operand                 Value returned
  ----  ----------------------  --------------------------------------
  0x00  1 byte                  int (u8)
  0x01  4 bytes                 raw bytes, interpreted by the caller
  0x03  u16 length N + N bytes  str, cut at the first NUL
  0x06  2 bytes                 int (u16)
  0x07  1 byte                  int (u8)
  0x08  2 bytes                 int (u16)
  0x09  8 bytes                 raw bytes, expected all-zero

The reader knows nothing about individual opcodes.  What a 4-byte (0x01)
operand means depends on which opcode carries it, so that decision is left
to the section parsers; :func:`as_u32`, :func:`as_ipv4` and :func:`as_tag`
are the available interpretations.
"""

import ipaddress
import struct
from typing import NamedTuple, Optional, Union

from lwadvert.cursor import ByteCursor
from lwadvert.diagnostics import Diagnostics
from lwadvert.errors import UnknownDataType

OPCODE_LEN: int = 4

TYPE_U8: int = 0x00
TYPE_QUAD: int = 0x01
TYPE_TEXT: int = 0x03
TYPE_U16: int = 0x06
TYPE_U8_ALT: int = 0x07
TYPE_U16_ALT: int = 0x08
TYPE_ZERO_BLOCK: int = 0x09

_ZERO_BLOCK_LEN: int = 8

Operand = Union[int, str, bytes]


class Phrase(NamedTuple):
    """One decoded phrase."""

    opcode: str         # 4 characters, latin-1
    data_type: int      # type tag byte
    operand: Operand    # see module table
    size: int = 0       # bytes consumed after the opcode (tag + operand)


def decode_text(raw: bytes) -> str:
    """Decode a text operand, discarding everything from the first NUL on.

    Some senders leave stale bytes after the terminator inside the declared
    length; those are never surfaced.
    """
    end = raw.find(b"\x00")
    if end != -1:
        raw = raw[:end]
    return raw.decode("utf-8", errors="replace")


def read_phrase(cursor: ByteCursor, diag: Optional[Diagnostics] = None) -> Phrase:
    """Read one phrase at the cursor's position.

    Advances the cursor by ``4 + 1 + operand length``.

    Raises:
        Truncated: if the buffer ends inside the phrase.
        UnknownDataType: for a type tag outside the table.
    """
    offset = cursor.position
    opcode = cursor.read_exact(OPCODE_LEN).decode("latin-1")
    data_type = cursor.read_u8()

    if data_type in (TYPE_U8, TYPE_U8_ALT):
        operand: Operand = cursor.read_u8()
    elif data_type in (TYPE_U16, TYPE_U16_ALT):
        operand = cursor.read_u16()
    elif data_type == TYPE_QUAD:
        operand = cursor.read_exact(4)
    elif data_type == TYPE_TEXT:
        length = cursor.read_u16()
        operand = decode_text(cursor.read_exact(length))
    elif data_type == TYPE_ZERO_BLOCK:
        operand = cursor.read_exact(_ZERO_BLOCK_LEN)
        if diag is not None and operand != bytes(_ZERO_BLOCK_LEN):
            diag.violation(f"{opcode} zero block", "all-zero", operand.hex())
    else:
        raise UnknownDataType(opcode, data_type)

    phrase = Phrase(opcode, data_type, operand, cursor.position - offset - OPCODE_LEN)
    if diag is not None:
        diag.phrase(offset, opcode, data_type, operand)
    return phrase


# ---------------------------------------------------------------------------
# Interpretations of a 4-byte (0x01) operand
# ---------------------------------------------------------------------------

def as_u32(raw: bytes) -> int:
    return struct.unpack(">I", raw)[0]


def as_ipv4(raw: bytes) -> str:
    """Dotted-quad text for a 4-byte address."""
    return str(ipaddress.IPv4Address(raw))


def as_tag(raw: bytes) -> str:
    """Four-character text tag (trailing NULs / spaces dropped)."""
    return decode_text(raw).rstrip()


def integer_operand(phrase: Phrase) -> Optional[int]:
    """The operand as an int when the phrase carries an integer type, else *None*."""
    if phrase.data_type in (TYPE_U8, TYPE_U8_ALT, TYPE_U16, TYPE_U16_ALT):
        return phrase.operand  # type: ignore[return-value]
    if phrase.data_type == TYPE_QUAD:
        return as_u32(phrase.operand)  # type: ignore[arg-type]
    return None
