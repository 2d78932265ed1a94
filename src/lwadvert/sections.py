"""
sections — Parsers for the nest, node and channel sections.

After the 16-byte header a datagram is a run of phrases grouped into
sections::

  NEST  PVER ADVT [SRCC SEQH ...] TERM       nest section, any field order
  INDI <n>  advv atrn inip udpc hwid nums    node section, exactly n phrases
  S001      INDI <n>  psid psnm fsid ...     channel section, exactly n phrases
  S002      INDI <n>  ...

A channel section opens with a marker whose opcode is one letter followed by
three digits; the digits are the channel's ordinal.  Each parser knows the
exact set of opcodes allowed in its section and raises
:class:`~lwadvert.errors.UnknownOpcode` for anything else.  Opcodes that are
known to appear but whose meaning is not understood are kept verbatim in an
``extras`` mapping.
"""

import re
from typing import Callable, Dict, Optional

from lwadvert.cursor import ByteCursor
from lwadvert.diagnostics import Diagnostics
from lwadvert.errors import InvalidAdvertisementType, ProtocolViolation, UnknownOpcode
from lwadvert.model import ADVERTISEMENT_TYPES, Advertisement, Channel, NestSection
from lwadvert.phrase import (
    TYPE_QUAD,
    Operand,
    Phrase,
    as_ipv4,
    as_tag,
    as_u32,
    integer_operand,
    read_phrase,
)

# Structural opcodes
NEST = "NEST"
TERM = "TERM"
INDI = "INDI"

# Nest section
PVER = "PVER"   # protocol version
ADVT = "ADVT"   # advertisement type
NEST_EXTRAS = frozenset({"SRCC", "SEQH"})  # source count / sequence hints

# Node section
SEQUENCE = "advv"
NODE_NAME = "atrn"
NODE_ADDRESS = "inip"
UDP_PORT = "udpc"
HARDWARE_ID = "hwid"
SOURCE_COUNT = "nums"
NODE_EXTRAS = frozenset({"rsvd"})

# Channel section
CHANNEL_ID = "psid"
CHANNEL_NAME = "psnm"
FROM_SOURCE = "fsid"
BACKFEED = "bsid"
SHAREABLE = "shbl"
ALT_CHANNEL_ID = "lsid"
STREAM_TYPE = "styp"
CHANNEL_EXTRAS = frozenset({ALT_CHANNEL_ID, STREAM_TYPE, "fsty", "bsty", "pscf", "rsvd"})

_CHANNEL_MARKER = re.compile(r"^[A-Za-z][0-9]{3}$")

# What a 4-byte (type 0x01) operand means for a given opcode.  Anything not
# listed is an IPv4 address.
_QUAD_INTERPRETERS: Dict[str, Callable[[bytes], Operand]] = {
    CHANNEL_ID: as_u32,
    SEQUENCE: as_u32,
    ALT_CHANNEL_ID: as_u32,
    STREAM_TYPE: as_tag,
}


def interpret_quad(phrase: Phrase) -> Operand:
    """Operand of *phrase*, with 4-byte operands interpreted by opcode."""
    if phrase.data_type != TYPE_QUAD:
        return phrase.operand
    return _QUAD_INTERPRETERS.get(phrase.opcode, as_ipv4)(phrase.operand)  # type: ignore[arg-type]


def is_channel_marker(opcode: str) -> bool:
    return _CHANNEL_MARKER.match(opcode) is not None


# ---------------------------------------------------------------------------
# Typed field access
# ---------------------------------------------------------------------------

def int_field(phrase: Phrase) -> int:
    value = integer_operand(phrase)
    if value is None:
        raise ProtocolViolation(
            f"{phrase.opcode!r} carries type 0x{phrase.data_type:02x}, expected an integer"
        )
    return value


def text_field(phrase: Phrase) -> str:
    if not isinstance(phrase.operand, str):
        raise ProtocolViolation(
            f"{phrase.opcode!r} carries type 0x{phrase.data_type:02x}, expected text"
        )
    return phrase.operand


def address_field(phrase: Phrase) -> str:
    if phrase.data_type != TYPE_QUAD:
        raise ProtocolViolation(
            f"{phrase.opcode!r} carries type 0x{phrase.data_type:02x}, expected an address"
        )
    return as_ipv4(phrase.operand)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Nest section
# ---------------------------------------------------------------------------

def parse_nest(cursor: ByteCursor, diag: Diagnostics) -> NestSection:
    """Consume the nest section, ending with its TERM phrase.

    Raises:
        ProtocolViolation: if the first phrase is not NEST, or TERM arrives
            before both PVER and ADVT.
        InvalidAdvertisementType: if ADVT is outside 1..4.
        UnknownOpcode: for any other opcode.
    """
    first = read_phrase(cursor, diag)
    if first.opcode != NEST:
        raise ProtocolViolation(f"expected {NEST!r} after header, got {first.opcode!r}")
    diag.state("EXPECT_NEST -> READING_FIELDS")

    version: Optional[int] = None
    adv_type: Optional[int] = None
    extras: Dict[str, Operand] = {}
    while True:
        phrase = read_phrase(cursor, diag)
        opcode = phrase.opcode
        if opcode == PVER:
            version = int_field(phrase)
        elif opcode == ADVT:
            adv_type = int_field(phrase)
            if adv_type not in ADVERTISEMENT_TYPES:
                raise InvalidAdvertisementType(adv_type)
        elif opcode == TERM:
            declared_length = int_field(phrase)
            break
        elif opcode in NEST_EXTRAS:
            extras[opcode] = interpret_quad(phrase)
        else:
            raise UnknownOpcode(opcode, "nest")

    if version is None or adv_type is None:
        raise ProtocolViolation(f"{TERM!r} reached before {PVER!r} and {ADVT!r}")
    diag.state("READING_FIELDS -> DONE")
    return NestSection(
        protocol_version=version,
        advertisement_type=adv_type,
        declared_length=declared_length,
        extras=extras,
    )


# ---------------------------------------------------------------------------
# Node section
# ---------------------------------------------------------------------------

def parse_node_section(
    count: int, cursor: ByteCursor, adv: Advertisement, diag: Diagnostics
) -> None:
    """Read exactly *count* node phrases into *adv*."""
    diag.state(f"IN_NODE_SECTION phrases={count}")
    for _ in range(count):
        phrase = read_phrase(cursor, diag)
        opcode = phrase.opcode
        if opcode == SEQUENCE:
            adv.sequence_number = int_field(phrase)
        elif opcode == NODE_NAME:
            adv.node_name = text_field(phrase)
        elif opcode == NODE_ADDRESS:
            adv.node_address = address_field(phrase)
        elif opcode == UDP_PORT:
            adv.udp_port = int_field(phrase)
        elif opcode == HARDWARE_ID:
            adv.hardware_id_suffix = int_field(phrase)
        elif opcode == SOURCE_COUNT:
            adv.declared_source_count = int_field(phrase)
        elif opcode in NODE_EXTRAS:
            adv.node_extras[opcode] = interpret_quad(phrase)
        else:
            raise UnknownOpcode(opcode, "node")


# ---------------------------------------------------------------------------
# Channel section
# ---------------------------------------------------------------------------

def parse_channel_section(
    marker: Phrase, cursor: ByteCursor, diag: Diagnostics
) -> Channel:
    """Read the channel section opened by *marker* (e.g. ``S001``).

    The phrase following the marker must be INDI, giving the exact number of
    phrases in the section.
    """
    channel = Channel(number=int(marker.opcode[1:]), declared_length=int_field(marker))
    head = read_phrase(cursor, diag)
    if head.opcode != INDI:
        raise ProtocolViolation(
            f"channel section {marker.opcode!r} must open with {INDI!r}, got {head.opcode!r}"
        )
    count = int_field(head)
    diag.state(f"IN_CHANNEL_SECTION {marker.opcode} phrases={count}")

    for _ in range(count):
        phrase = read_phrase(cursor, diag)
        opcode = phrase.opcode
        if opcode == CHANNEL_ID:
            channel.livewire_channel = int_field(phrase)
        elif opcode == CHANNEL_NAME:
            channel.presentation_name = text_field(phrase)
        elif opcode == FROM_SOURCE:
            channel.from_source = address_field(phrase)
        elif opcode == BACKFEED:
            channel.backfeed = address_field(phrase)
        elif opcode == SHAREABLE:
            channel.shareable = bool(int_field(phrase))
        elif opcode in CHANNEL_EXTRAS:
            channel.extras[opcode] = interpret_quad(phrase)
        else:
            raise UnknownOpcode(opcode, "channel")
    return channel
