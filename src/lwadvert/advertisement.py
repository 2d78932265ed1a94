"""
advertisement — Decode one advertisement datagram.

:func:`decode` is the only entry point the listener and tools need.  It is a
pure function of its input: every call builds its own cursor, diagnostics
and records, so datagrams can be decoded on any number of threads.

Message-level states (traced on ``lwadvert.trace``)::

  AWAITING_HEADER -> IN_NEST -> IN_NODE_SECTION | IN_CHANNEL_SECTION ... -> COMPLETE
                                                                    \\-> FAILED(reason)

Types 1 and 2 are decoded strictly: the first failure aborts the datagram.
The layout of types 3 and 4 has not been worked out; for those, decoding
stops at the first top-level phrase that is not understood and the rest of
the datagram is left unread (see :attr:`Advertisement.unconsumed`).  A
datagram that ends inside a phrase is :class:`~lwadvert.errors.Truncated`
whatever its type.
"""

import logging
from typing import Optional, Tuple

from lwadvert.cursor import ByteCursor
from lwadvert.diagnostics import Diagnostics
from lwadvert.errors import DecodeError, UnknownDataType, UnknownOpcode
from lwadvert.header import read_header
from lwadvert.model import Advertisement
from lwadvert.phrase import read_phrase
from lwadvert.sections import (
    INDI,
    int_field,
    is_channel_marker,
    parse_channel_section,
    parse_nest,
    parse_node_section,
)

log = logging.getLogger(__name__)


def decode(data: bytes, sender: Optional[Tuple[str, int]] = None) -> Advertisement:
    """Decode one raw datagram.

    Args:
        data:   The datagram payload exactly as received.
        sender: Optional ``(host, port)`` of the sender, kept on the result
                and used to label diagnostics.

    Returns:
        The fully decoded :class:`Advertisement`.

    Raises:
        DecodeError: (one of its subclasses) on the first failure.  No
            partially decoded advertisement is ever returned.
    """
    diag = Diagnostics(f"{sender[0]}:{sender[1]}" if sender else None)
    cursor = ByteCursor(data)
    try:
        header = read_header(cursor, diag)
        nest = parse_nest(cursor, diag)
        adv = Advertisement(
            header=header,
            protocol_version=nest.protocol_version,
            advertisement_type=nest.advertisement_type,
            declared_length=nest.declared_length,
            nest_extras=nest.extras,
            sender=sender,
        )
        _read_sections(cursor, adv, diag)
    except DecodeError as exc:
        diag.state(f"FAILED({type(exc).__name__}: {exc})")
        raise
    adv.warnings = list(diag.warnings)
    diag.state("COMPLETE")
    return adv


def _read_sections(cursor: ByteCursor, adv: Advertisement, diag: Diagnostics) -> None:
    strict = adv.is_known_type
    while not cursor.at_end():
        start = cursor.position
        try:
            phrase = read_phrase(cursor, diag)
        except UnknownDataType as exc:
            if strict:
                raise
            _leave_unread(adv, len(cursor) - start, exc)
            return

        if phrase.opcode == INDI:
            parse_node_section(int_field(phrase), cursor, adv, diag)
        elif is_channel_marker(phrase.opcode):
            adv.channels.append(parse_channel_section(phrase, cursor, diag))
        elif strict:
            raise UnknownOpcode(phrase.opcode, "top-level")
        else:
            _leave_unread(adv, len(cursor) - start, f"opcode {phrase.opcode!r}")
            return


def _leave_unread(adv: Advertisement, nbytes: int, reason) -> None:
    adv.unconsumed = nbytes
    log.debug(
        "type %d advertisement: %d trailing byte(s) left unread (%s)",
        adv.advertisement_type, nbytes, reason,
    )
