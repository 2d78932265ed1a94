"""
model — Decoded records: one :class:`Advertisement` per datagram.

Records are built fresh by :func:`lwadvert.advertisement.decode` and only
handed out once the whole datagram decoded successfully.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from lwadvert.errors import AssumptionViolation
from lwadvert.header import Header
from lwadvert.phrase import Operand

# Advertisement types whose structure is understood end to end.
KNOWN_TYPES = (1, 2)
ADVERTISEMENT_TYPES = (1, 2, 3, 4)


@dataclass
class Channel:
    """One audio source offered by a node."""

    number: int                              # digits of the section opcode
    livewire_channel: Optional[int] = None   # psid
    presentation_name: Optional[str] = None  # psnm
    from_source: Optional[str] = None        # fsid, multicast address
    backfeed: Optional[str] = None           # bsid
    shareable: bool = False                  # shbl
    declared_length: Optional[int] = None     # marker operand, not enforced
    # Fields whose meaning is not known yet, kept verbatim.
    extras: Dict[str, Operand] = field(default_factory=dict)


@dataclass
class NestSection:
    protocol_version: int
    advertisement_type: int
    declared_length: Optional[int] = None  # TERM operand, not enforced
    extras: Dict[str, Operand] = field(default_factory=dict)


@dataclass
class Advertisement:
    header: Header
    protocol_version: int
    advertisement_type: int
    declared_length: Optional[int] = None  # from the nest TERM
    sequence_number: Optional[int] = None
    node_name: Optional[str] = None
    node_address: Optional[str] = None
    udp_port: Optional[int] = None
    hardware_id_suffix: Optional[int] = None
    declared_source_count: Optional[int] = None
    channels: List[Channel] = field(default_factory=list)
    nest_extras: Dict[str, Operand] = field(default_factory=dict)
    node_extras: Dict[str, Operand] = field(default_factory=dict)
    warnings: List[AssumptionViolation] = field(default_factory=list)
    unconsumed: int = 0
    sender: Optional[Tuple[str, int]] = None

    @property
    def counter(self) -> int:
        return self.header.counter

    @property
    def is_known_type(self) -> bool:
        """True for advertisement types whose layout is fully understood."""
        return self.advertisement_type in KNOWN_TYPES

    def node_key(self) -> str:
        """Identity used to group advertisements from the same node."""
        if self.node_address:
            return self.node_address
        if self.sender:
            return self.sender[0]
        return self.node_name or "?"
