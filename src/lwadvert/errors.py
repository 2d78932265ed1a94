"""
errors — Failure taxonomy for advertisement decoding.

Every hard failure derives from :class:`DecodeError` (itself a
:class:`ValueError`, so callers that already guard datagram handling with
``except ValueError`` keep working).  A failure always aborts the datagram
being decoded and nothing else.

Soft failures, where a protocol assumption does not hold but decoding can
continue, are not exceptions: they are :class:`AssumptionViolation` records
collected by :class:`lwadvert.diagnostics.Diagnostics`.
"""

from typing import NamedTuple


class DecodeError(ValueError):
    """Base class for everything that aborts the decode of one datagram."""


class Truncated(DecodeError):
    """The buffer ran out before a field could be read."""

    def __init__(self, needed: int, remaining: int) -> None:
        super().__init__(
            f"truncated: needed {needed} byte(s), {remaining} remaining"
        )
        self.needed = needed
        self.remaining = remaining


class ProtocolViolation(DecodeError):
    """A structurally required phrase was missing or out of place."""


class InvalidAdvertisementType(DecodeError):
    def __init__(self, value: int) -> None:
        super().__init__(f"advertisement type {value} not in 1..4")
        self.value = value


class UnknownOpcode(DecodeError):
    """An opcode outside the known set for the section being parsed."""

    def __init__(self, opcode: str, section: str) -> None:
        super().__init__(f"unknown opcode {opcode!r} in {section} section")
        self.opcode = opcode
        self.section = section


class UnknownDataType(DecodeError):
    def __init__(self, opcode: str, data_type: int) -> None:
        super().__init__(
            f"unknown data type 0x{data_type:02x} for opcode {opcode!r}"
        )
        self.opcode = opcode
        self.data_type = data_type


class AssumptionViolation(NamedTuple):
    """A protocol assumption that did not hold (reported, not fatal)."""

    field: str
    expected: str
    actual: str

    def __str__(self) -> str:
        return f"{self.field}: expected {self.expected}, got {self.actual}"
