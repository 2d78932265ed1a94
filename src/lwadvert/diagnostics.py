"""
diagnostics — Per-decode sink for warnings and the opcode trace.

Two logging channels are used:

* ``lwadvert.diagnostics`` — assumption violations, at WARNING.
* ``lwadvert.trace`` — one DEBUG line per phrase and per state change.
  It is silent unless switched on (``--trace`` on the command-line tools,
  or :func:`enable_trace`) or the root logger is already at DEBUG.
"""

import logging
from typing import List, Optional

from lwadvert.errors import AssumptionViolation

log = logging.getLogger(__name__)
trace_log = logging.getLogger("lwadvert.trace")


def enable_trace(enabled: bool = True) -> None:
    """Turn the opcode-by-opcode trace on or off, independent of the root level."""
    trace_log.setLevel(logging.DEBUG if enabled else logging.NOTSET)
    if enabled and logging.getLogger().getEffectiveLevel() > logging.DEBUG:
        # The root handler would filter DEBUG records; give the trace its own.
        if not trace_log.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(
                logging.Formatter("%(asctime)s TRACE    %(name)s: %(message)s")
            )
            trace_log.addHandler(handler)
        trace_log.propagate = False
    elif not enabled:
        for handler in list(trace_log.handlers):
            trace_log.removeHandler(handler)
        trace_log.propagate = True


class Diagnostics:
    """Collects :class:`AssumptionViolation` records for one datagram.

    Created by the message assembler and handed to every parser.  The
    collected warnings end up on the decoded advertisement.
    """

    def __init__(self, label: Optional[str] = None) -> None:
        self.label = label or "-"
        self.warnings: List[AssumptionViolation] = []

    def violation(self, field: str, expected: str, actual: str) -> None:
        item = AssumptionViolation(field=field, expected=expected, actual=actual)
        self.warnings.append(item)
        log.warning("ASSUMPTION_VIOLATED src=%s %s", self.label, item)

    def phrase(self, offset: int, opcode: str, data_type: int, value) -> None:
        if trace_log.isEnabledFor(logging.DEBUG):
            trace_log.debug(
                "src=%s @%04d %-4s type=0x%02x value=%r",
                self.label, offset, opcode, data_type, value,
            )

    def state(self, name: str) -> None:
        trace_log.debug("src=%s state=%s", self.label, name)
