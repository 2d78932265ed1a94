"""
dump — Decode a capture file offline.

CLI entry point: ``lwadvert-decode``

Usage::

    lwadvert-decode lw.cap               # node table + summary
    lwadvert-decode lw.cap --full        # every field of every datagram
    lwadvert-decode lw.cap --trace       # plus the opcode-by-opcode trace
"""

import argparse
import logging
from dataclasses import dataclass
from typing import Iterable, List

from lwadvert.advertisement import decode
from lwadvert.capture import CapturedDatagram, read_capture
from lwadvert.diagnostics import enable_trace
from lwadvert.errors import DecodeError
from lwadvert.model import Advertisement
from lwadvert.table import describe, render_rows

log = logging.getLogger(__name__)


@dataclass
class Summary:
    total: int = 0
    decoded: int = 0
    failed: int = 0
    unsupported: int = 0

    def __str__(self) -> str:
        return (
            f"{self.total} datagram(s): {self.decoded} decoded, "
            f"{self.failed} failed, {self.unsupported} unsupported type"
        )


def decode_all(items: Iterable[CapturedDatagram], summary: Summary) -> List[Advertisement]:
    """Decode every captured datagram, skipping (and counting) failures."""
    decoded = []
    for item in items:
        summary.total += 1
        try:
            adv = decode(item.data, item.sender)
        except DecodeError as exc:
            log.warning("line %d: %s: %s", item.line, type(exc).__name__, exc)
            summary.failed += 1
            continue
        summary.decoded += 1
        if not adv.is_known_type:
            summary.unsupported += 1
        decoded.append(adv)
    return decoded


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="lwadvert-decode",
        description="Decode Livewire advertisements from a capture file.",
    )
    p.add_argument("capture", help="Capture file written by lwadvert-listen --capture")
    p.add_argument("--full",      action="store_true",
                   help="Print every decoded field instead of the node table")
    p.add_argument("--trace",     action="store_true",
                   help="Log every decoded phrase (opcode-by-opcode trace)")
    p.add_argument("--log-level", default="WARNING",
                   help="Logging level (default: WARNING)")
    return p


def main() -> None:
    args = build_parser().parse_args()
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
    enable_trace(args.trace)

    try:
        items = read_capture(args.capture)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    summary = Summary()
    advertisements = decode_all(items, summary)
    if args.full:
        for adv in advertisements:
            print(describe(adv))
    else:
        print(render_rows(advertisements))
    print(summary)


if __name__ == "__main__":
    main()
