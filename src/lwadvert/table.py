"""
table — Concise listing of nodes and the channels they advertise.

Only fully decoded advertisements of types 1 and 2 are shown.  The table
keeps the most recent advertisement per node; type 2 advertisements carry no
channels, so the channel list from the node's last type 1 advertisement is
kept alongside.
"""

import threading
from typing import Dict, Iterable, List, Optional, Tuple

from lwadvert.model import Advertisement, Channel

COLUMNS = ("NODE", "ADDRESS", "CH", "LW CHAN", "NAME", "SOURCE")

Entry = Tuple[Advertisement, List[Channel]]


class NodeTable:
    """Latest advertisement per node (thread-safe)."""

    def __init__(self) -> None:
        self._nodes: Dict[str, Advertisement] = {}
        self._channels: Dict[str, List[Channel]] = {}
        self._lock = threading.Lock()

    def update(self, adv: Advertisement) -> bool:
        """Record *adv*; return *False* if its type is not shown in the table."""
        if not adv.is_known_type:
            return False
        key = adv.node_key()
        with self._lock:
            self._nodes[key] = adv
            if adv.advertisement_type == 1:
                self._channels[key] = list(adv.channels)
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)

    def snapshot(self) -> List[Entry]:
        with self._lock:
            return [
                (self._nodes[k], self._channels.get(k, []))
                for k in sorted(self._nodes)
            ]

    def render(self) -> str:
        return _render(self.snapshot())


def _rows(entries: Iterable[Entry]) -> List[tuple]:
    rows = []
    for adv, channels in entries:
        node = adv.node_name or ""
        address = adv.node_address or ""
        if not channels:
            rows.append((node, address, "", "", "", ""))
            continue
        for ch in channels:
            rows.append((
                node,
                address,
                str(ch.number),
                "" if ch.livewire_channel is None else str(ch.livewire_channel),
                ch.presentation_name or "",
                ch.from_source or "",
            ))
    return rows


def _render(entries: Iterable[Entry]) -> str:
    rows = _rows(entries)
    widths = [len(c) for c in COLUMNS]
    for row in rows:
        widths = [max(w, len(cell)) for w, cell in zip(widths, row)]
    lines = [
        "  ".join(c.ljust(w) for c, w in zip(COLUMNS, widths)).rstrip(),
        "  ".join("-" * w for w in widths),
    ]
    for row in rows:
        lines.append("  ".join(cell.ljust(w) for cell, w in zip(row, widths)).rstrip())
    return "\n".join(lines)


def render_rows(advertisements: Iterable[Advertisement]) -> str:
    """Render *advertisements* as a fixed-width text table, one row per channel."""
    return _render((a, a.channels) for a in advertisements if a.is_known_type)


def describe(adv: Advertisement, sender: Optional[str] = None) -> str:
    """Multi-line dump of every decoded field, for diagnostics."""
    src = sender or (f"{adv.sender[0]}:{adv.sender[1]}" if adv.sender else "-")
    out = [
        f"advertisement from {src}",
        f"  counter={adv.counter} magic={adv.header.magic.hex()} "
        f"version={adv.protocol_version} type={adv.advertisement_type} "
        f"length={adv.declared_length}",
        f"  sequence={adv.sequence_number} name={adv.node_name!r} "
        f"address={adv.node_address} udp_port={adv.udp_port}",
        f"  hwid={adv.hardware_id_suffix} declared_sources={adv.declared_source_count} "
        f"channels={len(adv.channels)} unconsumed={adv.unconsumed}",
    ]
    if adv.nest_extras:
        out.append(f"  nest extras: {adv.nest_extras}")
    if adv.node_extras:
        out.append(f"  node extras: {adv.node_extras}")
    for ch in adv.channels:
        out.append(
            f"  [{ch.number:03d}] lw={ch.livewire_channel} name={ch.presentation_name!r} "
            f"from={ch.from_source} backfeed={ch.backfeed} shareable={ch.shareable}"
        )
        if ch.extras:
            out.append(f"        extras: {ch.extras}")
    for warning in adv.warnings:
        out.append(f"  warning: {warning}")
    return "\n".join(out)
