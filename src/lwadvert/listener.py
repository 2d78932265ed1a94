"""
listener — Multicast receiver: decode advertisements, track nodes, print a table.

CLI entry point: ``lwadvert-listen``

Usage::

    # Join 239.192.255.3:4001 on all interfaces, print the node table every 10 s
    lwadvert-listen

    # Join on one interface, keep a capture of every datagram, trace each phrase
    lwadvert-listen --iface 192.168.2.10 --capture lw.cap --trace

Per-datagram handling
---------------------
Every datagram is decoded independently:

1. Optionally appended verbatim to the capture file.
2. Decoded; on any :class:`~lwadvert.errors.DecodeError` the datagram is
   logged (DECODE_FAILED) and counted, and listening carries on.
3. The header counter is checked against the last one seen from that node
   (SEQUENCE_REWIND on a backwards step).  This is bookkeeping only; the
   advertisement is used either way.
4. Types 1 and 2 update the node table; types 3 and 4 are counted as
   unsupported and left out of it.
"""

import argparse
import logging
import select
import socket
import struct
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from lwadvert.advertisement import decode
from lwadvert.capture import CaptureWriter
from lwadvert.diagnostics import enable_trace
from lwadvert.errors import DecodeError
from lwadvert.model import Advertisement
from lwadvert.table import NodeTable

log = logging.getLogger(__name__)

MULTICAST_GROUP: str = "239.192.255.3"
MULTICAST_PORT: int = 4001
# Advertisements over 1024 bytes have been seen; a short read cannot be recovered.
DEFAULT_BUFFER_SIZE: int = 65535
MIN_BUFFER_SIZE: int = 4096

_COUNTER_MODULUS = 1 << 32


# ---------------------------------------------------------------------------
# Sequence tracker
# ---------------------------------------------------------------------------

class SequenceTracker:
    """Thread-safe record of the last header counter and sequence number per node.

    The decoder itself keeps no history; this is the caller-owned store that
    notices a node restarting or datagrams arriving out of order.
    """

    def __init__(self) -> None:
        self._last: Dict[str, Tuple[int, Optional[int]]] = {}
        self._lock = threading.Lock()

    def observe(self, adv: Advertisement) -> bool:
        """Record *adv*; return *True* if its counter did not move forward.

        The counter is a uint32, so a step of more than half the range
        backwards is taken as a wrap rather than a rewind.
        """
        key = adv.node_key()
        with self._lock:
            previous = self._last.get(key)
            self._last[key] = (adv.counter, adv.sequence_number)
        if previous is None:
            return False
        step = (adv.counter - previous[0]) % _COUNTER_MODULUS
        if step == 0 or step >= _COUNTER_MODULUS // 2:
            log.info(
                "SEQUENCE_REWIND node=%s counter=%d previous=%d sequence=%s",
                key, adv.counter, previous[0], adv.sequence_number,
            )
            return True
        return False

    def last(self, node_key: str) -> Optional[Tuple[int, Optional[int]]]:
        with self._lock:
            return self._last.get(node_key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._last)


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

@dataclass
class Metrics:
    received: int = 0
    decoded: int = 0
    failed: int = 0
    unsupported: int = 0
    rewinds: int = 0
    warnings: int = 0

    def log(self) -> None:
        log.info(
            "METRICS received=%d decoded=%d failed=%d unsupported=%d "
            "rewinds=%d warnings=%d",
            self.received, self.decoded, self.failed, self.unsupported,
            self.rewinds, self.warnings,
        )


@dataclass
class ListenerConfig:
    group: str = MULTICAST_GROUP
    port: int = MULTICAST_PORT
    iface: str = "0.0.0.0"
    buffer_size: int = DEFAULT_BUFFER_SIZE
    capture_path: Optional[str] = None


# ---------------------------------------------------------------------------
# Listener
# ---------------------------------------------------------------------------

class AdvertisementListener:
    """Datagram handling (transport-independent for testability)."""

    def __init__(self, capture: Optional[CaptureWriter] = None) -> None:
        self.capture = capture
        self.tracker = SequenceTracker()
        self.table = NodeTable()
        self.metrics = Metrics()

    def handle_datagram(
        self, data: bytes, sender: Optional[Tuple[str, int]] = None
    ) -> Optional[Advertisement]:
        self.metrics.received += 1
        if self.capture is not None:
            self.capture.write(data, sender)

        try:
            adv = decode(data, sender)
        except DecodeError as exc:
            log.warning(
                "DECODE_FAILED src=%s bytes=%d %s: %s",
                _format_sender(sender), len(data), type(exc).__name__, exc,
            )
            self.metrics.failed += 1
            return None

        self.metrics.decoded += 1
        self.metrics.warnings += len(adv.warnings)
        if self.tracker.observe(adv):
            self.metrics.rewinds += 1
        if not self.table.update(adv):
            log.debug(
                "UNSUPPORTED type=%d src=%s unconsumed=%d",
                adv.advertisement_type, _format_sender(sender), adv.unconsumed,
            )
            self.metrics.unsupported += 1
        else:
            log.debug(
                "ADVERTISEMENT node=%s address=%s type=%d channels=%d",
                adv.node_name, adv.node_address, adv.advertisement_type,
                len(adv.channels),
            )
        return adv


def _format_sender(sender: Optional[Tuple[str, int]]) -> str:
    return f"{sender[0]}:{sender[1]}" if sender else "-"


# ---------------------------------------------------------------------------
# UDP
# ---------------------------------------------------------------------------

def make_multicast_socket(
    group: str = MULTICAST_GROUP,
    port: int = MULTICAST_PORT,
    iface: str = "0.0.0.0",
) -> socket.socket:
    """Return a UDP socket bound to *port* and joined to *group* on *iface*."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind(("", port))
    mreq = struct.pack("4s4s", socket.inet_aton(group), socket.inet_aton(iface))
    sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
    return sock


def _listener_thread(
    sock: socket.socket,
    handler: Callable[[bytes, Tuple[str, int]], object],
    stop_event: threading.Event,
    buffer_size: int,
) -> None:
    while not stop_event.is_set():
        ready, _, _ = select.select([sock], [], [], 0.5)
        if ready:
            try:
                data, addr = sock.recvfrom(buffer_size)
            except OSError as exc:
                if not stop_event.is_set():
                    log.error("recv error: %s", exc)
                continue
            log.debug("datagram from %s:%d (%d bytes)", addr[0], addr[1], len(data))
            handler(data, (addr[0], addr[1]))


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="lwadvert-listen",
        description="Listen for Livewire advertisements and list nodes and channels.",
    )
    p.add_argument("--group",       default=MULTICAST_GROUP,
                   help=f"Multicast group (default: {MULTICAST_GROUP})")
    p.add_argument("--port",        type=int, default=MULTICAST_PORT,
                   help=f"UDP port (default: {MULTICAST_PORT})")
    p.add_argument("--iface",       default="0.0.0.0",
                   help="Local interface address to join on (default: 0.0.0.0, any)")
    p.add_argument("--buffer-size", type=int, default=DEFAULT_BUFFER_SIZE,
                   help=f"Receive buffer size in bytes (default: {DEFAULT_BUFFER_SIZE})")
    p.add_argument("--capture",     default=None,
                   help="Append every received datagram to this capture file")
    p.add_argument("--table-interval", type=int, default=10,
                   help="Seconds between node table printouts, 0 to disable (default: 10)")
    p.add_argument("--metrics-interval", type=int, default=60,
                   help="Seconds between metrics log lines (default: 60)")
    p.add_argument("--trace",       action="store_true",
                   help="Log every decoded phrase (opcode-by-opcode trace)")
    p.add_argument("--log-level",   default="INFO",
                   help="Logging level (default: INFO)")
    return p


def main() -> None:
    args = build_parser().parse_args()
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
    enable_trace(args.trace)

    if args.buffer_size < MIN_BUFFER_SIZE:
        raise SystemExit(f"--buffer-size must be at least {MIN_BUFFER_SIZE}")

    cfg = ListenerConfig(
        group=args.group,
        port=args.port,
        iface=args.iface,
        buffer_size=args.buffer_size,
        capture_path=args.capture,
    )
    try:
        capture = CaptureWriter(cfg.capture_path) if cfg.capture_path else None
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    listener = AdvertisementListener(capture=capture)

    try:
        sock = make_multicast_socket(cfg.group, cfg.port, cfg.iface)
    except OSError as exc:
        raise SystemExit(f"Cannot join {cfg.group}:{cfg.port} on {cfg.iface}: {exc}") from exc
    log.info(
        "Listening for advertisements on %s:%d (iface %s, buffer %d bytes)",
        cfg.group, cfg.port, cfg.iface, cfg.buffer_size,
    )

    stop_event = threading.Event()
    thread = threading.Thread(
        target=_listener_thread,
        args=(sock, listener.handle_datagram, stop_event, cfg.buffer_size),
        daemon=True,
    )
    thread.start()

    try:
        last_metrics = last_table = time.time()
        while True:
            time.sleep(1)
            now = time.time()
            if args.table_interval and now - last_table >= args.table_interval:
                print(listener.table.render(), flush=True)
                last_table = now
            if now - last_metrics >= args.metrics_interval:
                listener.metrics.log()
                last_metrics = now
    except KeyboardInterrupt:
        log.info("Listener stopped.")
        listener.metrics.log()
    finally:
        stop_event.set()
        thread.join(timeout=2)
        sock.close()
        if capture is not None:
            capture.close()


if __name__ == "__main__":
    main()
