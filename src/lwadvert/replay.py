"""
replay — Re-send captured advertisement datagrams onto the multicast group.

CLI entry point: ``lwadvert-replay``

Usage::

    lwadvert-replay lw.cap [--group 239.192.255.3] [--port 4001] \\
                    [--rate-hz 1.0] [--loop] [--ttl 1]

Datagrams are sent byte-for-byte as captured, so a listener on another host
(or ``lwadvert-listen`` on this one) sees exactly the original traffic.
"""

import argparse
import logging
import socket
import time
from typing import Sequence

from lwadvert.capture import CapturedDatagram, read_capture
from lwadvert.listener import MULTICAST_GROUP, MULTICAST_PORT

log = logging.getLogger(__name__)


def make_sender_socket(ttl: int = 1) -> socket.socket:
    """Return a UDP socket for sending to a multicast group with *ttl* hops."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, ttl)
    return sock


def replay(
    sock: socket.socket,
    items: Sequence[CapturedDatagram],
    group: str,
    port: int,
    rate_hz: float,
) -> int:
    """Send *items* once at *rate_hz*; return the number of datagrams sent."""
    interval = 1.0 / rate_hz
    sent = 0
    for item in items:
        t0 = time.monotonic()
        sock.sendto(item.data, (group, port))
        sent += 1
        log.debug("sent line %d (%d bytes) to %s:%d", item.line, len(item.data), group, port)
        sleep_time = interval - (time.monotonic() - t0)
        if sleep_time > 0:
            time.sleep(sleep_time)
    return sent


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="lwadvert-replay",
        description="Replay a capture of Livewire advertisements onto the multicast group.",
    )
    p.add_argument("capture", help="Capture file written by lwadvert-listen --capture")
    p.add_argument("--group",     default=MULTICAST_GROUP,
                   help=f"Destination multicast group (default: {MULTICAST_GROUP})")
    p.add_argument("--port",      type=int, default=MULTICAST_PORT,
                   help=f"Destination UDP port (default: {MULTICAST_PORT})")
    p.add_argument("--rate-hz",   type=float, default=1.0,
                   help="Datagrams per second (default: 1.0)")
    p.add_argument("--loop",      action="store_true",
                   help="Repeat the capture until interrupted")
    p.add_argument("--ttl",       type=int, default=1,
                   help="Multicast TTL (default: 1)")
    p.add_argument("--log-level", default="INFO",
                   help="Logging level (default: INFO)")
    return p


def main() -> None:
    args = build_parser().parse_args()
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
    if args.rate_hz <= 0:
        raise SystemExit("--rate-hz must be positive")

    try:
        items = read_capture(args.capture)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    if not items:
        raise SystemExit(f"No datagrams in {args.capture!r}")

    sock = make_sender_socket(args.ttl)
    total = 0
    try:
        while True:
            total += replay(sock, items, args.group, args.port, args.rate_hz)
            if not args.loop:
                break
    except KeyboardInterrupt:
        log.info("Replay stopped.")
    finally:
        sock.close()
    log.info("Replayed %d datagram(s) to %s:%d", total, args.group, args.port)


if __name__ == "__main__":
    main()
