"""
capture — Text capture files of raw advertisement datagrams.

One datagram per line::

  # comment
  192.168.2.21:4001 03000207c7c2a060...
  03000207c7c2a061...

The ``host:port`` prefix is optional.  Blank lines and ``#`` comments are
ignored.  Datagrams are stored byte-for-byte so that decoding a capture gives
exactly what the live listener saw.
"""

import logging
import threading
from typing import Iterator, List, NamedTuple, Optional, TextIO, Tuple

log = logging.getLogger(__name__)


class CapturedDatagram(NamedTuple):
    data: bytes
    sender: Optional[Tuple[str, int]]
    line: int = 0


def format_line(data: bytes, sender: Optional[Tuple[str, int]] = None) -> str:
    if sender is None:
        return data.hex()
    return f"{sender[0]}:{sender[1]} {data.hex()}"


def parse_line(text: str, lineno: int = 0) -> Optional[CapturedDatagram]:
    """Parse one capture line; *None* for blank lines and comments.

    Raises:
        ValueError: if the line is malformed.
    """
    text = text.strip()
    if not text or text.startswith("#"):
        return None
    parts = text.split()
    if len(parts) > 2:
        raise ValueError(f"line {lineno}: expected '[host:port] HEX', got {len(parts)} fields")

    sender: Optional[Tuple[str, int]] = None
    if len(parts) == 2:
        host, sep, port = parts[0].rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(f"line {lineno}: bad sender {parts[0]!r}")
        sender = (host, int(port))
    try:
        data = bytes.fromhex(parts[-1])
    except ValueError as exc:
        raise ValueError(f"line {lineno}: bad hex payload: {exc}") from exc
    return CapturedDatagram(data=data, sender=sender, line=lineno)


def iter_capture(fh: TextIO) -> Iterator[CapturedDatagram]:
    for lineno, text in enumerate(fh, start=1):
        item = parse_line(text, lineno)
        if item is not None:
            yield item


def read_capture(path: str) -> List[CapturedDatagram]:
    """Load every datagram from the capture file at *path*.

    Raises:
        ValueError: if the file cannot be read or a line is malformed.
    """
    try:
        with open(path, "r", encoding="ascii") as fh:
            items = list(iter_capture(fh))
    except (OSError, UnicodeDecodeError) as exc:
        raise ValueError(f"Cannot read capture file {path!r}: {exc}") from exc
    log.info("Loaded %d datagram(s) from %s", len(items), path)
    return items


class CaptureWriter:
    """Appends datagrams to a capture file; safe to call from the receive thread."""

    def __init__(self, path: str) -> None:
        self.path = path
        try:
            self._fh = open(path, "a", encoding="ascii")
        except OSError as exc:
            raise ValueError(f"Cannot open capture file {path!r}: {exc}") from exc
        self._lock = threading.Lock()
        self.count = 0

    def write(self, data: bytes, sender: Optional[Tuple[str, int]] = None) -> None:
        with self._lock:
            self._fh.write(format_line(data, sender) + "\n")
            self._fh.flush()
            self.count += 1

    def close(self) -> None:
        with self._lock:
            self._fh.close()

    def __enter__(self) -> "CaptureWriter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
