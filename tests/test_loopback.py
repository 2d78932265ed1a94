"""Loopback round trip: replay() sends, the receive thread decodes."""

import socket
import threading
import time

import pytest

import wire
from lwadvert.capture import CapturedDatagram
from lwadvert.listener import AdvertisementListener, _listener_thread, make_multicast_socket
from lwadvert.replay import make_sender_socket, replay


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def receiver():
    """A listener thread on an ephemeral loopback port; yields (listener, port)."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    listener = AdvertisementListener()
    stop_event = threading.Event()
    thread = threading.Thread(
        target=_listener_thread,
        args=(sock, listener.handle_datagram, stop_event, 65535),
        daemon=True,
    )
    thread.start()
    yield listener, sock.getsockname()[1]
    stop_event.set()
    thread.join(timeout=2)
    sock.close()


class TestRoundTrip:
    def test_replayed_datagrams_decoded(self, receiver):
        listener, port = receiver
        items = [
            CapturedDatagram(wire.scenario_a(), None, 1),
            CapturedDatagram(wire.scenario_a()[:-1], None, 2),
            CapturedDatagram(wire.scenario_b(), None, 3),
        ]
        sender = make_sender_socket()
        try:
            assert replay(sender, items, "127.0.0.1", port, rate_hz=200.0) == 3
        finally:
            sender.close()

        assert _wait_for(lambda: listener.metrics.received == 3)
        assert listener.metrics.decoded == 2
        assert listener.metrics.failed == 1
        names = sorted(adv.node_name for adv, _ in listener.table.snapshot())
        assert names == ["Rack 3 Node", "Studio A Mixer"]

    def test_thread_stops_on_event(self):
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.bind(("127.0.0.1", 0))
        stop_event = threading.Event()
        thread = threading.Thread(
            target=_listener_thread, args=(sock, lambda d, a: None, stop_event, 4096)
        )
        thread.start()
        stop_event.set()
        thread.join(timeout=2)
        sock.close()
        assert not thread.is_alive()


class TestMulticastSocket:
    def test_join_on_loopback(self):
        try:
            sock = make_multicast_socket(port=0, iface="127.0.0.1")
        except OSError as exc:
            pytest.skip(f"multicast join unavailable here: {exc}")
        try:
            assert sock.getsockname()[1] != 0
            assert sock.type == socket.SOCK_DGRAM
        finally:
            sock.close()
