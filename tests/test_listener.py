"""Tests for the shared UDP listener."""

import asyncio
import logging
import socket
from types import SimpleNamespace
from typing import List, Tuple

import pytest
from liblifxlan import PacketHandler, SendError, TransportError, UDPListener, get_network_interfaces
from liblifxlan.udp_listener import _ListenerProtocol

ADDRESS = ("192.168.1.20", 56700)


class RecordingHandler(PacketHandler):
    """Records every datagram and optionally consumes it."""

    def __init__(self, consume: bool = False) -> None:
        self.consume = consume
        self.received: List[Tuple[bytes, Tuple[str, int]]] = []
        self.event = asyncio.Event()

    async def handle_packet(self, data: bytes, source_address: Tuple[str, int]) -> bool:
        self.received.append((data, source_address))
        self.event.set()
        return self.consume


class FailingHandler(PacketHandler):
    """Raises for every datagram."""

    def __init__(self) -> None:
        self.calls = 0

    async def handle_packet(self, data: bytes, source_address: Tuple[str, int]) -> bool:
        self.calls += 1
        raise RuntimeError("handler bug")


def _addr(family, address, broadcast):
    return SimpleNamespace(
        family=family, address=address, netmask=None, broadcast=broadcast, ptp=None
    )


class TestGetNetworkInterfaces:
    """Tests for interface enumeration."""

    def test_filters_addresses(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that only non-loopback IPv4 addresses with a broadcast are kept."""
        fake = {
            "lo": [_addr(socket.AF_INET, "127.0.0.1", "127.255.255.255")],
            "eth0": [
                _addr(socket.AF_INET, "192.168.1.10", "192.168.1.255"),
                _addr(socket.AF_INET6, "fe80::1", None),
            ],
            "tun0": [_addr(socket.AF_INET, "10.8.0.2", None)],
        }
        monkeypatch.setattr("liblifxlan.udp_listener.psutil.net_if_addrs", lambda: fake)

        interfaces = get_network_interfaces()

        assert len(interfaces) == 1
        assert interfaces[0].name == "eth0"
        assert interfaces[0].ip_address == "192.168.1.10"
        assert interfaces[0].broadcast_address == "192.168.1.255"


class TestReceiveLoop:
    """Tests for datagram dispatch in the receive task."""

    @pytest.mark.asyncio
    async def test_handler_errors_do_not_stop_loop(self) -> None:
        """Test that a raising handler is logged and later datagrams still arrive."""
        listener = UDPListener()
        failing = FailingHandler()
        recording = RecordingHandler()
        listener.add_handler(failing)
        listener.add_handler(recording)

        listener._queue.put_nowait((b"first", ADDRESS))
        listener._queue.put_nowait((b"second", ADDRESS))
        listener._queue.put_nowait(None)
        await listener._receive_loop()

        assert failing.calls == 2
        assert [data for data, _addr in recording.received] == [b"first", b"second"]

    @pytest.mark.asyncio
    async def test_zero_length_skipped(self) -> None:
        """Test that empty datagrams never reach handlers."""
        listener = UDPListener()
        recording = RecordingHandler()
        listener.add_handler(recording)

        listener._queue.put_nowait((b"", ADDRESS))
        listener._queue.put_nowait((b"data", ADDRESS))
        listener._queue.put_nowait(None)
        await listener._receive_loop()

        assert recording.received == [(b"data", ADDRESS)]

    @pytest.mark.asyncio
    async def test_consumed_datagram_stops_dispatch(self) -> None:
        """Test that a handler returning True hides the datagram from later ones."""
        listener = UDPListener()
        first = RecordingHandler(consume=True)
        second = RecordingHandler()
        listener.add_handler(first)
        listener.add_handler(second)

        listener._queue.put_nowait((b"data", ADDRESS))
        listener._queue.put_nowait(None)
        await listener._receive_loop()

        assert len(first.received) == 1
        assert second.received == []

    @pytest.mark.asyncio
    async def test_socket_failure_ends_loop(self) -> None:
        """Test that a lost socket ends the receive task with TransportError."""
        listener = UDPListener()

        listener._on_connection_lost(OSError("network down"))

        with pytest.raises(TransportError, match="network down"):
            await listener._receive_loop()
        assert not listener.is_running

    @pytest.mark.asyncio
    async def test_full_queue_drops_datagrams(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that datagrams beyond the queue size are dropped and shutdown still works."""
        listener = UDPListener(queue_size=2)
        recording = RecordingHandler()
        listener.add_handler(recording)
        protocol = _ListenerProtocol(listener)

        with caplog.at_level(logging.DEBUG, logger="lifxlan.listener"):
            for data in (b"first", b"second", b"third"):
                protocol.datagram_received(data, ADDRESS)
        assert listener._queue.qsize() == 2
        assert "Receive queue full" in caplog.text

        # The stop marker displaces the oldest queued datagram
        listener._on_connection_lost(OSError("network down"))
        with pytest.raises(TransportError):
            await listener._receive_loop()
        assert recording.received == [(b"second", ADDRESS)]

    @pytest.mark.asyncio
    async def test_handler_registration(self) -> None:
        """Test adding and removing handlers."""
        listener = UDPListener()
        handler = RecordingHandler()

        listener.add_handler(handler)
        listener.add_handler(handler)
        assert listener._handlers == [handler]
        assert listener.remove_handler(handler) is True
        assert listener.remove_handler(handler) is False


class TestUDPListener:
    """Tests using a real socket on the loopback interface."""

    @pytest.mark.asyncio
    async def test_send_requires_running(self) -> None:
        """Test that sending before start raises RuntimeError."""
        listener = UDPListener()
        with pytest.raises(RuntimeError, match="not running"):
            await listener.send_to(b"data", "127.0.0.1")

    @pytest.mark.asyncio
    async def test_loopback_round_trip(self) -> None:
        """Test that a datagram sent to the listener reaches its handler."""
        handler = RecordingHandler()

        async with UDPListener(port=0, host="127.0.0.1") as listener:
            assert listener.is_running
            assert listener.port != 0
            listener.add_handler(handler)

            await listener.send_to(b"hello", "127.0.0.1", listener.port)
            await asyncio.wait_for(handler.event.wait(), timeout=2.0)

        assert handler.received[0][0] == b"hello"
        assert not listener.is_running

    @pytest.mark.asyncio
    async def test_oversized_send_raises(self) -> None:
        """Test that an OS rejection of a too-large datagram raises SendError."""
        async with UDPListener(port=0, host="127.0.0.1") as listener:
            with pytest.raises(SendError) as excinfo:
                await listener.send_to(b"x" * 70000, "127.0.0.1", listener.port)

            assert excinfo.value.address == ("127.0.0.1", listener.port)
            assert isinstance(excinfo.value.__cause__, OSError)
            assert listener.is_running

    @pytest.mark.asyncio
    async def test_unroutable_send_raises(self) -> None:
        """Test that a destination the bound address cannot reach raises SendError."""
        async with UDPListener(port=0, host="127.0.0.1") as listener:
            with pytest.raises(SendError, match="8.8.8.8"):
                await listener.send_to(b"data", "8.8.8.8", 56700)

    @pytest.mark.asyncio
    async def test_stop_reports_socket_failure(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that stop collects and logs the error a failed receive task ended with."""
        listener = UDPListener(port=0, host="127.0.0.1")
        await listener.start()
        task = listener._receive_task

        listener._on_connection_lost(OSError("network down"))
        await asyncio.wait([task])

        with caplog.at_level(logging.WARNING, logger="lifxlan.listener"):
            await listener.stop()

        assert isinstance(task.exception(), TransportError)
        assert "Receive task ended with" in caplog.text
        assert "network down" in caplog.text

    @pytest.mark.asyncio
    async def test_start_twice(self) -> None:
        """Test that starting a running listener raises RuntimeError."""
        async with UDPListener(port=0, host="127.0.0.1") as listener:
            with pytest.raises(RuntimeError, match="already running"):
                await listener.start()
