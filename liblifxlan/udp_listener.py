"""
Shared UDP endpoint for LIFX traffic.

LIFX devices reply to whatever port a request came from, and broadcast
state changes to port 56700. The UDPListener binds one broadcast-enabled
socket to that port and is used both for sending and for receiving:

- A single receive task reads datagrams and hands them to registered
  PacketHandlers, one datagram at a time
- ``send_to`` sends without waiting for any reply

Local IPv4 interfaces and their broadcast addresses are enumerated with
psutil so discovery can reach every attached network segment.
"""

import asyncio
import ipaddress
import logging
import socket
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Tuple

import psutil

from .exceptions import SendError, TransportError
from .protocol import LIFX_PORT

_LOGGER = logging.getLogger("lifxlan.listener")

# Datagrams waiting for the receive task; later ones are dropped
MAX_QUEUED_DATAGRAMS = 256


@dataclass(frozen=True)
class NetworkInterface:
    """
    A local IPv4 address that can reach a broadcast domain.

    Attributes:
        name: Interface name (e.g. "eth0").
        ip_address: The local address on that interface.
        broadcast_address: Broadcast address of the attached subnet.
    """
    name: str
    ip_address: str
    broadcast_address: str


def get_network_interfaces() -> List[NetworkInterface]:
    """
    List the non-loopback IPv4 interfaces that have a broadcast address.

    Returns:
        One entry per usable interface address.
    """
    interfaces = []
    for name, addresses in psutil.net_if_addrs().items():
        for address in addresses:
            if address.family != socket.AF_INET or not address.broadcast:
                continue
            try:
                if ipaddress.IPv4Address(address.address).is_loopback:
                    continue
            except ValueError:
                continue
            interfaces.append(NetworkInterface(
                name=name,
                ip_address=address.address,
                broadcast_address=address.broadcast,
            ))
    return interfaces


class PacketHandler(ABC):
    """Receives datagrams from a UDPListener."""

    @abstractmethod
    async def handle_packet(
        self,
        data: bytes,
        source_address: Tuple[str, int]
    ) -> bool:
        """
        Handle an incoming datagram.

        Args:
            data: The raw datagram.
            source_address: Tuple of (ip_address, port) of the sender.

        Returns:
            True if the datagram was consumed and later handlers should not
            see it.
        """


class _ListenerProtocol(asyncio.DatagramProtocol):
    """Moves datagrams from the event loop into the listener's queue."""

    def __init__(self, listener: "UDPListener"):
        self._listener = listener

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        try:
            self._listener._queue.put_nowait((data, addr))
        except asyncio.QueueFull:
            _LOGGER.debug("Receive queue full, dropping datagram from %s:%d", *addr)

    def error_received(self, exc: Exception) -> None:
        # Asynchronous ICMP errors from earlier sends; the socket is still usable
        _LOGGER.warning("UDP socket error: %s", exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._listener._on_connection_lost(exc)


class UDPListener:
    """
    Broadcast-enabled UDP socket shared by discovery, refresh and commands.

    Example:
        ```python
        async with UDPListener() as listener:
            listener.add_handler(my_handler)
            await listener.send_to(datagram, "192.168.1.20", LIFX_PORT)
        ```
    """

    def __init__(
        self,
        port: int = LIFX_PORT,
        host: str = "0.0.0.0",
        queue_size: int = MAX_QUEUED_DATAGRAMS
    ):
        """
        Initialize the listener.

        Args:
            port: UDP port to bind (0 picks a free port).
            host: Local address to bind.
            queue_size: Datagrams buffered for the receive task before new
                ones are dropped.
        """
        self._host = host
        self._port = port
        self._queue_size = queue_size
        self._sock: Optional[socket.socket] = None
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._queue: "asyncio.Queue[Optional[Tuple[bytes, Tuple[str, int]]]]" = asyncio.Queue(
            maxsize=queue_size
        )
        self._handlers: List[PacketHandler] = []
        self._interfaces: List[NetworkInterface] = []
        self._receive_task: Optional[asyncio.Task] = None
        self._failure: Optional[Exception] = None

    @property
    def port(self) -> int:
        return self._port

    @property
    def host(self) -> str:
        return self._host

    @property
    def interfaces(self) -> List[NetworkInterface]:
        """Interfaces found when the listener started (or last refreshed)."""
        return list(self._interfaces)

    @property
    def is_running(self) -> bool:
        return self._transport is not None and self._failure is None

    def refresh_interfaces(self) -> List[NetworkInterface]:
        """Re-enumerate local interfaces, e.g. after a network change."""
        self._interfaces = get_network_interfaces()
        return self.interfaces

    async def start(self) -> None:
        """
        Bind the socket and start the receive task.

        Raises:
            RuntimeError: If the listener is already running.
            OSError: If the socket cannot be bound.
        """
        if self._transport is not None:
            raise RuntimeError("UDP listener is already running")

        loop = asyncio.get_running_loop()

        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.bind((self._host, self._port))
            sock.setblocking(False)
        except OSError:
            sock.close()
            raise

        self._port = sock.getsockname()[1]
        self._failure = None
        self._queue = asyncio.Queue(maxsize=self._queue_size)

        # The transport only receives; sends go through the socket directly
        # so OS errors reach the caller instead of error_received()
        transport, _protocol = await loop.create_datagram_endpoint(
            lambda: _ListenerProtocol(self),
            sock=sock
        )
        self._sock = sock
        self._transport = transport

        self.refresh_interfaces()
        self._receive_task = asyncio.create_task(self._receive_loop())

        _LOGGER.info(
            "Listening on %s:%d (%d interface(s))",
            self._host,
            self._port,
            len(self._interfaces)
        )

    async def stop(self) -> None:
        """Close the socket and wait for the receive task to finish."""
        if self._transport is None:
            return

        self._transport.close()
        self._transport = None
        self._sock = None
        self._put_sentinel()

        task = self._receive_task
        self._receive_task = None
        if task is not None:
            if not task.done():
                await asyncio.gather(task, return_exceptions=True)
            if not task.cancelled() and task.exception() is not None:
                _LOGGER.warning("Receive task ended with: %s", task.exception())

        _LOGGER.info("Listener on port %d stopped", self._port)

    async def wait_closed(self) -> None:
        """
        Wait until the receive task ends.

        Raises:
            TransportError: If it ended because the socket failed.
        """
        if self._receive_task is not None:
            await self._receive_task

    def add_handler(self, handler: PacketHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def remove_handler(self, handler: PacketHandler) -> bool:
        if handler in self._handlers:
            self._handlers.remove(handler)
            return True
        return False

    async def send_to(self, data: bytes, ip_address: str, port: int = LIFX_PORT) -> None:
        """
        Send one datagram without waiting for a reply.

        Args:
            data: The datagram.
            ip_address: Destination (unicast or broadcast) address.
            port: Destination port.

        Raises:
            RuntimeError: If the listener is not running.
            SendError: If the operating system rejects the send.
        """
        if not self.is_running:
            raise RuntimeError("UDP listener is not running")

        try:
            # BlockingIOError (send buffer full) is reported like any other failure
            self._sock.sendto(data, (ip_address, port))
        except OSError as e:
            raise SendError(
                f"Failed to send to {ip_address}:{port}: {e}",
                (ip_address, port)
            ) from e

        _LOGGER.debug("Sent %d bytes to %s:%d", len(data), ip_address, port)

    async def _receive_loop(self) -> None:
        while True:
            item = await self._queue.get()
            if item is None:
                break

            data, source_address = item
            if not data:
                _LOGGER.debug("Received a zero-byte datagram from %s:%d", *source_address)
                continue

            await self._dispatch(data, source_address)

        if self._failure is not None:
            raise TransportError(f"UDP socket failed: {self._failure}") from self._failure

    async def _dispatch(self, data: bytes, source_address: Tuple[str, int]) -> None:
        for handler in list(self._handlers):
            try:
                if await handler.handle_packet(data, source_address):
                    return
            except Exception as e:
                _LOGGER.exception(
                    "Packet handler %r raised for datagram from %s:%d: %s",
                    handler,
                    source_address[0],
                    source_address[1],
                    e
                )

        _LOGGER.debug(
            "Unhandled datagram from %s:%d (%d bytes)",
            source_address[0],
            source_address[1],
            len(data)
        )

    def _on_connection_lost(self, exc: Optional[Exception]) -> None:
        if exc is None:
            return

        _LOGGER.critical("UDP socket on port %d failed: %s", self._port, exc)
        self._failure = exc
        self._put_sentinel()

    def _put_sentinel(self) -> None:
        """Wake the receive task so it exits, discarding the oldest datagram if full."""
        while True:
            try:
                self._queue.put_nowait(None)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()

    async def __aenter__(self) -> "UDPListener":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()
