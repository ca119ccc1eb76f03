"""Shared fixtures for liblifxlan tests."""

from typing import Callable, List, Optional, Sequence, Tuple

import pytest

from liblifxlan import (
    BuildOptions,
    Frame,
    NetworkInterface,
    PacketHandler,
    SendError,
    decode,
    encode,
    parse_identity,
)
from liblifxlan.protocol import Message

IDENTITY = parse_identity("d073d5001122")
ADDRESS = ("192.168.1.20", 56700)


class FakeListener:
    """Stands in for UDPListener; records sends instead of using a socket."""

    def __init__(
        self,
        interfaces: Optional[Sequence[NetworkInterface]] = None,
        fail_for: Sequence[str] = (),
        running: bool = True,
    ) -> None:
        if interfaces is None:
            interfaces = [NetworkInterface("eth0", "192.168.1.10", "192.168.1.255")]
        self._interfaces = list(interfaces)
        self.fail_for = set(fail_for)
        self.is_running = running
        self.handlers: List[PacketHandler] = []
        self.sent: List[Tuple[Frame, str, int]] = []

    @property
    def interfaces(self) -> List[NetworkInterface]:
        return list(self._interfaces)

    def refresh_interfaces(self) -> List[NetworkInterface]:
        return list(self._interfaces)

    def add_handler(self, handler: PacketHandler) -> None:
        self.handlers.append(handler)

    def remove_handler(self, handler: PacketHandler) -> bool:
        if handler in self.handlers:
            self.handlers.remove(handler)
            return True
        return False

    async def send_to(self, data: bytes, ip_address: str, port: int = 56700) -> None:
        if ip_address in self.fail_for:
            raise SendError(f"Failed to send to {ip_address}:{port}", (ip_address, port))
        self.sent.append((decode(data), ip_address, port))

    async def deliver(self, data: bytes, address: Tuple[str, int] = ADDRESS) -> bool:
        """Feed a datagram to the registered handlers like the receive task does."""
        for handler in list(self.handlers):
            if await handler.handle_packet(data, address):
                return True
        return False

    def sent_messages(self) -> List[Message]:
        return [frame.message for frame, _ip, _port in self.sent]


@pytest.fixture
def fake_listener() -> FakeListener:
    return FakeListener()


@pytest.fixture
def make_datagram() -> Callable[..., bytes]:
    """Build a datagram as a device would send it."""

    def _make(message: Message, target: int = IDENTITY, sequence: int = 0, source: int = 0) -> bytes:
        return encode(BuildOptions(target=target, source=source, sequence=sequence), message)

    return _make
