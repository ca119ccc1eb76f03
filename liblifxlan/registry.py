"""
Shared device registry.

The DeviceRegistry maps device identities to DeviceRecords. It is written
by the listener's receive task (through RegistryPacketHandler) and read by
foreground refresh and command calls. One asyncio.Lock guards the map and
every record in it; it is only held for a lookup/insert/update or for
copying data out, never while decoding or sending.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

from .device import DeviceInfo, DeviceRecord
from .dispatch import apply_message
from .exceptions import DecodeError, DeviceNotFoundError
from .identity import identity_to_serial
from .products import ProductLookup, get_product_info
from .protocol import Frame, decode
from .state import METADATA_MAX_AGE, STATE_MAX_AGE
from .udp_listener import PacketHandler

_LOGGER = logging.getLogger("lifxlan.registry")

R = TypeVar("R")


class DeviceRegistry:
    """
    Identity to DeviceRecord map guarded by a single lock.

    Records are created the first time any datagram arrives from a new
    identity and are never removed.
    """

    def __init__(
        self,
        source: int,
        lookup: ProductLookup = get_product_info,
        metadata_max_age: float = METADATA_MAX_AGE,
        state_max_age: float = STATE_MAX_AGE
    ):
        """
        Initialize the registry.

        Args:
            source: Session source tag given to new records.
            lookup: Product capability lookup.
            metadata_max_age: Staleness window for slow changing fields.
            state_max_age: Staleness window for power, color and zones.
        """
        self._source = source
        self._lookup = lookup
        self._metadata_max_age = metadata_max_age
        self._state_max_age = state_max_age
        self._records: Dict[int, DeviceRecord] = {}
        self._lock = asyncio.Lock()

    @property
    def lookup(self) -> ProductLookup:
        return self._lookup

    async def ingest(self, frame: Frame, address: Tuple[str, int]) -> bool:
        """
        Fold a decoded frame into the record of the device that sent it.

        Args:
            frame: The decoded frame; its target must be non-zero.
            address: (ip, port) the datagram came from.

        Returns:
            True if a new record was created for the frame's identity.
        """
        async with self._lock:
            record = self._records.get(frame.target)
            created = record is None
            if record is None:
                record = DeviceRecord(
                    frame.target,
                    address,
                    self._source,
                    metadata_max_age=self._metadata_max_age,
                    state_max_age=self._state_max_age,
                )
                self._records[frame.target] = record
            else:
                record.touch(address)

            apply_message(record, frame.message, self._lookup)

        if created:
            _LOGGER.info(
                "New device %s at %s:%d",
                identity_to_serial(frame.target),
                address[0],
                address[1]
            )
        return created

    async def read(self, identity: int, reader: Callable[[DeviceRecord], R]) -> R:
        """
        Run ``reader`` against one record while holding the lock.

        ``reader`` must not await or keep a reference to the record.

        Raises:
            DeviceNotFoundError: If the identity is not registered.
        """
        async with self._lock:
            record = self._records.get(identity)
            if record is None:
                raise DeviceNotFoundError(
                    f"Unknown device {identity_to_serial(identity)}"
                )
            return reader(record)

    async def read_all(self, reader: Callable[[DeviceRecord], R]) -> List[R]:
        """Run ``reader`` against every record while holding the lock."""
        async with self._lock:
            return [reader(record) for record in self._records.values()]

    async def get(self, identity: int) -> Optional[DeviceInfo]:
        try:
            return await self.read(identity, lambda record: record.snapshot(self._lookup))
        except DeviceNotFoundError:
            return None

    async def devices(self) -> List[DeviceInfo]:
        return await self.read_all(lambda record: record.snapshot(self._lookup))

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, identity: object) -> bool:
        return identity in self._records


class RegistryPacketHandler(PacketHandler):
    """
    Decodes LIFX datagrams and applies them to a DeviceRegistry.

    Malformed datagrams and frames without a device identity are logged and
    dropped; neither ever stops the receive task.
    """

    def __init__(self, registry: DeviceRegistry):
        self._registry = registry

    async def handle_packet(
        self,
        data: bytes,
        source_address: Tuple[str, int]
    ) -> bool:
        """
        Handle an incoming packet.

        Args:
            data: The raw packet data.
            source_address: Tuple of (ip_address, port) of the sender.

        Returns:
            True if the packet was decoded, False if it was dropped.
        """
        if not data:
            _LOGGER.debug("Received a zero-byte datagram from %s:%d", *source_address)
            return False

        try:
            frame = decode(data)
        except DecodeError as e:
            _LOGGER.warning(
                "Error unpacking datagram from %s:%d: %s",
                source_address[0],
                source_address[1],
                e
            )
            return False

        if frame.target == 0:
            # Our own broadcasts and untargeted requests from other clients
            return False

        await self._registry.ingest(frame, source_address)
        return True
