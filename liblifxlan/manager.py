"""
LIFX light manager.

The LightManager ties the pieces together: it owns the device registry,
registers the registry's packet handler with a UDPListener, and provides
the operations applications call:

- discover() broadcasts GetService on every local network
- refresh() re-queries every field that is missing or stale
- add_bulb() probes a single known address
- toggle_power(), set_power(), set_color(), ... send commands

Nothing here waits for a reply. Replies and unsolicited state updates
arrive through the listener and update the registry on their own; a lost
query or reply simply leaves a field stale until the next refresh.
"""

import logging
import time
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Sequence, Tuple, Union

from .device import DeviceInfo, DeviceRecord
from .exceptions import DeviceNotFoundError, SendError
from .identity import identity_to_serial, parse_identity
from .products import ProductLookup, get_product_info
from .protocol import (
    HSBK,
    LIFX_PORT,
    MAX_EXTENDED_ZONES,
    POWER_OFF,
    POWER_ON,
    BuildOptions,
    GetService,
    LightSetColor,
    LightSetPower,
    Message,
    SetExtendedColorZones,
    SetPower,
    encode,
)
from .registry import DeviceRegistry, RegistryPacketHandler
from .state import METADATA_MAX_AGE, STATE_MAX_AGE
from .udp_listener import UDPListener

_LOGGER = logging.getLogger("lifxlan.manager")

# Source tag identifying this library's requests
DEFAULT_SOURCE = 0x72757374

DeviceId = Union[int, str]


@dataclass(frozen=True)
class SendFailure:
    """
    One datagram that could not be sent during discovery or refresh.

    Attributes:
        address: The (ip, port) it was addressed to.
        message: The message that was being sent.
        error: The error raised by the send.
    """
    address: Tuple[str, int]
    message: Message
    error: Exception


class LightManager:
    """
    Keeps an inventory of the LIFX lights on the local network.

    Example:
        ```python
        async with LightManager() as manager:
            await manager.discover()
            await asyncio.sleep(1)
            await manager.refresh()
            for device in await manager.devices():
                print(device.describe())
        ```
    """

    def __init__(
        self,
        listener: Optional[UDPListener] = None,
        source: int = DEFAULT_SOURCE,
        lookup: ProductLookup = get_product_info,
        metadata_max_age: float = METADATA_MAX_AGE,
        state_max_age: float = STATE_MAX_AGE,
        device_port: int = LIFX_PORT
    ):
        """
        Initialize the manager.

        Args:
            listener: Shared UDP listener. If omitted the manager creates one
                bound to the LIFX port and starts/stops it itself.
            source: Session source tag put in every request.
            lookup: Product capability lookup.
            metadata_max_age: Staleness window for label, model, location, firmware.
            state_max_age: Staleness window for power, color and zones.
            device_port: Port devices listen on, used for broadcasts and probes.
        """
        self._owns_listener = listener is None
        self._listener = listener if listener is not None else UDPListener()
        self._source = source
        self._device_port = device_port
        self._registry = DeviceRegistry(
            source,
            lookup=lookup,
            metadata_max_age=metadata_max_age,
            state_max_age=state_max_age,
        )
        self._handler = RegistryPacketHandler(self._registry)
        self._last_discovery: Optional[float] = None
        self._started = False

    @property
    def listener(self) -> UDPListener:
        return self._listener

    @property
    def registry(self) -> DeviceRegistry:
        return self._registry

    @property
    def source(self) -> int:
        return self._source

    @property
    def last_discovery(self) -> Optional[float]:
        """time.monotonic() of the last discovery broadcast, or None."""
        return self._last_discovery

    @property
    def is_running(self) -> bool:
        return self._started and self._listener.is_running

    async def start(self) -> None:
        """
        Start receiving device messages.

        Raises:
            RuntimeError: If a shared listener was passed in but is not running.
        """
        if self._started:
            return

        if self._owns_listener:
            await self._listener.start()
        elif not self._listener.is_running:
            raise RuntimeError("UDP listener is not running")

        self._listener.add_handler(self._handler)
        self._started = True
        _LOGGER.info("Light manager started (source 0x%08x)", self._source)

    async def stop(self) -> None:
        if not self._started:
            return

        self._listener.remove_handler(self._handler)
        if self._owns_listener:
            await self._listener.stop()
        self._started = False
        _LOGGER.info("Light manager stopped")

    async def discover(self) -> List[SendFailure]:
        """
        Broadcast a GetService request on every local network.

        Returns:
            The sends that failed (empty if every broadcast went out).

        Raises:
            RuntimeError: If the manager is not running.
        """
        self._require_running()

        message = GetService()
        data = encode(BuildOptions(source=self._source), message)

        interfaces = self._listener.refresh_interfaces()
        if not interfaces:
            _LOGGER.warning("No network interface with a broadcast address found")

        failures = []
        for interface in interfaces:
            address = (interface.broadcast_address, self._device_port)
            _LOGGER.info(
                "Discovering bulbs on LAN %s:%d via %s",
                address[0],
                address[1],
                interface.name
            )
            failure = await self._send_collecting(data, address, message)
            if failure is not None:
                failures.append(failure)

        self._last_discovery = time.monotonic()
        return failures

    async def refresh(self) -> List[SendFailure]:
        """
        Send the query of every missing or stale field of every device.

        Queries are collected while holding the registry lock and sent after
        releasing it.

        Returns:
            The sends that failed.

        Raises:
            RuntimeError: If the manager is not running.
        """
        self._require_running()

        lookup = self._registry.lookup
        now = time.monotonic()
        pending = await self._registry.read_all(
            lambda record: (
                record.address,
                replace(record.options),
                record.stale_queries(lookup, now),
            )
        )

        failures = []
        sent = 0
        for address, options, queries in pending:
            for query in queries:
                failure = await self._send_collecting(encode(options, query), address, query)
                if failure is None:
                    sent += 1
                else:
                    failures.append(failure)

        _LOGGER.debug(
            "Refresh sent %d queries to %d devices (%d failed)",
            sent,
            len(pending),
            len(failures)
        )
        return failures

    async def add_bulb(self, ip_address: str, port: Optional[int] = None) -> None:
        """
        Probe a device at a known address instead of broadcasting.

        Args:
            ip_address: The device's IP address.
            port: The device's port (defaults to the LIFX port).

        Raises:
            RuntimeError: If the manager is not running.
            SendError: If the probe could not be sent.
        """
        self._require_running()

        port = self._device_port if port is None else port
        data = encode(BuildOptions(source=self._source), GetService())

        _LOGGER.info("Attempting connection to %s:%d", ip_address, port)
        await self._listener.send_to(data, ip_address, port)

    async def devices(self) -> List[DeviceInfo]:
        """Return a snapshot of every known device."""
        return await self._registry.devices()

    async def get_device(self, identity: DeviceId) -> DeviceInfo:
        """
        Return a snapshot of one device.

        Args:
            identity: Device identity, serial number or MAC address.

        Raises:
            DeviceNotFoundError: If the device is not known.
            ValueError: If the identity is malformed.
        """
        device = await self._registry.get(parse_identity(identity))
        if device is None:
            raise DeviceNotFoundError(f"Unknown device {identity}")
        return device

    async def toggle_power(self, identity: DeviceId) -> None:
        """
        Turn a device off if it is known to be on, otherwise on.

        Raises:
            DeviceNotFoundError: If the device is not known.
            SendError: If the command could not be sent.
        """
        await self._send_command(identity, lambda record: record.toggle_power_message())

    async def set_power(self, identity: DeviceId, on: bool) -> None:
        message = SetPower(level=POWER_ON if on else POWER_OFF)
        await self._send_command(identity, lambda record: message)

    async def set_power_duration(self, identity: DeviceId, level: int, duration: int) -> None:
        """
        Fade a device's power level over ``duration`` milliseconds.

        Args:
            identity: Device identity, serial number or MAC address.
            level: 0 (off) or 65535 (on).
            duration: Transition time in milliseconds.

        Raises:
            ValueError: If level or duration is out of range.
            DeviceNotFoundError: If the device is not known.
            SendError: If the command could not be sent.
        """
        if not 0 <= level <= 0xFFFF:
            raise ValueError(f"Power level must be between 0 and 65535, got {level}")
        _check_duration(duration)

        message = LightSetPower(level=level, duration=duration)
        await self._send_command(identity, lambda record: message)

    async def set_color(self, identity: DeviceId, color: HSBK, duration: int = 0) -> None:
        """
        Set the color of a device over ``duration`` milliseconds.

        Raises:
            ValueError: If duration is out of range.
            DeviceNotFoundError: If the device is not known.
            SendError: If the command could not be sent.
        """
        _check_duration(duration)
        message = LightSetColor(color=color, duration=duration)
        await self._send_command(identity, lambda record: message)

    async def set_zones(
        self,
        identity: DeviceId,
        colors: Sequence[HSBK],
        duration: int = 0
    ) -> None:
        """
        Set every zone of an extended multizone device in one message.

        The device must have reported its zones (see refresh()) so the
        number of zones to write is known.

        Args:
            identity: Device identity, serial number or MAC address.
            colors: Colors starting at zone 0 (at most 82).
            duration: Transition time in milliseconds.

        Raises:
            ValueError: If there are too many colors or duration is out of range.
            DeviceNotFoundError: If the device is not known.
            DataNotAvailableError: If the device has not reported its zones yet.
            SendError: If the command could not be sent.
        """
        if len(colors) > MAX_EXTENDED_ZONES:
            raise ValueError(
                f"At most {MAX_EXTENDED_ZONES} zones can be set at once, got {len(colors)}"
            )
        _check_duration(duration)
        colors = tuple(colors)

        def build(record: DeviceRecord) -> Message:
            zones = record.zone_snapshot()
            return SetExtendedColorZones(
                duration=duration,
                apply=1,
                zone_index=0,
                colors_count=min(len(colors), zones.zones_count),
                colors=colors,
            )

        await self._send_command(identity, build)

    async def _send_command(
        self,
        identity: DeviceId,
        build: Callable[[DeviceRecord], Message]
    ) -> None:
        self._require_running()
        target = parse_identity(identity)

        address, options, message = await self._registry.read(
            target,
            lambda record: (record.address, replace(record.options), build(record))
        )

        await self._listener.send_to(encode(options, message), address[0], address[1])
        _LOGGER.debug(
            "Sent %s to %s (seq %d)",
            type(message).__name__,
            identity_to_serial(target),
            options.sequence
        )

    async def _send_collecting(
        self,
        data: bytes,
        address: Tuple[str, int],
        message: Message
    ) -> Optional[SendFailure]:
        try:
            await self._listener.send_to(data, address[0], address[1])
        except SendError as e:
            _LOGGER.warning(
                "Failed to send %s to %s:%d: %s",
                type(message).__name__,
                address[0],
                address[1],
                e
            )
            return SendFailure(address=address, message=message, error=e)
        return None

    def _require_running(self) -> None:
        if not self.is_running:
            raise RuntimeError("Light manager is not running")

    async def __aenter__(self) -> "LightManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()


def _check_duration(duration: int) -> None:
    if not 0 <= duration <= 0xFFFFFFFF:
        raise ValueError(f"Duration must be between 0 and 4294967295 ms, got {duration}")
