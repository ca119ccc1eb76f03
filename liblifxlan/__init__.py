"""
liblifxlan - Keep track of and control LIFX lights on the local network.

Devices are discovered by broadcast, their state is cached in memory and
kept fresh by staleness-driven queries plus the state updates devices send
on their own.

Example:
    ```python
    import asyncio
    from liblifxlan import LightManager

    async def main():
        async with LightManager() as manager:
            await manager.discover()
            await asyncio.sleep(1)
            await manager.refresh()
            await asyncio.sleep(1)
            for device in await manager.devices():
                print(device.describe())

    asyncio.run(main())
    ```
"""

from .device import ColorKind, DeviceInfo, DeviceRecord
from .exceptions import (
    DataNotAvailableError,
    DecodeError,
    DeviceNotFoundError,
    LifxLanError,
    SendError,
    TransportError,
)
from .identity import identity_to_mac, identity_to_serial, parse_identity
from .manager import DEFAULT_SOURCE, LightManager, SendFailure
from .products import ProductInfo, get_product_info
from .protocol import HSBK, LIFX_PORT, POWER_OFF, POWER_ON, BuildOptions, Frame, decode, encode
from .registry import DeviceRegistry, RegistryPacketHandler
from .state import (
    METADATA_MAX_AGE,
    STATE_MAX_AGE,
    MultiZoneColor,
    RefreshableField,
    SingleZoneColor,
    UnknownColor,
    ZoneSnapshot,
)
from .udp_listener import NetworkInterface, PacketHandler, UDPListener, get_network_interfaces

__version__ = "0.1.0"

__all__ = [
    "BuildOptions",
    "ColorKind",
    "DEFAULT_SOURCE",
    "DataNotAvailableError",
    "DecodeError",
    "DeviceInfo",
    "DeviceNotFoundError",
    "DeviceRecord",
    "DeviceRegistry",
    "Frame",
    "HSBK",
    "LIFX_PORT",
    "LifxLanError",
    "LightManager",
    "METADATA_MAX_AGE",
    "MultiZoneColor",
    "NetworkInterface",
    "POWER_OFF",
    "POWER_ON",
    "PacketHandler",
    "ProductInfo",
    "RefreshableField",
    "RegistryPacketHandler",
    "STATE_MAX_AGE",
    "SendError",
    "SendFailure",
    "SingleZoneColor",
    "TransportError",
    "UDPListener",
    "UnknownColor",
    "ZoneSnapshot",
    "decode",
    "encode",
    "get_network_interfaces",
    "get_product_info",
    "identity_to_mac",
    "identity_to_serial",
    "parse_identity",
]
