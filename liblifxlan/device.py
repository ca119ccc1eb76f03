"""
LIFX device records.

This module provides the DeviceRecord class holding everything the library
knows about one light on the network:

- Identity, address and when it was last heard from
- Header options (source tag, sequence) used for commands to it
- Staleness-tracked metadata and runtime state
- The capability-driven color state

Records are owned by the DeviceRegistry and only mutated while its lock is
held. Callers outside the registry receive DeviceInfo copies.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from .exceptions import DataNotAvailableError
from .identity import identity_to_mac, identity_to_serial
from .products import ProductInfo, ProductLookup, describe_product
from .protocol import (
    HSBK,
    POWER_OFF,
    POWER_ON,
    BuildOptions,
    GetExtendedColorZones,
    GetHostFirmware,
    GetLabel,
    GetLocation,
    GetPower,
    GetVersion,
    GetWifiFirmware,
    Message,
    SetPower,
)
from .state import (
    METADATA_MAX_AGE,
    STATE_MAX_AGE,
    ColorState,
    MultiZoneColor,
    RefreshableField,
    SingleZoneColor,
    UnknownColor,
    ZoneSnapshot,
)


# Sequence numbers roll over from 255 back to 1
MAX_SEQUENCE = 255


class ColorKind(Enum):
    """Which color representation a device uses."""
    UNKNOWN = "unknown"
    SINGLE_ZONE = "single_zone"
    MULTI_ZONE = "multi_zone"


def color_kind(color: ColorState) -> ColorKind:
    if isinstance(color, SingleZoneColor):
        return ColorKind.SINGLE_ZONE
    if isinstance(color, MultiZoneColor):
        return ColorKind.MULTI_ZONE
    return ColorKind.UNKNOWN


@dataclass(frozen=True)
class DeviceInfo:
    """
    A point-in-time copy of a device record.

    Attributes:
        identity: The device's 64-bit identity.
        ip_address: Address the device last sent from.
        port: Port the device last sent from.
        last_seen: time.monotonic() of the last datagram from the device.
        sequence: Sequence number the next command will carry.
        label: User-assigned device name.
        model: (vendor, product) pair.
        product: Capabilities looked up from the model, if known.
        location: Location label.
        host_firmware: (major, minor) host firmware version.
        wifi_firmware: (major, minor) wifi firmware version.
        power_level: 0 for off, 65535 for on.
        color_kind: Which color representation the device uses.
        color: Color of a single zone device.
        zones: Per-zone colors of a multizone device (None for zones not reported).
        zone_snapshot: Last extended zone report.
    """
    identity: int
    ip_address: str
    port: int
    last_seen: float
    sequence: int
    label: Optional[str] = None
    model: Optional[Tuple[int, int]] = None
    product: Optional[ProductInfo] = None
    location: Optional[str] = None
    host_firmware: Optional[Tuple[int, int]] = None
    wifi_firmware: Optional[Tuple[int, int]] = None
    power_level: Optional[int] = None
    color_kind: ColorKind = ColorKind.UNKNOWN
    color: Optional[HSBK] = None
    zones: Optional[Tuple[Optional[HSBK], ...]] = None
    zone_snapshot: Optional[ZoneSnapshot] = None

    @property
    def serial(self) -> str:
        return identity_to_serial(self.identity)

    @property
    def mac_address(self) -> str:
        return identity_to_mac(self.identity)

    @property
    def is_on(self) -> Optional[bool]:
        """True/False once the power level is known, otherwise None."""
        if self.power_level is None:
            return None
        return self.power_level > 0

    def describe(self) -> str:
        """
        Render a one-line summary of the device for logs and examples.

        Returns:
            e.g. "d073d5001122 @ 192.168.1.20:56700 Desk/Home - LIFX A19
            McuFW:3.70  Powered On(hue 120 sat 100% bright 50%)"
        """
        parts = [f"{self.serial} @ {self.ip_address}:{self.port} "]

        if self.label is not None:
            parts.append(self.label)
        if self.location is not None:
            parts.append(f"/{self.location}")
        if self.model is not None:
            parts.append(f" - {describe_product(*self.model)}")
        if self.host_firmware is not None:
            parts.append(f" McuFW:{self.host_firmware[0]}.{self.host_firmware[1]}")
        if self.wifi_firmware is not None:
            parts.append(f" WifiFW:{self.wifi_firmware[0]}.{self.wifi_firmware[1]}")

        if self.power_level is not None:
            if self.power_level > 0:
                parts.append(f"  Powered On({self._describe_color()})")
            else:
                parts.append("  Powered Off")

        if self.zone_snapshot is not None:
            zones = self.zone_snapshot
            parts.append(
                f" (ZC:{zones.zones_count}, ZI:{zones.zone_index}, ZCC:{zones.colors_count})"
            )

        return "".join(parts)

    def _describe_color(self) -> str:
        if self.color_kind is ColorKind.SINGLE_ZONE:
            return self.color.describe() if self.color is not None else "??"
        if self.color_kind is ColorKind.MULTI_ZONE and self.zones is not None:
            described = " ".join(
                zone.describe(short=True) if zone is not None else "??"
                for zone in self.zones
            )
            return f"Zones: {described}"
        return "??"

    def __str__(self) -> str:
        name = self.label or self.serial
        return f"LIFX({name} @ {self.ip_address})"


class DeviceRecord:
    """
    Everything known about one LIFX device.

    A record starts out with only an identity and an address. Metadata and
    state fields fill in as replies arrive; each tracks its own staleness so
    refresh sweeps only query what is missing or outdated.

    Example:
        ```python
        identity = parse_identity("d073d5001122")
        record = DeviceRecord(identity, ("192.168.1.20", 56700), source=0x72757374)
        record.power_level.update(65535)
        queries = record.stale_queries(get_product_info)
        ```
    """

    def __init__(
        self,
        identity: int,
        address: Tuple[str, int],
        source: int,
        metadata_max_age: float = METADATA_MAX_AGE,
        state_max_age: float = STATE_MAX_AGE
    ):
        """
        Initialize a device record.

        Args:
            identity: The device's 64-bit identity (frame target).
            address: (ip, port) the device was first heard from.
            source: Session source tag used for commands to this device.
            metadata_max_age: Staleness window for label, model, location, firmware.
            state_max_age: Staleness window for power, color and zones.
        """
        self.identity = identity
        self.address = address
        self.last_seen = time.monotonic()
        self.state_max_age = state_max_age

        self.options = BuildOptions(
            target=identity,
            ack_required=True,
            res_required=True,
            source=source,
            sequence=1,
        )

        self.label: RefreshableField[str] = RefreshableField(metadata_max_age, GetLabel())
        self.model: RefreshableField[Tuple[int, int]] = RefreshableField(
            metadata_max_age, GetVersion()
        )
        self.location: RefreshableField[str] = RefreshableField(
            metadata_max_age, GetLocation()
        )
        self.host_firmware: RefreshableField[Tuple[int, int]] = RefreshableField(
            metadata_max_age, GetHostFirmware()
        )
        self.wifi_firmware: RefreshableField[Tuple[int, int]] = RefreshableField(
            metadata_max_age, GetWifiFirmware()
        )
        self.power_level: RefreshableField[int] = RefreshableField(state_max_age, GetPower())
        self.zones: RefreshableField[ZoneSnapshot] = RefreshableField(
            state_max_age, GetExtendedColorZones()
        )
        self.color: ColorState = UnknownColor()

    def touch(self, address: Tuple[str, int]) -> None:
        """Record that a datagram just arrived from ``address``."""
        self.last_seen = time.monotonic()
        self.address = address

    def acknowledge(self, seq: int) -> None:
        """Advance the outbound sequence past an acknowledged one (1-255)."""
        self.options.sequence = (seq % MAX_SEQUENCE) + 1

    def product(self, lookup: ProductLookup) -> Optional[ProductInfo]:
        model = self.model.current()
        if model is None:
            return None
        return lookup(*model)

    def stale_queries(
        self,
        lookup: ProductLookup,
        now: Optional[float] = None
    ) -> List[Message]:
        """
        Collect the queries for every stale field, in refresh priority order.

        Color is skipped while the color state is unknown. The extended zone
        query is only included when the product supports it.

        Args:
            lookup: Product capability lookup.
            now: Monotonic timestamp to evaluate staleness at.

        Returns:
            Messages to send, highest priority first.
        """
        if now is None:
            now = time.monotonic()

        fields: List[RefreshableField] = [
            self.label,
            self.model,
            self.location,
            self.host_firmware,
            self.wifi_firmware,
            self.power_level,
        ]
        if isinstance(self.color, (SingleZoneColor, MultiZoneColor)):
            fields.append(self.color.field)

        product = self.product(lookup)
        if product is not None and product.extended_multizone:
            fields.append(self.zones)

        return [f.refresh_query for f in fields if f.needs_refresh(now)]

    def toggle_power_message(self) -> SetPower:
        """Turn the device off if it is known to be on, otherwise on."""
        level = self.power_level.current()
        if level is not None and level > 0:
            return SetPower(level=POWER_OFF)
        return SetPower(level=POWER_ON)

    def current_color(self) -> HSBK:
        """
        Return the color of a single zone device.

        Raises:
            DataNotAvailableError: If the device is not known to be single
                zone or has not reported its color yet.
        """
        if not isinstance(self.color, SingleZoneColor):
            raise DataNotAvailableError(
                f"Device {identity_to_serial(self.identity)} is not known to be single zone"
            )
        color = self.color.field.current()
        if color is None:
            raise DataNotAvailableError(
                f"Device {identity_to_serial(self.identity)} has not reported its color yet"
            )
        return color

    def current_zones(self) -> List[Optional[HSBK]]:
        """
        Return the per-zone colors of a multizone device.

        Raises:
            DataNotAvailableError: If the device is not known to be multizone
                or has not reported any zones yet.
        """
        if not isinstance(self.color, MultiZoneColor):
            raise DataNotAvailableError(
                f"Device {identity_to_serial(self.identity)} is not known to be multizone"
            )
        zones = self.color.field.current()
        if zones is None:
            raise DataNotAvailableError(
                f"Device {identity_to_serial(self.identity)} has not reported its zones yet"
            )
        return list(zones)

    def zone_snapshot(self) -> ZoneSnapshot:
        """
        Return the last extended zone report.

        Raises:
            DataNotAvailableError: If no extended zone report has arrived.
        """
        zones = self.zones.current()
        if zones is None:
            raise DataNotAvailableError(
                f"Device {identity_to_serial(self.identity)} has not reported extended zones"
            )
        return zones

    def snapshot(self, lookup: ProductLookup) -> DeviceInfo:
        """
        Copy the record into an immutable DeviceInfo.

        Args:
            lookup: Product capability lookup.

        Returns:
            The current view of the device.
        """
        color: Optional[HSBK] = None
        zones: Optional[Tuple[Optional[HSBK], ...]] = None
        if isinstance(self.color, SingleZoneColor):
            color = self.color.field.current()
        elif isinstance(self.color, MultiZoneColor):
            current = self.color.field.current()
            zones = tuple(current) if current is not None else None

        return DeviceInfo(
            identity=self.identity,
            ip_address=self.address[0],
            port=self.address[1],
            last_seen=self.last_seen,
            sequence=self.options.sequence,
            label=self.label.current(),
            model=self.model.current(),
            product=self.product(lookup),
            location=self.location.current(),
            host_firmware=self.host_firmware.current(),
            wifi_firmware=self.wifi_firmware.current(),
            power_level=self.power_level.current(),
            color_kind=color_kind(self.color),
            color=color,
            zones=zones,
            zone_snapshot=self.zones.current(),
        )

    def __repr__(self) -> str:
        return (
            f"DeviceRecord("
            f"serial={identity_to_serial(self.identity)}, "
            f"address={self.address[0]}:{self.address[1]}, "
            f"color={color_kind(self.color).value}, "
            f"sequence={self.options.sequence})"
        )
