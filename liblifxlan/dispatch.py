"""
Incoming message handling.

Each message class a device can send maps to exactly one update rule in
``_HANDLERS``. Rules run with the registry lock held, touch exactly one
record, and never raise for bad device data: inconsistent zone reports are
logged and dropped, leaving earlier data intact.
"""

import logging
from typing import Callable, Dict, List, Optional, Type

from .device import DeviceRecord, color_kind
from .identity import identity_to_serial
from .products import ProductLookup
from .protocol import (
    HSBK,
    SERVICE_UDP,
    Acknowledgement,
    LightState,
    LightStatePower,
    Message,
    StateExtendedColorZones,
    StateHostFirmware,
    StateLabel,
    StateLocation,
    StateMultiZone,
    StatePower,
    StateService,
    StateUnhandled,
    StateVersion,
    StateWifiFirmware,
    StateZone,
)
from .state import (
    MultiZoneColor,
    RefreshableField,
    SingleZoneColor,
    ZoneSnapshot,
    resolve_color_state,
)

_LOGGER = logging.getLogger("lifxlan.dispatch")

Handler = Callable[[DeviceRecord, Message, ProductLookup], None]


def _state_service(record: DeviceRecord, message: StateService, lookup: ProductLookup) -> None:
    if message.service != SERVICE_UDP or message.port != record.address[1]:
        _LOGGER.warning(
            "Unsupported service from %s: service=%d port=%d",
            identity_to_serial(record.identity),
            message.service,
            message.port
        )


def _state_label(record: DeviceRecord, message: StateLabel, lookup: ProductLookup) -> None:
    record.label.update(message.label)


def _state_location(record: DeviceRecord, message: StateLocation, lookup: ProductLookup) -> None:
    record.location.update(message.label)


def _state_version(record: DeviceRecord, message: StateVersion, lookup: ProductLookup) -> None:
    record.model.update((message.vendor, message.product))

    product = lookup(message.vendor, message.product)
    if product is None:
        _LOGGER.debug(
            "Device %s has unknown product vendor=%d product=%d",
            identity_to_serial(record.identity),
            message.vendor,
            message.product
        )

    previous = record.color
    record.color = resolve_color_state(previous, product, record.state_max_age)
    if record.color is not previous:
        _LOGGER.info(
            "Device %s is a %s (%s)",
            identity_to_serial(record.identity),
            product.name if product else "unknown product",
            color_kind(record.color).value
        )


def _state_power(record: DeviceRecord, message: StatePower, lookup: ProductLookup) -> None:
    record.power_level.update(message.level)


def _state_host_firmware(
    record: DeviceRecord,
    message: StateHostFirmware,
    lookup: ProductLookup
) -> None:
    record.host_firmware.update((message.version_major, message.version_minor))


def _state_wifi_firmware(
    record: DeviceRecord,
    message: StateWifiFirmware,
    lookup: ProductLookup
) -> None:
    record.wifi_firmware.update((message.version_major, message.version_minor))


def _light_state(record: DeviceRecord, message: LightState, lookup: ProductLookup) -> None:
    # LightState also carries power and label
    if isinstance(record.color, SingleZoneColor):
        record.color.field.update(message.color)
        record.power_level.update(message.power)
        record.label.update(message.label)


def _zone_slots(
    field: RefreshableField[List[Optional[HSBK]]],
    count: int
) -> List[Optional[HSBK]]:
    """Copy of the zone list, allocated with ``count`` empty slots on first use."""
    current = field.current()
    if current is None:
        return [None] * count
    return list(current)


def _write_zones(
    record: DeviceRecord,
    field: RefreshableField[List[Optional[HSBK]]],
    count: int,
    index: int,
    colors: List[HSBK]
) -> None:
    zones = _zone_slots(field, count)
    written = 0
    for offset, color in enumerate(colors):
        position = index + offset
        if position < len(zones):
            zones[position] = color
            written += 1

    if written == 0:
        _LOGGER.debug(
            "Zone report from %s at index %d is outside %d known zones",
            identity_to_serial(record.identity),
            index,
            len(zones)
        )
        return

    field.update(zones)


def _state_zone(record: DeviceRecord, message: StateZone, lookup: ProductLookup) -> None:
    if not isinstance(record.color, MultiZoneColor):
        return

    if message.index > message.count:
        _LOGGER.warning(
            "Dropping zone report from %s: index %d exceeds zone count %d",
            identity_to_serial(record.identity),
            message.index,
            message.count
        )
        return

    _write_zones(record, record.color.field, message.count, message.index, [message.color])


def _state_multi_zone(record: DeviceRecord, message: StateMultiZone, lookup: ProductLookup) -> None:
    if not isinstance(record.color, MultiZoneColor):
        return

    if message.index + 7 > message.count:
        _LOGGER.warning(
            "Dropping zone batch from %s: zones %d-%d exceed zone count %d",
            identity_to_serial(record.identity),
            message.index,
            message.index + 7,
            message.count
        )
        return

    _write_zones(
        record, record.color.field, message.count, message.index, list(message.colors[:8])
    )


def _state_extended_color_zones(
    record: DeviceRecord,
    message: StateExtendedColorZones,
    lookup: ProductLookup
) -> None:
    record.zones.update(ZoneSnapshot(
        zones_count=message.zones_count,
        zone_index=message.zone_index,
        colors_count=message.colors_count,
        colors=tuple(message.colors),
    ))


def _acknowledgement(record: DeviceRecord, message: Acknowledgement, lookup: ProductLookup) -> None:
    record.acknowledge(message.seq)


def _state_unhandled(record: DeviceRecord, message: StateUnhandled, lookup: ProductLookup) -> None:
    _LOGGER.debug(
        "Device %s does not handle packet type %d",
        identity_to_serial(record.identity),
        message.unhandled_type
    )


_HANDLERS: Dict[Type[Message], Handler] = {
    StateService: _state_service,
    StateLabel: _state_label,
    StateLocation: _state_location,
    StateVersion: _state_version,
    StatePower: _state_power,
    LightStatePower: _state_power,
    StateHostFirmware: _state_host_firmware,
    StateWifiFirmware: _state_wifi_firmware,
    LightState: _light_state,
    StateZone: _state_zone,
    StateMultiZone: _state_multi_zone,
    StateExtendedColorZones: _state_extended_color_zones,
    Acknowledgement: _acknowledgement,
    StateUnhandled: _state_unhandled,
}


def apply_message(record: DeviceRecord, message: Message, lookup: ProductLookup) -> bool:
    """
    Fold one incoming message into a device record.

    Args:
        record: The record of the device that sent the message.
        message: The decoded message.
        lookup: Product capability lookup used to resolve the color state.

    Returns:
        True if a rule exists for the message, False if it was ignored.
    """
    handler = _HANDLERS.get(type(message))
    if handler is None:
        _LOGGER.debug(
            "Received, but ignored %s from %s",
            type(message).__name__,
            identity_to_serial(record.identity)
        )
        return False

    handler(record, message, lookup)
    return True
