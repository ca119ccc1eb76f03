"""
LIFX LAN protocol codec.

Every datagram is a fixed 36 byte little-endian header followed by a
message-specific payload. This module only knows how to turn message
objects into bytes and back; it keeps no state of its own.

- ``encode(options, message)`` builds a complete datagram
- ``decode(data)`` parses one into a ``Frame`` or raises ``DecodeError``

Only the messages needed to track and control lights are modelled. Any
other packet type decodes to ``UnknownMessage`` so callers can log it.
"""

import struct
from dataclasses import dataclass, field, fields
from typing import ClassVar, Dict, Optional, Tuple, Type

from .exceptions import DecodeError


# Well-known UDP port every LIFX device listens on
LIFX_PORT = 56700

# Protocol number carried in every header
PROTOCOL_NUMBER = 1024

HEADER_SIZE = 36

# Largest payload a device sends (StateExtendedColorZones) plus header
MAX_DATAGRAM_SIZE = 1024

# Zones carried by one extended zone message
MAX_EXTENDED_ZONES = 82

# Service identifier for UDP in StateService
SERVICE_UDP = 1

POWER_OFF = 0
POWER_ON = 65535

_ADDRESSABLE = 1 << 12
_TAGGED = 1 << 13

# size, protocol/flags, source, target, reserved, ack/res, sequence,
# reserved, type, reserved
_HEADER = struct.Struct("<HHIQ6sBBQHH")
_HSBK = struct.Struct("<HHHH")
_LABEL_SIZE = 32


def _pack_label(label: str) -> bytes:
    return label.encode("utf-8")[:_LABEL_SIZE].ljust(_LABEL_SIZE, b"\x00")


def _unpack_label(raw: bytes) -> str:
    return raw.split(b"\x00", 1)[0].decode("utf-8", errors="replace")


@dataclass(frozen=True)
class HSBK:
    """
    A LIFX color: hue, saturation, brightness and kelvin as 16-bit integers.

    Hue, saturation and brightness span 0-65535. Kelvin is only meaningful
    when saturation is zero (whites).
    """
    hue: int = 0
    saturation: int = 0
    brightness: int = 0
    kelvin: int = 3500

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if not 0 <= value <= 0xFFFF:
                raise ValueError(
                    f"{f.name.capitalize()} must be between 0 and 65535, got {value}"
                )

    @classmethod
    def from_floats(
        cls,
        hue: float,
        saturation: float,
        brightness: float,
        kelvin: int = 3500
    ) -> "HSBK":
        """
        Build a color from human friendly values.

        Args:
            hue: Hue in degrees (0-360).
            saturation: Saturation from 0.0 to 1.0.
            brightness: Brightness from 0.0 to 1.0.
            kelvin: Color temperature for whites.

        Returns:
            The equivalent HSBK.

        Raises:
            ValueError: If any value is out of range.
        """
        if not 0.0 <= hue <= 360.0:
            raise ValueError(f"Hue must be between 0 and 360, got {hue}")
        if not 0.0 <= saturation <= 1.0:
            raise ValueError(f"Saturation must be between 0.0 and 1.0, got {saturation}")
        if not 0.0 <= brightness <= 1.0:
            raise ValueError(f"Brightness must be between 0.0 and 1.0, got {brightness}")

        return cls(
            hue=round(hue / 360.0 * 65535) % 65536,
            saturation=round(saturation * 65535),
            brightness=round(brightness * 65535),
            kelvin=kelvin,
        )

    @property
    def hue_degrees(self) -> float:
        return self.hue * 360.0 / 65535

    def describe(self, short: bool = False) -> str:
        """
        Render the color for logs and debug output.

        Args:
            short: Use the compact form (for long zone lists).

        Returns:
            "2700K 50%" for whites, otherwise hue/saturation/brightness.
        """
        bright = self.brightness * 100.0 / 65535
        if self.saturation == 0:
            if short:
                return f"{self.kelvin}K"
            return f"{self.kelvin}K {bright:.0f}%"

        sat = self.saturation * 100.0 / 65535
        if short:
            return f"{self.hue_degrees:.0f}/{sat:.0f}/{bright:.0f}"
        return f"hue {self.hue_degrees:.0f} sat {sat:.0f}% bright {bright:.0f}%"

    def pack(self) -> bytes:
        return _HSBK.pack(self.hue, self.saturation, self.brightness, self.kelvin)

    @classmethod
    def unpack_from(cls, buffer: bytes, offset: int = 0) -> "HSBK":
        return cls(*_HSBK.unpack_from(buffer, offset))


@dataclass
class BuildOptions:
    """
    Header options used when encoding an outbound message.

    Attributes:
        target: Device identity, or None to address every device (tagged).
        ack_required: Ask the device for an Acknowledgement.
        res_required: Ask the device for a state reply.
        source: Session source tag echoed back in replies.
        sequence: Sequence number echoed back in replies (0-255).
    """
    target: Optional[int] = None
    ack_required: bool = False
    res_required: bool = False
    source: int = 0
    sequence: int = 0


@dataclass
class Message:
    """
    Base class of all protocol messages.

    Subclasses set ``packet_type`` and either a struct ``_layout`` whose
    fields match the dataclass fields in order, or override ``pack`` and
    ``unpack``.
    """
    packet_type: ClassVar[int] = 0
    _layout: ClassVar[Optional[struct.Struct]] = None

    def pack(self) -> bytes:
        if self._layout is None:
            return b""
        return self._layout.pack(*(getattr(self, f.name) for f in fields(self)))

    @classmethod
    def unpack(cls, payload: bytes) -> "Message":
        if cls._layout is None:
            return cls()
        cls._require(payload, cls._layout.size)
        return cls(*cls._layout.unpack_from(payload))

    @classmethod
    def _require(cls, payload: bytes, size: int) -> None:
        if len(payload) < size:
            raise DecodeError(
                f"{cls.__name__} payload too short: {len(payload)} < {size} bytes"
            )


# Device messages

@dataclass
class GetService(Message):
    packet_type = 2


@dataclass
class StateService(Message):
    packet_type = 3
    _layout = struct.Struct("<BI")
    service: int = SERVICE_UDP
    port: int = LIFX_PORT


@dataclass
class GetHostFirmware(Message):
    packet_type = 14


@dataclass
class StateHostFirmware(Message):
    packet_type = 15
    _layout = struct.Struct("<QQHH")
    build: int = 0
    version_major: int = 0
    version_minor: int = 0

    def pack(self) -> bytes:
        return self._layout.pack(self.build, 0, self.version_minor, self.version_major)

    @classmethod
    def unpack(cls, payload: bytes) -> "Message":
        cls._require(payload, cls._layout.size)
        build, _reserved, minor, major = cls._layout.unpack_from(payload)
        return cls(build=build, version_major=major, version_minor=minor)


@dataclass
class GetWifiFirmware(Message):
    packet_type = 18


@dataclass
class StateWifiFirmware(StateHostFirmware):
    packet_type = 19


@dataclass
class GetPower(Message):
    packet_type = 20


@dataclass
class SetPower(Message):
    packet_type = 21
    _layout = struct.Struct("<H")
    level: int = POWER_ON


@dataclass
class StatePower(Message):
    packet_type = 22
    _layout = struct.Struct("<H")
    level: int = 0


@dataclass
class GetLabel(Message):
    packet_type = 23


@dataclass
class StateLabel(Message):
    packet_type = 25
    label: str = ""

    def pack(self) -> bytes:
        return _pack_label(self.label)

    @classmethod
    def unpack(cls, payload: bytes) -> "Message":
        cls._require(payload, _LABEL_SIZE)
        return cls(label=_unpack_label(payload[:_LABEL_SIZE]))


@dataclass
class GetVersion(Message):
    packet_type = 32


@dataclass
class StateVersion(Message):
    packet_type = 33
    _layout = struct.Struct("<III")
    vendor: int = 0
    product: int = 0
    version: int = 0


@dataclass
class Acknowledgement(Message):
    """Has no payload; ``seq`` is the sequence number from the header."""
    packet_type = 45
    seq: int = 0

    def pack(self) -> bytes:
        return b""


@dataclass
class GetLocation(Message):
    packet_type = 48


@dataclass
class StateLocation(Message):
    packet_type = 50
    _layout = struct.Struct("<16s32sQ")
    location: bytes = b"\x00" * 16
    label: str = ""
    updated_at: int = 0

    def pack(self) -> bytes:
        return self._layout.pack(self.location, _pack_label(self.label), self.updated_at)

    @classmethod
    def unpack(cls, payload: bytes) -> "Message":
        cls._require(payload, cls._layout.size)
        location, label, updated_at = cls._layout.unpack_from(payload)
        return cls(location=location, label=_unpack_label(label), updated_at=updated_at)


@dataclass
class StateUnhandled(Message):
    packet_type = 223
    _layout = struct.Struct("<H")
    unhandled_type: int = 0


# Light messages

@dataclass
class LightGet(Message):
    packet_type = 101


@dataclass
class LightSetColor(Message):
    packet_type = 102
    _layout = struct.Struct("<B8sI")
    color: HSBK = field(default_factory=HSBK)
    duration: int = 0

    def pack(self) -> bytes:
        return self._layout.pack(0, self.color.pack(), self.duration)

    @classmethod
    def unpack(cls, payload: bytes) -> "Message":
        cls._require(payload, cls._layout.size)
        _reserved, color, duration = cls._layout.unpack_from(payload)
        return cls(color=HSBK.unpack_from(color), duration=duration)


@dataclass
class LightState(Message):
    packet_type = 107
    _layout = struct.Struct("<8shH32sQ")
    color: HSBK = field(default_factory=HSBK)
    power: int = 0
    label: str = ""

    def pack(self) -> bytes:
        return self._layout.pack(self.color.pack(), 0, self.power, _pack_label(self.label), 0)

    @classmethod
    def unpack(cls, payload: bytes) -> "Message":
        cls._require(payload, cls._layout.size)
        color, _reserved, power, label, _reserved2 = cls._layout.unpack_from(payload)
        return cls(color=HSBK.unpack_from(color), power=power, label=_unpack_label(label))


@dataclass
class LightGetPower(Message):
    packet_type = 116


@dataclass
class LightSetPower(Message):
    packet_type = 117
    _layout = struct.Struct("<HI")
    level: int = POWER_ON
    duration: int = 0


@dataclass
class LightStatePower(Message):
    packet_type = 118
    _layout = struct.Struct("<H")
    level: int = 0


# Multizone messages

@dataclass
class GetColorZones(Message):
    packet_type = 502
    _layout = struct.Struct("<BB")
    start_index: int = 0
    end_index: int = 255


@dataclass
class StateZone(Message):
    packet_type = 503
    _layout = struct.Struct("<BB8s")
    count: int = 0
    index: int = 0
    color: HSBK = field(default_factory=HSBK)

    def pack(self) -> bytes:
        return self._layout.pack(self.count, self.index, self.color.pack())

    @classmethod
    def unpack(cls, payload: bytes) -> "Message":
        cls._require(payload, cls._layout.size)
        count, index, color = cls._layout.unpack_from(payload)
        return cls(count=count, index=index, color=HSBK.unpack_from(color))


@dataclass
class StateMultiZone(Message):
    """Eight consecutive zones starting at ``index``."""
    packet_type = 506
    _layout = struct.Struct("<BB")
    count: int = 0
    index: int = 0
    colors: Tuple[HSBK, ...] = field(default_factory=lambda: (HSBK(),) * 8)

    def pack(self) -> bytes:
        colors = tuple(self.colors)[:8]
        colors += (HSBK(),) * (8 - len(colors))
        return self._layout.pack(self.count, self.index) + b"".join(c.pack() for c in colors)

    @classmethod
    def unpack(cls, payload: bytes) -> "Message":
        cls._require(payload, cls._layout.size + 8 * _HSBK.size)
        count, index = cls._layout.unpack_from(payload)
        colors = tuple(
            HSBK.unpack_from(payload, cls._layout.size + i * _HSBK.size)
            for i in range(8)
        )
        return cls(count=count, index=index, colors=colors)


@dataclass
class SetExtendedColorZones(Message):
    packet_type = 510
    _layout = struct.Struct("<IBHB")
    duration: int = 0
    apply: int = 1
    zone_index: int = 0
    colors_count: int = 0
    colors: Tuple[HSBK, ...] = ()

    def pack(self) -> bytes:
        colors = tuple(self.colors)[:MAX_EXTENDED_ZONES]
        colors += (HSBK(),) * (MAX_EXTENDED_ZONES - len(colors))
        head = self._layout.pack(self.duration, self.apply, self.zone_index, self.colors_count)
        return head + b"".join(c.pack() for c in colors)


@dataclass
class GetExtendedColorZones(Message):
    packet_type = 511


@dataclass
class StateExtendedColorZones(Message):
    packet_type = 512
    _layout = struct.Struct("<HHB")
    zones_count: int = 0
    zone_index: int = 0
    colors_count: int = 0
    colors: Tuple[HSBK, ...] = ()

    def pack(self) -> bytes:
        colors = tuple(self.colors)[:MAX_EXTENDED_ZONES]
        colors += (HSBK(),) * (MAX_EXTENDED_ZONES - len(colors))
        head = self._layout.pack(self.zones_count, self.zone_index, self.colors_count)
        return head + b"".join(c.pack() for c in colors)

    @classmethod
    def unpack(cls, payload: bytes) -> "Message":
        cls._require(payload, cls._layout.size + MAX_EXTENDED_ZONES * _HSBK.size)
        zones_count, zone_index, colors_count = cls._layout.unpack_from(payload)
        colors = tuple(
            HSBK.unpack_from(payload, cls._layout.size + i * _HSBK.size)
            for i in range(MAX_EXTENDED_ZONES)
        )
        return cls(
            zones_count=zones_count,
            zone_index=zone_index,
            colors_count=colors_count,
            colors=colors,
        )


@dataclass
class UnknownMessage(Message):
    """A packet type this codec does not model."""
    type_id: int = 0
    payload: bytes = b""

    def pack(self) -> bytes:
        return self.payload


MESSAGE_TYPES: Dict[int, Type[Message]] = {
    cls.packet_type: cls
    for cls in (
        GetService, StateService,
        GetHostFirmware, StateHostFirmware,
        GetWifiFirmware, StateWifiFirmware,
        GetPower, SetPower, StatePower,
        GetLabel, StateLabel,
        GetVersion, StateVersion,
        Acknowledgement,
        GetLocation, StateLocation,
        StateUnhandled,
        LightGet, LightSetColor, LightState,
        LightGetPower, LightSetPower, LightStatePower,
        GetColorZones, StateZone, StateMultiZone,
        SetExtendedColorZones, GetExtendedColorZones, StateExtendedColorZones,
    )
}


@dataclass
class Frame:
    """
    A decoded datagram: the header fields plus the message.

    Attributes:
        source: Source tag the sender echoed back.
        target: Identity of the device the frame is about (0 if untargeted).
        tagged: True if the frame was addressed to all devices.
        ack_required: Sender asked for an acknowledgement.
        res_required: Sender asked for a response.
        sequence: Sequence number (0-255).
        message: The decoded payload.
    """
    source: int
    target: int
    tagged: bool
    ack_required: bool
    res_required: bool
    sequence: int
    message: Message


def encode(options: BuildOptions, message: Message) -> bytes:
    """
    Encode a message into a datagram.

    Args:
        options: Header options (target, flags, source, sequence).
        message: The message to send.

    Returns:
        The complete datagram.
    """
    payload = message.pack()
    target = options.target or 0

    protocol = PROTOCOL_NUMBER | _ADDRESSABLE
    if target == 0:
        protocol |= _TAGGED

    flags = (1 if options.res_required else 0) | (2 if options.ack_required else 0)
    packet_type = (
        message.type_id if isinstance(message, UnknownMessage) else message.packet_type
    )

    header = _HEADER.pack(
        HEADER_SIZE + len(payload),
        protocol,
        options.source & 0xFFFFFFFF,
        target,
        b"\x00" * 6,
        flags,
        options.sequence & 0xFF,
        0,
        packet_type,
        0,
    )
    return header + payload


def decode(data: bytes) -> Frame:
    """
    Decode a datagram.

    Args:
        data: The raw datagram.

    Returns:
        The decoded Frame. Packet types this module does not model are
        returned as UnknownMessage.

    Raises:
        DecodeError: If the datagram is malformed.
    """
    if len(data) < HEADER_SIZE:
        raise DecodeError(f"Datagram too short for a header: {len(data)} bytes")
    if len(data) > MAX_DATAGRAM_SIZE:
        raise DecodeError(f"Datagram too large: {len(data)} bytes")

    (
        size, protocol, source, target, _reserved, flags, sequence,
        _reserved2, packet_type, _reserved3,
    ) = _HEADER.unpack_from(data)

    if size != len(data):
        raise DecodeError(f"Header size {size} does not match datagram size {len(data)}")

    if protocol & 0xFFF != PROTOCOL_NUMBER:
        raise DecodeError(f"Unsupported protocol number {protocol & 0xFFF}")

    payload = bytes(data[HEADER_SIZE:])
    message_cls = MESSAGE_TYPES.get(packet_type)

    if message_cls is None:
        message: Message = UnknownMessage(type_id=packet_type, payload=payload)
    elif message_cls is Acknowledgement:
        message = Acknowledgement(seq=sequence)
    else:
        try:
            message = message_cls.unpack(payload)
        except struct.error as e:
            raise DecodeError(f"Malformed {message_cls.__name__} payload: {e}") from e

    return Frame(
        source=source,
        target=target,
        tagged=bool(protocol & _TAGGED),
        ack_required=bool(flags & 2),
        res_required=bool(flags & 1),
        sequence=sequence,
        message=message,
    )
