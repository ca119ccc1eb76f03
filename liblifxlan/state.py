"""
Staleness-tracked device state.

Every piece of information the library knows about a device lives in a
RefreshableField: the last reported value, when it was reported, how long
it may be trusted, and the query that asks the device for it again.

A device's color is a tagged variant that starts out as UnknownColor and
is resolved exactly once, when the product capabilities become known:

- SingleZoneColor holds one HSBK, refreshed with LightGet
- MultiZoneColor holds one optional HSBK per zone, refreshed with GetColorZones
"""

import time
from dataclasses import dataclass, field
from typing import Generic, List, Optional, Tuple, TypeVar, Union

from .products import ProductInfo
from .protocol import HSBK, GetColorZones, LightGet, Message

T = TypeVar("T")

# Label, model, location and firmware rarely change
METADATA_MAX_AGE = 60.0 * 60.0

# Power, color and zones change whenever someone uses the light
STATE_MAX_AGE = 15.0


class RefreshableField(Generic[T]):
    """
    One cached value with a staleness window.

    The field is stale when it has never been reported or when the last
    report is older than ``max_age`` seconds. ``update`` is the only way to
    change the value and always overwrites it.

    Attributes:
        max_age: Seconds a reported value stays fresh.
        refresh_query: Message that asks the device for this value.
        last_updated: time.monotonic() of the last update (or creation).
    """

    __slots__ = ("_value", "max_age", "refresh_query", "last_updated")

    def __init__(self, max_age: float, refresh_query: Message):
        self._value: Optional[T] = None
        self.max_age = max_age
        self.refresh_query = refresh_query
        self.last_updated = time.monotonic()

    def needs_refresh(self, now: Optional[float] = None) -> bool:
        """
        Check whether the value should be queried again.

        Args:
            now: Monotonic timestamp to compare against (defaults to now).

        Returns:
            True if the value is missing or older than max_age.
        """
        if self._value is None:
            return True
        if now is None:
            now = time.monotonic()
        return now - self.last_updated > self.max_age

    def update(self, value: T) -> None:
        """Replace the value and restart its staleness window."""
        self._value = value
        self.last_updated = time.monotonic()

    def current(self) -> Optional[T]:
        """Return the last reported value, or None if never reported."""
        return self._value

    @property
    def age(self) -> float:
        """Seconds since the last update."""
        return time.monotonic() - self.last_updated

    def __repr__(self) -> str:
        return (
            f"RefreshableField(value={self._value!r}, max_age={self.max_age}, "
            f"query={type(self.refresh_query).__name__})"
        )


@dataclass(frozen=True)
class ZoneSnapshot:
    """
    A window of zone colors as reported by StateExtendedColorZones.

    Attributes:
        zones_count: Total number of zones on the device.
        zone_index: Index of the first zone in ``colors``.
        colors_count: Number of meaningful entries in ``colors``.
        colors: Up to 82 colors starting at ``zone_index``.
    """
    zones_count: int
    zone_index: int
    colors_count: int
    colors: Tuple[HSBK, ...] = field(default_factory=tuple)

    @property
    def valid_colors(self) -> Tuple[HSBK, ...]:
        return self.colors[:self.colors_count]


@dataclass
class UnknownColor:
    """Capabilities not known yet; nothing can be queried."""


@dataclass
class SingleZoneColor:
    field: RefreshableField[HSBK]


@dataclass
class MultiZoneColor:
    field: RefreshableField[List[Optional[HSBK]]]


ColorState = Union[UnknownColor, SingleZoneColor, MultiZoneColor]


def resolve_color_state(
    current: ColorState,
    product: Optional[ProductInfo],
    max_age: float = STATE_MAX_AGE
) -> ColorState:
    """
    Resolve an unknown color state from product capabilities.

    Once a state is single or multi zone it is kept as-is, so replies that
    repeat the version never reset collected color data.

    Args:
        current: The device's current color state.
        product: Capabilities for the device, or None if the product is unknown.
        max_age: Staleness window for the new color field.

    Returns:
        The color state the device should have from now on.
    """
    if not isinstance(current, UnknownColor) or product is None:
        return current

    if product.multizone:
        return MultiZoneColor(
            RefreshableField(max_age, GetColorZones(start_index=0, end_index=255))
        )
    return SingleZoneColor(RefreshableField(max_age, LightGet()))
