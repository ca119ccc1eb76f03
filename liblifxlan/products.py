"""LIFX product capability database."""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

LIFX_VENDOR = 1


@dataclass(frozen=True)
class ProductInfo:
    vendor: int
    product: int
    name: str
    color: bool = True
    infrared: bool = False
    multizone: bool = False  # Zones readable with GetColorZones
    extended_multizone: bool = False  # Up to 82 zones per message (firmware 2.77+)
    chain: bool = False
    matrix: bool = False


# Callable used to resolve (vendor, product) into capabilities
ProductLookup = Callable[[int, int], Optional[ProductInfo]]


def _white(product: int, name: str) -> ProductInfo:
    return ProductInfo(LIFX_VENDOR, product, name, color=False)


def _color(product: int, name: str, **kwargs: bool) -> ProductInfo:
    return ProductInfo(LIFX_VENDOR, product, name, **kwargs)


PRODUCTS: List[ProductInfo] = [
    _color(1, "LIFX Original 1000"),
    _color(3, "LIFX Color 650"),
    _white(10, "LIFX White 800 (Low Voltage)"),
    _white(11, "LIFX White 800 (High Voltage)"),
    _color(15, "LIFX Color 1000"),
    _white(18, "LIFX White 900 BR30 (Low Voltage)"),
    _white(19, "LIFX White 900 BR30 (High Voltage)"),
    _color(20, "LIFX Color 1000 BR30"),
    _color(22, "LIFX Color 1000"),
    _color(27, "LIFX A19"),
    _color(28, "LIFX BR30"),
    _color(29, "LIFX A19 Night Vision", infrared=True),
    _color(30, "LIFX BR30 Night Vision", infrared=True),
    _color(31, "LIFX Z", multizone=True),
    _color(32, "LIFX Z", multizone=True, extended_multizone=True),
    _color(36, "LIFX Downlight"),
    _color(37, "LIFX Downlight"),
    _color(38, "LIFX Beam", multizone=True, extended_multizone=True),
    _white(39, "LIFX Downlight White to Warm"),
    _color(40, "LIFX Downlight"),
    _color(43, "LIFX A19"),
    _color(44, "LIFX BR30"),
    _color(45, "LIFX A19 Night Vision", infrared=True),
    _color(46, "LIFX BR30 Night Vision", infrared=True),
    _color(49, "LIFX Mini Color"),
    _white(50, "LIFX Mini White to Warm"),
    _white(51, "LIFX Mini White"),
    _color(52, "LIFX GU10"),
    _color(53, "LIFX GU10"),
    # Tiles answer the zone queries for their first segment
    _color(55, "LIFX Tile", multizone=True, chain=True, matrix=True),
    _color(57, "LIFX Candle", matrix=True),
    _color(59, "LIFX Mini Color"),
    _white(60, "LIFX Mini White to Warm"),
    _white(61, "LIFX Mini White"),
    _color(62, "LIFX A19"),
    _color(63, "LIFX BR30"),
    _color(64, "LIFX A19 Night Vision", infrared=True),
    _color(65, "LIFX BR30 Night Vision", infrared=True),
    _white(66, "LIFX Mini White"),
    _color(68, "LIFX Candle", matrix=True),
    _white(81, "LIFX Candle White to Warm"),
    _white(82, "LIFX Filament Clear"),
    _white(85, "LIFX Filament Amber"),
    _white(87, "LIFX Mini White"),
    _white(88, "LIFX Mini White"),
    _color(90, "LIFX Clean"),
    _color(91, "LIFX Color"),
    _color(92, "LIFX Color"),
    _color(94, "LIFX BR30"),
    _white(96, "LIFX Candle White to Warm"),
    _color(97, "LIFX A19"),
    _color(98, "LIFX BR30"),
    _color(99, "LIFX Clean"),
    _white(100, "LIFX Filament Clear"),
    _white(101, "LIFX Filament Amber"),
    _color(109, "LIFX A19 Night Vision", infrared=True),
    _color(110, "LIFX BR30 Night Vision", infrared=True),
    _color(111, "LIFX A19 Night Vision", infrared=True),
    _color(112, "LIFX BR30 Night Vision", infrared=True),
    _white(113, "LIFX Mini White to Warm"),
    _white(114, "LIFX Mini White to Warm"),
    _color(117, "LIFX Z", multizone=True, extended_multizone=True),
    _color(118, "LIFX Z", multizone=True, extended_multizone=True),
    _color(119, "LIFX Beam", multizone=True, extended_multizone=True),
    _color(120, "LIFX Beam", multizone=True, extended_multizone=True),
    _color(123, "LIFX Color"),
    _color(124, "LIFX Color"),
    _white(125, "LIFX White to Warm"),
    _white(126, "LIFX White to Warm"),
    _white(127, "LIFX White"),
    _white(128, "LIFX White"),
    _color(141, "LIFX Neon", multizone=True, extended_multizone=True),
    _color(142, "LIFX Neon", multizone=True, extended_multizone=True),
    _color(143, "LIFX String", multizone=True, extended_multizone=True),
    _color(144, "LIFX String", multizone=True, extended_multizone=True),
]

PRODUCT_MAP: Dict[Tuple[int, int], ProductInfo] = {
    (info.vendor, info.product): info for info in PRODUCTS
}


def get_product_info(vendor: int, product: int) -> Optional[ProductInfo]:
    """Return the capabilities of a product, or None if it is not known."""
    return PRODUCT_MAP.get((vendor, product))


def describe_product(vendor: int, product: int) -> str:
    """Return a display name, falling back to the raw vendor/product ids."""
    info = get_product_info(vendor, product)
    if info is None:
        return f"Unknown model (vendor={vendor}, product={product})"
    return info.name
