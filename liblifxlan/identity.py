"""
Device identity helpers.

LIFX devices are addressed by a 64-bit "target". The first six bytes of the
little-endian target are the device MAC address, which is also printed on
the device as its serial number (e.g. ``d073d5001122``).
"""

import re
from typing import Union

_HEX_RE = re.compile(r"^[0-9a-f]{12}$")


def identity_to_serial(identity: int) -> str:
    """
    Format a device identity as its 12 hex digit serial number.

    Args:
        identity: The 64-bit frame target.

    Returns:
        Lowercase serial, e.g. "d073d5001122".
    """
    return identity.to_bytes(8, "little")[:6].hex()


def identity_to_mac(identity: int) -> str:
    """
    Format a device identity as a colon separated MAC address.

    Args:
        identity: The 64-bit frame target.

    Returns:
        MAC address in "aa:bb:cc:dd:ee:ff" format.
    """
    serial = identity_to_serial(identity)
    return ":".join(serial[i:i + 2] for i in range(0, 12, 2))


def parse_identity(value: Union[int, str]) -> int:
    """
    Convert a serial number, MAC address or integer into a device identity.

    Accepts "d073d5001122", "D0:73:D5:00:11:22", "d0-73-d5-00-11-22" or an
    already numeric identity.

    Args:
        value: The identity in any supported form.

    Returns:
        The 64-bit frame target.

    Raises:
        ValueError: If the value cannot be interpreted as a device identity.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid device identity: {value!r}")

    if isinstance(value, int):
        if not 0 < value < 2 ** 64:
            raise ValueError(f"Invalid device identity: {value!r}")
        return value

    cleaned = value.strip().lower().replace(":", "").replace("-", "")
    if not _HEX_RE.match(cleaned):
        raise ValueError(f"Invalid device identity: {value!r}")

    identity = int.from_bytes(bytes.fromhex(cleaned) + b"\x00\x00", "little")
    if identity == 0:
        raise ValueError(f"Invalid device identity: {value!r}")
    return identity
