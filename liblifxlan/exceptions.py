"""Exceptions raised by liblifxlan."""

from typing import Optional, Tuple


class LifxLanError(Exception):
    """Base class for all liblifxlan errors."""


class DecodeError(LifxLanError, ValueError):
    """A datagram could not be decoded into a LIFX message."""


class TransportError(LifxLanError):
    """The shared UDP socket failed and can no longer receive."""


class SendError(LifxLanError, OSError):
    """
    A single datagram could not be sent.

    Attributes:
        address: The (ip, port) the datagram was addressed to.
    """

    def __init__(self, message: str, address: Optional[Tuple[str, int]] = None):
        super().__init__(message)
        self.address = address


class DataNotAvailableError(LifxLanError, LookupError):
    """Requested device data has not been reported by the device yet."""


class DeviceNotFoundError(LifxLanError, KeyError):
    """No device with the given identity is known to the registry."""

    def __str__(self) -> str:
        # KeyError quotes its argument, which reads badly in log lines
        return str(self.args[0]) if self.args else ""
