#!/usr/bin/env python3
"""
Example: Interactive control of a LIFX light.

This example demonstrates controlling one light by serial number:
- Turn on/off or toggle power
- Set a color or a white
- Paint a rainbow across a multizone strip

The device is found by broadcast discovery, so it must be on the same
network segment as this machine.
"""

import asyncio
import logging
import sys
from typing import Optional

from liblifxlan import (
    HSBK,
    ColorKind,
    DataNotAvailableError,
    DeviceInfo,
    DeviceNotFoundError,
    LightManager,
    SendError,
)

# Configure logging (quiet by default, set to DEBUG for troubleshooting)
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("control_device")

# Target device serial (printed by discover_devices.py)
DEVICE_SERIAL = "d073d5001122"


def clear_screen() -> None:
    """Clear the terminal screen."""
    print("\033[2J\033[H", end="")


def print_header(device: Optional[DeviceInfo]) -> None:
    """Print the header with device info."""
    print("=" * 60)
    print("  LIFX Device Controller")
    print("=" * 60)

    if device:
        print(f"  Device:     {device.label or 'Unknown'}")
        print(f"  Serial:     {device.serial}")
        print(f"  IP:         {device.ip_address}")
        if device.product:
            print(f"  Model:      {device.product.name}")
        if device.host_firmware:
            print(f"  Firmware:   {device.host_firmware[0]}.{device.host_firmware[1]}")
        print("-" * 60)
        if device.is_on is None:
            print("  Power:      Unknown")
        else:
            print(f"  Power:      {'ON' if device.is_on else 'OFF'}")
        if device.color is not None:
            print(f"  Color:      {device.color.describe()}")
        if device.zones is not None:
            print(f"  Zones:      {len(device.zones)}")
    else:
        print("  Device:     Not found yet")
        print(f"  Serial:     {DEVICE_SERIAL}")

    print("=" * 60)


def print_menu() -> None:
    """Print the control menu."""
    print()
    print("  CONTROLS:")
    print("  ---------")
    print("  [1] Turn ON")
    print("  [2] Turn OFF")
    print("  [t] Toggle power")
    print("  [c] Set color")
    print("  [w] Set white")
    print("  [z] Rainbow across zones")
    print()
    print("  [r] Refresh state")
    print("  [q] Quit")
    print()


async def read_line(prompt: str) -> str:
    print(f"  {prompt}: ", end="", flush=True)
    loop = asyncio.get_running_loop()
    line = await loop.run_in_executor(None, sys.stdin.readline)
    return line.strip().lower()


async def get_color_input() -> Optional[HSBK]:
    """
    Get a hue from the user.

    Returns:
        A fully saturated color, or None if cancelled.
    """
    line = await read_line("Enter hue (0-360) or 'c' to cancel")
    if line in ("c", ""):
        return None

    try:
        return HSBK.from_floats(float(line), 1.0, 1.0)
    except ValueError as e:
        print(f"  Error: {e}")
        return None


async def get_white_input() -> Optional[HSBK]:
    """
    Get a color temperature from the user.

    Returns:
        A white at full brightness, or None if cancelled.
    """
    line = await read_line("Enter kelvin (1500-9000) or 'c' to cancel")
    if line in ("c", ""):
        return None

    try:
        kelvin = int(line)
    except ValueError:
        print("  Error: Invalid number")
        return None

    if not 1500 <= kelvin <= 9000:
        print("  Error: Value must be between 1500 and 9000")
        return None
    return HSBK(hue=0, saturation=0, brightness=65535, kelvin=kelvin)


def rainbow(count: int):
    return [HSBK.from_floats(360.0 * i / count, 1.0, 1.0) for i in range(count)]


async def handle_input(key: str, manager: LightManager, device: DeviceInfo) -> bool:
    """
    Handle a menu input.

    Args:
        key: The key pressed.
        manager: The light manager.
        device: Latest snapshot of the device.

    Returns:
        True if the user asked to quit.
    """
    identity = device.identity
    try:
        if key == "1":
            await manager.set_power(identity, True)
        elif key == "2":
            await manager.set_power(identity, False)
        elif key == "t":
            await manager.toggle_power(identity)
        elif key == "c":
            color = await get_color_input()
            if color is not None:
                await manager.set_color(identity, color, duration=500)
        elif key == "w":
            white = await get_white_input()
            if white is not None:
                await manager.set_color(identity, white, duration=500)
        elif key == "z":
            if device.color_kind is not ColorKind.MULTI_ZONE or device.zone_snapshot is None:
                print("  This device has not reported extended zones")
                await asyncio.sleep(1)
            else:
                await manager.set_zones(
                    identity, rainbow(device.zone_snapshot.zones_count), duration=1000
                )
        elif key == "r":
            await manager.refresh()
        elif key == "q":
            return True

    except (SendError, DataNotAvailableError, ValueError) as e:
        print(f"\n  Error: {e}")
        await asyncio.sleep(1)

    return False


async def main_loop(manager: LightManager) -> None:
    """
    Main interactive control loop.

    Args:
        manager: A started light manager.
    """
    loop = asyncio.get_running_loop()

    while True:
        await manager.refresh()
        await asyncio.sleep(0.5)

        try:
            device = await manager.get_device(DEVICE_SERIAL)
        except DeviceNotFoundError:
            device = None

        clear_screen()
        print_header(device)
        if device is None:
            await manager.discover()
            await asyncio.sleep(1.0)
            continue

        print_menu()
        print("  > ", end="", flush=True)

        try:
            line = await asyncio.wait_for(
                loop.run_in_executor(None, sys.stdin.readline),
                timeout=30.0,
            )
        except asyncio.TimeoutError:
            # Redraw with fresh state
            continue

        key = line.strip().lower()
        if key and await handle_input(key, manager, device):
            print("\n  Goodbye!")
            break


async def main() -> None:
    """Main entry point."""
    try:
        async with LightManager() as manager:
            await manager.discover()
            await asyncio.sleep(1.0)
            await main_loop(manager)

    except Exception as e:
        logger.exception("Unexpected error")
        print(f"\n  Error: {e}")


if __name__ == "__main__":
    asyncio.run(main())
