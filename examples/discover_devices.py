#!/usr/bin/env python3
"""
Example: Discover LIFX lights on the local network.

This example broadcasts a discovery request, then refreshes the device
inventory a few times so metadata and state fill in, printing a summary of
every light found.
"""

import asyncio
import logging

from liblifxlan import LightManager, UDPListener


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s"
)

# Reduce noise from the library internals
logging.getLogger("lifxlan.dispatch").setLevel(logging.WARNING)


async def main():
    """Main entry point."""
    print("=" * 60)
    print("LIFX Device Discovery")
    print("=" * 60)

    async with UDPListener() as listener:
        print(f"\nListening on port {listener.port}")
        print(f"Found {len(listener.interfaces)} network interface(s):")
        for iface in listener.interfaces:
            print(f"  - {iface.name}: {iface.ip_address} (broadcast: {iface.broadcast_address})")

        async with LightManager(listener=listener) as manager:
            print("\nBroadcasting discovery packets...")
            for failure in await manager.discover():
                print(f"  Could not reach {failure.address[0]}: {failure.error}")

            # Each refresh asks for whatever is still missing; the color
            # query only becomes possible once the model is known.
            for _ in range(5):
                await asyncio.sleep(1.0)
                await manager.refresh()

            await asyncio.sleep(1.0)
            devices = await manager.devices()

            if not devices:
                print("No devices found.")
                return

            print(f"\nFound {len(devices)} device(s):\n")
            for device in devices:
                print(device.describe())

    print("\nDone.")


if __name__ == "__main__":
    asyncio.run(main())
