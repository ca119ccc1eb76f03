"""Tests for the device registry and its packet handler."""

import asyncio
import logging

import pytest
from liblifxlan import (
    BuildOptions,
    DeviceNotFoundError,
    DeviceRegistry,
    RegistryPacketHandler,
    decode,
    encode,
)
from liblifxlan.protocol import GetService, StateLabel, StatePower, StateService

IDENTITY = 0x221100D573D0
ADDRESS = ("192.168.1.20", 56700)

SOURCE = 0x72757374


def frame_for(message, target: int = IDENTITY):
    return decode(encode(BuildOptions(target=target), message))


class TestDeviceRegistry:
    """Tests for DeviceRegistry."""

    @pytest.mark.asyncio
    async def test_first_datagram_creates_record(self) -> None:
        """Test that a datagram from a new identity creates exactly one record."""
        registry = DeviceRegistry(SOURCE)

        created = await registry.ingest(frame_for(StateService(), target=0xAA), ADDRESS)
        assert created is True
        assert len(registry) == 1
        assert 0xAA in registry

        device = await registry.get(0xAA)
        assert device.ip_address == "192.168.1.20"
        assert device.port == 56700
        assert device.sequence == 1
        assert device.label is None

    @pytest.mark.asyncio
    async def test_second_datagram_updates_record(self) -> None:
        """Test that later datagrams update the same record and its address."""
        registry = DeviceRegistry(SOURCE)
        await registry.ingest(frame_for(StateService()), ADDRESS)

        created = await registry.ingest(frame_for(StateLabel(label="Desk")), ("192.168.1.21", 56700))
        assert created is False
        assert len(registry) == 1

        device = await registry.get(IDENTITY)
        assert device.label == "Desk"
        assert device.ip_address == "192.168.1.21"

    @pytest.mark.asyncio
    async def test_concurrent_ingest(self) -> None:
        """Test that concurrent datagrams from one identity create one record."""
        registry = DeviceRegistry(SOURCE)
        frames = [frame_for(StatePower(level=65535)) for _ in range(20)]

        results = await asyncio.gather(*(registry.ingest(f, ADDRESS) for f in frames))

        assert results.count(True) == 1
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_read_unknown_device(self) -> None:
        """Test that reading an unknown identity raises DeviceNotFoundError."""
        registry = DeviceRegistry(SOURCE)

        with pytest.raises(DeviceNotFoundError, match="d073d5001122"):
            await registry.read(IDENTITY, lambda record: record.address)
        assert await registry.get(IDENTITY) is None

    @pytest.mark.asyncio
    async def test_read_all(self) -> None:
        """Test that read_all visits every record."""
        registry = DeviceRegistry(SOURCE)
        await registry.ingest(frame_for(StateService(), target=0xAA), ADDRESS)
        await registry.ingest(frame_for(StateService(), target=0xBB), ADDRESS)

        identities = await registry.read_all(lambda record: record.identity)
        assert sorted(identities) == [0xAA, 0xBB]
        assert len(await registry.devices()) == 2

    @pytest.mark.asyncio
    async def test_custom_max_age(self) -> None:
        """Test that new records use the registry's staleness windows."""
        registry = DeviceRegistry(SOURCE, metadata_max_age=60.0, state_max_age=2.0)
        await registry.ingest(frame_for(StateService()), ADDRESS)

        ages = await registry.read(
            IDENTITY, lambda record: (record.label.max_age, record.power_level.max_age)
        )
        assert ages == (60.0, 2.0)


class TestRegistryPacketHandler:
    """Tests for decoding and dropping datagrams."""

    @pytest.mark.asyncio
    async def test_valid_datagram(self, make_datagram) -> None:
        """Test that a targeted datagram is applied."""
        registry = DeviceRegistry(SOURCE)
        handler = RegistryPacketHandler(registry)

        assert await handler.handle_packet(make_datagram(StateLabel(label="Desk")), ADDRESS)
        assert (await registry.get(IDENTITY)).label == "Desk"

    @pytest.mark.asyncio
    async def test_zero_length_dropped(self) -> None:
        """Test that empty datagrams are dropped."""
        registry = DeviceRegistry(SOURCE)
        handler = RegistryPacketHandler(registry)

        assert not await handler.handle_packet(b"", ADDRESS)
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_malformed_dropped(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that undecodable datagrams are logged and dropped."""
        registry = DeviceRegistry(SOURCE)
        handler = RegistryPacketHandler(registry)

        with caplog.at_level(logging.WARNING, logger="lifxlan.registry"):
            assert not await handler.handle_packet(b"\x01\x02\x03", ADDRESS)
        assert "Error unpacking datagram" in caplog.text
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_untargeted_dropped(self) -> None:
        """Test that frames without an identity (our own broadcasts) are dropped."""
        registry = DeviceRegistry(SOURCE)
        handler = RegistryPacketHandler(registry)

        data = encode(BuildOptions(source=SOURCE), GetService())
        assert not await handler.handle_packet(data, ADDRESS)
        assert len(registry) == 0
