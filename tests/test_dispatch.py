"""Tests for folding incoming messages into device records."""

import logging

import pytest
from liblifxlan import HSBK, DeviceRecord, MultiZoneColor, SingleZoneColor, UnknownColor
from liblifxlan.dispatch import apply_message
from liblifxlan.products import get_product_info
from liblifxlan.protocol import (
    Acknowledgement,
    GetColorZones,
    LightGet,
    LightState,
    LightStatePower,
    SetPower,
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
    UnknownMessage,
)

IDENTITY = 0x221100D573D0
ADDRESS = ("192.168.1.20", 56700)

RED = HSBK(0, 65535, 65535, 3500)
BLUE = HSBK(43690, 65535, 65535, 3500)


@pytest.fixture
def record() -> DeviceRecord:
    return DeviceRecord(IDENTITY, ADDRESS, source=0x72757374)


def apply(record: DeviceRecord, message) -> bool:
    return apply_message(record, message, get_product_info)


def make_strip(record: DeviceRecord) -> DeviceRecord:
    apply(record, StateVersion(vendor=1, product=31))
    return record


class TestMetadata:
    """Tests for label, location, firmware and power replies."""

    def test_label(self, record: DeviceRecord) -> None:
        """Test that StateLabel sets the label."""
        assert apply(record, StateLabel(label="Desk"))
        assert record.label.current() == "Desk"
        assert not record.label.needs_refresh()

    def test_location(self, record: DeviceRecord) -> None:
        """Test that StateLocation stores the location label."""
        apply(record, StateLocation(label="Home"))
        assert record.location.current() == "Home"

    def test_firmware(self, record: DeviceRecord) -> None:
        """Test that host and wifi firmware land in separate fields."""
        apply(record, StateHostFirmware(version_major=3, version_minor=70))
        apply(record, StateWifiFirmware(version_major=1, version_minor=2))
        assert record.host_firmware.current() == (3, 70)
        assert record.wifi_firmware.current() == (1, 2)

    def test_power_variants(self, record: DeviceRecord) -> None:
        """Test that both power replies update the power level."""
        apply(record, StatePower(level=65535))
        assert record.power_level.current() == 65535
        apply(record, LightStatePower(level=0))
        assert record.power_level.current() == 0

    def test_service_only_logs(self, record: DeviceRecord, caplog: pytest.LogCaptureFixture) -> None:
        """Test that a non-UDP service is logged and changes nothing."""
        with caplog.at_level(logging.WARNING, logger="lifxlan.dispatch"):
            assert apply(record, StateService(service=5, port=56700))
        assert "Unsupported service" in caplog.text
        assert record.label.current() is None

    def test_expected_service_is_silent(
        self,
        record: DeviceRecord,
        caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that the normal UDP service is accepted quietly."""
        with caplog.at_level(logging.WARNING, logger="lifxlan.dispatch"):
            apply(record, StateService())
        assert caplog.text == ""

    def test_unhandled_is_accepted(self, record: DeviceRecord) -> None:
        """Test that StateUnhandled has a rule but changes nothing."""
        assert apply(record, StateUnhandled(unhandled_type=510))

    def test_unknown_kinds_ignored(self, record: DeviceRecord) -> None:
        """Test that messages without a rule are ignored."""
        assert not apply(record, UnknownMessage(type_id=999))
        assert not apply(record, SetPower(level=65535))


class TestVersion:
    """Tests for the capability driven color transition."""

    def test_single_zone_product(self, record: DeviceRecord) -> None:
        """Test that an A19 becomes single zone."""
        apply(record, StateVersion(vendor=1, product=27))
        assert record.model.current() == (1, 27)
        assert isinstance(record.color, SingleZoneColor)
        assert isinstance(record.color.field.refresh_query, LightGet)

    def test_tile_is_multizone(self, record: DeviceRecord) -> None:
        """Test that product 55 becomes multizone."""
        apply(record, StateVersion(vendor=1, product=55))
        assert isinstance(record.color, MultiZoneColor)
        assert record.color.field.refresh_query == GetColorZones(start_index=0, end_index=255)

    def test_unknown_product_stays_unknown(self, record: DeviceRecord) -> None:
        """Test that an unknown product only records the model."""
        apply(record, StateVersion(vendor=7, product=9999))
        assert record.model.current() == (7, 9999)
        assert isinstance(record.color, UnknownColor)

    def test_transition_is_one_way(self, record: DeviceRecord) -> None:
        """Test that a second version reply does not reset the color state."""
        make_strip(record)
        apply(record, StateMultiZone(count=8, index=0, colors=(RED,) * 8))
        state = record.color

        apply(record, StateVersion(vendor=1, product=27))
        assert record.color is state
        assert record.color.field.current() == [RED] * 8


class TestLightState:
    """Tests for LightState replies."""

    def test_single_zone_updates_everything(self, record: DeviceRecord) -> None:
        """Test that LightState updates color, power and label together."""
        apply(record, StateVersion(vendor=1, product=27))
        apply(record, LightState(color=RED, power=65535, label="Lamp"))

        assert record.color.field.current() == RED
        assert record.power_level.current() == 65535
        assert record.label.current() == "Lamp"

    def test_ignored_while_unknown(self, record: DeviceRecord) -> None:
        """Test that LightState is ignored before the model is known."""
        apply(record, LightState(color=RED, power=65535, label="Lamp"))
        assert isinstance(record.color, UnknownColor)
        assert record.power_level.current() is None
        assert record.label.current() is None

    def test_ignored_for_multizone(self, record: DeviceRecord) -> None:
        """Test that LightState does not touch a multizone record."""
        make_strip(record)
        apply(record, LightState(color=RED, power=65535, label="Strip"))
        assert record.color.field.current() is None
        assert record.label.current() is None


class TestZones:
    """Tests for StateZone and StateMultiZone."""

    def test_multi_zone_allocates_and_fills(self, record: DeviceRecord) -> None:
        """Test that a batch allocates count slots and fills eight of them."""
        make_strip(record)
        apply(record, StateMultiZone(count=16, index=8, colors=(BLUE,) * 8))

        zones = record.color.field.current()
        assert len(zones) == 16
        assert zones[:8] == [None] * 8
        assert zones[8:] == [BLUE] * 8

    def test_single_zone_report(self, record: DeviceRecord) -> None:
        """Test that StateZone writes one slot."""
        make_strip(record)
        apply(record, StateMultiZone(count=16, index=0, colors=(BLUE,) * 8))
        apply(record, StateZone(count=16, index=3, color=RED))

        zones = record.color.field.current()
        assert zones[3] == RED
        assert zones[2] == BLUE

    def test_zone_index_past_count_rejected(
        self,
        record: DeviceRecord,
        caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that a zone index beyond the count is dropped."""
        make_strip(record)
        with caplog.at_level(logging.WARNING, logger="lifxlan.dispatch"):
            apply(record, StateZone(count=16, index=17, color=RED))
        assert "Dropping zone report" in caplog.text
        assert record.color.field.current() is None

    def test_multi_zone_past_count_rejected(
        self,
        record: DeviceRecord,
        caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that a batch running past the count is dropped without changes."""
        make_strip(record)
        apply(record, StateMultiZone(count=16, index=0, colors=(BLUE,) * 8))
        with caplog.at_level(logging.WARNING, logger="lifxlan.dispatch"):
            apply(record, StateMultiZone(count=16, index=10, colors=(RED,) * 8))

        assert "Dropping zone batch" in caplog.text
        assert record.color.field.current() == [BLUE] * 8 + [None] * 8

    def test_slots_past_allocation_skipped(self, record: DeviceRecord) -> None:
        """Test that colors past the allocated length are not written."""
        make_strip(record)
        apply(record, StateMultiZone(count=8, index=1, colors=(RED,) * 8))
        assert record.color.field.current() == [None] + [RED] * 7

    def test_zones_ignored_for_single_zone(self, record: DeviceRecord) -> None:
        """Test that zone reports do nothing for single zone devices."""
        apply(record, StateVersion(vendor=1, product=27))
        apply(record, StateMultiZone(count=8, index=0, colors=(RED,) * 8))
        assert record.color.field.current() is None

    def test_extended_zones_snapshot(self, record: DeviceRecord) -> None:
        """Test that StateExtendedColorZones replaces the zone snapshot."""
        apply(record, StateExtendedColorZones(
            zones_count=16, zone_index=0, colors_count=2, colors=(RED, BLUE)
        ))
        snapshot = record.zones.current()
        assert snapshot.zones_count == 16
        assert snapshot.colors_count == 2
        assert snapshot.valid_colors == (RED, BLUE)


class TestAcknowledgement:
    """Tests for sequence advancement."""

    def test_new_record_starts_at_one(self, record: DeviceRecord) -> None:
        """Test the initial sequence of a record."""
        assert record.options.sequence == 1

    def test_ack_advances(self, record: DeviceRecord) -> None:
        """Test that an ack moves the sequence past the acknowledged one."""
        apply(record, Acknowledgement(seq=254))
        assert record.options.sequence == 255

    def test_ack_wraps_to_one(self, record: DeviceRecord) -> None:
        """Test that acknowledging 255 wraps to 1."""
        apply(record, Acknowledgement(seq=255))
        assert record.options.sequence == 1
