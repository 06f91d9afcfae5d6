from __future__ import annotations

import pytest

from custom_components.melcloud_bridge.const import DeviceType, ReportMode, SyncMode
from custom_components.melcloud_bridge.domain import (
    ATA_MAPPING,
    ATW_MAPPING,
    ERV_MAPPING,
    CapabilityTagEntry,
    DeviceClassMapping,
    combine_flags,
    has_flag,
    mapping_for,
    normalize_flags,
    select_entries,
)
from custom_components.melcloud_bridge.domain.ata import clamp_target_temperature, expand_write


def test_combine_flags_is_order_independent() -> None:
    flags = [0x1, 0x200000080, 0x1000000000020]

    assert combine_flags(flags) == combine_flags(reversed(flags)) == 0x10002000000A1
    assert combine_flags([]) == 0


def test_flags_keep_bits_beyond_64() -> None:
    mask = combine_flags([1 << 70, 0x4])

    assert mask == (1 << 70) | 0x4
    assert has_flag(mask, 1 << 70)
    assert not has_flag(mask, 0x8)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(None, 0), (12, 12), ("0x10", 16), (" 8 ", 8)],
)
def test_normalize_flags_accepts_wire_values(raw, expected) -> None:
    assert normalize_flags(raw) == expected


@pytest.mark.parametrize("raw", [True, -1, "abc", 1.5])
def test_normalize_flags_rejects_invalid(raw) -> None:
    with pytest.raises((TypeError, ValueError)):
        normalize_flags(raw)


def test_mapping_for_unsupported_type() -> None:
    assert mapping_for(DeviceType.ATW) is ATW_MAPPING
    assert mapping_for(3) is ERV_MAPPING
    with pytest.raises(ValueError):
        mapping_for(2)


def test_duplicate_capability_in_family_is_rejected() -> None:
    with pytest.raises(ValueError, match="Duplicate set capability onoff"):
        DeviceClassMapping(
            device_type=DeviceType.ATA,
            set_entries=(
                CapabilityTagEntry("onoff", "Power", 0x1),
                CapabilityTagEntry("onoff", "PowerAgain", 0x2),
            ),
            get_entries=(),
            list_entries=(),
            base_capabilities=("onoff",),
        )


def test_ata_default_capabilities() -> None:
    capabilities = ATA_MAPPING.capabilities_for({})

    assert capabilities[:3] == ("onoff", "operation_mode", "thermostat_mode")
    assert "measure_power" in capabilities
    assert "meter_power.total" in capabilities
    assert "alarm_generic.silent" not in capabilities
    assert ATA_MAPPING.capabilities_for({}, ["alarm_generic.silent"])[-1] == "alarm_generic.silent"


def test_atw_store_drives_zone_capabilities() -> None:
    plain = ATW_MAPPING.capabilities_for({"canCool": False, "hasZone2": False})
    full = ATW_MAPPING.capabilities_for({"canCool": True, "hasZone2": True})

    assert "operation_mode_zone" in plain
    assert "target_temperature.zone2" not in plain
    assert "operation_mode_zone_with_cool" in full
    assert "operation_mode_zone_with_cool.zone2" in full
    assert "target_temperature.flow_cool_zone2" in full
    assert len(full) == len(set(full))


def test_erv_sensors_follow_store() -> None:
    assert "measure_co2" in ERV_MAPPING.capabilities_for({"hasCO2Sensor": True})
    assert "measure_pm25" not in ERV_MAPPING.capabilities_for({"hasCO2Sensor": True})


def test_energy_entries_split_by_total_suffix() -> None:
    total = {entry.capability for entry in ATW_MAPPING.energy_entries_for(ReportMode.TOTAL)}
    regular = {entry.capability for entry in ATW_MAPPING.energy_entries_for(ReportMode.REGULAR)}

    assert "meter_power.cop_total" in total
    assert "meter_power.daily_cop" in regular
    assert not total & regular


def test_sync_from_selects_list_only_capabilities() -> None:
    capabilities = ATA_MAPPING.capabilities_for(
        {}, ["measure_temperature.outdoor", "alarm_generic.silent"]
    )
    data = {
        "Power": True,
        "SetTemperature": 20,
        "FanSpeed": 3,
        "ActualFanSpeed": 2,
        "OutdoorTemperature": 8,
        "RoomTemperature": 19,
    }

    selected = select_entries(ATA_MAPPING, capabilities, data, SyncMode.SYNC_FROM)

    assert [entry.capability for entry in selected] == [
        "fan_power_state",
        "measure_temperature.outdoor",
    ]


def test_non_zero_flags_restrict_set_entries() -> None:
    capabilities = ATA_MAPPING.capabilities_for({})
    data = {"EffectiveFlags": 0x4, "Power": False, "SetTemperature": 22, "RoomTemperature": 20}

    selected = select_entries(ATA_MAPPING, capabilities, data, SyncMode.SYNC_TO)

    assert [entry.capability for entry in selected] == [
        "target_temperature",
        "measure_temperature",
    ]


def test_zero_flags_leave_every_field_authoritative() -> None:
    capabilities = ATA_MAPPING.capabilities_for({})
    data = {"EffectiveFlags": 0, "Power": False, "SetTemperature": 22}

    selected = select_entries(ATA_MAPPING, capabilities, data, None)

    assert {entry.capability for entry in selected} == {"onoff", "target_temperature"}


def test_pending_capabilities_are_skipped() -> None:
    capabilities = ATA_MAPPING.capabilities_for({})
    data = {"Power": False, "SetTemperature": 22}

    selected = select_entries(
        ATA_MAPPING, capabilities, data, None, pending={"target_temperature": 23}
    )

    assert [entry.capability for entry in selected] == ["onoff"]


def test_thermostat_mode_write_expands() -> None:
    assert expand_write("thermostat_mode", "off", {}, {}) == {"onoff": False}
    assert expand_write("thermostat_mode", "cool", {}, {}) == {
        "onoff": True,
        "operation_mode": "cool",
    }
    with pytest.raises(ValueError):
        expand_write("thermostat_mode", "boost", {}, {})


def test_target_temperature_is_clamped_per_mode() -> None:
    store = {"minTempHeat": 10, "maxTempHeat": 31, "minTempCoolDry": 16, "maxTempCoolDry": 31}

    assert clamp_target_temperature(35, "heat", store) == 31
    assert clamp_target_temperature(12, "cool", store) == 16
    assert clamp_target_temperature(12, "fan", store) == 12
    with pytest.raises(ValueError):
        clamp_target_temperature("warm", "heat", store)


def test_atw_zone_mode_requires_cooling_support() -> None:
    entries = {entry.capability: entry for entry in ATW_MAPPING.set_entries}

    assert entries["operation_mode_zone"].convert_to_device("curve") == 2
    assert entries["operation_mode_zone_with_cool"].convert_to_device("flow_cool") == 4
    with pytest.raises(ValueError):
        entries["operation_mode_zone"].convert_to_device("room_cool")
