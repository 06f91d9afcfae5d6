"""Energy recovery ventilation (ERV) device mapping."""

from __future__ import annotations

from collections.abc import Mapping
from enum import IntEnum
from typing import Any

from ..const import DeviceType
from .capabilities import (
    CapabilityTagEntry,
    DeviceClassMapping,
    enum_from_device,
    enum_to_device,
)


class VentilationMode(IntEnum):
    """ERV ventilation modes."""

    recovery = 0
    bypass = 1
    auto = 2


def _store_capabilities(store: Mapping[str, Any]) -> tuple[str, ...]:
    capabilities: list[str] = []
    if store.get("hasCO2Sensor"):
        capabilities.append("measure_co2")
    if store.get("hasPM25Sensor"):
        capabilities.append("measure_pm25")
    return tuple(capabilities)


ERV_MAPPING = DeviceClassMapping(
    device_type=DeviceType.ERV,
    set_entries=(
        CapabilityTagEntry("onoff", "Power", 0x1),
        CapabilityTagEntry(
            "ventilation_mode",
            "VentilationMode",
            0x4,
            enum_to_device(VentilationMode),
            enum_from_device(VentilationMode),
        ),
        CapabilityTagEntry("fan_power", "SetFanSpeed", 0x8, int),
    ),
    get_entries=(
        CapabilityTagEntry("measure_co2", "RoomCO2Level"),
        CapabilityTagEntry("measure_temperature", "RoomTemperature"),
        CapabilityTagEntry("measure_temperature.outdoor", "OutdoorTemperature"),
    ),
    list_entries=(
        CapabilityTagEntry("measure_pm25", "PM25Level"),
        CapabilityTagEntry("measure_power.wifi", "WifiSignalStrength"),
    ),
    base_capabilities=(
        "onoff",
        "ventilation_mode",
        "fan_power",
        "measure_temperature",
        "measure_temperature.outdoor",
    ),
    store_tags={"hasCO2Sensor": "HasCO2Sensor", "hasPM25Sensor": "HasPM25Sensor"},
    store_capabilities=_store_capabilities,
    optional_capabilities=("measure_power.wifi",),
)
