"""Air to air (ATA) device mapping."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import timedelta
from enum import IntEnum
from typing import Any

from ..const import DeviceType, ReportMode
from .capabilities import (
    CapabilityTagEntry,
    DerivedCapability,
    DeviceClassMapping,
    EnergyTagEntry,
    ReportPlan,
    enum_from_device,
    enum_to_device,
)


class OperationMode(IntEnum):
    """ATA operation modes."""

    heat = 1
    dry = 2
    cool = 3
    fan = 7
    auto = 8


class FanSpeed(IntEnum):
    """ATA fan speeds."""

    auto = 0
    very_slow = 1
    slow = 2
    moderate = 3
    fast = 4
    very_fast = 5
    silent = 255


class Vertical(IntEnum):
    """Vertical vane positions."""

    auto = 0
    upwards = 1
    mid_high = 2
    middle = 3
    mid_low = 4
    downwards = 5
    swing = 7


class Horizontal(IntEnum):
    """Horizontal vane positions."""

    auto = 0
    leftwards = 1
    center_left = 2
    center = 3
    center_right = 4
    rightwards = 5
    swing = 12


THERMOSTAT_OFF = "off"
_NON_THERMOSTAT_MODES = frozenset({OperationMode.dry.name, OperationMode.fan.name})

_MODES = ("auto", "cooling", "dry", "fan", "heating", "other")

# Temperature bounds per operation mode, keyed by store entries.
_TEMPERATURE_BOUNDS: dict[str, tuple[str, str]] = {
    OperationMode.auto.name: ("minTempAutomatic", "maxTempAutomatic"),
    OperationMode.cool.name: ("minTempCoolDry", "maxTempCoolDry"),
    OperationMode.dry.name: ("minTempCoolDry", "maxTempCoolDry"),
    OperationMode.heat.name: ("minTempHeat", "maxTempHeat"),
}


def _fan_speed_to_device(value: Any) -> int:
    speed = int(value)
    if speed not in {member.value for member in FanSpeed}:
        raise ValueError(f"Invalid fan speed: {value!r}")
    return speed


def _is_silent(value: Any) -> bool:
    return value == FanSpeed.silent


def _thermostat_mode(state: Mapping[str, Any]) -> str | None:
    """Return the thermostat mode implied by power and operation mode."""

    operation_mode = state.get("operation_mode")
    if not state.get("onoff") or operation_mode in _NON_THERMOSTAT_MODES:
        return THERMOSTAT_OFF
    return operation_mode


def clamp_target_temperature(
    value: Any, operation_mode: str | None, store: Mapping[str, Any]
) -> float:
    """Return ``value`` bounded by the limits of ``operation_mode``."""

    try:
        temperature = float(value)
    except (TypeError, ValueError) as err:
        raise ValueError(f"Invalid temperature value: {value!r}") from err
    keys = _TEMPERATURE_BOUNDS.get(operation_mode or "")
    if keys is None:
        return temperature
    low, high = (store.get(key) for key in keys)
    if isinstance(low, (int, float)):
        temperature = max(temperature, float(low))
    if isinstance(high, (int, float)):
        temperature = min(temperature, float(high))
    return temperature


def expand_write(
    capability: str, value: Any, state: Mapping[str, Any], store: Mapping[str, Any]
) -> dict[str, Any]:
    """Translate one requested write into capability changes."""

    if capability == "thermostat_mode":
        if value == THERMOSTAT_OFF:
            return {"onoff": False}
        if value not in OperationMode.__members__:
            raise ValueError(f"Invalid thermostat mode: {value!r}")
        return {"onoff": True, "operation_mode": value}
    if capability == "target_temperature":
        return {capability: clamp_target_temperature(value, state.get("operation_mode"), store)}
    return {capability: value}


def _energy_entries() -> tuple[EnergyTagEntry, ...]:
    hourly = tuple(mode.capitalize() for mode in _MODES)
    consumed = tuple(f"Total{mode.capitalize()}Consumed" for mode in _MODES)
    entries = [
        EnergyTagEntry("measure_power", hourly),
        EnergyTagEntry("meter_power.daily", consumed),
        EnergyTagEntry("meter_power.total", consumed),
    ]
    for mode, hourly_tag, consumed_tag in zip(_MODES, hourly, consumed):
        entries.extend(
            (
                EnergyTagEntry(f"measure_power.{mode}", (hourly_tag,)),
                EnergyTagEntry(f"meter_power.daily_{mode}", (consumed_tag,)),
                EnergyTagEntry(f"meter_power.{mode}_total", (consumed_tag,)),
            )
        )
    return tuple(entries)


_ENERGY_ENTRIES = _energy_entries()

ATA_MAPPING = DeviceClassMapping(
    device_type=DeviceType.ATA,
    set_entries=(
        CapabilityTagEntry("onoff", "Power", 0x1),
        CapabilityTagEntry(
            "operation_mode",
            "OperationMode",
            0x2,
            enum_to_device(OperationMode),
            enum_from_device(OperationMode),
        ),
        CapabilityTagEntry("target_temperature", "SetTemperature", 0x4),
        CapabilityTagEntry("fan_power", "SetFanSpeed", 0x8, _fan_speed_to_device),
        CapabilityTagEntry(
            "vertical",
            "VaneVertical",
            0x10,
            enum_to_device(Vertical),
            enum_from_device(Vertical),
        ),
        CapabilityTagEntry(
            "horizontal",
            "VaneHorizontal",
            0x100,
            enum_to_device(Horizontal),
            enum_from_device(Horizontal),
        ),
    ),
    get_entries=(
        CapabilityTagEntry("measure_temperature", "RoomTemperature"),
        CapabilityTagEntry("alarm_generic.silent", "SetFanSpeed", from_device=_is_silent),
    ),
    list_entries=(
        CapabilityTagEntry("fan_power", "FanSpeed"),
        CapabilityTagEntry("fan_power_state", "ActualFanSpeed"),
        CapabilityTagEntry(
            "vertical", "VaneVerticalDirection", from_device=enum_from_device(Vertical)
        ),
        CapabilityTagEntry(
            "horizontal",
            "VaneHorizontalDirection",
            from_device=enum_from_device(Horizontal),
        ),
        CapabilityTagEntry("alarm_generic.silent", "FanSpeed", from_device=_is_silent),
        CapabilityTagEntry("measure_temperature.outdoor", "OutdoorTemperature"),
        CapabilityTagEntry("measure_power.wifi", "WifiSignalStrength"),
    ),
    base_capabilities=(
        "onoff",
        "operation_mode",
        "thermostat_mode",
        "target_temperature",
        "measure_temperature",
        "fan_power",
        "fan_power_state",
        "vertical",
        "horizontal",
    ),
    derived=(DerivedCapability("thermostat_mode", _thermostat_mode),),
    store_tags={
        "maxTempAutomatic": "MaxTempAutomatic",
        "maxTempCoolDry": "MaxTempCoolDry",
        "maxTempHeat": "MaxTempHeat",
        "minTempAutomatic": "MinTempAutomatic",
        "minTempCoolDry": "MinTempCoolDry",
        "minTempHeat": "MinTempHeat",
    },
    optional_capabilities=(
        "alarm_generic.silent",
        "measure_temperature.outdoor",
        "measure_power.wifi",
        *(entry.capability for entry in _ENERGY_ENTRIES),
    ),
    default_optional=("measure_power", "meter_power.daily", "meter_power.total"),
    energy_entries=_ENERGY_ENTRIES,
    report_plans={
        ReportMode.REGULAR: ReportPlan(
            duration=timedelta(hours=1),
            interval=timedelta(hours=1),
            minus=timedelta(hours=1),
            at={"minute": 5, "second": 0},
        ),
        ReportMode.TOTAL: ReportPlan(
            duration=timedelta(days=1),
            interval=timedelta(days=1),
            minus=timedelta(hours=1),
            at={"hour": 1, "minute": 5, "second": 0},
        ),
    },
    synthetic_writes=frozenset({"thermostat_mode"}),
    expand_write=expand_write,
)
