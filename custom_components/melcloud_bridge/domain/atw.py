"""Air to water (ATW) device mapping."""

from __future__ import annotations

from collections.abc import Callable, Mapping
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


class OperationModeState(IntEnum):
    """What the heat pump is currently doing."""

    idle = 0
    dhw = 1
    heating = 2
    cooling = 3
    defrost = 5
    legionella = 6


class OperationModeZone(IntEnum):
    """Zone control strategies."""

    room = 0
    flow = 1
    curve = 2
    room_cool = 3
    flow_cool = 4


_HEATING_ZONE_MODES = frozenset({"room", "flow", "curve"})

_ENERGY_MODES = ("cooling", "heating", "hotwater")


def _zone_mode_to_device(*, allow_cool: bool) -> Callable[[Any], int]:
    convert = enum_to_device(OperationModeZone)

    def to_device(value: Any) -> int:
        if not allow_cool and value not in _HEATING_ZONE_MODES:
            raise ValueError(f"Zone mode {value!r} requires a cooling capable unit")
        return convert(value)

    return to_device


def _zone_state(zone: str) -> Callable[[Mapping[str, Any]], str | None]:
    """Return a function deriving the state of ``zone``."""

    def compute(state: Mapping[str, Any]) -> str | None:
        operation = state.get("operation_mode_state")
        if operation is None:
            return None
        if state.get(f"boolean.idle_{zone}"):
            return OperationModeState.idle.name
        if operation == OperationModeState.defrost.name:
            return operation
        cooling = state.get(f"boolean.cooling_{zone}")
        heating = state.get(f"boolean.heating_{zone}")
        if cooling is None and heating is None:
            cooling = operation == OperationModeState.cooling.name
            heating = operation == OperationModeState.heating.name
        if cooling:
            if state.get(f"boolean.prohibit_cooling_{zone}"):
                return "prohibited"
            return OperationModeState.cooling.name
        if heating:
            if state.get(f"boolean.prohibit_heating_{zone}"):
                return "prohibited"
            return OperationModeState.heating.name
        return OperationModeState.idle.name

    return compute


def _hot_water_state(state: Mapping[str, Any]) -> str | None:
    """Return the state of the domestic hot water circuit."""

    operation = state.get("operation_mode_state")
    if operation is None:
        return None
    if state.get("boolean.prohibit_hot_water"):
        return "prohibited"
    if operation in (OperationModeState.dhw.name, OperationModeState.legionella.name):
        return operation
    return OperationModeState.idle.name


def _store_capabilities(store: Mapping[str, Any]) -> tuple[str, ...]:
    can_cool = bool(store.get("canCool"))
    has_zone2 = bool(store.get("hasZone2"))
    capabilities = [
        "operation_mode_zone_with_cool" if can_cool else "operation_mode_zone"
    ]
    if can_cool:
        capabilities.extend(("target_temperature.flow_cool", "boolean.cooling_zone1", "boolean.prohibit_cooling_zone1"))
    if has_zone2:
        capabilities.extend(
            (
                "operation_mode_zone_with_cool.zone2" if can_cool else "operation_mode_zone.zone2",
                "measure_temperature.zone2",
                "target_temperature.zone2",
                "target_temperature.flow_heat_zone2",
                "operation_mode_state.zone2",
                "boolean.idle_zone2",
                "boolean.heating_zone2",
                "boolean.prohibit_heating_zone2",
            )
        )
        if can_cool:
            capabilities.extend(
                (
                    "target_temperature.flow_cool_zone2",
                    "boolean.cooling_zone2",
                    "boolean.prohibit_cooling_zone2",
                )
            )
    return tuple(capabilities)


def _energy_entries() -> tuple[EnergyTagEntry, ...]:
    consumed = tuple(f"Total{mode.capitalize()}Consumed" for mode in _ENERGY_MODES)
    produced = tuple(f"Total{mode.capitalize()}Produced" for mode in _ENERGY_MODES)
    entries = [
        EnergyTagEntry("meter_power.daily_consumed", consumed),
        EnergyTagEntry("meter_power.daily_produced", produced),
        EnergyTagEntry("meter_power.daily_cop", produced, consumed),
        EnergyTagEntry("meter_power.consumed_total", consumed),
        EnergyTagEntry("meter_power.produced_total", produced),
        EnergyTagEntry("meter_power.cop_total", produced, consumed),
    ]
    for mode, consumed_tag, produced_tag in zip(_ENERGY_MODES, consumed, produced):
        entries.extend(
            (
                EnergyTagEntry(f"meter_power.daily_consumed_{mode}", (consumed_tag,)),
                EnergyTagEntry(f"meter_power.daily_produced_{mode}", (produced_tag,)),
                EnergyTagEntry(f"meter_power.daily_cop_{mode}", (produced_tag,), (consumed_tag,)),
                EnergyTagEntry(f"meter_power.consumed_{mode}_total", (consumed_tag,)),
                EnergyTagEntry(f"meter_power.produced_{mode}_total", (produced_tag,)),
                EnergyTagEntry(f"meter_power.cop_{mode}_total", (produced_tag,), (consumed_tag,)),
            )
        )
    return tuple(entries)


_ENERGY_ENTRIES = _energy_entries()

_ZONE_WITH_COOL_TO_DEVICE = _zone_mode_to_device(allow_cool=True)
_ZONE_TO_DEVICE = _zone_mode_to_device(allow_cool=False)
_ZONE_FROM_DEVICE = enum_from_device(OperationModeZone)

_LIST_ENTRIES = (
    ("alarm_generic.booster_heater1", "BoosterHeater1Status"),
    ("alarm_generic.booster_heater2", "BoosterHeater2Status"),
    ("alarm_generic.booster_heater2_plus", "BoosterHeater2PlusStatus"),
    ("alarm_generic.eco_hot_water", "EcoHotWater"),
    ("alarm_generic.immersion_heater", "ImmersionHeaterStatus"),
    ("boolean.cooling_zone1", "Zone1InCoolMode"),
    ("boolean.cooling_zone2", "Zone2InCoolMode"),
    ("boolean.heating_zone1", "Zone1InHeatMode"),
    ("boolean.heating_zone2", "Zone2InHeatMode"),
    ("last_legionella", "LastLegionellaActivationTime"),
    ("measure_power", "CurrentEnergyConsumed"),
    ("measure_power.produced", "CurrentEnergyProduced"),
    ("measure_power.heat_pump_frequency", "HeatPumpFrequency"),
    ("measure_power.wifi", "WifiSignalStrength"),
    ("measure_temperature.condensing", "CondensingTemperature"),
    ("measure_temperature.flow", "FlowTemperature"),
    ("measure_temperature.flow_zone1", "FlowTemperatureZone1"),
    ("measure_temperature.flow_zone2", "FlowTemperatureZone2"),
    ("measure_temperature.return", "ReturnTemperature"),
    ("measure_temperature.return_zone1", "ReturnTemperatureZone1"),
    ("measure_temperature.return_zone2", "ReturnTemperatureZone2"),
    ("measure_temperature.tank_water_mixing", "MixingTankWaterTemperature"),
    ("measure_temperature.target_curve", "TargetHCTemperatureZone1"),
    ("measure_temperature.target_curve_zone2", "TargetHCTemperatureZone2"),
)

ATW_MAPPING = DeviceClassMapping(
    device_type=DeviceType.ATW,
    set_entries=(
        CapabilityTagEntry("onoff", "Power", 0x1),
        CapabilityTagEntry(
            "operation_mode_zone", "OperationModeZone1", 0x8, _ZONE_TO_DEVICE, _ZONE_FROM_DEVICE
        ),
        CapabilityTagEntry(
            "operation_mode_zone_with_cool",
            "OperationModeZone1",
            0x8,
            _ZONE_WITH_COOL_TO_DEVICE,
            _ZONE_FROM_DEVICE,
        ),
        CapabilityTagEntry(
            "operation_mode_zone.zone2", "OperationModeZone2", 0x10, _ZONE_TO_DEVICE, _ZONE_FROM_DEVICE
        ),
        CapabilityTagEntry(
            "operation_mode_zone_with_cool.zone2",
            "OperationModeZone2",
            0x10,
            _ZONE_WITH_COOL_TO_DEVICE,
            _ZONE_FROM_DEVICE,
        ),
        CapabilityTagEntry("onoff.forced_hot_water", "ForcedHotWaterMode", 0x10000),
        CapabilityTagEntry("target_temperature", "SetTemperatureZone1", 0x200000080),
        CapabilityTagEntry("target_temperature.zone2", "SetTemperatureZone2", 0x800000200),
        CapabilityTagEntry("target_temperature.flow_cool", "SetCoolFlowTemperatureZone1", 0x1000000000000),
        CapabilityTagEntry("target_temperature.flow_heat", "SetHeatFlowTemperatureZone1", 0x1000000000000),
        CapabilityTagEntry(
            "target_temperature.flow_cool_zone2", "SetCoolFlowTemperatureZone2", 0x1000000000000
        ),
        CapabilityTagEntry(
            "target_temperature.flow_heat_zone2", "SetHeatFlowTemperatureZone2", 0x1000000000000
        ),
        CapabilityTagEntry("target_temperature.tank_water", "SetTankWaterTemperature", 0x1000000000020),
    ),
    get_entries=(
        CapabilityTagEntry("boolean.idle_zone1", "IdleZone1"),
        CapabilityTagEntry("boolean.idle_zone2", "IdleZone2"),
        CapabilityTagEntry("boolean.prohibit_cooling_zone1", "ProhibitCoolingZone1"),
        CapabilityTagEntry("boolean.prohibit_cooling_zone2", "ProhibitCoolingZone2"),
        CapabilityTagEntry("boolean.prohibit_heating_zone1", "ProhibitHeatingZone1"),
        CapabilityTagEntry("boolean.prohibit_heating_zone2", "ProhibitHeatingZone2"),
        CapabilityTagEntry("boolean.prohibit_hot_water", "ProhibitHotWater"),
        CapabilityTagEntry("measure_temperature", "RoomTemperatureZone1"),
        CapabilityTagEntry("measure_temperature.outdoor", "OutdoorTemperature"),
        CapabilityTagEntry("measure_temperature.tank_water", "TankWaterTemperature"),
        CapabilityTagEntry("measure_temperature.zone2", "RoomTemperatureZone2"),
        CapabilityTagEntry(
            "operation_mode_state", "OperationMode", from_device=enum_from_device(OperationModeState)
        ),
    ),
    list_entries=(
        *(CapabilityTagEntry(capability, tag) for capability, tag in _LIST_ENTRIES),
        CapabilityTagEntry("alarm_generic.defrost", "DefrostMode", from_device=bool),
    ),
    base_capabilities=(
        "onoff",
        "onoff.forced_hot_water",
        "measure_temperature",
        "measure_temperature.outdoor",
        "measure_temperature.tank_water",
        "target_temperature",
        "target_temperature.flow_heat",
        "target_temperature.tank_water",
        "operation_mode_state",
        "operation_mode_state.zone1",
        "operation_mode_state.hot_water",
        "boolean.idle_zone1",
        "boolean.heating_zone1",
        "boolean.prohibit_heating_zone1",
        "boolean.prohibit_hot_water",
        "alarm_generic.defrost",
    ),
    derived=(
        DerivedCapability("operation_mode_state.zone1", _zone_state("zone1")),
        DerivedCapability("operation_mode_state.zone2", _zone_state("zone2")),
        DerivedCapability("operation_mode_state.hot_water", _hot_water_state),
    ),
    store_tags={
        "canCool": "CanCool",
        "hasZone2": "HasZone2",
        "maxTankTemperature": "MaxTankTemperature",
    },
    store_capabilities=_store_capabilities,
    optional_capabilities=(
        *(
            capability
            for capability, _ in _LIST_ENTRIES
            if not capability.startswith("boolean.")
        ),
        *(entry.capability for entry in _ENERGY_ENTRIES),
    ),
    default_optional=(
        "measure_power",
        "measure_power.produced",
        "meter_power.daily_consumed",
        "meter_power.daily_produced",
        "meter_power.daily_cop",
        "meter_power.consumed_total",
        "meter_power.produced_total",
        "meter_power.cop_total",
    ),
    energy_entries=_ENERGY_ENTRIES,
    report_plans={
        ReportMode.REGULAR: ReportPlan(
            duration=timedelta(days=1),
            interval=timedelta(days=1),
            minus=timedelta(days=1),
            at={"hour": 1, "minute": 10, "second": 0},
        ),
        ReportMode.TOTAL: ReportPlan(
            duration=timedelta(days=1),
            interval=timedelta(days=1),
            minus=timedelta(days=1),
            at={"hour": 1, "minute": 5, "second": 0},
        ),
    },
)
