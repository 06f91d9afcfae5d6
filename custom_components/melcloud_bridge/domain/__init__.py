"""Domain-layer primitives for the MELCloud bridge."""

from ..const import DeviceType
from .ata import ATA_MAPPING
from .atw import ATW_MAPPING
from .capabilities import (
    CapabilityTagEntry,
    DerivedCapability,
    DeviceClassMapping,
    EnergyTagEntry,
    ReportPlan,
    is_total_capability,
    select_entries,
)
from .erv import ERV_MAPPING
from .flags import combine_flags, has_flag, normalize_flags

MAPPINGS: dict[DeviceType, DeviceClassMapping] = {
    DeviceType.ATA: ATA_MAPPING,
    DeviceType.ATW: ATW_MAPPING,
    DeviceType.ERV: ERV_MAPPING,
}


def mapping_for(device_type: DeviceType | int) -> DeviceClassMapping:
    """Return the mapping for ``device_type`` or raise ``ValueError``."""

    try:
        return MAPPINGS[DeviceType(device_type)]
    except (KeyError, ValueError) as err:
        raise ValueError(f"Unsupported device type: {device_type}") from err


__all__ = [
    "ATA_MAPPING",
    "ATW_MAPPING",
    "CapabilityTagEntry",
    "DerivedCapability",
    "DeviceClassMapping",
    "ERV_MAPPING",
    "EnergyTagEntry",
    "MAPPINGS",
    "ReportPlan",
    "combine_flags",
    "has_flag",
    "is_total_capability",
    "mapping_for",
    "normalize_flags",
    "select_entries",
]
