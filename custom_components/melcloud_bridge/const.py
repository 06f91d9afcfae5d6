"""Constants for the MELCloud bridge integration."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import timedelta
from enum import Enum
from typing import Final

# Domain
DOMAIN: Final = "melcloud_bridge"

# HTTP base & paths
API_BASE: Final = "https://app.melcloud.com/Mitsubishi.Wifi.Client"
APP_VERSION: Final = "1.32.1.0"
LOGIN_PATH: Final = "/Login/ClientLogin"
LIST_DEVICES_PATH: Final = "/User/ListDevices"
GET_DEVICE_PATH: Final = "/Device/Get"
SET_DEVICE_PATH_FMT: Final = "/Device/Set{device_type}"
ENERGY_REPORT_PATH: Final = "/EnergyCost/Report"
ERROR_LOG_PATH: Final = "/Report/GetUnitErrorLog2"
FROST_PROTECTION_GET_PATH: Final = "/FrostProtection/GetSettings"
FROST_PROTECTION_UPDATE_PATH: Final = "/FrostProtection/Update"
HOLIDAY_MODE_GET_PATH: Final = "/HolidayMode/GetSettings"
HOLIDAY_MODE_UPDATE_PATH: Final = "/HolidayMode/Update"

CONTEXT_KEY_HEADER: Final = "X-MitsContextKey"
ACCEPT_LANGUAGE: Final = "en-US,en;q=0.8"
REQUEST_TIMEOUT: Final = 25

# Persisted session settings
CONF_USERNAME: Final = "username"
CONF_PASSWORD: Final = "password"
CONF_CONTEXT_KEY: Final = "context_key"
CONF_EXPIRY: Final = "expiry"

# Options
CONF_POLL_INTERVAL: Final = "poll_interval"
CONF_ALWAYS_ON: Final = "always_on"
CONF_DEBUG: Final = "debug"
DEFAULT_POLL_INTERVAL: Final = 5
MIN_POLL_INTERVAL: Final = 1
MAX_POLL_INTERVAL: Final = 60

# Session timing
LOGIN_RETRY_COOLDOWN: Final = timedelta(minutes=1)
LIST_DEVICES_HOLD: Final = timedelta(hours=2)
LOGIN_REFRESH_MARGIN: Final = timedelta(days=1)

# Synchronisation timing
SYNC_TO_DEVICE_DELAY: Final = timedelta(seconds=1)
SYNC_FROM_DEVICE_DELAY: Final = timedelta(seconds=5)

# Write bitmask sent when nothing changed
FLAG_UNCHANGED: Final = 0


class DeviceType(int, Enum):
    """Device families exposed by MELCloud."""

    ATA = 0
    ATW = 1
    ERV = 3

    @property
    def path_name(self) -> str:
        """Return the casing used in ``/Device/Set<Type>`` paths."""

        return self.name.capitalize()


DEVICE_TYPE_LABELS: Final[Mapping[DeviceType, str]] = {
    DeviceType.ATA: "Air to air heat pump",
    DeviceType.ATW: "Air to water heat pump",
    DeviceType.ERV: "Energy recovery ventilation",
}

# Option holding the enabled optional capabilities of each device family
CONF_OPTIONAL_CAPABILITIES: Final[Mapping[DeviceType, str]] = {
    DeviceType.ATA: "optional_capabilities_ata",
    DeviceType.ATW: "optional_capabilities_atw",
    DeviceType.ERV: "optional_capabilities_erv",
}


class SyncMode(str, Enum):
    """Direction of a state merge."""

    SYNC_TO = "syncTo"
    SYNC_FROM = "syncFrom"


class ReportMode(str, Enum):
    """Energy report flavours."""

    REGULAR = "regular"
    TOTAL = "total"


# Services
SERVICE_SET_CAPABILITY: Final = "set_capability"
SERVICE_GET_STATE: Final = "get_state"
SERVICE_LIST_DEVICES: Final = "list_devices"
SERVICE_LOGIN: Final = "login"
SERVICE_SYNC_NOW: Final = "sync_now"
SERVICE_GET_HOLIDAY_MODE: Final = "get_holiday_mode"
SERVICE_SET_HOLIDAY_MODE: Final = "set_holiday_mode"
SERVICE_GET_FROST_PROTECTION: Final = "get_frost_protection"
SERVICE_SET_FROST_PROTECTION: Final = "set_frost_protection"
SERVICE_GET_ERROR_LOG: Final = "get_error_log"

# Frost protection bounds (degrees Celsius)
FROST_PROTECTION_MIN_RANGE: Final = (4, 14)
FROST_PROTECTION_MAX_RANGE: Final = (6, 16)
FROST_PROTECTION_GAP: Final = 2
