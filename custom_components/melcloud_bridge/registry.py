"""Building tree, device registry and the list polling glue."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime, timedelta
import logging
from typing import Any

from homeassistant.core import callback
from homeassistant.exceptions import ConfigEntryAuthFailed
from homeassistant.helpers.update_coordinator import UpdateFailed
from homeassistant.util import dt as dt_util

from .api import MELCloudClient
from .codecs import iter_building_devices
from .codecs.melcloud_models import (
    Building,
    ErrorLogEntry,
    FrostProtectionData,
    HolidayModeData,
    ListDevice,
)
from .const import DeviceType, SyncMode
from .coordinator import DeviceListCoordinator
from .device import MELCloudDevice, RegistryHooks
from .domain import mapping_for
from .scheduler import Scheduler

_LOGGER = logging.getLogger(__name__)

_SYNC_FROM_DEVICES = "sync_from_devices"

SchedulerFactory = Callable[[], Scheduler]


class DeviceRegistry:
    """Own the flattened device list and every ``MELCloudDevice``."""

    def __init__(
        self,
        client: MELCloudClient,
        coordinator: DeviceListCoordinator,
        *,
        scheduler: Scheduler,
        scheduler_factory: SchedulerFactory,
        always_on: bool = False,
        enabled_optional: Mapping[DeviceType, Iterable[str]] | None = None,
    ) -> None:
        """Initialise an empty registry."""

        self._client = client
        self._coordinator = coordinator
        self._scheduler = scheduler
        self._scheduler_factory = scheduler_factory
        self._always_on = always_on
        self._enabled_optional = {
            device_type: tuple(capabilities)
            for device_type, capabilities in (enabled_optional or {}).items()
        }
        self._buildings: dict[int, Building] = {}
        self._list_devices: dict[int, ListDevice] = {}
        self._devices: dict[int, MELCloudDevice] = {}
        self._paused = False
        self._sync_mode: SyncMode | None = None
        self._remove_listener: Callable[[], None] | None = None
        self._hooks = RegistryHooks(
            lookup=self.get_list_device,
            plan_sync=self.plan_sync,
            pause_sync=self.pause_sync,
        )

    @property
    def buildings(self) -> dict[int, Building]:
        """Return buildings keyed by id."""

        return dict(self._buildings)

    @property
    def devices(self) -> dict[int, MELCloudDevice]:
        """Return devices keyed by id."""

        return dict(self._devices)

    @property
    def poll_interval(self) -> timedelta | None:
        """Return the list polling interval."""

        return self._coordinator.update_interval

    @property
    def sync_paused(self) -> bool:
        """Return True while list merges wait for a device write."""

        return self._paused

    def get_list_device(self, device_id: int) -> ListDevice | None:
        """Return the cached list entry of ``device_id``."""

        return self._list_devices.get(device_id)

    def get_device(self, device_id: int) -> MELCloudDevice:
        """Return the device with ``device_id`` or raise ``KeyError``."""

        try:
            return self._devices[int(device_id)]
        except (KeyError, ValueError, TypeError) as err:
            raise KeyError(f"Unknown device {device_id}") from err

    # ----------------- Listing -----------------

    def _load_buildings(self, buildings: Iterable[Building]) -> None:
        building_map: dict[int, Building] = {}
        list_devices: dict[int, ListDevice] = {}
        for building in buildings:
            building_map[building.ID] = building
            for list_device in iter_building_devices(building):
                list_devices[list_device.DeviceID] = list_device
        self._buildings = building_map
        self._list_devices = list_devices
        _LOGGER.debug(
            "Device list holds %d buildings and %d devices",
            len(self._buildings),
            len(self._list_devices),
        )

    async def async_setup(self) -> None:
        """Load the device list, create devices and start polling.

        Raises ``ConfigEntryAuthFailed`` or ``UpdateFailed`` when the first
        listing fails.
        """

        await self._coordinator.async_refresh()
        self._load_buildings(self._coordinator.data or [])
        for device_id, list_device in self._list_devices.items():
            if device_id in self._devices:
                continue
            device_type = list_device.device_type
            try:
                mapping = mapping_for(device_type if device_type is not None else -1)
            except ValueError:
                _LOGGER.info(
                    "Skipping device %s with unsupported type %s", device_id, device_type
                )
                continue
            device = MELCloudDevice(
                self._client,
                mapping,
                device_id=device_id,
                building_id=list_device.BuildingID,
                name=list_device.DeviceName,
                hooks=self._hooks,
                scheduler=self._scheduler_factory(),
                always_on=self._always_on,
                enabled_optional=self._enabled_optional.get(mapping.device_type),
            )
            self._devices[device_id] = device
            await device.async_init()
        if self._remove_listener is None:
            self._remove_listener = self._coordinator.async_add_listener(
                self._handle_list_update
            )

    # ----------------- Polling -----------------

    @callback
    def _handle_list_update(self) -> None:
        """Merge a fresh device list into every device."""

        if not self._coordinator.last_update_success or self._coordinator.data is None:
            return
        self._load_buildings(self._coordinator.data)
        if self._paused:
            _LOGGER.debug("Device write pending; list merge postponed")
            return
        sync_mode, self._sync_mode = self._sync_mode, None
        for device in self._devices.values():
            device.sync_from_list(sync_mode)

    def plan_sync(
        self, delay: timedelta | None = None, sync_mode: SyncMode | None = None
    ) -> None:
        """Resume list merges; with ``delay``, pull the list once after it."""

        self._paused = False
        if delay is None:
            return

        async def _run() -> None:
            try:
                await self.async_sync_from_devices(sync_mode)
            except (UpdateFailed, ConfigEntryAuthFailed) as err:
                _LOGGER.debug("Planned device list sync failed: %s", err)

        self._scheduler.set_timeout(_SYNC_FROM_DEVICES, _run, delay)

    def pause_sync(self) -> None:
        """Hold list merges while a device write is pending."""

        self._paused = True
        self._scheduler.clear(_SYNC_FROM_DEVICES)

    async def async_sync_from_devices(self, sync_mode: SyncMode | None = None) -> None:
        """Refresh the list now and merge it into every device.

        Raises ``UpdateFailed`` or ``ConfigEntryAuthFailed`` when the listing
        fails.
        """

        self._scheduler.clear(_SYNC_FROM_DEVICES)
        self._sync_mode = sync_mode
        await self._coordinator.async_refresh()

    def set_poll_interval(self, interval: timedelta) -> None:
        """Change the list poll interval."""

        self._coordinator.update_interval = interval

    async def async_set_always_on(self, always_on: bool) -> None:
        """Apply the always-on option to every device."""

        self._always_on = always_on
        for device in self._devices.values():
            await device.async_update_settings(always_on=always_on)

    async def async_set_optional_capabilities(
        self, enabled_optional: Mapping[DeviceType, Iterable[str]]
    ) -> None:
        """Apply the optional capabilities chosen for each device family."""

        for device_type, capabilities in enabled_optional.items():
            self._enabled_optional[device_type] = tuple(capabilities)
        for device in self._devices.values():
            capabilities = self._enabled_optional.get(device.device_type)
            if capabilities is not None:
                await device.async_update_settings(enabled_optional=capabilities)

    async def async_shutdown(self) -> None:
        """Stop polling and remove every device."""

        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        await self._coordinator.async_shutdown()
        await self._scheduler.async_shutdown()
        for device in self._devices.values():
            await device.async_remove()
        self._devices.clear()

    # ----------------- Device operations -----------------

    async def async_set_capability(
        self, device_id: int, capability: str, value: Any
    ) -> dict[str, Any]:
        """Queue a write on one device."""

        return await self.get_device(device_id).async_set_capability(capability, value)

    def get_state(self, device_id: int) -> dict[str, Any]:
        """Return the snapshot of one device."""

        return self.get_device(device_id).as_dict()

    def list_devices(self) -> list[dict[str, Any]]:
        """Return a summary of every known device."""

        return [
            {
                "device_id": device.device_id,
                "building_id": device.building_id,
                "name": device.name,
                "type": device.device_type.name,
            }
            for device in self._devices.values()
        ]

    # ----------------- Building operations -----------------

    def _building_device_id(self, building_id: int) -> int:
        for device in self._devices.values():
            if device.building_id == building_id:
                return device.device_id
        raise KeyError(f"Unknown building {building_id}")

    async def async_get_frost_protection(self, building_id: int) -> FrostProtectionData:
        """Return frost protection settings of a building."""

        return await self._client.get_frost_protection(self._building_device_id(building_id))

    async def async_set_frost_protection(
        self, building_id: int, *, enabled: bool, minimum: float, maximum: float
    ) -> None:
        """Update frost protection of a building."""

        self._building_device_id(building_id)
        await self._client.set_frost_protection(
            building_id, enabled=enabled, minimum=minimum, maximum=maximum
        )

    async def async_get_holiday_mode(self, building_id: int) -> HolidayModeData:
        """Return holiday mode settings of a building."""

        return await self._client.get_holiday_mode(self._building_device_id(building_id))

    async def async_set_holiday_mode(
        self,
        building_id: int,
        *,
        enabled: bool,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> None:
        """Update holiday mode of a building."""

        self._building_device_id(building_id)
        await self._client.set_holiday_mode(
            building_id, enabled=enabled, start=start, end=end
        )

    async def async_get_error_log(
        self,
        *,
        from_date: date | None = None,
        to_date: date | None = None,
        days: int = 30,
    ) -> list[ErrorLogEntry]:
        """Return the error log of every device, newest first."""

        to_date = to_date or dt_util.now().date()
        from_date = from_date or to_date - timedelta(days=days)
        if from_date > to_date:
            raise ValueError("from_date must not be after to_date")
        return await self._client.get_error_log(list(self._devices), from_date, to_date)

