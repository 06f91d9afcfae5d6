"""Per-device orchestration of writes, merges and energy reports."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import timedelta
import logging
from typing import Any

import aiohttp

from .api import MELCloudClient, MELCloudError, ValidationFailedError
from .codecs.melcloud_models import ListDevice
from .const import SYNC_FROM_DEVICE_DELAY, SYNC_TO_DEVICE_DELAY, DeviceType, ReportMode, SyncMode
from .domain import DeviceClassMapping
from .reports import EnergyReportEngine
from .scheduler import Scheduler
from .synchronizer import Synchronizer

_LOGGER = logging.getLogger(__name__)

_SYNC_TO_DEVICE = "sync_to_device"

StateListener = Callable[[dict[str, Any]], None]


class DeviceLoggerAdapter(logging.LoggerAdapter):
    """Prefix log records with the device name."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        """Return ``msg`` tagged with the device."""

        return f"[{self.extra['device']}] {msg}", kwargs


@dataclass(frozen=True, slots=True)
class RegistryHooks:
    """Registry operations a device may trigger without holding the registry."""

    lookup: Callable[[int], ListDevice | None]
    plan_sync: Callable[[timedelta | None, SyncMode | None], None]
    pause_sync: Callable[[], None]


class MELCloudDevice:
    """One MELCloud unit and its capability state."""

    def __init__(
        self,
        client: MELCloudClient,
        mapping: DeviceClassMapping,
        *,
        device_id: int,
        building_id: int,
        name: str,
        hooks: RegistryHooks,
        scheduler: Scheduler,
        always_on: bool = False,
        enabled_optional: Iterable[str] | None = None,
    ) -> None:
        """Initialise the device; no I/O happens before ``async_init``."""

        self._client = client
        self._mapping = mapping
        self._device_id = device_id
        self._building_id = building_id
        self._name = name or str(device_id)
        self._hooks = hooks
        self._always_on = always_on
        self._enabled_optional = (
            None if enabled_optional is None else tuple(enabled_optional)
        )
        self._logger = DeviceLoggerAdapter(_LOGGER, {"device": self._name})
        self._scheduler = scheduler
        self._sync = Synchronizer(
            mapping,
            mapping.capabilities_for({}, self._enabled_optional),
            logger=self._logger,
        )
        self._listeners: list[StateListener] = []
        self._reports = {
            mode: EnergyReportEngine(
                client,
                device_id=device_id,
                mode=mode,
                plan=plan,
                entries=self._report_entries(mode),
                on_values=self._apply_report_values,
                scheduler=scheduler,
                logger=self._logger,
                now=scheduler.now,
            )
            for mode, plan in mapping.report_plans.items()
        }

    # ----------------- Properties -----------------

    @property
    def device_id(self) -> int:
        """Return the MELCloud device id."""

        return self._device_id

    @property
    def building_id(self) -> int:
        """Return the building the device belongs to."""

        return self._building_id

    @property
    def name(self) -> str:
        """Return the device name."""

        return self._name

    @property
    def device_type(self) -> DeviceType:
        """Return the device family."""

        return self._mapping.device_type

    @property
    def capabilities(self) -> tuple[str, ...]:
        """Return the exposed capabilities."""

        return self._sync.capabilities

    @property
    def state(self) -> dict[str, Any]:
        """Return the merged capability state."""

        return self._sync.state

    @property
    def pending_diff(self) -> dict[str, Any]:
        """Return writes not yet pushed."""

        return self._sync.pending_diff

    @property
    def always_on(self) -> bool:
        """Return whether power is forced on for every write."""

        return self._always_on

    @property
    def sync_pending(self) -> bool:
        """Return True while a debounced push is armed."""

        return self._scheduler.is_pending(_SYNC_TO_DEVICE)

    def report_engine(self, mode: ReportMode) -> EnergyReportEngine | None:
        """Return the engine serving ``mode``, if the family has reports."""

        return self._reports.get(mode)

    def has_capability(self, capability: str) -> bool:
        """Return True when ``capability`` is exposed."""

        return capability in self._sync.capabilities

    def get_value(self, capability: str) -> Any:
        """Return the merged value of ``capability``."""

        return self._sync.state.get(capability)

    def async_add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener`` for state changes; return its remover."""

        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def as_dict(self) -> dict[str, Any]:
        """Return a serialisable snapshot of the device."""

        return {
            "device_id": self._device_id,
            "building_id": self._building_id,
            "name": self._name,
            "type": self.device_type.name,
            "capabilities": list(self.capabilities),
            "state": self.state,
            "pending": self.pending_diff,
        }

    # ----------------- Lifecycle -----------------

    async def async_init(self) -> None:
        """Load list data and start energy reports."""

        self.sync_from_list()
        await self.async_run_energy_reports()

    async def async_remove(self) -> None:
        """Stop every timer owned by the device."""

        for engine in self._reports.values():
            engine.unschedule()
        await self._scheduler.async_shutdown()
        self._listeners.clear()
        self._logger.debug("Device removed")

    # ----------------- Writes -----------------

    async def async_set_capability(self, capability: str, value: Any) -> dict[str, Any]:
        """Queue a write and (re)arm the debounced push."""

        if capability == "onoff" and self._always_on and not value:
            self._logger.warning("Always on is enabled; power stays on")
        changes = self._sync.enqueue(capability, value)
        self._logger.debug("Queued %s=%r as %s", capability, value, changes)
        self._hooks.pause_sync()
        self._scheduler.set_timeout(
            _SYNC_TO_DEVICE, self._async_debounced_push, SYNC_TO_DEVICE_DELAY
        )
        return changes

    async def _async_debounced_push(self) -> None:
        try:
            await self.async_sync_to_device()
        except ValidationFailedError as err:
            self._logger.error("MELCloud rejected the write: %s", err)

    async def async_sync_to_device(self) -> dict[str, Any] | None:
        """Push pending writes now.

        Transport and cloud failures keep the writes queued and return None.
        A ``ValidationFailedError`` drops the rejected writes and is raised.
        """

        self._scheduler.clear(_SYNC_TO_DEVICE)
        if not self._sync.has_pending_diff:
            return None
        batch = self._sync.begin_push(always_on=self._always_on)
        post_data = batch.payload.post_data(self._device_id)
        try:
            data = await self._client.set_device(self.device_type, post_data)
        except ValidationFailedError:
            self._hooks.plan_sync(None, None)
            raise
        except (MELCloudError, aiohttp.ClientError, TimeoutError) as err:
            self._sync.abort_push(batch)
            self._logger.warning("Sync to device failed: %s", err)
            self._hooks.plan_sync(None, None)
            return None
        except BaseException:
            self._sync.abort_push(batch)
            self._hooks.plan_sync(None, None)
            raise
        self._notify(self._sync.merge(data, SyncMode.SYNC_TO))
        if not self._sync.has_pending_diff:
            self._hooks.plan_sync(SYNC_FROM_DEVICE_DELAY, SyncMode.SYNC_FROM)
        return data

    # ----------------- Reads -----------------

    def sync_from_list(self, sync_mode: SyncMode | None = None) -> dict[str, Any]:
        """Merge the registry's cached list entry for this device."""

        list_device = self._hooks.lookup(self._device_id)
        if list_device is None:
            return {}
        self._name = list_device.DeviceName or self._name
        self._update_store(list_device.Device)
        changed = self._sync.merge(list_device.Device, sync_mode)
        self._notify(changed)
        return changed

    async def async_refresh(self) -> dict[str, Any] | None:
        """Fetch live state through ``/Device/Get`` and merge it."""

        try:
            data = await self._client.get_device(self._device_id, self._building_id)
        except (MELCloudError, aiohttp.ClientError, TimeoutError) as err:
            self._logger.warning("Device refresh failed: %s", err)
            return None
        changed = self._sync.merge(data)
        self._notify(changed)
        return changed

    # ----------------- Settings -----------------

    async def async_update_settings(
        self,
        *,
        always_on: bool | None = None,
        enabled_optional: Iterable[str] | None = None,
    ) -> None:
        """Apply setting changes to capabilities, power and reports."""

        if enabled_optional is not None:
            previous = set(self.capabilities)
            self._enabled_optional = tuple(enabled_optional)
            self._refresh_capabilities()
            if set(self.capabilities) != previous:
                self.sync_from_list()
                await self.async_run_energy_reports()
        if always_on is not None and always_on != self._always_on:
            self._always_on = always_on
            if always_on and self.get_value("onoff") is False:
                await self.async_set_capability("onoff", True)

    async def async_run_energy_reports(self) -> None:
        """Run every report mode once; each re-arms its own cadence."""

        for engine in self._reports.values():
            await engine.async_handle()

    # ----------------- Internals -----------------

    def _report_entries(self, mode: ReportMode) -> Callable[[], tuple[Any, ...]]:
        def entries() -> tuple[Any, ...]:
            return tuple(
                entry
                for entry in self._mapping.energy_entries_for(mode)
                if self.has_capability(entry.capability)
            )

        return entries

    def _apply_report_values(self, values: Mapping[str, Any]) -> None:
        self._notify(self._sync.apply_values(values))

    def _update_store(self, device: Mapping[str, Any]) -> None:
        if self._sync.update_store(self._mapping.build_store(device)):
            self._refresh_capabilities()

    def _refresh_capabilities(self) -> None:
        capabilities = self._mapping.capabilities_for(
            self._sync.store, self._enabled_optional
        )
        if capabilities != self._sync.capabilities:
            self._logger.debug("Capabilities now %s", capabilities)
            self._sync.set_capabilities(capabilities)

    def _notify(self, changed: dict[str, Any]) -> None:
        if not changed:
            return
        for listener in list(self._listeners):
            listener(changed)
