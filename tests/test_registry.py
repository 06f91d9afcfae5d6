from __future__ import annotations

from collections.abc import Callable
from datetime import date, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

from homeassistant.exceptions import ConfigEntryAuthFailed
from homeassistant.helpers.update_coordinator import UpdateFailed
import pytest

from conftest import ManualScheduler, list_device

from custom_components.melcloud_bridge.api import AuthExpiredError, ListOnHoldError
from custom_components.melcloud_bridge.codecs import decode_buildings
from custom_components.melcloud_bridge.codecs.melcloud_models import (
    FrostProtectionData,
)
from custom_components.melcloud_bridge.const import DeviceType, ReportMode, SyncMode
from custom_components.melcloud_bridge.coordinator import DeviceListCoordinator
from custom_components.melcloud_bridge.registry import DeviceRegistry


class ListCoordinator:
    """Coordinator double that fetches through the real update method."""

    def __init__(self, client: MagicMock) -> None:
        self._client = client
        self.data: Any = None
        self.last_update_success = True
        self.update_interval: timedelta | None = timedelta(minutes=5)
        self.listeners: list[Callable[[], None]] = []
        self.shutdown = AsyncMock()

    async def async_refresh(self) -> None:
        try:
            self.data = await DeviceListCoordinator._async_update_data(self)
        except (UpdateFailed, ConfigEntryAuthFailed):
            self.last_update_success = False
            raise
        self.last_update_success = True
        for listener in list(self.listeners):
            listener()

    def async_add_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        self.listeners.append(listener)
        return lambda: self.listeners.remove(listener)

    async def async_shutdown(self) -> None:
        await self.shutdown()


def _buildings(power: bool = True):
    return decode_buildings(
        [
            {
                "ID": 1,
                "Name": "Home",
                "Structure": {
                    "Devices": [list_device(10, Power=power, SetTemperature=20)],
                    "Floors": [
                        {
                            "Areas": [
                                {"Devices": [list_device(11, device_type=1, SetTemperatureZone1=21)]}
                            ]
                        }
                    ],
                    "Areas": [{"Devices": [list_device(12, device_type=7)]}],
                },
            },
            {"ID": 2, "Name": "Cabin", "Structure": {"Devices": []}},
        ]
    )


def _client() -> MagicMock:
    client = MagicMock()
    client.list_buildings = AsyncMock(return_value=_buildings())
    client.get_energy_report = AsyncMock(return_value={})
    client.get_frost_protection = AsyncMock(return_value=FrostProtectionData(FPEnabled=True))
    client.set_frost_protection = AsyncMock(return_value=None)
    client.set_holiday_mode = AsyncMock(return_value=None)
    client.get_error_log = AsyncMock(return_value=[])
    return client


async def _registry(
    client: MagicMock, scheduler: ManualScheduler, **kwargs: Any
) -> tuple[DeviceRegistry, ListCoordinator]:
    coordinator = ListCoordinator(client)
    registry = DeviceRegistry(
        client,
        coordinator,
        scheduler=scheduler,
        scheduler_factory=lambda: ManualScheduler(scheduler.now),
        **kwargs,
    )
    await registry.async_setup()
    return registry, coordinator


@pytest.mark.asyncio
async def test_setup_creates_supported_devices(scheduler: ManualScheduler) -> None:
    registry, coordinator = await _registry(_client(), scheduler)

    assert sorted(registry.devices) == [10, 11]
    assert sorted(registry.buildings) == [1, 2]
    assert registry.get_list_device(12) is not None
    assert registry.get_state(10)["state"]["target_temperature"] == 20
    assert len(coordinator.listeners) == 1
    assert registry.poll_interval == timedelta(minutes=5)
    assert [item["type"] for item in registry.list_devices()] == ["ATA", "ATW"]


@pytest.mark.asyncio
async def test_setup_surfaces_listing_failures(scheduler: ManualScheduler) -> None:
    client = _client()
    client.list_buildings.side_effect = AuthExpiredError("Unauthorized")
    with pytest.raises(ConfigEntryAuthFailed):
        await _registry(client, scheduler)

    client.list_buildings.side_effect = TimeoutError
    with pytest.raises(UpdateFailed):
        await _registry(client, scheduler)


@pytest.mark.asyncio
async def test_unknown_device_raises_key_error(scheduler: ManualScheduler) -> None:
    registry, _ = await _registry(_client(), scheduler)

    with pytest.raises(KeyError):
        registry.get_device(99)
    with pytest.raises(KeyError):
        await registry.async_set_capability(99, "onoff", True)


@pytest.mark.asyncio
async def test_poll_merges_every_device(scheduler: ManualScheduler) -> None:
    client = _client()
    registry, coordinator = await _registry(client, scheduler)
    client.list_buildings.return_value = _buildings(power=False)

    await coordinator.async_refresh()

    assert registry.get_device(10).get_value("onoff") is False


@pytest.mark.asyncio
async def test_sync_from_poll_only_touches_list_only_capabilities(
    scheduler: ManualScheduler,
) -> None:
    client = _client()
    registry, _ = await _registry(client, scheduler)
    client.list_buildings.return_value = _buildings(power=False)

    await registry.async_sync_from_devices(SyncMode.SYNC_FROM)

    assert registry.get_device(10).get_value("onoff") is True


@pytest.mark.asyncio
async def test_paused_registry_postpones_merges(scheduler: ManualScheduler) -> None:
    client = _client()
    registry, coordinator = await _registry(client, scheduler)
    client.list_buildings.return_value = _buildings(power=False)

    registry.pause_sync()
    await coordinator.async_refresh()

    assert registry.sync_paused
    assert registry.get_device(10).get_value("onoff") is True

    registry.plan_sync(None, None)
    assert not scheduler.is_pending("sync_from_devices")
    await coordinator.async_refresh()
    assert registry.get_device(10).get_value("onoff") is False


@pytest.mark.asyncio
async def test_planned_sync_pulls_with_mode(scheduler: ManualScheduler) -> None:
    client = _client()
    registry, _ = await _registry(client, scheduler)
    registry.pause_sync()
    client.list_buildings.return_value = _buildings(power=False)

    registry.plan_sync(timedelta(seconds=5), SyncMode.SYNC_FROM)
    assert scheduler.due("sync_from_devices") == scheduler.now() + timedelta(seconds=5)
    await scheduler.fire("sync_from_devices")

    assert client.list_buildings.await_count == 2
    assert registry.get_device(10).get_value("onoff") is True


@pytest.mark.asyncio
async def test_failed_planned_sync_is_logged_not_raised(
    scheduler: ManualScheduler, caplog: pytest.LogCaptureFixture
) -> None:
    client = _client()
    registry, _ = await _registry(client, scheduler)
    client.list_buildings.side_effect = ListOnHoldError(timedelta(hours=1))

    with pytest.raises(UpdateFailed):
        await registry.async_sync_from_devices()

    registry.plan_sync(timedelta(seconds=5), SyncMode.SYNC_FROM)
    with caplog.at_level("DEBUG"):
        await scheduler.fire("sync_from_devices")

    assert "Planned device list sync failed" in caplog.text
    assert sorted(registry.devices) == [10, 11]


@pytest.mark.asyncio
async def test_interval_change_reaches_coordinator(scheduler: ManualScheduler) -> None:
    registry, coordinator = await _registry(_client(), scheduler)

    registry.set_poll_interval(timedelta(minutes=15))

    assert coordinator.update_interval == timedelta(minutes=15)


@pytest.mark.asyncio
async def test_optional_capabilities_are_applied_per_family(
    scheduler: ManualScheduler,
) -> None:
    registry, _ = await _registry(
        _client(), scheduler, enabled_optional={DeviceType.ATA: ("measure_power.wifi",)}
    )
    ata = registry.get_device(10)
    atw = registry.get_device(11)

    assert "measure_power.wifi" in ata.capabilities
    assert "measure_power" not in ata.capabilities
    assert ata.report_engine(ReportMode.REGULAR).planned is False
    assert "meter_power.daily_consumed" in atw.capabilities

    await registry.async_set_optional_capabilities(
        {DeviceType.ATA: ("measure_power", "meter_power.total")}
    )

    assert "measure_power" in ata.capabilities
    assert "measure_power.wifi" not in ata.capabilities
    assert ata.report_engine(ReportMode.REGULAR).planned is True
    assert ata.report_engine(ReportMode.TOTAL).planned is True
    assert "meter_power.daily_consumed" in atw.capabilities


@pytest.mark.asyncio
async def test_building_operations_resolve_a_device(scheduler: ManualScheduler) -> None:
    client = _client()
    registry, _ = await _registry(client, scheduler)

    data = await registry.async_get_frost_protection(1)
    await registry.async_set_frost_protection(1, enabled=True, minimum=5, maximum=12)

    assert data.FPEnabled is True
    client.get_frost_protection.assert_awaited_once_with(10)
    client.set_frost_protection.assert_awaited_once_with(
        1, enabled=True, minimum=5, maximum=12
    )
    with pytest.raises(KeyError):
        await registry.async_set_holiday_mode(2, enabled=False)
    client.set_holiday_mode.assert_not_awaited()


@pytest.mark.asyncio
async def test_error_log_range(scheduler: ManualScheduler) -> None:
    client = _client()
    registry, _ = await _registry(client, scheduler)

    await registry.async_get_error_log(to_date=date(2024, 1, 10), days=7)
    client.get_error_log.assert_awaited_once_with(
        [10, 11], date(2024, 1, 3), date(2024, 1, 10)
    )
    with pytest.raises(ValueError):
        await registry.async_get_error_log(
            from_date=date(2024, 2, 1), to_date=date(2024, 1, 1)
        )


@pytest.mark.asyncio
async def test_shutdown_removes_devices(scheduler: ManualScheduler) -> None:
    registry, _ = await _registry(_client(), scheduler)

    await registry.async_shutdown()

    assert registry.devices == {}
    assert scheduler.timers == {}
