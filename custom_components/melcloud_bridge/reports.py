"""Periodic energy report polling for one device."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime
import logging
from typing import Any

import aiohttp
from homeassistant.util import dt as dt_util

from .api import MELCloudClient, MELCloudError
from .const import ReportMode
from .domain import EnergyTagEntry, ReportPlan
from .scheduler import Scheduler
from .utils import next_aligned

_LOGGER = logging.getLogger(__name__)

REPORT_EPOCH = date(1970, 1, 1)
POWER_MULTIPLIER = 1000


def linked_device_count(data: Mapping[str, Any], default: int = 1) -> int:
    """Return how many units share the reported consumption."""

    percentages = data.get("UsageDisclaimerPercentages")
    if not isinstance(percentages, str) or not percentages.strip():
        return default
    return len(percentages.split(","))


def _tag_total(data: Mapping[str, Any], tags: Iterable[str]) -> float:
    total = 0.0
    for tag in tags:
        value = data.get(tag)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            total += value
        elif isinstance(value, list):
            total += sum(item for item in value if isinstance(item, (int, float)))
    return total


def _hour_total(data: Mapping[str, Any], tags: Iterable[str], hour: int) -> float:
    total = 0.0
    for tag in tags:
        value = data.get(tag)
        if isinstance(value, list) and 0 <= hour < len(value):
            item = value[hour]
            if isinstance(item, (int, float)):
                total += item
    return total


def compute_report_values(
    entries: Iterable[EnergyTagEntry],
    data: Mapping[str, Any],
    *,
    hour: int,
    linked: int = 1,
) -> dict[str, float]:
    """Return capability values for a report payload.

    ``cop`` capabilities divide produced by consumed energy, falling back to a
    denominator of 1 when nothing was consumed. ``measure_power`` capabilities
    read the hourly series at ``hour`` and convert kWh to W. Everything else
    is an energy sum. Power and energy are split across ``linked`` units.
    """

    divisor = max(linked, 1)
    values: dict[str, float] = {}
    for entry in entries:
        if "cop" in entry.capability:
            consumed = _tag_total(data, entry.consumed_tags)
            values[entry.capability] = _tag_total(data, entry.tags) / (consumed or 1)
        elif entry.capability.startswith("measure_power"):
            values[entry.capability] = (
                _hour_total(data, entry.tags, hour) * POWER_MULTIPLIER / divisor
            )
        else:
            values[entry.capability] = _tag_total(data, entry.tags) / divisor
    return values


class EnergyReportEngine:
    """Fetch one report mode on its own clock-aligned cadence."""

    def __init__(
        self,
        client: MELCloudClient,
        *,
        device_id: int,
        mode: ReportMode,
        plan: ReportPlan,
        entries: Callable[[], tuple[EnergyTagEntry, ...]],
        on_values: Callable[[dict[str, float]], Any],
        scheduler: Scheduler,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        now: Callable[[], datetime] = dt_util.now,
    ) -> None:
        """Bind the engine to one device and report mode."""

        self._client = client
        self._device_id = device_id
        self._mode = mode
        self._plan = plan
        self._entries = entries
        self._on_values = on_values
        self._scheduler = scheduler
        self._logger = logger or _LOGGER
        self._now = now
        self._linked = 1
        self._planned = False

    @property
    def mode(self) -> ReportMode:
        """Return the report mode."""

        return self._mode

    @property
    def planned(self) -> bool:
        """Return True while the report cadence is armed."""

        return self._planned

    @property
    def linked_devices(self) -> int:
        """Return the last known linked device count."""

        return self._linked

    @property
    def _timeout_key(self) -> str:
        return f"{self._mode.value}_energy_report"

    @property
    def _interval_key(self) -> str:
        return f"{self._mode.value}_energy_report_interval"

    async def async_handle(self) -> None:
        """Fetch the report, publish its values and keep the cadence armed."""

        entries = self._entries()
        if not entries:
            self.unschedule()
            return
        to_date = self._now() - self._plan.minus
        from_date = REPORT_EPOCH if self._mode is ReportMode.TOTAL else to_date.date()
        try:
            data = await self._client.get_energy_report(
                self._device_id, from_date, to_date.date()
            )
        except (MELCloudError, aiohttp.ClientError, TimeoutError) as err:
            self._logger.warning("%s energy report failed: %s", self._mode.value, err)
            data = {}
        if data:
            self._linked = linked_device_count(data, self._linked)
            self._on_values(
                compute_report_values(entries, data, hour=to_date.hour, linked=self._linked)
            )
        self.schedule()

    def schedule(self) -> None:
        """Arm the first aligned run unless the cadence is already armed."""

        if self._planned:
            return
        self._planned = True
        when = next_aligned(self._now(), self._plan.duration, self._plan.at)
        self._scheduler.set_timeout_at(self._timeout_key, self._async_first_run, when)

    async def _async_first_run(self) -> None:
        await self.async_handle()
        if self._planned:
            self._scheduler.set_interval(
                self._interval_key, self.async_handle, self._plan.interval
            )

    def unschedule(self) -> None:
        """Stop the cadence; calling it again is harmless."""

        self._scheduler.clear(self._timeout_key)
        self._scheduler.clear(self._interval_key)
        if self._planned:
            self._logger.debug("%s energy report has been stopped", self._mode.value)
        self._planned = False
