"""Keyed timers on Home Assistant's event helpers with clear-then-set semantics."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import Any

from homeassistant.core import CALLBACK_TYPE, HomeAssistant, callback
from homeassistant.helpers.event import (
    async_track_point_in_utc_time,
    async_track_time_interval,
)
from homeassistant.util import dt as dt_util

from .const import DOMAIN
from .utils import format_duration

_LOGGER = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[Any]]


@dataclass(slots=True)
class _Timer:
    key: str
    action: TimerCallback
    due: datetime
    interval: timedelta | None = None
    cancel: CALLBACK_TYPE | None = None


class Scheduler:
    """Own the timers of one component.

    Every timer has a key; arming a key that is already pending replaces the
    previous timer. Callbacks run as background tasks so a slow callback never
    blocks the timer that fired it.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        *,
        now: Callable[[], datetime] = dt_util.now,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        """Initialise the scheduler for ``hass``."""

        self._hass = hass
        self._now = now
        self._logger = logger or _LOGGER
        self._timers: dict[str, _Timer] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def now(self) -> datetime:
        """Return the scheduler's notion of the current time."""

        return self._now()

    def set_timeout(self, key: str, action: TimerCallback, delay: timedelta) -> datetime:
        """Run ``action`` once after ``delay``."""

        return self.set_timeout_at(key, action, self._now() + delay)

    def set_timeout_at(self, key: str, action: TimerCallback, when: datetime) -> datetime:
        """Run ``action`` once at ``when``."""

        self.clear(key)
        timer = _Timer(key, action, when)
        self._timers[key] = timer
        self._log_planned(timer)

        @callback
        def _fire(_now: datetime) -> None:
            if self._timers.get(key) is not timer:
                return
            del self._timers[key]
            self._start(timer)

        timer.cancel = async_track_point_in_utc_time(
            self._hass, _fire, dt_util.as_utc(when)
        )
        return when

    def set_interval(self, key: str, action: TimerCallback, interval: timedelta) -> datetime:
        """Run ``action`` every ``interval`` until cleared."""

        if interval <= timedelta(0):
            raise ValueError(f"Interval must be positive, got {interval}")
        self.clear(key)
        timer = _Timer(key, action, self._now() + interval, interval)
        self._timers[key] = timer
        self._log_planned(timer)

        @callback
        def _tick(_now: datetime) -> None:
            if self._timers.get(key) is not timer:
                return
            timer.due = self._now() + interval
            self._start(timer)

        timer.cancel = async_track_time_interval(self._hass, _tick, interval)
        return timer.due

    def clear(self, key: str) -> bool:
        """Cancel the timer stored under ``key``; return True if one was pending."""

        timer = self._timers.pop(key, None)
        if timer is None:
            return False
        if timer.cancel is not None:
            timer.cancel()
        return True

    def clear_all(self) -> None:
        """Cancel every pending timer."""

        for key in list(self._timers):
            self.clear(key)

    async def async_shutdown(self) -> None:
        """Cancel pending timers and callbacks that are still running."""

        self.clear_all()
        tasks = [task for task in self._tasks if not task.done()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()

    def is_pending(self, key: str) -> bool:
        """Return True when a timer is armed under ``key``."""

        return key in self._timers

    def due(self, key: str) -> datetime | None:
        """Return when the timer under ``key`` fires next."""

        timer = self._timers.get(key)
        return timer.due if timer is not None else None

    def _log_planned(self, timer: _Timer) -> None:
        if timer.interval is None:
            self._logger.debug(
                "%s will run in %s on %s",
                timer.key,
                format_duration(timer.due - self._now()),
                timer.due,
            )
        else:
            self._logger.debug(
                "%s will run every %s starting %s",
                timer.key,
                format_duration(timer.interval),
                timer.due,
            )

    def _start(self, timer: _Timer) -> None:
        task = self._hass.async_create_background_task(
            self._run(timer), f"{DOMAIN} {timer.key}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, timer: _Timer) -> None:
        try:
            await timer.action()
        except asyncio.CancelledError:
            raise
        except Exception:
            self._logger.exception("Scheduled %s failed", timer.key)
