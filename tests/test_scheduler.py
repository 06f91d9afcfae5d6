from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
import logging
from typing import Any
from unittest.mock import AsyncMock

import pytest

from conftest import Clock

from custom_components.melcloud_bridge import scheduler as scheduler_module
from custom_components.melcloud_bridge.scheduler import Scheduler


class FakeTrack:
    def __init__(self, action, *, when: datetime | None = None, interval: timedelta | None = None) -> None:
        self.action = action
        self.when = when
        self.interval = interval
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self, now: datetime) -> None:
        assert not self.cancelled
        self.action(now)


class FakeHass:
    """Record time trackers; run background tasks on the real loop."""

    def __init__(self) -> None:
        self.tracks: list[FakeTrack] = []
        self.task_names: list[str] = []

    def async_create_background_task(self, coro, name: str) -> asyncio.Task[Any]:
        self.task_names.append(name)
        return asyncio.get_running_loop().create_task(coro)


async def _drain() -> None:
    for _ in range(3):
        await asyncio.sleep(0)


@pytest.fixture
def hass(monkeypatch: pytest.MonkeyPatch) -> FakeHass:
    fake = FakeHass()

    def _track_point(hass, action, when):
        track = FakeTrack(action, when=when)
        hass.tracks.append(track)
        return track.cancel

    def _track_interval(hass, action, interval):
        track = FakeTrack(action, interval=interval)
        hass.tracks.append(track)
        return track.cancel

    monkeypatch.setattr(scheduler_module, "async_track_point_in_utc_time", _track_point)
    monkeypatch.setattr(scheduler_module, "async_track_time_interval", _track_interval)
    return fake


@pytest.fixture
def sched(hass: FakeHass, clock: Clock) -> Scheduler:
    return Scheduler(hass, now=clock)


@pytest.mark.asyncio
async def test_set_timeout_replaces_pending_timer(
    sched: Scheduler, hass: FakeHass, clock: Clock
) -> None:
    first = AsyncMock()
    second = AsyncMock()

    sched.set_timeout("push", first, timedelta(seconds=1))
    sched.set_timeout("push", second, timedelta(seconds=1))

    assert hass.tracks[0].cancelled
    assert hass.tracks[1].when == clock() + timedelta(seconds=1)
    clock.advance(timedelta(seconds=1))
    hass.tracks[1].fire(clock())
    await _drain()

    first.assert_not_awaited()
    second.assert_awaited_once()
    assert not sched.is_pending("push")
    assert hass.task_names == ["melcloud_bridge push"]


@pytest.mark.asyncio
async def test_far_future_timer_is_tracked_in_utc(
    sched: Scheduler, hass: FakeHass
) -> None:
    when = datetime(2024, 2, 1, 13, 0, tzinfo=UTC) + timedelta(days=40)

    sched.set_timeout_at("refresh_login", AsyncMock(), when)

    assert hass.tracks[0].when == when
    assert hass.tracks[0].when.tzinfo is not None
    assert sched.due("refresh_login") == when


@pytest.mark.asyncio
async def test_stale_fire_after_clear_is_ignored(
    sched: Scheduler, hass: FakeHass, clock: Clock
) -> None:
    action = AsyncMock()
    sched.set_timeout("push", action, timedelta(seconds=1))
    track = hass.tracks[0]
    sched.clear("push")
    track.cancelled = False

    track.fire(clock())
    await _drain()

    action.assert_not_awaited()


@pytest.mark.asyncio
async def test_interval_tracks_next_due(
    sched: Scheduler, hass: FakeHass, clock: Clock
) -> None:
    action = AsyncMock()
    sched.set_interval("poll", action, timedelta(minutes=5))

    assert hass.tracks[0].interval == timedelta(minutes=5)
    for expected in (1, 2):
        clock.advance(timedelta(minutes=5))
        hass.tracks[0].fire(clock())
        await _drain()
        assert action.await_count == expected

    assert sched.is_pending("poll")
    assert sched.due("poll") == clock() + timedelta(minutes=5)


def test_interval_must_be_positive(sched: Scheduler) -> None:
    with pytest.raises(ValueError):
        sched.set_interval("poll", AsyncMock(), timedelta(0))


def test_clear_cancels_and_reports(sched: Scheduler, hass: FakeHass) -> None:
    sched.set_timeout("push", AsyncMock(), timedelta(seconds=1))

    assert sched.clear("push") is True
    assert sched.clear("push") is False
    assert hass.tracks[0].cancelled


@pytest.mark.asyncio
async def test_callback_errors_are_logged(
    sched: Scheduler, hass: FakeHass, clock: Clock, caplog: pytest.LogCaptureFixture
) -> None:
    sched.set_timeout("boom", AsyncMock(side_effect=RuntimeError("bad")), timedelta(seconds=1))
    clock.advance(timedelta(seconds=1))

    with caplog.at_level(logging.ERROR):
        hass.tracks[0].fire(clock())
        await _drain()

    assert "Scheduled boom failed" in caplog.text


@pytest.mark.asyncio
async def test_shutdown_cancels_running_callbacks(
    sched: Scheduler, hass: FakeHass, clock: Clock
) -> None:
    started = asyncio.Event()
    cancelled = asyncio.Event()

    async def _slow() -> None:
        started.set()
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    sched.set_timeout("slow", _slow, timedelta(seconds=1))
    sched.set_timeout("other", AsyncMock(), timedelta(hours=1))
    clock.advance(timedelta(seconds=1))
    hass.tracks[0].fire(clock())
    await started.wait()

    await sched.async_shutdown()

    assert cancelled.is_set()
    assert not sched.is_pending("other")
    assert hass.tracks[1].cancelled


def test_now_uses_injected_clock() -> None:
    moment = datetime(2024, 5, 1, tzinfo=UTC)
    assert Scheduler(FakeHass(), now=lambda: moment).now() == moment
