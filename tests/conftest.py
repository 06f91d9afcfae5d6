"""Shared test doubles for the MELCloud bridge tests."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from typing import Any

import pytest

API = "https://app.melcloud.com/Mitsubishi.Wifi.Client"


class Clock:
    """Mutable clock callable."""

    def __init__(self, value: datetime) -> None:
        self.value = value

    def __call__(self) -> datetime:
        return self.value

    def advance(self, delta: timedelta) -> None:
        self.value += delta


class MockResponse:
    def __init__(
        self,
        status: int,
        json_data: Any = None,
        *,
        text_data: str = "",
        json_error: Exception | None = None,
    ) -> None:
        self.status = status
        self._json = json_data
        self._json_error = json_error
        self._text = text_data
        self.headers: dict[str, str] = {}
        self.history = ()
        self.request_info = SimpleNamespace(real_url=API)

    async def __aenter__(self) -> MockResponse:
        await asyncio.sleep(0)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def text(self) -> str:
        return self._text

    async def json(self, content_type: str | None = None) -> Any:
        if self._json_error is not None:
            raise self._json_error
        return self._json


class FakeSession:
    """Serve queued responses per request path and record every call."""

    def __init__(self) -> None:
        self.routes: dict[str, list[MockResponse]] = {}
        self.calls: list[dict[str, Any]] = []

    def queue(self, path: str, *responses: MockResponse) -> None:
        self.routes.setdefault(path, []).extend(responses)

    def request(self, method: str, url: str, **kwargs: Any) -> MockResponse:
        path = url.removeprefix(API)
        self.calls.append({"method": method, "path": path, **kwargs})
        queue = self.routes.get(path)
        if not queue:
            raise AssertionError(f"Unexpected request {method} {path}")
        return queue.pop(0)

    @property
    def paths(self) -> list[str]:
        return [call["path"] for call in self.calls]


class ManualScheduler:
    """Scheduler double whose timers fire only when a test asks."""

    def __init__(self, now: Callable[[], datetime] | None = None) -> None:
        self._now = now or Clock(datetime(2024, 1, 10, 10, 30, tzinfo=UTC))
        self.timers: dict[str, tuple[Callable[[], Awaitable[Any]], datetime, timedelta | None]] = {}
        self.shutdown_calls = 0

    def now(self) -> datetime:
        return self._now()

    def set_timeout(self, key: str, callback, delay: timedelta) -> datetime:
        return self.set_timeout_at(key, callback, self._now() + delay)

    def set_timeout_at(self, key: str, callback, when: datetime) -> datetime:
        self.timers[key] = (callback, when, None)
        return when

    def set_interval(self, key: str, callback, interval: timedelta) -> datetime:
        when = self._now() + interval
        self.timers[key] = (callback, when, interval)
        return when

    def clear(self, key: str) -> bool:
        return self.timers.pop(key, None) is not None

    def clear_all(self) -> None:
        self.timers.clear()

    async def async_shutdown(self) -> None:
        self.shutdown_calls += 1
        self.timers.clear()

    def is_pending(self, key: str) -> bool:
        return key in self.timers

    def due(self, key: str) -> datetime | None:
        timer = self.timers.get(key)
        return timer[1] if timer else None

    async def fire(self, key: str) -> Any:
        callback, _when, interval = self.timers[key]
        if interval is None:
            del self.timers[key]
        return await callback()


def login_payload(key: str = "ctx-new", expiry: str = "2024-02-01T12:00:00") -> dict[str, Any]:
    return {"ErrorId": None, "LoginData": {"ContextKey": key, "Expiry": expiry}}


def list_device(
    device_id: int,
    *,
    device_type: int = 0,
    building_id: int = 1,
    name: str = "",
    **device: Any,
) -> dict[str, Any]:
    return {
        "BuildingID": building_id,
        "DeviceID": device_id,
        "DeviceName": name or f"Unit {device_id}",
        "Device": {"DeviceType": device_type, **device},
    }


@pytest.fixture
def clock() -> Clock:
    return Clock(datetime(2024, 1, 10, 10, 30, tzinfo=UTC))


@pytest.fixture
def scheduler(clock: Clock) -> ManualScheduler:
    return ManualScheduler(clock)


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()
