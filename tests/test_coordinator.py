from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock

from aiohttp import ClientError
from homeassistant.exceptions import ConfigEntryAuthFailed
from homeassistant.helpers.update_coordinator import UpdateFailed
import pytest

from custom_components.melcloud_bridge.api import (
    AuthExpiredError,
    RateLimitedError,
)
from custom_components.melcloud_bridge.coordinator import DeviceListCoordinator


def _stub(**client) -> SimpleNamespace:
    return SimpleNamespace(_client=SimpleNamespace(**client))


@pytest.mark.asyncio
async def test_update_returns_buildings() -> None:
    stub = _stub(list_buildings=AsyncMock(return_value=["home"]))

    assert await DeviceListCoordinator._async_update_data(stub) == ["home"]


@pytest.mark.parametrize(
    ("error", "expected", "message"),
    [
        (AuthExpiredError("Unauthorized"), ConfigEntryAuthFailed, "Unauthorized"),
        (TimeoutError(), UpdateFailed, "API timeout"),
        (RateLimitedError("Rate limited"), UpdateFailed, "API error: Rate limited"),
        (ClientError("offline"), UpdateFailed, "API error: offline"),
    ],
)
@pytest.mark.asyncio
async def test_update_maps_errors(error: Exception, expected: type, message: str) -> None:
    stub = _stub(list_buildings=AsyncMock(side_effect=error))

    with pytest.raises(expected, match=message) as err:
        await DeviceListCoordinator._async_update_data(stub)
    assert err.value.__cause__ is error
