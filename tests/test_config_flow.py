from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

from aiohttp import ClientError, ClientResponseError
import pytest

from conftest import FakeSession, MockResponse, login_payload

from custom_components.melcloud_bridge import config_flow, scheduler as scheduler_module
from custom_components.melcloud_bridge.config_flow import (
    InvalidAuth,
    MELCloudBridgeConfigFlow,
    MELCloudBridgeOptionsFlow,
    validate_login,
)
from custom_components.melcloud_bridge.const import LOGIN_PATH

USER_INPUT = {"username": " user@example.com ", "password": "secret"}


@pytest.fixture(autouse=True)
def _no_timers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        scheduler_module, "async_track_point_in_utc_time", lambda hass, action, when: MagicMock()
    )


def _hass() -> MagicMock:
    hass = MagicMock()
    hass.loop = asyncio.get_running_loop()
    return hass


@pytest.mark.asyncio
async def test_validate_login_returns_entry_data(
    monkeypatch: pytest.MonkeyPatch, fake_session: FakeSession
) -> None:
    monkeypatch.setattr(
        config_flow.aiohttp_client, "async_get_clientsession", lambda hass: fake_session
    )
    fake_session.queue(LOGIN_PATH, MockResponse(200, login_payload()))

    data = await validate_login(_hass(), "user@example.com", "secret")

    assert data == {
        "username": "user@example.com",
        "password": "secret",
        "context_key": "ctx-new",
        "expiry": "2024-02-01T12:00:00",
    }


@pytest.mark.asyncio
async def test_validate_login_rejects_credentials(
    monkeypatch: pytest.MonkeyPatch, fake_session: FakeSession
) -> None:
    monkeypatch.setattr(
        config_flow.aiohttp_client, "async_get_clientsession", lambda hass: fake_session
    )
    fake_session.queue(LOGIN_PATH, MockResponse(200, {"ErrorId": 1, "LoginData": None}))

    with pytest.raises(InvalidAuth):
        await validate_login(_hass(), "user@example.com", "wrong")


def _flow() -> MELCloudBridgeConfigFlow:
    flow = MELCloudBridgeConfigFlow()
    flow.hass = MagicMock()
    flow.async_show_form = MagicMock(return_value={"type": "form"})
    return flow


def _status_error(status: int) -> ClientResponseError:
    return ClientResponseError(MagicMock(), (), status=status)


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (InvalidAuth(), "invalid_auth"),
        (_status_error(401), "invalid_auth"),
        (_status_error(429), "rate_limited"),
        (_status_error(500), "cannot_connect"),
        (ClientError("offline"), "cannot_connect"),
        (RuntimeError("bug"), "unknown"),
    ],
)
@pytest.mark.asyncio
async def test_login_errors_are_shown_on_form(
    monkeypatch: pytest.MonkeyPatch, error: Exception, expected: str
) -> None:
    monkeypatch.setattr(config_flow, "validate_login", AsyncMock(side_effect=error))
    flow = _flow()

    result, data = await flow._handle_login_workflow(
        step_id="user", user_input=dict(USER_INPUT), default_user=""
    )

    assert result == {"type": "form"}
    assert data == {}
    assert flow.async_show_form.call_args.kwargs["errors"] == {"base": expected}


@pytest.mark.asyncio
async def test_login_success_strips_username(monkeypatch: pytest.MonkeyPatch) -> None:
    validate = AsyncMock(return_value={"username": "user@example.com"})
    monkeypatch.setattr(config_flow, "validate_login", validate)
    flow = _flow()

    result, data = await flow._handle_login_workflow(
        step_id="user", user_input=dict(USER_INPUT), default_user=""
    )

    assert result is None
    assert data == {"username": "user@example.com"}
    assert validate.await_args.args[1:] == ("user@example.com", "secret")


@pytest.mark.asyncio
async def test_options_flow_saves_values() -> None:
    entry = MagicMock()
    entry.options = {}
    entry.data = {}
    flow = MELCloudBridgeOptionsFlow(entry)
    flow.async_create_entry = MagicMock(return_value={"type": "create_entry"})

    await flow.async_step_init({"poll_interval": "10", "always_on": True})

    flow.async_create_entry.assert_called_once_with(
        title="", data={"poll_interval": 10, "always_on": True, "debug": False}
    )


@pytest.mark.asyncio
async def test_options_flow_saves_optional_capabilities() -> None:
    entry = MagicMock()
    entry.options = {"optional_capabilities_ata": ["measure_power"]}
    entry.data = {}
    flow = MELCloudBridgeOptionsFlow(entry)
    flow.async_create_entry = MagicMock(return_value={"type": "create_entry"})

    await flow.async_step_init(
        {
            "poll_interval": 5,
            "optional_capabilities_ata": ("measure_power.wifi",),
            "optional_capabilities_atw": [],
        }
    )

    data = flow.async_create_entry.call_args.kwargs["data"]
    assert data["optional_capabilities_ata"] == ["measure_power.wifi"]
    assert data["optional_capabilities_atw"] == []
    assert "optional_capabilities_erv" not in data


@pytest.mark.asyncio
async def test_options_form_offers_optional_capabilities() -> None:
    entry = MagicMock()
    entry.options = {"optional_capabilities_ata": ["measure_power.wifi", "gone"]}
    entry.data = {}
    flow = MELCloudBridgeOptionsFlow(entry)
    flow.async_show_form = MagicMock(return_value={"type": "form"})

    await flow.async_step_init()

    schema = flow.async_show_form.call_args.kwargs["data_schema"]
    defaults = {str(key): key.default() for key in schema.schema}
    assert defaults["optional_capabilities_ata"] == ["measure_power.wifi"]
    assert "measure_power" in defaults["optional_capabilities_atw"]
