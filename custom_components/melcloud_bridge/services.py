"""Service wiring for the MELCloud bridge."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
import logging
from typing import Any

import aiohttp
from homeassistant.core import (
    HomeAssistant,
    ServiceCall,
    ServiceResponse,
    SupportsResponse,
)
from homeassistant.exceptions import HomeAssistantError, ServiceValidationError
import homeassistant.helpers.config_validation as cv
from homeassistant.util import dt as dt_util
import voluptuous as vol

from .api import MELCloudError, ValidationFailedError
from .const import (
    DOMAIN,
    SERVICE_GET_ERROR_LOG,
    SERVICE_GET_FROST_PROTECTION,
    SERVICE_GET_HOLIDAY_MODE,
    SERVICE_GET_STATE,
    SERVICE_LIST_DEVICES,
    SERVICE_LOGIN,
    SERVICE_SET_CAPABILITY,
    SERVICE_SET_FROST_PROTECTION,
    SERVICE_SET_HOLIDAY_MODE,
    SERVICE_SYNC_NOW,
)
from .runtime import EntryRuntime, require_runtime

_LOGGER = logging.getLogger(__name__)

ATTR_ENTRY_ID = "entry_id"
ATTR_DEVICE_ID = "device_id"
ATTR_BUILDING_ID = "building_id"

_BASE = {vol.Optional(ATTR_ENTRY_ID): cv.string}

SET_CAPABILITY_SCHEMA = vol.Schema(
    {
        **_BASE,
        vol.Required(ATTR_DEVICE_ID): vol.Coerce(int),
        vol.Required("capability"): cv.string,
        vol.Required("value"): vol.Any(bool, int, float, str),
    }
)
DEVICE_SCHEMA = vol.Schema({**_BASE, vol.Required(ATTR_DEVICE_ID): vol.Coerce(int)})
ENTRY_SCHEMA = vol.Schema(_BASE)
SYNC_NOW_SCHEMA = vol.Schema({**_BASE, vol.Optional(ATTR_DEVICE_ID): vol.Coerce(int)})
LOGIN_SCHEMA = vol.Schema(
    {**_BASE, vol.Required("username"): cv.string, vol.Required("password"): cv.string}
)
BUILDING_SCHEMA = vol.Schema({**_BASE, vol.Required(ATTR_BUILDING_ID): vol.Coerce(int)})
SET_HOLIDAY_MODE_SCHEMA = vol.Schema(
    {
        **_BASE,
        vol.Required(ATTR_BUILDING_ID): vol.Coerce(int),
        vol.Required("enabled"): cv.boolean,
        vol.Optional("start"): cv.datetime,
        vol.Optional("end"): cv.datetime,
    }
)
SET_FROST_PROTECTION_SCHEMA = vol.Schema(
    {
        **_BASE,
        vol.Required(ATTR_BUILDING_ID): vol.Coerce(int),
        vol.Required("enabled"): cv.boolean,
        vol.Required("minimum"): vol.Coerce(float),
        vol.Required("maximum"): vol.Coerce(float),
    }
)
GET_ERROR_LOG_SCHEMA = vol.Schema(
    {
        **_BASE,
        vol.Optional("from_date"): cv.date,
        vol.Optional("to_date"): cv.date,
        vol.Optional("days", default=30): vol.All(vol.Coerce(int), vol.Range(min=1, max=365)),
    }
)

Handler = Callable[[EntryRuntime, ServiceCall], Awaitable[ServiceResponse]]


def _runtime(hass: HomeAssistant, call: ServiceCall) -> EntryRuntime:
    try:
        return require_runtime(hass, call.data.get(ATTR_ENTRY_ID))
    except LookupError as err:
        raise ServiceValidationError(str(err)) from err


def _wrap(hass: HomeAssistant, name: str, handler: Handler) -> Callable[[ServiceCall], Awaitable[ServiceResponse]]:
    async def _service(call: ServiceCall) -> ServiceResponse:
        _LOGGER.debug("service %s called", name)
        runtime = _runtime(hass, call)
        try:
            return await handler(runtime, call)
        except KeyError as err:
            raise ServiceValidationError(str(err.args[0] if err.args else err)) from err
        except (ValueError, ValidationFailedError) as err:
            raise ServiceValidationError(str(err)) from err
        except (MELCloudError, aiohttp.ClientError, TimeoutError) as err:
            raise HomeAssistantError(f"{name} failed: {err}") from err

    return _service


async def _set_capability(runtime: EntryRuntime, call: ServiceCall) -> ServiceResponse:
    changes = await runtime.registry.async_set_capability(
        call.data[ATTR_DEVICE_ID], call.data["capability"], call.data["value"]
    )
    return {"queued": changes}


async def _get_state(runtime: EntryRuntime, call: ServiceCall) -> ServiceResponse:
    return runtime.registry.get_state(call.data[ATTR_DEVICE_ID])


async def _list_devices(runtime: EntryRuntime, call: ServiceCall) -> ServiceResponse:
    return {"devices": runtime.registry.list_devices()}


async def _login(runtime: EntryRuntime, call: ServiceCall) -> ServiceResponse:
    ok = await runtime.session_manager.login(call.data["username"], call.data["password"])
    if not ok:
        raise HomeAssistantError("MELCloud rejected the credentials")
    expiry = runtime.session_manager.expiry
    return {"expiry": expiry.isoformat() if expiry is not None else None}


async def _sync_now(runtime: EntryRuntime, call: ServiceCall) -> ServiceResponse:
    device_id = call.data.get(ATTR_DEVICE_ID)
    if device_id is None:
        await runtime.registry.async_sync_from_devices()
        return None
    device = runtime.registry.get_device(device_id)
    if device.pending_diff:
        await device.async_sync_to_device()
    else:
        await device.async_refresh()
    return None


async def _get_holiday_mode(runtime: EntryRuntime, call: ServiceCall) -> ServiceResponse:
    data = await runtime.registry.async_get_holiday_mode(call.data[ATTR_BUILDING_ID])
    return data.model_dump()


async def _set_holiday_mode(runtime: EntryRuntime, call: ServiceCall) -> ServiceResponse:
    tz = dt_util.get_default_time_zone()
    start = call.data.get("start")
    end = call.data.get("end")
    await runtime.registry.async_set_holiday_mode(
        call.data[ATTR_BUILDING_ID],
        enabled=call.data["enabled"],
        start=start.replace(tzinfo=tz) if start and start.tzinfo is None else start,
        end=end.replace(tzinfo=tz) if end and end.tzinfo is None else end,
    )
    return None


async def _get_frost_protection(runtime: EntryRuntime, call: ServiceCall) -> ServiceResponse:
    data = await runtime.registry.async_get_frost_protection(call.data[ATTR_BUILDING_ID])
    return data.model_dump()


async def _set_frost_protection(runtime: EntryRuntime, call: ServiceCall) -> ServiceResponse:
    await runtime.registry.async_set_frost_protection(
        call.data[ATTR_BUILDING_ID],
        enabled=call.data["enabled"],
        minimum=call.data["minimum"],
        maximum=call.data["maximum"],
    )
    return None


async def _get_error_log(runtime: EntryRuntime, call: ServiceCall) -> ServiceResponse:
    entries = await runtime.registry.async_get_error_log(
        from_date=call.data.get("from_date"),
        to_date=call.data.get("to_date"),
        days=call.data["days"],
    )
    devices = runtime.registry.devices
    return {
        "errors": [
            {
                "device": devices[entry.DeviceId].name
                if entry.DeviceId in devices
                else str(entry.DeviceId),
                "date": entry.StartDate,
                "error": entry.ErrorMessage,
            }
            for entry in entries
        ]
    }


_SERVICES: tuple[tuple[str, vol.Schema, Handler, SupportsResponse], ...] = (
    (SERVICE_SET_CAPABILITY, SET_CAPABILITY_SCHEMA, _set_capability, SupportsResponse.OPTIONAL),
    (SERVICE_GET_STATE, DEVICE_SCHEMA, _get_state, SupportsResponse.ONLY),
    (SERVICE_LIST_DEVICES, ENTRY_SCHEMA, _list_devices, SupportsResponse.ONLY),
    (SERVICE_LOGIN, LOGIN_SCHEMA, _login, SupportsResponse.OPTIONAL),
    (SERVICE_SYNC_NOW, SYNC_NOW_SCHEMA, _sync_now, SupportsResponse.NONE),
    (SERVICE_GET_HOLIDAY_MODE, BUILDING_SCHEMA, _get_holiday_mode, SupportsResponse.ONLY),
    (SERVICE_SET_HOLIDAY_MODE, SET_HOLIDAY_MODE_SCHEMA, _set_holiday_mode, SupportsResponse.NONE),
    (SERVICE_GET_FROST_PROTECTION, BUILDING_SCHEMA, _get_frost_protection, SupportsResponse.ONLY),
    (
        SERVICE_SET_FROST_PROTECTION,
        SET_FROST_PROTECTION_SCHEMA,
        _set_frost_protection,
        SupportsResponse.NONE,
    ),
    (SERVICE_GET_ERROR_LOG, GET_ERROR_LOG_SCHEMA, _get_error_log, SupportsResponse.ONLY),
)


def async_register_services(hass: HomeAssistant) -> None:
    """Register every service once per Home Assistant instance."""

    for name, schema, handler, supports_response in _SERVICES:
        if hass.services.has_service(DOMAIN, name):
            continue
        hass.services.async_register(
            DOMAIN,
            name,
            _wrap(hass, name, handler),
            schema=schema,
            supports_response=supports_response,
        )


def async_unregister_services(hass: HomeAssistant) -> None:
    """Remove every service registered by the integration."""

    for name, *_ in _SERVICES:
        if hass.services.has_service(DOMAIN, name):
            hass.services.async_remove(DOMAIN, name)


__all__ = ["async_register_services", "async_unregister_services"]
