"""Config flow handlers for the MELCloud bridge integration."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any

from aiohttp import ClientError, ClientResponseError
from homeassistant import config_entries
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, callback
from homeassistant.data_entry_flow import FlowResult
from homeassistant.helpers import aiohttp_client, config_validation as cv
import voluptuous as vol

from .api import MELCloudError, SessionManager
from .const import (
    CONF_ALWAYS_ON,
    CONF_CONTEXT_KEY,
    CONF_DEBUG,
    CONF_EXPIRY,
    CONF_OPTIONAL_CAPABILITIES,
    CONF_PASSWORD,
    CONF_POLL_INTERVAL,
    CONF_USERNAME,
    DEFAULT_POLL_INTERVAL,
    DOMAIN,
    MAX_POLL_INTERVAL,
    MIN_POLL_INTERVAL,
)
from .domain import mapping_for
from .runtime import MemorySettings
from .scheduler import Scheduler

_LOGGER = logging.getLogger(__name__)


class InvalidAuth(Exception):
    """MELCloud rejected the credentials."""


def _login_schema(default_user: str = "") -> vol.Schema:
    """Build the login form schema with provided defaults."""
    return vol.Schema(
        {
            vol.Required(CONF_USERNAME, default=default_user): str,
            vol.Required(CONF_PASSWORD): str,
        }
    )


async def validate_login(
    hass: HomeAssistant, username: str, password: str
) -> dict[str, Any]:
    """Log in once and return the entry data to persist."""
    settings = MemorySettings()
    scheduler = Scheduler(hass)
    manager = SessionManager(
        aiohttp_client.async_get_clientsession(hass), settings, scheduler=scheduler
    )
    try:
        if not await manager.login(username, password, raise_on_error=True):
            raise InvalidAuth
    finally:
        await scheduler.async_shutdown()
    return {
        CONF_USERNAME: username,
        CONF_PASSWORD: password,
        CONF_CONTEXT_KEY: settings.get(CONF_CONTEXT_KEY),
        CONF_EXPIRY: settings.get(CONF_EXPIRY),
    }


class MELCloudBridgeConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Initial setup, reauthentication and reconfiguration."""

    VERSION = 1

    async def _handle_login_workflow(
        self,
        *,
        step_id: str,
        user_input: dict[str, Any] | None,
        default_user: str,
    ) -> tuple[FlowResult | None, dict[str, Any]]:
        """Handle shared login form validation and error handling."""

        if user_input is None:
            return (
                self.async_show_form(
                    step_id=step_id, data_schema=_login_schema(default_user)
                ),
                {},
            )

        username = (user_input.get(CONF_USERNAME) or default_user).strip()
        password = user_input.get(CONF_PASSWORD) or ""

        errors: dict[str, str] = {}
        data: dict[str, Any] = {}
        try:
            data = await validate_login(self.hass, username, password)
        except InvalidAuth:
            errors["base"] = "invalid_auth"
        except ClientResponseError as err:
            if err.status == 429:
                errors["base"] = "rate_limited"
            elif err.status in (401, 403):
                errors["base"] = "invalid_auth"
            else:
                errors["base"] = "cannot_connect"
        except (ClientError, TimeoutError, MELCloudError):
            errors["base"] = "cannot_connect"
        except Exception:
            _LOGGER.exception("Unexpected error during %s step", step_id)
            errors["base"] = "unknown"

        if errors:
            return (
                self.async_show_form(
                    step_id=step_id,
                    data_schema=_login_schema(username or default_user),
                    errors=errors,
                ),
                {},
            )
        return None, data

    async def async_step_user(self, user_input: dict[str, Any] | None = None) -> FlowResult:
        """Collect credentials and create the config entry."""
        result, data = await self._handle_login_workflow(
            step_id="user", user_input=user_input, default_user=""
        )
        if result is not None:
            return result

        username = data[CONF_USERNAME]
        await self.async_set_unique_id(username.lower())
        self._abort_if_unique_id_configured()
        return self.async_create_entry(title=f"MELCloud ({username})", data=data)

    async def async_step_reauth(self, entry_data: Mapping[str, Any]) -> FlowResult:
        """Start reauthentication after the stored session was rejected."""
        return await self.async_step_reauth_confirm()

    async def async_step_reauth_confirm(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        """Ask for the password again and refresh the stored session."""
        return await self._async_update_credentials("reauth_confirm", user_input, "reauth_successful")

    async def async_step_reconfigure(self, user_input: dict[str, Any] | None = None) -> FlowResult:
        """Change the account credentials of an existing entry."""
        return await self._async_update_credentials(
            "reconfigure", user_input, "reconfigure_successful"
        )

    async def _async_update_credentials(
        self, step_id: str, user_input: dict[str, Any] | None, reason: str
    ) -> FlowResult:
        entry_id = self.context.get("entry_id")
        entry: ConfigEntry | None = (
            self.hass.config_entries.async_get_entry(entry_id) if entry_id else None
        )
        if entry is None:
            return self.async_abort(reason="no_config_entry")

        result, data = await self._handle_login_workflow(
            step_id=step_id,
            user_input=user_input,
            default_user=entry.data.get(CONF_USERNAME, ""),
        )
        if result is not None:
            return result

        self.hass.config_entries.async_update_entry(entry, data={**entry.data, **data})
        await self.hass.config_entries.async_reload(entry.entry_id)
        return self.async_abort(reason=reason)

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: ConfigEntry) -> MELCloudBridgeOptionsFlow:
        """Return the options flow handler for this config entry."""
        return MELCloudBridgeOptionsFlow(config_entry)


class MELCloudBridgeOptionsFlow(config_entries.OptionsFlow):
    """Options flow for polling, always-on, optional capabilities and debug logging."""

    def __init__(self, entry: ConfigEntry) -> None:
        """Store the entry being configured."""
        self.entry = entry

    def _default(self, key: str, fallback: Any) -> Any:
        return self.entry.options.get(key, self.entry.data.get(key, fallback))

    async def async_step_init(self, user_input: dict[str, Any] | None = None) -> FlowResult:
        """Show or process the options form."""
        if user_input is not None:
            data: dict[str, Any] = {
                CONF_POLL_INTERVAL: int(user_input[CONF_POLL_INTERVAL]),
                CONF_ALWAYS_ON: bool(user_input.get(CONF_ALWAYS_ON, False)),
                CONF_DEBUG: bool(user_input.get(CONF_DEBUG, False)),
            }
            for key in CONF_OPTIONAL_CAPABILITIES.values():
                if key in user_input:
                    data[key] = list(user_input[key])
            return self.async_create_entry(title="", data=data)

        fields: dict[Any, Any] = {
            vol.Required(
                CONF_POLL_INTERVAL,
                default=self._default(CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL),
            ): vol.All(
                vol.Coerce(int),
                vol.Range(min=MIN_POLL_INTERVAL, max=MAX_POLL_INTERVAL),
            ),
            vol.Optional(
                CONF_ALWAYS_ON, default=bool(self._default(CONF_ALWAYS_ON, False))
            ): bool,
            vol.Optional(
                CONF_DEBUG, default=bool(self._default(CONF_DEBUG, False))
            ): bool,
        }
        for device_type, key in CONF_OPTIONAL_CAPABILITIES.items():
            mapping = mapping_for(device_type)
            current = self._default(key, None)
            default = [
                capability
                for capability in (
                    mapping.default_optional if current is None else current
                )
                if capability in mapping.optional_capabilities
            ]
            fields[vol.Optional(key, default=default)] = cv.multi_select(
                {capability: capability for capability in mapping.optional_capabilities}
            )
        return self.async_show_form(step_id="init", data_schema=vol.Schema(fields))
