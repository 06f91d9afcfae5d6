"""Home Assistant entry point for the MELCloud bridge integration."""

from __future__ import annotations

from datetime import timedelta
import logging
from typing import Any

from aiohttp import ClientError
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import EVENT_HOMEASSISTANT_STOP
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryAuthFailed, ConfigEntryNotReady
from homeassistant.helpers import aiohttp_client
from homeassistant.helpers.update_coordinator import UpdateFailed

from .api import (
    ConfigurationMissingError,
    MELCloudClient,
    MELCloudError,
    SessionManager,
)
from .const import (
    CONF_ALWAYS_ON,
    CONF_DEBUG,
    CONF_OPTIONAL_CAPABILITIES,
    CONF_POLL_INTERVAL,
    DEFAULT_POLL_INTERVAL,
    DOMAIN,
    MAX_POLL_INTERVAL,
    MIN_POLL_INTERVAL,
    DeviceType,
)
from .coordinator import DeviceListCoordinator
from .registry import DeviceRegistry
from .runtime import ConfigEntrySettings, EntryRuntime
from .scheduler import Scheduler
from .services import async_register_services, async_unregister_services

_LOGGER = logging.getLogger(__name__)


def _entry_option(entry: ConfigEntry, key: str, default: Any) -> Any:
    return entry.options.get(key, entry.data.get(key, default))


def poll_interval_from_entry(entry: ConfigEntry) -> timedelta:
    """Return the bounded list poll interval configured for ``entry``."""

    try:
        minutes = int(_entry_option(entry, CONF_POLL_INTERVAL, DEFAULT_POLL_INTERVAL))
    except (TypeError, ValueError):
        minutes = DEFAULT_POLL_INTERVAL
    return timedelta(minutes=max(MIN_POLL_INTERVAL, min(MAX_POLL_INTERVAL, minutes)))


def optional_capabilities_from_entry(entry: ConfigEntry) -> dict[DeviceType, tuple[str, ...]]:
    """Return the optional capabilities chosen per device family.

    Families without a stored choice are left out so devices keep their
    default optional capabilities.
    """

    enabled: dict[DeviceType, tuple[str, ...]] = {}
    for device_type, key in CONF_OPTIONAL_CAPABILITIES.items():
        value = _entry_option(entry, key, None)
        if isinstance(value, (list, tuple)):
            enabled[device_type] = tuple(str(capability) for capability in value)
    return enabled


def _apply_debug_logging(enabled: bool) -> None:
    logging.getLogger(__package__).setLevel(logging.DEBUG if enabled else logging.NOTSET)


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up the MELCloud bridge for a config entry."""

    debug_enabled = bool(_entry_option(entry, CONF_DEBUG, False))
    _apply_debug_logging(debug_enabled)

    session_manager = SessionManager(
        aiohttp_client.async_get_clientsession(hass),
        ConfigEntrySettings(hass, entry),
        scheduler=Scheduler(hass),
    )
    try:
        if not session_manager.context_key:
            if not await session_manager.login(raise_on_error=True):
                raise ConfigEntryAuthFailed("MELCloud rejected the stored credentials")
        await session_manager.async_plan_refresh_login()
    except ConfigurationMissingError as err:
        raise ConfigEntryAuthFailed from err
    except (TimeoutError, ClientError, MELCloudError) as err:
        await session_manager.async_shutdown()
        raise ConfigEntryNotReady from err

    client = MELCloudClient(session_manager)
    coordinator = DeviceListCoordinator(
        hass,
        client,
        config_entry=entry,
        update_interval=poll_interval_from_entry(entry),
    )
    registry = DeviceRegistry(
        client,
        coordinator,
        scheduler=Scheduler(hass),
        scheduler_factory=lambda: Scheduler(hass),
        always_on=bool(_entry_option(entry, CONF_ALWAYS_ON, False)),
        enabled_optional=optional_capabilities_from_entry(entry),
    )
    try:
        await registry.async_setup()
    except ConfigEntryAuthFailed:
        await registry.async_shutdown()
        await session_manager.async_shutdown()
        raise
    except UpdateFailed as err:
        await registry.async_shutdown()
        await session_manager.async_shutdown()
        raise ConfigEntryNotReady from err

    _LOGGER.info("MELCloud bridge loaded %d devices", len(registry.devices))

    runtime = EntryRuntime(
        config_entry=entry,
        session_manager=session_manager,
        client=client,
        registry=registry,
        debug=debug_enabled,
    )
    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = runtime
    async_register_services(hass)

    async def _async_handle_hass_stop(_event: Any) -> None:
        """Stop background activity when Home Assistant stops."""

        await _async_shutdown_runtime(runtime)

    entry.async_on_unload(
        hass.bus.async_listen_once(EVENT_HOMEASSISTANT_STOP, _async_handle_hass_stop)
    )
    entry.async_on_unload(entry.add_update_listener(async_update_entry_options))
    return True


async def _async_shutdown_runtime(runtime: EntryRuntime) -> None:
    await runtime.registry.async_shutdown()
    await runtime.session_manager.async_shutdown()


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry and clear every timer it owns."""

    domain_data = hass.data.get(DOMAIN)
    runtime = domain_data.pop(entry.entry_id, None) if domain_data else None
    if runtime is None:
        return True
    await _async_shutdown_runtime(runtime)
    if not domain_data:
        hass.data.pop(DOMAIN, None)
        async_unregister_services(hass)
    return True


async def async_update_entry_options(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Apply option changes to the running entry."""

    runtime: EntryRuntime | None = hass.data.get(DOMAIN, {}).get(entry.entry_id)
    if runtime is None:
        return
    runtime.debug = bool(_entry_option(entry, CONF_DEBUG, False))
    _apply_debug_logging(runtime.debug)
    runtime.registry.set_poll_interval(poll_interval_from_entry(entry))
    await runtime.registry.async_set_always_on(
        bool(_entry_option(entry, CONF_ALWAYS_ON, False))
    )
    await runtime.registry.async_set_optional_capabilities(
        optional_capabilities_from_entry(entry)
    )
