"""Runtime container helpers for MELCloud bridge config entries."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant

from .api import MELCloudClient, SessionManager
from .const import DOMAIN
from .registry import DeviceRegistry


class ConfigEntrySettings:
    """Persist session material in the config entry data."""

    def __init__(self, hass: HomeAssistant, entry: ConfigEntry) -> None:
        """Bind the settings to ``entry``."""

        self._hass = hass
        self._entry = entry

    def get(self, key: str) -> Any:
        """Return the stored value for ``key``."""

        return self._entry.data.get(key)

    def set(self, key: str, value: Any) -> None:
        """Persist ``value`` under ``key`` when it changed."""

        if self._entry.data.get(key) == value:
            return
        self._hass.config_entries.async_update_entry(
            self._entry, data={**self._entry.data, key: value}
        )


class MemorySettings:
    """Dictionary-backed settings for short-lived sessions."""

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        """Start from ``initial`` values."""

        self.data: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any:
        """Return the stored value for ``key``."""

        return self.data.get(key)

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``."""

        self.data[key] = value


@dataclass(slots=True)
class EntryRuntime:
    """Runtime container for a configured MELCloud entry."""

    config_entry: ConfigEntry
    session_manager: SessionManager
    client: MELCloudClient
    registry: DeviceRegistry
    debug: bool = False


def require_runtime(hass: HomeAssistant, entry_id: str | None = None) -> EntryRuntime:
    """Return the runtime stored for ``entry_id`` (or the only entry)."""

    domain_data = hass.data.get(DOMAIN)
    if not isinstance(domain_data, dict) or not domain_data:
        raise LookupError("MELCloud runtime data is unavailable")
    if entry_id is None:
        if len(domain_data) != 1:
            raise LookupError("Several MELCloud entries are loaded; pass entry_id")
        runtime = next(iter(domain_data.values()))
    else:
        runtime = domain_data.get(entry_id)
    if not isinstance(runtime, EntryRuntime):
        raise LookupError(f"No MELCloud runtime for entry {entry_id}")
    return runtime


__all__ = ["ConfigEntrySettings", "EntryRuntime", "MemorySettings", "require_runtime"]
