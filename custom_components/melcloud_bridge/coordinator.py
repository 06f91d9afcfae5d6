"""Coordinator polling the MELCloud device list."""

from __future__ import annotations

from datetime import timedelta
import logging

from aiohttp import ClientError
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryAuthFailed
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from .api import AuthExpiredError, MELCloudClient, MELCloudError
from .codecs.melcloud_models import Building
from .const import DOMAIN

_LOGGER = logging.getLogger(__name__)


class DeviceListCoordinator(DataUpdateCoordinator[list[Building]]):
    """Poll ``/User/ListDevices`` and hand the building tree to listeners."""

    def __init__(
        self,
        hass: HomeAssistant,
        client: MELCloudClient,
        *,
        config_entry: ConfigEntry | None,
        update_interval: timedelta,
    ) -> None:
        """Initialise the coordinator for one config entry."""
        super().__init__(
            hass,
            _LOGGER,
            config_entry=config_entry,
            name=f"{DOMAIN} device list",
            update_interval=update_interval,
        )
        self._client = client

    async def async_refresh(self) -> None:
        """Refresh data and raise the failure to manual refresh callers."""

        await super().async_refresh()
        exc = self.last_exception
        if not self.last_update_success and isinstance(
            exc, (UpdateFailed, ConfigEntryAuthFailed)
        ):
            raise exc

    async def _async_update_data(self) -> list[Building]:
        """Fetch the building tree."""

        try:
            return await self._client.list_buildings()
        except AuthExpiredError as err:
            raise ConfigEntryAuthFailed(str(err)) from err
        except TimeoutError as err:
            raise UpdateFailed("API timeout") from err
        except (MELCloudError, ClientError) as err:
            raise UpdateFailed(f"API error: {err}") from err
