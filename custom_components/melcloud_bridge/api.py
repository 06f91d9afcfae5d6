"""MELCloud session management and endpoint client."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from datetime import date, datetime, timedelta
import logging
from typing import Any, NoReturn, Protocol

import aiohttp
from homeassistant.util import dt as dt_util

from .codecs import (
    attribute_errors,
    decode_buildings,
    decode_error_log,
    decode_frost_protection,
    decode_holiday_mode,
    decode_login,
    decode_report,
    encode_error_log_request,
    encode_frost_protection,
    encode_holiday_mode,
    encode_login,
    encode_report_request,
    format_attribute_errors,
)
from .codecs.melcloud_models import (
    Building,
    ErrorLogEntry,
    FrostProtectionData,
    HolidayModeData,
)
from .const import (
    ACCEPT_LANGUAGE,
    API_BASE,
    CONF_CONTEXT_KEY,
    CONF_EXPIRY,
    CONF_PASSWORD,
    CONF_USERNAME,
    CONTEXT_KEY_HEADER,
    ENERGY_REPORT_PATH,
    ERROR_LOG_PATH,
    FROST_PROTECTION_GET_PATH,
    FROST_PROTECTION_UPDATE_PATH,
    GET_DEVICE_PATH,
    HOLIDAY_MODE_GET_PATH,
    HOLIDAY_MODE_UPDATE_PATH,
    LIST_DEVICES_HOLD,
    LIST_DEVICES_PATH,
    LOGIN_PATH,
    LOGIN_REFRESH_MARGIN,
    LOGIN_RETRY_COOLDOWN,
    REQUEST_TIMEOUT,
    SET_DEVICE_PATH_FMT,
    DeviceType,
)
from .sanitize import email_domain, mask_identifier, redact_payload, redact_text
from .scheduler import Scheduler
from .utils import format_duration, parse_expiry

_LOGGER = logging.getLogger(__name__)

# Toggle to preview bodies in debug logs (redacted). Leave False by default.
API_LOG_PREVIEW = False

_REFRESH_LOGIN_TIMER = "refresh_login"
_RETRY_LOGIN_TIMER = "enable_login_retry"


class MELCloudError(Exception):
    """Base error raised by the MELCloud client."""


class AuthExpiredError(MELCloudError):
    """The session is not authorised and could not be renewed."""


class RateLimitedError(MELCloudError):
    """Server rate-limited the client (HTTP 429)."""


class ListOnHoldError(MELCloudError):
    """Device listing is paused after a rate limit."""

    def __init__(self, remaining: timedelta) -> None:
        """Record how long the hold still lasts."""

        super().__init__(f"Device list is on hold for {format_duration(remaining)}")
        self.remaining = remaining


class ValidationFailedError(MELCloudError):
    """An update was rejected with per-field errors."""

    def __init__(self, errors: Mapping[str, list[str]]) -> None:
        """Keep the field to messages map."""

        super().__init__(format_attribute_errors(errors))
        self.errors = dict(errors)


class ConfigurationMissingError(MELCloudError):
    """No credentials are available to log in."""


class SessionSettings(Protocol):
    """Key/value store persisting session material."""

    def get(self, key: str) -> Any:
        """Return the stored value for ``key``."""

    def set(self, key: str, value: Any) -> None:
        """Persist ``value`` under ``key``."""


class SessionManager:
    """Own the MELCloud session and every outbound request (HA-safe).

    A 401 triggers at most one re-login per cooldown window and the failed
    request is replayed once. A 429 holds only the device list endpoint.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        settings: SessionSettings,
        *,
        scheduler: Scheduler,
        api_base: str = API_BASE,
        now: Callable[[], datetime] = dt_util.utcnow,
    ) -> None:
        """Initialise the manager with an HTTP session and settings store."""

        self._session = session
        self._settings = settings
        self._scheduler = scheduler
        self._api_base = api_base.rstrip("/") if api_base else API_BASE
        self._now = now
        self._retry_enabled = True
        self._hold_until: datetime | None = None
        self._lock = asyncio.Lock()

    @property
    def username(self) -> str:
        """Return the stored username."""

        return self._settings.get(CONF_USERNAME) or ""

    @property
    def context_key(self) -> str | None:
        """Return the current context key, if any."""

        return self._settings.get(CONF_CONTEXT_KEY) or None

    @property
    def expiry(self) -> datetime | None:
        """Return when the current context key expires."""

        return parse_expiry(self._settings.get(CONF_EXPIRY))

    @property
    def retry_enabled(self) -> bool:
        """Return whether the next 401 may trigger a re-login."""

        return self._retry_enabled

    @property
    def list_hold_until(self) -> datetime | None:
        """Return the end of the device list hold, if one is active."""

        if self._hold_until is not None and self._hold_until <= self._now():
            self._hold_until = None
        return self._hold_until

    # ----------------- Session -----------------

    async def login(
        self,
        username: str | None = None,
        password: str | None = None,
        *,
        raise_on_error: bool = False,
    ) -> bool:
        """Log in with the given or stored credentials.

        Returns False without any HTTP call when credentials are missing. On
        success the credentials and session material are persisted and the
        next refresh is planned; on failure nothing is stored.
        """

        username = username if username is not None else self.username
        password = (
            password if password is not None else self._settings.get(CONF_PASSWORD) or ""
        )
        if not username or not password:
            if raise_on_error:
                raise ConfigurationMissingError("Username and password are required")
            return False

        _LOGGER.debug("Login POST for user domain=%s", email_domain(username))
        try:
            data = await self._send(
                "POST", LOGIN_PATH, json=encode_login(username, password)
            )
        except (MELCloudError, aiohttp.ClientError, TimeoutError) as err:
            if raise_on_error:
                raise
            _LOGGER.warning("Login failed: %s", redact_text(str(err)))
            return False

        login_data = decode_login(data)
        if login_data is None:
            _LOGGER.warning("Login rejected for user domain=%s", email_domain(username))
            return False

        self._settings.set(CONF_USERNAME, username)
        self._settings.set(CONF_PASSWORD, password)
        self._settings.set(CONF_CONTEXT_KEY, login_data.ContextKey)
        self._settings.set(CONF_EXPIRY, login_data.Expiry)
        _LOGGER.info(
            "Logged in to MELCloud (context=%s); session expires %s",
            mask_identifier(login_data.ContextKey),
            login_data.Expiry,
        )
        self._schedule_refresh()
        return True

    async def async_plan_refresh_login(self) -> None:
        """Plan the next refresh, logging in now if it is already due."""

        expiry = self.expiry
        if expiry is None:
            return
        if expiry - LOGIN_REFRESH_MARGIN - self._now() > timedelta(0):
            self._schedule_refresh()
            return
        self._scheduler.clear(_REFRESH_LOGIN_TIMER)
        await self._async_refresh_login()

    def _schedule_refresh(self) -> None:
        expiry = self.expiry
        if expiry is None:
            return
        when = expiry - LOGIN_REFRESH_MARGIN
        if when <= self._now():
            _LOGGER.debug("Session expires %s; no refresh planned before it", expiry)
            return
        self._scheduler.set_timeout_at(_REFRESH_LOGIN_TIMER, self._async_refresh_login, when)

    async def _async_refresh_login(self) -> None:
        if not await self.login():
            _LOGGER.warning("Scheduled MELCloud login refresh failed")

    def _disable_retry(self) -> None:
        self._retry_enabled = False
        self._scheduler.set_timeout(
            _RETRY_LOGIN_TIMER, self._async_enable_retry, LOGIN_RETRY_COOLDOWN
        )

    async def _async_enable_retry(self) -> None:
        self._retry_enabled = True

    async def _ensure_session(self) -> None:
        """Log in first when the context key is missing or expired."""

        if self._is_session_valid():
            return
        async with self._lock:
            if self._is_session_valid():
                return
            await self.login()

    def _is_session_valid(self) -> bool:
        expiry = self.expiry
        return bool(self.context_key) and (expiry is None or expiry > self._now())

    async def async_shutdown(self) -> None:
        """Cancel refresh and retry timers."""

        await self._scheduler.async_shutdown()

    # ----------------- Requests -----------------

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Send an authenticated request and return the decoded JSON body."""

        if path == LIST_DEVICES_PATH:
            hold_until = self.list_hold_until
            if hold_until is not None:
                raise ListOnHoldError(hold_until - self._now())
        await self._ensure_session()
        try:
            return await self._send(method, path, params=params, json=json, authed=True)
        except aiohttp.ClientResponseError as err:
            if err.status == 401:
                return await self._handle_unauthorized(method, path, params, json)
            self._raise_status_error(err)

    def _raise_status_error(self, err: aiohttp.ClientResponseError) -> NoReturn:
        if err.status == 429:
            self._hold_until = self._now() + LIST_DEVICES_HOLD
            _LOGGER.warning(
                "MELCloud rate limit hit; device list paused until %s",
                self._hold_until,
            )
            raise RateLimitedError("Rate limited") from err
        raise err

    async def _handle_unauthorized(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any] | None,
        json: Any,
    ) -> Any:
        if path == LOGIN_PATH or not self._retry_enabled:
            raise AuthExpiredError("Unauthorized")
        self._disable_retry()
        _LOGGER.debug("HTTP 401 on %s; logging in again", path)
        if not await self.login():
            raise AuthExpiredError("Unauthorized and login failed")
        try:
            return await self._send(method, path, params=params, json=json, authed=True)
        except aiohttp.ClientResponseError as err:
            if err.status == 401:
                raise AuthExpiredError("Unauthorized after login") from err
            self._raise_status_error(err)

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        authed: bool = False,
    ) -> Any:
        """Perform one HTTP exchange; statuses >= 400 raise ``ClientResponseError``."""

        headers = {"Accept": "application/json", "Accept-Language": ACCEPT_LANGUAGE}
        if authed and self.context_key:
            headers[CONTEXT_KEY_HEADER] = self.context_key
        url = f"{self._api_base}{path}"
        _LOGGER.debug("HTTP %s %s", method, url)
        if API_LOG_PREVIEW and json is not None:
            _LOGGER.debug("HTTP %s body=%s", url, redact_payload(json))

        async with self._session.request(
            method,
            url,
            headers=headers,
            params=dict(params) if params else None,
            json=json,
            timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT),
        ) as resp:
            if resp.status >= 400:
                try:
                    body_text = await resp.text()
                except (aiohttp.ClientError, UnicodeDecodeError):
                    body_text = "<no body>"
                _LOGGER.log(
                    logging.DEBUG if resp.status in (401, 429) else logging.ERROR,
                    "HTTP error %s %s -> %s; body=%s",
                    method,
                    url,
                    resp.status,
                    redact_text(body_text),
                )
                raise aiohttp.ClientResponseError(
                    resp.request_info,
                    resp.history,
                    status=resp.status,
                    message=redact_text(body_text),
                    headers=resp.headers,
                )
            _LOGGER.debug("HTTP %s -> %s", url, resp.status)
            try:
                return await resp.json(content_type=None)
            except ValueError as err:
                raise MELCloudError(f"Invalid JSON in response to {path}") from err


class MELCloudClient:
    """Typed wrappers around the MELCloud endpoints."""

    def __init__(self, session_manager: SessionManager) -> None:
        """Bind the client to a session manager."""

        self._sessions = session_manager

    @property
    def session_manager(self) -> SessionManager:
        """Return the session manager requests go through."""

        return self._sessions

    async def list_buildings(self) -> list[Building]:
        """Return buildings with their nested devices."""

        return decode_buildings(await self._sessions.request("GET", LIST_DEVICES_PATH))

    async def get_device(self, device_id: int, building_id: int) -> dict[str, Any]:
        """Return the live state of one device."""

        data = await self._sessions.request(
            "GET", GET_DEVICE_PATH, params={"id": device_id, "buildingId": building_id}
        )
        return dict(data) if isinstance(data, Mapping) else {}

    async def set_device(
        self, device_type: DeviceType, post_data: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Push a write payload and return the device state echoed back."""

        path = SET_DEVICE_PATH_FMT.format(device_type=device_type.path_name)
        data = await self._sessions.request("POST", path, json=dict(post_data))
        self._raise_for_attribute_errors(data)
        return dict(data) if isinstance(data, Mapping) else {}

    async def get_energy_report(
        self, device_id: int, from_date: date, to_date: date
    ) -> dict[str, Any]:
        """Return the energy report of one device for a date range."""

        data = await self._sessions.request(
            "POST",
            ENERGY_REPORT_PATH,
            json=encode_report_request(device_id, from_date, to_date),
        )
        return decode_report(data)

    async def get_error_log(
        self, device_ids: list[int], from_date: date, to_date: date
    ) -> list[ErrorLogEntry]:
        """Return the unit error log for ``device_ids``."""

        data = await self._sessions.request(
            "POST",
            ERROR_LOG_PATH,
            json=encode_error_log_request(device_ids, from_date, to_date),
        )
        self._raise_for_attribute_errors(data)
        return decode_error_log(data)

    async def get_frost_protection(self, device_id: int) -> FrostProtectionData:
        """Return the frost protection settings applying to a device."""

        data = await self._sessions.request(
            "GET",
            FROST_PROTECTION_GET_PATH,
            params={"id": device_id, "tableName": "DeviceLocation"},
        )
        return decode_frost_protection(data)

    async def set_frost_protection(
        self, building_id: int, *, enabled: bool, minimum: float, maximum: float
    ) -> None:
        """Update the frost protection settings of a building."""

        data = await self._sessions.request(
            "POST",
            FROST_PROTECTION_UPDATE_PATH,
            json=encode_frost_protection(
                building_id, enabled=enabled, minimum=minimum, maximum=maximum
            ),
        )
        self._raise_for_attribute_errors(data)

    async def get_holiday_mode(self, device_id: int) -> HolidayModeData:
        """Return the holiday mode settings applying to a device."""

        data = await self._sessions.request(
            "GET",
            HOLIDAY_MODE_GET_PATH,
            params={"id": device_id, "tableName": "DeviceLocation"},
        )
        return decode_holiday_mode(data)

    async def set_holiday_mode(
        self,
        building_id: int,
        *,
        enabled: bool,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> None:
        """Update the holiday mode settings of a building."""

        data = await self._sessions.request(
            "POST",
            HOLIDAY_MODE_UPDATE_PATH,
            json=encode_holiday_mode([building_id], enabled=enabled, start=start, end=end),
        )
        self._raise_for_attribute_errors(data)

    @staticmethod
    def _raise_for_attribute_errors(data: Any) -> None:
        errors = attribute_errors(data)
        if errors:
            raise ValidationFailedError(errors)
