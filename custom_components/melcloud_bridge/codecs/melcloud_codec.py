"""Codec helpers for MELCloud requests and responses."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime
import logging
from typing import Any

from pydantic import ValidationError

from ..const import (
    APP_VERSION,
    FROST_PROTECTION_GAP,
    FROST_PROTECTION_MAX_RANGE,
    FROST_PROTECTION_MIN_RANGE,
)
from .melcloud_models import (
    Building,
    ErrorLogEntry,
    ErrorLogRequest,
    FrostProtectionData,
    FrostProtectionRequest,
    HolidayDate,
    HolidayModeData,
    HolidayModeRequest,
    HolidayTimeZone,
    ListDevice,
    LoginInfo,
    LoginRequest,
    LoginResponse,
    ReportRequest,
    UpdateResult,
)

_LOGGER = logging.getLogger(__name__)


def encode_login(username: str, password: str) -> dict[str, Any]:
    """Return the login body for ``username``."""

    return LoginRequest(AppVersion=APP_VERSION, Email=username, Password=password).model_dump()


def decode_login(raw: Any) -> LoginInfo | None:
    """Return the session material of a login response, if any."""

    try:
        return LoginResponse.model_validate(raw).LoginData
    except ValidationError:
        _LOGGER.debug("Unexpected login payload shape (%s)", type(raw).__name__)
        return None


def decode_buildings(raw: Any) -> list[Building]:
    """Validate a ``/User/ListDevices`` payload, skipping malformed buildings."""

    if not isinstance(raw, list):
        _LOGGER.debug(
            "Unexpected device list shape (%s); returning no buildings",
            type(raw).__name__,
        )
        return []
    buildings: list[Building] = []
    for item in raw:
        try:
            buildings.append(Building.model_validate(item))
        except ValidationError as err:
            _LOGGER.debug("Skipping malformed building entry: %s", err)
    return buildings


def iter_building_devices(building: Building) -> Iterable[ListDevice]:
    """Yield every device in ``building`` whatever level it hangs off."""

    structure = building.Structure
    yield from structure.Devices
    for area in structure.Areas:
        yield from area.Devices
    for floor in structure.Floors:
        yield from floor.Devices
        for area in floor.Areas:
            yield from area.Devices


def _format_date(value: date | datetime) -> str:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%dT%H:%M:%S")
    return value.isoformat()


def encode_report_request(device_id: int, from_date: date, to_date: date) -> dict[str, Any]:
    """Return the energy report body for one device."""

    return ReportRequest(
        DeviceID=device_id,
        FromDate=_format_date(from_date),
        ToDate=_format_date(to_date),
    ).model_dump()


def decode_report(raw: Any) -> dict[str, Any]:
    """Return a report payload as a plain mapping."""

    if isinstance(raw, Mapping):
        return dict(raw)
    _LOGGER.debug("Unexpected report payload shape (%s)", type(raw).__name__)
    return {}


def attribute_errors(raw: Any) -> dict[str, list[str]] | None:
    """Return the field errors carried by an update response."""

    if not isinstance(raw, Mapping):
        return None
    try:
        return UpdateResult.model_validate(raw).AttributeErrors or None
    except ValidationError:
        return None


def format_attribute_errors(errors: Mapping[str, Iterable[str]]) -> str:
    """Render field errors as ``field: message, message`` lines."""

    return "\n".join(
        f"{field}: {', '.join(messages)}" for field, messages in errors.items()
    )


def _clamp(value: int, bounds: tuple[int, int]) -> int:
    low, high = bounds
    return max(low, min(high, value))


def encode_frost_protection(
    building_id: int, *, enabled: bool, minimum: float, maximum: float
) -> dict[str, Any]:
    """Return a frost protection update with a valid temperature window."""

    try:
        low, high = int(minimum), int(maximum)
    except (TypeError, ValueError) as err:
        raise ValueError(
            f"Invalid frost protection temperatures: {minimum!r}, {maximum!r}"
        ) from err
    if low > high:
        low, high = high, low
    low = _clamp(low, FROST_PROTECTION_MIN_RANGE)
    high = _clamp(high, FROST_PROTECTION_MAX_RANGE)
    if high - low < FROST_PROTECTION_GAP:
        high = low + FROST_PROTECTION_GAP
    return FrostProtectionRequest(
        Enabled=enabled,
        MinimumTemperature=low,
        MaximumTemperature=high,
        BuildingIds=[building_id],
    ).model_dump()


def decode_frost_protection(raw: Any) -> FrostProtectionData:
    """Return frost protection settings, defaulting to disabled."""

    try:
        return FrostProtectionData.model_validate(raw)
    except ValidationError:
        _LOGGER.debug("Unexpected frost protection payload (%s)", type(raw).__name__)
        return FrostProtectionData()


def encode_holiday_mode(
    building_ids: Iterable[int],
    *,
    enabled: bool,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict[str, Any]:
    """Return a holiday mode update.

    Enabling requires an end date after the start; the start defaults to now
    in the caller's timezone. Disabling clears both dates.
    """

    if enabled:
        if end is None:
            raise ValueError("An end date is required to enable holiday mode")
        start = start or datetime.now(end.tzinfo)
        if end <= start:
            raise ValueError("Holiday mode end date must be after its start date")
    request = HolidayModeRequest(
        Enabled=enabled,
        StartDate=HolidayDate.from_datetime(start) if enabled and start else None,
        EndDate=HolidayDate.from_datetime(end) if enabled and end else None,
        HMTimeZones=[HolidayTimeZone(Buildings=list(building_ids))],
    )
    return request.model_dump()


def decode_holiday_mode(raw: Any) -> HolidayModeData:
    """Return holiday mode settings, defaulting to disabled."""

    try:
        return HolidayModeData.model_validate(raw)
    except ValidationError:
        _LOGGER.debug("Unexpected holiday mode payload (%s)", type(raw).__name__)
        return HolidayModeData()


def encode_error_log_request(
    device_ids: Iterable[int], from_date: date, to_date: date
) -> dict[str, Any]:
    """Return the error log body for ``device_ids``."""

    return ErrorLogRequest(
        DeviceIDs=[str(device_id) for device_id in device_ids],
        FromDate=_format_date(from_date),
        ToDate=_format_date(to_date),
    ).model_dump()


def decode_error_log(raw: Any) -> list[ErrorLogEntry]:
    """Return error log rows that carry a message, newest first."""

    if not isinstance(raw, list):
        return []
    entries: list[ErrorLogEntry] = []
    for item in raw:
        try:
            entry = ErrorLogEntry.model_validate(item)
        except ValidationError:
            continue
        if entry.ErrorMessage:
            entries.append(entry)
    entries.sort(key=lambda entry: entry.StartDate, reverse=True)
    return entries
