"""Pydantic models for MELCloud payloads.

Field names follow the wire casing so models round-trip without aliases.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    """Body of ``/Login/ClientLogin``."""

    model_config = ConfigDict(extra="forbid")

    AppVersion: str
    Email: str
    Password: str
    Persist: bool = True


class LoginInfo(BaseModel):
    """Session material returned on a successful login."""

    model_config = ConfigDict(extra="ignore")

    ContextKey: str
    Expiry: str


class LoginResponse(BaseModel):
    """Login payload; ``LoginData`` is null on rejected credentials."""

    model_config = ConfigDict(extra="ignore")

    LoginData: LoginInfo | None = None
    ErrorId: int | None = None


class ListDevice(BaseModel):
    """Device entry nested in the building structure."""

    model_config = ConfigDict(extra="allow")

    BuildingID: int
    DeviceID: int
    DeviceName: str = ""
    Device: dict[str, Any] = Field(default_factory=dict)

    @property
    def device_type(self) -> int | None:
        """Return the raw ``DeviceType`` carried by the device payload."""

        value = self.Device.get("DeviceType")
        return value if isinstance(value, int) else None


class AreaStructure(BaseModel):
    """Area level of a building."""

    model_config = ConfigDict(extra="allow")

    ID: int | None = None
    Name: str | None = None
    Devices: list[ListDevice] = Field(default_factory=list)


class FloorStructure(BaseModel):
    """Floor level of a building."""

    model_config = ConfigDict(extra="allow")

    ID: int | None = None
    Name: str | None = None
    Areas: list[AreaStructure] = Field(default_factory=list)
    Devices: list[ListDevice] = Field(default_factory=list)


class BuildingStructure(BaseModel):
    """Devices reachable from a building."""

    model_config = ConfigDict(extra="allow")

    Areas: list[AreaStructure] = Field(default_factory=list)
    Devices: list[ListDevice] = Field(default_factory=list)
    Floors: list[FloorStructure] = Field(default_factory=list)


class FrostProtectionData(BaseModel):
    """Frost protection settings as returned by the cloud."""

    model_config = ConfigDict(extra="ignore")

    FPEnabled: bool = False
    FPMinTemperature: float | None = None
    FPMaxTemperature: float | None = None


class HolidayModeData(BaseModel):
    """Holiday mode settings as returned by the cloud."""

    model_config = ConfigDict(extra="ignore")

    HMEnabled: bool = False
    HMStartDate: str | None = None
    HMEndDate: str | None = None


class Building(FrostProtectionData, HolidayModeData):
    """Building entry of ``/User/ListDevices``."""

    model_config = ConfigDict(extra="allow")

    ID: int
    Name: str = ""
    Structure: BuildingStructure = Field(default_factory=BuildingStructure)


class ReportRequest(BaseModel):
    """Body of ``/EnergyCost/Report``."""

    DeviceID: int
    FromDate: str
    ToDate: str
    UseCurrency: bool = False


class ErrorLogRequest(BaseModel):
    """Body of ``/Report/GetUnitErrorLog2``."""

    DeviceIDs: list[str]
    FromDate: str
    ToDate: str


class ErrorLogEntry(BaseModel):
    """One row of the unit error log."""

    model_config = ConfigDict(extra="ignore")

    DeviceId: int
    StartDate: str
    EndDate: str | None = None
    ErrorMessage: str | None = None


class FrostProtectionRequest(BaseModel):
    """Body of ``/FrostProtection/Update``."""

    Enabled: bool
    MinimumTemperature: int
    MaximumTemperature: int
    BuildingIds: list[int]


class HolidayDate(BaseModel):
    """Broken-down timestamp used by holiday mode updates."""

    Year: int
    Month: int
    Day: int
    Hour: int
    Minute: int
    Second: int

    @classmethod
    def from_datetime(cls, value: datetime) -> HolidayDate:
        """Build the wire representation of ``value``."""

        return cls(
            Year=value.year,
            Month=value.month,
            Day=value.day,
            Hour=value.hour,
            Minute=value.minute,
            Second=value.second,
        )


class HolidayTimeZone(BaseModel):
    """Buildings a holiday mode update applies to."""

    Buildings: list[int]


class HolidayModeRequest(BaseModel):
    """Body of ``/HolidayMode/Update``."""

    Enabled: bool
    StartDate: HolidayDate | None = None
    EndDate: HolidayDate | None = None
    HMTimeZones: list[HolidayTimeZone]


class UpdateResult(BaseModel):
    """Response of update endpoints carrying optional field errors."""

    model_config = ConfigDict(extra="allow")

    AttributeErrors: dict[str, list[str]] | None = None


__all__ = [
    "AreaStructure",
    "Building",
    "BuildingStructure",
    "ErrorLogEntry",
    "ErrorLogRequest",
    "FloorStructure",
    "FrostProtectionData",
    "FrostProtectionRequest",
    "HolidayDate",
    "HolidayModeData",
    "HolidayModeRequest",
    "HolidayTimeZone",
    "ListDevice",
    "LoginInfo",
    "LoginRequest",
    "LoginResponse",
    "ReportRequest",
    "UpdateResult",
]
