"""Utility helpers shared across the MELCloud bridge."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime, timedelta

from homeassistant.util import dt as dt_util

_UNITS: tuple[tuple[str, int], ...] = (
    ("day", 86_400),
    ("hour", 3_600),
    ("minute", 60),
    ("second", 1),
)


def format_duration(value: timedelta) -> str:
    """Return ``value`` as a short human readable string."""

    remaining = int(round(value.total_seconds()))
    if remaining <= 0:
        return "0 seconds"
    parts: list[str] = []
    for unit, seconds in _UNITS:
        count, remaining = divmod(remaining, seconds)
        if count:
            parts.append(f"{count} {unit}{'s' if count != 1 else ''}")
    return " ".join(parts)


def parse_expiry(value: str | None) -> datetime | None:
    """Parse a session expiry string into an aware datetime.

    MELCloud returns naive ISO timestamps in UTC.
    """

    if not value:
        return None
    parsed = dt_util.parse_datetime(str(value))
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def next_aligned(now: datetime, duration: timedelta, at: Mapping[str, int]) -> datetime:
    """Return ``now`` moved by ``duration`` and snapped to the ``at`` fields."""

    return (now + duration).replace(microsecond=0, **at)
