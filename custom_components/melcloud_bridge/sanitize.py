"""Log sanitisation helpers for MELCloud payloads."""

from __future__ import annotations

from collections.abc import Mapping
import re
from typing import Any

_CONTEXT_KEY_RE = re.compile(r"(?i)(\"?(?:contextkey|x-mitscontextkey)\"?\s*[:=]\s*\"?)([A-Za-z0-9\-]+)")
_PASSWORD_RE = re.compile(r"(?i)(\"?password\"?\s*[:=]\s*\")([^\"]*)")
_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")

_SECRET_KEYS = frozenset({"password", "contextkey", "x-mitscontextkey", "email"})


def redact_text(value: str | None) -> str:
    """Return ``value`` with context keys, passwords and emails removed."""

    if not value:
        return ""
    text = str(value)
    redacted = _CONTEXT_KEY_RE.sub(lambda match: f"{match.group(1)}***", text)
    redacted = _PASSWORD_RE.sub(lambda match: f"{match.group(1)}***", redacted)
    return _EMAIL_RE.sub("***@***", redacted)


def redact_payload(payload: Any) -> Any:
    """Return a copy of ``payload`` with secret values masked for logging."""

    if isinstance(payload, Mapping):
        return {
            key: "***"
            if str(key).lower() in _SECRET_KEYS
            else redact_payload(value)
            for key, value in payload.items()
        }
    if isinstance(payload, list):
        return [redact_payload(item) for item in payload]
    return payload


def mask_identifier(value: str | None) -> str:
    """Return a masked identifier suitable for log output."""

    if value is None:
        return ""
    trimmed = str(value).strip()
    if not trimmed:
        return ""
    if len(trimmed) <= 4:
        return "***"
    if len(trimmed) <= 8:
        return f"{trimmed[:2]}...{trimmed[-2:]}"
    return f"{trimmed[:6]}...{trimmed[-4:]}"


def email_domain(username: str | None) -> str:
    """Return the domain part of an email for log output."""

    if not username or "@" not in username:
        return "<no-domain>"
    return username.split("@")[-1]
