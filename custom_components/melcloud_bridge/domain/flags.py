"""EffectiveFlags bitmask helpers.

MELCloud marks the fields of a write payload that the device must apply with
a bitmask. Masks for heat pumps go past 32 bits, so every helper works on
plain Python integers and never truncates.
"""

from __future__ import annotations

from collections.abc import Iterable

from ..const import FLAG_UNCHANGED


def combine_flags(flags: Iterable[int]) -> int:
    """Return the bitwise OR of ``flags``."""

    mask = FLAG_UNCHANGED
    for flag in flags:
        mask |= normalize_flags(flag)
    return mask


def has_flag(mask: int, flag: int) -> bool:
    """Return True when any bit of ``flag`` is set in ``mask``."""

    return bool(normalize_flags(mask) & normalize_flags(flag))


def normalize_flags(value: object) -> int:
    """Coerce a wire value into a non-negative flag integer."""

    if value is None:
        return FLAG_UNCHANGED
    if isinstance(value, bool):
        msg = f"EffectiveFlags must be an integer, got {value!r}"
        raise TypeError(msg)
    if isinstance(value, int):
        flag = value
    elif isinstance(value, str) and value.strip():
        try:
            flag = int(value.strip(), 0)
        except ValueError as err:
            raise ValueError(f"Invalid EffectiveFlags value: {value!r}") from err
    else:
        raise TypeError(f"EffectiveFlags must be an integer, got {value!r}")
    if flag < 0:
        raise ValueError(f"EffectiveFlags must not be negative: {flag}")
    return flag
