"""Capability to remote tag mapping primitives."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any

from ..const import FLAG_UNCHANGED, DeviceType, ReportMode, SyncMode
from .flags import has_flag, normalize_flags

Converter = Callable[[Any], Any]
StoreMap = Mapping[str, Any]
WriteExpander = Callable[[str, Any, Mapping[str, Any], StoreMap], dict[str, Any]]


def enum_to_device(enum_cls: type[Enum]) -> Converter:
    """Return a converter mapping enum member names to wire integers."""

    def convert(value: Any) -> int:
        if isinstance(value, enum_cls):
            return int(value.value)
        try:
            return int(enum_cls[str(value)].value)
        except KeyError as err:
            raise ValueError(f"Invalid {enum_cls.__name__} value: {value!r}") from err

    return convert


def enum_from_device(enum_cls: type[Enum]) -> Converter:
    """Return a converter mapping wire integers to enum member names."""

    def convert(value: Any) -> str | None:
        try:
            return enum_cls(value).name
        except ValueError:
            return None

    return convert


def is_total_capability(capability: str) -> bool:
    """Return True when ``capability`` is served by the total report."""

    return capability.endswith("total")


@dataclass(frozen=True, slots=True)
class CapabilityTagEntry:
    """One capability bound to one remote field."""

    capability: str
    tag: str
    flag: int = FLAG_UNCHANGED
    to_device: Converter | None = None
    from_device: Converter | None = None

    def convert_to_device(self, value: Any) -> Any:
        """Return ``value`` in its wire representation."""

        if self.to_device is None:
            return value
        return self.to_device(value)

    def convert_from_device(self, value: Any) -> Any:
        """Return the capability value for wire ``value``."""

        if self.from_device is None:
            return value
        return self.from_device(value)


@dataclass(frozen=True, slots=True)
class DerivedCapability:
    """Capability computed from other merged capabilities."""

    capability: str
    compute: Callable[[Mapping[str, Any]], Any]


@dataclass(frozen=True, slots=True)
class EnergyTagEntry:
    """Energy capability fed by one or more report fields.

    ``tags`` are summed. For coefficient of performance capabilities ``tags``
    hold the produced fields and ``consumed_tags`` the consumed ones.
    """

    capability: str
    tags: tuple[str, ...]
    consumed_tags: tuple[str, ...] = ()

    @property
    def mode(self) -> ReportMode:
        """Return the report mode serving this capability."""

        return ReportMode.TOTAL if is_total_capability(self.capability) else ReportMode.REGULAR


@dataclass(frozen=True, slots=True)
class ReportPlan:
    """Scheduling parameters for one report mode."""

    duration: timedelta
    interval: timedelta
    minus: timedelta
    at: Mapping[str, int]


def _no_store(_: Mapping[str, Any]) -> tuple[str, ...]:
    return ()


def _plain_write(capability: str, value: Any, _state: Mapping[str, Any], _store: StoreMap) -> dict[str, Any]:
    return {capability: value}


@dataclass(frozen=True, slots=True)
class DeviceClassMapping:
    """Everything needed to translate one device family."""

    device_type: DeviceType
    set_entries: tuple[CapabilityTagEntry, ...]
    get_entries: tuple[CapabilityTagEntry, ...]
    list_entries: tuple[CapabilityTagEntry, ...]
    base_capabilities: tuple[str, ...]
    derived: tuple[DerivedCapability, ...] = ()
    store_tags: Mapping[str, str] = field(default_factory=dict)
    store_capabilities: Callable[[StoreMap], tuple[str, ...]] = _no_store
    optional_capabilities: tuple[str, ...] = ()
    default_optional: tuple[str, ...] = ()
    energy_entries: tuple[EnergyTagEntry, ...] = ()
    report_plans: Mapping[ReportMode, ReportPlan] = field(default_factory=dict)
    synthetic_writes: frozenset[str] = frozenset()
    expand_write: WriteExpander = _plain_write

    def __post_init__(self) -> None:
        """Reject duplicate capabilities inside a mapping family."""

        for name, entries in (
            ("set", self.set_entries),
            ("get", self.get_entries),
            ("list", self.list_entries),
        ):
            seen: set[str] = set()
            for entry in entries:
                if entry.capability in seen:
                    msg = f"Duplicate {name} capability {entry.capability} for {self.device_type.name}"
                    raise ValueError(msg)
                seen.add(entry.capability)

    @property
    def settable(self) -> frozenset[str]:
        """Return capabilities accepted by writes."""

        return frozenset(entry.capability for entry in self.set_entries) | self.synthetic_writes

    def build_store(self, device: Mapping[str, Any]) -> dict[str, Any]:
        """Extract the static store values from a list payload."""

        return {
            key: device[tag] for key, tag in self.store_tags.items() if tag in device
        }

    def capabilities_for(
        self, store: StoreMap, enabled_optional: Iterable[str] | None = None
    ) -> tuple[str, ...]:
        """Return the ordered capability list a device exposes."""

        optional = (
            self.default_optional if enabled_optional is None else tuple(enabled_optional)
        )
        capabilities: list[str] = []
        for capability in (
            *self.base_capabilities,
            *self.store_capabilities(store),
            *(cap for cap in self.optional_capabilities if cap in optional),
        ):
            if capability not in capabilities:
                capabilities.append(capability)
        return tuple(capabilities)

    def energy_entries_for(self, mode: ReportMode) -> tuple[EnergyTagEntry, ...]:
        """Return energy entries served by ``mode``."""

        return tuple(entry for entry in self.energy_entries if entry.mode is mode)


def select_entries(
    mapping: DeviceClassMapping,
    capabilities: Iterable[str],
    data: Mapping[str, Any],
    sync_mode: SyncMode | None,
    *,
    pending: Iterable[str] = (),
) -> list[CapabilityTagEntry]:
    """Return the entries a merge of ``data`` should apply, in order.

    Entries are ordered set, get, list so later families take precedence when
    several carry the same capability. A non-zero ``EffectiveFlags`` restricts
    set entries to the flagged ones; a zero mask leaves every field
    authoritative. ``syncFrom`` only applies list-only capabilities, and
    capabilities with an unsent write are never overwritten.
    """

    exposed = set(capabilities)
    pending_caps = set(pending)
    flags = normalize_flags(data.get("EffectiveFlags"))
    set_caps = {entry.capability for entry in mapping.set_entries}
    get_caps = {entry.capability for entry in mapping.get_entries}

    if sync_mode is SyncMode.SYNC_FROM:
        candidates = [
            entry
            for entry in mapping.list_entries
            if entry.capability not in set_caps and entry.capability not in get_caps
        ]
    else:
        set_entries = [
            entry
            for entry in mapping.set_entries
            if flags == FLAG_UNCHANGED or has_flag(flags, entry.flag)
        ]
        candidates = [*set_entries, *mapping.get_entries]
        if sync_mode is None:
            candidates.extend(mapping.list_entries)

    selected: list[CapabilityTagEntry] = []
    for entry in candidates:
        if entry.capability not in exposed or entry.tag not in data:
            continue
        if entry.capability in pending_caps:
            continue
        selected.append(entry)
    return selected
