"""Merge remote device payloads into capability state and build writes."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
import logging
from typing import Any

from .const import SyncMode
from .domain import DeviceClassMapping, combine_flags, select_entries

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UpdatePayload:
    """Write body for ``/Device/Set<Type>`` without the device envelope."""

    values: dict[str, Any]
    effective_flags: int

    def post_data(self, device_id: int) -> dict[str, Any]:
        """Return the complete write body for ``device_id``."""

        return {
            **self.values,
            "DeviceID": device_id,
            "EffectiveFlags": self.effective_flags,
            "HasPendingCommand": True,
        }


@dataclass(frozen=True, slots=True)
class PushBatch:
    """Diff snapshot taken for one push and the payload built from it."""

    diff: dict[str, Any]
    payload: UpdatePayload = field(repr=False)


def build_update_payload(
    mapping: DeviceClassMapping,
    capabilities: Iterable[str],
    diff: Mapping[str, Any],
    state: Mapping[str, Any],
    *,
    always_on: bool = False,
) -> UpdatePayload:
    """Return the full write object for ``diff``.

    Every exposed settable field is emitted because the remote replaces the
    whole object; only fields present in ``diff`` contribute to the flags.
    """

    exposed = set(capabilities)
    values: dict[str, Any] = {}
    flags: list[int] = []
    for entry in mapping.set_entries:
        if entry.capability not in exposed:
            continue
        if entry.capability in diff:
            value = diff[entry.capability]
            flags.append(entry.flag)
        else:
            value = state.get(entry.capability)
            if value is None:
                continue
        if entry.capability == "onoff" and always_on:
            value = True
        values[entry.tag] = entry.convert_to_device(value)
    return UpdatePayload(values, combine_flags(flags))


class Synchronizer:
    """Hold the merged state and pending writes of one device."""

    def __init__(
        self,
        mapping: DeviceClassMapping,
        capabilities: Iterable[str],
        *,
        store: Mapping[str, Any] | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        """Initialise empty state for ``mapping``."""

        self._mapping = mapping
        self._capabilities: tuple[str, ...] = tuple(capabilities)
        self._store: dict[str, Any] = dict(store or {})
        self._state: dict[str, Any] = {}
        self._diff: dict[str, Any] = {}
        self._logger = logger or _LOGGER
        self._set_entries = {entry.capability: entry for entry in mapping.set_entries}

    @property
    def mapping(self) -> DeviceClassMapping:
        """Return the device class mapping."""

        return self._mapping

    @property
    def capabilities(self) -> tuple[str, ...]:
        """Return the exposed capabilities."""

        return self._capabilities

    @property
    def store(self) -> dict[str, Any]:
        """Return a copy of the static device store."""

        return dict(self._store)

    @property
    def state(self) -> dict[str, Any]:
        """Return a copy of the merged capability state."""

        return dict(self._state)

    @property
    def pending_diff(self) -> dict[str, Any]:
        """Return a copy of the writes not yet pushed."""

        return dict(self._diff)

    @property
    def has_pending_diff(self) -> bool:
        """Return True when writes are waiting to be pushed."""

        return bool(self._diff)

    def set_capabilities(self, capabilities: Iterable[str]) -> None:
        """Replace the exposed capabilities, dropping state of removed ones."""

        self._capabilities = tuple(capabilities)
        exposed = set(self._capabilities)
        for capability in [cap for cap in self._state if cap not in exposed]:
            del self._state[capability]
        for capability in [cap for cap in self._diff if cap not in exposed]:
            del self._diff[capability]

    def update_store(self, store: Mapping[str, Any]) -> bool:
        """Merge ``store``; return True when a value changed."""

        changed = any(self._store.get(key) != value for key, value in store.items())
        self._store.update(store)
        return changed

    def enqueue(self, capability: str, value: Any) -> dict[str, Any]:
        """Record a write and return the capability changes it implies.

        Raises ``ValueError`` for unknown, unexposed or unconvertible writes.
        """

        if capability not in self._mapping.settable:
            raise ValueError(f"Capability {capability} is not settable")
        if capability not in self._capabilities:
            raise ValueError(f"Capability {capability} is not exposed by this device")
        changes = self._mapping.expand_write(
            capability, value, {**self._state, **self._diff}, self._store
        )
        for target, target_value in changes.items():
            entry = self._set_entries.get(target)
            if entry is None or target not in self._capabilities:
                raise ValueError(f"Capability {target} is not settable on this device")
            entry.convert_to_device(target_value)
        self._diff.update(changes)
        return changes

    def build_update_payload(self, *, always_on: bool = False) -> UpdatePayload:
        """Return the payload the current diff would produce."""

        return build_update_payload(
            self._mapping, self._capabilities, self._diff, self._state, always_on=always_on
        )

    def begin_push(self, *, always_on: bool = False) -> PushBatch:
        """Snapshot and clear the diff, returning the payload to send."""

        snapshot, self._diff = self._diff, {}
        payload = build_update_payload(
            self._mapping, self._capabilities, snapshot, self._state, always_on=always_on
        )
        return PushBatch(snapshot, payload)

    def abort_push(self, batch: PushBatch) -> None:
        """Put a failed push back under any writes made since."""

        self._diff = {**batch.diff, **self._diff}

    def merge(
        self, data: Mapping[str, Any] | None, sync_mode: SyncMode | None = None
    ) -> dict[str, Any]:
        """Apply a remote payload and return the capabilities that changed."""

        if not data:
            return {}
        changed: dict[str, Any] = {}
        entries = select_entries(
            self._mapping, self._capabilities, data, sync_mode, pending=self._diff
        )
        for entry in entries:
            value = entry.convert_from_device(data[entry.tag])
            if value is None:
                self._logger.debug(
                    "Ignoring unmapped %s value %r", entry.tag, data[entry.tag]
                )
                continue
            self._apply(entry.capability, value, changed)
        exposed = set(self._capabilities)
        for derived in self._mapping.derived:
            if derived.capability not in exposed:
                continue
            value = derived.compute(self._state)
            if value is not None:
                self._apply(derived.capability, value, changed)
        return changed

    def apply_values(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """Store values computed outside device payloads (energy reports)."""

        changed: dict[str, Any] = {}
        exposed = set(self._capabilities)
        for capability, value in values.items():
            if capability in exposed:
                self._apply(capability, value, changed)
        return changed

    def _apply(self, capability: str, value: Any, changed: dict[str, Any]) -> None:
        if self._state.get(capability) != value or capability not in self._state:
            changed[capability] = value
        self._state[capability] = value
