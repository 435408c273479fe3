from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from threading import Lock
from types import MappingProxyType
from typing import Dict, Optional

from app.schemas import GroupRecord, HierarchyPayload, MeterRecord, UnitRecord
from models.catalog import (
    NO_UNIT_ID,
    Group,
    HierarchySnapshot,
    Meter,
    Unit,
    UnitType,
    with_deep_meters,
)
from settings import get_settings


class InvalidHierarchy(ValueError):
    """The stored or submitted hierarchy breaks an invariant."""


class StaleSnapshot(RuntimeError):
    """The hierarchy changed after the snapshot a write was computed from."""


def _check_unique_ids(payload: HierarchyPayload) -> None:
    for kind, records in (
        ("unit", payload.units),
        ("meter", payload.meters),
        ("group", payload.groups),
    ):
        seen: set[int] = set()
        for record in records:
            if record.id in seen:
                raise InvalidHierarchy(f"Duplicate {kind} id {record.id!r}.")
            seen.add(record.id)


def _check_unit_indices(units: list[UnitRecord]) -> None:
    rows: Dict[int, int] = {}
    columns: Dict[int, int] = {}
    for unit in units:
        if unit.id == NO_UNIT_ID:
            raise InvalidHierarchy(f"Unit id {NO_UNIT_ID} is reserved for 'no unit'.")
        index_space = rows if unit.type_of_unit is UnitType.meter else columns
        other = index_space.get(unit.unit_index)
        if other is not None:
            raise InvalidHierarchy(
                f"Units {other!r} and {unit.id!r} share index {unit.unit_index}."
            )
        index_space[unit.unit_index] = unit.id


def _check_group_children(payload: HierarchyPayload) -> None:
    meter_ids = {meter.id for meter in payload.meters}
    for group in payload.groups:
        missing = sorted(set(group.child_meters) - meter_ids)
        if missing:
            raise InvalidHierarchy(
                f"Group {group.id!r} references unknown meters: {', '.join(map(str, missing))}"
            )


class HierarchyStore:
    """Repository of units, meters and groups handing out frozen snapshots."""

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self._payload = HierarchyPayload()
        self._snapshot: Optional[HierarchySnapshot] = None
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def replace(self, payload: HierarchyPayload) -> HierarchySnapshot:
        """Validate and install a whole new hierarchy."""
        snapshot = self._build_snapshot(payload)
        with self._lock:
            self._payload = payload.model_copy(deep=True)
            self._snapshot = snapshot
            self._persist()
        return snapshot

    def snapshot(self) -> HierarchySnapshot:
        with self._lock:
            if self._snapshot is None:
                self._snapshot = self._build_snapshot(self._payload)
            return self._snapshot

    def update_default_units(
        self, updates: Dict[int, int], expected: Optional[HierarchySnapshot] = None
    ) -> HierarchySnapshot:
        """Set ``default_graphic_unit`` on the given groups and nothing else.

        When ``expected`` is given the write only happens if it is still the
        current snapshot, otherwise ``StaleSnapshot`` is raised.
        """
        with self._lock:
            if expected is not None and self._snapshot is not expected:
                raise StaleSnapshot("Hierarchy changed since the snapshot was taken.")
            payload = self._payload.model_copy(deep=True)
            by_id = {group.id: group for group in payload.groups}
            for group_id, unit_id in updates.items():
                group = by_id.get(group_id)
                if group is None:
                    raise KeyError(f"Group {group_id!r} not found.")
                group.default_graphic_unit = unit_id
            self._payload = payload
            self._snapshot = self._build_snapshot(payload)
            self._persist()
            return self._snapshot

    def export(self) -> HierarchyPayload:
        with self._lock:
            return self._payload.model_copy(deep=True)

    @staticmethod
    def _build_snapshot(payload: HierarchyPayload) -> HierarchySnapshot:
        _check_unique_ids(payload)
        _check_unit_indices(payload.units)
        _check_group_children(payload)

        units = {record.id: _to_unit(record) for record in payload.units}
        meters = {record.id: _to_meter(record) for record in payload.meters}
        try:
            groups = with_deep_meters({record.id: _to_group(record) for record in payload.groups})
        except ValueError as exc:
            raise InvalidHierarchy(str(exc)) from exc
        return HierarchySnapshot(
            units=MappingProxyType(units),
            meters=MappingProxyType(meters),
            groups=MappingProxyType(groups),
        )

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = self._payload.model_dump(mode="json")
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        self._payload = HierarchyPayload.model_validate(data)


def _to_unit(record: UnitRecord) -> Unit:
    return Unit(
        id=record.id,
        name=record.name,
        unit_index=record.unit_index,
        type_of_unit=record.type_of_unit,
    )


def _to_meter(record: MeterRecord) -> Meter:
    return Meter(id=record.id, identifier=record.identifier, unit_id=record.unit_id)


def _to_group(record: GroupRecord) -> Group:
    return Group(
        id=record.id,
        name=record.name,
        child_meters=frozenset(record.child_meters),
        child_groups=frozenset(record.child_groups),
        default_graphic_unit=record.default_graphic_unit,
    )


@lru_cache
def build_default_store(path: Optional[str] = None) -> HierarchyStore:
    settings = get_settings()
    store_path = settings.hierarchy_persistence_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return HierarchyStore(persistence_path=persistence)
