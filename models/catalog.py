"""Domain models for the unit/meter/group catalog."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, FrozenSet, List, Mapping, Set

# Reserved id meaning "no unit assigned". Never present in the unit catalog.
NO_UNIT_ID = -99


class UnitType(str, Enum):
    """Kinds of units. Only ``meter`` units index rows of the Pik array."""

    unit = "unit"
    meter = "meter"
    suffix = "suffix"


@dataclass(frozen=True, slots=True)
class Unit:
    """A measurement unit and its position in the Pik array."""

    id: int
    name: str
    unit_index: int
    type_of_unit: UnitType

    @property
    def is_meter_unit(self) -> bool:
        return self.type_of_unit is UnitType.meter


@dataclass(frozen=True, slots=True)
class Meter:
    id: int
    identifier: str
    unit_id: int = NO_UNIT_ID


@dataclass(frozen=True, slots=True)
class Group:
    """A group of meters and sub-groups.

    ``deep_meters`` is the transitive closure of meter membership and is
    filled in by the hierarchy store.
    """

    id: int
    name: str
    child_meters: FrozenSet[int] = field(default_factory=frozenset)
    child_groups: FrozenSet[int] = field(default_factory=frozenset)
    deep_meters: FrozenSet[int] = field(default_factory=frozenset)
    default_graphic_unit: int = NO_UNIT_ID


@dataclass(frozen=True)
class HierarchySnapshot:
    """Point-in-time, read-only view of units, meters and groups."""

    units: Mapping[int, Unit] = field(default_factory=dict)
    meters: Mapping[int, Meter] = field(default_factory=dict)
    groups: Mapping[int, Group] = field(default_factory=dict)

    def unit_by_id(self, unit_id: int) -> Unit:
        try:
            return self.units[unit_id]
        except KeyError:
            raise KeyError(f"Unit {unit_id!r} not found.") from None

    def meter_by_id(self, meter_id: int) -> Meter:
        try:
            return self.meters[meter_id]
        except KeyError:
            raise KeyError(f"Meter {meter_id!r} not found.") from None

    def group_by_id(self, group_id: int) -> Group:
        try:
            return self.groups[group_id]
        except KeyError:
            raise KeyError(f"Group {group_id!r} not found.") from None


def with_deep_meters(groups: Mapping[int, Group]) -> Dict[int, Group]:
    """Return copies of ``groups`` with ``deep_meters`` recomputed.

    Raises ``ValueError`` when a group references an unknown child group or
    when the child-group relation contains a cycle.
    """
    resolved: Dict[int, FrozenSet[int]] = {}
    visiting: Set[int] = set()

    def resolve(group_id: int) -> FrozenSet[int]:
        if group_id in resolved:
            return resolved[group_id]
        if group_id in visiting:
            raise ValueError(f"Group {group_id!r} is part of a cycle.")
        group = groups.get(group_id)
        if group is None:
            raise ValueError(f"Unknown child group {group_id!r}.")
        visiting.add(group_id)
        meters: Set[int] = set(group.child_meters)
        for child_id in group.child_groups:
            meters |= resolve(child_id)
        visiting.discard(group_id)
        resolved[group_id] = frozenset(meters)
        return resolved[group_id]

    return {
        group_id: replace(group, deep_meters=resolve(group_id))
        for group_id, group in groups.items()
    }


def ancestors_of(hierarchy: HierarchySnapshot, group_id: int) -> List[int]:
    """Ids of all groups that transitively contain ``group_id``, nearest first."""
    parents: Dict[int, List[int]] = {}
    for group in hierarchy.groups.values():
        for child_id in group.child_groups:
            parents.setdefault(child_id, []).append(group.id)

    ancestors: List[int] = []
    seen = {group_id}
    queue = deque([group_id])
    while queue:
        current = queue.popleft()
        for parent_id in sorted(parents.get(current, ())):
            if parent_id in seen:
                continue
            seen.add(parent_id)
            ancestors.append(parent_id)
            queue.append(parent_id)
    return ancestors
