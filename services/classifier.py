"""Classification of group membership changes by their effect on compatible units."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Set

from models.catalog import NO_UNIT_ID, ancestors_of
from services.compatibility import CompatibilityResolver, set_intersect


class GroupCase(str, Enum):
    """The four outcomes of adding a meter or group to a group.

    - ``no_change``: the group's compatible units stay the same.
    - ``lost_compatible_units``: some units are lost but not the default graphic unit.
    - ``lost_default_graphic_unit``: the default graphic unit is lost, others remain.
    - ``no_compatible_units``: the group would have no compatible units left.
    """

    no_change = "NO_CHANGE"
    lost_compatible_units = "LOST_COMPATIBLE_UNITS"
    lost_default_graphic_unit = "LOST_DEFAULT_GRAPHIC_UNIT"
    no_compatible_units = "NO_COMPATIBLE_UNITS"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {
    GroupCase.no_change: 0,
    GroupCase.lost_compatible_units: 1,
    GroupCase.lost_default_graphic_unit: 2,
    GroupCase.no_compatible_units: 3,
}


class DataType(str, Enum):
    meter = "meter"
    group = "group"


@dataclass(frozen=True)
class MenuOption:
    id: int
    label: str
    disabled: bool
    change_case: GroupCase


def group_case(current_units: Set[int], new_units: Set[int], default_graphic_unit: int) -> GroupCase:
    """Classify the move from ``current_units`` to their intersection with ``new_units``."""
    lost_units = current_units - set_intersect(current_units, new_units)

    if not lost_units:
        return GroupCase.no_change
    if lost_units == current_units:
        # Checked before the default unit: total loss outranks losing the default.
        return GroupCase.no_compatible_units
    if default_graphic_unit != NO_UNIT_ID and default_graphic_unit in lost_units:
        return GroupCase.lost_default_graphic_unit
    return GroupCase.lost_compatible_units


def get_compatible_units(resolver: CompatibilityResolver, item_id: int, data_type: DataType) -> Set[int]:
    if data_type is DataType.meter:
        unit_id = resolver.hierarchy.meter_by_id(item_id).unit_id
        return resolver.units_compatible_with_unit(unit_id)
    return resolver.units_compatible_with_group(item_id)


def get_compatibility_change_case(
    resolver: CompatibilityResolver,
    current_units: Set[int],
    item_id: int,
    data_type: DataType,
    default_graphic_unit: int,
) -> GroupCase:
    """Outcome of adding the meter or group ``item_id`` to a group."""
    new_units = get_compatible_units(resolver, item_id, data_type)
    return group_case(current_units, new_units, default_graphic_unit)


def _menu_options(resolver: CompatibilityResolver, group_id: int, data_type: DataType) -> List[MenuOption]:
    group = resolver.hierarchy.group_by_id(group_id)
    current_units = resolver.units_compatible_with_group(group_id)

    if data_type is DataType.meter:
        candidates = [(meter.id, meter.identifier) for meter in resolver.hierarchy.meters.values()]
    else:
        # The group itself and its ancestors would close a cycle.
        excluded = {group_id, *ancestors_of(resolver.hierarchy, group_id)}
        candidates = [
            (other.id, other.name)
            for other in resolver.hierarchy.groups.values()
            if other.id not in excluded
        ]

    options: List[MenuOption] = []
    for item_id, label in sorted(candidates, key=lambda candidate: (candidate[1], candidate[0])):
        change_case = get_compatibility_change_case(
            resolver, current_units, item_id, data_type, group.default_graphic_unit
        )
        options.append(
            MenuOption(
                id=item_id,
                label=label,
                disabled=change_case is GroupCase.no_compatible_units,
                change_case=change_case,
            )
        )
    return options


def meter_menu_options_for_group(resolver: CompatibilityResolver, group_id: int) -> List[MenuOption]:
    """Options for the meter menu on the page editing ``group_id``."""
    return _menu_options(resolver, group_id, DataType.meter)


def group_menu_options_for_group(resolver: CompatibilityResolver, group_id: int) -> List[MenuOption]:
    """Options for the group menu on the page editing ``group_id``."""
    return _menu_options(resolver, group_id, DataType.group)
