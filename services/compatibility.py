"""Resolution of compatible units for units, meters and groups."""

from __future__ import annotations

from typing import Dict, Iterable, Set

from models.catalog import NO_UNIT_ID, HierarchySnapshot
from storage.conversion_array import PikSnapshot


class UnitNotFound(LookupError):
    """A unit expected in the catalog is missing; the data is inconsistent."""


def set_intersect(set_a: Set[int], set_b: Set[int]) -> Set[int]:
    return {item for item in set_a if item in set_b}


class CompatibilityResolver:
    """Answers compatibility questions against one hierarchy/Pik snapshot.

    Meter units own the rows of the Pik array and every other unit owns a
    column, so ids are looked up in two separate index spaces.
    """

    def __init__(self, hierarchy: HierarchySnapshot, relation: PikSnapshot) -> None:
        self.hierarchy = hierarchy
        self.relation = relation
        self._row_by_unit: Dict[int, int] = {}
        self._unit_by_row: Dict[int, int] = {}
        self._unit_by_column: Dict[int, int] = {}
        for unit in hierarchy.units.values():
            if unit.is_meter_unit:
                self._row_by_unit[unit.id] = unit.unit_index
                self._unit_by_row[unit.unit_index] = unit.id
            else:
                self._unit_by_column[unit.unit_index] = unit.id

    def p_row_from_unit(self, unit_id: int) -> int:
        """Row index in Pik of a meter unit."""
        try:
            return self._row_by_unit[unit_id]
        except KeyError:
            raise UnitNotFound(f"No meter unit with id {unit_id!r}.") from None

    def unit_from_p_row(self, row: int) -> int:
        try:
            return self._unit_by_row[row]
        except KeyError:
            raise UnitNotFound(f"No meter unit at row {row!r}.") from None

    def unit_from_p_column(self, column: int) -> int:
        try:
            return self._unit_by_column[column]
        except KeyError:
            raise UnitNotFound(f"No unit at column {column!r}.") from None

    def units_compatible_with_unit(self, unit_id: int) -> Set[int]:
        """Ids of the units reachable from ``unit_id`` in the Pik array.

        A missing unit (the sentinel id) or a Pik array that has not been
        loaded yet gives an empty set.
        """
        units: Set[int] = set()
        if unit_id == NO_UNIT_ID or not self.relation.is_ready():
            return units

        row = self.p_row_from_unit(unit_id)
        for column, convertible in enumerate(self.relation.row(row)):
            if convertible:
                units.add(self.unit_from_p_column(column))
        return units

    def units_compatible_with_meters(self, meter_ids: Iterable[int]) -> Set[int]:
        """Units compatible with every meter in ``meter_ids``."""
        compatible: Set[int] | None = None
        for meter_id in meter_ids:
            meter = self.hierarchy.meter_by_id(meter_id)
            meter_units = self.units_compatible_with_unit(meter.unit_id)
            if compatible is None:
                # Nothing to intersect with yet.
                compatible = meter_units
            else:
                compatible = set_intersect(compatible, meter_units)
        return compatible if compatible is not None else set()

    def meters_in_group(self, group_id: int) -> Set[int]:
        return set(self.hierarchy.group_by_id(group_id).deep_meters)

    def units_compatible_with_group(self, group_id: int) -> Set[int]:
        return self.units_compatible_with_meters(self.meters_in_group(group_id))
