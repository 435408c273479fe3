"""Shared fixtures: a small campus hierarchy and its conversion array.

Meter units (rows):      1 electric, 2 gas, 3 water, 5 steam
Other units (columns):   10 kWh, 11 MJ, 12 BTU, 13 liter, 14 gallon

Groups::

    202 Campus (default BTU)
    ├── 201 Energy (default MJ): meter 102 gas
    │   └── 200 Electric (default kWh): meters 100, 101 electric
    └── 204 Heat (no default): meter 102 gas
    203 Water (default liter): meter 103 water
"""

from __future__ import annotations

from typing import List

import pytest

from app.schemas import GroupRecord, HierarchyPayload, MeterRecord, UnitRecord
from datastore.hierarchy import HierarchyStore
from models.catalog import NO_UNIT_ID, HierarchySnapshot, UnitType
from services.compatibility import CompatibilityResolver
from storage.conversion_array import PikSnapshot

T, F = True, False

PIK: List[List[bool]] = [
    [T, T, T, F, F],  # electric -> kWh, MJ, BTU
    [F, T, T, F, F],  # gas -> MJ, BTU
    [F, F, F, T, T],  # water -> liter, gallon
    [F, T, F, F, F],  # steam -> MJ
]


def build_payload() -> HierarchyPayload:
    return HierarchyPayload(
        units=[
            UnitRecord(id=1, name="Electric_utility", unit_index=0, type_of_unit=UnitType.meter),
            UnitRecord(id=2, name="Natural_Gas", unit_index=1, type_of_unit=UnitType.meter),
            UnitRecord(id=3, name="Water_meter", unit_index=2, type_of_unit=UnitType.meter),
            UnitRecord(id=5, name="Steam_meter", unit_index=3, type_of_unit=UnitType.meter),
            UnitRecord(id=10, name="kWh", unit_index=0, type_of_unit=UnitType.unit),
            UnitRecord(id=11, name="MJ", unit_index=1, type_of_unit=UnitType.unit),
            UnitRecord(id=12, name="BTU", unit_index=2, type_of_unit=UnitType.unit),
            UnitRecord(id=13, name="liter", unit_index=3, type_of_unit=UnitType.unit),
            UnitRecord(id=14, name="gallon", unit_index=4, type_of_unit=UnitType.suffix),
        ],
        meters=[
            MeterRecord(id=100, identifier="Elec A", unit_id=1),
            MeterRecord(id=101, identifier="Elec B", unit_id=1),
            MeterRecord(id=102, identifier="Gas", unit_id=2),
            MeterRecord(id=103, identifier="Water", unit_id=3),
            MeterRecord(id=104, identifier="Unassigned", unit_id=NO_UNIT_ID),
            MeterRecord(id=106, identifier="Steam", unit_id=5),
        ],
        groups=[
            GroupRecord(id=200, name="Electric", child_meters=[100, 101], default_graphic_unit=10),
            GroupRecord(id=201, name="Energy", child_meters=[102], child_groups=[200], default_graphic_unit=11),
            GroupRecord(id=202, name="Campus", child_groups=[201, 204], default_graphic_unit=12),
            GroupRecord(id=203, name="Water", child_meters=[103], default_graphic_unit=13),
            GroupRecord(id=204, name="Heat", child_meters=[102]),
        ],
    )


@pytest.fixture
def payload() -> HierarchyPayload:
    return build_payload()


@pytest.fixture
def snapshot(payload: HierarchyPayload) -> HierarchySnapshot:
    return HierarchyStore().replace(payload)


@pytest.fixture
def relation() -> PikSnapshot:
    return PikSnapshot(ready=True, pik=tuple(tuple(row) for row in PIK))


@pytest.fixture
def resolver(snapshot: HierarchySnapshot, relation: PikSnapshot) -> CompatibilityResolver:
    return CompatibilityResolver(snapshot, relation)
