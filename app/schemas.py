"""Pydantic schemas for the HTTP API layer and the persisted hierarchy."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from models.catalog import NO_UNIT_ID, UnitType
from services.classifier import GroupCase
from services.propagation import PropagationDecision


class UnitRecord(BaseModel):
    """A unit as stored in the hierarchy snapshot."""

    id: int
    name: str = ""
    unit_index: int = Field(..., ge=0, description="Row index for meter units, column index otherwise.")
    type_of_unit: UnitType


class MeterRecord(BaseModel):
    id: int
    identifier: str = ""
    unit_id: int = Field(default=NO_UNIT_ID, description="Assigned unit id, -99 for none.")


class GroupRecord(BaseModel):
    """A group definition; deep meters are derived by the store."""

    id: int
    name: str = ""
    child_meters: List[int] = Field(default_factory=list)
    child_groups: List[int] = Field(default_factory=list)
    default_graphic_unit: int = NO_UNIT_ID


class HierarchyPayload(BaseModel):
    """Full replacement payload for units, meters and groups."""

    units: List[UnitRecord] = Field(default_factory=list)
    meters: List[MeterRecord] = Field(default_factory=list)
    groups: List[GroupRecord] = Field(default_factory=list)


class HierarchySummary(BaseModel):
    unit_count: int = Field(..., ge=0)
    meter_count: int = Field(..., ge=0)
    group_count: int = Field(..., ge=0)


class ConversionArrayPayload(BaseModel):
    """The precomputed Pik array: ``pik[row][column]`` is true when convertible."""

    pik: List[List[bool]]

    @field_validator("pik")
    @classmethod
    def _rectangular(cls, value: List[List[bool]]) -> List[List[bool]]:
        widths = {len(row) for row in value}
        if len(widths) > 1:
            raise ValueError("Conversion array rows must all have the same length.")
        return value


class ConversionArrayStatus(BaseModel):
    ready: bool
    rows: int = Field(..., ge=0)
    columns: int = Field(..., ge=0)


class CompatibleUnitsResponse(BaseModel):
    """Sorted ids of the compatible units."""

    unit_ids: List[int] = Field(default_factory=list)


class MeterSetRequest(BaseModel):
    meter_ids: List[int] = Field(default_factory=list)


class MenuOptionResponse(BaseModel):
    """One entry of a meter or group menu on the group page."""

    id: int
    label: str
    disabled: bool
    change_case: GroupCase


class MembershipChangeRequest(BaseModel):
    """Proposed edit of a group's children and, optionally, its default unit."""

    add_meters: List[int] = Field(default_factory=list)
    remove_meters: List[int] = Field(default_factory=list)
    add_groups: List[int] = Field(default_factory=list)
    remove_groups: List[int] = Field(default_factory=list)
    default_graphic_unit: Optional[int] = Field(
        default=None, description="New default graphic unit for the edited group."
    )


class GroupOutcomeResponse(BaseModel):
    group_id: int
    change_case: GroupCase
    default_graphic_unit_update: Optional[int] = None


class PropagationPlanResponse(BaseModel):
    group_id: int
    decision: PropagationDecision
    outcomes: List[GroupOutcomeResponse] = Field(default_factory=list)
    reason: Optional[str] = None


class CommitRequest(BaseModel):
    change: MembershipChangeRequest = Field(default_factory=MembershipChangeRequest)
    confirmed: bool = Field(
        default=False, description="Acknowledge warnings for plans that need confirmation."
    )


class CommitResponse(BaseModel):
    plan: PropagationPlanResponse
    committed: bool
    updated_groups: List[int] = Field(default_factory=list)
