"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from app.schemas import (
    CommitRequest,
    CommitResponse,
    CompatibleUnitsResponse,
    ConversionArrayPayload,
    ConversionArrayStatus,
    GroupOutcomeResponse,
    HierarchyPayload,
    HierarchySummary,
    MembershipChangeRequest,
    MenuOptionResponse,
    MeterSetRequest,
    PropagationPlanResponse,
)
from datastore.hierarchy import InvalidHierarchy, StaleSnapshot
from services.classifier import DataType, MenuOption
from services.compatibility import UnitNotFound
from services.compatibility_service import CompatibilityService, build_default_service
from services.propagation import MembershipChange, PropagationPlan
from storage.conversion_array import PikSnapshot

router = APIRouter()


def get_service() -> CompatibilityService:
    return build_default_service()


def _units_response(unit_ids: set[int]) -> CompatibleUnitsResponse:
    return CompatibleUnitsResponse(unit_ids=sorted(unit_ids))


def _array_status(snapshot: PikSnapshot) -> ConversionArrayStatus:
    return ConversionArrayStatus(ready=snapshot.ready, rows=snapshot.rows, columns=snapshot.columns)


def _options_response(options: List[MenuOption]) -> List[MenuOptionResponse]:
    return [
        MenuOptionResponse(
            id=option.id,
            label=option.label,
            disabled=option.disabled,
            change_case=option.change_case,
        )
        for option in options
    ]


def _to_change(group_id: int, request: MembershipChangeRequest) -> MembershipChange:
    return MembershipChange(
        group_id=group_id,
        add_meters=frozenset(request.add_meters),
        remove_meters=frozenset(request.remove_meters),
        add_groups=frozenset(request.add_groups),
        remove_groups=frozenset(request.remove_groups),
        default_graphic_unit=request.default_graphic_unit,
    )


def _plan_response(plan: PropagationPlan) -> PropagationPlanResponse:
    return PropagationPlanResponse(
        group_id=plan.change.group_id,
        decision=plan.decision,
        outcomes=[
            GroupOutcomeResponse(
                group_id=outcome.group_id,
                change_case=outcome.change_case,
                default_graphic_unit_update=outcome.default_graphic_unit_update,
            )
            for outcome in plan.outcomes
        ],
        reason=plan.reason,
    )


def _lookup_error(exc: LookupError) -> HTTPException:
    # UnitNotFound means the stored data is inconsistent, not that the caller asked for something absent.
    if isinstance(exc, UnitNotFound):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.args[0] if exc.args else str(exc))


def _conflict(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.put(
    "/hierarchy",
    response_model=HierarchySummary,
    summary="Replace the units, meters and groups.",
)
async def put_hierarchy(
    payload: HierarchyPayload,
    service: CompatibilityService = Depends(get_service),
) -> HierarchySummary:
    try:
        snapshot = service.load_hierarchy(payload)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return HierarchySummary(
        unit_count=len(snapshot.units),
        meter_count=len(snapshot.meters),
        group_count=len(snapshot.groups),
    )


@router.put(
    "/conversion-array",
    response_model=ConversionArrayStatus,
    summary="Load the precomputed conversion array.",
)
async def put_conversion_array(
    payload: ConversionArrayPayload,
    service: CompatibilityService = Depends(get_service),
) -> ConversionArrayStatus:
    return _array_status(service.load_conversion_array(payload.pik))


@router.get(
    "/conversion-array",
    response_model=ConversionArrayStatus,
    summary="Readiness and shape of the conversion array.",
)
async def get_conversion_array(
    service: CompatibilityService = Depends(get_service),
) -> ConversionArrayStatus:
    return _array_status(service.conversion_array_status())


@router.delete(
    "/conversion-array",
    response_model=ConversionArrayStatus,
    summary="Unload the conversion array.",
)
async def delete_conversion_array(
    service: CompatibilityService = Depends(get_service),
) -> ConversionArrayStatus:
    return _array_status(service.reset_conversion_array())


@router.get(
    "/units/{unit_id}/compatible",
    response_model=CompatibleUnitsResponse,
    summary="Units compatible with a unit.",
)
async def get_units_for_unit(
    unit_id: int,
    service: CompatibilityService = Depends(get_service),
) -> CompatibleUnitsResponse:
    try:
        return _units_response(service.units_for_unit(unit_id))
    except LookupError as exc:
        raise _lookup_error(exc) from exc
    except InvalidHierarchy as exc:
        raise _conflict(exc) from exc


@router.post(
    "/meters/compatible",
    response_model=CompatibleUnitsResponse,
    summary="Units compatible with every meter in a set.",
)
async def post_units_for_meters(
    request: MeterSetRequest,
    service: CompatibilityService = Depends(get_service),
) -> CompatibleUnitsResponse:
    try:
        return _units_response(service.units_for_meters(set(request.meter_ids)))
    except LookupError as exc:
        raise _lookup_error(exc) from exc
    except InvalidHierarchy as exc:
        raise _conflict(exc) from exc


@router.get(
    "/groups/{group_id}/compatible",
    response_model=CompatibleUnitsResponse,
    summary="Units compatible with all deep meters of a group.",
)
async def get_units_for_group(
    group_id: int,
    service: CompatibilityService = Depends(get_service),
) -> CompatibleUnitsResponse:
    try:
        return _units_response(service.units_for_group(group_id))
    except LookupError as exc:
        raise _lookup_error(exc) from exc
    except InvalidHierarchy as exc:
        raise _conflict(exc) from exc


@router.get(
    "/groups/{group_id}/meter-options",
    response_model=List[MenuOptionResponse],
    summary="Meter menu options for editing a group.",
)
async def get_meter_options(
    group_id: int,
    service: CompatibilityService = Depends(get_service),
) -> List[MenuOptionResponse]:
    try:
        return _options_response(service.menu_options(group_id, DataType.meter))
    except LookupError as exc:
        raise _lookup_error(exc) from exc
    except InvalidHierarchy as exc:
        raise _conflict(exc) from exc


@router.get(
    "/groups/{group_id}/group-options",
    response_model=List[MenuOptionResponse],
    summary="Group menu options for editing a group.",
)
async def get_group_options(
    group_id: int,
    service: CompatibilityService = Depends(get_service),
) -> List[MenuOptionResponse]:
    try:
        return _options_response(service.menu_options(group_id, DataType.group))
    except LookupError as exc:
        raise _lookup_error(exc) from exc
    except InvalidHierarchy as exc:
        raise _conflict(exc) from exc


@router.post(
    "/groups/{group_id}/changes",
    response_model=PropagationPlanResponse,
    summary="Preview how a group edit affects the group and its ancestors.",
)
async def post_group_change(
    group_id: int,
    request: MembershipChangeRequest,
    service: CompatibilityService = Depends(get_service),
) -> PropagationPlanResponse:
    try:
        plan = service.plan_change(_to_change(group_id, request))
    except LookupError as exc:
        raise _lookup_error(exc) from exc
    except InvalidHierarchy as exc:
        raise _conflict(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return _plan_response(plan)


@router.post(
    "/groups/{group_id}/changes/commit",
    response_model=CommitResponse,
    summary="Commit the default unit updates of a group edit.",
)
async def post_group_change_commit(
    group_id: int,
    request: CommitRequest,
    service: CompatibilityService = Depends(get_service),
) -> CommitResponse:
    try:
        result = service.commit_change(_to_change(group_id, request.change), confirmed=request.confirmed)
    except LookupError as exc:
        raise _lookup_error(exc) from exc
    except (InvalidHierarchy, StaleSnapshot) as exc:
        raise _conflict(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return CommitResponse(
        plan=_plan_response(result.plan),
        committed=result.committed,
        updated_groups=result.updated_groups,
    )


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
