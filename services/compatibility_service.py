"""Service facade wiring the hierarchy store and the conversion array."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Callable, Iterable, List, Optional, Sequence, Set, TypeVar

from app.schemas import HierarchyPayload
from datastore.hierarchy import HierarchyStore, StaleSnapshot, build_default_store
from models.catalog import HierarchySnapshot
from services.classifier import (
    DataType,
    MenuOption,
    group_menu_options_for_group,
    meter_menu_options_for_group,
)
from services.compatibility import CompatibilityResolver, UnitNotFound
from services.propagation import MembershipChange, PropagationPlan, plan_membership_change
from storage.conversion_array import ConversionArray, PikSnapshot, build_default_conversion_array

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Re-plans allowed when the hierarchy changes between planning and writing.
COMMIT_ATTEMPTS = 3


@dataclass(frozen=True)
class CommitResult:
    plan: PropagationPlan
    committed: bool
    updated_groups: List[int] = field(default_factory=list)


class CompatibilityService:
    """Runs each query against one consistent snapshot of the store and array."""

    def __init__(self, store: HierarchyStore, conversion_array: ConversionArray) -> None:
        self.store = store
        self.conversion_array = conversion_array

    def load_hierarchy(self, payload: HierarchyPayload) -> HierarchySnapshot:
        snapshot = self.store.replace(payload)
        logger.info(
            "Hierarchy loaded",
            extra={
                "unit_count": len(snapshot.units),
                "meter_count": len(snapshot.meters),
                "group_count": len(snapshot.groups),
            },
        )
        return snapshot

    def load_conversion_array(self, pik: Sequence[Sequence[bool]]) -> PikSnapshot:
        snapshot = self.conversion_array.load(pik)
        logger.info(
            "Conversion array loaded",
            extra={"row_count": snapshot.rows, "column_count": snapshot.columns},
        )
        return snapshot

    def conversion_array_status(self) -> PikSnapshot:
        return self.conversion_array.snapshot()

    def reset_conversion_array(self) -> PikSnapshot:
        """Drop the loaded array; queries answer with empty sets until the next load."""
        self.conversion_array.reset()
        logger.info("Conversion array cleared")
        return self.conversion_array.snapshot()

    def resolver(self) -> CompatibilityResolver:
        return CompatibilityResolver(self.store.snapshot(), self.conversion_array.snapshot())

    def units_for_unit(self, unit_id: int) -> Set[int]:
        resolver = self.resolver()
        return self._checked(lambda: resolver.units_compatible_with_unit(unit_id), unit_id=unit_id)

    def units_for_meters(self, meter_ids: Iterable[int]) -> Set[int]:
        resolver = self.resolver()
        return self._checked(lambda: resolver.units_compatible_with_meters(meter_ids))

    def units_for_group(self, group_id: int) -> Set[int]:
        resolver = self.resolver()
        return self._checked(lambda: resolver.units_compatible_with_group(group_id), group_id=group_id)

    def menu_options(self, group_id: int, data_type: DataType) -> List[MenuOption]:
        resolver = self.resolver()
        if data_type is DataType.meter:
            return self._checked(lambda: meter_menu_options_for_group(resolver, group_id), group_id=group_id)
        return self._checked(lambda: group_menu_options_for_group(resolver, group_id), group_id=group_id)

    def plan_change(self, change: MembershipChange) -> PropagationPlan:
        return self._plan(self.resolver(), change)

    def _plan(self, resolver: CompatibilityResolver, change: MembershipChange) -> PropagationPlan:
        plan = self._checked(lambda: plan_membership_change(resolver, change), group_id=change.group_id)
        logger.info(
            "Planned group change",
            extra={"group_id": change.group_id, "decision": plan.decision.value, "reason": plan.reason},
        )
        for outcome in plan.outcomes:
            logger.debug(
                "Group outcome",
                extra={"group_id": outcome.group_id, "change_case": outcome.change_case.value},
            )
        return plan

    def commit_change(self, change: MembershipChange, confirmed: bool = False) -> CommitResult:
        """Re-plan ``change`` and write the default unit updates when allowed.

        The updates are written against the snapshot they were planned on. If
        the hierarchy changed in between the change is planned again.
        """
        for attempt in range(1, COMMIT_ATTEMPTS + 1):
            resolver = self.resolver()
            plan = self._plan(resolver, change)
            if not plan.may_commit(confirmed):
                logger.warning(
                    "Group change not committed",
                    extra={"group_id": change.group_id, "decision": plan.decision.value, "reason": plan.reason},
                )
                return CommitResult(plan=plan, committed=False)

            updates = plan.default_unit_updates
            if updates:
                try:
                    self.store.update_default_units(updates, expected=resolver.hierarchy)
                except StaleSnapshot:
                    if attempt == COMMIT_ATTEMPTS:
                        raise
                    logger.warning("Hierarchy changed while committing", extra={"group_id": change.group_id})
                    continue
            for group_id, unit_id in sorted(updates.items()):
                logger.info("Default graphic unit updated", extra={"group_id": group_id, "unit_id": unit_id})
            return CommitResult(plan=plan, committed=True, updated_groups=sorted(updates))
        raise StaleSnapshot("Hierarchy kept changing while committing.")

    @staticmethod
    def _checked(query: Callable[[], T], unit_id: Optional[int] = None, group_id: Optional[int] = None) -> T:
        try:
            return query()
        except UnitNotFound as exc:
            logger.error(
                "Unit catalog is inconsistent with the conversion array",
                extra={"unit_id": unit_id, "group_id": group_id, "reason": str(exc)},
            )
            raise


@lru_cache
def build_default_service() -> CompatibilityService:
    """Factory that wires the service with the default store and array."""
    return CompatibilityService(
        store=build_default_store(),
        conversion_array=build_default_conversion_array(),
    )
