"""Propagation of a group edit to the group's ancestors.

Editing a group changes the deep meters of every group that contains it, so
the edit is classified once per affected group, each against that group's
own compatible units and default graphic unit. The per-group outcomes are
folded into one decision:

* ``cancel`` when any group would be left with no compatible units, or when
  a proposed default graphic unit is not compatible with the edited group;
* ``confirm`` when some group loses compatible units or its default unit;
* ``apply`` otherwise.

A group left without any deep meters has no units to lose, so it counts as
``no_change`` and only drops its default graphic unit.

Committing a plan only rewrites default graphic units: groups that lose
their default fall back to no unit and the edited group takes its proposed
default. Membership itself is persisted by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from models.catalog import NO_UNIT_ID, Group, HierarchySnapshot, ancestors_of, with_deep_meters
from services.classifier import GroupCase, group_case
from services.compatibility import CompatibilityResolver


class PropagationDecision(str, Enum):
    apply = "apply"
    confirm = "confirm"
    cancel = "cancel"


@dataclass(frozen=True)
class MembershipChange:
    group_id: int
    add_meters: FrozenSet[int] = field(default_factory=frozenset)
    remove_meters: FrozenSet[int] = field(default_factory=frozenset)
    add_groups: FrozenSet[int] = field(default_factory=frozenset)
    remove_groups: FrozenSet[int] = field(default_factory=frozenset)
    default_graphic_unit: Optional[int] = None


@dataclass(frozen=True)
class GroupOutcome:
    group_id: int
    change_case: GroupCase
    default_graphic_unit_update: Optional[int] = None


@dataclass(frozen=True)
class PropagationPlan:
    change: MembershipChange
    decision: PropagationDecision
    outcomes: Tuple[GroupOutcome, ...] = ()
    reason: Optional[str] = None

    @property
    def default_unit_updates(self) -> Dict[int, int]:
        return {
            outcome.group_id: outcome.default_graphic_unit_update
            for outcome in self.outcomes
            if outcome.default_graphic_unit_update is not None
        }

    def may_commit(self, confirmed: bool = False) -> bool:
        if self.decision is PropagationDecision.apply:
            return True
        if self.decision is PropagationDecision.confirm:
            return confirmed
        return False


def apply_membership(hierarchy: HierarchySnapshot, change: MembershipChange) -> Dict[int, Group]:
    """Groups as they would be after ``change``, deep meters recomputed."""
    group = hierarchy.group_by_id(change.group_id)

    overlap = (change.add_meters & change.remove_meters) | (change.add_groups & change.remove_groups)
    if overlap:
        raise ValueError(
            f"Cannot both add and remove: {', '.join(map(str, sorted(overlap)))}"
        )
    for meter_id in change.add_meters:
        hierarchy.meter_by_id(meter_id)
    for child_id in change.add_groups:
        hierarchy.group_by_id(child_id)

    edited = replace(
        group,
        child_meters=(group.child_meters | change.add_meters) - change.remove_meters,
        child_groups=(group.child_groups | change.add_groups) - change.remove_groups,
    )
    groups = dict(hierarchy.groups)
    groups[group.id] = edited
    return with_deep_meters(groups)


def plan_membership_change(resolver: CompatibilityResolver, change: MembershipChange) -> PropagationPlan:
    hierarchy = resolver.hierarchy
    updated = apply_membership(hierarchy, change)
    proposed_default = change.default_graphic_unit

    outcomes: List[GroupOutcome] = []
    reason: Optional[str] = None
    for group_id in [change.group_id, *ancestors_of(hierarchy, group_id=change.group_id)]:
        current_units = resolver.units_compatible_with_group(group_id)
        new_units = resolver.units_compatible_with_meters(updated[group_id].deep_meters)
        default_unit = hierarchy.groups[group_id].default_graphic_unit
        is_edited = group_id == change.group_id
        if is_edited and proposed_default is not None:
            default_unit = proposed_default

        update: Optional[int] = None
        if not updated[group_id].deep_meters:
            change_case = GroupCase.no_change
            if default_unit != NO_UNIT_ID:
                update = NO_UNIT_ID
        else:
            change_case = group_case(current_units, new_units, default_unit)

        if change_case is GroupCase.lost_default_graphic_unit:
            update = NO_UNIT_ID
        elif is_edited and proposed_default is not None and update is None:
            update = proposed_default
        outcomes.append(GroupOutcome(group_id=group_id, change_case=change_case, default_graphic_unit_update=update))

        if reason is None and change_case is GroupCase.no_compatible_units:
            reason = f"Group {group_id} would have no compatible units."
        if (
            reason is None
            and is_edited
            and proposed_default is not None
            and proposed_default != NO_UNIT_ID
            and proposed_default not in new_units
        ):
            reason = f"Unit {proposed_default} is not compatible with group {group_id}."

    if reason is not None:
        decision = PropagationDecision.cancel
    elif any(outcome.change_case is not GroupCase.no_change for outcome in outcomes):
        decision = PropagationDecision.confirm
    else:
        decision = PropagationDecision.apply
    return PropagationPlan(change=change, decision=decision, outcomes=tuple(outcomes), reason=reason)
