"""
Template merge -- the single enforcement point for schedule resolution.

Responsibility:
    Merge an item type's default milestone schedule with a project's
    overrides into one ordered, validated ``ResolvedSchedule``.  Every
    consumer (registry write validation, calculator, delta aggregator) goes
    through ``resolve_schedule``; nothing else decides which weight applies.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.  Rows are fetched by
    selectors and passed in.

Invariants enforced:
    - WEIGHT_SUM: the merged weights total 100 +/- tolerance, checked here
      via invariants.check_weight_sum.
    - Overrides match default milestones case-insensitively; an override
      naming a milestone the default lacks is rejected.

Failure modes:
    - TemplateNotFoundError when the item type has no default schedule.
    - UnknownMilestoneError when an override names an unknown milestone.
    - SchemaInvalidError when the resolved weights do not total 100, when a
      name appears twice, or when a category cannot be determined.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from progress_kernel.domain.schedule import (
    Category,
    MilestoneKind,
    MilestoneOverride,
    ResolvedSchedule,
    ScheduleEntry,
    milestone_key,
)
from progress_kernel.exceptions import (
    SchemaInvalidError,
    TemplateNotFoundError,
    UnknownMilestoneError,
)
from progress_kernel.invariants import WEIGHT_TOLERANCE, check_weight_sum

# Milestone names whose category is implied when a template omits it.
# Item-type specific names are checked before the general table.
_TYPE_CATEGORY_NAMES: dict[str, dict[str, Category]] = {
    "field_weld": {
        "fit-up": Category.INSTALL,
        "fit up": Category.INSTALL,
        "weld made": Category.INSTALL,
        "weld complete": Category.INSTALL,
        "accepted": Category.PUNCH,
    },
}

_GENERAL_CATEGORY_NAMES: dict[str, Category] = {
    "receive": Category.RECEIVE,
    "install": Category.INSTALL,
    "erect": Category.INSTALL,
    "connect": Category.INSTALL,
    "support": Category.INSTALL,
    "fabricate": Category.INSTALL,
    "punch": Category.PUNCH,
    "punch complete": Category.PUNCH,
    "repair complete": Category.PUNCH,
    "test": Category.TEST,
    "hydrotest": Category.TEST,
    "nde final": Category.TEST,
    "restore": Category.RESTORE,
    "insulate": Category.RESTORE,
    "paint": Category.RESTORE,
}


def infer_category(item_type: str, milestone_name: str) -> Category:
    """
    Category implied by a milestone's name.

    Raises:
        SchemaInvalidError: If the name maps to no category.
    """
    key = milestone_key(milestone_name)
    specific = _TYPE_CATEGORY_NAMES.get(item_type, {})
    if key in specific:
        return specific[key]
    if key in _GENERAL_CATEGORY_NAMES:
        return _GENERAL_CATEGORY_NAMES[key]
    raise SchemaInvalidError(
        item_type=item_type,
        weight_total=Decimal("0"),
        detail=f"no category for milestone {milestone_name!r}",
    )


def parse_kind(value: str | MilestoneKind | bool) -> MilestoneKind:
    """Accept 'discrete'/'partial', a MilestoneKind, or a legacy is_partial flag."""
    if isinstance(value, MilestoneKind):
        return value
    if isinstance(value, bool):
        return MilestoneKind.PARTIAL if value else MilestoneKind.DISCRETE
    return MilestoneKind(str(value).strip().lower())


def parse_category(
    value: str | Category | None, item_type: str, milestone_name: str
) -> Category:
    """Accept a category name or Category; infer from the name when missing."""
    if isinstance(value, Category):
        return value
    if value is None or not str(value).strip():
        return infer_category(item_type, milestone_name)
    try:
        return Category(str(value).strip().lower())
    except ValueError:
        raise SchemaInvalidError(
            item_type=item_type,
            weight_total=Decimal("0"),
            detail=f"unknown category {value!r} for milestone {milestone_name!r}",
        ) from None


def _reject_duplicates(item_type: str, names: Sequence[str], project_id) -> None:
    seen: set[str] = set()
    for name in names:
        key = milestone_key(name)
        if key in seen:
            raise SchemaInvalidError(
                item_type=item_type,
                weight_total=Decimal("0"),
                project_id=str(project_id) if project_id is not None else None,
                detail=f"milestone {name!r} listed twice",
            )
        seen.add(key)


def resolve_schedule(
    item_type: str,
    defaults: Sequence[ScheduleEntry],
    overrides: Sequence[MilestoneOverride] = (),
    project_id: UUID | None = None,
    tolerance: Decimal = WEIGHT_TOLERANCE,
) -> ResolvedSchedule:
    """
    Merge default entries with project overrides and validate the result.

    Each default milestone keeps its name and order.  When an override with
    the same (case-insensitive) name exists, its weight, kind and category
    replace the default's; otherwise the default is kept unchanged.

    Preconditions:
        - ``defaults`` are the item type's default schedule rows.
        - ``overrides`` belong to ``project_id`` (empty for the default view).

    Returns:
        ResolvedSchedule ordered by the default milestone order.

    Raises:
        TemplateNotFoundError, UnknownMilestoneError, SchemaInvalidError.
    """
    if not defaults:
        raise TemplateNotFoundError(item_type)

    _reject_duplicates(item_type, [d.name for d in defaults], None)
    _reject_duplicates(item_type, [o.name for o in overrides], project_id)

    default_keys = {d.key for d in defaults}
    for override in overrides:
        if override.key not in default_keys:
            raise UnknownMilestoneError(item_type, override.name)

    by_key = {o.key: o for o in overrides}
    merged: list[ScheduleEntry] = []
    for entry in sorted(defaults, key=lambda e: (e.order, e.key)):
        override = by_key.get(entry.key)
        if override is None:
            merged.append(entry)
            continue
        merged.append(
            ScheduleEntry(
                name=entry.name,
                weight=Decimal(override.weight),
                kind=override.kind,
                category=override.category,
                order=entry.order,
                requires_welder=entry.requires_welder,
            )
        )

    for entry in merged:
        if entry.weight < 0 or entry.weight > 100:
            raise SchemaInvalidError(
                item_type=item_type,
                weight_total=entry.weight,
                project_id=str(project_id) if project_id is not None else None,
                detail=f"weight of {entry.name!r} outside 0-100",
            )

    check_weight_sum(
        item_type,
        (e.weight for e in merged),
        project_id=project_id,
        tolerance=tolerance,
    )
    return ResolvedSchedule(
        item_type=item_type,
        entries=tuple(merged),
        project_id=project_id if overrides else None,
    )
