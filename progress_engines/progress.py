"""
Module: progress_engines.progress
Responsibility:
    Turn a resolved milestone schedule and an item's current milestone map
    into percent complete, earned hours, and earned hours per reporting
    category.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import progress_kernel.domain, exceptions, invariants and
    logging_config.

Invariants enforced:
    - CATEGORY_RECONCILIATION: ``sum(category_earned_hours)`` equals
      ``earned_hours`` within 0.01 hour.  The two figures are computed by
      separate code paths (per-milestone credit vs. per-category percent)
      and checked against each other on every call to ``compute_progress``.
    - Percent complete is clamped to [0, 100].
    - A category with zero weight for the item type reports 0.
    - Determinism: identical inputs always produce identical outputs.

Failure modes:
    - InvalidBudgetError when budgeted hours are missing or negative.
    - InvariantViolationError when the category figures do not reconcile.
    Values recorded against milestones that are not in the schedule are
    NOT errors: they are logged (``unknown_milestone_ignored``) and
    excluded from every sum.

Usage:
    from progress_engines.progress import compute_progress

    result = compute_progress(schedule, {"Receive": Decimal("100")}, Decimal("10"))
    result.percent_complete          # Decimal("5")
    result.category_earned_hours     # {Category.RECEIVE: Decimal("0.5"), ...}
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from uuid import UUID

from progress_kernel.domain.dtos import ProgressResult
from progress_kernel.domain.schedule import (
    CATEGORIES,
    Category,
    MilestoneKind,
    ResolvedSchedule,
    ScheduleEntry,
    zero_by_category,
)
from progress_kernel.domain.values import is_complete
from progress_kernel.invariants import (
    HOURS_TOLERANCE,
    HUNDRED,
    check_budgeted_hours,
    check_category_reconciliation,
)
from progress_kernel.logging_config import get_logger
from progress_engines.tracer import traced_engine

logger = get_logger("engines.progress")

ZERO = Decimal("0")


def milestone_credit(entry: ScheduleEntry, value: Decimal | None) -> Decimal:
    """
    Percentage points one milestone contributes to its item.

    Discrete milestones earn their full weight only at the complete
    sentinel; partial milestones earn ``weight * value / 100``.
    """
    if value is None:
        return ZERO
    if entry.kind is MilestoneKind.DISCRETE:
        return entry.weight if is_complete(value) else ZERO
    return entry.weight * Decimal(value) / HUNDRED


def split_milestones(
    schedule: ResolvedSchedule,
    milestones: Mapping[str, Decimal],
) -> tuple[dict[ScheduleEntry, Decimal], tuple[str, ...]]:
    """
    Match recorded milestone names to schedule entries (case-insensitive).

    Returns:
        (values by entry, sorted names with no schedule entry)
    """
    matched: dict[ScheduleEntry, Decimal] = {}
    unknown: list[str] = []
    for name, value in milestones.items():
        entry = schedule.entry_for(name)
        if entry is None:
            unknown.append(name)
            continue
        matched[entry] = value
    return matched, tuple(sorted(unknown))


def _raw_credit(matched: Mapping[ScheduleEntry, Decimal]) -> Decimal:
    return sum(
        (milestone_credit(entry, value) for entry, value in matched.items()), ZERO
    )


def _clamp_percent(value: Decimal) -> Decimal:
    return min(max(value, ZERO), HUNDRED)


def percent_complete(
    schedule: ResolvedSchedule,
    milestones: Mapping[str, Decimal],
) -> Decimal:
    """Weighted completion of an item on the 0-100 scale."""
    matched, _ = split_milestones(schedule, milestones)
    return _clamp_percent(_raw_credit(matched))


def earned_hours(budgeted_hours: Decimal, percent: Decimal) -> Decimal:
    """``budgeted_hours * percent / 100``."""
    budget = check_budgeted_hours(budgeted_hours)
    return budget * percent / HUNDRED


def category_percent(
    schedule: ResolvedSchedule,
    milestones: Mapping[str, Decimal],
) -> dict[Category, Decimal]:
    """
    Each category's completion normalized to its own weight (0-100).

    Categories with no weight report 0.
    """
    matched, _ = split_milestones(schedule, milestones)
    weights = schedule.category_weights()
    credit = zero_by_category()
    for entry, value in matched.items():
        credit[entry.category] += milestone_credit(entry, value)

    result = zero_by_category()
    for category in CATEGORIES:
        if weights[category] > 0:
            result[category] = credit[category] / weights[category] * HUNDRED
    return result


def category_earned_hours(
    schedule: ResolvedSchedule,
    milestones: Mapping[str, Decimal],
    budgeted_hours: Decimal,
) -> dict[Category, Decimal]:
    """
    Earned hours per reporting category.

    ``category_earned = budget * category_weight/100 * category_pct/100``.
    When the weights total slightly more than 100 (within tolerance) and the
    item is complete, the overall percent is clamped to 100; the categories
    are scaled by the same factor so both figures describe the same item.
    """
    budget = check_budgeted_hours(budgeted_hours)
    weights = schedule.category_weights()
    percents = category_percent(schedule, milestones)

    hours = zero_by_category()
    for category in CATEGORIES:
        if weights[category] > 0:
            hours[category] = (
                budget * weights[category] / HUNDRED * percents[category] / HUNDRED
            )

    matched, _ = split_milestones(schedule, milestones)
    raw = _raw_credit(matched)
    if raw > HUNDRED:
        scale = HUNDRED / raw
        hours = {category: value * scale for category, value in hours.items()}
    return hours


@traced_engine(
    "progress",
    "1.0",
    fingerprint_fields=("schedule", "milestones", "budgeted_hours"),
)
def compute_progress(
    schedule: ResolvedSchedule,
    milestones: Mapping[str, Decimal],
    budgeted_hours: Decimal,
    item_id: UUID | None = None,
    tolerance: Decimal = HOURS_TOLERANCE,
) -> ProgressResult:
    """
    Percent complete, earned hours and category earned hours for one item.

    Preconditions:
        - ``milestones`` values are canonical (see domain.values).
        - ``schedule`` came from resolve_schedule.

    Raises:
        InvalidBudgetError: Budget missing or negative.
        InvariantViolationError: Category hours do not reconcile.
    """
    budget = check_budgeted_hours(budgeted_hours)
    matched, unknown = split_milestones(schedule, milestones)
    if unknown:
        logger.warning(
            "unknown_milestone_ignored",
            extra={
                "item_id": str(item_id) if item_id is not None else None,
                "item_type": schedule.item_type,
                "milestones": list(unknown),
            },
        )

    percent = _clamp_percent(_raw_credit(matched))
    earned = earned_hours(budget, percent)
    by_category = category_earned_hours(schedule, milestones, budget)

    check_category_reconciliation(earned, by_category, item_id=item_id, tolerance=tolerance)

    return ProgressResult(
        item_type=schedule.item_type,
        budgeted_hours=budget,
        percent_complete=percent,
        earned_hours=earned,
        category_earned_hours=by_category,
        category_percent=category_percent(schedule, milestones),
        category_weights=schedule.category_weights(),
        unknown_milestones=unknown,
        schedule_fingerprint=schedule.fingerprint,
        item_id=item_id,
    )
