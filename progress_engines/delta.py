"""
Module: progress_engines.delta
Responsibility:
    Reconstruct the earned hours attributable to milestone events inside a
    time window, rolled up by one organizational dimension, from the event
    log alone.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The caller (the reporting
    service) loads items, their resolved schedules and their events, then
    hands them here.

Invariants enforced:
    - BUDGET_ONCE_PER_ITEM: an item's budgeted hours enter a row exactly once,
      however many categories or milestones it touched in the window.  Items
      with no event in the window contribute neither hours nor budget.
    - Net change per milestone is ``new_value`` of the last in-window event
      minus ``previous_value`` of the first one.  It is signed: regressions
      and rollbacks are reported as negative hours, never dropped.
    - Milestone hours use the same weight/kind credit as the calculator
      (progress.milestone_credit), so the delta and the snapshot agree.
    - CATEGORY_RECONCILIATION holds for every row and for the totals.
    - Items with cached progress and no events at all are listed as
      untracked and never folded into any total.

Failure modes:
    - InvalidWindowError when the window end is not after its start.
    - InvariantViolationError if the budget guard or category check trips.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from progress_kernel.domain.dimensions import NOT_ASSIGNED_LABEL, DimensionType
from progress_kernel.domain.dtos import (
    DeltaReport,
    DeltaRow,
    DimensionLabel,
    EventRecord,
    ItemCrossCheck,
    ItemSnapshot,
    UntrackedProgressItem,
)
from progress_kernel.domain.schedule import (
    CATEGORIES,
    Category,
    ResolvedSchedule,
    milestone_key,
    zero_by_category,
)
from progress_kernel.domain.quantities import percent_of
from progress_kernel.exceptions import InvalidWindowError
from progress_kernel.invariants import (
    HOURS_TOLERANCE,
    HUNDRED,
    check_budget_once_per_item,
    check_category_reconciliation,
)
from progress_kernel.logging_config import get_logger
from progress_engines.progress import milestone_credit, percent_complete
from progress_engines.replay import ordered_events, replay_milestones
from progress_engines.tracer import traced_engine

logger = get_logger("engines.delta")

ZERO = Decimal("0")

# Cached vs. replayed percent may differ by storage rounding only.
PERCENT_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class DeltaItemInput:
    """One item with its resolved schedule and full event history."""

    snapshot: ItemSnapshot
    schedule: ResolvedSchedule
    events: tuple[EventRecord, ...] = ()


@dataclass(frozen=True)
class MilestoneNetChange:
    """Net change of one milestone within the window."""

    milestone_name: str
    start_value: Decimal
    end_value: Decimal

    @property
    def net_change(self) -> Decimal:
        return self.end_value - self.start_value


@dataclass
class _Bucket:
    """Mutable accumulator for one dimension value."""

    item_ids: list[UUID] = field(default_factory=list)
    budgeted_hours: Decimal = ZERO
    category_budget: dict[Category, Decimal] = field(default_factory=zero_by_category)
    category_delta: dict[Category, Decimal] = field(default_factory=zero_by_category)

    def add(
        self,
        item_id: UUID,
        budget: Decimal,
        schedule: ResolvedSchedule,
        delta_by_category: Mapping[Category, Decimal],
    ) -> None:
        self.item_ids.append(item_id)
        self.budgeted_hours += budget
        weights = schedule.category_weights()
        for category in CATEGORIES:
            self.category_budget[category] += budget * weights[category] / HUNDRED
            self.category_delta[category] += delta_by_category[category]

    def merge(self, other: _Bucket) -> None:
        self.item_ids.extend(other.item_ids)
        self.budgeted_hours += other.budgeted_hours
        for category in CATEGORIES:
            self.category_budget[category] += other.category_budget[category]
            self.category_delta[category] += other.category_delta[category]

    def to_row(self, label: DimensionLabel) -> DeltaRow:
        check_budget_once_per_item(self.item_ids)
        delta_total = sum(self.category_delta.values(), ZERO)
        return DeltaRow(
            dimension_value_id=label.dimension_value_id,
            code=label.code,
            label=label.name,
            items_with_activity=len(self.item_ids),
            budgeted_hours=self.budgeted_hours,
            category_budgeted_hours=dict(self.category_budget),
            category_delta_hours=dict(self.category_delta),
            delta_earned_hours=delta_total,
            delta_percent=percent_of(delta_total, self.budgeted_hours),
            category_delta_percent={
                category: percent_of(
                    self.category_delta[category], self.category_budget[category]
                )
                for category in CATEGORIES
            },
        )


def window_events(
    events: Sequence[EventRecord], start: datetime, end: datetime
) -> list[EventRecord]:
    """Events with ``start <= occurred_at < end``, in log order."""
    return [e for e in ordered_events(events) if start <= e.occurred_at < end]


def milestone_net_changes(events_in_window: Sequence[EventRecord]) -> list[MilestoneNetChange]:
    """
    First/last in-window value per milestone.

    Preconditions: ``events_in_window`` is in log order.
    """
    first: dict[str, EventRecord] = {}
    last: dict[str, EventRecord] = {}
    for event in events_in_window:
        key = milestone_key(event.milestone_name)
        first.setdefault(key, event)
        last[key] = event
    return [
        MilestoneNetChange(
            milestone_name=first[key].milestone_name,
            start_value=first[key].previous_value,
            end_value=last[key].new_value,
        )
        for key in first
    ]


def item_delta_hours(
    schedule: ResolvedSchedule,
    budgeted_hours: Decimal,
    changes: Sequence[MilestoneNetChange],
) -> tuple[dict[Category, Decimal], tuple[str, ...]]:
    """
    Signed earned-hour change per category for one item.

    Returns:
        (hours by category, names of milestones with no schedule entry)
    """
    by_category = zero_by_category()
    unknown: list[str] = []
    for change in changes:
        entry = schedule.entry_for(change.milestone_name)
        if entry is None:
            unknown.append(change.milestone_name)
            continue
        credit = milestone_credit(entry, change.end_value) - milestone_credit(
            entry, change.start_value
        )
        by_category[entry.category] += budgeted_hours * credit / HUNDRED
    return by_category, tuple(unknown)


def _cross_check(
    item: DeltaItemInput,
    group_id: UUID | None,
    delta_hours: Decimal,
    window_end: datetime,
) -> ItemCrossCheck:
    schedule = item.schedule
    at_end = percent_complete(schedule, replay_milestones(item.events, as_of=window_end))
    replayed = percent_complete(schedule, replay_milestones(item.events))
    cached = item.snapshot.percent_complete
    return ItemCrossCheck(
        item_id=item.snapshot.item_id,
        dimension_value_id=group_id,
        delta_earned_hours=delta_hours,
        percent_at_window_end=at_end,
        replayed_percent=replayed,
        cached_percent=cached,
        consistent=abs(replayed - cached) <= PERCENT_TOLERANCE,
    )


def _sort_key(row: DeltaRow) -> tuple[bool, str]:
    # Not Assigned sorts last
    return (row.dimension_value_id is None, row.code or row.label)


@traced_engine(
    "delta",
    "1.0",
    fingerprint_fields=("project_id", "dimension", "window_start", "window_end"),
)
def aggregate_delta(
    project_id: UUID,
    dimension: DimensionType,
    window_start: datetime,
    window_end: datetime,
    items: Sequence[DeltaItemInput],
    labels: Mapping[UUID | None, DimensionLabel] | None = None,
    not_assigned_label: str = NOT_ASSIGNED_LABEL,
    tolerance: Decimal = HOURS_TOLERANCE,
) -> DeltaReport:
    """
    Earned-hours delta for ``[window_start, window_end)`` by dimension value.

    Args:
        items: Candidate items.  Retired items are skipped.  Items with no
            events are checked for untracked progress; items with no
            in-window events contribute nothing.
        labels: Display identity per dimension value id.  Missing ids fall
            back to the id itself; ``None`` is the Not Assigned bucket.

    Returns:
        DeltaReport with one row per dimension value that had activity.
    """
    if window_end <= window_start:
        raise InvalidWindowError(window_start, window_end)

    labels = labels or {}
    buckets: dict[UUID | None, _Bucket] = defaultdict(_Bucket)
    cross_checks: list[ItemCrossCheck] = []
    untracked: list[UntrackedProgressItem] = []
    unknown: set[str] = set()

    for item in items:
        snapshot = item.snapshot
        if snapshot.is_retired:
            continue
        group_id = snapshot.dimension_id(dimension)

        if not item.events:
            if snapshot.percent_complete > 0:
                logger.warning(
                    "untracked_progress_detected",
                    extra={
                        "item_id": str(snapshot.item_id),
                        "cached_percent": snapshot.percent_complete,
                    },
                )
                untracked.append(
                    UntrackedProgressItem(
                        item_id=snapshot.item_id,
                        item_type=snapshot.item_type,
                        dimension_value_id=group_id,
                        cached_percent=snapshot.percent_complete,
                        cached_earned_hours=snapshot.earned_hours,
                    )
                )
            continue

        in_window = window_events(item.events, window_start, window_end)
        if not in_window:
            continue

        changes = milestone_net_changes(in_window)
        by_category, item_unknown = item_delta_hours(
            item.schedule, snapshot.budgeted_hours, changes
        )
        unknown.update(item_unknown)
        buckets[group_id].add(
            snapshot.item_id, snapshot.budgeted_hours, item.schedule, by_category
        )
        cross_checks.append(
            _cross_check(item, group_id, sum(by_category.values(), ZERO), window_end)
        )

    if unknown:
        logger.warning(
            "unknown_milestone_ignored",
            extra={"project_id": str(project_id), "milestones": sorted(unknown)},
        )

    def label_for(group_id: UUID | None) -> DimensionLabel:
        if group_id in labels:
            return labels[group_id]
        if group_id is None:
            return DimensionLabel(None, None, not_assigned_label)
        return DimensionLabel(group_id, None, str(group_id))

    rows = sorted(
        (bucket.to_row(label_for(group_id)) for group_id, bucket in buckets.items()),
        key=_sort_key,
    )

    grand = _Bucket()
    for bucket in buckets.values():
        grand.merge(bucket)
    totals = grand.to_row(DimensionLabel(None, None, "Total"))

    # per-item figures, summed outside the bucket path
    grand_delta = sum((c.delta_earned_hours for c in cross_checks), ZERO)
    check_category_reconciliation(
        grand_delta, totals.category_delta_hours, tolerance=tolerance
    )

    discrepancies = [c for c in cross_checks if not c.consistent]
    if discrepancies:
        logger.warning(
            "delta_cross_check_mismatch",
            extra={
                "project_id": str(project_id),
                "item_ids": [str(c.item_id) for c in discrepancies],
            },
        )

    return DeltaReport(
        project_id=project_id,
        dimension=dimension,
        window_start=window_start,
        window_end=window_end,
        rows=tuple(rows),
        totals=totals,
        cross_checks=tuple(cross_checks),
        untracked=tuple(untracked),
        unknown_milestones=tuple(sorted(unknown)),
    )
