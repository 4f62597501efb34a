"""
Module: progress_engines.rollup
Responsibility:
    Cumulative point-in-time rollup of budgeted and earned hours by one
    organizational dimension.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - A rollup row is a pure function of Item + MilestoneSchedule: every
      figure is recomputed from the item's milestone map and resolved
      schedule, never read from a cached percent.
    - BUDGET_ONCE_PER_ITEM and CATEGORY_RECONCILIATION hold for every row.
    - Retired items are excluded; unassigned items land in the Not Assigned
      bucket (dimension value id None).
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
    DimensionLabel,
    ItemSnapshot,
    ProgressResult,
    RollupRow,
    RollupSnapshot,
)
from progress_kernel.domain.quantities import percent_of
from progress_kernel.domain.schedule import (
    CATEGORIES,
    Category,
    ResolvedSchedule,
    zero_by_category,
)
from progress_kernel.invariants import (
    HOURS_TOLERANCE,
    HUNDRED,
    check_budget_once_per_item,
    check_category_reconciliation,
)
from progress_engines.progress import compute_progress
from progress_engines.tracer import traced_engine

ZERO = Decimal("0")


@dataclass(frozen=True)
class RollupItemInput:
    snapshot: ItemSnapshot
    schedule: ResolvedSchedule


@dataclass
class _Totals:
    item_ids: list[UUID] = field(default_factory=list)
    budgeted_hours: Decimal = ZERO
    earned_hours: Decimal = ZERO
    category_earned: dict[Category, Decimal] = field(default_factory=zero_by_category)
    category_budget: dict[Category, Decimal] = field(default_factory=zero_by_category)

    def add(self, item_id: UUID, progress: ProgressResult) -> None:
        self.item_ids.append(item_id)
        self.budgeted_hours += progress.budgeted_hours
        self.earned_hours += progress.earned_hours
        for category in CATEGORIES:
            self.category_earned[category] += progress.category_earned_hours[category]
            self.category_budget[category] += (
                progress.budgeted_hours * progress.category_weights[category] / HUNDRED
            )

    def merge(self, other: _Totals) -> None:
        self.item_ids.extend(other.item_ids)
        self.budgeted_hours += other.budgeted_hours
        self.earned_hours += other.earned_hours
        for category in CATEGORIES:
            self.category_earned[category] += other.category_earned[category]
            self.category_budget[category] += other.category_budget[category]

    def to_row(self, label: DimensionLabel, tolerance: Decimal) -> RollupRow:
        check_budget_once_per_item(self.item_ids)
        check_category_reconciliation(
            self.earned_hours, self.category_earned, tolerance=tolerance
        )
        return RollupRow(
            dimension_value_id=label.dimension_value_id,
            code=label.code,
            label=label.name,
            item_count=len(self.item_ids),
            budgeted_hours=self.budgeted_hours,
            earned_hours=self.earned_hours,
            percent_complete=percent_of(self.earned_hours, self.budgeted_hours),
            category_earned_hours=dict(self.category_earned),
            category_budgeted_hours=dict(self.category_budget),
        )


def compute_rollup_rows(
    dimension: DimensionType,
    items: Sequence[RollupItemInput],
    labels: Mapping[UUID | None, DimensionLabel] | None = None,
    not_assigned_label: str = NOT_ASSIGNED_LABEL,
    tolerance: Decimal = HOURS_TOLERANCE,
) -> tuple[list[RollupRow], RollupRow]:
    """
    Rollup rows and grand totals for ``dimension``.

    Returns:
        (rows sorted by code with Not Assigned last, totals row)
    """
    labels = labels or {}
    groups: dict[UUID | None, _Totals] = defaultdict(_Totals)

    for item in items:
        snapshot = item.snapshot
        if snapshot.is_retired:
            continue
        progress = compute_progress(
            item.schedule,
            snapshot.milestones,
            snapshot.budgeted_hours,
            item_id=snapshot.item_id,
            tolerance=tolerance,
        )
        groups[snapshot.dimension_id(dimension)].add(snapshot.item_id, progress)

    def label_for(group_id: UUID | None) -> DimensionLabel:
        if group_id in labels:
            return labels[group_id]
        if group_id is None:
            return DimensionLabel(None, None, not_assigned_label)
        return DimensionLabel(group_id, None, str(group_id))

    rows = sorted(
        (totals.to_row(label_for(group_id), tolerance) for group_id, totals in groups.items()),
        key=lambda row: (row.dimension_value_id is None, row.code or row.label),
    )

    grand = _Totals()
    for totals in groups.values():
        grand.merge(totals)
    return rows, grand.to_row(DimensionLabel(None, None, "Total"), tolerance)


@traced_engine("rollup", "1.0", fingerprint_fields=("project_id", "dimension"))
def aggregate_rollup(
    project_id: UUID,
    dimension: DimensionType,
    items: Sequence[RollupItemInput],
    labels: Mapping[UUID | None, DimensionLabel] | None = None,
    as_of: datetime | None = None,
    not_assigned_label: str = NOT_ASSIGNED_LABEL,
    tolerance: Decimal = HOURS_TOLERANCE,
) -> RollupSnapshot:
    """Point-in-time rollup snapshot computed from items and schedules."""
    rows, totals = compute_rollup_rows(
        dimension,
        items,
        labels=labels,
        not_assigned_label=not_assigned_label,
        tolerance=tolerance,
    )
    return RollupSnapshot(
        project_id=project_id,
        dimension=dimension,
        rows=tuple(rows),
        totals=totals,
        as_of=as_of,
    )
