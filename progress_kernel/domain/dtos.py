"""
Data Transfer Objects for the progress kernel.

Responsibility:
    Immutable value objects that cross layer boundaries: what selectors
    hand to the engines, and what the engines and services hand back to
    the reporting layer.  ORM models never leave the kernel; these do.

Architecture position:
    Kernel > Domain -- pure data definitions with ZERO I/O.

Invariants enforced:
    - All DTOs are ``frozen=True``.
    - Hours and percentages are ``Decimal`` at full precision; rounding
      happens only at the reporting edge (domain.quantities.round_hours).
    - Per-category maps always carry every Category, zero when unused.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from progress_kernel.domain.dimensions import DimensionType
from progress_kernel.domain.schedule import Category


@dataclass(frozen=True)
class EventRecord:
    """One milestone event as read from the append-only log."""

    event_id: UUID
    item_id: UUID
    milestone_name: str
    previous_value: Decimal
    new_value: Decimal
    occurred_at: datetime
    item_seq: int
    actor_id: UUID | None = None
    is_correction: bool = False
    corrects_event_id: UUID | None = None


@dataclass(frozen=True)
class ItemSnapshot:
    """
    Read-only view of a tracked item and its cached projection.

    ``milestones`` is the cached map of milestone name to canonical value;
    it is a projection of the event log, not a source of truth.
    """

    item_id: UUID
    project_id: UUID
    item_type: str
    budgeted_hours: Decimal
    milestones: Mapping[str, Decimal]
    percent_complete: Decimal = Decimal("0")
    earned_hours: Decimal = Decimal("0")
    identity_key: Mapping[str, Any] = field(default_factory=dict)
    dimension_ids: Mapping[DimensionType, UUID | None] = field(default_factory=dict)
    schedule_fingerprint: str | None = None
    is_retired: bool = False
    version: int = 1

    def dimension_id(self, dimension: DimensionType) -> UUID | None:
        return self.dimension_ids.get(dimension)


@dataclass(frozen=True)
class ProgressResult:
    """
    Output of the progress calculator for one item.

    Guarantees:
        - ``sum(category_earned_hours.values())`` equals ``earned_hours``
          within the reconciliation tolerance (checked before return).
        - ``unknown_milestones`` lists recorded names that had no schedule
          entry and were excluded from every sum.
    """

    item_type: str
    budgeted_hours: Decimal
    percent_complete: Decimal
    earned_hours: Decimal
    category_earned_hours: Mapping[Category, Decimal]
    category_percent: Mapping[Category, Decimal]
    category_weights: Mapping[Category, Decimal]
    unknown_milestones: tuple[str, ...] = ()
    schedule_fingerprint: str | None = None
    item_id: UUID | None = None


@dataclass(frozen=True)
class ItemCrossCheck:
    """
    Cross-check of an item's log against its cached projection.

    ``percent_at_window_end`` is the percent replayed from events before the
    window end.  ``replayed_percent`` replays the whole log and is compared
    to ``cached_percent``; ``consistent`` is False when they disagree, which
    means progress was recorded outside the log.
    """

    item_id: UUID
    dimension_value_id: UUID | None
    delta_earned_hours: Decimal
    percent_at_window_end: Decimal
    replayed_percent: Decimal
    cached_percent: Decimal
    consistent: bool


@dataclass(frozen=True)
class UntrackedProgressItem:
    """An item whose cached progress has no supporting event history."""

    item_id: UUID
    item_type: str
    dimension_value_id: UUID | None
    cached_percent: Decimal
    cached_earned_hours: Decimal


@dataclass(frozen=True)
class DimensionLabel:
    """Display identity of one reporting bucket (None id = Not Assigned)."""

    dimension_value_id: UUID | None
    code: str | None
    name: str


@dataclass(frozen=True)
class DeltaRow:
    """Delta figures for one dimension value (or the grand total)."""

    dimension_value_id: UUID | None
    code: str | None
    label: str
    items_with_activity: int
    budgeted_hours: Decimal
    category_budgeted_hours: Mapping[Category, Decimal]
    category_delta_hours: Mapping[Category, Decimal]
    delta_earned_hours: Decimal
    delta_percent: Decimal
    category_delta_percent: Mapping[Category, Decimal]


@dataclass(frozen=True)
class DeltaReport:
    """
    Time-windowed earned-hours delta for one project and dimension.

    Net changes are signed; regressions show up as negative hours.
    Untracked items are listed separately and never added to ``totals``.
    """

    project_id: UUID
    dimension: DimensionType
    window_start: datetime
    window_end: datetime
    rows: tuple[DeltaRow, ...]
    totals: DeltaRow
    cross_checks: tuple[ItemCrossCheck, ...] = ()
    untracked: tuple[UntrackedProgressItem, ...] = ()
    unknown_milestones: tuple[str, ...] = ()

    @property
    def discrepancies(self) -> tuple[ItemCrossCheck, ...]:
        return tuple(c for c in self.cross_checks if not c.consistent)


@dataclass(frozen=True)
class RollupRow:
    """Cumulative figures for one dimension value."""

    dimension_value_id: UUID | None
    code: str | None
    label: str
    item_count: int
    budgeted_hours: Decimal
    earned_hours: Decimal
    percent_complete: Decimal
    category_earned_hours: Mapping[Category, Decimal]
    category_budgeted_hours: Mapping[Category, Decimal]


@dataclass(frozen=True)
class RollupSnapshot:
    """Point-in-time rollup for one project and dimension."""

    project_id: UUID
    dimension: DimensionType
    rows: tuple[RollupRow, ...]
    totals: RollupRow
    as_of: datetime | None = None


@dataclass(frozen=True)
class RollupDrift:
    """A cached rollup row that disagrees with a fresh computation."""

    dimension_value_id: UUID | None
    field_name: str
    cached: Decimal | None
    computed: Decimal | None


@dataclass(frozen=True)
class ProjectionMismatch:
    """One milestone whose cached value differs from the replayed value."""

    milestone_name: str
    cached: Decimal | None
    replayed: Decimal | None


@dataclass(frozen=True)
class ProjectionCheck:
    """Result of verifying an item's cached projection against its log."""

    item_id: UUID
    mismatches: tuple[ProjectionMismatch, ...]
    cached_percent: Decimal
    replayed_percent: Decimal

    @property
    def is_consistent(self) -> bool:
        return (
            not self.mismatches
            and abs(self.cached_percent - self.replayed_percent) <= Decimal("0.01")
        )


@dataclass(frozen=True)
class RecordResult:
    """Outcome of recording one milestone change."""

    item_id: UUID
    event_id: UUID | None
    milestone_name: str
    previous_value: Decimal
    new_value: Decimal
    progress: ProgressResult
    changed: bool = True
