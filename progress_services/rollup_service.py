"""
progress_services.rollup_service -- Dimension rollup cache maintenance.

Responsibility:
    Computes point-in-time rollups of budgeted and earned hours by
    reporting dimension, writes them to the DimensionRollup cache, refreshes
    the rows an item write touches, and detects drift between the cache
    and a fresh computation.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Composes ItemSelector / DimensionSelector / RollupSelector (kernel),
    TemplateResolver (kernel) and the pure rollup engine.

Invariants enforced:
    - Cached rows are a pure function of Item + MilestoneSchedule:
      ``refresh_rollups`` deletes and rebuilds them from scratch, so a full
      rebuild is always a safe recovery after drift.
    - Flush-only: never commits.

Failure modes:
    - InvalidDimensionError for a non-reporting dimension.
    - InvariantViolationError if the engine's budget or reconciliation
      guard trips.

Audit relevance:
    None for the cache itself.  Drift is logged as ``rollup_drift_detected``
    with the differing fields.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete
from sqlalchemy.orm import Session

from progress_config.schema import EngineSettings
from progress_engines import RollupItemInput, aggregate_rollup, compute_rollup_rows
from progress_kernel.domain.clock import Clock, SystemClock
from progress_kernel.domain.dimensions import (
    ITEM_DIMENSION_COLUMNS,
    REPORTING_DIMENSIONS,
    DimensionType,
    parse_reporting_dimension,
)
from progress_kernel.domain.dtos import ItemSnapshot, RollupDrift, RollupRow, RollupSnapshot
from progress_kernel.domain.quantities import percent_of
from progress_kernel.domain.schedule import CATEGORIES
from progress_kernel.logging_config import get_logger
from progress_kernel.models.item import Item
from progress_kernel.models.rollup import DimensionRollup
from progress_kernel.selectors.dimension_selector import DimensionSelector
from progress_kernel.selectors.item_selector import ItemSelector
from progress_kernel.selectors.rollup_selector import RollupSelector
from progress_kernel.services.base import BaseService
from progress_kernel.services.template_resolver import TemplateResolver

logger = get_logger("services.rollup")

# Cached figures are compared at storage precision.
DRIFT_TOLERANCE = Decimal("0.0001")


class RollupService(BaseService[DimensionRollup]):
    """
    Computes and caches dimension rollups.

    Contract:
        ``compute_snapshot`` never touches the cache; ``refresh_*`` write it;
        ``detect_rollup_drift`` only reads.
    """

    def __init__(
        self,
        session: Session,
        resolver: TemplateResolver,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
    ):
        super().__init__(session)
        self._resolver = resolver
        self._clock = clock or SystemClock()
        self._settings = settings or EngineSettings()
        self._items = ItemSelector(session)
        self._dimensions = DimensionSelector(session)
        self._cache = RollupSelector(session)

    def compute_snapshot(
        self, project_id: UUID, dimension: DimensionType | str
    ) -> RollupSnapshot:
        """Fresh rollup of every active item in the project."""
        dimension = parse_reporting_dimension(dimension)
        return aggregate_rollup(
            project_id,
            dimension,
            self._inputs(self._items.list_items(project_id)),
            labels=self._labels(project_id, dimension),
            as_of=self._clock.now(),
            not_assigned_label=self._settings.not_assigned_label,
            tolerance=self._settings.reconciliation_tolerance,
        )

    def cached_snapshot(
        self, project_id: UUID, dimension: DimensionType | str
    ) -> RollupSnapshot | None:
        """The cached rollup, or None when the cache is empty."""
        dimension = parse_reporting_dimension(dimension)
        labels = self._labels(project_id, dimension)
        rows = self._cache.cached_rows(project_id, dimension, labels)
        if not rows:
            return None
        totals = _sum_rows(rows)
        return RollupSnapshot(
            project_id=project_id,
            dimension=dimension,
            rows=tuple(rows),
            totals=totals,
            as_of=self._cache.last_refreshed(project_id, dimension),
        )

    def refresh_rollups(
        self, project_id: UUID, dimension: DimensionType | str | None = None
    ) -> int:
        """
        Rebuild the cache for one dimension (or all reporting dimensions)
        from scratch.

        Returns:
            Number of cache rows written.
        """
        dimensions = (
            REPORTING_DIMENSIONS if dimension is None else (parse_reporting_dimension(dimension),)
        )
        written = 0
        for dim in dimensions:
            snapshot = self.compute_snapshot(project_id, dim)
            self.session.execute(
                delete(DimensionRollup).where(
                    DimensionRollup.project_id == project_id,
                    DimensionRollup.dimension == dim.value,
                )
            )
            refreshed_at = self._clock.now()
            for row in snapshot.rows:
                self.session.add(self._to_model(project_id, dim, row, refreshed_at))
                written += 1
        self.session.flush()
        logger.info(
            "rollups_refreshed",
            extra={
                "project_id": str(project_id),
                "dimensions": [d.value for d in dimensions],
                "rows_written": written,
            },
        )
        return written

    def refresh_groups(
        self,
        project_id: UUID,
        dimension_ids: Iterable[Mapping[DimensionType, UUID | None]],
    ) -> int:
        """
        Recompute only the cache rows for the given assignments -- the
        groups an item belonged to before and after a write.

        Returns:
            Number of cache rows written.
        """
        targets: dict[DimensionType, set[UUID | None]] = {d: set() for d in REPORTING_DIMENSIONS}
        for assignment in dimension_ids:
            for dim in REPORTING_DIMENSIONS:
                targets[dim].add(assignment.get(dim))

        written = 0
        refreshed_at = self._clock.now()
        for dim, value_ids in targets.items():
            labels = self._labels(project_id, dim)
            for value_id in value_ids:
                condition = (
                    DimensionRollup.dimension_value_id.is_(None)
                    if value_id is None
                    else DimensionRollup.dimension_value_id == value_id
                )
                self.session.execute(
                    delete(DimensionRollup).where(
                        DimensionRollup.project_id == project_id,
                        DimensionRollup.dimension == dim.value,
                        condition,
                    )
                )
                members = self._items.items_for_dimension_value(project_id, dim, value_id)
                if not members:
                    continue
                rows, _ = compute_rollup_rows(
                    dim,
                    self._inputs(members),
                    labels=labels,
                    not_assigned_label=self._settings.not_assigned_label,
                    tolerance=self._settings.reconciliation_tolerance,
                )
                for row in rows:
                    self.session.add(self._to_model(project_id, dim, row, refreshed_at))
                    written += 1
        self.session.flush()
        logger.debug(
            "rollup_groups_refreshed",
            extra={"project_id": str(project_id), "rows_written": written},
        )
        return written

    def refresh_for_item(self, item: Item | ItemSnapshot) -> int:
        """Refresh the rows of every group ``item`` is assigned to."""
        if isinstance(item, Item):
            assignment = {
                dim: getattr(item, ITEM_DIMENSION_COLUMNS[dim]) for dim in REPORTING_DIMENSIONS
            }
            return self.refresh_groups(item.project_id, [assignment])
        return self.refresh_groups(item.project_id, [item.dimension_ids])

    def detect_rollup_drift(
        self, project_id: UUID, dimension: DimensionType | str
    ) -> list[RollupDrift]:
        """
        Compare cached rows against a fresh computation.

        Returns:
            One RollupDrift per differing field; empty when the cache is
            current.  A missing or extra row shows as drift on
            ``budgeted_hours`` with ``None`` on the absent side.
        """
        dimension = parse_reporting_dimension(dimension)
        labels = self._labels(project_id, dimension)
        cached = {
            r.dimension_value_id: r
            for r in self._cache.cached_rows(project_id, dimension, labels)
        }
        fresh = {
            r.dimension_value_id: r for r in self.compute_snapshot(project_id, dimension).rows
        }

        drift: list[RollupDrift] = []
        for value_id in sorted(set(cached) | set(fresh), key=lambda v: (v is None, str(v))):
            old, new = cached.get(value_id), fresh.get(value_id)
            if old is None or new is None:
                drift.append(
                    RollupDrift(
                        value_id,
                        "budgeted_hours",
                        old.budgeted_hours if old else None,
                        new.budgeted_hours if new else None,
                    )
                )
                continue
            drift.extend(_row_drift(value_id, old, new))

        if drift:
            logger.warning(
                "rollup_drift_detected",
                extra={
                    "project_id": str(project_id),
                    "dimension": dimension.value,
                    "drift_count": len(drift),
                    "fields": sorted({d.field_name for d in drift}),
                },
            )
        return drift

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _inputs(self, snapshots: Sequence[ItemSnapshot]) -> list[RollupItemInput]:
        return [
            RollupItemInput(s, self._resolver.resolve(s.item_type, s.project_id))
            for s in snapshots
            if not s.is_retired
        ]

    def _labels(self, project_id: UUID, dimension: DimensionType):
        return self._dimensions.labels(
            project_id, dimension, not_assigned_label=self._settings.not_assigned_label
        )

    def _to_model(
        self,
        project_id: UUID,
        dimension: DimensionType,
        row: RollupRow,
        refreshed_at: datetime,
    ) -> DimensionRollup:
        return DimensionRollup(
            project_id=project_id,
            dimension=dimension.value,
            dimension_value_id=row.dimension_value_id,
            item_count=row.item_count,
            budgeted_hours=row.budgeted_hours,
            earned_hours=row.earned_hours,
            category_earned={c.value: str(row.category_earned_hours[c]) for c in CATEGORIES},
            category_budgeted={c.value: str(row.category_budgeted_hours[c]) for c in CATEGORIES},
            refreshed_at=refreshed_at,
        )


def _row_drift(value_id: UUID | None, old: RollupRow, new: RollupRow) -> list[RollupDrift]:
    drift = []
    if old.item_count != new.item_count:
        drift.append(
            RollupDrift(value_id, "item_count", Decimal(old.item_count), Decimal(new.item_count))
        )
    for field_name in ("budgeted_hours", "earned_hours"):
        a, b = getattr(old, field_name), getattr(new, field_name)
        if abs(a - b) > DRIFT_TOLERANCE:
            drift.append(RollupDrift(value_id, field_name, a, b))
    for category in CATEGORIES:
        a, b = old.category_earned_hours[category], new.category_earned_hours[category]
        if abs(a - b) > DRIFT_TOLERANCE:
            drift.append(RollupDrift(value_id, f"category_earned.{category.value}", a, b))
    return drift


def _sum_rows(rows: Sequence[RollupRow]) -> RollupRow:
    budget = sum((r.budgeted_hours for r in rows), Decimal("0"))
    earned = sum((r.earned_hours for r in rows), Decimal("0"))
    return RollupRow(
        dimension_value_id=None,
        code=None,
        label="Total",
        item_count=sum(r.item_count for r in rows),
        budgeted_hours=budget,
        earned_hours=earned,
        percent_complete=percent_of(earned, budget),
        category_earned_hours={
            c: sum((r.category_earned_hours[c] for r in rows), Decimal("0")) for c in CATEGORIES
        },
        category_budgeted_hours={
            c: sum((r.category_budgeted_hours[c] for r in rows), Decimal("0")) for c in CATEGORIES
        },
    )
