"""
progress_services.reporting -- The facade the reporting/UI layer calls.

Responsibility:
    Exactly four read operations and one write operation:

        resolve_template         -- merged schedule for (project, item type)
        compute_item_progress    -- percent / earned / categories for one item
        get_rollup_snapshot      -- cumulative figures by one dimension
        get_dimension_delta      -- earned-hours delta by one dimension
        record_milestone_change  -- the single write, triggering recalculation

    Reads load items, schedules and events through the selectors and hand
    them to the pure engines; nothing here does arithmetic of its own.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

Invariants enforced:
    - The delta is computed from the event log, never by subtracting
      rollup snapshots.
    - Untracked items are reported beside the delta, never inside it,
      unless the caller asks for strict mode.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from progress_engines import (
    DeltaItemInput,
    aggregate_delta,
    compute_progress,
    replay_milestones,
)
from progress_kernel.domain.dimensions import DimensionType, parse_reporting_dimension
from progress_kernel.domain.dtos import (
    DeltaReport,
    ProgressResult,
    RecordResult,
    RollupSnapshot,
)
from progress_kernel.domain.schedule import ResolvedSchedule
from progress_kernel.exceptions import (
    InvalidWindowError,
    ItemNotFoundError,
    UntrackedProgressError,
)
from progress_kernel.logging_config import LogContext, get_logger
from progress_kernel.selectors.dimension_selector import DimensionSelector
from progress_kernel.selectors.event_selector import EventSelector
from progress_kernel.selectors.item_selector import ItemSelector
from progress_services.orchestrator import ProgressOrchestrator

logger = get_logger("services.reporting")


class ProgressReportingService:
    """Read and write entry points for the reporting layer."""

    def __init__(self, orchestrator: ProgressOrchestrator):
        self._orchestrator = orchestrator
        self._settings = orchestrator.settings
        session = orchestrator.session
        self._items = ItemSelector(session)
        self._events = EventSelector(session)
        self._dimensions = DimensionSelector(session)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def resolve_template(self, project_id: UUID | None, item_type: str) -> ResolvedSchedule:
        return self._orchestrator.resolver.resolve(item_type, project_id)

    def compute_item_progress(
        self, item_id: UUID, as_of: datetime | None = None
    ) -> ProgressResult:
        """
        Progress of one item from its cached milestone map, or, with
        ``as_of``, from a replay of the events strictly before that instant.
        """
        snapshot = self._items.get(item_id)
        if snapshot is None:
            raise ItemNotFoundError(str(item_id))
        schedule = self.resolve_template(snapshot.project_id, snapshot.item_type)
        if as_of is None:
            milestones = dict(snapshot.milestones)
        else:
            milestones = replay_milestones(self._events.events_for_item(item_id), as_of=as_of)
        return compute_progress(
            schedule,
            milestones,
            snapshot.budgeted_hours,
            item_id=item_id,
            tolerance=self._settings.reconciliation_tolerance,
        )

    def get_rollup_snapshot(
        self,
        project_id: UUID,
        dimension: DimensionType | str,
        use_cache: bool = False,
    ) -> RollupSnapshot:
        """
        Cumulative rollup by ``dimension``.  ``use_cache`` reads the rollup
        cache and falls back to a fresh computation when it is empty.
        """
        rollups = self._orchestrator.rollups
        if use_cache:
            cached = rollups.cached_snapshot(project_id, dimension)
            if cached is not None:
                return cached
        return rollups.compute_snapshot(project_id, dimension)

    def get_dimension_delta(
        self,
        project_id: UUID,
        dimension: DimensionType | str,
        start: datetime,
        end: datetime,
        require_tracked: bool = False,
    ) -> DeltaReport:
        """
        Earned-hours delta for ``[start, end)`` by ``dimension``.

        Only items with an event in the window, plus items with untracked
        progress, are loaded.

        Raises:
            InvalidDimensionError, InvalidWindowError.
            UntrackedProgressError: ``require_tracked`` and some active item
                has cached progress with no events.
        """
        dimension = parse_reporting_dimension(dimension)
        if end <= start:
            raise InvalidWindowError(start, end)

        with LogContext.bind(project_id=str(project_id)):
            active_ids = self._events.active_item_ids(project_id, start, end)
            untracked = self._items.untracked_items(project_id)
            if require_tracked and untracked:
                first = untracked[0]
                raise UntrackedProgressError(str(first.item_id), first.percent_complete)

            snapshots = self._items.items_by_ids(active_ids) + untracked
            history = self._events.events_for_items(active_ids)
            resolver = self._orchestrator.resolver
            inputs = [
                DeltaItemInput(
                    snapshot=s,
                    schedule=resolver.resolve(s.item_type, s.project_id),
                    events=tuple(history.get(s.item_id, ())),
                )
                for s in snapshots
            ]
            report = aggregate_delta(
                project_id,
                dimension,
                start,
                end,
                inputs,
                labels=self._dimensions.labels(
                    project_id, dimension, self._settings.not_assigned_label
                ),
                not_assigned_label=self._settings.not_assigned_label,
                tolerance=self._settings.reconciliation_tolerance,
            )
            logger.info(
                "delta_report_built",
                extra={
                    "dimension": dimension.value,
                    "window_start": start.isoformat(),
                    "window_end": end.isoformat(),
                    "items_with_activity": report.totals.items_with_activity,
                    "delta_earned_hours": report.totals.delta_earned_hours,
                    "untracked_count": len(report.untracked),
                },
            )
            return report

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def record_milestone_change(
        self,
        item_id: UUID,
        milestone_name: str,
        value: object,
        actor_id: UUID,
        occurred_at: datetime | None = None,
    ) -> RecordResult:
        return self._orchestrator.recorder.record_milestone(
            item_id, milestone_name, value, actor_id, occurred_at=occurred_at
        )
