"""
progress_services.projection_service -- The item's cached progress projection.

Responsibility:
    Keeps ``Item.current_milestones`` / ``percent_complete`` /
    ``earned_hours`` consistent with the milestone event log and the
    item's resolved schedule: recalculates it after a template or budget
    change, rebuilds it by replaying the log, and verifies it without
    writing.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

Invariants enforced:
    - The cached map is a projection of the event log: the latest event per
      (item, milestone).  ``rebuild_item_projection`` restores that
      relationship mechanically after any incident.
    - CATEGORY_RECONCILIATION is checked on every recalculation by
      ``compute_progress``.
    - Flush-only: never commits.

Failure modes:
    - ItemNotFoundError.
    - OptimisticLockError when a concurrent writer updated the item first.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from progress_config.schema import EngineSettings
from progress_engines import compute_progress, percent_complete, replay_milestones
from progress_kernel.domain.dtos import ProgressResult, ProjectionCheck, ProjectionMismatch
from progress_kernel.domain.schedule import ResolvedSchedule, milestone_key
from progress_kernel.exceptions import ItemNotFoundError, OptimisticLockError
from progress_kernel.logging_config import get_logger
from progress_kernel.models.item import Item
from progress_kernel.selectors.event_selector import EventSelector
from progress_kernel.selectors.item_selector import ItemSelector
from progress_kernel.services.base import BaseService
from progress_kernel.services.item_service import ItemService
from progress_kernel.services.template_resolver import TemplateResolver

logger = get_logger("services.projection")


def apply_progress(item: Item, milestones: dict[str, Decimal], progress: ProgressResult) -> None:
    """Overwrite the item's cached projection."""
    item.store_milestone_values(milestones)
    item.percent_complete = progress.percent_complete
    item.earned_hours = progress.earned_hours
    item.schedule_fingerprint = progress.schedule_fingerprint


def compare_maps(
    cached: dict[str, Decimal], replayed: dict[str, Decimal]
) -> tuple[ProjectionMismatch, ...]:
    """Milestones whose cached and replayed values differ (names compared case-insensitively)."""
    cached_by_key = {milestone_key(k): (k, v) for k, v in cached.items()}
    replayed_by_key = {milestone_key(k): (k, v) for k, v in replayed.items()}
    mismatches = []
    for key in sorted(set(cached_by_key) | set(replayed_by_key)):
        cached_name, cached_value = cached_by_key.get(key, (None, None))
        replayed_name, replayed_value = replayed_by_key.get(key, (None, None))
        if cached_value != replayed_value:
            mismatches.append(
                ProjectionMismatch(
                    milestone_name=replayed_name or cached_name,
                    cached=cached_value,
                    replayed=replayed_value,
                )
            )
    return tuple(mismatches)


class ProjectionService(BaseService[Item]):
    """Recalculate, rebuild and verify cached item progress."""

    def __init__(
        self,
        session: Session,
        resolver: TemplateResolver,
        items: ItemService,
        settings: EngineSettings | None = None,
    ):
        super().__init__(session)
        self._resolver = resolver
        self._items = items
        self._settings = settings or EngineSettings()
        self._events = EventSelector(session)
        self._item_selector = ItemSelector(session)

    def schedule_for(self, item: Item) -> ResolvedSchedule:
        return self._resolver.resolve(item.item_type, item.project_id)

    def calculate(
        self, item: Item, milestones: dict[str, Decimal] | None = None
    ) -> ProgressResult:
        """Progress of ``item`` from ``milestones`` (default: its cached map)."""
        return compute_progress(
            self.schedule_for(item),
            item.milestone_values() if milestones is None else milestones,
            item.budgeted_hours,
            item_id=item.id,
            tolerance=self._settings.reconciliation_tolerance,
        )

    def recalculate_item(self, item_id: UUID, actor_id: UUID | None = None) -> ProgressResult:
        """
        Recompute percent and earned hours from the cached milestone map
        with the current schedule and budget.  The map itself is unchanged.
        """
        item = self._items.load_for_update(item_id)
        progress = self.calculate(item)
        apply_progress(item, item.milestone_values(), progress)
        if actor_id is not None:
            item.updated_by_id = actor_id
        self._flush(item)
        return progress

    def recalculate_items(self, project_id: UUID | None, item_type: str) -> int:
        """
        Recalculate every active item of ``item_type`` (in one project, or
        in all projects when ``project_id`` is None).

        Returns:
            Number of items recalculated.
        """
        count = 0
        for snapshot in self._item_selector.items_of_type(item_type, project_id):
            self.recalculate_item(snapshot.item_id)
            count += 1
        logger.info(
            "items_recalculated",
            extra={
                "project_id": str(project_id) if project_id else None,
                "item_type": item_type,
                "count": count,
            },
        )
        return count

    def verify_item_projection(self, item_id: UUID) -> ProjectionCheck:
        """Compare the cached projection with a replay of the log.  Read-only."""
        snapshot = self._item_selector.get(item_id)
        if snapshot is None:
            raise ItemNotFoundError(str(item_id))
        schedule = self._resolver.resolve(snapshot.item_type, snapshot.project_id)
        replayed = replay_milestones(self._events.events_for_item(item_id))
        return ProjectionCheck(
            item_id=item_id,
            mismatches=compare_maps(dict(snapshot.milestones), replayed),
            cached_percent=snapshot.percent_complete,
            replayed_percent=percent_complete(schedule, replayed),
        )

    def rebuild_item_projection(
        self, item_id: UUID, actor_id: UUID | None = None
    ) -> ProgressResult:
        """
        Replay the item's events from an empty map and overwrite the cached
        projection with the result.
        """
        item = self._items.load_for_update(item_id)
        cached = item.milestone_values()
        replayed = replay_milestones(self._events.events_for_item(item_id))
        progress = self.calculate(item, replayed)
        mismatches = compare_maps(cached, replayed)

        apply_progress(item, replayed, progress)
        if actor_id is not None:
            item.updated_by_id = actor_id
        self._flush(item)

        log = logger.warning if mismatches else logger.info
        log(
            "projection_rebuilt",
            extra={
                "item_id": str(item_id),
                "mismatch_count": len(mismatches),
                "milestones": [m.milestone_name for m in mismatches],
                "percent_complete": progress.percent_complete,
            },
        )
        return progress

    def _flush(self, item: Item) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            raise OptimisticLockError("Item", str(item.id)) from exc
