"""
progress_services.item_lifecycle -- Item writes that move earned hours.

Responsibility:
    Wraps the kernel ItemService so that every item change which affects
    reported figures is followed, in the same transaction, by the matching
    recalculation and rollup refresh:

        create  -> initial milestones recorded as events, rollups refreshed
        reassign -> rollup groups before AND after the move refreshed
        budget  -> item recalculated, rollups refreshed
        retire  -> rollups refreshed (retired items drop out)

Architecture position:
    Services -- stateful orchestration over engines + kernel.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from progress_config.schema import EngineSettings
from progress_kernel.domain.dimensions import DimensionType
from progress_kernel.domain.dtos import ItemSnapshot, ProgressResult
from progress_kernel.logging_config import LogContext, get_logger
from progress_kernel.selectors.item_selector import ItemSelector
from progress_kernel.services.item_service import ItemService
from progress_services.milestone_recorder import MilestoneRecorder
from progress_services.projection_service import ProjectionService
from progress_services.rollup_service import RollupService

logger = get_logger("services.item_lifecycle")


class ItemLifecycleService:
    """Create, move, re-budget and retire items with their rollups kept current."""

    def __init__(
        self,
        session: Session,
        items: ItemService,
        recorder: MilestoneRecorder,
        projection: ProjectionService,
        rollups: RollupService,
        settings: EngineSettings | None = None,
    ):
        self._session = session
        self._items = items
        self._recorder = recorder
        self._projection = projection
        self._rollups = rollups
        self._settings = settings or EngineSettings()
        self._selector = ItemSelector(session)

    def create_item(
        self,
        project_id: UUID,
        item_type: str,
        identity_key: Mapping[str, Any],
        budgeted_hours: object,
        actor_id: UUID,
        dimensions: Mapping[DimensionType, UUID | None] | None = None,
        milestones: Mapping[str, object] | None = None,
    ) -> ItemSnapshot:
        """
        Create an item, optionally with initial milestone values.

        Initial values go through the recorder like any other write, so an
        imported item's progress is backed by events from the start.
        """
        snapshot = self._items.create_item(
            project_id, item_type, identity_key, budgeted_hours, actor_id, dimensions
        )
        with LogContext.bind(project_id=str(project_id), item_id=str(snapshot.item_id)):
            for name, value in (milestones or {}).items():
                self._recorder.record_milestone(snapshot.item_id, name, value, actor_id)
            self._refresh(snapshot)
        return self._selector.get(snapshot.item_id)

    def reassign(
        self,
        item_id: UUID,
        dimensions: Mapping[DimensionType, UUID | None],
        actor_id: UUID,
    ) -> ItemSnapshot:
        before = self._selector.get(item_id)
        after = self._items.reassign(item_id, dimensions, actor_id)
        if self._settings.eager_rollups:
            assignments = [after.dimension_ids]
            if before is not None:
                assignments.append(before.dimension_ids)
            self._rollups.refresh_groups(after.project_id, assignments)
        return after

    def change_budget(
        self, item_id: UUID, budgeted_hours: object, actor_id: UUID
    ) -> ProgressResult:
        """Set budgeted hours and recompute earned hours at the current percent."""
        self._items.set_budget(item_id, budgeted_hours, actor_id)
        progress = self._projection.recalculate_item(item_id, actor_id)
        self._refresh(self._selector.get(item_id))
        return progress

    def retire(self, item_id: UUID, actor_id: UUID) -> ItemSnapshot:
        snapshot = self._items.retire(item_id, actor_id)
        self._refresh(snapshot)
        return snapshot

    def _refresh(self, snapshot: ItemSnapshot) -> None:
        if self._settings.eager_rollups:
            self._rollups.refresh_for_item(snapshot)
