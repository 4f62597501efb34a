"""
progress_services.template_admin -- Template edits with their consequences.

Responsibility:
    Front door for template administration.  Delegates the write and the
    validation to the kernel TemplateRegistry and, when asked, recalculates
    every affected item and refreshes the rollup cache of every project
    those items live in -- inside the same transaction as the edit.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

Invariants enforced:
    - TEMPLATE_ISOLATION: a project override only recalculates items in
      that project; a default change recalculates items of the type in
      every project.
    - The change-log row carries the affected item count of the
      recalculation that ran.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from progress_kernel.domain.schedule import ResolvedSchedule
from progress_kernel.logging_config import get_logger
from progress_kernel.selectors.item_selector import ItemSelector
from progress_kernel.selectors.template_selector import TemplateChangeDTO, TemplateSelector
from progress_kernel.services.template_registry import EntryInput, OverrideInput, TemplateRegistry
from progress_services.projection_service import ProjectionService
from progress_services.rollup_service import RollupService

logger = get_logger("services.template_admin")


@dataclass(frozen=True)
class TemplateEditResult:
    """The schedule after an edit and how many items were recalculated."""

    schedule: ResolvedSchedule
    affected_items: int


class TemplateAdminService:
    """
    Template administration with optional recalculation of existing items.

    ``apply_to_existing=False`` only changes the template: cached item
    progress keeps the old weights until the next write or a rebuild.
    """

    def __init__(
        self,
        session: Session,
        registry: TemplateRegistry,
        projection: ProjectionService,
        rollups: RollupService,
    ):
        self._session = session
        self._registry = registry
        self._projection = projection
        self._rollups = rollups
        self._items = ItemSelector(session)
        self._templates = TemplateSelector(session)

    def set_default_schedule(
        self,
        item_type: str,
        entries: Sequence[EntryInput],
        actor_id: UUID,
        reason: str | None = None,
        apply_to_existing: bool = True,
    ) -> TemplateEditResult:
        self._last_affected = 0
        hook = self._recalculate if apply_to_existing else None
        schedule = self._registry.set_default_schedule(
            item_type, entries, actor_id, reason=reason, recalculate=hook
        )
        return TemplateEditResult(schedule, self._last_affected)

    def set_project_overrides(
        self,
        project_id: UUID,
        item_type: str,
        overrides: Sequence[OverrideInput],
        actor_id: UUID,
        reason: str | None = None,
        expected_updated_at: datetime | None = None,
        apply_to_existing: bool = True,
    ) -> TemplateEditResult:
        self._last_affected = 0
        hook = self._recalculate if apply_to_existing else None
        schedule = self._registry.set_project_overrides(
            project_id,
            item_type,
            overrides,
            actor_id,
            reason=reason,
            expected_updated_at=expected_updated_at,
            recalculate=hook,
        )
        return TemplateEditResult(schedule, self._last_affected)

    def remove_project_override(
        self,
        project_id: UUID,
        item_type: str,
        actor_id: UUID,
        milestone_name: str | None = None,
        reason: str | None = None,
        apply_to_existing: bool = True,
    ) -> TemplateEditResult:
        self._last_affected = 0
        hook = self._recalculate if apply_to_existing else None
        schedule = self._registry.remove_project_override(
            project_id,
            item_type,
            actor_id,
            milestone_name=milestone_name,
            reason=reason,
            recalculate=hook,
        )
        return TemplateEditResult(schedule, self._last_affected)

    def clone_defaults_to_project(
        self, project_id: UUID, actor_id: UUID, reason: str | None = None
    ) -> int:
        return self._registry.clone_defaults_to_project(project_id, actor_id, reason=reason)

    def change_history(
        self,
        project_id: UUID | None = None,
        item_type: str | None = None,
        limit: int = 100,
    ) -> list[TemplateChangeDTO]:
        """Newest-first template and correction history."""
        return self._templates.change_log(project_id=project_id, item_type=item_type, limit=limit)

    # ------------------------------------------------------------------
    # Recalculation hook
    # ------------------------------------------------------------------

    _last_affected: int = 0

    def _recalculate(self, project_id: UUID | None, item_type: str) -> int:
        """
        Recalculate items that resolve through the edited template.

        ``project_id=None`` means the type default changed: projects that
        override the type are still affected, because an override replaces
        only the milestones it names.
        """
        if project_id is not None:
            project_ids = [project_id]
        else:
            project_ids = sorted(
                {s.project_id for s in self._items.items_of_type(item_type)}, key=str
            )

        affected = 0
        for pid in project_ids:
            count = self._projection.recalculate_items(pid, item_type)
            if count:
                self._rollups.refresh_rollups(pid)
            affected += count

        self._last_affected = affected
        logger.info(
            "template_change_applied",
            extra={
                "project_id": str(project_id) if project_id else None,
                "item_type": item_type,
                "projects": len(project_ids),
                "affected_items": affected,
            },
        )
        return affected
