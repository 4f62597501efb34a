"""
Module: progress_kernel.selectors.template_selector
Responsibility: Read-only queries over milestone templates (type defaults and
    project overrides) and the template change log.
Architecture position: Kernel > Selectors.  Returns domain value objects
    (ScheduleEntry, MilestoneOverride); never merges or validates -- that is
    TemplateResolver's job.

Invariants enforced:
    - Default rows are the rows with ``project_id IS NULL``; they are never
      mixed into a project's override list.
    - Entries come back in ``milestone_order`` then name order so the
      resolved schedule order is stable.

Failure modes:
    - Empty lists when nothing is stored; never raises for absence.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select

from progress_kernel.domain.schedule import (
    Category,
    MilestoneKind,
    MilestoneOverride,
    ScheduleEntry,
)
from progress_kernel.models.template import MilestoneTemplate, TemplateChangeLog
from progress_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class TemplateChangeDTO:
    """One row of the template change log."""

    id: UUID
    project_id: UUID | None
    item_id: UUID | None
    item_type: str
    action: str
    old_state: dict[str, Any] | None
    new_state: dict[str, Any] | None
    actor_id: UUID
    reason: str | None
    changed_at: datetime
    affected_items: int


def template_to_entry(row: MilestoneTemplate) -> ScheduleEntry:
    return ScheduleEntry(
        name=row.milestone_name,
        weight=row.weight,
        kind=MilestoneKind(row.kind),
        category=Category(row.category),
        order=row.milestone_order,
        requires_welder=row.requires_welder,
    )


def template_to_override(row: MilestoneTemplate) -> MilestoneOverride:
    return MilestoneOverride(
        name=row.milestone_name,
        weight=row.weight,
        kind=MilestoneKind(row.kind),
        category=Category(row.category),
    )


class TemplateSelector(BaseSelector[MilestoneTemplate]):
    """Queries over MilestoneTemplate and TemplateChangeLog."""

    def _rows(self, item_type: str, project_id: UUID | None) -> list[MilestoneTemplate]:
        scope = (
            MilestoneTemplate.project_id.is_(None)
            if project_id is None
            else MilestoneTemplate.project_id == project_id
        )
        stmt = (
            select(MilestoneTemplate)
            .where(MilestoneTemplate.item_type == item_type, scope)
            .order_by(MilestoneTemplate.milestone_order, MilestoneTemplate.milestone_key)
        )
        return list(self.session.scalars(stmt).all())

    def default_rows(self, item_type: str) -> list[MilestoneTemplate]:
        """ORM rows of the type default (for services that rewrite them)."""
        return self._rows(item_type, None)

    def override_rows(self, project_id: UUID, item_type: str) -> list[MilestoneTemplate]:
        return self._rows(item_type, project_id)

    def default_entries(self, item_type: str) -> list[ScheduleEntry]:
        return [template_to_entry(row) for row in self.default_rows(item_type)]

    def override_entries(self, project_id: UUID, item_type: str) -> list[MilestoneOverride]:
        return [
            template_to_override(row) for row in self.override_rows(project_id, item_type)
        ]

    def item_types(self) -> list[str]:
        """Item types that have a default schedule."""
        stmt = (
            select(MilestoneTemplate.item_type)
            .where(MilestoneTemplate.project_id.is_(None))
            .distinct()
            .order_by(MilestoneTemplate.item_type)
        )
        return list(self.session.scalars(stmt).all())

    def override_item_types(self, project_id: UUID) -> list[str]:
        """Item types the project overrides."""
        stmt = (
            select(MilestoneTemplate.item_type)
            .where(MilestoneTemplate.project_id == project_id)
            .distinct()
            .order_by(MilestoneTemplate.item_type)
        )
        return list(self.session.scalars(stmt).all())

    def projects_overriding(self, item_type: str) -> list[UUID]:
        """Projects that carry overrides for ``item_type``."""
        stmt = (
            select(MilestoneTemplate.project_id)
            .where(
                MilestoneTemplate.item_type == item_type,
                MilestoneTemplate.project_id.is_not(None),
            )
            .distinct()
        )
        return list(self.session.scalars(stmt).all())

    def has_overrides(self, project_id: UUID) -> bool:
        stmt = select(func.count(MilestoneTemplate.id)).where(
            MilestoneTemplate.project_id == project_id
        )
        return (self.session.scalar(stmt) or 0) > 0

    def overrides_last_modified(
        self, project_id: UUID, item_type: str
    ) -> datetime | None:
        """Latest write time of the project's override rows for a type."""
        stmt = select(func.max(MilestoneTemplate.updated_at)).where(
            MilestoneTemplate.project_id == project_id,
            MilestoneTemplate.item_type == item_type,
        )
        return self.session.scalar(stmt)

    def change_log(
        self,
        project_id: UUID | None = None,
        item_type: str | None = None,
        limit: int = 100,
    ) -> list[TemplateChangeDTO]:
        """Most recent change-log rows first."""
        stmt = select(TemplateChangeLog)
        if project_id is not None:
            stmt = stmt.where(TemplateChangeLog.project_id == project_id)
        if item_type is not None:
            stmt = stmt.where(TemplateChangeLog.item_type == item_type)
        stmt = stmt.order_by(TemplateChangeLog.changed_at.desc()).limit(limit)
        return [self._change_to_dto(row) for row in self.session.scalars(stmt).all()]

    def _change_to_dto(self, row: TemplateChangeLog) -> TemplateChangeDTO:
        return TemplateChangeDTO(
            id=row.id,
            project_id=row.project_id,
            item_id=row.item_id,
            item_type=row.item_type,
            action=row.action,
            old_state=row.old_state,
            new_state=row.new_state,
            actor_id=row.actor_id,
            reason=row.reason,
            changed_at=row.changed_at,
            affected_items=row.affected_items,
        )
