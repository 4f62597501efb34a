"""
TemplateRegistry -- the write surface over milestone schedules.

Responsibility:
    Stores type-default schedules and project overrides, and records every
    change in the append-only TemplateChangeLog.  It is the only component
    that writes MilestoneTemplate rows.

Architecture position:
    Kernel > Services -- imperative shell.  Validation goes through the
    same ``resolve_schedule`` merge the resolver uses; recalculating
    existing items after a change is delegated to a caller-supplied
    ``recalculate`` callback so the kernel never reaches into the engines.

Invariants enforced:
    - WEIGHT_SUM: before any row is flushed, every schedule the written
      (project, item type) pair resolves to is re-validated.  A default
      change re-validates the default itself and every project that
      overrides that type; an override change validates that project.
    - Overrides may only name milestones the type default defines.
    - Flush-only: never commits.

Failure modes:
    - SchemaInvalidError, UnknownMilestoneError, TemplateNotFoundError from
      validation; nothing is written when validation fails.
    - TemplateConflictError when ``expected_updated_at`` is stale.
    - TemplatesAlreadyExistError when cloning into a project with overrides.

Audit relevance:
    Each write appends one TemplateChangeLog row holding the resolved
    schedule before and after, the actor, the reason and the number of
    items recalculated.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from progress_kernel.domain.clock import Clock, SystemClock
from progress_kernel.domain.schedule import (
    MilestoneOverride,
    ResolvedSchedule,
    ScheduleEntry,
    milestone_key,
)
from progress_kernel.domain.template_merge import (
    parse_category,
    parse_kind,
    resolve_schedule,
)
from progress_kernel.exceptions import (
    SchemaInvalidError,
    TemplateConflictError,
    TemplateNotFoundError,
    TemplatesAlreadyExistError,
    UnknownMilestoneError,
)
from progress_kernel.invariants import WEIGHT_TOLERANCE
from progress_kernel.logging_config import get_logger
from progress_kernel.models.template import MilestoneTemplate, TemplateChangeLog
from progress_kernel.selectors.template_selector import TemplateSelector
from progress_kernel.services.base import BaseService
from progress_kernel.services.template_resolver import TemplateResolver
from progress_kernel.utils.hashing import canonicalize_json

logger = get_logger("services.template_registry")

# (project_id or None for a default change, item_type) -> items recalculated
RecalculateHook = Callable[[UUID | None, str], int]

EntryInput = ScheduleEntry | Mapping[str, Any]
OverrideInput = MilestoneOverride | Mapping[str, Any]


def coerce_entry(item_type: str, raw: EntryInput, order: int) -> ScheduleEntry:
    """
    Build a ScheduleEntry from an entry or a mapping with ``name``,
    ``weight``, ``kind`` (or legacy ``is_partial``), optional ``category``,
    ``order`` and ``requires_welder``.
    """
    if isinstance(raw, ScheduleEntry):
        return raw
    name = str(raw["name"]).strip()
    kind_value = raw.get("kind", raw.get("is_partial", "discrete"))
    return ScheduleEntry(
        name=name,
        weight=Decimal(str(raw["weight"])),
        kind=parse_kind(kind_value),
        category=parse_category(raw.get("category"), item_type, name),
        order=int(raw.get("order", order)),
        requires_welder=bool(raw.get("requires_welder", False)),
    )


def coerce_override(
    item_type: str, raw: OverrideInput, defaults: Mapping[str, ScheduleEntry]
) -> MilestoneOverride:
    """
    Build a MilestoneOverride.  Fields a mapping omits keep the default
    milestone's values, so ``{"name": "Punch", "weight": 2}`` reweights
    without touching kind or category.
    """
    if isinstance(raw, MilestoneOverride):
        return raw
    name = str(raw["name"]).strip()
    default = defaults.get(milestone_key(name))
    if default is None:
        raise UnknownMilestoneError(item_type, name)
    kind_value = raw.get("kind", raw.get("is_partial"))
    category_value = raw.get("category")
    return MilestoneOverride(
        name=default.name,
        weight=Decimal(str(raw.get("weight", default.weight))),
        kind=parse_kind(kind_value) if kind_value is not None else default.kind,
        category=(
            parse_category(category_value, item_type, name)
            if category_value is not None
            else default.category
        ),
    )


def _state(schedule: ResolvedSchedule | None) -> dict[str, Any] | None:
    # JSON columns cannot hold Decimal or UUID directly
    if schedule is None:
        return None
    return json.loads(canonicalize_json(schedule.to_dict()))


class TemplateRegistry(BaseService[MilestoneTemplate]):
    """
    Write operations over milestone templates.

    Contract:
        Every public write validates first, then replaces rows, flushes,
        invalidates the resolver cache, runs the optional ``recalculate``
        hook and appends one change-log row.

    Non-goals:
        - Does NOT compute progress.  Callers that need existing items
          recalculated pass ``recalculate``.
    """

    def __init__(
        self,
        session: Session,
        resolver: TemplateResolver | None = None,
        clock: Clock | None = None,
        tolerance: Decimal = WEIGHT_TOLERANCE,
    ):
        super().__init__(session)
        self._resolver = resolver or TemplateResolver(session, tolerance=tolerance)
        self._selector = TemplateSelector(session)
        self._clock = clock or SystemClock()
        self._tolerance = tolerance

    @property
    def resolver(self) -> TemplateResolver:
        return self._resolver

    # ------------------------------------------------------------------
    # Type defaults
    # ------------------------------------------------------------------

    def set_default_schedule(
        self,
        item_type: str,
        entries: Sequence[EntryInput],
        actor_id: UUID,
        reason: str | None = None,
        recalculate: RecalculateHook | None = None,
    ) -> ResolvedSchedule:
        """
        Replace the default schedule of ``item_type``.

        Every project overriding the type is re-validated against the new
        defaults before anything is written.

        Raises:
            SchemaInvalidError: new defaults, or some project's merge with
                them, do not total 100.
            UnknownMilestoneError: a project overrides a milestone the new
                defaults drop.
        """
        parsed = [coerce_entry(item_type, raw, index) for index, raw in enumerate(entries)]
        new_schedule = resolve_schedule(item_type, parsed, tolerance=self._tolerance)

        for project_id in self._selector.projects_overriding(item_type):
            resolve_schedule(
                item_type,
                parsed,
                self._selector.override_entries(project_id, item_type),
                project_id=project_id,
                tolerance=self._tolerance,
            )

        existing = self._selector.default_rows(item_type)
        old_schedule = self._resolve_or_none(item_type, None) if existing else None

        for row in existing:
            self.session.delete(row)
        self.session.flush()

        for entry in new_schedule.entries:
            self.session.add(self._row(None, item_type, entry, actor_id))
        self.session.flush()

        self._resolver.invalidate(item_type=item_type)
        affected = recalculate(None, item_type) if recalculate else 0
        self._log_change(
            None, item_type, "set_default", old_schedule, new_schedule, actor_id, reason, affected
        )
        logger.info(
            "default_schedule_written",
            extra={
                "item_type": item_type,
                "fingerprint": new_schedule.fingerprint,
                "affected_items": affected,
            },
        )
        return new_schedule

    # ------------------------------------------------------------------
    # Project overrides
    # ------------------------------------------------------------------

    def set_project_overrides(
        self,
        project_id: UUID,
        item_type: str,
        overrides: Sequence[OverrideInput],
        actor_id: UUID,
        reason: str | None = None,
        expected_updated_at: datetime | None = None,
        recalculate: RecalculateHook | None = None,
    ) -> ResolvedSchedule:
        """
        Write or update the project's overrides for ``item_type``.

        Overrides for milestones not named in ``overrides`` are kept.  The
        merged schedule must still total 100.

        Args:
            expected_updated_at: The latest override write time the caller
                saw.  When given and any override row is newer, the write is
                rejected.

        Raises:
            TemplateConflictError, SchemaInvalidError, UnknownMilestoneError,
            TemplateNotFoundError.
        """
        defaults = self._selector.default_entries(item_type)
        if not defaults:
            raise TemplateNotFoundError(item_type)
        defaults_by_key = {d.key: d for d in defaults}

        current_rows = self._lock_override_rows(project_id, item_type)
        self._check_conflict(project_id, item_type, current_rows, expected_updated_at)

        incoming = [coerce_override(item_type, raw, defaults_by_key) for raw in overrides]
        merged: dict[str, MilestoneOverride] = {
            milestone_key(row.milestone_name): MilestoneOverride(
                name=row.milestone_name,
                weight=row.weight,
                kind=parse_kind(row.kind),
                category=parse_category(row.category, item_type, row.milestone_name),
            )
            for row in current_rows
        }
        seen: set[str] = set()
        for override in incoming:
            if override.key in seen:
                raise SchemaInvalidError(
                    item_type=item_type,
                    weight_total=Decimal("0"),
                    project_id=str(project_id),
                    detail=f"milestone {override.name!r} listed twice",
                )
            seen.add(override.key)
            merged[override.key] = override

        new_schedule = resolve_schedule(
            item_type,
            defaults,
            list(merged.values()),
            project_id=project_id,
            tolerance=self._tolerance,
        )
        old_schedule = self._resolve_or_none(item_type, project_id)

        rows_by_key = {milestone_key(r.milestone_name): r for r in current_rows}
        for key, override in merged.items():
            entry = new_schedule.entry_for(override.name)
            row = rows_by_key.get(key)
            if row is None:
                self.session.add(self._row(project_id, item_type, entry, actor_id))
                continue
            row.weight = entry.weight
            row.kind = entry.kind.value
            row.category = entry.category.value
            row.updated_by_id = actor_id
        self.session.flush()

        self._resolver.invalidate(project_id=project_id, item_type=item_type)
        affected = recalculate(project_id, item_type) if recalculate else 0
        self._log_change(
            project_id,
            item_type,
            "set_overrides",
            old_schedule,
            new_schedule,
            actor_id,
            reason,
            affected,
        )
        logger.info(
            "override_written",
            extra={
                "project_id": str(project_id),
                "item_type": item_type,
                "milestones": [o.name for o in incoming],
                "affected_items": affected,
            },
        )
        return new_schedule

    def remove_project_override(
        self,
        project_id: UUID,
        item_type: str,
        actor_id: UUID,
        milestone_name: str | None = None,
        reason: str | None = None,
        recalculate: RecalculateHook | None = None,
    ) -> ResolvedSchedule:
        """
        Drop one override (``milestone_name``) or all of the project's
        overrides for ``item_type`` (``milestone_name=None``).

        The remaining overrides must still resolve to a valid schedule.
        """
        current_rows = self._lock_override_rows(project_id, item_type)
        if milestone_name is None:
            doomed = list(current_rows)
        else:
            key = milestone_key(milestone_name)
            doomed = [r for r in current_rows if milestone_key(r.milestone_name) == key]
            if not doomed:
                raise UnknownMilestoneError(item_type, milestone_name)

        kept = [
            MilestoneOverride(
                name=r.milestone_name,
                weight=r.weight,
                kind=parse_kind(r.kind),
                category=parse_category(r.category, item_type, r.milestone_name),
            )
            for r in current_rows
            if r not in doomed
        ]
        new_schedule = resolve_schedule(
            item_type,
            self._selector.default_entries(item_type),
            kept,
            project_id=project_id,
            tolerance=self._tolerance,
        )
        old_schedule = self._resolve_or_none(item_type, project_id)

        for row in doomed:
            self.session.delete(row)
        self.session.flush()

        self._resolver.invalidate(project_id=project_id, item_type=item_type)
        affected = recalculate(project_id, item_type) if recalculate else 0
        self._log_change(
            project_id,
            item_type,
            "remove_override",
            old_schedule,
            new_schedule,
            actor_id,
            reason,
            affected,
        )
        logger.info(
            "override_removed",
            extra={
                "project_id": str(project_id),
                "item_type": item_type,
                "milestones": [r.milestone_name for r in doomed],
            },
        )
        return new_schedule

    def clone_defaults_to_project(
        self, project_id: UUID, actor_id: UUID, reason: str | None = None
    ) -> int:
        """
        Copy every type default into the project as override rows, giving
        the project an editable copy of the whole vocabulary.

        Returns:
            Number of template rows created.

        Raises:
            TemplatesAlreadyExistError: The project already has overrides.
        """
        if self._selector.has_overrides(project_id):
            raise TemplatesAlreadyExistError(str(project_id))

        created = 0
        for item_type in self._selector.item_types():
            schedule = self._resolver.resolve(item_type)
            for entry in schedule.entries:
                self.session.add(self._row(project_id, item_type, entry, actor_id))
                created += 1
            self._log_change(
                project_id, item_type, "clone_defaults", None, schedule, actor_id, reason, 0
            )
        self.session.flush()
        self._resolver.invalidate(project_id=project_id)

        logger.info(
            "templates_cloned",
            extra={"project_id": str(project_id), "rows_created": created},
        )
        return created

    def list_project_overrides(
        self, project_id: UUID
    ) -> dict[str, list[MilestoneOverride]]:
        """The project's overrides grouped by item type."""
        return {
            item_type: self._selector.override_entries(project_id, item_type)
            for item_type in self._selector.override_item_types(project_id)
        }

    def overrides_last_modified(self, project_id: UUID, item_type: str) -> datetime | None:
        """Token to pass back as ``expected_updated_at``."""
        return self._selector.overrides_last_modified(project_id, item_type)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _lock_override_rows(self, project_id: UUID, item_type: str) -> list[MilestoneTemplate]:
        stmt = (
            select(MilestoneTemplate)
            .where(
                MilestoneTemplate.project_id == project_id,
                MilestoneTemplate.item_type == item_type,
            )
            .order_by(MilestoneTemplate.milestone_order)
            .with_for_update()
        )
        return list(self.session.scalars(stmt).all())

    def _check_conflict(
        self,
        project_id: UUID,
        item_type: str,
        rows: Sequence[MilestoneTemplate],
        expected_updated_at: datetime | None,
    ) -> None:
        if expected_updated_at is None:
            return
        if any(row.updated_at > expected_updated_at for row in rows):
            logger.warning(
                "template_conflict_detected",
                extra={"project_id": str(project_id), "item_type": item_type},
            )
            raise TemplateConflictError(str(project_id), item_type)

    def _resolve_or_none(
        self, item_type: str, project_id: UUID | None
    ) -> ResolvedSchedule | None:
        defaults = self._selector.default_entries(item_type)
        if not defaults:
            return None
        overrides = (
            self._selector.override_entries(project_id, item_type) if project_id else []
        )
        return resolve_schedule(
            item_type, defaults, overrides, project_id=project_id, tolerance=self._tolerance
        )

    def _row(
        self,
        project_id: UUID | None,
        item_type: str,
        entry: ScheduleEntry,
        actor_id: UUID,
    ) -> MilestoneTemplate:
        return MilestoneTemplate(
            project_id=project_id,
            item_type=item_type,
            milestone_name=entry.name,
            milestone_key=entry.key,
            weight=entry.weight,
            kind=entry.kind.value,
            category=entry.category.value,
            milestone_order=entry.order,
            requires_welder=entry.requires_welder,
            created_by_id=actor_id,
        )

    def _log_change(
        self,
        project_id: UUID | None,
        item_type: str,
        action: str,
        old_schedule: ResolvedSchedule | None,
        new_schedule: ResolvedSchedule | None,
        actor_id: UUID,
        reason: str | None,
        affected: int,
    ) -> TemplateChangeLog:
        entry = TemplateChangeLog(
            project_id=project_id,
            item_type=item_type,
            action=action,
            old_state=_state(old_schedule),
            new_state=_state(new_schedule),
            actor_id=actor_id,
            reason=reason,
            changed_at=self._clock.now(),
            affected_items=affected,
        )
        self.session.add(entry)
        self.session.flush()
        return entry
