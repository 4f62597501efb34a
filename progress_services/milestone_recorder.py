"""
progress_services.milestone_recorder -- Record and correct milestone values.

Responsibility:
    The single write path for milestone progress.  Normalizes the incoming
    value, appends a MilestoneEvent, updates the item's cached projection
    and (optionally) the rollup cache -- all inside the caller's
    transaction.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Composes ItemService (row lock), TemplateResolver, the pure progress
    calculator and RollupService.

Invariants enforced:
    - ATOMIC_RECORDING: the event append and the projection update are
      flushed together; the caller's commit makes both visible or neither.
    - EVENT_IMMUTABILITY: events are only ever appended.  A correction is a
      new event pointing at the one it supersedes.
    - item_seq is allocated from ``Item.event_seq`` under the item's version
      counter, so concurrent writers to one item serialize and the loser
      gets OptimisticLockError.
    - Values are normalized exactly once, here, before anything is stored.

Failure modes:
    - ItemNotFoundError, ItemRetiredError.
    - InvalidMilestoneValueError for values that cannot be normalized.
    - OptimisticLockError on a lost concurrent update.
    - InvariantViolationError if category hours fail to reconcile.

Audit relevance:
    Every change produces exactly one MilestoneEvent with actor and
    timestamp.  Corrections additionally append a TemplateChangeLog row
    (action ``milestone_correction``) carrying the reason.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from progress_config.schema import EngineSettings
from progress_kernel.domain.clock import Clock, SystemClock
from progress_kernel.domain.dtos import RecordResult
from progress_kernel.domain.schedule import milestone_key
from progress_kernel.domain.values import INCOMPLETE, normalize_milestone_value
from progress_kernel.exceptions import (
    EventNotFoundError,
    ItemRetiredError,
    OptimisticLockError,
)
from progress_kernel.logging_config import LogContext, get_logger
from progress_kernel.models.item import Item
from progress_kernel.models.milestone_event import MilestoneEvent
from progress_kernel.models.template import TemplateChangeLog
from progress_kernel.services.base import BaseService
from progress_kernel.services.item_service import ItemService
from progress_kernel.services.template_resolver import TemplateResolver
from progress_services.projection_service import ProjectionService, apply_progress
from progress_services.rollup_service import RollupService

logger = get_logger("services.milestone_recorder")


def _current_value(milestones: dict[str, Decimal], name: str) -> tuple[str | None, Decimal]:
    """(stored key, value) for ``name`` matched case-insensitively."""
    key = milestone_key(name)
    for stored, value in milestones.items():
        if milestone_key(stored) == key:
            return stored, value
    return None, INCOMPLETE


class MilestoneRecorder(BaseService[MilestoneEvent]):
    """
    Appends milestone events and keeps the item projection in step.

    Contract:
        ``record_milestone`` and ``correct_milestone`` return a RecordResult
        with the progress after the write.  Recording a value equal to the
        current one writes nothing and returns ``changed=False``.
    """

    def __init__(
        self,
        session: Session,
        resolver: TemplateResolver,
        items: ItemService,
        projection: ProjectionService,
        rollups: RollupService | None = None,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
    ):
        super().__init__(session)
        self._resolver = resolver
        self._items = items
        self._projection = projection
        self._rollups = rollups
        self._clock = clock or SystemClock()
        self._settings = settings or EngineSettings()

    def record_milestone(
        self,
        item_id: UUID,
        milestone_name: str,
        value: object,
        actor_id: UUID,
        occurred_at: datetime | None = None,
    ) -> RecordResult:
        """
        Record a new value for one milestone of one item.

        Args:
            value: Raw value from the caller; legacy forms (True, 1, "100")
                are normalized according to the milestone's kind.
            occurred_at: Event time; defaults to the clock.  Imports pass
                the source timestamp.

        Raises:
            ItemNotFoundError, ItemRetiredError, InvalidMilestoneValueError,
            OptimisticLockError, InvariantViolationError.
        """
        with LogContext.bind(item_id=str(item_id), actor_id=str(actor_id)):
            return self._write(item_id, milestone_name, value, actor_id, occurred_at)

    def correct_milestone(
        self,
        item_id: UUID,
        milestone_name: str,
        value: object,
        actor_id: UUID,
        reason: str,
        corrects_event_id: UUID | None = None,
    ) -> RecordResult:
        """
        Administrative correction of a milestone value.

        Appends a correction event that supersedes ``corrects_event_id``
        (default: the milestone's latest event) and a change-log row with
        the reason.  The superseded event is left untouched.

        Raises:
            ValueError: ``reason`` is blank.
            EventNotFoundError: ``corrects_event_id`` is not an event of
                this item's milestone.
        """
        if not reason or not reason.strip():
            raise ValueError("A correction requires a reason")

        with LogContext.bind(item_id=str(item_id), actor_id=str(actor_id)):
            target = self._correction_target(item_id, milestone_name, corrects_event_id)
            result = self._write(
                item_id,
                milestone_name,
                value,
                actor_id,
                None,
                corrects_event_id=target.id if target else None,
                reason=reason,
            )
            if result.changed:
                item = self.session.get(Item, item_id)
                self.session.add(
                    TemplateChangeLog(
                        project_id=item.project_id,
                        item_id=item_id,
                        item_type=item.item_type,
                        action="milestone_correction",
                        old_state={
                            "milestone": result.milestone_name,
                            "value": str(result.previous_value),
                            "event_id": str(target.id) if target else None,
                        },
                        new_state={
                            "milestone": result.milestone_name,
                            "value": str(result.new_value),
                            "event_id": str(result.event_id),
                        },
                        actor_id=actor_id,
                        reason=reason,
                        changed_at=self._clock.now(),
                        affected_items=1,
                    )
                )
                self.session.flush()
                logger.info(
                    "milestone_corrected",
                    extra={
                        "milestone": result.milestone_name,
                        "previous_value": result.previous_value,
                        "new_value": result.new_value,
                        "corrects_event_id": str(target.id) if target else None,
                    },
                )
            return result

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _correction_target(
        self, item_id: UUID, milestone_name: str, event_id: UUID | None
    ) -> MilestoneEvent | None:
        if event_id is None:
            stmt = (
                select(MilestoneEvent)
                .where(MilestoneEvent.item_id == item_id)
                .order_by(MilestoneEvent.item_seq.desc())
            )
            key = milestone_key(milestone_name)
            for event in self.session.scalars(stmt):
                if milestone_key(event.milestone_name) == key:
                    return event
            return None

        event = self.session.get(MilestoneEvent, event_id)
        if (
            event is None
            or event.item_id != item_id
            or milestone_key(event.milestone_name) != milestone_key(milestone_name)
        ):
            raise EventNotFoundError(str(event_id))
        return event

    def _write(
        self,
        item_id: UUID,
        milestone_name: str,
        raw_value: object,
        actor_id: UUID,
        occurred_at: datetime | None,
        corrects_event_id: UUID | None = None,
        reason: str | None = None,
    ) -> RecordResult:
        item = self._items.load_for_update(item_id)
        if item.is_retired:
            raise ItemRetiredError(str(item_id))

        schedule = self._projection.schedule_for(item)
        entry = schedule.entry_for(milestone_name)
        name = entry.name if entry is not None else milestone_name.strip()
        if entry is None:
            logger.warning(
                "unknown_milestone_recorded",
                extra={"item_type": item.item_type, "milestones": [name]},
            )

        value = normalize_milestone_value(name, raw_value, entry.kind if entry else None)
        milestones = item.milestone_values()
        stored_name, previous = _current_value(milestones, name)

        if value == previous:
            logger.debug("milestone_unchanged", extra={"milestone": name, "value": value})
            return RecordResult(
                item_id=item_id,
                event_id=None,
                milestone_name=name,
                previous_value=previous,
                new_value=value,
                progress=self._projection.calculate(item, milestones),
                changed=False,
            )

        if stored_name is not None and stored_name != name:
            del milestones[stored_name]
        milestones[name] = value

        seq = item.event_seq + 1
        event = MilestoneEvent(
            item_id=item.id,
            project_id=item.project_id,
            milestone_name=name,
            previous_value=previous,
            new_value=value,
            actor_id=actor_id,
            occurred_at=occurred_at or self._clock.now(),
            item_seq=seq,
            is_correction=corrects_event_id is not None or reason is not None,
            corrects_event_id=corrects_event_id,
            reason=reason,
        )
        self.session.add(event)

        progress = self._projection.calculate(item, milestones)
        apply_progress(item, milestones, progress)
        item.event_seq = seq
        item.updated_by_id = actor_id

        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning("optimistic_lock_conflict", extra={"item_id": str(item_id)})
            raise OptimisticLockError("Item", str(item_id)) from exc

        if self._rollups is not None and self._settings.eager_rollups:
            self._rollups.refresh_for_item(item)

        logger.info(
            "milestone_recorded",
            extra={
                "event_id": str(event.id),
                "milestone": name,
                "previous_value": previous,
                "new_value": value,
                "item_seq": seq,
                "percent_complete": progress.percent_complete,
                "earned_hours": progress.earned_hours,
            },
        )
        return RecordResult(
            item_id=item_id,
            event_id=event.id,
            milestone_name=name,
            previous_value=previous,
            new_value=value,
            progress=progress,
        )
