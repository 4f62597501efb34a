"""
Module: progress_kernel.selectors.event_selector
Responsibility: Read-only queries over the append-only milestone event log.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Events are returned in log order: (item_seq, occurred_at).
    - Window queries are half-open: ``start <= occurred_at < end``.

Audit relevance:
    Delta reports and projection rebuilds read the log exclusively through
    this selector.
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select

from progress_kernel.domain.dtos import EventRecord
from progress_kernel.models.milestone_event import MilestoneEvent
from progress_kernel.selectors.base import BaseSelector, chunked


class EventSelector(BaseSelector[MilestoneEvent]):
    """Queries over MilestoneEvent."""

    def _to_dto(self, event: MilestoneEvent) -> EventRecord:
        return EventRecord(
            event_id=event.id,
            item_id=event.item_id,
            milestone_name=event.milestone_name,
            previous_value=event.previous_value,
            new_value=event.new_value,
            occurred_at=event.occurred_at,
            item_seq=event.item_seq,
            actor_id=event.actor_id,
            is_correction=event.is_correction,
            corrects_event_id=event.corrects_event_id,
        )

    def get(self, event_id: UUID) -> EventRecord | None:
        event = self.session.get(MilestoneEvent, event_id)
        return self._to_dto(event) if event is not None else None

    def events_for_item(
        self, item_id: UUID, as_of: datetime | None = None
    ) -> list[EventRecord]:
        stmt = select(MilestoneEvent).where(MilestoneEvent.item_id == item_id)
        if as_of is not None:
            stmt = stmt.where(MilestoneEvent.occurred_at < as_of)
        stmt = stmt.order_by(MilestoneEvent.item_seq, MilestoneEvent.occurred_at)
        return [self._to_dto(e) for e in self.session.scalars(stmt).all()]

    def events_for_items(self, item_ids: Iterable[UUID]) -> dict[UUID, list[EventRecord]]:
        """Full history per item; items without events are absent."""
        history: dict[UUID, list[EventRecord]] = defaultdict(list)
        for batch in chunked(item_ids):
            stmt = (
                select(MilestoneEvent)
                .where(MilestoneEvent.item_id.in_(batch))
                .order_by(
                    MilestoneEvent.item_id,
                    MilestoneEvent.item_seq,
                    MilestoneEvent.occurred_at,
                )
            )
            for event in self.session.scalars(stmt).all():
                history[event.item_id].append(self._to_dto(event))
        return dict(history)

    def active_item_ids(
        self, project_id: UUID, start: datetime, end: datetime
    ) -> set[UUID]:
        """Items with at least one event in ``[start, end)``."""
        stmt = (
            select(MilestoneEvent.item_id)
            .where(
                MilestoneEvent.project_id == project_id,
                MilestoneEvent.occurred_at >= start,
                MilestoneEvent.occurred_at < end,
            )
            .distinct()
        )
        return set(self.session.scalars(stmt).all())

    def events_in_window(
        self, project_id: UUID, start: datetime, end: datetime
    ) -> list[EventRecord]:
        stmt = (
            select(MilestoneEvent)
            .where(
                MilestoneEvent.project_id == project_id,
                MilestoneEvent.occurred_at >= start,
                MilestoneEvent.occurred_at < end,
            )
            .order_by(MilestoneEvent.occurred_at, MilestoneEvent.item_seq)
        )
        return [self._to_dto(e) for e in self.session.scalars(stmt).all()]

    def latest_event(self, item_id: UUID, milestone_name: str) -> EventRecord | None:
        """Most recent event for one milestone of one item."""
        stmt = (
            select(MilestoneEvent)
            .where(
                MilestoneEvent.item_id == item_id,
                func.lower(MilestoneEvent.milestone_name) == milestone_name.strip().lower(),
            )
            .order_by(MilestoneEvent.item_seq.desc())
            .limit(1)
        )
        event = self.session.scalars(stmt).first()
        return self._to_dto(event) if event is not None else None

    def count_for_item(self, item_id: UUID) -> int:
        stmt = select(func.count(MilestoneEvent.id)).where(MilestoneEvent.item_id == item_id)
        return self.session.scalar(stmt) or 0
