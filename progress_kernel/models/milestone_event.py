"""
Module: progress_kernel.models.milestone_event
Responsibility: ORM persistence for the append-only milestone change log.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (ORM listener + PG trigger).
    - item_seq is strictly increasing per item, allocated from
      Item.event_seq under the item's version lock, so replay order is
      total even when two events share a timestamp.
    - previous_value / new_value are canonical (0-100) values.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.

Audit relevance:
    This table is the sole source of historical truth for progress.  The
    cached milestone map on Item is the latest event per (item, milestone);
    delta reports are computed from these rows only.  A correction is a new
    row with ``is_correction`` set and ``corrects_event_id`` pointing at the
    row it supersedes.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from progress_kernel.db.base import Base, UUIDString


class MilestoneEvent(Base):
    """
    One change of one milestone value on one item.

    Guarantees:
        - (item_id, item_seq) is unique.
        - Never updated or deleted.
    """

    __tablename__ = "milestone_events"

    __table_args__ = (
        UniqueConstraint("item_id", "item_seq", name="uq_milestone_event_seq"),
        Index("idx_event_item_milestone_time", "item_id", "milestone_name", "occurred_at"),
        Index("idx_event_project_time", "project_id", "occurred_at"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("project_items.id"), nullable=False
    )

    # Denormalized from the item for window range scans
    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    milestone_name: Mapped[str] = mapped_column(String(100), nullable=False)

    previous_value: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)

    new_value: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    item_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    is_correction: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    corrects_event_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("milestone_events.id"), nullable=True
    )

    reason: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<MilestoneEvent {self.milestone_name} "
            f"{self.previous_value}->{self.new_value} @ {self.occurred_at}>"
        )

    @property
    def net_change(self) -> Decimal:
        return self.new_value - self.previous_value
