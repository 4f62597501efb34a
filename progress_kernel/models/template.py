"""
Module: progress_kernel.models.template
Responsibility: ORM persistence for milestone schedules (type defaults and
    project overrides) and the append-only log of changes to them.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - A row with ``project_id IS NULL`` is a type default; a row with a
      project id overrides the default milestone of the same name.
    - (project_id, item_type, milestone_key) is unique.  NULLs never
      collide in a plain unique constraint, so defaults get a partial
      unique index of their own.
    - The weights of every schedule a (project, item type) resolves to
      total 100 -- validated by TemplateRegistry before flush, never here.
    - TemplateChangeLog rows are append-only (ORM listener + PG trigger).

Audit relevance:
    Reweighting a schedule changes the earned hours of every item of that
    type.  TemplateChangeLog keeps the before/after schedule, the actor and
    the reason for each change.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from progress_kernel.db.base import Base, TrackedBase, UUIDString


class MilestoneTemplate(TrackedBase):
    """
    One milestone of a type default or of a project override.

    Guarantees:
        - weight is on the 0-100 scale.
        - kind is "discrete" or "partial"; category is one of the five
          reporting categories.
    """

    __tablename__ = "milestone_templates"

    __table_args__ = (
        UniqueConstraint(
            "project_id", "item_type", "milestone_key", name="uq_milestone_template"
        ),
        Index("idx_template_type", "item_type", "project_id"),
        Index(
            "uq_default_milestone_template",
            "item_type",
            "milestone_key",
            unique=True,
            postgresql_where=text("project_id IS NULL"),
            sqlite_where=text("project_id IS NULL"),
        ),
    )

    # NULL for the type default
    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    item_type: Mapped[str] = mapped_column(String(50), nullable=False)

    milestone_name: Mapped[str] = mapped_column(String(100), nullable=False)

    # casefolded milestone_name
    milestone_key: Mapped[str] = mapped_column(String(100), nullable=False)

    weight: Mapped[Decimal] = mapped_column(Numeric(9, 4), nullable=False)

    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    category: Mapped[str] = mapped_column(String(20), nullable=False)

    milestone_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    requires_welder: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        scope = self.project_id or "default"
        return f"<MilestoneTemplate {self.item_type}/{self.milestone_name} ({scope})>"

    @property
    def is_default(self) -> bool:
        return self.project_id is None


class TemplateChangeLog(Base):
    """
    Append-only record of one administrative change: a schedule write or a
    milestone correction.

    Guarantees:
        - Never updated or deleted.
        - old_state / new_state hold the resolved schedule before and after
          a template change, or the milestone value before and after an
          administrative correction (None when there was none).
    """

    __tablename__ = "template_change_log"

    __table_args__ = (
        Index("idx_template_change_scope", "project_id", "item_type", "changed_at"),
    )

    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Set for milestone corrections
    item_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    item_type: Mapped[str] = mapped_column(String(50), nullable=False)

    # e.g. "set_default", "set_overrides", "remove_override", "clone_defaults",
    # "milestone_correction"
    action: Mapped[str] = mapped_column(String(50), nullable=False)

    old_state: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    new_state: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    reason: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    changed_at: Mapped[datetime] = mapped_column(nullable=False)

    # Items recalculated as part of this change
    affected_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<TemplateChangeLog {self.action} {self.item_type}>"
