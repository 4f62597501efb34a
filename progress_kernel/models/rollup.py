"""
Module: progress_kernel.models.rollup
Responsibility: ORM persistence for the dimension rollup reporting cache.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One row per (project, dimension, dimension value); the "Not Assigned"
      bucket is the row with ``dimension_value_id IS NULL``.
    - Rows are a pure function of Item + MilestoneSchedule.  They may be
      deleted and rebuilt at any time (RollupService.refresh_rollups).

Audit relevance:
    None.  This is a cache.  Drift between a row and a fresh computation is
    detected by RollupService.detect_rollup_drift and healed by rebuilding.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from progress_kernel.db.base import Base, UUIDString


class DimensionRollup(Base):
    """
    Cumulative budgeted and earned hours for one dimension value.

    ``category_earned`` and ``category_budgeted`` map category name to a
    decimal string.
    """

    __tablename__ = "dimension_rollups"

    __table_args__ = (
        Index(
            "idx_rollup_scope",
            "project_id",
            "dimension",
            "dimension_value_id",
        ),
    )

    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    dimension: Mapped[str] = mapped_column(String(20), nullable=False)

    # NULL is the Not Assigned bucket
    dimension_value_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    item_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    budgeted_hours: Mapped[Decimal] = mapped_column(nullable=False)

    earned_hours: Mapped[Decimal] = mapped_column(nullable=False)

    category_earned: Mapped[dict[str, str]] = mapped_column(JSON, nullable=False)

    category_budgeted: Mapped[dict[str, str]] = mapped_column(JSON, nullable=False)

    refreshed_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<DimensionRollup {self.dimension}:{self.dimension_value_id}>"
