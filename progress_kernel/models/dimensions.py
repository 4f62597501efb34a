"""
Module: progress_kernel.models.dimensions
Responsibility: ORM persistence for the organizational values items are
    assigned to: areas, systems, test packages, welders and drawings.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (project_id, dimension, code) is unique.
    - Values are deactivated, not deleted, so historical assignments keep
      resolving to a label.

Audit relevance:
    Rollups and deltas group by these rows.  Items with no value for a
    dimension fall into the "Not Assigned" bucket instead of disappearing.
"""

from uuid import UUID

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from progress_kernel.db.base import TrackedBase, UUIDString


class DimensionValue(TrackedBase):
    """
    One member of an organizational axis within a project.

    Guarantees:
        - (project_id, dimension, code) is unique (uq_dimension_value).
        - dimension is one of DimensionType.
    """

    __tablename__ = "dimension_values"

    __table_args__ = (
        UniqueConstraint("project_id", "dimension", "code", name="uq_dimension_value"),
        Index("idx_dimval_project_dimension", "project_id", "dimension"),
    )

    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # DimensionType value
    dimension: Mapped[str] = mapped_column(String(20), nullable=False)

    # Short code shown on reports (e.g. "B-68", "HC-05", "W-JD")
    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<DimensionValue {self.dimension}:{self.code}>"
