"""
Module: progress_kernel.models.item
Responsibility: ORM persistence for tracked construction items (spools, field
    welds, valves, supports, ...) and their cached progress projection.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - (project_id, identity_hash) is unique: the structured natural key
      identifies at most one item per project.
    - Items are never deleted, only flagged ``is_retired`` (ORM listener in
      db/immutability.py).
    - ``version`` is a SQLAlchemy version counter.  Two writers updating the
      same item cannot both succeed; the loser gets StaleDataError, which
      services translate to OptimisticLockError.

Failure modes:
    - IntegrityError on duplicate natural key (services check first and
      raise DuplicateItemError).
    - StaleDataError on a lost concurrent update.

Audit relevance:
    ``current_milestones``, ``percent_complete`` and ``earned_hours`` are a
    projection of the milestone event log.  They are overwritten on every
    milestone write and can always be rebuilt from the log.
"""

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from progress_kernel.db.base import TrackedBase, UUIDString


class Item(TrackedBase):
    """
    A trackable unit of construction work.

    Contract:
        ``current_milestones`` maps milestone name to the canonical value as
        a decimal string.  It is replaced wholesale on write (never mutated
        in place) so the JSON column change is always detected.

    Guarantees:
        - budgeted_hours >= 0 (validated by ItemService).
        - event_seq is the highest item_seq allocated to this item's events.
    """

    __tablename__ = "project_items"

    __table_args__ = (
        UniqueConstraint("project_id", "identity_hash", name="uq_item_identity"),
        Index("idx_item_project_type", "project_id", "item_type"),
        Index("idx_item_project_area", "project_id", "area_id"),
        Index("idx_item_project_system", "project_id", "system_id"),
        Index("idx_item_project_test_package", "project_id", "test_package_id"),
        Index("idx_item_project_welder", "project_id", "welder_id"),
    )

    project_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    # Structured natural key, e.g. {"drawing": "P-001", "weld_number": "W-12"}
    identity_key: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    # Canonical hash of identity_key (see utils.hashing.hash_identity_key)
    identity_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    item_type: Mapped[str] = mapped_column(String(50), nullable=False)

    budgeted_hours: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    percent_complete: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    earned_hours: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    current_milestones: Mapped[dict[str, str]] = mapped_column(
        JSON, nullable=False, default=dict
    )

    # Fingerprint of the resolved schedule last used to compute the cache
    schedule_fingerprint: Mapped[str | None] = mapped_column(String(64), nullable=True)

    area_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("dimension_values.id"), nullable=True
    )
    system_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("dimension_values.id"), nullable=True
    )
    test_package_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("dimension_values.id"), nullable=True
    )
    drawing_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("dimension_values.id"), nullable=True
    )
    welder_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("dimension_values.id"), nullable=True
    )

    is_retired: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    event_seq: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Item {self.item_type} {self.identity_key}>"

    def milestone_values(self) -> dict[str, Decimal]:
        """Cached milestone map with values decoded to Decimal."""
        return {name: Decimal(value) for name, value in (self.current_milestones or {}).items()}

    def store_milestone_values(self, values: dict[str, Decimal]) -> None:
        """Replace the cached milestone map."""
        self.current_milestones = {name: str(value) for name, value in values.items()}
