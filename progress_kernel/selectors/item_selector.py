"""
Module: progress_kernel.selectors.item_selector
Responsibility: Read-only queries over tracked items, returning ItemSnapshot
    DTOs that the engines consume.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Retired items are excluded unless the caller asks for them.
    - ``milestones`` on the snapshot is the cached projection decoded to
      Decimal; no recomputation happens here.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import exists, select

from progress_kernel.domain.dimensions import ITEM_DIMENSION_COLUMNS, DimensionType
from progress_kernel.domain.dtos import ItemSnapshot
from progress_kernel.models.item import Item
from progress_kernel.models.milestone_event import MilestoneEvent
from progress_kernel.selectors.base import BaseSelector, chunked


def item_to_snapshot(item: Item) -> ItemSnapshot:
    """Convert an Item row to its read-only snapshot."""
    return ItemSnapshot(
        item_id=item.id,
        project_id=item.project_id,
        item_type=item.item_type,
        budgeted_hours=item.budgeted_hours,
        milestones=item.milestone_values(),
        percent_complete=item.percent_complete,
        earned_hours=item.earned_hours,
        identity_key=dict(item.identity_key or {}),
        dimension_ids={
            dimension: getattr(item, column)
            for dimension, column in ITEM_DIMENSION_COLUMNS.items()
        },
        schedule_fingerprint=item.schedule_fingerprint,
        is_retired=item.is_retired,
        version=item.version,
    )


class ItemSelector(BaseSelector[Item]):
    """Queries over Item."""

    def get(self, item_id: UUID) -> ItemSnapshot | None:
        item = self.session.get(Item, item_id)
        return item_to_snapshot(item) if item is not None else None

    def find_by_identity(self, project_id: UUID, identity_hash: str) -> ItemSnapshot | None:
        stmt = select(Item).where(
            Item.project_id == project_id, Item.identity_hash == identity_hash
        )
        item = self.session.scalars(stmt).first()
        return item_to_snapshot(item) if item is not None else None

    def list_items(
        self,
        project_id: UUID,
        item_type: str | None = None,
        include_retired: bool = False,
    ) -> list[ItemSnapshot]:
        stmt = select(Item).where(Item.project_id == project_id)
        if item_type is not None:
            stmt = stmt.where(Item.item_type == item_type)
        if not include_retired:
            stmt = stmt.where(Item.is_retired.is_(False))
        stmt = stmt.order_by(Item.item_type, Item.identity_hash)
        return [item_to_snapshot(item) for item in self.session.scalars(stmt).all()]

    def items_of_type(
        self, item_type: str, project_id: UUID | None = None
    ) -> list[ItemSnapshot]:
        """Active items of ``item_type``, in one project or across all."""
        stmt = select(Item).where(Item.item_type == item_type, Item.is_retired.is_(False))
        if project_id is not None:
            stmt = stmt.where(Item.project_id == project_id)
        return [item_to_snapshot(item) for item in self.session.scalars(stmt).all()]

    def items_by_ids(self, item_ids: Iterable[UUID]) -> list[ItemSnapshot]:
        snapshots: list[ItemSnapshot] = []
        for batch in chunked(item_ids):
            stmt = select(Item).where(Item.id.in_(batch))
            snapshots.extend(item_to_snapshot(i) for i in self.session.scalars(stmt).all())
        return snapshots

    def items_for_dimension_value(
        self, project_id: UUID, dimension: DimensionType, value_id: UUID | None
    ) -> list[ItemSnapshot]:
        """Active items assigned to ``value_id`` (None: unassigned)."""
        column = getattr(Item, ITEM_DIMENSION_COLUMNS[dimension])
        condition = column.is_(None) if value_id is None else column == value_id
        stmt = select(Item).where(
            Item.project_id == project_id, Item.is_retired.is_(False), condition
        )
        return [item_to_snapshot(item) for item in self.session.scalars(stmt).all()]

    def untracked_items(self, project_id: UUID) -> list[ItemSnapshot]:
        """Active items reporting progress with no milestone events at all."""
        has_events = exists().where(MilestoneEvent.item_id == Item.id)
        stmt = select(Item).where(
            Item.project_id == project_id,
            Item.is_retired.is_(False),
            Item.percent_complete > 0,
            ~has_events,
        )
        return [item_to_snapshot(item) for item in self.session.scalars(stmt).all()]

    def project_ids(self) -> list[UUID]:
        stmt = select(Item.project_id).distinct()
        return list(self.session.scalars(stmt).all())
