"""
ItemService -- item shells and organizational assignments.

Responsibility:
    Creates items (after resolving their template), creates dimension
    values, reassigns items to dimension values, changes budgets and
    retires items.  It never computes progress; anything that changes
    earned hours is followed by a recalculation in progress_services.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - An item's template resolves before its first save.
    - (project_id, identity_hash) is unique per project.
    - budgeted_hours >= 0.
    - Items are retired, never deleted.
    - Flush-only: never commits.

Failure modes:
    - TemplateNotFoundError / SchemaInvalidError from resolution.
    - DuplicateItemError, InvalidBudgetError, ItemNotFoundError,
      ItemRetiredError, DimensionValueNotFoundError.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from progress_kernel.domain.clock import Clock, SystemClock
from progress_kernel.domain.dimensions import ITEM_DIMENSION_COLUMNS, DimensionType
from progress_kernel.domain.dtos import DimensionLabel, ItemSnapshot
from progress_kernel.exceptions import (
    DimensionValueNotFoundError,
    DuplicateItemError,
    ItemNotFoundError,
    ItemRetiredError,
)
from progress_kernel.invariants import check_budgeted_hours
from progress_kernel.logging_config import get_logger
from progress_kernel.models.dimensions import DimensionValue
from progress_kernel.models.item import Item
from progress_kernel.selectors.item_selector import item_to_snapshot
from progress_kernel.services.base import BaseService
from progress_kernel.services.template_resolver import TemplateResolver
from progress_kernel.utils.hashing import hash_identity_key

logger = get_logger("services.item")


class ItemService(BaseService[Item]):
    """
    Write operations on items and dimension values.

    Contract:
        Methods return ItemSnapshot / DimensionLabel DTOs.  ``load_for_update``
        is the one method that hands out an ORM row, for services in
        progress_services that must update the cached projection.
    """

    def __init__(
        self,
        session: Session,
        resolver: TemplateResolver | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._resolver = resolver or TemplateResolver(session)
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Dimension values
    # ------------------------------------------------------------------

    def create_dimension_value(
        self,
        project_id: UUID,
        dimension: DimensionType,
        code: str,
        name: str | None,
        actor_id: UUID,
    ) -> DimensionLabel:
        """
        Create a dimension value, or return the existing one with the same
        code (codes are unique per project and dimension).
        """
        code = code.strip()
        existing = self.session.scalars(
            select(DimensionValue).where(
                DimensionValue.project_id == project_id,
                DimensionValue.dimension == dimension.value,
                DimensionValue.code == code,
            )
        ).first()
        if existing is not None:
            return DimensionLabel(existing.id, existing.code, existing.name)

        value = DimensionValue(
            project_id=project_id,
            dimension=dimension.value,
            code=code,
            name=(name or code).strip(),
            created_by_id=actor_id,
        )
        self.session.add(value)
        self.session.flush()
        logger.info(
            "dimension_value_created",
            extra={
                "project_id": str(project_id),
                "dimension": dimension.value,
                "code": code,
            },
        )
        return DimensionLabel(value.id, value.code, value.name)

    def deactivate_dimension_value(self, value_id: UUID, actor_id: UUID) -> None:
        value = self.session.get(DimensionValue, value_id)
        if value is None:
            raise DimensionValueNotFoundError("dimension", str(value_id))
        value.is_active = False
        value.updated_by_id = actor_id
        self.session.flush()

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def create_item(
        self,
        project_id: UUID,
        item_type: str,
        identity_key: Mapping[str, Any],
        budgeted_hours: object,
        actor_id: UUID,
        dimensions: Mapping[DimensionType, UUID | None] | None = None,
    ) -> ItemSnapshot:
        """
        Create an item with no milestone progress.

        The template is resolved first, so an item type without a valid
        schedule is rejected before anything is written.

        Raises:
            TemplateNotFoundError, SchemaInvalidError, InvalidBudgetError,
            DuplicateItemError, DimensionValueNotFoundError.
        """
        schedule = self._resolver.resolve(item_type, project_id)
        hours = check_budgeted_hours(budgeted_hours)

        identity = dict(identity_key)
        identity_hash = hash_identity_key(identity)
        duplicate = self.session.scalars(
            select(Item.id).where(
                Item.project_id == project_id, Item.identity_hash == identity_hash
            )
        ).first()
        if duplicate is not None:
            raise DuplicateItemError(str(project_id), str(identity))

        item = Item(
            project_id=project_id,
            identity_key=identity,
            identity_hash=identity_hash,
            item_type=item_type,
            budgeted_hours=hours,
            percent_complete=Decimal("0"),
            earned_hours=Decimal("0"),
            current_milestones={},
            schedule_fingerprint=schedule.fingerprint,
            created_by_id=actor_id,
        )
        self._apply_dimensions(item, project_id, dimensions or {})
        self.session.add(item)
        self.session.flush()

        logger.info(
            "item_created",
            extra={
                "item_id": str(item.id),
                "project_id": str(project_id),
                "item_type": item_type,
                "budgeted_hours": hours,
            },
        )
        return item_to_snapshot(item)

    def reassign(
        self,
        item_id: UUID,
        dimensions: Mapping[DimensionType, UUID | None],
        actor_id: UUID,
    ) -> ItemSnapshot:
        """
        Change dimension assignments.  Dimensions not named keep their
        value; ``None`` unassigns.
        """
        item = self.load_for_update(item_id)
        self._require_active(item)
        self._apply_dimensions(item, item.project_id, dimensions)
        item.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "item_reassigned",
            extra={
                "item_id": str(item_id),
                "dimensions": {
                    d.value: str(v) if v is not None else None for d, v in dimensions.items()
                },
            },
        )
        return item_to_snapshot(item)

    def set_budget(self, item_id: UUID, budgeted_hours: object, actor_id: UUID) -> Item:
        """
        Change budgeted hours.  Cached earned hours are stale until the
        caller recalculates the item.
        """
        hours = check_budgeted_hours(budgeted_hours)
        item = self.load_for_update(item_id)
        self._require_active(item)
        previous = item.budgeted_hours
        item.budgeted_hours = hours
        item.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "item_budget_changed",
            extra={"item_id": str(item_id), "previous": previous, "budgeted_hours": hours},
        )
        return item

    def retire(self, item_id: UUID, actor_id: UUID) -> ItemSnapshot:
        """Flag the item retired.  Retiring twice is a no-op."""
        item = self.load_for_update(item_id)
        if not item.is_retired:
            item.is_retired = True
            item.updated_by_id = actor_id
            self.session.flush()
            logger.info("item_retired", extra={"item_id": str(item_id)})
        return item_to_snapshot(item)

    def load_for_update(self, item_id: UUID) -> Item:
        """
        The item row, locked for the rest of the transaction where the
        backend supports row locks.

        Raises:
            ItemNotFoundError
        """
        item = self.session.scalars(
            select(Item).where(Item.id == item_id).with_for_update()
        ).first()
        if item is None:
            raise ItemNotFoundError(str(item_id))
        return item

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _require_active(self, item: Item) -> None:
        if item.is_retired:
            raise ItemRetiredError(str(item.id))

    def _apply_dimensions(
        self,
        item: Item,
        project_id: UUID,
        dimensions: Mapping[DimensionType, UUID | None],
    ) -> None:
        for dimension, value_id in dimensions.items():
            if value_id is not None:
                value = self.session.get(DimensionValue, value_id)
                if (
                    value is None
                    or value.project_id != project_id
                    or value.dimension != dimension.value
                ):
                    raise DimensionValueNotFoundError(dimension.value, str(value_id))
            setattr(item, ITEM_DIMENSION_COLUMNS[dimension], value_id)
