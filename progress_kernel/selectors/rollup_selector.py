"""
Module: progress_kernel.selectors.rollup_selector
Responsibility: Read the cached dimension rollup rows back as RollupRow DTOs.
Architecture position: Kernel > Selectors.

The cache is never authoritative.  Callers that need guaranteed-current
figures compute a fresh rollup instead.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from progress_kernel.domain.dimensions import DimensionType
from progress_kernel.domain.dtos import DimensionLabel, RollupRow
from progress_kernel.domain.quantities import percent_of
from progress_kernel.domain.schedule import CATEGORIES, Category
from progress_kernel.models.rollup import DimensionRollup
from progress_kernel.selectors.base import BaseSelector


def _decode(values: dict[str, str] | None) -> dict[Category, Decimal]:
    values = values or {}
    return {c: Decimal(values.get(c.value, "0")) for c in CATEGORIES}


class RollupSelector(BaseSelector[DimensionRollup]):
    """Queries over DimensionRollup."""

    def cached_rows(
        self,
        project_id: UUID,
        dimension: DimensionType,
        labels: dict[UUID | None, DimensionLabel] | None = None,
    ) -> list[RollupRow]:
        labels = labels or {}
        stmt = select(DimensionRollup).where(
            DimensionRollup.project_id == project_id,
            DimensionRollup.dimension == dimension.value,
        )
        rows = []
        for cached in self.session.scalars(stmt).all():
            label = labels.get(cached.dimension_value_id) or DimensionLabel(
                cached.dimension_value_id, None, str(cached.dimension_value_id)
            )
            rows.append(
                RollupRow(
                    dimension_value_id=cached.dimension_value_id,
                    code=label.code,
                    label=label.name,
                    item_count=cached.item_count,
                    budgeted_hours=cached.budgeted_hours,
                    earned_hours=cached.earned_hours,
                    percent_complete=percent_of(cached.earned_hours, cached.budgeted_hours),
                    category_earned_hours=_decode(cached.category_earned),
                    category_budgeted_hours=_decode(cached.category_budgeted),
                )
            )
        rows.sort(key=lambda row: (row.dimension_value_id is None, row.code or row.label))
        return rows

    def last_refreshed(self, project_id: UUID, dimension: DimensionType) -> datetime | None:
        stmt = select(func.max(DimensionRollup.refreshed_at)).where(
            DimensionRollup.project_id == project_id,
            DimensionRollup.dimension == dimension.value,
        )
        return self.session.scalar(stmt)
