"""
Module: progress_kernel.selectors.dimension_selector
Responsibility: Display labels for dimension values, keyed by id, for the
    rollup and delta reports.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import select

from progress_kernel.domain.dimensions import NOT_ASSIGNED_LABEL, DimensionType
from progress_kernel.domain.dtos import DimensionLabel
from progress_kernel.models.dimensions import DimensionValue
from progress_kernel.selectors.base import BaseSelector


class DimensionSelector(BaseSelector[DimensionValue]):
    """Queries over DimensionValue."""

    def _to_label(self, value: DimensionValue) -> DimensionLabel:
        return DimensionLabel(
            dimension_value_id=value.id, code=value.code, name=value.name
        )

    def get(self, value_id: UUID) -> DimensionLabel | None:
        value = self.session.get(DimensionValue, value_id)
        return self._to_label(value) if value is not None else None

    def find_by_code(
        self, project_id: UUID, dimension: DimensionType, code: str
    ) -> DimensionLabel | None:
        stmt = select(DimensionValue).where(
            DimensionValue.project_id == project_id,
            DimensionValue.dimension == dimension.value,
            DimensionValue.code == code,
        )
        value = self.session.scalars(stmt).first()
        return self._to_label(value) if value is not None else None

    def labels(
        self,
        project_id: UUID,
        dimension: DimensionType,
        not_assigned_label: str = NOT_ASSIGNED_LABEL,
    ) -> dict[UUID | None, DimensionLabel]:
        """
        Every value of ``dimension`` in the project, plus the Not Assigned
        bucket under the ``None`` key.  Inactive values are included so
        historical assignments still resolve.
        """
        stmt = select(DimensionValue).where(
            DimensionValue.project_id == project_id,
            DimensionValue.dimension == dimension.value,
        )
        labels: dict[UUID | None, DimensionLabel] = {
            value.id: self._to_label(value) for value in self.session.scalars(stmt).all()
        }
        labels[None] = DimensionLabel(None, None, not_assigned_label)
        return labels
