"""
Organizational dimensions an item can be assigned to.

Every item may reference one value per dimension type.  Four of them are
reporting axes for rollups and deltas; drawings are tracked on the item but
are not a reporting axis.
"""

from __future__ import annotations

from enum import Enum

from progress_kernel.exceptions import InvalidDimensionError


class DimensionType(str, Enum):
    AREA = "area"
    SYSTEM = "system"
    TEST_PACKAGE = "test_package"
    WELDER = "welder"
    DRAWING = "drawing"


REPORTING_DIMENSIONS: tuple[DimensionType, ...] = (
    DimensionType.AREA,
    DimensionType.SYSTEM,
    DimensionType.TEST_PACKAGE,
    DimensionType.WELDER,
)

# Item column holding the FK for each dimension type.
ITEM_DIMENSION_COLUMNS: dict[DimensionType, str] = {
    DimensionType.AREA: "area_id",
    DimensionType.SYSTEM: "system_id",
    DimensionType.TEST_PACKAGE: "test_package_id",
    DimensionType.WELDER: "welder_id",
    DimensionType.DRAWING: "drawing_id",
}

NOT_ASSIGNED_LABEL = "Not Assigned"


def parse_reporting_dimension(value: str | DimensionType) -> DimensionType:
    """
    Accept "area", "system", "test_package" (or "test package") and "welder".

    Raises:
        InvalidDimensionError: For anything else, including "drawing".
    """
    allowed = tuple(d.value for d in REPORTING_DIMENSIONS)
    if isinstance(value, DimensionType):
        candidate = value.value
    else:
        candidate = str(value).strip().lower().replace(" ", "_").replace("-", "_")
    if candidate not in allowed:
        raise InvalidDimensionError(str(value), allowed)
    return DimensionType(candidate)
