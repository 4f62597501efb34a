"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from progress_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from progress_kernel.domain.dimensions import (
    ITEM_DIMENSION_COLUMNS,
    NOT_ASSIGNED_LABEL,
    REPORTING_DIMENSIONS,
    DimensionType,
    parse_reporting_dimension,
)
from progress_kernel.domain.dtos import (
    DeltaReport,
    DeltaRow,
    DimensionLabel,
    EventRecord,
    ItemCrossCheck,
    ItemSnapshot,
    ProgressResult,
    ProjectionCheck,
    ProjectionMismatch,
    RecordResult,
    RollupDrift,
    RollupRow,
    RollupSnapshot,
    UntrackedProgressItem,
)
from progress_kernel.domain.schedule import (
    CATEGORIES,
    Category,
    MilestoneKind,
    MilestoneOverride,
    ResolvedSchedule,
    ScheduleEntry,
    milestone_key,
)
from progress_kernel.domain.template_merge import infer_category, resolve_schedule
from progress_kernel.domain.values import (
    COMPLETE,
    INCOMPLETE,
    is_complete,
    normalize_milestone_value,
)

__all__ = [
    "CATEGORIES",
    "COMPLETE",
    "Category",
    "Clock",
    "DeltaReport",
    "DeltaRow",
    "DeterministicClock",
    "DimensionLabel",
    "DimensionType",
    "EventRecord",
    "INCOMPLETE",
    "ITEM_DIMENSION_COLUMNS",
    "ItemCrossCheck",
    "ItemSnapshot",
    "MilestoneKind",
    "MilestoneOverride",
    "NOT_ASSIGNED_LABEL",
    "ProgressResult",
    "ProjectionCheck",
    "ProjectionMismatch",
    "REPORTING_DIMENSIONS",
    "RecordResult",
    "ResolvedSchedule",
    "RollupDrift",
    "RollupRow",
    "RollupSnapshot",
    "ScheduleEntry",
    "SystemClock",
    "UntrackedProgressItem",
    "infer_category",
    "is_complete",
    "milestone_key",
    "normalize_milestone_value",
    "parse_reporting_dimension",
    "resolve_schedule",
]
