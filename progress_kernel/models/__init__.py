"""Domain models for the progress kernel."""

from progress_kernel.models.dimensions import DimensionValue
from progress_kernel.models.item import Item
from progress_kernel.models.milestone_event import MilestoneEvent
from progress_kernel.models.rollup import DimensionRollup
from progress_kernel.models.template import MilestoneTemplate, TemplateChangeLog

__all__ = [
    "DimensionRollup",
    "DimensionValue",
    "Item",
    "MilestoneEvent",
    "MilestoneTemplate",
    "TemplateChangeLog",
]
