"""
Read-only query selectors.

Selectors return DTOs and never mutate data.  Services and the reporting
layer use them to load items, schedules, events and cached rollups.
"""

from progress_kernel.selectors.base import BaseSelector
from progress_kernel.selectors.dimension_selector import DimensionSelector
from progress_kernel.selectors.event_selector import EventSelector
from progress_kernel.selectors.item_selector import ItemSelector, item_to_snapshot
from progress_kernel.selectors.rollup_selector import RollupSelector
from progress_kernel.selectors.template_selector import (
    TemplateChangeDTO,
    TemplateSelector,
    template_to_entry,
    template_to_override,
)

__all__ = [
    "BaseSelector",
    "DimensionSelector",
    "EventSelector",
    "ItemSelector",
    "RollupSelector",
    "TemplateChangeDTO",
    "TemplateSelector",
    "item_to_snapshot",
    "template_to_entry",
    "template_to_override",
]
