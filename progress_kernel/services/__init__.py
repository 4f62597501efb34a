"""
Kernel services (imperative shell).

Write operations that need no progress calculation: template resolution
and administration, item shells and dimension values.  Services flush and
never commit.
"""

from progress_kernel.services.base import BaseService
from progress_kernel.services.item_service import ItemService
from progress_kernel.services.template_registry import (
    RecalculateHook,
    TemplateRegistry,
    coerce_entry,
    coerce_override,
)
from progress_kernel.services.template_resolver import TemplateResolver

__all__ = [
    "BaseService",
    "ItemService",
    "RecalculateHook",
    "TemplateRegistry",
    "TemplateResolver",
    "coerce_entry",
    "coerce_override",
]
