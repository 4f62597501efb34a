"""
Template set schema.

Defines the human-authored, reviewable source artifact for milestone
configuration.  YAML files under ``sets/`` are parsed into these types by
the loader, validated by the validator, and written into the database by
``seed_default_templates``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

# ---------------------------------------------------------------------------
# Milestone templates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MilestoneDef:
    """One milestone of an item type's default schedule."""

    name: str
    weight: Decimal
    kind: str = "discrete"  # discrete | partial
    category: str | None = None  # inferred from the name when omitted
    order: int = 0
    requires_welder: bool = False

    def to_entry_dict(self) -> dict[str, Any]:
        """Mapping accepted by TemplateRegistry.set_default_schedule."""
        return {
            "name": self.name,
            "weight": self.weight,
            "kind": self.kind,
            "category": self.category,
            "order": self.order,
            "requires_welder": self.requires_welder,
        }


@dataclass(frozen=True)
class ItemTypeTemplateDef:
    """Default milestone schedule for one item type."""

    item_type: str
    milestones: tuple[MilestoneDef, ...]
    description: str | None = None

    @property
    def weight_total(self) -> Decimal:
        return sum((m.weight for m in self.milestones), Decimal("0"))


# ---------------------------------------------------------------------------
# Engine settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineSettings:
    """Tunables shared by the services and the reporting layer."""

    weight_tolerance: Decimal = Decimal("0.01")
    reconciliation_tolerance: Decimal = Decimal("0.01")
    hours_places: int = 2  # reporting quantization only
    eager_rollups: bool = True
    not_assigned_label: str = "Not Assigned"


# ---------------------------------------------------------------------------
# Template set
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TemplateSet:
    """The complete configuration: default templates plus engine settings."""

    version: str
    templates: tuple[ItemTypeTemplateDef, ...]
    settings: EngineSettings = field(default_factory=EngineSettings)
    checksum: str = ""

    @property
    def item_types(self) -> tuple[str, ...]:
        return tuple(t.item_type for t in self.templates)

    def template_for(self, item_type: str) -> ItemTypeTemplateDef | None:
        for template in self.templates:
            if template.item_type == item_type:
                return template
        return None
