"""
Configuration Validator (``progress_config.validator``).

Responsibility
--------------
Validates a ``TemplateSet`` at load time, before any template reaches the
database.

Invariants enforced
-------------------
* Every item type's weights total 100 within the configured tolerance.
* Milestone names are unique per item type, case-insensitively.
* ``kind`` is ``discrete`` or ``partial``; ``category`` is one of the five
  reporting categories, or omitted and inferable from the milestone name.
* Individual weights lie in 0-100.

Failure modes
-------------
* Validation errors (``ConfigValidationResult.errors``) -> the set MUST NOT
  be seeded.
* Warnings (e.g. a milestone with weight 0) are informational.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from progress_config.schema import ItemTypeTemplateDef, TemplateSet
from progress_kernel.domain.schedule import Category, MilestoneKind, milestone_key
from progress_kernel.domain.template_merge import infer_category
from progress_kernel.exceptions import SchemaInvalidError

_KINDS = frozenset(k.value for k in MilestoneKind)
_CATEGORIES = frozenset(c.value for c in Category)


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` is True only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_template_set(template_set: TemplateSet) -> ConfigValidationResult:
    """Validate every item type template and the engine settings."""
    result = ConfigValidationResult()

    if not template_set.templates:
        result.add_error("no item types defined")

    seen_types: set[str] = set()
    for template in template_set.templates:
        if template.item_type in seen_types:
            result.add_error(f"item type {template.item_type!r} defined twice")
        seen_types.add(template.item_type)
        _validate_template(template, template_set.settings.weight_tolerance, result)

    settings = template_set.settings
    if settings.weight_tolerance < 0 or settings.reconciliation_tolerance < 0:
        result.add_error("tolerances must be non-negative")
    if settings.hours_places < 0:
        result.add_error("hours_places must be non-negative")

    return result


def _validate_template(
    template: ItemTypeTemplateDef, tolerance: Decimal, result: ConfigValidationResult
) -> None:
    item_type = template.item_type
    if not template.milestones:
        result.add_error(f"{item_type}: no milestones")
        return

    names: set[str] = set()
    for milestone in template.milestones:
        where = f"{item_type}/{milestone.name}"
        key = milestone_key(milestone.name)
        if key in names:
            result.add_error(f"{where}: duplicate milestone name")
        names.add(key)

        if milestone.kind not in _KINDS:
            result.add_error(f"{where}: kind {milestone.kind!r} is not one of {sorted(_KINDS)}")

        if milestone.category is None:
            try:
                infer_category(item_type, milestone.name)
            except SchemaInvalidError:
                result.add_error(f"{where}: no category given and none can be inferred")
        elif milestone.category not in _CATEGORIES:
            result.add_error(
                f"{where}: category {milestone.category!r} is not one of {sorted(_CATEGORIES)}"
            )

        if milestone.weight < 0 or milestone.weight > 100:
            result.add_error(f"{where}: weight {milestone.weight} outside 0-100")
        elif milestone.weight == 0:
            result.add_warning(f"{where}: weight is 0")

    total = template.weight_total
    if abs(total - Decimal("100")) > tolerance:
        result.add_error(f"{item_type}: weights sum to {total}, expected 100")
