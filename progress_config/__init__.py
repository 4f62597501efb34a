"""
progress_config -- single public entrypoint for milestone configuration.

Responsibility:
    Provides the way to obtain the default milestone templates and engine
    settings through ``get_template_set()``, and to write the default
    templates into a database through ``seed_default_templates()``.

Architecture position:
    Configuration -- YAML-driven, validated at load time.  Sits above
    ``progress_kernel`` and below ``progress_services``.  The kernel MUST
    NEVER import from ``progress_config``.

Invariants enforced:
    - A template set is returned only after it passes validation.
    - Deterministic checksum: the same YAML always yields the same
      ``TemplateSet.checksum``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration directory lacks
      ``default_templates.yaml``.
    - ``ValueError`` -- validation failures, one line per problem.

Audit relevance:
    Every successful ``get_template_set()`` call emits a
    ``PROGRESS_CONFIG_TRACE`` log entry with the set version, checksum and
    item type count, tying seeded templates back to the file they came from.
"""

from __future__ import annotations

import logging
from pathlib import Path
from uuid import UUID

from progress_config.loader import compute_checksum, load_template_set
from progress_config.schema import (
    EngineSettings,
    ItemTypeTemplateDef,
    MilestoneDef,
    TemplateSet,
)
from progress_config.validator import ConfigValidationResult, validate_template_set
from progress_kernel.services.template_registry import TemplateRegistry

_logger = logging.getLogger("progress_kernel.config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_template_set(config_dir: Path | None = None) -> TemplateSet:
    """
    Load and validate the template set in ``config_dir``.

    Args:
        config_dir: Directory holding ``default_templates.yaml`` and
            ``settings.yaml``.  Defaults to progress_config/sets/.

    Raises:
        FileNotFoundError: If the templates file is missing.
        ValueError: If validation fails.
    """
    template_set = load_template_set(Path(config_dir) if config_dir else _DEFAULT_CONFIG_DIR)

    validation = validate_template_set(template_set)
    if not validation.is_valid:
        raise ValueError(
            "Template configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={"warning": warning})

    _logger.info(
        "PROGRESS_CONFIG_TRACE",
        extra={
            "trace_type": "PROGRESS_CONFIG_TRACE",
            "config_version": template_set.version,
            "checksum": template_set.checksum,
            "item_type_count": len(template_set.templates),
            "eager_rollups": template_set.settings.eager_rollups,
        },
    )
    return template_set


def seed_default_templates(
    registry: TemplateRegistry,
    template_set: TemplateSet,
    actor_id: UUID,
    reason: str | None = None,
) -> int:
    """
    Write every item type's default schedule through the registry.

    Returns:
        Number of item types written.
    """
    reason = reason or (
        f"seed from template set {template_set.version} ({template_set.checksum[:12]})"
    )
    for template in template_set.templates:
        registry.set_default_schedule(
            template.item_type,
            [m.to_entry_dict() for m in template.milestones],
            actor_id=actor_id,
            reason=reason,
        )
    return len(template_set.templates)


__all__ = [
    "ConfigValidationResult",
    "EngineSettings",
    "ItemTypeTemplateDef",
    "MilestoneDef",
    "TemplateSet",
    "compute_checksum",
    "get_template_set",
    "seed_default_templates",
    "validate_template_set",
]
