"""
Configuration Loader (``progress_config.loader``).

Responsibility
--------------
Loads the YAML files of a configuration directory and parses them into
typed ``progress_config.schema`` dataclass instances.  Runtime callers use
``progress_config.get_template_set()`` instead of calling this directly.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Weights are parsed to ``Decimal`` from their string form, never through
  float.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Non-numeric weight  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from progress_config.schema import (
    EngineSettings,
    ItemTypeTemplateDef,
    MilestoneDef,
    TemplateSet,
)

TEMPLATES_FILE = "default_templates.yaml"
SETTINGS_FILE = "settings.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, what: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"{what}: {value!r} is not a number") from None


def parse_milestone(data: dict[str, Any], order: int) -> MilestoneDef:
    """
    Parse a ``MilestoneDef``.  ``is_partial`` is accepted in place of
    ``kind`` for templates exported from older systems.
    """
    name = str(data["name"]).strip()
    if "kind" in data:
        kind = str(data["kind"]).strip().lower()
    else:
        kind = "partial" if data.get("is_partial") else "discrete"
    category = data.get("category")
    return MilestoneDef(
        name=name,
        weight=parse_decimal(data["weight"], f"weight of {name}"),
        kind=kind,
        category=str(category).strip().lower() if category else None,
        order=int(data.get("order", order)),
        requires_welder=bool(data.get("requires_welder", False)),
    )


def parse_item_type(item_type: str, data: dict[str, Any]) -> ItemTypeTemplateDef:
    milestones = tuple(
        parse_milestone(m, index + 1) for index, m in enumerate(data["milestones"])
    )
    return ItemTypeTemplateDef(
        item_type=item_type,
        milestones=milestones,
        description=data.get("description"),
    )


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    """Parse ``EngineSettings``; keys that are absent keep their defaults."""
    defaults = EngineSettings()
    return EngineSettings(
        weight_tolerance=parse_decimal(
            data.get("weight_tolerance", defaults.weight_tolerance), "weight_tolerance"
        ),
        reconciliation_tolerance=parse_decimal(
            data.get("reconciliation_tolerance", defaults.reconciliation_tolerance),
            "reconciliation_tolerance",
        ),
        hours_places=int(data.get("hours_places", defaults.hours_places)),
        eager_rollups=bool(data.get("eager_rollups", defaults.eager_rollups)),
        not_assigned_label=str(data.get("not_assigned_label", defaults.not_assigned_label)),
    )


def load_template_set(config_dir: Path) -> TemplateSet:
    """
    Load ``default_templates.yaml`` (required) and ``settings.yaml``
    (optional) from ``config_dir``.
    """
    raw_templates = load_yaml_file(config_dir / TEMPLATES_FILE)
    settings_path = config_dir / SETTINGS_FILE
    raw_settings = load_yaml_file(settings_path) if settings_path.exists() else {}

    templates = tuple(
        parse_item_type(item_type, data)
        for item_type, data in (raw_templates.get("item_types") or {}).items()
    )
    settings = parse_settings(raw_settings.get("engine", raw_settings))
    version = str(raw_templates.get("version", "1"))

    unsigned = TemplateSet(version=version, templates=templates, settings=settings)
    return TemplateSet(
        version=version,
        templates=templates,
        settings=settings,
        checksum=compute_checksum(asdict(unsigned)),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
