"""
Deterministic hashing utilities.

All hashing in the progress kernel must be deterministic and reproducible.
This module provides the canonical hashing functions used for schedule
fingerprints, item natural keys and change-log payloads.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        # Normalize so 5, 5.0 and 5.0000 (as read back from Numeric) agree
        return str(obj.normalize())
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON string.

    Keys are sorted, whitespace is removed, and Decimal/datetime/UUID/Enum
    values are rendered consistently.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict | list) -> str:
    """Hex-encoded SHA-256 hash (64 characters) of the canonical JSON."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_identity_key(identity: dict[str, Any]) -> str:
    """
    Canonical string form of an item's structured natural key.

    Values are compared case-insensitively after trimming, so
    ``{"drawing": "P-001 "}`` and ``{"drawing": "p-001"}`` identify the
    same item.
    """
    normalized = {
        str(k).strip().lower(): (v.strip().upper() if isinstance(v, str) else v)
        for k, v in identity.items()
    }
    return hash_payload(normalized)
