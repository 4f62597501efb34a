"""Utility modules for the progress kernel."""

from progress_kernel.utils.hashing import (
    canonicalize_json,
    hash_identity_key,
    hash_payload,
)

__all__ = [
    "canonicalize_json",
    "hash_identity_key",
    "hash_payload",
]
