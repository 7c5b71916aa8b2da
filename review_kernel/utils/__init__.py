"""Utility modules for the review kernel."""

from review_kernel.utils.hashing import (
    canonicalize_json,
    hash_gate_event,
    hash_payload,
)

__all__ = [
    "hash_payload",
    "hash_gate_event",
    "canonicalize_json",
]
