"""
State accumulation rules.

Stages return partial updates; the orchestrator folds each one into the
previous state before writing a new snapshot, so every snapshot is
self-contained.
"""

from __future__ import annotations

import copy
from typing import Any

# Nested bundles that several stages fill in piecemeal. Updates to these are
# merged key by key; every other top-level key is replaced wholesale.
NESTED_MERGE_FIELDS: tuple[str, ...] = (
    "parsedData",
    "duplicateCheckResult",
    "mtoData",
    "quote",
)


def merge_state(current: dict[str, Any] | None, update: dict[str, Any] | None) -> dict[str, Any]:
    """
    Merge a partial update into the current state.

    - top-level keys from ``update`` replace those in ``current``
    - for the fields in NESTED_MERGE_FIELDS, when both sides hold a dict the
      update's keys are laid over the current dict's keys
    - a nested field that is missing or ``None`` in the update keeps its
      current value

    Neither argument is modified.

    Example:
        >>> merge_state({"parsedData": {"a": 1}}, {"parsedData": {"b": 2}})
        {'parsedData': {'a': 1, 'b': 2}}
    """
    merged = copy.deepcopy(current) if current else {}
    if not update:
        return merged

    for key, value in update.items():
        if key in NESTED_MERGE_FIELDS:
            if value is None:
                continue
            existing = merged.get(key)
            if isinstance(existing, dict) and isinstance(value, dict):
                combined = dict(existing)
                combined.update(copy.deepcopy(value))
                merged[key] = combined
                continue
        merged[key] = copy.deepcopy(value)

    return merged
