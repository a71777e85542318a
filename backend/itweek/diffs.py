"""Structured before/after diffs for audit payloads.

Identifies 'what changed' between two versions of a record.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping


def generate_value_delta(old_value: Any, new_value: Any) -> Dict[str, Any]:
    """Single field change. Empty dict when nothing changed."""
    if old_value == new_value:
        return {}
    return {"old": old_value, "new": new_value}


def generate_field_changes(
    old: Mapping[str, Any],
    new: Mapping[str, Any],
    fields: Iterable[str] | None = None,
) -> Dict[str, Dict[str, Any]]:
    """Per-field `{"old": ..., "new": ...}` map, only for fields that differ.

    Fields absent from `new` are treated as unchanged (partial updates).
    """
    keys = list(fields) if fields is not None else list(new.keys())
    changes: Dict[str, Dict[str, Any]] = {}
    for key in keys:
        if key not in new:
            continue
        delta = generate_value_delta(old.get(key), new.get(key))
        if delta:
            changes[key] = delta
    return changes


def generate_score_delta(old_score: int, new_score: int, requested: int) -> Dict[str, Any]:
    """Score change summary; `clamped` marks a reduction absorbed by the zero floor."""
    return {
        "from": old_score,
        "to": new_score,
        "requested": requested,
        "applied": new_score - old_score,
        "clamped": (new_score - old_score) != requested,
    }
