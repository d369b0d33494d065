"""
Coercion helpers for values read back from the store.

Stored JSON can be hand-edited, truncated or written by an older version;
these helpers turn whatever is there into finite numbers and plain
containers so readers never fail on a type-wrong field.
"""

from __future__ import annotations

import math
from typing import Any


def safe_num(value: Any, fallback: float = 0.0) -> float:
    """Coerce to a finite float, else return the fallback."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    return number if math.isfinite(number) else fallback


def as_count(value: Any) -> int:
    """Non-negative integer counter; anything unusable counts as 0."""
    return max(0, int(safe_num(value)))


def as_text(value: Any, fallback: str | None = None) -> str | None:
    return value if isinstance(value, str) and value else fallback


def as_map(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def clean_answer_stats(raw: Any) -> dict:
    """
    Normalize the aggregate answer counters.

    Returns:
        ``{"correct": int, "total": int, "by_skill": {skill: {"correct", "total"}}}``
        with unusable fields reset to zero and malformed skills dropped
    """
    data = as_map(raw)
    by_skill = {}
    for skill, counts in as_map(data.get("by_skill")).items():
        if isinstance(counts, dict):
            by_skill[skill] = {
                "correct": as_count(counts.get("correct")),
                "total": as_count(counts.get("total")),
            }
    return {
        "correct": as_count(data.get("correct")),
        "total": as_count(data.get("total")),
        "by_skill": by_skill,
    }
