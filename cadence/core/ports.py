"""
Collaborator interfaces consumed by the engine.

The engine never imports the presentation layer, the spaced-repetition
scheduler or the gamification rules directly; the host injects objects that
satisfy these protocols.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol

# Returns a label for what the learner is doing, or None on non-trainable
# (navigation) screens.
ActivityDetector = Callable[[], "str | None"]

# Millisecond wall clock; injectable for tests.
TimeSource = Callable[[], int]

# Runs a zero-argument callable without blocking the caller.
Dispatcher = Callable[[Callable[[], None]], None]


class KeyValueStore(Protocol):
    """JSON key-value persistence with best-effort durability."""

    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value, or ``default`` when absent or malformed."""
        ...

    def set(self, key: str, value: Any) -> bool:
        """Store a JSON-serializable value. Returns False instead of raising."""
        ...

    def delete(self, key: str) -> bool:
        """Remove a key. Returns False instead of raising."""
        ...


class SchedulingCollaborator(Protocol):
    """Spaced-repetition scheduler, seen only through its backlog and outcome log."""

    def due_ratio(self, skill: str) -> float:
        """Fraction (0..1) of the skill's items currently overdue."""
        ...

    def record_outcome(self, payload: dict[str, Any]) -> None:
        """Accept a finished session's buffered outcome events."""
        ...


class RewardCollaborator(Protocol):
    """Gamification rules (XP, streaks, achievements)."""

    def grant_xp(self, amount: int) -> None: ...

    def extend_streak(self) -> None: ...

    def check_achievements(self) -> None: ...
