"""
Session data model.

A Session is owned by the tracker while it is active and becomes an
immutable JournalEntry when it ends. Times are epoch milliseconds so the
records serialize to JSON without conversion.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any


class IdleState(str, Enum):
    """Engagement state of the active session."""

    ENGAGED = "engaged"
    WARNED = "idle-warned"
    IDLE = "idle"


@dataclass
class TrackerConfig:
    """Timing and retention thresholds for the session tracker."""

    tick_interval_ms: int = 1000
    idle_warning_ms: int = 20_000
    idle_timeout_ms: int = 30_000
    min_session_ms: int = 60_000
    max_session_ms: int = 180 * 60_000
    autosave_interval_ms: int = 30_000
    recovery_max_age_ms: int = 10 * 60_000
    journal_capacity: int = 1000
    daily_retention_days: int = 90
    srs_buffer_capacity: int = 200
    adapt_on_session_end: bool = True
    app_version: str = "1.0.0"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrackerConfig":
        """Build from ``Settings.get_tracker_config()``, ignoring unknown keys."""
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})


@dataclass
class StatsDelta:
    """Answers attributable to the session (live aggregate minus baseline)."""

    correct: int = 0
    total: int = 0

    @property
    def accuracy(self) -> int:
        if self.total <= 0:
            return 0
        return round(self.correct / self.total * 100)

    def to_dict(self) -> dict:
        return {"correct": self.correct, "total": self.total, "accuracy": self.accuracy}


@dataclass
class ReportedScore:
    """Score reported by the presentation layer (e.g. a completion screen)."""

    score: int = 0
    total: int = 0


@dataclass
class Interactions:
    """Monotonic input counters for one session."""

    keystrokes: int = 0
    clicks: int = 0
    scrolls: int = 0
    audio_plays: int = 0
    correct_answers: int = 0
    wrong_answers: int = 0

    @property
    def scored(self) -> int:
        return self.correct_answers + self.wrong_answers


# Session fields restored as integers from a recovery snapshot
INT_FIELDS = (
    "start_time",
    "engaged_ms",
    "paused_ms",
    "idle_ms",
    "quality_score",
    "consistency_score",
    "engagement_score",
    "current_streak",
    "best_streak",
)


@dataclass
class Session:
    """An in-flight practice session on a single activity."""

    id: str
    activity: str
    start_time: int
    date: str
    end_time: int | None = None
    engaged_ms: int = 0
    paused_ms: int = 0
    idle_ms: int = 0
    stats_delta: StatsDelta = field(default_factory=StatsDelta)
    reported_score: ReportedScore = field(default_factory=ReportedScore)
    interactions: Interactions = field(default_factory=Interactions)
    focus_score: float = 0.0
    quality_score: int = 0
    consistency_score: int = 50
    engagement_score: int = 0
    current_streak: int = 0
    best_streak: int = 0
    srs_review_buffer: list[dict] = field(default_factory=list)
    meta: dict = field(default_factory=dict)

    @property
    def elapsed_ms(self) -> int:
        """Time accounted so far across all three buckets."""
        return self.engaged_ms + self.paused_ms + self.idle_ms

    def buffer_outcome(self, event: dict, capacity: int) -> None:
        """Append an outcome event, dropping the oldest beyond capacity."""
        self.srs_review_buffer.append(event)
        overflow = len(self.srs_review_buffer) - capacity
        if overflow > 0:
            del self.srs_review_buffer[:overflow]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["stats_delta"] = self.stats_delta.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        """
        Create from dictionary.

        Raises:
            KeyError, TypeError, ValueError, OverflowError: If the dictionary is malformed
        """
        if not isinstance(data, dict):
            raise TypeError(f"session is {type(data).__name__}, expected dict")
        names = {f.name for f in fields(cls)}
        data = {k: v for k, v in data.items() if k in names}

        parts = {}
        for name in ("stats_delta", "reported_score", "interactions"):
            part = data.pop(name, None) or {}
            if not isinstance(part, dict):
                raise TypeError(f"{name} is {type(part).__name__}, expected dict")
            parts[name] = part

        if not isinstance(data.get("id"), str) or not isinstance(data.get("activity"), str):
            raise TypeError("session id and activity must be strings")
        for name in INT_FIELDS:
            if name in data:
                data[name] = int(data[name])
        if data.get("end_time") is not None:
            data["end_time"] = int(data["end_time"])
        data["focus_score"] = float(data.get("focus_score", 0.0))
        if not isinstance(data.get("date"), str):
            data["date"] = iso_date(data["start_time"])
        if not isinstance(data.get("srs_review_buffer", []), list):
            raise TypeError("srs_review_buffer is not a list")
        if not isinstance(data.get("meta", {}), dict):
            raise TypeError("meta is not a dict")

        delta, reported = parts["stats_delta"], parts["reported_score"]
        counters = {f.name for f in fields(Interactions)}
        return cls(
            stats_delta=StatsDelta(correct=int(delta.get("correct", 0)), total=int(delta.get("total", 0))),
            reported_score=ReportedScore(score=int(reported.get("score", 0)), total=int(reported.get("total", 0))),
            interactions=Interactions(
                **{k: int(v) for k, v in parts["interactions"].items() if k in counters}
            ),
            **data,
        )


def new_session(activity: str, now_ms: int, meta: dict | None = None) -> Session:
    """Create a session with zeroed accumulators."""
    return Session(
        id=f"sess-{now_ms}-{uuid.uuid4().hex[:6]}",
        activity=activity,
        start_time=now_ms,
        date=iso_date(now_ms),
        meta=dict(meta or {}),
    )


def iso_date(ms: int) -> str:
    """Local calendar date of an epoch-millisecond instant."""
    return datetime.fromtimestamp(ms / 1000).date().isoformat()


@dataclass(frozen=True)
class JournalEntry:
    """Immutable summary of a finished session."""

    id: str
    date: str
    activity: str
    start_time: int
    end_time: int
    minutes: int
    engaged_ms: int
    paused_ms: int
    idle_ms: int
    accuracy: int
    correct: int
    total: int
    focus_score: float
    quality_score: int
    consistency_score: int
    engagement_score: int
    xp_earned: int
    end_reason: str
    timestamp: int
    clamped: bool = False
    environment: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "JournalEntry":
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})
