"""
Practice Journal and Daily Rollups.

Persists finished sessions and answers read-side questions:
- Journal: bounded, newest-first list of JournalEntry dicts
- Daily rollups: per-date aggregates with per-activity breakdown
- Recent sessions by timeframe and a weekly summary
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any

from loguru import logger

from cadence.core.ports import KeyValueStore
from cadence.core.values import as_count, as_map, as_text, safe_num
from cadence.delivery.models import JournalEntry
from cadence.storage import keys

DAY_MS = 24 * 60 * 60 * 1000

TIMEFRAMES_MS: dict[str, float] = {
    "day": DAY_MS,
    "week": 7 * DAY_MS,
    "month": 30 * DAY_MS,
    "quarter": 90 * DAY_MS,
    "all": float("inf"),
}


def running_average(previous: float, count: int, value: float) -> float:
    """Mean after adding ``value`` as the ``count``-th sample."""
    if count <= 1:
        return float(value)
    return (previous * (count - 1) + value) / count


# Journal fields read back as integers
ENTRY_INT_FIELDS = (
    "start_time",
    "end_time",
    "minutes",
    "engaged_ms",
    "paused_ms",
    "idle_ms",
    "accuracy",
    "correct",
    "total",
    "quality_score",
    "consistency_score",
    "engagement_score",
    "xp_earned",
)


def clean_entry(raw: dict) -> dict:
    """Journal entry with numeric fields coerced and text fields defaulted."""
    entry = dict(raw)
    for name in ENTRY_INT_FIELDS:
        entry[name] = int(safe_num(raw.get(name)))
    entry["timestamp"] = int(safe_num(raw.get("timestamp"), entry["end_time"]))
    entry["focus_score"] = safe_num(raw.get("focus_score"))
    entry["activity"] = as_text(raw.get("activity"), "unknown")
    entry["date"] = as_text(raw.get("date"))
    entry["environment"] = as_map(raw.get("environment"))
    return entry


def clean_day(raw: dict) -> dict:
    """Daily rollup with counters coerced and malformed activity buckets dropped."""
    by_activity = {}
    for activity, bucket in as_map(raw.get("by_activity")).items():
        if isinstance(bucket, dict):
            by_activity[activity] = {
                "sessions": as_count(bucket.get("sessions")),
                "engaged_minutes": safe_num(bucket.get("engaged_minutes")),
                "avg_accuracy": safe_num(bucket.get("avg_accuracy")),
            }
    return {
        "sessions": as_count(raw.get("sessions")),
        "total_minutes": safe_num(raw.get("total_minutes")),
        "engaged_minutes": safe_num(raw.get("engaged_minutes")),
        "avg_accuracy": safe_num(raw.get("avg_accuracy")),
        "avg_focus": safe_num(raw.get("avg_focus")),
        "avg_quality": safe_num(raw.get("avg_quality")),
        "by_activity": by_activity,
    }


class PracticeAnalytics:
    """Journal and rollup persistence on top of a KeyValueStore."""

    def __init__(
        self,
        store: KeyValueStore,
        journal_capacity: int = 1000,
        retention_days: int = 90,
    ):
        self.store = store
        self.journal_capacity = journal_capacity
        self.retention_days = retention_days

    # =========================================================================
    # Writes
    # =========================================================================

    def load_journal(self) -> list[dict]:
        journal = self.store.get(keys.JOURNAL, [])
        if not isinstance(journal, list):
            logger.warning("Journal is not a list, reinitializing")
            return []
        return [clean_entry(e) for e in journal if isinstance(e, dict)]

    def append(self, entry: JournalEntry) -> bool:
        """Add an entry at the head of the journal, evicting the oldest."""
        journal = self.load_journal()
        journal.insert(0, entry.to_dict())
        return self.store.set(keys.JOURNAL, journal[: self.journal_capacity])

    def load_daily(self) -> dict[str, dict]:
        daily = self.store.get(keys.DAILY, {})
        if not isinstance(daily, dict):
            logger.warning("Daily rollups are not a map, reinitializing")
            return {}
        return {k: clean_day(v) for k, v in daily.items() if isinstance(k, str) and isinstance(v, dict)}

    def update_daily(self, entry: JournalEntry) -> dict:
        """
        Fold a finished session into its calendar day.

        Returns:
            The updated rollup for that day
        """
        daily = self.load_daily()
        day_key = datetime.fromtimestamp(entry.end_time / 1000).date().isoformat()
        day = daily.get(day_key) or clean_day({})

        sessions = day["sessions"] + 1
        engaged_minutes = entry.engaged_ms / 60_000
        total_minutes = (entry.engaged_ms + entry.paused_ms + entry.idle_ms) / 60_000

        day["sessions"] = sessions
        day["total_minutes"] = round(day["total_minutes"] + total_minutes, 2)
        day["engaged_minutes"] = round(day["engaged_minutes"] + engaged_minutes, 2)
        day["avg_accuracy"] = round(
            running_average(day["avg_accuracy"], sessions, entry.accuracy), 2
        )
        day["avg_focus"] = round(
            running_average(day["avg_focus"], sessions, entry.focus_score), 4
        )
        day["avg_quality"] = round(
            running_average(day["avg_quality"], sessions, entry.quality_score), 2
        )

        by_activity = day["by_activity"]
        activity = by_activity.get(entry.activity) or {
            "sessions": 0,
            "engaged_minutes": 0.0,
            "avg_accuracy": 0.0,
        }
        count = activity["sessions"] + 1
        by_activity[entry.activity] = {
            "sessions": count,
            "engaged_minutes": round(activity["engaged_minutes"] + engaged_minutes, 2),
            "avg_accuracy": round(
                running_average(activity["avg_accuracy"], count, entry.accuracy), 2
            ),
        }
        daily[day_key] = day
        # ISO dates sort chronologically
        retained = dict(sorted(daily.items())[-self.retention_days :])
        if not self.store.set(keys.DAILY, retained):
            logger.warning(f"Could not save daily rollup for {day_key}")
        return day

    # =========================================================================
    # Reads
    # =========================================================================

    def recent_sessions(self, timeframe: str = "week", now_ms: int | None = None) -> list[dict]:
        """Journal entries that ended within the timeframe, newest first."""
        window = TIMEFRAMES_MS.get(timeframe, TIMEFRAMES_MS["week"])
        now = now_ms if now_ms is not None else int(datetime.now().timestamp() * 1000)
        return [e for e in self.load_journal() if now - e["timestamp"] < window]

    def weekly_stats(self, now_ms: int | None = None) -> dict[str, Any]:
        """
        Summary of the trailing seven days.

        Returns:
            Dictionary with totals, averages, consistency, streak,
            per-activity breakdown and the daily rollups for the week
        """
        now = now_ms if now_ms is not None else int(datetime.now().timestamp() * 1000)
        sessions = self.recent_sessions("week", now)
        count = len(sessions)

        engaged_ms = sum(s["engaged_ms"] for s in sessions)
        practice_days = {s["date"] for s in sessions if s["date"]}

        by_activity: dict[str, dict] = {}
        for s in sessions:
            bucket = by_activity.setdefault(
                s["activity"], {"sessions": 0, "engaged_minutes": 0.0, "accuracy": []}
            )
            bucket["sessions"] += 1
            bucket["engaged_minutes"] += s["engaged_ms"] / 60_000
            bucket["accuracy"].append(s["accuracy"])
        for bucket in by_activity.values():
            samples = bucket.pop("accuracy")
            bucket["engaged_minutes"] = round(bucket["engaged_minutes"], 1)
            bucket["avg_accuracy"] = round(sum(samples) / len(samples), 1) if samples else 0.0

        today = datetime.fromtimestamp(now / 1000).date()
        week_keys = {(today - timedelta(days=i)).isoformat() for i in range(7)}
        daily = {k: v for k, v in self.load_daily().items() if k in week_keys}

        def mean(field: str) -> float:
            if not count:
                return 0.0
            return sum(s[field] for s in sessions) / count

        return {
            "sessions": count,
            "engaged_minutes": round(engaged_ms / 60_000, 1),
            "avg_session_minutes": round(engaged_ms / 60_000 / max(1, count), 1),
            "avg_accuracy": round(mean("accuracy"), 1),
            "avg_focus": round(mean("focus_score"), 3),
            "avg_quality": round(mean("quality_score"), 1),
            "xp_earned": sum(s["xp_earned"] for s in sessions),
            "practice_days": len(practice_days),
            "consistency": min(100, round(len(practice_days) / 7 * 100)),
            "current_streak": self.day_streak(today),
            "by_activity": dict(sorted(by_activity.items())),
            "daily": dict(sorted(daily.items())),
        }

    def day_streak(self, today: date) -> int:
        """Consecutive practice days ending today (or yesterday if today is empty)."""
        days = {e["date"] for e in self.load_journal() if e["date"]}
        cursor = today if today.isoformat() in days else today - timedelta(days=1)
        streak = 0
        while cursor.isoformat() in days:
            streak += 1
            cursor -= timedelta(days=1)
        return streak
