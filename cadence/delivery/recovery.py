"""
Crash-recovery snapshots for in-flight sessions.

The tracker periodically writes the active session to a single recovery
slot so an abrupt termination loses at most one autosave interval. On the
next startup a fresh snapshot is adopted; a stale one is discarded.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from cadence.core.ports import KeyValueStore
from cadence.core.values import clean_answer_stats
from cadence.delivery.models import Session
from cadence.storage import keys

# Sessions with less engaged time than this are not worth snapshotting
MIN_SNAPSHOT_ENGAGED_MS = 60_000


@dataclass
class RecoveredSession:
    """A snapshot accepted for resumption."""

    session: Session
    baseline: dict
    saved_at: int


class RecoveryJournal:
    """Owns the recovery slot in the key-value store."""

    def __init__(self, store: KeyValueStore, autosave_interval_ms: int, max_age_ms: int):
        self.store = store
        self.autosave_interval_ms = autosave_interval_ms
        self.max_age_ms = max_age_ms
        self.last_saved_at: int | None = None

    def is_due(self, session: Session, now_ms: int) -> bool:
        if session.engaged_ms < MIN_SNAPSHOT_ENGAGED_MS:
            return False
        if self.last_saved_at is None:
            return True
        return now_ms - self.last_saved_at >= self.autosave_interval_ms

    def maybe_save(self, session: Session, baseline: dict, now_ms: int) -> bool:
        """Snapshot the session if the autosave interval has elapsed."""
        if not self.is_due(session, now_ms):
            return False
        return self.save(session, baseline, now_ms)

    def save(self, session: Session, baseline: dict, now_ms: int) -> bool:
        ok = self.store.set(
            keys.RECOVERY,
            {"saved_at": now_ms, "session": session.to_dict(), "baseline": baseline},
        )
        if ok:
            self.last_saved_at = now_ms
        else:
            # last_saved_at stays put so the next tick retries
            logger.warning(f"Recovery snapshot for {session.id} not written")
        return ok

    def restore(self, now_ms: int) -> RecoveredSession | None:
        """
        Load the snapshot if it is younger than the staleness threshold.

        Stale or malformed snapshots are cleared.
        """
        snapshot = self.store.get(keys.RECOVERY)
        if not snapshot:
            return None

        try:
            saved_at = int(snapshot["saved_at"])
            session = Session.from_dict(snapshot["session"])
            baseline = snapshot.get("baseline") or {}
            if not isinstance(baseline, dict):
                raise TypeError(f"baseline is {type(baseline).__name__}, expected dict")
        except (KeyError, TypeError, ValueError, AttributeError, OverflowError, OSError) as exc:
            logger.warning(f"Discarding malformed recovery snapshot: {exc}")
            self.clear()
            return None

        age = now_ms - saved_at
        if age < 0 or age >= self.max_age_ms:
            logger.info(f"Discarding stale recovery snapshot ({age / 60_000:.1f} min old)")
            self.clear()
            return None

        logger.info(f"Recovered session {session.id} ({session.activity}) from {age / 1000:.0f}s ago")
        self.last_saved_at = saved_at
        return RecoveredSession(session=session, baseline=clean_answer_stats(baseline), saved_at=saved_at)

    def clear(self) -> None:
        self.last_saved_at = None
        self.store.delete(keys.RECOVERY)
