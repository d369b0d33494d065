"""
Unit tests for crash recovery.

Tests:
- Autosave cadence and minimum engaged time
- Adopting a fresh snapshot, discarding a stale one
- Resuming through the tracker with the gap accounted as paused

Run: pytest tests/unit/test_recovery.py -v
"""

import pytest

from cadence.delivery.models import Session, new_session
from cadence.delivery.recovery import RecoveryJournal
from cadence.delivery.tracker import SessionTracker
from cadence.storage import keys
from cadence.storage.state_store import MemoryStore

MINUTE = 60_000


def engaged_session(now, engaged_ms):
    session = new_session("intervals", now - engaged_ms)
    session.engaged_ms = engaged_ms
    return session


class TestRecoveryJournal:
    def test_short_sessions_not_snapshotted(self):
        journal = RecoveryJournal(MemoryStore(), autosave_interval_ms=30_000, max_age_ms=10 * MINUTE)

        assert journal.maybe_save(engaged_session(100_000, 59_000), {}, 100_000) is False

    def test_autosave_interval(self):
        store = MemoryStore()
        journal = RecoveryJournal(store, autosave_interval_ms=30_000, max_age_ms=10 * MINUTE)
        session = engaged_session(100_000, MINUTE)

        assert journal.maybe_save(session, {}, 100_000) is True
        assert journal.maybe_save(session, {}, 129_999) is False
        assert journal.maybe_save(session, {}, 130_000) is True
        assert store.get(keys.RECOVERY)["saved_at"] == 130_000

    def test_restore_fresh_snapshot(self):
        store = MemoryStore()
        journal = RecoveryJournal(store, autosave_interval_ms=30_000, max_age_ms=10 * MINUTE)
        session = engaged_session(100_000, MINUTE)
        journal.save(session, {"correct": 3, "total": 4, "by_skill": {}}, 100_000)

        recovered = journal.restore(100_000 + 5 * MINUTE)

        assert recovered.session.id == session.id
        assert recovered.baseline == {"correct": 3, "total": 4, "by_skill": {}}
        assert recovered.saved_at == 100_000

    def test_stale_snapshot_discarded(self):
        store = MemoryStore()
        journal = RecoveryJournal(store, autosave_interval_ms=30_000, max_age_ms=10 * MINUTE)
        journal.save(engaged_session(100_000, MINUTE), {}, 100_000)

        assert journal.restore(100_000 + 15 * MINUTE) is None
        assert store.get(keys.RECOVERY) is None

    def test_future_snapshot_discarded(self):
        store = MemoryStore()
        journal = RecoveryJournal(store, autosave_interval_ms=30_000, max_age_ms=10 * MINUTE)
        journal.save(engaged_session(100_000, MINUTE), {}, 100_000)

        assert journal.restore(50_000) is None

    def test_malformed_snapshot_discarded(self):
        store = MemoryStore()
        store.set(keys.RECOVERY, {"saved_at": 1, "session": {"activity": "intervals"}})
        journal = RecoveryJournal(store, autosave_interval_ms=30_000, max_age_ms=10 * MINUTE)

        assert journal.restore(2) is None
        assert store.get(keys.RECOVERY) is None


    @pytest.mark.parametrize(
        "field,value",
        [
            ("stats_delta", [1]),
            ("interactions", "lots"),
            ("reported_score", 7),
            ("engaged_ms", "ninety"),
            ("engaged_ms", float("inf")),
            ("id", 42),
            ("srs_review_buffer", {"skill": "intervals"}),
        ],
    )
    def test_wrongly_typed_session_field_discarded(self, field, value):
        store = MemoryStore()
        journal = RecoveryJournal(store, autosave_interval_ms=30_000, max_age_ms=10 * MINUTE)
        journal.save(engaged_session(100_000, MINUTE), {}, 100_000)
        snapshot = store.get(keys.RECOVERY)
        snapshot["session"][field] = value
        store.set(keys.RECOVERY, snapshot)

        assert journal.restore(100_000 + MINUTE) is None
        assert store.get(keys.RECOVERY) is None

    def test_non_map_baseline_discarded(self):
        store = MemoryStore()
        journal = RecoveryJournal(store, autosave_interval_ms=30_000, max_age_ms=10 * MINUTE)
        journal.save(engaged_session(100_000, MINUTE), "oops", 100_000)

        assert journal.restore(100_000 + MINUTE) is None
        assert store.get(keys.RECOVERY) is None

    def test_baseline_counters_are_normalized(self):
        store = MemoryStore()
        journal = RecoveryJournal(store, autosave_interval_ms=30_000, max_age_ms=10 * MINUTE)
        baseline = {"total": "x", "by_skill": {"rhythm": [1], "intervals": {"correct": "2", "total": 3}}}
        journal.save(engaged_session(100_000, MINUTE), baseline, 100_000)

        recovered = journal.restore(100_000 + MINUTE)

        assert recovered.baseline == {
            "correct": 0,
            "total": 0,
            "by_skill": {"intervals": {"correct": 2, "total": 3}},
        }

    def test_session_from_dict_rejects_nested_list(self):
        data = engaged_session(100_000, MINUTE).to_dict()
        data["stats_delta"] = [1]

        with pytest.raises(TypeError):
            Session.from_dict(data)


class TestTrackerRecovery:
    """Crash and restart through two tracker instances sharing a store."""

    def crash_after(self, store, clock, tracker_config, seconds):
        tracker = SessionTracker(store, config=tracker_config, time_source=clock)
        tracker.start_session("intervals")
        tracker.record_answer("intervals", True, 900)
        for _ in range(seconds):
            clock.advance(1000)
            tracker.record_input("key")
            tracker.tick()
        return tracker.current

    def test_resume_within_window(self, store, clock, tracker_config, emitter, event_log):
        crashed = self.crash_after(store, clock, tracker_config, 90)
        clock.advance(5 * MINUTE)

        tracker = SessionTracker(store, emitter=emitter, config=tracker_config, time_source=clock)
        session = tracker.resume_from_recovery()

        assert session.id == crashed.id
        assert session.engaged_ms == 90_000
        assert session.paused_ms == 5 * MINUTE
        assert session.elapsed_ms == clock.now - session.start_time
        assert event_log.named("session:start")[0]["resumed"] is True

        # Answers before the crash still count toward the session
        tracker.tick()
        assert tracker.get_current_session_summary()["total"] == 1

    def test_stale_snapshot_after_long_outage(self, store, clock, tracker_config):
        self.crash_after(store, clock, tracker_config, 90)
        clock.advance(15 * MINUTE)

        tracker = SessionTracker(store, config=tracker_config, time_source=clock)

        assert tracker.resume_from_recovery() is None
        assert tracker.current is None
        assert store.get(keys.RECOVERY) is None

    def test_no_resume_over_active_session(self, store, clock, tracker_config):
        self.crash_after(store, clock, tracker_config, 90)

        tracker = SessionTracker(store, config=tracker_config, time_source=clock)
        tracker.start_session("rhythm")

        assert tracker.resume_from_recovery() is None
        assert tracker.current.activity == "rhythm"


    def test_non_map_baseline_never_reaches_session_end(self, store, clock, tracker_config):
        self.crash_after(store, clock, tracker_config, 90)
        snapshot = store.get(keys.RECOVERY)
        snapshot["baseline"] = "oops"
        store.set(keys.RECOVERY, snapshot)

        tracker = SessionTracker(store, config=tracker_config, time_source=clock)

        assert tracker.resume_from_recovery() is None
        assert tracker.end_session() is None
        assert store.get(keys.RECOVERY) is None
