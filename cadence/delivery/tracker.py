"""
Session Tracker: automatic practice logging.

Owns the single active Session and drives it from the engagement clock:
- Starts/ends sessions when the detected activity label changes
- Accounts every tick as engaged, paused (backgrounded) or idle
- Re-scores the session while it runs and journals it when it ends
- Snapshots the in-flight session for crash recovery

State machine:
    no-session -> engaged <-> idle-warned -> idle -> [input] engaged
    any state -> ended (end_session or label change) -> no-session
"""

from __future__ import annotations

import platform
import threading
import time
from typing import Any, Callable

from loguru import logger

from cadence.core.events import EVENT, SESSION_END, SESSION_START, EventEmitter
from cadence.core.ports import (
    ActivityDetector,
    Dispatcher,
    KeyValueStore,
    RewardCollaborator,
    SchedulingCollaborator,
    TimeSource,
)
from cadence.core.values import clean_answer_stats
from cadence.delivery import scoring
from cadence.delivery.analytics import PracticeAnalytics
from cadence.delivery.idle import IdleDetector
from cadence.delivery.models import (
    IdleState,
    JournalEntry,
    Session,
    StatsDelta,
    TrackerConfig,
    new_session,
)
from cadence.delivery.recovery import RecoveryJournal
from cadence.storage import keys

INPUT_COUNTERS = {
    "key": "keystrokes",
    "click": "clicks",
    "pointer": "clicks",
    "touch": "clicks",
    "scroll": "scrolls",
}


def spawn(task: Callable[[], None]) -> None:
    """Run a task on a short-lived daemon thread."""
    threading.Thread(target=task, name="cadence-srs-sync", daemon=True).start()


class SessionTracker:
    """
    Session lifecycle manager.

    All mutation of the active session happens under one re-entrant lock,
    either on the engagement clock's tick or synchronously in an input
    callback.
    """

    def __init__(
        self,
        store: KeyValueStore,
        detector: ActivityDetector | None = None,
        emitter: EventEmitter | None = None,
        scheduler: SchedulingCollaborator | None = None,
        rewards: RewardCollaborator | None = None,
        adapter: Any | None = None,
        config: TrackerConfig | None = None,
        time_source: TimeSource | None = None,
        dispatch: Dispatcher | None = None,
    ):
        self.store = store
        self.detector = detector
        self.emitter = emitter or EventEmitter()
        self.scheduler = scheduler
        self.rewards = rewards
        self.adapter = adapter
        self.config = config or TrackerConfig()
        self._now = time_source or (lambda: int(time.time() * 1000))
        self._dispatch = dispatch or spawn

        self.current: Session | None = None
        self.visible = True
        self.baseline: dict = {}
        self.idle = IdleDetector(self.config.idle_warning_ms, self.config.idle_timeout_ms, self._now())
        self.analytics = PracticeAnalytics(
            store,
            journal_capacity=self.config.journal_capacity,
            retention_days=self.config.daily_retention_days,
        )
        self.recovery = RecoveryJournal(
            store,
            autosave_interval_ms=self.config.autosave_interval_ms,
            max_age_ms=self.config.recovery_max_age_ms,
        )

        self._last_tick_at: int | None = None
        self._lock = threading.RLock()

    # =========================================================================
    # Session Lifecycle
    # =========================================================================

    def start_session(self, label: str | None, meta: dict | None = None) -> Session | None:
        """
        Open a session for an activity, closing the previous one.

        No-op for an empty label or the label already being tracked.
        """
        if not label:
            return None

        with self._lock:
            if self.current is not None and self.current.activity == label:
                return self.current

            if self.current is not None:
                self.end_session("switched")

            now = self._now()
            self.baseline = self._load_stats()
            self.current = new_session(label, now, meta)
            self._last_tick_at = now
            self.idle.touch(now)

            logger.info(f"Started session {self.current.id}: {label}")
            self.emitter.emit(
                SESSION_START,
                {"session_id": self.current.id, "activity": label, "start_time": now, "resumed": False},
            )
            return self.current

    def end_session(self, reason: str = "manual") -> JournalEntry | None:
        """
        Finalize the active session.

        Sessions under the minimum engaged time are discarded without side
        effects. Otherwise the session is journaled, rolled up, rewarded,
        synced to the scheduler and fed to the difficulty adapter.

        Returns:
            The journal entry, or None if nothing was recorded
        """
        with self._lock:
            session = self.current
            if session is None:
                return None

            now = self._now()
            self._account(now, notify=False)
            session.end_time = max(now, session.start_time)
            self._refresh_stats_delta(session)
            clamped = self._clamp_duration(session)
            scoring.rescore(session)

            self.current = None
            self._last_tick_at = None
            self.recovery.clear()

            if session.engaged_ms < self.config.min_session_ms:
                logger.debug(
                    f"Discarded session {session.id} ({session.activity}): "
                    f"{session.engaged_ms / 1000:.0f}s engaged"
                )
                return None

            entry = self._journal_entry(session, reason, clamped)
            self._persist_entry(entry)

            self._notify_rewards(entry.xp_earned)
            self._sync_scheduler(session)
            self._adapt_difficulty(session, entry)

            logger.info(
                f"Saved session {session.id}: {session.activity} "
                f"({entry.minutes}min, {entry.accuracy}%, quality {entry.quality_score}, reason={reason})"
            )
            self.emitter.emit(SESSION_END, entry.to_dict())
            return entry

    def resume_from_recovery(self) -> Session | None:
        """
        Adopt a fresh crash-recovery snapshot as the active session.

        The time between the snapshot and now is accounted as paused.
        """
        with self._lock:
            if self.current is not None:
                return None

            now = self._now()
            recovered = self.recovery.restore(now)
            if recovered is None:
                return None

            session = recovered.session
            gap = now - session.start_time - session.elapsed_ms
            if gap > 0:
                session.paused_ms += gap

            self.current = session
            self.baseline = clean_answer_stats(recovered.baseline)
            self._last_tick_at = now
            self.idle.touch(now)

            self.emitter.emit(
                SESSION_START,
                {
                    "session_id": session.id,
                    "activity": session.activity,
                    "start_time": session.start_time,
                    "resumed": True,
                },
            )
            return session

    # =========================================================================
    # Ticking
    # =========================================================================

    def tick(self) -> None:
        """
        Advance time accounting by one clock period.

        With no session, asks the detector what the learner is doing. With
        a session, classifies the elapsed time and re-scores.
        """
        with self._lock:
            if self.current is None:
                label = self._detect()
                if label:
                    self.start_session(label)
                return

            now = self._now()
            bucket = self._account(now, notify=True)
            session = self.current

            if bucket == "engaged":
                self._refresh_stats_delta(session)
            elif bucket == "idle":
                # An idle learner may have navigated away
                label = self._detect()
                if label and label != session.activity:
                    self.start_session(label)
                    return

            scoring.rescore(session)
            self.recovery.maybe_save(session, self.baseline, now)

    def _account(self, now: int, notify: bool) -> str | None:
        """Add the time since the last tick to exactly one bucket."""
        session = self.current
        if session is None:
            return None
        if self._last_tick_at is None:
            self._last_tick_at = now
            return None

        delta = now - self._last_tick_at
        self._last_tick_at = now
        if delta <= 0:
            return None

        if not self.visible:
            session.paused_ms += delta
            return "paused"

        transition = self.idle.evaluate(now)
        if notify and transition.crossed is IdleState.WARNED:
            self.emitter.emit(
                EVENT,
                {
                    "type": "idle-warning",
                    "severity": "soft",
                    "session_id": session.id,
                    "idle_for_ms": transition.idle_for_ms,
                },
            )
        elif notify and transition.crossed is IdleState.IDLE:
            logger.info(f"Session {session.id} idle after {transition.idle_for_ms / 1000:.0f}s")
            self.emitter.emit(
                EVENT,
                {
                    "type": "idle",
                    "severity": "warning",
                    "session_id": session.id,
                    "idle_for_ms": transition.idle_for_ms,
                },
            )

        if transition.state is IdleState.IDLE:
            session.idle_ms += delta
            return "idle"

        session.engaged_ms += delta
        return "engaged"

    # =========================================================================
    # Input Callbacks
    # =========================================================================

    def record_input(self, kind: str = "pointer") -> None:
        """Register learner input (key, click, pointer, touch, scroll)."""
        with self._lock:
            session = self.current
            if session is not None:
                counter = INPUT_COUNTERS.get(kind)
                if counter:
                    setattr(session.interactions, counter, getattr(session.interactions, counter) + 1)
            self._touch()

    def set_visible(self, visible: bool) -> None:
        """Foreground/background notification from the host."""
        with self._lock:
            self.visible = visible
            if visible:
                self._touch()

    def record_audio_play(self) -> None:
        with self._lock:
            if self.current is not None:
                self.current.interactions.audio_plays += 1
            self._touch()

    def record_answer(
        self,
        skill: str,
        correct: bool,
        response_time_ms: int | None = None,
        meta: dict | None = None,
    ) -> None:
        """
        Record one answered question.

        Updates the aggregate stats the session delta is computed from and,
        when a session is active, its counters, streak and outcome buffer.
        """
        with self._lock:
            now = self._now()
            stats = self._load_stats()
            stats["total"] += 1
            stats["correct"] += 1 if correct else 0
            skill_stats = stats["by_skill"].setdefault(skill, {"correct": 0, "total": 0})
            skill_stats["total"] += 1
            skill_stats["correct"] += 1 if correct else 0
            self.store.set(keys.STATS, stats)

            session = self.current
            if session is None:
                return

            if correct:
                session.interactions.correct_answers += 1
                session.current_streak += 1
                session.best_streak = max(session.best_streak, session.current_streak)
            else:
                session.interactions.wrong_answers += 1
                session.current_streak = 0

            session.buffer_outcome(
                {
                    "skill": skill,
                    "correct": bool(correct),
                    "response_time_ms": response_time_ms,
                    "timestamp": now,
                    "meta": dict(meta or {}),
                },
                self.config.srs_buffer_capacity,
            )
            self._touch()
            self.emitter.emit(
                EVENT,
                {"type": "answer", "session_id": session.id, "skill": skill, "correct": bool(correct)},
            )

    def report_score(self, score: int, total: int) -> None:
        """Score shown by the presentation layer; the most complete report wins."""
        with self._lock:
            session = self.current
            if session is None or total <= session.reported_score.total:
                return
            session.reported_score.score = max(0, min(int(score), int(total)))
            session.reported_score.total = int(total)

    def on_content_changed(self) -> None:
        """Re-detect the activity after the presentation layer changed screens."""
        with self._lock:
            label = self._detect()
            if not label:
                return
            if self.current is not None and label != self.current.activity:
                self.end_session("route-change")
            self.start_session(label)

    def _touch(self) -> None:
        left = self.idle.touch(self._now())
        if left is not None and self.current is not None:
            self.emitter.emit(EVENT, {"type": "resume", "session_id": self.current.id, "from": left.value})

    # =========================================================================
    # Read Side
    # =========================================================================

    def get_current_session_summary(self) -> dict | None:
        with self._lock:
            session = self.current
            if session is None:
                return None
            accuracy, correct, total = scoring.session_accuracy(session.stats_delta, session.reported_score)
            state = self.idle.state.value if self.visible else "paused"
            return {
                "id": session.id,
                "activity": session.activity,
                "state": state,
                "start_time": session.start_time,
                "engaged_ms": session.engaged_ms,
                "paused_ms": session.paused_ms,
                "idle_ms": session.idle_ms,
                "elapsed_ms": session.elapsed_ms,
                "minutes": session.engaged_ms // 60_000,
                "accuracy": accuracy,
                "correct": correct,
                "total": total,
                "focus_score": round(session.focus_score, 4),
                "quality_score": session.quality_score,
                "consistency_score": session.consistency_score,
                "engagement_score": session.engagement_score,
                "current_streak": session.current_streak,
                "interactions": dict(vars(session.interactions)),
                "buffered_outcomes": len(session.srs_review_buffer),
            }

    def get_recent_sessions(self, timeframe: str = "week") -> list[dict]:
        return self.analytics.recent_sessions(timeframe, self._now())

    def get_weekly_stats(self) -> dict:
        return self.analytics.weekly_stats(self._now())

    # =========================================================================
    # Internals
    # =========================================================================

    def _detect(self) -> str | None:
        if self.detector is None:
            return None
        try:
            label = self.detector()
        except Exception as exc:
            logger.warning(f"Activity detector failed: {exc}")
            return None
        return label if isinstance(label, str) and label.strip() else None

    def _load_stats(self) -> dict:
        raw = self.store.get(keys.STATS, {})
        stats = clean_answer_stats(raw)
        if not isinstance(raw, dict):
            logger.warning(f"Stored answer stats were {type(raw).__name__}, starting from zero")
        return stats

    def _refresh_stats_delta(self, session: Session) -> None:
        live = self._load_stats()["by_skill"]
        base = clean_answer_stats(self.baseline)["by_skill"]
        correct = total = 0
        for skill, counts in live.items():
            prior = base.get(skill, {"correct": 0, "total": 0})
            correct += max(0, counts["correct"] - prior["correct"])
            total += max(0, counts["total"] - prior["total"])
        session.stats_delta = StatsDelta(correct=correct, total=total)

    def _clamp_duration(self, session: Session) -> bool:
        """Proportionally shrink engaged time on over-long sessions."""
        total = session.elapsed_ms
        limit = self.config.max_session_ms
        if total <= limit or total <= 0:
            return False
        clamped = int(session.engaged_ms * limit / total)
        logger.warning(
            f"Session {session.id} ran {total / 60_000:.0f}min (> {limit / 60_000:.0f}min); "
            f"engaged time clamped {session.engaged_ms}ms -> {clamped}ms"
        )
        session.engaged_ms = clamped
        return True

    def _journal_entry(self, session: Session, reason: str, clamped: bool) -> JournalEntry:
        delta, reported = session.stats_delta, session.reported_score
        if delta.total and reported.total and delta.total != reported.total:
            logger.warning(
                f"Session {session.id}: stats delta {delta.correct}/{delta.total} disagrees with "
                f"reported score {reported.score}/{reported.total}; using the more complete source"
            )
        accuracy, correct, total = scoring.session_accuracy(delta, reported)
        xp = scoring.xp_reward(session.engaged_ms, accuracy, session.focus_score, session.quality_score)

        return JournalEntry(
            id=session.id,
            date=session.date,
            activity=session.activity,
            start_time=session.start_time,
            end_time=session.end_time or session.start_time,
            minutes=session.engaged_ms // 60_000,
            engaged_ms=session.engaged_ms,
            paused_ms=session.paused_ms,
            idle_ms=session.idle_ms,
            accuracy=accuracy,
            correct=correct,
            total=total,
            focus_score=round(session.focus_score, 4),
            quality_score=session.quality_score,
            consistency_score=session.consistency_score,
            engagement_score=session.engagement_score,
            xp_earned=xp,
            end_reason=reason,
            timestamp=session.end_time or session.start_time,
            clamped=clamped,
            environment={
                "platform": platform.system(),
                "python": platform.python_version(),
                "app_version": self.config.app_version,
                "visible": self.visible,
            },
        )

    def _persist_entry(self, entry: JournalEntry) -> None:
        """Journal and roll up the entry; a failed write never blocks the notifications."""
        writes = (("journal", self.analytics.append), ("daily rollup", self.analytics.update_daily))
        for name, write in writes:
            try:
                saved = write(entry)
            except Exception as exc:
                logger.warning(f"Could not write {name} for {entry.id}: {exc}")
                continue
            if saved is False:
                logger.warning(f"Store rejected {name} write for {entry.id}")

    def _notify_rewards(self, xp: int) -> None:
        if self.rewards is None:
            return
        calls: list[tuple[str, Callable[[], object]]] = []
        if xp > 0:
            calls.append(("grant_xp", lambda: self.rewards.grant_xp(xp)))
        calls.append(("extend_streak", self.rewards.extend_streak))
        calls.append(("check_achievements", self.rewards.check_achievements))
        for name, call in calls:
            try:
                call()
            except Exception as exc:
                logger.warning(f"Reward collaborator {name} failed: {exc}")

    def _sync_scheduler(self, session: Session) -> None:
        if self.scheduler is None:
            return
        payload = {
            "session_id": session.id,
            "activity": session.activity,
            "start_time": session.start_time,
            "end_time": session.end_time,
            "correct": session.interactions.correct_answers,
            "wrong": session.interactions.wrong_answers,
            "events": list(session.srs_review_buffer),
        }
        scheduler = self.scheduler

        def send() -> None:
            try:
                scheduler.record_outcome(payload)
            except Exception as exc:
                logger.warning(f"Scheduler sync for {payload['session_id']} failed: {exc}")

        try:
            self._dispatch(send)
        except Exception as exc:
            logger.warning(f"Could not dispatch scheduler sync: {exc}")

    def _adapt_difficulty(self, session: Session, entry: JournalEntry) -> None:
        if self.adapter is None or not self.config.adapt_on_session_end or entry.total <= 0:
            return
        minutes = session.engaged_ms / 60_000
        speed = round(entry.total / minutes, 2) if minutes > 0 else 0.0
        try:
            self.adapter.record_performance(
                session.activity,
                entry.accuracy,
                speed,
                session.current_streak,
                {"session_id": session.id, "source": "session"},
            )
        except Exception as exc:
            logger.warning(f"Difficulty update for {session.activity} failed: {exc}")
