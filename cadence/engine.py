"""
Practice Engine: explicit-lifecycle facade over the tracker and adapter.

The host constructs one engine, calls ``init()`` once, injects it where
needed and calls ``destroy()`` on shutdown. Nothing is started at import
time.

Usage:
    engine = PracticeEngine(store=open_store(), detector=current_screen)
    engine.init()
    ...
    engine.destroy()
"""

from __future__ import annotations

import atexit
from typing import Any

from loguru import logger

from cadence.adaptive.difficulty import AdaptationRules, Difficulty, DifficultyAdapter, Recommendation
from cadence.core.events import EventEmitter, Listener
from cadence.core.ports import (
    ActivityDetector,
    Dispatcher,
    KeyValueStore,
    RewardCollaborator,
    SchedulingCollaborator,
    TimeSource,
)
from cadence.delivery.models import JournalEntry, Session, TrackerConfig
from cadence.delivery.ticker import EngagementClock
from cadence.delivery.tracker import SessionTracker
from cadence.storage.state_store import MemoryStore


class PracticeEngine:
    """Wires the store, notification channel, tracker, adapter and clock."""

    def __init__(
        self,
        store: KeyValueStore | None = None,
        detector: ActivityDetector | None = None,
        scheduler: SchedulingCollaborator | None = None,
        rewards: RewardCollaborator | None = None,
        tracker_config: TrackerConfig | None = None,
        rules: AdaptationRules | None = None,
        time_source: TimeSource | None = None,
        dispatch: Dispatcher | None = None,
    ):
        self.store = store if store is not None else MemoryStore()
        self.emitter = EventEmitter()
        self.adapter = DifficultyAdapter(
            self.store,
            scheduler=scheduler,
            emitter=self.emitter,
            rules=rules,
            time_source=time_source,
        )
        self.tracker = SessionTracker(
            self.store,
            detector=detector,
            emitter=self.emitter,
            scheduler=scheduler,
            rewards=rewards,
            adapter=self.adapter,
            config=tracker_config,
            time_source=time_source,
            dispatch=dispatch,
        )
        self.clock = EngagementClock(on_tick=self.tracker.tick, interval_ms=self.tracker.config.tick_interval_ms)
        self._initialized = False
        self._atexit_registered = False

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> "PracticeEngine":
        """Build an engine from ``config.Settings``."""
        kwargs.setdefault("tracker_config", TrackerConfig.from_dict(settings.get_tracker_config()))
        kwargs.setdefault("rules", AdaptationRules.from_config(settings.get_difficulty_config()))
        return cls(**kwargs)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def init(self, start_clock: bool = True, register_atexit: bool = False) -> None:
        """
        Load state, adopt a fresh crash-recovery snapshot, and start ticking.

        Args:
            start_clock: Start the background engagement clock
            register_atexit: End the active session at interpreter exit
        """
        if self._initialized:
            return
        self.adapter.init()
        resumed = self.tracker.resume_from_recovery()
        if resumed is None:
            self.tracker.tick()
        if start_clock:
            self.clock.start()
        if register_atexit and not self._atexit_registered:
            atexit.register(self.destroy)
            self._atexit_registered = True
        self._initialized = True
        logger.info("Practice engine active")

    def destroy(self) -> JournalEntry | None:
        """Stop the clock and make one best-effort attempt to save the session."""
        self.clock.stop()
        entry = None
        try:
            entry = self.tracker.end_session("shutdown")
        except Exception as exc:
            logger.warning(f"Shutdown save failed: {exc}")
        if self._atexit_registered:
            atexit.unregister(self.destroy)
            self._atexit_registered = False
        self._initialized = False
        return entry

    @property
    def initialized(self) -> bool:
        return self._initialized

    # =========================================================================
    # Session API
    # =========================================================================

    def start_session(self, label: str | None, meta: dict | None = None) -> Session | None:
        return self.tracker.start_session(label, meta)

    def end_session(self, reason: str = "manual") -> JournalEntry | None:
        return self.tracker.end_session(reason)

    def tick(self) -> None:
        self.tracker.tick()

    def record_answer(
        self,
        skill: str,
        correct: bool,
        response_time_ms: int | None = None,
        meta: dict | None = None,
    ) -> None:
        self.tracker.record_answer(skill, correct, response_time_ms, meta)

    def record_input(self, kind: str = "pointer") -> None:
        self.tracker.record_input(kind)

    def set_visible(self, visible: bool) -> None:
        self.tracker.set_visible(visible)

    def get_current_session_summary(self) -> dict | None:
        return self.tracker.get_current_session_summary()

    def get_recent_sessions(self, timeframe: str = "week") -> list[dict]:
        return self.tracker.get_recent_sessions(timeframe)

    def get_weekly_stats(self) -> dict:
        return self.tracker.get_weekly_stats()

    # =========================================================================
    # Difficulty API
    # =========================================================================

    def get_difficulty(self, skill: str) -> Difficulty:
        return self.adapter.get_difficulty(skill)

    def record_performance(
        self,
        skill: str,
        accuracy: float,
        speed: float,
        streak: int,
        meta: dict | None = None,
    ) -> int:
        return self.adapter.record_performance(skill, accuracy, speed, streak, meta)

    def get_recommendations(self) -> list[Recommendation]:
        return self.adapter.get_recommendations()

    def reset_skill(self, skill: str) -> bool:
        return self.adapter.reset_skill(skill)

    # =========================================================================
    # Notifications
    # =========================================================================

    def subscribe(self, event: str, listener: Listener):
        return self.emitter.subscribe(event, listener)

    def unsubscribe(self, event: str, listener: Listener) -> bool:
        return self.emitter.unsubscribe(event, listener)
