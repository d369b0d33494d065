"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import datetime
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from cadence.adaptive.difficulty import DifficultyAdapter
from cadence.core.events import ALL, EventEmitter
from cadence.delivery.models import TrackerConfig
from cadence.delivery.tracker import SessionTracker
from cadence.storage.state_store import MemoryStore

MINUTE = 60_000


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start_ms: int):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class FakeDetector:
    """Activity detector returning whatever label the test sets."""

    def __init__(self, label=None):
        self.label = label
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.label


class FakeScheduler:
    """Scheduling collaborator recording outcomes."""

    def __init__(self, ratio: float = 0.0):
        self.ratio = ratio
        self.outcomes = []

    def due_ratio(self, skill):
        return self.ratio

    def record_outcome(self, payload):
        self.outcomes.append(payload)


class FakeRewards:
    """Reward collaborator recording calls."""

    def __init__(self):
        self.xp = []
        self.streaks = 0
        self.achievement_checks = 0

    def grant_xp(self, amount):
        self.xp.append(amount)

    def extend_streak(self):
        self.streaks += 1

    def check_achievements(self):
        self.achievement_checks += 1


class EventLog:
    """Captures every notification from an emitter."""

    def __init__(self, emitter: EventEmitter):
        self.events = []
        emitter.subscribe(ALL, lambda name, payload: self.events.append((name, payload)))

    def named(self, name):
        return [payload for event, payload in self.events if event == name]

    def of_type(self, kind):
        return [payload for payload in self.named("event") if payload.get("type") == kind]


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def clock():
    return FakeClock(int(datetime(2026, 3, 10, 9, 0).timestamp() * 1000))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def detector():
    return FakeDetector()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def rewards():
    return FakeRewards()


@pytest.fixture
def emitter():
    return EventEmitter()


@pytest.fixture
def event_log(emitter):
    return EventLog(emitter)


@pytest.fixture
def tracker_config():
    return TrackerConfig(
        tick_interval_ms=1000,
        idle_warning_ms=20_000,
        idle_timeout_ms=30_000,
        min_session_ms=MINUTE,
        max_session_ms=180 * MINUTE,
        autosave_interval_ms=30_000,
        recovery_max_age_ms=10 * MINUTE,
        journal_capacity=50,
        daily_retention_days=30,
        srs_buffer_capacity=5,
    )


@pytest.fixture
def adapter(store, emitter, scheduler, clock):
    adapter = DifficultyAdapter(store, scheduler=scheduler, emitter=emitter, time_source=clock)
    adapter.init()
    return adapter


@pytest.fixture
def tracker(store, detector, emitter, scheduler, rewards, adapter, tracker_config, clock):
    """Tracker with every collaborator faked and synchronous dispatch."""
    return SessionTracker(
        store,
        detector=detector,
        emitter=emitter,
        scheduler=scheduler,
        rewards=rewards,
        adapter=adapter,
        config=tracker_config,
        time_source=clock,
        dispatch=lambda task: task(),
    )


@pytest.fixture
def run_ticks(tracker, clock):
    """Advance the clock and tick the tracker a number of times."""

    def _run(count: int, interval: int = 1000, on_tick=None):
        for _ in range(count):
            clock.advance(interval)
            tracker.tick()
            if on_tick is not None:
                on_tick()

    return _run
