"""
Unit tests for the DifficultyAdapter.

Tests:
- Stability window and one-step level changes
- Blend of global, skill and backlog levels
- Corrupt record handling and persistence round-trip
- Recommendations and global stats

Run: pytest tests/unit/test_difficulty_adapter.py -v
"""

import random

import pytest

from cadence.adaptive.difficulty import (
    AdaptationRules,
    DifficultyAdapter,
    SkillPerformance,
    level_for_xp,
    round_half_up,
)
from cadence.storage import keys
from cadence.storage.state_store import MemoryStore


class FlakyStore(MemoryStore):
    """Memory store whose writes can be switched off."""

    def __init__(self):
        super().__init__()
        self.fail = False

    def set(self, key, value):
        if self.fail:
            return False
        return super().set(key, value)


class BrokenScheduler:
    def due_ratio(self, skill):
        raise RuntimeError("scheduler offline")

    def record_outcome(self, payload):
        raise RuntimeError("scheduler offline")


class FixedScheduler:
    def __init__(self, ratio):
        self.ratio = ratio

    def due_ratio(self, skill):
        return self.ratio

    def record_outcome(self, payload):
        pass


def record_all(adapter, skill, samples, metadata=None):
    """Record (accuracy, streak) samples and return the level after each."""
    return [adapter.record_performance(skill, acc, 1.0, streak, metadata) for acc, streak in samples]


# =============================================================================
# Level Adaptation
# =============================================================================


class TestLevelAdaptation:
    """Tests for calculate_module_level via record_performance."""

    def test_promote_then_demote_scenario(self, adapter):
        adapter.set_global_level(2)

        strong = [(95, 2), (92, 3), (94, 4), (96, 5), (93, 6)]
        assert record_all(adapter, "intervals", strong) == [2, 2, 2, 2, 3]

        weak = [(60, 0), (55, 0), (62, 0), (58, 0), (50, 0)]
        assert record_all(adapter, "intervals", weak) == [3, 3, 3, 3, 2]

    def test_four_samples_never_promote(self, adapter):
        levels = record_all(adapter, "rhythm", [(100, 10)] * 5)

        assert levels == [1, 1, 1, 1, 2]

    def test_promotion_requires_streak(self, adapter):
        levels = record_all(adapter, "rhythm", [(100, 4)] * 6)

        assert set(levels) == {1}

    def test_lapses_demote(self, adapter):
        adapter.set_global_level(3)

        levels = record_all(adapter, "chords", [(80, 0)] * 5, {"lapses": 2})

        assert levels == [3, 3, 3, 3, 2]
        assert adapter.get_performance("chords").lapses == 2

    def test_level_floor_and_cap(self, adapter):
        assert record_all(adapter, "low", [(10, 0)] * 6)[-1] == 1

        adapter.set_global_level(5)
        assert record_all(adapter, "high", [(100, 20)] * 6)[-1] == 5

    def test_random_sequences_move_one_step_within_bounds(self, adapter):
        rng = random.Random(7)
        previous = adapter.get_performance("noisy").level

        for _ in range(300):
            meta = {"lapses": rng.randint(0, 3)} if rng.random() < 0.3 else None
            level = adapter.record_performance(
                "noisy", rng.uniform(0, 100), rng.uniform(0, 3), rng.randint(0, 10), meta
            )
            assert 1 <= level <= 5
            assert abs(level - previous) <= 1
            previous = level

    def test_inputs_are_clamped(self, adapter):
        adapter.record_performance("intervals", 150, 1.0, 5000)
        perf = adapter.get_performance("intervals")
        assert perf.recent_accuracy == 100
        assert perf.streak == 999

        adapter.record_performance("intervals", "garbage", float("nan"), -3)
        perf = adapter.get_performance("intervals")
        assert perf.recent_accuracy == 0
        assert perf.speed_history[-1] == 0
        assert perf.streak == 0

    def test_running_mean_and_bounded_history(self, adapter):
        for i in range(15):
            adapter.record_performance("intervals", 50 + i, 1.0 + i, 0)

        perf = adapter.get_performance("intervals")
        assert perf.sessions == 15
        assert perf.total_accuracy == pytest.approx(57.0)
        assert perf.recent_accuracy == 64
        assert len(perf.accuracy_history) == 10
        assert perf.accuracy_history[0] == 55
        assert len(perf.speed_history) == 10

    def test_adapt_notification(self, adapter, event_log):
        adapter.record_performance("intervals", 88, 1.2, 3, {"source": "drill"})

        payload = event_log.named("activity")[-1]
        assert payload["category"] == "difficulty"
        assert payload["action"] == "adapt"
        assert payload["skill"] == "intervals"
        assert payload["level"] == 1
        assert payload["metadata"] == {"source": "drill"}


# =============================================================================
# Blended Difficulty
# =============================================================================


class TestGetDifficulty:
    """Tests for the weighted blend."""

    def test_empty_backlog_raises_level(self, adapter, scheduler):
        scheduler.ratio = 0.0

        result = adapter.get_difficulty("intervals")

        # 0.4*1 + 0.4*1 + 0.2*5 = 1.8
        assert result.level == 2
        assert result.config.name == "INTERMEDIATE"
        assert result.config.tempo == 90
        assert result.recommendation == "Master INTERMEDIATE before advancing"

    def test_full_backlog_lowers_level(self, adapter, scheduler):
        scheduler.ratio = 1.0

        assert adapter.get_difficulty("intervals").level == 1

    def test_scheduler_failure_uses_neutral_backlog(self, store):
        adapter = DifficultyAdapter(store, scheduler=BrokenScheduler())
        adapter.set_global_level(5)

        assert adapter.due_level("intervals") == 3
        # 0.4*5 + 0.4*5 + 0.2*3 = 4.6
        assert adapter.get_difficulty("intervals").level == 5

    def test_missing_scheduler_uses_neutral_backlog(self, store):
        adapter = DifficultyAdapter(store)
        assert adapter.due_level("intervals") == 3

    @pytest.mark.parametrize(
        "ratio,expected",
        [(0.0, 5), (0.2, 4), (0.5, 3), (1.0, 2), (4.0, 2), (-1, 3), ("nan", 3)],
    )
    def test_due_level_mapping(self, store, ratio, expected):
        adapter = DifficultyAdapter(store, scheduler=FixedScheduler(ratio))
        assert adapter.due_level("intervals") == expected

    def test_halves_round_up(self, store):
        rules = AdaptationRules(weight_global=0.5, weight_skill=0.5, weight_due=0.0)
        adapter = DifficultyAdapter(store, rules=rules)
        adapter.set_global_level(3)
        adapter.get_performance("intervals")
        adapter.set_global_level(2)

        assert adapter.get_difficulty("intervals").level == 3

    def test_weights_are_normalized(self, store):
        rules = AdaptationRules(weight_global=1.0, weight_skill=1.0, weight_due=0.0)
        adapter = DifficultyAdapter(store, rules=rules)
        adapter.set_global_level(3)
        adapter.get_performance("intervals")
        adapter.set_global_level(2)

        assert adapter.get_difficulty("intervals").level == 3

    def test_global_level_from_xp(self, store):
        store.set(keys.XP, 320)
        adapter = DifficultyAdapter(store)
        adapter.init()

        assert adapter.global_level == 4
        assert adapter.get_performance("new-skill").level == 4

    def test_to_dict_shape(self, adapter):
        data = adapter.get_difficulty("intervals").to_dict()

        assert set(data) == {"level", "config", "recommendation", "performance"}
        assert data["config"]["accuracy_target"] == 80
        assert data["performance"]["skill"] == "intervals"


# =============================================================================
# Persistence
# =============================================================================


class TestPersistence:
    """Tests for loading, corrupt data and write failures."""

    def test_round_trip(self, store, adapter):
        record_all(adapter, "intervals", [(95, 6)] * 6)
        before = adapter.get_performance("intervals").to_dict()

        reloaded = DifficultyAdapter(store)
        reloaded.init()

        assert reloaded.get_performance("intervals").to_dict() == before
        assert reloaded.skills == ["intervals"]

    def test_corrupt_records_reinitialize(self, store):
        store.set(
            keys.DIFFICULTY,
            {
                "intervals": "garbage",
                "rhythm": {"level": 4, "accuracy_history": "nope"},
                "chords": {"level": "7", "sessions": 3},
            },
        )
        adapter = DifficultyAdapter(store)
        adapter.init()

        assert adapter.get_performance("intervals").sessions == 0
        assert adapter.get_performance("intervals").level == 1
        assert adapter.get_performance("rhythm").level == 1
        assert adapter.get_performance("chords").level == 5
        assert adapter.get_performance("chords").sessions == 3

    def test_non_map_records_reinitialize(self, store):
        store.set(keys.DIFFICULTY, ["not", "a", "map"])
        adapter = DifficultyAdapter(store)
        adapter.init()

        assert adapter.skills == []

    def test_malformed_json_reinitializes(self):
        store = MemoryStore()
        store.put_raw(keys.DIFFICULTY, "{not json")
        adapter = DifficultyAdapter(store)
        adapter.init()

        assert adapter.skills == []
        assert adapter.record_performance("intervals", 80, 1.0, 0) == 1

    def test_failed_write_retries_on_next_update(self):
        store = FlakyStore()
        adapter = DifficultyAdapter(store)
        adapter.init()

        store.fail = True
        assert adapter.record_performance("intervals", 80, 1.0, 0) == 1
        assert adapter.dirty is True
        assert store.get(keys.DIFFICULTY) is None

        store.fail = False
        adapter.record_performance("intervals", 85, 1.0, 1)
        assert adapter.dirty is False
        assert store.get(keys.DIFFICULTY)["intervals"]["sessions"] == 2

    def test_reset_skill(self, store, adapter, event_log):
        adapter.record_performance("intervals", 80, 1.0, 0)

        assert adapter.reset_skill("intervals") is True
        assert "intervals" not in adapter.skills
        assert "intervals" not in store.get(keys.DIFFICULTY)
        assert event_log.named("activity")[-1]["action"] == "reset_skill"

        assert adapter.reset_skill("intervals") is False

    def test_skill_performance_from_dict_rejects_non_mapping(self):
        with pytest.raises(TypeError):
            SkillPerformance.from_dict("intervals", [1, 2, 3])


# =============================================================================
# Analysis
# =============================================================================


class TestRecommendations:
    """Tests for recommendations and aggregate stats."""

    @pytest.fixture
    def populated(self, adapter):
        record_all(adapter, "zeta", [(40, 0)] * 3)
        record_all(adapter, "alpha", [(60, 0)] * 3)
        record_all(adapter, "beta", [(95, 2)])
        record_all(adapter, "gamma", [(80, 1)] * 3)
        record_all(adapter, "delta", [(50, 0)] * 2)
        return adapter

    def test_recommendations_sorted(self, populated):
        recs = populated.get_recommendations()

        assert [(r.skill, r.action, r.priority) for r in recs] == [
            ("alpha", "focus", "high"),
            ("zeta", "focus", "high"),
            ("beta", "advance", "medium"),
        ]
        assert recs[0].reason == "Struggling (60%)"
        assert recs[2].reason == "Ready for INTERMEDIATE (90 BPM)"

    def test_mastered_skill_not_advanced(self, adapter):
        adapter.set_global_level(5)
        adapter.record_performance("intervals", 99, 1.0, 10)

        assert adapter.get_recommendations() == []

    def test_adaptive_config(self, populated):
        weak = populated.get_adaptive_config()["weak_areas"]

        assert [w["skill"] for w in weak] == ["alpha", "zeta", "beta"]
        assert weak[0] == {"skill": "alpha", "reason": "Struggling (60%)", "priority": "high", "level": 1}

    def test_global_stats(self, populated):
        stats = populated.get_global_stats()

        assert stats["skills"] == 5
        assert stats["avg_level"] == 1.0
        assert stats["skills_at_max"] == 0
        assert stats["struggling"] == 3

    def test_global_stats_empty(self, adapter):
        assert adapter.get_global_stats() == {
            "avg_level": 1.0,
            "skills_at_max": 0,
            "struggling": 0,
            "skills": 0,
        }

    @pytest.mark.parametrize(
        "level,text",
        [
            (1, "Master BEGINNER before advancing"),
            (2, "Master INTERMEDIATE before advancing"),
            (3, "Ready for EXPERT (144 BPM)"),
            (4, "Ready for MASTER (180 BPM)"),
            (5, "Mastery achieved!"),
        ],
    )
    def test_recommendation_text(self, adapter, level, text):
        assert adapter.recommendation_for(level) == text


class TestHelpers:
    """Tests for module-level helpers."""

    @pytest.mark.parametrize(
        "xp,level",
        [(0, 1), (49, 1), (50, 2), (149, 2), (150, 3), (300, 4), (499, 4), (500, 5), (10_000, 5), ("junk", 1)],
    )
    def test_level_for_xp(self, xp, level):
        assert level_for_xp(xp) == level

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(1.5) == 2
        assert round_half_up(1.49) == 1
