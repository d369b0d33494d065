"""
Unit tests for session quality scoring.

Run: pytest tests/unit/test_scoring.py -v
"""

import pytest

from cadence.delivery import scoring
from cadence.delivery.models import Interactions, ReportedScore, StatsDelta, new_session

MINUTE = 60_000


class TestFocusScore:
    @pytest.mark.parametrize(
        "engaged,paused,idle,expected",
        [
            (45_000, 0, 5_000, 0.9),
            (9 * MINUTE, 30_000, 30_000, 0.9),
            (5 * MINUTE, 0, 0, 1.0),
            (0, 0, 0, 0.0),
        ],
    )
    def test_engaged_share(self, engaged, paused, idle, expected):
        assert scoring.focus_score(engaged, paused, idle) == pytest.approx(expected)

    def test_idle_time_counts_against_focus(self):
        assert scoring.focus_score(45_000, 0, 5_000) == 0.9


class TestConsistencyScore:
    @pytest.mark.parametrize(
        "accuracy,expected",
        [(100, 100), (90, 100), (89, 80), (75, 80), (74, 60), (60, 60), (59, 40), (0, 40)],
    )
    def test_bands(self, accuracy, expected):
        assert scoring.consistency_score(accuracy, 10) == expected

    def test_neutral_with_few_answers(self):
        assert scoring.consistency_score(100, 9) == 50
        assert scoring.consistency_score(0, 0) == 50


class TestEngagementScore:
    def test_ideal_rate_scores_full(self):
        interactions = Interactions(keystrokes=5, clicks=3, audio_plays=1)
        assert scoring.engagement_score(interactions, MINUTE) == 100

    def test_half_rate(self):
        interactions = Interactions(keystrokes=5, clicks=3, audio_plays=1)
        assert scoring.engagement_score(interactions, 2 * MINUTE) == 50

    def test_capped_at_100(self):
        assert scoring.engagement_score(Interactions(keystrokes=500), MINUTE) == 100

    def test_zero_without_engaged_time(self):
        assert scoring.engagement_score(Interactions(keystrokes=50), 0) == 0


class TestQualityScore:
    def test_weighted_blend(self):
        # 0.4*80 + 0.3*90 + 0.2*80 + 0.1*50
        assert scoring.quality_score(80, 0.9, 80, 50) == 80

    def test_bounds(self):
        assert scoring.quality_score(100, 1.0, 100, 100) == 100
        assert scoring.quality_score(0, 0.0, 0, 0) == 0


class TestSessionAccuracy:
    def test_delta_used_by_default(self):
        assert scoring.session_accuracy(StatsDelta(3, 4), ReportedScore()) == (75, 3, 4)

    def test_more_complete_report_wins(self):
        assert scoring.session_accuracy(StatsDelta(1, 2), ReportedScore(9, 10)) == (90, 9, 10)

    def test_no_answers(self):
        assert scoring.session_accuracy(StatsDelta(), ReportedScore()) == (0, 0, 0)


class TestXpReward:
    def test_base_and_focus(self):
        # 5 min * 80% / 10 = 40, focus 5 * 0.8 = 4
        assert scoring.xp_reward(5 * MINUTE, 80, 0.8, 70) == 44

    def test_quality_bonus(self):
        assert scoring.xp_reward(5 * MINUTE, 80, 0.8, 85) == 54

    def test_partial_minutes_do_not_count(self):
        assert scoring.xp_reward(59_999, 100, 1.0, 50) == 0


class TestRescore:
    def test_rescore_updates_every_score(self):
        session = new_session("intervals", 0)
        session.engaged_ms = 9 * MINUTE
        session.paused_ms = 30_000
        session.idle_ms = 30_000
        session.stats_delta = StatsDelta(correct=8, total=10)
        session.interactions = Interactions(keystrokes=45, correct_answers=8, wrong_answers=2)

        scoring.rescore(session)

        assert session.focus_score == pytest.approx(0.9)
        assert session.consistency_score == 80
        assert session.engagement_score == 50
        assert session.quality_score == 80
