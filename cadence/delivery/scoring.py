"""
Session Quality Scoring.

Derives per-session scores from timing buckets and interaction counts:
- Focus: share of elapsed time that was engaged
- Consistency: banded accuracy, neutral until enough answers exist
- Engagement: interaction density against an ideal rate
- Quality: weighted blend of the above plus accuracy

quality = 0.4·accuracy + 0.3·focus·100 + 0.2·consistency + 0.1·engagement
"""

from __future__ import annotations

from cadence.delivery.models import Interactions, ReportedScore, Session, StatsDelta

# Fewer scored answers than this and consistency stays neutral
MIN_SCORED_FOR_CONSISTENCY = 10
NEUTRAL_CONSISTENCY = 50

# (accuracy floor, score), checked top-down
CONSISTENCY_BANDS = ((90, 100), (75, 80), (60, 60))
CONSISTENCY_FLOOR = 40

IDEAL_INTERACTIONS_PER_MINUTE = 10.0
AUDIO_PLAY_WEIGHT = 2

QUALITY_WEIGHTS = {
    "accuracy": 0.4,
    "focus": 0.3,
    "consistency": 0.2,
    "engagement": 0.1,
}

QUALITY_BONUS_THRESHOLD = 80
QUALITY_BONUS_XP = 10


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def focus_score(engaged_ms: int, paused_ms: int, idle_ms: int) -> float:
    """Engaged share of elapsed time, 0.0 when nothing has elapsed."""
    total = engaged_ms + paused_ms + idle_ms
    if total <= 0:
        return 0.0
    return clamp(engaged_ms / total, 0.0, 1.0)


def consistency_score(accuracy: float, scored: int) -> int:
    """Step function of accuracy; neutral on insufficient data."""
    if scored < MIN_SCORED_FOR_CONSISTENCY:
        return NEUTRAL_CONSISTENCY
    for floor, score in CONSISTENCY_BANDS:
        if accuracy >= floor:
            return score
    return CONSISTENCY_FLOOR


def engagement_score(interactions: Interactions, engaged_ms: int) -> int:
    """Interaction density normalized to 0..100."""
    minutes = engaged_ms / 60_000
    if minutes <= 0:
        return 0
    weighted = (
        interactions.keystrokes
        + interactions.clicks
        + interactions.scrolls
        + interactions.audio_plays * AUDIO_PLAY_WEIGHT
    )
    per_minute = weighted / minutes
    return round(clamp(per_minute / IDEAL_INTERACTIONS_PER_MINUTE * 100, 0, 100))


def quality_score(accuracy: float, focus: float, consistency: float, engagement: float) -> int:
    w = QUALITY_WEIGHTS
    return round(
        accuracy * w["accuracy"]
        + focus * 100 * w["focus"]
        + consistency * w["consistency"]
        + engagement * w["engagement"]
    )


def session_accuracy(delta: StatsDelta, reported: ReportedScore) -> tuple[int, int, int]:
    """
    Pick the more complete accuracy source.

    The stats delta and the presentation layer's reported score can disagree;
    whichever saw more answers wins.

    Returns:
        (accuracy percent, correct, total)
    """
    if reported.total > delta.total:
        correct, total = reported.score, reported.total
    else:
        correct, total = delta.correct, delta.total
    if total <= 0:
        return 0, 0, 0
    return round(clamp(correct / total, 0.0, 1.0) * 100), correct, total


def xp_reward(engaged_ms: int, accuracy: float, focus: float, quality: int) -> int:
    """
    XP for a finished session.

    Base of 1-10 XP per engaged minute scaled by accuracy, a focus bonus of up
    to 1 XP per minute, and a flat bonus for high-quality sessions.
    """
    minutes = engaged_ms // 60_000
    xp = minutes * accuracy / 10 + minutes * focus
    if quality >= QUALITY_BONUS_THRESHOLD:
        xp += QUALITY_BONUS_XP
    return max(0, round(xp))


def rescore(session: Session) -> None:
    """Recompute all derived scores on a session in place."""
    accuracy, _, total = session_accuracy(session.stats_delta, session.reported_score)
    scored = max(total, session.interactions.scored)

    session.focus_score = focus_score(session.engaged_ms, session.paused_ms, session.idle_ms)
    session.consistency_score = consistency_score(accuracy, scored)
    session.engagement_score = engagement_score(session.interactions, session.engaged_ms)
    session.quality_score = quality_score(
        accuracy,
        session.focus_score,
        session.consistency_score,
        session.engagement_score,
    )
