"""
Adaptive Difficulty.

Components:
- DifficultyAdapter: per-skill level tracking and blended difficulty
- AdaptationRules: promotion/demotion thresholds and blend weights
- SkillPerformance: persisted per-skill history
"""
from cadence.adaptive.difficulty import (
    DIFFICULTY_LEVELS,
    MAX_LEVEL,
    MIN_LEVEL,
    AdaptationRules,
    Difficulty,
    DifficultyAdapter,
    DifficultyLevel,
    Recommendation,
    SkillPerformance,
    level_config,
    level_for_xp,
)

__all__ = [
    "DifficultyAdapter",
    "AdaptationRules",
    "Difficulty",
    "DifficultyLevel",
    "Recommendation",
    "SkillPerformance",
    "DIFFICULTY_LEVELS",
    "MIN_LEVEL",
    "MAX_LEVEL",
    "level_config",
    "level_for_xp",
]
