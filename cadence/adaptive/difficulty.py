"""
Difficulty Adaptation Engine.

Maintains a performance record per skill and turns noisy signals into a
stable integer level (1..5):

    level = round(w_g·G + w_s·S + w_d·D)

Where:
- G = global level derived from lifetime XP
- S = the skill's adaptively tracked level
- D = backlog level implied by the scheduler's due ratio (more overdue
      items => easier)

Skill levels move at most one step per evaluation and only once a
stability window of samples exists, so sparse or noisy data cannot make
the level oscillate.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import asdict, dataclass, field, fields
from typing import Any

from loguru import logger

from cadence.core.events import EventEmitter
from cadence.core.ports import KeyValueStore, SchedulingCollaborator, TimeSource
from cadence.core.values import safe_num
from cadence.storage import keys

MIN_LEVEL = 1
MAX_LEVEL = 5
NEUTRAL_DUE_LEVEL = 3

# =============================================================================
# Level Table
# =============================================================================


@dataclass(frozen=True)
class DifficultyLevel:
    """Static pacing parameters handed to question generators."""

    id: int
    name: str
    speed: float
    accuracy_target: int
    items: int
    tempo: int


DIFFICULTY_LEVELS: tuple[DifficultyLevel, ...] = (
    DifficultyLevel(1, "BEGINNER", speed=0.5, accuracy_target=70, items=4, tempo=60),
    DifficultyLevel(2, "INTERMEDIATE", speed=0.75, accuracy_target=80, items=8, tempo=90),
    DifficultyLevel(3, "ADVANCED", speed=1.0, accuracy_target=85, items=12, tempo=120),
    DifficultyLevel(4, "EXPERT", speed=1.25, accuracy_target=90, items=16, tempo=144),
    DifficultyLevel(5, "MASTER", speed=1.5, accuracy_target=95, items=20, tempo=180),
)

# Lifetime XP needed for global levels 1..5
XP_LEVEL_THRESHOLDS = (0, 50, 150, 300, 500)


def clamp_level(level: float) -> int:
    return int(max(MIN_LEVEL, min(MAX_LEVEL, level)))


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def level_config(level: int) -> DifficultyLevel:
    return DIFFICULTY_LEVELS[clamp_level(level) - 1]


def level_for_xp(xp: Any) -> int:
    """Global level (1..5) for a lifetime XP total."""
    total = safe_num(xp, 0.0)
    level = MIN_LEVEL
    for index, threshold in enumerate(XP_LEVEL_THRESHOLDS, start=1):
        if total >= threshold:
            level = index
    return clamp_level(level)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class AdaptationRules:
    """Thresholds and blend weights for level adaptation."""

    stability_window: int = 5
    history_size: int = 10
    promote_accuracy: float = 90.0
    promote_streak: int = 5
    demote_accuracy: float = 65.0
    demote_lapses: int = 2
    max_level_change: int = 1
    weight_global: float = 0.4
    weight_skill: float = 0.4
    weight_due: float = 0.2

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "AdaptationRules":
        """Build from ``Settings.get_difficulty_config()``."""
        weights = config.get("weights", {})
        promote = config.get("promote", {})
        demote = config.get("demote", {})
        return cls(
            stability_window=config.get("stability_window", cls.stability_window),
            history_size=config.get("history_size", cls.history_size),
            promote_accuracy=promote.get("accuracy", cls.promote_accuracy),
            promote_streak=promote.get("streak", cls.promote_streak),
            demote_accuracy=demote.get("accuracy", cls.demote_accuracy),
            demote_lapses=demote.get("lapses", cls.demote_lapses),
            weight_global=weights.get("global", cls.weight_global),
            weight_skill=weights.get("skill", cls.weight_skill),
            weight_due=weights.get("due", cls.weight_due),
        )


@dataclass
class SkillPerformance:
    """Performance history for one skill."""

    skill: str
    level: int = MIN_LEVEL
    sessions: int = 0
    total_accuracy: float = 0.0
    recent_accuracy: float = 0.0
    accuracy_history: list[float] = field(default_factory=list)
    speed_history: list[float] = field(default_factory=list)
    streak: int = 0
    lapses: int = 0
    last_session: int | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, skill: str, data: Any) -> "SkillPerformance":
        """
        Parse a stored record.

        Raises:
            TypeError, ValueError: If the record is not a usable mapping
        """
        if not isinstance(data, dict):
            raise TypeError(f"record for '{skill}' is {type(data).__name__}, expected dict")
        names = {f.name for f in fields(cls)}
        perf = cls(**{k: v for k, v in data.items() if k in names and k != "skill"}, skill=skill)
        if not isinstance(perf.accuracy_history, list) or not isinstance(perf.speed_history, list):
            raise TypeError(f"history for '{skill}' is not a list")
        perf.level = clamp_level(int(safe_num(perf.level, MIN_LEVEL)))
        perf.sessions = int(safe_num(perf.sessions))
        perf.total_accuracy = safe_num(perf.total_accuracy)
        perf.recent_accuracy = safe_num(perf.recent_accuracy)
        perf.accuracy_history = [safe_num(v) for v in perf.accuracy_history]
        perf.speed_history = [safe_num(v) for v in perf.speed_history]
        perf.streak = int(safe_num(perf.streak))
        perf.lapses = int(safe_num(perf.lapses))
        return perf


@dataclass
class Difficulty:
    """Blended level plus everything a question generator needs."""

    level: int
    config: DifficultyLevel
    recommendation: str
    performance: SkillPerformance

    def to_dict(self) -> dict:
        return {
            "level": self.level,
            "config": asdict(self.config),
            "recommendation": self.recommendation,
            "performance": self.performance.to_dict(),
        }


@dataclass
class Recommendation:
    """A suggested next step for one skill."""

    skill: str
    action: str  # 'focus' | 'advance'
    reason: str
    priority: str  # 'high' | 'medium'
    level: int


PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}


# =============================================================================
# Difficulty Adapter
# =============================================================================


class DifficultyAdapter:
    """
    Per-skill difficulty tracking.

    Records are loaded lazily from the store on first use, created at the
    global level on first outcome, and persisted after every update.
    """

    def __init__(
        self,
        store: KeyValueStore,
        scheduler: SchedulingCollaborator | None = None,
        emitter: EventEmitter | None = None,
        rules: AdaptationRules | None = None,
        time_source: TimeSource | None = None,
    ):
        self.store = store
        self.scheduler = scheduler
        self.emitter = emitter or EventEmitter()
        self.rules = rules or AdaptationRules()
        self._now = time_source or (lambda: int(time.time() * 1000))

        self.global_level = MIN_LEVEL
        self._raw: dict[str, Any] = {}
        self._performance: dict[str, SkillPerformance] = {}
        self._loaded = False
        self._dirty = False
        self._lock = threading.RLock()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def init(self) -> None:
        """Load stored records and derive the global level from lifetime XP."""
        with self._lock:
            saved = self.store.get(keys.DIFFICULTY, {})
            if not isinstance(saved, dict):
                logger.warning("Difficulty records are not a map, reinitializing")
                saved = {}
            self._raw = saved
            self._performance = {}
            self.global_level = level_for_xp(self.store.get(keys.XP, 0))
            self._loaded = True
            logger.info(f"DifficultyAdapter initialized: global level {self.global_level}, {len(saved)} skills")

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.init()

    def set_global_level(self, level: int) -> None:
        self._ensure_loaded()
        self.global_level = clamp_level(level)

    @property
    def skills(self) -> list[str]:
        self._ensure_loaded()
        return sorted(set(self._raw) | set(self._performance))

    # =========================================================================
    # Queries
    # =========================================================================

    def get_performance(self, skill: str) -> SkillPerformance:
        """
        Get the performance record for a skill.

        Missing or corrupt records are reinitialized at the global level.
        """
        with self._lock:
            self._ensure_loaded()
            perf = self._performance.get(skill)
            if perf is not None:
                return perf

            raw = self._raw.get(skill)
            if raw is not None:
                try:
                    perf = SkillPerformance.from_dict(skill, raw)
                except (TypeError, ValueError) as exc:
                    logger.warning(f"Corrupt difficulty record for '{skill}' ({exc}), reinitializing")
                    perf = None

            if perf is None:
                perf = SkillPerformance(skill=skill, level=self.global_level)

            self._performance[skill] = perf
            return perf

    def get_difficulty(self, skill: str) -> Difficulty:
        """
        Blend the global, skill and backlog levels for a skill.

        Returns:
            Difficulty with level, static config and a recommendation
        """
        perf = self.get_performance(skill)
        rules = self.rules

        blended = (
            self.global_level * rules.weight_global
            + perf.level * rules.weight_skill
            + self.due_level(skill) * rules.weight_due
        )
        weight_sum = rules.weight_global + rules.weight_skill + rules.weight_due
        if weight_sum > 0 and not math.isclose(weight_sum, 1.0):
            blended /= weight_sum

        level = clamp_level(round_half_up(blended))
        return Difficulty(
            level=level,
            config=level_config(level),
            recommendation=self.recommendation_for(level),
            performance=perf,
        )

    def due_level(self, skill: str) -> int:
        """
        Level implied by the spaced-repetition backlog.

        A due ratio of 0 maps to 5; each third of the items overdue removes
        a level. Neutral (3) when the scheduler is absent or fails.
        """
        if self.scheduler is None:
            return NEUTRAL_DUE_LEVEL
        try:
            ratio = safe_num(self.scheduler.due_ratio(skill), fallback=-1.0)
        except Exception as exc:
            logger.warning(f"Scheduler due_ratio failed for '{skill}': {exc}")
            return NEUTRAL_DUE_LEVEL
        if ratio < 0:
            return NEUTRAL_DUE_LEVEL
        ratio = min(1.0, ratio)
        return clamp_level(MAX_LEVEL - round_half_up(ratio * 3))

    def recommendation_for(self, level: int) -> str:
        level = clamp_level(level)
        name = level_config(level).name
        if level < 3:
            return f"Master {name} before advancing"
        if level < MAX_LEVEL:
            nxt = level_config(level + 1)
            return f"Ready for {nxt.name} ({nxt.tempo} BPM)"
        return "Mastery achieved!"

    # =========================================================================
    # Updates
    # =========================================================================

    def record_performance(
        self,
        skill: str,
        accuracy: float,
        speed: float,
        streak: int,
        metadata: dict | None = None,
    ) -> int:
        """
        Record an outcome and adapt the skill level.

        Args:
            skill: Skill identifier
            accuracy: Percent correct (0..100)
            speed: Normalized speed factor, higher is faster
            streak: Current consecutive-correct streak
            metadata: Optional extras; an integer ``lapses`` overrides the lapse count

        Returns:
            The skill's level after adaptation
        """
        with self._lock:
            perf = self.get_performance(skill)
            acc = max(0.0, min(100.0, safe_num(accuracy)))
            spd = safe_num(speed)
            size = self.rules.history_size

            perf.sessions += 1
            perf.total_accuracy = (perf.total_accuracy * (perf.sessions - 1) + acc) / perf.sessions
            perf.recent_accuracy = acc
            perf.accuracy_history = (perf.accuracy_history + [acc])[-size:]
            perf.speed_history = (perf.speed_history + [spd])[-size:]
            perf.streak = int(max(0, min(999, safe_num(streak))))
            perf.last_session = self._now()

            meta = metadata if isinstance(metadata, dict) else {}
            lapses = meta.get("lapses")
            if isinstance(lapses, (int, float)) and math.isfinite(lapses):
                perf.lapses = int(max(0, min(999, lapses)))

            previous = perf.level
            perf.level = self.calculate_module_level(perf)
            if perf.level != previous:
                logger.info(f"Skill '{skill}' level {previous} -> {perf.level}")

            self.persist()

        self.emitter.track(
            "difficulty",
            "adapt",
            {
                "skill": skill,
                "level": perf.level,
                "previous_level": previous,
                "accuracy": acc,
                "speed": spd,
                "streak": perf.streak,
                "recommendation": self.recommendation_for(perf.level),
                "metadata": meta,
            },
        )
        return perf.level

    def calculate_module_level(self, perf: SkillPerformance) -> int:
        """
        Adapt a level from the trailing accuracy window.

        Unchanged until the stability window is filled; then promote on
        high mean accuracy with a streak, demote on low mean accuracy or
        repeated lapses, never more than one step.
        """
        rules = self.rules
        current = clamp_level(perf.level)
        history = perf.accuracy_history

        if len(history) < rules.stability_window:
            return current

        window = history[-rules.stability_window :]
        mean = sum(window) / len(window)

        if mean >= rules.promote_accuracy and perf.streak >= rules.promote_streak:
            return clamp_level(current + rules.max_level_change)

        if mean <= rules.demote_accuracy or perf.lapses >= rules.demote_lapses:
            return clamp_level(current - rules.max_level_change)

        return current

    def reset_skill(self, skill: str) -> bool:
        """Forget a skill's record. Returns True if one existed."""
        with self._lock:
            self._ensure_loaded()
            existed = skill in self._performance or skill in self._raw
            self._performance.pop(skill, None)
            self._raw.pop(skill, None)
            self.persist()
        self.emitter.track("difficulty", "reset_skill", {"skill": skill})
        return existed

    def persist(self) -> bool:
        """
        Write all records to the store.

        A failed write leaves the adapter dirty; the next persist retries it.
        """
        with self._lock:
            data = dict(self._raw)
            data.update({skill: perf.to_dict() for skill, perf in self._performance.items()})
            ok = self.store.set(keys.DIFFICULTY, data)
            if ok:
                self._raw = data
                self._dirty = False
            else:
                self._dirty = True
                logger.warning("Difficulty records not persisted; will retry on next update")
            return ok

    @property
    def dirty(self) -> bool:
        return self._dirty

    # =========================================================================
    # Analysis
    # =========================================================================

    def get_recommendations(self) -> list[Recommendation]:
        """
        Scan all skills for ones to focus on or advance.

        Returns:
            Recommendations, high priority first, then by skill name
        """
        recs: list[Recommendation] = []
        for skill in self.skills:
            perf = self.get_performance(skill)
            recent = perf.recent_accuracy
            level = clamp_level(perf.level)

            if recent < 70 and perf.sessions >= 3:
                recs.append(
                    Recommendation(
                        skill=skill,
                        action="focus",
                        reason=f"Struggling ({round(recent)}%)",
                        priority="high",
                        level=level,
                    )
                )
            elif recent > 90 and level < MAX_LEVEL:
                nxt = level_config(level + 1)
                recs.append(
                    Recommendation(
                        skill=skill,
                        action="advance",
                        reason=f"Ready for {nxt.name} ({nxt.tempo} BPM)",
                        priority="medium",
                        level=level,
                    )
                )

        return sorted(recs, key=lambda r: (PRIORITY_ORDER.get(r.priority, 9), r.skill))

    def get_global_stats(self) -> dict[str, Any]:
        records = [self.get_performance(skill) for skill in self.skills]
        if not records:
            return {"avg_level": float(MIN_LEVEL), "skills_at_max": 0, "struggling": 0, "skills": 0}
        return {
            "avg_level": round(sum(p.level for p in records) / len(records), 2),
            "skills_at_max": sum(1 for p in records if p.level == MAX_LEVEL),
            "struggling": sum(1 for p in records if p.sessions and p.recent_accuracy < 70),
            "skills": len(records),
        }

    def get_adaptive_config(self) -> dict[str, list[dict]]:
        """Recommendations in the router-friendly ``weak_areas`` shape."""
        return {
            "weak_areas": [
                {"skill": r.skill, "reason": r.reason, "priority": r.priority, "level": r.level}
                for r in self.get_recommendations()
            ]
        }
