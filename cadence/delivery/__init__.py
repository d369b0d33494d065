"""
Practice Telemetry.

Components:
- SessionTracker: Session lifecycle, time accounting and journaling
- IdleDetector: Engaged / idle-warned / idle classification
- EngagementClock: Fixed-interval ticker
- PracticeAnalytics: Journal, daily rollups, weekly stats
- RecoveryJournal: Crash-recovery snapshots
- scoring: Focus, consistency, engagement, quality and XP
"""

from . import scoring
from .analytics import PracticeAnalytics
from .idle import IdleDetector
from .models import IdleState, Interactions, JournalEntry, Session, StatsDelta, TrackerConfig
from .recovery import RecoveryJournal
from .ticker import EngagementClock
from .tracker import SessionTracker

__all__ = [
    # Lifecycle
    "SessionTracker",
    "EngagementClock",
    "IdleDetector",
    "IdleState",
    # Models
    "Session",
    "JournalEntry",
    "Interactions",
    "StatsDelta",
    "TrackerConfig",
    # Persistence & analysis
    "PracticeAnalytics",
    "RecoveryJournal",
    "scoring",
]
