"""
Core Module - notification channel and collaborator interfaces.

Components:
- events: EventEmitter and the notification names it carries
- ports: Protocols for the store, detector, scheduler and reward collaborators
- values: Coercion of values read back from the store
"""

from cadence.core.events import (
    ACTIVITY,
    ALL,
    EVENT,
    SESSION_END,
    SESSION_START,
    EventEmitter,
)
from cadence.core.ports import (
    ActivityDetector,
    Dispatcher,
    KeyValueStore,
    RewardCollaborator,
    SchedulingCollaborator,
    TimeSource,
)

__all__ = [
    "EventEmitter",
    "SESSION_START",
    "SESSION_END",
    "ACTIVITY",
    "EVENT",
    "ALL",
    "ActivityDetector",
    "Dispatcher",
    "KeyValueStore",
    "RewardCollaborator",
    "SchedulingCollaborator",
    "TimeSource",
]
