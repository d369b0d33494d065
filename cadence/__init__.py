"""
Cadence: adaptive practice telemetry and leveling engine.

Tracks what a learner is practicing, how much of that time is actually
engaged, scores each session, and adapts a per-skill difficulty level.
"""

from cadence.engine import PracticeEngine

__version__ = "1.0.0"

__all__ = ["PracticeEngine", "__version__"]
