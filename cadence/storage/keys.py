"""Storage keys for everything the engine persists."""

JOURNAL = "cadence.journal"
DAILY = "cadence.daily"
DIFFICULTY = "cadence.difficulty"
RECOVERY = "cadence.recovery"
STATS = "cadence.stats"
XP = "cadence.xp"
