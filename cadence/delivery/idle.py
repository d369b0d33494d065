"""
Idle and Focus Detection.

Tracks the instant of the last recognized input and classifies the learner
as engaged, warned (soft nudge threshold crossed) or idle (full threshold
crossed). Each threshold fires once per idle episode; any input ends the
episode.
"""

from __future__ import annotations

from dataclasses import dataclass

from cadence.delivery.models import IdleState


@dataclass
class IdleTransition:
    """Result of an evaluation: the current state and what changed."""

    state: IdleState
    crossed: IdleState | None = None
    idle_for_ms: int = 0


class IdleDetector:
    """
    Idle state machine.

    engaged -> warned (idle_warning_ms) -> idle (idle_timeout_ms) -> engaged (input)
    """

    def __init__(self, idle_warning_ms: int, idle_timeout_ms: int, now_ms: int = 0):
        if idle_warning_ms > idle_timeout_ms:
            idle_warning_ms = idle_timeout_ms
        self.idle_warning_ms = idle_warning_ms
        self.idle_timeout_ms = idle_timeout_ms
        self.last_active = now_ms
        self.state = IdleState.ENGAGED

    def touch(self, now_ms: int) -> IdleState | None:
        """
        Record input.

        Returns:
            The state that was left if the learner was warned or idle, else None
        """
        self.last_active = now_ms
        previous = self.state
        self.state = IdleState.ENGAGED
        return previous if previous is not IdleState.ENGAGED else None

    def idle_for(self, now_ms: int) -> int:
        return max(0, now_ms - self.last_active)

    def evaluate(self, now_ms: int) -> IdleTransition:
        idle_for = self.idle_for(now_ms)

        if idle_for >= self.idle_timeout_ms:
            if self.state is not IdleState.IDLE:
                self.state = IdleState.IDLE
                return IdleTransition(IdleState.IDLE, IdleState.IDLE, idle_for)
            return IdleTransition(IdleState.IDLE, None, idle_for)

        if idle_for >= self.idle_warning_ms and self.state is IdleState.ENGAGED:
            self.state = IdleState.WARNED
            return IdleTransition(IdleState.WARNED, IdleState.WARNED, idle_for)

        return IdleTransition(self.state, None, idle_for)

    @property
    def is_idle(self) -> bool:
        return self.state is IdleState.IDLE
