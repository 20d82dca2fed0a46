"""
Backtest run lifecycle enumerations.
"""

from enum import StrEnum


class RunStatus(StrEnum):
    """
    Backtest run states.

    PENDING -> RUNNING -> {COMPLETED, FAILED}
    """

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        """Check if no further transitions are allowed."""
        return self in [self.COMPLETED, self.FAILED]

    def can_transition_to(self, target: "RunStatus") -> bool:
        """Check if moving from this state to target is allowed."""
        allowed = {
            RunStatus.PENDING: {RunStatus.RUNNING, RunStatus.FAILED},
            RunStatus.RUNNING: {RunStatus.COMPLETED, RunStatus.FAILED},
            RunStatus.COMPLETED: set(),
            RunStatus.FAILED: set(),
        }
        return target in allowed[self]


class RunType(StrEnum):
    """Kinds of backtest runs."""

    BACKTEST = "BACKTEST"
    WALK_FORWARD = "WALK_FORWARD"
