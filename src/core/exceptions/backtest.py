"""
Custom exception hierarchy for the backtesting engine.

This module defines domain-specific exceptions for better error handling.
"""


class BacktestException(Exception):
    """Base exception for all backtesting-related errors."""

    pass


class ValidationError(BacktestException):
    """Raised when a strategy, configuration or definition is malformed."""

    pass


class DataError(BacktestException):
    """Raised when bar data is missing or insufficient for a run or window."""

    pass


class ComputationError(BacktestException):
    """Raised when an indicator calculation fails."""

    def __init__(self, indicator: str, reason: str):
        self.indicator = indicator
        self.reason = reason
        super().__init__(f"Indicator computation failed for {indicator}: {reason}")


class OptimizationError(BacktestException):
    """Raised when a walk-forward training search cannot select parameters."""

    pass


class OptimizationCancelledError(OptimizationError):
    """Raised when a walk-forward run is cancelled at a window boundary."""

    def __init__(self, completed_windows: int, total_windows: int):
        self.completed_windows = completed_windows
        self.total_windows = total_windows
        super().__init__(
            f"Walk-forward optimization cancelled after {completed_windows} "
            f"of {total_windows} windows"
        )


class InvalidStateTransitionError(BacktestException):
    """Raised when a run is moved to a state its lifecycle does not allow."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Invalid run state transition: {current} -> {target}")


class TradeStateError(BacktestException):
    """Raised when a trade is closed twice or closed before it was opened."""

    pass
