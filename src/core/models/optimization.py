"""
Walk-forward optimization models.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.core.enums import OptimizationMetric
from src.core.types import round_amount, round_percentage

from .backtest import PerformanceMetrics
from .trade import EquityPoint, Trade


@dataclass(frozen=True)
class ParameterRange:
    """Inclusive ``[min_value, max_value]`` range sampled every ``step``."""

    name: str
    min_value: float
    max_value: float
    step: float

    def is_valid(self) -> bool:
        """Validate step is positive and bounds are ordered and finite."""
        values = (self.min_value, self.max_value, self.step)
        return (
            bool(self.name)
            and all(math.isfinite(v) for v in values)
            and self.step > 0
            and self.min_value <= self.max_value
        )

    @property
    def is_integral(self) -> bool:
        """Check if every bound is a whole number, so grid values stay ints."""
        return all(float(v).is_integer() for v in (self.min_value, self.max_value, self.step))

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "min": self.min_value, "max": self.max_value, "step": self.step}


@dataclass
class WalkForwardConfig:
    """Walk-forward window sizes, parameter ranges and selection metric."""

    train_window_months: int
    test_window_months: int
    parameter_ranges: list[ParameterRange] = field(default_factory=list)
    optimization_metric: OptimizationMetric = OptimizationMetric.SHARPE

    def is_valid_windows(self) -> bool:
        """Validate both window lengths are at least one month."""
        return self.train_window_months >= 1 and self.test_window_months >= 1

    def is_valid_ranges(self) -> bool:
        """Validate every range and that range names are unique."""
        names = [r.name for r in self.parameter_ranges]
        return len(names) == len(set(names)) and all(r.is_valid() for r in self.parameter_ranges)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "train_window_months": self.train_window_months,
            "test_window_months": self.test_window_months,
            "parameter_ranges": [r.to_dict() for r in self.parameter_ranges],
            "optimization_metric": self.optimization_metric.value,
        }


@dataclass(frozen=True)
class WalkForwardWindow:
    """Date bounds of one train/test split; all bounds are inclusive dates."""

    window_number: int
    train_start: datetime
    train_end: datetime
    test_start: datetime
    test_end: datetime


@dataclass(frozen=True)
class CandidateResult:
    """Training-range outcome of one parameter combination."""

    params: dict[str, float]
    metrics: PerformanceMetrics | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.metrics is not None


@dataclass
class OptimizationWindowResult:
    """Selected parameters and out-of-sample performance of one window."""

    window_number: int
    train_start: datetime
    train_end: datetime
    test_start: datetime
    test_end: datetime
    params: dict[str, float]
    train_metric_value: float | None = None
    test_return: float = 0.0
    test_return_percent: float = 0.0
    test_sharpe: float = 0.0
    test_max_drawdown_percent: float = 0.0
    trade_count: int = 0
    candidates_evaluated: int = 0
    candidates_failed: int = 0
    skipped: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert window result to dictionary."""
        return {
            "window_number": self.window_number,
            "train_start": self.train_start.isoformat(),
            "train_end": self.train_end.isoformat(),
            "test_start": self.test_start.isoformat(),
            "test_end": self.test_end.isoformat(),
            "params": self.params,
            "train_metric_value": (
                None
                if self.train_metric_value is None
                else round_percentage(self.train_metric_value)
            ),
            "test_return": round_amount(self.test_return),
            "test_return_percent": round_percentage(self.test_return_percent),
            "test_sharpe": round_percentage(self.test_sharpe),
            "test_max_drawdown_percent": round_percentage(self.test_max_drawdown_percent),
            "trade_count": self.trade_count,
            "candidates_evaluated": self.candidates_evaluated,
            "candidates_failed": self.candidates_failed,
            "skipped": self.skipped,
            "error": self.error,
        }


@dataclass
class WalkForwardResult:
    """Stitched out-of-sample ledger, curve and aggregate metrics."""

    windows: list[OptimizationWindowResult]
    trades: list[Trade]
    equity_curve: list[EquityPoint]
    metrics: PerformanceMetrics
    monthly_returns: dict[str, float]
    initial_capital: float
    final_capital: float
    grid_truncated: bool = False
    total_combinations: int = 0
