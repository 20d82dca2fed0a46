"""
Backtest configuration, results and run lifecycle models.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from src.core.enums import RunStatus, RunType, Timeframe
from src.core.exceptions.backtest import InvalidStateTransitionError
from src.core.types import round_amount, round_percentage

from .trade import EquityPoint, Trade


@dataclass
class BacktestConfig:
    """Configuration for a backtest execution."""

    symbol: str
    start_date: datetime
    end_date: datetime
    timeframe: Timeframe = Timeframe.D1
    initial_capital: float | None = None

    def is_valid_date_range(self) -> bool:
        """Validate that end_date is after start_date."""
        return self.end_date > self.start_date

    def is_valid_capital(self) -> bool:
        """Validate the capital override, if any, is positive."""
        return self.initial_capital is None or self.initial_capital > 0

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "symbol": self.symbol,
            "timeframe": self.timeframe.value,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "initial_capital": self.initial_capital,
        }


@dataclass(frozen=True)
class PerformanceMetrics:
    """Summary statistics of a trade ledger and equity curve."""

    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    total_return: float = 0.0
    total_return_percent: float = 0.0
    win_rate: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    profit_factor: float = 0.0
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0
    max_drawdown_percent: float = 0.0
    avg_bars_in_trade: float = 0.0
    final_capital: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert metrics to dictionary."""
        return {
            "total_trades": self.total_trades,
            "winning_trades": self.winning_trades,
            "losing_trades": self.losing_trades,
            "total_return": round_amount(self.total_return),
            "total_return_percent": round_percentage(self.total_return_percent),
            "win_rate": round_percentage(self.win_rate),
            "avg_win": round_amount(self.avg_win),
            "avg_loss": round_amount(self.avg_loss),
            "largest_win": round_amount(self.largest_win),
            "largest_loss": round_amount(self.largest_loss),
            "profit_factor": round_percentage(self.profit_factor),
            "sharpe_ratio": round_percentage(self.sharpe_ratio),
            "max_drawdown": round_amount(self.max_drawdown),
            "max_drawdown_percent": round_percentage(self.max_drawdown_percent),
            "avg_bars_in_trade": round_percentage(self.avg_bars_in_trade),
            "final_capital": round_amount(self.final_capital),
        }


@dataclass
class SimulationResult:
    """Output of a single simulation over a date range."""

    trades: list[Trade]
    equity_curve: list[EquityPoint]
    monthly_returns: dict[str, float]
    starting_capital: float
    final_capital: float
    start_index: int
    bars_simulated: int
    cache_stats: dict[str, int] = field(default_factory=dict)

    @property
    def total_return(self) -> float:
        return self.final_capital - self.starting_capital


@dataclass
class BacktestRun:
    """A backtest or walk-forward run and its lifecycle.

    Status moves PENDING -> RUNNING -> COMPLETED | FAILED; a PENDING run may
    also fail validation directly.
    """

    run_type: RunType
    strategy_name: str
    config: BacktestConfig
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: RunStatus = RunStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    metrics: PerformanceMetrics | None = None
    trades: list[Trade] = field(default_factory=list)
    equity_curve: list[EquityPoint] = field(default_factory=list)
    monthly_returns: dict[str, float] = field(default_factory=dict)
    window_results: list[Any] = field(default_factory=list)
    grid_truncated: bool = False
    total_combinations: int | None = None
    error_message: str | None = None

    def _transition(self, target: RunStatus) -> None:
        if not self.status.can_transition_to(target):
            raise InvalidStateTransitionError(self.status.value, target.value)
        self.status = target

    def mark_running(self) -> None:
        """Move the run from PENDING to RUNNING."""
        self._transition(RunStatus.RUNNING)
        self.started_at = datetime.now(UTC)

    def mark_completed(
        self,
        metrics: PerformanceMetrics,
        trades: list[Trade],
        equity_curve: list[EquityPoint],
        monthly_returns: dict[str, float],
    ) -> None:
        """Move the run to COMPLETED and attach its results."""
        self._transition(RunStatus.COMPLETED)
        self.metrics = metrics
        self.trades = trades
        self.equity_curve = equity_curve
        self.monthly_returns = monthly_returns
        self.completed_at = datetime.now(UTC)

    def mark_failed(self, error_message: str) -> None:
        """Move the run to FAILED and record the reason."""
        self._transition(RunStatus.FAILED)
        self.error_message = error_message
        self.completed_at = datetime.now(UTC)

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert run to dictionary."""
        return {
            "run_id": self.run_id,
            "run_type": self.run_type.value,
            "strategy_name": self.strategy_name,
            "status": self.status.value,
            "config": self.config.to_dict(),
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_message": self.error_message,
            "metrics": self.metrics.to_dict() if self.metrics else None,
            "monthly_returns": {
                month: round_percentage(value) for month, value in self.monthly_returns.items()
            },
            "trades": [trade.to_dict() for trade in self.trades],
            "equity_curve": [point.to_dict() for point in self.equity_curve],
            "window_results": [window.to_dict() for window in self.window_results],
            "grid_truncated": self.grid_truncated,
            "total_combinations": self.total_combinations,
        }
