"""
Performance metrics calculation.

Pure functions of a trade ledger, an equity curve and the starting capital.
Degenerate inputs (no trades, flat or one-point curves) map to fixed
conventions instead of NaN or infinity.
"""

import math
from collections.abc import Sequence

import numpy as np
import pandas as pd

from src.core.constants import PROFIT_FACTOR_NO_LOSSES, TRADING_DAYS_PER_YEAR
from src.core.models.backtest import PerformanceMetrics
from src.core.models.trade import EquityPoint, Trade
from src.core.types import percent_change, safe_divide


class PerformanceCalculator:
    """Computes PerformanceMetrics and monthly returns."""

    @classmethod
    def calculate(
        cls,
        trades: Sequence[Trade],
        equity_curve: Sequence[EquityPoint],
        initial_capital: float,
    ) -> PerformanceMetrics:
        """
        Calculate performance metrics.

        Args:
            trades: Closed trades in chronological order
            equity_curve: One equity point per simulated bar
            initial_capital: Capital at the start of the period

        Returns:
            PerformanceMetrics; never raises on empty input
        """
        equity = np.array([point.equity for point in equity_curve], dtype=float)
        final_capital = float(equity[-1]) if len(equity) else initial_capital
        total_return = final_capital - initial_capital

        pnls = np.array([trade.pnl for trade in trades], dtype=float)
        wins = pnls[pnls > 0]
        losses = pnls[pnls < 0]
        max_drawdown, max_drawdown_percent = cls.max_drawdown(equity, initial_capital)

        return PerformanceMetrics(
            total_trades=len(pnls),
            winning_trades=len(wins),
            losing_trades=len(losses),
            total_return=total_return,
            total_return_percent=safe_divide(total_return, initial_capital) * 100,
            win_rate=safe_divide(len(wins), len(pnls)),
            avg_win=float(wins.mean()) if len(wins) else 0.0,
            avg_loss=float(losses.mean()) if len(losses) else 0.0,
            largest_win=float(wins.max()) if len(wins) else 0.0,
            largest_loss=float(losses.min()) if len(losses) else 0.0,
            profit_factor=cls.profit_factor(float(wins.sum()), float(losses.sum())),
            sharpe_ratio=cls.sharpe_ratio(equity),
            max_drawdown=max_drawdown,
            max_drawdown_percent=max_drawdown_percent,
            avg_bars_in_trade=(
                float(np.mean([trade.bars_in_trade for trade in trades])) if trades else 0.0
            ),
            final_capital=final_capital,
        )

    @staticmethod
    def profit_factor(gross_wins: float, gross_losses: float) -> float:
        """Gross wins over absolute gross losses.

        0 when there are no wins; PROFIT_FACTOR_NO_LOSSES when there are wins
        and no losses.
        """
        if gross_wins <= 0:
            return 0.0
        if gross_losses == 0:
            return PROFIT_FACTOR_NO_LOSSES
        return gross_wins / abs(gross_losses)

    @staticmethod
    def sharpe_ratio(equity: np.ndarray) -> float:
        """Annualized Sharpe ratio of bar-to-bar equity changes.

        Uses the population standard deviation and a zero risk-free rate.
        """
        if len(equity) < 3:
            return 0.0
        previous = equity[:-1]
        with np.errstate(divide="ignore", invalid="ignore"):
            returns = np.diff(equity) / previous * 100
        returns = returns[np.isfinite(returns)]
        if len(returns) < 2:
            return 0.0

        std = float(np.std(returns))
        if std == 0 or not math.isfinite(std):
            return 0.0
        return float(np.mean(returns)) / std * math.sqrt(TRADING_DAYS_PER_YEAR)

    @staticmethod
    def max_drawdown(equity: np.ndarray, initial_capital: float) -> tuple[float, float]:
        """Largest peak-to-trough decline, in currency and percent of the peak.

        The running peak starts at the initial capital.
        """
        if len(equity) == 0:
            return 0.0, 0.0
        peaks = np.maximum.accumulate(np.concatenate(([initial_capital], equity)))[1:]
        drawdowns = peaks - equity
        with np.errstate(divide="ignore", invalid="ignore"):
            drawdown_percents = np.where(peaks > 0, drawdowns / peaks * 100, 0.0)
        return float(drawdowns.max()), float(drawdown_percents.max())

    @staticmethod
    def monthly_returns(
        equity_curve: Sequence[EquityPoint], starting_capital: float
    ) -> dict[str, float]:
        """Percent change of month-end equity over the previous month-end.

        The first month is measured against the starting capital. Keys are
        ``YYYY-MM`` in chronological order.
        """
        if not equity_curve:
            return {}

        timestamps = pd.to_datetime([point.timestamp for point in equity_curve])
        if timestamps.tz is not None:
            timestamps = timestamps.tz_localize(None)
        equity = pd.Series([point.equity for point in equity_curve], index=timestamps)

        month_end = equity.groupby(equity.index.to_period("M")).last()
        previous = month_end.shift(1).fillna(starting_capital)
        return {
            str(period): percent_change(float(start), float(end))
            for period, start, end in zip(month_end.index, previous, month_end, strict=True)
        }
