"""
Bar-by-bar simulation loop.

Replays a bar frame against a strategy over a date range. History before
the range only feeds indicator warm-up. The run is a pure function of
(strategy, bars, range, starting capital).
"""

from datetime import datetime

import numpy as np
import pandas as pd
from loguru import logger

from src.core.enums import OrderRejection
from src.core.exceptions.backtest import DataError
from src.core.models.backtest import SimulationResult
from src.core.models.bar import Bar
from src.core.models.strategy import Strategy
from src.core.models.trade import EquityPoint
from src.core.utils.decorators import log_operation
from src.infrastructure.data.bar_frames import date_range_mask
from src.infrastructure.data.indicator_cache import IndicatorCache
from src.infrastructure.data.ohlcv_validator import BAR_COLUMNS
from src.infrastructure.data.technical_indicators import IndicatorEvaluator, indicator_warmup

from .metrics import PerformanceCalculator
from .position_manager import PositionManager
from .rule_evaluator import RuleEvaluator


def strategy_warmup(strategy: Strategy) -> int:
    """Largest warm-up among the indicators a strategy references."""
    return max((indicator_warmup(spec) for spec in strategy.indicator_specs()), default=0)


class BacktestSimulator:
    """
    Deterministic single-symbol backtest simulator.

    Each run owns its indicator cache, position manager and ledger, so one
    simulator per thread can share the same read-only bar frame.
    """

    def __init__(self, strategy: Strategy, bars: pd.DataFrame, symbol: str = "") -> None:
        """
        Args:
            strategy: Strategy to replay
            bars: OHLCV frame sorted ascending by timestamp
            symbol: Symbol recorded on trades
        """
        self.strategy = strategy
        self.bars = bars
        self.symbol = symbol

    @log_operation
    def run(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        initial_capital: float | None = None,
    ) -> SimulationResult:
        """
        Simulate the strategy between ``start`` and ``end`` (inclusive dates).

        For each bar: exits first; then, on every bar but the last, an entry
        when capacity remains and the entry rule holds; on the last bar all
        trades are force-closed. Equity is marked at the bar close afterwards.

        Raises:
            DataError: If there are no bars, no bars in range, or the
                indicators do not finish warming up inside the range
        """
        if self.bars.empty:
            raise DataError("No bar data available for simulation")
        missing_columns = set(BAR_COLUMNS) - set(self.bars.columns)
        if missing_columns:
            raise DataError(f"Bar data missing columns: {sorted(missing_columns)}")

        in_range = np.flatnonzero(date_range_mask(self.bars["timestamp"], start, end).to_numpy())
        if len(in_range) == 0:
            raise DataError(f"No bars for {self.symbol or 'symbol'} between {start} and {end}")

        first_index, last_index = int(in_range[0]), int(in_range[-1])
        warmup = strategy_warmup(self.strategy)
        start_index = max(first_index, warmup)
        if start_index > last_index:
            raise DataError(
                f"Insufficient data for indicator warm-up: need {warmup} prior bars, "
                f"range ends at bar {last_index}"
            )
        if start_index > first_index:
            logger.warning(
                f"Indicator warm-up of {warmup} bars delays the start of {self.strategy.name} "
                f"to {self.bars['timestamp'].iloc[start_index]}; "
                f"{start_index - first_index} in-range bars skipped"
            )

        frame = self.bars.iloc[: last_index + 1].reset_index(drop=True)
        cache = IndicatorCache()
        indicators = IndicatorEvaluator(frame, cache)
        rules = RuleEvaluator(indicators)
        manager = PositionManager(self.strategy, self.symbol, rules, initial_capital)
        starting_capital = manager.initial_capital

        timestamps = list(frame["timestamp"])
        opens, highs, lows, closes, volumes = (
            frame[col].to_numpy(dtype=float) for col in ("open", "high", "low", "close", "volume")
        )

        equity_curve: list[EquityPoint] = []
        for index in range(start_index, last_index + 1):
            bar = Bar(
                index,
                timestamps[index],
                float(opens[index]),
                float(highs[index]),
                float(lows[index]),
                float(closes[index]),
                float(volumes[index]),
            )

            manager.check_exits_and_close(bar)

            if index == last_index:
                manager.force_close_all(bar)
            elif manager.has_capacity and rules.evaluate(self.strategy.entry_rules, index):
                outcome = manager.try_open(bar)
                if isinstance(outcome, OrderRejection):
                    logger.debug(f"Entry signal on {bar.timestamp} rejected: {outcome.value}")

            equity_curve.append(EquityPoint(bar.timestamp, manager.mark_to_market(bar.close)))

        logger.debug(
            f"Indicator cache for {self.strategy.name}: {cache.get_stats()}, "
            f"hit rate {cache.hit_rate:.1f}%"
        )
        if indicators.failure_counts:
            logger.warning(f"Indicator failures during simulation: {indicators.failure_counts}")

        trades = sorted(manager.closed_trades, key=lambda trade: trade.trade_number)
        return SimulationResult(
            trades=trades,
            equity_curve=equity_curve,
            monthly_returns=PerformanceCalculator.monthly_returns(equity_curve, starting_capital),
            starting_capital=starting_capital,
            final_capital=equity_curve[-1].equity,
            start_index=start_index,
            bars_simulated=len(equity_curve),
            cache_stats=cache.get_stats(),
        )
