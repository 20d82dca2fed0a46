"""
Backtest run orchestration.

Creates BacktestRun records, loads bars (with a warm-up lookback before the
requested start), runs the CPU-bound engine in a worker thread and records
the outcome. Failures never propagate: they mark the run FAILED with the
error message.
"""

import asyncio
import math
import threading
from dataclasses import replace
from datetime import timedelta

import pandas as pd
from loguru import logger

from src.core.constants import (
    DEFAULT_MAX_WORKERS,
    MAX_PARAMETER_COMBINATIONS,
    WARMUP_LOOKBACK_FACTOR,
    WARMUP_LOOKBACK_PADDING_DAYS,
)
from src.core.enums import RunStatus, RunType, Timeframe
from src.core.exceptions.backtest import BacktestException, ValidationError
from src.core.interfaces.data import IMarketDataProvider
from src.core.models.backtest import BacktestConfig, BacktestRun
from src.core.models.optimization import OptimizationWindowResult, WalkForwardConfig
from src.core.models.strategy import Strategy
from src.core.utils.validation import validate_symbol
from src.engine.metrics import PerformanceCalculator
from src.engine.parameter_grid import ParameterGrid
from src.engine.simulation import BacktestSimulator, strategy_warmup
from src.engine.walk_forward import (
    WalkForwardOptimizer,
    WindowCallback,
    validate_walk_forward,
)


def warmup_lookback_days(warmup_bars: int, timeframe: Timeframe) -> int:
    """Calendar days of history to fetch ahead of the start date."""
    if warmup_bars <= 0:
        return 0
    return (
        math.ceil(warmup_bars * timeframe.days_per_bar * WARMUP_LOOKBACK_FACTOR)
        + WARMUP_LOOKBACK_PADDING_DAYS
    )


class BacktestService:
    """Runs backtests and walk-forward optimizations against a data provider."""

    def __init__(
        self,
        data_provider: IMarketDataProvider,
        max_workers: int = DEFAULT_MAX_WORKERS,
        max_combinations: int = MAX_PARAMETER_COMBINATIONS,
    ) -> None:
        self.data_provider = data_provider
        self.max_workers = max_workers
        self.max_combinations = max_combinations

    async def run_backtest(self, strategy: Strategy, config: BacktestConfig) -> BacktestRun:
        """Run a single backtest; the returned run is COMPLETED or FAILED."""
        run = BacktestRun(run_type=RunType.BACKTEST, strategy_name=strategy.name, config=config)
        logger.info(f"Backtest {run.run_id} created for {strategy.name} on {config.symbol}")

        try:
            strategy = self._prepare(strategy, config)
            run.mark_running()

            bars = await self._load_bars(config, strategy_warmup(strategy))
            simulator = BacktestSimulator(strategy, bars, config.symbol)
            result = await asyncio.to_thread(
                simulator.run, config.start_date, config.end_date, strategy.initial_capital
            )

            metrics = PerformanceCalculator.calculate(
                result.trades, result.equity_curve, result.starting_capital
            )
            run.mark_completed(metrics, result.trades, result.equity_curve, result.monthly_returns)
            logger.success(
                f"Backtest {run.run_id} completed: {metrics.total_trades} trades, "
                f"return {metrics.total_return_percent:.2f}%"
            )
        except Exception as e:
            self._fail(run, e)

        return run

    async def run_walk_forward(
        self,
        strategy: Strategy,
        config: BacktestConfig,
        walk_forward: WalkForwardConfig,
        cancel_event: threading.Event | None = None,
        on_window_complete: WindowCallback | None = None,
    ) -> BacktestRun:
        """Run a walk-forward optimization; the returned run is COMPLETED or FAILED."""
        run = BacktestRun(
            run_type=RunType.WALK_FORWARD, strategy_name=strategy.name, config=config
        )
        logger.info(f"Walk-forward {run.run_id} created for {strategy.name} on {config.symbol}")

        try:
            strategy = self._prepare(strategy, config)
            validate_walk_forward(strategy, walk_forward, self.max_workers)
            run.mark_running()

            def record_window(window_result: OptimizationWindowResult) -> None:
                run.window_results.append(window_result)
                if on_window_complete is not None:
                    on_window_complete(window_result)

            grid = ParameterGrid(walk_forward.parameter_ranges, self.max_combinations)
            bars = await self._load_bars(config, self._max_candidate_warmup(strategy, grid))
            optimizer = WalkForwardOptimizer(
                strategy,
                bars,
                walk_forward,
                symbol=config.symbol,
                max_workers=self.max_workers,
                max_combinations=self.max_combinations,
                cancel_event=cancel_event,
                on_window_complete=record_window,
                grid=grid,
            )
            run.grid_truncated = optimizer.grid.truncated
            run.total_combinations = optimizer.grid.total_combinations

            result = await asyncio.to_thread(optimizer.run, config.start_date, config.end_date)

            run.mark_completed(
                result.metrics, result.trades, result.equity_curve, result.monthly_returns
            )
            logger.success(
                f"Walk-forward {run.run_id} completed: {len(result.windows)} windows, "
                f"return {result.metrics.total_return_percent:.2f}%"
            )
        except Exception as e:
            self._fail(run, e)

        return run

    def _prepare(self, strategy: Strategy, config: BacktestConfig) -> Strategy:
        """Validate the request and apply the capital override, if any."""
        if not isinstance(strategy, Strategy):
            raise ValidationError(f"Expected a Strategy, got {type(strategy).__name__}")
        config.symbol = validate_symbol(config.symbol)
        if not config.is_valid_date_range():
            raise ValidationError(
                f"end_date {config.end_date.date()} must be after "
                f"start_date {config.start_date.date()}"
            )
        if not config.is_valid_capital():
            raise ValidationError(f"initial_capital must be positive, got {config.initial_capital}")

        if config.initial_capital is not None:
            return replace(strategy, initial_capital=config.initial_capital)
        return strategy

    def _max_candidate_warmup(self, strategy: Strategy, grid: ParameterGrid) -> int:
        """Largest warm-up over every grid candidate, so no window lacks history."""
        warmups = [strategy_warmup(strategy)]
        for params in grid:
            try:
                warmups.append(strategy_warmup(strategy.with_parameters(params)))
            except ValidationError:
                # Invalid candidates fail during the search and need no history
                continue
        return max(warmups)

    async def _load_bars(self, config: BacktestConfig, warmup_bars: int) -> pd.DataFrame:
        lookback = timedelta(days=warmup_lookback_days(warmup_bars, config.timeframe))
        logger.debug(
            f"Loading {config.symbol} {config.timeframe.value} bars with "
            f"{lookback.days} days of warm-up history ({warmup_bars} bars)"
        )
        return await self.data_provider.load_bars(
            config.symbol, config.timeframe, config.start_date - lookback, config.end_date
        )

    @staticmethod
    def _fail(run: BacktestRun, error: Exception) -> None:
        """Record a failure on the run and log it."""
        message = str(error) or type(error).__name__
        if isinstance(error, BacktestException):
            logger.error(f"Run {run.run_id} failed: {message}")
        else:
            logger.exception(f"Run {run.run_id} failed with unexpected error: {message}")

        if run.status in (RunStatus.PENDING, RunStatus.RUNNING):
            run.mark_failed(message)
