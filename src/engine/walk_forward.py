"""
Walk-forward optimization.

Rolls a training window and an adjacent out-of-sample test window across a
date range. Each training window grid-searches strategy parameters; the
winning parameters are then simulated on the test window with capital
carried over from the previous window, and the test results are stitched
into one continuous ledger and equity curve.
"""

import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime

import pandas as pd
from loguru import logger

from src.core.constants import (
    DEFAULT_MAX_WORKERS,
    MAX_PARAMETER_COMBINATIONS,
    MAX_WORKERS_LIMIT,
)
from src.core.exceptions.backtest import (
    BacktestException,
    DataError,
    OptimizationCancelledError,
    OptimizationError,
    ValidationError,
)
from src.core.models.optimization import (
    CandidateResult,
    OptimizationWindowResult,
    WalkForwardConfig,
    WalkForwardResult,
    WalkForwardWindow,
)
from src.core.models.strategy import Strategy
from src.core.models.trade import EquityPoint, Trade
from src.core.utils.decorators import log_operation
from src.infrastructure.data.bar_frames import date_range_mask

from .metrics import PerformanceCalculator
from .parameter_grid import ParameterGrid
from .simulation import BacktestSimulator

WindowCallback = Callable[[OptimizationWindowResult], None]


def generate_windows(
    start: datetime, end: datetime, train_months: int, test_months: int
) -> list[WalkForwardWindow]:
    """
    Split ``[start, end]`` into rolling train/test windows.

    Window ``k`` trains on ``train_months`` starting ``k * test_months``
    after ``start`` and tests on the following ``test_months`` (clipped to
    ``end``). Test windows are contiguous and never overlap. Generation
    stops once a test window would start at or past ``end``.
    """
    origin = pd.Timestamp(start).normalize()
    last_day = pd.Timestamp(end).normalize()
    one_day = pd.Timedelta(days=1)

    windows: list[WalkForwardWindow] = []
    k = 0
    while True:
        train_start = origin + pd.DateOffset(months=k * test_months)
        test_start = origin + pd.DateOffset(months=k * test_months + train_months)
        if test_start >= last_day:
            break
        test_end = min(test_start + pd.DateOffset(months=test_months) - one_day, last_day)
        windows.append(
            WalkForwardWindow(
                window_number=k + 1,
                train_start=train_start,
                train_end=test_start - one_day,
                test_start=test_start,
                test_end=test_end,
            )
        )
        k += 1
    return windows


def validate_walk_forward(
    strategy: Strategy, config: WalkForwardConfig, max_workers: int = DEFAULT_MAX_WORKERS
) -> None:
    """
    Validate walk-forward settings against a strategy before any search.

    Raises:
        ValidationError: If the windows, ranges, parameter names or worker
            count are invalid
    """
    if not config.is_valid_windows():
        raise ValidationError(
            f"Walk-forward windows must be at least one month, got "
            f"train={config.train_window_months} test={config.test_window_months}"
        )
    if not config.is_valid_ranges():
        raise ValidationError("Walk-forward parameter ranges are invalid or duplicated")

    unknown = {r.name for r in config.parameter_ranges} - strategy.parameter_names()
    if unknown:
        raise ValidationError(
            f"Unknown optimization parameters for strategy {strategy.name!r}: {sorted(unknown)}"
        )
    if not 1 <= max_workers <= MAX_WORKERS_LIMIT:
        raise ValidationError(
            f"max_workers must be between 1 and {MAX_WORKERS_LIMIT}, got {max_workers}"
        )


class WalkForwardOptimizer:
    """
    Walk-forward optimizer.

    TRAIN and the candidate simulations may run on a bounded thread pool;
    TEST and STITCH are sequential across windows. Cancellation is checked
    between windows only.
    """

    def __init__(
        self,
        strategy: Strategy,
        bars: pd.DataFrame,
        config: WalkForwardConfig,
        symbol: str = "",
        max_workers: int = DEFAULT_MAX_WORKERS,
        max_combinations: int = MAX_PARAMETER_COMBINATIONS,
        cancel_event: threading.Event | None = None,
        on_window_complete: WindowCallback | None = None,
        grid: ParameterGrid | None = None,
    ) -> None:
        """
        Callers check ``config`` with :func:`validate_walk_forward` first.

        Args:
            grid: Prebuilt candidate grid for ``config``; built from its
                ranges and ``max_combinations`` when omitted
        """
        self.strategy = strategy
        self.bars = bars
        self.config = config
        self.symbol = symbol
        self.max_workers = max_workers
        if grid is None:
            grid = ParameterGrid(config.parameter_ranges, max_combinations)
        self.grid = grid
        self.cancel_event = cancel_event
        self.on_window_complete = on_window_complete

    @log_operation
    def run(self, start: datetime, end: datetime) -> WalkForwardResult:
        """
        Run walk-forward optimization over ``[start, end]``.

        Raises:
            DataError: If the range yields no windows
            OptimizationError: If every candidate of a training window fails
            OptimizationCancelledError: If cancellation was requested
        """
        windows = generate_windows(
            start, end, self.config.train_window_months, self.config.test_window_months
        )
        if not windows:
            raise DataError("Insufficient data for walk-forward optimization.")

        candidates = self.grid.combinations()
        logger.info(
            f"Walk-forward for {self.strategy.name}: {len(windows)} windows, "
            f"{len(candidates)} candidates per window, "
            f"metric {self.config.optimization_metric.value}"
        )

        capital = self.strategy.initial_capital
        trades: list[Trade] = []
        equity_curve: list[EquityPoint] = []
        window_results: list[OptimizationWindowResult] = []

        for completed, window in enumerate(windows):
            if self.cancel_event is not None and self.cancel_event.is_set():
                logger.warning(f"Walk-forward cancelled before window {window.window_number}")
                raise OptimizationCancelledError(completed, len(windows))

            window_result = self._run_window(window, candidates, capital, trades, equity_curve)
            if not window_result.skipped:
                capital += window_result.test_return
            window_results.append(window_result)

            if self.on_window_complete is not None:
                self.on_window_complete(window_result)

        metrics = PerformanceCalculator.calculate(
            trades, equity_curve, self.strategy.initial_capital
        )
        logger.success(
            f"Walk-forward complete: {len(trades)} out-of-sample trades, "
            f"return {metrics.total_return_percent:.2f}%"
        )
        return WalkForwardResult(
            windows=window_results,
            trades=trades,
            equity_curve=equity_curve,
            metrics=metrics,
            monthly_returns=PerformanceCalculator.monthly_returns(
                equity_curve, self.strategy.initial_capital
            ),
            initial_capital=self.strategy.initial_capital,
            final_capital=equity_curve[-1].equity if equity_curve else capital,
            grid_truncated=self.grid.truncated,
            total_combinations=self.grid.total_combinations,
        )

    def _run_window(
        self,
        window: WalkForwardWindow,
        candidates: list[dict[str, float]],
        capital: float,
        trades: list[Trade],
        equity_curve: list[EquityPoint],
    ) -> OptimizationWindowResult:
        """Train, test and stitch one window into ``trades`` and ``equity_curve``."""
        logger.info(
            f"Window {window.window_number}: "
            f"train {window.train_start.date()}..{window.train_end.date()}, "
            f"test {window.test_start.date()}..{window.test_end.date()}"
        )
        params, metric_value, evaluated, failed = self._train(window, candidates)
        result = OptimizationWindowResult(
            window_number=window.window_number,
            train_start=window.train_start,
            train_end=window.train_end,
            test_start=window.test_start,
            test_end=window.test_end,
            params=params,
            train_metric_value=metric_value,
            candidates_evaluated=evaluated,
            candidates_failed=failed,
        )

        test_mask = date_range_mask(self.bars["timestamp"], window.test_start, window.test_end)
        if not test_mask.any():
            logger.warning(f"Window {window.window_number} has no test bars; skipping")
            result.skipped = True
            result.error = "No bars in test window"
            return result

        simulation = BacktestSimulator(
            self.strategy.with_parameters(params), self.bars, self.symbol
        ).run(window.test_start, window.test_end, capital)
        test_metrics = PerformanceCalculator.calculate(
            simulation.trades, simulation.equity_curve, simulation.starting_capital
        )

        next_number = len(trades) + 1
        for offset, trade in enumerate(simulation.trades):
            trades.append(replace(trade, trade_number=next_number + offset))
        equity_curve.extend(simulation.equity_curve)

        result.test_return = simulation.total_return
        result.test_return_percent = test_metrics.total_return_percent
        result.test_sharpe = test_metrics.sharpe_ratio
        result.test_max_drawdown_percent = test_metrics.max_drawdown_percent
        result.trade_count = len(simulation.trades)
        return result

    def _train(
        self, window: WalkForwardWindow, candidates: list[dict[str, float]]
    ) -> tuple[dict[str, float], float | None, int, int]:
        """Select the best candidate on the training range.

        A lone candidate is selected without training, so it has no metric value.

        Returns:
            (params, metric value, candidates evaluated, candidates failed)
        """
        if len(candidates) == 1:
            return dict(candidates[0]), None, 0, 0

        def evaluate(params: dict[str, float]) -> CandidateResult:
            return self._evaluate_candidate(params, window)

        if self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                results = list(pool.map(evaluate, candidates))
        else:
            results = [evaluate(params) for params in candidates]

        attribute = self.config.optimization_metric.attribute
        best: CandidateResult | None = None
        best_value = 0.0
        for candidate in results:
            if not candidate.succeeded:
                continue
            value = getattr(candidate.metrics, attribute)
            if best is None or value > best_value:
                best, best_value = candidate, value

        failed = sum(1 for candidate in results if not candidate.succeeded)
        if best is None:
            raise OptimizationError(
                f"All {len(results)} parameter candidates failed in window {window.window_number}"
            )

        logger.info(
            f"Window {window.window_number}: selected {best.params} "
            f"({attribute}={best_value:.4f}, {failed} failed)"
        )
        return dict(best.params), float(best_value), len(results), failed

    def _evaluate_candidate(
        self, params: dict[str, float], window: WalkForwardWindow
    ) -> CandidateResult:
        """Simulate one candidate on the training range with initial capital."""
        try:
            candidate = self.strategy.with_parameters(params)
            simulation = BacktestSimulator(candidate, self.bars, self.symbol).run(
                window.train_start, window.train_end, self.strategy.initial_capital
            )
        except (BacktestException, ValueError, ArithmeticError) as e:
            logger.warning(f"Candidate {params} failed in window {window.window_number}: {e}")
            return CandidateResult(params=params, error=str(e))

        metrics = PerformanceCalculator.calculate(
            simulation.trades, simulation.equity_curve, simulation.starting_capital
        )
        logger.debug(f"Candidate {params}: {metrics}")
        return CandidateResult(params=params, metrics=metrics)
