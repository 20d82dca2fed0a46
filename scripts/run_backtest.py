#!/usr/bin/env python3
"""
Backtest Runner Script

Runs a strategy definition (JSON) against CSV bar data, either as a single
backtest or as a walk-forward optimization, and prints or saves the run.
Input: <data-dir>/<SYMBOL>_<timeframe>.csv with columns timestamp,open,high,low,close,volume
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path

from loguru import logger
from tqdm import tqdm

from src.core.enums import RunStatus, Timeframe
from src.core.exceptions.backtest import BacktestException
from src.core.models.backtest import BacktestConfig, BacktestRun
from src.core.models.optimization import OptimizationWindowResult
from src.engine.walk_forward import generate_windows
from src.infrastructure.data.csv_loader import CSVMarketDataProvider
from src.infrastructure.schemas.definitions import parse_strategy, parse_walk_forward
from src.services.backtest_service import BacktestService


def setup_logging(debug: bool = False):
    """Configure logging with loguru."""
    logger.remove()

    level = "DEBUG" if debug else "INFO"
    logger.add(
        sys.stderr,
        format=(
            "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
        ),
        level=level,
    )


def load_json(path: str) -> dict:
    """Read a JSON definition file."""
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def parse_date(value: str) -> datetime:
    """argparse type for YYYY-MM-DD dates."""
    try:
        return datetime.strptime(value, "%Y-%m-%d")
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid date {value!r}, expected YYYY-MM-DD") from e


def parse_timeframe(value: str) -> Timeframe:
    """argparse type for timeframes (1d, daily, 1h, ...)."""
    try:
        return Timeframe.from_string(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def summarize(run: BacktestRun) -> None:
    """Log a short summary of a finished run."""
    if run.status != RunStatus.COMPLETED or run.metrics is None:
        logger.error(f"Run {run.run_id} {run.status.value}: {run.error_message}")
        return

    metrics = run.metrics
    logger.success(
        f"{run.strategy_name} on {run.config.symbol}: {metrics.total_trades} trades, "
        f"return {metrics.total_return_percent:.2f}%, win rate {metrics.win_rate:.1%}, "
        f"Sharpe {metrics.sharpe_ratio:.2f}, max drawdown {metrics.max_drawdown_percent:.2f}%"
    )
    if run.grid_truncated:
        logger.warning(f"Parameter grid was truncated from {run.total_combinations} combinations")
    for window in run.window_results:
        logger.info(
            f"Window {window.window_number} {window.test_start.date()}..{window.test_end.date()}: "
            f"params {window.params}, return {window.test_return_percent:.2f}%"
            + (" (skipped)" if window.skipped else "")
        )


async def run(args: argparse.Namespace) -> BacktestRun:
    strategy = parse_strategy(load_json(args.strategy))
    config = BacktestConfig(
        symbol=args.symbol,
        start_date=args.start,
        end_date=args.end,
        timeframe=args.timeframe,
        initial_capital=args.capital,
    )

    async with CSVMarketDataProvider(args.data_dir) as provider:
        service = BacktestService(provider, max_workers=args.workers)

        if not args.walk_forward:
            return await service.run_backtest(strategy, config)

        walk_forward = parse_walk_forward(load_json(args.walk_forward))
        total_windows = len(
            generate_windows(
                args.start,
                args.end,
                walk_forward.train_window_months,
                walk_forward.test_window_months,
            )
        )
        with tqdm(total=total_windows, desc="Walk-forward windows", unit="window") as pbar:

            def on_window_complete(result: OptimizationWindowResult) -> None:
                pbar.update(1)
                pbar.set_postfix(return_pct=f"{result.test_return_percent:.2f}")

            return await service.run_walk_forward(
                strategy, config, walk_forward, on_window_complete=on_window_complete
            )


def main():
    parser = argparse.ArgumentParser(
        description="Run a strategy backtest or walk-forward optimization on CSV bar data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_backtest.py --symbol AAPL --start 2022-01-01 --end 2023-12-31 --strategy rsi.json
  python run_backtest.py --symbol AAPL --start 2020-01-01 --end 2023-12-31 \\
      --strategy rsi.json --walk-forward wfo.json --workers 4 --output run.json
        """,
    )

    parser.add_argument(
        "--data-dir",
        type=str,
        default="data",
        help="Directory containing <SYMBOL>_<timeframe>.csv files (default: data)",
    )
    parser.add_argument("--symbol", type=str, required=True, help="Symbol to backtest")
    parser.add_argument(
        "--timeframe",
        type=parse_timeframe,
        default=Timeframe.D1,
        help="Bar timeframe (default: 1d)",
    )
    parser.add_argument("--start", type=parse_date, required=True, help="Start date YYYY-MM-DD")
    parser.add_argument("--end", type=parse_date, required=True, help="End date YYYY-MM-DD")
    parser.add_argument(
        "--strategy", type=str, required=True, help="Strategy definition JSON file"
    )
    parser.add_argument(
        "--walk-forward", type=str, help="Walk-forward definition JSON file (optional)"
    )
    parser.add_argument(
        "--capital", type=float, help="Initial capital override (default: strategy value)"
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Worker threads for walk-forward candidate evaluation (default: 1)",
    )
    parser.add_argument("--output", type=str, help="Write the run as JSON to this file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    setup_logging(args.debug)

    try:
        result = asyncio.run(run(args))
    except (BacktestException, OSError, json.JSONDecodeError) as e:
        logger.error(f"Backtest could not start: {e}")
        return 1

    summarize(result)

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
        logger.info(f"Run written to {output_path}")

    return 0 if result.status == RunStatus.COMPLETED else 1


if __name__ == "__main__":
    sys.exit(main())
