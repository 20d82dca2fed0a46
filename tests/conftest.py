"""
Shared fixtures: bar frame and strategy factories.
"""

from collections.abc import Callable, Sequence

import numpy as np
import pandas as pd
import pytest

from src.core.enums import Comparator, IndicatorKind
from src.core.models.strategy import (
    ComparisonCondition,
    ConditionNode,
    IndicatorRef,
    Strategy,
)


def build_bars(
    closes: Sequence[float],
    start: str = "2023-01-01",
    freq: str = "D",
    opens: Sequence[float] | None = None,
    highs: Sequence[float] | None = None,
    lows: Sequence[float] | None = None,
    volumes: Sequence[float] | None = None,
) -> pd.DataFrame:
    """Build an OHLCV frame; open defaults to close, high/low bound open and close."""
    closes_arr = np.asarray(closes, dtype=float)
    opens_arr = closes_arr.copy() if opens is None else np.asarray(opens, dtype=float)
    highs_arr = (
        np.maximum(opens_arr, closes_arr) if highs is None else np.asarray(highs, dtype=float)
    )
    lows_arr = np.minimum(opens_arr, closes_arr) if lows is None else np.asarray(lows, dtype=float)
    volumes_arr = (
        np.full(len(closes_arr), 1000.0) if volumes is None else np.asarray(volumes, dtype=float)
    )
    return pd.DataFrame(
        {
            "timestamp": pd.date_range(start, periods=len(closes_arr), freq=freq),
            "open": opens_arr,
            "high": highs_arr,
            "low": lows_arr,
            "close": closes_arr,
            "volume": volumes_arr,
        }
    )


def random_walk_bars(periods: int, start: str = "2021-01-01", seed: int = 42) -> pd.DataFrame:
    """Reproducible daily random-walk bars with realistic OHLC relationships."""
    rng = np.random.default_rng(seed)
    closes = 100.0 * np.cumprod(1 + rng.normal(0.0005, 0.015, periods))
    opens = np.concatenate(([100.0], closes[:-1]))
    spread = np.abs(rng.normal(0, 0.005, periods)) * closes
    return build_bars(
        closes,
        start=start,
        opens=opens,
        highs=np.maximum(opens, closes) + spread,
        lows=np.minimum(opens, closes) - spread,
        volumes=rng.uniform(1_000, 10_000, periods),
    )


def close_above(threshold: float) -> ConditionNode:
    """Entry/exit node: close > threshold."""
    return ConditionNode(
        ComparisonCondition(IndicatorRef.of(IndicatorKind.CLOSE), Comparator.GT, threshold)
    )


@pytest.fixture
def make_bars() -> Callable[..., pd.DataFrame]:
    """Factory fixture for bar frames."""
    return build_bars


@pytest.fixture
def daily_bars() -> pd.DataFrame:
    """Two years of daily random-walk bars starting 2021-01-01."""
    return random_walk_bars(730)


@pytest.fixture
def make_strategy() -> Callable[..., Strategy]:
    """Factory fixture for strategies; defaults to always entering (close > 0)."""

    def _make(**overrides) -> Strategy:
        fields = {
            "name": "Test Strategy",
            "entry_rules": (close_above(0),),
            "position_size_value": 100.0,
            "initial_capital": 10_000.0,
        }
        fields.update(overrides)
        return Strategy(**fields)

    return _make
