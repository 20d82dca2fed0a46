"""
Technical Indicators Evaluator.

This module computes technical indicators over an OHLCV bar frame and
serves their values bar by bar to the rule evaluator.
Implements the Strategy Pattern: one calculation strategy per indicator kind.

All calculations are causal (rolling windows and recursive smoothing only),
so the value at bar ``i`` never depends on bars after ``i``.
"""

from typing import NamedTuple, Protocol

import numpy as np
import pandas as pd
from loguru import logger

from src.core.enums import IndicatorKind
from src.core.exceptions.backtest import ComputationError
from src.core.models.strategy import IndicatorRef, IndicatorSpec

from .indicator_cache import IndicatorCache, IndicatorSeries


class MACDValue(NamedTuple):
    macd: float
    signal: float
    histogram: float


class BollingerValue(NamedTuple):
    middle: float
    upper: float
    lower: float
    width: float


class StochasticValue(NamedTuple):
    k: float
    d: float


IndicatorValue = float | MACDValue | BollingerValue | StochasticValue

_VALUE_TYPES: dict[IndicatorKind, type[NamedTuple]] = {
    IndicatorKind.MACD: MACDValue,
    IndicatorKind.BOLLINGER: BollingerValue,
    IndicatorKind.STOCHASTIC: StochasticValue,
}


def _seeded_smoothing(series: pd.Series, window: int, alpha: float) -> pd.Series:
    """Recursive smoothing seeded with the simple mean of the first window.

    Leading NaNs are skipped; the first defined output sits ``window - 1``
    bars after the first defined input.
    """
    values = series.to_numpy(dtype=float)
    defined = np.flatnonzero(~np.isnan(values))
    if len(defined) < window:
        return pd.Series(np.nan, index=series.index)

    first = defined[0]
    seed_position = first + window - 1
    seeded = pd.Series(values, index=series.index)
    seeded.iloc[:seed_position] = np.nan
    seeded.iloc[seed_position] = values[first : seed_position + 1].mean()
    return seeded.ewm(alpha=alpha, adjust=False).mean()


def _ema(series: pd.Series, period: int) -> pd.Series:
    return _seeded_smoothing(series, period, 2.0 / (period + 1))


def _wilder(series: pd.Series, period: int) -> pd.Series:
    return _seeded_smoothing(series, period, 1.0 / period)


def _true_range(data: pd.DataFrame) -> pd.Series:
    """True range; the first bar has no previous close and uses high - low."""
    previous_close = data["close"].shift(1)
    ranges = pd.concat(
        [
            data["high"] - data["low"],
            (data["high"] - previous_close).abs(),
            (data["low"] - previous_close).abs(),
        ],
        axis=1,
    )
    return ranges.max(axis=1, skipna=True)


def _nan_where_zero(denominator: pd.Series) -> pd.Series:
    return denominator.where(denominator != 0, np.nan)


class IndicatorStrategy(Protocol):
    """Protocol for technical indicator calculation strategies."""

    def warmup(self, spec: IndicatorSpec) -> int:
        """Number of leading bars without a defined value."""
        ...

    def calculate(self, data: pd.DataFrame, spec: IndicatorSpec) -> dict[str, pd.Series]:
        """Calculate every named output of the indicator for the given data."""
        ...


class RawFieldStrategy:
    """Strategy exposing a bar column (open, high, low, close, volume) directly."""

    def warmup(self, spec: IndicatorSpec) -> int:
        return 0

    def calculate(self, data: pd.DataFrame, spec: IndicatorSpec) -> dict[str, pd.Series]:
        return {"value": data[spec.kind.value.lower()].astype(float)}


class SMAStrategy:
    """Strategy for calculating simple moving averages."""

    def warmup(self, spec: IndicatorSpec) -> int:
        return int(spec.param("period")) - 1

    def calculate(self, data: pd.DataFrame, spec: IndicatorSpec) -> dict[str, pd.Series]:
        period = int(spec.param("period"))
        return {"value": data["close"].rolling(window=period).mean()}


class EMAStrategy:
    """Strategy for calculating exponential moving averages (SMA-seeded)."""

    def warmup(self, spec: IndicatorSpec) -> int:
        return int(spec.param("period")) - 1

    def calculate(self, data: pd.DataFrame, spec: IndicatorSpec) -> dict[str, pd.Series]:
        return {"value": _ema(data["close"], int(spec.param("period")))}


class MACDStrategy:
    """Strategy for calculating MACD (Moving Average Convergence Divergence) indicators."""

    def warmup(self, spec: IndicatorSpec) -> int:
        return int(spec.param("slow")) + int(spec.param("signal")) - 2

    def calculate(self, data: pd.DataFrame, spec: IndicatorSpec) -> dict[str, pd.Series]:
        fast = _ema(data["close"], int(spec.param("fast")))
        slow = _ema(data["close"], int(spec.param("slow")))

        macd = fast - slow
        signal = _ema(macd, int(spec.param("signal")))
        return {"macd": macd, "signal": signal, "histogram": macd - signal}


class RSIStrategy:
    """Strategy for calculating RSI (Relative Strength Index) with Wilder smoothing."""

    def warmup(self, spec: IndicatorSpec) -> int:
        return int(spec.param("period"))

    def calculate(self, data: pd.DataFrame, spec: IndicatorSpec) -> dict[str, pd.Series]:
        period = int(spec.param("period"))

        # diff() leaves the first bar undefined; clip keeps the NaN
        delta = data["close"].diff()
        avg_gain = _wilder(delta.clip(lower=0), period)
        avg_loss = _wilder((-delta).clip(lower=0), period)

        rsi = 100 - (100 / (1 + avg_gain / _nan_where_zero(avg_loss)))
        # No losses: 100 when there were gains, undefined when flat
        rsi = rsi.mask((avg_loss == 0) & (avg_gain > 0), 100.0)
        return {"value": rsi}


class BollingerBandsStrategy:
    """Strategy for calculating Bollinger Bands indicators."""

    def warmup(self, spec: IndicatorSpec) -> int:
        return int(spec.param("period")) - 1

    def calculate(self, data: pd.DataFrame, spec: IndicatorSpec) -> dict[str, pd.Series]:
        period = int(spec.param("period"))
        std_multiplier = spec.param("std_dev")

        bb_middle = data["close"].rolling(window=period).mean()
        bb_std = data["close"].rolling(window=period).std(ddof=0)

        bb_upper = bb_middle + (std_multiplier * bb_std)
        bb_lower = bb_middle - (std_multiplier * bb_std)
        return {
            "middle": bb_middle,
            "upper": bb_upper,
            "lower": bb_lower,
            "width": bb_upper - bb_lower,
        }


class StochasticStrategy:
    """Strategy for calculating the stochastic oscillator (%K and its %D average)."""

    def warmup(self, spec: IndicatorSpec) -> int:
        return int(spec.param("k_period")) + int(spec.param("d_period")) - 2

    def calculate(self, data: pd.DataFrame, spec: IndicatorSpec) -> dict[str, pd.Series]:
        k_period = int(spec.param("k_period"))
        d_period = int(spec.param("d_period"))

        lowest_low = data["low"].rolling(window=k_period).min()
        highest_high = data["high"].rolling(window=k_period).max()

        # Flat range leaves %K undefined
        k = 100 * (data["close"] - lowest_low) / _nan_where_zero(highest_high - lowest_low)
        d = k.rolling(window=d_period).mean()
        return {"k": k, "d": d}


class ATRStrategy:
    """Strategy for calculating ATR (Average True Range) with Wilder smoothing."""

    def warmup(self, spec: IndicatorSpec) -> int:
        return int(spec.param("period")) - 1

    def calculate(self, data: pd.DataFrame, spec: IndicatorSpec) -> dict[str, pd.Series]:
        return {"value": _wilder(_true_range(data), int(spec.param("period")))}


class ADXStrategy:
    """Strategy for calculating ADX (Average Directional Index)."""

    def warmup(self, spec: IndicatorSpec) -> int:
        return 2 * int(spec.param("period")) - 1

    def calculate(self, data: pd.DataFrame, spec: IndicatorSpec) -> dict[str, pd.Series]:
        period = int(spec.param("period"))

        up_move = data["high"].diff()
        down_move = -data["low"].diff()
        plus_dm = up_move.where((up_move > down_move) & (up_move > 0), 0.0)
        minus_dm = down_move.where((down_move > up_move) & (down_move > 0), 0.0)
        # Directional movement starts at the second bar
        plus_dm.iloc[:1] = np.nan
        minus_dm.iloc[:1] = np.nan
        true_range = _true_range(data)
        true_range.iloc[:1] = np.nan

        smoothed_tr = _nan_where_zero(_wilder(true_range, period))
        plus_di = 100 * _wilder(plus_dm, period) / smoothed_tr
        minus_di = 100 * _wilder(minus_dm, period) / smoothed_tr

        dx = 100 * (plus_di - minus_di).abs() / _nan_where_zero(plus_di + minus_di)
        return {"value": _wilder(dx, period)}


class VWAPStrategy:
    """Strategy for calculating VWAP (Volume Weighted Average Price) indicator."""

    def warmup(self, spec: IndicatorSpec) -> int:
        return 0

    def calculate(self, data: pd.DataFrame, spec: IndicatorSpec) -> dict[str, pd.Series]:
        typical_price = (data["high"] + data["low"] + data["close"]) / 3
        cumulative_volume = data["volume"].cumsum()
        vwap = (typical_price * data["volume"]).cumsum() / _nan_where_zero(cumulative_volume)
        return {"value": vwap}


_RAW_FIELD_STRATEGY = RawFieldStrategy()

_STRATEGIES: dict[IndicatorKind, IndicatorStrategy] = {
    IndicatorKind.SMA: SMAStrategy(),
    IndicatorKind.EMA: EMAStrategy(),
    IndicatorKind.MACD: MACDStrategy(),
    IndicatorKind.RSI: RSIStrategy(),
    IndicatorKind.BOLLINGER: BollingerBandsStrategy(),
    IndicatorKind.STOCHASTIC: StochasticStrategy(),
    IndicatorKind.ATR: ATRStrategy(),
    IndicatorKind.ADX: ADXStrategy(),
    IndicatorKind.VWAP: VWAPStrategy(),
    IndicatorKind.OPEN: _RAW_FIELD_STRATEGY,
    IndicatorKind.HIGH: _RAW_FIELD_STRATEGY,
    IndicatorKind.LOW: _RAW_FIELD_STRATEGY,
    IndicatorKind.CLOSE: _RAW_FIELD_STRATEGY,
    IndicatorKind.VOLUME: _RAW_FIELD_STRATEGY,
}


def indicator_warmup(spec: IndicatorSpec) -> int:
    """Leading bars for which ``spec`` is undefined."""
    return _STRATEGIES[spec.kind].warmup(spec)


class IndicatorEvaluator:
    """
    Bar-by-bar indicator evaluator using Strategy Pattern.

    Computes each distinct indicator once over the whole bar frame (through
    the run's IndicatorCache) and answers point lookups by bar index.
    A failing calculation is logged and counted, and the indicator is then
    undefined for every bar instead of aborting the run.
    """

    def __init__(self, bars: pd.DataFrame, cache: IndicatorCache | None = None) -> None:
        """Initialize evaluator over a bar frame ordered by timestamp."""
        self._bars = bars.reset_index(drop=True)
        self._cache = cache if cache is not None else IndicatorCache()
        self._failure_counts: dict[str, int] = {}

    @property
    def cache(self) -> IndicatorCache:
        return self._cache

    @property
    def failure_counts(self) -> dict[str, int]:
        """Calculation failures per indicator kind."""
        return dict(self._failure_counts)

    def warmup(self, spec: IndicatorSpec) -> int:
        """Leading bars for which ``spec`` is undefined."""
        return indicator_warmup(spec)

    def series(self, spec: IndicatorSpec) -> IndicatorSeries:
        """All outputs of ``spec`` as float arrays aligned with the bars."""
        return self._cache.get_or_compute(spec, self._compute)

    def value_at(self, ref: IndicatorRef, index: int) -> float | None:
        """Value of one indicator output at bar ``index``; None when undefined."""
        if index < 0 or index >= len(self._bars):
            return None
        value = self.series(ref.spec)[ref.output][index]
        if np.isnan(value):
            return None
        return float(value)

    def evaluate(self, spec: IndicatorSpec, index: int) -> IndicatorValue | None:
        """Full indicator value at bar ``index``.

        Multi-output indicators return a named tuple (MACDValue,
        BollingerValue, StochasticValue); None until every output is defined.
        """
        if index < 0 or index >= len(self._bars):
            return None
        outputs = self.series(spec)
        values = [outputs[name][index] for name in spec.kind.outputs]
        if any(np.isnan(v) for v in values):
            return None
        value_type = _VALUE_TYPES.get(spec.kind)
        if value_type is None:
            return float(values[0])
        return value_type(*(float(v) for v in values))

    def _compute(self, spec: IndicatorSpec) -> IndicatorSeries:
        """Run the kind's strategy, converting failures into undefined outputs."""
        strategy = _STRATEGIES[spec.kind]
        logger.debug(f"Calculating {spec.label} over {len(self._bars)} bars")
        try:
            outputs = strategy.calculate(self._bars, spec)
            return {name: outputs[name].to_numpy(dtype=float) for name in spec.kind.outputs}
        except (ValueError, TypeError, KeyError, ArithmeticError) as calculation_error:
            error = ComputationError(spec.label, str(calculation_error))

        kind = spec.kind.value
        self._failure_counts[kind] = self._failure_counts.get(kind, 0) + 1
        logger.warning(f"{error} (failure #{self._failure_counts[kind]}); treating as undefined")
        return {name: np.full(len(self._bars), np.nan) for name in spec.kind.outputs}
