"""
Core enumerations for the backtesting engine.

This module provides centralized enumerations for domain concepts
like bar intervals, indicators, rule comparators, trade directions,
exit reasons and run states.
"""

from .indicators import IndicatorKind
from .run_types import RunStatus, RunType
from .strategy_types import (
    Comparator,
    CrossDirection,
    JoinOperator,
    OptimizationMetric,
    PositionSizing,
)
from .timeframes import Timeframe
from .trade_types import ExitReason, OrderRejection, TradeDirection

__all__ = [
    "Timeframe",
    "IndicatorKind",
    "Comparator",
    "CrossDirection",
    "JoinOperator",
    "OptimizationMetric",
    "PositionSizing",
    "TradeDirection",
    "ExitReason",
    "OrderRejection",
    "RunStatus",
    "RunType",
]
