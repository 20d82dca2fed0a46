"""
Market data infrastructure.

This module provides bar loading, validation and technical indicator
evaluation for historical market data.
"""

from .csv_loader import CSVMarketDataProvider
from .indicator_cache import IndicatorCache
from .memory_provider import InMemoryMarketDataProvider
from .ohlcv_validator import OHLCVValidator
from .technical_indicators import IndicatorEvaluator

__all__ = [
    "CSVMarketDataProvider",
    "InMemoryMarketDataProvider",
    "IndicatorCache",
    "IndicatorEvaluator",
    "OHLCVValidator",
]
