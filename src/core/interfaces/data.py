"""
Data access interfaces.
"""

from abc import ABC, abstractmethod
from datetime import datetime

import pandas as pd

from src.core.enums import Timeframe


class IMarketDataProvider(ABC):
    """Abstract interface for market data providers."""

    @abstractmethod
    async def load_bars(
        self, symbol: str, timeframe: Timeframe, start: datetime, end: datetime
    ) -> pd.DataFrame:
        """Load OHLCV bars for the specified parameters.

        Returns a frame with columns ``timestamp, open, high, low, close,
        volume`` sorted ascending by timestamp, restricted to
        ``start <= timestamp`` and dates up to and including ``end``.
        """
        pass
