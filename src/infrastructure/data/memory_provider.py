"""
In-memory market data provider.

Serves bar frames registered at runtime; used by tests, notebooks and
callers that already hold their data.
"""

from datetime import datetime

import pandas as pd
from loguru import logger

from src.core.enums import Timeframe
from src.core.exceptions.backtest import DataError
from src.core.interfaces.data import IMarketDataProvider
from src.core.utils.validation import validate_symbol

from .bar_frames import filter_by_date_range, parse_timestamps
from .ohlcv_validator import OHLCVValidator


class InMemoryMarketDataProvider(IMarketDataProvider):
    """Market data provider backed by a dictionary of bar frames."""

    def __init__(self, frames: dict[tuple[str, Timeframe], pd.DataFrame] | None = None):
        self._frames: dict[tuple[str, Timeframe], pd.DataFrame] = {}
        self._validator = OHLCVValidator()
        for (symbol, timeframe), frame in (frames or {}).items():
            self.add_bars(symbol, frame, timeframe)

    def add_bars(
        self, symbol: str, bars: pd.DataFrame, timeframe: Timeframe = Timeframe.D1
    ) -> None:
        """Register (or replace) the bars for a symbol and timeframe."""
        frame = bars.copy()
        if "timestamp" in frame.columns:
            frame["timestamp"] = parse_timestamps(frame["timestamp"])
        self._frames[(validate_symbol(symbol), timeframe)] = self._validator.normalize(frame)

    async def load_bars(
        self, symbol: str, timeframe: Timeframe, start: datetime, end: datetime
    ) -> pd.DataFrame:
        key = (validate_symbol(symbol), timeframe)
        if key not in self._frames:
            raise DataError(f"No bars registered for {key[0]} {timeframe.value}")

        filtered = filter_by_date_range(self._frames[key], start, end)
        logger.debug(f"Serving {len(filtered)} in-memory bars for {key[0]} {timeframe.value}")
        return filtered
