"""
CSV market data provider implementation.

This module loads historical OHLCV bars from one CSV file per symbol and
timeframe, with caching and validation.
"""

import asyncio
import re
from datetime import datetime
from pathlib import Path

import pandas as pd
from cachetools import LRUCache
from loguru import logger

from src.core.enums import Timeframe
from src.core.exceptions.backtest import DataError, ValidationError
from src.core.interfaces.data import IMarketDataProvider
from src.core.utils.validation import validate_symbol

from .bar_frames import filter_by_date_range, parse_timestamps
from .ohlcv_validator import OHLCVValidator

_SAFE_COMPONENT = re.compile(r"^[A-Za-z0-9_.\-^=]+$")


class CSVMarketDataProvider(IMarketDataProvider):
    """
    CSV-based market data provider.

    Reads ``<data_directory>/<SYMBOL>_<timeframe>.csv``. The timestamp column
    may hold ISO dates or epoch milliseconds.

    Features:
    - LRU caching of parsed files
    - Bar validation and ordering
    - Inclusive date range queries
    """

    def __init__(self, data_directory: str | Path = "data", cache_size: int = 32):
        """
        Initialize the CSV provider.

        Args:
            data_directory: Directory containing the CSV files
            cache_size: Maximum number of cached files

        Raises:
            DataError: If the directory does not exist
        """
        self.data_dir = Path(data_directory)
        if not self.data_dir.is_dir():
            raise DataError(f"Data directory not found: {self.data_dir}")
        self._cache: LRUCache[Path, pd.DataFrame] = LRUCache(maxsize=cache_size)
        self._validator = OHLCVValidator()

    def file_path(self, symbol: str, timeframe: Timeframe) -> Path:
        """Path of the CSV file for a symbol and timeframe."""
        safe_symbol = validate_symbol(symbol)
        if not _SAFE_COMPONENT.match(safe_symbol) or ".." in safe_symbol:
            raise ValidationError(f"Invalid symbol for file lookup: {symbol!r}")
        return self.data_dir / f"{safe_symbol}_{timeframe.value}.csv"

    async def load_bars(
        self, symbol: str, timeframe: Timeframe, start: datetime, end: datetime
    ) -> pd.DataFrame:
        """
        Load OHLCV bars for the specified parameters.

        Raises:
            ValidationError: If parameters or file contents are invalid
            DataError: If the file is missing or unreadable
        """
        if start > end:
            raise ValidationError("start must be before or equal to end")

        file_path = self.file_path(symbol, timeframe)
        bars = await self._load_file(file_path)
        filtered = filter_by_date_range(bars, start, end)

        logger.info(
            f"Loaded {len(filtered)} {timeframe.value} bars for {symbol} "
            f"from {start.date()} to {end.date()}"
        )
        return filtered

    async def _load_file(self, file_path: Path) -> pd.DataFrame:
        """Load and normalize a CSV file, using the cache when possible."""
        cached = self._cache.get(file_path)
        if cached is not None:
            logger.debug(f"Cache hit for {file_path.name}")
            return cached

        if not file_path.exists():
            raise DataError(
                f"Data file not found: {file_path} "
                f"(available symbols: {', '.join(self.get_available_symbols()) or 'none'})"
            )

        loop = asyncio.get_running_loop()
        try:
            raw = await loop.run_in_executor(None, pd.read_csv, file_path)
        except pd.errors.EmptyDataError as e:
            raise DataError(f"Data file is empty: {file_path.name}") from e
        except (OSError, pd.errors.ParserError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read {file_path.name}: {e}")
            raise DataError(f"Failed to load CSV file: {file_path.name}") from e

        raw.columns = [str(col).strip().lower() for col in raw.columns]
        if "timestamp" in raw.columns:
            try:
                raw["timestamp"] = parse_timestamps(raw["timestamp"])
            except (ValueError, TypeError) as e:
                raise ValidationError(f"Unparseable timestamps in {file_path.name}") from e

        bars = self._validator.normalize(raw)
        self._cache[file_path] = bars
        logger.debug(f"Loaded {len(bars)} rows from {file_path.name}")
        return bars

    def get_available_symbols(self) -> list[str]:
        """Symbols with at least one CSV file in the data directory."""
        symbols = {path.stem.rsplit("_", 1)[0] for path in self.data_dir.glob("*_*.csv")}
        return sorted(symbols)

    def clear_cache(self) -> None:
        """Clear the file cache."""
        self._cache.clear()

    async def close(self) -> None:
        """Clean up resources and close the provider."""
        self.clear_cache()
        logger.info("CSV market data provider closed")

    async def __aenter__(self) -> "CSVMarketDataProvider":
        """Async context manager entry."""
        return self

    async def __aexit__(
        self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: object
    ) -> None:
        """Async context manager exit with cleanup."""
        await self.close()
