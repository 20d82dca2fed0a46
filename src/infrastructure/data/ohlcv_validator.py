"""
OHLCV bar frame validation module.

Provides validation and normalization for the bar frames consumed by the
simulator: structure, data types, value ranges and OHLC relationships.
"""

import pandas as pd
from loguru import logger

from src.core.exceptions.backtest import ValidationError

BAR_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume"]
PRICE_COLUMNS = ["open", "high", "low", "close"]


class OHLCVValidator:
    """
    OHLCV bar validator.

    Features:
    - Structure validation (required columns, duplicate timestamps)
    - Numeric type and missing value checks
    - Value ranges (positive prices, non-negative volume)
    - OHLC relationship validation
    - Quality warnings (extreme ranges, unordered timestamps)
    """

    def __init__(self, extreme_range_threshold: float = 0.5):
        """
        Args:
            extreme_range_threshold: High/low range, relative to low, that is
                reported as an extreme move
        """
        self.extreme_range_threshold = extreme_range_threshold

    def validate_data(self, data: pd.DataFrame) -> bool:
        """
        Validate OHLCV bar integrity.

        Args:
            data: DataFrame with OHLCV bars

        Returns:
            True if data is valid

        Raises:
            ValidationError: If data has integrity issues
        """
        self._validate_structure(data)
        if data.empty:
            return True

        self._validate_types(data)
        self._validate_values(data)
        self._validate_ohlc_relationships(data)
        self._report_quality(data)
        return True

    def normalize(self, data: pd.DataFrame) -> pd.DataFrame:
        """
        Validate bars and return them sorted ascending with a fresh index.

        The timestamp column is coerced to datetime64 so date-range filtering
        works whether the source held ISO strings or datetimes.
        """
        self._validate_structure(data)
        result = data[BAR_COLUMNS].copy()
        if not pd.api.types.is_datetime64_any_dtype(result["timestamp"]):
            try:
                result["timestamp"] = pd.to_datetime(result["timestamp"])
            except (ValueError, TypeError) as e:
                raise ValidationError(f"Unparseable timestamp column: {e}") from e

        result = result.sort_values("timestamp", kind="stable").reset_index(drop=True)
        self.validate_data(result)
        return result

    def _validate_structure(self, data: pd.DataFrame) -> None:
        """Validate required columns and unique timestamps."""
        missing_columns = set(BAR_COLUMNS) - set(data.columns)
        if missing_columns:
            raise ValidationError(f"Missing required columns: {sorted(missing_columns)}")

        if data["timestamp"].duplicated().any():
            duplicate_count = int(data["timestamp"].duplicated().sum())
            raise ValidationError(f"Found {duplicate_count} duplicate timestamps in bar data")

    def _validate_types(self, data: pd.DataFrame) -> None:
        """Validate numeric columns and missing values."""
        for col in PRICE_COLUMNS + ["volume"]:
            if not pd.api.types.is_numeric_dtype(data[col]):
                raise ValidationError(f"Column {col} must be numeric")

        for col in BAR_COLUMNS:
            if data[col].isna().any():
                raise ValidationError(f"Column {col} contains missing values")

    def _validate_values(self, data: pd.DataFrame) -> None:
        """Validate value ranges for prices and volume."""
        for col in PRICE_COLUMNS:
            if (data[col] <= 0).any():
                raise ValidationError(f"Column {col} contains non-positive prices")

        if (data["volume"] < 0).any():
            raise ValidationError("Volume column contains negative values")

    def _validate_ohlc_relationships(self, data: pd.DataFrame) -> None:
        """Validate that high and low bound open and close."""
        invalid_ohlc = (
            (data["high"] < data["low"])
            | (data["high"] < data[["open", "close"]].max(axis=1))
            | (data["low"] > data[["open", "close"]].min(axis=1))
        )

        if invalid_ohlc.any():
            first_bad = data.loc[invalid_ohlc, "timestamp"].iloc[0]
            raise ValidationError(
                f"Invalid OHLC relationships found in {int(invalid_ohlc.sum())} bars "
                f"(first at {first_bad})"
            )

    def _report_quality(self, data: pd.DataFrame) -> None:
        """Log warnings for anomalies that do not invalidate the data."""
        bar_range = (data["high"] - data["low"]) / data["low"]
        extreme_moves = bar_range > self.extreme_range_threshold
        if extreme_moves.any():
            logger.warning(
                f"Found {int(extreme_moves.sum())} bars with extreme price ranges "
                f"(>{self.extreme_range_threshold:.0%})"
            )

        if not data["timestamp"].is_monotonic_increasing:
            logger.warning("Timestamps are not in ascending order")
