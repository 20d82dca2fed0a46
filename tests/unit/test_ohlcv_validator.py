"""
Unit tests for OHLCV bar validation and normalization.
"""

from unittest.mock import Mock, patch

import numpy as np
import pandas as pd
import pytest

from src.core.exceptions.backtest import ValidationError
from src.infrastructure.data.ohlcv_validator import BAR_COLUMNS, OHLCVValidator


@pytest.fixture
def validator() -> OHLCVValidator:
    return OHLCVValidator()


@pytest.fixture
def bars(make_bars) -> pd.DataFrame:
    return make_bars([100.0, 101.0, 102.0, 101.5, 103.0])


class TestValidateData:
    """Test integrity checks."""

    def test_valid_bars_should_pass(self, validator, bars):
        assert validator.validate_data(bars) is True

    def test_empty_frame_with_columns_should_pass(self, validator):
        assert validator.validate_data(pd.DataFrame(columns=BAR_COLUMNS)) is True

    def test_missing_columns_should_raise(self, validator, bars):
        with pytest.raises(ValidationError, match="Missing required columns"):
            validator.validate_data(bars.drop(columns=["volume"]))

    def test_duplicate_timestamps_should_raise(self, validator, bars):
        bars.loc[1, "timestamp"] = bars.loc[0, "timestamp"]

        with pytest.raises(ValidationError, match="1 duplicate timestamps"):
            validator.validate_data(bars)

    def test_non_numeric_prices_should_raise(self, validator, bars):
        bars["close"] = bars["close"].astype(str)

        with pytest.raises(ValidationError, match="must be numeric"):
            validator.validate_data(bars)

    def test_missing_values_should_raise(self, validator, bars):
        bars.loc[2, "volume"] = np.nan

        with pytest.raises(ValidationError, match="missing values"):
            validator.validate_data(bars)

    def test_non_positive_prices_should_raise(self, validator, bars):
        bars.loc[2, ["open", "low"]] = 0.0

        with pytest.raises(ValidationError, match="non-positive prices"):
            validator.validate_data(bars)

    def test_negative_volume_should_raise(self, validator, bars):
        bars.loc[0, "volume"] = -1.0

        with pytest.raises(ValidationError, match="negative values"):
            validator.validate_data(bars)

    def test_high_below_close_should_raise(self, validator, bars):
        bars.loc[3, "high"] = 100.0

        with pytest.raises(ValidationError, match="Invalid OHLC relationships found in 1 bars"):
            validator.validate_data(bars)

    @patch("src.infrastructure.data.ohlcv_validator.logger")
    def test_extreme_range_should_only_warn(self, mock_logger: Mock, validator, bars):
        bars.loc[4, "high"] = 200.0

        assert validator.validate_data(bars) is True
        assert "extreme price ranges" in mock_logger.warning.call_args[0][0]


class TestNormalize:
    """Test normalization of raw frames."""

    def test_should_parse_sort_and_select_columns(self, validator):
        raw = pd.DataFrame(
            {
                "timestamp": ["2023-01-03", "2023-01-01", "2023-01-02"],
                "open": [3.0, 1.0, 2.0],
                "high": [3.0, 1.0, 2.0],
                "low": [3.0, 1.0, 2.0],
                "close": [3.0, 1.0, 2.0],
                "volume": [10.0, 10.0, 10.0],
                "symbol": ["X", "X", "X"],
            },
            index=[7, 8, 9],
        )

        result = validator.normalize(raw)

        assert list(result.columns) == BAR_COLUMNS
        assert pd.api.types.is_datetime64_any_dtype(result["timestamp"])
        assert list(result["close"]) == [1.0, 2.0, 3.0]
        assert list(result.index) == [0, 1, 2]

    def test_should_not_modify_input(self, validator, bars):
        shuffled = bars.iloc[::-1]

        validator.normalize(shuffled)

        assert shuffled["close"].iloc[0] == 103.0

    def test_unparseable_timestamps_should_raise(self, validator, bars):
        bars["timestamp"] = [f"not a date {i}" for i in range(len(bars))]

        with pytest.raises(ValidationError, match="Unparseable timestamp"):
            validator.normalize(bars)
