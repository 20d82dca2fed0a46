"""
Unit tests for bar frame utilities.
"""

from datetime import UTC, datetime

import pandas as pd

from src.infrastructure.data.bar_frames import (
    date_range_mask,
    day_after,
    filter_by_date_range,
    parse_timestamps,
)


class TestParseTimestamps:
    """Test timestamp parsing."""

    def test_epoch_milliseconds(self):
        parsed = parse_timestamps(pd.Series([1672531200000, 1672617600000]))

        assert list(parsed) == [pd.Timestamp("2023-01-01"), pd.Timestamp("2023-01-02")]

    def test_iso_strings(self):
        parsed = parse_timestamps(pd.Series(["2023-01-01", "2023-01-02T09:30:00"]))

        assert parsed.iloc[1] == pd.Timestamp("2023-01-02 09:30:00")

    def test_datetimes_should_pass_through(self):
        values = pd.Series(pd.date_range("2023-01-01", periods=2))

        assert parse_timestamps(values) is values


class TestDateRangeMask:
    """Test inclusive date range filtering."""

    def test_end_date_should_include_the_whole_day(self):
        """Test intraday bars on the end date are inside the range."""
        timestamps = pd.Series(pd.date_range("2023-01-01", periods=72, freq="h"))

        mask = date_range_mask(timestamps, datetime(2023, 1, 2), datetime(2023, 1, 2))

        assert mask.sum() == 24
        assert timestamps[mask].iloc[-1] == pd.Timestamp("2023-01-02 23:00")

    def test_open_bounds(self):
        timestamps = pd.Series(pd.date_range("2023-01-01", periods=5))

        assert date_range_mask(timestamps, None, None).all()
        assert date_range_mask(timestamps, datetime(2023, 1, 4), None).sum() == 2
        assert date_range_mask(timestamps, None, datetime(2023, 1, 1)).sum() == 1

    def test_naive_bounds_against_utc_column(self):
        timestamps = pd.Series(pd.date_range("2023-01-01", periods=5, tz="UTC"))

        mask = date_range_mask(timestamps, datetime(2023, 1, 2), datetime(2023, 1, 3))

        assert mask.sum() == 2

    def test_aware_bounds_against_naive_column(self):
        timestamps = pd.Series(pd.date_range("2023-01-01", periods=5))

        mask = date_range_mask(timestamps, datetime(2023, 1, 2, tzinfo=UTC), None)

        assert mask.sum() == 4

    def test_day_after_should_drop_time_of_day(self):
        assert day_after(datetime(2023, 1, 31, 15, 30)) == datetime(2023, 2, 1)


class TestFilterByDateRange:
    """Test frame filtering."""

    def test_should_filter_sort_and_reindex(self, make_bars):
        bars = make_bars([1.0, 2.0, 3.0, 4.0]).iloc[::-1]

        result = filter_by_date_range(bars, datetime(2023, 1, 2), datetime(2023, 1, 3))

        assert list(result["close"]) == [2.0, 3.0]
        assert list(result.index) == [0, 1]

    def test_empty_frame_should_be_returned_unchanged(self, make_bars):
        empty = make_bars([])

        assert filter_by_date_range(empty, datetime(2023, 1, 1), None) is empty
