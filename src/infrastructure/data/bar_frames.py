"""
Bar frame utility functions.

Date-range filtering and timestamp parsing shared by the data providers,
the simulator and the walk-forward optimizer.
"""

from datetime import datetime, timedelta

import pandas as pd


def parse_timestamps(values: pd.Series) -> pd.Series:
    """Parse a timestamp column holding ISO dates or epoch milliseconds."""
    if pd.api.types.is_datetime64_any_dtype(values):
        return values
    if pd.api.types.is_numeric_dtype(values):
        return pd.to_datetime(values, unit="ms")
    return pd.to_datetime(values)


def align_bound(bound: datetime, timestamps: pd.Series) -> pd.Timestamp:
    """Convert a date bound to a Timestamp comparable with ``timestamps``.

    Naive bounds are localized to the column's timezone; aware bounds
    against a naive column are converted to UTC and made naive.
    """
    ts = pd.Timestamp(bound)
    column_tz = getattr(timestamps.dt, "tz", None) if len(timestamps) else None
    if column_tz is not None:
        return ts.tz_localize(column_tz) if ts.tzinfo is None else ts.tz_convert(column_tz)
    if ts.tzinfo is not None:
        return ts.tz_convert("UTC").tz_localize(None)
    return ts


def day_after(end: datetime) -> datetime:
    """Exclusive upper bound for an inclusive end date."""
    return end.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)


def date_range_mask(
    timestamps: pd.Series, start: datetime | None, end: datetime | None
) -> pd.Series:
    """Boolean mask of ``start <= timestamp`` and dates up to ``end`` inclusive."""
    mask = pd.Series(True, index=timestamps.index)
    if start is not None:
        mask &= timestamps >= align_bound(start, timestamps)
    if end is not None:
        mask &= timestamps < align_bound(day_after(end), timestamps)
    return mask


def filter_by_date_range(
    df: pd.DataFrame, start: datetime | None, end: datetime | None
) -> pd.DataFrame:
    """Filter bars to a date range (end date inclusive) and sort by timestamp."""
    if df.empty:
        return df

    filtered_df = df[date_range_mask(df["timestamp"], start, end)]
    return filtered_df.sort_values("timestamp").reset_index(drop=True)
