"""
Bar interval enumerations.

This module defines the allowed intervals for OHLCV bar sequences.
"""

from enum import StrEnum


class Timeframe(StrEnum):
    """
    Allowed bar intervals.

    Daily bars are the default interval for backtests; intraday and weekly
    intervals are accepted from market-data providers that supply them.
    """

    # Minute intervals
    M1 = "1m"  # 1 minute
    M5 = "5m"  # 5 minutes
    M15 = "15m"  # 15 minutes
    M30 = "30m"  # 30 minutes

    # Hour intervals
    H1 = "1h"  # 1 hour
    H4 = "4h"  # 4 hours

    # Day/Week intervals
    D1 = "1d"  # 1 day
    W1 = "1w"  # 1 week

    @classmethod
    def to_seconds(cls, timeframe: "Timeframe") -> int:
        """
        Convert timeframe to seconds.

        Args:
            timeframe: Timeframe enum value

        Returns:
            Number of seconds in the timeframe
        """
        conversions = {
            cls.M1: 60,
            cls.M5: 300,
            cls.M15: 900,
            cls.M30: 1800,
            cls.H1: 3600,
            cls.H4: 14400,
            cls.D1: 86400,
            cls.W1: 604800,
        }
        return conversions[timeframe]

    @classmethod
    def from_string(cls, value: str) -> "Timeframe":
        """
        Convert string to Timeframe enum.

        Accepts the short form ("1d") as well as the long form used by
        market-data vendors ("1day", "1week", "1min", "1hour").

        Args:
            value: String representation of timeframe

        Returns:
            Corresponding Timeframe enum value

        Raises:
            ValueError: If timeframe is not supported
        """
        value_lower = value.strip().lower()
        aliases = {
            "1min": cls.M1,
            "5min": cls.M5,
            "15min": cls.M15,
            "30min": cls.M30,
            "1hour": cls.H1,
            "4hour": cls.H4,
            "1day": cls.D1,
            "daily": cls.D1,
            "1week": cls.W1,
            "weekly": cls.W1,
        }
        if value_lower in aliases:
            return aliases[value_lower]

        for tf in cls:
            if tf.value == value_lower:
                return tf

        raise ValueError(
            f"Unsupported timeframe: {value}. "
            f"Supported timeframes: {', '.join([tf.value for tf in cls])}"
        )

    @property
    def days_per_bar(self) -> float:
        """Calendar days covered by one bar."""
        return Timeframe.to_seconds(self) / 86400
