"""
Trade direction, exit reason and order rejection enumerations.

This module defines the closed vocabularies used by the position manager
and the trade ledger.
"""

from enum import StrEnum


class TradeDirection(StrEnum):
    """
    Allowed trade directions.

    Defines whether a trade profits from rising or falling prices.
    """

    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def is_long(self) -> bool:
        """Check if direction is long."""
        return self == self.LONG

    @property
    def is_short(self) -> bool:
        """Check if direction is short."""
        return self == self.SHORT

    @property
    def sign(self) -> int:
        """+1 for long, -1 for short."""
        return 1 if self.is_long else -1

    def opposite(self) -> "TradeDirection":
        """Get the opposite direction."""
        return self.SHORT if self.is_long else self.LONG  # type: ignore[return-value]


class ExitReason(StrEnum):
    """
    Reasons a trade was closed.

    Every closed trade carries exactly one of these.
    """

    STOP_LOSS = "STOP_LOSS"
    TAKE_PROFIT = "TAKE_PROFIT"
    RULE_EXIT = "RULE_EXIT"
    END_OF_DATA = "END_OF_DATA"

    @property
    def is_protective(self) -> bool:
        """Check if the exit was triggered by a stop or target level."""
        return self in [self.STOP_LOSS, self.TAKE_PROFIT]


class OrderRejection(StrEnum):
    """Reasons an entry signal did not open a trade."""

    AT_CAPACITY = "AT_CAPACITY"
    ZERO_SHARES = "ZERO_SHARES"
    INSUFFICIENT_CAPITAL = "INSUFFICIENT_CAPITAL"
