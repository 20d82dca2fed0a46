"""
Strategy configuration enumerations.

This module defines position sizing modes, rule comparators, rule joins
and optimization metrics.
"""

from enum import StrEnum


class PositionSizing(StrEnum):
    """
    Position sizing modes.

    The strategy's position_size_value is interpreted according to the mode:
    a percentage of current capital, a share count, or a dollar amount.
    """

    PERCENT_CAPITAL = "PERCENT_CAPITAL"
    FIXED_SHARES = "FIXED_SHARES"
    FIXED_DOLLAR = "FIXED_DOLLAR"

    @classmethod
    def from_string(cls, value: str) -> "PositionSizing":
        """
        Convert string to PositionSizing enum.

        "FIXED" is accepted as an alias of FIXED_DOLLAR.

        Raises:
            ValueError: If sizing mode is not supported
        """
        value_upper = value.strip().upper()
        if value_upper == "FIXED":
            return cls.FIXED_DOLLAR
        for mode in cls:
            if mode.value == value_upper:
                return mode
        raise ValueError(
            f"Unsupported position sizing: {value}. "
            f"Supported modes: {', '.join([m.value for m in cls])}"
        )


class Comparator(StrEnum):
    """Point-in-time comparators for comparison conditions."""

    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="
    EQ = "=="


class CrossDirection(StrEnum):
    """Directions for crossover conditions."""

    ABOVE = "CROSS_ABOVE"
    BELOW = "CROSS_BELOW"


class JoinOperator(StrEnum):
    """How a condition node joins the node before it."""

    AND = "AND"
    OR = "OR"


class OptimizationMetric(StrEnum):
    """
    Metrics the walk-forward optimizer can maximize.

    Each member maps onto one PerformanceMetrics attribute.
    """

    SHARPE = "SHARPE"
    RETURN = "RETURN"
    PROFIT_FACTOR = "PROFIT_FACTOR"
    WIN_RATE = "WIN_RATE"

    @property
    def attribute(self) -> str:
        """Name of the PerformanceMetrics attribute this metric reads."""
        attributes = {
            OptimizationMetric.SHARPE: "sharpe_ratio",
            OptimizationMetric.RETURN: "total_return_percent",
            OptimizationMetric.PROFIT_FACTOR: "profit_factor",
            OptimizationMetric.WIN_RATE: "win_rate",
        }
        return attributes[self]
