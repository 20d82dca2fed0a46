"""
Financial helpers for high-performance backtesting calculations.

This module provides float-based helpers used throughout the simulation.
Float64 is used instead of Decimal because a single walk-forward search
replays the same bar series hundreds of times.

IMPORTANT PRECISION CONSIDERATIONS:
- Float64 provides ~15-16 significant decimal digits
- Suitable for backtesting historical data where performance > precision
- Values are only rounded when serialized for reporting
- Always use the provided helpers for slippage, commission and P&L so the
  position manager and the metrics calculator agree on every figure
"""

import math

from src.core.enums import TradeDirection

# Reporting precision (number of decimal places)
FINANCIAL_DECIMALS = 8
PERCENTAGE_DECIMALS = 4
PRICE_DECIMALS = 4

# Common financial values as float constants
ZERO = 0.0
ONE = 1.0
HUNDRED = 100.0


def round_price(price: float) -> float:
    """Round price for reporting."""
    return round(price, PRICE_DECIMALS)


def round_amount(amount: float) -> float:
    """Round a monetary amount for reporting."""
    return round(amount, FINANCIAL_DECIMALS)


def round_percentage(percentage: float) -> float:
    """Round a percentage for reporting."""
    return round(percentage, PERCENTAGE_DECIMALS)


def percent_of(value: float, percent: float) -> float:
    """Return ``percent`` percent of ``value``.

    Examples:
        >>> percent_of(200.0, 5.0)
        10.0
    """
    return value * percent / HUNDRED


def percent_change(start: float, end: float) -> float:
    """Percentage change from start to end; 0 when start is 0."""
    if start == ZERO:
        return ZERO
    return (end - start) / start * HUNDRED


def safe_divide(numerator: float, denominator: float, default: float = ZERO) -> float:
    """Divide, returning ``default`` for a zero denominator or non-finite result."""
    if denominator == ZERO:
        return default
    result = numerator / denominator
    if not math.isfinite(result):
        return default
    return result


def apply_slippage(
    price: float, slippage_percent: float, direction: TradeDirection, is_entry: bool
) -> float:
    """Adjust a fill price for slippage against the trade.

    Longs pay up on entry and receive less on exit; shorts receive less on
    entry and pay up on exit.

    Args:
        price: Reference price (bar close or trigger level)
        slippage_percent: Slippage as a percentage of price
        direction: Trade direction
        is_entry: True for the opening fill, False for the closing fill

    Returns:
        Slipped fill price
    """
    buying = direction.is_long == is_entry
    adjustment = slippage_percent / HUNDRED
    return price * (ONE + adjustment) if buying else price * (ONE - adjustment)


def calculate_commission(notional_value: float, commission_percent: float) -> float:
    """Commission charged on a fill."""
    return abs(notional_value) * commission_percent / HUNDRED


def calculate_pnl(
    entry_price: float,
    exit_price: float,
    shares: float,
    direction: TradeDirection,
) -> float:
    """Gross P&L of a position before commissions.

    Args:
        entry_price: Entry fill price
        exit_price: Exit (or mark) price
        shares: Share count (absolute value is used)
        direction: Trade direction

    Returns:
        Gross P&L as float
    """
    return (exit_price - entry_price) * abs(shares) * direction.sign
