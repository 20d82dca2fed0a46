"""
Core type definitions and utilities.
"""

# Re-export financial utilities for easy access
from .financial import (
    FINANCIAL_DECIMALS,
    HUNDRED,
    ONE,
    PERCENTAGE_DECIMALS,
    PRICE_DECIMALS,
    ZERO,
    apply_slippage,
    calculate_commission,
    calculate_pnl,
    percent_change,
    percent_of,
    round_amount,
    round_percentage,
    round_price,
    safe_divide,
)

__all__ = [
    # Utility functions
    "round_price",
    "round_amount",
    "round_percentage",
    "percent_of",
    "percent_change",
    "safe_divide",
    "apply_slippage",
    "calculate_commission",
    "calculate_pnl",
    # Constants
    "FINANCIAL_DECIMALS",
    "PERCENTAGE_DECIMALS",
    "PRICE_DECIMALS",
    "ZERO",
    "ONE",
    "HUNDRED",
]
