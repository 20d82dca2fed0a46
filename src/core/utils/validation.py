"""
Validation utilities for core domain models.

Provides consistent validation across the application.
"""

import math
import re
from typing import Any

from src.core.exceptions.backtest import ValidationError

_SYMBOL_PATTERN = re.compile(r"^[A-Z0-9^][A-Z0-9.\-^=]{0,19}$")


def validate_symbol(symbol: Any, param_name: str = "symbol") -> str:
    """Validate and normalize a ticker symbol.

    Args:
        symbol: Value to validate
        param_name: Parameter name for error messages

    Returns:
        The upper-cased symbol

    Raises:
        ValidationError: If symbol is not a plausible ticker
    """
    if not isinstance(symbol, str):
        raise ValidationError(f"{param_name} must be a string, got {type(symbol).__name__}")
    normalized = symbol.strip().upper()
    if not _SYMBOL_PATTERN.match(normalized):
        raise ValidationError(f"Invalid {param_name}: {symbol!r}")
    return normalized


def validate_finite(value: float, param_name: str) -> float:
    """Validate that a numeric value is a finite number.

    Raises:
        ValidationError: If value is not numeric or not finite
    """
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ValidationError(f"{param_name} must be numeric, got {type(value).__name__}")
    if not math.isfinite(value):
        raise ValidationError(f"{param_name} must be finite, got {value}")
    return value


def validate_positive(value: float, param_name: str) -> float:
    """Validate that a numeric value is positive.

    Args:
        value: Value to validate
        param_name: Parameter name for error messages

    Returns:
        The validated value

    Raises:
        ValidationError: If value is not positive
    """
    validate_finite(value, param_name)
    if value <= 0:
        raise ValidationError(f"{param_name} must be positive, got {value}")
    return value


def validate_percentage(value: float, param_name: str = "percentage") -> float:
    """Validate that a value is a valid percentage (0-100).

    Args:
        value: Value to validate
        param_name: Parameter name for error messages

    Returns:
        The validated percentage

    Raises:
        ValidationError: If value is not between 0 and 100
    """
    validate_finite(value, param_name)
    if value <= 0 or value > 100:
        raise ValidationError(f"{param_name} must be between 0 and 100, got {value}")
    return value


def validate_cost_percentage(value: float, param_name: str) -> float:
    """Validate a commission or slippage percentage (0 inclusive, below 100).

    Raises:
        ValidationError: If value is negative or 100 and above
    """
    validate_finite(value, param_name)
    if value < 0 or value >= 100:
        raise ValidationError(f"{param_name} must be in [0, 100), got {value}")
    return value


def validate_whole_number(value: float, param_name: str, minimum: int = 1) -> int:
    """Validate that a value is a whole number no smaller than ``minimum``.

    Accepts integral floats (e.g. 10.0 produced by a parameter grid).

    Returns:
        The value as int

    Raises:
        ValidationError: If value is fractional or below minimum
    """
    validate_finite(value, param_name)
    if float(value) != math.floor(value):
        raise ValidationError(f"{param_name} must be a whole number, got {value}")
    as_int = int(value)
    if as_int < minimum:
        raise ValidationError(f"{param_name} must be at least {minimum}, got {value}")
    return as_int
