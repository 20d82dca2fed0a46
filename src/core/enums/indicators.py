"""
Indicator kind enumerations.

This module defines the indicators the engine can evaluate, their default
parameters and their named outputs.
"""

from enum import StrEnum


class IndicatorKind(StrEnum):
    """
    Supported indicator kinds.

    Raw price and volume fields are modelled as indicators with no
    parameters and no warm-up so rules can reference them uniformly.
    """

    # Trend
    SMA = "SMA"
    EMA = "EMA"
    MACD = "MACD"
    ADX = "ADX"

    # Oscillators
    RSI = "RSI"
    STOCHASTIC = "STOCHASTIC"

    # Volatility
    BOLLINGER = "BOLLINGER"
    ATR = "ATR"

    # Volume
    VWAP = "VWAP"

    # Raw bar fields
    OPEN = "OPEN"
    HIGH = "HIGH"
    LOW = "LOW"
    CLOSE = "CLOSE"
    VOLUME = "VOLUME"

    @property
    def default_params(self) -> dict[str, float]:
        """Default parameter set for this kind."""
        defaults: dict[IndicatorKind, dict[str, float]] = {
            IndicatorKind.SMA: {"period": 20},
            IndicatorKind.EMA: {"period": 20},
            IndicatorKind.MACD: {"fast": 12, "slow": 26, "signal": 9},
            IndicatorKind.ADX: {"period": 14},
            IndicatorKind.RSI: {"period": 14},
            IndicatorKind.STOCHASTIC: {"k_period": 14, "d_period": 3},
            IndicatorKind.BOLLINGER: {"period": 20, "std_dev": 2.0},
            IndicatorKind.ATR: {"period": 14},
        }
        return dict(defaults.get(self, {}))

    @property
    def outputs(self) -> tuple[str, ...]:
        """Named outputs; the first one is the primary output."""
        multi_outputs: dict[IndicatorKind, tuple[str, ...]] = {
            IndicatorKind.MACD: ("macd", "signal", "histogram"),
            IndicatorKind.STOCHASTIC: ("k", "d"),
            IndicatorKind.BOLLINGER: ("middle", "upper", "lower", "width"),
        }
        return multi_outputs.get(self, ("value",))

    @property
    def primary_output(self) -> str:
        """Output used when a rule does not name one."""
        return self.outputs[0]

    @property
    def is_raw_field(self) -> bool:
        """Check if this kind reads a bar column directly."""
        return self in [self.OPEN, self.HIGH, self.LOW, self.CLOSE, self.VOLUME]

    @classmethod
    def integer_params(cls) -> frozenset[str]:
        """Parameters that must be whole bar counts."""
        return frozenset({"period", "fast", "slow", "signal", "k_period", "d_period"})

    @classmethod
    def from_string(cls, value: str) -> "IndicatorKind":
        """
        Convert string to IndicatorKind, accepting common aliases.

        Raises:
            ValueError: If indicator is not supported
        """
        value_upper = value.strip().upper()
        aliases = {
            "BB": cls.BOLLINGER,
            "BBANDS": cls.BOLLINGER,
            "STOCH": cls.STOCHASTIC,
            "PRICE": cls.CLOSE,
        }
        if value_upper in aliases:
            return aliases[value_upper]
        for kind in cls:
            if kind.value == value_upper:
                return kind
        raise ValueError(
            f"Unsupported indicator: {value}. "
            f"Supported indicators: {', '.join([k.value for k in cls])}"
        )
