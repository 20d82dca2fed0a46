"""
Pydantic schemas for strategy and walk-forward definitions.

Accepts the JSON rule format stored by the strategy builder, e.g.
``{"indicator": "RSI", "params": {"period": 14}, "operator": "<", "value": 30}``,
including legacy indicator names such as ``SMA_50``, ``MACD_signal`` or
``BB_upper`` and right-hand operands naming another indicator.
"""

import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from src.core.enums import (
    Comparator,
    CrossDirection,
    IndicatorKind,
    JoinOperator,
    OptimizationMetric,
    PositionSizing,
    TradeDirection,
)
from src.core.exceptions.backtest import ValidationError
from src.core.models.optimization import ParameterRange, WalkForwardConfig
from src.core.models.strategy import (
    ComparisonCondition,
    ConditionNode,
    CrossoverCondition,
    IndicatorRef,
    IndicatorSpec,
    Operand,
    Strategy,
)

_NUMBER = re.compile(r"^-?\d+(\.\d+)?$")

_CROSS_OPERATORS = {
    "CROSS_ABOVE": CrossDirection.ABOVE,
    "CROSSES_ABOVE": CrossDirection.ABOVE,
    "CROSS_BELOW": CrossDirection.BELOW,
    "CROSSES_BELOW": CrossDirection.BELOW,
}

# Legacy output suffixes; a bare "MACD" is the MACD line
_OUTPUT_SUFFIXES = {
    IndicatorKind.MACD: {
        "MACD": "macd",
        "SIGNAL": "signal",
        "HISTOGRAM": "histogram",
        "HIST": "histogram",
    },
    IndicatorKind.BOLLINGER: {
        "MIDDLE": "middle",
        "UPPER": "upper",
        "LOWER": "lower",
        "WIDTH": "width",
    },
    IndicatorKind.STOCHASTIC: {"K": "k", "D": "d"},
}


def parse_indicator_name(
    name: str, params: Mapping[str, float] | None = None, output: str | None = None
) -> IndicatorRef:
    """
    Resolve an indicator name to a reference.

    ``SMA_50`` sets the period to 50, ``STOCH_14`` the %K period; ``BB_upper``
    or ``MACD_signal`` select an output. Explicit ``params`` and ``output``
    take precedence over values encoded in the name.

    Raises:
        ValidationError: If the name or its suffix is not recognized
    """
    base, _, suffix = name.strip().partition("_")
    try:
        kind = IndicatorKind.from_string(base)
    except ValueError as e:
        raise ValidationError(str(e)) from e

    encoded: dict[str, float] = {}
    encoded_output: str | None = None
    if suffix:
        if _NUMBER.match(suffix):
            if "period" in kind.default_params:
                encoded["period"] = float(suffix)
            elif "k_period" in kind.default_params:
                encoded["k_period"] = float(suffix)
            else:
                raise ValidationError(f"Indicator {name!r} does not take a numeric suffix")
        else:
            encoded_output = _OUTPUT_SUFFIXES.get(kind, {}).get(suffix.upper())
            if encoded_output is None:
                raise ValidationError(f"Unknown output {suffix!r} in indicator name {name!r}")

    spec = IndicatorSpec.create(kind, {**encoded, **(params or {})})
    return IndicatorRef(spec=spec, output=output or encoded_output)


class ConditionDefinition(BaseModel):
    """A single rule condition in the stored JSON format."""

    model_config = ConfigDict(extra="forbid")

    indicator: str = Field(..., min_length=1, description="Indicator name, e.g. RSI or SMA_50")
    params: dict[str, float] = Field(default_factory=dict, description="Indicator parameters")
    output: str | None = Field(default=None, description="Output of a multi-output indicator")
    operator: str = Field(..., description="Comparator or CROSS_ABOVE / CROSS_BELOW")
    value: float | str = Field(..., description="Threshold or the name of another indicator")
    value_params: dict[str, float] = Field(
        default_factory=dict, description="Parameters of the right-hand indicator"
    )
    join: JoinOperator = Field(default=JoinOperator.AND, description="Join with previous rule")

    @field_validator("operator")
    @classmethod
    def validate_operator(cls, v: str) -> str:
        """Normalize the operator to a comparator symbol or a cross keyword."""
        operator = v.strip()
        if operator.upper() in _CROSS_OPERATORS:
            return _CROSS_OPERATORS[operator.upper()].value
        if operator in {c.value for c in Comparator}:
            return operator
        raise ValueError(f"Unsupported operator: {v}")

    @field_validator("join", mode="before")
    @classmethod
    def normalize_join(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    def _right_operand(self) -> Operand:
        if isinstance(self.value, str):
            if _NUMBER.match(self.value.strip()):
                return float(self.value)
            return parse_indicator_name(self.value, self.value_params)
        return float(self.value)

    def to_node(self) -> ConditionNode:
        """Convert to a domain condition node."""
        left = parse_indicator_name(self.indicator, self.params, self.output)
        right = self._right_operand()

        condition: ComparisonCondition | CrossoverCondition
        if self.operator in _CROSS_OPERATORS:
            condition = CrossoverCondition(left, CrossDirection(self.operator), right)
        else:
            condition = ComparisonCondition(left, Comparator(self.operator), right)
        return ConditionNode(condition=condition, join=self.join)


class StrategyDefinition(BaseModel):
    """A strategy in the stored JSON format; persistence fields are ignored."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1)
    entry_rules: list[ConditionDefinition] = Field(..., min_length=1)
    exit_rules: list[ConditionDefinition] = Field(default_factory=list)
    position_sizing: PositionSizing = Field(default=PositionSizing.PERCENT_CAPITAL)
    position_size_value: float = Field(default=10.0, gt=0)
    stop_loss_percent: float | None = Field(default=None, gt=0, lt=100)
    take_profit_percent: float | None = Field(default=None, gt=0)
    max_positions: int = Field(default=1, ge=1)
    commission_percent: float = Field(default=0.0, ge=0, lt=100)
    slippage_percent: float = Field(default=0.0, ge=0, lt=100)
    initial_capital: float = Field(default=100000.0, gt=0)
    direction: TradeDirection = Field(default=TradeDirection.LONG)

    @field_validator("position_sizing", mode="before")
    @classmethod
    def parse_position_sizing(cls, v: Any) -> Any:
        """Accept sizing names case-insensitively, including FIXED."""
        return PositionSizing.from_string(v) if isinstance(v, str) else v

    @field_validator("direction", mode="before")
    @classmethod
    def normalize_direction(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    def to_strategy(self) -> Strategy:
        """Convert to a domain Strategy."""
        return Strategy(
            name=self.name,
            entry_rules=tuple(rule.to_node() for rule in self.entry_rules),
            exit_rules=tuple(rule.to_node() for rule in self.exit_rules),
            position_sizing=self.position_sizing,
            position_size_value=self.position_size_value,
            stop_loss_percent=self.stop_loss_percent,
            take_profit_percent=self.take_profit_percent,
            max_positions=self.max_positions,
            commission_percent=self.commission_percent,
            slippage_percent=self.slippage_percent,
            initial_capital=self.initial_capital,
            direction=self.direction,
        )


class ParameterRangeDefinition(BaseModel):
    """Inclusive ``{min, max, step}`` range of one parameter."""

    model_config = ConfigDict(extra="forbid")

    min: float
    max: float
    step: float = Field(..., gt=0)

    @field_validator("max")
    @classmethod
    def validate_bounds(cls, v: float, info) -> float:
        """Validate that max is not below min."""
        if "min" in info.data and v < info.data["min"]:
            raise ValueError("max must be greater than or equal to min")
        return v


class WalkForwardDefinition(BaseModel):
    """Walk-forward settings in the stored JSON format."""

    model_config = ConfigDict(extra="forbid")

    train_window_months: int = Field(..., ge=1)
    test_window_months: int = Field(..., ge=1)
    parameter_ranges: dict[str, ParameterRangeDefinition] = Field(default_factory=dict)
    optimization_metric: OptimizationMetric = Field(default=OptimizationMetric.SHARPE)

    @field_validator("optimization_metric", mode="before")
    @classmethod
    def normalize_metric(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    def to_config(self) -> WalkForwardConfig:
        """Convert to a domain WalkForwardConfig, keeping range order."""
        return WalkForwardConfig(
            train_window_months=self.train_window_months,
            test_window_months=self.test_window_months,
            parameter_ranges=[
                ParameterRange(name=name, min_value=r.min, max_value=r.max, step=r.step)
                for name, r in self.parameter_ranges.items()
            ],
            optimization_metric=self.optimization_metric,
        )


def _format_errors(error: PydanticValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in item['loc']) or 'definition'}: {item['msg']}"
        for item in error.errors()
    )


def parse_strategy(data: Mapping[str, Any]) -> Strategy:
    """
    Parse a JSON-like strategy definition.

    Raises:
        ValidationError: If the definition is malformed
    """
    try:
        definition = StrategyDefinition.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid strategy definition: {_format_errors(e)}") from e
    return definition.to_strategy()


def parse_walk_forward(data: Mapping[str, Any]) -> WalkForwardConfig:
    """
    Parse a JSON-like walk-forward definition.

    Raises:
        ValidationError: If the definition is malformed
    """
    try:
        definition = WalkForwardDefinition.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid walk-forward definition: {_format_errors(e)}") from e
    return definition.to_config()
