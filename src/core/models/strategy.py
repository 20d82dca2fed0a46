"""
Strategy domain model.

A Strategy is an immutable value: entry and exit rules built from a closed
set of condition variants, plus sizing and risk settings. Walk-forward
optimization derives candidate strategies through ``with_parameters``,
which returns an in-memory clone.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from src.core.constants import MAX_POSITIONS_LIMIT, MIN_INITIAL_CAPITAL
from src.core.enums import (
    Comparator,
    CrossDirection,
    IndicatorKind,
    JoinOperator,
    PositionSizing,
    TradeDirection,
)
from src.core.exceptions.backtest import ValidationError
from src.core.utils.validation import (
    validate_cost_percentage,
    validate_finite,
    validate_percentage,
    validate_positive,
    validate_whole_number,
)

# Strategy fields a parameter grid may override besides indicator parameters
TUNABLE_STRATEGY_FIELDS = (
    "position_size_value",
    "stop_loss_percent",
    "take_profit_percent",
    "max_positions",
)


@dataclass(frozen=True)
class IndicatorSpec:
    """An indicator kind with a complete, validated parameter set.

    Parameters are stored as a sorted tuple so specs are hashable and two
    specs with the same kind and values are equal; the indicator cache is
    keyed by this value.
    """

    kind: IndicatorKind
    params: tuple[tuple[str, float], ...] = ()

    def __post_init__(self) -> None:
        """Merge defaults, validate and normalize parameters."""
        supplied = dict(self.params) if not isinstance(self.params, Mapping) else self.params
        defaults = self.kind.default_params

        unknown = set(supplied) - set(defaults)
        if unknown:
            raise ValidationError(
                f"Unknown parameters for {self.kind.value}: {sorted(unknown)}"
            )

        merged = {**defaults, **supplied}
        normalized: dict[str, float] = {}
        for name, value in merged.items():
            if name in IndicatorKind.integer_params():
                minimum = 2 if (self.kind == IndicatorKind.BOLLINGER and name == "period") else 1
                normalized[name] = validate_whole_number(
                    value, f"{self.kind.value}.{name}", minimum=minimum
                )
            else:
                normalized[name] = float(validate_positive(value, f"{self.kind.value}.{name}"))

        if self.kind == IndicatorKind.MACD and normalized["fast"] >= normalized["slow"]:
            raise ValidationError(
                f"MACD fast period must be shorter than slow period, "
                f"got fast={normalized['fast']} slow={normalized['slow']}"
            )

        object.__setattr__(self, "params", tuple(sorted(normalized.items())))

    @classmethod
    def create(
        cls, kind: IndicatorKind | str, params: Mapping[str, float] | None = None
    ) -> "IndicatorSpec":
        """Factory accepting a kind name and a parameter mapping."""
        if isinstance(kind, str) and not isinstance(kind, IndicatorKind):
            try:
                kind = IndicatorKind.from_string(kind)
            except ValueError as e:
                raise ValidationError(str(e)) from e
        return cls(kind=kind, params=tuple((params or {}).items()))

    def param(self, name: str) -> float:
        """Get a parameter value."""
        return dict(self.params)[name]

    def get_params(self) -> dict[str, float]:
        """Get parameters as a dictionary."""
        return dict(self.params)

    def has_param(self, name: str) -> bool:
        """Check whether this spec accepts the named parameter."""
        return name in dict(self.params)

    def with_param(self, name: str, value: float) -> "IndicatorSpec":
        """Return a copy with one parameter replaced; unchanged if not accepted."""
        if not self.has_param(name):
            return self
        params = {**self.get_params(), name: value}
        return IndicatorSpec(kind=self.kind, params=tuple(params.items()))

    @property
    def label(self) -> str:
        """Human-readable label, e.g. ``MACD(fast=12, signal=9, slow=26)``."""
        if not self.params:
            return self.kind.value
        rendered = ", ".join(f"{name}={value:g}" for name, value in self.params)
        return f"{self.kind.value}({rendered})"


@dataclass(frozen=True)
class IndicatorRef:
    """Reference to one output of an indicator."""

    spec: IndicatorSpec
    output: str | None = None

    def __post_init__(self) -> None:
        """Resolve the primary output and validate the output name."""
        output = self.output if self.output is not None else self.spec.kind.primary_output
        if output not in self.spec.kind.outputs:
            raise ValidationError(
                f"{self.spec.kind.value} has no output {output!r}; "
                f"available: {', '.join(self.spec.kind.outputs)}"
            )
        object.__setattr__(self, "output", output)

    @classmethod
    def of(
        cls, kind: IndicatorKind | str, output: str | None = None, **params: float
    ) -> "IndicatorRef":
        """Shorthand: ``IndicatorRef.of(IndicatorKind.SMA, period=50)``."""
        return cls(spec=IndicatorSpec.create(kind, params), output=output)

    def with_param(self, name: str, value: float) -> "IndicatorRef":
        """Return a copy whose spec has one parameter replaced."""
        return IndicatorRef(spec=self.spec.with_param(name, value), output=self.output)

    @property
    def label(self) -> str:
        """Human-readable label."""
        if len(self.spec.kind.outputs) == 1:
            return self.spec.label
        return f"{self.spec.label}.{self.output}"


Operand = IndicatorRef | float


def _normalize_operand(value: Any, field_name: str) -> Operand:
    """Validate a right-hand operand and coerce numbers to float."""
    if isinstance(value, IndicatorRef):
        return value
    return float(validate_finite(value, field_name))


def _operand_with_param(operand: Operand, name: str, value: float) -> Operand:
    if isinstance(operand, IndicatorRef):
        return operand.with_param(name, value)
    return operand


def _operand_to_dict(operand: Operand) -> Any:
    if isinstance(operand, IndicatorRef):
        return {
            "indicator": operand.spec.kind.value,
            "params": operand.spec.get_params(),
            "output": operand.output,
        }
    return operand


@dataclass(frozen=True)
class ComparisonCondition:
    """``left <comparator> right`` evaluated at a single bar."""

    left: IndicatorRef
    comparator: Comparator
    right: Operand

    def __post_init__(self) -> None:
        if not isinstance(self.left, IndicatorRef):
            raise ValidationError("Condition left operand must be an indicator reference")
        object.__setattr__(self, "right", _normalize_operand(self.right, "condition threshold"))

    def references(self) -> tuple[IndicatorRef, ...]:
        """Indicator references this condition reads."""
        if isinstance(self.right, IndicatorRef):
            return (self.left, self.right)
        return (self.left,)

    def with_param(self, name: str, value: float) -> "ComparisonCondition":
        return ComparisonCondition(
            left=self.left.with_param(name, value),
            comparator=self.comparator,
            right=_operand_with_param(self.right, name, value),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "comparison",
            "left": _operand_to_dict(self.left),
            "operator": self.comparator.value,
            "right": _operand_to_dict(self.right),
        }


@dataclass(frozen=True)
class CrossoverCondition:
    """``left`` crosses above or below ``right`` between the previous and current bar."""

    left: IndicatorRef
    direction: CrossDirection
    right: Operand

    def __post_init__(self) -> None:
        if not isinstance(self.left, IndicatorRef):
            raise ValidationError("Condition left operand must be an indicator reference")
        object.__setattr__(self, "right", _normalize_operand(self.right, "crossover level"))

    def references(self) -> tuple[IndicatorRef, ...]:
        """Indicator references this condition reads."""
        if isinstance(self.right, IndicatorRef):
            return (self.left, self.right)
        return (self.left,)

    def with_param(self, name: str, value: float) -> "CrossoverCondition":
        return CrossoverCondition(
            left=self.left.with_param(name, value),
            direction=self.direction,
            right=_operand_with_param(self.right, name, value),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "crossover",
            "left": _operand_to_dict(self.left),
            "operator": self.direction.value,
            "right": _operand_to_dict(self.right),
        }


Condition = ComparisonCondition | CrossoverCondition


@dataclass(frozen=True)
class ConditionNode:
    """A condition and how it joins the node before it.

    The join of the first node in a rule list is ignored.
    """

    condition: Condition
    join: JoinOperator = JoinOperator.AND

    def __post_init__(self) -> None:
        if not isinstance(self.condition, ComparisonCondition | CrossoverCondition):
            raise ValidationError(
                f"Unsupported condition type: {type(self.condition).__name__}"
            )

    def with_param(self, name: str, value: float) -> "ConditionNode":
        return ConditionNode(condition=self.condition.with_param(name, value), join=self.join)

    def to_dict(self) -> dict[str, Any]:
        return {**self.condition.to_dict(), "join": self.join.value}


@dataclass(frozen=True)
class Strategy:
    """Immutable rule-based strategy configuration.

    Raises ValidationError on construction when the configuration is
    malformed, so invalid strategies are rejected before any simulation.
    """

    name: str
    entry_rules: tuple[ConditionNode, ...]
    exit_rules: tuple[ConditionNode, ...] = field(default_factory=tuple)
    position_sizing: PositionSizing = PositionSizing.PERCENT_CAPITAL
    position_size_value: float = 10.0
    stop_loss_percent: float | None = None
    take_profit_percent: float | None = None
    max_positions: int = 1
    commission_percent: float = 0.0
    slippage_percent: float = 0.0
    initial_capital: float = 100000.0
    direction: TradeDirection = TradeDirection.LONG

    def __post_init__(self) -> None:
        """Validate strategy configuration."""
        object.__setattr__(self, "entry_rules", tuple(self.entry_rules))
        object.__setattr__(self, "exit_rules", tuple(self.exit_rules))

        if not self.name or not self.name.strip():
            raise ValidationError("Strategy name must not be empty")
        if not self.entry_rules:
            raise ValidationError(f"Strategy {self.name!r} has no entry rules")
        for node in (*self.entry_rules, *self.exit_rules):
            if not isinstance(node, ConditionNode):
                raise ValidationError("Strategy rules must be ConditionNode instances")

        if not isinstance(self.position_sizing, PositionSizing):
            raise ValidationError(f"Invalid position sizing mode: {self.position_sizing!r}")
        if not isinstance(self.direction, TradeDirection):
            raise ValidationError(f"Invalid trade direction: {self.direction!r}")

        self._validate_sizing()

        if self.stop_loss_percent is not None:
            validate_percentage(self.stop_loss_percent, "stop_loss_percent")
            if self.direction.is_long and self.stop_loss_percent >= 100:
                raise ValidationError("stop_loss_percent must be below 100 for long strategies")
        if self.take_profit_percent is not None:
            validate_positive(self.take_profit_percent, "take_profit_percent")
            if self.direction.is_short and self.take_profit_percent >= 100:
                raise ValidationError("take_profit_percent must be below 100 for short strategies")

        max_positions = validate_whole_number(self.max_positions, "max_positions")
        if max_positions > MAX_POSITIONS_LIMIT:
            raise ValidationError(
                f"max_positions must be at most {MAX_POSITIONS_LIMIT}, got {max_positions}"
            )
        object.__setattr__(self, "max_positions", max_positions)

        validate_cost_percentage(self.commission_percent, "commission_percent")
        validate_cost_percentage(self.slippage_percent, "slippage_percent")

        validate_finite(self.initial_capital, "initial_capital")
        if self.initial_capital <= MIN_INITIAL_CAPITAL:
            raise ValidationError(f"initial_capital must be positive, got {self.initial_capital}")

    def _validate_sizing(self) -> None:
        """Validate position_size_value against the sizing mode."""
        if self.position_sizing == PositionSizing.PERCENT_CAPITAL:
            validate_percentage(self.position_size_value, "position_size_value")
        elif self.position_sizing == PositionSizing.FIXED_SHARES:
            validate_whole_number(self.position_size_value, "position_size_value")
        else:
            validate_positive(self.position_size_value, "position_size_value")

    def indicator_refs(self) -> list[IndicatorRef]:
        """Distinct indicator references read by entry and exit rules, in rule order."""
        refs: list[IndicatorRef] = []
        for node in (*self.entry_rules, *self.exit_rules):
            for ref in node.condition.references():
                if ref not in refs:
                    refs.append(ref)
        return refs

    def indicator_specs(self) -> list[IndicatorSpec]:
        """Distinct indicator specs referenced by entry and exit rules, in rule order."""
        specs: list[IndicatorSpec] = []
        for ref in self.indicator_refs():
            if ref.spec not in specs:
                specs.append(ref.spec)
        return specs

    def parameter_names(self) -> set[str]:
        """Names accepted by ``with_parameters``."""
        names = set(TUNABLE_STRATEGY_FIELDS)
        for spec in self.indicator_specs():
            names.update(spec.get_params())
        return names

    def with_parameters(self, params: Mapping[str, float]) -> "Strategy":
        """Return an in-memory clone with parameters applied.

        A name matching an indicator parameter is applied to every rule
        referencing an indicator with that parameter; a name matching a
        tunable strategy field replaces that field.

        Raises:
            ValidationError: If a name is not tunable or a value is invalid
        """
        unknown = set(params) - self.parameter_names()
        if unknown:
            raise ValidationError(
                f"Unknown optimization parameters for strategy {self.name!r}: {sorted(unknown)}"
            )

        entry_rules = self.entry_rules
        exit_rules = self.exit_rules
        field_overrides: dict[str, Any] = {}
        for name, value in params.items():
            if name in TUNABLE_STRATEGY_FIELDS:
                field_overrides[name] = value
                continue
            entry_rules = tuple(node.with_param(name, value) for node in entry_rules)
            exit_rules = tuple(node.with_param(name, value) for node in exit_rules)

        return replace(self, entry_rules=entry_rules, exit_rules=exit_rules, **field_overrides)

    def to_dict(self) -> dict[str, Any]:
        """Convert strategy to dictionary."""
        return {
            "name": self.name,
            "entry_rules": [node.to_dict() for node in self.entry_rules],
            "exit_rules": [node.to_dict() for node in self.exit_rules],
            "position_sizing": self.position_sizing.value,
            "position_size_value": self.position_size_value,
            "stop_loss_percent": self.stop_loss_percent,
            "take_profit_percent": self.take_profit_percent,
            "max_positions": self.max_positions,
            "commission_percent": self.commission_percent,
            "slippage_percent": self.slippage_percent,
            "initial_capital": self.initial_capital,
            "direction": self.direction.value,
        }
