"""
Unit tests for strategy domain models.

Tests cover indicator specs and references, condition variants,
strategy validation and parameter cloning.
"""

import pytest

from src.core.enums import (
    Comparator,
    CrossDirection,
    IndicatorKind,
    JoinOperator,
    PositionSizing,
    TradeDirection,
)
from src.core.exceptions.backtest import ValidationError
from src.core.models.strategy import (
    ComparisonCondition,
    ConditionNode,
    CrossoverCondition,
    IndicatorRef,
    IndicatorSpec,
    Strategy,
)


def sma_cross_strategy(**overrides) -> Strategy:
    fields = {
        "name": "SMA Cross",
        "entry_rules": [
            ConditionNode(
                CrossoverCondition(
                    IndicatorRef.of(IndicatorKind.CLOSE),
                    CrossDirection.ABOVE,
                    IndicatorRef.of(IndicatorKind.SMA, period=20),
                )
            )
        ],
        "exit_rules": [
            ConditionNode(
                ComparisonCondition(
                    IndicatorRef.of(IndicatorKind.CLOSE),
                    Comparator.LT,
                    IndicatorRef.of(IndicatorKind.SMA, period=20),
                )
            )
        ],
    }
    fields.update(overrides)
    return Strategy(**fields)


class TestIndicatorSpec:
    """Test indicator spec normalization and validation."""

    def test_should_merge_default_parameters(self):
        """Test omitted parameters take their defaults."""
        spec = IndicatorSpec.create(IndicatorKind.MACD, {"fast": 8})

        assert spec.get_params() == {"fast": 8, "slow": 26, "signal": 9}

    def test_should_accept_kind_name_and_coerce_integral_floats(self):
        """Test kind names resolve and 50.0 becomes the int 50."""
        spec = IndicatorSpec.create("sma", {"period": 50.0})

        assert spec.kind == IndicatorKind.SMA
        assert spec.param("period") == 50
        assert isinstance(spec.param("period"), int)

    def test_should_be_hashable_and_equal_for_same_values(self):
        """Test specs with the same values share a cache key."""
        explicit = IndicatorSpec.create(IndicatorKind.RSI, {"period": 14})
        default = IndicatorSpec.create(IndicatorKind.RSI)

        assert explicit == default
        assert hash(explicit) == hash(default)
        assert len({explicit, default}) == 1

    @pytest.mark.parametrize(
        "kind,params",
        [
            (IndicatorKind.SMA, {"period": 0}),
            (IndicatorKind.SMA, {"period": 14.5}),
            (IndicatorKind.SMA, {"window": 10}),
            (IndicatorKind.BOLLINGER, {"period": 1}),
            (IndicatorKind.BOLLINGER, {"std_dev": 0}),
            (IndicatorKind.MACD, {"fast": 26, "slow": 12}),
            (IndicatorKind.CLOSE, {"period": 5}),
        ],
    )
    def test_should_reject_invalid_parameters(self, kind, params):
        """Test invalid parameter sets raise ValidationError."""
        with pytest.raises(ValidationError):
            IndicatorSpec.create(kind, params)

    def test_should_reject_unknown_kind_name(self):
        """Test unknown indicator names raise ValidationError."""
        with pytest.raises(ValidationError, match="Unsupported indicator"):
            IndicatorSpec.create("ICHIMOKU")

    def test_with_param_should_ignore_parameters_the_kind_lacks(self):
        """Test with_param leaves specs without the parameter untouched."""
        spec = IndicatorSpec.create(IndicatorKind.VWAP)

        assert spec.with_param("period", 10) is spec

    def test_label_should_render_parameters(self):
        """Test human-readable labels."""
        assert IndicatorSpec.create(IndicatorKind.SMA, {"period": 50}).label == "SMA(period=50)"
        assert IndicatorSpec.create(IndicatorKind.CLOSE).label == "CLOSE"


class TestIndicatorRef:
    """Test indicator output references."""

    def test_should_default_to_primary_output(self):
        """Test omitted output resolves to the first output."""
        assert IndicatorRef.of(IndicatorKind.MACD).output == "macd"
        assert IndicatorRef.of(IndicatorKind.BOLLINGER).output == "middle"
        assert IndicatorRef.of(IndicatorKind.SMA).output == "value"

    def test_should_reject_unknown_output(self):
        """Test naming a missing output raises ValidationError."""
        with pytest.raises(ValidationError, match="no output"):
            IndicatorRef.of(IndicatorKind.STOCHASTIC, output="j")

    def test_label_should_include_output_for_multi_output_kinds(self):
        """Test labels name the output of multi-output indicators."""
        ref = IndicatorRef.of(IndicatorKind.BOLLINGER, output="upper")

        assert ref.label.endswith(".upper")


class TestConditions:
    """Test condition variants."""

    def test_should_coerce_numeric_threshold_to_float(self):
        """Test integer thresholds become floats."""
        condition = ComparisonCondition(IndicatorRef.of(IndicatorKind.RSI), Comparator.LT, 30)

        assert condition.right == 30.0
        assert isinstance(condition.right, float)

    @pytest.mark.parametrize("threshold", ["SMA_50", True, float("nan"), None])
    def test_should_reject_non_numeric_threshold(self, threshold):
        """Test non-numeric, boolean and NaN thresholds are rejected."""
        with pytest.raises(ValidationError):
            ComparisonCondition(IndicatorRef.of(IndicatorKind.RSI), Comparator.LT, threshold)

    def test_references_should_list_indicator_operands(self):
        """Test references include the right operand only when it is an indicator."""
        left = IndicatorRef.of(IndicatorKind.EMA, period=10)
        right = IndicatorRef.of(IndicatorKind.EMA, period=50)

        assert CrossoverCondition(left, CrossDirection.ABOVE, right).references() == (left, right)
        assert ComparisonCondition(left, Comparator.GT, 1.0).references() == (left,)

    def test_node_should_default_to_and_join(self):
        """Test condition nodes join with AND by default."""
        node = ConditionNode(ComparisonCondition(IndicatorRef.of("RSI"), Comparator.LT, 30))

        assert node.join == JoinOperator.AND

    def test_node_should_reject_non_condition(self):
        """Test nodes only hold the closed condition variants."""
        with pytest.raises(ValidationError):
            ConditionNode("RSI < 30")


class TestStrategyValidation:
    """Test strategy construction validation."""

    def test_should_store_rules_as_tuples(self):
        """Test rule lists are frozen into tuples."""
        strategy = sma_cross_strategy()

        assert isinstance(strategy.entry_rules, tuple)
        assert isinstance(strategy.exit_rules, tuple)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"entry_rules": []},
            {"name": "  "},
            {"position_size_value": 0},
            {"position_size_value": 150},
            {"position_sizing": PositionSizing.FIXED_SHARES, "position_size_value": 2.5},
            {"initial_capital": 0},
            {"max_positions": 0},
            {"max_positions": 101},
            {"stop_loss_percent": 0},
            {"stop_loss_percent": 100},
            {"take_profit_percent": -5},
            {"commission_percent": 100},
            {"slippage_percent": -0.1},
        ],
    )
    def test_should_reject_invalid_configuration(self, overrides):
        """Test malformed strategies are rejected before simulation."""
        with pytest.raises(ValidationError):
            sma_cross_strategy(**overrides)

    def test_should_accept_fixed_dollar_above_one_hundred(self):
        """Test the 100 cap only applies to percent-of-capital sizing."""
        strategy = sma_cross_strategy(
            position_sizing=PositionSizing.FIXED_DOLLAR, position_size_value=5000
        )

        assert strategy.position_size_value == 5000

    def test_should_support_short_direction(self):
        """Test short strategies are constructible."""
        strategy = sma_cross_strategy(direction=TradeDirection.SHORT, take_profit_percent=20)

        assert strategy.direction.is_short


class TestStrategyParameters:
    """Test parameter discovery and cloning."""

    def test_indicator_specs_should_be_distinct_and_ordered(self):
        """Test specs referenced by several rules are listed once."""
        specs = sma_cross_strategy().indicator_specs()

        assert [spec.kind for spec in specs] == [IndicatorKind.CLOSE, IndicatorKind.SMA]

    def test_parameter_names_should_include_indicator_and_strategy_fields(self):
        """Test tunable names cover indicator params and strategy fields."""
        names = sma_cross_strategy().parameter_names()

        assert "period" in names
        assert {"stop_loss_percent", "take_profit_percent", "max_positions"} <= names

    def test_with_parameters_should_update_every_rule(self):
        """Test an indicator parameter applies to entry and exit rules."""
        original = sma_cross_strategy()

        clone = original.with_parameters({"period": 30})

        assert clone.entry_rules[0].condition.right.spec.param("period") == 30
        assert clone.exit_rules[0].condition.right.spec.param("period") == 30
        assert original.entry_rules[0].condition.right.spec.param("period") == 20

    def test_with_parameters_should_override_strategy_fields(self):
        """Test strategy fields are replaced and re-validated."""
        clone = sma_cross_strategy().with_parameters({"stop_loss_percent": 5, "max_positions": 3.0})

        assert clone.stop_loss_percent == 5
        assert clone.max_positions == 3

    def test_with_parameters_should_reject_unknown_names(self):
        """Test unknown parameter names raise ValidationError."""
        with pytest.raises(ValidationError, match="Unknown optimization parameters"):
            sma_cross_strategy().with_parameters({"lookback": 10})

    def test_with_parameters_should_validate_values(self):
        """Test invalid candidate values raise ValidationError."""
        with pytest.raises(ValidationError):
            sma_cross_strategy().with_parameters({"period": 0})

    def test_to_dict_should_serialize_rules(self):
        """Test dictionary conversion."""
        data = sma_cross_strategy().to_dict()

        assert data["name"] == "SMA Cross"
        assert data["entry_rules"][0]["operator"] == "CROSS_ABOVE"
        assert data["exit_rules"][0]["right"]["params"] == {"period": 20}
