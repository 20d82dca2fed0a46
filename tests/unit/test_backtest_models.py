"""
Unit tests for backtest configuration, trade and run lifecycle models.
"""

from datetime import UTC, datetime

import pytest

from src.core.enums import (
    ExitReason,
    OptimizationMetric,
    RunStatus,
    RunType,
    Timeframe,
    TradeDirection,
)
from src.core.exceptions.backtest import (
    InvalidStateTransitionError,
    TradeStateError,
    ValidationError,
)
from src.core.models.backtest import BacktestConfig, BacktestRun, PerformanceMetrics
from src.core.models.optimization import (
    CandidateResult,
    OptimizationWindowResult,
    ParameterRange,
    WalkForwardConfig,
)
from src.core.models.trade import EquityPoint, Trade

ENTRY = datetime(2024, 1, 2)
EXIT = datetime(2024, 1, 10)


def make_trade(direction: TradeDirection = TradeDirection.LONG, **overrides) -> Trade:
    fields = {
        "trade_number": 1,
        "symbol": "AAPL",
        "direction": direction,
        "entry_timestamp": ENTRY,
        "entry_price": 100.0,
        "shares": 10,
        "entry_commission": 1.0,
    }
    fields.update(overrides)
    return Trade(**fields)


@pytest.fixture
def config() -> BacktestConfig:
    return BacktestConfig(
        symbol="AAPL",
        start_date=datetime(2024, 1, 1, tzinfo=UTC),
        end_date=datetime(2024, 1, 31, tzinfo=UTC),
        timeframe=Timeframe.D1,
    )


class TestBacktestConfig:
    """Test suite for BacktestConfig model."""

    def test_should_validate_date_range(self, config) -> None:
        assert config.is_valid_date_range()

    def test_should_detect_invalid_date_range(self, config) -> None:
        config.end_date = config.start_date

        assert not config.is_valid_date_range()

    @pytest.mark.parametrize("capital,expected", [(None, True), (5000.0, True), (0.0, False)])
    def test_should_validate_capital_override(self, config, capital, expected) -> None:
        config.initial_capital = capital

        assert config.is_valid_capital() is expected

    def test_to_dict(self, config) -> None:
        assert config.to_dict() == {
            "symbol": "AAPL",
            "timeframe": "1d",
            "start_date": "2024-01-01T00:00:00+00:00",
            "end_date": "2024-01-31T00:00:00+00:00",
            "initial_capital": None,
        }


class TestTrade:
    """Test suite for the Trade model."""

    @pytest.mark.parametrize(
        "overrides",
        [{"shares": 0}, {"entry_price": 0.0}, {"entry_commission": -1.0}],
    )
    def test_should_reject_invalid_fields(self, overrides) -> None:
        with pytest.raises(ValidationError):
            make_trade(**overrides)

    def test_close_should_realize_net_pnl(self) -> None:
        """Test P&L is net of entry and exit commissions."""
        trade = make_trade()

        gross = trade.close(EXIT, 110.0, ExitReason.TAKE_PROFIT, commission=1.0)

        assert gross == 100.0
        assert trade.pnl == 98.0
        assert trade.pnl_percent == pytest.approx(9.8)
        assert trade.commission == 2.0
        assert not trade.is_open
        assert trade.exit_reason == ExitReason.TAKE_PROFIT

    def test_short_close_should_profit_from_falling_price(self) -> None:
        trade = make_trade(TradeDirection.SHORT, entry_commission=0.0)

        trade.close(EXIT, 90.0, ExitReason.RULE_EXIT)

        assert trade.pnl == 100.0

    def test_close_twice_should_raise(self) -> None:
        trade = make_trade()
        trade.close(EXIT, 100.0, ExitReason.END_OF_DATA)

        with pytest.raises(TradeStateError, match="already closed"):
            trade.close(datetime(2024, 1, 11), 100.0, ExitReason.END_OF_DATA)

    def test_exit_not_after_entry_should_raise(self) -> None:
        with pytest.raises(TradeStateError, match="not after entry"):
            make_trade().close(ENTRY, 100.0, ExitReason.STOP_LOSS)

    def test_excursions_for_long_trade(self) -> None:
        trade = make_trade()

        trade.update_extremes(high=112.0, low=97.0)
        trade.update_extremes(high=105.0, low=99.0)

        assert trade.mfe_percent == pytest.approx(12.0)
        assert trade.mae_percent == pytest.approx(-3.0)
        assert trade.bars_in_trade == 2

    def test_excursions_for_short_trade(self) -> None:
        trade = make_trade(TradeDirection.SHORT)

        trade.update_extremes(high=103.0, low=92.0)

        assert trade.mfe_percent == pytest.approx(8.0)
        assert trade.mae_percent == pytest.approx(-3.0)

    def test_to_dict_should_report_exit_fields(self) -> None:
        trade = make_trade(stop_loss_price=95.0)
        trade.close(EXIT, 95.0, ExitReason.STOP_LOSS)

        data = trade.to_dict()

        assert data["direction"] == "LONG"
        assert data["exit_reason"] == "STOP_LOSS"
        assert data["stop_loss_price"] == 95.0
        assert data["take_profit_price"] is None
        assert data["exit_timestamp"] == "2024-01-10T00:00:00"
        assert data["pnl"] == -51.0


class TestBacktestRun:
    """Test suite for the run lifecycle."""

    @pytest.fixture
    def run(self, config) -> BacktestRun:
        return BacktestRun(run_type=RunType.BACKTEST, strategy_name="SMA Cross", config=config)

    def test_should_start_pending_with_unique_id(self, run, config) -> None:
        other = BacktestRun(run_type=RunType.BACKTEST, strategy_name="SMA Cross", config=config)

        assert run.status == RunStatus.PENDING
        assert run.run_id != other.run_id
        assert run.duration_seconds is None

    def test_should_complete_after_running(self, run) -> None:
        metrics = PerformanceMetrics(total_trades=1, final_capital=10_100.0)
        curve = [EquityPoint(datetime(2024, 1, 2), 10_100.0)]

        run.mark_running()
        run.mark_completed(metrics, [], curve, {"2024-01": 1.0})

        assert run.status == RunStatus.COMPLETED
        assert run.metrics is metrics
        assert run.duration_seconds is not None and run.duration_seconds >= 0
        data = run.to_dict()
        assert data["status"] == "COMPLETED"
        assert data["run_type"] == "BACKTEST"
        assert data["equity_curve"] == [{"timestamp": "2024-01-02T00:00:00", "equity": 10100.0}]
        assert data["monthly_returns"] == {"2024-01": 1.0}
        assert data["metrics"]["final_capital"] == 10100.0

    def test_pending_run_may_fail_validation(self, run) -> None:
        run.mark_failed("Invalid date range")

        assert run.status == RunStatus.FAILED
        assert run.error_message == "Invalid date range"
        assert run.to_dict()["metrics"] is None

    def test_should_not_complete_without_running(self, run) -> None:
        with pytest.raises(InvalidStateTransitionError, match="PENDING -> COMPLETED"):
            run.mark_completed(PerformanceMetrics(), [], [], {})

    def test_terminal_run_should_not_change(self, run) -> None:
        run.mark_running()
        run.mark_failed("boom")

        with pytest.raises(InvalidStateTransitionError):
            run.mark_running()


class TestOptimizationModels:
    """Test suite for walk-forward configuration models."""

    @pytest.mark.parametrize(
        "parameter_range,valid",
        [
            (ParameterRange("period", 10, 30, 10), True),
            (ParameterRange("period", 10, 10, 1), True),
            (ParameterRange("period", 30, 10, 10), False),
            (ParameterRange("period", 10, 30, 0), False),
            (ParameterRange("period", 10, float("inf"), 1), False),
            (ParameterRange("", 10, 30, 10), False),
        ],
    )
    def test_parameter_range_validity(self, parameter_range, valid) -> None:
        assert parameter_range.is_valid() is valid

    def test_parameter_range_integrality(self) -> None:
        assert ParameterRange("period", 10.0, 30.0, 10.0).is_integral
        assert not ParameterRange("stop", 1.0, 3.0, 0.5).is_integral

    def test_walk_forward_config_validation(self) -> None:
        config = WalkForwardConfig(
            train_window_months=6,
            test_window_months=3,
            parameter_ranges=[ParameterRange("period", 10, 30, 10)],
        )

        assert config.optimization_metric == OptimizationMetric.SHARPE
        assert config.is_valid_windows()
        assert config.is_valid_ranges()

        config.parameter_ranges.append(ParameterRange("period", 1, 2, 1))
        assert not config.is_valid_ranges()

        config.test_window_months = 0
        assert not config.is_valid_windows()

    def test_candidate_result_success(self) -> None:
        assert CandidateResult({"period": 10}, metrics=PerformanceMetrics()).succeeded
        assert not CandidateResult({"period": 10}, error="No bars").succeeded

    def test_window_result_to_dict(self) -> None:
        window = OptimizationWindowResult(
            window_number=2,
            train_start=datetime(2021, 1, 1),
            train_end=datetime(2021, 6, 30),
            test_start=datetime(2021, 7, 1),
            test_end=datetime(2021, 9, 30),
            params={"period": 20},
            test_return=123.456,
        )

        data = window.to_dict()

        assert data["window_number"] == 2
        assert data["test_start"] == "2021-07-01T00:00:00"
        assert data["params"] == {"period": 20}
        assert data["test_return"] == 123.456
        assert data["skipped"] is False
