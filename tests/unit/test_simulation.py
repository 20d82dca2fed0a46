"""
Unit tests for the bar-by-bar BacktestSimulator.
"""

from datetime import datetime
from unittest.mock import patch

import pytest

from src.core.enums import Comparator, CrossDirection, ExitReason, IndicatorKind
from src.core.exceptions.backtest import DataError
from src.core.models.strategy import (
    ComparisonCondition,
    ConditionNode,
    CrossoverCondition,
    IndicatorRef,
)
from src.engine.simulation import BacktestSimulator, strategy_warmup
from tests.conftest import close_above

CLOSE = IndicatorRef.of(IndicatorKind.CLOSE)


def sma_rules(period: int) -> dict:
    sma = IndicatorRef.of(IndicatorKind.SMA, period=period)
    return {
        "entry_rules": (ConditionNode(CrossoverCondition(CLOSE, CrossDirection.ABOVE, sma)),),
        "exit_rules": (ConditionNode(CrossoverCondition(CLOSE, CrossDirection.BELOW, sma)),),
    }


def close_above_sma(period: int) -> tuple[ConditionNode, ...]:
    sma = IndicatorRef.of(IndicatorKind.SMA, period=period)
    return (ConditionNode(ComparisonCondition(CLOSE, Comparator.GT, sma)),)


class TestSimulationLoop:
    """Test the per-bar order of exits, entries and equity marks."""

    def test_should_emit_one_equity_point_per_bar(self, make_bars, make_strategy):
        """Test the equity curve covers every simulated bar."""
        bars = make_bars([100.0] * 10)

        result = BacktestSimulator(make_strategy(), bars, "TEST").run()

        assert len(result.equity_curve) == 10
        assert result.bars_simulated == 10
        assert [point.timestamp for point in result.equity_curve] == list(bars["timestamp"])

    def test_open_trade_should_be_force_closed_on_last_bar(self, make_bars, make_strategy):
        """Test no trade stays open after the run."""
        result = BacktestSimulator(make_strategy(), make_bars([100.0] * 10), "TEST").run()

        (trade,) = result.trades
        assert trade.exit_reason == ExitReason.END_OF_DATA
        assert trade.shares == 100
        assert trade.bars_in_trade == 9
        assert result.final_capital == pytest.approx(10_000.0)

    def test_never_firing_rule_should_keep_equity_flat(self, make_bars, make_strategy):
        """Test a strategy that never enters leaves capital untouched."""
        strategy = make_strategy(entry_rules=(close_above(1e9),))

        result = BacktestSimulator(strategy, make_bars([100.0, 101.0, 99.0]), "TEST").run()

        assert result.trades == []
        assert [point.equity for point in result.equity_curve] == [10_000.0] * 3
        assert result.total_return == 0.0

    def test_should_not_enter_on_last_bar(self, make_bars, make_strategy):
        """Test an entry signal on the final bar is ignored."""
        strategy = make_strategy(entry_rules=(close_above(150.0),))

        result = BacktestSimulator(strategy, make_bars([100.0] * 4 + [200.0]), "TEST").run()

        assert result.trades == []

    def test_should_reenter_after_protective_exit(self, make_bars, make_strategy):
        """Test a take-profit exit frees capacity for an entry on the same bar."""
        strategy = make_strategy(take_profit_percent=10.0)

        result = BacktestSimulator(strategy, make_bars([100.0, 105.0, 115.0, 120.0]), "TEST").run()

        assert [trade.exit_reason for trade in result.trades] == [
            ExitReason.TAKE_PROFIT,
            ExitReason.END_OF_DATA,
        ]
        assert [trade.trade_number for trade in result.trades] == [1, 2]
        assert result.trades[0].exit_price == pytest.approx(115.0)
        assert result.final_capital == pytest.approx(12_000.0)

    def test_capital_override_should_replace_strategy_capital(self, make_bars, make_strategy):
        """Test the run-level starting capital."""
        result = BacktestSimulator(make_strategy(), make_bars([100.0] * 3), "TEST").run(
            initial_capital=5_000.0
        )

        assert result.starting_capital == 5_000.0
        assert result.trades[0].shares == 50


class TestWarmupAndRange:
    """Test date ranges and indicator warm-up."""

    def test_strategy_warmup_should_be_largest_indicator_warmup(self, make_strategy):
        """Test the strategy warm-up spans every referenced indicator."""
        strategy = make_strategy(
            entry_rules=close_above_sma(5), exit_rules=close_above_sma(30)
        )

        assert strategy_warmup(strategy) == 29

    def test_should_start_after_warmup(self, make_bars, make_strategy):
        """Test simulation begins at the first bar with defined indicators."""
        bars = make_bars(list(range(100, 120)))
        strategy = make_strategy(entry_rules=close_above_sma(5))

        result = BacktestSimulator(strategy, bars, "TEST").run()

        assert result.start_index == 4
        assert result.bars_simulated == 16
        assert result.equity_curve[0].timestamp == bars["timestamp"].iloc[4]

    def test_late_start_should_log_effective_start(self, make_bars, make_strategy):
        """Test a warning names the first simulated bar when warm-up cuts into the range."""
        bars = make_bars(list(range(100, 120)))
        strategy = make_strategy(entry_rules=close_above_sma(5))

        with patch("src.engine.simulation.logger") as mock_logger:
            BacktestSimulator(strategy, bars, "TEST").run()

        mock_logger.warning.assert_called_once()
        message = mock_logger.warning.call_args[0][0]
        assert "2023-01-05" in message
        assert "4 in-range bars skipped" in message

    def test_warmup_from_history_should_not_warn(self, make_bars, make_strategy):
        bars = make_bars(list(range(100, 120)))
        strategy = make_strategy(entry_rules=close_above_sma(5))

        with patch("src.engine.simulation.logger") as mock_logger:
            BacktestSimulator(strategy, bars, "TEST").run(start=datetime(2023, 1, 11))

        mock_logger.warning.assert_not_called()

    def test_history_before_start_should_only_feed_warmup(self, make_bars, make_strategy):
        """Test bars before the start date are not simulated."""
        bars = make_bars(list(range(100, 120)))
        strategy = make_strategy(entry_rules=close_above_sma(5))

        result = BacktestSimulator(strategy, bars, "TEST").run(
            start=datetime(2023, 1, 11), end=datetime(2023, 1, 15)
        )

        assert result.start_index == 10
        assert result.bars_simulated == 5
        assert result.trades[0].entry_timestamp == datetime(2023, 1, 11)
        assert result.equity_curve[-1].timestamp == datetime(2023, 1, 15)

    def test_later_bars_should_not_change_results(self, daily_bars, make_strategy):
        """Test a run is unaffected by bars after its end date."""
        strategy = make_strategy(position_size_value=50.0, **sma_rules(20))
        end = daily_bars["timestamp"].iloc[399].to_pydatetime()

        truncated = BacktestSimulator(strategy, daily_bars.iloc[:400], "TEST").run(end=end)
        full = BacktestSimulator(strategy, daily_bars, "TEST").run(end=end)

        assert [t.to_dict() for t in truncated.trades] == [t.to_dict() for t in full.trades]
        assert truncated.equity_curve == full.equity_curve

    def test_insufficient_warmup_should_raise(self, make_bars, make_strategy):
        """Test a range ending before the warm-up completes."""
        strategy = make_strategy(entry_rules=close_above_sma(50))

        with pytest.raises(DataError, match="warm-up"):
            BacktestSimulator(strategy, make_bars([100.0] * 20), "TEST").run()

    def test_empty_range_should_raise(self, make_bars, make_strategy):
        """Test a date range with no bars."""
        with pytest.raises(DataError, match="No bars"):
            BacktestSimulator(make_strategy(), make_bars([100.0] * 5), "TEST").run(
                start=datetime(2030, 1, 1)
            )

    def test_empty_frame_should_raise(self, make_bars, make_strategy):
        """Test a frame with no bars at all."""
        with pytest.raises(DataError, match="No bar data"):
            BacktestSimulator(make_strategy(), make_bars([]), "TEST").run()

    def test_missing_columns_should_raise(self, make_bars, make_strategy):
        """Test bars without an OHLCV column."""
        bars = make_bars([100.0] * 5).drop(columns="low")

        with pytest.raises(DataError, match="missing columns"):
            BacktestSimulator(make_strategy(), bars, "TEST").run()


class TestSimulationProperties:
    """Test invariants over a realistic random-walk series."""

    @pytest.fixture
    def result(self, daily_bars, make_strategy):
        strategy = make_strategy(
            position_size_value=50.0,
            stop_loss_percent=3.0,
            take_profit_percent=6.0,
            commission_percent=0.1,
            **sma_rules(20),
        )
        return BacktestSimulator(strategy, daily_bars, "TEST").run()

    def test_should_trade(self, result):
        """Test the crossover strategy produces trades."""
        assert len(result.trades) > 0

    def test_protective_exits_should_respect_levels(self, result):
        """Test targets never fill below and stops never fill above their level."""
        for trade in result.trades:
            if trade.exit_reason == ExitReason.TAKE_PROFIT:
                assert trade.exit_price >= trade.take_profit_price - 1e-9
            if trade.exit_reason == ExitReason.STOP_LOSS:
                assert trade.exit_price <= trade.stop_loss_price + 1e-9

    def test_final_equity_should_equal_capital_plus_realized_pnl(self, result):
        """Test equity bookkeeping agrees with the ledger."""
        assert result.final_capital == pytest.approx(
            result.starting_capital + sum(trade.pnl for trade in result.trades)
        )

    def test_trades_should_be_numbered_and_ordered(self, result):
        """Test trades are numbered from 1 and exit after they enter."""
        assert [trade.trade_number for trade in result.trades] == list(
            range(1, len(result.trades) + 1)
        )
        for trade in result.trades:
            assert trade.exit_timestamp > trade.entry_timestamp

    def test_trades_should_snapshot_crossover_operands(self, daily_bars, result):
        """Test entry and rule exits record close above and below the SMA on their bars."""
        sma = daily_bars["close"].rolling(20).mean()
        timestamps = list(daily_bars["timestamp"])

        for trade in result.trades:
            entry = timestamps.index(trade.entry_timestamp)
            assert trade.entry_signal["CLOSE"] == pytest.approx(daily_bars["close"].iloc[entry])
            assert trade.entry_signal["SMA(period=20)"] == pytest.approx(sma.iloc[entry])
            assert trade.entry_signal["CLOSE"] > trade.entry_signal["SMA(period=20)"]
            if trade.exit_reason == ExitReason.RULE_EXIT:
                assert trade.exit_signal["CLOSE"] < trade.exit_signal["SMA(period=20)"]

    def test_monthly_returns_should_cover_every_month(self, result):
        """Test one monthly return per calendar month simulated."""
        assert len(result.monthly_returns) == 24
        assert next(iter(result.monthly_returns)) == "2021-01"

    def test_indicators_should_be_computed_once(self, result):
        """Test each distinct indicator is computed once per run."""
        assert result.cache_stats["misses"] == 2
        assert result.cache_stats["size"] == 2

    def test_runs_should_be_deterministic(self, daily_bars, make_strategy, result):
        """Test identical inputs give identical outputs."""
        strategy = make_strategy(
            position_size_value=50.0,
            stop_loss_percent=3.0,
            take_profit_percent=6.0,
            commission_percent=0.1,
            **sma_rules(20),
        )

        again = BacktestSimulator(strategy, daily_bars, "TEST").run()

        assert [t.to_dict() for t in again.trades] == [t.to_dict() for t in result.trades]
        assert again.equity_curve == result.equity_curve
