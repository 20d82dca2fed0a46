"""
Position and risk management for a single-symbol simulation.

Tracks open trades, cash and realized capital; sizes and fills entries;
applies stop-loss, take-profit and exit-rule exits.

Cash accounting: opening a trade moves its cost basis plus entry
commission out of cash; closing returns the cost basis plus gross P&L
minus exit commission. With no open trades cash equals capital.
"""

import math
from typing import assert_never

from loguru import logger

from src.core.enums import ExitReason, OrderRejection, PositionSizing
from src.core.models.bar import Bar
from src.core.models.strategy import Strategy
from src.core.models.trade import Trade
from src.core.types import apply_slippage, calculate_commission, percent_of

from .rule_evaluator import RuleEvaluator

# Guards floor() against values like 99.99999999 from float division
_SHARE_EPSILON = 1e-9


class PositionManager:
    """Holds open trades and capital for one simulation run."""

    def __init__(
        self,
        strategy: Strategy,
        symbol: str,
        rules: RuleEvaluator,
        initial_capital: float | None = None,
    ) -> None:
        self.strategy = strategy
        self.symbol = symbol
        self._rules = rules
        self.initial_capital = (
            strategy.initial_capital if initial_capital is None else initial_capital
        )
        self.cash = self.initial_capital
        self.realized_pnl = 0.0
        self.open_trades: list[Trade] = []
        self.closed_trades: list[Trade] = []
        self._next_trade_number = 1
        self._signal_refs = strategy.indicator_refs()

    @property
    def capital(self) -> float:
        """Initial capital plus realized P&L."""
        return self.initial_capital + self.realized_pnl

    @property
    def has_capacity(self) -> bool:
        return len(self.open_trades) < self.strategy.max_positions

    def mark_to_market(self, price: float) -> float:
        """Equity with open trades valued at ``price``."""
        return self.cash + sum(
            trade.cost_basis + trade.unrealized_pnl(price) for trade in self.open_trades
        )

    def try_open(self, bar: Bar) -> Trade | OrderRejection:
        """Open a trade at the bar close, or explain why none was opened."""
        if not self.has_capacity:
            return OrderRejection.AT_CAPACITY

        strategy = self.strategy
        direction = strategy.direction
        fill_price = apply_slippage(bar.close, strategy.slippage_percent, direction, is_entry=True)

        shares = self._size_position(fill_price)
        if shares <= 0:
            return OrderRejection.ZERO_SHARES

        cost_factor = 1 + strategy.commission_percent / 100
        if shares * fill_price * cost_factor > self.cash:
            shares = math.floor(self.cash / (fill_price * cost_factor) + _SHARE_EPSILON)
            if shares * fill_price * cost_factor > self.cash:
                shares -= 1
            if shares <= 0:
                return OrderRejection.INSUFFICIENT_CAPITAL

        commission = calculate_commission(shares * fill_price, strategy.commission_percent)
        stop_loss_price, take_profit_price = self._protective_levels(fill_price)

        trade = Trade(
            trade_number=self._next_trade_number,
            symbol=self.symbol,
            direction=direction,
            entry_timestamp=bar.timestamp,
            entry_price=fill_price,
            shares=shares,
            entry_commission=commission,
            entry_slippage=abs(fill_price - bar.close) * shares,
            stop_loss_price=stop_loss_price,
            take_profit_price=take_profit_price,
            entry_signal=self._rules.snapshot(self._signal_refs, bar.index),
        )
        self._next_trade_number += 1
        self.cash -= trade.cost_basis + commission
        self.open_trades.append(trade)

        logger.debug(
            f"Opened trade #{trade.trade_number} {direction.value} {shares} {self.symbol} "
            f"@ {fill_price:.4f} on {bar.timestamp}"
        )
        return trade

    def check_exits_and_close(self, bar: Bar) -> list[Trade]:
        """Apply protective levels, then the exit rule, to every open trade.

        Stop-loss is checked before take-profit, so a bar touching both
        levels exits at the stop.
        """
        closed: list[Trade] = []
        exit_rule_hit: bool | None = None

        for trade in list(self.open_trades):
            trade.update_extremes(bar.high, bar.low)

            protective_exit = self._protective_exit(trade, bar)
            if protective_exit is not None:
                price, reason = protective_exit
                self._close(trade, bar, price, reason)
                closed.append(trade)
                continue

            if exit_rule_hit is None:
                exit_rule_hit = self._rules.evaluate(self.strategy.exit_rules, bar.index)
            if exit_rule_hit:
                self._close(trade, bar, bar.close, ExitReason.RULE_EXIT)
                closed.append(trade)

        return closed

    def force_close_all(self, bar: Bar) -> list[Trade]:
        """Close every open trade at the bar close."""
        closed = list(self.open_trades)
        for trade in closed:
            self._close(trade, bar, bar.close, ExitReason.END_OF_DATA)
        return closed

    def _size_position(self, fill_price: float) -> int:
        strategy = self.strategy
        match strategy.position_sizing:
            case PositionSizing.PERCENT_CAPITAL:
                budget = percent_of(self.capital, strategy.position_size_value)
                return math.floor(budget / fill_price + _SHARE_EPSILON)
            case PositionSizing.FIXED_DOLLAR:
                return math.floor(strategy.position_size_value / fill_price + _SHARE_EPSILON)
            case PositionSizing.FIXED_SHARES:
                return math.floor(strategy.position_size_value)
            case _:
                assert_never(strategy.position_sizing)

    def _protective_levels(self, fill_price: float) -> tuple[float | None, float | None]:
        """Stop-loss and take-profit prices derived from the entry fill."""
        strategy = self.strategy
        sign = strategy.direction.sign
        stop_loss_price = None
        take_profit_price = None
        if strategy.stop_loss_percent is not None:
            stop_loss_price = fill_price * (1 - sign * strategy.stop_loss_percent / 100)
        if strategy.take_profit_percent is not None:
            take_profit_price = fill_price * (1 + sign * strategy.take_profit_percent / 100)
        return stop_loss_price, take_profit_price

    def _protective_exit(self, trade: Trade, bar: Bar) -> tuple[float, ExitReason] | None:
        """Exit price and reason if the bar reached the stop or the target.

        A bar that opens beyond the level fills at the open.
        """
        if trade.direction.is_long:
            if trade.stop_loss_price is not None and bar.low <= trade.stop_loss_price:
                return min(bar.open, trade.stop_loss_price), ExitReason.STOP_LOSS
            if trade.take_profit_price is not None and bar.high >= trade.take_profit_price:
                return max(bar.open, trade.take_profit_price), ExitReason.TAKE_PROFIT
        else:
            if trade.stop_loss_price is not None and bar.high >= trade.stop_loss_price:
                return max(bar.open, trade.stop_loss_price), ExitReason.STOP_LOSS
            if trade.take_profit_price is not None and bar.low <= trade.take_profit_price:
                return min(bar.open, trade.take_profit_price), ExitReason.TAKE_PROFIT
        return None

    def _close(self, trade: Trade, bar: Bar, reference_price: float, reason: ExitReason) -> None:
        strategy = self.strategy
        fill_price = apply_slippage(
            reference_price, strategy.slippage_percent, trade.direction, is_entry=False
        )
        commission = calculate_commission(fill_price * trade.shares, strategy.commission_percent)
        gross_pnl = trade.close(
            bar.timestamp,
            fill_price,
            reason,
            commission=commission,
            slippage=abs(fill_price - reference_price) * trade.shares,
            signal=self._rules.snapshot(self._signal_refs, bar.index),
        )

        self.cash += trade.cost_basis + gross_pnl - commission
        self.realized_pnl += trade.pnl
        self.open_trades.remove(trade)
        self.closed_trades.append(trade)

        logger.debug(
            f"Closed trade #{trade.trade_number} ({reason.value}) @ {fill_price:.4f} "
            f"on {bar.timestamp}: pnl {trade.pnl:.2f}"
        )
