"""
Trade domain model.
Optimized for high-performance backtesting with float operations.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.core.enums import ExitReason, TradeDirection
from src.core.exceptions.backtest import TradeStateError, ValidationError
from src.core.types import (
    calculate_pnl,
    percent_change,
    round_amount,
    round_percentage,
    round_price,
)


def _round_signal(signal: dict[str, float | None]) -> dict[str, float | None]:
    return {
        label: None if value is None else round_price(value) for label, value in signal.items()
    }


@dataclass
class Trade:
    """A simulated round-trip trade.

    Trades are opened by the position manager and closed exactly once,
    either by a protective level, an exit rule or the end of data.
    """

    trade_number: int
    symbol: str
    direction: TradeDirection
    entry_timestamp: datetime
    entry_price: float
    shares: int
    entry_commission: float = 0.0
    entry_slippage: float = 0.0
    stop_loss_price: float | None = None
    take_profit_price: float | None = None
    highest_price: float | None = None
    lowest_price: float | None = None
    bars_in_trade: int = 0
    exit_timestamp: datetime | None = None
    exit_price: float | None = None
    exit_commission: float = 0.0
    exit_slippage: float = 0.0
    exit_reason: ExitReason | None = None
    pnl: float = 0.0
    pnl_percent: float = 0.0
    entry_signal: dict[str, float | None] = field(default_factory=dict)
    exit_signal: dict[str, float | None] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate trade data after initialization."""
        if self.shares <= 0:
            raise ValidationError(f"Shares must be positive, got {self.shares}")
        if self.entry_price <= 0:
            raise ValidationError(f"Entry price must be positive, got {self.entry_price}")
        if self.entry_commission < 0:
            raise ValidationError(f"Commission must be non-negative, got {self.entry_commission}")
        if self.highest_price is None:
            self.highest_price = self.entry_price
        if self.lowest_price is None:
            self.lowest_price = self.entry_price

    @property
    def is_open(self) -> bool:
        """Check if the trade has not been closed yet."""
        return self.exit_timestamp is None

    @property
    def cost_basis(self) -> float:
        """Capital reserved by the position at entry, excluding commission."""
        return self.entry_price * self.shares

    @property
    def commission(self) -> float:
        """Total commission paid on entry and exit."""
        return self.entry_commission + self.exit_commission

    @property
    def slippage(self) -> float:
        """Total slippage cost on entry and exit."""
        return self.entry_slippage + self.exit_slippage

    @property
    def mae_percent(self) -> float:
        """Maximum adverse excursion as a percentage of entry price (<= 0)."""
        worst = self.lowest_price if self.direction.is_long else self.highest_price
        return min(0.0, percent_change(self.entry_price, worst) * self.direction.sign)

    @property
    def mfe_percent(self) -> float:
        """Maximum favorable excursion as a percentage of entry price (>= 0)."""
        best = self.highest_price if self.direction.is_long else self.lowest_price
        return max(0.0, percent_change(self.entry_price, best) * self.direction.sign)

    def unrealized_pnl(self, price: float) -> float:
        """Gross P&L if the trade were closed at ``price``."""
        return calculate_pnl(self.entry_price, price, self.shares, self.direction)

    def update_extremes(self, high: float, low: float) -> None:
        """Track the price range seen while the trade is open."""
        self.highest_price = max(self.highest_price, high)
        self.lowest_price = min(self.lowest_price, low)
        self.bars_in_trade += 1

    def close(
        self,
        timestamp: datetime,
        price: float,
        reason: ExitReason,
        commission: float = 0.0,
        slippage: float = 0.0,
        signal: dict[str, float | None] | None = None,
    ) -> float:
        """Close the trade and compute realized P&L.

        Args:
            timestamp: Exit bar timestamp
            price: Exit fill price after slippage
            reason: Why the trade was closed
            commission: Exit commission
            slippage: Exit slippage cost
            signal: Indicator values on the exit bar, keyed by label

        Returns:
            Gross P&L of the position (before commissions)

        Raises:
            TradeStateError: If the trade is already closed or the exit is not after entry
        """
        if not self.is_open:
            raise TradeStateError(f"Trade #{self.trade_number} is already closed")
        if timestamp <= self.entry_timestamp:
            raise TradeStateError(
                f"Trade #{self.trade_number} exit {timestamp} "
                f"is not after entry {self.entry_timestamp}"
            )

        gross_pnl = self.unrealized_pnl(price)
        self.exit_timestamp = timestamp
        self.exit_price = price
        self.exit_reason = reason
        self.exit_commission = commission
        self.exit_slippage = slippage
        if signal is not None:
            self.exit_signal = signal
        self.pnl = gross_pnl - self.entry_commission - commission
        self.pnl_percent = self.pnl / self.cost_basis * 100.0
        return gross_pnl

    def to_dict(self) -> dict[str, Any]:
        """Convert trade to dictionary."""
        return {
            "trade_number": self.trade_number,
            "symbol": self.symbol,
            "direction": self.direction.value,
            "entry_timestamp": self.entry_timestamp.isoformat(),
            "entry_price": round_price(self.entry_price),
            "shares": self.shares,
            "position_size": round_amount(self.cost_basis),
            "stop_loss_price": (
                None if self.stop_loss_price is None else round_price(self.stop_loss_price)
            ),
            "take_profit_price": (
                None if self.take_profit_price is None else round_price(self.take_profit_price)
            ),
            "exit_timestamp": self.exit_timestamp.isoformat() if self.exit_timestamp else None,
            "exit_price": None if self.exit_price is None else round_price(self.exit_price),
            "exit_reason": self.exit_reason.value if self.exit_reason else None,
            "commission": round_amount(self.commission),
            "slippage": round_amount(self.slippage),
            "mae_percent": round_percentage(self.mae_percent),
            "mfe_percent": round_percentage(self.mfe_percent),
            "bars_in_trade": self.bars_in_trade,
            "pnl": round_amount(self.pnl),
            "pnl_percent": round_percentage(self.pnl_percent),
            "entry_signal": _round_signal(self.entry_signal),
            "exit_signal": _round_signal(self.exit_signal),
        }


@dataclass(frozen=True)
class EquityPoint:
    """Account equity marked at a bar close."""

    timestamp: datetime
    equity: float

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp.isoformat(), "equity": round_amount(self.equity)}
