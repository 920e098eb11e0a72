"""
pivotal Core Data Models

Immutable value types for pivots, signals, candidates and trade records.
Mutable dataclasses for simulator-internal position/portfolio state.
"""

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional

import pandas as pd

from .enums import Direction, ExitReason, PivotKind, TradeOutcome


@dataclass(frozen=True)
class Pivot:
    """A local price extreme."""

    timestamp: pd.Timestamp
    price: float
    kind: PivotKind

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "price": self.price,
            "kind": self.kind.value,
        }


class PivotPair(NamedTuple):
    """Most significant recent high and low pivots of a window."""

    pivot_high: Optional[Pivot]
    pivot_low: Optional[Pivot]


@dataclass(frozen=True)
class Signal:
    """A breakout trigger and its next-bar entry."""

    trigger_timestamp: pd.Timestamp
    entry_timestamp: pd.Timestamp
    entry_price: float
    direction: Direction
    reason: str


class SignalPair(NamedTuple):
    """Earliest long and short signals found in a scan window."""

    long_signal: Optional[Signal]
    short_signal: Optional[Signal]


@dataclass(frozen=True)
class StartPoint:
    """Anchor the assembler scans forward from."""

    name: str
    timestamp: pd.Timestamp


@dataclass(frozen=True)
class CandidateTrade:
    """
    A signal with everything the simulator needs to trade it.

    The protective stop is the opposite-side pivot of the stop-discovery
    window; the target is the projected exit.
    """

    signal: Signal
    pivot_high: Optional[Pivot]
    pivot_low: Optional[Pivot]
    start_point_name: str
    projected_exit: Optional[float]

    # Origin
    symbol: str = ""
    start_timestamp: Optional[pd.Timestamp] = None
    lookback_period: Optional[int] = None
    lookback_end: Optional[pd.Timestamp] = None
    exit_pivot: Optional[Pivot] = None
    trigger_price: Optional[float] = None
    scaling_factor: Optional[float] = None

    @property
    def direction(self) -> Direction:
        return self.signal.direction

    @property
    def is_long(self) -> bool:
        return self.signal.direction == Direction.LONG

    @property
    def entry_timestamp(self) -> pd.Timestamp:
        return self.signal.entry_timestamp

    @property
    def entry_price(self) -> float:
        return self.signal.entry_price

    @property
    def stop_loss(self) -> Optional[float]:
        pivot = self.pivot_low if self.is_long else self.pivot_high
        return pivot.price if pivot is not None else None

    @property
    def take_profit(self) -> Optional[float]:
        return self.projected_exit

    @property
    def is_tradeable(self) -> bool:
        """True when both protective stop and target are known and finite."""
        stop, target = self.stop_loss, self.take_profit
        return (
            stop is not None
            and target is not None
            and math.isfinite(stop)
            and math.isfinite(target)
            and self.entry_price > 0
        )


@dataclass
class Position:
    """An open simulated position. Stop and target never move."""

    entry_timestamp: pd.Timestamp
    entry_price: float
    direction: Direction
    stop_loss: float
    take_profit: float
    capital_allocated: float
    start_point_name: str
    symbol: str
    candidate: CandidateTrade

    @property
    def is_long(self) -> bool:
        return self.direction == Direction.LONG

    @property
    def shares(self) -> float:
        return self.capital_allocated / self.entry_price

    def profit_at(self, exit_price: float) -> float:
        """Realized P&L if closed at exit_price."""
        if self.is_long:
            return (exit_price - self.entry_price) * self.shares
        return (self.entry_price - exit_price) * self.shares

    def market_value(self, price: float) -> float:
        """Allocated capital plus unrealized P&L at price."""
        return self.capital_allocated + self.profit_at(price)


@dataclass(frozen=True)
class TradeRecord:
    """A closed trade. Append-only log entry."""

    entry_timestamp: pd.Timestamp
    entry_price: float
    exit_timestamp: pd.Timestamp
    exit_price: float
    direction: Direction
    exit_reason: ExitReason
    profit: float
    profit_pct: float
    start_point_name: str
    symbol: str = ""
    capital_allocated: float = 0.0
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    lookback_period: Optional[int] = None
    start_timestamp: Optional[pd.Timestamp] = None
    lookback_end: Optional[pd.Timestamp] = None

    @property
    def outcome(self) -> TradeOutcome:
        return TradeOutcome.WIN if self.profit > 0 else TradeOutcome.LOSS

    @property
    def is_winner(self) -> bool:
        return self.profit > 0

    def to_dict(self) -> dict:
        """Serialize for presentation layers (enums as values, ISO times)."""
        d = asdict(self)
        d["direction"] = self.direction.value
        d["exit_reason"] = self.exit_reason.value
        for key in ("entry_timestamp", "exit_timestamp", "start_timestamp", "lookback_end"):
            if d[key] is not None:
                d[key] = d[key].isoformat()
        return d


@dataclass
class PortfolioState:
    """Mutable state owned by a single backtest run."""

    cash: float
    open_positions: List[Position] = field(default_factory=list)
    consecutive_losses: int = 0
    is_observing: bool = False
    peak_open_positions: int = 0

    def record_outcome(self, profit: float, prevent_on_losses: bool, threshold: int) -> None:
        """Update the loss streak; arm observation mode when it hits threshold."""
        if profit > 0:
            self.consecutive_losses = 0
        else:
            self.consecutive_losses += 1
        if prevent_on_losses and self.consecutive_losses >= threshold:
            self.is_observing = True

    def resume_trading(self) -> None:
        self.is_observing = False
        self.consecutive_losses = 0


@dataclass
class BacktestSummary:
    """Headline performance numbers of a run."""

    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float  # Percentage
    total_profit: float
    initial_capital: float
    final_capital: float
    cagr: float  # Percentage

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class BacktestResult:
    """Trade log, summary and per-bar equity of a run."""

    trade_log: List[TradeRecord]
    summary: BacktestSummary
    equity_curve: List[Dict[str, Any]] = field(default_factory=list)
    peak_open_positions: int = 0  # Most positions held at once

    def to_dict(self) -> dict:
        return {
            "trade_log": [t.to_dict() for t in self.trade_log],
            "summary": self.summary.to_dict(),
            "peak_open_positions": self.peak_open_positions,
        }
