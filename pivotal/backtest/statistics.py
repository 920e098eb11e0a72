"""
Calculate extended backtest statistics.

Key metrics:
- Win rate and profit factor
- Average / largest win and loss
- Max drawdown and exposure from the equity curve
- Long/short and yearly breakdowns
- Statistical significance (t-test)
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import stats as sp_stats

from pivotal.core.enums import Direction, ExitReason, TradeOutcome
from pivotal.core.models import BacktestResult, TradeRecord

logger = logging.getLogger(__name__)


@dataclass
class SideBreakdown:
    """Performance of one trade direction or one calendar year."""

    trades: int = 0
    winners: int = 0
    profit: float = 0.0

    @property
    def win_rate(self) -> float:
        return self.winners / self.trades * 100 if self.trades else 0.0


@dataclass
class BacktestStatistics:
    """Complete statistics for a backtest run."""

    # Basic counts
    total_trades: int
    winners: int
    losers: int
    win_rate: float  # Percentage

    # Capital
    initial_capital: float
    final_capital: float
    total_profit: float
    total_return_pct: float
    cagr: float  # Percentage

    # Win/Loss metrics
    avg_win: float
    avg_loss: float
    largest_win: float
    largest_loss: float
    profit_factor: float  # Gross wins / Gross losses
    expected_value: float  # Average P&L per trade

    # Risk metrics
    max_drawdown: float  # Currency
    max_drawdown_pct: float  # Percentage
    exposure_pct: float  # Share of bars with an open position
    peak_open_positions: int
    stop_exits: int  # Closed at the stop, incl. same-day
    target_exits: int  # Closed at the target, incl. same-day

    # Statistical significance
    t_statistic: float
    p_value: float

    # Breakdowns
    long: SideBreakdown = field(default_factory=SideBreakdown)
    short: SideBreakdown = field(default_factory=SideBreakdown)
    yearly: Dict[int, SideBreakdown] = field(default_factory=dict)
    exit_reasons: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["long"]["win_rate"] = self.long.win_rate
        d["short"]["win_rate"] = self.short.win_rate
        for year, row in self.yearly.items():
            d["yearly"][year]["win_rate"] = row.win_rate
        return d


class StatisticsCalculator:
    """Calculate backtest statistics."""

    SIGNIFICANCE_LEVEL = 0.05  # p-value threshold

    def calculate(self, result: BacktestResult) -> BacktestStatistics:
        """Calculate all statistics from a backtest result."""
        trades = result.trade_log
        summary = result.summary
        initial = summary.initial_capital

        max_dd, max_dd_pct = self._calculate_drawdown(result.equity_curve, initial)
        exposure = self._calculate_exposure(result.equity_curve)

        winning = [t for t in trades if t.is_winner]
        losing = [t for t in trades if not t.is_winner]
        all_pnl = [t.profit for t in trades]

        gross_wins = sum(t.profit for t in winning)
        gross_losses = abs(sum(t.profit for t in losing))
        if gross_losses > 0:
            profit_factor = gross_wins / gross_losses
        else:
            profit_factor = float("inf") if gross_wins > 0 else 0.0

        t_stat, p_value = self._significance_test(all_pnl)

        stats = BacktestStatistics(
            total_trades=summary.total_trades,
            winners=summary.winning_trades,
            losers=summary.losing_trades,
            win_rate=summary.win_rate,
            initial_capital=initial,
            final_capital=summary.final_capital,
            total_profit=summary.total_profit,
            total_return_pct=summary.total_profit / initial * 100 if initial else 0.0,
            cagr=summary.cagr,
            avg_win=float(np.mean([t.profit for t in winning])) if winning else 0.0,
            avg_loss=float(np.mean([t.profit for t in losing])) if losing else 0.0,
            largest_win=max(all_pnl) if all_pnl else 0.0,
            largest_loss=min(all_pnl) if all_pnl else 0.0,
            profit_factor=profit_factor,
            expected_value=sum(all_pnl) / len(all_pnl) if all_pnl else 0.0,
            max_drawdown=max_dd,
            max_drawdown_pct=max_dd_pct,
            exposure_pct=exposure,
            peak_open_positions=result.peak_open_positions,
            stop_exits=sum(1 for t in trades if t.exit_reason.is_stop),
            target_exits=sum(1 for t in trades if t.exit_reason.is_target),
            t_statistic=t_stat,
            p_value=p_value,
            long=self._breakdown([t for t in trades if t.direction == Direction.LONG]),
            short=self._breakdown([t for t in trades if t.direction == Direction.SHORT]),
            yearly=self._yearly(trades),
            exit_reasons=self._exit_reasons(trades),
        )
        logger.debug(
            f"Statistics: {stats.total_trades} trades, PF {stats.profit_factor:.2f}, "
            f"max DD {stats.max_drawdown_pct:.2f}%, exposure {stats.exposure_pct:.1f}%"
        )
        return stats

    @staticmethod
    def _significance_test(pnl_values: List[float]) -> Tuple[float, float]:
        """One-tailed t-test: is mean PnL significantly > 0?"""
        if len(pnl_values) < 2 or np.std(pnl_values) == 0:
            return 0.0, 1.0

        t_stat, p_two = sp_stats.ttest_1samp(pnl_values, 0)
        # Convert to one-tailed (H1: mean > 0)
        p_one = p_two / 2 if t_stat > 0 else 1 - p_two / 2
        return float(t_stat), float(p_one)

    @staticmethod
    def _calculate_drawdown(
        equity_curve: Sequence[dict],
        initial_capital: float,
    ) -> Tuple[float, float]:
        """Maximum peak-to-trough drop of the per-bar equity curve."""
        peak = initial_capital
        max_dd = 0.0
        max_dd_pct = 0.0

        for point in equity_curve:
            equity = point["equity"]
            if equity > peak:
                peak = equity

            dd = peak - equity
            if dd > max_dd:
                max_dd = dd
                max_dd_pct = (dd / peak) * 100 if peak > 0 else 0.0

        return max_dd, max_dd_pct

    @staticmethod
    def _calculate_exposure(equity_curve: Sequence[dict]) -> float:
        if not equity_curve:
            return 0.0
        in_market = sum(1 for point in equity_curve if point["open_positions"] > 0)
        return in_market / len(equity_curve) * 100

    @staticmethod
    def _breakdown(trades: Sequence[TradeRecord]) -> SideBreakdown:
        return SideBreakdown(
            trades=len(trades),
            winners=sum(1 for t in trades if t.outcome == TradeOutcome.WIN),
            profit=sum(t.profit for t in trades),
        )

    def _yearly(self, trades: Sequence[TradeRecord]) -> Dict[int, SideBreakdown]:
        by_year: Dict[int, List[TradeRecord]] = {}
        for t in trades:
            by_year.setdefault(t.exit_timestamp.year, []).append(t)
        return {year: self._breakdown(by_year[year]) for year in sorted(by_year)}

    @staticmethod
    def _exit_reasons(trades: Sequence[TradeRecord]) -> Dict[str, int]:
        counts = {reason.value: 0 for reason in ExitReason}
        for t in trades:
            counts[t.exit_reason.value] += 1
        return counts


def trades_to_dataframe(trade_log: Sequence[TradeRecord]) -> pd.DataFrame:
    """Tabular view of a trade log, one row per trade."""
    columns = list(TradeRecord.__dataclass_fields__)
    if not trade_log:
        return pd.DataFrame(columns=columns)
    rows = []
    for t in trade_log:
        row = asdict(t)
        row["direction"] = t.direction.value
        row["exit_reason"] = t.exit_reason.value
        rows.append(row)
    return pd.DataFrame(rows, columns=columns)
