"""
Backtest Reporter

Generates formatted reports from portfolio backtest results.
"""

from typing import Optional

from .statistics import BacktestStatistics, StatisticsCalculator
from pivotal.core.models import BacktestResult


class BacktestReporter:
    """Generate reports from backtest results."""

    def __init__(self, calculator: Optional[StatisticsCalculator] = None) -> None:
        self.calculator = calculator or StatisticsCalculator()

    def generate_summary(self, result: BacktestResult, stats: BacktestStatistics) -> str:
        trades = result.trade_log
        lines = [
            "=" * 70,
            "PIVOTAL BACKTEST SUMMARY",
            "=" * 70,
            "",
        ]
        if trades:
            first = min(t.entry_timestamp for t in trades)
            last = max(t.exit_timestamp for t in trades)
            lines.extend([
                f"Period: {first.date()} to {last.date()}",
                f"Duration: {(last - first).days} days",
                "",
            ])

        pf = "inf" if stats.profit_factor == float("inf") else f"{stats.profit_factor:.2f}"
        lines.extend([
            "## ACCOUNT PERFORMANCE",
            f"Starting Capital:  ${stats.initial_capital:>12,.2f}",
            f"Ending Capital:    ${stats.final_capital:>12,.2f}",
            f"Net P&L:           ${stats.total_profit:>12,.2f}",
            f"Net Return:        {stats.total_return_pct:>12.2f}%",
            f"CAGR:              {stats.cagr:>12.2f}%",
            f"Max Drawdown:      ${stats.max_drawdown:>12,.2f} ({stats.max_drawdown_pct:.2f}%)",
            f"Exposure:          {stats.exposure_pct:>12.1f}%",
            f"Peak Positions:    {stats.peak_open_positions:>12}",
            "",
            "## TRADE STATISTICS",
            f"Total Trades:      {stats.total_trades:>12}",
            f"Winners:           {stats.winners:>12}",
            f"Losers:            {stats.losers:>12}",
            f"Stop Exits:        {stats.stop_exits:>12}",
            f"Target Exits:      {stats.target_exits:>12}",
            f"Win Rate:          {stats.win_rate:>12.1f}%",
            f"Profit Factor:     {pf:>12}",
            f"Avg Win:           ${stats.avg_win:>12,.2f}",
            f"Avg Loss:          ${stats.avg_loss:>12,.2f}",
            f"Largest Win:       ${stats.largest_win:>12,.2f}",
            f"Largest Loss:      ${stats.largest_loss:>12,.2f}",
            f"t-stat / p-value:  {stats.t_statistic:>6.2f} / {stats.p_value:.3f}",
        ])
        return "\n".join(lines)

    def generate_breakdown_report(self, stats: BacktestStatistics) -> str:
        lines = [
            "",
            "=" * 70,
            "PERFORMANCE BY DIRECTION",
            "=" * 70,
        ]
        for label, side in (("LONG", stats.long), ("SHORT", stats.short)):
            status = "[+]" if side.profit > 0 else "[-]"
            lines.extend([
                "",
                f"{status} {label}",
                f"   Trades:      {side.trades:>8}  (W:{side.winners} L:{side.trades - side.winners})",
                f"   Win Rate:    {side.win_rate:>8.1f}%",
                f"   Net P&L:     ${side.profit:>8,.2f}",
            ])

        if stats.yearly:
            lines.extend(["", "=" * 70, "PERFORMANCE BY YEAR", "=" * 70, ""])
            for year, row in stats.yearly.items():
                lines.append(
                    f"{year}   Trades: {row.trades:>5}   Win Rate: {row.win_rate:>6.1f}%   "
                    f"P&L: ${row.profit:>12,.2f}"
                )
        return "\n".join(lines)

    def generate_exit_report(self, stats: BacktestStatistics) -> str:
        lines = [
            "",
            "=" * 70,
            "EXIT REASONS",
            "=" * 70,
            "",
        ]
        for reason, count in stats.exit_reasons.items():
            if count:
                lines.append(f"{reason:<30}{count:>8}")
        return "\n".join(lines)

    def generate_full_report(self, result: BacktestResult) -> str:
        stats = self.calculator.calculate(result)
        report = [
            self.generate_summary(result, stats),
            self.generate_breakdown_report(stats),
            self.generate_exit_report(stats),
        ]
        return "\n".join(report)
