"""pivotal portfolio backtesting."""

from .outcome import ExitHit, check_exit, simulate_outcome
from .reporter import BacktestReporter
from .simulator import PortfolioBacktester, run_backtest, summarize
from .statistics import (
    BacktestStatistics,
    SideBreakdown,
    StatisticsCalculator,
    trades_to_dataframe,
)

__all__ = [
    "BacktestReporter",
    "BacktestStatistics",
    "ExitHit",
    "PortfolioBacktester",
    "SideBreakdown",
    "StatisticsCalculator",
    "check_exit",
    "run_backtest",
    "simulate_outcome",
    "summarize",
    "trades_to_dataframe",
]
