"""
Run a pivot-breakout portfolio backtest over cached CSV bars.

Each CSV becomes one symbol (named after the file unless --symbol is given
for a single file). Candidates are generated per symbol and replayed through
one shared portfolio.

Usage::

    python -m pivotal.scripts.run_backtest data/SPY.csv
    python -m pivotal.scripts.run_backtest data/SPY.csv data/QQQ.csv --size 0.2
    python -m pivotal.scripts.run_backtest data/SPY_1h.csv --timeframe 1h --rth
    python -m pivotal.scripts.run_backtest data/SPY.csv --mode manual --anchor 2021-03-01
"""

import argparse
import logging
import sys
from typing import Dict, List

import pandas as pd

from pivotal.backtest import BacktestReporter, PortfolioBacktester, trades_to_dataframe
from pivotal.config import BacktestConfig, SignalConfig, get_settings
from pivotal.core.enums import StartPointMode
from pivotal.core.exceptions import PivotalError
from pivotal.core.models import CandidateTrade, StartPoint
from pivotal.data import TIMEFRAMES, BarSeries, filter_regular_hours, load_bars_csv
from pivotal.signals import SignalAssembler

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def _parse_args(argv: List[str] = None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="pivotal - fractal pivot breakout portfolio backtest",
    )
    parser.add_argument("csv", nargs="+", help="CSV file(s) of OHLCV bars")
    parser.add_argument("--symbol", type=str, default=None,
                        help="Symbol label (single CSV only; default: file name)")
    parser.add_argument("--timeframe", type=str.lower, default="1d", choices=TIMEFRAMES,
                        metavar="TIMEFRAME", help="Bar timeframe, e.g. 1d, 1h, 15m")
    parser.add_argument("--rth", action="store_true", default=False,
                        help="Keep US regular trading hours only (intraday)")
    parser.add_argument("--start", type=str, default=None,
                        help="Earliest start point date")
    parser.add_argument("--end", type=str, default=None,
                        help="Latest start point date")

    parser.add_argument("--capital", type=float, default=settings.initial_capital)
    parser.add_argument("--size", type=float, default=settings.position_size_fraction,
                        help="Fraction of cash allocated per trade")
    parser.add_argument("--prevent-on-losses", action="store_true",
                        default=settings.prevent_on_losses,
                        help="Pause after consecutive losses until a ghost trade wins")
    parser.add_argument("--liquidate-group", action="store_true",
                        default=settings.liquidate_group_on_loss,
                        help="Close a start point's whole group when one stop is hit")
    parser.add_argument("--single-trade", action="store_true",
                        default=settings.single_trade_per_bar,
                        help="At most one entry per bar")

    parser.add_argument("--lookbacks", type=int, nargs="+", default=None,
                        help="Stop-discovery lookback periods in bars")
    parser.add_argument("--mode", choices=[m.value for m in StartPointMode],
                        default=StartPointMode.SHARP.value)
    parser.add_argument("--anchor", action="append", default=[],
                        help="Manual start point date (repeatable, --mode manual)")
    parser.add_argument("--trend-filter", type=int, default=None,
                        help="Only trade with the SMA(N) trend at the start point")
    parser.add_argument("--both-directions", action="store_true", default=False,
                        help="Keep long and short signals of the same window")
    parser.add_argument("--workers", type=int, default=1,
                        help="Threads used for candidate generation")

    parser.add_argument("--export", type=str, default=None,
                        help="Write the trade log to this CSV path")
    parser.add_argument("--log-level", type=str, default=settings.log_level)
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------

def _load(args: argparse.Namespace) -> Dict[str, BarSeries]:
    if args.symbol and len(args.csv) > 1:
        raise PivotalError("--symbol can only be used with a single CSV")

    market: Dict[str, BarSeries] = {}
    for path in args.csv:
        series = load_bars_csv(path, symbol=args.symbol)
        if args.rth:
            series = filter_regular_hours(series, args.timeframe)
        market[series.symbol] = series
    return market


def _assemble(args: argparse.Namespace, market: Dict[str, BarSeries]) -> List[CandidateTrade]:
    overrides = {
        "start_point_mode": StartPointMode(args.mode),
        "trend_filter_period": args.trend_filter,
        "emit_both_directions": args.both_directions,
        "max_workers": args.workers,
    }
    if args.lookbacks:
        overrides["lookback_periods"] = args.lookbacks
    assembler = SignalAssembler(SignalConfig.from_settings(**overrides))

    anchors = [
        StartPoint(name=f"Manual {a}", timestamp=pd.Timestamp(a)) for a in args.anchor
    ]
    start = pd.Timestamp(args.start) if args.start else None
    end = pd.Timestamp(args.end) if args.end else None

    candidates: List[CandidateTrade] = []
    for series in market.values():
        candidates.extend(
            assembler.assemble(series, anchors=anchors or None, start=start, end=end)
        )
    return candidates


def run(argv: List[str] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s  %(name)-30s  %(levelname)-7s  %(message)s",
    )

    try:
        config = BacktestConfig.from_settings(
            initial_capital=args.capital,
            position_size_fraction=args.size,
            prevent_on_losses=args.prevent_on_losses,
            liquidate_group_on_loss=args.liquidate_group,
            single_trade_per_bar=args.single_trade,
        )
        market = _load(args)
        candidates = _assemble(args, market)
        result = PortfolioBacktester(config).run(candidates, market)
    except PivotalError as e:
        logger.error(f"Backtest failed: {e}")
        return 1

    print(BacktestReporter().generate_full_report(result))

    if args.export:
        trades_to_dataframe(result.trade_log).to_csv(args.export, index=False)
        print(f"\nTrade log written to {args.export}")
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
