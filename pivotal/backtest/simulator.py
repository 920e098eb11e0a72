"""
Portfolio-level backtest simulator.

Replays candidate trades bar by bar against a shared capital pool:

- Entry at the candidate's entry bar (the bar after its trigger).
- Stop/target checked against each bar's high/low, stop first.
- Optional group liquidation: when one position of a start-point group is
  stopped, every position of that group is closed at that stop.
- Optional loss circuit breaker: after a losing streak, candidates are only
  ghost-simulated until one would have won.
- Remaining positions are closed at the last close.

The simulation is single-threaded and deterministic. All mutable state lives
in a PortfolioState owned by one run() call.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from pivotal.config.settings import BacktestConfig
from pivotal.core.enums import ExitReason, TradeOutcome
from pivotal.core.exceptions import PivotalDataError
from pivotal.core.models import (
    BacktestResult,
    BacktestSummary,
    CandidateTrade,
    PortfolioState,
    Position,
    TradeRecord,
)
from pivotal.backtest.outcome import check_exit, simulate_outcome
from pivotal.data.bars import BarSeries

logger = logging.getLogger(__name__)

DAYS_PER_YEAR = 365.25

Market = Union[BarSeries, Mapping[str, BarSeries]]


class PortfolioBacktester:
    """
    Simulates capital allocation and position management.

    Usage::

        tester = PortfolioBacktester(BacktestConfig(initial_capital=10_000))
        result = tester.run(candidates, bars)
    """

    def __init__(self, config: Optional[BacktestConfig] = None) -> None:
        self.config = config or BacktestConfig()

    def run(self, candidates: Sequence[CandidateTrade], bars: Market) -> BacktestResult:
        """
        Run the simulation.

        Args:
            candidates: Candidate trades (any order; stable within a bar).
            bars: One BarSeries, or a mapping of symbol -> BarSeries. With a
                mapping, a symbol that has no bar on a timestamp is skipped
                for that timestamp.

        Returns:
            BacktestResult with the trade log sorted by entry time.
        """
        cfg = self.config
        market = self._normalize_market(bars)
        self._validate_candidates(candidates, market)

        cap = cfg.max_open_positions
        state = PortfolioState(cash=cfg.initial_capital)
        trade_log: List[TradeRecord] = []
        equity_curve: List[dict] = []

        positions_by_ts = {sym: self._position_map(s) for sym, s in market.items()}
        timeline = self._timeline(market)
        by_entry = self._group_by_entry(candidates)

        logger.info(
            f"Backtest: {len(candidates)} candidates over {len(timeline)} bars, "
            f"capital={cfg.initial_capital:,.2f}, size={cfg.position_size_fraction:.2%}, "
            f"max_positions={cap}"
        )

        for ts in timeline:
            # --- Exits ---
            liquidations = self._group_liquidations(state, market, positions_by_ts, ts)

            remaining: List[Position] = []
            for position in state.open_positions:
                idx = positions_by_ts[position.symbol].get(ts)
                if idx is None:
                    remaining.append(position)
                    continue

                key = (position.symbol, position.start_point_name)
                if key in liquidations:
                    exit_price, reason = liquidations[key], ExitReason.GROUP_LIQUIDATION
                else:
                    series = market[position.symbol]
                    hit = check_exit(
                        position.is_long,
                        position.stop_loss,
                        position.take_profit,
                        series.highs[idx],
                        series.lows[idx],
                    )
                    if hit is None:
                        remaining.append(position)
                        continue
                    exit_price = hit.price
                    reason = ExitReason.STOP_LOSS if hit.is_stop else ExitReason.TAKE_PROFIT

                trade_log.append(self._realize(state, position, exit_price, ts, reason))
            state.open_positions = remaining

            # --- Entries ---
            entries = by_entry.get(ts, [])
            if cfg.single_trade_per_bar:
                entries = entries[:1]

            for candidate in entries:
                if len(state.open_positions) >= cap:
                    break

                sym = self._symbol_for(candidate, market)
                idx = positions_by_ts[sym].get(ts)
                if idx is None:
                    continue
                series = market[sym]

                if cfg.prevent_on_losses and state.is_observing:
                    outcome = simulate_outcome(candidate, series)
                    logger.debug(
                        f"{ts}: ghost {candidate.direction.value} from "
                        f"{candidate.start_point_name} -> {outcome.value if outcome else 'unresolved'}"
                    )
                    if outcome == TradeOutcome.WIN:
                        state.resume_trading()
                    continue

                allocated = state.cash * cfg.position_size_fraction
                state.cash -= allocated
                position = Position(
                    entry_timestamp=candidate.entry_timestamp,
                    entry_price=candidate.entry_price,
                    direction=candidate.direction,
                    stop_loss=candidate.stop_loss,
                    take_profit=candidate.take_profit,
                    capital_allocated=allocated,
                    start_point_name=candidate.start_point_name,
                    symbol=sym,
                    candidate=candidate,
                )

                hit = check_exit(
                    position.is_long,
                    position.stop_loss,
                    position.take_profit,
                    series.highs[idx],
                    series.lows[idx],
                )
                if hit is not None:
                    reason = ExitReason.SAME_DAY_STOP if hit.is_stop else ExitReason.SAME_DAY_TARGET
                    trade_log.append(self._realize(state, position, hit.price, ts, reason))
                else:
                    state.open_positions.append(position)
                    state.peak_open_positions = max(
                        state.peak_open_positions, len(state.open_positions)
                    )

            equity_curve.append(
                {
                    "timestamp": ts,
                    "equity": self._mark_to_market(state, market, positions_by_ts, ts),
                    "cash": state.cash,
                    "open_positions": len(state.open_positions),
                }
            )

        # --- End of test ---
        for position in state.open_positions:
            series = market[position.symbol]
            last_close = float(series.closes[-1])
            trade_log.append(
                self._realize(
                    state,
                    position,
                    last_close,
                    series.timestamp_at(len(series) - 1),
                    ExitReason.END_OF_TEST,
                    track_streak=False,
                )
            )
        state.open_positions = []
        if equity_curve:
            equity_curve[-1]["equity"] = state.cash
            equity_curve[-1]["cash"] = state.cash
            equity_curve[-1]["open_positions"] = 0

        trade_log.sort(key=lambda t: t.entry_timestamp)
        summary = summarize(trade_log, cfg.initial_capital, state.cash)

        logger.info(
            f"Backtest complete: {summary.total_trades} trades, "
            f"win rate {summary.win_rate:.1f}%, P&L {summary.total_profit:,.2f}, "
            f"final capital {summary.final_capital:,.2f}, CAGR {summary.cagr:.2f}%"
        )
        return BacktestResult(
            trade_log=trade_log,
            summary=summary,
            equity_curve=equity_curve,
            peak_open_positions=state.peak_open_positions,
        )

    # ------------------------------------------------------------------
    # Per-bar helpers
    # ------------------------------------------------------------------

    def _group_liquidations(
        self,
        state: PortfolioState,
        market: Dict[str, BarSeries],
        positions_by_ts: Dict[str, Dict[pd.Timestamp, int]],
        ts: pd.Timestamp,
    ) -> Dict[Tuple[str, str], float]:
        """(symbol, start point) groups to close this bar, with the price."""
        liquidations: Dict[Tuple[str, str], float] = {}
        if not self.config.liquidate_group_on_loss:
            return liquidations

        for position in state.open_positions:
            key = (position.symbol, position.start_point_name)
            if key in liquidations:
                continue
            idx = positions_by_ts[position.symbol].get(ts)
            if idx is None:
                continue
            series = market[position.symbol]
            if position.is_long and series.lows[idx] <= position.stop_loss:
                liquidations[key] = position.stop_loss
            elif not position.is_long and series.highs[idx] >= position.stop_loss:
                liquidations[key] = position.stop_loss

        if liquidations:
            logger.debug(f"{ts}: liquidating groups {sorted(k[1] for k in liquidations)}")
        return liquidations

    def _realize(
        self,
        state: PortfolioState,
        position: Position,
        exit_price: float,
        exit_ts: pd.Timestamp,
        reason: ExitReason,
        track_streak: bool = True,
    ) -> TradeRecord:
        """Return capital plus P&L to cash and build the trade record."""
        cfg = self.config
        profit = position.profit_at(exit_price)
        state.cash += position.capital_allocated + profit
        if track_streak:
            state.record_outcome(profit, cfg.prevent_on_losses, cfg.loss_streak_threshold)

        candidate = position.candidate
        logger.debug(
            f"{exit_ts}: closed {position.direction.value} {position.symbol} "
            f"@ {exit_price:.4f} ({reason.value}) P&L {profit:,.2f}"
        )
        return TradeRecord(
            entry_timestamp=position.entry_timestamp,
            entry_price=position.entry_price,
            exit_timestamp=exit_ts,
            exit_price=exit_price,
            direction=position.direction,
            exit_reason=reason,
            profit=profit,
            profit_pct=profit / position.capital_allocated * 100,
            start_point_name=position.start_point_name,
            symbol=position.symbol,
            capital_allocated=position.capital_allocated,
            stop_loss=position.stop_loss,
            take_profit=position.take_profit,
            lookback_period=candidate.lookback_period,
            start_timestamp=candidate.start_timestamp,
            lookback_end=candidate.lookback_end,
        )

    @staticmethod
    def _mark_to_market(
        state: PortfolioState,
        market: Dict[str, BarSeries],
        positions_by_ts: Dict[str, Dict[pd.Timestamp, int]],
        ts: pd.Timestamp,
    ) -> float:
        equity = state.cash
        for position in state.open_positions:
            idx = positions_by_ts[position.symbol].get(ts)
            if idx is None:
                equity += position.capital_allocated
            else:
                equity += position.market_value(float(market[position.symbol].closes[idx]))
        return equity

    # ------------------------------------------------------------------
    # Input preparation
    # ------------------------------------------------------------------

    @staticmethod
    def _normalize_market(bars: Market) -> Dict[str, BarSeries]:
        if isinstance(bars, BarSeries):
            market = {bars.symbol: bars}
        else:
            market = dict(bars)
        if not market or any(s.empty for s in market.values()):
            raise PivotalDataError("Backtest needs at least one non-empty bar series")
        return market

    @staticmethod
    def _symbol_for(candidate: CandidateTrade, market: Dict[str, BarSeries]) -> str:
        if candidate.symbol in market:
            return candidate.symbol
        if len(market) == 1:
            return next(iter(market))
        raise PivotalDataError(f"No bars for candidate symbol {candidate.symbol!r}")

    def _validate_candidates(
        self, candidates: Sequence[CandidateTrade], market: Dict[str, BarSeries]
    ) -> None:
        for c in candidates:
            if not c.is_tradeable:
                raise PivotalDataError(
                    f"Candidate from {c.start_point_name!r} at {c.entry_timestamp} has no "
                    f"usable stop/target; unresolvable candidates must be dropped upstream"
                )
            self._symbol_for(c, market)

    @staticmethod
    def _timeline(market: Dict[str, BarSeries]) -> List[pd.Timestamp]:
        index = None
        for series in market.values():
            index = series.index if index is None else index.union(series.index)
        return list(index.sort_values())

    @staticmethod
    def _position_map(series: BarSeries) -> Dict[pd.Timestamp, int]:
        return {ts: i for i, ts in enumerate(series.index)}

    @staticmethod
    def _group_by_entry(
        candidates: Sequence[CandidateTrade],
    ) -> Dict[pd.Timestamp, List[CandidateTrade]]:
        grouped: Dict[pd.Timestamp, List[CandidateTrade]] = defaultdict(list)
        for c in sorted(candidates, key=lambda c: c.entry_timestamp):
            grouped[c.entry_timestamp].append(c)
        return grouped


def summarize(
    trade_log: Sequence[TradeRecord],
    initial_capital: float,
    final_capital: float,
) -> BacktestSummary:
    """
    Headline statistics of a trade log.

    CAGR runs from the first entry to the last exit:
    ((final / initial) ** (1 / years) - 1) * 100, 0 when the span is empty.
    """
    total = len(trade_log)
    winners = sum(1 for t in trade_log if t.is_winner)

    cagr = 0.0
    if total > 0:
        first_entry = min(t.entry_timestamp for t in trade_log)
        last_exit = max(t.exit_timestamp for t in trade_log)
        years = (last_exit - first_entry).total_seconds() / (86400 * DAYS_PER_YEAR)
        if years > 0 and final_capital > 0:
            cagr = ((final_capital / initial_capital) ** (1 / years) - 1) * 100

    return BacktestSummary(
        total_trades=total,
        winning_trades=winners,
        losing_trades=total - winners,
        win_rate=winners / total * 100 if total else 0.0,
        total_profit=final_capital - initial_capital,
        initial_capital=initial_capital,
        final_capital=final_capital,
        cagr=cagr,
    )


def run_backtest(
    candidates: Sequence[CandidateTrade],
    bars: Market,
    initial_capital: float = 10_000.0,
    prevent_on_losses: bool = False,
    liquidate_group_on_loss: bool = False,
    single_trade_per_bar: bool = False,
    position_size_fraction: float = 0.10,
) -> BacktestResult:
    """Functional entry point; builds a BacktestConfig and runs one simulation."""
    config = BacktestConfig(
        initial_capital=initial_capital,
        prevent_on_losses=prevent_on_losses,
        liquidate_group_on_loss=liquidate_group_on_loss,
        single_trade_per_bar=single_trade_per_bar,
        position_size_fraction=position_size_fraction,
    )
    return PortfolioBacktester(config).run(candidates, bars)
