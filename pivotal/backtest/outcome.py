"""
Stop/target resolution shared by real positions and ghost trades.

Only OHLC is known per bar, so the intrabar path is unknown. When a bar
touches both the stop and the target, the stop is assumed to have been hit
first.
"""

from typing import NamedTuple, Optional

from pivotal.core.enums import TradeOutcome
from pivotal.core.models import CandidateTrade
from pivotal.data.bars import BarSeries


class ExitHit(NamedTuple):
    price: float
    is_stop: bool


def check_exit(
    is_long: bool,
    stop_loss: float,
    take_profit: float,
    high: float,
    low: float,
) -> Optional[ExitHit]:
    """Resolve at most one exit on a bar; stop wins ties."""
    if is_long:
        if low <= stop_loss:
            return ExitHit(stop_loss, True)
        if high >= take_profit:
            return ExitHit(take_profit, False)
    else:
        if high >= stop_loss:
            return ExitHit(stop_loss, True)
        if low <= take_profit:
            return ExitHit(take_profit, False)
    return None


def simulate_outcome(candidate: CandidateTrade, series: BarSeries) -> Optional[TradeOutcome]:
    """
    Replay a candidate from its entry bar forward without touching capital.

    Returns:
        WIN or LOSS by the sign of the first resolved exit (profit <= 0 is a
        loss), or None when the entry bar is missing or neither level is
        reached before the series ends.
    """
    start = series.index_of(candidate.entry_timestamp)
    if start is None:
        return None

    is_long = candidate.is_long
    stop, target = candidate.stop_loss, candidate.take_profit
    highs, lows = series.highs, series.lows

    for i in range(start, len(series)):
        hit = check_exit(is_long, stop, target, highs[i], lows[i])
        if hit is None:
            continue
        move = hit.price - candidate.entry_price
        profit = move if is_long else -move
        return TradeOutcome.WIN if profit > 0 else TradeOutcome.LOSS
    return None
