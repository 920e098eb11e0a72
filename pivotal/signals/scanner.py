"""
Forward breakout scanner.

Walks a scan window from its first bar and records the first close beyond
each pivot. Entry is always the next bar's open; the trigger bar's own
prices are never used for entry.
"""

import logging
from typing import Optional

from pivotal.core.enums import Direction
from pivotal.core.models import Pivot, Signal, SignalPair
from pivotal.data.bars import BarSeries

logger = logging.getLogger(__name__)


def find_signals(
    window: BarSeries,
    pivot_high: Optional[Pivot],
    pivot_low: Optional[Pivot],
) -> SignalPair:
    """
    Find the earliest long and short breakout signals in a window.

    Long: first bar after pivot_high whose close is above pivot_high.price.
    Short: first bar after pivot_low whose close is below pivot_low.price.
    The last bar of the window can never trigger since it has no entry bar.

    Args:
        window: Bars following the stop-discovery window.
        pivot_high: Resistance pivot (may be None).
        pivot_low: Support pivot (may be None).

    Returns:
        SignalPair(long_signal, short_signal), either may be None.
    """
    long_signal = None
    short_signal = None

    n = len(window)
    if n < 2:
        return SignalPair(None, None)

    closes = window.closes
    opens = window.opens
    index = window.index

    for i in range(n - 1):
        trigger_ts = index[i]

        if (
            long_signal is None
            and pivot_high is not None
            and trigger_ts > pivot_high.timestamp
            and closes[i] > pivot_high.price
        ):
            long_signal = Signal(
                trigger_timestamp=trigger_ts,
                entry_timestamp=index[i + 1],
                entry_price=float(opens[i + 1]),
                direction=Direction.LONG,
                reason=f"Closed above fractal high of {pivot_high.price:.2f}",
            )

        if (
            short_signal is None
            and pivot_low is not None
            and trigger_ts > pivot_low.timestamp
            and closes[i] < pivot_low.price
        ):
            short_signal = Signal(
                trigger_timestamp=trigger_ts,
                entry_timestamp=index[i + 1],
                entry_price=float(opens[i + 1]),
                direction=Direction.SHORT,
                reason=f"Closed below fractal low of {pivot_low.price:.2f}",
            )

        if long_signal is not None and short_signal is not None:
            break

    return SignalPair(long_signal, short_signal)
