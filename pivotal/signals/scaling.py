"""
Price-per-bar scaling for exit projection.

Two measures of how many price units one bar is "worth":
- Trend structure: average |slope| between the last few swing pivots.
- Volatility: average true range.

They are blended into one scaling factor. When neither can be computed the
factor is absent and the caller must treat the projection as unavailable.
"""

import logging
from typing import Optional

import pandas as pd

from pivotal.config.settings import ScalingConfig
from pivotal.data.bars import BarSeries

logger = logging.getLogger(__name__)


def trend_structure_ratio(
    window: BarSeries,
    num_pivots: int = 4,
    lookaround: int = 10,
) -> Optional[float]:
    """
    Average absolute price change per bar between recent swing pivots.

    A bar is a swing pivot when its high is the highest (checked first) or
    its low the lowest of the +/- lookaround window around it. After a pivot
    the next lookaround bars are skipped.

    Returns:
        Mean |dP|/dT over consecutive pairs of the last num_pivots pivots,
        or None with fewer than 2 * lookaround + 1 bars or fewer than 2 pivots.
    """
    n = len(window)
    span = 2 * lookaround + 1
    if n < span:
        return None

    highs = pd.Series(window.highs)
    lows = pd.Series(window.lows)
    max_high = highs.rolling(span, center=True).max().to_numpy()
    min_low = lows.rolling(span, center=True).min().to_numpy()

    pivots = []  # (index, price)
    i = lookaround
    while i < n - lookaround:
        if highs.iat[i] == max_high[i]:
            pivots.append((i, float(highs.iat[i])))
            i += lookaround
        elif lows.iat[i] == min_low[i]:
            pivots.append((i, float(lows.iat[i])))
            i += lookaround
        i += 1

    if len(pivots) < 2:
        return None

    recent = pivots[-num_pivots:]
    slopes = [
        abs(p2 - p1) / (i2 - i1)
        for (i1, p1), (i2, p2) in zip(recent, recent[1:])
        if i2 > i1
    ]
    if not slopes:
        return None
    return sum(slopes) / len(slopes)


def average_true_range(window: BarSeries, period: int) -> Optional[float]:
    """
    Simple average of the last `period` true ranges.

    True Range = max of:
      - high - low
      - abs(high - previous_close)
      - abs(low - previous_close)

    Returns:
        ATR of the most recent bar, or None with fewer than period + 1 bars.
    """
    if len(window) < period + 1:
        return None

    high = pd.Series(window.highs)
    low = pd.Series(window.lows)
    close = pd.Series(window.closes)
    prev_close = close.shift(1)
    tr1 = high - low
    tr2 = (high - prev_close).abs()
    tr3 = (low - prev_close).abs()
    tr = pd.concat([tr1, tr2, tr3], axis=1).max(axis=1).iloc[1:]
    return float(tr.iloc[-period:].mean())


class ScalingEstimator:
    """Blend trend-structure slope and ATR into one scaling factor."""

    def __init__(self, config: Optional[ScalingConfig] = None) -> None:
        self.config = config or ScalingConfig()

    def estimate(self, window: BarSeries) -> Optional[float]:
        """
        Scaling factor for the bars preceding a trigger.

        Both measures available: weighted blend. One available: that one.
        Neither: None.
        """
        cfg = self.config
        trend = trend_structure_ratio(window, cfg.trend_pivots, cfg.trend_lookaround)
        vol = average_true_range(window, cfg.atr_period)
        return self.combine(trend, vol)

    def combine(self, trend: Optional[float], vol: Optional[float]) -> Optional[float]:
        if trend is not None and vol is not None:
            return trend * self.config.trend_weight + vol * self.config.volatility_weight
        if trend is not None:
            return trend
        return vol
