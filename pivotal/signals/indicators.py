"""
Auxiliary technical indicators.

Plain scalar indicators used as qualification filters around the pivot
engine (trend filter, rule-based strategies layered on top). Each returns
the value for the most recent bar of the series, or None when there are
not enough bars.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd

from pivotal.data.bars import BarSeries


@dataclass(frozen=True)
class BollingerBands:
    upper: float
    middle: float
    lower: float


def sma(series: BarSeries, period: int) -> Optional[float]:
    """Simple moving average of closes over the last period bars."""
    if period <= 0 or len(series) < period:
        return None
    return float(np.mean(series.closes[-period:]))


def rsi(series: BarSeries, period: int = 14) -> Optional[float]:
    """
    Relative Strength Index with Wilder smoothing.

    Seeded with the simple average gain/loss of the first period changes,
    then smoothed over the rest of the series.
    """
    if len(series) < period + 1:
        return None

    delta = np.diff(series.closes)
    gains = np.where(delta > 0, delta, 0.0)
    losses = np.where(delta < 0, -delta, 0.0)

    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    for g, lo in zip(gains[period:], losses[period:]):
        avg_gain = (avg_gain * (period - 1) + g) / period
        avg_loss = (avg_loss * (period - 1) + lo) / period

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return float(100 - (100 / (1 + rs)))


def bollinger_bands(
    series: BarSeries, period: int = 20, multiplier: float = 2.0
) -> Optional[BollingerBands]:
    """Bollinger Bands on closes (population standard deviation)."""
    if len(series) < period:
        return None
    window = pd.Series(series.closes[-period:])
    middle = float(window.mean())
    std = float(window.std(ddof=0))
    return BollingerBands(
        upper=middle + multiplier * std,
        middle=middle,
        lower=middle - multiplier * std,
    )


def relative_volume(series: BarSeries, period: int = 20) -> float:
    """
    Current volume relative to the average of the preceding period bars.

    Returns 1.0 (neutral) when there is not enough history or the average
    is zero.
    """
    if len(series) < period + 1:
        return 1.0
    volumes = series.frame["volume"].to_numpy(dtype=float)
    avg = volumes[-period - 1:-1].mean()
    return float(volumes[-1] / avg) if avg > 0 else 1.0


def is_golden_cross(series: BarSeries, short_period: int = 50, long_period: int = 200) -> bool:
    """True when the short SMA crossed above the long SMA on the last bar."""
    if len(series) < long_period + 1:
        return False
    closes = pd.Series(series.closes)
    short = closes.rolling(short_period).mean()
    long = closes.rolling(long_period).mean()
    return bool(short.iat[-2] <= long.iat[-2] and short.iat[-1] > long.iat[-1])
