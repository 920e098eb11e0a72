"""
Pivot (fractal) detection.

A fractal high is a bar whose high is strictly above the highs of its
neighbours on both sides; a fractal low mirrors that on lows. Widths:
5-bar (two neighbours each side) and 3-bar (one each side).
"""

import logging
from typing import List, NamedTuple, Optional

import numpy as np
import pandas as pd

from pivotal.core.enums import Direction, PivotKind
from pivotal.core.models import Pivot, PivotPair
from pivotal.data.bars import BarSeries

logger = logging.getLogger(__name__)


class IndexedPivot(NamedTuple):
    """A pivot together with its integer position in the scanned series."""

    pivot: Pivot
    index: int


def _is_fractal_high(highs: np.ndarray, i: int, width: int) -> bool:
    h = highs[i]
    return all(h > highs[i - k] and h > highs[i + k] for k in range(1, width + 1))


def _is_fractal_low(lows: np.ndarray, i: int, width: int) -> bool:
    lo = lows[i]
    return all(lo < lows[i - k] and lo < lows[i + k] for k in range(1, width + 1))


def _latest_fractal(values: np.ndarray, width: int, is_high: bool) -> Optional[int]:
    """Index of the most recent fractal of the given width, searching backward."""
    check = _is_fractal_high if is_high else _is_fractal_low
    for i in range(len(values) - 1 - width, width - 1, -1):
        if check(values, i, width):
            return i
    return None


def find_pivots(window: BarSeries) -> PivotPair:
    """
    Find the most significant recent high and low pivots in a window.

    Searches backward for a 5-bar fractal, falling back to a 3-bar fractal
    when none exists. High and low are resolved independently. Each found
    pivot is then corrected forward: it is replaced by the most extreme
    high (or low) from the fractal bar to the end of the window, keeping the
    bar where that extreme first occurs.

    Args:
        window: Bars to search (stop-loss discovery window).

    Returns:
        PivotPair(pivot_high, pivot_low); (None, None) for fewer than 3 bars.
    """
    n = len(window)
    if n < 3:
        return PivotPair(None, None)

    highs = window.highs
    lows = window.lows

    high_idx = _latest_fractal(highs, 2, is_high=True) if n >= 5 else None
    if high_idx is None:
        high_idx = _latest_fractal(highs, 1, is_high=True)

    low_idx = _latest_fractal(lows, 2, is_high=False) if n >= 5 else None
    if low_idx is None:
        low_idx = _latest_fractal(lows, 1, is_high=False)

    pivot_high = None
    if high_idx is not None:
        # argmax returns the first occurrence, so ties keep the earlier bar
        corrected = high_idx + int(np.argmax(highs[high_idx:]))
        pivot_high = Pivot(
            timestamp=window.timestamp_at(corrected),
            price=float(highs[corrected]),
            kind=PivotKind.HIGH,
        )

    pivot_low = None
    if low_idx is not None:
        corrected = low_idx + int(np.argmin(lows[low_idx:]))
        pivot_low = Pivot(
            timestamp=window.timestamp_at(corrected),
            price=float(lows[corrected]),
            kind=PivotKind.LOW,
        )

    return PivotPair(pivot_high, pivot_low)


def find_exit_projection_pivot(
    history: BarSeries, direction: Direction
) -> Optional[IndexedPivot]:
    """
    Most recent 3-bar fractal preceding a trigger bar.

    A long projects from the last fractal low, a short from the last fractal
    high. No correction pass is applied.

    Args:
        history: Bars strictly before the trigger bar.
        direction: Trade direction of the signal.

    Returns:
        IndexedPivot (index into history) or None when none is found.
    """
    if len(history) < 3:
        return None

    is_long = direction == Direction.LONG
    values = history.lows if is_long else history.highs
    idx = _latest_fractal(values, 1, is_high=not is_long)
    if idx is None:
        return None

    return IndexedPivot(
        pivot=Pivot(
            timestamp=history.timestamp_at(idx),
            price=float(values[idx]),
            kind=PivotKind.LOW if is_long else PivotKind.HIGH,
        ),
        index=idx,
    )


def find_sharp_pivots(series: BarSeries, lookaround: int) -> List[int]:
    """
    Bars that are the highest high or lowest low of their +/- lookaround window.

    Returns:
        Sorted integer positions. Empty when the series is shorter than
        2 * lookaround + 1 bars.
    """
    span = 2 * lookaround + 1
    if len(series) < span:
        return []

    highs = pd.Series(series.highs)
    lows = pd.Series(series.lows)
    max_high = highs.rolling(span, center=True).max()
    min_low = lows.rolling(span, center=True).min()

    is_pivot = (highs == max_high) | (lows == min_low)
    return [int(i) for i in np.flatnonzero(is_pivot.to_numpy())]


def find_major_pivots(series: BarSeries, lookback: int) -> List[IndexedPivot]:
    """
    Bars that set a new high (or low) relative to the preceding lookback bars.

    Only past bars are compared, so the result carries no look-ahead.

    Returns:
        IndexedPivot list in chronological order; a bar can yield both a high
        and a low pivot (high first).
    """
    if len(series) <= lookback:
        logger.warning(
            f"Not enough bars ({len(series)}) to find major pivots with lookback {lookback}"
        )
        return []

    highs = pd.Series(series.highs)
    lows = pd.Series(series.lows)
    prior_max = highs.rolling(lookback).max().shift(1)
    prior_min = lows.rolling(lookback).min().shift(1)

    new_high = (highs > prior_max).to_numpy()
    new_low = (lows < prior_min).to_numpy()

    pivots: List[IndexedPivot] = []
    for i in range(lookback, len(series)):
        ts = series.timestamp_at(i)
        if new_high[i]:
            pivots.append(IndexedPivot(Pivot(ts, float(highs.iat[i]), PivotKind.HIGH), i))
        if new_low[i]:
            pivots.append(IndexedPivot(Pivot(ts, float(lows.iat[i]), PivotKind.LOW), i))
    return pivots
