"""Shared fixtures: synthetic bar series and hand-built candidates."""

from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import pytest

from pivotal.core.enums import Direction, PivotKind
from pivotal.core.models import CandidateTrade, Pivot, Signal
from pivotal.data.bars import BarSeries

Row = Tuple[float, float, float, float]


def _series(rows: Sequence[Row], start: str, freq: str, symbol: str) -> BarSeries:
    index = pd.date_range(start, periods=len(rows), freq=freq)
    frame = pd.DataFrame(
        list(rows), columns=["open", "high", "low", "close"], index=index, dtype=float
    )
    frame["volume"] = 1_000.0
    return BarSeries(frame, symbol=symbol)


@pytest.fixture
def make_bars():
    """Build a BarSeries from (open, high, low, close) rows."""

    def _make(rows, start="2024-01-01", freq="D", symbol="TEST"):
        return _series(rows, start, freq, symbol)

    return _make


@pytest.fixture
def make_hl_bars():
    """Build a BarSeries from highs and lows; open and close sit mid-range."""

    def _make(highs, lows, start="2024-01-01", freq="D", symbol="TEST"):
        rows = [((h + lo) / 2, h, lo, (h + lo) / 2) for h, lo in zip(highs, lows)]
        return _series(rows, start, freq, symbol)

    return _make


@pytest.fixture
def flat_rows():
    """n quiet bars: open/close at price, +/- spread range."""

    def _make(n, price=100.0, spread=1.0):
        return [(price, price + spread, price - spread, price)] * n

    return _make


@pytest.fixture
def random_walk():
    """Seeded random-walk BarSeries, always positive."""

    def _make(n=400, seed=7, start="2020-01-01", symbol="RW"):
        rng = np.random.default_rng(seed)
        closes = 100 + np.cumsum(rng.normal(0, 1.0, n))
        closes = np.maximum(closes, 20.0)
        opens = np.concatenate([[closes[0]], closes[:-1]]) + rng.normal(0, 0.3, n)
        highs = np.maximum(opens, closes) + rng.uniform(0.1, 1.5, n)
        lows = np.minimum(opens, closes) - rng.uniform(0.1, 1.5, n)
        rows = list(zip(opens, highs, lows, closes))
        return _series(rows, start, "D", symbol)

    return _make


@pytest.fixture
def make_candidate():
    """
    Candidate entering at bar entry_idx (trigger on the bar before) with
    explicit stop and target.
    """

    def _make(
        series: BarSeries,
        entry_idx: int,
        stop: float,
        target: Optional[float],
        direction: Direction = Direction.LONG,
        start_point_name: str = "SP1",
        symbol: Optional[str] = None,
    ) -> CandidateTrade:
        first = series.timestamp_at(0)
        signal = Signal(
            trigger_timestamp=series.timestamp_at(entry_idx - 1),
            entry_timestamp=series.timestamp_at(entry_idx),
            entry_price=float(series.opens[entry_idx]),
            direction=direction,
            reason="test",
        )
        if direction == Direction.LONG:
            pivot_low = Pivot(first, stop, PivotKind.LOW)
            pivot_high = Pivot(first, float(series.highs[0]), PivotKind.HIGH)
        else:
            pivot_high = Pivot(first, stop, PivotKind.HIGH)
            pivot_low = Pivot(first, float(series.lows[0]), PivotKind.LOW)
        return CandidateTrade(
            signal=signal,
            pivot_high=pivot_high,
            pivot_low=pivot_low,
            start_point_name=start_point_name,
            projected_exit=target,
            symbol=series.symbol if symbol is None else symbol,
            start_timestamp=first,
            lookback_period=5,
            lookback_end=series.timestamp_at(max(entry_idx - 2, 0)),
        )

    return _make
