"""
Bar data model.

A BarSeries is an immutable, validated, chronologically ordered view over an
OHLCV DataFrame. Every detector and the simulator consume BarSeries windows
so index arithmetic stays in integer positions and timestamps stay exact.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from pivotal.core.exceptions import PivotalDataError

logger = logging.getLogger(__name__)

OHLCV_COLUMNS = ("open", "high", "low", "close", "volume")


@dataclass(frozen=True)
class Bar:
    """A single OHLCV bar."""

    timestamp: pd.Timestamp
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


class BarSeries:
    """
    Immutable ordered sequence of bars.

    Backed by a DataFrame with a DatetimeIndex and open/high/low/close/volume
    columns. Slicing returns another BarSeries over the same data; the
    underlying numpy arrays are marked read-only.
    """

    def __init__(
        self,
        frame: pd.DataFrame,
        symbol: str = "",
        *,
        _validated: bool = False,
    ) -> None:
        if not _validated:
            frame = self._validate(frame)
        self._frame = frame
        self.symbol = symbol
        self._opens = self._readonly(frame["open"])
        self._highs = self._readonly(frame["high"])
        self._lows = self._readonly(frame["low"])
        self._closes = self._readonly(frame["close"])

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_bars(cls, bars: Sequence[Bar], symbol: str = "") -> "BarSeries":
        """Build a series from Bar objects."""
        frame = pd.DataFrame(
            {
                "open": [b.open for b in bars],
                "high": [b.high for b in bars],
                "low": [b.low for b in bars],
                "close": [b.close for b in bars],
                "volume": [b.volume for b in bars],
            },
            index=pd.DatetimeIndex([b.timestamp for b in bars]),
        )
        return cls(frame, symbol=symbol)

    @staticmethod
    def _readonly(column: pd.Series) -> np.ndarray:
        arr = column.to_numpy(dtype=float, copy=True)
        arr.flags.writeable = False
        return arr

    @staticmethod
    def _validate(frame: pd.DataFrame) -> pd.DataFrame:
        """Check columns, dtypes and ordering; return a private copy."""
        if not isinstance(frame, pd.DataFrame):
            raise PivotalDataError(f"Expected a DataFrame, got {type(frame).__name__}")

        cols = {c.lower(): c for c in frame.columns}
        missing = [c for c in OHLCV_COLUMNS[:4] if c not in cols]
        if missing:
            raise PivotalDataError(f"Bars missing required columns: {missing}")

        out = pd.DataFrame(
            {c: frame[cols[c]] for c in OHLCV_COLUMNS if c in cols},
            index=frame.index,
        )
        if "volume" not in out.columns:
            out["volume"] = 0.0

        try:
            out = out.astype(float)
        except (TypeError, ValueError) as e:
            raise PivotalDataError(f"Bars contain non-numeric OHLCV values: {e}") from e

        if not isinstance(out.index, pd.DatetimeIndex):
            try:
                out.index = pd.DatetimeIndex(out.index)
            except (TypeError, ValueError) as e:
                raise PivotalDataError(f"Bar index is not datetime-like: {e}") from e

        if out.index.has_duplicates:
            dupes = out.index[out.index.duplicated()].unique()
            raise PivotalDataError(f"Duplicate bar timestamps: {list(dupes[:5])}")
        if not out.index.is_monotonic_increasing:
            raise PivotalDataError("Bar timestamps must be in ascending order")

        return out

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    @property
    def frame(self) -> pd.DataFrame:
        """A copy of the underlying OHLCV DataFrame."""
        return self._frame.copy()

    @property
    def index(self) -> pd.DatetimeIndex:
        return self._frame.index

    @property
    def opens(self) -> np.ndarray:
        return self._opens

    @property
    def highs(self) -> np.ndarray:
        return self._highs

    @property
    def lows(self) -> np.ndarray:
        return self._lows

    @property
    def closes(self) -> np.ndarray:
        return self._closes

    @property
    def empty(self) -> bool:
        return len(self._frame) == 0

    def __len__(self) -> int:
        return len(self._frame)

    def __iter__(self) -> Iterator[Bar]:
        for i in range(len(self)):
            yield self[i]

    def __getitem__(self, key: Union[int, slice]) -> Union[Bar, "BarSeries"]:
        if isinstance(key, slice):
            return BarSeries(self._frame.iloc[key], symbol=self.symbol, _validated=True)
        n = len(self)
        if key < 0:
            key += n
        if not 0 <= key < n:
            raise IndexError(f"bar index {key} out of range for {n} bars")
        return Bar(
            timestamp=self._frame.index[key],
            open=float(self._opens[key]),
            high=float(self._highs[key]),
            low=float(self._lows[key]),
            close=float(self._closes[key]),
            volume=float(self._frame["volume"].iat[key]),
        )

    def timestamp_at(self, i: int) -> pd.Timestamp:
        return self._frame.index[i]

    def index_of(self, timestamp: Union[datetime, pd.Timestamp]) -> Optional[int]:
        """Integer position of an exact timestamp, or None."""
        try:
            loc = self._frame.index.get_loc(pd.Timestamp(timestamp))
        except KeyError:
            return None
        return int(loc)

    def first_index_at_or_after(
        self, timestamp: Union[datetime, pd.Timestamp]
    ) -> Optional[int]:
        """Position of the first bar at or after timestamp, or None."""
        pos = int(self._frame.index.searchsorted(pd.Timestamp(timestamp), side="left"))
        return pos if pos < len(self) else None

    def to_records(self) -> List[Bar]:
        return list(self)

    def __repr__(self) -> str:
        if self.empty:
            return f"BarSeries(symbol={self.symbol!r}, empty)"
        return (
            f"BarSeries(symbol={self.symbol!r}, bars={len(self)}, "
            f"{self.index[0]} -> {self.index[-1]})"
        )
