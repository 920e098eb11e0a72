"""
Load historical bars from local files.

Bars are fetched elsewhere (broker/data vendor) and cached as CSV. This module
only turns those files into validated BarSeries objects.
"""

import logging
import warnings
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from pivotal.core.exceptions import PivotalDataError
from pivotal.data.bars import BarSeries

logger = logging.getLogger(__name__)

# Accepted names for the time column, in priority order
_TIME_COLUMNS = ("timestamp", "date", "datetime", "time")


def _parse_timestamps(values: pd.Series, column: str) -> pd.DatetimeIndex:
    """
    Parse a time column into a DatetimeIndex.

    Naive stamps stay naive. Offset-stamped values whose offsets differ
    (ET exports spanning a DST change) are normalised to UTC.
    """
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", FutureWarning)
            parsed = pd.DatetimeIndex(pd.to_datetime(values))
        return parsed
    except (TypeError, ValueError):
        pass

    try:
        return pd.DatetimeIndex(pd.to_datetime(values, utc=True))
    except (TypeError, ValueError) as e:
        raise PivotalDataError(f"Unparseable timestamps in column {column!r}: {e}") from e


def bars_from_frame(df: pd.DataFrame, symbol: str = "") -> BarSeries:
    """
    Build a BarSeries from a DataFrame.

    The frame may carry timestamps either in its index or in one of the
    columns ``timestamp``, ``date``, ``datetime`` or ``time``.
    """
    if df.empty:
        raise PivotalDataError("No bars to load")

    frame = df.rename(columns=str.lower)
    if not isinstance(frame.index, pd.DatetimeIndex):
        time_col = next((c for c in _TIME_COLUMNS if c in frame.columns), None)
        if time_col is None:
            raise PivotalDataError(
                f"Bars need a DatetimeIndex or one of the columns {_TIME_COLUMNS}"
            )
        frame = frame.set_index(_parse_timestamps(frame[time_col], time_col)).drop(columns=[time_col])
        frame.index.name = "timestamp"

    return BarSeries(frame, symbol=symbol)


def load_bars_csv(path: Union[str, Path], symbol: Optional[str] = None) -> BarSeries:
    """
    Load an OHLCV CSV into a BarSeries.

    Args:
        path: CSV file with open/high/low/close[/volume] and a time column.
        symbol: Label for the series. Defaults to the file stem.

    Returns:
        Validated BarSeries sorted as stored in the file.
    """
    path = Path(path)
    if not path.exists():
        raise PivotalDataError(f"Bar file not found: {path}")

    df = pd.read_csv(path)
    series = bars_from_frame(df, symbol=symbol if symbol is not None else path.stem)
    logger.info(f"Loaded {len(series)} bars for {series.symbol} from {path.name}")
    return series
