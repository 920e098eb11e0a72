"""Bar data model and loading helpers."""

from .bars import Bar, BarSeries
from .filters import TIMEFRAMES, filter_regular_hours
from .loader import bars_from_frame, load_bars_csv

__all__ = [
    "TIMEFRAMES",
    "Bar",
    "BarSeries",
    "bars_from_frame",
    "filter_regular_hours",
    "load_bars_csv",
]
