"""
Session filters for intraday bars.

Keeps only US regular-trading-hours bars on weekdays. Daily bars pass
through untouched.
"""

import logging

import pytz

from pivotal.core.exceptions import PivotalConfigError
from pivotal.data.bars import BarSeries

logger = logging.getLogger(__name__)

EASTERN = pytz.timezone("US/Eastern")

DAILY_TIMEFRAMES = ("1d", "1day", "d", "day", "daily")
HOURLY_TIMEFRAMES = ("1h", "1hour", "60m", "60min")
INTRADAY_TIMEFRAMES = ("1m", "1min", "5m", "5min", "15m", "15min", "30m", "30min")

TIMEFRAMES = DAILY_TIMEFRAMES + HOURLY_TIMEFRAMES + INTRADAY_TIMEFRAMES


def filter_regular_hours(series: BarSeries, timeframe: str) -> BarSeries:
    """
    Drop weekend and out-of-session bars.

    Hourly bars: keep the 9:00-15:00 ET hour buckets (the 9:00 bar holds the
    9:30 open). Minute bars: keep 09:30 <= t < 16:00 ET.
    Naive timestamps are treated as UTC.

    Args:
        series: Bars to filter.
        timeframe: Bar size, case-insensitive. Any label in TIMEFRAMES.

    Returns:
        A new BarSeries with only regular-session bars.
    """
    tf = timeframe.strip().lower()
    if tf not in TIMEFRAMES:
        raise PivotalConfigError(
            f"Unknown timeframe {timeframe!r}, expected one of {TIMEFRAMES}"
        )
    if tf in DAILY_TIMEFRAMES or series.empty:
        return series

    frame = series.frame
    idx = frame.index
    if idx.tz is None:
        idx = idx.tz_localize(pytz.utc)
    local = idx.tz_convert(EASTERN)

    weekday = local.dayofweek < 5
    if tf in HOURLY_TIMEFRAMES:
        in_session = (local.hour >= 9) & (local.hour <= 15)
    else:
        after_open = (local.hour > 9) | ((local.hour == 9) & (local.minute >= 30))
        in_session = after_open & (local.hour < 16)

    mask = weekday & in_session
    dropped = int((~mask).sum())
    if dropped:
        logger.debug(f"Dropped {dropped} out-of-session bars for {series.symbol}")

    return BarSeries(frame[mask], symbol=series.symbol)
