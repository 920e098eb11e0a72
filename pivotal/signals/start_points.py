"""
Start-point discovery.

A start point anchors one stop-discovery window per lookback period. Anchors
come from the series itself (sharp or major pivots) or are supplied by the
caller (manual dates, or dates produced by an external calendar strategy).
"""

import logging
from typing import List, NamedTuple, Optional, Sequence

import pandas as pd

from pivotal.core.enums import StartPointMode
from pivotal.core.exceptions import PivotalConfigError
from pivotal.core.models import StartPoint
from pivotal.data.bars import BarSeries
from pivotal.signals.pivots import find_major_pivots, find_sharp_pivots

logger = logging.getLogger(__name__)


class IndexedStartPoint(NamedTuple):
    start_point: StartPoint
    index: int


def resolve_start_points(
    series: BarSeries,
    mode: StartPointMode = StartPointMode.SHARP,
    *,
    lookaround: int = 10,
    major_lookback: int = 180,
    anchors: Optional[Sequence[StartPoint]] = None,
    start: Optional[pd.Timestamp] = None,
    end: Optional[pd.Timestamp] = None,
) -> List[IndexedStartPoint]:
    """
    Resolve start points to bar positions.

    Args:
        series: Full bar series.
        mode: SHARP (+/- lookaround extremes), MAJOR (new N-bar extremes) or
            MANUAL (use anchors).
        lookaround: Half-width of the sharp pivot window.
        major_lookback: Bars compared for major pivots.
        anchors: Caller-supplied start points (MANUAL only). Each is mapped
            to the first bar at or after its timestamp.
        start: Ignore anchors before this timestamp.
        end: Ignore anchors after this timestamp.

    Returns:
        IndexedStartPoint list in chronological order.
    """
    if mode == StartPointMode.SHARP:
        points = [
            IndexedStartPoint(
                StartPoint(
                    name=f"Auto Pivot on {series.timestamp_at(i).isoformat()}",
                    timestamp=series.timestamp_at(i),
                ),
                i,
            )
            for i in find_sharp_pivots(series, lookaround)
        ]
    elif mode == StartPointMode.MAJOR:
        points = [
            IndexedStartPoint(
                StartPoint(
                    name=(
                        f"Auto {p.pivot.kind.value.capitalize()} Pivot "
                        f"{p.pivot.timestamp.date().isoformat()}"
                    ),
                    timestamp=p.pivot.timestamp,
                ),
                p.index,
            )
            for p in find_major_pivots(series, major_lookback)
        ]
    elif mode == StartPointMode.MANUAL:
        if not anchors:
            raise PivotalConfigError("Manual start-point mode requires at least one anchor")
        points = []
        for anchor in anchors:
            idx = series.first_index_at_or_after(anchor.timestamp)
            if idx is None:
                logger.warning(f"Start point {anchor.name!r} is after the last bar; skipped")
                continue
            points.append(IndexedStartPoint(anchor, idx))
        points.sort(key=lambda p: p.index)
    else:
        raise PivotalConfigError(f"Unknown start point mode: {mode}")

    if start is not None:
        start = pd.Timestamp(start)
        points = [p for p in points if series.timestamp_at(p.index) >= start]
    if end is not None:
        end = pd.Timestamp(end)
        points = [p for p in points if series.timestamp_at(p.index) <= end]

    logger.debug(f"Resolved {len(points)} {mode.value} start points for {series.symbol}")
    return points
