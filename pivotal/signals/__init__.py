"""Pivot detection, breakout scanning and exit projection."""

from .assembler import SignalAssembler
from .pivots import (
    IndexedPivot,
    find_exit_projection_pivot,
    find_major_pivots,
    find_pivots,
    find_sharp_pivots,
)
from .projection import project_exit
from .scaling import ScalingEstimator, average_true_range, trend_structure_ratio
from .scanner import find_signals
from .start_points import IndexedStartPoint, resolve_start_points

__all__ = [
    "IndexedPivot",
    "IndexedStartPoint",
    "ScalingEstimator",
    "SignalAssembler",
    "average_true_range",
    "find_exit_projection_pivot",
    "find_major_pivots",
    "find_pivots",
    "find_sharp_pivots",
    "find_signals",
    "project_exit",
    "resolve_start_points",
    "trend_structure_ratio",
]
