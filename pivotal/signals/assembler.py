"""
Candidate signal assembly.

For every start point and every lookback period:

1. Stop-discovery window = bars [start, start + lookback]; its pivots become
   the breakout levels and protective stops.
2. Scan window = every bar after start + lookback; the earliest close beyond
   a pivot is the trigger, the next bar's open the entry.
3. The exit target is projected from the last opposite-side fractal before
   the trigger, scaled by the recent trend/volatility structure.

Signals whose exit cannot be projected are dropped. There is no fallback
target.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

import pandas as pd

from pivotal.config.settings import SignalConfig
from pivotal.core.enums import Direction
from pivotal.core.models import CandidateTrade, PivotPair, Signal, StartPoint
from pivotal.data.bars import BarSeries
from pivotal.signals.indicators import sma
from pivotal.signals.pivots import find_exit_projection_pivot, find_pivots
from pivotal.signals.projection import project_exit
from pivotal.signals.scaling import ScalingEstimator
from pivotal.signals.scanner import find_signals
from pivotal.signals.start_points import IndexedStartPoint, resolve_start_points

logger = logging.getLogger(__name__)


class SignalAssembler:
    """
    Build the flat list of candidate trades for one bar series.

    Each (start point, lookback) combination is independent, so start points
    can be fanned out across threads with max_workers > 1; results are
    merged back in start-point order and match the serial run exactly.
    """

    def __init__(self, config: Optional[SignalConfig] = None) -> None:
        self.config = config or SignalConfig()
        self.scaler = ScalingEstimator(self.config.scaling)

    def assemble(
        self,
        series: BarSeries,
        anchors: Optional[Sequence[StartPoint]] = None,
        start: Optional[pd.Timestamp] = None,
        end: Optional[pd.Timestamp] = None,
    ) -> List[CandidateTrade]:
        """
        Generate candidates for a bar series.

        Args:
            series: Full chronological bar series.
            anchors: Start points for MANUAL mode.
            start: First timestamp a start point may fall on.
            end: Last timestamp a start point may fall on.

        Returns:
            CandidateTrade list, grouped by start point in chronological order.
        """
        cfg = self.config
        start_points = resolve_start_points(
            series,
            cfg.start_point_mode,
            lookaround=cfg.pivot_lookaround,
            major_lookback=cfg.major_pivot_lookback,
            anchors=anchors,
            start=start,
            end=end,
        )

        if cfg.max_workers > 1 and len(start_points) > 1:
            with ThreadPoolExecutor(max_workers=cfg.max_workers) as pool:
                batches = list(pool.map(lambda sp: self._for_start_point(series, sp), start_points))
        else:
            batches = [self._for_start_point(series, sp) for sp in start_points]

        candidates = [c for batch in batches for c in batch]
        logger.info(
            f"Assembled {len(candidates)} candidates for {series.symbol or 'series'} "
            f"from {len(start_points)} start points x {len(cfg.lookback_periods)} lookbacks"
        )
        return candidates

    # ------------------------------------------------------------------
    # Per start point
    # ------------------------------------------------------------------

    def _for_start_point(self, series: BarSeries, sp: IndexedStartPoint) -> List[CandidateTrade]:
        cfg = self.config
        i = sp.index
        n = len(series)

        allow_long = allow_short = True
        if cfg.trend_filter_period is not None:
            trend_sma = sma(series[: i + 1], cfg.trend_filter_period)
            if trend_sma is None:
                return []
            close = series.closes[i]
            allow_long = close > trend_sma
            allow_short = close < trend_sma

        out: List[CandidateTrade] = []
        for lookback in cfg.lookback_periods:
            end_idx = i + lookback
            if end_idx >= n:
                continue

            pivots = find_pivots(series[i : end_idx + 1])
            signals = find_signals(series[end_idx + 1 :], pivots.pivot_high, pivots.pivot_low)

            chosen = []
            if cfg.emit_both_directions:
                chosen = [s for s in signals if s is not None]
            elif signals.long_signal is not None:
                chosen = [signals.long_signal]
            elif signals.short_signal is not None:
                chosen = [signals.short_signal]

            for signal in chosen:
                if signal.direction == Direction.LONG and not allow_long:
                    continue
                if signal.direction == Direction.SHORT and not allow_short:
                    continue
                candidate = self._resolve(series, signal, pivots, sp.start_point, lookback, end_idx)
                if candidate is not None:
                    out.append(candidate)
        return out

    def _resolve(
        self,
        series: BarSeries,
        signal: Signal,
        pivots: PivotPair,
        start_point: StartPoint,
        lookback: int,
        lookback_end_idx: int,
    ) -> Optional[CandidateTrade]:
        """Attach stop, projected exit and origin fields; None if unresolvable."""
        trigger_idx = series.index_of(signal.trigger_timestamp)
        if trigger_idx is None or trigger_idx <= 0:
            return None

        stop_pivot = pivots.pivot_low if signal.direction == Direction.LONG else pivots.pivot_high
        if stop_pivot is None:
            logger.debug(f"{start_point.name}/{lookback}: no protective pivot, dropped")
            return None

        exit_pivot = find_exit_projection_pivot(series[:trigger_idx], signal.direction)
        if exit_pivot is None:
            logger.debug(f"{start_point.name}/{lookback}: no exit projection pivot, dropped")
            return None

        history = series[max(0, trigger_idx - self.config.scaling_lookback) : trigger_idx]
        scaling = self.scaler.estimate(history)
        if scaling is None or scaling <= 0:
            logger.debug(f"{start_point.name}/{lookback}: no usable scaling factor, dropped")
            return None

        trigger_price = float(series.closes[trigger_idx])
        projected = project_exit(
            signal.direction,
            trigger_price,
            exit_pivot.pivot,
            trigger_idx - exit_pivot.index,
            scaling,
        )
        if projected is None:
            return None

        return CandidateTrade(
            signal=signal,
            pivot_high=pivots.pivot_high,
            pivot_low=pivots.pivot_low,
            start_point_name=start_point.name,
            projected_exit=projected,
            symbol=series.symbol,
            start_timestamp=start_point.timestamp,
            lookback_period=lookback,
            lookback_end=series.timestamp_at(lookback_end_idx),
            exit_pivot=exit_pivot.pivot,
            trigger_price=trigger_price,
            scaling_factor=scaling,
        )
