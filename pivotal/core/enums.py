"""
pivotal enumerations.
"""

from enum import Enum


class Direction(str, Enum):
    """Trade direction."""

    LONG = "long"
    SHORT = "short"


class PivotKind(str, Enum):
    """Which side of the range a pivot marks."""

    HIGH = "high"
    LOW = "low"


class ExitReason(str, Enum):
    """How a simulated position was closed."""

    STOP_LOSS = "Stop Loss Hit"
    TAKE_PROFIT = "Take Profit Hit"
    GROUP_LIQUIDATION = "Group Liquidation"
    SAME_DAY_STOP = "Stop Loss Hit (Same Day)"
    SAME_DAY_TARGET = "Take Profit Hit (Same Day)"
    END_OF_TEST = "End of Test"

    @property
    def is_same_day(self) -> bool:
        return self in (ExitReason.SAME_DAY_STOP, ExitReason.SAME_DAY_TARGET)

    @property
    def is_stop(self) -> bool:
        return self in (ExitReason.STOP_LOSS, ExitReason.SAME_DAY_STOP)

    @property
    def is_target(self) -> bool:
        return self in (ExitReason.TAKE_PROFIT, ExitReason.SAME_DAY_TARGET)


class TradeOutcome(str, Enum):
    """Classification of a (possibly hypothetical) trade."""

    WIN = "win"
    LOSS = "loss"


class StartPointMode(str, Enum):
    """How the assembler picks the anchors it scans from."""

    SHARP = "sharp"  # symmetric +/- lookaround extremes
    MAJOR = "major"  # new N-bar highs/lows
    MANUAL = "manual"  # externally supplied anchors
