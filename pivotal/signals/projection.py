"""
Geometric (circle-radius) exit projection.

Time since the reference pivot and the price distance travelled, converted
into the same "bar units" by the scaling factor, form the two legs of a
right triangle. The hypotenuse, converted back into price, is projected
from the trigger price in the trade's favourable direction.
"""

import math
from typing import Optional

from pivotal.core.enums import Direction
from pivotal.core.models import Pivot


def project_exit(
    direction: Optional[Direction],
    trigger_price: Optional[float],
    pivot: Optional[Pivot],
    bars_elapsed: Optional[int],
    scaling_factor: Optional[float],
) -> Optional[float]:
    """
    Project a take-profit price.

    Args:
        direction: LONG projects upward, SHORT downward.
        trigger_price: Close of the trigger bar (circle centre).
        pivot: Reference pivot (a low for longs, a high for shorts).
        bars_elapsed: Bars between the pivot and the trigger bar.
        scaling_factor: Price units per bar.

    Returns:
        Projected exit price, or None when any input is missing or the
        scaling factor is not positive.
    """
    if (
        direction is None
        or trigger_price is None
        or pivot is None
        or bars_elapsed is None
        or scaling_factor is None
        or scaling_factor <= 0
    ):
        return None

    distance = abs(trigger_price - pivot.price)
    distance_bars = distance / scaling_factor
    radius_bars = math.hypot(bars_elapsed, distance_bars)
    radius = radius_bars * scaling_factor

    if direction == Direction.LONG:
        return trigger_price + radius
    return trigger_price - radius
