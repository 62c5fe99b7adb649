"""Candle series validation at the ingestion boundary.

Indicator math silently propagates NaN and mis-ordered bars, so every
public entry point that accepts raw candles runs them through
``validate_candles`` first.
"""

import math
from typing import Sequence

from confluence.strategy.models import Candle


class InvalidCandleSeriesError(ValueError):
    """Raised when a candle series is mis-ordered or holds non-finite values."""


def validate_candles(candles: Sequence[Candle]) -> None:
    """Check ordering and finiteness of *candles*.

    Rules:
        - ``time`` strictly ascending (no duplicates).
        - open/high/low/close/volume are finite numbers.
        - ``high >= low`` and volume is non-negative.

    An empty series is valid; callers degrade to their neutral defaults.

    Raises ``InvalidCandleSeriesError`` naming the first offending index.
    """
    prev_time = None
    for i, c in enumerate(candles):
        values = (c.open, c.high, c.low, c.close, c.volume)
        if not all(math.isfinite(v) for v in values):
            raise InvalidCandleSeriesError(
                f"Candle {i} (time={c.time}) has a non-finite value: {values}"
            )
        if c.high < c.low:
            raise InvalidCandleSeriesError(
                f"Candle {i} (time={c.time}) has high {c.high} below low {c.low}"
            )
        if c.volume < 0:
            raise InvalidCandleSeriesError(
                f"Candle {i} (time={c.time}) has negative volume {c.volume}"
            )
        if prev_time is not None and c.time <= prev_time:
            raise InvalidCandleSeriesError(
                f"Candle {i} time {c.time} is not after previous time {prev_time}"
            )
        prev_time = c.time
