"""Candlestick pattern recognition — pure functions, no I/O.

Each pattern is a geometric predicate over body size, shadow lengths and
(for two- and three-bar patterns) the relative position of consecutive
candles.  Detected patterns are scored by ``_significance`` and returned
strongest first.
"""

from typing import Optional, Sequence

from confluence.strategy.models import (
    Candle,
    CandlestickPattern as P,
    PatternResult,
    Trend,
)

# Base significance per pattern before trend/volume bonuses.
BASE_SIGNIFICANCE: dict[P, float] = {
    P.BULLISH_ENGULFING: 75,
    P.BEARISH_ENGULFING: 75,
    P.HAMMER: 65,
    P.INVERTED_HAMMER: 60,
    P.MORNING_STAR: 85,
    P.EVENING_STAR: 85,
    P.DOJI: 40,
    P.DARK_CLOUD_COVER: 65,
    P.PIERCING_LINE: 65,
    P.THREE_WHITE_SOLDIERS: 90,
    P.THREE_BLACK_CROWS: 90,
    P.BULLISH_HARAMI: 60,
    P.BEARISH_HARAMI: 60,
    P.SHOOTING_STAR: 70,
    P.HANGING_MAN: 70,
    P.TWEEZER_TOP: 65,
    P.TWEEZER_BOTTOM: 65,
    P.SPINNING_TOP: 35,
    P.INSIDE_BAR: 55,
}

_BULLISH = {
    P.BULLISH_ENGULFING, P.HAMMER, P.MORNING_STAR, P.PIERCING_LINE,
    P.THREE_WHITE_SOLDIERS, P.BULLISH_HARAMI, P.TWEEZER_BOTTOM,
}
_BEARISH = {
    P.BEARISH_ENGULFING, P.EVENING_STAR, P.DARK_CLOUD_COVER,
    P.THREE_BLACK_CROWS, P.BEARISH_HARAMI, P.SHOOTING_STAR,
    P.HANGING_MAN, P.TWEEZER_TOP,
}

_DESCRIPTIONS: dict[P, str] = {
    P.BULLISH_ENGULFING: "Large bullish candle fully engulfs the previous bearish body.",
    P.BEARISH_ENGULFING: "Large bearish candle fully engulfs the previous bullish body.",
    P.HAMMER: "Small body with a long lower shadow after a down candle; buyers rejected lower prices.",
    P.INVERTED_HAMMER: "Small body with a long upper shadow after a down candle; possible bullish reversal.",
    P.MORNING_STAR: "Bearish candle, small-bodied candle, then a bullish candle closing into the first body.",
    P.EVENING_STAR: "Bullish candle, small-bodied candle, then a bearish candle closing into the first body.",
    P.DOJI: "Open and close almost equal; market indecision.",
    P.DARK_CLOUD_COVER: "Bearish candle opens above the prior high and closes below the prior body midpoint.",
    P.PIERCING_LINE: "Bullish candle opens below the prior low and closes above the prior body midpoint.",
    P.THREE_WHITE_SOLDIERS: "Three consecutive bullish candles, each closing higher with small upper shadows.",
    P.THREE_BLACK_CROWS: "Three consecutive bearish candles, each closing lower with small lower shadows.",
    P.BULLISH_HARAMI: "Small bullish body contained inside the previous bearish body.",
    P.BEARISH_HARAMI: "Small bearish body contained inside the previous bullish body.",
    P.SHOOTING_STAR: "Small body with a long upper shadow after an up candle; sellers rejected higher prices.",
    P.HANGING_MAN: "Small body with a long lower shadow after an up candle; weakening demand.",
    P.TWEEZER_TOP: "Two candles with matching highs, bullish then bearish.",
    P.TWEEZER_BOTTOM: "Two candles with matching lows, bearish then bullish.",
    P.SPINNING_TOP: "Small body with shadows longer than the body on both sides.",
    P.INSIDE_BAR: "Range fully inside the previous candle's range; consolidation.",
}

# Tweezer extremes must match within this fraction of price.
TWEEZER_TOLERANCE = 0.001


# ── Geometry helpers ─────────────────────────────────────────────────────


def _body(c: Candle) -> float:
    return abs(c.close - c.open)


def _upper_shadow(c: Candle) -> float:
    return c.high - max(c.open, c.close)


def _lower_shadow(c: Candle) -> float:
    return min(c.open, c.close) - c.low


def _is_bullish(c: Candle) -> bool:
    return c.close > c.open


def _is_bearish(c: Candle) -> bool:
    return c.close < c.open


# ── Single-candle predicates ─────────────────────────────────────────────


def is_doji(c: Candle) -> bool:
    """Body under 5 % of the full range."""
    total = c.high - c.low
    return total > 0 and _body(c) / total < 0.05


def _hammer_shape(c: Candle) -> bool:
    """Lower shadow ≥ 2× body, upper shadow ≤ 0.1× body."""
    body = _body(c)
    lower = _lower_shadow(c)
    return (
        c.high > c.low
        and lower > 0
        and lower >= 2 * body
        and _upper_shadow(c) <= 0.1 * body
    )


def _inverted_hammer_shape(c: Candle) -> bool:
    """Upper shadow ≥ 2× body, lower shadow ≤ 0.1× body."""
    body = _body(c)
    upper = _upper_shadow(c)
    return (
        c.high > c.low
        and upper > 0
        and upper >= 2 * body
        and _lower_shadow(c) <= 0.1 * body
    )


def is_spinning_top(c: Candle) -> bool:
    """Small (but not doji) body with both shadows longer than the body."""
    total = c.high - c.low
    if total <= 0:
        return False
    body = _body(c)
    ratio = body / total
    return (
        0.05 <= ratio <= 0.3
        and _upper_shadow(c) > body
        and _lower_shadow(c) > body
    )


# ── Two-candle predicates ────────────────────────────────────────────────


def is_bullish_engulfing(current: Candle, previous: Candle) -> bool:
    return (
        _is_bearish(previous)
        and _is_bullish(current)
        and current.open < previous.close
        and current.close > previous.open
    )


def is_bearish_engulfing(current: Candle, previous: Candle) -> bool:
    return (
        _is_bullish(previous)
        and _is_bearish(current)
        and current.open > previous.close
        and current.close < previous.open
    )


def is_hammer(current: Candle, previous: Candle) -> bool:
    return _hammer_shape(current) and not _is_bullish(previous)


def is_hanging_man(current: Candle, previous: Candle) -> bool:
    return _hammer_shape(current) and _is_bullish(previous)


def is_inverted_hammer(current: Candle, previous: Candle) -> bool:
    return _inverted_hammer_shape(current) and not _is_bullish(previous)


def is_shooting_star(current: Candle, previous: Candle) -> bool:
    return _inverted_hammer_shape(current) and _is_bullish(previous)


def is_dark_cloud_cover(current: Candle, previous: Candle) -> bool:
    midpoint = (previous.open + previous.close) / 2
    return (
        _is_bullish(previous)
        and _is_bearish(current)
        and current.open > previous.high
        and previous.open < current.close < midpoint
    )


def is_piercing_line(current: Candle, previous: Candle) -> bool:
    midpoint = (previous.open + previous.close) / 2
    return (
        _is_bearish(previous)
        and _is_bullish(current)
        and current.open < previous.low
        and midpoint < current.close < previous.open
    )


def is_bullish_harami(current: Candle, previous: Candle) -> bool:
    return (
        _is_bearish(previous)
        and _is_bullish(current)
        and current.open > previous.close
        and current.close < previous.open
    )


def is_bearish_harami(current: Candle, previous: Candle) -> bool:
    return (
        _is_bullish(previous)
        and _is_bearish(current)
        and current.open < previous.close
        and current.close > previous.open
    )


def is_tweezer_top(current: Candle, previous: Candle) -> bool:
    return (
        _is_bullish(previous)
        and _is_bearish(current)
        and abs(current.high - previous.high) <= TWEEZER_TOLERANCE * previous.high
    )


def is_tweezer_bottom(current: Candle, previous: Candle) -> bool:
    return (
        _is_bearish(previous)
        and _is_bullish(current)
        and abs(current.low - previous.low) <= TWEEZER_TOLERANCE * previous.low
    )


def is_inside_bar(current: Candle, previous: Candle) -> bool:
    return current.high < previous.high and current.low > previous.low


# ── Three-candle predicates ──────────────────────────────────────────────


def is_morning_star(first: Candle, middle: Candle, last: Candle) -> bool:
    return (
        _is_bearish(first)
        and _body(middle) < 0.3 * _body(first)
        and _is_bullish(last)
        and last.close > (first.open + first.close) / 2
    )


def is_evening_star(first: Candle, middle: Candle, last: Candle) -> bool:
    return (
        _is_bullish(first)
        and _body(middle) < 0.3 * _body(first)
        and _is_bearish(last)
        and last.close < (first.open + first.close) / 2
    )


def is_three_white_soldiers(first: Candle, second: Candle, third: Candle) -> bool:
    bars = (first, second, third)
    if not all(_is_bullish(c) for c in bars):
        return False
    opens_inside = (
        first.open < second.open < first.close
        and second.open < third.open < second.close
    )
    higher_closes = first.close < second.close < third.close
    small_upper = all(
        (c.high - c.close) < 0.2 * (c.close - c.open) for c in bars
    )
    return opens_inside and higher_closes and small_upper


def is_three_black_crows(first: Candle, second: Candle, third: Candle) -> bool:
    bars = (first, second, third)
    if not all(_is_bearish(c) for c in bars):
        return False
    opens_inside = (
        first.close < second.open < first.open
        and second.close < third.open < second.open
    )
    lower_closes = first.close > second.close > third.close
    small_lower = all(
        (c.close - c.low) < 0.2 * (c.open - c.close) for c in bars
    )
    return opens_inside and lower_closes and small_lower


# ── Scoring ──────────────────────────────────────────────────────────────


def pattern_trend(pattern: P) -> Trend:
    """Inherent directional bias of *pattern*."""
    if pattern in _BULLISH:
        return Trend.BULLISH
    if pattern in _BEARISH:
        return Trend.BEARISH
    return Trend.NEUTRAL


def determine_current_trend(
    candles: Sequence[Candle], lookback: int = 10, threshold_pct: float = 3.0,
) -> Trend:
    """Prevailing trend from the close-to-close change over *lookback* bars."""
    if len(candles) < lookback:
        return Trend.NEUTRAL

    start_price = candles[len(candles) - lookback].close
    end_price = candles[-1].close
    if start_price == 0:
        return Trend.NEUTRAL

    change_pct = (end_price - start_price) / start_price * 100
    if change_pct > threshold_pct:
        return Trend.BULLISH
    if change_pct < -threshold_pct:
        return Trend.BEARISH
    return Trend.NEUTRAL


def _opposes(bias: Trend, prevailing: Trend) -> bool:
    return (
        (bias == Trend.BULLISH and prevailing == Trend.BEARISH)
        or (bias == Trend.BEARISH and prevailing == Trend.BULLISH)
    )


def _significance(
    pattern: P, candles: Sequence[Candle], index: int, prevailing: Trend,
) -> float:
    """Base weight + 10 for a reversal against *prevailing* + 10 on a
    volume surge (> 1.5× previous bar), clamped to [0, 100]."""
    significance = BASE_SIGNIFICANCE.get(pattern, 50)

    if _opposes(pattern_trend(pattern), prevailing):
        significance += 10

    if index > 0 and candles[index].volume > candles[index - 1].volume * 1.5:
        significance += 10

    return float(min(100, max(0, significance)))


# ── Detection ────────────────────────────────────────────────────────────


def _matches_at(candles: Sequence[Candle], i: int) -> list[tuple[P, tuple[int, ...]]]:
    """All patterns completing at index *i* (requires ``i >= 2``)."""
    c0, c1, c2 = candles[i - 2], candles[i - 1], candles[i]
    single = (i,)
    pair = (i - 1, i)
    triple = (i - 2, i - 1, i)

    checks: list[tuple[P, bool, tuple[int, ...]]] = [
        (P.DOJI, is_doji(c2), single),
        (P.BULLISH_ENGULFING, is_bullish_engulfing(c2, c1), pair),
        (P.BEARISH_ENGULFING, is_bearish_engulfing(c2, c1), pair),
        (P.HAMMER, is_hammer(c2, c1), single),
        (P.HANGING_MAN, is_hanging_man(c2, c1), single),
        (P.INVERTED_HAMMER, is_inverted_hammer(c2, c1), single),
        (P.SHOOTING_STAR, is_shooting_star(c2, c1), single),
        (P.SPINNING_TOP, is_spinning_top(c2), single),
        (P.DARK_CLOUD_COVER, is_dark_cloud_cover(c2, c1), pair),
        (P.PIERCING_LINE, is_piercing_line(c2, c1), pair),
        (P.BULLISH_HARAMI, is_bullish_harami(c2, c1), pair),
        (P.BEARISH_HARAMI, is_bearish_harami(c2, c1), pair),
        (P.TWEEZER_TOP, is_tweezer_top(c2, c1), pair),
        (P.TWEEZER_BOTTOM, is_tweezer_bottom(c2, c1), pair),
        (P.INSIDE_BAR, is_inside_bar(c2, c1), pair),
        (P.MORNING_STAR, is_morning_star(c0, c1, c2), triple),
        (P.EVENING_STAR, is_evening_star(c0, c1, c2), triple),
        (P.THREE_WHITE_SOLDIERS, is_three_white_soldiers(c0, c1, c2), triple),
        (P.THREE_BLACK_CROWS, is_three_black_crows(c0, c1, c2), triple),
    ]
    return [(pattern, indices) for pattern, hit, indices in checks if hit]


def analyze_candlestick_patterns(candles: Sequence[Candle]) -> list[PatternResult]:
    """Scan every bar from index 2 onward for the full pattern catalogue.

    Returns results sorted by descending significance (stable for ties,
    so earlier bars come first).  Fewer than three candles → ``[]``.
    """
    if len(candles) < 3:
        return []

    prevailing = determine_current_trend(candles)
    results: list[PatternResult] = []

    for i in range(2, len(candles)):
        for pattern, indices in _matches_at(candles, i):
            results.append(
                PatternResult(
                    pattern=pattern,
                    significance=_significance(pattern, candles, i, prevailing),
                    trend=pattern_trend(pattern),
                    candle_indices=indices,
                    description=_DESCRIPTIONS[pattern],
                )
            )

    results.sort(key=lambda r: r.significance, reverse=True)
    return results


# ── Decision integration ─────────────────────────────────────────────────

# Multiplier applied to pattern adjustments per timeframe.
PATTERN_TIMEFRAME_WEIGHTS: dict[str, float] = {
    "1h": 0.6,
    "4h": 0.85,
    "1d": 1.0,
    "1w": 1.2,
}
DEFAULT_PATTERN_WEIGHT = 0.5


def incorporate_patterns(
    patterns: Sequence[PatternResult],
    timeframe: str,
    bias: float,
    min_significance: float = 60.0,
    max_patterns: int = 3,
    max_adjustment: float = 0.25,
    timeframe_weights: Optional[dict[str, float]] = None,
) -> tuple[float, list[PatternResult]]:
    """Turn detected patterns into a bias adjustment.

    *bias* is the timeframe's centred confidence (``confidence - 0.5``):
    positive leans bullish, negative bearish.  Only the strongest
    *max_patterns* with significance above *min_significance* count.
    Each contributes ``(significance - 60) / 100 × timeframe weight``:
    added when it agrees with *bias*, subtracted at half strength when it
    contradicts it.  A zero bias takes no adjustment.

    Returns ``(adjustment, supporting_patterns)`` with the adjustment
    clamped to ±*max_adjustment*.
    """
    weights = PATTERN_TIMEFRAME_WEIGHTS if timeframe_weights is None else timeframe_weights
    weight = weights.get(timeframe, DEFAULT_PATTERN_WEIGHT)

    supporting = [p for p in patterns if p.significance > min_significance][:max_patterns]

    adjustment = 0.0
    for p in supporting:
        base = (p.significance - 60) / 100
        if p.trend == Trend.BULLISH and bias > 0:
            adjustment += base * weight
        elif p.trend == Trend.BEARISH and bias < 0:
            adjustment -= base * weight
        elif (p.trend == Trend.BULLISH and bias < 0) or (
            p.trend == Trend.BEARISH and bias > 0
        ):
            # Contradicting pattern pulls toward neutral
            adjustment += -base * weight * 0.5 if bias > 0 else base * weight * 0.5

    adjustment = max(-max_adjustment, min(max_adjustment, adjustment))
    return adjustment, supporting
