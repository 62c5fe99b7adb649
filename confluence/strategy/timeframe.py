"""Per-timeframe analysis — folds indicators and patterns for one candle
slice into a ``TimeframeAnalysis`` with a confidence score in [0, 1].

Confidence starts neutral at 0.5 and is nudged by each indicator:

    RSI < 30 / > 70                 +0.10 / −0.10
    EMA 8/21/50 stacked             +0.15 / −0.15
    Market-structure trend          +0.20 / −0.20
    Divergence                      ±0.15 × strength / 100
    Bull trap / bear trap           −0.10 / +0.10
    Smart-money zone ("SMC Valid")  +0.10
"""

from typing import Mapping, Sequence

from confluence.strategy.indicators import (
    analyze_market_structure,
    analyze_volume_profile,
    calculate_ema,
    calculate_fibonacci_levels,
    calculate_rsi,
    detect_divergence,
    detect_traps,
    latest_value,
)
from confluence.strategy.models import Candle, TimeframeAnalysis, Trend
from confluence.strategy.patterns import analyze_candlestick_patterns
from confluence.strategy.validation import validate_candles

MIN_CANDLES = 50

TAG_HIGHER_STRUCTURE = "Higher High & Higher Low"
TAG_LOWER_STRUCTURE = "Lower High & Lower Low"
TAG_BOS = "BOS Formation"
TAG_BULL_TRAP = "Bull Trap"
TAG_BEAR_TRAP = "Bear Trap"
TAG_SMC = "SMC Valid"


def ema_alignment(closes: Sequence[float]) -> Trend:
    """Bullish when EMA8 > EMA21 > EMA50, bearish when fully inverted."""
    ema8 = latest_value(calculate_ema(closes, 8), float("nan"))
    ema21 = latest_value(calculate_ema(closes, 21), float("nan"))
    ema50 = latest_value(calculate_ema(closes, 50), float("nan"))

    if ema8 > ema21 > ema50:
        return Trend.BULLISH
    if ema8 < ema21 < ema50:
        return Trend.BEARISH
    # Any NaN lands here too
    return Trend.NEUTRAL


def _smc_valid(candles: Sequence[Candle], volume_nodes: Sequence[float]) -> bool:
    """Latest close within 1 % of a 20-bar Fibonacci level and within 2 %
    of a high-volume node."""
    if len(candles) < 20:
        return False

    recent = candles[-20:]
    fib = calculate_fibonacci_levels(
        max(c.high for c in recent), min(c.low for c in recent),
    )
    close = candles[-1].close

    near_fib = any(
        level != 0 and abs(close - level) / level < 0.01 for level in fib.prices()
    )
    near_node = any(
        node != 0 and abs(close - node) / node < 0.02 for node in volume_nodes
    )
    return near_fib and near_node


def compute_timeframe_analysis(
    candles: Sequence[Candle], timeframe: str,
) -> TimeframeAnalysis:
    """Analyse one timeframe's candle slice.

    Fewer than 50 candles yields a neutral analysis with confidence 0.
    Fusion still weights it, which dilutes the decision rather than
    failing it.

    Raises ``InvalidCandleSeriesError`` for mis-ordered or non-finite
    candles.
    """
    validate_candles(candles)

    if len(candles) < MIN_CANDLES:
        return TimeframeAnalysis(timeframe=timeframe, confidence=0.0)

    closes = [c.close for c in candles]

    rsi_values = calculate_rsi(candles, 14)
    rsi = latest_value(rsi_values, 50.0)
    ema_status = ema_alignment(closes)

    structure = analyze_market_structure(candles)
    volume_profile = analyze_volume_profile(candles)
    divergence = detect_divergence(candles, rsi_values)
    traps = detect_traps(candles)

    tags: list[str] = []
    if structure.higher_high and structure.higher_low:
        tags.append(TAG_HIGHER_STRUCTURE)
    if structure.lower_high and structure.lower_low:
        tags.append(TAG_LOWER_STRUCTURE)
    if structure.break_of_structure:
        tags.append(TAG_BOS)
    if traps.fakeout:
        tags.append(f"Fakeout {'Upward' if traps.fakeout_direction == 'up' else 'Downward'}")
    if traps.bull_trap:
        tags.append(TAG_BULL_TRAP)
    if traps.bear_trap:
        tags.append(TAG_BEAR_TRAP)

    smc = _smc_valid(candles, volume_profile.high_volume_nodes)
    if smc:
        tags.append(TAG_SMC)

    confidence = 0.5
    if rsi < 30:
        confidence += 0.1
    if rsi > 70:
        confidence -= 0.1

    if ema_status == Trend.BULLISH:
        confidence += 0.15
    elif ema_status == Trend.BEARISH:
        confidence -= 0.15

    if structure.trend == Trend.BULLISH:
        confidence += 0.2
    elif structure.trend == Trend.BEARISH:
        confidence -= 0.2

    if divergence.bullish:
        confidence += 0.15 * (divergence.strength / 100)
    if divergence.bearish:
        confidence -= 0.15 * (divergence.strength / 100)

    if traps.bull_trap:
        confidence -= 0.1
    if traps.bear_trap:
        confidence += 0.1

    if smc:
        confidence += 0.1

    confidence = max(0.0, min(1.0, confidence))

    return TimeframeAnalysis(
        timeframe=timeframe,
        trend=structure.trend,
        rsi=rsi,
        ema_status=ema_status,
        market_structure_tags=tuple(tags),
        volume_support_levels=tuple(volume_profile.high_volume_nodes),
        divergence=divergence,
        confidence=confidence,
        patterns=tuple(analyze_candlestick_patterns(candles)),
        candles=tuple(candles),
    )


def analyze_multi_timeframe(
    candles_by_timeframe: Mapping[str, Sequence[Candle]],
) -> dict[str, TimeframeAnalysis]:
    """Analyse each timeframe independently, preserving input order."""
    return {
        timeframe: compute_timeframe_analysis(candles, timeframe)
        for timeframe, candles in candles_by_timeframe.items()
    }
