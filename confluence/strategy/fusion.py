"""Multi-timeframe fusion — turns per-timeframe analyses into one
``TradingDecision``.  Pure functions, no I/O.

Fusion rules:
    1. Each timeframe contributes ``weight × (confidence − 0.5)``.
    2. Timeframes carrying candles re-run pattern detection and add
       ``weight × pattern adjustment`` (adjustment bounded to ±0.25).
    3. ``final = Σ contributions / Σ weights + 0.5``, clamped to [0, 1].
    4. > 0.75 → BUY, < 0.25 → SELL.  Inside the 0.70 / 0.30 borderline
       band the signal is elevated when a configured short-timeframe
       trend/EMA pair agrees.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Mapping, Optional, Sequence

from confluence.strategy.indicators import calculate_volatility, find_darvas_boxes
from confluence.strategy.models import (
    IndicatorSnapshot,
    MarketCondition,
    OptimizedParameters,
    PatternResult,
    Signal,
    TimeframeAnalysis,
    TradingDecision,
    Trend,
)
from confluence.strategy.patterns import analyze_candlestick_patterns, incorporate_patterns
from confluence.strategy.timeframe import (
    TAG_BOS,
    TAG_BULL_TRAP,
    TAG_HIGHER_STRUCTURE,
    TAG_LOWER_STRUCTURE,
    TAG_SMC,
)

logger = logging.getLogger("confluence")

# Longer timeframes carry more weight.  Unknown labels fall back to 0.1.
DEFAULT_TIMEFRAME_WEIGHTS: dict[str, float] = {
    "1m": 0.05,
    "5m": 0.1,
    "15m": 0.5,
    "30m": 0.2,
    "1h": 0.5,
    "4h": 0.6,
    "1d": 0.8,
    "1w": 1.0,
}
UNKNOWN_TIMEFRAME_WEIGHT = 0.1

DEFAULT_MIN_LEVERAGE = 10
DEFAULT_MAX_LEVERAGE = 15

BUY_THRESHOLD = 0.75
SELL_THRESHOLD = 0.25
BORDERLINE_BUY = 0.70
BORDERLINE_SELL = 0.30

# (trend timeframe, EMA timeframe) pairs that can elevate a borderline score.
DEFAULT_ELEVATION_PAIRS: tuple[tuple[str, str], ...] = (
    ("15m", "1h"),
    ("1h", "4h"),
)

FIXED_STOP_LOSS_PCT = 2.0
FIXED_TAKE_PROFIT_PCT = 6.0
DEFAULT_VOLATILITY = 0.01


# ── Helpers ──────────────────────────────────────────────────────────────


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def suggest_leverage(
    side_confidence: float, min_leverage: int, max_leverage: int,
) -> int:
    """Linear interpolation between the bounds, rounded to an integer."""
    leverage = _round_half_up(min_leverage + (max_leverage - min_leverage) * side_confidence)
    return max(min_leverage, min(max_leverage, leverage))


def _elevation(
    analyses: Mapping[str, TimeframeAnalysis],
    direction: Trend,
    pairs: Sequence[tuple[str, str]],
) -> Optional[tuple[str, str]]:
    """First pair whose trend and EMA timeframes both point *direction*."""
    for trend_tf, ema_tf in pairs:
        trend_a = analyses.get(trend_tf)
        ema_a = analyses.get(ema_tf)
        if trend_a is None or ema_a is None:
            continue
        if trend_a.trend == direction and ema_a.ema_status == direction:
            return trend_tf, ema_tf
    return None


def _select_signal(
    final: float,
    analyses: Mapping[str, TimeframeAnalysis],
    pairs: Sequence[tuple[str, str]],
) -> tuple[Signal, list[str]]:
    notes: list[str] = []
    if final > BUY_THRESHOLD:
        return Signal.BUY, notes
    if final < SELL_THRESHOLD:
        return Signal.SELL, notes

    if final > BORDERLINE_BUY:
        pair = _elevation(analyses, Trend.BULLISH, pairs)
        if pair is not None:
            notes.append(
                f"Borderline signal elevated to BUY: {pair[0]} trend and "
                f"{pair[1]} EMAs aligned bullishly"
            )
            return Signal.BUY, notes
    elif final < BORDERLINE_SELL:
        pair = _elevation(analyses, Trend.BEARISH, pairs)
        if pair is not None:
            notes.append(
                f"Borderline signal elevated to SELL: {pair[0]} trend and "
                f"{pair[1]} EMAs aligned bearishly"
            )
            return Signal.SELL, notes
    return Signal.NEUTRAL, notes


def _top_pattern(patterns: Sequence[PatternResult], trend: Trend) -> Optional[PatternResult]:
    for p in patterns:
        if p.trend == trend:
            return p
    return None


def _reasoning(
    signal: Signal,
    final: float,
    timeframe: str,
    dominant: TimeframeAnalysis,
    patterns: Sequence[PatternResult],
) -> list[str]:
    tags = dominant.market_structure_tags
    lines: list[str] = []

    if signal == Signal.BUY:
        lines.append(f"Strong bullish signal with {final * 100:.1f}% confidence")
        if dominant.rsi < 40:
            lines.append(f"RSI is oversold at {dominant.rsi:.1f} on {timeframe} timeframe")
        if dominant.ema_status == Trend.BULLISH:
            lines.append(f"EMAs aligned bullishly on {timeframe} timeframe")
        if dominant.divergence.bullish:
            lines.append(
                f"Bullish divergence detected with {dominant.divergence.strength:.1f}% strength"
            )
        if TAG_HIGHER_STRUCTURE in tags:
            lines.append("Market structure shows higher highs and higher lows")
        if TAG_BOS in tags:
            lines.append("Break of structure detected, potential trend reversal")
        if TAG_SMC in tags:
            lines.append("Smart Money Concept validation: price at institutional interest area")
        top = _top_pattern(patterns, Trend.BULLISH)
    elif signal == Signal.SELL:
        lines.append(f"Strong bearish signal with {(1 - final) * 100:.1f}% confidence")
        if dominant.rsi > 60:
            lines.append(f"RSI is overbought at {dominant.rsi:.1f} on {timeframe} timeframe")
        if dominant.ema_status == Trend.BEARISH:
            lines.append(f"EMAs aligned bearishly on {timeframe} timeframe")
        if dominant.divergence.bearish:
            lines.append(
                f"Bearish divergence detected with {dominant.divergence.strength:.1f}% strength"
            )
        if TAG_LOWER_STRUCTURE in tags:
            lines.append("Market structure shows lower highs and lower lows")
        if TAG_BOS in tags:
            lines.append("Break of structure detected, potential trend reversal")
        if TAG_BULL_TRAP in tags:
            lines.append("Bull trap detected, false breakout to the upside")
        top = _top_pattern(patterns, Trend.BEARISH)
    else:
        return [
            "No clear signal detected, market is in consolidation",
            f"Confidence level too low at {final * 100:.1f}%",
        ]

    if top is not None:
        lines.append(
            f"Detected {top.pattern.value} candlestick pattern "
            f"({top.significance:.0f}% strength)"
        )
    return lines


# ── Market condition & parameter optimisation ────────────────────────────


def assess_market_condition(
    dominant: TimeframeAnalysis, final_confidence: float,
) -> MarketCondition:
    """Summarise the regime of the dominant timeframe.

    Volatility comes from the attached candles (0.01 without them).
    Supports are the high-volume nodes; resistances the current Darvas
    box top when it sits above the latest close.
    """
    candles = dominant.candles
    volatility = calculate_volatility(candles) if candles else DEFAULT_VOLATILITY

    resistances: tuple[float, ...] = ()
    if candles:
        darvas = find_darvas_boxes(candles)
        if darvas.current_top is not None and darvas.current_top > candles[-1].close:
            resistances = (darvas.current_top,)

    nodes = len(dominant.volume_support_levels)
    if nodes > 3:
        volume_profile = "INCREASING"
    elif nodes > 0:
        volume_profile = "FLAT"
    else:
        volume_profile = "DECREASING"

    return MarketCondition(
        primary_trend=dominant.trend,
        strength=abs(final_confidence - 0.5) * 200,
        volatility=volatility,
        momentum=(final_confidence - 0.5) * 200,
        supports=dominant.volume_support_levels,
        resistances=resistances,
        volume_profile=volume_profile,
        timeframe=dominant.timeframe,
    )


def optimize_parameters(
    signal: Signal,
    condition: MarketCondition,
    leverage: int,
    min_leverage: int,
    max_leverage: int,
) -> OptimizedParameters:
    """Derive risk/holding parameters from volatility and trend strength.

    Longs: stop ≈ 3× volatility, target ≈ 9× volatility.
    Shorts (and neutral): stop ≈ 2.5×, target ≈ 8×.
    """
    vol_pct = condition.volatility * 100
    is_long = signal == Signal.BUY

    if condition.strength > 75:
        trades_per_day = 10
    elif condition.strength > 50:
        trades_per_day = 7
    else:
        trades_per_day = 5

    return OptimizedParameters(
        stop_loss_percentage=vol_pct * (3 if is_long else 2.5),
        take_profit_percentage=vol_pct * (9 if is_long else 8),
        entry_confidence_threshold=0.65 if condition.strength > 75 else 0.75,
        leverage_multiplier=max(
            float(min_leverage),
            min(float(max_leverage), leverage * (1 - condition.volatility * 5)),
        ),
        duration_hold_hours=4 if condition.primary_trend == Trend.NEUTRAL else 12,
        trailing_stop_activation_percentage=vol_pct * 4,
        use_market_orders=condition.primary_trend != Trend.NEUTRAL,
        trades_per_day=trades_per_day,
    )


def _stop_and_target(
    signal: Signal, price: float, sl_pct: float, tp_pct: float,
) -> tuple[float, float]:
    if signal == Signal.BUY:
        return price * (1 - sl_pct / 100), price * (1 + tp_pct / 100)
    if signal == Signal.SELL:
        return price * (1 + sl_pct / 100), price * (1 - tp_pct / 100)
    return 0.0, 0.0


# ── Public API ───────────────────────────────────────────────────────────


def fuse_decision(
    analyses: Mapping[str, TimeframeAnalysis],
    current_price: float,
    min_leverage: int = DEFAULT_MIN_LEVERAGE,
    max_leverage: int = DEFAULT_MAX_LEVERAGE,
    timeframe_weights: Optional[Mapping[str, float]] = None,
    pattern_weights: Optional[dict[str, float]] = None,
    elevation_pairs: Sequence[tuple[str, str]] = DEFAULT_ELEVATION_PAIRS,
    assess_market: bool = True,
) -> TradingDecision:
    """Fuse per-timeframe analyses into a single trading decision.

    Args:
        analyses: Timeframe label → analysis, in caller order (ties for
            the dominant timeframe go to the earliest entry).
        current_price: Price used for SL/TP and reported on the decision.
        min_leverage: Lower leverage bound.
        max_leverage: Upper leverage bound.
        timeframe_weights: Override of ``DEFAULT_TIMEFRAME_WEIGHTS``.
        pattern_weights: Override of the per-timeframe pattern multipliers.
        elevation_pairs: (trend TF, EMA TF) pairs for borderline elevation.
        assess_market: When ``True`` attach market-condition and optimised
            parameters and scale SL/TP by volatility; otherwise use fixed
            2 % / 6 % offsets.

    Returns:
        ``TradingDecision``.  ``confidence`` is relative to the chosen
        side (BUY = fused score, SELL = 1 − fused score, NEUTRAL = 0.5).

    Raises:
        ValueError: If the leverage bounds are inverted or below 1.
    """
    if min_leverage < 1 or max_leverage < min_leverage:
        raise ValueError(
            f"Invalid leverage bounds: min={min_leverage}, max={max_leverage}"
        )

    timestamp = datetime.now(timezone.utc)
    if not analyses:
        return TradingDecision(
            signal=Signal.NEUTRAL,
            confidence=0.5,
            dominant_timeframe="",
            price=current_price,
            reasoning=["No timeframe analyses supplied"],
            supporting_indicators=[],
            leverage=min_leverage,
            stop_loss=0.0,
            take_profit=0.0,
            timestamp=timestamp,
        )

    weights = DEFAULT_TIMEFRAME_WEIGHTS if timeframe_weights is None else timeframe_weights

    weighted = 0.0
    total_weight = 0.0
    dominant_tf = ""
    dominant_deviation = 0.0
    supporting_patterns: dict[str, list[PatternResult]] = {}

    for timeframe, analysis in analyses.items():
        weight = weights.get(timeframe, UNKNOWN_TIMEFRAME_WEIGHT)
        bias = analysis.confidence - 0.5
        weighted += bias * weight
        total_weight += weight

        if abs(bias) > dominant_deviation:
            dominant_deviation = abs(bias)
            dominant_tf = timeframe

        if analysis.candles:
            patterns = analyze_candlestick_patterns(analysis.candles)
            if patterns:
                adjustment, supporting = incorporate_patterns(
                    patterns, timeframe, bias, timeframe_weights=pattern_weights,
                )
                weighted += adjustment * weight
                supporting_patterns[timeframe] = supporting

    if not dominant_tf:
        dominant_tf = next(iter(analyses))
    dominant = analyses[dominant_tf]

    raw = weighted / total_weight + 0.5 if total_weight > 0 else 0.5
    final = max(0.0, min(1.0, raw))

    signal, reasoning = _select_signal(final, analyses, elevation_pairs)
    patterns_for_reasoning = supporting_patterns.get(dominant_tf, list(dominant.patterns))
    reasoning.extend(_reasoning(signal, final, dominant_tf, dominant, patterns_for_reasoning))

    supporting_indicators = [
        f"{tf} timeframe ({a.confidence * 100:.1f}%)"
        for tf, a in analyses.items()
        if (signal == Signal.BUY and a.confidence > 0.65)
        or (signal == Signal.SELL and a.confidence < 0.35)
    ]

    side_confidence = final if signal == Signal.BUY else 1 - final
    leverage = suggest_leverage(side_confidence, min_leverage, max_leverage)

    condition = None
    optimized = None
    if assess_market:
        condition = assess_market_condition(dominant, final)
        optimized = optimize_parameters(signal, condition, leverage, min_leverage, max_leverage)
        stop_loss, take_profit = _stop_and_target(
            signal, current_price,
            optimized.stop_loss_percentage, optimized.take_profit_percentage,
        )
    else:
        stop_loss, take_profit = _stop_and_target(
            signal, current_price, FIXED_STOP_LOSS_PCT, FIXED_TAKE_PROFIT_PCT,
        )

    if signal == Signal.BUY:
        confidence = final
    elif signal == Signal.SELL:
        confidence = 1 - final
    else:
        confidence = 0.5

    logger.debug(
        "Fused %d timeframe(s): score=%.4f signal=%s dominant=%s",
        len(analyses), final, signal.value, dominant_tf,
    )

    return TradingDecision(
        signal=signal,
        confidence=confidence,
        dominant_timeframe=dominant_tf,
        price=current_price,
        reasoning=reasoning,
        supporting_indicators=supporting_indicators,
        leverage=leverage,
        stop_loss=stop_loss,
        take_profit=take_profit,
        timestamp=timestamp,
        indicators=IndicatorSnapshot(
            rsi=dominant.rsi,
            ema_status=dominant.ema_status,
            market_structure_tags=dominant.market_structure_tags,
            volume_support_levels=dominant.volume_support_levels,
            divergence=dominant.divergence,
            patterns=tuple(patterns_for_reasoning),
        ),
        market_condition=condition,
        optimized_parameters=optimized,
    )
