"""Technical indicators — RSI, EMA, ATR, Fibonacci, volume profile, divergence,
market structure, traps, volatility, Darvas boxes.  Pure functions, no I/O.

Every function degrades to a documented neutral value on short history
instead of raising.
"""

import math
from typing import Sequence

import numpy as np

from confluence.strategy.models import (
    Candle,
    DarvasAnalysis,
    DarvasBox,
    Divergence,
    FibonacciLevels,
    MarketStructure,
    TrapSignals,
    Trend,
    VolumeProfile,
    VolumeZone,
)

FIB_RATIOS: tuple[float, ...] = (0.0, 0.236, 0.382, 0.5, 0.618, 0.786, 1.0)


# ── RSI ──────────────────────────────────────────────────────────────────


def calculate_rsi(candles: Sequence[Candle], period: int = 14) -> list[float]:
    """Calculate Wilder's Relative Strength Index.

    Algorithm (Wilder-smoothed):
        1. delta = close[i] - close[i-1]
        2. Separate gains (positive) and losses (|negative|).
        3. Seed average gain/loss = SMA of first *period* deltas.
        4. Subsequent: avg = (prev_avg × (period-1) + current) / period
        5. RSI = 100 - 100 / (1 + avg_gain / avg_loss)

    ``avg_loss == 0`` yields 100, except when ``avg_gain`` is also zero
    (a flat series), which yields a neutral 50.

    Returns a list the same length as *candles*.  The first *period*
    entries are ``float('nan')``.  With fewer than ``period + 1`` candles
    every entry is 50.0.
    """
    if len(candles) < period + 1:
        return [50.0] * len(candles)

    closes = [c.close for c in candles]
    deltas = [closes[i] - closes[i - 1] for i in range(1, len(closes))]

    gains = [max(d, 0.0) for d in deltas]
    losses = [abs(min(d, 0.0)) for d in deltas]

    rsi: list[float] = [float("nan")] * len(candles)

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period

    def _rsi_from_avgs(ag: float, al: float) -> float:
        if al == 0:
            return 50.0 if ag == 0 else 100.0
        rs = ag / al
        return 100.0 - 100.0 / (1.0 + rs)

    rsi[period] = _rsi_from_avgs(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        # deltas are offset by one against candles
        rsi[i + 1] = _rsi_from_avgs(avg_gain, avg_loss)

    return rsi


def latest_value(values: Sequence[float], default: float) -> float:
    """Last entry of an indicator series, or *default* if missing/NaN."""
    if not values or math.isnan(values[-1]):
        return default
    return values[-1]


# ── EMA ──────────────────────────────────────────────────────────────────


def calculate_ema(prices: Sequence[float], period: int) -> list[float]:
    """Calculate an Exponential Moving Average series.

    Seeded with the SMA of the first *period* prices at index
    ``period - 1``; afterwards
    ``ema[i] = (price[i] - ema[i-1]) × k + ema[i-1]`` with
    ``k = 2 / (period + 1)``.

    Returns a list the same length as *prices*.  Entries before the seed
    (or every entry, when fewer than *period* prices) are ``float('nan')``.
    """
    ema: list[float] = [float("nan")] * len(prices)
    if period <= 0 or len(prices) < period:
        return ema

    k = 2.0 / (period + 1)
    ema[period - 1] = sum(prices[:period]) / period

    for i in range(period, len(prices)):
        ema[i] = (prices[i] - ema[i - 1]) * k + ema[i - 1]

    return ema


# ── ATR ──────────────────────────────────────────────────────────────────


def calculate_atr(
    candles: Sequence[Candle], period: int = 14, default: float = 1.0,
) -> float:
    """Calculate the Average True Range over *period* candles.

        TR = max(high - low, |high - prev_close|, |low - prev_close|)

    Returns the simple average of the last *period* true ranges, or
    *default* when fewer than ``period + 1`` candles are supplied.
    """
    if period <= 0 or len(candles) < period + 1:
        return default

    true_ranges: list[float] = []
    for i in range(1, len(candles)):
        high = candles[i].high
        low = candles[i].low
        prev_close = candles[i - 1].close
        true_ranges.append(
            max(high - low, abs(high - prev_close), abs(low - prev_close))
        )

    recent = true_ranges[-period:]
    return sum(recent) / len(recent)


# ── Fibonacci ────────────────────────────────────────────────────────────


def calculate_fibonacci_levels(high: float, low: float) -> FibonacciLevels:
    """Standard retracement levels measured from *high* down toward *low*."""
    diff = high - low
    return FibonacciLevels(
        high=high,
        low=low,
        levels={ratio: high - ratio * diff for ratio in FIB_RATIOS},
    )


# ── Volume profile ───────────────────────────────────────────────────────


def analyze_volume_profile(
    candles: Sequence[Candle],
    zone_count: int = 10,
    node_multiplier: float = 1.5,
) -> VolumeProfile:
    """Distribute traded volume over equal-width price zones.

    The window's global low-high range is split into *zone_count* zones.
    Each candle's volume is spread over the zones in proportion to how
    much of its high-low range overlaps each zone (a zero-range candle
    puts all of its volume into the zone holding its price).

    High-volume nodes are the midpoints of zones whose accumulated volume
    exceeds ``node_multiplier ×`` the average per-candle volume.
    """
    if not candles:
        return VolumeProfile(high_volume_nodes=[], volume_average=0.0, zones=[])

    highs = np.array([c.high for c in candles], dtype=float)
    lows = np.array([c.low for c in candles], dtype=float)
    volumes = np.array([c.volume for c in candles], dtype=float)

    lowest = float(lows.min())
    highest = float(highs.max())
    volume_average = float(volumes.mean())
    threshold = volume_average * node_multiplier

    zone_size = (highest - lowest) / zone_count
    if zone_size == 0:
        total = float(volumes.sum())
        nodes = [lowest] if total > threshold else []
        return VolumeProfile(
            high_volume_nodes=nodes,
            volume_average=volume_average,
            zones=[VolumeZone(price=lowest, volume=total)],
        )

    starts = lowest + zone_size * np.arange(zone_count)
    ends = starts + zone_size
    midpoints = starts + zone_size / 2

    ranges = highs - lows
    overlap = np.minimum(highs[:, None], ends[None, :]) - np.maximum(
        lows[:, None], starts[None, :]
    )
    overlap = np.clip(overlap, 0.0, None)
    with np.errstate(divide="ignore", invalid="ignore"):
        share = np.where(ranges[:, None] > 0, overlap / ranges[:, None], 0.0)
    zone_volume = (share * volumes[:, None]).sum(axis=0)

    flat = ranges == 0
    if flat.any():
        idx = np.minimum(
            ((lows[flat] - lowest) / zone_size).astype(int), zone_count - 1
        )
        np.add.at(zone_volume, idx, volumes[flat])

    zones = [
        VolumeZone(price=float(p), volume=float(v))
        for p, v in zip(midpoints, zone_volume)
    ]
    nodes = [z.price for z in zones if z.volume > threshold]
    return VolumeProfile(
        high_volume_nodes=nodes, volume_average=volume_average, zones=zones,
    )


# ── Divergence ───────────────────────────────────────────────────────────


def detect_divergence(
    candles: Sequence[Candle],
    rsi_values: Sequence[float],
    lookback: int = 10,
) -> Divergence:
    """Compare price direction with RSI direction over the last *lookback* bars.

    Bullish: price not rising while RSI rises.
    Bearish: price rising while RSI does not.

    Strength = (price range / price extreme) × (RSI range / RSI extreme)
    × 100, capped at 100.
    """
    valid_rsi = [v for v in rsi_values if not math.isnan(v)]
    if len(candles) < lookback or len(valid_rsi) < lookback:
        return Divergence()

    prices = [c.close for c in candles[-lookback:]]
    rsi = valid_rsi[-lookback:]

    price_min, price_max = min(prices), max(prices)
    rsi_min, rsi_max = min(rsi), max(rsi)

    price_up = prices[-1] > prices[0]
    rsi_up = rsi[-1] > rsi[0]

    bullish = not price_up and rsi_up
    bearish = price_up and not rsi_up

    price_range = price_max - price_min
    rsi_range = rsi_max - rsi_min
    strength = 0.0
    if bullish:
        strength = _divergence_strength(price_range, price_min, rsi_range, rsi_min)
    elif bearish:
        strength = _divergence_strength(price_range, price_max, rsi_range, rsi_max)

    return Divergence(bullish=bullish, bearish=bearish, strength=strength)


def _divergence_strength(
    price_range: float, price_ref: float, rsi_range: float, rsi_ref: float,
) -> float:
    """Relative price move times relative RSI move, capped at 100.

    A zero reference with a non-zero range (RSI leaving its 0 floor) is an
    unbounded ratio and scores the cap.
    """
    if price_range <= 0 or rsi_range <= 0:
        return 0.0
    if price_ref <= 0 or rsi_ref <= 0:
        return 100.0
    return min((price_range / price_ref) * (rsi_range / rsi_ref) * 100, 100.0)


# ── Market structure ─────────────────────────────────────────────────────


def _find_swing_highs(
    candles: Sequence[Candle], window: int = 2,
) -> list[tuple[int, float]]:
    """Identify swing highs as ``(index, price)`` pairs.

    A swing high is a candle whose high is strictly higher than the highs
    of the *window* candles on each side.
    """
    highs: list[tuple[int, float]] = []
    for i in range(window, len(candles) - window):
        high = candles[i].high
        is_swing = True
        for j in range(1, window + 1):
            if candles[i - j].high >= high or candles[i + j].high >= high:
                is_swing = False
                break
        if is_swing:
            highs.append((i, high))
    return highs


def _find_swing_lows(
    candles: Sequence[Candle], window: int = 2,
) -> list[tuple[int, float]]:
    """Identify swing lows as ``(index, price)`` pairs."""
    lows: list[tuple[int, float]] = []
    for i in range(window, len(candles) - window):
        low = candles[i].low
        is_swing = True
        for j in range(1, window + 1):
            if candles[i - j].low <= low or candles[i + j].low <= low:
                is_swing = False
                break
        if is_swing:
            lows.append((i, low))
    return lows


def analyze_market_structure(
    candles: Sequence[Candle], min_candles: int = 10,
) -> MarketStructure:
    """Classify trend from the last two swing highs and lows.

    Rules:
        - **Bullish**: higher high AND higher low.
        - **Bearish**: lower high AND lower low.
        - **Break of structure**: in a bullish structure the latest close
          falls below the prior swing low; in a bearish structure it
          rises above the prior swing high.

    Needs *min_candles* bars and two swings of each kind, otherwise
    returns a neutral structure.
    """
    if len(candles) < min_candles:
        return MarketStructure()

    swing_highs = _find_swing_highs(candles)
    swing_lows = _find_swing_lows(candles)
    if len(swing_highs) < 2 or len(swing_lows) < 2:
        return MarketStructure()

    last_high, prev_high = swing_highs[-1][1], swing_highs[-2][1]
    last_low, prev_low = swing_lows[-1][1], swing_lows[-2][1]

    higher_high = last_high > prev_high
    higher_low = last_low > prev_low
    lower_high = last_high < prev_high
    lower_low = last_low < prev_low

    if higher_high and higher_low:
        trend = Trend.BULLISH
    elif lower_high and lower_low:
        trend = Trend.BEARISH
    else:
        trend = Trend.NEUTRAL

    latest_close = candles[-1].close
    break_of_structure = (
        (trend == Trend.BULLISH and latest_close < prev_low)
        or (trend == Trend.BEARISH and latest_close > prev_high)
    )

    return MarketStructure(
        trend=trend,
        higher_high=higher_high,
        higher_low=higher_low,
        lower_high=lower_high,
        lower_low=lower_low,
        break_of_structure=break_of_structure,
    )


# ── Traps / fakeouts ─────────────────────────────────────────────────────


def detect_traps(candles: Sequence[Candle]) -> TrapSignals:
    """Look for traps and false breakouts in the last five candles.

    With ``c0..c4`` the last five bars:
        - Bull trap: c2 closes above c1's high, then c3 and c4 each
          close lower.
        - Bear trap: c2 closes below c1's low, then c3 and c4 each close
          higher.
        - Fakeout up: c2 makes a new high over c0/c1 and c4 closes below
          c2's low.  Fakeout down is the mirror case (checked last, so it
          wins if both fire).
    """
    if len(candles) < 5:
        return TrapSignals()

    c0, c1, c2, c3, c4 = candles[-5:]

    bull_trap = c2.close > c1.high and c3.close < c2.close and c4.close < c3.close
    bear_trap = c2.close < c1.low and c3.close > c2.close and c4.close > c3.close

    fakeout = False
    direction = None
    if c2.high > max(c0.high, c1.high) and c4.close < c2.low:
        fakeout = True
        direction = "up"
    if c2.low < min(c0.low, c1.low) and c4.close > c2.high:
        fakeout = True
        direction = "down"

    return TrapSignals(
        bull_trap=bull_trap,
        bear_trap=bear_trap,
        fakeout=fakeout,
        fakeout_direction=direction,
    )


# ── Volatility ───────────────────────────────────────────────────────────


def calculate_volatility(
    candles: Sequence[Candle],
    period: int = 14,
    floor: float = 0.005,
    cap: float = 0.05,
    default: float = 0.01,
) -> float:
    """Population standard deviation of close-to-close returns.

    Uses the last *period* candles and clamps the result to
    [*floor*, *cap*].  Returns *default* on short history or a zero close.
    """
    if period < 2 or len(candles) < period:
        return default

    closes = np.array([c.close for c in candles[-period:]], dtype=float)
    if np.any(closes[:-1] == 0):
        return default
    returns = np.diff(closes) / closes[:-1]
    volatility = float(np.std(returns))
    return max(floor, min(cap, volatility))


# ── Darvas boxes ─────────────────────────────────────────────────────────


def find_darvas_boxes(candles: Sequence[Candle], period: int = 5) -> DarvasAnalysis:
    """Track Darvas boxes: a new box starts whenever price breaks the
    running high or low established by the first *period* candles."""
    if len(candles) < period:
        return DarvasAnalysis(boxes=[])

    boxes: list[DarvasBox] = []
    top = bottom = 0.0
    start = -1

    running_high = max(c.high for c in candles[:period])
    running_low = min(c.low for c in candles[:period])

    for i in range(period, len(candles)):
        candle = candles[i]
        if candle.high > running_high:
            if start != -1:
                boxes.append(DarvasBox(top, bottom, start, i - 1))
            top, bottom, start = candle.high, running_low, i
            running_high = candle.high
        elif candle.low < running_low:
            if start != -1:
                boxes.append(DarvasBox(top, bottom, start, i - 1))
            top, bottom, start = running_high, candle.low, i
            running_low = candle.low

    if start == -1:
        return DarvasAnalysis(boxes=boxes)

    if start < len(candles) - 1:
        boxes.append(DarvasBox(top, bottom, start, len(candles) - 1))
    return DarvasAnalysis(boxes=boxes, current_top=top, current_bottom=bottom)
