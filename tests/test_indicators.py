"""Deterministic tests for the indicator library.

All tests use fixed candle data fixtures. Same input = same output, always.
"""

import math

import pytest

from confluence.strategy.indicators import (
    analyze_market_structure,
    analyze_volume_profile,
    calculate_atr,
    calculate_ema,
    calculate_fibonacci_levels,
    calculate_rsi,
    calculate_volatility,
    detect_divergence,
    detect_traps,
    find_darvas_boxes,
    latest_value,
)
from confluence.strategy.models import Candle, Trend


# ── Candle fixtures ──────────────────────────────────────────────────────

def _make_candle(t: int, o: float, h: float, l: float, c: float, vol: float = 1000.0) -> Candle:
    return Candle(time=t, open=o, high=h, low=l, close=c, volume=vol)


def _from_closes(closes, spread: float = 1.0) -> list[Candle]:
    return [
        _make_candle(i * 60_000, c, c + spread, c - spread, c)
        for i, c in enumerate(closes)
    ]


# Zig-zag with rising swing highs (idx 2, 6, 10) and rising swing lows (idx 4, 8, 12)
_BULLISH_ZIGZAG = [10, 12, 14, 12, 10, 13, 16, 13, 11, 15, 18, 15, 13, 14, 16]


# ── RSI ──────────────────────────────────────────────────────────────────


class TestRSI:
    def test_monotonic_rise_reaches_100(self):
        rsi = calculate_rsi(_from_closes([100 + i for i in range(20)]))
        assert len(rsi) == 20
        assert all(math.isnan(v) for v in rsi[:14])
        assert rsi[-1] == 100.0

    def test_monotonic_fall_reaches_0(self):
        rsi = calculate_rsi(_from_closes([200 - i for i in range(20)]))
        assert rsi[-1] == pytest.approx(0.0)

    def test_flat_series_is_neutral(self):
        rsi = calculate_rsi(_from_closes([100.0] * 30))
        assert rsi[14:] == [50.0] * 16

    def test_short_history_is_all_50(self):
        assert calculate_rsi(_from_closes([1, 2, 3, 4, 5])) == [50.0] * 5

    def test_values_stay_in_range(self):
        closes = [100, 102, 101, 105, 103, 104, 99, 98, 101, 106, 108, 107,
                  103, 104, 102, 109, 111, 110, 104, 105]
        rsi = calculate_rsi(_from_closes(closes))
        assert all(0.0 <= v <= 100.0 for v in rsi[14:])

    def test_latest_value_skips_nan(self):
        assert latest_value([1.0, float("nan")], 50.0) == 50.0
        assert latest_value([], 7.0) == 7.0
        assert latest_value([1.0, 2.0], 50.0) == 2.0


# ── EMA / ATR ────────────────────────────────────────────────────────────


class TestEMA:
    def test_seeded_with_sma(self):
        ema = calculate_ema([1.0, 2.0, 3.0, 4.0, 5.0], 3)
        assert math.isnan(ema[0]) and math.isnan(ema[1])
        assert ema[2] == pytest.approx(2.0)
        # k = 0.5 → (4 - 2) × 0.5 + 2
        assert ema[3] == pytest.approx(3.0)
        assert ema[4] == pytest.approx(4.0)

    def test_short_series_is_all_nan(self):
        ema = calculate_ema([1.0, 2.0], 3)
        assert len(ema) == 2
        assert all(math.isnan(v) for v in ema)


class TestATR:
    def test_constant_range(self):
        candles = _from_closes([100.0] * 20, spread=1.0)
        assert calculate_atr(candles) == pytest.approx(2.0)

    def test_short_history_returns_default(self):
        assert calculate_atr(_from_closes([100.0] * 5)) == 1.0


# ── Fibonacci / volume profile ───────────────────────────────────────────


class TestFibonacci:
    def test_levels_measured_from_high(self):
        fib = calculate_fibonacci_levels(200.0, 100.0)
        assert fib.levels[0.0] == pytest.approx(200.0)
        assert fib.levels[0.5] == pytest.approx(150.0)
        assert fib.levels[0.618] == pytest.approx(138.2)
        assert fib.levels[1.0] == pytest.approx(100.0)


class TestVolumeProfile:
    def test_even_distribution_has_no_nodes(self):
        candles = [_make_candle(i, 105, 110, 100, 105, vol=100) for i in range(5)]
        profile = analyze_volume_profile(candles)
        assert len(profile.zones) == 10
        assert all(z.volume == pytest.approx(50.0) for z in profile.zones)
        assert profile.high_volume_nodes == []

    def test_concentrated_volume_creates_node(self):
        candles = [_make_candle(i, 105, 110, 100, 105, vol=100) for i in range(5)]
        candles.append(_make_candle(5, 100.5, 101, 100, 100.5, vol=1000))
        profile = analyze_volume_profile(candles)
        assert profile.volume_average == pytest.approx(250.0)
        assert profile.high_volume_nodes == [pytest.approx(100.5)]

    def test_zero_range_window_is_single_zone(self):
        candles = [_make_candle(i, 100, 100, 100, 100, vol=10) for i in range(3)]
        profile = analyze_volume_profile(candles)
        assert len(profile.zones) == 1
        assert profile.zones[0].volume == pytest.approx(30.0)
        assert profile.high_volume_nodes == [100.0]

    def test_empty_input(self):
        profile = analyze_volume_profile([])
        assert profile.zones == [] and profile.high_volume_nodes == []


# ── Divergence ───────────────────────────────────────────────────────────


class TestDivergence:
    def test_bullish_when_price_falls_and_rsi_rises(self):
        candles = _from_closes([110 - i for i in range(10)])
        rsi = [30.0 + i for i in range(10)]
        div = detect_divergence(candles, rsi)
        assert div.bullish and not div.bearish
        # (9 / 101) × (9 / 30) × 100
        assert div.strength == pytest.approx(9 / 101 * 9 / 30 * 100)

    def test_bearish_when_price_rises_and_rsi_falls(self):
        candles = _from_closes([100 + i for i in range(10)])
        rsi = [70.0 - i for i in range(10)]
        div = detect_divergence(candles, rsi)
        assert div.bearish and not div.bullish
        assert 0 < div.strength <= 100

    def test_rsi_leaving_zero_floor_scores_the_cap(self):
        closes = [100 - i for i in range(45)] + [56, 57, 58, 57.5, 56.5]
        candles = _from_closes(closes)
        rsi = calculate_rsi(candles, 14)
        assert min(v for v in rsi[-10:]) == 0.0
        div = detect_divergence(candles, rsi)
        assert div.bullish and not div.bearish
        assert div.strength == 100.0

    def test_no_rsi_movement_has_no_strength(self):
        candles = _from_closes([110 - i for i in range(10)])
        div = detect_divergence(candles, [0.0] * 10)
        assert not div.bullish
        assert div.strength == 0.0

    def test_insufficient_rsi_history(self):
        candles = _from_closes([100 + i for i in range(10)])
        div = detect_divergence(candles, [float("nan")] * 5 + [50.0] * 5)
        assert not div.bullish and not div.bearish and div.strength == 0.0


# ── Market structure ─────────────────────────────────────────────────────


class TestMarketStructure:
    def test_bullish_structure(self):
        ms = analyze_market_structure(_from_closes(_BULLISH_ZIGZAG))
        assert ms.trend == Trend.BULLISH
        assert ms.higher_high and ms.higher_low
        assert not ms.break_of_structure

    def test_bearish_structure(self):
        ms = analyze_market_structure(_from_closes([30 - c for c in _BULLISH_ZIGZAG]))
        assert ms.trend == Trend.BEARISH
        assert ms.lower_high and ms.lower_low

    def test_break_of_structure_on_close_below_prior_swing_low(self):
        # Prior swing low is 10 (close 11 at idx 8); final close 9 breaks it.
        ms = analyze_market_structure(_from_closes(_BULLISH_ZIGZAG + [9]))
        assert ms.trend == Trend.BULLISH
        assert ms.break_of_structure

    def test_short_history_is_neutral(self):
        ms = analyze_market_structure(_from_closes([1, 2, 3]))
        assert ms.trend == Trend.NEUTRAL
        assert not any([ms.higher_high, ms.higher_low, ms.break_of_structure])

    def test_monotonic_series_has_no_swings(self):
        ms = analyze_market_structure(_from_closes([100 + i for i in range(30)]))
        assert ms.trend == Trend.NEUTRAL


# ── Traps ────────────────────────────────────────────────────────────────


class TestTraps:
    def test_bull_trap(self):
        candles = [
            _make_candle(0, 100, 101, 99, 100),
            _make_candle(1, 100, 102, 99, 101),
            _make_candle(2, 101, 104, 100, 103),
            _make_candle(3, 103, 103.5, 101.5, 102),
            _make_candle(4, 102, 102.5, 100.5, 101),
        ]
        traps = detect_traps(candles)
        assert traps.bull_trap
        assert not traps.bear_trap
        assert not traps.fakeout

    def test_downward_fakeout_and_bear_trap(self):
        candles = [
            _make_candle(0, 100, 101, 99, 100),
            _make_candle(1, 100, 101, 99, 100.5),
            _make_candle(2, 100, 100.8, 97, 98),
            _make_candle(3, 98, 100.5, 97.5, 100),
            _make_candle(4, 100, 102, 99.5, 101.5),
        ]
        traps = detect_traps(candles)
        assert traps.bear_trap
        assert traps.fakeout
        assert traps.fakeout_direction == "down"

    def test_short_history(self):
        traps = detect_traps(_from_closes([1, 2, 3]))
        assert not traps.bull_trap and not traps.fakeout
        assert traps.fakeout_direction is None


# ── Volatility / Darvas ──────────────────────────────────────────────────


class TestVolatility:
    def test_short_history_default(self):
        assert calculate_volatility(_from_closes([100.0] * 5)) == 0.01

    def test_flat_series_hits_floor(self):
        assert calculate_volatility(_from_closes([100.0] * 20)) == 0.005

    def test_wild_series_hits_cap(self):
        closes = [100.0 if i % 2 == 0 else 120.0 for i in range(20)]
        assert calculate_volatility(_from_closes(closes)) == 0.05


class TestDarvasBoxes:
    def test_rising_highs_open_new_boxes(self):
        candles = [_make_candle(i, 100 + i, 100 + i, 99 + i, 100 + i) for i in range(8)]
        darvas = find_darvas_boxes(candles)
        assert len(darvas.boxes) == 2
        assert darvas.current_top == 107
        assert darvas.current_bottom == 99

    def test_short_history_has_no_box(self):
        darvas = find_darvas_boxes(_from_closes([1, 2, 3]))
        assert darvas.boxes == []
        assert darvas.current_top is None
