"""Strategy data models — typed representations for analysis inputs and outputs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class Candle:
    """A single OHLCV bar.  ``time`` is epoch milliseconds."""

    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


# ── Enumerations ─────────────────────────────────────────────────────────


class Trend(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class Signal(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    NEUTRAL = "NEUTRAL"


class PositionType(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class MarketConditionTag(str, Enum):
    """Coarse market regime used by the DCA and sizing helpers."""

    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"
    VOLATILE = "VOLATILE"


class PriceAction(str, Enum):
    RANGING = "RANGING"
    TRENDING = "TRENDING"
    REVERSAL = "REVERSAL"
    UNKNOWN = "UNKNOWN"


class CandlestickPattern(str, Enum):
    BULLISH_ENGULFING = "BULLISH_ENGULFING"
    BEARISH_ENGULFING = "BEARISH_ENGULFING"
    HAMMER = "HAMMER"
    INVERTED_HAMMER = "INVERTED_HAMMER"
    MORNING_STAR = "MORNING_STAR"
    EVENING_STAR = "EVENING_STAR"
    DOJI = "DOJI"
    DARK_CLOUD_COVER = "DARK_CLOUD_COVER"
    PIERCING_LINE = "PIERCING_LINE"
    THREE_WHITE_SOLDIERS = "THREE_WHITE_SOLDIERS"
    THREE_BLACK_CROWS = "THREE_BLACK_CROWS"
    BULLISH_HARAMI = "BULLISH_HARAMI"
    BEARISH_HARAMI = "BEARISH_HARAMI"
    SHOOTING_STAR = "SHOOTING_STAR"
    HANGING_MAN = "HANGING_MAN"
    TWEEZER_TOP = "TWEEZER_TOP"
    TWEEZER_BOTTOM = "TWEEZER_BOTTOM"
    SPINNING_TOP = "SPINNING_TOP"
    INSIDE_BAR = "INSIDE_BAR"


# ── Indicator records ────────────────────────────────────────────────────


@dataclass(frozen=True)
class FibonacciLevels:
    """Retracement prices measured from *high* downward."""

    high: float
    low: float
    levels: dict[float, float]  # ratio → price

    def prices(self) -> list[float]:
        return list(self.levels.values())


@dataclass(frozen=True)
class VolumeZone:
    price: float  # zone midpoint
    volume: float


@dataclass(frozen=True)
class VolumeProfile:
    high_volume_nodes: list[float]
    volume_average: float
    zones: list[VolumeZone]


@dataclass(frozen=True)
class Divergence:
    bullish: bool = False
    bearish: bool = False
    strength: float = 0.0  # 0-100


@dataclass(frozen=True)
class MarketStructure:
    trend: Trend = Trend.NEUTRAL
    higher_high: bool = False
    higher_low: bool = False
    lower_high: bool = False
    lower_low: bool = False
    break_of_structure: bool = False


@dataclass(frozen=True)
class TrapSignals:
    bull_trap: bool = False
    bear_trap: bool = False
    fakeout: bool = False
    fakeout_direction: Optional[str] = None  # "up" or "down"


@dataclass(frozen=True)
class DarvasBox:
    top: float
    bottom: float
    start_index: int
    end_index: int


@dataclass(frozen=True)
class DarvasAnalysis:
    boxes: list[DarvasBox]
    current_top: Optional[float] = None
    current_bottom: Optional[float] = None


@dataclass(frozen=True)
class PatternResult:
    """A detected candlestick pattern."""

    pattern: CandlestickPattern
    significance: float  # 0-100
    trend: Trend
    candle_indices: tuple[int, ...]
    description: str


# ── Analysis & decision ──────────────────────────────────────────────────


@dataclass(frozen=True)
class TimeframeAnalysis:
    """Single-timeframe verdict fed into multi-timeframe fusion.

    ``candles`` is the slice the analysis was computed from.  Fusion
    re-runs pattern detection on it; an empty tuple means no pattern
    adjustment for this timeframe.
    """

    timeframe: str
    trend: Trend = Trend.NEUTRAL
    rsi: float = 50.0
    ema_status: Trend = Trend.NEUTRAL
    market_structure_tags: tuple[str, ...] = ()
    volume_support_levels: tuple[float, ...] = ()
    divergence: Divergence = field(default_factory=Divergence)
    confidence: float = 0.0
    patterns: tuple[PatternResult, ...] = ()
    candles: tuple[Candle, ...] = field(default=(), repr=False)


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Dominant-timeframe indicator values attached to a decision."""

    rsi: float
    ema_status: Trend
    market_structure_tags: tuple[str, ...]
    volume_support_levels: tuple[float, ...]
    divergence: Divergence
    patterns: tuple[PatternResult, ...]


@dataclass(frozen=True)
class MarketCondition:
    primary_trend: Trend
    strength: float  # 0-100
    volatility: float
    momentum: float  # -100..100
    supports: tuple[float, ...]
    resistances: tuple[float, ...]
    volume_profile: str  # INCREASING / DECREASING / FLAT
    timeframe: str


@dataclass(frozen=True)
class OptimizedParameters:
    stop_loss_percentage: float
    take_profit_percentage: float
    entry_confidence_threshold: float
    leverage_multiplier: float
    duration_hold_hours: int
    trailing_stop_activation_percentage: float
    use_market_orders: bool
    trades_per_day: int


@dataclass(frozen=True)
class TradingDecision:
    signal: Signal
    confidence: float
    dominant_timeframe: str
    price: float
    reasoning: list[str]
    supporting_indicators: list[str]
    leverage: int
    stop_loss: float
    take_profit: float
    timestamp: datetime
    indicators: Optional[IndicatorSnapshot] = None
    market_condition: Optional[MarketCondition] = None
    optimized_parameters: Optional[OptimizedParameters] = None


@dataclass(frozen=True)
class DCALevel:
    """One rung of a DCA ladder.  Level 1 triggers first."""

    level: int
    price: float
    amount: float
    partial_take_profit: Optional[float] = None
    reinforcement_threshold: Optional[float] = None
