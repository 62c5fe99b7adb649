"""Request schemas (pydantic) for the analysis, backtest and DCA endpoints."""

from typing import Optional

from pydantic import BaseModel, Field

from confluence.strategy.models import Candle, MarketConditionTag, PositionType, PriceAction


class CandleSchema(BaseModel):
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def to_candle(self) -> Candle:
        return Candle(
            time=self.time,
            open=self.open,
            high=self.high,
            low=self.low,
            close=self.close,
            volume=self.volume,
        )


class AnalysisRequest(BaseModel):
    """Candles per timeframe label, e.g. ``{"1h": [...], "4h": [...]}``.

    ``current_price`` defaults to the last close of the first timeframe.
    """

    candles: dict[str, list[CandleSchema]]
    current_price: Optional[float] = Field(default=None, gt=0)
    assess_market: bool = True


class BacktestRequest(BaseModel):
    candles: list[CandleSchema]
    initial_capital: Optional[float] = Field(default=None, gt=0)
    leverage: Optional[float] = Field(default=None, gt=0)
    risk_per_trade_pct: Optional[float] = Field(default=None, gt=0)


class DCARequest(BaseModel):
    entry_price: float = Field(gt=0)
    direction: PositionType
    initial_size: float = Field(gt=0)
    levels: int = Field(default=3, ge=1)
    volatility: float = Field(default=0.01, ge=0)
    market_condition: MarketConditionTag = MarketConditionTag.NEUTRAL
    optimization: bool = False
    adaptive_positioning: bool = False
    variable_amount: bool = False
    reinforcement: bool = False
    price_action: PriceAction = PriceAction.UNKNOWN
    support_resistance: list[float] = Field(default_factory=list)
