"""Internal API routers — /analysis, /backtest, /dca endpoints.

Stateless: every request carries its own candles.  No business logic
here; handlers delegate to the strategy, risk and backtest packages and
map ``ValueError`` to HTTP 422.
"""

import logging
import math
from dataclasses import replace

from fastapi import APIRouter, HTTPException
from fastapi.encoders import jsonable_encoder

from confluence.api.schemas import AnalysisRequest, BacktestRequest, DCARequest
from confluence.backtest.engine import BacktestEngine
from confluence.backtest.models import BacktestResult
from confluence.config import Config, merged_timeframe_weights
from confluence.risk.dca import DCAOptions, calculate_dca_levels
from confluence.strategy.fusion import fuse_decision
from confluence.strategy.timeframe import analyze_multi_timeframe

logger = logging.getLogger("confluence")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_config: Config = Config()


def configure_routers(config: Config) -> None:
    """Inject the loaded configuration (leverage bounds, weights, defaults)."""
    global _config  # noqa: PLW0603
    _config = config


def _unprocessable(exc: ValueError) -> HTTPException:
    logger.info("Rejected request: %s", exc)
    return HTTPException(status_code=422, detail=str(exc))


def backtest_payload(result: BacktestResult) -> dict:
    """JSON-safe backtest result.  An infinite profit factor becomes
    ``null`` with ``profit_factor_infinite: true``."""
    payload = jsonable_encoder(result)
    infinite = math.isinf(result.profit_factor)
    if infinite:
        payload["profit_factor"] = None
    payload["profit_factor_infinite"] = infinite
    return payload


# ── Endpoints ────────────────────────────────────────────────────────────


@router.post("/analysis")
def post_analysis(body: AnalysisRequest):
    """Analyse each timeframe and fuse them into one trading decision."""
    try:
        candles = {
            tf: [c.to_candle() for c in series] for tf, series in body.candles.items()
        }
        analyses = analyze_multi_timeframe(candles)

        price = body.current_price
        if price is None:
            first = next((series for series in candles.values() if series), None)
            if first is None:
                raise ValueError("current_price is required when no candles are supplied")
            price = first[-1].close

        decision = fuse_decision(
            analyses,
            price,
            min_leverage=_config.min_leverage,
            max_leverage=_config.max_leverage,
            timeframe_weights=merged_timeframe_weights(_config),
            assess_market=body.assess_market,
        )
    except ValueError as exc:
        raise _unprocessable(exc) from exc

    timeframes = {}
    for tf, analysis in analyses.items():
        entry = jsonable_encoder(replace(analysis, candles=()))
        entry.pop("candles", None)
        timeframes[tf] = entry

    return {"decision": jsonable_encoder(decision), "timeframes": timeframes}


@router.post("/backtest")
def post_backtest(body: BacktestRequest):
    """Run the RSI/EMA simulator over the supplied candles."""
    try:
        result = BacktestEngine().run(
            [c.to_candle() for c in body.candles],
            initial_capital=body.initial_capital or _config.initial_capital,
            leverage=body.leverage or _config.backtest_leverage,
            risk_per_trade_pct=body.risk_per_trade_pct or _config.risk_per_trade_pct,
        )
    except ValueError as exc:
        raise _unprocessable(exc) from exc
    return backtest_payload(result)


@router.post("/dca")
def post_dca(body: DCARequest):
    """Calculate a DCA ladder for a position."""
    options = DCAOptions(
        optimization=body.optimization,
        adaptive_positioning=body.adaptive_positioning,
        variable_amount=body.variable_amount,
        reinforcement=body.reinforcement,
        price_action=body.price_action,
        support_resistance=tuple(body.support_resistance),
    )
    try:
        levels = calculate_dca_levels(
            body.entry_price,
            body.direction,
            body.initial_size,
            levels=body.levels,
            volatility=body.volatility,
            market_condition=body.market_condition,
            options=options,
        )
    except ValueError as exc:
        raise _unprocessable(exc) from exc
    return {"levels": jsonable_encoder(levels)}
