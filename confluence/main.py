"""Confluence — application entry point.

Exposes the stateless FastAPI app and the CLI entry point for the
analyze, backtest, and serve modes.
"""

import logging
import sys
from typing import Optional, Sequence

from fastapi import FastAPI

from confluence.api.routers import router

app = FastAPI(title="Confluence Analysis API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("confluence")


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _parse_candle_args(values: Sequence[str]) -> dict[str, str]:
    """``["1h=a.csv", "4h=b.csv"]`` → ``{"1h": "a.csv", "4h": "b.csv"}``.

    A bare path (no ``=``) is labelled ``"1h"``.
    """
    sources: dict[str, str] = {}
    for value in values:
        timeframe, sep, path = value.partition("=")
        if not sep:
            timeframe, path = "1h", value
        if not timeframe or not path:
            raise ValueError(f"--candles expects TF=path.csv, got {value!r}")
        sources[timeframe] = path
    return sources


def _run_analyze(config, sources: dict[str, str]) -> None:
    from confluence.config import merged_timeframe_weights
    from confluence.data import load_candles_csv
    from confluence.strategy.fusion import fuse_decision
    from confluence.strategy.timeframe import analyze_multi_timeframe

    candles = {tf: load_candles_csv(path) for tf, path in sources.items()}
    analyses = analyze_multi_timeframe(candles)
    first = next((series for series in candles.values() if series), None)
    if first is None:
        raise ValueError("No candles loaded")

    decision = fuse_decision(
        analyses,
        first[-1].close,
        min_leverage=config.min_leverage,
        max_leverage=config.max_leverage,
        timeframe_weights=merged_timeframe_weights(config),
    )
    print(
        f"{decision.signal.value} confidence={decision.confidence:.2f} "
        f"dominant={decision.dominant_timeframe} leverage={decision.leverage}x "
        f"price={decision.price} SL={decision.stop_loss:.4f} TP={decision.take_profit:.4f}"
    )
    for line in decision.reasoning:
        print(f"  - {line}")


def _run_backtest(config, sources: dict[str, str], symbol: str) -> None:
    from confluence.backtest.engine import BacktestEngine
    from confluence.data import load_candles_csv
    from confluence.reporting import format_analysis_report
    from confluence.strategy.timeframe import compute_timeframe_analysis

    timeframe, path = next(iter(sources.items()))
    candles = load_candles_csv(path)
    result = BacktestEngine().run(
        candles,
        initial_capital=config.initial_capital,
        leverage=config.backtest_leverage,
        risk_per_trade_pct=config.risk_per_trade_pct,
    )
    analysis = compute_timeframe_analysis(candles, timeframe)
    print(format_analysis_report(symbol, analysis, result, result.trades))
    print(f"\nFinal capital: {result.final_capital:.2f}")


def _run_cli(argv: Optional[Sequence[str]] = None) -> int:
    """Parse CLI arguments and dispatch to the appropriate mode."""
    import argparse

    from confluence.config import load_config

    parser = argparse.ArgumentParser(description="Confluence multi-timeframe analysis")
    parser.add_argument(
        "--mode",
        choices=["analyze", "backtest", "serve"],
        default="analyze",
        help="Run mode (default: analyze)",
    )
    parser.add_argument(
        "--candles",
        action="append",
        default=[],
        metavar="TF=PATH",
        help="Candle CSV per timeframe; repeat for several timeframes",
    )
    parser.add_argument("--symbol", default="BTCUSDT", help="Symbol label for reports")
    parser.add_argument("--env", dest="env_path", help="Path to a .env file")
    args = parser.parse_args(argv)

    config = load_config(args.env_path)
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.mode == "serve":
        import uvicorn

        from confluence.api.routers import configure_routers

        configure_routers(config)
        logger.info("Serving API on port %d", config.api_port)
        uvicorn.run(app, host="0.0.0.0", port=config.api_port, log_level="info")
        return 0

    try:
        sources = _parse_candle_args(args.candles)
        if not sources:
            parser.error("--candles is required for analyze and backtest modes")
        if args.mode == "backtest":
            _run_backtest(config, sources, args.symbol)
        else:
            _run_analyze(config, sources)
    except (OSError, ValueError) as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(_run_cli())
