"""Plain-text market-analysis and performance report."""

import math
from typing import Sequence

from confluence.backtest.models import BacktestResult, Trade
from confluence.strategy.models import TimeframeAnalysis

RECENT_TRADES = 5


def _divergence_text(analysis: TimeframeAnalysis) -> str:
    div = analysis.divergence
    kinds = [name for name, flag in (("Bullish", div.bullish), ("Bearish", div.bearish)) if flag]
    label = " & ".join(kinds) if kinds else "None"
    return f"{label} (Strength: {div.strength:.0f}%)"


def _profit_factor_text(value: float) -> str:
    return "inf" if math.isinf(value) else f"{value:.2f}"


def _trade_line(index: int, trade: Trade) -> str:
    mark = "✓" if trade.profit > 0 else "✗"
    return (
        f"{index}. {trade.type.value} {mark} Entry: {trade.entry_price} "
        f"Exit: {trade.exit_price} PnL: {trade.profit_percentage:.2f}%"
    )


def format_analysis_report(
    symbol: str,
    analysis: TimeframeAnalysis,
    stats: BacktestResult,
    trades: Sequence[Trade],
) -> str:
    """Render the analysis, performance metrics and the last five trades."""
    lines = [
        f"MARKET ANALYSIS FOR {symbol} ({analysis.timeframe} timeframe):",
        f"- Current trend: {analysis.trend.value}",
        f"- RSI: {analysis.rsi:.2f}",
        f"- EMA status: {analysis.ema_status.value}",
        f"- Market structure: {', '.join(analysis.market_structure_tags) or 'None'}",
        "- Volume profile: Key levels at "
        + (", ".join(f"{v:.2f}" for v in analysis.volume_support_levels) or "None"),
        f"- Divergences: {_divergence_text(analysis)}",
        f"- Confidence: {analysis.confidence:.2f}",
    ]
    if analysis.patterns:
        lines.append(
            "- Candlestick Patterns: "
            + ", ".join(
                f"{p.pattern.value} ({p.significance:.0f}% significance, {p.trend.value} trend)"
                for p in analysis.patterns
            )
        )

    lines += [
        "",
        "PERFORMANCE METRICS:",
        f"- Trades: {stats.total_trades} ({stats.winning_trades} won, {stats.losing_trades} lost)",
        f"- Win rate: {stats.win_rate:.2f}%",
        f"- Profit factor: {_profit_factor_text(stats.profit_factor)}",
        f"- Max drawdown: {stats.max_drawdown_percent:.2f}%",
        f"- Net profit: {stats.net_profit_percent:.2f}%",
        "",
        f"RECENT TRADES (LAST {RECENT_TRADES}):",
    ]
    recent = list(trades)[-RECENT_TRADES:]
    if recent:
        lines += [_trade_line(i + 1, t) for i, t in enumerate(recent)]
    else:
        lines.append("No trades.")

    return "\n".join(lines)
