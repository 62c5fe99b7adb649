"""Backtest statistics — pure functions for trade-series analysis."""

import math
from typing import Sequence

from confluence.backtest.models import BacktestResult, Trade
from confluence.risk.drawdown import DrawdownTracker


def profit_factor(total_profit: float, total_loss: float) -> float:
    """Gross profit ÷ gross loss.

    ``inf`` when there are profits but no losses; 0.0 when both are zero.
    """
    if total_loss > 0:
        return total_profit / total_loss
    if total_profit > 0:
        return math.inf
    return 0.0


def empty_result(initial_capital: float) -> BacktestResult:
    """Summary for a run that never traded."""
    return summarize([], initial_capital, initial_capital, 0.0)


def summarize(
    trades: Sequence[Trade],
    initial_capital: float,
    final_capital: float,
    max_drawdown: float,
    cancelled: bool = False,
) -> BacktestResult:
    """Build a ``BacktestResult`` from a closed-trade list and the run's
    final equity and maximum drawdown.

    A trade with zero profit counts as a loss, so
    ``winning_trades + losing_trades == total_trades``.
    """
    total = len(trades)
    winners = [t.profit for t in trades if t.profit > 0]
    losers = [t.profit for t in trades if t.profit <= 0]

    gross_profit = sum(winners)
    gross_loss = abs(sum(losers))

    net_profit = final_capital - initial_capital
    net_profit_percent = net_profit / initial_capital * 100

    return BacktestResult(
        total_trades=total,
        winning_trades=len(winners),
        losing_trades=len(losers),
        win_rate=len(winners) / total * 100 if total else 0.0,
        final_capital=final_capital,
        total_return=net_profit_percent,
        max_drawdown=max_drawdown,
        max_drawdown_percent=max_drawdown * 100,
        net_profit=net_profit,
        net_profit_percent=net_profit_percent,
        profit_factor=profit_factor(gross_profit, gross_loss),
        trades=list(trades),
        cancelled=cancelled,
    )


def calculate_stats(
    trades: Sequence[Trade], initial_capital: float,
) -> BacktestResult:
    """Recompute a run summary from its trade ledger alone.

    Equity is replayed trade by trade from *initial_capital*, and the
    drawdown is measured after each exit, the same points at which the
    simulator measures it.

    Raises:
        ValueError: If *initial_capital* is not positive.
    """
    tracker = DrawdownTracker(initial_capital)
    capital = initial_capital
    for trade in trades:
        capital += trade.profit
        tracker.update(capital)
    return summarize(trades, initial_capital, capital, tracker.max_drawdown)
