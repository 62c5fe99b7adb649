"""Backtest data models — closed trades and run summaries."""

from dataclasses import dataclass, field

from confluence.strategy.models import PositionType


@dataclass(frozen=True)
class Trade:
    """A closed simulated trade.  Times are epoch milliseconds."""

    entry_price: float
    exit_price: float
    type: PositionType
    profit: float
    profit_percentage: float
    entry_time: int
    exit_time: int


@dataclass(frozen=True)
class BacktestResult:
    """Aggregate statistics for one simulation run.

    ``win_rate``, ``total_return``, ``net_profit_percent`` and
    ``max_drawdown_percent`` are percentages; ``max_drawdown`` is a
    fraction of the peak.  ``profit_factor`` is ``inf`` when there are
    profits and no losses, and 0 when there are neither.
    """

    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    final_capital: float
    total_return: float
    max_drawdown: float
    max_drawdown_percent: float
    net_profit: float
    net_profit_percent: float
    profit_factor: float
    trades: list[Trade] = field(default_factory=list)
    cancelled: bool = False
