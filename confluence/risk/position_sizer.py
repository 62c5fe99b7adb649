"""Position sizing — pure math, no I/O.

Three sizing rules:
    - ``risk_allocation``: fixed fraction of capital (used by the backtest).
    - ``calculate_trade_amount``: confidence-scaled capital allocation.
    - ``calculate_dynamic_position_size``: volatility/regime/win-rate scaled.
"""

from typing import Union

from confluence.strategy.models import MarketConditionTag


def risk_allocation(capital: float, risk_pct: float) -> float:
    """Capital committed to one trade: ``capital × risk_pct / 100``.

    Returns 0.0 when *capital* is exhausted (zero or negative).

    Raises:
        ValueError: If *risk_pct* is not positive.
    """
    if risk_pct <= 0:
        raise ValueError(f"risk_pct must be positive, got {risk_pct}")
    if capital <= 0:
        return 0.0
    return capital * (risk_pct / 100.0)


def calculate_trade_amount(
    total_balance: float,
    min_capital_pct: float,
    max_capital_pct: float,
    default_capital_pct: float,
    signal_confidence: float,
    auto_adjust: bool,
    leverage: float,
) -> float:
    """Margin to commit for a trade.

    With *auto_adjust* and a positive confidence, the capital percentage
    is interpolated between the min and max bounds along
    ``confidence ** 1.5`` (favouring high-confidence signals).  Otherwise
    *default_capital_pct* is used.  The allocation is divided by
    *leverage*.

    Raises:
        ValueError: If *leverage* is not positive.
    """
    if leverage <= 0:
        raise ValueError(f"leverage must be positive, got {leverage}")

    if auto_adjust and signal_confidence > 0:
        scaled = signal_confidence ** 1.5
        pct = min_capital_pct + (max_capital_pct - min_capital_pct) * scaled
        pct = max(min_capital_pct, min(max_capital_pct, pct))
    else:
        pct = default_capital_pct

    return (total_balance * (pct / 100.0)) / leverage


def calculate_dynamic_position_size(
    account_balance: float,
    base_risk_pct: float,
    volatility: float,
    market_condition: Union[MarketConditionTag, str] = MarketConditionTag.NEUTRAL,
    win_rate: float = 0.6,
) -> float:
    """Position size scaled by volatility, regime and recent win rate.

    Adjustments applied to *base_risk_pct*:
        - × (1 − 10 × volatility), bounded to [0.5, 1.5]
        - × 0.7 in volatile markets, × 1.1 in clear trends
        - × 1.2 when *win_rate* > 0.7, × 0.8 when < 0.5
    The resulting percentage is bounded to [1, 10] % of the balance.
    """
    condition = MarketConditionTag(market_condition)
    pct = base_risk_pct

    volatility_factor = 1 - volatility * 10
    pct *= max(0.5, min(1.5, volatility_factor))

    if condition == MarketConditionTag.VOLATILE:
        pct *= 0.7
    elif condition in (MarketConditionTag.BULLISH, MarketConditionTag.BEARISH):
        pct *= 1.1

    if win_rate > 0.7:
        pct *= 1.2
    elif win_rate < 0.5:
        pct *= 0.8

    pct = max(1.0, min(10.0, pct))
    return account_balance * pct / 100.0
