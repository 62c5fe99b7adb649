"""DCA ladder calculation — pure math, no I/O.

Builds the staged entries added to a position as price moves against
it.  Percentage rungs start from a fixed base ladder and widen with
volatility; in optimisation mode the market regime and price action
reshape the spacing.  With adaptive positioning, nearby support or
resistance levels replace some of the percentage rungs.

The returned ladder is ordered so the first rung to trigger comes first
(LONG: descending prices, SHORT: ascending) and is numbered 1..N.
"""

from dataclasses import dataclass, replace
from typing import Optional, Sequence, Union

from confluence.strategy.models import (
    DCALevel,
    MarketConditionTag,
    PositionType,
    PriceAction,
)

BASE_LADDER: tuple[float, ...] = (0.03, 0.07, 0.12, 0.18, 0.25)

# S/R levels are only used between these distances from entry.
SR_MIN_DISTANCE = 0.01
SR_MAX_DISTANCE = 0.30

PARTIAL_TAKE_PROFIT = 0.03
REINFORCEMENT_OFFSET = 0.02


@dataclass(frozen=True)
class DCAOptions:
    """Optional behaviours for ``calculate_dca_levels``."""

    optimization: bool = False
    adaptive_positioning: bool = False
    variable_amount: bool = False
    reinforcement: bool = False
    price_action: PriceAction = PriceAction.UNKNOWN
    support_resistance: Sequence[float] = ()


def _aligned(condition: MarketConditionTag, direction: PositionType) -> bool:
    return (
        (condition == MarketConditionTag.BULLISH and direction == PositionType.LONG)
        or (condition == MarketConditionTag.BEARISH and direction == PositionType.SHORT)
    )


def _spacing(
    direction: PositionType,
    condition: MarketConditionTag,
    price_action: PriceAction,
) -> list[float]:
    """Base ladder reshaped by regime (optimisation mode only)."""
    factor = 1.0
    if condition == MarketConditionTag.VOLATILE:
        factor *= 1.5
    elif _aligned(condition, direction):
        factor *= 0.8

    if price_action == PriceAction.RANGING:
        factor *= 0.7
    elif price_action == PriceAction.TRENDING:
        factor *= 1.3

    return [p * factor for p in BASE_LADDER]


def _amount_adjustment(
    condition: MarketConditionTag, direction: PositionType, optimization: bool,
) -> float:
    if _aligned(condition, direction):
        return 1.3 if optimization else 1.2
    if condition == MarketConditionTag.VOLATILE:
        return 0.7 if optimization else 0.8
    return 1.0


def _adverse_levels(
    entry_price: float, direction: PositionType, levels: Sequence[float],
) -> list[tuple[float, float]]:
    """S/R levels on the losing side within range, nearest first.

    Returns ``(price, distance_fraction)`` pairs.
    """
    picked: list[tuple[float, float]] = []
    for level in levels:
        diff = (level - entry_price) / entry_price
        if direction == PositionType.LONG and diff >= 0:
            continue
        if direction == PositionType.SHORT and diff <= 0:
            continue
        distance = abs(diff)
        if SR_MIN_DISTANCE < distance < SR_MAX_DISTANCE:
            picked.append((level, distance))
    picked.sort(key=lambda item: item[1])
    return picked


def calculate_dca_levels(
    entry_price: float,
    direction: Union[PositionType, str],
    initial_size: float,
    levels: int = 3,
    volatility: float = 0.01,
    market_condition: Union[MarketConditionTag, str] = MarketConditionTag.NEUTRAL,
    options: Optional[DCAOptions] = None,
) -> list[DCALevel]:
    """Calculate a DCA ladder.

    Args:
        entry_price: Position entry price.
        direction: ``LONG`` or ``SHORT``.
        initial_size: Size of the initial entry; rung amounts scale from it.
        levels: Requested number of rungs (at most five percentage rungs
            are available, plus any S/R rungs).
        volatility: Volatility estimate (fraction, e.g. 0.01).
        market_condition: Regime tag.
        options: ``DCAOptions``; defaults to all features off.

    Rung amounts scale linearly (``1 + i × 0.5``) or, with
    ``variable_amount``, exponentially with rung depth
    (``1.5 ** (pct / first_pct)``).  Rungs whose price would fall to zero
    or below are dropped.

    Raises:
        ValueError: On non-positive entry price or size, or ``levels < 1``.
    """
    if entry_price <= 0:
        raise ValueError(f"entry_price must be positive, got {entry_price}")
    if initial_size <= 0:
        raise ValueError(f"initial_size must be positive, got {initial_size}")
    if levels < 1:
        raise ValueError(f"levels must be at least 1, got {levels}")

    direction = PositionType(direction)
    market_condition = MarketConditionTag(market_condition)
    opts = options or DCAOptions()

    sign = -1 if direction == PositionType.LONG else 1
    tp_factor = 1 + PARTIAL_TAKE_PROFIT if direction == PositionType.LONG else 1 - PARTIAL_TAKE_PROFIT
    rf_factor = 1 + REINFORCEMENT_OFFSET if direction == PositionType.LONG else 1 - REINFORCEMENT_OFFSET

    if opts.optimization:
        percentages = _spacing(direction, market_condition, opts.price_action)
    else:
        percentages = list(BASE_LADDER)

    result: list[DCALevel] = []

    # ── Support / resistance rungs (always leave one percentage rung) ──
    if opts.adaptive_positioning and opts.support_resistance and levels > 1:
        nearby = _adverse_levels(entry_price, direction, opts.support_resistance)
        for price, distance in nearby[: levels - 1]:
            if opts.variable_amount:
                multiplier = 1 + distance * 5
            else:
                multiplier = 1 + len(result) * 0.5
            result.append(
                DCALevel(
                    level=len(result) + 1,
                    price=price,
                    amount=initial_size * multiplier,
                    partial_take_profit=price * tp_factor,
                    reinforcement_threshold=price * rf_factor if opts.reinforcement else None,
                )
            )

    # ── Percentage rungs ──
    remaining = levels - len(result)
    volatility_multiplier = 1 + volatility * (25 if opts.optimization else 15)
    amount_adjustment = _amount_adjustment(market_condition, direction, opts.optimization)

    for i in range(min(remaining, len(percentages))):
        adjusted = percentages[i] * volatility_multiplier
        price = entry_price * (1 + sign * adjusted)
        if price <= 0:
            break

        if opts.variable_amount:
            depth = adjusted / percentages[0]
            multiplier = (1.5 ** depth) * amount_adjustment
        else:
            multiplier = (1 + i * 0.5) * amount_adjustment

        result.append(
            DCALevel(
                level=len(result) + 1,
                price=price,
                amount=initial_size * multiplier,
                partial_take_profit=price * tp_factor if opts.optimization else None,
                reinforcement_threshold=price * rf_factor if opts.reinforcement else None,
            )
        )

    result.sort(key=lambda lvl: lvl.price, reverse=direction == PositionType.LONG)
    return [replace(lvl, level=i + 1) for i, lvl in enumerate(result)]
