"""Backtest engine — replays historical candles through an RSI/EMA rule set.

Iterates candle data chronologically over a sliding window, opening at
most one simulated position at a time with virtual capital.  No real
orders are placed.
"""

import logging
import math
import threading
from dataclasses import dataclass
from typing import Optional, Sequence

from confluence.backtest.models import BacktestResult, Trade
from confluence.backtest.stats import empty_result, summarize
from confluence.risk.drawdown import DrawdownTracker
from confluence.risk.position_sizer import risk_allocation
from confluence.strategy.indicators import calculate_ema, calculate_rsi, latest_value
from confluence.strategy.models import Candle, PositionType
from confluence.strategy.validation import validate_candles

logger = logging.getLogger("confluence")


@dataclass(frozen=True)
class BacktestOptions:
    """Rule-set parameters.  Each evaluation window holds
    ``lookback + 1`` candles ending at the current bar."""

    lookback: int = 50
    rsi_period: int = 14
    ema_fast: int = 8
    ema_slow: int = 21
    oversold: float = 30.0
    overbought: float = 70.0


@dataclass
class _OpenPosition:
    type: PositionType
    entry_price: float
    entry_time: int
    size: float


class BacktestEngine:
    """Simulates the RSI/EMA rule set on a single candle series.

    Entry (when flat):
        - LONG when RSI < oversold and fast EMA > slow EMA
        - SHORT when RSI > overbought and fast EMA < slow EMA
    Exit (when in position):
        - LONG closes when RSI > overbought or fast EMA < slow EMA
        - SHORT closes when RSI < oversold or fast EMA > slow EMA

    An exit and a fresh entry may happen on the same bar.  A position
    still open when the data (or a cancellation) ends is closed at the
    last processed close.

    Args:
        options: Rule-set parameters; defaults to ``BacktestOptions()``.
    """

    def __init__(self, options: Optional[BacktestOptions] = None) -> None:
        self._options = options or BacktestOptions()

    # ── Public API ───────────────────────────────────────────────────────

    def run(
        self,
        candles: Sequence[Candle],
        initial_capital: float = 10_000.0,
        leverage: float = 10.0,
        risk_per_trade_pct: float = 5.0,
        cancel_event: Optional[threading.Event] = None,
    ) -> BacktestResult:
        """Execute a full backtest.

        Args:
            candles: Chronological candle series.
            initial_capital: Starting virtual capital.
            leverage: Multiplier applied to each trade's price move.
            risk_per_trade_pct: Percent of current capital committed per trade.
            cancel_event: Checked before each bar; once set, the run stops,
                closes any open position and reports ``cancelled=True``.

        Returns:
            ``BacktestResult``; an all-zero summary with the capital
            unchanged when fewer than ``lookback`` candles are supplied.

        Raises:
            InvalidCandleSeriesError: On a malformed candle series.
            ValueError: On non-positive capital, leverage or risk.
        """
        validate_candles(candles)
        if initial_capital <= 0:
            raise ValueError(f"initial_capital must be positive, got {initial_capital}")
        if leverage <= 0:
            raise ValueError(f"leverage must be positive, got {leverage}")
        if risk_per_trade_pct <= 0:
            raise ValueError(
                f"risk_per_trade_pct must be positive, got {risk_per_trade_pct}"
            )

        opts = self._options
        n = len(candles)
        if n < opts.lookback:
            logger.info(
                "Backtest skipped: %d candles supplied, %d required",
                n, opts.lookback,
            )
            return empty_result(initial_capital)

        capital = initial_capital
        tracker = DrawdownTracker(initial_capital)
        position: Optional[_OpenPosition] = None
        trades: list[Trade] = []
        cancelled = False
        last_index = n - 1
        exhausted_logged = False

        for i in range(opts.lookback, n - 1):
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                last_index = i - 1
                logger.warning("Backtest cancelled at candle %d of %d", i, n)
                break

            window = candles[i - opts.lookback : i + 1]
            rsi, ema_fast, ema_slow = self._indicators(window)
            candle = candles[i]

            # Exit check
            if position is not None and self._should_exit(position.type, rsi, ema_fast, ema_slow):
                trade = self._close(position, candle.close, candle.time, leverage)
                capital += trade.profit
                tracker.update(capital)
                trades.append(trade)
                position = None

            if position is not None:
                continue

            # Entry check
            direction = self._entry_signal(rsi, ema_fast, ema_slow)
            if direction is None:
                continue

            size = risk_allocation(capital, risk_per_trade_pct)
            if size <= 0:
                if not exhausted_logged:
                    logger.warning("Capital exhausted (%.2f); skipping entries", capital)
                    exhausted_logged = True
                continue

            position = _OpenPosition(
                type=direction,
                entry_price=candle.close,
                entry_time=candle.time,
                size=size,
            )

        # Close any remaining position at the last processed close
        if position is not None:
            last = candles[last_index]
            trade = self._close(position, last.close, last.time, leverage)
            capital += trade.profit
            tracker.update(capital)
            trades.append(trade)

        result = summarize(
            trades, initial_capital, capital, tracker.max_drawdown, cancelled=cancelled,
        )
        logger.info(
            "Backtest complete: %d trades, net profit %.2f (%.2f%%), "
            "win rate %.1f%%, max drawdown %.2f%%",
            result.total_trades, result.net_profit, result.net_profit_percent,
            result.win_rate, result.max_drawdown_percent,
        )
        return result

    # ── Helpers ──────────────────────────────────────────────────────────

    def _indicators(self, window: Sequence[Candle]) -> tuple[float, float, float]:
        """Latest RSI, fast EMA and slow EMA of *window*.  Missing EMAs are NaN."""
        opts = self._options
        closes = [c.close for c in window]
        rsi = latest_value(calculate_rsi(window, opts.rsi_period), 50.0)
        ema_fast = latest_value(calculate_ema(closes, opts.ema_fast), math.nan)
        ema_slow = latest_value(calculate_ema(closes, opts.ema_slow), math.nan)
        return rsi, ema_fast, ema_slow

    def _entry_signal(
        self, rsi: float, ema_fast: float, ema_slow: float,
    ) -> Optional[PositionType]:
        if math.isnan(ema_fast) or math.isnan(ema_slow):
            return None
        if rsi < self._options.oversold and ema_fast > ema_slow:
            return PositionType.LONG
        if rsi > self._options.overbought and ema_fast < ema_slow:
            return PositionType.SHORT
        return None

    def _should_exit(
        self, direction: PositionType, rsi: float, ema_fast: float, ema_slow: float,
    ) -> bool:
        if math.isnan(ema_fast) or math.isnan(ema_slow):
            return False
        if direction == PositionType.LONG:
            return rsi > self._options.overbought or ema_fast < ema_slow
        return rsi < self._options.oversold or ema_fast > ema_slow

    @staticmethod
    def _calc_pnl(
        direction: PositionType, entry: float, exit_price: float,
        size: float, leverage: float,
    ) -> float:
        """Leveraged P&L on the committed *size*."""
        move = (exit_price - entry) / entry
        if direction == PositionType.SHORT:
            move = -move
        return size * move * leverage

    @classmethod
    def _close(
        cls, position: _OpenPosition, exit_price: float, exit_time: int,
        leverage: float,
    ) -> Trade:
        profit = cls._calc_pnl(
            position.type, position.entry_price, exit_price, position.size, leverage,
        )
        return Trade(
            entry_price=position.entry_price,
            exit_price=exit_price,
            type=position.type,
            profit=profit,
            profit_percentage=profit / position.size * 100,
            entry_time=position.entry_time,
            exit_time=exit_time,
        )
