"""Confluence — application configuration.

Loads .env variables into a typed config object.
Every variable has a default; malformed values fail fast on startup.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from confluence.strategy.fusion import DEFAULT_TIMEFRAME_WEIGHTS


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    min_leverage: int = 10
    max_leverage: int = 15
    timeframe_weights: dict[str, float] = field(default_factory=dict)  # overrides only
    initial_capital: float = 10_000.0
    backtest_leverage: float = 10.0
    risk_per_trade_pct: float = 5.0
    log_level: str = "INFO"
    api_port: int = 8080


def parse_timeframe_weights(raw: str) -> dict[str, float]:
    """Parse ``"1h=0.5,4h=0.6"`` into ``{"1h": 0.5, "4h": 0.6}``.

    Blank input yields an empty dict.  Raises ``ValueError`` on a
    malformed pair or a negative weight.
    """
    weights: dict[str, float] = {}
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        name, sep, value = chunk.partition("=")
        if not sep or not name.strip():
            raise ValueError(f"TIMEFRAME_WEIGHTS entry {chunk!r} is not 'tf=weight'")
        try:
            weight = float(value)
        except ValueError:
            raise ValueError(
                f"TIMEFRAME_WEIGHTS entry {chunk!r} has a non-numeric weight"
            ) from None
        if weight < 0:
            raise ValueError(f"TIMEFRAME_WEIGHTS entry {chunk!r} has a negative weight")
        weights[name.strip()] = weight
    return weights


def _read(name: str, default: str, cast):
    raw = os.environ.get(name, default)
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from None


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the offending variable when
    a value cannot be parsed, a leverage bound is below 1, or
    ``MIN_LEVERAGE`` exceeds ``MAX_LEVERAGE``.
    """
    load_dotenv(dotenv_path=env_path)

    min_leverage = _read("MIN_LEVERAGE", "10", int)
    max_leverage = _read("MAX_LEVERAGE", "15", int)
    if min_leverage < 1:
        raise ValueError(f"MIN_LEVERAGE must be at least 1, got {min_leverage}")
    if max_leverage < 1:
        raise ValueError(f"MAX_LEVERAGE must be at least 1, got {max_leverage}")
    if min_leverage > max_leverage:
        raise ValueError(
            f"MIN_LEVERAGE ({min_leverage}) exceeds MAX_LEVERAGE ({max_leverage})"
        )

    return Config(
        min_leverage=min_leverage,
        max_leverage=max_leverage,
        timeframe_weights=parse_timeframe_weights(os.environ.get("TIMEFRAME_WEIGHTS", "")),
        initial_capital=_read("INITIAL_CAPITAL", "10000", float),
        backtest_leverage=_read("BACKTEST_LEVERAGE", "10", float),
        risk_per_trade_pct=_read("RISK_PER_TRADE_PCT", "5.0", float),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        api_port=_read("API_PORT", "8080", int),
    )


def merged_timeframe_weights(config: Optional[Config]) -> Optional[dict[str, float]]:
    """Built-in fusion weights with *config* overrides applied, or ``None``
    when there is nothing to override."""
    if config is None or not config.timeframe_weights:
        return None
    return {**DEFAULT_TIMEFRAME_WEIGHTS, **config.timeframe_weights}
