"""Candle ingestion — CSV files and plain records into validated ``Candle`` lists.

Every loader runs ``validate_candles`` before returning, so downstream
indicator code never sees mis-ordered or non-finite bars.
"""

import logging
from pathlib import Path
from typing import Any, Iterable, Mapping, Union

import pandas as pd

from confluence.strategy.models import Candle
from confluence.strategy.validation import InvalidCandleSeriesError, validate_candles

logger = logging.getLogger("confluence")

REQUIRED_COLUMNS = ("time", "open", "high", "low", "close")

# Accepted aliases for the time column, in order of preference.
_TIME_ALIASES = ("time", "timestamp", "open_time", "date")

# Numeric times below this are epoch seconds (1e11 ms is March 1973).
SECONDS_EPOCH_LIMIT = 1e11


def _normalise_columns(df: pd.DataFrame) -> pd.DataFrame:
    df = df.rename(columns={c: str(c).strip().lower() for c in df.columns})
    if "time" not in df.columns:
        for alias in _TIME_ALIASES[1:]:
            if alias in df.columns:
                df = df.rename(columns={alias: "time"})
                break
    return df


def _time_to_millis(series: pd.Series) -> pd.Series:
    """Epoch milliseconds for a numeric or date-string time column.

    A numeric column whose largest value is below ``SECONDS_EPOCH_LIMIT``
    is read as epoch seconds and scaled to milliseconds.
    """
    if pd.api.types.is_numeric_dtype(series):
        if series.abs().max() < SECONDS_EPOCH_LIMIT:
            series = series * 1000
        return series.astype("int64")
    parsed = pd.to_datetime(series, utc=True)
    return (parsed - pd.Timestamp(0, tz="UTC")) // pd.Timedelta(milliseconds=1)


def candles_from_frame(df: pd.DataFrame) -> list[Candle]:
    """Convert a DataFrame with OHLC(V) columns into validated candles.

    Column names are case-insensitive; ``timestamp``, ``open_time`` and
    ``date`` are accepted for ``time``.  A missing ``volume`` column is
    treated as zero volume.  Numeric times are epoch milliseconds, or
    epoch seconds when every value is below ``SECONDS_EPOCH_LIMIT``.

    Raises:
        InvalidCandleSeriesError: On missing columns, unparseable values or
            a series that fails ``validate_candles``.
    """
    df = _normalise_columns(df)
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise InvalidCandleSeriesError(f"Missing candle column(s): {', '.join(missing)}")

    if "volume" not in df.columns:
        df = df.assign(volume=0.0)

    try:
        times = _time_to_millis(df["time"])
        prices = df[["open", "high", "low", "close", "volume"]].astype(float)
    except (TypeError, ValueError) as exc:
        raise InvalidCandleSeriesError(f"Unparseable candle values: {exc}") from exc

    candles = [
        Candle(
            time=int(t),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for t, row in zip(times, prices.itertuples(index=False))
    ]
    validate_candles(candles)
    return candles


def load_candles_csv(path: Union[str, Path]) -> list[Candle]:
    """Read a candle CSV (header row required) into validated candles."""
    df = pd.read_csv(path)
    candles = candles_from_frame(df)
    logger.info("Loaded %d candles from %s", len(candles), path)
    return candles


def candles_from_records(records: Iterable[Union[Mapping[str, Any], Candle]]) -> list[Candle]:
    """Build validated candles from dicts (or pass-through ``Candle`` objects)."""
    candles: list[Candle] = []
    for i, rec in enumerate(records):
        if isinstance(rec, Candle):
            candles.append(rec)
            continue
        try:
            candles.append(
                Candle(
                    time=int(rec["time"]),
                    open=float(rec["open"]),
                    high=float(rec["high"]),
                    low=float(rec["low"]),
                    close=float(rec["close"]),
                    volume=float(rec.get("volume", 0.0)),
                )
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidCandleSeriesError(f"Candle {i} is malformed: {exc}") from exc
    validate_candles(candles)
    return candles
