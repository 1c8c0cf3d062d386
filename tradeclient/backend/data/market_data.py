# tradeclient/backend/data/market_data.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Union

from alpaca.data.timeframe import TimeFrame, TimeFrameUnit

from tradeclient.domain.dto import BarQuery

CRYPTO_SEPARATOR = "/"
CRYPTO_FEED = "us"


def is_crypto(symbol: str) -> bool:
    """Para krypto ma separator, np. 'BTC/USD'."""
    return CRYPTO_SEPARATOR in symbol


def parse_timeframe(tf: str) -> TimeFrame:
    """
    Akceptuje: '1Day', '1Hour', '15Min', '5Min', '1Min', '1Week', '1Month'
    (także 'D', 'H', 'T' jako skróty). Zwraca alpaca.data.timeframe.TimeFrame.
    """
    tf = tf.strip().lower()
    for suffix, unit in (
        ("month", TimeFrameUnit.Month),
        ("week", TimeFrameUnit.Week),
        ("day", TimeFrameUnit.Day),
        ("hour", TimeFrameUnit.Hour),
        ("min", TimeFrameUnit.Minute),
        ("d", TimeFrameUnit.Day),
        ("h", TimeFrameUnit.Hour),
        ("t", TimeFrameUnit.Minute),
    ):
        if tf.endswith(suffix):
            n = tf[: -len(suffix)] or "1"
            try:
                return TimeFrame(int(n), unit)
            except ValueError as e:
                raise ValueError(f"Nieznany timeframe: {tf}") from e
    raise ValueError(f"Nieznany timeframe: {tf}")


def ensure_utc(dt: Optional[Union[str, datetime]]) -> Optional[datetime]:
    """
    Zwraca datetime w UTC (tz-aware). Stringi ISO ('2024-01-31') parsujemy,
    naive -> dołącz UTC, None zostaje None.
    """
    if dt is None:
        return None
    if isinstance(dt, str):
        dt = datetime.fromisoformat(dt)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def recent_bars_query(symbol: str, timeframe: str, limit: int) -> BarQuery:
    q = BarQuery(symbol=symbol, timeframe=timeframe, limit=limit, adjustment="raw")
    # endpointy krypto wymagają wskazania feedu
    if is_crypto(symbol):
        q.feed = CRYPTO_FEED
    return q


def range_bars_query(
    symbol: str,
    timeframe: str,
    start: Union[str, datetime],
    end: Union[str, datetime],
    limit: int,
) -> BarQuery:
    return BarQuery(
        symbol=symbol,
        timeframe=timeframe,
        limit=limit,
        adjustment="raw",
        start=start,
        end=end,
    )
