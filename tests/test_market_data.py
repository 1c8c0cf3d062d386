from datetime import datetime, timezone

import pytest
from alpaca.data.timeframe import TimeFrameUnit

from tradeclient.backend.data.market_data import (
    ensure_utc,
    is_crypto,
    parse_timeframe,
    range_bars_query,
    recent_bars_query,
)


@pytest.mark.parametrize(
    "raw,amount,unit",
    [
        ("1Day", 1, TimeFrameUnit.Day),
        ("1Hour", 1, TimeFrameUnit.Hour),
        ("15Min", 15, TimeFrameUnit.Minute),
        ("1Week", 1, TimeFrameUnit.Week),
        ("1Month", 1, TimeFrameUnit.Month),
        ("5T", 5, TimeFrameUnit.Minute),
    ],
)
def test_parse_timeframe(raw, amount, unit):
    tf = parse_timeframe(raw)
    assert tf.amount_value == amount
    assert tf.unit_value == unit


def test_parse_timeframe_rejects_garbage():
    with pytest.raises(ValueError):
        parse_timeframe("xDays")
    with pytest.raises(ValueError):
        parse_timeframe("1Fortnight")


def test_is_crypto():
    assert is_crypto("BTC/USD")
    assert not is_crypto("AAPL")


def test_recent_query_adds_feed_only_for_crypto():
    assert recent_bars_query("AAPL", "1Min", 100).feed is None
    q = recent_bars_query("BTC/USD", "1Min", 100)
    assert (q.feed, q.adjustment, q.limit) == ("us", "raw", 100)


def test_range_query():
    q = range_bars_query("AAPL", "1Day", "2024-01-01", "2024-03-01", 500)
    assert (q.start, q.end, q.limit, q.adjustment, q.feed) == ("2024-01-01", "2024-03-01", 500, "raw", None)


def test_ensure_utc():
    assert ensure_utc(None) is None
    assert ensure_utc("2024-01-31").tzinfo == timezone.utc
    aware = datetime(2024, 1, 31, 12, tzinfo=timezone.utc)
    assert ensure_utc(aware) == aware
