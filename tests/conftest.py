"""
Wspólne fixture'y: bramka w pamięci, notifier nagrywający wywołania,
log debug do listy i sterowany zegar dla cache barów.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from tradeclient.app.trading_client import TradingAccountClient
from tradeclient.backend.data.bar_cache import TTLCache
from tradeclient.domain.dto import Account, Bar, BarQuery, LatestTrade, Order, OrderRequest, Position, TradeNotice
from tradeclient.domain.interfaces import DebugLogPort, GatewayPort, NotifierPort


def make_bars(symbol: str, n: int = 3) -> List[Bar]:
    t0 = datetime(2024, 1, 2, 15, 30, tzinfo=timezone.utc)
    return [
        Bar(symbol=symbol, timestamp=t0 + timedelta(minutes=i), open=100 + i, high=101 + i,
            low=99 + i, close=100.5 + i, volume=1000 + i)
        for i in range(n)
    ]


class FakeGateway(GatewayPort):
    def __init__(self) -> None:
        self.account = Account(equity="10500", last_equity="10000", buying_power="21000", cash="5000")
        self.positions: List[Position] = []
        self.open_orders: List[Order] = []
        self.bars: Dict[str, List[Bar]] = {}
        self.latest: Dict[str, LatestTrade] = {}
        self.created: List[OrderRequest] = []
        self.calls: List[tuple] = []
        self.errors: Dict[str, Exception] = {}
        self.fail_order_types: Dict[str, Exception] = {}
        self.order_statuses: List[str] = []
        self.default_status = "filled"

    def _hit(self, name: str, *args) -> None:
        self.calls.append((name,) + args)
        err = self.errors.get(name)
        if err is not None:
            raise err

    def count(self, name: str) -> int:
        return sum(1 for c in self.calls if c[0] == name)

    def get_account(self) -> Account:
        self._hit("get_account")
        return self.account

    def get_positions(self) -> List[Position]:
        self._hit("get_positions")
        return list(self.positions)

    def get_orders(self, status: str = "open") -> List[Order]:
        self._hit("get_orders", status)
        return list(self.open_orders)

    def get_order(self, order_id: str) -> Order:
        self._hit("get_order", order_id)
        status = self.order_statuses.pop(0) if self.order_statuses else self.default_status
        return Order(id=order_id, symbol="?", side="buy", qty=None, type="market",
                     time_in_force="day", status=status)

    def get_bars(self, query: BarQuery) -> List[Bar]:
        self._hit("get_bars", query)
        return list(self.bars.get(query.symbol, []))

    def get_historical_bars(self, query: BarQuery) -> List[Bar]:
        self._hit("get_historical_bars", query)
        return list(self.bars.get(query.symbol, []))

    def get_latest_trade(self, symbol: str) -> LatestTrade:
        self._hit("get_latest_trade", symbol)
        return self.latest[symbol]

    def create_order(self, order: OrderRequest) -> Order:
        self._hit("create_order", order)
        err = self.fail_order_types.get(order.type)
        if err is not None:
            raise err
        self.created.append(order)
        return Order(
            id=f"ord-{len(self.created)}",
            symbol=order.symbol,
            side=order.side,
            qty=order.qty,
            type=order.type,
            time_in_force=order.time_in_force,
            order_class=order.order_class,
            status="accepted",
            stop_price=order.stop_price,
            limit_price=order.limit_price,
            client_order_id=order.client_id,
        )

    def close_position(self, symbol: str) -> Order:
        self._hit("close_position", symbol)
        self.positions = [p for p in self.positions if p.symbol != symbol]
        return Order(id="close-1", symbol=symbol, side="sell", qty=None, type="market", time_in_force="day")

    def cancel_order(self, order_id: str) -> None:
        self._hit("cancel_order", order_id)
        self.open_orders = [o for o in self.open_orders if o.id != order_id]

    def cancel_all_orders(self) -> int:
        self._hit("cancel_all_orders")
        return len(self.open_orders)


class RecordingNotifier(NotifierPort):
    def __init__(self) -> None:
        self.errors: List[tuple] = []
        self.trades: List[TradeNotice] = []

    def send_error(self, context: str, error: BaseException) -> None:
        self.errors.append((context, error))

    def send_trade_notification(self, notice: TradeNotice) -> None:
        self.trades.append(notice)


class ListDebugLog(DebugLogPort):
    def __init__(self) -> None:
        self.lines: List[str] = []

    def write(self, message: str) -> None:
        self.lines.append(message)

    def contains(self, fragment: str) -> bool:
        return any(fragment in line for line in self.lines)


class FakeClock:
    def __init__(self, now_ms: float = 1_000_000.0) -> None:
        self.now_ms = now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms

    def __call__(self) -> float:
        return self.now_ms


class FakeSleep:
    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_order(order_id: str, symbol: str = "AAPL", side: str = "buy") -> Order:
    return Order(id=order_id, symbol=symbol, side=side, qty=1.0, type="limit", time_in_force="gtc", status="new")


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def debug_log() -> ListDebugLog:
    return ListDebugLog()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def client(gateway, notifier, debug_log, clock, fake_sleep) -> TradingAccountClient:
    return TradingAccountClient(
        gateway,
        notifier,
        debug_log,
        bar_cache=TTLCache(ttl_ms=60_000, max_entries=64, clock=clock),
        client_prefix="test",
        fill_timeout=0,
        fill_poll_interval=0.25,
        sleep=fake_sleep,
    )


def error_titles(notifier: RecordingNotifier) -> List[Optional[str]]:
    return [ctx for ctx, _ in notifier.errors]
