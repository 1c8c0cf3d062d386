from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from loguru import logger

from tradeclient.app.failure_policy import FailureReporter, Operation
from tradeclient.app.order_service import (
    buy_plan,
    close_notice,
    make_client_id,
    market_sell,
    trade_notice,
)
from tradeclient.app.snapshot import AccountSnapshot
from tradeclient.backend.data.bar_cache import TTLCache
from tradeclient.backend.data.market_data import range_bars_query, recent_bars_query
from tradeclient.config import settings
from tradeclient.domain.dto import Account, Bar, LatestTrade, Order, OrderRequest, Position
from tradeclient.domain.errors import GatewayError, PositionNotFoundError
from tradeclient.domain.interfaces import DebugLogPort, GatewayPort, NotifierPort

# zlecenie główne w tym stanie nie zostanie już wypełnione
DEAD_ORDER_STATUSES = {"canceled", "rejected", "expired", "suspended"}


class TradingAccountClient:
    """
    Klient konta handlowego dla strategii.

    Trzyma lokalny snapshot konta/pozycji/zleceń, zamienia intencje
    (kup z SL/TP, sprzedaj, zamknij) na zlecenia u brokera i klasyfikuje
    błędy, żeby do operatora trafiały tylko te, na które da się zareagować.

    Wszystkie operacje są async; SDK brokera jest synchroniczne, więc każde
    wywołanie bramki i notifiera idzie przez asyncio.to_thread. Klient nie ma
    wewnętrznych blokad: jedna pętla handlowa na konto.
    """

    def __init__(
        self,
        gateway: GatewayPort,
        notifier: NotifierPort,
        debug_log: DebugLogPort,
        bar_cache: Optional[TTLCache[List[Bar]]] = None,
        *,
        client_prefix: Optional[str] = None,
        fill_timeout: Optional[float] = None,
        fill_poll_interval: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.gateway = gateway
        self.notifier = notifier
        self.debug_log = debug_log
        self.reporter = FailureReporter(notifier, debug_log)
        self.snapshot = AccountSnapshot()
        if bar_cache is None:
            bar_cache = TTLCache(ttl_ms=settings.BARS_CACHE_TTL_MS, max_entries=settings.BARS_CACHE_MAX_ENTRIES)
        self.bar_cache: TTLCache[List[Bar]] = bar_cache
        self.client_prefix = client_prefix or settings.ORDER_CLIENT_PREFIX
        self.fill_timeout = settings.FILL_SETTLE_TIMEOUT_SEC if fill_timeout is None else fill_timeout
        self.fill_poll_interval = settings.FILL_POLL_INTERVAL_SEC if fill_poll_interval is None else fill_poll_interval
        self._sleep = sleep

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.to_thread(fn, *args)

    # ---------- stan konta ----------

    async def initialize(self) -> bool:
        try:
            account = await self._run(self.gateway.get_account)
            positions = await self._run(self.gateway.get_positions)
            orders = await self._run(self.gateway.get_orders, "open")
        except Exception as e:
            await self.reporter.report(e, Operation.MUTATION, "Client Initialization Failed")
            raise
        self.snapshot.replace_account(account)
        self.snapshot.replace_positions(positions)
        self.snapshot.replace_orders(orders)
        logger.info(
            f"Klient gotowy: equity={self.get_portfolio_value():.2f}, "
            f"pozycje={len(positions)}, otwarte zlecenia={len(orders)}"
        )
        return True

    async def refresh_account(self) -> Account:
        try:
            account = await self._run(self.gateway.get_account)
        except Exception as e:
            await self.reporter.report(e, Operation.MUTATION, "Failed to get account info")
            raise
        self.snapshot.replace_account(account)
        return account

    async def get_account(self) -> Account:
        return await self.refresh_account()

    async def refresh_positions(self) -> Dict[str, Position]:
        try:
            positions = await self._run(self.gateway.get_positions)
        except Exception as e:
            await self.reporter.report(e, Operation.MUTATION, "Failed to update positions")
            raise
        return self.snapshot.replace_positions(positions)

    async def refresh_orders(self) -> Dict[str, Order]:
        try:
            orders = await self._run(self.gateway.get_orders, "open")
        except Exception as e:
            await self.reporter.report(e, Operation.MUTATION, "Failed to update orders")
            raise
        return self.snapshot.replace_orders(orders)

    async def get_position(self, symbol: str) -> Optional[Position]:
        # zawsze świeże dane: poprawność ważniejsza niż liczba wywołań
        await self.refresh_positions()
        return self.snapshot.position(symbol)

    @property
    def account(self) -> Optional[Account]:
        return self.snapshot.account

    @property
    def positions(self) -> Dict[str, Position]:
        return self.snapshot.positions

    @property
    def orders(self) -> Dict[str, Order]:
        return self.snapshot.orders

    def get_portfolio_value(self) -> float:
        return self.snapshot.portfolio_value()

    def get_buying_power(self) -> float:
        return self.snapshot.buying_power()

    def get_day_pl(self) -> float:
        return self.snapshot.day_pl()

    def get_day_pl_percent(self) -> float:
        return self.snapshot.day_pl_percent()

    # ---------- dane rynkowe ----------

    async def get_bars(self, symbol: str, timeframe: str, limit: int = 100) -> List[Bar]:
        """
        Ostatnie bary z krótkim cache (TTL 60 s) per (symbol, timeframe, limit),
        żeby jeden cykl skanowania nie pytał API kilka razy o to samo.
        Błąd i brak danych wyglądają dla wołającego tak samo: pusta lista.
        """
        key = (symbol, timeframe, limit)
        cached = self.bar_cache.get(key)
        if cached is not None:
            return list(cached)

        query = recent_bars_query(symbol, timeframe, limit)
        try:
            bars = list(await self._run(self.gateway.get_bars, query))
        except Exception as e:
            await self.reporter.report(e, Operation.READ, f"Failed to get bars for {symbol}", symbol=symbol)
            return []

        if not bars:
            # pustych wyników nie cache'ujemy: następne wywołanie spróbuje ponownie
            self.debug_log.write(f"⚠️  NO BARS returned for {symbol} {timeframe} (limit={limit})")
            return []
        self.bar_cache.put(key, bars)
        return list(bars)

    async def get_historical_bars(
        self,
        symbol: str,
        timeframe: str,
        start: Union[str, datetime],
        end: Union[str, datetime],
        limit: int = 1000,
    ) -> List[Bar]:
        query = range_bars_query(symbol, timeframe, start, end, limit)
        try:
            return list(await self._run(self.gateway.get_historical_bars, query))
        except Exception as e:
            self.debug_log.write(f"Failed to get historical bars for {symbol}: {e}")
            return []

    async def get_latest_trade(self, symbol: str) -> Optional[LatestTrade]:
        try:
            return await self._run(self.gateway.get_latest_trade, symbol)
        except Exception as e:
            self.debug_log.write(f"Failed to get latest trade for {symbol}: {e}")
            return None

    # ---------- zlecenia ----------

    async def place_order(self, request: OrderRequest) -> Order:
        if not request.client_id:
            request.client_id = make_client_id(self.client_prefix, request.symbol, request.side)
        try:
            order = await self._run(self.gateway.create_order, request)
        except Exception as e:
            await self.reporter.report(
                e, Operation.MUTATION, f"Failed to place order for {request.symbol}", symbol=request.symbol
            )
            raise
        logger.info(
            f"{request.side.upper()} {request.symbol} x{request.qty} ({request.type}, "
            f"class={request.order_class or 'simple'}, id={order.id})"
        )
        await self.refresh_orders()
        await self._run(self.notifier.send_trade_notification, trade_notice(request))
        return order

    async def buy_market(self, symbol: str, qty: float, stop_loss: float, take_profit: float) -> Order:
        """
        Kupno z ochroną SL/TP.

        qty >= 1: jedno zlecenie bracket na całe akcje (floor(qty)).
        qty < 1: zwykły market na ułamek, potem osobne zlecenia stop i limit (GTC),
        bo broker nie obsługuje bracketów na ułamkach. Błąd zleceń wyjścia nie
        psuje zakupu: zlecenie główne już poszło.
        """
        primary, exits = buy_plan(symbol, qty, stop_loss, take_profit)
        if exits:
            self.debug_log.write(f"Using fractional order for {symbol}: {primary.qty:.4f} shares")

        main = await self.place_order(primary)
        if exits:
            await self._submit_exits(main, exits)
        return main

    async def _await_fill(self, order_id: str) -> Optional[str]:
        """
        Czeka aż zlecenie główne będzie 'filled' (polling get_order), najwyżej
        fill_timeout sekund. Zwraca ostatni znany status (None gdy nieznany).
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.fill_timeout
        status: Optional[str] = None
        while True:
            try:
                status = (await self._run(self.gateway.get_order, order_id)).status
            except Exception as e:
                self.debug_log.write(f"Fill check failed for order {order_id}: {e}")
            if status == "filled" or status in DEAD_ORDER_STATUSES:
                return status
            if loop.time() >= deadline:
                return status
            await self._sleep(self.fill_poll_interval)

    async def _submit_exits(self, main: Order, exits: List[OrderRequest]) -> None:
        symbol = main.symbol
        status = await self._await_fill(main.id)
        if status in DEAD_ORDER_STATUSES:
            self.debug_log.write(f"Primary order {main.id} for {symbol} is {status}; skipping SL/TP orders")
            return
        if status != "filled":
            self.debug_log.write(
                f"Fill not confirmed for {symbol} after {self.fill_timeout:.1f}s (status={status}); submitting SL/TP anyway"
            )

        for req in exits:
            req.client_id = make_client_id(self.client_prefix, req.symbol, req.side)
            price = req.stop_price if req.type == "stop" else req.limit_price
            try:
                await self._run(self.gateway.create_order, req)
            except Exception as e:
                # zakup już się udał; wyjście tylko logujemy
                self.debug_log.write(f"Failed to create {req.type} exit order for {symbol} @ ${price}: {e}")
                continue
            self.debug_log.write(f"Created {req.type} exit order for {symbol} @ ${price:.2f} x{req.qty}")

    async def sell_market(self, symbol: str, qty: Optional[float] = None) -> Order:
        position = await self.get_position(symbol)
        if position is None:
            err = PositionNotFoundError(f"No position found for {symbol}")
            await self.reporter.report(err, Operation.MUTATION, f"Failed to sell {symbol}")
            raise err
        return await self.place_order(market_sell(symbol, position, qty))

    async def close_position(self, symbol: str) -> bool:
        """Zamyka całą pozycję operacją brokera (sam liczy ilość i anuluje zlecenia)."""
        try:
            await self._run(self.gateway.close_position, symbol)
        except Exception as e:
            self._log_close_failure(symbol, e)
            await self.reporter.report(
                e, Operation.MUTATION, f"Failed to close position for {symbol}", symbol=symbol
            )
            raise
        await self.refresh_positions()
        await self._run(self.notifier.send_trade_notification, close_notice(symbol))
        return True

    def _log_close_failure(self, symbol: str, error: Exception) -> None:
        d = error.details() if isinstance(error, GatewayError) else {}
        self.debug_log.write(f"❌ CLOSE POSITION ERROR for {symbol}:")
        self.debug_log.write(f"   Kind: {d.get('kind', 'other')}")
        self.debug_log.write(f"   Status: {d.get('status_code')} {d.get('status_text')}")
        self.debug_log.write(f"   Message: {error}")
        self.debug_log.write(f"   Response: {d.get('body')}")

    async def cancel_order(self, order_id: str) -> bool:
        try:
            await self._run(self.gateway.cancel_order, order_id)
        except Exception as e:
            await self.reporter.report(e, Operation.MUTATION, f"Failed to cancel order {order_id}")
            raise
        await self.refresh_orders()
        return True

    async def cancel_all_orders(self) -> bool:
        try:
            n = await self._run(self.gateway.cancel_all_orders)
        except Exception as e:
            await self.reporter.report(e, Operation.MUTATION, "Failed to cancel all orders")
            raise
        # broker anuluje wszystkie otwarte zlecenia, więc nie ma czego odświeżać
        self.snapshot.clear_orders()
        logger.info(f"Anulowano zlecenia: {n}")
        return True


def build_client() -> TradingAccountClient:
    """Składa klienta z domyślnych adapterów na bazie settings (.env)."""
    from tradeclient.backend.broker.alpaca_gateway import AlpacaGateway, GatewayConfig
    from tradeclient.infra.logging import DebugLog
    from tradeclient.infra.notifier import build_notifier

    return TradingAccountClient(
        gateway=AlpacaGateway(GatewayConfig.from_settings()),
        notifier=build_notifier(),
        debug_log=DebugLog(),
    )
