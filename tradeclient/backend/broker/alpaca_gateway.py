# tradeclient/backend/broker/alpaca_gateway.py
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TypeVar

import requests

# alpaca-py (TRADING)
from alpaca.trading.client import TradingClient
from alpaca.trading.enums import OrderClass, OrderSide, QueryOrderStatus, TimeInForce
from alpaca.trading.requests import (
    GetOrdersRequest,
    LimitOrderRequest,
    MarketOrderRequest,
    StopLossRequest,
    StopOrderRequest,
    TakeProfitRequest,
)

# alpaca-py (MARKET DATA)
from alpaca.data.enums import Adjustment, CryptoFeed, DataFeed
from alpaca.data.historical import CryptoHistoricalDataClient, StockHistoricalDataClient
from alpaca.data.requests import (
    CryptoBarsRequest,
    CryptoLatestTradeRequest,
    StockBarsRequest,
    StockLatestTradeRequest,
)
from alpaca.common.exceptions import APIError

from tradeclient.backend.data.market_data import CRYPTO_SEPARATOR, ensure_utc, is_crypto, parse_timeframe
from tradeclient.config import Settings, settings as default_settings
from tradeclient.domain.dto import Account, Bar, BarQuery, LatestTrade, Order, OrderRequest, Position
from tradeclient.domain.errors import BrokerConfigError, ErrorKind, GatewayError
from tradeclient.domain.interfaces import GatewayPort

T = TypeVar("T")

SIM_PREFIX = "SIM-"


@dataclass
class GatewayConfig:
    api_key_id: str
    api_secret_key: str
    paper: bool = True
    dry_run: bool = False
    stock_feed: str = "iex"
    crypto_feed: str = "us"

    @staticmethod
    def from_settings(s: Optional[Settings] = None) -> "GatewayConfig":
        """
        Buduje konfigurację z Settings (.env). Klucze są wymagane także w DRY_RUN:
        symulowane są tylko zlecenia, konto i pozycje czytamy z API (paper).
        """
        s = s or default_settings
        key = s.APCA_API_KEY_ID or ""
        secret = s.APCA_API_SECRET_KEY or ""
        if not key or not secret:
            raise BrokerConfigError("Brakuje APCA_API_KEY_ID / APCA_API_SECRET_KEY w .env.")
        return GatewayConfig(
            api_key_id=key,
            api_secret_key=secret,
            paper=s.APCA_PAPER,
            dry_run=s.DRY_RUN,
            stock_feed=s.APCA_DATA_FEED,
            crypto_feed=s.CRYPTO_FEED,
        )


def _enum_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    return str(getattr(v, "value", v))


def _opt_float(v: Any) -> Optional[float]:
    return float(v) if v is not None else None


def _opt_str(v: Any) -> Optional[str]:
    return str(v) if v is not None else None


def classify_api_error(e: APIError) -> GatewayError:
    """Mapuje APIError z alpaca-py na ustrukturyzowany GatewayError."""
    msg = str(e)
    low = msg.lower()
    status = getattr(e, "status_code", None)
    resp = getattr(e, "response", None)
    status_text = getattr(resp, "reason", None) if resp is not None else None
    body = getattr(resp, "text", None) if resp is not None else None

    if status == 429 or "429" in low or "rate limit" in low or "too many requests" in low:
        kind = ErrorKind.RATE_LIMIT
    elif status == 404 or "404" in low or "not found" in low:
        kind = ErrorKind.NOT_FOUND
    elif status == 422 or "insufficient" in low or "rejected" in low:
        kind = ErrorKind.REJECTED
    elif status in (401, 403) or "401" in low or "403" in low or "forbidden" in low:
        kind = ErrorKind.AUTH
    else:
        kind = ErrorKind.OTHER
    return GatewayError(msg, kind=kind, status_code=status, status_text=status_text, body=body)


class AlpacaGateway(GatewayPort):
    """
    Hermetyzacja komunikacji z brokerem (Alpaca) na bazie alpaca-py.

    Publiczne metody zwracają nasze DTO zamiast obiektów SDK, a każdy błąd
    zdalny zamieniają na GatewayError (kind + status HTTP), żeby warstwa
    aplikacji nie musiała parsować komunikatów.
    """

    def __init__(
        self,
        cfg: Optional[GatewayConfig] = None,
        logger: Optional[logging.Logger] = None,
        trading: Optional[TradingClient] = None,
        stock_data: Optional[StockHistoricalDataClient] = None,
        crypto_data: Optional[CryptoHistoricalDataClient] = None,
    ) -> None:
        self.cfg = cfg or GatewayConfig.from_settings()
        self.log = logger or logging.getLogger(self.__class__.__name__)
        self._setup_logger()

        has_keys = bool(self.cfg.api_key_id and self.cfg.api_secret_key)
        self._trading = trading
        self._stock = stock_data
        self._crypto = crypto_data
        if has_keys:
            self._trading = self._trading or TradingClient(
                self.cfg.api_key_id, self.cfg.api_secret_key, paper=self.cfg.paper
            )
            self._stock = self._stock or StockHistoricalDataClient(self.cfg.api_key_id, self.cfg.api_secret_key)
        # dane krypto nie wymagają kluczy
        self._crypto = self._crypto or CryptoHistoricalDataClient(
            self.cfg.api_key_id or None, self.cfg.api_secret_key or None
        )

        self._simulated: Dict[str, Order] = {}
        self.log.info("AlpacaGateway zainicjalizowany (paper=%s, dry_run=%s)", self.cfg.paper, self.cfg.dry_run)

    # ---------- READ: konto / pozycje / zlecenia ----------

    def get_account(self) -> Account:
        client = self._ensure_trading()
        acc = self._call(lambda: client.get_account(), "get_account")
        return Account(
            equity=_opt_str(acc.equity),
            last_equity=_opt_str(acc.last_equity),
            buying_power=_opt_str(acc.buying_power),
            cash=_opt_str(acc.cash),
            status=_enum_str(getattr(acc, "status", None)),
        )

    def get_positions(self) -> List[Position]:
        client = self._ensure_trading()
        raw = self._call(lambda: client.get_all_positions(), "get_positions")
        return [self._to_position(p) for p in raw]

    def get_orders(self, status: str = "open") -> List[Order]:
        client = self._ensure_trading()
        req = GetOrdersRequest(status=QueryOrderStatus(status))
        raw = self._call(lambda: client.get_orders(filter=req), "get_orders")
        orders = [self._to_order(o) for o in raw]
        if self.cfg.dry_run and status == "open":
            orders.extend(self._simulated.values())
        return orders

    def get_order(self, order_id: str) -> Order:
        if order_id in self._simulated:
            return self._simulated[order_id]
        if order_id.startswith(SIM_PREFIX):
            # symulowany market jest wypełniany od razu i nie jest przechowywany
            return Order(id=order_id, symbol="", side="", qty=None, type="market", time_in_force="day", status="filled")
        client = self._ensure_trading()
        raw = self._call(lambda: client.get_order_by_id(order_id), "get_order")
        return self._to_order(raw)

    # ---------- READ: dane rynkowe ----------

    def get_bars(self, query: BarQuery) -> List[Bar]:
        return self._fetch_bars(query, "get_bars")

    def get_historical_bars(self, query: BarQuery) -> List[Bar]:
        return self._fetch_bars(query, "get_historical_bars")

    def get_latest_trade(self, symbol: str) -> LatestTrade:
        if is_crypto(symbol):
            client = self._crypto
            req = CryptoLatestTradeRequest(symbol_or_symbols=symbol)
            res = self._call(
                lambda: client.get_crypto_latest_trade(req, feed=CryptoFeed(self.cfg.crypto_feed)),
                "get_latest_trade",
            )
        else:
            client = self._ensure_stock()
            req = StockLatestTradeRequest(symbol_or_symbols=symbol, feed=DataFeed(self.cfg.stock_feed))
            res = self._call(lambda: client.get_stock_latest_trade(req), "get_latest_trade")
        trade = res.get(symbol) if isinstance(res, dict) else None
        if trade is None:
            raise GatewayError(f"No latest trade for {symbol}", kind=ErrorKind.NOT_FOUND, status_code=404)
        return LatestTrade(
            symbol=symbol,
            price=float(trade.price),
            size=float(trade.size),
            timestamp=getattr(trade, "timestamp", None),
        )

    # ---------- WRITE ----------

    def create_order(self, order: OrderRequest) -> Order:
        if self.cfg.dry_run:
            return self._simulate(order)
        client = self._ensure_trading()
        req = self._to_sdk_order(order)
        placed = self._call(lambda: client.submit_order(order_data=req), "create_order")
        return self._to_order(placed)

    def close_position(self, symbol: str) -> Order:
        if self.cfg.dry_run:
            self.log.info("[DRY_RUN] close_position(%s) — symulacja, nic nie wysyłam.", symbol)
            return self._simulate(OrderRequest(symbol=symbol, side="sell", qty=0.0))
        client = self._ensure_trading()
        # ścieżka /positions/{symbol} nie przyjmuje separatora krypto
        key = symbol.replace(CRYPTO_SEPARATOR, "")
        placed = self._call(lambda: client.close_position(key), "close_position")
        return self._to_order(placed)

    def cancel_order(self, order_id: str) -> None:
        if self.cfg.dry_run:
            self.log.info("[DRY_RUN] cancel_order(%s) — symulacja.", order_id)
            self._simulated.pop(order_id, None)
            return
        client = self._ensure_trading()
        self._call(lambda: client.cancel_order_by_id(order_id), "cancel_order")

    def cancel_all_orders(self) -> int:
        if self.cfg.dry_run:
            n = len(self._simulated)
            self.log.info("[DRY_RUN] cancel_all_orders() — symulacja (%d).", n)
            self._simulated.clear()
            return n
        client = self._ensure_trading()
        res = self._call(lambda: client.cancel_orders(), "cancel_all_orders")
        return len(res) if hasattr(res, "__len__") else 0

    # ---------- HELPERS ----------

    def _setup_logger(self) -> None:
        if not self.log.handlers:
            handler = logging.StreamHandler()
            fmt = logging.Formatter("%(asctime)s | %(name)s | %(levelname)s | %(message)s")
            handler.setFormatter(fmt)
            self.log.addHandler(handler)
        self.log.setLevel(logging.INFO)

    def _ensure_trading(self) -> TradingClient:
        if not self._trading:
            raise BrokerConfigError("Brak klienta TradingClient: uzupełnij APCA_API_* w .env.")
        return self._trading

    def _ensure_stock(self) -> StockHistoricalDataClient:
        if not self._stock:
            raise BrokerConfigError("Brak klienta StockHistoricalDataClient: uzupełnij APCA_API_* w .env.")
        return self._stock

    def _call(self, fn: Callable[[], T], op: str, *, tries: int = 3, base_delay: float = 0.5) -> T:
        """
        Wywołanie SDK z mapowaniem błędów.
        - APIError: bez ponowień, od razu GatewayError (klasyfikacja wyżej decyduje co dalej)
        - requests.ConnectionError/Timeout: exponential backoff, po wyczerpaniu prób -> kind=NETWORK
        """
        attempt = 0
        while True:
            try:
                return fn()
            except APIError as e:
                err = classify_api_error(e)
                self.log.warning("%s: APIError (%s, status=%s): %s", op, err.kind.value, err.status_code, err.message)
                raise err from e
            except (requests.ConnectionError, requests.Timeout) as e:
                if attempt < tries - 1:
                    delay = base_delay * (2 ** attempt)
                    self.log.warning("%s: network error %s — retry za %.1fs (attempt %d/%d)...",
                                     op, e.__class__.__name__, delay, attempt + 1, tries)
                    time.sleep(delay)
                    attempt += 1
                    continue
                raise GatewayError(f"Network error: {e}", kind=ErrorKind.NETWORK) from e

    def _fetch_bars(self, query: BarQuery, op: str) -> List[Bar]:
        tf = parse_timeframe(query.timeframe)
        start = ensure_utc(query.start)
        end = ensure_utc(query.end)
        if is_crypto(query.symbol):
            client = self._crypto
            req = CryptoBarsRequest(
                symbol_or_symbols=query.symbol, timeframe=tf, limit=query.limit, start=start, end=end
            )
            feed = CryptoFeed(query.feed or self.cfg.crypto_feed)
            res = self._call(lambda: client.get_crypto_bars(req, feed=feed), op)
        else:
            client = self._ensure_stock()
            req = StockBarsRequest(
                symbol_or_symbols=query.symbol,
                timeframe=tf,
                limit=query.limit,
                start=start,
                end=end,
                adjustment=Adjustment(query.adjustment),
                feed=DataFeed(self.cfg.stock_feed),
            )
            res = self._call(lambda: client.get_stock_bars(req), op)
        # wynik może być „multi symbol”, my pytamy o 1
        data = getattr(res, "data", {}) or {}
        got = data.get(query.symbol, [])
        return [
            Bar(
                symbol=query.symbol,
                timestamp=b.timestamp,
                open=float(b.open),
                high=float(b.high),
                low=float(b.low),
                close=float(b.close),
                volume=float(b.volume),
                vwap=_opt_float(getattr(b, "vwap", None)),
                trade_count=_opt_float(getattr(b, "trade_count", None)),
            )
            for b in got
        ]

    def _to_sdk_order(self, order: OrderRequest):
        side = OrderSide.BUY if order.side == "buy" else OrderSide.SELL
        tif = TimeInForce(order.time_in_force)
        common: Dict[str, Any] = dict(
            symbol=order.symbol,
            qty=order.qty,
            side=side,
            time_in_force=tif,
            client_order_id=order.client_id,
        )
        if order.order_class:
            common["order_class"] = OrderClass(order.order_class)
        if order.stop_loss is not None:
            common["stop_loss"] = StopLossRequest(stop_price=order.stop_loss.stop_price)
        if order.take_profit is not None:
            common["take_profit"] = TakeProfitRequest(limit_price=order.take_profit.limit_price)

        if order.type == "market":
            return MarketOrderRequest(**common)
        if order.type == "limit":
            return LimitOrderRequest(limit_price=order.limit_price, **common)
        if order.type == "stop":
            return StopOrderRequest(stop_price=order.stop_price, **common)
        raise GatewayError(f"Unsupported order type: {order.type}", kind=ErrorKind.REJECTED)

    def _simulate(self, order: OrderRequest) -> Order:
        fake_id = f"{SIM_PREFIX}{uuid.uuid4().hex[:12]}"
        self.log.info(
            "[DRY_RUN] %s %s %s x%s (tif=%s, class=%s) — symuluję wysłanie.",
            order.type.upper(), order.side.upper(), order.symbol, order.qty,
            order.time_in_force, order.order_class,
        )
        sim = Order(
            id=fake_id,
            symbol=order.symbol,
            side=order.side,
            qty=order.qty,
            type=order.type,
            time_in_force=order.time_in_force,
            order_class=order.order_class,
            status="filled" if order.type == "market" else "accepted",
            stop_price=order.stop_price,
            limit_price=order.limit_price,
            client_order_id=order.client_id,
        )
        if sim.status != "filled":
            self._simulated[fake_id] = sim
        return sim

    @staticmethod
    def _to_position(p: Any) -> Position:
        return Position(
            symbol=p.symbol,
            qty=float(p.qty),
            side=_enum_str(getattr(p, "side", None)),
            avg_entry_price=_opt_str(getattr(p, "avg_entry_price", None)),
            market_value=_opt_str(getattr(p, "market_value", None)),
            unrealized_pl=_opt_str(getattr(p, "unrealized_pl", None)),
            cost_basis=_opt_str(getattr(p, "cost_basis", None)),
        )

    @staticmethod
    def _to_order(o: Any) -> Order:
        otype = getattr(o, "order_type", None) or getattr(o, "type", None)
        return Order(
            id=str(o.id),
            symbol=o.symbol,
            side=_enum_str(o.side) or "",
            qty=_opt_float(getattr(o, "qty", None)),
            type=_enum_str(otype) or "",
            time_in_force=_enum_str(getattr(o, "time_in_force", None)) or "",
            order_class=_enum_str(getattr(o, "order_class", None)),
            status=_enum_str(getattr(o, "status", None)),
            stop_price=_opt_float(getattr(o, "stop_price", None)),
            limit_price=_opt_float(getattr(o, "limit_price", None)),
            client_order_id=getattr(o, "client_order_id", None),
        )
