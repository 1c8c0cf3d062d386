import math
import uuid
from typing import List, Optional, Tuple

from tradeclient.domain.dto import OrderRequest, Position, StopLossLeg, TakeProfitLeg, TradeNotice

PRICE_DECIMALS = 2
FRACTION_DECIMALS = 4


def make_client_id(client_prefix: str, symbol: str, side: str) -> str:
    # Format: <prefix>-<symbol>-<side>-<losowy>; '/' z par krypto wycinamy
    return f"{client_prefix}-{symbol.replace('/', '')}-{side}-{uuid.uuid4().hex[:8]}"


def is_fractional(qty: float) -> bool:
    return math.floor(qty) < 1


def bracket_buy(symbol: str, qty: float, stop_loss: float, take_profit: float) -> OrderRequest:
    """Całe akcje: jedno zlecenie bracket (market, day) z nogami SL/TP."""
    return OrderRequest(
        symbol=symbol,
        side="buy",
        qty=math.floor(qty),
        type="market",
        time_in_force="day",
        order_class="bracket",
        stop_loss=StopLossLeg(stop_price=round(stop_loss, PRICE_DECIMALS)),
        take_profit=TakeProfitLeg(limit_price=round(take_profit, PRICE_DECIMALS)),
    )


def fractional_buy(symbol: str, qty: float) -> OrderRequest:
    # bracket nie działa na ułamkach, więc zwykły market
    return OrderRequest(
        symbol=symbol,
        side="buy",
        qty=round(qty, FRACTION_DECIMALS),
        type="market",
        time_in_force="day",
    )


def exit_orders(symbol: str, qty: float, stop_loss: float, take_profit: float) -> Tuple[OrderRequest, OrderRequest]:
    """Osobne wyjścia GTC dla pozycji ułamkowej: (stop, limit)."""
    q = round(qty, FRACTION_DECIMALS)
    stop = OrderRequest(
        symbol=symbol,
        side="sell",
        qty=q,
        type="stop",
        time_in_force="gtc",
        stop_price=round(stop_loss, PRICE_DECIMALS),
    )
    take = OrderRequest(
        symbol=symbol,
        side="sell",
        qty=q,
        type="limit",
        time_in_force="gtc",
        limit_price=round(take_profit, PRICE_DECIMALS),
    )
    return stop, take


def buy_plan(symbol: str, qty: float, stop_loss: float, take_profit: float) -> Tuple[OrderRequest, List[OrderRequest]]:
    """
    Zwraca (zlecenie główne, zlecenia zależne).
    qty >= 1 -> bracket na floor(qty), bez zależnych;
    qty < 1  -> market na ułamek + stop i limit po wypełnieniu.
    """
    if not is_fractional(qty):
        return bracket_buy(symbol, qty, stop_loss, take_profit), []
    return fractional_buy(symbol, qty), list(exit_orders(symbol, qty, stop_loss, take_profit))


def market_sell(symbol: str, position: Position, qty: Optional[float] = None) -> OrderRequest:
    return OrderRequest(
        symbol=symbol,
        side="sell",
        qty=qty if qty else abs(position.qty),
        type="market",
        time_in_force="gtc",
    )


def trade_notice(order: OrderRequest) -> TradeNotice:
    return TradeNotice(
        action=order.side.upper(),
        symbol=order.symbol,
        qty=order.qty,
        type=order.type,
        order_class=order.order_class,
        stop_loss=order.stop_loss.stop_price if order.stop_loss else None,
        take_profit=order.take_profit.limit_price if order.take_profit else None,
    )


def close_notice(symbol: str) -> TradeNotice:
    return TradeNotice(action="CLOSE", symbol=symbol, qty="ALL", type="market")
