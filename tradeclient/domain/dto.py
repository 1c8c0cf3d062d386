from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union


@dataclass(frozen=True)
class Bar:
    symbol: str
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float
    vwap: Optional[float] = None
    trade_count: Optional[float] = None


@dataclass
class Account:
    # Kwoty zostawiamy jako stringi z API; parsujemy dopiero w portfolio_service.
    equity: Optional[str]
    last_equity: Optional[str]
    buying_power: Optional[str]
    cash: Optional[str] = None
    status: Optional[str] = None


@dataclass
class Position:
    symbol: str
    qty: float  # ze znakiem, może być ułamkowa
    side: Optional[str] = None
    avg_entry_price: Optional[str] = None
    market_value: Optional[str] = None
    unrealized_pl: Optional[str] = None
    cost_basis: Optional[str] = None


@dataclass
class Order:
    id: str
    symbol: str
    side: str  # 'buy' | 'sell'
    qty: Optional[float]
    type: str  # 'market' | 'limit' | 'stop' | ...
    time_in_force: str
    order_class: Optional[str] = None
    status: Optional[str] = None
    stop_price: Optional[float] = None
    limit_price: Optional[float] = None
    client_order_id: Optional[str] = None


@dataclass(frozen=True)
class StopLossLeg:
    stop_price: float


@dataclass(frozen=True)
class TakeProfitLeg:
    limit_price: float


@dataclass
class OrderRequest:
    symbol: str
    side: str  # 'buy' | 'sell'
    qty: float
    type: str = "market"
    time_in_force: str = "day"
    order_class: Optional[str] = None  # 'simple' | 'bracket'
    stop_price: Optional[float] = None
    limit_price: Optional[float] = None
    stop_loss: Optional[StopLossLeg] = None
    take_profit: Optional[TakeProfitLeg] = None
    client_id: Optional[str] = None


@dataclass
class BarQuery:
    symbol: str
    timeframe: str
    limit: int
    adjustment: str = "raw"
    feed: Optional[str] = None
    start: Optional[Union[str, datetime]] = None
    end: Optional[Union[str, datetime]] = None


@dataclass
class LatestTrade:
    symbol: str
    price: float
    size: float
    timestamp: Optional[datetime] = None


@dataclass
class TradeNotice:
    action: str  # 'BUY' | 'SELL' | 'CLOSE'
    symbol: str
    qty: Union[float, str]  # 'ALL' przy zamknięciu pozycji
    type: str
    order_class: Optional[str] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
