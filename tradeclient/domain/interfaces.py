from abc import ABC, abstractmethod
from typing import List, Optional
from .dto import Account, Bar, BarQuery, LatestTrade, Order, OrderRequest, Position, TradeNotice


class GatewayPort(ABC):
    """Jedyny punkt styku ze zdalnym API brokera. Błędy zgłasza jako GatewayError."""

    @abstractmethod
    def get_account(self) -> Account: ...

    @abstractmethod
    def get_positions(self) -> List[Position]: ...

    @abstractmethod
    def get_orders(self, status: str = "open") -> List[Order]: ...

    @abstractmethod
    def get_order(self, order_id: str) -> Order: ...

    @abstractmethod
    def get_bars(self, query: BarQuery) -> List[Bar]: ...

    @abstractmethod
    def get_historical_bars(self, query: BarQuery) -> List[Bar]: ...

    @abstractmethod
    def get_latest_trade(self, symbol: str) -> LatestTrade: ...

    @abstractmethod
    def create_order(self, order: OrderRequest) -> Order: ...

    @abstractmethod
    def close_position(self, symbol: str) -> Order: ...

    @abstractmethod
    def cancel_order(self, order_id: str) -> None: ...

    @abstractmethod
    def cancel_all_orders(self) -> int: ...  # returns number of cancelled orders


class NotifierPort(ABC):
    @abstractmethod
    def send_error(self, context: str, error: BaseException) -> None: ...

    @abstractmethod
    def send_trade_notification(self, notice: TradeNotice) -> None: ...


class DebugLogPort(ABC):
    @abstractmethod
    def write(self, message: str) -> None: ...
