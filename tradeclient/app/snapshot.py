from __future__ import annotations

from typing import Dict, Iterable, Optional

from tradeclient.app import portfolio_service
from tradeclient.backend.data.market_data import CRYPTO_SEPARATOR
from tradeclient.domain.dto import Account, Order, Position


class AccountSnapshot:
    """
    Lokalna kopia stanu konta: ostatnie konto, pozycje (symbol -> Position)
    i otwarte zlecenia (id -> Order).

    Nie jest źródłem prawdy. Mapy zawsze podmieniamy w całości
    (clear + repopulate), nigdy nie łatamy przyrostowo.
    """

    def __init__(self) -> None:
        self._account: Optional[Account] = None
        self._positions: Dict[str, Position] = {}
        self._orders: Dict[str, Order] = {}

    # ---------- zapis (tylko przez odświeżenie) ----------

    def replace_account(self, account: Account) -> None:
        self._account = account

    def replace_positions(self, positions: Iterable[Position]) -> Dict[str, Position]:
        self._positions.clear()
        for p in positions:
            self._positions[p.symbol] = p
        return dict(self._positions)

    def replace_orders(self, orders: Iterable[Order]) -> Dict[str, Order]:
        self._orders.clear()
        for o in orders:
            self._orders[o.id] = o
        return dict(self._orders)

    def clear_orders(self) -> None:
        self._orders.clear()

    # ---------- odczyt ----------

    @property
    def account(self) -> Optional[Account]:
        return self._account

    @property
    def positions(self) -> Dict[str, Position]:
        return dict(self._positions)

    @property
    def orders(self) -> Dict[str, Order]:
        return dict(self._orders)

    def position(self, symbol: str) -> Optional[Position]:
        p = self._positions.get(symbol)
        if p is None and CRYPTO_SEPARATOR in symbol:
            # broker zwraca pozycje krypto bez separatora (BTCUSD)
            p = self._positions.get(symbol.replace(CRYPTO_SEPARATOR, ""))
        return p

    def portfolio_value(self) -> float:
        return portfolio_service.portfolio_value(self._account)

    def buying_power(self) -> float:
        return portfolio_service.buying_power(self._account)

    def day_pl(self) -> float:
        return portfolio_service.day_pl(self._account)

    def day_pl_percent(self) -> float:
        return portfolio_service.day_pl_percent(self._account)
