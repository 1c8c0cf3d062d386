from typing import Any, Optional

from tradeclient.domain.dto import Account


def _num(v: Any) -> float:
    # API zwraca kwoty jako stringi
    if v is None or v == "":
        return 0.0
    return float(v)


def portfolio_value(account: Optional[Account]) -> float:
    return _num(account.equity) if account else 0.0


def buying_power(account: Optional[Account]) -> float:
    return _num(account.buying_power) if account else 0.0


def day_pl(account: Optional[Account]) -> float:
    if not account:
        return 0.0
    return _num(account.equity) - _num(account.last_equity)


def day_pl_percent(account: Optional[Account]) -> float:
    if not account:
        return 0.0
    last = _num(account.last_equity)
    if last == 0:
        return 0.0
    return (_num(account.equity) - last) / last * 100
