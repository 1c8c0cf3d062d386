from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from loguru import logger

from tradeclient.backend.data.market_data import is_crypto
from tradeclient.domain.errors import ErrorKind, GatewayError
from tradeclient.domain.interfaces import DebugLogPort, NotifierPort


class Operation(str, Enum):
    MUTATION = "mutation"  # refresh, place, cancel, close: błąd wraca do wywołującego
    READ = "read"          # bary: błąd daje pusty wynik


class Action(str, Enum):
    LOG = "log"
    ESCALATE = "escalate"


@dataclass(frozen=True)
class Verdict:
    action: Action
    title: Optional[str] = None

    @property
    def escalate(self) -> bool:
        return self.action is Action.ESCALATE


def error_kind(error: BaseException) -> ErrorKind:
    if isinstance(error, GatewayError):
        return error.kind
    return ErrorKind.OTHER


def classify(error: BaseException, operation: Operation, symbol: Optional[str] = None, context: str = "") -> Verdict:
    """
    Decyduje co zrobić z nieudanym wywołaniem zdalnym.

    - rate limit: zawsze eskalacja ("Rate Limit Hit"),
    - 404 dla pary krypto: eskalacja ("Symbol Not Found", zwykle wyłączony handel krypto),
    - 404 dla akcji przy odczycie: tylko log (brak danych poza sesją to normalny stan),
    - reszta: eskalacja przy mutacjach, tylko log przy odczytach.
    """
    kind = error_kind(error)
    if kind is ErrorKind.RATE_LIMIT:
        return Verdict(Action.ESCALATE, "Rate Limit Hit")
    if kind is ErrorKind.NOT_FOUND:
        if symbol is not None and is_crypto(symbol):
            return Verdict(Action.ESCALATE, f"Symbol Not Found: {symbol}")
        if operation is Operation.READ:
            return Verdict(Action.LOG)
    if operation is Operation.MUTATION:
        return Verdict(Action.ESCALATE, context or "Broker operation failed")
    return Verdict(Action.LOG)


class FailureReporter:
    """Loguje błąd, a przy werdykcie ESCALATE wysyła go przez notifier."""

    def __init__(self, notifier: NotifierPort, debug_log: DebugLogPort) -> None:
        self.notifier = notifier
        self.debug_log = debug_log

    async def report(
        self,
        error: BaseException,
        operation: Operation,
        context: str,
        symbol: Optional[str] = None,
    ) -> Verdict:
        verdict = classify(error, operation, symbol=symbol, context=context)
        self.debug_log.write(f"❌ {context}: {error}")
        logger.warning(f"{context}: {error!r} -> {verdict.action.value}")
        if verdict.escalate:
            if error_kind(error) is ErrorKind.RATE_LIMIT:
                self.debug_log.write("🚨 RATE LIMIT HIT! Alpaca is blocking API requests.")
            await asyncio.to_thread(self.notifier.send_error, verdict.title, error)
        return verdict
