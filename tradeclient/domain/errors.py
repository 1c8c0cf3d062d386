from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    RATE_LIMIT = "rate_limit"
    NOT_FOUND = "not_found"
    AUTH = "auth"
    REJECTED = "rejected"
    NETWORK = "network"
    OTHER = "other"


class BrokerError(Exception):
    """Ogólny błąd warstwy brokera."""


class BrokerConfigError(BrokerError):
    """Brak kluczy API lub niepoprawna konfiguracja klienta."""


class PositionNotFoundError(BrokerError):
    """Brak otwartej pozycji dla symbolu (np. przy sprzedaży)."""


class GatewayError(BrokerError):
    """
    Ustrukturyzowany błąd zdalnego API.

    Klasyfikacja (rate limit / not found / ...) opiera się na `kind` i `status_code`,
    a nie na parsowaniu treści komunikatu. Tekst analizuje wyłącznie adapter bramki.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.OTHER,
        status_code: Optional[int] = None,
        status_text: Optional[str] = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.status_code = status_code
        self.status_text = status_text
        self.body = body

    def details(self) -> dict:
        return {
            "kind": self.kind.value,
            "status_code": self.status_code,
            "status_text": self.status_text,
            "message": self.message,
            "body": self.body,
        }

    def __repr__(self) -> str:
        return f"GatewayError(kind={self.kind.value}, status={self.status_code}, message={self.message!r})"
