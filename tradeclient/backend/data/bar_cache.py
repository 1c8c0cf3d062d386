from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable, Generic, Hashable, Optional, Tuple, TypeVar

V = TypeVar("V")


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class TTLCache(Generic[V]):
    """
    Prosty cache klucz -> (wartość, moment wstawienia).

    - wpis ważny ściśle krócej niż `ttl_ms` od wstawienia,
    - ograniczony rozmiar: przy przepełnieniu wylatuje najstarszy wpis,
    - zegar wstrzykiwany (`clock` zwraca milisekundy), więc TTL da się testować bez czekania.
    """

    def __init__(self, ttl_ms: float = 60_000, max_entries: int = 512, clock: Optional[Callable[[], float]] = None) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries musi być > 0")
        self.ttl_ms = ttl_ms
        self.max_entries = max_entries
        self._clock = clock or monotonic_ms
        self._entries: "OrderedDict[Hashable, Tuple[V, float]]" = OrderedDict()

    def get(self, key: Hashable) -> Optional[V]:
        hit = self._entries.get(key)
        if hit is None:
            return None
        value, inserted_at = hit
        if self._clock() - inserted_at < self.ttl_ms:
            return value
        del self._entries[key]
        return None

    def put(self, key: Hashable, value: V) -> None:
        if key in self._entries:
            del self._entries[key]
        self._entries[key] = (value, self._clock())
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
