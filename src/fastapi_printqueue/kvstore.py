"""Time-windowed key-value store for short-lived state (OAuth states)."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Protocol, runtime_checkable

from fastapi_printqueue.clock import Clock, utcnow


@runtime_checkable
class KeyValueStore(Protocol):
    async def put(self, key: str, value: Any, ttl: timedelta) -> None: ...

    async def get(self, key: str) -> Any | None: ...

    async def delete(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    """Single-process store; expired entries are dropped on access and put.

    Deployments with several replicas need a shared implementation of
    ``KeyValueStore`` instead.
    """

    def __init__(self, clock: Clock = utcnow) -> None:
        self.clock = clock
        self._items: dict[str, tuple[Any, Any]] = {}

    async def put(self, key: str, value: Any, ttl: timedelta) -> None:
        now = self.clock()
        self._prune(now)
        self._items[key] = (value, now + ttl)

    async def get(self, key: str) -> Any | None:
        entry = self._items.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self.clock() >= expires_at:
            del self._items[key]
            return None
        return value

    async def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def __len__(self) -> int:
        return len(self._items)

    def _prune(self, now: datetime) -> None:
        expired = [
            key
            for key, (_, expires_at) in self._items.items()
            if now >= expires_at
        ]
        for key in expired:
            del self._items[key]

