"""Correlation-id replay cache for guided session turns."""

from __future__ import annotations

import copy
import threading
import time
from collections.abc import Callable
from typing import Any


class IdempotencyCache:
    """
    Process-local cache of turn results keyed by (conversation_id, correlation_id).

    - Fixed TTL; expired entries are swept lazily on every access.
    - Values go in and come out as deep copies, so callers never share state.
    """

    def __init__(self, ttl_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[tuple[str, str], tuple[float, Any]] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def _sweep(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

    def get(self, conversation_id: str, correlation_id: str | None) -> Any | None:
        if not correlation_id:
            return None
        with self._lock:
            self._sweep(self._clock())
            entry = self._entries.get((conversation_id, correlation_id))
            if entry is None:
                return None
            return copy.deepcopy(entry[1])

    def put(self, conversation_id: str, correlation_id: str | None, value: Any) -> None:
        if not correlation_id:
            return
        with self._lock:
            now = self._clock()
            self._sweep(now)
            self._entries[(conversation_id, correlation_id)] = (now + self._ttl, copy.deepcopy(value))

    def forget_conversation(self, conversation_id: str) -> int:
        """
        Drop every entry for conversation_id.

        Returns how many entries were removed.
        """
        with self._lock:
            keys = [key for key in self._entries if key[0] == conversation_id]
            for key in keys:
                del self._entries[key]
            return len(keys)

    def __len__(self) -> int:
        with self._lock:
            self._sweep(self._clock())
            return len(self._entries)
