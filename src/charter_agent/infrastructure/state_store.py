"""Session store: Protocol + in-memory implementation."""

from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable

from charter_agent.orchestration.session import Session


@runtime_checkable
class SessionStore(Protocol):
    """Protocol for registering and looking up guided sessions by conversation id."""

    async def get(self, conversation_id: str) -> Session | None:
        """Load session. Return None if not found."""
        ...

    async def set(self, conversation_id: str, session: Session) -> None:
        """Register (or replace) the session for conversation_id."""
        ...

    async def delete(self, conversation_id: str) -> bool:
        """Forget the session. Return True if one was registered."""
        ...

    async def conversation_ids(self) -> list[str]:
        """Ids of every registered session."""
        ...


class InMemorySessionStore:
    """In-memory dict store. Suitable for single process; no persistence."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._store: dict[str, Session] = {}

    async def get(self, conversation_id: str) -> Session | None:
        with self._lock:
            return self._store.get(conversation_id)

    async def set(self, conversation_id: str, session: Session) -> None:
        with self._lock:
            self._store[conversation_id] = session

    async def delete(self, conversation_id: str) -> bool:
        with self._lock:
            return self._store.pop(conversation_id, None) is not None

    async def conversation_ids(self) -> list[str]:
        with self._lock:
            return list(self._store)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
