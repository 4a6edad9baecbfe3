"""In-memory session store."""

from __future__ import annotations

import asyncio

from charter_agent.domain.machine import create_initial_state
from charter_agent.infrastructure.state_store import InMemorySessionStore, SessionStore
from charter_agent.orchestration.session import Session


def test_get_set_delete(session_store: InMemorySessionStore) -> None:
    assert isinstance(session_store, SessionStore)

    async def run() -> None:
        session = Session(conversation_id="c1", state=create_initial_state(["a"]))
        assert await session_store.get("c1") is None
        await session_store.set("c1", session)
        assert await session_store.get("c1") is session
        assert len(session_store) == 1
        assert await session_store.conversation_ids() == ["c1"]
        assert await session_store.delete("c1") is True
        assert await session_store.delete("c1") is False
        assert await session_store.get("c1") is None

    asyncio.run(run())


def test_session_clears_pending_tool_data() -> None:
    session = Session(conversation_id="c1", state=create_initial_state(["a"]))
    session.pending_tool_fields = {"a": "x"}
    session.pending_tool_arguments = {"a": "x"}
    session.clear_pending_tool()
    assert session.pending_tool_fields is None
    assert session.pending_tool_arguments is None
    assert session.pending_tool_warnings == []
