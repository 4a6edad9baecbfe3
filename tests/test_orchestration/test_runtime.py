"""Runtime: conversation ids, interaction validation, snapshots, session isolation."""

from __future__ import annotations

import asyncio
import itertools

import pytest

from charter_agent.config.models import AgentConfig
from charter_agent.infrastructure.llm_client import MockLLMClient
from charter_agent.orchestration.errors import InvalidInteractionError, SessionExpiredError, SessionNotFoundError
from charter_agent.orchestration.extraction import FieldExtractor
from charter_agent.orchestration.runtime import CharterRuntime


def _runtime(config: AgentConfig, responses: list | None = None) -> tuple[CharterRuntime, MockLLMClient]:
    mock = MockLLMClient(responses=responses)
    counter = itertools.count(1)
    runtime = CharterRuntime(config, FieldExtractor(config, mock), id_factory=lambda: f"conv-{next(counter)}")
    return runtime, mock


def test_start_conversation_allocates_ids(two_field_config: AgentConfig) -> None:
    async def run() -> None:
        runtime, _ = _runtime(two_field_config)
        first_id, first = await runtime.start_conversation()
        second_id, _ = await runtime.start_conversation()
        assert (first_id, second_id) == ("conv-1", "conv-2")
        assert first.assistant_messages[0] == two_field_config.messages.intro

    asyncio.run(run())


def test_retried_start_returns_same_conversation(two_field_config: AgentConfig) -> None:
    async def run() -> None:
        runtime, _ = _runtime(two_field_config)
        cid, first = await runtime.start_conversation(correlation_id="open-1")
        again_id, again = await runtime.start_conversation(correlation_id="open-1")
        assert again_id == cid
        assert again.idempotent is True
        assert again.assistant_messages == first.assistant_messages

    asyncio.run(run())


def test_interact_requires_exactly_one_input(two_field_config: AgentConfig) -> None:
    async def run() -> None:
        runtime, _ = _runtime(two_field_config)
        cid, _ = await runtime.start_conversation()
        with pytest.raises(InvalidInteractionError) as exc:
            await runtime.interact(cid, message="hi", command="skip")
        assert exc.value.code == "invalid_interaction"
        with pytest.raises(InvalidInteractionError):
            await runtime.interact(cid)

    asyncio.run(run())


def test_interact_unknown_conversation(two_field_config: AgentConfig) -> None:
    async def run() -> None:
        runtime, _ = _runtime(two_field_config)
        with pytest.raises(SessionNotFoundError):
            await runtime.interact("nope", message="hi")
        with pytest.raises(SessionNotFoundError):
            await runtime.snapshot("nope")
        assert await runtime.get_state("nope") is None

    asyncio.run(run())


def test_interact_commands(two_field_config: AgentConfig) -> None:
    async def run() -> None:
        runtime, _ = _runtime(two_field_config)
        cid, _ = await runtime.start_conversation()

        edited = await runtime.interact(cid, command=["edit", "start", "date"])
        assert edited.assistant_messages[0] == "Okay, updating Start Date."
        assert edited.state.current_field_id == "date"

        with pytest.raises(InvalidInteractionError) as exc:
            await runtime.interact(cid, command="dance")
        assert "dance" in str(exc.value)

    asyncio.run(run())


def test_snapshot_and_document(two_field_config: AgentConfig) -> None:
    async def run() -> None:
        runtime, _ = _runtime(two_field_config, [{"name": "Acme"}])
        cid, _ = await runtime.start_conversation()
        await runtime.interact(cid, message="Acme")

        snap = await runtime.snapshot(cid)
        assert snap["conversation_id"] == cid
        assert snap["status"] == "asking"
        assert snap["current_slot_id"] == "date"
        assert snap["started_at"] is not None
        assert snap["completed_at"] is None
        assert [slot["slot_id"] for slot in snap["slots"]] == ["name", "date"]
        assert snap["slots"][0] == {
            "slot_id": "name",
            "status": "confirmed",
            "value": "Acme",
            "confirmed_value": "Acme",
            "issues": [],
        }
        assert await runtime.document(cid) == {"name": "Acme"}

    asyncio.run(run())


def test_slot_descriptors(charter_config: AgentConfig) -> None:
    runtime = CharterRuntime(charter_config, FieldExtractor(charter_config, MockLLMClient()))
    descriptors = runtime.slot_descriptors()
    assert [d["id"] for d in descriptors] == charter_config.field_ids
    milestones = next(d for d in descriptors if d["kind"] == "object_list")
    assert {child["id"] for child in milestones["children"]} >= {"phase", "date"}


def test_close_conversation(two_field_config: AgentConfig) -> None:
    async def run() -> None:
        runtime, _ = _runtime(two_field_config)
        cid, _ = await runtime.start_conversation()
        assert await runtime.close_conversation(cid) is True
        assert await runtime.close_conversation(cid) is False
        with pytest.raises(SessionNotFoundError):
            await runtime.interact(cid, message="hello")

    asyncio.run(run())


def test_session_isolation(two_field_config: AgentConfig) -> None:
    """Two conversations never share field values."""

    async def run() -> None:
        runtime, _ = _runtime(two_field_config, [{"name": "Alpha"}, {"name": "Beta"}])
        a, _ = await runtime.start_conversation()
        b, _ = await runtime.start_conversation()
        await runtime.interact(a, message="Alpha")
        await runtime.interact(b, message="Beta")
        await runtime.interact(b, command="skip")

        state_a = await runtime.get_state(a)
        state_b = await runtime.get_state(b)
        assert state_a.fields["name"].confirmed_value == "Alpha"
        assert state_b.fields["name"].confirmed_value == "Beta"
        assert state_a.current_field_id == "date"
        assert state_b.status.value == "complete"

    asyncio.run(run())


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_idle_conversation_expires(two_field_config: AgentConfig) -> None:
    async def run() -> None:
        clock = FakeClock()
        counter = itertools.count(1)
        runtime = CharterRuntime(
            two_field_config,
            FieldExtractor(two_field_config, MockLLMClient()),
            id_factory=lambda: f"conv-{next(counter)}",
            clock=clock,
        )
        idle, _ = await runtime.start_conversation()
        busy, _ = await runtime.start_conversation()

        # Any runtime access keeps a conversation alive.
        clock.now += 250
        await runtime.interact(busy, command="review")
        assert (await runtime.snapshot(busy))["status"] == "asking"
        clock.now += 51

        with pytest.raises(SessionExpiredError) as exc:
            await runtime.interact(idle, message="hello")
        assert exc.value.code == "session_expired"
        assert exc.value.conversation_id == idle
        assert await runtime.get_state(idle) is None
        with pytest.raises(SessionExpiredError):
            await runtime.document(idle)
        assert await runtime.close_conversation(idle) is False
        assert await runtime.get_state(busy) is not None

        # The expired marker itself lapses.
        clock.now += 601
        with pytest.raises(SessionNotFoundError):
            await runtime.snapshot(idle)

    asyncio.run(run())
