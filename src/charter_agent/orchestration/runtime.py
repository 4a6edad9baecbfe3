"""Agent runtime: conversation ids, interaction validation, idle expiry, and client-facing snapshots."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Mapping
from typing import Any

from charter_agent.config.loader import resolve_extraction_settings
from charter_agent.config.models import AgentConfig
from charter_agent.domain.commands import parse_command
from charter_agent.domain.extraction import Attachment, VoiceEvent
from charter_agent.domain.state import GuidedFieldState, GuidedState
from charter_agent.infrastructure.idempotency import IdempotencyCache
from charter_agent.infrastructure.llm_client import LLMClient, OpenAIToolClient
from charter_agent.infrastructure.state_store import InMemorySessionStore, SessionStore
from charter_agent.orchestration.errors import (
    InvalidInteractionError,
    SessionExpiredError,
    SessionNotFoundError,
)
from charter_agent.orchestration.extraction import ExtractionClient, FieldExtractor
from charter_agent.orchestration.orchestrator import GuidedOrchestrator, InteractionResult
from charter_agent.orchestration.session import Session

logger = logging.getLogger(__name__)

EXPIRED_MARKER = "expired"


def _new_conversation_id() -> str:
    return str(uuid.uuid4())


def _slot(fs: GuidedFieldState) -> dict[str, Any]:
    return {
        "slot_id": fs.id,
        "status": fs.status.value,
        "value": fs.value,
        "confirmed_value": fs.confirmed_value,
        "issues": list(fs.issues),
    }


class CharterRuntime:
    """
    Holds config + extraction client + session store; one GuidedOrchestrator routes by conversation id.

    Sessions idle longer than `session.idle_ttl_seconds` are dropped lazily on the next
    runtime call. A dropped id reports SessionExpiredError for
    `session.expired_marker_ttl_seconds`, then SessionNotFoundError.
    """

    def __init__(
        self,
        config: AgentConfig,
        extractor: ExtractionClient,
        store: SessionStore | None = None,
        cache: IdempotencyCache | None = None,
        id_factory: Callable[[], str] = _new_conversation_id,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self._store = store if store is not None else InMemorySessionStore()
        self.orchestrator = GuidedOrchestrator(config, extractor, store=self._store, cache=cache)
        self._id_factory = id_factory
        self._clock = clock
        self._idle_ttl = config.session.idle_ttl_seconds
        # correlation id -> conversation id, so a retried start does not open a second session
        self._started = IdempotencyCache(config.session.correlation_ttl_seconds, clock=clock)
        self._expired = IdempotencyCache(config.session.expired_marker_ttl_seconds, clock=clock)

    @classmethod
    def from_config(
        cls,
        config: AgentConfig,
        llm: LLMClient | None = None,
        env: Mapping[str, str] | None = None,
    ) -> "CharterRuntime":
        """Runtime backed by the OpenAI-compatible tool client unless `llm` is given."""
        settings = resolve_extraction_settings(config, env)
        if llm is None:
            llm = OpenAIToolClient(
                base_url=settings.base_url or "https://api.openai.com",
                model=settings.model,
                api_key=settings.api_key,
                timeout=settings.timeout_seconds,
            )
        return cls(config, FieldExtractor(config, llm, settings))

    async def start_conversation(self, correlation_id: str | None = None) -> tuple[str, InteractionResult]:
        """
        Allocate a conversation id and start its guided session.
        Returns the id and the opening messages.
        """
        await self._sweep()
        conversation_id = self._started.get("start", correlation_id)
        if conversation_id is not None and not await self.orchestrator.has_session(conversation_id):
            conversation_id = None
        if conversation_id is None:
            conversation_id = self._id_factory()
            self._started.put("start", correlation_id, conversation_id)
        result = await self.orchestrator.start_session(conversation_id, correlation_id=correlation_id)
        session = await self._store.get(conversation_id)
        if session is not None:
            session.last_active_at = self._clock()
        return conversation_id, result

    async def interact(
        self,
        conversation_id: str,
        message: str | None = None,
        command: str | list[str] | None = None,
        correlation_id: str | None = None,
        attachments: list[Attachment] | None = None,
        voice: list[VoiceEvent] | None = None,
    ) -> InteractionResult:
        """Route exactly one of `message` or `command` to the conversation's session."""
        if (message is None) == (command is None):
            raise InvalidInteractionError(
                "Provide exactly one of message or command.", conversation_id=conversation_id
            )
        await self._open(conversation_id)

        if command is not None:
            text = " ".join(command) if isinstance(command, list) else command
            parsed = parse_command(text)
            if parsed is None:
                raise InvalidInteractionError(f"Unknown command: {text!r}", conversation_id=conversation_id)
            return await self.orchestrator.handle_command(conversation_id, parsed, correlation_id=correlation_id)

        return await self.orchestrator.handle_user_message(
            conversation_id,
            message,
            correlation_id=correlation_id,
            attachments=attachments,
            voice=voice,
        )

    async def get_state(self, conversation_id: str) -> GuidedState | None:
        """Get current guided state for the conversation (or None, also once it expired)."""
        await self._sweep()
        return await self.orchestrator.get_state(conversation_id)

    async def snapshot(self, conversation_id: str) -> dict[str, Any]:
        """Slot-update payload: session status plus per-slot status, values and issues."""
        state = (await self._open(conversation_id)).state
        return {
            "conversation_id": conversation_id,
            "status": state.status.value,
            "current_slot_id": state.current_field_id,
            "waiting": state.waiting.model_dump(),
            "started_at": state.started_at.isoformat() if state.started_at else None,
            "completed_at": state.completed_at.isoformat() if state.completed_at else None,
            "slots": [_slot(state.fields[field_id]) for field_id in state.order],
        }

    def slot_descriptors(self) -> list[dict[str, Any]]:
        """Catalog as clients render it, in order."""
        return [
            {
                "id": f.id,
                "label": f.label,
                "kind": f.kind,
                "required": f.required,
                "question": f.question,
                "help_text": f.help_text,
                "placeholder": f.placeholder,
                "example": f.example,
                "children": [{"id": c.id, "label": c.label, "kind": c.kind} for c in f.children],
            }
            for f in self.config.fields
        ]

    async def close_conversation(self, conversation_id: str) -> bool:
        await self._sweep()
        closed = await self.orchestrator.delete_session(conversation_id)
        if not closed:
            logger.debug("close_conversation: %s was not open", conversation_id)
        return closed

    async def document(self, conversation_id: str) -> dict[str, Any]:
        """Confirmed values only, ready for a renderer."""
        session = await self._open(conversation_id)
        return self.orchestrator.to_document_dto(session.state)

    async def _open(self, conversation_id: str) -> Session:
        """Session for conversation_id, marked active. Raises if it is unknown or expired."""
        await self._sweep()
        session = await self._store.get(conversation_id)
        if session is None:
            if self._expired.get(conversation_id, EXPIRED_MARKER):
                raise SessionExpiredError(conversation_id)
            raise SessionNotFoundError(conversation_id)
        session.last_active_at = self._clock()
        return session

    async def _sweep(self) -> None:
        now = self._clock()
        for conversation_id in await self._store.conversation_ids():
            session = await self._store.get(conversation_id)
            if session is None or session.last_active_at is None:
                continue
            if now - session.last_active_at > self._idle_ttl:
                await self.orchestrator.delete_session(conversation_id)
                self._expired.put(conversation_id, EXPIRED_MARKER, True)
                logger.info("Expired idle conversation %s", conversation_id)
