"""Guided session orchestrator: commands, prompts, async extraction, idempotency."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, Field

from charter_agent.config.models import AgentConfig, FieldDefinition
from charter_agent.domain.commands import (
    Command,
    CommandType,
    ConfirmationReply,
    classify_confirmation,
    find_field_id,
    parse_command,
)
from charter_agent.domain.document import to_document_dto
from charter_agent.domain.events import (
    Ask,
    Back,
    Capture,
    Confirm,
    ConfirmPending,
    GuidedEvent,
    Propose,
    Reject,
    RejectPending,
    Reset,
    Skip,
    Start,
)
from charter_agent.domain.extraction import (
    Attachment,
    ConversationMessage,
    ExtractionIssue,
    ExtractionRequest,
    VoiceEvent,
)
from charter_agent.domain.machine import create_initial_state, reduce
from charter_agent.domain.state import FieldStatus, FieldValue, GuidedState, GuidedStatus
from charter_agent.infrastructure.idempotency import IdempotencyCache
from charter_agent.infrastructure.state_store import InMemorySessionStore, SessionStore
from charter_agent.orchestration.errors import SessionNotFoundError
from charter_agent.orchestration.extraction import ExtractionClient
from charter_agent.orchestration.messages import (
    CONFIRM_HINT,
    as_sentence,
    build_review_summary,
    format_field_prompt,
    format_field_value,
)
from charter_agent.orchestration.session import Session

logger = logging.getLogger(__name__)

SKIP_REASON = "Skipped by user"


class InteractionResult(BaseModel):
    """What one orchestrator call hands back to its caller."""

    handled: bool = True
    idempotent: bool = False
    assistant_messages: list[str] = Field(default_factory=list)
    state: GuidedState | None = None
    pending_tool_fields: dict[str, FieldValue] | None = None
    pending_tool_warnings: list[ExtractionIssue] = Field(default_factory=list)
    pending_tool_arguments: Any = None


class GuidedOrchestrator:
    """
    Drives guided sessions over the pure reducer.

    All mutation lives here: the session record, the outbox, the completion flag and
    the replay cache. Turns for one conversation are not serialized; a turn whose
    extraction resolves after the session moved on is discarded by generation check.
    """

    def __init__(
        self,
        config: AgentConfig,
        extractor: ExtractionClient,
        store: SessionStore | None = None,
        cache: IdempotencyCache | None = None,
    ) -> None:
        self.config = config
        self._extractor = extractor
        self._store = store if store is not None else InMemorySessionStore()
        self._cache = cache if cache is not None else IdempotencyCache(config.session.correlation_ttl_seconds)
        self._inflight: dict[tuple[str, str], asyncio.Future[InteractionResult]] = {}

    # --- Public operations ---

    async def start_session(self, conversation_id: str, *, correlation_id: str | None = None) -> InteractionResult:
        """
        Create the session if needed and ask the first field.
        A session that is already underway is left alone; a completed one starts over.
        """
        return await self._once(
            conversation_id, correlation_id, lambda: self._start_session(conversation_id, correlation_id)
        )

    async def handle_command(
        self,
        conversation_id: str,
        command: Command | str,
        *,
        correlation_id: str | None = None,
    ) -> InteractionResult:
        return await self._once(
            conversation_id, correlation_id, lambda: self._handle_command(conversation_id, command, correlation_id)
        )

    async def handle_user_message(
        self,
        conversation_id: str,
        text: str,
        *,
        correlation_id: str | None = None,
        attachments: list[Attachment] | None = None,
        voice: list[VoiceEvent] | None = None,
    ) -> InteractionResult:
        """
        One user turn: a command, a reply to a pending proposal, or an answer for
        the active field. Only the answer path awaits the extraction client.
        """
        return await self._once(
            conversation_id,
            correlation_id,
            lambda: self._handle_user_message(conversation_id, text, correlation_id, attachments, voice),
        )

    async def prompt_current_field(
        self,
        conversation_id: str,
        *,
        correlation_id: str | None = None,
    ) -> InteractionResult:
        return await self._once(
            conversation_id, correlation_id, lambda: self._prompt_current_field(conversation_id, correlation_id)
        )

    async def get_state(self, conversation_id: str) -> GuidedState | None:
        """Current snapshot for the conversation (or None)."""
        session = await self._store.get(conversation_id)
        return session.state if session is not None else None

    async def reset_session(
        self,
        conversation_id: str,
        *,
        correlation_id: str | None = None,
    ) -> InteractionResult:
        """Back to idle with every field pending. History and replay entries are dropped."""
        session = await self._require(conversation_id)
        session.generation += 1
        self._dispatch(session, Reset())
        session.messages = []
        self._cache.forget_conversation(conversation_id)
        logger.info("Reset guided session %s", conversation_id)
        return self._finish(session, [], correlation_id)

    async def delete_session(self, conversation_id: str) -> bool:
        session = await self._store.get(conversation_id)
        if session is not None:
            # In-flight extractions for this session must not land anywhere.
            session.generation += 1
        removed = await self._store.delete(conversation_id)
        self._cache.forget_conversation(conversation_id)
        if removed:
            logger.info("Deleted guided session %s", conversation_id)
        return removed

    async def has_session(self, conversation_id: str) -> bool:
        return await self._store.get(conversation_id) is not None

    @staticmethod
    def to_document_dto(state: GuidedState | None) -> dict[str, FieldValue]:
        return to_document_dto(state)

    # --- Turn bodies ---

    async def _start_session(self, conversation_id: str, correlation_id: str | None) -> InteractionResult:
        session = await self._store.get(conversation_id)
        if session is None:
            session = Session(
                conversation_id=conversation_id,
                state=create_initial_state(self.config.field_ids),
            )
            await self._store.set(conversation_id, session)
            logger.info("Created guided session %s", conversation_id)

        # An active session is untouched, so its in-flight extraction stays current.
        if session.state.is_active:
            return self._finish(session, [], correlation_id, handled=False)

        session.generation += 1
        outbox = [self.config.messages.intro]
        self._dispatch(session, Start())
        logger.info("Started guided session %s", conversation_id)
        self._prompt_current(session, outbox)
        return self._finish(session, outbox, correlation_id)

    async def _handle_command(
        self,
        conversation_id: str,
        command: Command | str,
        correlation_id: str | None,
    ) -> InteractionResult:
        session = await self._require(conversation_id)
        parsed = parse_command(command) if isinstance(command, str) else command
        if parsed is None:
            return self._finish(session, [], correlation_id, handled=False)

        session.generation += 1
        outbox: list[str] = []
        self._apply_command(session, parsed, outbox)
        return self._finish(session, outbox, correlation_id)

    async def _handle_user_message(
        self,
        conversation_id: str,
        text: str,
        correlation_id: str | None,
        attachments: list[Attachment] | None,
        voice: list[VoiceEvent] | None,
    ) -> InteractionResult:
        session = await self._require(conversation_id)
        if session.state.status == GuidedStatus.IDLE:
            return self._finish(session, [], correlation_id, handled=False)

        session.generation += 1
        text = (text or "").strip()
        if text:
            session.messages.append(ConversationMessage(role="user", content=text))
        outbox: list[str] = []

        command = parse_command(text)
        if command is not None:
            self._apply_command(session, command, outbox)
            return self._finish(session, outbox, correlation_id)

        if session.state.status == GuidedStatus.COMPLETE:
            handled = self._announce_completion(session, outbox)
            return self._finish(session, outbox, correlation_id, handled=handled)

        field = self.config.field(session.state.current_field_id)
        if field is None:
            return self._finish(session, outbox, correlation_id, handled=False)
        # Blank input never settles a pending proposal.
        if not text:
            outbox.append(
                f'I didn\'t catch a response for {self._label(field)}. Share an update or type "skip".'
            )
            return self._finish(session, outbox, correlation_id)

        if session.state.awaiting_confirmation:
            reply = classify_confirmation(text)
            if reply == ConfirmationReply.AFFIRMATIVE:
                pending_field = self.config.field(session.state.pending.field_id)
                self._dispatch(session, ConfirmPending())
                outbox.append(f"Saved {self._label(pending_field)}.")
                self._prompt_current(session, outbox)
                return self._finish(session, outbox, correlation_id)
            self._dispatch(session, RejectPending())
            if reply == ConfirmationReply.NEGATIVE:
                self._prompt_current(session, outbox)
                return self._finish(session, outbox, correlation_id)
            # Anything else rejects the proposal and is taken as a new answer.
            field = self.config.field(session.state.current_field_id)

        applied = await self._run_extraction(session, field, text, outbox, attachments, voice)
        if not applied:
            return self._finish(session, outbox, correlation_id, handled=False, stale=True)
        return self._finish(session, outbox, correlation_id)

    async def _prompt_current_field(self, conversation_id: str, correlation_id: str | None) -> InteractionResult:
        session = await self._require(conversation_id)
        if session.state.status == GuidedStatus.IDLE:
            return self._finish(session, [], correlation_id, handled=False)
        outbox: list[str] = []
        self._prompt_current(session, outbox)
        return self._finish(session, outbox, correlation_id, handled=bool(outbox))

    # --- Turn internals ---

    async def _once(
        self,
        conversation_id: str,
        correlation_id: str | None,
        turn: Callable[[], Awaitable[InteractionResult]],
    ) -> InteractionResult:
        """
        Run a turn at most once per (conversation, correlation) key. A finished key
        replays from the cache; a key still in flight is awaited by its duplicates.
        """
        replay = self._replay(conversation_id, correlation_id)
        if replay is not None:
            return replay
        if not correlation_id:
            return await turn()

        key = (conversation_id, correlation_id)
        running = self._inflight.get(key)
        if running is not None:
            logger.debug("Joining in-flight turn %s/%s", conversation_id, correlation_id)
            result = await asyncio.shield(running)
            return result.model_copy(deep=True, update={"idempotent": True})

        future: asyncio.Future[InteractionResult] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = await turn()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Retrieve it here; with no duplicates joined the loop would warn on collection.
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            del self._inflight[key]

    async def _require(self, conversation_id: str) -> Session:
        session = await self._store.get(conversation_id)
        if session is None:
            raise SessionNotFoundError(conversation_id)
        return session

    def _replay(self, conversation_id: str, correlation_id: str | None) -> InteractionResult | None:
        cached = self._cache.get(conversation_id, correlation_id)
        if cached is None:
            return None
        logger.debug("Replaying %s/%s from idempotency cache", conversation_id, correlation_id)
        return cached.model_copy(update={"idempotent": True})

    def _dispatch(self, session: Session, event: GuidedEvent) -> None:
        session.state = reduce(session.state, event)
        if session.state.pending is None:
            session.clear_pending_tool()
        if session.state.status != GuidedStatus.COMPLETE:
            session.completion_notified = False

    def _label(self, field: FieldDefinition | None) -> str:
        return field.display_label if field is not None else "that field"

    def _announce_completion(self, session: Session, outbox: list[str]) -> bool:
        if session.completion_notified:
            return False
        outbox.append(self.config.messages.completion)
        session.completion_notified = True
        return True

    def _prompt_current(self, session: Session, outbox: list[str]) -> None:
        state = session.state
        if state.status == GuidedStatus.COMPLETE:
            self._announce_completion(session, outbox)
            return
        field = self.config.field(state.current_field_id)
        if field is not None:
            outbox.append(format_field_prompt(field, state.current_field))

    def _apply_command(self, session: Session, command: Command, outbox: list[str]) -> None:
        state = session.state
        if command.type == CommandType.REVIEW:
            outbox.append(build_review_summary(state, self.config))
            return

        if command.type == CommandType.EDIT:
            self._edit(session, command.target, outbox)
            return

        if not state.is_active:
            if state.status == GuidedStatus.COMPLETE:
                outbox.append(f"All {self.config.document_label} fields are already complete.")
            return

        field = self.config.field(state.current_field_id)
        if command.type == CommandType.SKIP:
            self._dispatch(session, Skip(field_id=state.current_field_id, reason=SKIP_REASON))
            outbox.append(f"Skipping {self._label(field)}.")
            self._prompt_current(session, outbox)
        elif command.type == CommandType.BACK:
            index = state.order.index(state.current_field_id) if state.current_field_id in state.order else 0
            if index == 0:
                outbox.append(f"We're at the beginning of the {self.config.document_label} questions.")
                self._dispatch(session, Ask(field_id=state.current_field_id))
            else:
                self._dispatch(session, Back())
                outbox.append(f"Let's revisit {self._label(self.config.field(session.state.current_field_id))}.")
            self._prompt_current(session, outbox)

    def _edit(self, session: Session, target: str | None, outbox: list[str]) -> None:
        if not target:
            outbox.append("Let me know which field you'd like to edit. Try \"edit risks\".")
            return
        field_id = find_field_id(target, self.config.fields)
        if field_id is None:
            outbox.append('I couldn\'t find that section. Try something like "edit project description".')
            return

        field = self.config.field(field_id)
        state = session.state
        if state.status == GuidedStatus.IDLE:
            self._dispatch(session, Start())
        elif state.is_active and state.current_field_id == field_id and not state.awaiting_confirmation:
            outbox.append(f"You're already focused on {self._label(field)}.")
            self._prompt_current(session, outbox)
            return

        self._dispatch(session, Ask(field_id=field_id))
        outbox.append(f"Okay, updating {self._label(field)}.")
        self._prompt_current(session, outbox)

    async def _run_extraction(
        self,
        session: Session,
        field: FieldDefinition,
        text: str,
        outbox: list[str],
        attachments: list[Attachment] | None,
        voice: list[VoiceEvent] | None,
    ) -> bool:
        """Capture, extract, and apply the result. Returns False when the result was stale."""
        self._dispatch(session, Capture(field_id=field.id, value=text))
        generation = session.generation
        request = ExtractionRequest(
            messages=list(session.messages),
            attachments=list(attachments or []),
            voice=list(voice or []),
            seed=to_document_dto(session.state) or None,
            requested_field_ids=[field.id],
        )

        result = await self._extractor.extract(request)

        if not await self._still_current(session, generation, field.id, text):
            logger.debug(
                "Discarding stale extraction for %s field %s", session.conversation_id, field.id
            )
            return False

        label = self._label(field)
        if not result.ok:
            message = as_sentence(result.error.message)
            self._dispatch(session, Reject(field_id=field.id, issues=[message]))
            outbox.append(f'{message} Try again or type "skip" to move on.')
            return True

        value = result.fields.get(field.id)
        if value is None:
            message = f"I couldn't find a value for {label} in that response."
            self._dispatch(session, Reject(field_id=field.id, issues=[message]))
            outbox.append(f'{message} Try again or type "skip".')
            return True

        if not result.warnings:
            self._dispatch(session, Propose(field_id=field.id, value=value, awaiting_confirmation=False))
            self._dispatch(session, Confirm(field_id=field.id))
            outbox.append(f"Saved {label}.")
            self._prompt_current(session, outbox)
            return True

        warnings = [w.message for w in result.warnings]
        self._dispatch(
            session,
            Propose(field_id=field.id, value=value, warnings=warnings, awaiting_confirmation=True),
        )
        session.pending_tool_fields = dict(result.fields)
        session.pending_tool_warnings = list(result.warnings)
        session.pending_tool_arguments = result.raw_arguments
        formatted = format_field_value(field, value)
        summary = as_sentence(f"Here's what I captured for {label}: {formatted}")
        outbox.append(f"{summary} {CONFIRM_HINT}")
        outbox.append(f"Heads up: {' '.join(as_sentence(w) for w in warnings)}")
        return True

    async def _still_current(self, session: Session, generation: int, field_id: str, submitted: str) -> bool:
        if await self._store.get(session.conversation_id) is not session:
            return False
        if session.generation != generation:
            return False
        state = session.state
        if state.current_field_id != field_id:
            return False
        fs = state.fields.get(field_id)
        return fs is not None and fs.status == FieldStatus.CAPTURED and fs.value == submitted

    def _finish(
        self,
        session: Session,
        outbox: list[str],
        correlation_id: str | None,
        *,
        handled: bool = True,
        stale: bool = False,
    ) -> InteractionResult:
        if not stale:
            session.outbox = list(outbox)
        for message in outbox:
            session.messages.append(ConversationMessage(role="assistant", content=message))
        result = InteractionResult(
            handled=handled,
            assistant_messages=list(outbox),
            state=session.state,
            pending_tool_fields=session.pending_tool_fields,
            pending_tool_warnings=list(session.pending_tool_warnings),
            pending_tool_arguments=session.pending_tool_arguments,
        )
        if not stale:
            self._cache.put(session.conversation_id, correlation_id, result)
        return result
