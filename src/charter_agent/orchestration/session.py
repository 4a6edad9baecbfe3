"""Per-conversation bookkeeping kept around the pure guided state."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from charter_agent.domain.extraction import ConversationMessage, ExtractionIssue
from charter_agent.domain.state import FieldValue, GuidedState


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Session(BaseModel):
    """
    Mutable session record owned by the orchestrator.
    `state` is replaced wholesale by reducer output, never mutated.
    """

    conversation_id: str
    state: GuidedState
    completion_notified: bool = False
    outbox: list[str] = Field(default_factory=list, description="Assistant messages for the current turn")
    messages: list[ConversationMessage] = Field(default_factory=list, description="Conversation history")
    pending_tool_fields: dict[str, FieldValue] | None = None
    pending_tool_warnings: list[ExtractionIssue] = Field(default_factory=list)
    pending_tool_arguments: Any = None
    # Bumped on every turn, command and restart; in-flight extractions compare against it.
    generation: int = 0
    # Clock reading (seconds) of the last runtime access; None until the runtime touches it.
    last_active_at: float | None = None
    created_at: datetime = Field(default_factory=_utc_now)

    def clear_pending_tool(self) -> None:
        self.pending_tool_fields = None
        self.pending_tool_warnings = []
        self.pending_tool_arguments = None
