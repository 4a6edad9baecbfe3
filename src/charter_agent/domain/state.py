"""Guided session state models. Frozen snapshots; only the reducer builds new ones."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field

# Trimmed text | deduplicated string list | list of child-id -> text records
FieldValue = Union[str, list[str], list[dict[str, str]]]


class FieldStatus(str, Enum):
    """Lifecycle of one field within a session."""

    PENDING = "pending"
    ASKING = "asking"
    CAPTURED = "captured"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    SKIPPED = "skipped"


TERMINAL_FIELD_STATUSES = frozenset({FieldStatus.CONFIRMED, FieldStatus.SKIPPED})


class GuidedStatus(str, Enum):
    """Overall session status."""

    IDLE = "idle"
    ASKING = "asking"
    CAPTURING = "capturing"
    VALIDATING = "validating"
    CONFIRMING = "confirming"
    COMPLETE = "complete"


class WaitingState(BaseModel):
    """Who owns the turn: the assistant, the user, or background validation."""

    model_config = ConfigDict(frozen=True)

    assistant: bool = False
    user: bool = False
    validation: bool = False


IDLE_WAITING = WaitingState()
ASSISTANT_WAITING = WaitingState(assistant=True)
USER_WAITING = WaitingState(user=True)
VALIDATION_WAITING = WaitingState(validation=True)


class GuidedFieldState(BaseModel):
    """Per-field progress inside one session."""

    model_config = ConfigDict(frozen=True)

    id: str
    status: FieldStatus = FieldStatus.PENDING
    value: FieldValue | None = None
    confirmed_value: FieldValue | None = None
    issues: list[str] = Field(default_factory=list)
    skipped_reason: str | None = None
    last_asked_at: datetime | None = None
    last_updated_at: datetime | None = None


class PendingProposal(BaseModel):
    """An extracted value waiting for the user's yes/no."""

    model_config = ConfigDict(frozen=True)

    field_id: str
    value: FieldValue
    warnings: list[str] = Field(default_factory=list)
    awaiting_confirmation: bool = True


class GuidedState(BaseModel):
    """Whole-session snapshot. `order` is fixed when the state is created."""

    model_config = ConfigDict(frozen=True)

    status: GuidedStatus = GuidedStatus.IDLE
    started_at: datetime | None = None
    completed_at: datetime | None = None
    current_field_id: str | None = None
    order: tuple[str, ...]
    fields: dict[str, GuidedFieldState]
    waiting: WaitingState = IDLE_WAITING
    pending: PendingProposal | None = None

    @property
    def current_field(self) -> GuidedFieldState | None:
        if self.current_field_id is None:
            return None
        return self.fields.get(self.current_field_id)

    @property
    def awaiting_confirmation(self) -> bool:
        return self.pending is not None and self.pending.awaiting_confirmation

    @property
    def is_active(self) -> bool:
        return self.status not in (GuidedStatus.IDLE, GuidedStatus.COMPLETE)
