"""Extraction contract: request, issues, success/failure results."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, Field

from charter_agent.domain.state import FieldValue


class IssueCode(str, Enum):
    """Why a single field value was flagged."""

    VALIDATION_FAILED = "validation_failed"
    MISSING_REQUIRED = "missing_required"
    INVALID_TOOL_PAYLOAD = "invalid_tool_payload"


class ErrorCode(str, Enum):
    """Why a whole extraction call failed."""

    CONFIGURATION = "configuration"
    NO_FIELDS_REQUESTED = "no_fields_requested"
    MISSING_TOOL_CALL = "missing_tool_call"
    INVALID_TOOL_PAYLOAD = "invalid_tool_payload"
    OPENAI_ERROR = "openai_error"
    MISSING_REQUIRED = "missing_required"
    VALIDATION_FAILED = "validation_failed"


class ExtractionIssue(BaseModel):
    """A normalization finding. Warnings need confirmation; errors block the value."""

    code: IssueCode
    message: str
    field_id: str | None = None
    details: dict[str, Any] | None = None
    level: Literal["warning", "error"] = "warning"


class ExtractionError(BaseModel):
    code: ErrorCode
    message: str
    details: dict[str, Any] | None = None
    fields: list[str] = Field(default_factory=list, description="Offending field ids")


class ConversationMessage(BaseModel):
    """One prior turn passed to the model as context."""

    role: Literal["user", "assistant", "system", "developer"] = "user"
    content: str


class Attachment(BaseModel):
    text: str
    name: str | None = None
    mime_type: str | None = None


class VoiceEvent(BaseModel):
    text: str
    timestamp: datetime | None = None


class ExtractionRequest(BaseModel):
    """What the orchestrator asks the extraction client for on one turn."""

    messages: list[ConversationMessage] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    voice: list[VoiceEvent] = Field(default_factory=list)
    seed: dict[str, FieldValue] | None = Field(default=None, description="Previously confirmed values")
    requested_field_ids: list[str]
    model: str | None = Field(default=None, description="Optional explicit model override")


class ExtractionSuccess(BaseModel):
    ok: Literal[True] = True
    fields: dict[str, FieldValue] = Field(default_factory=dict)
    warnings: list[ExtractionIssue] = Field(default_factory=list)
    raw_arguments: Any = None


class ExtractionFailure(BaseModel):
    ok: Literal[False] = False
    error: ExtractionError
    fields: dict[str, FieldValue] = Field(default_factory=dict)
    warnings: list[ExtractionIssue] = Field(default_factory=list)
    raw_arguments: Any = None


ExtractionResult = Union[ExtractionSuccess, ExtractionFailure]
