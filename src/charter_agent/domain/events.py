"""Closed set of events understood by the guided session reducer."""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from charter_agent.domain.state import FieldValue


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)


class Reset(_Event):
    type: Literal["RESET"] = "RESET"


class Start(_Event):
    type: Literal["START"] = "START"


class Ask(_Event):
    type: Literal["ASK"] = "ASK"
    field_id: str | None = None


class Capture(_Event):
    type: Literal["CAPTURE"] = "CAPTURE"
    field_id: str
    value: FieldValue


class Validate(_Event):
    type: Literal["VALIDATE"] = "VALIDATE"
    field_id: str
    valid: bool | None = Field(default=None, description="Defaults to 'no issues'")
    issues: list[str] = Field(default_factory=list)
    value: FieldValue | None = None
    normalized_value: FieldValue | None = None


class Confirm(_Event):
    type: Literal["CONFIRM"] = "CONFIRM"
    field_id: str | None = None


class Reject(_Event):
    type: Literal["REJECT"] = "REJECT"
    field_id: str
    issues: list[str] = Field(default_factory=list)


class Skip(_Event):
    type: Literal["SKIP"] = "SKIP"
    field_id: str | None = None
    reason: str | None = None


class Back(_Event):
    type: Literal["BACK"] = "BACK"


class Complete(_Event):
    type: Literal["COMPLETE"] = "COMPLETE"


class Propose(_Event):
    type: Literal["PROPOSE"] = "PROPOSE"
    field_id: str
    value: FieldValue
    warnings: list[str] = Field(default_factory=list)
    awaiting_confirmation: bool = True


class ConfirmPending(_Event):
    type: Literal["CONFIRM_PENDING"] = "CONFIRM_PENDING"


class RejectPending(_Event):
    type: Literal["REJECT_PENDING"] = "REJECT_PENDING"


GuidedEvent = Union[
    Reset,
    Start,
    Ask,
    Capture,
    Validate,
    Confirm,
    Reject,
    Skip,
    Back,
    Complete,
    Propose,
    ConfirmPending,
    RejectPending,
]
