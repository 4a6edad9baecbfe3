"""Pydantic models for the field catalog and agent settings. Immutable once loaded."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


# --- Field catalog ---

FieldKind = Literal["scalar", "date", "string_list", "object_list"]
ChildKind = Literal["scalar", "date"]


class ChildFieldDefinition(BaseModel):
    """One column of an object-list field (e.g. a milestone's target date)."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Key inside each record")
    label: str
    kind: ChildKind = "scalar"
    placeholder: str | None = None
    aliases: tuple[str, ...] = Field(default=(), description="Alternate keys the model may emit")


class FieldDefinition(BaseModel):
    """A single document field, in catalog order."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique field identifier (e.g. project_name)")
    label: str = Field(..., description="Display label")
    question: str = ""
    help_text: str = ""
    required: bool = False
    kind: FieldKind = "scalar"
    max_length: int | None = Field(default=None, gt=0)
    placeholder: str | None = None
    example: str | None = None
    # Shorter label used in summaries and acknowledgements
    review_label: str | None = None
    aliases: tuple[str, ...] = ()
    children: tuple[ChildFieldDefinition, ...] = ()

    @property
    def display_label(self) -> str:
        return self.review_label or self.label

    @model_validator(mode="after")
    def _children_match_kind(self) -> "FieldDefinition":
        if self.children and self.kind != "object_list":
            raise ValueError(f"Field {self.id!r}: only object_list fields may define children")
        if self.kind == "object_list" and not self.children:
            raise ValueError(f"Field {self.id!r}: object_list fields need at least one child")
        return self


# --- Assistant copy ---


class MessagesConfig(BaseModel):
    """Fixed assistant messages that are not derived from a field."""

    model_config = ConfigDict(frozen=True)

    intro: str = Field(
        default=(
            "Let's build your charter step-by-step. I'll ask about each section. "
            'Type "skip" to move on, "back" to revisit the previous question, '
            'or "edit <field name>" to jump to a specific section.'
        ),
        description="First message of a guided session",
    )
    completion: str = Field(
        default=(
            "That covers every section. I've saved your charter responses. "
            'You can review or edit any field with "edit <field name>".'
        ),
        description="Sent once when every field is confirmed or skipped",
    )


# --- Extraction ---


class ExtractionSettings(BaseModel):
    """LLM tool-calling settings (can be overridden by env)."""

    model_config = ConfigDict(frozen=True)

    model: str = Field(default="gpt-4.1-mini")
    base_url: str | None = Field(default=None)
    api_key: str | None = Field(default=None, description="Usually injected from OPENAI_API_KEY")
    tool_name: str = Field(default="extract_charter_fields")
    timeout_seconds: float = Field(default=60.0, gt=0)


class SessionSettings(BaseModel):
    """Session bookkeeping knobs."""

    model_config = ConfigDict(frozen=True)

    correlation_ttl_seconds: float = Field(
        default=60.0,
        gt=0,
        description="How long a (conversation, correlation) result is replayed",
    )
    idle_ttl_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Sessions idle longer than this are dropped",
    )
    expired_marker_ttl_seconds: float = Field(
        default=600.0,
        gt=0,
        description="How long a dropped session still reports as expired rather than unknown",
    )


# --- Top-level agent config ---


class AgentConfig(BaseModel):
    """Full agent configuration loaded from YAML."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(default="Charter Agent", description="Agent display name")
    document_label: str = Field(default="charter", description="What the user is filling in")
    fields: tuple[FieldDefinition, ...] = Field(..., min_length=1, description="Fields to collect in order")
    messages: MessagesConfig = Field(default_factory=MessagesConfig)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)

    @model_validator(mode="after")
    def _unique_field_ids(self) -> "AgentConfig":
        seen: set[str] = set()
        for f in self.fields:
            if f.id in seen:
                raise ValueError(f"Duplicate field id: {f.id!r}")
            seen.add(f.id)
        return self

    @property
    def field_ids(self) -> list[str]:
        return [f.id for f in self.fields]

    def field(self, field_id: str | None) -> FieldDefinition | None:
        """Definition for field_id, or None if it is not in the catalog."""
        if not field_id:
            return None
        for f in self.fields:
            if f.id == field_id:
                return f
        return None
