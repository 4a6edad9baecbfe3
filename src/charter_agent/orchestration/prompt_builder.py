"""Build the extraction tool schema and model input from the catalog and a request."""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

from charter_agent.config.models import AgentConfig, ChildFieldDefinition, FieldDefinition
from charter_agent.domain.extraction import Attachment, ConversationMessage, ExtractionRequest, VoiceEvent

ISO_DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"

TOOL_DESCRIPTION = "Populate {document} fields extracted from the provided context."


def _describe(field: FieldDefinition) -> str:
    return field.question or field.label


def _child_schema(child: ChildFieldDefinition) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "string", "description": child.label}
    if child.kind == "date":
        schema["pattern"] = ISO_DATE_PATTERN
    return schema


def build_tool_field_schema(field: FieldDefinition) -> dict[str, Any]:
    """JSON schema for one field's property in the tool parameters."""
    if field.kind == "date":
        return {"type": "string", "description": _describe(field), "pattern": ISO_DATE_PATTERN}
    if field.kind == "string_list":
        return {
            "description": _describe(field),
            "anyOf": [
                {"type": "array", "items": {"type": "string"}},
                {"type": "string"},
            ],
        }
    if field.kind == "object_list":
        properties = {child.id: _child_schema(child) for child in field.children}
        return {
            "description": _describe(field),
            "anyOf": [
                {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": properties,
                        "additionalProperties": False,
                    },
                },
                # Models sometimes return bare strings; the normalizer decodes them.
                {"type": "array", "items": {"anyOf": [{"type": "string"}, {"type": "object"}]}},
                {"type": "string"},
            ],
        }
    schema: dict[str, Any] = {"type": "string", "description": _describe(field)}
    if field.max_length:
        schema["maxLength"] = field.max_length
    return schema


def build_tool_schema(config: AgentConfig, requested_field_ids: Iterable[str], tool_name: str) -> dict[str, Any]:
    """Function definition (name, description, parameters) scoped to the requested fields."""
    properties: dict[str, Any] = {}
    required: list[str] = []
    for field_id in requested_field_ids:
        field = config.field(field_id)
        if field is None:
            continue
        properties[field_id] = build_tool_field_schema(field)
        if field.required:
            required.append(field_id)

    parameters: dict[str, Any] = {
        "type": "object",
        "additionalProperties": False,
        "properties": properties,
    }
    if required:
        parameters["required"] = required
    return {
        "name": tool_name,
        "description": TOOL_DESCRIPTION.format(document=config.document_label),
        "parameters": parameters,
    }


def build_system_prompt(config: AgentConfig, tool_name: str) -> str:
    document = config.document_label
    return "\n".join(
        [
            f"You are {config.name}. You analyze project {document} conversations "
            f"and must call the {tool_name} tool with the requested fields.",
            "Use only information the user actually provided. Do not invent values.",
            "Dates must use the YYYY-MM-DD format.",
            f"Only call the {tool_name} tool and ensure values follow the {document} schema.",
        ]
    )


def _history_block(messages: list[ConversationMessage]) -> str:
    lines = []
    for m in messages:
        text = m.content.strip()
        if text:
            lines.append(f"{m.role.upper()}: {text}")
    return "\n".join(lines)


def _attachments_block(attachments: list[Attachment]) -> str:
    blocks = []
    for index, a in enumerate(attachments, start=1):
        text = a.text.strip()
        if not text:
            continue
        name = (a.name or "").strip() or f"Attachment {index}"
        blocks.append(f"### {name}\n{text}")
    return "\n\n".join(blocks)


def _voice_block(voice: list[VoiceEvent]) -> str:
    lines = []
    for event in voice:
        text = event.text.strip()
        if not text:
            continue
        lines.append(f"{event.timestamp.isoformat()}: {text}" if event.timestamp else text)
    return "\n".join(lines)


def _requested_summary(config: AgentConfig, requested_field_ids: Iterable[str]) -> str:
    lines = []
    for field_id in requested_field_ids:
        field = config.field(field_id)
        if field is None:
            continue
        status = "required" if field.required else "optional"
        lines.append(f"{field_id}: {field.label} ({status})")
    return "\n".join(lines)


def build_extraction_input(config: AgentConfig, request: ExtractionRequest) -> str:
    """
    User message for the extraction call: history, attachments, voice transcript,
    previously confirmed values and the requested-field summary, in that order.
    Empty sections are left out.
    """
    title = config.document_label.capitalize()
    segments: list[str] = []

    history = _history_block(request.messages)
    if history:
        segments.append("Conversation History:\n" + history)

    attachments = _attachments_block(request.attachments)
    if attachments:
        segments.append("Attachments:\n" + attachments)

    voice = _voice_block(request.voice)
    if voice:
        segments.append("Voice Transcript:\n" + voice)

    if request.seed:
        segments.append(f"Existing {title} Seed:\n" + json.dumps(request.seed, indent=2))

    segments.append(
        f"Requested {title} Fields:\n" + _requested_summary(config, request.requested_field_ids)
    )
    return "\n\n".join(segments)
