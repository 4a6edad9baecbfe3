"""Field normalization: decode raw tool-call values, sanitize, and collect issues. No I/O."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field

from charter_agent.config.models import ChildFieldDefinition, FieldDefinition
from charter_agent.domain.extraction import ExtractionIssue, IssueCode
from charter_agent.domain.state import FieldValue
from charter_agent.domain.validators import REQUIRED_MESSAGE, validate_value

# Bare strings in an object list land in the first of these children that exists.
FALLBACK_CHILD_PRIORITY = ("deliverable", "metric", "name")

_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


class SanitizedField(BaseModel):
    """Outcome for one field: a vetted value (or None) plus issues."""

    value: FieldValue | None = None
    issues: list[ExtractionIssue] = Field(default_factory=list)


class NormalizedFields(BaseModel):
    """Outcome for a whole tool payload, issues split by severity."""

    fields: dict[str, FieldValue] = Field(default_factory=dict)
    warnings: list[ExtractionIssue] = Field(default_factory=list)
    errors: list[ExtractionIssue] = Field(default_factory=list)


# --- Decoding ---


def to_trimmed_string(value: Any) -> str:
    """Text for scalars the model may emit as str, number, bool or date; '' otherwise."""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value).strip()
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return ""


def _as_items(raw: Any, *, split_lines: bool = False) -> list[Any]:
    """Decode a raw list-ish value: None, a string, a sequence, or a single item."""
    if raw is None:
        return []
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return []
        if not split_lines:
            return [text]
        return [line.strip() for line in text.splitlines() if line.strip()]
    if isinstance(raw, (list, tuple)):
        return list(raw)
    return [raw]


def canonical_key(key: str) -> str:
    """projectTitle, Project-Title and project_title all become project_title."""
    snake = _CAMEL_BOUNDARY_RE.sub("_", key.strip())
    return _NON_ALNUM_RE.sub("_", snake.lower()).strip("_")


def _alias_map(ids_and_aliases: Iterable[tuple[str, Iterable[str]]]) -> dict[str, str]:
    mapping: dict[str, str] = {}
    for target, aliases in ids_and_aliases:
        mapping.setdefault(canonical_key(target), target)
        for alias in aliases:
            mapping.setdefault(canonical_key(alias), target)
    return mapping


def coerce_aliases(source: Mapping[str, Any], ids_and_aliases: Iterable[tuple[str, Iterable[str]]]) -> dict[str, Any]:
    """
    Copy of source with aliased keys mapped onto canonical ids.
    A canonical key present in source always wins over an alias.
    """
    mapping = _alias_map(ids_and_aliases)
    result: dict[str, Any] = {}
    for key, value in source.items():
        target = mapping.get(canonical_key(key)) if isinstance(key, str) else None
        if target is None or key == target:
            result[key] = value
        elif target not in source and target not in result:
            result[target] = value
    return result


def normalize_string_list(raw: Any) -> list[str]:
    """Trimmed, non-empty entries, deduplicated in first-seen order."""
    seen: set[str] = set()
    items: list[str] = []
    for entry in _as_items(raw, split_lines=True):
        text = to_trimmed_string(entry)
        if not text or text in seen:
            continue
        seen.add(text)
        items.append(text)
    return items


def _fallback_child(children: tuple[ChildFieldDefinition, ...]) -> str | None:
    child_ids = [c.id for c in children]
    for candidate in FALLBACK_CHILD_PRIORITY:
        if candidate in child_ids:
            return candidate
    return child_ids[0] if child_ids else None


def normalize_object_entries(raw: Any, children: tuple[ChildFieldDefinition, ...]) -> list[dict[str, str]]:
    """Decode records, coerce aliased keys, trim children, drop entries with nothing left."""
    fallback = _fallback_child(children)
    aliases = [(c.id, c.aliases) for c in children]
    entries: list[dict[str, str]] = []
    for item in _as_items(raw):
        if isinstance(item, str):
            text = item.strip()
            if text and fallback:
                entries.append({fallback: text})
            continue
        if not isinstance(item, Mapping):
            continue
        source = coerce_aliases(item, aliases)
        record: dict[str, str] = {}
        for child in children:
            text = to_trimmed_string(source.get(child.id))
            if text:
                record[child.id] = text
        if record:
            entries.append(record)
    return entries


# --- Sanitizing ---


def _issue(
    code: IssueCode,
    message: str,
    field: FieldDefinition,
    level: str,
    **details: Any,
) -> ExtractionIssue:
    return ExtractionIssue(code=code, message=message, field_id=field.id, details=details, level=level)


def sanitize_scalar(field: FieldDefinition, raw: Any) -> SanitizedField:
    """Scalar and date fields: first list element, trimmed, then validated."""
    if isinstance(raw, (list, tuple)):
        first = raw[0] if raw else None
    else:
        first = raw
    text = to_trimmed_string(first)
    level = "error" if field.required else "warning"
    if not text:
        if field.required:
            return SanitizedField(
                issues=[_issue(IssueCode.VALIDATION_FAILED, REQUIRED_MESSAGE, field, level, raw_value=raw)]
            )
        return SanitizedField()
    ok, message = validate_value(text, field.kind, field.required, field.max_length)
    if not ok:
        return SanitizedField(issues=[_issue(IssueCode.VALIDATION_FAILED, message, field, level, raw_value=raw)])
    return SanitizedField(value=text)


def sanitize_string_list(field: FieldDefinition, raw: Any) -> SanitizedField:
    """Bad entries become warnings; the list is only an error when required and empty."""
    entries = normalize_string_list(raw)
    if not entries:
        if field.required:
            return SanitizedField(
                issues=[_issue(IssueCode.MISSING_REQUIRED, REQUIRED_MESSAGE, field, "error", raw_value=raw)]
            )
        return SanitizedField()

    issues: list[ExtractionIssue] = []
    kept: list[str] = []
    for entry in entries:
        ok, message = validate_value(entry, "scalar", False, field.max_length)
        if not ok:
            issues.append(
                _issue(IssueCode.VALIDATION_FAILED, f'"{entry}": {message}', field, "warning", entry=entry, raw_value=raw)
            )
            continue
        kept.append(entry)

    if not kept:
        if field.required:
            issues.append(
                _issue(
                    IssueCode.MISSING_REQUIRED,
                    "No valid entries for required list field.",
                    field,
                    "error",
                    raw_value=raw,
                )
            )
        return SanitizedField(issues=issues)
    return SanitizedField(value=kept, issues=issues)


def sanitize_object_list(field: FieldDefinition, raw: Any) -> SanitizedField:
    """Each child is validated on its own; a bad child is dropped, not its whole entry."""
    entries = normalize_object_entries(raw, field.children)
    issues: list[ExtractionIssue] = []
    kept: list[dict[str, str]] = []
    for entry in entries:
        record: dict[str, str] = {}
        for child in field.children:
            value = entry.get(child.id)
            if not value:
                continue
            ok, message = validate_value(value, child.kind)
            if not ok:
                issues.append(
                    _issue(
                        IssueCode.VALIDATION_FAILED,
                        f"{child.label}: {message}",
                        field,
                        "warning",
                        child=child.id,
                        value=value,
                    )
                )
                continue
            record[child.id] = value
        if record:
            kept.append(record)

    if not kept:
        if field.required:
            message = (
                "All object entries were invalid for required field."
                if entries
                else "No valid entries for required object list field."
            )
            issues.append(_issue(IssueCode.MISSING_REQUIRED, message, field, "error", raw_value=raw))
        return SanitizedField(issues=issues)
    return SanitizedField(value=kept, issues=issues)


def sanitize_field_value(field: FieldDefinition, raw: Any) -> SanitizedField:
    """Dispatch on the field kind."""
    if field.kind in ("scalar", "date"):
        return sanitize_scalar(field, raw)
    if field.kind == "string_list":
        return sanitize_string_list(field, raw)
    if field.kind == "object_list":
        return sanitize_object_list(field, raw)
    raise ValueError(f"Unknown field kind: {field.kind}")


def normalize_extracted_fields(
    arguments: Mapping[str, Any],
    requested_field_ids: Iterable[str],
    fields: Iterable[FieldDefinition],
) -> NormalizedFields:
    """
    Sanitize every requested field of a tool payload.
    Omitted fields are errors only when required. Any error fails the payload as a whole;
    the caller decides whether to retry or surface the first one.
    """
    catalog = {f.id: f for f in fields}
    source = coerce_aliases(arguments, [(f.id, f.aliases) for f in catalog.values()])
    result = NormalizedFields()

    for field_id in requested_field_ids:
        field = catalog.get(field_id)
        if field is None:
            continue
        if field_id not in source:
            if field.required:
                result.errors.append(
                    _issue(
                        IssueCode.MISSING_REQUIRED,
                        "Required field was omitted from the tool output.",
                        field,
                        "error",
                    )
                )
            continue
        sanitized = sanitize_field_value(field, source[field_id])
        for issue in sanitized.issues:
            (result.errors if issue.level == "error" else result.warnings).append(issue)
        if sanitized.value is not None:
            result.fields[field_id] = sanitized.value

    return result
