"""Assistant copy: field prompts, value formatting and the review summary."""

from __future__ import annotations

from charter_agent.config.models import AgentConfig, FieldDefinition
from charter_agent.domain.state import FieldStatus, FieldValue, GuidedFieldState, GuidedState, GuidedStatus

SKIP_HINT = 'Share your response or type "skip" to move on.'
CONFIRM_HINT = 'Reply "yes" to save it or "no" to try again.'


def format_list(items: list[str]) -> str:
    """'a', 'a and b', 'a, b, and c'."""
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    if len(items) == 2:
        return f"{items[0]} and {items[1]}"
    return f"{', '.join(items[:-1])}, and {items[-1]}"


def format_field_value(field: FieldDefinition | None, value: FieldValue | None) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    labels = {c.id: c.label for c in field.children} if field is not None else {}
    parts: list[str] = []
    for entry in value:
        if isinstance(entry, dict):
            pairs = [f"{labels.get(key, key)}: {text}" for key, text in entry.items() if text]
            if pairs:
                parts.append(", ".join(pairs))
        elif entry:
            parts.append(str(entry))
    separator = "; " if any(isinstance(entry, dict) for entry in value) else ", "
    return separator.join(parts)


def as_sentence(text: str) -> str:
    text = text.strip()
    if not text or text[-1] in ".?!":
        return text
    return text + "."


def format_field_prompt(field: FieldDefinition, field_state: GuidedFieldState | None = None) -> str:
    """One-message prompt for a field, including its current answer when there is one."""
    status = "required" if field.required else "optional"
    parts = [f"{field.label} ({status})."]
    if field.question:
        parts.append(as_sentence(field.question))
    if field.help_text:
        parts.append(as_sentence(field.help_text))
    if field.example:
        parts.append(as_sentence(f"Example: {field.example}"))
    if field_state is not None:
        current = field_state.confirmed_value if field_state.confirmed_value is not None else field_state.value
        formatted = format_field_value(field, current)
        if formatted:
            parts.append(as_sentence(f"Current answer: {formatted}"))
    parts.append(SKIP_HINT)
    return " ".join(parts)


def build_review_summary(state: GuidedState, config: AgentConfig) -> str:
    document = config.document_label
    if state.status == GuidedStatus.IDLE:
        return f"Start the {document} session to see progress."

    confirmed: list[str] = []
    skipped: list[str] = []
    in_progress: list[str] = []
    for field in config.fields:
        fs = state.fields.get(field.id)
        if fs is None:
            continue
        if fs.status == FieldStatus.CONFIRMED:
            confirmed.append(field.display_label)
        elif fs.status == FieldStatus.SKIPPED:
            skipped.append(field.display_label)
        else:
            in_progress.append(field.display_label)

    complete = state.status == GuidedStatus.COMPLETE
    lines: list[str] = []
    if complete:
        lines.append(f"All {document} sections are complete.")
    if confirmed:
        lines.append(f"Confirmed: {format_list(confirmed)}.")
    if skipped:
        lines.append(f"Skipped: {format_list(skipped)}.")
    if not complete and in_progress:
        lines.append(f"Still in progress: {format_list(in_progress)}.")
    if not complete:
        current = config.field(state.current_field_id)
        if current is not None:
            lines.append(f"Currently focused on {current.display_label}.")

    if not lines:
        lines.append(f"We haven't captured any {document} responses yet.")
    return "Review summary: " + " ".join(lines)
