"""User turn classification: navigation commands and yes/no replies to a proposal."""

from __future__ import annotations

import re
from collections.abc import Iterable
from enum import Enum

from pydantic import BaseModel

from charter_agent.config.models import FieldDefinition


class CommandType(str, Enum):
    """Fixed command vocabulary."""

    SKIP = "skip"
    BACK = "back"
    REVIEW = "review"
    EDIT = "edit"


class Command(BaseModel):
    type: CommandType
    target: str | None = None


class ConfirmationReply(str, Enum):
    """How a reply to a pending proposal reads."""

    AFFIRMATIVE = "affirmative"
    NEGATIVE = "negative"
    OTHER = "other"


SKIP_PHRASES = {"skip", "skip field"}
BACK_PHRASES = {"back", "go back"}
REVIEW_PHRASES = {"review", "review progress", "review summary"}

AFFIRMATIVE_RESPONSES = {
    "yes",
    "y",
    "yeah",
    "yep",
    "yup",
    "sure",
    "ok",
    "okay",
    "confirm",
    "confirmed",
    "correct",
    "that's right",
    "that is right",
    "looks good",
    "sounds good",
    "save",
    "save it",
}

NEGATIVE_RESPONSES = {
    "no",
    "n",
    "nope",
    "nah",
    "reject",
    "incorrect",
    "wrong",
    "not quite",
    "try again",
    "cancel",
}

_WHITESPACE_RE = re.compile(r"\s+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def normalize_whitespace(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value).strip()


def parse_command(raw: str) -> Command | None:
    """
    Match raw text against the command vocabulary (case-insensitive, optional leading '/').
    Return None when the text should be treated as an answer.
    """
    text = normalize_whitespace(raw).lstrip("/").strip()
    if not text:
        return None
    lower = text.lower()

    if lower in SKIP_PHRASES:
        return Command(type=CommandType.SKIP)
    if lower in BACK_PHRASES:
        return Command(type=CommandType.BACK)
    if lower in REVIEW_PHRASES:
        return Command(type=CommandType.REVIEW)
    if lower == "edit" or lower.startswith("edit "):
        target = text[4:].strip()
        return Command(type=CommandType.EDIT, target=target or None)
    return None


def classify_confirmation(raw: str) -> ConfirmationReply:
    """Exact match against the yes/no sets after whitespace and case normalization."""
    text = normalize_whitespace(raw).lower()
    if text in AFFIRMATIVE_RESPONSES:
        return ConfirmationReply.AFFIRMATIVE
    if text in NEGATIVE_RESPONSES:
        return ConfirmationReply.NEGATIVE
    return ConfirmationReply.OTHER


def find_field_id(raw: str | None, fields: Iterable[FieldDefinition]) -> str | None:
    """Resolve 'edit <target>' against field ids and labels, ignoring case and punctuation."""
    if not raw:
        return None
    normalized = raw.strip().lower()
    if not normalized:
        return None
    collapsed = _NON_ALNUM_RE.sub("", normalized)
    for field in fields:
        candidates = [field.id, field.label, *([field.review_label] if field.review_label else [])]
        for candidate in candidates:
            lowered = candidate.lower()
            if lowered == normalized or _NON_ALNUM_RE.sub("", lowered) == collapsed:
                return field.id
    return None
