"""Pure validators for single field values: required, ISO date, text length. No I/O."""

from __future__ import annotations

import re
from datetime import date

REQUIRED_MESSAGE = "This field is required."
DATE_MESSAGE = "Enter a valid date in YYYY-MM-DD format."

ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


def is_valid_iso_date(value: str) -> bool:
    """True only for a real calendar date written as YYYY-MM-DD."""
    match = ISO_DATE_RE.match(value)
    if not match:
        return False
    year, month, day = (int(part) for part in match.groups())
    try:
        date(year, month, day)
    except ValueError:
        return False
    return True


def validate_required(value: str) -> tuple[bool, str]:
    """Return (is_valid, error_message)."""
    if not value.strip():
        return False, REQUIRED_MESSAGE
    return True, ""


def validate_date(value: str) -> tuple[bool, str]:
    """Return (is_valid, error_message)."""
    v = value.strip()
    if not v or not is_valid_iso_date(v):
        return False, DATE_MESSAGE
    return True, ""


def validate_text(value: str, max_length: int | None = None) -> tuple[bool, str]:
    """Blank text passes; required-ness is checked separately."""
    if not value.strip():
        return True, ""
    if max_length and len(value) > max_length:
        return False, f"Enter {max_length} characters or fewer."
    return True, ""


def validate_value(
    value: str,
    kind: str,
    required: bool = False,
    max_length: int | None = None,
) -> tuple[bool, str]:
    """
    Validate one textual value for a field or child of the given kind.
    List kinds validate each entry as text.
    """
    if required:
        ok, msg = validate_required(value)
        if not ok:
            return ok, msg
    trimmed = value.strip()
    if not trimmed:
        return True, ""
    if kind == "date":
        return validate_date(trimmed)
    return validate_text(trimmed, max_length)
