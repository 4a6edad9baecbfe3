"""Validators: required, ISO date, text length, kind dispatch."""

from __future__ import annotations

import pytest

from charter_agent.domain.validators import (
    DATE_MESSAGE,
    REQUIRED_MESSAGE,
    is_valid_iso_date,
    validate_date,
    validate_required,
    validate_text,
    validate_value,
)


@pytest.mark.parametrize("value", ["2024-02-29", "2024-03-01", "1999-12-31"])
def test_valid_iso_dates_accepted(value: str) -> None:
    assert is_valid_iso_date(value) is True
    assert validate_date(value) == (True, "")


@pytest.mark.parametrize("value", ["2024-02-30", "2024-13-01", "2023-02-29", "2024-3-1", "03/01/2024", ""])
def test_invalid_dates_rejected(value: str) -> None:
    ok, msg = validate_date(value)
    assert ok is False
    assert msg == DATE_MESSAGE


def test_validate_required() -> None:
    assert validate_required("x") == (True, "")
    assert validate_required("   ") == (False, REQUIRED_MESSAGE)


def test_validate_text_max_length() -> None:
    assert validate_text("Alpha", 5) == (True, "")
    ok, msg = validate_text("Longer", 5)
    assert ok is False
    assert msg == "Enter 5 characters or fewer."
    assert validate_text("anything goes", None) == (True, "")


def test_validate_value_dispatch() -> None:
    assert validate_value("", "date") == (True, "")
    assert validate_value("", "date", required=True) == (False, REQUIRED_MESSAGE)
    assert validate_value("2024-02-30", "date")[0] is False
    assert validate_value(" 2024-02-29 ", "date") == (True, "")
    assert validate_value("abcdef", "scalar", max_length=3)[0] is False
