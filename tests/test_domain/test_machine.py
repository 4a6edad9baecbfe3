"""Guided session reducer: transitions, advancing, pending proposals."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from charter_agent.domain.events import (
    Ask,
    Back,
    Capture,
    Complete,
    Confirm,
    ConfirmPending,
    Propose,
    Reject,
    RejectPending,
    Reset,
    Skip,
    Start,
    Validate,
)
from charter_agent.domain.machine import create_initial_state, reduce
from charter_agent.domain.state import FieldStatus, GuidedState, GuidedStatus

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _run(state: GuidedState, *events) -> GuidedState:
    for event in events:
        state = reduce(state, event, now=NOW)
    return state


@pytest.fixture
def started() -> GuidedState:
    return _run(create_initial_state(["name", "date", "milestones"]), Start())


def test_initial_state_is_idle() -> None:
    state = create_initial_state(["a", "b"])
    assert state.status == GuidedStatus.IDLE
    assert state.current_field_id == "a"
    assert state.order == ("a", "b")
    assert all(fs.status == FieldStatus.PENDING for fs in state.fields.values())


def test_start_asks_first_field(started: GuidedState) -> None:
    assert started.status == GuidedStatus.ASKING
    assert started.current_field_id == "name"
    assert started.started_at == NOW
    assert started.fields["name"].status == FieldStatus.ASKING
    assert started.fields["name"].last_asked_at == NOW
    assert started.waiting.assistant is True


def test_name_then_date_scenario(started: GuidedState) -> None:
    state = _run(started, Capture(field_id="name", value=""), Validate(field_id="name", valid=False, issues=["This field is required."]))
    assert state.fields["name"].status == FieldStatus.REJECTED
    assert state.fields["name"].issues == ["This field is required."]
    assert state.current_field_id == "name"

    state = _run(state, Capture(field_id="name", value="Acme"), Validate(field_id="name", valid=True))
    assert state.fields["name"].status == FieldStatus.CONFIRMED
    assert state.current_field_id == "name"

    state = _run(state, Confirm(field_id="name"))
    assert state.current_field_id == "date"
    assert state.fields["name"].status == FieldStatus.CONFIRMED
    assert state.fields["name"].confirmed_value == "Acme"
    assert state.fields["date"].status == FieldStatus.ASKING


def test_confirm_requires_a_captured_value(started: GuidedState) -> None:
    assert reduce(started, Confirm(field_id="name"), now=NOW) is started

    captured = reduce(started, Capture(field_id="name", value="Acme"), now=NOW)
    assert captured.status == GuidedStatus.CAPTURING
    assert captured.waiting.validation is True
    confirmed = reduce(captured, Confirm(), now=NOW)
    fs = confirmed.fields["name"]
    assert fs.status == FieldStatus.CONFIRMED
    assert fs.confirmed_value == fs.value == "Acme"


def test_reject_keeps_field_active(started: GuidedState) -> None:
    state = _run(started, Capture(field_id="name", value="x"), Reject(field_id="name", issues=["nope"]))
    assert state.current_field_id == "name"
    assert state.status == GuidedStatus.ASKING
    assert state.fields["name"].status == FieldStatus.REJECTED
    assert state.fields["name"].issues == ["nope"]


def test_pending_proposal_confirmed(started: GuidedState) -> None:
    value = [{"phase": "Build", "deliverable": "MVP"}]
    state = _run(started, Ask(field_id="milestones"))
    state = _run(state, Propose(field_id="milestones", value=value, warnings=["bad date"], awaiting_confirmation=True))
    assert state.status == GuidedStatus.CONFIRMING
    assert state.awaiting_confirmation is True
    assert state.pending.warnings == ["bad date"]
    assert state.fields["milestones"].status == FieldStatus.CAPTURED
    assert state.fields["milestones"].confirmed_value is None

    state = _run(state, ConfirmPending())
    assert state.pending is None
    assert state.fields["milestones"].status == FieldStatus.CONFIRMED
    assert state.fields["milestones"].confirmed_value == value
    # milestones was last, but name and date are still open; advancing only looks forward.
    assert state.status == GuidedStatus.COMPLETE
    assert state.current_field_id is None


def test_pending_proposal_rejected_is_clean_retry(started: GuidedState) -> None:
    state = _run(started, Propose(field_id="name", value="Acme", warnings=["hm"]), RejectPending())
    fs = state.fields["name"]
    assert state.pending is None
    assert state.current_field_id == "name"
    assert state.status == GuidedStatus.ASKING
    assert fs.status == FieldStatus.ASKING
    assert fs.value is None
    assert fs.issues == []


def test_asking_elsewhere_drops_pending(started: GuidedState) -> None:
    state = _run(started, Propose(field_id="name", value="Acme", warnings=["hm"]), Ask(field_id="date"))
    assert state.pending is None
    assert state.fields["name"].status == FieldStatus.PENDING
    assert state.fields["name"].value is None
    assert state.current_field_id == "date"


def test_propose_without_confirmation_commits(started: GuidedState) -> None:
    state = _run(started, Propose(field_id="name", value="Acme", awaiting_confirmation=False))
    fs = state.fields["name"]
    assert fs.status == FieldStatus.CONFIRMED
    assert fs.confirmed_value == "Acme"
    assert state.pending is None
    assert state.current_field_id == "name"
    assert _run(state, Confirm()).current_field_id == "date"


def test_back_preserves_confirmed_value(started: GuidedState) -> None:
    state = _run(started, Capture(field_id="name", value="Acme"), Confirm())
    assert state.current_field_id == "date"
    state = _run(state, Back())
    assert state.current_field_id == "name"
    assert state.fields["name"].status == FieldStatus.ASKING
    assert state.fields["name"].confirmed_value == "Acme"
    assert state.fields["name"].value == "Acme"


def test_back_at_first_field_is_noop(started: GuidedState) -> None:
    assert reduce(started, Back(), now=NOW) is started


def test_skip_advances_and_completes(started: GuidedState) -> None:
    state = _run(started, Capture(field_id="name", value="Acme"), Skip(reason="later"))
    assert state.fields["name"].status == FieldStatus.SKIPPED
    assert state.fields["name"].value is None
    assert state.fields["name"].skipped_reason == "later"
    assert state.current_field_id == "date"

    state = _run(state, Skip(), Skip())
    assert state.status == GuidedStatus.COMPLETE
    assert state.current_field_id is None
    assert state.completed_at == NOW


def test_start_after_complete_reinitializes(started: GuidedState) -> None:
    done = _run(started, Capture(field_id="name", value="Acme"), Confirm(), Skip(), Skip())
    assert done.status == GuidedStatus.COMPLETE
    restarted = _run(done, Start())
    assert restarted.status == GuidedStatus.ASKING
    assert restarted.current_field_id == "name"
    assert restarted.completed_at is None
    assert restarted.fields["name"].confirmed_value is None
    assert restarted.fields["date"].status == FieldStatus.PENDING


def test_explicit_complete_and_reset(started: GuidedState) -> None:
    done = _run(started, Complete())
    assert done.status == GuidedStatus.COMPLETE
    assert done.current_field_id is None
    reset = _run(done, Reset())
    assert reset.status == GuidedStatus.IDLE
    assert reset.order == started.order


def test_unknown_field_ids_leave_state_unchanged(started: GuidedState) -> None:
    assert reduce(started, Capture(field_id="ghost", value="x"), now=NOW) is started
    assert reduce(started, Ask(field_id="ghost"), now=NOW) is started
    assert reduce(started, Skip(field_id="ghost"), now=NOW) is started


def test_validate_uses_normalized_value(started: GuidedState) -> None:
    state = _run(
        started,
        Capture(field_id="date", value=" 2024-03-01 "),
        Validate(field_id="date", normalized_value="2024-03-01"),
    )
    assert state.fields["date"].value == "2024-03-01"
    assert state.fields["date"].confirmed_value == "2024-03-01"


def test_unsupported_event_raises(started: GuidedState) -> None:
    with pytest.raises(TypeError):
        reduce(started, object())  # type: ignore[arg-type]
