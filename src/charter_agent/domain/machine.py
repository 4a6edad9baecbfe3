"""Guided session FSM: pure reducer over GuidedState snapshots.

Every handler takes the current snapshot, the event and a timestamp, and returns
a new snapshot (or the same object when the event does not apply). Nothing here
performs I/O or reads the clock, except `reduce` defaulting `now` to the current
UTC time when the caller does not pass one.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime, timezone

from charter_agent.domain.events import (
    Ask,
    Back,
    Capture,
    Complete,
    Confirm,
    ConfirmPending,
    GuidedEvent,
    Propose,
    Reject,
    RejectPending,
    Reset,
    Skip,
    Start,
    Validate,
)
from charter_agent.domain.state import (
    ASSISTANT_WAITING,
    IDLE_WAITING,
    TERMINAL_FIELD_STATUSES,
    USER_WAITING,
    VALIDATION_WAITING,
    FieldStatus,
    GuidedFieldState,
    GuidedState,
    GuidedStatus,
    PendingProposal,
    WaitingState,
)

Fields = dict[str, GuidedFieldState]


def create_initial_state(field_ids: Sequence[str]) -> GuidedState:
    """Idle state with every field pending; the first field is nominally current."""
    order = tuple(field_ids)
    return GuidedState(
        status=GuidedStatus.IDLE,
        current_field_id=order[0] if order else None,
        order=order,
        fields={field_id: GuidedFieldState(id=field_id) for field_id in order},
    )


def _drop_pending(state: GuidedState, fields: Fields, keep_field_id: str | None = None) -> None:
    """
    Forget the pending proposal. Unless the event targets the proposed field itself,
    that field falls back to its last confirmed value.
    """
    pending = state.pending
    if pending is None or pending.field_id == keep_field_id:
        return
    fs = fields.get(pending.field_id)
    if fs is None or fs.status != FieldStatus.CAPTURED:
        return
    fields[pending.field_id] = fs.model_copy(
        update={
            "value": fs.confirmed_value,
            "status": FieldStatus.CONFIRMED if fs.confirmed_value is not None else FieldStatus.PENDING,
        }
    )


def _next_open_field(state: GuidedState, fields: Fields, from_field_id: str) -> str | None:
    """First field after from_field_id in order that is neither confirmed nor skipped."""
    start = state.order.index(from_field_id) if from_field_id in state.order else -1
    for field_id in state.order[start + 1:]:
        fs = fields.get(field_id)
        if fs is not None and fs.status not in TERMINAL_FIELD_STATUSES:
            return field_id
    return None


def _complete(state: GuidedState, fields: Fields, ts: datetime) -> GuidedState:
    return state.model_copy(
        update={
            "fields": fields,
            "status": GuidedStatus.COMPLETE,
            "current_field_id": None,
            "waiting": IDLE_WAITING,
            "completed_at": state.completed_at or ts,
            "pending": None,
        }
    )


def _advance(state: GuidedState, fields: Fields, from_field_id: str, ts: datetime) -> GuidedState:
    next_id = _next_open_field(state, fields, from_field_id)
    if next_id is None:
        return _complete(state, fields, ts)
    fields[next_id] = fields[next_id].model_copy(
        update={"status": FieldStatus.ASKING, "issues": [], "last_asked_at": ts}
    )
    return state.model_copy(
        update={
            "fields": fields,
            "status": GuidedStatus.ASKING,
            "current_field_id": next_id,
            "waiting": ASSISTANT_WAITING,
            "pending": None,
        }
    )


def _ask_field(
    state: GuidedState,
    field_id: str,
    ts: datetime,
    waiting: WaitingState = USER_WAITING,
) -> GuidedState:
    fields = dict(state.fields)
    # Re-asking keeps prior answers; only an unconfirmed proposal is discarded.
    _drop_pending(state, fields)
    fields[field_id] = fields[field_id].model_copy(
        update={
            "status": FieldStatus.ASKING,
            "issues": [],
            "skipped_reason": None,
            "last_asked_at": ts,
        }
    )
    return state.model_copy(
        update={
            "fields": fields,
            "status": GuidedStatus.ASKING,
            "current_field_id": field_id,
            "waiting": waiting,
            "pending": None,
        }
    )


# --- Handlers ---


def _on_reset(state: GuidedState, event: Reset, ts: datetime) -> GuidedState:
    return create_initial_state(state.order)


def _on_start(state: GuidedState, event: Start, ts: datetime) -> GuidedState:
    # Starting over after completion wipes every field, not just the status.
    base = create_initial_state(state.order) if state.status == GuidedStatus.COMPLETE else state
    base = base.model_copy(update={"started_at": base.started_at or ts})
    if not base.order:
        return _complete(base, dict(base.fields), ts)
    return _ask_field(base, base.order[0], ts, waiting=ASSISTANT_WAITING)


def _on_ask(state: GuidedState, event: Ask, ts: datetime) -> GuidedState:
    target = event.field_id or state.current_field_id or (state.order[0] if state.order else None)
    if target is None:
        if state.status == GuidedStatus.COMPLETE:
            return state
        return _complete(state, dict(state.fields), ts)
    if target not in state.fields:
        return state
    return _ask_field(state, target, ts)


def _on_capture(state: GuidedState, event: Capture, ts: datetime) -> GuidedState:
    fs = state.fields.get(event.field_id)
    if fs is None:
        return state
    fields = dict(state.fields)
    _drop_pending(state, fields, keep_field_id=event.field_id)
    fields[event.field_id] = fs.model_copy(
        update={
            "status": FieldStatus.CAPTURED,
            "value": event.value,
            "issues": [],
            "skipped_reason": None,
            "last_updated_at": ts,
        }
    )
    return state.model_copy(
        update={
            "fields": fields,
            "status": GuidedStatus.CAPTURING,
            "current_field_id": event.field_id,
            "waiting": VALIDATION_WAITING,
            "pending": None,
        }
    )


def _on_validate(state: GuidedState, event: Validate, ts: datetime) -> GuidedState:
    fs = state.fields.get(event.field_id)
    if fs is None:
        return state
    fields = dict(state.fields)
    _drop_pending(state, fields, keep_field_id=event.field_id)
    valid = event.valid if event.valid is not None else not event.issues
    if valid:
        if event.normalized_value is not None:
            normalized = event.normalized_value
        elif event.value is not None:
            normalized = event.value
        else:
            normalized = fs.value
        fields[event.field_id] = fs.model_copy(
            update={
                "status": FieldStatus.CONFIRMED,
                "value": normalized,
                "confirmed_value": normalized,
                "issues": [],
                "skipped_reason": None,
                "last_updated_at": ts,
            }
        )
        status, waiting = GuidedStatus.CONFIRMING, ASSISTANT_WAITING
    else:
        fields[event.field_id] = fs.model_copy(
            update={
                "status": FieldStatus.REJECTED,
                "issues": list(event.issues),
                "last_updated_at": ts,
            }
        )
        status, waiting = GuidedStatus.ASKING, USER_WAITING
    return state.model_copy(
        update={
            "fields": fields,
            "status": status,
            "current_field_id": event.field_id,
            "waiting": waiting,
            "pending": None,
        }
    )


def _on_confirm(state: GuidedState, event: Confirm, ts: datetime) -> GuidedState:
    target = event.field_id or state.current_field_id
    fs = state.fields.get(target) if target else None
    if fs is None:
        return state
    # Only a captured (or already validated) value can be committed.
    if fs.status not in (FieldStatus.CAPTURED, FieldStatus.CONFIRMED) or fs.value is None:
        return state
    fields = dict(state.fields)
    _drop_pending(state, fields, keep_field_id=target)
    fields[target] = fs.model_copy(
        update={
            "status": FieldStatus.CONFIRMED,
            "confirmed_value": fs.value,
            "issues": [],
            "skipped_reason": None,
            "last_updated_at": ts,
        }
    )
    return _advance(state, fields, target, ts)


def _on_reject(state: GuidedState, event: Reject, ts: datetime) -> GuidedState:
    fs = state.fields.get(event.field_id)
    if fs is None:
        return state
    fields = dict(state.fields)
    _drop_pending(state, fields, keep_field_id=event.field_id)
    fields[event.field_id] = fs.model_copy(
        update={
            "status": FieldStatus.REJECTED,
            "issues": list(event.issues),
            "last_updated_at": ts,
        }
    )
    return state.model_copy(
        update={
            "fields": fields,
            "status": GuidedStatus.ASKING,
            "current_field_id": event.field_id,
            "waiting": USER_WAITING,
            "pending": None,
        }
    )


def _on_skip(state: GuidedState, event: Skip, ts: datetime) -> GuidedState:
    target = event.field_id or state.current_field_id
    fs = state.fields.get(target) if target else None
    if fs is None:
        return state
    fields = dict(state.fields)
    _drop_pending(state, fields, keep_field_id=target)
    fields[target] = fs.model_copy(
        update={
            "status": FieldStatus.SKIPPED,
            "value": None,
            "confirmed_value": None,
            "issues": [],
            "skipped_reason": event.reason,
            "last_updated_at": ts,
        }
    )
    return _advance(state, fields, target, ts)


def _on_back(state: GuidedState, event: Back, ts: datetime) -> GuidedState:
    if state.current_field_id not in state.order:
        return state
    index = state.order.index(state.current_field_id)
    if index <= 0:
        return state
    return _ask_field(state, state.order[index - 1], ts, waiting=ASSISTANT_WAITING)


def _on_complete(state: GuidedState, event: Complete, ts: datetime) -> GuidedState:
    if state.status == GuidedStatus.COMPLETE:
        return state
    fields = dict(state.fields)
    _drop_pending(state, fields)
    return _complete(state, fields, ts)


def _on_propose(state: GuidedState, event: Propose, ts: datetime) -> GuidedState:
    fs = state.fields.get(event.field_id)
    if fs is None:
        return state
    fields = dict(state.fields)
    _drop_pending(state, fields, keep_field_id=event.field_id)
    if event.awaiting_confirmation:
        fields[event.field_id] = fs.model_copy(
            update={
                "status": FieldStatus.CAPTURED,
                "value": event.value,
                "issues": [],
                "skipped_reason": None,
                "last_updated_at": ts,
            }
        )
        return state.model_copy(
            update={
                "fields": fields,
                "status": GuidedStatus.CONFIRMING,
                "current_field_id": event.field_id,
                "waiting": USER_WAITING,
                "pending": PendingProposal(
                    field_id=event.field_id,
                    value=event.value,
                    warnings=list(event.warnings),
                    awaiting_confirmation=True,
                ),
            }
        )
    fields[event.field_id] = fs.model_copy(
        update={
            "status": FieldStatus.CONFIRMED,
            "value": event.value,
            "confirmed_value": event.value,
            "issues": [],
            "skipped_reason": None,
            "last_updated_at": ts,
        }
    )
    return state.model_copy(
        update={
            "fields": fields,
            "current_field_id": event.field_id,
            "waiting": ASSISTANT_WAITING,
            "pending": None,
        }
    )


def _on_confirm_pending(state: GuidedState, event: ConfirmPending, ts: datetime) -> GuidedState:
    pending = state.pending
    if pending is None:
        return state
    fields = dict(state.fields)
    fs = fields.get(pending.field_id)
    if fs is None:
        return state.model_copy(update={"pending": None})
    fields[pending.field_id] = fs.model_copy(
        update={
            "status": FieldStatus.CONFIRMED,
            "value": pending.value,
            "confirmed_value": pending.value,
            "issues": [],
            "skipped_reason": None,
            "last_updated_at": ts,
        }
    )
    return _advance(state, fields, pending.field_id, ts)


def _on_reject_pending(state: GuidedState, event: RejectPending, ts: datetime) -> GuidedState:
    pending = state.pending
    if pending is None:
        return state
    fields = dict(state.fields)
    fs = fields.get(pending.field_id)
    if fs is None:
        return state.model_copy(update={"pending": None})
    fields[pending.field_id] = fs.model_copy(
        update={
            "status": FieldStatus.ASKING,
            "value": fs.confirmed_value,
            "issues": [],
            "skipped_reason": None,
            "last_asked_at": ts,
        }
    )
    return state.model_copy(
        update={
            "fields": fields,
            "status": GuidedStatus.ASKING,
            "current_field_id": pending.field_id,
            "waiting": USER_WAITING,
            "pending": None,
        }
    )


_HANDLERS: dict[type, Callable[[GuidedState, GuidedEvent, datetime], GuidedState]] = {
    Reset: _on_reset,
    Start: _on_start,
    Ask: _on_ask,
    Capture: _on_capture,
    Validate: _on_validate,
    Confirm: _on_confirm,
    Reject: _on_reject,
    Skip: _on_skip,
    Back: _on_back,
    Complete: _on_complete,
    Propose: _on_propose,
    ConfirmPending: _on_confirm_pending,
    RejectPending: _on_reject_pending,
}


def reduce(state: GuidedState, event: GuidedEvent, *, now: datetime | None = None) -> GuidedState:
    """
    Pure transition: apply one event to a snapshot and return the next snapshot.
    Events that reference unknown fields, or do not apply, return `state` unchanged.
    """
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise TypeError(f"Unsupported guided event: {type(event).__name__}")
    return handler(state, event, now or datetime.now(timezone.utc))
