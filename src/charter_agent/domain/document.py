"""Project a guided state onto the plain document mapping used by renderers."""

from __future__ import annotations

import copy

from charter_agent.domain.state import FieldStatus, FieldValue, GuidedState


def to_document_dto(state: GuidedState | None) -> dict[str, FieldValue]:
    """field_id -> confirmed value, in catalog order, for confirmed fields only."""
    dto: dict[str, FieldValue] = {}
    if state is None:
        return dto
    for field_id in state.order:
        fs = state.fields.get(field_id)
        if fs is None or fs.status != FieldStatus.CONFIRMED or fs.confirmed_value is None:
            continue
        dto[field_id] = copy.deepcopy(fs.confirmed_value)
    return dto
