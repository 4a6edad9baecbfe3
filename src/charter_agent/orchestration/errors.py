"""Session-protocol errors raised to callers of the orchestrator and runtime."""

from __future__ import annotations


class CharterSessionError(Exception):
    """Base class; `code` is a stable machine-readable identifier."""

    code = "session_error"

    def __init__(self, message: str, *, conversation_id: str | None = None) -> None:
        super().__init__(message)
        self.conversation_id = conversation_id


class SessionNotFoundError(CharterSessionError):
    code = "session_not_found"

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Unknown conversation: {conversation_id}", conversation_id=conversation_id)


class InvalidInteractionError(CharterSessionError):
    code = "invalid_interaction"


class SessionExpiredError(CharterSessionError):
    """The conversation existed but was dropped after sitting idle."""

    code = "session_expired"

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation expired: {conversation_id}", conversation_id=conversation_id)
