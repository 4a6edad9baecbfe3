"""Configuration loading and validation."""

from charter_agent.config.models import (
    AgentConfig,
    ChildFieldDefinition,
    ExtractionSettings,
    FieldDefinition,
    MessagesConfig,
    SessionSettings,
)
from charter_agent.config.loader import load_config, resolve_extraction_settings

__all__ = [
    "AgentConfig",
    "ChildFieldDefinition",
    "ExtractionSettings",
    "FieldDefinition",
    "MessagesConfig",
    "SessionSettings",
    "load_config",
    "resolve_extraction_settings",
]
