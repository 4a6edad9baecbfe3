"""Load and validate agent config from YAML; apply environment overrides."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

import yaml
from pydantic import ValidationError

from charter_agent.config.models import AgentConfig, ExtractionSettings

API_KEY_ENV_VARS = ("OPENAI_API_KEY", "OPENAI_KEY")
MODEL_ENV_VARS = ("CHARTER_EXTRACTION_MODEL", "OPENAI_EXTRACTION_MODEL", "OPENAI_MODEL")
BASE_URL_ENV_VAR = "OPENAI_BASE_URL"


def load_config(path: str | Path) -> AgentConfig:
    """
    Load YAML file and validate into AgentConfig.
    Raises FileNotFoundError, yaml.YAMLError, or ValueError on invalid config.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw)
    if data is None:
        raise ValueError("Config file is empty")

    try:
        return AgentConfig.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid config: {e}") from e


def _first_non_blank(env: Mapping[str, str], names: tuple[str, ...]) -> str | None:
    for name in names:
        value = env.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def resolve_extraction_settings(
    config: AgentConfig,
    env: Mapping[str, str] | None = None,
) -> ExtractionSettings:
    """
    Merge env over the configured extraction settings.
    Env wins for model and API key; the configured base_url wins over OPENAI_BASE_URL.
    """
    env = os.environ if env is None else env
    settings = config.extraction
    updates: dict[str, str] = {}

    model = _first_non_blank(env, MODEL_ENV_VARS)
    if model:
        updates["model"] = model
    api_key = _first_non_blank(env, API_KEY_ENV_VARS)
    if api_key:
        updates["api_key"] = api_key
    if not settings.base_url:
        updates["base_url"] = _first_non_blank(env, (BASE_URL_ENV_VAR,)) or "https://api.openai.com"

    return settings.model_copy(update=updates)
