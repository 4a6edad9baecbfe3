"""Pytest fixtures: small field catalogs, the bundled charter config, mock LLM, stores."""

from __future__ import annotations

from pathlib import Path

import pytest

from charter_agent.config.loader import load_config
from charter_agent.config.models import AgentConfig, ChildFieldDefinition, FieldDefinition
from charter_agent.infrastructure.llm_client import MockLLMClient
from charter_agent.infrastructure.state_store import InMemorySessionStore


@pytest.fixture
def two_field_config() -> AgentConfig:
    """Required name + required date, the smallest useful catalog."""
    return AgentConfig(
        name="TestAgent",
        fields=[
            FieldDefinition(
                id="name",
                label="Project Name",
                question="What is the project called?",
                required=True,
                max_length=40,
            ),
            FieldDefinition(
                id="date",
                label="Start Date",
                question="When does it start?",
                required=True,
                kind="date",
            ),
        ],
    )


@pytest.fixture
def list_config() -> AgentConfig:
    """Catalog with an optional list field whose long entries produce warnings."""
    return AgentConfig(
        name="TestAgent",
        fields=[
            FieldDefinition(id="risks", label="Risks", question="Any risks?", kind="string_list", max_length=10),
            FieldDefinition(id="name", label="Project Name", question="What is it called?", required=True),
        ],
    )


@pytest.fixture
def milestone_field() -> FieldDefinition:
    return FieldDefinition(
        id="milestones",
        label="Milestones",
        kind="object_list",
        children=[
            ChildFieldDefinition(id="phase", label="Phase"),
            ChildFieldDefinition(id="deliverable", label="Deliverable"),
            ChildFieldDefinition(id="date", label="Target Date", kind="date", aliases=("targetDate", "due")),
        ],
    )


@pytest.fixture
def mock_llm() -> MockLLMClient:
    """Mock LLM that makes no tool call until scripted responses are set."""
    return MockLLMClient()


@pytest.fixture
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def configs_dir() -> Path:
    """Path to the bundled configs directory."""
    return Path(__file__).resolve().parent.parent / "configs"


@pytest.fixture
def charter_config(configs_dir: Path) -> AgentConfig:
    return load_config(configs_dir / "charter_agent.yaml")
