"""FieldExtractor: tool-call outcomes mapped onto success and typed failures."""

from __future__ import annotations

import asyncio

from charter_agent.config.models import AgentConfig
from charter_agent.domain.extraction import (
    ConversationMessage,
    ErrorCode,
    ExtractionFailure,
    ExtractionRequest,
    ExtractionSuccess,
)
from charter_agent.infrastructure.llm_client import LLMConfigurationError, LLMTransportError, MockLLMClient
from charter_agent.orchestration.extraction import ExtractionClient, FieldExtractor


def _extract(config: AgentConfig, responses: list, field_ids: list[str], **kwargs):
    mock = MockLLMClient(responses=responses)
    extractor = FieldExtractor(config, mock)
    request = ExtractionRequest(requested_field_ids=field_ids, **kwargs)
    return asyncio.run(extractor.extract(request)), mock


def test_success_without_warnings(two_field_config: AgentConfig) -> None:
    result, mock = _extract(
        two_field_config,
        [{"name": "  Acme  "}],
        ["name"],
        messages=[ConversationMessage(role="user", content="Acme")],
    )
    assert isinstance(result, ExtractionSuccess)
    assert result.ok is True
    assert result.fields == {"name": "Acme"}
    assert result.warnings == []
    assert result.raw_arguments == {"name": "  Acme  "}

    call = mock.calls[0]
    assert call["tool"]["name"] == "extract_charter_fields"
    assert set(call["tool"]["parameters"]["properties"]) == {"name"}
    assert "USER: Acme" in call["user_message"]
    assert call["model"] == "gpt-4.1-mini"


def test_request_model_overrides_settings(two_field_config: AgentConfig) -> None:
    _, mock = _extract(two_field_config, [{"name": "Acme"}], ["name"], model="gpt-other")
    assert mock.calls[0]["model"] == "gpt-other"


def test_success_with_warnings(list_config: AgentConfig) -> None:
    result, _ = _extract(list_config, [{"risks": ["Budget", "Way too long entry"]}], ["risks"])
    assert result.ok is True
    assert result.fields == {"risks": ["Budget"]}
    assert len(result.warnings) == 1
    assert result.warnings[0].field_id == "risks"


def test_unknown_field_ids_are_not_requested(two_field_config: AgentConfig) -> None:
    result, mock = _extract(two_field_config, [], ["ghost"])
    assert isinstance(result, ExtractionFailure)
    assert result.error.code == ErrorCode.NO_FIELDS_REQUESTED
    assert mock.call_count == 0


def test_missing_tool_call(two_field_config: AgentConfig) -> None:
    result, _ = _extract(two_field_config, [None], ["name"])
    assert result.ok is False
    assert result.error.code == ErrorCode.MISSING_TOOL_CALL


def test_invalid_tool_payload(two_field_config: AgentConfig) -> None:
    for payload in ("{not json", "[1, 2]"):
        result, _ = _extract(two_field_config, [payload], ["name"])
        assert result.ok is False
        assert result.error.code == ErrorCode.INVALID_TOOL_PAYLOAD
        assert result.raw_arguments == payload


def test_transport_and_configuration_errors(two_field_config: AgentConfig) -> None:
    result, _ = _extract(two_field_config, [LLMTransportError("timeout")], ["name"])
    assert result.error.code == ErrorCode.OPENAI_ERROR
    assert result.error.details == {"message": "timeout"}

    result, _ = _extract(two_field_config, [LLMConfigurationError("no key")], ["name"])
    assert result.error.code == ErrorCode.CONFIGURATION
    assert result.error.message == "no key"


def test_validation_failure_names_offending_fields(two_field_config: AgentConfig) -> None:
    result, _ = _extract(two_field_config, [{"date": "2024-02-30"}], ["date"])
    assert result.ok is False
    assert result.error.code == ErrorCode.VALIDATION_FAILED
    assert result.error.message == "Enter a valid date in YYYY-MM-DD format."
    assert result.error.fields == ["date"]


def test_missing_required_field(two_field_config: AgentConfig) -> None:
    result, _ = _extract(two_field_config, [{"date": "2024-03-01"}], ["name", "date"])
    assert result.ok is False
    assert result.error.code == ErrorCode.MISSING_REQUIRED
    assert result.error.fields == ["name"]
    # Partial results still travel with the failure.
    assert result.fields == {"date": "2024-03-01"}


def test_field_extractor_satisfies_protocol(two_field_config: AgentConfig) -> None:
    assert isinstance(FieldExtractor(two_field_config, MockLLMClient()), ExtractionClient)
