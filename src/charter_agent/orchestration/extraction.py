"""Extraction client: turn an ExtractionRequest into vetted field values via a forced tool call."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol, runtime_checkable

from charter_agent.config.models import AgentConfig, ExtractionSettings
from charter_agent.domain.extraction import (
    ErrorCode,
    ExtractionError,
    ExtractionFailure,
    ExtractionRequest,
    ExtractionResult,
    ExtractionSuccess,
    IssueCode,
)
from charter_agent.domain.normalizer import normalize_extracted_fields
from charter_agent.infrastructure.llm_client import LLMClient, LLMConfigurationError, LLMTransportError
from charter_agent.orchestration.prompt_builder import (
    build_extraction_input,
    build_system_prompt,
    build_tool_schema,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class ExtractionClient(Protocol):
    """What the orchestrator awaits on every answer turn. Never raises for model failures."""

    async def extract(self, request: ExtractionRequest) -> ExtractionResult:
        ...


def _failure(
    code: ErrorCode,
    message: str,
    details: dict[str, Any] | None = None,
    raw_arguments: Any = None,
) -> ExtractionFailure:
    return ExtractionFailure(
        error=ExtractionError(code=code, message=message, details=details),
        raw_arguments=raw_arguments,
    )


def _parse_arguments(raw: str) -> dict[str, Any]:
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError("Tool arguments must be a JSON object.")
    return parsed


class FieldExtractor:
    """ExtractionClient backed by an LLMClient and the field normalizer."""

    def __init__(self, config: AgentConfig, llm: LLMClient, settings: ExtractionSettings | None = None) -> None:
        self.config = config
        self._llm = llm
        self._settings = settings or config.extraction

    async def extract(self, request: ExtractionRequest) -> ExtractionResult:
        requested = [fid for fid in request.requested_field_ids if self.config.field(fid) is not None]
        if not requested:
            return _failure(
                ErrorCode.NO_FIELDS_REQUESTED,
                f"No valid {self.config.document_label} field ids were requested for extraction.",
            )

        tool_name = self._settings.tool_name
        scoped = request.model_copy(update={"requested_field_ids": requested})
        tool = build_tool_schema(self.config, requested, tool_name)
        system_prompt = build_system_prompt(self.config, tool_name)
        user_message = build_extraction_input(self.config, scoped)

        try:
            raw = await self._llm.complete_tool_call(
                system_prompt, user_message, tool, model=request.model or self._settings.model
            )
        except LLMConfigurationError as e:
            logger.warning("Extraction is not configured: %s", e)
            return _failure(ErrorCode.CONFIGURATION, str(e))
        except LLMTransportError as e:
            logger.warning("Extraction call failed for %s: %s", requested, e)
            return _failure(
                ErrorCode.OPENAI_ERROR,
                f"Failed to invoke {self.config.document_label} field extraction model.",
                details={"message": str(e)},
            )

        if not raw:
            logger.warning("Extraction response had no %s tool call", tool_name)
            return _failure(
                ErrorCode.MISSING_TOOL_CALL,
                f"The model response did not include the {tool_name} tool call.",
                raw_arguments=raw,
            )

        try:
            arguments = _parse_arguments(raw)
        except ValueError as e:
            logger.warning("Unparseable %s arguments: %s", tool_name, e)
            return _failure(
                ErrorCode.INVALID_TOOL_PAYLOAD,
                "Unexpected tool payload returned by the model.",
                details={"error": str(e)},
                raw_arguments=raw,
            )

        normalized = normalize_extracted_fields(arguments, requested, self.config.fields)
        if normalized.errors:
            primary = normalized.errors[0]
            code = (
                ErrorCode.MISSING_REQUIRED
                if primary.code == IssueCode.MISSING_REQUIRED
                else ErrorCode.VALIDATION_FAILED
            )
            logger.warning("Extraction rejected for %s: %s", primary.field_id, primary.message)
            return ExtractionFailure(
                error=ExtractionError(
                    code=code,
                    message=primary.message,
                    details={"issues": [issue.model_dump(mode="json") for issue in normalized.errors]},
                    fields=[issue.field_id for issue in normalized.errors if issue.field_id],
                ),
                fields=normalized.fields,
                warnings=normalized.warnings,
                raw_arguments=arguments,
            )

        return ExtractionSuccess(
            fields=normalized.fields,
            warnings=normalized.warnings,
            raw_arguments=arguments,
        )
