"""LLM client: Protocol + httpx tool-calling implementation + mock for tests."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)


class LLMConfigurationError(RuntimeError):
    """The client cannot make a call at all (e.g. no API key)."""


class LLMTransportError(RuntimeError):
    """The call was made but failed: network, HTTP status, or undecodable body."""


@runtime_checkable
class LLMClient(Protocol):
    """Protocol for forced tool-call completion. Implement with httpx or mock for tests."""

    async def complete_tool_call(
        self,
        system_prompt: str,
        user_message: str,
        tool: dict[str, Any],
        model: str | None = None,
    ) -> str | None:
        """
        Ask the model to call `tool` and return the raw JSON arguments string
        of that call, or None when the model made no matching tool call.
        """
        ...


class OpenAIToolClient:
    """Async httpx client for an OpenAI-compatible chat completions API with function calling."""

    def __init__(
        self,
        base_url: str,
        model: str = "gpt-4.1-mini",
        api_key: str | None = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    @property
    def model(self) -> str:
        return self._model

    async def complete_tool_call(
        self,
        system_prompt: str,
        user_message: str,
        tool: dict[str, Any],
        model: str | None = None,
    ) -> str | None:
        if not self._api_key:
            raise LLMConfigurationError("OpenAI API key is not configured.")

        tool_name = tool["name"]
        payload = {
            "model": model or self._model,
            "temperature": 0,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message},
            ],
            "tools": [{"type": "function", "function": tool}],
            "tool_choice": {"type": "function", "function": {"name": tool_name}},
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                r = await client.post(
                    f"{self._base_url}/v1/chat/completions",
                    json=payload,
                    headers=headers,
                )
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPStatusError as e:
            raise LLMTransportError(
                f"Extraction request failed with status {e.response.status_code}."
            ) from e
        except httpx.HTTPError as e:
            raise LLMTransportError(f"Extraction request failed: {e}") from e
        except ValueError as e:
            raise LLMTransportError("Extraction response was not valid JSON.") from e

        return _tool_arguments(data, tool_name)


def _tool_arguments(data: Any, tool_name: str) -> str | None:
    """Arguments of the first tool call named tool_name in a chat completion body."""
    if not isinstance(data, dict):
        return None
    choices = data.get("choices") or []
    if not choices:
        return None
    message = choices[0].get("message") or {}
    for call in message.get("tool_calls") or []:
        function = call.get("function") or {}
        if function.get("name") != tool_name:
            continue
        arguments = function.get("arguments")
        if isinstance(arguments, str):
            return arguments
        if arguments is not None:
            return json.dumps(arguments)
    logger.debug("No %s tool call in completion response", tool_name)
    return None


MockResponse = str | dict[str, Any] | Exception | Callable[[str, str, dict[str, Any]], Any] | None


class MockLLMClient:
    """Implements LLMClient with scripted responses for tests. No network.

    Each scripted entry may be a JSON string, a dict (serialized to JSON),
    None (no tool call), an exception instance (raised), or a callable
    receiving (system_prompt, user_message, tool).
    """

    def __init__(self, responses: list[MockResponse] | None = None) -> None:
        self.responses = list(responses) if responses else []
        self.call_count = 0
        self.calls: list[dict[str, Any]] = []

    async def complete_tool_call(
        self,
        system_prompt: str,
        user_message: str,
        tool: dict[str, Any],
        model: str | None = None,
    ) -> str | None:
        self.calls.append(
            {"system_prompt": system_prompt, "user_message": user_message, "tool": tool, "model": model}
        )
        out = self.responses[self.call_count] if self.call_count < len(self.responses) else None
        self.call_count += 1
        if callable(out) and not isinstance(out, Exception):
            out = out(system_prompt, user_message, tool)
        if isinstance(out, Exception):
            raise out
        if isinstance(out, dict):
            return json.dumps(out)
        return out
