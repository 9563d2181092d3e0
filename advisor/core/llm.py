"""LLM client module for tool-calling chat completions.

Routes requests through LiteLLM using the OpenAI message and tool
formats. Provider failures are classified here: region restrictions and
unreachable or unauthorized providers surface as
``CapabilityUnavailableError`` so callers can degrade; every other error
propagates unchanged.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import litellm
from litellm import acompletion

from advisor.core.exceptions import CapabilityUnavailableError, RegionRestrictedError
from advisor.models.records import ToolInvocation

litellm.set_verbose = False  # type: ignore[assignment]

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"
DEFAULT_MAX_TOKENS = 2048

REGION_RESTRICTED_CODE = "unsupported_country_region_territory"

# Provider failures that mean "the capability is down", not "this request is bad"
_UNAVAILABLE_ERRORS: tuple[type[Exception], ...] = (
    litellm.AuthenticationError,
    litellm.APIConnectionError,
    litellm.ServiceUnavailableError,
)


@dataclass
class LLMToolResponse:
    """Response from an LLM call that may include tool invocations."""

    text: str | None
    tool_calls: list[ToolInvocation] = field(default_factory=list)
    finish_reason: str = "stop"

    def to_assistant_message(self) -> dict[str, Any]:
        """The assistant turn to replay before the tool results."""
        message: dict[str, Any] = {"role": "assistant", "content": self.text}
        if self.tool_calls:
            message["tool_calls"] = [tc.to_openai() for tc in self.tool_calls]
        return message


def _parse_tool_calls(tool_calls: list[Any] | None) -> list[ToolInvocation]:
    """Convert OpenAI tool call objects (or dicts) to ToolInvocations.

    Arguments that are not valid JSON are kept as the raw string so the
    dispatcher can report them as an argument error for that call.
    """
    if not tool_calls:
        return []

    result: list[ToolInvocation] = []
    for tc in tool_calls:
        func = tc.function if hasattr(tc, "function") else tc.get("function", {})
        name = func.name if hasattr(func, "name") else func.get("name", "")
        args_str = func.arguments if hasattr(func, "arguments") else func.get("arguments", "{}")
        tc_id = tc.id if hasattr(tc, "id") else tc.get("id", "")

        arguments: dict[str, Any] | str
        try:
            arguments = json.loads(args_str) if isinstance(args_str, str) else args_str
        except json.JSONDecodeError:
            arguments = args_str

        result.append(ToolInvocation(id=tc_id, name=name, arguments=arguments))
    return result


def _classify_error(exc: Exception) -> CapabilityUnavailableError | None:
    """Map a provider exception to the degraded-capability taxonomy."""
    code = str(getattr(exc, "code", "") or "")
    if REGION_RESTRICTED_CODE in code or REGION_RESTRICTED_CODE in str(exc):
        return RegionRestrictedError("completion")
    if isinstance(exc, _UNAVAILABLE_ERRORS):
        return CapabilityUnavailableError("completion", type(exc).__name__)
    return None


class LLMClient:
    """Async client for tool-calling completions via LiteLLM."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: str = "",
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = 0.3,
    ) -> None:
        self._model = model
        self._api_key = api_key
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> LLMToolResponse:
        """Run one chat completion, optionally offering tools.

        Args:
            messages: OpenAI-format messages, system prompt first.
            tools: OpenAI function-calling tool definitions.

        Returns:
            LLMToolResponse with text and any tool invocations.

        Raises:
            CapabilityUnavailableError: Provider unreachable, unauthorized or
                region-restricted.
        """
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
            "api_key": self._api_key,
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        logger.debug(
            "Calling LiteLLM",
            extra={
                "model": self._model,
                "message_count": len(messages),
                "tool_count": len(tools or []),
            },
        )

        start = time.time()
        try:
            response = await acompletion(**kwargs)
        except Exception as exc:
            classified = _classify_error(exc)
            if classified is not None:
                logger.warning(
                    "Completion provider unavailable: %s",
                    classified.reason,
                    extra={"model": self._model},
                )
                raise classified from exc
            raise

        latency_ms = int((time.time() - start) * 1000)
        choice = response.choices[0]
        message = choice.message
        tool_calls = _parse_tool_calls(getattr(message, "tool_calls", None))

        logger.info(
            "LLM completion finished",
            extra={
                "model": getattr(response, "model", self._model),
                "latency_ms": latency_ms,
                "tool_call_count": len(tool_calls),
            },
        )

        return LLMToolResponse(
            text=message.content,
            tool_calls=tool_calls,
            finish_reason=getattr(choice, "finish_reason", "stop") or "stop",
        )
