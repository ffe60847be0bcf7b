"""Abstract base class and shared types for LLM provider integrations."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Union

import httpx

from errors import ModelError


@dataclass(frozen=True)
class ToolCallRequest:
    call_id: str
    tool_name: str
    input: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ToolCallResult:
    call_id: str
    tool_name: str
    output: Any

    @property
    def is_error(self) -> bool:
        return isinstance(self.output, dict) and "error" in self.output


@dataclass
class ConversationMessage:
    role: str  # "system" | "user" | "assistant" | "tool"
    content: str = ""
    tool_calls: list[ToolCallRequest] | None = None  # set on assistant messages that requested tools
    tool_call_id: str | None = None  # set on role="tool" messages to reference the originating call
    tool_name: str | None = None  # set on role="tool" messages; some vendors key results by name


# Generation events produced by a single model call.

@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolResultPlaceholder:
    """A tool result the provider executed on its own side; informational only."""
    call_id: str
    tool_name: str


@dataclass(frozen=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0


GenerationEvent = Union[TextDelta, ToolCallRequest, ToolResultPlaceholder, Usage]


def parse_tool_arguments(raw: str | dict | None, tool_name: str) -> dict:
    """Decode the JSON arguments a model produced for a tool call."""
    if isinstance(raw, dict):
        return raw
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ModelError(f"Model produced invalid JSON arguments for tool '{tool_name}': {e}") from e
    if not isinstance(parsed, dict):
        raise ModelError(f"Model produced non-object arguments for tool '{tool_name}'")
    return parsed


async def raise_for_vendor_status(response: httpx.Response, vendor: str) -> None:
    """Raise ModelError carrying the vendor's own error message for a non-2xx response."""
    if response.is_success:
        return
    body = await response.aread()
    try:
        err = json.loads(body)
        detail = err.get("error", {})
        msg = (detail.get("message") if isinstance(detail, dict) else detail) or err.get("detail") or response.reason_phrase
    except (ValueError, AttributeError):
        msg = body.decode(errors="replace") or response.reason_phrase
    raise ModelError(f"{vendor} API error {response.status_code}: {msg}")


class BaseLLMProvider(ABC):
    """Abstract base for all LLM provider integrations."""

    provider_name: str = ""
    default_base_url: str = ""

    def __init__(
        self,
        api_key: str | None,
        base_url: str | None,
        model_id: str,
        config: dict | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.model_id = model_id
        self.config = config or {}
        self.transport = transport

    def _client(self, timeout: float = 120.0) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self.transport)

    def _temperature(self, temperature: float | None) -> float | None:
        return temperature if temperature is not None else self.config.get("temperature")

    @abstractmethod
    def chat_stream(
        self,
        messages: list[ConversationMessage],
        system_prompt: str | None = None,
        tools: list[dict] | None = None,
        temperature: float | None = None,
    ) -> AsyncIterator[GenerationEvent]:
        """Stream one model call as generation events.

        The iterator is single-pass and finite. Vendor failures surface as
        ModelError, never as raw transport exceptions.
        """
        ...
