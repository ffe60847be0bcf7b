"""OpenAI chat-completions provider (also works for OpenAI-compatible endpoints)."""

import json
import logging
import re
import time
import httpx
from typing import AsyncIterator

from errors import ModelError
from .base import (
    BaseLLMProvider, ConversationMessage, GenerationEvent, TextDelta, ToolCallRequest, Usage,
    parse_tool_arguments, raise_for_vendor_status,
)

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseLLMProvider):

    provider_name = "openai"
    default_base_url = "https://api.openai.com"

    def __init__(self, api_key=None, base_url=None, model_id="gpt-4.1-2025-04-14", config=None, transport=None):
        super().__init__(api_key, base_url, model_id, config, transport)

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @staticmethod
    def _sanitize_tool_name(name: str) -> str:
        """Sanitize a tool name to match OpenAI's requirements: ^[a-zA-Z0-9_-]{1,64}$"""
        sanitized = re.sub(r"[^a-zA-Z0-9_-]", "_", name)
        return sanitized[:64]

    def _prepare_tools(self, tools: list[dict], name_map: dict[str, str]) -> list[dict]:
        """Prepare tools for the OpenAI API, sanitizing names and recording the reverse mapping."""
        prepared = []
        for tool in tools:
            tool_copy = json.loads(json.dumps(tool))  # deep copy
            if "function" in tool_copy:
                original_name = tool_copy["function"].get("name", "")
                sanitized_name = self._sanitize_tool_name(original_name)
                if sanitized_name != original_name:
                    tool_copy["function"]["name"] = sanitized_name
                    name_map[sanitized_name] = original_name
            prepared.append(tool_copy)
        return prepared

    def _build_messages(self, messages: list[ConversationMessage], system_prompt: str | None = None) -> list[dict]:
        msgs = []
        if system_prompt:
            msgs.append({"role": "system", "content": system_prompt})
        for m in messages:
            if m.role == "tool":
                msgs.append({"role": "tool", "tool_call_id": m.tool_call_id, "content": m.content})
                continue
            msg: dict = {"role": m.role, "content": m.content}
            if m.role == "assistant" and m.tool_calls:
                msg["content"] = m.content or None
                msg["tool_calls"] = [
                    {
                        "id": tc.call_id,
                        "type": "function",
                        "function": {"name": self._sanitize_tool_name(tc.tool_name), "arguments": json.dumps(tc.input)},
                    }
                    for tc in m.tool_calls
                ]
            msgs.append(msg)
        return msgs

    async def _parse_stream(self, response: httpx.Response, name_map: dict[str, str]) -> AsyncIterator[GenerationEvent]:
        """Parse an SSE stream from an OpenAI-compatible endpoint.
        Tool call fragments arrive spread over many deltas and are only
        complete once the stream ends, so they are emitted last."""
        tool_call_acc: dict[int, dict] = {}
        accumulated_usage: dict | None = None

        async for line in response.aiter_lines():
            if not line.startswith("data: "):
                continue
            data_str = line[6:]
            if data_str.strip() == "[DONE]":
                break

            try:
                chunk = json.loads(data_str)
            except json.JSONDecodeError:
                logger.debug(f"Skipping undecodable OpenAI stream line: {data_str[:200]}")
                continue

            if chunk.get("error"):
                raise ModelError(f"OpenAI stream error: {chunk['error'].get('message', chunk['error'])}")

            # Usage arrives on a trailing chunk with empty choices when include_usage is set
            if chunk.get("usage"):
                accumulated_usage = chunk["usage"]

            if not chunk.get("choices"):
                continue

            delta = chunk["choices"][0].get("delta", {})

            if delta.get("content"):
                yield TextDelta(delta["content"])

            if delta.get("tool_calls"):
                for tc_delta in delta["tool_calls"]:
                    idx = tc_delta.get("index", 0)
                    if idx not in tool_call_acc:
                        tool_call_acc[idx] = {"id": "", "name": "", "arguments": ""}
                    if tc_delta.get("id"):
                        tool_call_acc[idx]["id"] = tc_delta["id"]
                    if tc_delta.get("function", {}).get("name"):
                        tool_call_acc[idx]["name"] = tc_delta["function"]["name"]
                    if tc_delta.get("function", {}).get("arguments"):
                        tool_call_acc[idx]["arguments"] += tc_delta["function"]["arguments"]

        for idx in sorted(tool_call_acc.keys()):
            tc = tool_call_acc[idx]
            name = name_map.get(tc["name"], tc["name"])
            yield ToolCallRequest(
                call_id=tc["id"] or f"call_{idx}_{int(time.time()*1000)}",
                tool_name=name,
                input=parse_tool_arguments(tc["arguments"], name),
            )

        if accumulated_usage:
            yield Usage(
                input_tokens=accumulated_usage.get("prompt_tokens", 0),
                output_tokens=accumulated_usage.get("completion_tokens", 0),
            )

    async def chat_stream(self, messages, system_prompt=None, tools=None, temperature=None) -> AsyncIterator[GenerationEvent]:
        name_map: dict[str, str] = {}
        payload = {
            "model": self.model_id,
            "messages": self._build_messages(messages, system_prompt),
            "stream": True,
            "stream_options": {"include_usage": True},
            **{k: v for k, v in self.config.items() if k in ("max_tokens", "top_p", "stop")},
        }
        temp = self._temperature(temperature)
        if temp is not None:
            payload["temperature"] = temp
        if tools:
            payload["tools"] = self._prepare_tools(tools, name_map)

        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    f"{self.base_url}/v1/chat/completions",
                    json=payload,
                    headers=self._headers(),
                ) as response:
                    await raise_for_vendor_status(response, "OpenAI")
                    async for event in self._parse_stream(response, name_map):
                        yield event
        except httpx.HTTPError as e:
            raise ModelError(f"OpenAI request failed: {e}") from e
