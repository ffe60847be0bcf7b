"""Anthropic Claude provider implementation."""

import json
import logging
import httpx
from typing import AsyncIterator

from errors import ModelError
from .base import (
    BaseLLMProvider, ConversationMessage, GenerationEvent, TextDelta, ToolCallRequest, Usage,
    parse_tool_arguments, raise_for_vendor_status,
)

logger = logging.getLogger(__name__)


class AnthropicProvider(BaseLLMProvider):

    provider_name = "anthropic"
    default_base_url = "https://api.anthropic.com/v1"

    def __init__(self, api_key=None, base_url=None, model_id="claude-sonnet-4-0", config=None, transport=None):
        super().__init__(api_key, base_url, model_id, config, transport)

    def _headers(self) -> dict:
        headers = {
            "Content-Type": "application/json",
            "anthropic-version": "2023-06-01",
        }
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    @staticmethod
    def _merge_content(prev, new):
        """Merge two Anthropic content values (str or list) for consecutive same-role messages."""
        if isinstance(prev, str) and isinstance(new, str):
            return prev + "\n\n" + new

        prev_list = [{"type": "text", "text": prev}] if isinstance(prev, str) else list(prev)
        new_list = [{"type": "text", "text": new}] if isinstance(new, str) else list(new)
        return prev_list + new_list

    @staticmethod
    def _to_anthropic_content(m: ConversationMessage):
        if m.role == "tool":
            return [{
                "type": "tool_result",
                "tool_use_id": m.tool_call_id,
                "content": m.content,
            }]
        if m.role == "assistant" and m.tool_calls:
            blocks = [{"type": "text", "text": m.content}] if m.content else []
            blocks.extend(
                {"type": "tool_use", "id": tc.call_id, "name": tc.tool_name, "input": tc.input}
                for tc in m.tool_calls
            )
            return blocks
        return m.content

    def _build_messages(self, messages: list[ConversationMessage]) -> tuple[list[dict], list[str]]:
        """Build messages for Anthropic, merging consecutive same-role messages
        since Anthropic requires alternating user/assistant roles.
        Tool results travel as tool_result blocks in a user turn.
        Returns (messages, system_texts) where system messages are lifted out."""
        result = []
        system_texts = []
        for m in messages:
            if m.role == "system":
                if m.content:
                    system_texts.append(m.content)
                continue
            role = "user" if m.role == "tool" else m.role
            content = self._to_anthropic_content(m)
            if not content:
                continue
            if result and result[-1]["role"] == role:
                result[-1]["content"] = self._merge_content(result[-1]["content"], content)
            else:
                result.append({"role": role, "content": content})
        return result, system_texts

    @staticmethod
    def _convert_tools(tools: list[dict]) -> list[dict]:
        """Convert OpenAI-format tools to Anthropic format.
        OpenAI: {"type": "function", "function": {"name": ..., "description": ..., "parameters": ...}}
        Anthropic: {"name": ..., "description": ..., "input_schema": ...}
        """
        converted = []
        for tool in tools:
            if "function" in tool:
                fn = tool["function"]
                converted.append({
                    "name": fn.get("name", ""),
                    "description": fn.get("description", ""),
                    "input_schema": fn.get("parameters", {"type": "object", "properties": {}}),
                })
            else:
                converted.append(tool)
        return converted

    def _build_payload(self, messages, system_prompt, tools, temperature) -> dict:
        anthropic_messages, system_texts = self._build_messages(messages)
        if system_prompt:
            system_texts.insert(0, system_prompt)
        payload = {
            "model": self.model_id,
            "messages": anthropic_messages,
            "max_tokens": self.config.get("max_tokens", 4096),
            "stream": True,
        }
        if system_texts:
            payload["system"] = "\n\n".join(system_texts)
        temp = self._temperature(temperature)
        if temp is not None:
            payload["temperature"] = temp
        if tools:
            payload["tools"] = self._convert_tools(tools)
        return payload

    async def _parse_stream(self, response: httpx.Response) -> AsyncIterator[GenerationEvent]:
        current_block_type = None
        tool_call_id = ""
        tool_call_name = ""
        tool_call_args = ""
        input_tokens = 0
        output_tokens = 0

        async for line in response.aiter_lines():
            if not line.startswith("data: "):
                continue
            data_str = line[6:]
            try:
                event = json.loads(data_str)
            except json.JSONDecodeError:
                continue

            event_type = event.get("type", "")

            if event_type == "message_start":
                usage = event.get("message", {}).get("usage") or {}
                input_tokens = usage.get("input_tokens", 0)

            elif event_type == "content_block_start":
                block = event.get("content_block", {})
                current_block_type = block.get("type")
                if current_block_type == "tool_use":
                    tool_call_id = block.get("id", "")
                    tool_call_name = block.get("name", "")
                    tool_call_args = ""

            elif event_type == "content_block_delta":
                delta = event.get("delta", {})
                delta_type = delta.get("type", "")

                if delta_type == "text_delta":
                    yield TextDelta(delta.get("text", ""))

                elif delta_type == "input_json_delta":
                    tool_call_args += delta.get("partial_json", "")

            elif event_type == "content_block_stop":
                if current_block_type == "tool_use":
                    yield ToolCallRequest(
                        call_id=tool_call_id,
                        tool_name=tool_call_name,
                        input=parse_tool_arguments(tool_call_args, tool_call_name),
                    )
                current_block_type = None

            elif event_type == "message_delta":
                usage = event.get("usage") or {}
                output_tokens = usage.get("output_tokens", output_tokens)

            elif event_type == "message_stop":
                break

            elif event_type == "error":
                err = event.get("error", {})
                raise ModelError(f"Anthropic stream error: {err.get('message', err)}")

        yield Usage(input_tokens=input_tokens, output_tokens=output_tokens)

    async def chat_stream(self, messages, system_prompt=None, tools=None, temperature=None) -> AsyncIterator[GenerationEvent]:
        payload = self._build_payload(messages, system_prompt, tools, temperature)

        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    f"{self.base_url}/messages",
                    json=payload,
                    headers=self._headers(),
                ) as response:
                    await raise_for_vendor_status(response, "Anthropic")
                    async for event in self._parse_stream(response):
                        yield event
        except httpx.HTTPError as e:
            raise ModelError(f"Anthropic request failed: {e}") from e
