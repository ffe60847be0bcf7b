"""Google Gemini provider implementation."""

import json
import uuid
import httpx
from typing import AsyncIterator

from errors import ModelError
from .base import (
    BaseLLMProvider, ConversationMessage, GenerationEvent, TextDelta, ToolCallRequest, Usage,
    raise_for_vendor_status,
)


class GoogleProvider(BaseLLMProvider):

    provider_name = "google"
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(self, api_key=None, base_url=None, model_id="gemini-2.0-flash", config=None, transport=None):
        super().__init__(api_key, base_url, model_id, config, transport)

    @staticmethod
    def _to_parts(m: ConversationMessage) -> list[dict]:
        if m.role == "tool":
            try:
                result = json.loads(m.content) if m.content else {}
            except json.JSONDecodeError:
                result = m.content
            # functionResponse.response must be an object
            if not isinstance(result, dict):
                result = {"result": result}
            return [{"functionResponse": {"name": m.tool_name or "", "response": result}}]
        parts = [{"text": m.content}] if m.content else []
        if m.role == "assistant" and m.tool_calls:
            parts.extend({"functionCall": {"name": tc.tool_name, "args": tc.input}} for tc in m.tool_calls)
        return parts

    def _build_contents(self, messages: list[ConversationMessage]) -> tuple[list[dict], list[str]]:
        contents = []
        system_texts = []
        for m in messages:
            if m.role == "system":
                if m.content:
                    system_texts.append(m.content)
                continue
            role = "model" if m.role == "assistant" else "user"
            parts = self._to_parts(m)
            if not parts:
                continue
            # consecutive tool results for one model turn go back as a single user turn
            if contents and contents[-1]["role"] == role:
                contents[-1]["parts"].extend(parts)
            else:
                contents.append({"role": role, "parts": parts})
        return contents, system_texts

    @staticmethod
    def _convert_tools(tools: list[dict]) -> list[dict]:
        """Convert OpenAI-format tools to Gemini format.
        OpenAI: {"type": "function", "function": {"name": ..., "description": ..., "parameters": ...}}
        Gemini: {"function_declarations": [{"name": ..., "description": ..., "parameters": ...}]}
        """
        declarations = []
        for tool in tools:
            if "function" in tool:
                fn = tool["function"]
                decl = {
                    "name": fn.get("name", ""),
                    "description": fn.get("description", ""),
                }
                params = fn.get("parameters")
                if params:
                    decl["parameters"] = params
                declarations.append(decl)
        return [{"function_declarations": declarations}] if declarations else []

    def _build_payload(self, messages, system_prompt, tools, temperature) -> dict:
        contents, system_texts = self._build_contents(messages)
        if system_prompt:
            system_texts.insert(0, system_prompt)
        payload = {"contents": contents}
        if system_texts:
            payload["system_instruction"] = {"parts": [{"text": "\n\n".join(system_texts)}]}

        generation_config = {}
        temp = self._temperature(temperature)
        if temp is not None:
            generation_config["temperature"] = temp
        if self.config.get("max_tokens"):
            generation_config["maxOutputTokens"] = self.config["max_tokens"]
        if generation_config:
            payload["generationConfig"] = generation_config

        if tools:
            payload["tools"] = self._convert_tools(tools)
        return payload

    async def _parse_stream(self, response: httpx.Response) -> AsyncIterator[GenerationEvent]:
        async for line in response.aiter_lines():
            if not line.startswith("data: "):
                continue
            data_str = line[6:]
            try:
                chunk = json.loads(data_str)
            except json.JSONDecodeError:
                continue

            if chunk.get("error"):
                raise ModelError(f"Gemini stream error: {chunk['error'].get('message', chunk['error'])}")

            candidates = chunk.get("candidates", [])
            if candidates:
                parts = candidates[0].get("content", {}).get("parts", [])
                for part in parts:
                    if "text" in part:
                        yield TextDelta(part["text"])
                    elif "functionCall" in part:
                        fc = part["functionCall"]
                        # Gemini does not assign call ids
                        yield ToolCallRequest(
                            call_id=f"call_{uuid.uuid4().hex[:12]}",
                            tool_name=fc["name"],
                            input=fc.get("args") or {},
                        )

            if candidates and candidates[0].get("finishReason"):
                raw_usage = chunk.get("usageMetadata") or {}
                yield Usage(
                    input_tokens=raw_usage.get("promptTokenCount", 0),
                    output_tokens=raw_usage.get("candidatesTokenCount", 0),
                )
                return

    async def chat_stream(self, messages, system_prompt=None, tools=None, temperature=None) -> AsyncIterator[GenerationEvent]:
        payload = self._build_payload(messages, system_prompt, tools, temperature)
        url = f"{self.base_url}/models/{self.model_id}:streamGenerateContent?alt=sse&key={self.api_key}"

        try:
            async with self._client() as client:
                async with client.stream("POST", url, json=payload) as response:
                    await raise_for_vendor_status(response, "Gemini")
                    async for event in self._parse_stream(response):
                        yield event
        except httpx.HTTPError as e:
            raise ModelError(f"Gemini request failed: {e}") from e
