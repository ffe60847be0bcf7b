import json

import httpx
import pytest

from errors import ModelError
from llm.anthropic_provider import AnthropicProvider
from llm.base import ConversationMessage, TextDelta, ToolCallRequest, Usage
from llm.google_provider import GoogleProvider
from llm.openai_provider import OpenAIProvider

TOOLS = [{
    "type": "function",
    "function": {
        "name": "getDocument",
        "description": "Get a document by ID.",
        "parameters": {"type": "object", "properties": {"id": {"type": "integer"}}, "required": ["id"]},
    },
}]


def _sse(*events) -> bytes:
    return "".join(f"data: {e if isinstance(e, str) else json.dumps(e)}\n\n" for e in events).encode()


def _transport(body: bytes, captured: list, status: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(status, content=body, headers={"content-type": "text/event-stream"})
    return httpx.MockTransport(handler)


async def _collect(provider, messages, **kwargs):
    return [event async for event in provider.chat_stream(messages, **kwargs)]


async def test_openai_stream_yields_text_then_assembled_tool_calls():
    body = _sse(
        {"choices": [{"delta": {"content": "Let me "}}]},
        {"choices": [{"delta": {"content": "check."}}]},
        {"choices": [{"delta": {"tool_calls": [
            {"index": 0, "id": "call_1", "function": {"name": "getDocument", "arguments": "{\"id\""}},
        ]}}]},
        {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"arguments": ": 3}"}}]}}]},
        {"choices": [], "usage": {"prompt_tokens": 30, "completion_tokens": 9}},
        "[DONE]",
    )
    captured = []
    provider = OpenAIProvider(api_key="sk-test", model_id="gpt-4o", transport=_transport(body, captured))

    events = await _collect(
        provider, [ConversationMessage(role="user", content="open doc 3")],
        system_prompt="sys", tools=TOOLS, temperature=0.2,
    )

    assert events == [
        TextDelta("Let me "),
        TextDelta("check."),
        ToolCallRequest("call_1", "getDocument", {"id": 3}),
        Usage(30, 9),
    ]
    payload = json.loads(captured[0].content)
    assert captured[0].url.path == "/v1/chat/completions"
    assert captured[0].headers["authorization"] == "Bearer sk-test"
    assert payload["messages"][0] == {"role": "system", "content": "sys"}
    assert payload["tools"][0]["function"]["name"] == "getDocument"
    assert payload["temperature"] == 0.2
    assert payload["stream"] is True


async def test_openai_sends_tool_turns_back_in_its_own_shape():
    captured = []
    provider = OpenAIProvider(model_id="gpt-4o", transport=_transport(_sse("[DONE]"), captured))
    call = ToolCallRequest("call_1", "getDocument", {"id": 3})
    conversation = [
        ConversationMessage(role="user", content="open doc 3"),
        ConversationMessage(role="assistant", content="", tool_calls=[call]),
        ConversationMessage(role="tool", content="{\"id\": 3}", tool_call_id="call_1", tool_name="getDocument"),
    ]

    await _collect(provider, conversation)

    messages = json.loads(captured[0].content)["messages"]
    assert messages[1]["tool_calls"][0]["id"] == "call_1"
    assert json.loads(messages[1]["tool_calls"][0]["function"]["arguments"]) == {"id": 3}
    assert messages[1]["content"] is None
    assert messages[2] == {"role": "tool", "tool_call_id": "call_1", "content": "{\"id\": 3}"}


async def test_openai_http_error_becomes_model_error():
    body = json.dumps({"error": {"message": "Incorrect API key provided"}}).encode()
    provider = OpenAIProvider(model_id="gpt-4o", transport=_transport(body, [], status=401))

    with pytest.raises(ModelError, match="401.*Incorrect API key"):
        await _collect(provider, [ConversationMessage(role="user", content="hi")])


async def test_openai_malformed_tool_arguments_become_model_error():
    body = _sse(
        {"choices": [{"delta": {"tool_calls": [
            {"index": 0, "id": "call_1", "function": {"name": "getDocument", "arguments": "{not json"}},
        ]}}]},
        "[DONE]",
    )
    provider = OpenAIProvider(model_id="gpt-4o", transport=_transport(body, []))

    with pytest.raises(ModelError, match="invalid JSON"):
        await _collect(provider, [ConversationMessage(role="user", content="hi")])


async def test_transport_failure_becomes_model_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    provider = AnthropicProvider(model_id="claude-sonnet-4-0", transport=httpx.MockTransport(handler))

    with pytest.raises(ModelError, match="Anthropic request failed"):
        await _collect(provider, [ConversationMessage(role="user", content="hi")])


async def test_anthropic_stream_with_tool_use():
    body = _sse(
        {"type": "message_start", "message": {"usage": {"input_tokens": 50}}},
        {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
        {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Looking."}},
        {"type": "content_block_stop", "index": 0},
        {"type": "content_block_start", "index": 1,
         "content_block": {"type": "tool_use", "id": "toolu_1", "name": "listDocuments", "input": {}}},
        {"type": "content_block_delta", "index": 1, "delta": {"type": "input_json_delta", "partial_json": ""}},
        {"type": "content_block_stop", "index": 1},
        {"type": "message_delta", "delta": {"stop_reason": "tool_use"}, "usage": {"output_tokens": 12}},
        {"type": "message_stop"},
    )
    captured = []
    provider = AnthropicProvider(
        api_key="ak-test", model_id="claude-sonnet-4-0",
        config={"max_tokens": 1024}, transport=_transport(body, captured),
    )

    events = await _collect(
        provider,
        [ConversationMessage(role="system", content="extra rules"), ConversationMessage(role="user", content="list")],
        system_prompt="sys", tools=TOOLS,
    )

    assert events == [
        TextDelta("Looking."),
        ToolCallRequest("toolu_1", "listDocuments", {}),
        Usage(50, 12),
    ]
    payload = json.loads(captured[0].content)
    assert captured[0].headers["x-api-key"] == "ak-test"
    assert payload["system"] == "sys\n\nextra rules"
    assert payload["max_tokens"] == 1024
    assert payload["tools"][0] == {
        "name": "getDocument",
        "description": "Get a document by ID.",
        "input_schema": TOOLS[0]["function"]["parameters"],
    }


async def test_anthropic_tool_results_travel_in_a_user_turn():
    captured = []
    provider = AnthropicProvider(model_id="claude-sonnet-4-0", transport=_transport(_sse({"type": "message_stop"}), captured))
    calls = [ToolCallRequest("toolu_1", "getDocument", {"id": 1}), ToolCallRequest("toolu_2", "getDocument", {"id": 2})]
    conversation = [
        ConversationMessage(role="user", content="compare 1 and 2"),
        ConversationMessage(role="assistant", content="Reading both.", tool_calls=calls),
        ConversationMessage(role="tool", content="{\"id\": 1}", tool_call_id="toolu_1", tool_name="getDocument"),
        ConversationMessage(role="tool", content="{\"id\": 2}", tool_call_id="toolu_2", tool_name="getDocument"),
    ]

    await _collect(provider, conversation)

    messages = json.loads(captured[0].content)["messages"]
    assert [m["role"] for m in messages] == ["user", "assistant", "user"]
    assert messages[1]["content"][0] == {"type": "text", "text": "Reading both."}
    assert [b["id"] for b in messages[1]["content"][1:]] == ["toolu_1", "toolu_2"]
    assert [b["tool_use_id"] for b in messages[2]["content"]] == ["toolu_1", "toolu_2"]
    assert all(b["type"] == "tool_result" for b in messages[2]["content"])


async def test_anthropic_error_event_becomes_model_error():
    body = _sse({"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}})
    provider = AnthropicProvider(model_id="claude-sonnet-4-0", transport=_transport(body, []))

    with pytest.raises(ModelError, match="Overloaded"):
        await _collect(provider, [ConversationMessage(role="user", content="hi")])


async def test_google_function_calls_get_synthesized_ids():
    body = _sse(
        {"candidates": [{"content": {"parts": [{"text": "On it."}]}}]},
        {
            "candidates": [{
                "content": {"parts": [{"functionCall": {"name": "getDocument", "args": {"id": 4}}}]},
                "finishReason": "STOP",
            }],
            "usageMetadata": {"promptTokenCount": 8, "candidatesTokenCount": 6},
        },
    )
    captured = []
    provider = GoogleProvider(api_key="g-key", model_id="gemini-2.0-flash", transport=_transport(body, captured))

    events = await _collect(provider, [ConversationMessage(role="user", content="doc 4")], tools=TOOLS)

    assert events[0] == TextDelta("On it.")
    call = events[1]
    assert isinstance(call, ToolCallRequest)
    assert call.call_id.startswith("call_")
    assert (call.tool_name, call.input) == ("getDocument", {"id": 4})
    assert events[2] == Usage(8, 6)

    assert "gemini-2.0-flash:streamGenerateContent" in captured[0].url.path
    payload = json.loads(captured[0].content)
    assert payload["tools"][0]["function_declarations"][0]["name"] == "getDocument"


async def test_google_tool_results_become_function_responses():
    captured = []
    provider = GoogleProvider(model_id="gemini-2.0-flash", transport=_transport(_sse(), captured))
    call = ToolCallRequest("call_x", "listDocuments", {})
    conversation = [
        ConversationMessage(role="user", content="what do I have?"),
        ConversationMessage(role="assistant", content="", tool_calls=[call]),
        ConversationMessage(role="tool", content="[1, 2]", tool_call_id="call_x", tool_name="listDocuments"),
    ]

    await _collect(provider, conversation, system_prompt="sys")

    payload = json.loads(captured[0].content)
    assert [c["role"] for c in payload["contents"]] == ["user", "model", "user"]
    assert payload["contents"][1]["parts"] == [{"functionCall": {"name": "listDocuments", "args": {}}}]
    assert payload["contents"][2]["parts"] == [
        {"functionResponse": {"name": "listDocuments", "response": {"result": [1, 2]}}},
    ]
    assert payload["system_instruction"] == {"parts": [{"text": "sys"}]}
