"""Events placed on the outbound chat stream.

The set is closed: every consumer handles exactly these six kinds. Each
kind knows its wire label and its JSON payload; the stream writer adds
the sequence index.
"""

from dataclasses import dataclass, field
from typing import ClassVar, Union

from llm.base import ToolCallRequest, ToolCallResult


@dataclass(frozen=True)
class TextEvent:
    text: str
    label: ClassVar[str] = "text"

    def payload(self) -> dict:
        return {"chunk": self.text}


@dataclass(frozen=True)
class ToolCallEvent:
    call: ToolCallRequest
    label: ClassVar[str] = "tool-call"

    def payload(self) -> dict:
        return {"chunk": {
            "toolCallId": self.call.call_id,
            "toolName": self.call.tool_name,
            "input": self.call.input,
        }}


@dataclass(frozen=True)
class ToolResultEvent:
    result: ToolCallResult
    label: ClassVar[str] = "tool-result"

    def payload(self) -> dict:
        return {"chunk": {
            "toolCallId": self.result.call_id,
            "toolName": self.result.tool_name,
            "output": self.result.output,
        }}


@dataclass(frozen=True)
class MetaEvent:
    chat_id: int
    extra: dict = field(default_factory=dict)
    label: ClassVar[str] = "meta"

    def payload(self) -> dict:
        return {"chatId": self.chat_id, **self.extra}


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    label: ClassVar[str] = "error"

    def payload(self) -> dict:
        return {"message": self.message}


@dataclass(frozen=True)
class DoneEvent:
    label: ClassVar[str] = "done"

    def payload(self) -> dict:
        return {}


StreamEvent = Union[TextEvent, ToolCallEvent, ToolResultEvent, MetaEvent, ErrorEvent, DoneEvent]
