"""Tool registry consulted by the agent loop.

Tools are declared once at startup and the registry is read-only afterwards.
Each tool pairs a pydantic input model (which doubles as the JSON schema
shown to the model) with an async executor scoped to a single actor.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ValidationError

from document_store import DocumentStore
from errors import ToolError, ToolInputValidationError, ToolNotFoundError
from llm.base import ToolCallRequest, ToolCallResult

logger = logging.getLogger(__name__)


@dataclass
class ActorContext:
    """The authenticated identity a tool runs on behalf of, plus the stores it may touch."""
    user_id: str
    username: str
    documents: DocumentStore


ToolExecutor = Callable[[Any, ActorContext], Awaitable[Any]]


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    input_model: type[BaseModel]
    execute: ToolExecutor

    @property
    def input_schema(self) -> dict:
        schema = self.input_model.model_json_schema()
        schema.pop("title", None)
        return schema

    def to_schema(self) -> dict:
        """OpenAI function-tool shape; providers convert it to their own format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema,
            },
        }

    def validate(self, raw_input: dict) -> BaseModel:
        try:
            return self.input_model.model_validate(raw_input or {})
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}" for err in e.errors()
            )
            raise ToolInputValidationError(f"Invalid input for tool '{self.name}': {problems}") from e


def error_output(message: str, kind: str) -> dict:
    return {"error": message, "type": kind}


class ToolRegistry:

    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool):
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool

    def resolve(self, tool_name: str) -> Tool:
        tool = self._tools.get(tool_name)
        if tool is None:
            raise ToolNotFoundError(tool_name)
        return tool

    def names(self) -> list[str]:
        return list(self._tools)

    def schemas(self) -> list[dict]:
        return [tool.to_schema() for tool in self._tools.values()]

    async def execute(self, call: ToolCallRequest, actor: ActorContext) -> ToolCallResult:
        """Run one tool call. Failures come back as an error-shaped result, never as an exception."""
        start = time.time()
        try:
            tool = self.resolve(call.tool_name)
            params = tool.validate(call.input)
            output = await tool.execute(params, actor)
        except ToolError as e:
            logger.warning(f"Tool '{call.tool_name}' ({call.call_id}) failed: {e}")
            output = error_output(str(e), e.kind)
        except Exception as e:
            logger.exception(f"Tool '{call.tool_name}' ({call.call_id}) raised unexpectedly")
            output = error_output(f"Tool '{call.tool_name}' failed: {e}", "execution")

        duration_ms = int((time.time() - start) * 1000)
        logger.info(f"Tool '{call.tool_name}' ({call.call_id}) finished in {duration_ms}ms")
        return ToolCallResult(call_id=call.call_id, tool_name=call.tool_name, output=output)
