"""Provider-agnostic turns of an agent conversation."""

import json
from abc import ABC
from typing import List, Literal

from pydantic import BaseModel, Field

from ..tools.models import ToolCallRequest, ToolCallResult


class BaseMessage(ABC, BaseModel):
    """Base model for turns exchanged with the model.

    Attributes:
        author: Role associated with the turn; fixed per subclass.
        content: Text payload of the turn.
    """

    author: str
    content: str


class SystemMessage(BaseMessage):
    """Instructions that steer the whole session."""

    author: Literal["system"] = "system"


class UserMessage(BaseMessage):
    """A request, or a seeded issue report, addressed to the agent."""

    author: Literal["user"] = "user"


class AssistantMessage(BaseMessage):
    """A model turn, possibly requesting tool calls.

    Attributes:
        tool_calls: Calls the model asked for in this turn, in request order.
    """

    author: Literal["assistant"] = "assistant"
    content: str = ""
    tool_calls: List[ToolCallRequest] = Field(default_factory=list)


class ToolMessage(BaseMessage):
    """The answer to exactly one tool call of the preceding assistant turn."""

    author: Literal["tool"] = "tool"
    tool_call_id: str
    name: str
    is_error: bool = False

    @classmethod
    def from_result(cls, result: ToolCallResult) -> "ToolMessage":
        """Serialize a tool result into the turn answering its call."""
        return cls(
            content=json.dumps(result.response, default=str),
            tool_call_id=result.call_id or "",
            name=result.name,
            is_error=result.is_error,
        )
