"""Data models shared by the registry, the catalog and the execution loop."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field


class ToolSpec(BaseModel):
    """
    Represents the contract of a tool that can be offered to the model.

    Attributes:
        name: The unique name of the tool.
        description: A brief description of what the tool does.
        argument_schema: Compiled JSON schema of the tool's keyword arguments.
        implementation: The callable implementing the tool. Called with the
                        arguments as keyword arguments; may be sync or async.
        on_start: Optional hook called with the arguments before the implementation runs.
        on_complete: Optional hook called with the arguments and the result afterwards.
        args_model: Optional Pydantic model used for validating and coercing arguments.
        source: Where the tool comes from; local tools shadow remote ones.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str
    description: str
    argument_schema: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "additionalProperties": False}
    )
    implementation: Callable[..., Any]
    on_start: Optional[Callable[[Dict[str, Any]], Any]] = None
    on_complete: Optional[Callable[[Dict[str, Any], Any], Any]] = None
    args_model: Optional[Type[BaseModel]] = None
    source: Literal["local", "remote"] = "local"


@dataclass(frozen=True)
class ToolCallRequest:
    """Represents a normalized tool call request from a provider response."""

    name: str
    arguments: Any
    call_id: Optional[str] = None


@dataclass(frozen=True)
class ToolCallResult:
    """Represents the outcome of executing a tool call."""

    name: str
    response: Dict[str, Any]
    call_id: Optional[str] = None
    is_error: bool = False


@dataclass(frozen=True)
class ToolRenderEvent:
    """One progress event handed to a UI renderer.

    Attributes:
        name: Tool name.
        status: ``"start"`` before the implementation runs, ``"success"`` after it returned.
        args: Arguments the tool was invoked with.
        result: The result as a string (JSON dump for non-string results); None on start.
    """

    name: str
    status: Literal["start", "success"]
    args: Dict[str, Any]
    result: Optional[str] = None
