from typing import Any, Callable, List, Optional, Sequence, Type
from unittest.mock import AsyncMock, MagicMock

import pytest
from dotenv import find_dotenv, load_dotenv
from openai import AsyncOpenAI
from pydantic import BaseModel

from agent_runtime.llm_core.base import InferenceAdapter, InferenceResult
from agent_runtime.llm_core.messages import BaseMessage
from agent_runtime.llm_core.schema import ResponseFormat
from agent_runtime.llm_core.tools import ToolCallRequest, ToolRegistry

# Load environment variables from .env file, if there is one.
env_file = find_dotenv()
if env_file:
    load_dotenv(env_file)


class ScriptedAdapter(InferenceAdapter):
    """Adapter replaying a fixed list of results (or exceptions) and recording every call."""

    def __init__(self, script: Sequence[Any]) -> None:
        self.script = list(script)
        self.calls: List[dict] = []

    async def _call_impl(
        self,
        messages: List[BaseMessage],
        tool_catalog: Optional[ToolRegistry],
        response_format: Optional[ResponseFormat],
        response_model: Optional[Type[BaseModel]],
        reasoning_effort: Optional[str],
    ) -> InferenceResult:
        self.calls.append(
            {
                "messages": list(messages),
                "tools": tool_catalog.names if tool_catalog is not None else [],
                "response_format": response_format,
                "reasoning_effort": reasoning_effort,
            }
        )
        if not self.script:
            raise AssertionError("ScriptedAdapter ran out of scripted responses.")
        step = self.script.pop(0)
        if isinstance(step, BaseException):
            raise step
        return step


class EndlessToolAdapter(InferenceAdapter):
    """Adapter that asks for the same tool call forever."""

    def __init__(self, tool_name: str, arguments: Any = None) -> None:
        self.tool_name = tool_name
        self.arguments = arguments or {}
        self.call_count = 0

    async def _call_impl(self, messages, tool_catalog, response_format, response_model, reasoning_effort):  # type: ignore[no-untyped-def]
        self.call_count += 1
        return InferenceResult(
            tool_calls=[ToolCallRequest(name=self.tool_name, arguments=self.arguments, call_id=f"call_{self.call_count}")]
        )


@pytest.fixture
def scripted_adapter() -> Callable[[Sequence[Any]], ScriptedAdapter]:
    return ScriptedAdapter


@pytest.fixture
def endless_tool_adapter() -> Callable[..., EndlessToolAdapter]:
    return EndlessToolAdapter


@pytest.fixture
def mock_openai_client() -> Any:
    client = MagicMock(spec=AsyncOpenAI)
    client.chat = MagicMock()
    client.chat.completions = MagicMock()
    client.chat.completions.create = AsyncMock()
    return client

