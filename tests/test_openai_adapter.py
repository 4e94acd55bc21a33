import json
from typing import Any, Dict, List, Optional

import httpx
import openai
import pytest
from openai.types.chat import ChatCompletion
from pydantic import BaseModel

from agent_runtime.llm_core.exceptions import ProviderContractViolation, ProviderError, ProviderTransientError
from agent_runtime.llm_core.messages import AssistantMessage, SystemMessage, ToolMessage, UserMessage
from agent_runtime.llm_core.schema import AnyNode, ArrayNode, IntegerNode, ObjectNode, StringNode
from agent_runtime.llm_core.tools import ToolCallRequest, ToolCatalog, ToolSpec
from agent_runtime.llm_impl import OpenAIInferenceAdapter
from agent_runtime.llm_impl.openai_api.adapter import supports_strict_mode

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


class Verdict(BaseModel):
    passed: bool
    reason: str


def _completion(
    content: Optional[str] = None,
    tool_calls: Optional[List[Dict[str, Any]]] = None,
    refusal: Optional[str] = None,
) -> ChatCompletion:
    return ChatCompletion.model_validate(
        {
            "id": "chatcmpl-1",
            "object": "chat.completion",
            "created": 0,
            "model": "gpt-4o-mini",
            "choices": [
                {
                    "index": 0,
                    "finish_reason": "tool_calls" if tool_calls else "stop",
                    "message": {"role": "assistant", "content": content, "refusal": refusal, "tool_calls": tool_calls},
                }
            ],
            "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
        }
    )


def _function_call(call_id: str, name: str, arguments: str) -> Dict[str, Any]:
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": arguments}}


@pytest.fixture
def adapter(mock_openai_client: Any) -> OpenAIInferenceAdapter:
    return OpenAIInferenceAdapter(client=mock_openai_client, model_name="gpt-4o-mini", temp=0.2, max_tokens=500)


@pytest.fixture
def catalog() -> ToolCatalog:
    return ToolCatalog.assemble(
        local=[
            ToolSpec(
                name="read_file",
                description="Read a file.",
                implementation=lambda path: "",
                argument_schema={
                    "type": "object",
                    "properties": {"path": {"type": "string"}},
                    "required": ["path"],
                    "additionalProperties": False,
                },
            )
        ]
    )


def _sent(client: Any) -> Dict[str, Any]:
    return client.chat.completions.create.call_args.kwargs


@pytest.mark.asyncio
async def test_request_carries_tools_schema_and_effort(
    adapter: OpenAIInferenceAdapter, mock_openai_client: Any, catalog: ToolCatalog
) -> None:
    mock_openai_client.chat.completions.create.return_value = _completion(content='{"summary": "ok"}')

    result = await adapter.call(
        [UserMessage(content="hi")],
        tool_catalog=catalog,
        response_schema=ObjectNode({"summary": StringNode()}),
        reasoning_effort="high",
    )

    sent = _sent(mock_openai_client)
    assert sent["model"] == "gpt-4o-mini"
    assert sent["reasoning_effort"] == "high"
    assert sent["max_completion_tokens"] == 500
    assert "max_tokens" not in sent
    assert "temperature" not in sent
    assert sent["tools"] == [
        {
            "type": "function",
            "function": {
                "name": "read_file",
                "description": "Read a file.",
                "parameters": catalog.resolve("read_file").argument_schema,
            },
        }
    ]
    json_schema = sent["response_format"]["json_schema"]
    assert sent["response_format"]["type"] == "json_schema"
    assert json_schema["strict"] is True
    assert json_schema["name"] == "response"
    assert json_schema["schema"]["additionalProperties"] is False

    assert result.object == {"summary": "ok"}
    assert result.usage is not None and result.usage.total_tokens == 15
    assert not result.has_tool_calls


@pytest.mark.asyncio
async def test_optional_request_fields_are_omitted(adapter: OpenAIInferenceAdapter, mock_openai_client: Any) -> None:
    mock_openai_client.chat.completions.create.return_value = _completion(content="plain text")

    result = await adapter.call([UserMessage(content="hi")], tool_catalog=ToolCatalog())

    sent = _sent(mock_openai_client)
    assert "tools" not in sent
    assert "response_format" not in sent
    assert "reasoning_effort" not in sent
    assert "max_completion_tokens" not in sent
    assert sent["temperature"] == 0.2
    assert sent["max_tokens"] == 500
    assert result.object is None
    assert result.content == "plain text"


@pytest.mark.asyncio
async def test_tool_calls_are_normalized(adapter: OpenAIInferenceAdapter, mock_openai_client: Any) -> None:
    mock_openai_client.chat.completions.create.return_value = _completion(
        tool_calls=[
            _function_call("call_1", "read_file", '{"path": "a.py"}'),
            _function_call("call_2", "read_file", '{"path": "b.py"}'),
        ]
    )

    result = await adapter.call([UserMessage(content="hi")], response_schema=ObjectNode({"x": StringNode()}))

    assert result.object is None
    assert result.tool_calls == [
        ToolCallRequest(name="read_file", arguments='{"path": "a.py"}', call_id="call_1"),
        ToolCallRequest(name="read_file", arguments='{"path": "b.py"}', call_id="call_2"),
    ]


@pytest.mark.asyncio
async def test_non_object_schema_is_unwrapped(adapter: OpenAIInferenceAdapter, mock_openai_client: Any) -> None:
    mock_openai_client.chat.completions.create.return_value = _completion(content='{"result": "fixed"}')

    result = await adapter.call([UserMessage(content="hi")], response_schema=StringNode())

    assert result.object == "fixed"
    assert _sent(mock_openai_client)["response_format"]["json_schema"]["schema"]["required"] == ["result"]


@pytest.mark.asyncio
async def test_pydantic_response_model(adapter: OpenAIInferenceAdapter, mock_openai_client: Any) -> None:
    mock_openai_client.chat.completions.create.return_value = _completion(
        content=json.dumps({"passed": True, "reason": "all green"})
    )

    result = await adapter.call([UserMessage(content="hi")], response_schema=Verdict)

    assert result.object == Verdict(passed=True, reason="all green")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "content, schema",
    [
        ("", ObjectNode({"summary": StringNode()})),
        ("not json", ObjectNode({"summary": StringNode()})),
        ('{"summary": 3}', ObjectNode({"summary": StringNode()})),
        ('{"summary": "x", "extra": 1}', ObjectNode({"summary": StringNode()})),
        ('{"passed": "maybe", "reason": "?"}', Verdict),
    ],
)
async def test_malformed_structured_output_is_a_contract_violation(
    adapter: OpenAIInferenceAdapter, mock_openai_client: Any, content: str, schema: Any
) -> None:
    mock_openai_client.chat.completions.create.return_value = _completion(content=content)

    with pytest.raises(ProviderContractViolation):
        await adapter.call([UserMessage(content="hi")], response_schema=schema)


@pytest.mark.asyncio
async def test_refusal_is_a_contract_violation(adapter: OpenAIInferenceAdapter, mock_openai_client: Any) -> None:
    mock_openai_client.chat.completions.create.return_value = _completion(refusal="I can't help with that.")

    with pytest.raises(ProviderContractViolation, match="refused"):
        await adapter.call([UserMessage(content="hi")], response_schema=ObjectNode({"x": StringNode()}))


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        openai.RateLimitError("slow down", response=httpx.Response(429, request=_REQUEST), body=None),
        openai.InternalServerError("oops", response=httpx.Response(500, request=_REQUEST), body=None),
        openai.APIConnectionError(request=_REQUEST),
        openai.APITimeoutError(request=_REQUEST),
    ],
)
async def test_retryable_errors_become_transient(
    adapter: OpenAIInferenceAdapter, mock_openai_client: Any, error: Exception
) -> None:
    mock_openai_client.chat.completions.create.side_effect = error

    with pytest.raises(ProviderTransientError):
        await adapter.call([UserMessage(content="hi")])


@pytest.mark.asyncio
async def test_other_api_errors_are_not_transient(adapter: OpenAIInferenceAdapter, mock_openai_client: Any) -> None:
    mock_openai_client.chat.completions.create.side_effect = openai.BadRequestError(
        "invalid schema", response=httpx.Response(400, request=_REQUEST), body=None
    )

    with pytest.raises(ProviderError) as exc_info:
        await adapter.call([UserMessage(content="hi")])
    assert not isinstance(exc_info.value, ProviderTransientError)


def test_history_conversion(mock_openai_client: Any) -> None:
    adapter = OpenAIInferenceAdapter(client=mock_openai_client, model_name="m", sys_instruction="Be terse.")
    history = [
        UserMessage(content="Add 1 and 1."),
        AssistantMessage(tool_calls=[ToolCallRequest(name="add", arguments={"a": 1, "b": 1}, call_id="c1")]),
        ToolMessage(content='{"result": 2}', tool_call_id="c1", name="add"),
        AssistantMessage(content="2"),
    ]

    converted = adapter._convert_history(history)

    assert converted == [
        {"role": "system", "content": "Be terse."},
        {"role": "user", "content": "Add 1 and 1."},
        {
            "role": "assistant",
            "content": "",
            "tool_calls": [
                {"id": "c1", "type": "function", "function": {"name": "add", "arguments": '{"a": 1, "b": 1}'}}
            ],
        },
        {"role": "tool", "content": '{"result": 2}', "tool_call_id": "c1"},
        {"role": "assistant", "content": "2"},
    ]


def test_existing_system_message_is_not_duplicated(mock_openai_client: Any) -> None:
    adapter = OpenAIInferenceAdapter(client=mock_openai_client, model_name="m", sys_instruction="Be terse.")

    converted = adapter._convert_history([SystemMessage(content="Custom."), UserMessage(content="hi")])

    assert converted == [{"role": "system", "content": "Custom."}, {"role": "user", "content": "hi"}]


class Settings(BaseModel):
    name: str
    retries: int = 3


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "schema",
    [
        ObjectNode({"a": StringNode(), "b": IntegerNode().optional(), "c": StringNode().nullable()}),
        ObjectNode({"payload": AnyNode()}),
        ArrayNode(ObjectNode({"path": StringNode(), "line": IntegerNode().with_default(1)})),
        Settings,
    ],
)
async def test_strict_mode_is_off_for_schemas_it_would_reject(
    adapter: OpenAIInferenceAdapter, mock_openai_client: Any, schema: Any
) -> None:
    mock_openai_client.chat.completions.create.return_value = _completion(content="{}")

    with pytest.raises(ProviderContractViolation):
        await adapter.call([UserMessage(content="hi")], response_schema=schema)

    assert _sent(mock_openai_client)["response_format"]["json_schema"]["strict"] is False


@pytest.mark.asyncio
async def test_strict_mode_is_on_when_every_field_is_required(
    adapter: OpenAIInferenceAdapter, mock_openai_client: Any
) -> None:
    mock_openai_client.chat.completions.create.return_value = _completion(content='{"result": ["a.py"]}')

    result = await adapter.call([UserMessage(content="hi")], response_schema=ArrayNode(StringNode()))

    assert _sent(mock_openai_client)["response_format"]["json_schema"]["strict"] is True
    assert result.object == ["a.py"]


def test_supports_strict_mode_walks_nested_schemas() -> None:
    closed = {"type": "object", "properties": {"x": {"type": "string"}}, "required": ["x"], "additionalProperties": False}

    assert supports_strict_mode(closed)
    assert supports_strict_mode({"anyOf": [closed, {"type": "null"}]})
    assert not supports_strict_mode({"anyOf": [closed, {}]})
    assert not supports_strict_mode({"type": "array", "items": {**closed, "required": []}})
    assert not supports_strict_mode({})
