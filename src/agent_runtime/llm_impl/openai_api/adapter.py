import json
from typing import Any, Dict, Iterable, List, Optional, Type, cast

import openai
from openai import AsyncOpenAI
from openai.types.chat import ChatCompletion, ChatCompletionToolParam
from pydantic import BaseModel

from agent_runtime.llm_core.base import InferenceAdapter, InferenceResult, TokenUsage
from agent_runtime.llm_core.exceptions import ProviderContractViolation, ProviderError, ProviderTransientError
from agent_runtime.llm_core.logger import get_logger
from agent_runtime.llm_core.messages import AssistantMessage, BaseMessage, SystemMessage, ToolMessage, UserMessage
from agent_runtime.llm_core.schema import ResponseFormat
from agent_runtime.llm_core.tools import ToolCallRequest, ToolRegistry

logger = get_logger(__name__)

# Errors a caller may retry with backoff. APITimeoutError is an APIConnectionError.
_TRANSIENT_ERRORS = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.InternalServerError,
)

_SUBSCHEMA_LIST_KEYS = ("anyOf", "allOf")


def supports_strict_mode(schema: Any) -> bool:
    """
    Checks whether a compiled schema can be sent with ``strict: true``.

    Strict structured outputs need every object property listed in ``required``
    and reject unconstrained ``{}`` subschemas.
    """
    if not isinstance(schema, dict) or not schema:
        return False

    properties = schema.get("properties")
    if properties is not None:
        if set(schema.get("required", [])) != set(properties):
            return False
        if not all(supports_strict_mode(sub) for sub in properties.values()):
            return False

    if "items" in schema and not supports_strict_mode(schema["items"]):
        return False

    for key in _SUBSCHEMA_LIST_KEYS:
        if not all(supports_strict_mode(sub) for sub in schema.get(key, [])):
            return False
    return True


class OpenAIInferenceAdapter(InferenceAdapter):
    """
    Inference adapter for the OpenAI chat-completions API and compatible servers.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model_name: str,
        sys_instruction: Optional[str] = None,
        temp: float = 1.0,
        max_tokens: int = 3000,
        schema_name: str = "response",
    ):
        """
        Initializes the adapter.

        Args:
            client: The initialized AsyncOpenAI client.
            model_name: The identifier of the model to use (e.g., 'gpt-4o-mini').
            sys_instruction: Optional system instruction, prepended when the conversation has none.
            temp: The temperature for text generation, controlling randomness.
            max_tokens: The maximum number of tokens to generate in the response.
            schema_name: Name reported for the structured-output schema.
        """
        self.client: AsyncOpenAI = client
        self.model: str = model_name
        self.sys_instruction = sys_instruction
        self.temperature = temp
        self.max_tokens = max_tokens
        self.schema_name = schema_name

    async def _call_impl(
        self,
        messages: List[BaseMessage],
        tool_catalog: Optional[ToolRegistry],
        response_format: Optional[ResponseFormat],
        response_model: Optional[Type[BaseModel]],
        reasoning_effort: Optional[str],
    ) -> InferenceResult:
        request: Dict[str, Any] = {
            "model": self.model,
            "messages": cast(Iterable[Any], self._convert_history(messages)),
        }
        if reasoning_effort is not None:
            # Reasoning models reject max_tokens and a custom temperature.
            request["reasoning_effort"] = reasoning_effort
            request["max_completion_tokens"] = self.max_tokens
        else:
            request["temperature"] = self.temperature
            request["max_tokens"] = self.max_tokens
        tools = self._build_tools(tool_catalog)
        if tools:
            request["tools"] = tools
        if response_format is not None:
            request["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": self.schema_name,
                    "schema": response_format.schema,
                    "strict": supports_strict_mode(response_format.schema),
                },
            }

        try:
            response = await self.client.chat.completions.create(**request)
        except _TRANSIENT_ERRORS as e:
            logger.warning("Transient OpenAI error: %s", e)
            raise ProviderTransientError(str(e)) from e
        except openai.OpenAIError as e:
            logger.error("OpenAI request failed: %s", e)
            raise ProviderError(str(e)) from e

        return self._build_result(response, response_format, response_model)

    def _convert_history(self, history: List[BaseMessage]) -> List[Dict[str, Any]]:
        """
        Converts provider-agnostic messages to OpenAI message dictionaries.

        Args:
            history: List of BaseMessage objects.

        Returns:
            List of OpenAI message dictionaries.
        """
        openai_history: List[Dict[str, Any]] = []
        if self.sys_instruction and not any(isinstance(msg, SystemMessage) for msg in history):
            openai_history.append({"role": "system", "content": self.sys_instruction})

        for msg in history:
            if isinstance(msg, UserMessage):
                openai_history.append({"role": "user", "content": msg.content})
            elif isinstance(msg, AssistantMessage):
                openai_msg: Dict[str, Any] = {"role": "assistant", "content": msg.content}
                if msg.tool_calls:
                    openai_msg["tool_calls"] = [self._convert_tool_call(tc) for tc in msg.tool_calls]
                openai_history.append(openai_msg)
            elif isinstance(msg, SystemMessage):
                openai_history.append({"role": "system", "content": msg.content})
            elif isinstance(msg, ToolMessage):
                openai_history.append({"role": "tool", "content": msg.content, "tool_call_id": msg.tool_call_id})
        return openai_history

    @staticmethod
    def _convert_tool_call(request: ToolCallRequest) -> Dict[str, Any]:
        arguments = request.arguments
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments or {})
        return {
            "id": request.call_id,
            "type": "function",
            "function": {"name": request.name, "arguments": arguments},
        }

    @staticmethod
    def _build_tools(tool_catalog: Optional[ToolRegistry]) -> List[ChatCompletionToolParam]:
        """Format the catalog as OpenAI function tools."""
        if not tool_catalog:
            return []
        return [
            cast(
                ChatCompletionToolParam,
                {
                    "type": "function",
                    "function": {
                        "name": definition["name"],
                        "description": definition["description"],
                        "parameters": definition["argument_schema"],
                    },
                },
            )
            for definition in tool_catalog.tool_definitions
        ]

    def _build_result(
        self,
        response: ChatCompletion,
        response_format: Optional[ResponseFormat],
        response_model: Optional[Type[BaseModel]],
    ) -> InferenceResult:
        """
        Maps a ChatCompletion onto an InferenceResult.

        Raises:
            ProviderContractViolation: If the response is empty, refused, or does not match the schema.
        """
        if not response.choices:
            raise ProviderContractViolation("Provider returned no choices.", payload=response.model_dump())

        message = response.choices[0].message
        usage = None
        if response.usage:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )

        tool_calls = [
            ToolCallRequest(name=tc.function.name, arguments=tc.function.arguments, call_id=tc.id)
            for tc in (message.tool_calls or [])
            if tc.type == "function"
        ]
        if tool_calls:
            return InferenceResult(tool_calls=tool_calls, content=message.content or "", usage=usage, raw=response)

        refusal = getattr(message, "refusal", None)
        if refusal:
            raise ProviderContractViolation(f"Model refused to answer: {refusal}", payload=refusal)

        content = message.content or ""
        obj = None
        if response_format is not None:
            obj = self.parse_structured(content, response_format, response_model)

        return InferenceResult(object=obj, content=content, usage=usage, raw=response)
