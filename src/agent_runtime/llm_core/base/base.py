"""Core abstractions for model provider implementations."""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Callable, Coroutine, List, Optional, Sequence, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..exceptions import ProviderContractViolation, ProviderTransientError
from ..logger import get_logger
from ..messages import BaseMessage
from ..schema import ResponseFormat, SchemaCompiler, SchemaNode, SchemaValidator, node_from_model
from ..tools.registry import ToolRegistry
from ..tools.models import ToolCallRequest

logger = get_logger(__name__)

T = TypeVar("T")

ResponseSchema = Union[SchemaNode, Type[BaseModel]]


class TokenUsage(BaseModel):
    """
    Token counts reported for one provider call.

    Attributes:
        prompt_tokens: The number of tokens in the prompt.
        completion_tokens: The number of tokens in the completion.
        total_tokens: The total number of tokens used.
    """

    prompt_tokens: Optional[int] = Field(default=None)
    completion_tokens: Optional[int] = Field(default=None)
    total_tokens: Optional[int] = Field(default=None)


class InferenceResult(BaseModel):
    """Normalized outcome of one inference call.

    Normally exactly one of ``object`` and ``tool_calls`` is populated. Providers
    that interleave may fill both; the execution loop then handles the tool calls
    before it accepts the object.

    Attributes:
        object: The validated structured response, if the model produced one.
        tool_calls: Tool calls the model requested, in request order.
        content: Free text returned alongside (may be empty).
        usage: Token accounting, if the provider reported it.
        raw: Provider-specific response payload for advanced use cases.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    object: Any = None
    tool_calls: List[ToolCallRequest] = Field(default_factory=list)
    content: str = ""
    usage: Optional[TokenUsage] = None
    raw: Any = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


async def execute_with_retry(
    func: Callable[..., Coroutine[Any, Any, T]],
    *args: Any,
    max_retries: int = 3,
    base_retry_delay: float = 1.0,
    **kwargs: Any,
) -> T:
    """
    Executes a provider call, retrying transient failures.

    Only ``ProviderTransientError`` is retried, with exponential backoff. Contract
    violations and every other error propagate on the first occurrence.

    Args:
        func: The asynchronous function to execute.
        *args: Positional arguments for the function.
        max_retries: How many times a transient failure is retried.
        base_retry_delay: Delay before the first retry in seconds; doubled after each attempt.
        **kwargs: Keyword arguments for the function.

    Returns:
        The result of the function call.

    Raises:
        ProviderTransientError: The last transient error if all retries fail.
    """
    delay = base_retry_delay
    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except ProviderTransientError as e:
            if attempt == max_retries:
                logger.error("Provider call failed after %d retries: %s", max_retries, e)
                raise

            logger.warning(f"Transient provider error (Retry: {attempt + 1}/{max_retries}): {e}. Waiting {delay}s...")
            await asyncio.sleep(delay)
            delay *= 2  # Exponential backoff

    raise ProviderTransientError(f"Failed to get response after {max_retries} retries.")


class InferenceAdapter(ABC):
    """Abstract base class for provider adapters.

    An adapter turns provider-agnostic messages, a tool catalog and an optional
    response schema into one provider request, and maps the response back to an
    ``InferenceResult``. Adapters never retry; see ``execute_with_retry``.
    """

    async def call(
        self,
        messages: Sequence[BaseMessage],
        tool_catalog: Optional[ToolRegistry] = None,
        response_schema: Optional[ResponseSchema] = None,
        reasoning_effort: Optional[str] = None,
    ) -> InferenceResult:
        """
        Issue one structured request.

        Args:
            messages: The conversation so far.
            tool_catalog: Tools the model may call in this turn.
            response_schema: Expected shape of the final answer, as a schema node or a pydantic model.
            reasoning_effort: Provider hint (e.g. "low", "medium", "high"); may be ignored.

        Returns:
            The normalized result.

        Raises:
            ProviderTransientError: For rate limits, timeouts and similar retryable failures.
            ProviderContractViolation: If the response does not conform to ``response_schema``.
        """
        response_format, model = self.prepare_response_format(response_schema)
        return await self._call_impl(list(messages), tool_catalog, response_format, model, reasoning_effort)

    @abstractmethod
    async def _call_impl(
        self,
        messages: List[BaseMessage],
        tool_catalog: Optional[ToolRegistry],
        response_format: Optional[ResponseFormat],
        response_model: Optional[Type[BaseModel]],
        reasoning_effort: Optional[str],
    ) -> InferenceResult:
        pass

    @staticmethod
    def prepare_response_format(
        response_schema: Optional[ResponseSchema],
    ) -> Tuple[Optional[ResponseFormat], Optional[Type[BaseModel]]]:
        """Compile ``response_schema`` into a response format whose root is an object."""
        if response_schema is None:
            return None, None

        compiler = SchemaCompiler()
        if isinstance(response_schema, SchemaNode):
            return compiler.wrap_as_response_format(response_schema), None
        return compiler.wrap_as_response_format(node_from_model(response_schema)), response_schema

    @staticmethod
    def parse_structured(
        text: Optional[str],
        response_format: ResponseFormat,
        response_model: Optional[Type[BaseModel]] = None,
    ) -> Any:
        """Decode and validate a structured response.

        Args:
            text: The raw JSON text returned by the provider.
            response_format: The format the request was made with.
            response_model: Pydantic model to validate against, if the caller gave one.

        Returns:
            The unwrapped value, or a model instance when ``response_model`` is set.

        Raises:
            ProviderContractViolation: If the text is not JSON or does not match the schema.
        """
        if not text:
            raise ProviderContractViolation("Provider returned an empty structured response.", payload=text)

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise ProviderContractViolation(f"Structured response is not valid JSON: {e}", payload=text) from e

        if response_model is None:
            errors = SchemaValidator.validate_payload(payload, response_format.schema)
            if errors:
                logger.warning("Structured response violates the response schema: %s", "; ".join(errors))
                raise ProviderContractViolation(
                    "Structured response does not conform to the response schema.", payload=payload, errors=errors
                )
            return response_format.unwrap(payload)

        try:
            return response_model.model_validate(response_format.unwrap(payload))
        except ValidationError as e:
            errors = [f"{'/'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}" for err in e.errors()]
            logger.warning("Structured response failed model validation: %s", "; ".join(errors))
            raise ProviderContractViolation(
                f"Structured response does not match {response_model.__name__}.", payload=payload, errors=errors
            ) from e
