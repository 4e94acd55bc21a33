"""Provider-agnostic tool execution loop."""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, cast

from pydantic import ValidationError

from ..base.base import InferenceAdapter, InferenceResult, ResponseSchema, execute_with_retry
from ..exceptions import ToolExecutionError
from ..logger import get_logger
from ..messages import AssistantMessage, BaseMessage, ToolMessage
from .models import ToolCallRequest, ToolCallResult
from .registry import ToolRegistry

logger = get_logger(__name__)


class StopReason(str, Enum):
    COMPLETED = "completed"
    BUDGET_EXCEEDED = "budget_exceeded"
    ABORTED = "aborted"


@dataclass
class LoopState:
    """Conversation and counters owned by one loop run.

    Attributes:
        messages: Turns exchanged so far; tool turns are appended in request order.
        iteration_count: Inference rounds issued so far.
        max_rounds: Round limit; the loop fills in its own limit when left unset.
        terminal: True once the run has stopped.
    """

    messages: List[BaseMessage]
    iteration_count: int = 0
    max_rounds: Optional[int] = None
    terminal: bool = False


@dataclass
class LoopResult:
    stop_reason: StopReason
    state: LoopState
    object: Any = None
    last_response: Optional[InferenceResult] = None
    tool_results: List[ToolCallResult] = field(default_factory=list)


class ToolExecutionLoop:
    """Drives rounds of inference and tool execution until a terminal condition.

    This loop handles argument normalization, validation, tool execution,
    and error handling in a provider-agnostic way.
    """

    # Exceptions that are considered recoverable and are reported back to the model.
    # System errors (like ConnectionError, MemoryError) are NOT included and will
    # propagate, stopping the loop.
    RECOVERABLE_ERRORS = (
        ToolExecutionError,
        FileNotFoundError,
        FileExistsError,
        PermissionError,
        IsADirectoryError,
        NotADirectoryError,
        ValueError,
        TypeError,
    )

    def __init__(
        self,
        *,
        registry: Optional[ToolRegistry],
        max_rounds: int = 5,
        tool_timeout: float = 180.0,
        max_retries: int = 3,
        base_retry_delay: float = 1.0,
        argument_error_formatter: Optional[Callable[[str, Exception], str]] = None,
    ) -> None:
        """Initialize the tool execution loop.

        Args:
            registry: Tool registry (usually a session's catalog) used to resolve tools.
            max_rounds: Maximum number of inference rounds per run.
            tool_timeout: Timeout in seconds for a single tool execution.
            max_retries: Retries for transient provider errors per round.
            base_retry_delay: Initial backoff delay for those retries.
            argument_error_formatter: Optional formatter for argument parsing errors.
        """
        self._registry = registry
        self._max_rounds = max_rounds
        self._tool_timeout = tool_timeout
        self._max_retries = max_retries
        self._base_retry_delay = base_retry_delay
        self._argument_error_formatter = argument_error_formatter or self._default_argument_error

    @property
    def max_rounds(self) -> int:
        return self._max_rounds

    async def run(
        self,
        state: LoopState,
        adapter: InferenceAdapter,
        *,
        response_schema: Optional[ResponseSchema] = None,
        reasoning_effort: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
        deadline: Optional[float] = None,
    ) -> LoopResult:
        """Run rounds until the model answers, the budget runs out or the run is cancelled.

        Args:
            state: Conversation to continue; mutated in place.
            adapter: Provider adapter issuing the inference calls.
            response_schema: Expected shape of the final answer.
            reasoning_effort: Provider hint forwarded with every call.
            cancel_event: Checked between rounds; when set the run stops as aborted.
            deadline: ``time.monotonic()`` value after which no new round is started.

        Returns:
            The loop result. Budget exhaustion and cancellation are outcomes, not errors.
        """
        tool_results: List[ToolCallResult] = []
        last_response: Optional[InferenceResult] = None
        if state.max_rounds is None:
            state.max_rounds = self._max_rounds

        while True:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Cancellation requested. Stopping before round %d.", state.iteration_count + 1)
                return self._finish(state, StopReason.ABORTED, last_response, tool_results)

            if deadline is not None and time.monotonic() >= deadline:
                logger.warning("Time budget exhausted after %d round(s).", state.iteration_count)
                return self._finish(state, StopReason.BUDGET_EXCEEDED, last_response, tool_results)

            last_response, round_results = await self.step(
                state, adapter, response_schema=response_schema, reasoning_effort=reasoning_effort
            )
            if not round_results:
                logger.debug("No tool calls found in response. Loop finished.")
                result = self._finish(state, StopReason.COMPLETED, last_response, tool_results)
                result.object = last_response.object
                return result

            tool_results.extend(round_results)
            if state.iteration_count >= state.max_rounds:
                logger.warning(f"Max rounds ({state.max_rounds}) reached. Stopping execution.")
                return self._finish(state, StopReason.BUDGET_EXCEEDED, last_response, tool_results)

    async def step(
        self,
        state: LoopState,
        adapter: InferenceAdapter,
        *,
        response_schema: Optional[ResponseSchema] = None,
        reasoning_effort: Optional[str] = None,
    ) -> tuple[InferenceResult, List[ToolCallResult]]:
        """Run one round: a single inference call followed by the tool calls it requested.

        Returns:
            The inference result and the tool results appended to the conversation
            (empty if the model gave a final answer).
        """
        state.iteration_count += 1
        response = await execute_with_retry(
            adapter.call,
            state.messages,
            tool_catalog=self._registry,
            response_schema=response_schema,
            reasoning_effort=reasoning_effort,
            max_retries=self._max_retries,
            base_retry_delay=self._base_retry_delay,
        )

        if not response.tool_calls:
            return response, []

        if response.object is not None:
            logger.debug("Response carries both tool calls and an object; handling tool calls first.")

        logger.info(f"Round {state.iteration_count}/{state.max_rounds or self._max_rounds}: Processing {len(response.tool_calls)} tool call(s).")
        state.messages.append(AssistantMessage(content=response.content, tool_calls=list(response.tool_calls)))

        results = await self.dispatch(response.tool_calls)
        state.messages.extend(self.build_tool_messages(results))
        return response, results

    async def dispatch(self, tool_calls: Sequence[ToolCallRequest]) -> List[ToolCallResult]:
        """Execute one round's tool calls concurrently; results keep the request order.

        Every call settles before this returns. If any call failed with an
        unrecoverable error, the first such error is raised once its siblings
        have finished.
        """
        outcomes = await asyncio.gather(*(self._handle_tool_call(tc) for tc in tool_calls), return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        return cast(List[ToolCallResult], list(outcomes))

    @staticmethod
    def build_tool_messages(results: Sequence[ToolCallResult]) -> List[ToolMessage]:
        return [ToolMessage.from_result(result) for result in results]

    async def _handle_tool_call(self, tool_call: ToolCallRequest) -> ToolCallResult:
        """Handle a single tool call request.

        Validates the tool existence, normalizes arguments, validates against
        the argument model (if present), and executes the tool.

        Args:
            tool_call: The tool call request containing name, ID, and arguments.

        Returns:
            The result of the tool execution, including any recoverable errors.
        """
        logger.debug(f"Handling tool call: {tool_call.name} (ID: {tool_call.call_id})")

        if self._registry is None or tool_call.name not in self._registry:
            msg = f"Tool '{tool_call.name}' not found in registry."
            logger.warning(msg)
            return self._error_result(tool_call, msg)

        tool = self._registry.resolve(tool_call.name)

        try:
            function_args = self._normalize_function_args(tool_call.name, tool_call.arguments)
        except ToolExecutionError as exc:
            msg = str(exc)
            logger.warning(f"Argument normalization failed for '{tool_call.name}': {msg}")
            return self._error_result(tool_call, msg)

        if tool.args_model:
            try:
                function_args = tool.args_model(**function_args).model_dump()
            except ValidationError as validation_error:
                msg = f"Argument validation failed: {validation_error}"
                logger.warning(f"Validation error for '{tool_call.name}': {msg}")
                return self._error_result(tool_call, msg)

        try:
            logger.info(f"Executing tool '{tool_call.name}'...")
            function_result = await self._execute_tool(tool_call.name, function_args)
            logger.info(f"Tool '{tool_call.name}' executed successfully.")
        except self.RECOVERABLE_ERRORS as exc:
            msg = str(exc)
            logger.warning(f"Recoverable error in '{tool_call.name}': {msg} ({type(exc).__name__})")
            return self._error_result(tool_call, msg)

        return ToolCallResult(
            name=tool_call.name,
            response={"result": function_result},
            call_id=tool_call.call_id,
        )

    async def _execute_tool(self, tool_name: str, function_args: Dict[str, Any]) -> Any:
        """Run the tool through the registry under the configured timeout.

        Raises:
            ToolExecutionError: If execution times out.
        """
        assert self._registry is not None
        try:
            return await asyncio.wait_for(self._registry.invoke(tool_name, function_args), timeout=self._tool_timeout)
        except asyncio.TimeoutError as exc:
            msg = f"Tool execution timed out after {self._tool_timeout} seconds."
            raise ToolExecutionError(msg) from exc

    def _normalize_function_args(self, tool_name: str, raw_args: Any) -> Dict[str, Any]:
        """Normalize tool arguments into a dictionary.

        Handles JSON strings, dictionaries, or None values.

        Raises:
            ToolExecutionError: If arguments cannot be parsed or are invalid.
        """
        if raw_args is None or raw_args == "":
            return {}

        if isinstance(raw_args, dict):
            return raw_args

        if isinstance(raw_args, str):
            try:
                parsed = json.loads(raw_args)
            except json.JSONDecodeError as exc:
                raise ToolExecutionError(self._argument_error_formatter(tool_name, exc)) from exc

            if parsed is None:
                return {}

            if not isinstance(parsed, dict):
                msg = ValueError("Function arguments must decode to a JSON object.")
                raise ToolExecutionError(self._argument_error_formatter(tool_name, msg))

            return parsed

        try:
            return dict(raw_args)
        except (TypeError, ValueError) as exc:
            raise ToolExecutionError(self._argument_error_formatter(tool_name, exc)) from exc

    @staticmethod
    def _error_result(tool_call: ToolCallRequest, message: str) -> ToolCallResult:
        return ToolCallResult(
            name=tool_call.name,
            response={"error": message},
            call_id=tool_call.call_id,
            is_error=True,
        )

    @staticmethod
    def _finish(
        state: LoopState,
        reason: StopReason,
        last_response: Optional[InferenceResult],
        tool_results: List[ToolCallResult],
    ) -> LoopResult:
        state.terminal = True
        return LoopResult(stop_reason=reason, state=state, last_response=last_response, tool_results=tool_results)

    @staticmethod
    def _default_argument_error(tool_name: str, error: Exception) -> str:
        return f"Failed to parse arguments for tool '{tool_name}': {error}"
