"""Bounded autonomous sessions: a tool loop with a fixed tool subset and a round/time budget."""

import asyncio
import inspect
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Sequence

from agent_runtime.llm_core.base import InferenceAdapter, ResponseSchema
from agent_runtime.llm_core.config import MCPServerConfig
from agent_runtime.llm_core.exceptions import SessionStateError
from agent_runtime.llm_core.logger import get_logger
from agent_runtime.llm_core.messages import BaseMessage
from agent_runtime.llm_core.tools import (
    ToolCallResult,
    ToolCatalog,
    ToolRenderEvent,
    ToolSpec,
    assemble_catalog,
    with_renderer,
)
from agent_runtime.llm_core.tools.tool_loop import LoopState, StopReason, ToolExecutionLoop
from agent_runtime.mcp_wrapper import RemoteToolDiscovery

logger = get_logger(__name__)

Renderer = Callable[[ToolRenderEvent], Any]


class SessionStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"
    BUDGET_EXCEEDED = "budget_exceeded"
    FAILED = "failed"


_TERMINAL_STATUS = {
    StopReason.COMPLETED: SessionStatus.COMPLETED,
    StopReason.ABORTED: SessionStatus.ABORTED,
    StopReason.BUDGET_EXCEEDED: SessionStatus.BUDGET_EXCEEDED,
}


@dataclass(frozen=True)
class SessionBudget:
    """
    Limits of one session.

    Attributes:
        max_rounds: Maximum number of inference rounds.
        max_seconds: Optional wall-clock limit; checked before each round.
    """

    max_rounds: int = 10
    max_seconds: Optional[float] = None


@dataclass
class SessionResult:
    """
    Outcome of a session run.

    ``BUDGET_EXCEEDED`` and ``ABORTED`` results are partial, not errors: the
    conversation up to the stopping point is in ``messages``.
    """

    status: SessionStatus
    object: Any = None
    messages: List[BaseMessage] = field(default_factory=list)
    rounds: int = 0
    tool_results: List[ToolCallResult] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return self.status != SessionStatus.COMPLETED


class BoundedSession:
    """
    Runs a tool-calling conversation restricted to a fixed set of tools and a budget.

    Each session assembles a fresh catalog (discovering remote tools if any are
    configured), runs once, and tears its remote connections down exactly once,
    whatever the outcome.
    """

    def __init__(
        self,
        adapter: InferenceAdapter,
        tools: Iterable[ToolSpec] = (),
        budget: Optional[SessionBudget] = None,
        allowed_tools: Optional[Sequence[str]] = None,
        remote_servers: Sequence[MCPServerConfig] = (),
        render: Optional[Renderer] = None,
        response_schema: Optional[ResponseSchema] = None,
        reasoning_effort: Optional[str] = None,
        tool_timeout: float = 180.0,
        max_retries: int = 3,
        base_retry_delay: float = 1.0,
        connect_timeout: float = 10.0,
    ):
        """
        Args:
            adapter: Provider adapter issuing the inference calls.
            tools: Local tools available to the session.
            budget: Round and time limits. Defaults to ``SessionBudget()``.
            allowed_tools: If given, only these tool names are offered to the model.
            remote_servers: Remote tool servers to discover at session start.
            render: Receives a start and a success event per tool invocation.
            response_schema: Expected shape of the final answer.
            reasoning_effort: Provider hint forwarded with every call.
            tool_timeout: Timeout in seconds for a single tool execution.
            max_retries: Retries for transient provider errors per round.
            base_retry_delay: Initial backoff delay for those retries.
            connect_timeout: Per-server timeout for remote discovery.
        """
        self.adapter = adapter
        self.budget = budget or SessionBudget()
        self.allowed_tools = list(allowed_tools) if allowed_tools is not None else None
        self.response_schema = response_schema
        self.reasoning_effort = reasoning_effort
        self._tools = list(tools)
        self._remote_servers = list(remote_servers)
        self._render = render
        self._tool_timeout = tool_timeout
        self._max_retries = max_retries
        self._base_retry_delay = base_retry_delay
        self._connect_timeout = connect_timeout
        self._cancel_event = asyncio.Event()
        self._status = SessionStatus.IDLE
        self.catalog: Optional[ToolCatalog] = None

    @property
    def status(self) -> SessionStatus:
        return self._status

    def cancel(self) -> None:
        """Request a cooperative stop. In-flight tool calls finish; no new round starts."""
        logger.info("Cancellation requested for session.")
        self._cancel_event.set()

    async def run(self, messages: Sequence[BaseMessage]) -> SessionResult:
        """Run the session to a terminal state.

        Args:
            messages: Initial conversation.

        Returns:
            The session result.

        Raises:
            SessionStateError: If the session has already been run.
        """
        if self._status != SessionStatus.IDLE:
            raise SessionStateError(f"Session cannot be run from state '{self._status.value}'.")
        self._status = SessionStatus.RUNNING

        discovery = (
            RemoteToolDiscovery(self._remote_servers, connect_timeout=self._connect_timeout)
            if self._remote_servers
            else None
        )
        state = LoopState(messages=list(messages))
        try:
            self.catalog = await self._build_catalog(discovery)
            tool_loop = ToolExecutionLoop(
                registry=self.catalog,
                max_rounds=self.budget.max_rounds,
                tool_timeout=self._tool_timeout,
                max_retries=self._max_retries,
                base_retry_delay=self._base_retry_delay,
            )
            deadline = time.monotonic() + self.budget.max_seconds if self.budget.max_seconds else None
            outcome = await tool_loop.run(
                state,
                self.adapter,
                response_schema=self.response_schema,
                reasoning_effort=self.reasoning_effort,
                cancel_event=self._cancel_event,
                deadline=deadline,
            )
        except asyncio.CancelledError:
            self._status = SessionStatus.ABORTED
            raise
        except Exception:
            self._status = SessionStatus.FAILED
            raise
        finally:
            if discovery is not None:
                await discovery.aclose()

        self._status = _TERMINAL_STATUS[outcome.stop_reason]
        if self._status == SessionStatus.BUDGET_EXCEEDED:
            logger.warning("Session stopped after exhausting its budget (%d round(s)).", state.iteration_count)
        else:
            logger.info("Session finished with status '%s' after %d round(s).", self._status.value, state.iteration_count)

        return SessionResult(
            status=self._status,
            object=outcome.object,
            messages=state.messages,
            rounds=state.iteration_count,
            tool_results=outcome.tool_results,
        )

    async def _build_catalog(self, discovery: Optional[RemoteToolDiscovery]) -> ToolCatalog:
        catalog = await assemble_catalog(self._tools, discovery)
        catalog = catalog.restrict(self.allowed_tools)
        if self._render is not None:
            catalog = ToolCatalog.assemble(with_renderer(tool, self._safe_render) for tool in catalog)
        logger.debug("Session catalog: %s", ", ".join(catalog.names) or "<empty>")
        return catalog

    async def _safe_render(self, event: ToolRenderEvent) -> None:
        assert self._render is not None
        try:
            outcome = self._render(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning("Render callback failed for tool '%s' (%s): %s", event.name, event.status, e)
