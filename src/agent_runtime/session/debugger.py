"""Autonomous debugging session and the tool exposing it to the main conversation."""

import asyncio
import inspect
import json
from typing import Annotated, Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from pydantic import Field

from agent_runtime.llm_core.base import InferenceAdapter
from agent_runtime.llm_core.config import IssueReport, resolve_reasoning_effort
from agent_runtime.llm_core.exceptions import ToolExecutionError
from agent_runtime.llm_core.logger import get_logger
from agent_runtime.llm_core.messages import AssistantMessage, BaseMessage, SystemMessage, UserMessage
from agent_runtime.llm_core.tools import ToolRegistry, ToolSpec

from .bounded import BoundedSession, SessionBudget, SessionResult

logger = get_logger(__name__)

DEBUG_TOOL_NAMES = (
    "get_logs",
    "get_runtime_errors",
    "read_files",
    "run_analysis",
    "exec_commands",
    "regenerate_file",
    "generate_files",
    "deploy_preview",
    "wait",
    "git",
)

DEBUG_SYSTEM_PROMPT = (
    "You are an autonomous debugging assistant working on a deployed application. "
    "Use the available tools to inspect logs, runtime errors and source files, fix the "
    "root cause with the smallest change, redeploy, and verify the fix. Stop calling "
    "tools once the issue is resolved and summarize what you changed."
)


def _format_issues(label: str, issues: Sequence[Any]) -> str:
    if not issues:
        return f"{label}: none"
    lines = [f"{label} ({len(issues)}):"]
    for issue in issues:
        lines.append(f"- {issue if isinstance(issue, str) else json.dumps(issue, default=str)}")
    return "\n".join(lines)


class DebugSession(BoundedSession):
    """
    Bounded session restricted to the debugging tools and seeded from an issue report.

    The reasoning effort is escalated when the report contains runtime errors.
    """

    def __init__(
        self,
        adapter: InferenceAdapter,
        tools: Sequence[ToolSpec],
        issues: Optional[IssueReport] = None,
        budget: Optional[SessionBudget] = None,
        reasoning_effort: Optional[str] = None,
        **kwargs: Any,
    ):
        kwargs.setdefault("allowed_tools", DEBUG_TOOL_NAMES)
        super().__init__(
            adapter,
            tools,
            budget=budget,
            reasoning_effort=resolve_reasoning_effort(reasoning_effort, issues),
            **kwargs,
        )
        self.issues = issues

    def build_messages(self, instructions: str, focus_paths: Sequence[str] = ()) -> List[BaseMessage]:
        """Seed conversation: system prompt, then the task with the issue report attached."""
        parts = [instructions.strip()]
        if focus_paths:
            parts.append("Focus on these files: " + ", ".join(focus_paths))
        if self.issues is not None:
            parts.append(_format_issues("Runtime errors", self.issues.runtime_errors))
            parts.append(_format_issues("Static analysis issues", self.issues.static_issues))
        return [SystemMessage(content=DEBUG_SYSTEM_PROMPT), UserMessage(content="\n\n".join(parts))]

    async def debug(self, instructions: str, focus_paths: Sequence[str] = ()) -> SessionResult:
        """Run the session on a freshly seeded conversation."""
        return await self.run(self.build_messages(instructions, focus_paths))


SessionFactory = Callable[[], Union[DebugSession, Awaitable[DebugSession]]]


def summarize_session(result: SessionResult) -> Dict[str, Any]:
    """Compact, JSON-friendly summary handed back to the calling conversation."""
    summary = ""
    if result.object is not None:
        summary = result.object if isinstance(result.object, str) else json.dumps(result.object, default=str)
    else:
        # Partial runs have no final answer; fall back to the last thing the model said.
        for message in reversed(result.messages):
            if isinstance(message, AssistantMessage) and message.content:
                summary = message.content
                break

    return {
        "status": result.status.value,
        "rounds": result.rounds,
        "tool_calls": len(result.tool_results),
        "summary": summary,
    }


def create_deep_debugger_tool(session_factory: SessionFactory, name: str = "deep_debug") -> ToolSpec:
    """Expose an autonomous debug session as a tool of the main conversation.

    Only one debug session runs at a time; a second call while one is active
    fails with a recoverable tool error.

    Args:
        session_factory: Builds a fresh ``DebugSession`` for every call.
        name: Tool name offered to the model.

    Returns:
        The ToolSpec, ready to be registered in a catalog.
    """
    lock = asyncio.Lock()

    async def deep_debug(
        issue: Annotated[str, Field(description="What is broken and how it shows up.")],
        focus_paths: Annotated[
            Optional[List[str]], Field(description="Files the debugger should look at first.")
        ] = None,
    ) -> Dict[str, Any]:
        """Run an autonomous debugging session that investigates and fixes an issue in the application."""
        if lock.locked():
            raise ToolExecutionError("A debug session is already running. Wait for it to finish.")

        async with lock:
            session = session_factory()
            if inspect.isawaitable(session):
                session = await session
            logger.info("Starting deep debug session: %s", issue)
            result = await session.debug(issue, focus_paths or ())
            return summarize_session(result)

    registry = ToolRegistry()
    return registry.register(name, func=deep_debug)
