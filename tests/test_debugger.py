import asyncio
from dataclasses import dataclass, field
from typing import Any, List

import pytest

from agent_runtime.llm_core.base import InferenceAdapter, InferenceResult
from agent_runtime.llm_core.config import IssueReport
from agent_runtime.llm_core.exceptions import ToolExecutionError
from agent_runtime.llm_core.messages import AssistantMessage, SystemMessage, UserMessage
from agent_runtime.llm_core.tools import ToolCallRequest, ToolRegistry, ToolSpec
from agent_runtime.session import (
    DEBUG_TOOL_NAMES,
    DebugSession,
    SessionResult,
    SessionStatus,
    create_deep_debugger_tool,
    summarize_session,
)


@dataclass
class Report:
    runtime_errors: List[Any] = field(default_factory=list)
    static_issues: List[Any] = field(default_factory=list)

    def has_runtime_errors(self) -> bool:
        return bool(self.runtime_errors)


def _tool(name: str) -> ToolSpec:
    return ToolSpec(name=name, description=f"Tool {name}.", implementation=lambda: f"{name} output")


class GatedAdapter(InferenceAdapter):
    """Answers only once ``gate`` is set."""

    def __init__(self, gate: asyncio.Event) -> None:
        self.gate = gate

    async def _call_impl(self, messages, tool_catalog, response_format, response_model, reasoning_effort):  # type: ignore[no-untyped-def]
        await self.gate.wait()
        return InferenceResult(object={"fixed": True})


def test_report_satisfies_issue_protocol() -> None:
    assert isinstance(Report(), IssueReport)


@pytest.mark.asyncio
async def test_debug_session_only_offers_debug_tools(scripted_adapter: Any) -> None:
    adapter = scripted_adapter([InferenceResult(object={"fixed": True})])
    session = DebugSession(adapter, tools=[_tool("read_files"), _tool("send_email"), _tool("get_logs")])

    result = await session.debug("The dashboard is blank.")

    assert result.status == SessionStatus.COMPLETED
    assert adapter.calls[0]["tools"] == ["read_files", "get_logs"]
    assert "send_email" not in DEBUG_TOOL_NAMES


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "base, report, expected",
    [
        ("low", Report(runtime_errors=["TypeError"]), "medium"),
        ("medium", Report(runtime_errors=["TypeError"]), "high"),
        ("low", Report(static_issues=["unused import"]), "low"),
        (None, None, None),
    ],
)
async def test_reasoning_effort_escalates_on_runtime_errors(
    scripted_adapter: Any, base: Any, report: Any, expected: Any
) -> None:
    adapter = scripted_adapter([InferenceResult(object={})])
    session = DebugSession(adapter, tools=[], issues=report, reasoning_effort=base)

    await session.debug("Fix it.")

    assert adapter.calls[0]["reasoning_effort"] == expected


def test_build_messages_includes_issue_report(scripted_adapter: Any) -> None:
    report = Report(runtime_errors=["TypeError: x is undefined"], static_issues=[{"file": "a.ts", "line": 3}])
    session = DebugSession(scripted_adapter([]), tools=[], issues=report)

    system, user = session.build_messages("  The page crashes.  ", ["src/App.tsx"])

    assert isinstance(system, SystemMessage)
    assert isinstance(user, UserMessage)
    assert user.content.startswith("The page crashes.")
    assert "Focus on these files: src/App.tsx" in user.content
    assert "Runtime errors (1):\n- TypeError: x is undefined" in user.content
    assert '- {"file": "a.ts", "line": 3}' in user.content


def test_summarize_session_prefers_object() -> None:
    completed = SessionResult(status=SessionStatus.COMPLETED, object={"fixed": True}, rounds=2)
    partial = SessionResult(
        status=SessionStatus.BUDGET_EXCEEDED,
        messages=[UserMessage(content="go"), AssistantMessage(content="Still reading logs.")],
        rounds=5,
    )

    assert summarize_session(completed) == {
        "status": "completed",
        "rounds": 2,
        "tool_calls": 0,
        "summary": '{"fixed": true}',
    }
    assert summarize_session(partial)["summary"] == "Still reading logs."
    assert summarize_session(partial)["status"] == "budget_exceeded"


def test_deep_debugger_tool_contract(scripted_adapter: Any) -> None:
    spec = create_deep_debugger_tool(lambda: DebugSession(scripted_adapter([]), tools=[]))

    assert spec.name == "deep_debug"
    assert spec.description.startswith("Run an autonomous debugging session")
    assert spec.argument_schema["required"] == ["issue"]
    assert set(spec.argument_schema["properties"]) == {"issue", "focus_paths"}


@pytest.mark.asyncio
async def test_deep_debugger_tool_runs_a_session(scripted_adapter: Any) -> None:
    adapter = scripted_adapter(
        [
            InferenceResult(tool_calls=[ToolCallRequest(name="get_logs", arguments={}, call_id="c1")]),
            InferenceResult(object={"fixed": True}),
        ]
    )

    async def factory() -> DebugSession:
        return DebugSession(adapter, tools=[_tool("get_logs")])

    registry = ToolRegistry()
    registry.register(create_deep_debugger_tool(factory))

    summary = await registry.invoke("deep_debug", {"issue": "Blank page", "focus_paths": ["index.html"]})

    assert summary == {"status": "completed", "rounds": 2, "tool_calls": 1, "summary": '{"fixed": true}'}
    assert "Focus on these files: index.html" in adapter.calls[0]["messages"][1].content


@pytest.mark.asyncio
async def test_only_one_debug_session_at_a_time() -> None:
    gate = asyncio.Event()
    spec = create_deep_debugger_tool(lambda: DebugSession(GatedAdapter(gate), tools=[]))

    first = asyncio.create_task(spec.implementation(issue="first"))
    await asyncio.sleep(0.01)

    with pytest.raises(ToolExecutionError, match="already running"):
        await spec.implementation(issue="second")

    gate.set()
    assert (await first)["status"] == "completed"

    # The lock is released once the first session finished.
    assert (await spec.implementation(issue="third"))["status"] == "completed"
