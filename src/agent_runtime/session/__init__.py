"""Bounded autonomous sessions built on top of the tool execution loop."""

from .bounded import BoundedSession, SessionBudget, SessionResult, SessionStatus
from .debugger import DEBUG_TOOL_NAMES, DebugSession, create_deep_debugger_tool, summarize_session

__all__ = [
    "BoundedSession",
    "SessionBudget",
    "SessionResult",
    "SessionStatus",
    "DEBUG_TOOL_NAMES",
    "DebugSession",
    "create_deep_debugger_tool",
    "summarize_session",
]
