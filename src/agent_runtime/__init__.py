"""Agent runtime - structured tool calling, bounded sessions and remote tool discovery."""

from .llm_core import (
    InferenceAdapter,
    InferenceResult,
    RuntimeConfig,
    UserMessage,
    AssistantMessage,
    SystemMessage,
    ToolMessage,
    ToolSpec,
    ToolRegistry,
    ToolCatalog,
    ToolExecutionLoop,
    compile_schema,
    create_output_format,
    wrap_as_response_format,
    with_observability,
    with_renderer,
)
from .llm_impl.openai_api import OpenAIInferenceAdapter
from .mcp_wrapper import MCPClientWrapper, RemoteToolDiscovery
from .session import BoundedSession, DebugSession, SessionBudget, SessionStatus, create_deep_debugger_tool

__all__ = [
    "InferenceAdapter",
    "InferenceResult",
    "RuntimeConfig",
    "UserMessage",
    "AssistantMessage",
    "SystemMessage",
    "ToolMessage",
    "ToolSpec",
    "ToolRegistry",
    "ToolCatalog",
    "ToolExecutionLoop",
    "compile_schema",
    "create_output_format",
    "wrap_as_response_format",
    "with_observability",
    "with_renderer",
    "OpenAIInferenceAdapter",
    "MCPClientWrapper",
    "RemoteToolDiscovery",
    "BoundedSession",
    "DebugSession",
    "SessionBudget",
    "SessionStatus",
    "create_deep_debugger_tool",
]
