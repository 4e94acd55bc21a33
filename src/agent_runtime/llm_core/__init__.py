"""Public exports for the core runtime abstractions and utilities."""

from .base import InferenceAdapter, InferenceResult, TokenUsage, execute_with_retry
from .config import MCPServerConfig, OperationConfig, RuntimeConfig, IssueReport, resolve_reasoning_effort
from .exceptions import (
    AgentRuntimeError,
    LLMToolError,
    ToolRegistrationError,
    ToolNotFoundError,
    ToolExecutionError,
    ToolValidationError,
    ProviderError,
    ProviderTransientError,
    ProviderContractViolation,
    RemoteDiscoveryError,
    SessionStateError,
)
from .logger import get_logger, setup_logging
from .messages.models import (
    BaseMessage,
    UserMessage,
    AssistantMessage,
    SystemMessage,
    ToolMessage,
)
from .schema import SchemaCompiler, SchemaValidator, compile_schema, create_output_format, wrap_as_response_format
from .tools import (
    ToolSpec,
    ToolCallRequest,
    ToolCallResult,
    ToolRenderEvent,
    ToolRegistry,
    ToolCatalog,
    assemble_catalog,
    with_observability,
    with_renderer,
)
from .tools.tool_loop import LoopResult, LoopState, StopReason, ToolExecutionLoop

__all__ = [
    "InferenceAdapter",
    "InferenceResult",
    "TokenUsage",
    "execute_with_retry",
    "MCPServerConfig",
    "OperationConfig",
    "RuntimeConfig",
    "IssueReport",
    "resolve_reasoning_effort",
    "AgentRuntimeError",
    "LLMToolError",
    "ToolRegistrationError",
    "ToolNotFoundError",
    "ToolExecutionError",
    "ToolValidationError",
    "ProviderError",
    "ProviderTransientError",
    "ProviderContractViolation",
    "RemoteDiscoveryError",
    "SessionStateError",
    "get_logger",
    "setup_logging",
    "BaseMessage",
    "UserMessage",
    "AssistantMessage",
    "SystemMessage",
    "ToolMessage",
    "SchemaCompiler",
    "SchemaValidator",
    "compile_schema",
    "create_output_format",
    "wrap_as_response_format",
    "ToolSpec",
    "ToolCallRequest",
    "ToolCallResult",
    "ToolRenderEvent",
    "ToolRegistry",
    "ToolCatalog",
    "assemble_catalog",
    "with_observability",
    "with_renderer",
    "LoopResult",
    "LoopState",
    "StopReason",
    "ToolExecutionLoop",
]
