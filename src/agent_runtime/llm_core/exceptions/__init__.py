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

__all__ = [
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
]
