"""
Custom exception classes for the agent runtime.

This module defines the hierarchy of exceptions raised while registering and
executing tools, talking to the model provider, discovering remote tools and
driving sessions.
"""

from typing import Any, Sequence


class AgentRuntimeError(Exception):
    """Base exception for all runtime errors."""

    pass


class LLMToolError(AgentRuntimeError):
    """Base exception for all tool-related errors."""

    pass


class ToolRegistrationError(LLMToolError):
    """Raised when there is an error registering a tool."""

    pass


class ToolNotFoundError(LLMToolError):
    """Raised when a requested tool is not found in the registry."""

    pass


class ToolExecutionError(LLMToolError):
    """Raised when a tool fails during execution."""

    pass


class ToolValidationError(LLMToolError):
    """Raised when tool parameters or definition are invalid."""

    pass


class ProviderError(AgentRuntimeError):
    """Base exception for failures reported by, or about, the model provider."""

    pass


class ProviderTransientError(ProviderError):
    """Raised for rate limits, timeouts and other errors worth retrying."""

    pass


class ProviderContractViolation(ProviderError):
    """Raised when a provider response does not conform to the requested schema.

    Attributes:
        payload: The raw payload returned by the provider, if any.
        errors: Human readable validation messages.
    """

    def __init__(self, message: str, payload: Any = None, errors: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.payload = payload
        self.errors = list(errors)


class RemoteDiscoveryError(AgentRuntimeError):
    """Raised when a single remote tool server cannot be connected or listed."""

    pass


class SessionStateError(AgentRuntimeError):
    """Raised when a session is driven outside of its lifecycle."""

    pass
