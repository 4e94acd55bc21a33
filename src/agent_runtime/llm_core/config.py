"""Runtime configuration: provider credentials, per-operation tuning and remote tool servers."""

import json
import os
from typing import Any, Dict, List, Literal, Optional, Protocol, Sequence, runtime_checkable

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, ValidationError

from .exceptions import AgentRuntimeError
from .logger import get_logger

logger = get_logger(__name__)

ReasoningEffort = Literal["minimal", "low", "medium", "high"]


class MCPServerConfig(BaseModel):
    """
    Connection settings for one remote tool server.

    Attributes:
        name: Unique server name, used in logs.
        type: Transport type; only server-sent events are supported.
        url: SSE endpoint of the server.
        headers: Optional HTTP headers sent when connecting.
    """

    name: str
    type: Literal["sse"] = "sse"
    url: str
    headers: Optional[Dict[str, str]] = None


class OperationConfig(BaseModel):
    """
    Tuning for one named operation (e.g. a generation phase or a debug session).

    Attributes:
        agent_action_name: Name reported to tracing/observability backends.
        reasoning_effort: Default reasoning effort hint for this operation.
        max_rounds: Maximum tool-calling rounds for a bounded session.
        max_seconds: Optional wall-clock budget for a bounded session.
    """

    agent_action_name: Optional[str] = None
    reasoning_effort: Optional[ReasoningEffort] = None
    max_rounds: int = Field(default=5, ge=1)
    max_seconds: Optional[float] = Field(default=None, gt=0)


class RuntimeConfig(BaseModel):
    """Capability bag handed to adapters and sessions."""

    api_key: Optional[str] = None
    base_url: Optional[str] = None
    model: str = "gpt-4o-mini"
    temperature: float = 1.0
    max_tokens: int = 3000
    tool_timeout: float = 180.0
    max_retries: int = Field(default=3, ge=0)
    base_retry_delay: float = Field(default=1.0, ge=0)
    operations: Dict[str, OperationConfig] = Field(default_factory=dict)
    mcp_servers: List[MCPServerConfig] = Field(default_factory=list)

    def operation(self, name: str) -> OperationConfig:
        """Return the tuning for ``name``, falling back to defaults."""
        return self.operations.get(name) or OperationConfig(agent_action_name=name)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None, **overrides: Any) -> "RuntimeConfig":
        """Build a config from the environment, loading a ``.env`` file first.

        Reads ``OPENAI_API_KEY``, ``OPENAI_BASE_URL``, ``AGENT_MODEL`` and
        ``AGENT_MCP_SERVERS`` (a JSON list of server objects). Keyword
        arguments override whatever the environment provides.

        Raises:
            AgentRuntimeError: If ``AGENT_MCP_SERVERS`` cannot be parsed.
        """
        env_file = dotenv_path or find_dotenv()
        if env_file:
            load_dotenv(env_file)

        values: Dict[str, Any] = {
            "api_key": os.getenv("OPENAI_API_KEY"),
            "base_url": os.getenv("OPENAI_BASE_URL"),
        }
        model = os.getenv("AGENT_MODEL")
        if model:
            values["model"] = model

        raw_servers = os.getenv("AGENT_MCP_SERVERS")
        if raw_servers:
            try:
                values["mcp_servers"] = [MCPServerConfig.model_validate(s) for s in json.loads(raw_servers)]
            except (json.JSONDecodeError, TypeError, ValidationError) as e:
                msg = f"AGENT_MCP_SERVERS is not a valid JSON list of servers: {e}"
                logger.error(msg)
                raise AgentRuntimeError(msg) from e

        values.update(overrides)
        return cls(**values)


@runtime_checkable
class IssueReport(Protocol):
    """Diagnostics gathered about a generated application by an external collaborator."""

    runtime_errors: Sequence[Any]
    static_issues: Sequence[Any]

    def has_runtime_errors(self) -> bool: ...


def resolve_reasoning_effort(
    base: Optional[str], issues: Optional[IssueReport] = None, has_suggestions: bool = False
) -> Optional[str]:
    """Escalate the reasoning effort when there is extra work to reason about.

    With user suggestions or runtime errors present, ``low`` becomes ``medium``
    and everything else becomes ``high``. Otherwise ``base`` is returned.
    """
    has_runtime_errors = issues is not None and issues.has_runtime_errors()
    if not (has_suggestions or has_runtime_errors):
        return base
    return "medium" if base == "low" else "high"
