"""Bridge tools of a remote MCP server into ToolSpecs over an SSE client session."""

import asyncio
from contextlib import AsyncExitStack
from enum import Enum
from types import TracebackType
from typing import Any, List, Optional, Type, cast

from mcp import ClientSession
from mcp.client.sse import sse_client
from mcp.shared.exceptions import McpError
from mcp.types import CallToolResult, EmbeddedResource, ImageContent, TextContent
from mcp.types import Tool as MCPTool

from agent_runtime.llm_core.config import MCPServerConfig
from agent_runtime.llm_core.exceptions import RemoteDiscoveryError, ToolExecutionError
from agent_runtime.llm_core.logger import get_logger
from agent_runtime.llm_core.schema import SchemaValidator
from agent_runtime.llm_core.tools import ToolSpec

logger = get_logger(__name__)

__all__ = ["ConnectionState", "MCPClientWrapper"]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


def flatten_content(result: CallToolResult) -> str:
    """Join the content blocks of a tool result into one string."""
    if not result.content:
        return "Success"

    output = []
    for c in result.content:
        if c.type == "text":
            output.append(cast(TextContent, c).text)
        elif c.type == "image":
            output.append(f"[Image: {cast(ImageContent, c).mimeType}]")
        elif c.type == "resource":
            output.append(f"[Resource: {cast(EmbeddedResource, c).resource.uri}]")
        else:
            output.append(f"[Unknown content type: {c.type}]")
    return "\n".join(output)


class MCPClientWrapper:
    """Handle on one remote tool server reached over server-sent events.

    The SSE transport and the client session run anyio task groups, which must be
    entered and exited by the same task. A dedicated owner task therefore holds
    the connection from ``connect`` until ``close``, whichever tasks call them.
    """

    def __init__(self, config: MCPServerConfig):
        """Initializes the wrapper; no connection is opened yet.

        Args:
            config: Name, transport and URL of the server.
        """
        self.config = config
        self.state = ConnectionState.DISCONNECTED
        self._session: Optional[ClientSession] = None
        self._owner: Optional[asyncio.Task] = None
        self._ready = asyncio.Event()
        self._stop = asyncio.Event()
        self._error: Optional[BaseException] = None
        self._closed = False

    @property
    def name(self) -> str:
        return self.config.name

    async def connect(self) -> "MCPClientWrapper":
        """Opens the SSE transport and initializes the client session.

        Raises:
            RemoteDiscoveryError: If the wrapper was already closed or the server cannot be reached.
        """
        if self._closed:
            raise RemoteDiscoveryError(f"MCP server '{self.name}' handle is already closed.")
        if self._owner is None:
            self.state = ConnectionState.CONNECTING
            logger.debug("Connecting to MCP server '%s' at %s...", self.name, self.config.url)
            self._owner = asyncio.create_task(self._hold_connection(), name=f"mcp-{self.name}")

        await self._ready.wait()
        if self._error is not None:
            raise RemoteDiscoveryError(f"Could not connect to MCP server '{self.name}': {self._error}") from self._error
        return self

    async def _hold_connection(self) -> None:
        """Enters the transport, waits for ``close`` and exits it again, all in this task."""
        try:
            async with AsyncExitStack() as stack:
                read, write = await stack.enter_async_context(sse_client(self.config.url, headers=self.config.headers))
                session = await stack.enter_async_context(ClientSession(read, write))
                await session.initialize()

                self._session = session
                self.state = ConnectionState.CONNECTED
                logger.info("MCP client session for '%s' initialized successfully.", self.name)
                self._ready.set()
                await self._stop.wait()
        except Exception as e:
            if self._ready.is_set():
                logger.warning("MCP client session '%s' ended with an error: %s", self.name, e)
            else:
                self.state = ConnectionState.FAILED
                self._error = e
        finally:
            self._session = None
            self._ready.set()

    async def __aenter__(self) -> "MCPClientWrapper":
        return await self.connect()

    async def __aexit__(
        self, exc_type: Optional[Type[BaseException]], exc_val: Optional[BaseException], exc_tb: Optional[TracebackType]
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Closes the transport and waits for its owner task. Later calls are no-ops.

        A connection that is still being set up is cancelled.
        """
        if self._closed:
            return
        self._closed = True
        logger.debug("Closing MCP client session '%s'...", self.name)
        self._session = None
        try:
            if self._owner is not None:
                self._stop.set()
                if not self._ready.is_set():
                    self._owner.cancel()
                await asyncio.wait({self._owner})
        finally:
            self._session = None
            if self.state != ConnectionState.FAILED:
                self.state = ConnectionState.DISCONNECTED
        logger.info("MCP client session '%s' closed.", self.name)

    async def list_tools(self) -> List[ToolSpec]:
        """Lists the server's tools as remote ToolSpecs proxying back to this session.

        Raises:
            RemoteDiscoveryError: If the client is not connected or listing fails.
        """
        if not self._session:
            raise RemoteDiscoveryError(f"MCP server '{self.name}' is not connected.")

        logger.debug("Fetching tools from MCP server '%s'...", self.name)
        try:
            result = await self._session.list_tools()
        except McpError as e:
            raise RemoteDiscoveryError(f"Listing tools of MCP server '{self.name}' failed: {e}") from e
        logger.info("Found %d tools on MCP server '%s'.", len(result.tools), self.name)

        specs = []
        for tool in result.tools:
            try:
                specs.append(self._to_tool_spec(tool))
            except Exception as e:
                logger.error("Error converting MCP Tool '%s' from '%s': %s", tool.name, self.name, e)
        return specs

    def _to_tool_spec(self, tool: MCPTool) -> ToolSpec:
        """Creates the proxy function and wraps it in a ToolSpec."""
        tool_name = tool.name
        tool_description = tool.description or f"Tool {tool_name} provided by MCP server '{self.name}'."

        async def mcp_proxy(**kwargs: Any) -> str:
            """Proxy a call through the active client session."""
            if not self._session:
                raise ToolExecutionError(f"Cannot call tool '{tool_name}': MCP session '{self.name}' is not active.")

            logger.info("Delegating tool '%s' to MCP server '%s'...", tool_name, self.name)
            logger.debug("Tool arguments: %s", kwargs)
            try:
                mcp_result = await self._session.call_tool(tool_name, arguments=kwargs)
            except McpError as e:
                raise ToolExecutionError(f"MCP tool '{tool_name}' failed: {e}") from e

            result_text = flatten_content(mcp_result)
            if mcp_result.isError:
                raise ToolExecutionError(result_text)

            logger.debug(
                "Tool '%s' result: %s", tool_name, result_text[:200] + "..." if len(result_text) > 200 else result_text
            )
            return result_text

        mcp_proxy.__name__ = tool_name
        mcp_proxy.__doc__ = tool_description

        return ToolSpec(
            name=tool_name,
            description=tool_description,
            argument_schema=SchemaValidator.normalize_parameters(tool.inputSchema),
            implementation=mcp_proxy,
            source="remote",
        )
