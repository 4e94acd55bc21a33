"""Concurrent discovery of tools across several remote MCP servers."""

import asyncio
from types import TracebackType
from typing import Dict, List, Optional, Sequence, Type

from agent_runtime.llm_core.config import MCPServerConfig
from agent_runtime.llm_core.exceptions import RemoteDiscoveryError
from agent_runtime.llm_core.logger import get_logger
from agent_runtime.llm_core.tools import ToolSpec

from .wrapper import ConnectionState, MCPClientWrapper

logger = get_logger(__name__)


class RemoteToolDiscovery:
    """
    Owns the connections to a session's remote tool servers.

    Servers are connected concurrently. A server that fails or times out is
    logged, closed and left out; the others are unaffected. Handles stay open
    until ``aclose`` so their tool proxies keep working.

    Example:
        >>> async with RemoteToolDiscovery(configs) as discovery:
        ...     await discovery.initialize()
        ...     tools = discovery.get_tools()
    """

    def __init__(self, configs: Sequence[MCPServerConfig] = (), connect_timeout: float = 10.0):
        self._configs = list(configs)
        self._connect_timeout = connect_timeout
        self._handles: Dict[str, MCPClientWrapper] = {}
        self._tools: Dict[str, List[ToolSpec]] = {}
        self._lock = asyncio.Lock()
        self._initialized = False
        self._closed = False

    @property
    def handles(self) -> Dict[str, MCPClientWrapper]:
        return dict(self._handles)

    async def initialize(self) -> None:
        """Connect to every configured server and list its tools.

        Idempotent: once initialized, further calls return immediately. Never
        raises because of a single unreachable server.
        """
        async with self._lock:
            if self._initialized:
                return
            if self._closed:
                raise RemoteDiscoveryError("Remote tool discovery was already closed.")

            results = await asyncio.gather(*(self._discover(config) for config in self._configs))
            for config, tools in zip(self._configs, results):
                if tools is not None:
                    self._tools[config.name] = tools

            self._initialized = True
            logger.info(
                "Remote tool discovery finished: %d/%d server(s) available, %d tool(s).",
                len(self._tools),
                len(self._configs),
                sum(len(tools) for tools in self._tools.values()),
            )

    async def _discover(self, config: MCPServerConfig) -> Optional[List[ToolSpec]]:
        try:
            return await asyncio.wait_for(self.list_tools_for(config), timeout=self._connect_timeout)
        except Exception as e:
            logger.warning(
                "Remote tool server '%s' unavailable, continuing without it: %s",
                config.name,
                str(e) or type(e).__name__,
                extra={"fields": {"server": config.name, "url": config.url}},
            )
            handle = self._handles.pop(config.name, None)
            if handle is not None:
                handle.state = ConnectionState.FAILED
                await self._close_handle(handle)
            return None

    async def list_tools_for(self, config: MCPServerConfig) -> List[ToolSpec]:
        """Connect to one server (reusing an open handle) and list its tools.

        Raises:
            RemoteDiscoveryError: If the server cannot be reached or listed.
        """
        handle = self._handles.get(config.name)
        if handle is None:
            handle = MCPClientWrapper(config)
            self._handles[config.name] = handle
        await handle.connect()
        return await handle.list_tools()

    def get_available_tool_names(self) -> List[str]:
        """Names of all discovered tools, in server configuration order."""
        return [tool.name for tool in self.get_tools()]

    def get_tools(self) -> List[ToolSpec]:
        """All discovered tools. The first server to offer a name wins."""
        seen = set()
        tools: List[ToolSpec] = []
        for config in self._configs:
            for tool in self._tools.get(config.name, []):
                if tool.name in seen:
                    logger.warning("Duplicate remote tool '%s' from server '%s' ignored.", tool.name, config.name)
                    continue
                seen.add(tool.name)
                tools.append(tool)
        return tools

    async def aclose(self) -> None:
        """Close every server handle. Later calls are no-ops."""
        async with self._lock:
            if self._closed:
                return
            self._closed = True
            handles = list(self._handles.values())
            self._handles.clear()
            self._tools.clear()

        for handle in handles:
            await self._close_handle(handle)

    @staticmethod
    async def _close_handle(handle: MCPClientWrapper) -> None:
        try:
            await handle.close()
        except Exception as e:
            logger.warning("Error while closing MCP server '%s': %s", handle.name, e)

    async def __aenter__(self) -> "RemoteToolDiscovery":
        return self

    async def __aexit__(
        self, exc_type: Optional[Type[BaseException]], exc_val: Optional[BaseException], exc_tb: Optional[TracebackType]
    ) -> None:
        await self.aclose()
