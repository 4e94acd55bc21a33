"""Remote tool servers reached over the Model Context Protocol."""

from .wrapper import ConnectionState, MCPClientWrapper, flatten_content
from .discovery import RemoteToolDiscovery

__all__ = ["ConnectionState", "MCPClientWrapper", "RemoteToolDiscovery", "flatten_content"]
