"""Per-session tool catalog assembled from local and remotely discovered tools."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Optional

from ..logger import get_logger
from .models import ToolSpec
from .registry import ToolRegistry

if TYPE_CHECKING:
    from ...mcp_wrapper.discovery import RemoteToolDiscovery

logger = get_logger(__name__)


class ToolCatalog(ToolRegistry):
    """An ordered, name-unique set of tools for one session.

    Local tools come first and take precedence: a remote tool whose name is
    already taken by a local tool is logged and dropped.
    """

    @classmethod
    def assemble(cls, local: Iterable[ToolSpec] = (), remote: Iterable[ToolSpec] = ()) -> "ToolCatalog":
        """Merge local and remote tools into a new catalog.

        Args:
            local: Tools implemented in this process.
            remote: Tools listed by remote tool servers.

        Returns:
            The assembled catalog.
        """
        catalog = cls()
        for tool in local:
            catalog.register(tool)

        for tool in remote:
            if tool.name in catalog.tools:
                logger.warning(
                    "Remote tool '%s' is shadowed by a local tool with the same name and will be ignored.", tool.name
                )
                continue
            catalog.register(tool)
        return catalog

    def restrict(self, names: Optional[Iterable[str]]) -> "ToolCatalog":
        """Return a catalog holding only the tools listed in ``names``.

        Unknown names are logged and skipped. ``None`` keeps every tool.
        """
        if names is None:
            return type(self).assemble(self)

        wanted = list(dict.fromkeys(names))
        missing = [name for name in wanted if name not in self.tools]
        if missing:
            logger.warning("Requested tools not available in catalog: %s", ", ".join(missing))

        restricted = type(self)()
        for name in wanted:
            if name in self.tools:
                restricted.register(self.tools[name])
        return restricted


async def assemble_catalog(
    local: Iterable[ToolSpec] = (), discovery: Optional["RemoteToolDiscovery"] = None
) -> ToolCatalog:
    """Initialize ``discovery`` (if any) and merge its tools behind the local ones.

    Discovery failures are contained per server, so this never fails because a
    remote server is unreachable.
    """
    remote: list[ToolSpec] = []
    if discovery is not None:
        await discovery.initialize()
        remote = discovery.get_tools()
    return ToolCatalog.assemble(local, remote)
