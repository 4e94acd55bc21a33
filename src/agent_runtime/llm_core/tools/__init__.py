from .models import ToolSpec, ToolCallRequest, ToolCallResult, ToolRenderEvent
from .registry import ToolRegistry, call_implementation
from .decorators import render_result, with_observability, with_renderer
from .catalog import ToolCatalog, assemble_catalog

__all__ = [
    "ToolSpec",
    "ToolCallRequest",
    "ToolCallResult",
    "ToolRenderEvent",
    "ToolRegistry",
    "call_implementation",
    "render_result",
    "with_observability",
    "with_renderer",
    "ToolCatalog",
    "assemble_catalog",
]
