"""Composable wrappers adding lifecycle hooks to a tool without mutating it."""

import inspect
import json
from typing import Any, Callable, Dict, Optional

from ..logger import get_logger
from .models import ToolRenderEvent, ToolSpec

logger = get_logger(__name__)

StartHook = Callable[[Dict[str, Any]], Any]
CompleteHook = Callable[[Dict[str, Any], Any], Any]
Renderer = Callable[[ToolRenderEvent], Any]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _chain(first: Optional[Callable[..., Any]], second: Optional[Callable[..., Any]]) -> Optional[Callable[..., Any]]:
    if first is None:
        return second
    if second is None:
        return first

    async def chained(*args: Any) -> None:
        # A failing first hook must not suppress the second one.
        try:
            await _maybe_await(first(*args))
        except Exception as e:
            logger.warning("Chained tool hook failed: %s", e)
        await _maybe_await(second(*args))

    return chained


def with_observability(
    tool: ToolSpec,
    on_start: Optional[StartHook] = None,
    on_complete: Optional[CompleteHook] = None,
) -> ToolSpec:
    """Return a copy of ``tool`` whose hooks also call ``on_start`` / ``on_complete``.

    The name, argument schema and implementation are kept as they are. Existing
    hooks run first and are invoked exactly once per call, so wrappers can be
    stacked freely.

    Args:
        tool: The tool to decorate.
        on_start: Called with the arguments before the implementation runs.
        on_complete: Called with the arguments and the result after it returned.

    Returns:
        A new ToolSpec; ``tool`` itself is left untouched.
    """
    return tool.model_copy(
        update={
            "on_start": _chain(tool.on_start, on_start),
            "on_complete": _chain(tool.on_complete, on_complete),
        }
    )


def render_result(result: Any) -> str:
    """Stringify a tool result for display; non-strings are dumped as JSON."""
    if isinstance(result, str):
        return result
    return json.dumps(result, default=str)


def with_renderer(tool: ToolSpec, render: Renderer) -> ToolSpec:
    """Decorate ``tool`` so ``render`` receives a start and a success event per call."""

    async def on_start(args: Dict[str, Any]) -> None:
        await _maybe_await(render(ToolRenderEvent(name=tool.name, status="start", args=args)))

    async def on_complete(args: Dict[str, Any], result: Any) -> None:
        event = ToolRenderEvent(name=tool.name, status="success", args=args, result=render_result(result))
        await _maybe_await(render(event))

    return with_observability(tool, on_start=on_start, on_complete=on_complete)
