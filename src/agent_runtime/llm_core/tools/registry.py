"""Tool registry and helper utilities."""

import asyncio
import inspect
from typing import Any, Callable, Dict, Iterator, List, Optional, Union, cast

from pydantic import create_model

from ..exceptions import ToolNotFoundError, ToolRegistrationError, ToolValidationError
from ..logger import get_logger
from ..schema import SchemaCompiler, SchemaNode, SchemaValidator, node_from_model
from .models import ToolSpec
from .tool_param_factory import ToolParameterFactory

logger = get_logger(__name__)


async def call_implementation(func: Callable[..., Any], args: Dict[str, Any]) -> Any:
    """Call a tool implementation with ``args`` as keyword arguments.

    Coroutine functions are awaited; plain functions run in a worker thread so
    they never block the event loop.
    """
    if inspect.iscoroutinefunction(func):
        return await func(**args)

    result = await asyncio.to_thread(func, **args)
    if inspect.isawaitable(result):
        return await result
    return result


async def _run_hook(tool_name: str, hook_name: str, hook: Optional[Callable[..., Any]], *hook_args: Any) -> None:
    if hook is None:
        return
    try:
        outcome = hook(*hook_args)
        if inspect.isawaitable(outcome):
            await outcome
    except Exception as e:
        logger.warning("Hook '%s' of tool '%s' failed: %s", hook_name, tool_name, e)


class ToolRegistry:
    """
    A central registry to manage and access all available tools.

    This class holds the tool contracts offered to the model and maps tool
    names to their Python implementations and lifecycle hooks.
    """

    def __init__(self) -> None:
        """Initialize the ToolRegistry."""
        self.tools: Dict[str, ToolSpec] = {}

    def __contains__(self, name: object) -> bool:
        return name in self.tools

    def __len__(self) -> int:
        return len(self.tools)

    def __iter__(self) -> Iterator[ToolSpec]:
        return iter(list(self.tools.values()))

    @property
    def names(self) -> List[str]:
        """Tool names in registration order."""
        return list(self.tools)

    def register(
        self,
        name_or_tool: Union[str, ToolSpec, Callable],
        description: Optional[str] = None,
        func: Optional[Callable] = None,
        parameters: Optional[Any] = None,
    ) -> ToolSpec:
        """
        Register a new tool.

        A tool can be registered by passing a `ToolSpec` directly, by passing the
        individual components (name, description, function, parameters), or by
        passing a function (Callable) whose signature and docstring describe it.

        Args:
            name_or_tool: Either a `ToolSpec`, the name of the tool (str), or a Callable.
            description: A brief description of what the tool does. Required if `name_or_tool` is a string and parameters are provided.
            func: The callable implementing the tool's logic. Required if `name_or_tool` is a string.
            parameters: A `SchemaNode` or JSON schema of the tool's arguments. If None, it is inferred from `func`.

        Returns:
            The registered ToolSpec.

        Raises:
            ToolRegistrationError: If individual arguments are missing or if the tool already exists.
            ToolValidationError: If a callable lacks a docstring or parameter descriptions.
        """
        if isinstance(name_or_tool, ToolSpec):
            tool = name_or_tool
        elif callable(name_or_tool):
            tool = self._generate_tool_spec(name_or_tool, description=description)
        else:
            if func is None:
                raise ToolRegistrationError("If passing name as string, func is required.")

            if parameters is None:
                tool = self._generate_tool_spec(func, name=name_or_tool, description=description)
            else:
                if description is None:
                    raise ToolRegistrationError("If passing name and parameters, description is required.")
                tool = ToolSpec(
                    name=name_or_tool,
                    description=description,
                    implementation=func,
                    argument_schema=self._compile_parameters(parameters),
                )

        if tool.name in self.tools:
            msg = f"Tool '{tool.name}' is already registered."
            logger.error(msg)
            raise ToolRegistrationError(msg)

        self.tools[tool.name] = tool
        logger.info("Successfully registered tool: '%s'", tool.name)
        return tool

    def unregister(self, tool_name: str) -> None:
        """Unregister a tool from the registry.

        Args:
            tool_name: The name of the tool to remove.

        Raises:
            ToolNotFoundError: If the tool does not exist in the registry.
        """
        if tool_name in self.tools:
            del self.tools[tool_name]
            logger.info("Successfully unregistered tool: '%s'", tool_name)
        else:
            raise ToolNotFoundError(f"Tool '{tool_name}' not found in the registry.")

    def resolve(self, tool_name: str) -> ToolSpec:
        """Look up a tool by name.

        Raises:
            ToolNotFoundError: If the tool does not exist in the registry.
        """
        try:
            return self.tools[tool_name]
        except KeyError:
            raise ToolNotFoundError(f"Tool '{tool_name}' not found in the registry.") from None

    async def invoke(self, tool_name: str, args: Optional[Dict[str, Any]] = None) -> Any:
        """Run a tool together with its lifecycle hooks.

        ``on_start`` runs first, then the implementation, then ``on_complete``.
        Hook failures are logged and never block the call. If the implementation
        raises, the exception propagates unchanged and ``on_complete`` is skipped.

        Args:
            tool_name: Name of the tool to run.
            args: Keyword arguments for the implementation.

        Returns:
            Whatever the implementation returned.

        Raises:
            ToolNotFoundError: If the tool does not exist in the registry.
        """
        tool = self.resolve(tool_name)
        call_args = dict(args or {})

        await _run_hook(tool.name, "on_start", tool.on_start, call_args)
        result = await call_implementation(tool.implementation, call_args)
        await _run_hook(tool.name, "on_complete", tool.on_complete, call_args, result)
        return result

    def tool(self, func: Callable) -> Callable:
        """A decorator to turn a function into a tool.

        Args:
            func: The function to decorate.

        Returns:
            The original function, after registering it as a tool.
        """
        self.register(func)
        return func

    @property
    def implementations(self) -> Dict[str, Callable]:
        """Returns a dictionary mapping tool names to their callables."""
        return {name: tool.implementation for name, tool in self.tools.items()}

    @property
    def tool_definitions(self) -> List[Dict[str, Any]]:
        """Provider-neutral tool definitions: name, description and argument schema."""
        return [
            {"name": tool.name, "description": tool.description, "argument_schema": tool.argument_schema}
            for tool in self.tools.values()
        ]

    @staticmethod
    def _compile_parameters(parameters: Any) -> Dict[str, Any]:
        if isinstance(parameters, SchemaNode):
            return SchemaCompiler().compile(parameters)
        return SchemaValidator.normalize_parameters(parameters)

    def _generate_tool_spec(
        self, func: Callable, name: Optional[str] = None, description: Optional[str] = None
    ) -> ToolSpec:
        """Generate a ToolSpec from a callable function.

        Args:
            func: The function to generate a spec for.
            name: Optional name override for the tool.
            description: Optional description override for the tool.

        Returns:
            A ToolSpec containing the tool's metadata, compiled schema and argument model.

        Raises:
            ToolValidationError: If the function is missing a docstring or parameter descriptions.
        """
        tool_name = name or func.__name__
        if description is None:
            description = self._get_docstring_from_func(func, tool_name)

        signature = inspect.signature(func)
        fields = self._build_fields(signature, tool_name)

        # create_model expects **field_definitions: Any
        args_model = create_model(f"{tool_name}Params", **cast(Dict[str, Any], fields))
        argument_schema = SchemaCompiler().compile(node_from_model(args_model))

        return ToolSpec(
            name=tool_name,
            description=description,
            implementation=func,
            argument_schema=argument_schema,
            args_model=args_model,
        )

    @staticmethod
    def _get_docstring_from_func(func: Callable, tool_name: str) -> str:
        doc = inspect.getdoc(func)
        if not doc:
            msg = f"Tool '{tool_name}' missing docstring. LLMs need a description of what the tool does."
            logger.error(msg)
            raise ToolValidationError(msg)
        return doc

    @staticmethod
    def _build_fields(signature: inspect.Signature, tool_name: str) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        for param_name, param in signature.parameters.items():
            if param_name == "self":
                continue
            ft = ToolParameterFactory.build_field_tuple(param_name=param_name, param=param, tool_name=tool_name)
            fields[param_name] = (ft.annotation, ft.field)
        return fields
