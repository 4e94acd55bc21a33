"""
Compile schema node trees into the constrained JSON schema dialect accepted by
a provider's structured-output feature.

Provider limitations baked into the output:
- every object is closed (``additionalProperties: false``)
- no numeric constraints (minimum, maximum, multipleOf)
- no string constraints (minLength, maxLength, pattern)
- ``minItems`` only for the values 0 and 1
- no recursive schemas

The compiler never raises for a tree built from ``nodes.py``. Variants it cannot
express degrade to ``{}`` (no constraint) and leave a diagnostic behind.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from functools import singledispatch
from typing import Any, Dict, Iterator, List, Mapping, Optional, Set

from ..logger import get_logger
from .nodes import (
    TRANSPARENT_WRAPPERS,
    AnyNode,
    ArrayNode,
    BooleanNode,
    BrandedNode,
    CatchNode,
    DateNode,
    DefaultNode,
    DiscriminatedUnionNode,
    EffectsNode,
    EnumNode,
    IntegerNode,
    IntersectionNode,
    LazyNode,
    LiteralNode,
    NativeEnumNode,
    NeverNode,
    NullableNode,
    NullNode,
    NumberNode,
    ObjectNode,
    OptionalNode,
    PipelineNode,
    ReadonlyNode,
    RecordNode,
    SchemaNode,
    StringFormat,
    StringNode,
    TupleNode,
    UndefinedNode,
    UnionNode,
    UnknownNode,
    VoidNode,
)

logger = get_logger(__name__)

CompiledSchema = Dict[str, Any]

# Nested lazy expansions allowed on one path before the tree is treated as recursive.
MAX_LAZY_DEPTH = 32

_STRING_FORMATS: Dict[StringFormat, str] = {
    StringFormat.EMAIL: "email",
    StringFormat.URL: "uri",
    StringFormat.UUID: "uuid",
    StringFormat.DATETIME: "date-time",
    StringFormat.DATE: "date",
    StringFormat.TIME: "time",
    StringFormat.IPV4: "ipv4",
    StringFormat.IPV6: "ipv6",
}


@dataclass(frozen=True)
class CompileDiagnostic:
    """A non-fatal problem found while compiling.

    Attributes:
        path: JSON-pointer-like location of the offending node (``$`` is the root).
        message: What was degraded and why.
    """

    path: str
    message: str


@dataclass
class _CompileContext:
    diagnostics: List[CompileDiagnostic]
    path: List[str] = field(default_factory=lambda: ["$"])
    lazy_path: Set[int] = field(default_factory=set)

    @contextmanager
    def at(self, *segments: str) -> Iterator[None]:
        self.path.extend(segments)
        try:
            yield
        finally:
            del self.path[len(self.path) - len(segments) :]

    def degrade(self, message: str) -> CompiledSchema:
        location = ".".join(self.path)
        self.diagnostics.append(CompileDiagnostic(path=location, message=message))
        logger.warning("Schema compilation degraded at %s: %s", location, message)
        return {}


@dataclass(frozen=True)
class ResponseFormat:
    """A compiled response contract ready to be sent to the provider.

    Attributes:
        schema: The compiled root schema, always an object.
        wrapped: True if the original root was not an object and now lives under ``result``.
    """

    schema: CompiledSchema
    wrapped: bool = False

    def to_provider(self) -> Dict[str, Any]:
        return {"type": "json_schema", "schema": self.schema}

    def unwrap(self, payload: Any) -> Any:
        """Extract the caller's value from a payload that conforms to ``schema``."""
        if self.wrapped and isinstance(payload, dict):
            return payload.get("result")
        return payload


class SchemaCompiler:
    """Compiles schema nodes and collects the diagnostics of every compilation.

    Example:
        >>> compiler = SchemaCompiler()
        >>> compiler.compile(ArrayNode(StringNode(), min_length=2))
        {'type': 'array', 'items': {'type': 'string'}}
    """

    def __init__(self) -> None:
        self.diagnostics: List[CompileDiagnostic] = []

    def compile(self, node: SchemaNode) -> CompiledSchema:
        """Compile ``node`` into the provider dialect.

        Args:
            node: Root of the schema tree.

        Returns:
            The compiled schema. Unsupported parts are replaced by ``{}``.
        """
        return _compile(node, _CompileContext(self.diagnostics))

    def wrap_as_response_format(self, node: SchemaNode) -> ResponseFormat:
        """Compile ``node`` and make sure the root handed to the provider is an object.

        Args:
            node: Root of the response schema tree.

        Returns:
            The response format; non-object roots are nested under a required ``result`` key.
        """
        compiled = self.compile(node)
        if compiled.get("type") == "object":
            return ResponseFormat(schema=compiled)

        logger.debug("Wrapping non-object response schema under 'result'.")
        return ResponseFormat(
            schema={
                "type": "object",
                "properties": {"result": compiled},
                "required": ["result"],
                "additionalProperties": False,
            },
            wrapped=True,
        )


def compile_schema(node: SchemaNode) -> CompiledSchema:
    """Compile ``node`` with a throwaway compiler."""
    return SchemaCompiler().compile(node)


def wrap_as_response_format(node: SchemaNode) -> ResponseFormat:
    """Compile ``node`` into a response format whose root is always an object."""
    return SchemaCompiler().wrap_as_response_format(node)


def create_output_format(node: SchemaNode) -> Dict[str, Any]:
    """Build the ``{"type": "json_schema", "schema": ...}`` envelope for ``node``."""
    return wrap_as_response_format(node).to_provider()


def is_optional(node: SchemaNode) -> bool:
    """True if an object field built from ``node`` may be omitted.

    Nullable fields are still required; they only accept ``null`` as a value.
    """
    return isinstance(node, (OptionalNode, DefaultNode))


def field_description(node: SchemaNode) -> Optional[str]:
    """Return the first description found on ``node`` or the wrappers around its inner type."""
    current: Any = node
    while True:
        if current.description:
            return current.description
        if not isinstance(current, TRANSPARENT_WRAPPERS):
            return None
        current = current.inner


def native_enum_values(source: Any) -> List[Any]:
    """Return the value half of an enum class or a key -> value mapping.

    Reverse-lookup entries (``{"0": "A"}`` next to ``{"A": 0}``) are dropped, as
    are values that are neither strings nor numbers.
    """
    if isinstance(source, type) and issubclass(source, Enum):
        values = [member.value for member in source]
    else:
        mapping = dict(source)
        values = [value for key, value in mapping.items() if not _is_reverse_entry(mapping, key, value)]

    return [v for v in values if isinstance(v, (str, int, float)) and not isinstance(v, bool)]


def _is_reverse_entry(mapping: Mapping[str, Any], key: str, value: Any) -> bool:
    if not isinstance(value, str) or value not in mapping:
        return False
    forward = mapping[value]
    return isinstance(forward, (int, float)) and not isinstance(forward, bool) and str(forward) == str(key)


@singledispatch
def _compile(node: Any, ctx: _CompileContext) -> CompiledSchema:
    return ctx.degrade(f"Unhandled schema node type: {type(node).__name__}")


@_compile.register(StringNode)
def _(node: StringNode, ctx: _CompileContext) -> CompiledSchema:
    result: CompiledSchema = {"type": "string"}
    if node.format is not None:
        result["format"] = _STRING_FORMATS[StringFormat(node.format)]
    return result


@_compile.register(NumberNode)
def _(node: NumberNode, ctx: _CompileContext) -> CompiledSchema:
    return {"type": "number"}


@_compile.register(IntegerNode)
def _(node: IntegerNode, ctx: _CompileContext) -> CompiledSchema:
    return {"type": "integer"}


@_compile.register(BooleanNode)
def _(node: BooleanNode, ctx: _CompileContext) -> CompiledSchema:
    return {"type": "boolean"}


@_compile.register(NullNode)
@_compile.register(UndefinedNode)
@_compile.register(VoidNode)
@_compile.register(NeverNode)
def _(node: SchemaNode, ctx: _CompileContext) -> CompiledSchema:
    return {"type": "null"}


@_compile.register(AnyNode)
@_compile.register(UnknownNode)
def _(node: SchemaNode, ctx: _CompileContext) -> CompiledSchema:
    return {}


@_compile.register(DateNode)
def _(node: DateNode, ctx: _CompileContext) -> CompiledSchema:
    return {"type": "string", "format": "date-time"}


@_compile.register(LiteralNode)
def _(node: LiteralNode, ctx: _CompileContext) -> CompiledSchema:
    return {"const": node.value}


@_compile.register(EnumNode)
def _(node: EnumNode, ctx: _CompileContext) -> CompiledSchema:
    return {"enum": list(node.values)}


@_compile.register(NativeEnumNode)
def _(node: NativeEnumNode, ctx: _CompileContext) -> CompiledSchema:
    return {"enum": native_enum_values(node.source)}


@_compile.register(ArrayNode)
def _(node: ArrayNode, ctx: _CompileContext) -> CompiledSchema:
    with ctx.at("items"):
        items = _compile(node.element, ctx)
    result: CompiledSchema = {"type": "array", "items": items}
    if node.min_length in (0, 1):
        result["minItems"] = node.min_length
    return result


@_compile.register(ObjectNode)
def _(node: ObjectNode, ctx: _CompileContext) -> CompiledSchema:
    properties: Dict[str, CompiledSchema] = {}
    required: List[str] = []

    for key, value in node.fields.items():
        with ctx.at("properties", key):
            compiled = _compile(value, ctx)

        description = field_description(value)
        if description:
            compiled["description"] = description

        properties[key] = compiled
        if not is_optional(value):
            required.append(key)

    result: CompiledSchema = {"type": "object", "properties": properties}
    if required:
        result["required"] = required
    result["additionalProperties"] = False
    return result


@_compile.register(UnionNode)
@_compile.register(DiscriminatedUnionNode)
def _(node: Any, ctx: _CompileContext) -> CompiledSchema:
    options = []
    for index, option in enumerate(node.options):
        with ctx.at("anyOf", str(index)):
            options.append(_compile(option, ctx))
    return {"anyOf": options}


@_compile.register(IntersectionNode)
def _(node: IntersectionNode, ctx: _CompileContext) -> CompiledSchema:
    with ctx.at("allOf", "0"):
        left = _compile(node.left, ctx)
    with ctx.at("allOf", "1"):
        right = _compile(node.right, ctx)
    return {"allOf": [left, right]}


@_compile.register(TupleNode)
def _(node: TupleNode, ctx: _CompileContext) -> CompiledSchema:
    # Position typing is lost: every element may be any of the tuple's types.
    items = []
    for index, item in enumerate(node.items):
        with ctx.at("items", str(index)):
            items.append(_compile(item, ctx))
    return {"type": "array", "items": items[0] if len(items) == 1 else {"anyOf": items}}


@_compile.register(RecordNode)
def _(node: RecordNode, ctx: _CompileContext) -> CompiledSchema:
    # Closed objects cannot describe open maps; the keys are lost.
    return {"type": "object", "additionalProperties": False}


@_compile.register(OptionalNode)
@_compile.register(EffectsNode)
@_compile.register(BrandedNode)
@_compile.register(CatchNode)
@_compile.register(ReadonlyNode)
def _(node: Any, ctx: _CompileContext) -> CompiledSchema:
    return _compile(node.inner, ctx)


@_compile.register(PipelineNode)
def _(node: PipelineNode, ctx: _CompileContext) -> CompiledSchema:
    return _compile(node.target, ctx)


@_compile.register(NullableNode)
def _(node: NullableNode, ctx: _CompileContext) -> CompiledSchema:
    with ctx.at("anyOf", "0"):
        inner = _compile(node.inner, ctx)
    return {"anyOf": [inner, {"type": "null"}]}


@_compile.register(DefaultNode)
def _(node: DefaultNode, ctx: _CompileContext) -> CompiledSchema:
    inner = _compile(node.inner, ctx)
    return {**inner, "default": node.materialize()}


@_compile.register(LazyNode)
def _(node: LazyNode, ctx: _CompileContext) -> CompiledSchema:
    marker = id(node)
    if marker in ctx.lazy_path or len(ctx.lazy_path) >= MAX_LAZY_DEPTH:
        return ctx.degrade("Recursive schema unsupported: lazy node re-entered on its own path.")

    ctx.lazy_path.add(marker)
    try:
        return _compile(node.resolve(), ctx)
    finally:
        ctx.lazy_path.discard(marker)
