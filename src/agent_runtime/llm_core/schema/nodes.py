"""Immutable schema nodes describing the expected shape of a value.

A schema tree is built once from these nodes and handed to the compiler in
``compiler.py``. The set of node classes is closed: every variant the compiler
knows about lives in this module. Nodes are frozen dataclasses, so the fluent
helpers on ``SchemaNode`` always return new nodes.

Example:
    >>> person = ObjectNode({
    ...     "name": StringNode().describe("Full name"),
    ...     "email": StringNode(format=StringFormat.EMAIL).optional(),
    ...     "tags": ArrayNode(StringNode(), min_length=1),
    ... })
"""

from __future__ import annotations

import copy
import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ClassVar, Mapping, Optional, Sequence, Tuple, Type, Union


class StringFormat(str, Enum):
    """Format checks a string node may carry."""

    EMAIL = "email"
    URL = "url"
    UUID = "uuid"
    DATETIME = "datetime"
    DATE = "date"
    TIME = "time"
    IPV4 = "ipv4"
    IPV6 = "ipv6"


def _as_tuple(items: Sequence[Any]) -> Tuple[Any, ...]:
    return tuple(items)


@dataclass(frozen=True, kw_only=True)
class SchemaNode:
    """Base class of every schema node.

    Attributes:
        description: Optional human readable description, emitted on object properties.
    """

    kind: ClassVar[str] = "node"

    description: Optional[str] = None

    def describe(self, text: str) -> "SchemaNode":
        """Return a copy of this node carrying ``text`` as its description."""
        return dataclasses.replace(self, description=text)

    def optional(self) -> "OptionalNode":
        """Wrap this node so the owning object field may be omitted."""
        return OptionalNode(self)

    def nullable(self) -> "NullableNode":
        """Wrap this node so ``null`` is accepted as well."""
        return NullableNode(self)

    def with_default(self, value: Any = None, factory: Optional[Callable[[], Any]] = None) -> "DefaultNode":
        """Wrap this node with a default value (or a factory producing one)."""
        return DefaultNode(self, value=value, factory=factory)


# --- Scalars -----------------------------------------------------------------


@dataclass(frozen=True)
class StringNode(SchemaNode):
    kind: ClassVar[str] = "string"

    format: Optional[StringFormat] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None


@dataclass(frozen=True)
class NumberNode(SchemaNode):
    kind: ClassVar[str] = "number"

    minimum: Optional[float] = None
    maximum: Optional[float] = None
    multiple_of: Optional[float] = None


@dataclass(frozen=True)
class IntegerNode(SchemaNode):
    """Arbitrary precision integer."""

    kind: ClassVar[str] = "integer"


@dataclass(frozen=True)
class BooleanNode(SchemaNode):
    kind: ClassVar[str] = "boolean"


@dataclass(frozen=True)
class NullNode(SchemaNode):
    kind: ClassVar[str] = "null"


@dataclass(frozen=True)
class UndefinedNode(SchemaNode):
    kind: ClassVar[str] = "undefined"


@dataclass(frozen=True)
class VoidNode(SchemaNode):
    kind: ClassVar[str] = "void"


@dataclass(frozen=True)
class NeverNode(SchemaNode):
    """Bottom type; no value satisfies it."""

    kind: ClassVar[str] = "never"


@dataclass(frozen=True)
class AnyNode(SchemaNode):
    kind: ClassVar[str] = "any"


@dataclass(frozen=True)
class UnknownNode(SchemaNode):
    kind: ClassVar[str] = "unknown"


@dataclass(frozen=True)
class DateNode(SchemaNode):
    kind: ClassVar[str] = "date"


@dataclass(frozen=True)
class LiteralNode(SchemaNode):
    kind: ClassVar[str] = "literal"

    value: Any


@dataclass(frozen=True)
class EnumNode(SchemaNode):
    kind: ClassVar[str] = "enum"

    values: Tuple[Any, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", _as_tuple(self.values))


@dataclass(frozen=True)
class NativeEnumNode(SchemaNode):
    """Enumeration backed by a Python ``Enum`` class or a key -> value mapping."""

    kind: ClassVar[str] = "native_enum"

    source: Union[Type[Enum], Mapping[str, Any]]


# --- Containers --------------------------------------------------------------


@dataclass(frozen=True)
class ArrayNode(SchemaNode):
    kind: ClassVar[str] = "array"

    element: SchemaNode
    min_length: Optional[int] = None
    max_length: Optional[int] = None


@dataclass(frozen=True)
class ObjectNode(SchemaNode):
    kind: ClassVar[str] = "object"

    fields: Mapping[str, SchemaNode] = field(default_factory=dict)


@dataclass(frozen=True)
class UnionNode(SchemaNode):
    kind: ClassVar[str] = "union"

    options: Tuple[SchemaNode, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "options", _as_tuple(self.options))


@dataclass(frozen=True)
class DiscriminatedUnionNode(SchemaNode):
    kind: ClassVar[str] = "discriminated_union"

    discriminator: str
    options: Tuple[SchemaNode, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "options", _as_tuple(self.options))


@dataclass(frozen=True)
class IntersectionNode(SchemaNode):
    kind: ClassVar[str] = "intersection"

    left: SchemaNode
    right: SchemaNode


@dataclass(frozen=True)
class TupleNode(SchemaNode):
    kind: ClassVar[str] = "tuple"

    items: Tuple[SchemaNode, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "items", _as_tuple(self.items))


@dataclass(frozen=True)
class RecordNode(SchemaNode):
    """Object with arbitrary keys mapping to ``value``."""

    kind: ClassVar[str] = "record"

    value: SchemaNode = field(default_factory=lambda: AnyNode())
    key: SchemaNode = field(default_factory=lambda: StringNode())


# --- Wrappers ----------------------------------------------------------------


@dataclass(frozen=True)
class OptionalNode(SchemaNode):
    kind: ClassVar[str] = "optional"

    inner: SchemaNode


@dataclass(frozen=True)
class NullableNode(SchemaNode):
    kind: ClassVar[str] = "nullable"

    inner: SchemaNode


@dataclass(frozen=True)
class DefaultNode(SchemaNode):
    kind: ClassVar[str] = "default"

    inner: SchemaNode
    value: Any = None
    factory: Optional[Callable[[], Any]] = None

    def materialize(self) -> Any:
        """Return a fresh copy of the default value."""
        if self.factory is not None:
            return self.factory()
        return copy.deepcopy(self.value)


@dataclass(frozen=True)
class EffectsNode(SchemaNode):
    """Refinement or transform applied on top of ``inner`` at validation time."""

    kind: ClassVar[str] = "effects"

    inner: SchemaNode
    effect: Optional[Callable[..., Any]] = None


@dataclass(frozen=True)
class BrandedNode(SchemaNode):
    kind: ClassVar[str] = "branded"

    inner: SchemaNode
    brand: str = ""


@dataclass(frozen=True)
class CatchNode(SchemaNode):
    kind: ClassVar[str] = "catch"

    inner: SchemaNode
    fallback: Any = None


@dataclass(frozen=True)
class PipelineNode(SchemaNode):
    """Value parsed by ``source`` and then fed into ``target``."""

    kind: ClassVar[str] = "pipeline"

    source: SchemaNode
    target: SchemaNode


@dataclass(frozen=True)
class ReadonlyNode(SchemaNode):
    kind: ClassVar[str] = "readonly"

    inner: SchemaNode


@dataclass(frozen=True)
class LazyNode(SchemaNode):
    """Deferred node, used to express self-referential schemas."""

    kind: ClassVar[str] = "lazy"

    getter: Callable[[], SchemaNode]

    def resolve(self) -> SchemaNode:
        return self.getter()


# Wrappers that only decorate their inner node and keep its description visible.
TRANSPARENT_WRAPPERS: Tuple[type, ...] = (
    OptionalNode,
    NullableNode,
    DefaultNode,
    EffectsNode,
    BrandedNode,
    CatchNode,
    ReadonlyNode,
)
