"""Derive schema nodes from Python type annotations and pydantic models."""

from __future__ import annotations

import dataclasses
import datetime
import inspect
import types
import uuid
from collections import abc
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Set, Union, get_args, get_origin

from pydantic import BaseModel
from pydantic.fields import FieldInfo
from pydantic_core import PydanticUndefined, to_jsonable_python

from ..logger import get_logger
from .nodes import (
    AnyNode,
    ArrayNode,
    BooleanNode,
    DateNode,
    DefaultNode,
    EnumNode,
    IntegerNode,
    LazyNode,
    LiteralNode,
    NativeEnumNode,
    NullableNode,
    NullNode,
    NumberNode,
    ObjectNode,
    RecordNode,
    SchemaNode,
    StringFormat,
    StringNode,
    TupleNode,
    UnionNode,
)

logger = get_logger(__name__)

_SEQUENCE_ORIGINS = (list, set, frozenset, abc.Sequence, abc.MutableSequence, abc.Set, abc.Iterable)
_MAPPING_ORIGINS = (dict, abc.Mapping, abc.MutableMapping)


def node_from_annotation(annotation: Any) -> SchemaNode:
    """Build a schema node for a type annotation.

    Args:
        annotation: A builtin type, a typing construct, an Enum or a pydantic model class.

    Returns:
        The matching schema node. Unsupported annotations become ``AnyNode``.
    """
    return _AnnotationConverter().convert(annotation)


def node_from_model(model: type[BaseModel]) -> SchemaNode:
    """Build an object node from the fields of a pydantic model."""
    return _AnnotationConverter().convert(model)


def node_from_field(annotation: Any, field_info: FieldInfo) -> SchemaNode:
    """Build the node for one field: type, constraints, description and default."""
    return _AnnotationConverter().convert_field(annotation, field_info)


class _AnnotationConverter:
    """Single-use converter; remembers the models it is building to break cycles."""

    def __init__(self) -> None:
        self._building: Set[type] = set()
        self._built: Dict[type, SchemaNode] = {}
        self._lazy: Dict[type, LazyNode] = {}

    def convert(self, tp: Any) -> SchemaNode:
        if tp is Any or tp is inspect.Parameter.empty:
            return AnyNode()
        if tp is None or tp is type(None):
            return NullNode()

        origin = get_origin(tp)
        args = get_args(tp)

        if origin is Annotated:
            return self._convert_annotated(args[0], args[1:])
        if origin is Literal:
            return LiteralNode(args[0]) if len(args) == 1 else EnumNode(args)
        if origin is Union or origin is types.UnionType:
            return self._convert_union(args)
        if origin is tuple:
            if len(args) == 2 and args[1] is Ellipsis:
                return ArrayNode(self.convert(args[0]))
            if args:
                return TupleNode([self.convert(arg) for arg in args])
            return ArrayNode(AnyNode())
        if origin in _SEQUENCE_ORIGINS:
            return ArrayNode(self.convert(args[0]) if args else AnyNode())
        if origin in _MAPPING_ORIGINS:
            if len(args) == 2:
                return RecordNode(value=self.convert(args[1]), key=self.convert(args[0]))
            return RecordNode()

        if isinstance(tp, type):
            return self._convert_class(tp)

        logger.warning("Unsupported annotation %r, falling back to an unconstrained schema.", tp)
        return AnyNode()

    def convert_field(self, annotation: Any, field_info: FieldInfo) -> SchemaNode:
        node = self._apply_metadata(self.convert(annotation), field_info.metadata)
        if field_info.description:
            node = node.describe(field_info.description)

        if field_info.is_required():
            return node

        if field_info.default_factory is not None:
            factory = field_info.default_factory
            return DefaultNode(node, factory=lambda: to_jsonable_python(factory()))
        default = None if field_info.default is PydanticUndefined else field_info.default
        return DefaultNode(node, value=to_jsonable_python(default))

    def _convert_class(self, tp: type) -> SchemaNode:
        # bool is a subclass of int, so it has to be checked first.
        if issubclass(tp, bool):
            return BooleanNode()
        if issubclass(tp, Enum):
            return NativeEnumNode(tp)
        if issubclass(tp, int):
            return IntegerNode()
        if issubclass(tp, float):
            return NumberNode()
        if issubclass(tp, (str, bytes)):
            return StringNode()
        if issubclass(tp, datetime.datetime):
            return DateNode()
        if issubclass(tp, datetime.date):
            return StringNode(format=StringFormat.DATE)
        if issubclass(tp, datetime.time):
            return StringNode(format=StringFormat.TIME)
        if issubclass(tp, uuid.UUID):
            return StringNode(format=StringFormat.UUID)
        if issubclass(tp, BaseModel):
            return self._convert_model(tp)
        if tp in (list, set, frozenset, tuple):
            return ArrayNode(AnyNode())
        if tp is dict:
            return RecordNode()

        logger.warning("Unsupported type %s, falling back to an unconstrained schema.", tp.__name__)
        return AnyNode()

    def _convert_model(self, model: type[BaseModel]) -> SchemaNode:
        if model in self._built:
            return self._built[model]
        if model in self._building:
            # Self reference: defer through a single lazy node per model.
            if model not in self._lazy:
                self._lazy[model] = LazyNode(getter=lambda m=model: self._built[m])
            return self._lazy[model]

        self._building.add(model)
        try:
            fields = {
                name: self.convert_field(info.annotation, info) for name, info in model.model_fields.items()
            }
        finally:
            self._building.discard(model)

        node = ObjectNode(fields)
        self._built[model] = node
        return node

    def _convert_union(self, args: tuple) -> SchemaNode:
        non_null = [arg for arg in args if arg is not type(None)]
        if len(non_null) == 1:
            inner = self.convert(non_null[0])
        else:
            inner = UnionNode([self.convert(arg) for arg in non_null])

        if len(non_null) != len(args):
            return NullableNode(inner)
        return inner

    def _convert_annotated(self, base: Any, metadata: tuple) -> SchemaNode:
        node = self.convert(base)
        description: Optional[str] = None
        for meta in metadata:
            if isinstance(meta, FieldInfo):
                node = self._apply_metadata(node, meta.metadata)
                description = meta.description or description
            else:
                node = self._apply_metadata(node, [meta])
        if description:
            node = node.describe(description)
        return node

    @staticmethod
    def _apply_metadata(node: SchemaNode, metadata: Any) -> SchemaNode:
        for meta in metadata:
            min_length = getattr(meta, "min_length", None)
            if min_length is not None and isinstance(node, (ArrayNode, StringNode)):
                node = dataclasses.replace(node, min_length=min_length)
            max_length = getattr(meta, "max_length", None)
            if max_length is not None and isinstance(node, (ArrayNode, StringNode)):
                node = dataclasses.replace(node, max_length=max_length)
        return node
