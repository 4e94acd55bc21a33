"""Schema nodes, the structured-output compiler and JSON schema helpers."""

from .nodes import (
    SchemaNode,
    StringFormat,
    StringNode,
    NumberNode,
    IntegerNode,
    BooleanNode,
    NullNode,
    UndefinedNode,
    VoidNode,
    NeverNode,
    AnyNode,
    UnknownNode,
    DateNode,
    LiteralNode,
    EnumNode,
    NativeEnumNode,
    ArrayNode,
    ObjectNode,
    UnionNode,
    DiscriminatedUnionNode,
    IntersectionNode,
    TupleNode,
    RecordNode,
    OptionalNode,
    NullableNode,
    DefaultNode,
    EffectsNode,
    BrandedNode,
    CatchNode,
    PipelineNode,
    ReadonlyNode,
    LazyNode,
)
from .compiler import (
    CompiledSchema,
    CompileDiagnostic,
    ResponseFormat,
    SchemaCompiler,
    compile_schema,
    create_output_format,
    wrap_as_response_format,
)
from .annotations import node_from_annotation, node_from_field, node_from_model
from .schema_validator import SchemaValidator

__all__ = [
    "SchemaNode",
    "StringFormat",
    "StringNode",
    "NumberNode",
    "IntegerNode",
    "BooleanNode",
    "NullNode",
    "UndefinedNode",
    "VoidNode",
    "NeverNode",
    "AnyNode",
    "UnknownNode",
    "DateNode",
    "LiteralNode",
    "EnumNode",
    "NativeEnumNode",
    "ArrayNode",
    "ObjectNode",
    "UnionNode",
    "DiscriminatedUnionNode",
    "IntersectionNode",
    "TupleNode",
    "RecordNode",
    "OptionalNode",
    "NullableNode",
    "DefaultNode",
    "EffectsNode",
    "BrandedNode",
    "CatchNode",
    "PipelineNode",
    "ReadonlyNode",
    "LazyNode",
    "CompiledSchema",
    "CompileDiagnostic",
    "ResponseFormat",
    "SchemaCompiler",
    "compile_schema",
    "create_output_format",
    "wrap_as_response_format",
    "node_from_annotation",
    "node_from_field",
    "node_from_model",
    "SchemaValidator",
]
