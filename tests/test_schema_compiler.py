from enum import Enum
from typing import Any, Dict

import pytest

from agent_runtime.llm_core.schema import (
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
    NullNode,
    NumberNode,
    ObjectNode,
    OptionalNode,
    PipelineNode,
    ReadonlyNode,
    RecordNode,
    SchemaCompiler,
    SchemaNode,
    StringFormat,
    StringNode,
    TupleNode,
    UndefinedNode,
    UnionNode,
    UnknownNode,
    VoidNode,
    compile_schema,
    create_output_format,
    wrap_as_response_format,
)


def _objects(schema: Any) -> list:
    """Collect every compiled object node in a schema."""
    found = []
    if isinstance(schema, dict):
        if schema.get("type") == "object":
            found.append(schema)
        for value in schema.values():
            found.extend(_objects(value))
    elif isinstance(schema, list):
        for item in schema:
            found.extend(_objects(item))
    return found


class Color(Enum):
    RED = "red"
    GREEN = "green"


def test_plain_object_round_trip() -> None:
    node = ObjectNode(
        {
            "a": StringNode(),
            "b": NumberNode().optional(),
            "c": BooleanNode().nullable(),
        }
    )

    assert compile_schema(node) == {
        "type": "object",
        "properties": {
            "a": {"type": "string"},
            "b": {"type": "number"},
            "c": {"anyOf": [{"type": "boolean"}, {"type": "null"}]},
        },
        "required": ["a", "c"],
        "additionalProperties": False,
    }


def test_non_object_root_is_wrapped_under_result() -> None:
    response_format = wrap_as_response_format(StringNode())

    assert response_format.wrapped is True
    assert response_format.schema == {
        "type": "object",
        "properties": {"result": {"type": "string"}},
        "required": ["result"],
        "additionalProperties": False,
    }
    assert response_format.unwrap({"result": "hello"}) == "hello"


def test_object_root_is_not_wrapped() -> None:
    response_format = wrap_as_response_format(ObjectNode({"a": StringNode()}))

    assert response_format.wrapped is False
    assert response_format.unwrap({"a": "x"}) == {"a": "x"}
    assert create_output_format(ObjectNode({"a": StringNode()}))["type"] == "json_schema"


@pytest.mark.parametrize("min_length, expected", [(0, 0), (1, 1)])
def test_array_min_items_zero_or_one_is_kept(min_length: int, expected: int) -> None:
    schema = compile_schema(ArrayNode(StringNode(), min_length=min_length))
    assert schema == {"type": "array", "items": {"type": "string"}, "minItems": expected}


@pytest.mark.parametrize("min_length", [2, 5])
def test_array_min_items_two_or_more_is_dropped(min_length: int) -> None:
    schema = compile_schema(ArrayNode(StringNode(), min_length=min_length, max_length=10))
    assert schema == {"type": "array", "items": {"type": "string"}}


def test_string_constraints_are_never_emitted() -> None:
    node = StringNode(min_length=3, max_length=8, pattern="^[a-z]+$")
    assert compile_schema(node) == {"type": "string"}
    assert compile_schema(NumberNode(minimum=0, maximum=10, multiple_of=2)) == {"type": "number"}


@pytest.mark.parametrize(
    "fmt, expected",
    [
        (StringFormat.EMAIL, "email"),
        (StringFormat.URL, "uri"),
        (StringFormat.UUID, "uuid"),
        (StringFormat.DATETIME, "date-time"),
        (StringFormat.DATE, "date"),
        (StringFormat.TIME, "time"),
        (StringFormat.IPV4, "ipv4"),
        (StringFormat.IPV6, "ipv6"),
    ],
)
def test_string_formats(fmt: StringFormat, expected: str) -> None:
    assert compile_schema(StringNode(format=fmt)) == {"type": "string", "format": expected}


def test_scalars_and_wildcards() -> None:
    assert compile_schema(IntegerNode()) == {"type": "integer"}
    assert compile_schema(DateNode()) == {"type": "string", "format": "date-time"}
    assert compile_schema(AnyNode()) == {}
    assert compile_schema(UnknownNode()) == {}
    for node in (NeverNode(), VoidNode(), UndefinedNode(), NullNode()):
        assert compile_schema(node) == {"type": "null"}


def test_literal_and_enums() -> None:
    assert compile_schema(LiteralNode("fix")) == {"const": "fix"}
    assert compile_schema(EnumNode(["a", "b"])) == {"enum": ["a", "b"]}
    assert compile_schema(NativeEnumNode(Color)) == {"enum": ["red", "green"]}


def test_native_enum_mapping_drops_reverse_lookup_entries() -> None:
    # Numeric enums often carry a reverse mapping next to the forward one.
    source = {"Up": 0, "Down": 1, "0": "Up", "1": "Down"}
    assert compile_schema(NativeEnumNode(source)) == {"enum": [0, 1]}


def test_unions_intersections_and_tuples() -> None:
    union = UnionNode([StringNode(), IntegerNode()])
    assert compile_schema(union) == {"anyOf": [{"type": "string"}, {"type": "integer"}]}

    tagged = DiscriminatedUnionNode(
        "kind",
        [ObjectNode({"kind": LiteralNode("a")}), ObjectNode({"kind": LiteralNode("b")})],
    )
    compiled = compile_schema(tagged)
    assert [option["properties"]["kind"] for option in compiled["anyOf"]] == [{"const": "a"}, {"const": "b"}]

    both = IntersectionNode(ObjectNode({"a": StringNode()}), ObjectNode({"b": StringNode()}))
    assert [part["required"] for part in compile_schema(both)["allOf"]] == [["a"], ["b"]]

    assert compile_schema(TupleNode([StringNode()])) == {"type": "array", "items": {"type": "string"}}
    assert compile_schema(TupleNode([StringNode(), IntegerNode()])) == {
        "type": "array",
        "items": {"anyOf": [{"type": "string"}, {"type": "integer"}]},
    }


def test_record_compiles_to_closed_empty_object() -> None:
    assert compile_schema(RecordNode(IntegerNode())) == {"type": "object", "additionalProperties": False}


def test_default_copies_value_and_is_not_required() -> None:
    node = ObjectNode({"tags": ArrayNode(StringNode()).with_default(["x"]), "name": StringNode()})
    schema = compile_schema(node)

    assert schema["properties"]["tags"] == {"type": "array", "items": {"type": "string"}, "default": ["x"]}
    assert schema["required"] == ["name"]


def test_default_factory_is_materialized() -> None:
    schema = compile_schema(DefaultNode(IntegerNode(), factory=lambda: 7))
    assert schema == {"type": "integer", "default": 7}
    assert compile_schema(IntegerNode().with_default(factory=lambda: 7)) == schema


def test_required_is_omitted_when_every_field_is_optional() -> None:
    schema = compile_schema(ObjectNode({"a": StringNode().optional()}))
    assert "required" not in schema
    assert schema["additionalProperties"] is False


def test_transparent_wrappers_unwrap_to_inner_type() -> None:
    inner = StringNode()
    for node in (
        EffectsNode(inner, effect=str.strip),
        BrandedNode(inner, brand="UserId"),
        CatchNode(inner, fallback="n/a"),
        ReadonlyNode(inner),
        PipelineNode(StringNode(), inner),
        OptionalNode(inner),
    ):
        assert compile_schema(node) == {"type": "string"}


def test_descriptions_are_found_through_wrappers() -> None:
    node = ObjectNode(
        {
            "direct": StringNode().describe("Direct"),
            "wrapped": StringNode().describe("Inner").optional(),
            "outer": StringNode().nullable().describe("Outer"),
        }
    )
    properties = compile_schema(node)["properties"]

    assert properties["direct"]["description"] == "Direct"
    assert properties["wrapped"]["description"] == "Inner"
    assert properties["outer"]["description"] == "Outer"


def test_self_reference_terminating_through_optional_arm() -> None:
    holder: Dict[str, SchemaNode] = {}
    lazy = LazyNode(getter=lambda: holder["leaf"])
    holder["leaf"] = ObjectNode({"value": IntegerNode()})
    node = ObjectNode({"child": lazy.optional()})

    schema = compile_schema(node)
    assert schema["properties"]["child"]["properties"]["value"] == {"type": "integer"}


def test_recursive_lazy_schema_degrades_with_diagnostic() -> None:
    holder: Dict[str, SchemaNode] = {}
    lazy = LazyNode(getter=lambda: holder["tree"])
    holder["tree"] = ObjectNode({"children": ArrayNode(lazy)})

    compiler = SchemaCompiler()
    schema = compiler.compile(lazy)

    assert schema["properties"]["children"]["items"] == {}
    assert len(compiler.diagnostics) == 1
    assert "Recursive schema" in compiler.diagnostics[0].message
    assert compiler.diagnostics[0].path == "$.properties.children.items"


def test_unknown_node_type_degrades_instead_of_raising() -> None:
    class CustomNode(SchemaNode):
        pass

    compiler = SchemaCompiler()
    schema = compiler.compile(ObjectNode({"x": CustomNode()}))

    assert schema["properties"]["x"] == {}
    assert compiler.diagnostics[0].path == "$.properties.x"


def test_every_compiled_object_is_closed() -> None:
    node = ObjectNode(
        {
            "nested": ObjectNode({"deep": ObjectNode({"leaf": StringNode()})}),
            "items": ArrayNode(ObjectNode({"id": IntegerNode()})),
            "either": UnionNode([ObjectNode({}), RecordNode()]),
            "map": RecordNode(StringNode()),
        }
    )
    objects = _objects(compile_schema(node))

    assert len(objects) == 7
    assert all(obj["additionalProperties"] is False for obj in objects)


def test_nodes_are_immutable() -> None:
    base = StringNode()
    described = base.describe("text")

    assert base.description is None
    assert described.description == "text"
    with pytest.raises(Exception):
        base.description = "changed"  # type: ignore[misc]
