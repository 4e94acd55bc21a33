from typing import Any, Dict, List, Set

import jsonref  # type: ignore
from jsonschema import Draft202012Validator

from ..exceptions import ToolValidationError
from ..logger import get_logger

logger = get_logger(__name__)

_METADATA_KEYS = ("$defs", "$schema", "$id", "title", "definitions")

# Constraints the structured-output dialect rejects.
_UNSUPPORTED_KEYS = (
    "minLength",
    "maxLength",
    "pattern",
    "minimum",
    "maximum",
    "exclusiveMinimum",
    "exclusiveMaximum",
    "multipleOf",
    "maxItems",
)


class SchemaValidator:
    """
    Helper class for bringing foreign JSON schemas into the provider dialect and
    for checking payloads against compiled schemas.
    """

    @staticmethod
    def assert_no_recursive_refs(schema: Dict[str, Any]) -> None:
        """
        Checks if the schema contains recursive references by traversing the graph.

        Args:
            schema: The JSON schema to check.

        Raises:
            ToolValidationError: If a recursive reference is found.
        """
        defs = schema.get("$defs", {}) or schema.get("definitions", {})

        def check(node: Any, path: Set[str]) -> None:
            if isinstance(node, dict):
                if "$ref" in node:
                    ref = node["$ref"]
                    if ref in path:
                        msg = f"Recursive structure detected: {ref}. Recursive schemas are not supported by the provider."
                        logger.error(msg)
                        raise ToolValidationError(msg)

                    # Only local refs (#/$defs/Name) can be followed
                    if ref.startswith("#"):
                        def_name = ref.split("/")[-1]
                        if def_name in defs:
                            check(defs[def_name], path | {ref})
                    return

                for v in node.values():
                    check(v, path)
            elif isinstance(node, list):
                for item in node:
                    check(item, path)

        check(schema, set())

    @staticmethod
    def sanitize_schema(schema: Any) -> Any:
        """
        Rewrites a JSON schema so the provider accepts it.

        Removes metadata keys and unsupported numeric/string constraints, drops
        ``minItems`` above 1, closes every object and trims ``required`` to the
        declared properties.

        Args:
            schema: The JSON schema to sanitize.

        Returns:
            The sanitized schema.
        """
        if not isinstance(schema, dict):
            return schema

        new_schema = {
            key: value
            for key, value in schema.items()
            if key not in _METADATA_KEYS and key not in _UNSUPPORTED_KEYS
        }

        if new_schema.get("minItems") not in (None, 0, 1):
            new_schema.pop("minItems")

        if new_schema.get("type") == "object":
            new_schema["additionalProperties"] = False
            properties = new_schema.get("properties")
            if "required" in new_schema:
                declared = set(properties or {})
                valid_required = [name for name in new_schema["required"] if name in declared]
                if valid_required:
                    new_schema["required"] = valid_required
                else:
                    new_schema.pop("required")

        for key, value in new_schema.items():
            if key == "properties" and isinstance(value, dict):
                new_schema[key] = {name: SchemaValidator.sanitize_schema(prop) for name, prop in value.items()}
            elif isinstance(value, dict):
                new_schema[key] = SchemaValidator.sanitize_schema(value)
            elif isinstance(value, list):
                new_schema[key] = [SchemaValidator.sanitize_schema(item) for item in value]

        return new_schema

    @staticmethod
    def normalize_parameters(schema: Any) -> Dict[str, Any]:
        """Turn an arbitrary tool input schema into a closed, ref-free object schema.

        Args:
            schema: JSON schema as published by a tool server (may be empty or None).

        Returns:
            A sanitized object schema.

        Raises:
            ToolValidationError: If the schema is recursive.
        """
        if not schema:
            return {"type": "object", "properties": {}, "additionalProperties": False}

        SchemaValidator.assert_no_recursive_refs(schema)
        # proxies=False ensures we get a plain dict back, not JsonRef objects
        resolved = jsonref.replace_refs(schema, proxies=False)
        sanitized = SchemaValidator.sanitize_schema(resolved)

        if "type" not in sanitized and "properties" in sanitized:
            sanitized["type"] = "object"
            sanitized["additionalProperties"] = False
        return sanitized

    @staticmethod
    def validate_payload(payload: Any, schema: Dict[str, Any]) -> List[str]:
        """Check ``payload`` against a compiled schema.

        Args:
            payload: The decoded JSON value.
            schema: The compiled schema it must conform to.

        Returns:
            One message per violation; an empty list means the payload conforms.
        """
        validator = Draft202012Validator(schema)
        errors = sorted(validator.iter_errors(payload), key=lambda e: [str(p) for p in e.absolute_path])
        return [f"{'/'.join(str(p) for p in error.absolute_path) or '<root>'}: {error.message}" for error in errors]
