"""
Schema-driven argument validation.

Validates a tool's arguments against its JSON-Schema-like ``inputSchema``.
Properties are checked in declared order and the FIRST violation raises
``InvalidArguments``; violations are never aggregated. Keywords that are not
understood are ignored, and undeclared arguments are passed through.

Supported keywords: type (string or list), enum, minimum, maximum,
exclusiveMinimum, exclusiveMaximum, minLength, maxLength, pattern, items,
minItems, maxItems, properties, required. Bounds are inclusive unless the
exclusive variant is used.
"""

import re
from typing import Any, Dict, List

from .errors import InvalidArguments

_TYPE_NAMES = {
    "string": "a string",
    "number": "a number",
    "integer": "an integer",
    "boolean": "a boolean",
    "object": "an object",
    "array": "an array",
    "null": "null",
}


def _matches_type(value: Any, type_name: str) -> bool:
    if type_name == "string":
        return isinstance(value, str)
    if type_name == "boolean":
        return isinstance(value, bool)
    if type_name == "integer":
        if isinstance(value, bool):
            return False
        return isinstance(value, int) or (isinstance(value, float) and value.is_integer())
    if type_name == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if type_name == "object":
        return isinstance(value, dict)
    if type_name == "array":
        return isinstance(value, list)
    if type_name == "null":
        return value is None
    return True  # unknown type names are not enforced


def _expected_type(types: List[str]) -> str:
    return " or ".join(_TYPE_NAMES.get(t, t) for t in types)


def validate_value(path: str, value: Any, schema: Dict[str, Any]):
    """Check one value against a property schema; raise on the first failure."""
    declared = schema.get("type")
    if declared is not None:
        types = declared if isinstance(declared, list) else [declared]
        if not any(_matches_type(value, t) for t in types):
            raise InvalidArguments(path, _expected_type(types))

    if "enum" in schema and value not in schema["enum"]:
        allowed = ", ".join(repr(v) for v in schema["enum"])
        raise InvalidArguments(path, f"one of [{allowed}]")

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if "minimum" in schema and value < schema["minimum"]:
            raise InvalidArguments(path, f"a value >= {schema['minimum']}")
        if "maximum" in schema and value > schema["maximum"]:
            raise InvalidArguments(path, f"a value <= {schema['maximum']}")
        if "exclusiveMinimum" in schema and value <= schema["exclusiveMinimum"]:
            raise InvalidArguments(path, f"a value > {schema['exclusiveMinimum']}")
        if "exclusiveMaximum" in schema and value >= schema["exclusiveMaximum"]:
            raise InvalidArguments(path, f"a value < {schema['exclusiveMaximum']}")

    if isinstance(value, str):
        if "minLength" in schema and len(value) < schema["minLength"]:
            raise InvalidArguments(path, f"at least {schema['minLength']} characters")
        if "maxLength" in schema and len(value) > schema["maxLength"]:
            raise InvalidArguments(path, f"at most {schema['maxLength']} characters")
        if "pattern" in schema and not re.search(schema["pattern"], value):
            raise InvalidArguments(path, f"a string matching /{schema['pattern']}/")

    if isinstance(value, list):
        if "minItems" in schema and len(value) < schema["minItems"]:
            raise InvalidArguments(path, f"at least {schema['minItems']} items")
        if "maxItems" in schema and len(value) > schema["maxItems"]:
            raise InvalidArguments(path, f"at most {schema['maxItems']} items")
        item_schema = schema.get("items")
        if isinstance(item_schema, dict):
            for index, item in enumerate(value):
                validate_value(f"{path}[{index}]", item, item_schema)

    if isinstance(value, dict) and "properties" in schema:
        validate_object(value, schema, prefix=f"{path}.")


def validate_object(arguments: Dict[str, Any], schema: Dict[str, Any], prefix: str = ""):
    """Validate a mapping against an object schema, property by property."""
    properties = schema.get("properties") or {}
    required = set(schema.get("required") or [])

    for name, prop_schema in properties.items():
        path = f"{prefix}{name}"
        if name not in arguments:
            if name in required:
                raise InvalidArguments(path, "a value (field is required)")
            continue
        validate_value(path, arguments[name], prop_schema or {})


def validate_arguments(arguments: Any, schema: Dict[str, Any]):
    """Validate raw tool arguments against a tool's input schema."""
    if not isinstance(arguments, dict):
        raise InvalidArguments("arguments", "an object")
    validate_object(arguments, schema or {})


def schema_errors(schema: Dict[str, Any]) -> List[str]:
    """Structural problems in an input schema (used at registration time)."""
    problems = []
    if not isinstance(schema, dict):
        return ["inputSchema must be an object"]
    properties = schema.get("properties", {})
    if not isinstance(properties, dict):
        problems.append("inputSchema.properties must be an object")
        properties = {}
    required = schema.get("required", [])
    if not isinstance(required, list):
        problems.append("inputSchema.required must be a list")
        required = []
    for name in required:
        if name not in properties:
            problems.append(f"required field '{name}' is not a declared property")
    return problems
