"""Conversion of Pydantic models into the JSON Schema sent to the Parsefy API."""

from __future__ import annotations

import copy
import logging
from typing import Any

from pydantic import BaseModel
from pydantic.errors import PydanticUserError

from parsefy.errors import ValidationError

logger = logging.getLogger(__name__)

EXPRESSIBLE_TYPES = frozenset({"string", "number", "integer", "boolean", "array", "object", "null"})

# Keywords Pydantic emits for its own bookkeeping; they only cost tokens.
_STRIPPED_KEYWORDS = frozenset({"title", "$schema"})

# Keywords whose values are name -> schema mappings, not schemas.
_SCHEMA_MAPS = frozenset({"properties", "patternProperties"})

# Keywords whose values are instance data and must be copied untouched.
_DATA_KEYWORDS = frozenset({"default", "examples", "const", "enum"})

_COMBINATORS = ("anyOf", "oneOf", "allOf")
_DEFS_PREFIX = "#/$defs/"


def translate_schema(schema: type[BaseModel]) -> dict[str, Any]:
    """
    Convert a Pydantic model class into a self-contained JSON Schema.

    Field optionality is carried over exactly: a field without a default is
    listed in ``required``, a field with one is not. Required fields that
    are missing or below the confidence threshold trigger the (more
    expensive) fallback model, so this mapping directly affects billing.

    Field descriptions are kept verbatim since they guide the extraction.
    ``$ref`` pointers are inlined, and ``title``/``$schema`` keywords are
    removed.

    Raises:
        ValidationError: If the schema is not a model class, cannot be
            expressed as JSON Schema, is recursive, or has a field without
            a usable type. Raised with code ``INVALID_SCHEMA``.
    """
    if not (isinstance(schema, type) and issubclass(schema, BaseModel)):
        raise ValidationError(
            f"Schema must be a Pydantic model class, got {schema!r}.",
            "INVALID_SCHEMA",
        )

    try:
        json_schema = schema.model_json_schema()
    except PydanticUserError as exc:
        raise ValidationError(
            f"Cannot build a JSON Schema for {schema.__name__}: {exc}",
            "INVALID_SCHEMA",
        ) from exc

    definitions = json_schema.get("$defs", {})
    portable = _inline(json_schema, definitions, ())

    if portable.get("type") != "object":
        raise ValidationError(
            f"Schema {schema.__name__} must describe an object.",
            "INVALID_SCHEMA",
        )
    _check_types(portable, "$")

    logger.debug(
        "Translated schema %s (%d required fields)",
        schema.__name__,
        len(portable.get("required", [])),
    )
    return portable


def _inline(node: Any, definitions: dict[str, Any], stack: tuple[str, ...]) -> Any:
    """Return a copy of `node` with refs resolved and bookkeeping keys removed."""
    if isinstance(node, list):
        return [_inline(item, definitions, stack) for item in node]
    if not isinstance(node, dict):
        return node

    if "$ref" in node:
        name = _definition_name(node["$ref"], definitions)
        if name in stack:
            raise ValidationError(
                f"Recursive model '{name}' cannot be sent to the extraction API.",
                "INVALID_SCHEMA",
            )
        resolved = _inline(definitions[name], definitions, stack + (name,))
        siblings = _inline(
            {key: value for key, value in node.items() if key != "$ref"},
            definitions,
            stack,
        )
        return {**resolved, **siblings}

    result: dict[str, Any] = {}
    for key, value in node.items():
        if key in _STRIPPED_KEYWORDS or key == "$defs":
            continue
        if key in _DATA_KEYWORDS:
            result[key] = copy.deepcopy(value)
        elif key in _SCHEMA_MAPS and isinstance(value, dict):
            result[key] = {
                name: _inline(sub, definitions, stack) for name, sub in value.items()
            }
        else:
            result[key] = _inline(value, definitions, stack)
    return result


def _definition_name(ref: str, definitions: dict[str, Any]) -> str:
    name = ref[len(_DEFS_PREFIX):] if ref.startswith(_DEFS_PREFIX) else None
    if name is None or name not in definitions:
        raise ValidationError(f"Unresolvable schema reference: {ref}", "INVALID_SCHEMA")
    return name


def _declares_type(node: dict[str, Any]) -> bool:
    if "type" in node:
        types = node["type"]
        if isinstance(types, str):
            types = [types]
        return bool(types) and all(t in EXPRESSIBLE_TYPES for t in types)
    if "enum" in node or "const" in node:
        return True
    return any(key in node for key in _COMBINATORS)


def _check_types(node: dict[str, Any], path: str) -> None:
    """Ensure every field in the schema resolves to a type the API understands."""
    if not _declares_type(node):
        raise ValidationError(
            f"Field '{path}' has no type the extraction API can express "
            "(use str, int, float, bool, list, or a nested model).",
            "INVALID_SCHEMA",
        )

    for key in _COMBINATORS:
        for member in node.get(key, []):
            _check_types(member, path)

    for name, sub in node.get("properties", {}).items():
        _check_types(sub, f"{path}.{name}")

    items = node.get("items")
    if isinstance(items, dict):
        _check_types(items, f"{path}[*]")
