"""Rewrite a JSON schema into the shape strict structured-output mode accepts.

Strict mode requires every property to be listed in ``required`` and every
object to forbid additional properties. Optional properties are therefore made
nullable instead, and validation keywords the mode rejects are removed. The
reverse transformation lives in :mod:`agentloop.strictness.unstrictify`.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

__all__ = ["strictify_schema", "strictify_property", "strictify_properties"]

LOGGER = logging.getLogger(__name__)

_STRIPPED_KEYWORDS = (
    "format",
    "default",
    "minItems",
    "maxItems",
    "maxLength",
    "minLength",
    "examples",
    "minimum",
    "exclusiveMaximum",
    "exclusiveMinimum",
    "maximum",
    "pattern",
    "multipleOf",
    "propertyNames",
    "$schema",
)

_COMBINATOR_KEYWORDS = ("anyOf", "oneOf", "allOf", "not")
_SCALAR_TYPES = ("boolean", "number", "integer", "string")
_NULL_SCHEMA: dict[str, Any] = {"type": "null"}
_ANY_PRIMITIVE: tuple[dict[str, Any], ...] = (
    {"type": "null"},
    {"type": "string"},
    {"type": "number"},
    {"type": "integer"},
    {"type": "boolean"},
)


def strictify_schema(schema: Mapping[str, Any]) -> dict[str, Any]:
    """Return a strict-mode copy of a tool's input schema.

    Args:
        schema: An object schema as declared by the tool.

    Returns:
        The rewritten schema. The input is not modified.
    """
    result = strictify_property(schema, True, "$")
    if result is None:
        return {"type": "object", "properties": {}, "required": [], "additionalProperties": False}
    return result


def strictify_properties(
    properties: Mapping[str, Any],
    required: Any,
    debug_key: str = "$",
) -> dict[str, Any]:
    required_names = set(required or ())
    result: dict[str, Any] = {}
    for key, value in properties.items():
        strict = strictify_property(value, key in required_names, f"{debug_key}.{key}")
        if strict is not None:
            result[key] = strict
    return result


def strictify_property(prop: Any, is_required: bool, debug_key: str = "$") -> Any:
    """Strictify a single property schema.

    Returns ``None`` when the property cannot be expressed in strict mode and
    should be dropped from its parent.
    """
    if isinstance(prop, bool):
        return prop if is_required else {"anyOf": [dict(_NULL_SCHEMA), prop]}
    if not isinstance(prop, Mapping):
        prop = {}

    rest = _strip_validation_keywords(prop, debug_key)

    for key in _COMBINATOR_KEYWORDS:
        if key not in rest:
            continue
        value = rest[key]
        base = rest
        if key == "anyOf" and rest.get("type") == "object" and isinstance(value, list) and _looks_like_type_alternatives(value):
            base = {
                k: v
                for k, v in rest.items()
                if k not in ("type", "properties", "required", "additionalProperties")
            }

        if isinstance(value, list):
            branches = _strictify_each(value, is_required, f"{debug_key}.{key}")
            # allOf branches constrain the parent so they are never collapsed.
            if key in ("anyOf", "oneOf") and len(branches) == 1:
                return branches[0]
            return {**base, key: branches}

        if key == "not" and not value:
            return None
        strict = strictify_property(value, is_required, f"{debug_key}.{key}")
        if strict is None:
            return None
        return {**base, key: strict}

    prop_type = rest.get("type")
    if prop_type in _SCALAR_TYPES:
        return _nullable(rest, is_required)

    if prop_type == "object":
        properties = rest.get("properties") or {}
        strict_properties = strictify_properties(properties, rest.get("required"), debug_key)
        object_schema = {
            **rest,
            "properties": strict_properties,
            "required": list(strict_properties.keys()),
            "additionalProperties": False,
        }
        return _nullable(object_schema, is_required)

    if prop_type == "array":
        items = rest.get("items")
        if isinstance(items, list):
            strict_items: Any = _strictify_each(items, is_required, f"{debug_key}.items")
        else:
            strict_items = strictify_property(items, is_required, f"{debug_key}.items")
        if strict_items is None or strict_items == []:
            return None
        return _nullable({**rest, "items": strict_items}, is_required)

    if not prop_type:
        return {"anyOf": [dict(item) for item in _ANY_PRIMITIVE], **rest}

    if is_required or not rest:
        return rest
    return {"anyOf": [dict(_NULL_SCHEMA), rest]}


def _strictify_each(items: list[Any], is_required: bool, debug_key: str) -> list[Any]:
    result: list[Any] = []
    for index, item in enumerate(items):
        strict = strictify_property(item, is_required, f"{debug_key}[{index}]")
        if strict is not None:
            result.append(strict)
    return result


def _nullable(schema: dict[str, Any], is_required: bool) -> dict[str, Any]:
    if is_required:
        return schema
    return {"anyOf": [dict(_NULL_SCHEMA), schema]}


def _strip_validation_keywords(prop: Mapping[str, Any], debug_key: str) -> dict[str, Any]:
    rest = {key: value for key, value in prop.items() if key not in _STRIPPED_KEYWORDS}
    # default is restored by the reconciler, so dropping it is not worth a warning
    dropped = [
        key
        for key in prop
        if key not in rest and key != "default" and prop[key] is not None
    ]
    if dropped:
        LOGGER.warning("Sanitizing JSON schema dropped key(s) at %s: %s", debug_key, ", ".join(dropped))
    return rest


def _looks_like_type_alternatives(branches: list[Any]) -> bool:
    for item in branches:
        if not isinstance(item, Mapping):
            continue
        if not item or item.get("type") == "null":
            return True
    return False
