"""Reverse strict-mode schema rewriting on tool-call arguments.

Strict structured-output mode forces every property to be required and turns
optional properties into ``anyOf: [{type: null}, ...]``. Models then send an
explicit ``null`` for everything the user left out. The functions here compare
such arguments against the tool's *original* schema and strip those nulls
again, restoring schema defaults where declared.

Example:
    schema = {
        "type": "object",
        "properties": {"name": {"type": "string"}, "age": {"type": "number"}},
        "required": ["name"],
    }
    unstrictify_params_from_schema(schema, {"name": "John", "age": None})
    # -> {"name": "John"}
"""

from __future__ import annotations

import copy
import json
from typing import Any, Mapping

from ..errors import UnknownParameterError

__all__ = [
    "PASS_THROUGH_PREFIX",
    "can_be_null",
    "unstrictify_params",
    "unstrictify_params_from_schema",
]

# Keys with this prefix are injected by the host, not the model, and survive
# reconciliation even though no schema declares them.
PASS_THROUGH_PREFIX = "_agentloop_"


def can_be_null(schema: Any) -> bool:
    """Return True when ``schema`` accepts ``null``.

    A schema can be null when its ``type`` is ``"null"``, when its ``type`` is a
    list containing ``"null"``, or when any ``anyOf`` branch can be null.
    """
    if not isinstance(schema, Mapping):
        return False
    schema_type = schema.get("type")
    if schema_type == "null":
        return True
    if isinstance(schema_type, list) and "null" in schema_type:
        return True
    branches = schema.get("anyOf")
    if isinstance(branches, list) and any(can_be_null(branch) for branch in branches):
        return True
    return False


def unstrictify_params_from_schema(schema: Mapping[str, Any], params: Mapping[str, Any]) -> dict[str, Any]:
    """Reconcile ``params`` against ``schema``, tolerating undeclared keys.

    Keys declared by the schema are reconciled; keys carrying
    :data:`PASS_THROUGH_PREFIX` are kept verbatim; any other key is dropped.
    Non-object schemas return a shallow copy of ``params`` unchanged.

    Args:
        schema: The tool's original (non-strict) JSON schema.
        params: Arguments as decoded from the model output.

    Returns:
        A new mapping; neither argument is mutated.
    """
    if not isinstance(schema, Mapping) or schema.get("type") != "object":
        return dict(params)

    properties = schema.get("properties") or {}
    declared: dict[str, Any] = {}
    passthrough: dict[str, Any] = {}
    for key, value in params.items():
        if key in properties:
            declared[key] = value
        elif isinstance(key, str) and key.startswith(PASS_THROUGH_PREFIX):
            passthrough[key] = copy.deepcopy(value)

    reconciled = unstrictify_params(schema, declared, _nested=unstrictify_params_from_schema)
    reconciled.update(passthrough)
    return reconciled


def unstrictify_params(
    schema: Mapping[str, Any],
    params: Mapping[str, Any],
    *,
    _nested: Any = None,
) -> dict[str, Any]:
    """Reconcile ``params`` against an object ``schema``, strictly.

    Args:
        schema: An object schema.
        params: Arguments to reconcile.

    Returns:
        A new mapping with strict-mode nulls removed.

    Raises:
        ValueError: If ``schema`` is not an object schema.
        UnknownParameterError: If ``params`` holds a key ``schema`` does not declare.
    """
    if not isinstance(schema, Mapping) or schema.get("type") != "object":
        found = schema.get("type") if isinstance(schema, Mapping) else type(schema).__name__
        raise ValueError(f"tool call parameter schema must be an object, instead got {found}")

    recurse = _nested or unstrictify_params
    properties = schema.get("properties") or {}
    required = set(schema.get("required") or ())
    result: dict[str, Any] = {}

    for name, value in params.items():
        if name not in properties:
            raise UnknownParameterError(name)
        prop_schema = properties[name]

        if value is None:
            if name not in required and not can_be_null(prop_schema):
                if isinstance(prop_schema, Mapping) and "default" in prop_schema:
                    result[name] = copy.deepcopy(prop_schema["default"])
                continue
            result[name] = None
            continue

        if not isinstance(prop_schema, Mapping):
            result[name] = copy.deepcopy(value)
            continue

        prop_type = prop_schema.get("type")
        if prop_type == "array":
            result[name] = _reconcile_array(prop_schema, value, recurse)
        elif prop_type == "object":
            result[name] = _reconcile_object(prop_schema, value, recurse)
        else:
            result[name] = copy.deepcopy(value)

    return result


def _reconcile_array(schema: Mapping[str, Any], value: Any, recurse: Any) -> Any:
    items = schema.get("items")
    if not isinstance(value, list) or not isinstance(items, Mapping):
        return copy.deepcopy(value)
    reconciled: list[Any] = []
    for item in value:
        if items.get("type") == "object" and items.get("properties") and isinstance(item, Mapping):
            reconciled.append(recurse(items, item))
        else:
            reconciled.append(copy.deepcopy(item))
    return reconciled


def _reconcile_object(schema: Mapping[str, Any], value: Any, recurse: Any) -> Any:
    # Models sometimes send a nested object as a JSON-encoded string.
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            parsed = None
        if isinstance(parsed, (dict, list)):
            value = parsed

    if schema.get("properties") and isinstance(value, Mapping):
        return recurse(schema, value)
    return copy.deepcopy(value)
