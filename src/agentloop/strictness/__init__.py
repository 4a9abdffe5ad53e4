"""Strict-mode schema rewriting and its reverse for tool-call arguments."""

from .strictify import strictify_properties, strictify_property, strictify_schema
from .unstrictify import (
    PASS_THROUGH_PREFIX,
    can_be_null,
    unstrictify_params,
    unstrictify_params_from_schema,
)

__all__ = [
    "PASS_THROUGH_PREFIX",
    "can_be_null",
    "strictify_properties",
    "strictify_property",
    "strictify_schema",
    "unstrictify_params",
    "unstrictify_params_from_schema",
]
