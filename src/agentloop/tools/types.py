"""Tool definition types.

A tool is described by a name, a description, a JSON schema for its input and
a callable that runs it. Callables may be plain functions or coroutine
functions; the registry awaits whatever they return when it is awaitable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Sequence, Union

__all__ = [
    "ToolHandler",
    "ContentTransform",
    "ToolDefinition",
]

# Receives the validated input mapping; may return a value or an awaitable.
ToolHandler = Callable[[Mapping[str, Any]], Union[Any, Awaitable[Any]]]

# Turns a tool's raw result into content parts for the model.
ContentTransform = Callable[[Any], Union[Sequence[Any], Awaitable[Sequence[Any]]]]


@dataclass(slots=True, frozen=True)
class ToolDefinition:
    """A tool the model may call.

    Attributes:
        name: Unique identifier for the tool.
        description: Human-readable description of what the tool does.
        input_schema: JSON Schema for the tool's input.
        execute: Callable that runs the tool with validated input.
        output_schema: Optional JSON Schema describing the result.
        transform_to_content: Optional callable turning the result into
            content parts. Non-text parts are serialized to JSON text.
    """

    name: str
    description: str
    input_schema: Mapping[str, Any]
    execute: ToolHandler
    output_schema: Mapping[str, Any] | None = None
    transform_to_content: ContentTransform | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_protocol_format(self) -> dict[str, Any]:
        """Serialize the metadata sent to the model endpoint."""
        payload: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "inputSchema": dict(self.input_schema),
        }
        if self.output_schema is not None:
            payload["outputSchema"] = dict(self.output_schema)
        return payload
