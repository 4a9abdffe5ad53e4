"""Tool registry.

Holds tool definitions keyed by unique name, validates their input schemas at
registration time and executes them by name.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

from ..errors import DuplicateToolError, InvalidToolSchemaError
from ..types import ToolResult
from .executor import ExecutorConfig, execute_tool_call
from .types import ToolDefinition

__all__ = [
    "ToolRegistry",
    "ToolRegistration",
    "ToolCallRequest",
]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ToolRegistration:
    """Record of a registered tool.

    Attributes:
        tool: The tool definition.
        validator: Compiled Draft 7 validator for the tool's input schema.
    """

    tool: ToolDefinition
    validator: Draft7Validator

    @property
    def name(self) -> str:
        return self.tool.name


@dataclass(slots=True, frozen=True)
class ToolCallRequest:
    """A resolved call waiting to be executed."""

    call_id: str
    tool_name: str
    arguments: str


# -----------------------------------------------------------------------------
# Tool Registry
# -----------------------------------------------------------------------------


class ToolRegistry:
    """Registry for tools the model may call.

    Example:
        registry = ToolRegistry()
        registry.register(
            ToolDefinition(
                name="get_weather",
                description="Look up the weather for a city",
                input_schema={
                    "type": "object",
                    "properties": {"city": {"type": "string"}},
                    "required": ["city"],
                },
                execute=lambda args: f"Sunny in {args['city']}",
            )
        )

        result = await registry.execute("get_weather", "call_1", '{"city": "Oslo"}')
    """

    def __init__(
        self,
        tools: Iterable[ToolDefinition] = (),
        *,
        config: ExecutorConfig | None = None,
    ) -> None:
        self._tools: dict[str, ToolRegistration] = {}
        self._config = config or ExecutorConfig()
        for tool in tools:
            self.register(tool)

    @property
    def config(self) -> ExecutorConfig:
        """Get the executor configuration."""
        return self._config

    def register(self, tool: ToolDefinition) -> ToolRegistration:
        """Register a tool definition.

        Args:
            tool: The tool to register.

        Returns:
            The registration record.

        Raises:
            DuplicateToolError: If a tool with the same name is already registered.
            InvalidToolSchemaError: If the input schema is not valid JSON Schema.
        """
        name = tool.name
        if name in self._tools:
            raise DuplicateToolError(name)

        schema = tool.input_schema
        if not isinstance(schema, Mapping):
            raise InvalidToolSchemaError(name, "input schema must be a mapping")
        try:
            Draft7Validator.check_schema(schema)
        except SchemaError as exc:
            raise InvalidToolSchemaError(name, exc.message) from exc

        registration = ToolRegistration(tool=tool, validator=Draft7Validator(schema))
        self._tools[name] = registration
        LOGGER.debug("Registered tool: %s", name)
        return registration

    def unregister(self, name: str) -> bool:
        """Unregister a tool by name.

        Returns:
            True if the tool was unregistered, False if not found.
        """
        if name in self._tools:
            del self._tools[name]
            LOGGER.debug("Unregistered tool: %s", name)
            return True
        return False

    def get(self, name: str) -> ToolDefinition | None:
        registration = self._tools.get(name)
        return registration.tool if registration is not None else None

    def has(self, name: str) -> bool:
        return name in self._tools

    def list_names(self) -> list[str]:
        return list(self._tools)

    def schemas(self) -> dict[str, Mapping[str, Any]]:
        """Map each tool name to its original input schema."""
        return {name: registration.tool.input_schema for name, registration in self._tools.items()}

    def to_protocol_format(self) -> list[dict[str, Any]]:
        """Serialize tool metadata for the model endpoint, in registration order."""
        return [registration.tool.to_protocol_format() for registration in self._tools.values()]

    async def execute(self, name: str, call_id: str, raw_arguments: str) -> ToolResult:
        """Execute a tool by name.

        Args:
            name: Name of the tool to execute.
            call_id: Id of the call being answered.
            raw_arguments: Finalized argument text (JSON).

        Returns:
            The tool result. Unknown tools, invalid arguments, exceptions and
            timeouts are reported as error results rather than raised.
        """
        registration = self._tools.get(name)
        if registration is None:
            LOGGER.warning("Model requested unknown tool %s (call_id=%s)", name, call_id)
            return ToolResult.error(call_id, f"Unknown tool: {name}")
        return await execute_tool_call(
            registration.tool,
            registration.validator,
            call_id,
            raw_arguments,
            config=self._config,
        )

    async def execute_many(self, calls: Sequence[ToolCallRequest]) -> list[ToolResult]:
        """Execute several calls concurrently.

        Results are returned in the order of ``calls``. A failing call never
        cancels its siblings.
        """
        if not calls:
            return []
        tasks = [self.execute(call.tool_name, call.call_id, call.arguments) for call in calls]
        return list(await asyncio.gather(*tasks))

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools
