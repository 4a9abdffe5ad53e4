"""Tool definitions, registry and execution helpers.

Example:
    from agentloop.tools import ToolDefinition, ToolRegistry

    registry = ToolRegistry()
    registry.register(
        ToolDefinition(
            name="add",
            description="Add two numbers",
            input_schema={
                "type": "object",
                "properties": {"a": {"type": "number"}, "b": {"type": "number"}},
                "required": ["a", "b"],
            },
            execute=lambda args: args["a"] + args["b"],
        )
    )
    result = await registry.execute("add", "call_1", '{"a": 2, "b": 3}')
"""

from .types import (
    ContentTransform,
    ToolDefinition,
    ToolHandler,
)

from .registry import (
    ToolCallRequest,
    ToolRegistration,
    ToolRegistry,
)

from .executor import (
    ExecutorConfig,
    content_from_parts,
    execute_tool_call,
    format_tool_result_content,
    parse_tool_arguments,
    validate_tool_input,
)

__all__ = [
    # types.py
    "ContentTransform",
    "ToolDefinition",
    "ToolHandler",
    # registry.py
    "ToolCallRequest",
    "ToolRegistration",
    "ToolRegistry",
    # executor.py
    "ExecutorConfig",
    "content_from_parts",
    "execute_tool_call",
    "format_tool_result_content",
    "parse_tool_arguments",
    "validate_tool_input",
]
