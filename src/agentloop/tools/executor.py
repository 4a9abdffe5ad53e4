"""Helpers for running a single tool call.

Every failure mode of a tool call (unparseable arguments, schema violations,
exceptions raised by the tool, timeouts) is turned into an error
:class:`~agentloop.types.ToolResult` here, so a misbehaving tool never ends
the run.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from jsonschema import Draft7Validator, ValidationError
from jsonschema.exceptions import best_match

from ..types import TextContent, ToolResult
from .types import ToolDefinition

__all__ = [
    "ExecutorConfig",
    "execute_tool_call",
    "format_tool_result_content",
    "parse_tool_arguments",
    "content_from_parts",
    "validate_tool_input",
]

LOGGER = logging.getLogger(__name__)

_GENERIC_FAILURE = "Tool execution failed"


# -----------------------------------------------------------------------------
# Executor Configuration
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ExecutorConfig:
    """Configuration for tool execution.

    Attributes:
        default_timeout: Timeout for one tool call in seconds; None disables it.
        log_arguments: Whether to log tool arguments (may contain sensitive data).
        log_results: Whether to log tool results.
    """

    default_timeout: float | None = 30.0
    log_arguments: bool = False
    log_results: bool = False


# -----------------------------------------------------------------------------
# Helper Functions
# -----------------------------------------------------------------------------


def format_tool_result_content(result: Any) -> str:
    """Format a tool result as text for the model.

    Args:
        result: The raw tool result.

    Returns:
        Strings unchanged; everything else as compact JSON, falling back to
        ``str()`` for values JSON cannot encode.
    """
    if isinstance(result, str):
        return result

    if hasattr(result, "to_dict") and callable(result.to_dict):
        result = result.to_dict()

    try:
        return json.dumps(result, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError):
        return str(result)


def parse_tool_arguments(arguments: str) -> dict[str, Any]:
    """Parse tool arguments from a JSON string.

    Args:
        arguments: JSON text of the arguments. Empty text means no arguments.

    Returns:
        Parsed arguments dictionary.

    Raises:
        ValueError: If arguments cannot be parsed or are not a JSON object.
    """
    if not arguments or not arguments.strip():
        return {}

    try:
        parsed = json.loads(arguments)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in tool arguments: {e}") from e
    if not isinstance(parsed, dict):
        raise ValueError(f"Arguments must be a JSON object, got {type(parsed).__name__}")
    return parsed


def _format_validation_error(error: ValidationError) -> str:
    path = ".".join(str(part) for part in error.path)
    if path:
        return f"{path}: {error.message}"
    return error.message


def validate_tool_input(validator: Draft7Validator, arguments: Mapping[str, Any]) -> str | None:
    """Return a readable message for the most relevant schema violation, if any."""
    error = best_match(validator.iter_errors(arguments))
    if error is None:
        return None
    return _format_validation_error(error)


def content_from_parts(parts: Sequence[Any]) -> tuple[TextContent, ...]:
    """Normalize content parts returned by a transform into text parts.

    Text parts pass through; any other part is serialized to a JSON text part.
    """
    content: list[TextContent] = []
    for part in parts:
        if isinstance(part, TextContent):
            content.append(part)
        elif isinstance(part, str):
            content.append(TextContent(part))
        elif isinstance(part, Mapping) and part.get("type") == "text" and isinstance(part.get("text"), str):
            content.append(TextContent(part["text"]))
        else:
            content.append(TextContent(format_tool_result_content(part)))
    return tuple(content)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


# -----------------------------------------------------------------------------
# Tool Execution
# -----------------------------------------------------------------------------


async def execute_tool_call(
    tool: ToolDefinition,
    validator: Draft7Validator,
    call_id: str,
    raw_arguments: str,
    *,
    config: ExecutorConfig,
) -> ToolResult:
    """Execute a single tool call.

    Args:
        tool: The tool to run.
        validator: Compiled validator for ``tool.input_schema``.
        call_id: Id of the call being answered.
        raw_arguments: Finalized argument text.
        config: Timeout and logging configuration.

    Returns:
        The execution result (success or error). Never raises for tool failures.
    """
    name = tool.name
    try:
        arguments = parse_tool_arguments(raw_arguments)
    except ValueError as e:
        LOGGER.warning("Failed to parse arguments for tool %s: %s", name, e)
        return ToolResult.error(call_id, f"Invalid arguments: {e}")

    problem = validate_tool_input(validator, arguments)
    if problem is not None:
        LOGGER.warning("Arguments for tool %s failed validation: %s", name, problem)
        return ToolResult.error(call_id, f"Invalid arguments: {problem}")

    if config.log_arguments:
        LOGGER.debug("Executing tool %s (call_id=%s) with arguments: %s", name, call_id, arguments)
    else:
        LOGGER.debug("Executing tool %s (call_id=%s)", name, call_id)

    timeout = config.default_timeout
    start_time = time.perf_counter()
    try:
        if timeout is not None and timeout > 0:
            result = await asyncio.wait_for(_maybe_await(tool.execute(arguments)), timeout=timeout)
        else:
            result = await _maybe_await(tool.execute(arguments))

        if tool.transform_to_content is not None:
            content = content_from_parts(await _maybe_await(tool.transform_to_content(result)))
        else:
            content = (TextContent(format_tool_result_content(result)),)

    except asyncio.TimeoutError:
        LOGGER.warning("Tool %s timed out after %.1fs", name, timeout)
        return ToolResult.error(call_id, f"Tool execution timed out after {timeout}s")

    except Exception as e:
        duration_ms = (time.perf_counter() - start_time) * 1000
        message = str(e) or _GENERIC_FAILURE
        LOGGER.warning("Tool %s failed after %.1fms: %s", name, duration_ms, message)
        return ToolResult.error(call_id, message)

    duration_ms = (time.perf_counter() - start_time) * 1000
    if config.log_results:
        LOGGER.debug("Tool %s completed in %.1fms with result: %s", name, duration_ms, result)
    else:
        LOGGER.debug("Tool %s completed in %.1fms", name, duration_ms)
    return ToolResult(call_id=call_id, content=content)
