"""Tests for single tool-call execution."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import pytest
from jsonschema import Draft7Validator

from agentloop.tools import ExecutorConfig, ToolDefinition
from agentloop.tools.executor import (
    content_from_parts,
    execute_tool_call,
    format_tool_result_content,
    parse_tool_arguments,
    validate_tool_input,
)
from agentloop.types import TextContent
from tests.helpers import ADD_SCHEMA


@dataclass
class _Report:
    title: str

    def to_dict(self) -> dict:
        return {"title": self.title}


def _run(tool: ToolDefinition, raw: str, config: ExecutorConfig | None = None):
    return execute_tool_call(
        tool,
        Draft7Validator(tool.input_schema),
        "tc_1",
        raw,
        config=config or ExecutorConfig(default_timeout=5.0),
    )


def _tool(execute, **kwargs) -> ToolDefinition:
    return ToolDefinition(name="add", description="Add", input_schema=ADD_SCHEMA, execute=execute, **kwargs)


class TestFormatting:
    def test_strings_pass_through(self) -> None:
        assert format_tool_result_content("plain") == "plain"

    def test_mappings_become_compact_json(self) -> None:
        assert format_tool_result_content({"a": [1, 2]}) == '{"a":[1,2]}'

    def test_objects_with_to_dict(self) -> None:
        assert format_tool_result_content(_Report("Q3")) == '{"title":"Q3"}'

    def test_unencodable_values_fall_back_to_str(self) -> None:
        assert format_tool_result_content({1, 2}) in ("{1, 2}", "{2, 1}")

    def test_content_from_parts_normalizes(self) -> None:
        parts = content_from_parts(["a", {"type": "text", "text": "b"}, TextContent("c"), {"n": 1}])

        assert parts == (TextContent("a"), TextContent("b"), TextContent("c"), TextContent('{"n":1}'))


class TestArgumentParsing:
    @pytest.mark.parametrize("raw", ["", "   "])
    def test_empty_means_no_arguments(self, raw: str) -> None:
        assert parse_tool_arguments(raw) == {}

    def test_invalid_json(self) -> None:
        with pytest.raises(ValueError, match="Invalid JSON in tool arguments"):
            parse_tool_arguments("{nope")

    def test_non_object(self) -> None:
        with pytest.raises(ValueError, match="Arguments must be a JSON object, got list"):
            parse_tool_arguments("[1]")

    def test_validation_message_names_path(self) -> None:
        validator = Draft7Validator(ADD_SCHEMA)

        assert validate_tool_input(validator, {"a": 1, "b": 2}) is None
        assert validate_tool_input(validator, {"a": "x", "b": 2}).startswith("a: ")


class TestExecuteToolCall:
    @pytest.mark.asyncio
    async def test_sync_tool(self) -> None:
        result = await _run(_tool(lambda args: args["a"] + args["b"]), '{"a": 1, "b": 2}')

        assert result.is_error is False
        assert result.text == "3"

    @pytest.mark.asyncio
    async def test_async_tool(self) -> None:
        async def add(args):
            return {"sum": args["a"] + args["b"]}

        result = await _run(_tool(add), '{"a": 1, "b": 2}')

        assert result.text == '{"sum":3}'

    @pytest.mark.asyncio
    async def test_invalid_json_is_error_result(self) -> None:
        result = await _run(_tool(lambda args: 0), "{bad")

        assert result.is_error is True
        assert result.text.startswith("Invalid arguments: Invalid JSON in tool arguments")

    @pytest.mark.asyncio
    async def test_schema_violation_is_error_result(self) -> None:
        called = []
        result = await _run(_tool(lambda args: called.append(args)), '{"a": 1}')

        assert result.is_error is True
        assert result.text.startswith("Invalid arguments:")
        assert "'b' is a required property" in result.text
        assert called == []

    @pytest.mark.asyncio
    async def test_exception_becomes_error_result(self) -> None:
        def fail(args):
            raise RuntimeError("disk full")

        result = await _run(_tool(fail), '{"a": 1, "b": 2}')

        assert result.is_error is True
        assert result.text == "disk full"

    @pytest.mark.asyncio
    async def test_exception_without_message_uses_generic_text(self) -> None:
        def fail(args):
            raise RuntimeError()

        result = await _run(_tool(fail), '{"a": 1, "b": 2}')

        assert result.text == "Tool execution failed"

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        async def hang(args):
            await asyncio.sleep(5)

        result = await _run(_tool(hang), '{"a": 1, "b": 2}', ExecutorConfig(default_timeout=0.01))

        assert result.is_error is True
        assert result.text == "Tool execution timed out after 0.01s"

    @pytest.mark.asyncio
    async def test_transform_to_content(self) -> None:
        tool = _tool(
            lambda args: args["a"] + args["b"],
            transform_to_content=lambda value: [f"sum is {value}", {"raw": value}],
        )

        result = await _run(tool, '{"a": 1, "b": 2}')

        assert result.content == (TextContent("sum is 3"), TextContent('{"raw":3}'))

    @pytest.mark.asyncio
    async def test_failing_transform_is_error_result(self) -> None:
        def transform(value):
            raise ValueError("cannot render")

        result = await _run(_tool(lambda args: 1, transform_to_content=transform), '{"a": 1, "b": 2}')

        assert result.is_error is True
        assert result.text == "cannot render"
