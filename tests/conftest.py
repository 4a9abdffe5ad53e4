"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from agentloop.tools import ExecutorConfig, ToolDefinition, ToolRegistry
from tests.helpers import ADD_SCHEMA


@pytest.fixture
def add_tool() -> ToolDefinition:
    return ToolDefinition(
        name="add",
        description="Add two numbers",
        input_schema=ADD_SCHEMA,
        execute=lambda args: {"sum": args["a"] + args["b"]},
    )


@pytest.fixture
def registry(add_tool: ToolDefinition) -> ToolRegistry:
    return ToolRegistry([add_tool], config=ExecutorConfig(default_timeout=5.0))
