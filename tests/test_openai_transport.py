"""Tests for the OpenAI chat-completions transport using a fake client."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import httpx
import pytest
from openai import APIConnectionError

from agentloop.controller import RunController
from agentloop.events import (
    RunError,
    RunFinished,
    RunStarted,
    TextDelta,
    ToolCallArgsDelta,
    ToolCallEnded,
    ToolCallStarted,
)
from agentloop.tools import ToolRegistry
from agentloop.transport import ClientSettings, OpenAIChatTransport
from agentloop.types import OutgoingMessage, RunRequest, ToolResult


def _text_chunk(content: str) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content, tool_calls=None))])


def _tool_chunk(index: int, *, call_id: str | None = None, name: str | None = None, arguments: str | None = None):
    function = SimpleNamespace(name=name, arguments=arguments)
    tool_delta = SimpleNamespace(index=index, id=call_id, function=function)
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=None, tool_calls=[tool_delta]))])


class _FakeStream:
    def __init__(self, chunks: list[Any]) -> None:
        self._chunks = list(chunks)
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self._chunks:
            yield chunk

    async def close(self) -> None:
        self.closed = True


class _FakeCompletions:
    def __init__(self, responses: list[Any]) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, Any]] = []
        self.streams: list[_FakeStream] = []

    async def create(self, **payload: Any) -> _FakeStream:
        self.calls.append(payload)
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        stream = _FakeStream(response)
        self.streams.append(stream)
        return stream


def _transport(responses: list[Any], **overrides: Any) -> tuple[OpenAIChatTransport, _FakeCompletions]:
    completions = _FakeCompletions(responses)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    settings = ClientSettings(
        base_url="https://example.invalid/v1",
        api_key="sk-test",
        model="test-model",
        max_retries=1,
        **overrides,
    )
    return OpenAIChatTransport(settings, client=client), completions


async def _collect(transport: OpenAIChatTransport, request: RunRequest) -> list[Any]:
    return [event async for event in transport.open_stream(request)]


class TestStreamTranslation:
    @pytest.mark.asyncio
    async def test_text_stream(self) -> None:
        transport, completions = _transport([[_text_chunk("Hel"), _text_chunk("lo")]], system_prompt="Be brief.")

        events = await _collect(transport, RunRequest(message=OutgoingMessage.from_text("Hi")))

        assert isinstance(events[0], RunStarted)
        assert events[0].run_id.startswith("run_")
        assert events[1:] == [TextDelta(text="Hel"), TextDelta(text="lo"), RunFinished()]

        payload = completions.calls[0]
        assert payload["model"] == "test-model"
        assert payload["stream"] is True
        assert payload["messages"] == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hi"},
        ]
        assert "tools" not in payload
        assert completions.streams[0].closed

    @pytest.mark.asyncio
    async def test_tool_call_deltas(self) -> None:
        chunks = [
            _tool_chunk(0, call_id="call_abc", name="add", arguments='{"a": 1,'),
            _tool_chunk(0, arguments=' "b": 2}'),
        ]
        transport, _ = _transport([chunks])

        events = await _collect(transport, RunRequest(message=OutgoingMessage.from_text("add")))

        assert events[1:] == [
            ToolCallStarted(call_id="call_abc", tool_name="add"),
            ToolCallArgsDelta(call_id="call_abc", delta='{"a": 1,'),
            ToolCallArgsDelta(call_id="call_abc", delta=' "b": 2}'),
            ToolCallEnded(call_id="call_abc"),
            RunFinished(),
        ]

    @pytest.mark.asyncio
    async def test_arguments_before_name_are_buffered(self) -> None:
        chunks = [
            _tool_chunk(0, arguments='{"q": '),
            _tool_chunk(0, name="search", arguments='"cats"}'),
        ]
        transport, _ = _transport([chunks])

        events = await _collect(transport, RunRequest(message=OutgoingMessage.from_text("find")))

        started = events[1]
        assert isinstance(started, ToolCallStarted)
        assert started.call_id.startswith("call_")
        assert events[2] == ToolCallArgsDelta(call_id=started.call_id, delta='{"q": "cats"}')

    @pytest.mark.asyncio
    async def test_tools_are_converted_to_functions(self) -> None:
        transport, completions = _transport([[]], strict_tools=True)
        tool = {
            "name": "weather",
            "description": "Weather lookup",
            "inputSchema": {
                "type": "object",
                "properties": {"city": {"type": "string"}, "units": {"type": "string"}},
                "required": ["city"],
            },
        }

        await _collect(transport, RunRequest(message=OutgoingMessage.from_text("hi"), tools=(tool,)))

        function = completions.calls[0]["tools"][0]["function"]
        assert function["name"] == "weather"
        assert function["strict"] is True
        assert function["parameters"]["required"] == ["city", "units"]
        assert function["parameters"]["additionalProperties"] is False

    @pytest.mark.asyncio
    async def test_request_failure_becomes_run_error(self) -> None:
        error = APIConnectionError(request=httpx.Request("POST", "https://example.invalid/v1/chat/completions"))
        transport, _ = _transport([error])

        events = await _collect(transport, RunRequest(message=OutgoingMessage.from_text("hi")))

        assert isinstance(events[0], RunStarted)
        assert isinstance(events[-1], RunError)
        assert events[-1].message == "Connection error."


class TestHistory:
    @pytest.mark.asyncio
    async def test_continuation_replays_history_and_tool_messages(self) -> None:
        first = [_tool_chunk(0, call_id="call_1", name="add", arguments='{"a": 1, "b": 2}')]
        transport, completions = _transport([first, [_text_chunk("3")]])

        events = await _collect(transport, RunRequest(message=OutgoingMessage.from_text("1+2")))
        run_id = events[0].run_id
        assert transport.history(run_id)[-1]["tool_calls"][0]["id"] == "call_1"

        follow_up = RunRequest(
            message=OutgoingMessage.from_tool_results([ToolResult.success("call_1", "3")]),
            previous_run_id=run_id,
        )
        await _collect(transport, follow_up)

        messages = completions.calls[1]["messages"]
        assert messages[0] == {"role": "user", "content": "1+2"}
        assert messages[1]["role"] == "assistant"
        assert messages[1]["tool_calls"][0]["function"] == {"name": "add", "arguments": '{"a": 1, "b": 2}'}
        assert messages[2] == {"role": "tool", "tool_call_id": "call_1", "content": "3"}
        assert transport.history(run_id) == []

    @pytest.mark.asyncio
    async def test_text_only_rounds_keep_no_history(self) -> None:
        transport, _ = _transport([[_text_chunk("a")], [_text_chunk("b")], [_text_chunk("c")]])

        for prompt in ("one", "two", "three"):
            await _collect(transport, RunRequest(message=OutgoingMessage.from_text(prompt)))

        assert transport.open_run_ids == []

    @pytest.mark.asyncio
    async def test_unanswered_histories_are_capped(self) -> None:
        rounds = [[_tool_chunk(0, call_id=f"call_{n}", name="add", arguments="{}")] for n in range(3)]
        transport, _ = _transport(rounds, max_open_histories=2)

        run_ids = []
        for prompt in ("one", "two", "three"):
            events = await _collect(transport, RunRequest(message=OutgoingMessage.from_text(prompt)))
            run_ids.append(events[0].run_id)

        assert transport.open_run_ids == run_ids[1:]
        assert transport.history(run_ids[0]) == []

    @pytest.mark.asyncio
    async def test_completed_run_leaves_nothing_open(self, registry: ToolRegistry) -> None:
        first = [_tool_chunk(0, call_id="call_1", name="add", arguments='{"a": 1, "b": 1}')]
        transport, _ = _transport([first, [_text_chunk("2")]])

        await RunController(transport, registry).run("1 + 1?")

        assert transport.open_run_ids == []

    @pytest.mark.asyncio
    async def test_drives_a_full_run(self, registry: ToolRegistry) -> None:
        first = [
            _tool_chunk(0, call_id="call_1", name="add", arguments='{"a": 2, '),
            _tool_chunk(0, arguments='"b": 3}'),
        ]
        transport, completions = _transport([first, [_text_chunk("The sum is 5.")]])

        result = await RunController(transport, registry).run("2 + 3?")

        assert result.text == "The sum is 5."
        assert completions.calls[1]["messages"][-1] == {"role": "tool", "tool_call_id": "call_1", "content": '{"sum":5}'}
