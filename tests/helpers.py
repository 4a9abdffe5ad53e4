"""Shared fakes for controller and tracker tests."""

from __future__ import annotations

import asyncio
from typing import Any, Iterable, Mapping, Sequence

from agentloop.types import RunRequest

ADD_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"a": {"type": "number"}, "b": {"type": "number"}},
    "required": ["a", "b"],
}

WEATHER_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "city": {"type": "string"},
        "units": {"type": "string", "default": "metric"},
    },
    "required": ["city"],
}


def run_started(run_id: str) -> dict[str, Any]:
    return {"type": "RUN_STARTED", "runId": run_id}


def text(delta: str) -> dict[str, Any]:
    return {"type": "TEXT_MESSAGE_CONTENT", "delta": delta}


def run_finished() -> dict[str, Any]:
    return {"type": "RUN_FINISHED"}


def tool_call(call_id: str, name: str, *chunks: str, event_type: str = "TOOL_CALL_ARGS") -> list[dict[str, Any]]:
    """Events for one complete tool call: start, argument chunks, end."""
    events: list[dict[str, Any]] = [{"type": "TOOL_CALL_START", "toolCallId": call_id, "toolCallName": name}]
    events.extend({"type": event_type, "toolCallId": call_id, "delta": chunk} for chunk in chunks)
    events.append({"type": "TOOL_CALL_END", "toolCallId": call_id})
    return events


def text_round(run_id: str, *deltas: str) -> list[dict[str, Any]]:
    return [run_started(run_id), *(text(delta) for delta in deltas), run_finished()]


def tool_round(run_id: str, *calls: Sequence[dict[str, Any]], preamble: str | None = None) -> list[dict[str, Any]]:
    events: list[dict[str, Any]] = [run_started(run_id)]
    if preamble is not None:
        events.append(text(preamble))
    for call in calls:
        events.extend(call)
    events.append(run_finished())
    return events


class ScriptedTransport:
    """Replays one scripted event list per round; the last one repeats."""

    def __init__(self, rounds: Iterable[Sequence[Mapping[str, Any]]]) -> None:
        self._rounds = [list(events) for events in rounds]
        self.requests: list[RunRequest] = []
        self.cancel_events: list[asyncio.Event | None] = []
        self.closed = 0

    async def open_stream(self, request: RunRequest, *, cancel_event: asyncio.Event | None = None):
        self.requests.append(request)
        self.cancel_events.append(cancel_event)
        index = min(len(self.requests), len(self._rounds)) - 1
        try:
            for event in self._rounds[index]:
                yield event
        finally:
            self.closed += 1

    @property
    def round_count(self) -> int:
        return len(self.requests)
