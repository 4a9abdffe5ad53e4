"""Run protocol events.

The model endpoint streams a flat sequence of events for each round. This
module defines them as a closed set of frozen dataclasses keyed by an
:class:`EventType` discriminant, and decodes wire mappings into them.

``TOOL_CALL_ARGS`` and ``TOOL_CALL_CHUNK`` carry the same payload and both
decode to :class:`ToolCallArgsDelta`; ``TEXT_MESSAGE_CONTENT`` and
``TEXT_MESSAGE_CHUNK`` both decode to :class:`TextDelta`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Mapping, Union

from .errors import EventDecodeError
from .types import FinalizeOutcome

__all__ = [
    "EventType",
    "RunStarted",
    "TextDelta",
    "ToolCallStarted",
    "ToolCallArgsDelta",
    "ToolCallEnded",
    "ToolCallResult",
    "RunFinished",
    "RunError",
    "CustomEvent",
    "RunEvent",
    "ToolCallArgsPatch",
    "ToolCallFinalized",
    "TrackerNotification",
    "AWAITING_INPUT_EVENT_NAME",
    "IGNORED_EVENT_TYPES",
    "decode_event",
    "coerce_event",
]

AWAITING_INPUT_EVENT_NAME = "agentloop.run.awaiting_input"


class EventType(str, Enum):
    RUN_STARTED = "RUN_STARTED"
    TEXT_MESSAGE_CONTENT = "TEXT_MESSAGE_CONTENT"
    TEXT_MESSAGE_CHUNK = "TEXT_MESSAGE_CHUNK"
    TOOL_CALL_START = "TOOL_CALL_START"
    TOOL_CALL_ARGS = "TOOL_CALL_ARGS"
    TOOL_CALL_CHUNK = "TOOL_CALL_CHUNK"
    TOOL_CALL_END = "TOOL_CALL_END"
    TOOL_CALL_RESULT = "TOOL_CALL_RESULT"
    RUN_FINISHED = "RUN_FINISHED"
    RUN_ERROR = "RUN_ERROR"
    CUSTOM = "CUSTOM"


# Lifecycle markers the core has no use for; decode_event returns None for them.
IGNORED_EVENT_TYPES: frozenset[str] = frozenset(
    {
        "TEXT_MESSAGE_START",
        "TEXT_MESSAGE_END",
        "THINKING_START",
        "THINKING_END",
        "THINKING_TEXT_MESSAGE_START",
        "THINKING_TEXT_MESSAGE_CONTENT",
        "THINKING_TEXT_MESSAGE_END",
        "STEP_STARTED",
        "STEP_FINISHED",
        "STATE_SNAPSHOT",
        "STATE_DELTA",
        "MESSAGES_SNAPSHOT",
        "RAW",
    }
)


# -----------------------------------------------------------------------------
# Stream events
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class RunStarted:
    run_id: str
    type: ClassVar[EventType] = EventType.RUN_STARTED

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "runId": self.run_id}


@dataclass(slots=True, frozen=True)
class TextDelta:
    text: str
    type: ClassVar[EventType] = EventType.TEXT_MESSAGE_CONTENT

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "delta": self.text}


@dataclass(slots=True, frozen=True)
class ToolCallStarted:
    call_id: str
    tool_name: str
    type: ClassVar[EventType] = EventType.TOOL_CALL_START

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "toolCallId": self.call_id, "toolCallName": self.tool_name}


@dataclass(slots=True, frozen=True)
class ToolCallArgsDelta:
    call_id: str
    delta: str
    type: ClassVar[EventType] = EventType.TOOL_CALL_ARGS

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "toolCallId": self.call_id, "delta": self.delta}


@dataclass(slots=True, frozen=True)
class ToolCallEnded:
    call_id: str
    type: ClassVar[EventType] = EventType.TOOL_CALL_END

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "toolCallId": self.call_id}


@dataclass(slots=True, frozen=True)
class ToolCallResult:
    call_id: str
    content: str = ""
    type: ClassVar[EventType] = EventType.TOOL_CALL_RESULT

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "toolCallId": self.call_id, "content": self.content}


@dataclass(slots=True, frozen=True)
class RunFinished:
    type: ClassVar[EventType] = EventType.RUN_FINISHED

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value}


@dataclass(slots=True, frozen=True)
class RunError:
    message: str = ""
    code: str | None = None
    type: ClassVar[EventType] = EventType.RUN_ERROR

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type.value, "message": self.message}
        if self.code is not None:
            payload["code"] = self.code
        return payload


@dataclass(slots=True, frozen=True)
class CustomEvent:
    name: str
    value: Any = None
    type: ClassVar[EventType] = EventType.CUSTOM

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "name": self.name, "value": self.value}


RunEvent = Union[
    RunStarted,
    TextDelta,
    ToolCallStarted,
    ToolCallArgsDelta,
    ToolCallEnded,
    ToolCallResult,
    RunFinished,
    RunError,
    CustomEvent,
]


# -----------------------------------------------------------------------------
# Tracker notifications
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolCallArgsPatch:
    """Incremental view of a call's arguments as JSON Patch operations.

    Attributes:
        call_id: The call whose arguments changed.
        operations: RFC 6902 operations against the previous snapshot.
        streaming_status: Per-property status (``started``/``streaming``/``done``).
    """

    call_id: str
    operations: tuple[Mapping[str, Any], ...]
    streaming_status: Mapping[str, str] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class ToolCallFinalized:
    """A call's arguments are complete.

    Attributes:
        call_id: The finished call.
        tool_name: Name of the requested tool.
        outcome: Whether reconciliation succeeded or fell back to raw text.
    """

    call_id: str
    tool_name: str
    outcome: FinalizeOutcome

    @property
    def arguments(self) -> str:
        return self.outcome.arguments


TrackerNotification = Union[ToolCallArgsPatch, ToolCallFinalized]


# -----------------------------------------------------------------------------
# Decoding
# -----------------------------------------------------------------------------


def _field(data: Mapping[str, Any], *names: str, default: Any = None) -> Any:
    for name in names:
        if name in data:
            return data[name]
    return default


def _required(data: Mapping[str, Any], event_type: str, *names: str) -> str:
    value = _field(data, *names)
    if not isinstance(value, str):
        raise EventDecodeError(f"{event_type} event is missing string field '{names[0]}'")
    return value


def decode_event(data: Mapping[str, Any]) -> RunEvent | None:
    """Decode a wire mapping into a typed event.

    Args:
        data: Mapping with a ``type`` key and camelCase (or snake_case) fields.

    Returns:
        The typed event, or ``None`` for lifecycle markers listed in
        :data:`IGNORED_EVENT_TYPES`.

    Raises:
        EventDecodeError: If the type is unknown or a required field is missing.
    """
    raw_type = data.get("type")
    if isinstance(raw_type, EventType):
        raw_type = raw_type.value
    if not isinstance(raw_type, str):
        raise EventDecodeError(f"Event has no type: {dict(data)!r}")
    if raw_type in IGNORED_EVENT_TYPES:
        return None
    try:
        event_type = EventType(raw_type)
    except ValueError:
        raise EventDecodeError(f"Unknown event type: {raw_type}") from None

    if event_type is EventType.RUN_STARTED:
        return RunStarted(run_id=_required(data, raw_type, "runId", "run_id"))
    if event_type in (EventType.TEXT_MESSAGE_CONTENT, EventType.TEXT_MESSAGE_CHUNK):
        return TextDelta(text=str(_field(data, "delta", "text", default="") or ""))
    if event_type is EventType.TOOL_CALL_START:
        return ToolCallStarted(
            call_id=_required(data, raw_type, "toolCallId", "call_id"),
            tool_name=_required(data, raw_type, "toolCallName", "tool_name"),
        )
    if event_type in (EventType.TOOL_CALL_ARGS, EventType.TOOL_CALL_CHUNK):
        return ToolCallArgsDelta(
            call_id=_required(data, raw_type, "toolCallId", "call_id"),
            delta=str(_field(data, "delta", default="") or ""),
        )
    if event_type is EventType.TOOL_CALL_END:
        return ToolCallEnded(call_id=_required(data, raw_type, "toolCallId", "call_id"))
    if event_type is EventType.TOOL_CALL_RESULT:
        content = _field(data, "content", default="")
        return ToolCallResult(
            call_id=_required(data, raw_type, "toolCallId", "call_id"),
            content=content if isinstance(content, str) else str(content),
        )
    if event_type is EventType.RUN_FINISHED:
        return RunFinished()
    if event_type is EventType.RUN_ERROR:
        code = _field(data, "code")
        return RunError(message=str(_field(data, "message", default="") or ""), code=None if code is None else str(code))
    if event_type is EventType.CUSTOM:
        return CustomEvent(name=str(_field(data, "name", default="")), value=_field(data, "value"))
    raise EventDecodeError(f"Unhandled event type: {raw_type}")  # pragma: no cover


_EVENT_CLASSES = (
    RunStarted,
    TextDelta,
    ToolCallStarted,
    ToolCallArgsDelta,
    ToolCallEnded,
    ToolCallResult,
    RunFinished,
    RunError,
    CustomEvent,
)


def coerce_event(event: RunEvent | Mapping[str, Any]) -> RunEvent | None:
    """Return ``event`` unchanged if already typed, otherwise decode it."""

    if isinstance(event, _EVENT_CLASSES):
        return event
    if isinstance(event, Mapping):
        return decode_event(event)
    raise EventDecodeError(f"Unsupported event object: {type(event).__name__}")
