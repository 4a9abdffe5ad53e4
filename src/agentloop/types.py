"""Core value types shared by the tracker, the tool registry and the controller.

All public types are frozen so snapshots handed to callers cannot be used to
mutate run state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence, Union

__all__ = [
    "MAX_ARGUMENT_BYTES",
    "DEFAULT_MAX_TOOL_ROUNDS",
    "TextContent",
    "ToolResult",
    "Finalized",
    "RawFallback",
    "FinalizeOutcome",
    "PendingToolCall",
    "OutgoingMessage",
    "RunRequest",
    "RunRound",
    "RunState",
]

# Ceiling for one call's streamed arguments (1 MiB).
MAX_ARGUMENT_BYTES = 1024 * 1024

DEFAULT_MAX_TOOL_ROUNDS = 10


# -----------------------------------------------------------------------------
# Content
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class TextContent:
    """A text content part."""

    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(slots=True, frozen=True)
class ToolResult:
    """Outcome of resolving one tool call.

    Attributes:
        call_id: The call this result answers.
        content: Text parts returned to the model.
        is_error: Whether the content describes a failure.
    """

    call_id: str
    content: tuple[TextContent, ...] = ()
    is_error: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.content, tuple):
            object.__setattr__(self, "content", tuple(self.content))

    @classmethod
    def success(cls, call_id: str, text: str) -> ToolResult:
        return cls(call_id=call_id, content=(TextContent(text),), is_error=False)

    @classmethod
    def error(cls, call_id: str, message: str) -> ToolResult:
        return cls(call_id=call_id, content=(TextContent(message),), is_error=True)

    @property
    def text(self) -> str:
        """All text parts joined together."""
        return "".join(part.text for part in self.content)

    def to_content_part(self) -> dict[str, Any]:
        """Serialize as a ``tool_result`` content part for an outgoing message."""
        return {
            "type": "tool_result",
            "toolUseId": self.call_id,
            "content": [part.to_dict() for part in self.content],
            "isError": self.is_error,
        }


# -----------------------------------------------------------------------------
# Finalization outcome
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class Finalized:
    """Arguments finalized normally.

    ``reconciled`` is True when a schema was known and strict-mode artifacts
    were stripped; False when the joined text was used as-is.
    """

    arguments: str
    reconciled: bool = False


@dataclass(slots=True, frozen=True)
class RawFallback:
    """Reconciliation failed; the raw joined text was kept."""

    arguments: str
    reason: str


FinalizeOutcome = Union[Finalized, RawFallback]


# -----------------------------------------------------------------------------
# Pending tool calls
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class PendingToolCall:
    """Read-only snapshot of a tracked tool call.

    Attributes:
        call_id: Unique id of the call within the run.
        tool_name: Name of the requested tool.
        argument_chunks: Buffered argument fragments (emptied once finalized).
        accumulated_byte_size: UTF-8 size of ``argument_chunks``.
        final_arguments: Finalized argument text, or None until the call ends.
        finalize_outcome: How the arguments were finalized, if they were.
    """

    call_id: str
    tool_name: str
    argument_chunks: tuple[str, ...] = ()
    accumulated_byte_size: int = 0
    final_arguments: str | None = None
    finalize_outcome: FinalizeOutcome | None = None

    @property
    def is_finalized(self) -> bool:
        return self.final_arguments is not None

    @property
    def arguments(self) -> str:
        """Finalized arguments, or whatever has been buffered so far."""
        if self.final_arguments is not None:
            return self.final_arguments
        return "".join(self.argument_chunks)

    def to_dict(self) -> dict[str, Any]:
        return {"toolCallId": self.call_id, "toolName": self.tool_name, "arguments": self.arguments}


# -----------------------------------------------------------------------------
# Requests and rounds
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class OutgoingMessage:
    """Input message sent to the model for one round."""

    content: tuple[Mapping[str, Any], ...]
    role: str = "user"

    @classmethod
    def from_text(cls, text: str) -> OutgoingMessage:
        return cls(content=(TextContent(text).to_dict(),))

    @classmethod
    def from_tool_results(cls, results: Sequence[ToolResult]) -> OutgoingMessage:
        return cls(content=tuple(result.to_content_part() for result in results))

    @property
    def tool_results(self) -> list[Mapping[str, Any]]:
        return [part for part in self.content if part.get("type") == "tool_result"]

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "content": [dict(part) for part in self.content]}


@dataclass(slots=True, frozen=True)
class RunRequest:
    """Payload handed to the transport to open a round's stream."""

    message: OutgoingMessage
    tools: tuple[Mapping[str, Any], ...] = ()
    previous_run_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": self.message.to_dict()}
        if self.tools:
            payload["tools"] = [dict(tool) for tool in self.tools]
        if self.previous_run_id is not None:
            payload["previousRunId"] = self.previous_run_id
        return payload


@dataclass(slots=True, frozen=True)
class RunRound:
    """One request/stream cycle within a run."""

    round_number: int
    outgoing_message: OutgoingMessage
    previous_run_id: str | None = None
    tools_offered: tuple[Mapping[str, Any], ...] = field(default_factory=tuple)

    def to_request(self) -> RunRequest:
        return RunRequest(
            message=self.outgoing_message,
            tools=self.tools_offered,
            previous_run_id=self.previous_run_id,
        )


class RunState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    CONTINUING = "continuing"
    AWAITING_INPUT = "awaiting_input"
    DONE = "done"
    FAILED = "failed"
