"""Structured error types for agentloop.

Run-fatal failures derive from :class:`RunFailedError` and carry a
:class:`FailureKind` so callers can decide whether to retry the request,
fix their configuration, or raise a limit:

    from agentloop.errors import FailureKind, RunFailedError

    try:
        result = await controller.run("Summarize the report")
    except RunFailedError as exc:
        if exc.kind is FailureKind.TRANSPORT:
            ...  # the model endpoint failed; retrying may help
        elif exc.kind is FailureKind.LIMIT:
            ...  # the run exceeded a safety bound

Failures of individual tools never raise; they come back as
``ToolResult(is_error=True)`` and are fed to the model.
"""

from __future__ import annotations

from enum import Enum

__all__ = [
    "AgentLoopError",
    "FailureKind",
    "RunFailedError",
    "RunTransportError",
    "EventDecodeError",
    "RunLimitError",
    "ArgumentSizeLimitError",
    "MaxToolRoundsExceededError",
    "RunConfigurationError",
    "MissingToolRegistryError",
    "MissingToolResultsError",
    "RunAbortedError",
    "RunCancelledError",
    "ToolRegistryError",
    "DuplicateToolError",
    "InvalidToolSchemaError",
    "UnknownParameterError",
]


class FailureKind(str, Enum):
    """Why a run failed."""

    TRANSPORT = "transport"
    PROTOCOL = "protocol"
    LIMIT = "limit"
    CONFIGURATION = "configuration"
    ABORTED = "aborted"


class AgentLoopError(Exception):
    """Base for all agentloop errors."""


# -----------------------------------------------------------------------------
# Run failures
# -----------------------------------------------------------------------------


class RunFailedError(AgentLoopError):
    """Base for errors that end a run."""

    kind: FailureKind = FailureKind.TRANSPORT


class RunTransportError(RunFailedError):
    """The model endpoint reported an error or the stream could not be read."""

    kind = FailureKind.TRANSPORT

    def __init__(self, message: str, *, code: str | None = None, run_id: str | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.run_id = run_id


class EventDecodeError(RunFailedError):
    """A streamed event could not be decoded into a known event type."""

    kind = FailureKind.PROTOCOL


class RunLimitError(RunFailedError):
    """The run exceeded one of its safety bounds."""

    kind = FailureKind.LIMIT


class ArgumentSizeLimitError(RunLimitError):
    """Streamed tool-call arguments grew past the configured ceiling."""

    def __init__(self, call_id: str, limit: int) -> None:
        self.call_id = call_id
        self.limit = limit
        super().__init__(f"Tool call {call_id} arguments exceed maximum size of {limit} bytes")


class MaxToolRoundsExceededError(RunLimitError):
    """The model kept requesting tools past the round limit."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"Exceeded maximum tool rounds ({limit})")


class RunConfigurationError(RunFailedError):
    """The caller set the run up in a way that cannot complete."""

    kind = FailureKind.CONFIGURATION


class MissingToolRegistryError(RunConfigurationError):
    def __init__(self, tool_names: list[str]) -> None:
        self.tool_names = list(tool_names)
        names = ", ".join(sorted(set(self.tool_names)))
        super().__init__(f"Model requested tool calls ({names}) but no tool registry was provided")


class MissingToolResultsError(RunConfigurationError):
    """A paused run was resumed without results for every awaited call."""

    def __init__(self, call_ids: list[str]) -> None:
        self.call_ids = list(call_ids)
        super().__init__(f"Missing tool results for awaited call(s): {', '.join(self.call_ids)}")


class RunAbortedError(RunFailedError):
    """The caller stopped the run before it finished."""

    kind = FailureKind.ABORTED

    def __init__(self, message: str, *, round_number: int | None = None) -> None:
        super().__init__(message)
        self.round_number = round_number


class RunCancelledError(RunAbortedError):
    """The run's cancellation signal was set."""


# -----------------------------------------------------------------------------
# Registry and schema errors
# -----------------------------------------------------------------------------


class ToolRegistryError(AgentLoopError):
    """Base for tool registration problems."""


class DuplicateToolError(ToolRegistryError):
    """Raised when attempting to register a tool with a name that already exists."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' is already registered")


class InvalidToolSchemaError(ToolRegistryError):
    """Raised when a tool declares an input schema that is not valid JSON Schema."""

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Tool '{name}' has an invalid input schema: {reason}")


class UnknownParameterError(ValueError):
    """The strict reconciler met a key its schema does not declare."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool call request parameter {name} not found in original tool")
