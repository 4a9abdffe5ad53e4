"""Per-run tracking of streamed tool calls.

The tracker consumes the run's events in order and keeps one buffer per open
tool call. When a call ends its chunks are joined and, if the tool's schema is
known, reconciled to undo strict-mode rewriting. The controller reads the
result through frozen :class:`~agentloop.types.PendingToolCall` snapshots.

A tracker belongs to exactly one run and is never shared.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, assert_never

from .errors import ArgumentSizeLimitError
from .events import (
    CustomEvent,
    RunError,
    RunEvent,
    RunFinished,
    RunStarted,
    TextDelta,
    ToolCallArgsDelta,
    ToolCallEnded,
    ToolCallFinalized,
    ToolCallResult,
    ToolCallStarted,
    TrackerNotification,
)
from .strictness import unstrictify_params_from_schema
from .streaming import ToolCallArgsStreamer
from .types import MAX_ARGUMENT_BYTES, FinalizeOutcome, Finalized, PendingToolCall, RawFallback

__all__ = ["ToolCallTracker"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class _CallBuffer:
    call_id: str
    tool_name: str
    chunks: list[str] = field(default_factory=list)
    byte_size: int = 0
    final_arguments: str | None = None
    outcome: FinalizeOutcome | None = None
    streamer: ToolCallArgsStreamer | None = None

    def snapshot(self) -> PendingToolCall:
        return PendingToolCall(
            call_id=self.call_id,
            tool_name=self.tool_name,
            argument_chunks=tuple(self.chunks),
            accumulated_byte_size=self.byte_size,
            final_arguments=self.final_arguments,
            finalize_outcome=self.outcome,
        )


class ToolCallTracker:
    """Accumulates tool-call arguments for one run.

    Args:
        tool_schemas: Original input schema per tool name. Calls to tools with
            a known schema are reconciled on end and produce streaming patches.
        allowed_tool_names: When given, calls to any other tool are ignored.
        max_argument_bytes: Ceiling for one call's UTF-8 argument size.
        emit_patches: Whether to produce :class:`ToolCallArgsPatch` notifications.
    """

    def __init__(
        self,
        tool_schemas: Mapping[str, Mapping[str, Any]] | None = None,
        *,
        allowed_tool_names: Iterable[str] | None = None,
        max_argument_bytes: int = MAX_ARGUMENT_BYTES,
        emit_patches: bool = True,
    ) -> None:
        self._schemas: dict[str, Mapping[str, Any]] = dict(tool_schemas or {})
        self._allowed = frozenset(allowed_tool_names) if allowed_tool_names is not None else None
        self._max_bytes = max_argument_bytes
        self._emit_patches = emit_patches
        self._calls: dict[str, _CallBuffer] = {}

    @property
    def tool_schemas(self) -> dict[str, Mapping[str, Any]]:
        return dict(self._schemas)

    @property
    def max_argument_bytes(self) -> int:
        return self._max_bytes

    # ------------------------------------------------------------------
    # Event processing
    # ------------------------------------------------------------------
    def process_event(self, event: RunEvent) -> list[TrackerNotification]:
        """Apply one event to the tracked state.

        Returns:
            Notifications produced by the event (possibly empty).

        Raises:
            ArgumentSizeLimitError: If a call's arguments grow past the ceiling.
                The offending call is dropped before raising.
        """
        if isinstance(event, ToolCallStarted):
            self._start(event)
            return []
        if isinstance(event, ToolCallArgsDelta):
            return self._append(event)
        if isinstance(event, ToolCallEnded):
            return self._finish(event)
        if isinstance(event, ToolCallResult):
            self._calls.pop(event.call_id, None)
            return []
        if isinstance(event, (RunStarted, TextDelta, RunFinished, RunError, CustomEvent)):
            return []
        assert_never(event)

    def _start(self, event: ToolCallStarted) -> None:
        if self._allowed is not None and event.tool_name not in self._allowed:
            LOGGER.debug("Ignoring tool call %s for tool %s outside the allow-list", event.call_id, event.tool_name)
            return
        if event.call_id in self._calls:
            LOGGER.warning("Duplicate start for tool call %s; ignoring", event.call_id)
            return
        buffer = _CallBuffer(call_id=event.call_id, tool_name=event.tool_name)
        schema = self._schemas.get(event.tool_name)
        if self._emit_patches and schema is not None:
            buffer.streamer = ToolCallArgsStreamer(event.call_id, schema)
        self._calls[event.call_id] = buffer

    def _append(self, event: ToolCallArgsDelta) -> list[TrackerNotification]:
        buffer = self._calls.get(event.call_id)
        if buffer is None:
            LOGGER.warning("Received arguments for unknown tool call %s", event.call_id)
            return []
        if buffer.final_arguments is not None:
            LOGGER.warning("Received arguments for tool call %s after it ended; ignoring", event.call_id)
            return []

        size = buffer.byte_size + len(event.delta.encode("utf-8"))
        if size > self._max_bytes:
            del self._calls[event.call_id]
            raise ArgumentSizeLimitError(event.call_id, self._max_bytes)

        buffer.chunks.append(event.delta)
        buffer.byte_size = size

        if buffer.streamer is not None:
            patch = buffer.streamer.process_delta(event.delta)
            if patch is not None:
                return [patch]
        return []

    def _finish(self, event: ToolCallEnded) -> list[TrackerNotification]:
        buffer = self._calls.get(event.call_id)
        if buffer is None:
            LOGGER.warning("Received end for unknown tool call %s", event.call_id)
            return []
        if buffer.final_arguments is not None:
            LOGGER.warning("Duplicate end for tool call %s; ignoring", event.call_id)
            return []

        raw = "".join(buffer.chunks)
        outcome = self._finalize(buffer.call_id, buffer.tool_name, raw)
        buffer.final_arguments = outcome.arguments
        buffer.outcome = outcome
        buffer.chunks = []
        buffer.byte_size = 0

        notifications: list[TrackerNotification] = []
        if buffer.streamer is not None:
            closing = buffer.streamer.finish()
            if closing is not None:
                notifications.append(closing)
            buffer.streamer = None
        notifications.append(ToolCallFinalized(call_id=buffer.call_id, tool_name=buffer.tool_name, outcome=outcome))
        return notifications

    def _finalize(self, call_id: str, tool_name: str, raw: str) -> FinalizeOutcome:
        schema = self._schemas.get(tool_name)
        if schema is None:
            return Finalized(arguments=raw, reconciled=False)
        try:
            parsed = json.loads(raw)
            if not isinstance(parsed, dict):
                raise ValueError(f"arguments are a JSON {type(parsed).__name__}, not an object")
            reconciled = unstrictify_params_from_schema(schema, parsed)
            arguments = json.dumps(reconciled, ensure_ascii=False, separators=(",", ":"))
        except Exception as exc:
            LOGGER.warning("Could not reconcile arguments for tool call %s (%s); using raw text: %s", call_id, tool_name, exc)
            return RawFallback(arguments=raw, reason=str(exc))
        return Finalized(arguments=arguments, reconciled=True)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    def is_tracked(self, call_id: str) -> bool:
        return call_id in self._calls

    def get(self, call_id: str) -> PendingToolCall | None:
        buffer = self._calls.get(call_id)
        return buffer.snapshot() if buffer is not None else None

    def pending_calls(self) -> list[PendingToolCall]:
        """Snapshots of every call not yet resolved, in start order."""
        return [buffer.snapshot() for buffer in self._calls.values()]

    def pending_call_ids(self) -> list[str]:
        return list(self._calls)

    def has_pending_calls(self) -> bool:
        return bool(self._calls)
