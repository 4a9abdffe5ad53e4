"""Run Controller: drives a run through its tool rounds.

Each round opens an event stream through the transport, routes every event
through the run's :class:`~agentloop.tracker.ToolCallTracker`, and then
decides what happens next:

* no pending tool calls: the run is done and this round's text is returned;
* pending local calls: they are executed concurrently through the registry
  and their results are sent back in the next round;
* pending client calls: an ``awaiting_input`` event is emitted and a paused
  :class:`RunResult` is returned for :meth:`RunController.resume`.

The loop is bounded by :attr:`RunConfig.max_tool_rounds`.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Protocol, Sequence, Union

from .client_tools import create_awaiting_input_event, partition_pending_calls
from .errors import (
    MaxToolRoundsExceededError,
    MissingToolRegistryError,
    MissingToolResultsError,
    RunAbortedError,
    RunCancelledError,
    RunTransportError,
)
from .events import (
    RunError,
    RunEvent,
    RunStarted,
    TextDelta,
    ToolCallResult,
    TrackerNotification,
    coerce_event,
)
from .tools import ToolCallRequest, ToolRegistry
from .tracker import ToolCallTracker
from .types import (
    DEFAULT_MAX_TOOL_ROUNDS,
    MAX_ARGUMENT_BYTES,
    OutgoingMessage,
    PendingToolCall,
    RunRequest,
    RunRound,
    RunState,
    ToolResult,
)

__all__ = [
    "RunConfig",
    "RunController",
    "RunResult",
    "RunTransport",
    "EventCallback",
    "ToolUpdateCallback",
    "RoundCheckpoint",
    "execute_run",
]

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Callback Types
# -----------------------------------------------------------------------------

# Invoked synchronously for every decoded event, in arrival order
EventCallback = Callable[[RunEvent], None]

# Invoked for tracker notifications (argument patches, finalized calls)
ToolUpdateCallback = Callable[[TrackerNotification], None]

# Invoked with the new round number before a continuation round; False aborts
RoundCheckpoint = Callable[[int], Union[bool, None, Awaitable[Union[bool, None]]]]


class RunTransport(Protocol):
    """Boundary to the model endpoint.

    ``open_stream`` sends one round's request and yields the round's events,
    either typed or as wire mappings. It may be an async generator function or
    a coroutine returning an async iterator.
    """

    def open_stream(
        self,
        request: RunRequest,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[RunEvent | Mapping[str, Any]] | Awaitable[AsyncIterator[RunEvent | Mapping[str, Any]]]:
        ...


# -----------------------------------------------------------------------------
# Configuration and results
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class RunConfig:
    """Configuration for the run controller.

    Attributes:
        max_tool_rounds: Maximum continuation rounds before the run fails.
        max_argument_bytes: Ceiling for one tool call's streamed arguments.
        client_tool_names: Tools executed by the caller; never run locally.
        emit_patches: Whether trackers produce streaming argument patches.
    """

    max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS
    max_argument_bytes: int = MAX_ARGUMENT_BYTES
    client_tool_names: frozenset[str] = frozenset()
    emit_patches: bool = True

    def __post_init__(self) -> None:
        if self.max_tool_rounds < 0:
            raise ValueError("max_tool_rounds must be non-negative")
        if self.max_argument_bytes <= 0:
            raise ValueError("max_argument_bytes must be positive")
        if not isinstance(self.client_tool_names, frozenset):
            object.__setattr__(self, "client_tool_names", frozenset(self.client_tool_names))


@dataclass(slots=True, frozen=True)
class RunResult:
    """Outcome of :meth:`RunController.run` or :meth:`RunController.resume`.

    Attributes:
        text: Text streamed in the final round.
        run_id: Run id reported by the last round, if any.
        rounds: Continuation rounds completed so far.
        round_texts: Text of every round, in order.
        tool_results: Results of every locally executed call, in order.
        state: ``DONE`` or ``AWAITING_INPUT``.
        pending_client_calls: Calls waiting for caller-supplied results.
        paused_round_results: Local results of the paused round, replayed on resume.
        paused_call_order: Call ids of the paused round in stream order.
    """

    text: str
    run_id: str | None = None
    rounds: int = 0
    round_texts: tuple[str, ...] = ()
    tool_results: tuple[ToolResult, ...] = ()
    state: RunState = RunState.DONE
    pending_client_calls: tuple[PendingToolCall, ...] = ()
    paused_round_results: tuple[ToolResult, ...] = ()
    paused_call_order: tuple[str, ...] = field(default_factory=tuple)

    @property
    def awaiting_input(self) -> bool:
        return self.state is RunState.AWAITING_INPUT


@dataclass(slots=True)
class _RunProgress:
    round_number: int = 0
    previous_run_id: str | None = None
    round_texts: list[str] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)


@dataclass(slots=True)
class _RunHooks:
    on_event: EventCallback | None = None
    on_tool_update: ToolUpdateCallback | None = None
    on_round_complete: RoundCheckpoint | None = None
    cancel_event: asyncio.Event | None = None


# -----------------------------------------------------------------------------
# Run Controller
# -----------------------------------------------------------------------------


class RunController:
    """Drives runs against a transport with an optional tool registry.

    Example:
        controller = RunController(transport, registry, RunConfig(max_tool_rounds=5))
        result = await controller.run("What's the weather in Oslo?")
        print(result.text)
    """

    def __init__(
        self,
        transport: RunTransport,
        registry: ToolRegistry | None = None,
        config: RunConfig | None = None,
    ) -> None:
        self._transport = transport
        self._registry = registry
        self._config = config or RunConfig()
        self._state = RunState.IDLE

    @property
    def config(self) -> RunConfig:
        return self._config

    @property
    def registry(self) -> ToolRegistry | None:
        return self._registry

    @property
    def state(self) -> RunState:
        """State of the most recent run driven by this controller."""
        return self._state

    async def run(
        self,
        user_input: str,
        *,
        on_event: EventCallback | None = None,
        on_tool_update: ToolUpdateCallback | None = None,
        on_round_complete: RoundCheckpoint | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RunResult:
        """Run a conversation turn to completion or to a client-tool pause.

        Args:
            user_input: The user's message for round 0.
            on_event: Observer called synchronously for every event.
            on_tool_update: Observer for argument patches and finalized calls.
            on_round_complete: Checkpoint awaited with each new round number;
                returning False aborts the run.
            cancel_event: Set to stop the run before the next round or event.

        Returns:
            The run result. ``result.awaiting_input`` is True when client tool
            calls need results; pass them to :meth:`resume`.

        Raises:
            RunFailedError: A subclass describing why the run failed.
        """
        hooks = _RunHooks(on_event, on_tool_update, on_round_complete, cancel_event)
        progress = _RunProgress()
        return await self._drive(OutgoingMessage.from_text(user_input), progress, hooks)

    async def resume(
        self,
        paused: RunResult,
        tool_results: Sequence[ToolResult],
        *,
        on_event: EventCallback | None = None,
        on_tool_update: ToolUpdateCallback | None = None,
        on_round_complete: RoundCheckpoint | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RunResult:
        """Continue a paused run with the caller's client tool results.

        Raises:
            ValueError: If ``paused`` is not awaiting input.
            MissingToolResultsError: If a pending client call has no result.
        """
        if not paused.awaiting_input:
            raise ValueError("Run is not awaiting input")

        supplied = {result.call_id: result for result in tool_results}
        missing = [call.call_id for call in paused.pending_client_calls if call.call_id not in supplied]
        if missing:
            raise MissingToolResultsError(missing)

        by_id = {result.call_id: result for result in paused.paused_round_results}
        for call in paused.pending_client_calls:
            by_id[call.call_id] = supplied[call.call_id]
        ordered = [by_id[call_id] for call_id in paused.paused_call_order if call_id in by_id]

        hooks = _RunHooks(on_event, on_tool_update, on_round_complete, cancel_event)
        progress = _RunProgress(
            round_number=paused.rounds,
            previous_run_id=paused.run_id,
            round_texts=list(paused.round_texts),
            tool_results=list(paused.tool_results),
        )
        LOGGER.debug("Resuming run %s with %d client result(s)", paused.run_id, len(paused.pending_client_calls))
        await self._advance(progress, hooks)
        return await self._drive(OutgoingMessage.from_tool_results(ordered), progress, hooks)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------
    async def _drive(self, message: OutgoingMessage, progress: _RunProgress, hooks: _RunHooks) -> RunResult:
        tracker = ToolCallTracker(
            self._registry.schemas() if self._registry is not None else None,
            max_argument_bytes=self._config.max_argument_bytes,
            emit_patches=self._config.emit_patches,
        )
        tools_offered = tuple(self._registry.to_protocol_format()) if self._registry is not None else ()

        try:
            while True:
                self._check_cancelled(hooks, progress.round_number)
                round_ = RunRound(
                    round_number=progress.round_number,
                    outgoing_message=message,
                    previous_run_id=progress.previous_run_id,
                    tools_offered=tools_offered,
                )
                text = await self._stream_round(round_, tracker, progress, hooks)
                progress.round_texts.append(text)

                pending = tracker.pending_calls()
                if not pending:
                    self._state = RunState.DONE
                    LOGGER.debug("Run %s finished after %d round(s)", progress.previous_run_id, len(progress.round_texts))
                    return RunResult(
                        text=text,
                        run_id=progress.previous_run_id,
                        rounds=progress.round_number,
                        round_texts=tuple(progress.round_texts),
                        tool_results=tuple(progress.tool_results),
                    )

                local_calls, client_calls = partition_pending_calls(pending, self._config.client_tool_names)
                results = await self._execute_calls(local_calls)
                for result in results:
                    tracker.process_event(ToolCallResult(call_id=result.call_id, content=result.text))
                progress.tool_results.extend(results)

                if client_calls:
                    return self._pause(tracker, pending, client_calls, results, progress, hooks)

                self._state = RunState.CONTINUING
                await self._advance(progress, hooks)
                message = OutgoingMessage.from_tool_results(results)
        except Exception:
            self._state = RunState.FAILED
            raise

    async def _stream_round(
        self,
        round_: RunRound,
        tracker: ToolCallTracker,
        progress: _RunProgress,
        hooks: _RunHooks,
    ) -> str:
        self._state = RunState.REQUESTING
        LOGGER.debug("Opening round %d (previous_run_id=%s)", round_.round_number, round_.previous_run_id)
        stream = self._transport.open_stream(round_.to_request(), cancel_event=hooks.cancel_event)
        if inspect.isawaitable(stream):
            stream = await stream

        self._state = RunState.STREAMING
        parts: list[str] = []
        try:
            async for item in stream:
                event = coerce_event(item)
                if event is not None:
                    if isinstance(event, RunStarted):
                        progress.previous_run_id = event.run_id
                    elif isinstance(event, TextDelta):
                        parts.append(event.text)
                    notifications = tracker.process_event(event)
                    if hooks.on_event is not None:
                        hooks.on_event(event)
                    if hooks.on_tool_update is not None:
                        for notification in notifications:
                            hooks.on_tool_update(notification)

                    if isinstance(event, RunError):
                        raise RunTransportError(
                            event.message or "Run failed",
                            code=event.code,
                            run_id=progress.previous_run_id,
                        )

                self._check_cancelled(hooks, round_.round_number)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        return "".join(parts)

    async def _execute_calls(self, calls: Sequence[PendingToolCall]) -> list[ToolResult]:
        if not calls:
            return []
        if self._registry is None:
            raise MissingToolRegistryError([call.tool_name for call in calls])
        requests = [
            ToolCallRequest(call_id=call.call_id, tool_name=call.tool_name, arguments=call.arguments)
            for call in calls
        ]
        start_time = time.perf_counter()
        results = await self._registry.execute_many(requests)
        LOGGER.debug(
            "Executed %d tool call(s) in %.1fms",
            len(results),
            (time.perf_counter() - start_time) * 1000,
        )
        return results

    def _pause(
        self,
        tracker: ToolCallTracker,
        pending: Sequence[PendingToolCall],
        client_calls: Sequence[PendingToolCall],
        local_results: Sequence[ToolResult],
        progress: _RunProgress,
        hooks: _RunHooks,
    ) -> RunResult:
        event = create_awaiting_input_event(client_calls)
        if hooks.on_event is not None:
            hooks.on_event(event)
        # The caller resolves these outside the tracker's lifetime.
        for call in client_calls:
            tracker.process_event(ToolCallResult(call_id=call.call_id))
        self._state = RunState.AWAITING_INPUT
        LOGGER.debug(
            "Run %s awaiting input for %d client tool call(s)",
            progress.previous_run_id,
            len(client_calls),
        )
        return RunResult(
            text=progress.round_texts[-1] if progress.round_texts else "",
            run_id=progress.previous_run_id,
            rounds=progress.round_number,
            round_texts=tuple(progress.round_texts),
            tool_results=tuple(progress.tool_results),
            state=RunState.AWAITING_INPUT,
            pending_client_calls=tuple(client_calls),
            paused_round_results=tuple(local_results),
            paused_call_order=tuple(call.call_id for call in pending),
        )

    async def _advance(self, progress: _RunProgress, hooks: _RunHooks) -> None:
        progress.round_number += 1
        if hooks.on_round_complete is not None:
            verdict = hooks.on_round_complete(progress.round_number)
            if inspect.isawaitable(verdict):
                verdict = await verdict
            if verdict is False:
                raise RunAbortedError(
                    f"Run aborted by checkpoint before round {progress.round_number}",
                    round_number=progress.round_number,
                )
        if progress.round_number > self._config.max_tool_rounds:
            raise MaxToolRoundsExceededError(self._config.max_tool_rounds)

    def _check_cancelled(self, hooks: _RunHooks, round_number: int) -> None:
        if hooks.cancel_event is not None and hooks.cancel_event.is_set():
            raise RunCancelledError("Run was cancelled", round_number=round_number)


async def execute_run(
    transport: RunTransport,
    user_input: str,
    *,
    registry: ToolRegistry | None = None,
    config: RunConfig | None = None,
    on_event: EventCallback | None = None,
    cancel_event: asyncio.Event | None = None,
) -> str:
    """Run one turn and return the final answer text.

    Client tools are not supported here: a run that pauses for caller input
    raises :class:`~agentloop.errors.MissingToolResultsError`.
    """
    controller = RunController(transport, registry, config)
    result = await controller.run(user_input, on_event=on_event, cancel_event=cancel_event)
    if result.awaiting_input:
        raise MissingToolResultsError([call.call_id for call in result.pending_client_calls])
    return result.text
