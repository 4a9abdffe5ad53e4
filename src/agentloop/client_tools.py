"""Support for tools that are executed by the caller rather than the registry.

Calls to client tools are left pending when a round ends. The controller
then announces them with an ``awaiting_input`` custom event and returns a
paused result; the caller supplies the results and resumes the run.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from .events import AWAITING_INPUT_EVENT_NAME, CustomEvent
from .types import PendingToolCall

__all__ = [
    "AWAITING_INPUT_EVENT_NAME",
    "create_awaiting_input_event",
    "partition_pending_calls",
]


def create_awaiting_input_event(pending_calls: Iterable[PendingToolCall]) -> CustomEvent:
    """Build the notification announcing calls that wait for caller input.

    The event value lists each call as ``{"call_id", "tool_name", "arguments"}``
    where ``arguments`` is the finalized argument text.
    """
    return CustomEvent(
        name=AWAITING_INPUT_EVENT_NAME,
        value={
            "pending_tool_calls": [
                {"call_id": call.call_id, "tool_name": call.tool_name, "arguments": call.arguments}
                for call in pending_calls
            ]
        },
    )


def partition_pending_calls(
    pending_calls: Sequence[PendingToolCall],
    client_tool_names: Iterable[str],
) -> tuple[list[PendingToolCall], list[PendingToolCall]]:
    """Split pending calls into ``(local, client)`` preserving their order."""
    client_names = frozenset(client_tool_names)
    local: list[PendingToolCall] = []
    client: list[PendingToolCall] = []
    for call in pending_calls:
        (client if call.tool_name in client_names else local).append(call)
    return local, client
