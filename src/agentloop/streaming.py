"""Incremental JSON Patch view of streamed tool-call arguments.

While a call's arguments stream in, :class:`ToolCallArgsStreamer` partially
parses the text received so far, reconciles it against the tool's schema and
reports what changed since the previous snapshot as RFC 6902 operations on the
top-level properties, together with a per-property streaming status:

* ``started``: the property appeared for the first time;
* ``streaming``: its value is still changing;
* ``done``: a later property appeared, or the call ended.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

import jiter

from .events import ToolCallArgsPatch
from .strictness import unstrictify_params_from_schema

__all__ = ["ToolCallArgsStreamer", "json_pointer"]

LOGGER = logging.getLogger(__name__)

STATUS_STARTED = "started"
STATUS_STREAMING = "streaming"
STATUS_DONE = "done"


def json_pointer(key: str) -> str:
    """Build a single-segment RFC 6901 pointer for a top-level key."""
    return "/" + key.replace("~", "~0").replace("/", "~1")


def parse_partial_json(text: str) -> Any:
    """Parse possibly-truncated JSON text, keeping incomplete trailing strings.

    Raises:
        ValueError: If the text is not a valid JSON prefix.
    """
    return jiter.from_json(text.encode("utf-8"), partial_mode="trailing-strings")


class ToolCallArgsStreamer:
    """Turns argument deltas for one call into patch notifications."""

    def __init__(self, call_id: str, schema: Mapping[str, Any]) -> None:
        self._call_id = call_id
        self._schema = schema
        self._text = ""
        self._previous: dict[str, Any] = {}
        self._status: dict[str, str] = {}
        self._seen: set[str] = set()
        self._previous_keys: set[str] = set()

    @property
    def call_id(self) -> str:
        return self._call_id

    @property
    def streaming_status(self) -> dict[str, str]:
        return dict(self._status)

    def process_delta(self, delta: str) -> ToolCallArgsPatch | None:
        """Consume a delta and return the resulting patch, if anything changed."""
        self._text += delta
        try:
            parsed = parse_partial_json(self._text)
        except ValueError:
            return None
        if not isinstance(parsed, dict):
            return None

        try:
            current = unstrictify_params_from_schema(self._schema, parsed)
        except ValueError as exc:
            LOGGER.debug("Skipping patch for tool call %s: %s", self._call_id, exc)
            return None

        operations, status_updates, new_keys = self._diff(current)
        self._status.update(status_updates)

        # A new property means the model moved past the earlier ones.
        if new_keys:
            for key in self._previous_keys:
                if key not in new_keys and self._status.get(key) != STATUS_DONE:
                    self._status[key] = STATUS_DONE

        self._previous_keys = set(current)
        self._seen.update(current)
        self._previous = current

        if not operations:
            return None
        return ToolCallArgsPatch(
            call_id=self._call_id,
            operations=tuple(operations),
            streaming_status=dict(self._status),
        )

    def finish(self) -> ToolCallArgsPatch | None:
        """Mark every property done; returns a status-only patch if any were open."""
        if not self._status or all(status == STATUS_DONE for status in self._status.values()):
            return None
        for key in self._status:
            self._status[key] = STATUS_DONE
        return ToolCallArgsPatch(call_id=self._call_id, operations=(), streaming_status=dict(self._status))

    def _diff(self, current: Mapping[str, Any]) -> tuple[list[dict[str, Any]], dict[str, str], list[str]]:
        operations: list[dict[str, Any]] = []
        status_updates: dict[str, str] = {}
        new_keys: list[str] = []

        for key, value in current.items():
            path = json_pointer(key)
            if key not in self._seen:
                operations.append({"op": "add", "path": path, "value": value})
                status_updates[key] = STATUS_STARTED
                new_keys.append(key)
            elif key not in self._previous:
                operations.append({"op": "add", "path": path, "value": value})
                status_updates[key] = STATUS_STREAMING
            elif self._previous[key] != value:
                operations.append({"op": "replace", "path": path, "value": value})
                if self._status.get(key) != STATUS_DONE:
                    status_updates[key] = STATUS_STREAMING

        for key in self._previous:
            if key not in current:
                operations.append({"op": "remove", "path": json_pointer(key)})
                self._status.pop(key, None)

        return operations, status_updates, new_keys
