"""Run transport backed by OpenAI-compatible chat-completions endpoints.

Chat completions have no notion of a server-side run, so the transport keeps
the message history of rounds that ended with tool calls, keyed by a
synthesized run id. A request that names ``previous_run_id`` continues that
history: its ``tool_result`` parts become ``tool`` messages answering the
assistant's ``tool_calls``. Rounds that end with plain text are not kept, and
at most ``max_open_histories`` unanswered rounds are held at once.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Mapping, Sequence

import httpx
from openai import APIConnectionError, APIError, APIStatusError, AsyncOpenAI, RateLimitError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..events import (
    RunError,
    RunEvent,
    RunFinished,
    RunStarted,
    TextDelta,
    ToolCallArgsDelta,
    ToolCallEnded,
    ToolCallStarted,
)
from ..strictness import strictify_schema
from ..types import RunRequest

__all__ = ["ClientSettings", "OpenAIChatTransport"]

LOGGER = logging.getLogger(__name__)

_RETRYABLE_ERRORS = (
    APIError,
    APIStatusError,
    APIConnectionError,
    RateLimitError,
    httpx.TimeoutException,
)


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the OpenAI transport."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    temperature: float | None = 0.2
    system_prompt: str | None = None
    strict_tools: bool = False
    debug_logging: bool = False
    max_open_histories: int = 64


@dataclass(slots=True)
class _StreamedCall:
    index: int
    call_id: str | None = None
    name: str | None = None
    arguments: str = ""
    started: bool = False
    pending_arguments: str = ""


class OpenAIChatTransport:
    """Adapts a streamed chat completion into run events.

    Example:
        transport = OpenAIChatTransport(ClientSettings(base_url=..., api_key=..., model="gpt-4o-mini"))
        controller = RunController(transport, registry)
        result = await controller.run("Hello")
    """

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings)
        self._histories: OrderedDict[str, List[Dict[str, Any]]] = OrderedDict()

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def open_run_ids(self) -> list[str]:
        """Run ids whose history is held for a continuation, oldest first."""
        return list(self._histories)

    def history(self, run_id: str) -> list[dict[str, Any]]:
        """Message history recorded for ``run_id`` (empty when unknown)."""
        return [dict(message) for message in self._histories.get(run_id, ())]

    async def open_stream(
        self,
        request: RunRequest,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[RunEvent]:
        """Send one round and yield its events.

        Failures to open or read the stream are reported as a trailing
        :class:`RunError` event rather than raised.
        """
        run_id = f"run_{uuid.uuid4().hex}"
        messages = self._build_messages(request)
        payload = self._build_chat_payload(messages, request.tools)
        LOGGER.debug(
            "Starting streamed chat completion via %s with %s message(s) for run %s",
            self._settings.model,
            len(messages),
            run_id,
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        yield RunStarted(run_id=run_id)

        try:
            stream = await self._open_with_retry(payload)
        except (APIError, httpx.HTTPError) as exc:
            LOGGER.warning("Chat completion request for run %s failed: %s", run_id, exc)
            yield _error_event(exc)
            return

        text_parts: list[str] = []
        calls: dict[int, _StreamedCall] = {}
        try:
            async for chunk in stream:
                for event in self._translate_chunk(chunk, calls, text_parts):
                    yield event
                if cancel_event is not None and cancel_event.is_set():
                    LOGGER.debug("Run %s cancelled mid-stream", run_id)
                    return
        except (APIError, httpx.HTTPError) as exc:
            LOGGER.warning("Chat completion stream for run %s failed: %s", run_id, exc)
            yield _error_event(exc)
            return
        finally:
            await _close_stream(stream)

        for call in sorted(calls.values(), key=lambda item: item.index):
            if call.started:
                yield ToolCallEnded(call_id=call.call_id or "")

        self._record_history(run_id, request.previous_run_id, messages, "".join(text_parts), calls)
        yield RunFinished()

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""
        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------
    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=headers,
            max_retries=0,
        )

    def _build_messages(self, request: RunRequest) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        previous = request.previous_run_id
        if previous is not None:
            history = self._histories.pop(previous, None)
            if history is None:
                LOGGER.warning("No history recorded for previous run %s; starting fresh", previous)
            else:
                messages.extend(history)
        if not messages and self._settings.system_prompt:
            messages.append({"role": "system", "content": self._settings.system_prompt})

        text_parts: list[str] = []
        for part in request.message.content:
            part_type = part.get("type")
            if part_type == "tool_result":
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": part.get("toolUseId", ""),
                        "content": _join_text(part.get("content") or ()),
                    }
                )
            elif part_type == "text":
                text_parts.append(str(part.get("text", "")))
            else:
                text_parts.append(json.dumps(dict(part), ensure_ascii=False))
        if text_parts:
            messages.append({"role": request.message.role, "content": "".join(text_parts)})
        return messages

    def _build_chat_payload(
        self,
        messages: Sequence[Mapping[str, Any]],
        tools: Sequence[Mapping[str, Any]],
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self._settings.model,
            "messages": [dict(message) for message in messages],
            "stream": True,
        }
        if tools:
            payload["tools"] = [self._to_openai_tool(tool) for tool in tools]
        if self._settings.temperature is not None:
            payload["temperature"] = self._settings.temperature
        return payload

    def _to_openai_tool(self, tool: Mapping[str, Any]) -> Dict[str, Any]:
        parameters = tool.get("inputSchema") or {"type": "object", "properties": {}}
        function: Dict[str, Any] = {
            "name": tool.get("name", ""),
            "description": tool.get("description", ""),
            "parameters": dict(parameters),
        }
        if self._settings.strict_tools:
            function["parameters"] = strictify_schema(parameters)
            function["strict"] = True
        return {"type": "function", "function": function}

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(_RETRYABLE_ERRORS),
        )

    async def _open_with_retry(self, payload: Mapping[str, Any]) -> Any:
        async for attempt in self._retrying():
            with attempt:
                return await self._client.chat.completions.create(**payload)
        raise RuntimeError("retry loop exited without a result")  # pragma: no cover

    # ------------------------------------------------------------------
    # Stream translation
    # ------------------------------------------------------------------
    def _translate_chunk(
        self,
        chunk: Any,
        calls: dict[int, _StreamedCall],
        text_parts: list[str],
    ) -> list[RunEvent]:
        events: list[RunEvent] = []
        for choice in getattr(chunk, "choices", None) or ():
            delta = getattr(choice, "delta", None)
            if delta is None:
                continue
            content = getattr(delta, "content", None)
            if content:
                text_parts.append(content)
                events.append(TextDelta(text=content))
            for tool_delta in getattr(delta, "tool_calls", None) or ():
                events.extend(self._translate_tool_delta(tool_delta, calls))
        return events

    def _translate_tool_delta(self, tool_delta: Any, calls: dict[int, _StreamedCall]) -> list[RunEvent]:
        index = getattr(tool_delta, "index", None)
        if index is None:
            index = len(calls)
        call = calls.get(index)
        if call is None:
            call = calls[index] = _StreamedCall(index=index)

        call_id = getattr(tool_delta, "id", None)
        if call_id and call.call_id is None:
            call.call_id = call_id
        function = getattr(tool_delta, "function", None)
        name = getattr(function, "name", None) if function is not None else None
        if name and call.name is None:
            call.name = name
        fragment = (getattr(function, "arguments", None) if function is not None else None) or ""

        events: list[RunEvent] = []
        if not call.started and call.name:
            if call.call_id is None:
                call.call_id = f"call_{uuid.uuid4().hex}"
            call.started = True
            events.append(ToolCallStarted(call_id=call.call_id, tool_name=call.name))
            fragment = call.pending_arguments + fragment
            call.pending_arguments = ""
        if fragment:
            if call.started:
                call.arguments += fragment
                events.append(ToolCallArgsDelta(call_id=call.call_id or "", delta=fragment))
            else:
                call.pending_arguments += fragment
        return events

    def _record_history(
        self,
        run_id: str,
        previous_run_id: str | None,
        messages: list[dict[str, Any]],
        text: str,
        calls: Mapping[int, _StreamedCall],
    ) -> None:
        tool_calls = [
            {
                "id": call.call_id,
                "type": "function",
                "function": {"name": call.name, "arguments": call.arguments},
            }
            for call in sorted(calls.values(), key=lambda item: item.index)
            if call.started
        ]
        if not tool_calls:
            # Nothing answers a plain-text round, so it is never continued.
            return
        assistant: dict[str, Any] = {"role": "assistant", "content": text or None, "tool_calls": tool_calls}
        self._histories[run_id] = [*messages, assistant]
        LOGGER.debug("Recorded %d message(s) for run %s (previous=%s)", len(messages) + 1, run_id, previous_run_id)

        limit = max(1, self._settings.max_open_histories)
        while len(self._histories) > limit:
            evicted, _ = self._histories.popitem(last=False)
            LOGGER.warning("Dropping unanswered history for run %s; more than %d runs are open", evicted, limit)

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("Chat payload (unserializable): %s", payload)
        else:
            LOGGER.debug("Chat payload:\n%s", serialized)


def _join_text(content: Any) -> str:
    texts: list[str] = []
    for part in content:
        if isinstance(part, Mapping) and part.get("type") == "text":
            texts.append(str(part.get("text", "")))
        else:
            texts.append(json.dumps(part, ensure_ascii=False, default=str))
    return "".join(texts)


def _error_event(exc: BaseException) -> RunError:
    code = getattr(exc, "code", None)
    if code is None:
        status = getattr(exc, "status_code", None)
        code = str(status) if status is not None else None
    message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
    return RunError(message=str(message), code=None if code is None else str(code))


async def _close_stream(stream: Any) -> None:
    close = getattr(stream, "close", None)
    if close is None:
        return
    result = close()
    if inspect.isawaitable(result):
        await result
