"""
Stream reassembly -- turns a chunked server-sent-event byte stream into
``StreamEvent`` objects.

Chunks arrive with arbitrary boundaries: a line, a JSON document or a
multi-byte UTF-8 character may be split across two of them.  The
reassembler therefore buffers raw bytes and only ever looks at complete
``\\n``-terminated lines, which makes the emitted event sequence identical
for every possible chunking of the same byte stream.

Each significant line has the form::

    data: {"choices": [{"delta": {...}, "finish_reason": null}]}

The sentinel ``data: [DONE]`` carries no event.  Lines that are not valid
JSON (keep-alives, provider comments) are skipped.
"""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator, Awaitable, Callable

import httpx

from codr.errors import DecodeError, TransportError
from codr.llm.tool_call_assembler import ToolCallAssembler
from codr.llm.types import (
    Finished,
    StreamEvent,
    TextDelta,
    ToolCallDelta,
    ToolCallRequest,
    ToolCallsReady,
)

logger = logging.getLogger(__name__)

DATA_PREFIX = b"data:"
DONE_SENTINEL = "[DONE]"


class StreamReassembler:
    """
    Incremental SSE parser and tool-call accumulator.

    ``feed()`` accepts raw bytes and returns the events completed by that
    chunk.  Once a terminal event (``Finished`` or ``ToolCallsReady``) has
    been produced, ``done`` is ``True`` and all further input is ignored.
    """

    def __init__(self) -> None:
        self._pending = bytearray()
        self._content: list[str] = []
        self._assembler = ToolCallAssembler()
        self.done = False

    @property
    def content(self) -> str:
        """All text content accumulated so far."""
        return "".join(self._content)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def feed(self, chunk: bytes) -> list[StreamEvent]:
        if self.done:
            return []

        self._pending.extend(chunk)
        events: list[StreamEvent] = []

        while not self.done:
            newline = self._pending.find(b"\n")
            if newline < 0:
                break
            line = bytes(self._pending[:newline])
            del self._pending[: newline + 1]
            events.extend(self._handle_line(line.rstrip(b"\r")))

        if self.done:
            self._pending.clear()
        return events

    def close(self) -> list[StreamEvent]:
        """
        Signal end of input.

        A final line without a trailing newline is still parsed.  If the
        stream ended without a finish reason the turn is closed anyway:
        pending tool calls become ``ToolCallsReady``, otherwise the
        accumulated text becomes ``Finished``.
        """
        if self.done:
            return []

        events: list[StreamEvent] = []
        if self._pending:
            line = bytes(self._pending).rstrip(b"\r")
            self._pending.clear()
            events.extend(self._handle_line(line))

        if not self.done:
            logger.debug("Stream ended without a finish reason")
            events.append(self._terminate(None))
        return events

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _handle_line(self, line: bytes) -> list[StreamEvent]:
        if not line.startswith(DATA_PREFIX):
            return []

        payload = line[len(DATA_PREFIX):].decode("utf-8", errors="replace").strip()
        if payload == DONE_SENTINEL:
            return []

        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug("Skipping unparsable SSE line: %s", payload[:200])
            return []

        if not isinstance(data, dict):
            logger.debug("Skipping non-object SSE payload: %s", payload[:200])
            return []

        events: list[StreamEvent] = []
        for choice in data.get("choices") or []:
            if not isinstance(choice, dict):
                continue
            events.extend(self._handle_choice(choice))
            if self.done:
                break
        return events

    def _handle_choice(self, choice: dict) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        delta = choice.get("delta")
        if not isinstance(delta, dict):
            delta = {}

        text = delta.get("content")
        if text and isinstance(text, str):
            if self._assembler.in_progress:
                logger.debug("Dropping text received during a tool call: %r", text[:80])
            else:
                self._content.append(text)
                events.append(TextDelta(text))

        for raw_tc in delta.get("tool_calls") or []:
            try:
                fragment = ToolCallRequest.from_wire(raw_tc)
            except DecodeError:
                logger.debug("Skipping malformed tool-call fragment: %r", raw_tc)
                continue
            self._assembler.feed(fragment)
            events.append(ToolCallDelta(fragment))

        finish_reason = choice.get("finish_reason")
        if finish_reason:
            events.append(self._terminate(finish_reason))
        return events

    def _terminate(self, finish_reason: str | None) -> StreamEvent:
        self.done = True
        if finish_reason == "tool_calls" or self._assembler.in_progress:
            calls = tuple(self._assembler.finish())
            return ToolCallsReady(calls=calls, content=self.content)
        if finish_reason not in (None, "stop"):
            logger.info("Stream finished with reason %r", finish_reason)
        return Finished(final_text=self.content)


class EventStream:
    """
    An open streaming response, iterated as ``StreamEvent`` objects.

    Usage::

        async with await client.stream(messages, tools) as events:
            async for event in events:
                ...

    Iteration stops after the first terminal event; any trailing bytes on
    the connection are discarded.  The underlying connection is released
    when iteration ends or the context manager exits.
    """

    def __init__(
        self,
        chunks: AsyncIterator[bytes],
        close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._chunks = chunks
        self._close = close
        self._closed = False

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        return self._iter_events()

    async def __aenter__(self) -> EventStream:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._close is not None:
            await self._close()

    async def _iter_events(self) -> AsyncIterator[StreamEvent]:
        reassembler = StreamReassembler()
        try:
            async for chunk in self._chunks:
                for event in reassembler.feed(chunk):
                    yield event
                if reassembler.done:
                    return
            for event in reassembler.close():
                yield event
        except httpx.TransportError as exc:
            raise TransportError(f"Stream interrupted: {exc}") from exc
        finally:
            await self.aclose()
