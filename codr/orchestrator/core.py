"""
Orchestrator core -- the tool loop that ties everything together.

Per user turn the orchestrator:
1. Appends the user message
2. Sends the conversation and tool schemas to the model
3. If the model asks for tools, appends its message, runs each tool and
   appends one result message per call
4. Loops until the model answers with no tool calls (final response)

Two modes share that loop.  ``message()`` uses buffered completions and
mutates the conversation in place.  ``message_stream()`` runs the loop in
one background task that streams text to the caller through a bounded
queue, works on a private copy of the conversation and commits it only
when the final answer is complete.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from dataclasses import replace
from typing import Any, AsyncIterator, Callable, Iterator

from codr.errors import (
    ConversationBusyError,
    EmptyResponseError,
    ToolArgumentError,
    ToolError,
    TurnLimitError,
)
from codr.llm.client import ChatClient
from codr.llm.types import (
    Finished,
    Message,
    StreamEvent,
    TextDelta,
    ToolCallRequest,
    ToolCallsReady,
)
from codr.orchestrator.conversation import Conversation
from codr.tools.registry import ToolRegistry
from codr.types import ErrorCode

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_CAPACITY = 100


def parse_arguments(raw: str) -> dict:
    """Decode a tool call's argument document; an empty string means ``{}``."""
    try:
        args = json.loads(raw) if raw.strip() else {}
    except json.JSONDecodeError as exc:
        raise ToolArgumentError(
            f"Failed to parse arguments: {exc}", code=ErrorCode.INVALID_ARGUMENTS
        ) from exc
    if not isinstance(args, dict):
        raise ToolArgumentError(
            f"Failed to parse arguments: expected a JSON object, got {type(args).__name__}",
            code=ErrorCode.INVALID_ARGUMENTS,
        )
    return args


class _Failure:
    __slots__ = ("error",)

    def __init__(self, error: BaseException) -> None:
        self.error = error


_END = object()


class TurnStream:
    """
    Consumer end of a streaming turn.

    Iterate it for ``StreamEvent`` objects: ``TextDelta`` as text arrives,
    ``ToolCallsReady`` whenever the model hands off to tools, and a final
    ``Finished`` once the answer is complete and committed.  An error in
    the background task is re-raised from the iteration.

    Closing the stream (``aclose()`` or leaving ``async with``) cancels the
    background task; it is the only cancellation signal.
    """

    def __init__(self, queue: asyncio.Queue, task: asyncio.Task) -> None:
        self._queue = queue
        self._task = task
        self._exhausted = False

    def __aiter__(self) -> TurnStream:
        return self

    async def __anext__(self) -> StreamEvent:
        if self._exhausted:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            self._exhausted = True
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            self._exhausted = True
            raise item.error
        return item

    async def __aenter__(self) -> TurnStream:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self._exhausted = True
        if not self._task.done():
            self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def text(self) -> AsyncIterator[str]:
        """Iterate over the text fragments only."""
        async for event in self:
            if isinstance(event, TextDelta):
                yield event.text

    def __del__(self) -> None:
        task = self._task
        if not task.done() and not task.get_loop().is_closed():
            task.cancel()


class Orchestrator:
    """
    Main tool loop.

    Parameters
    ----------
    client : ChatClient
        Transport to the chat-completions endpoint.
    registry : ToolRegistry
        Registered tools; schemas are captured once at construction.
    system_prompt : str
        Text of the system message that opens the conversation.
    max_rounds : int | None
        Max model calls per turn.  ``None`` or ``0`` means unlimited.
    channel_capacity : int
        Size of the queue between the streaming task and the consumer.
    tool_callback : callable
        Called with each ``ToolCallRequest`` just before it is executed.
    """

    def __init__(
        self,
        client: ChatClient,
        registry: ToolRegistry,
        system_prompt: str,
        max_rounds: int | None = 50,
        channel_capacity: int = DEFAULT_CHANNEL_CAPACITY,
        tool_callback: Callable[[ToolCallRequest], Any] | None = None,
    ) -> None:
        self.client = client
        self.registry = registry
        self.conversation = Conversation(system_prompt)
        self.tool_definitions = tuple(registry.list_schemas())
        self.max_rounds = max_rounds
        self.channel_capacity = channel_capacity
        self.tool_callback = tool_callback
        self._busy = False
        self._turn_id = 0

    # ------------------------------------------------------------------
    # Turn bookkeeping
    # ------------------------------------------------------------------

    @property
    def busy(self) -> bool:
        return self._busy

    def _begin_turn(self) -> int:
        if self._busy:
            raise ConversationBusyError("A turn is already in progress")
        self._busy = True
        self._turn_id += 1
        return self._turn_id

    def _end_turn(self, turn_id: int) -> None:
        # A late callback from an earlier turn must not release a newer one.
        if turn_id == self._turn_id:
            self._busy = False

    def _rounds(self) -> Iterator[int]:
        if self.max_rounds:
            yield from range(1, self.max_rounds + 1)
            raise TurnLimitError(
                f"Reached maximum of {self.max_rounds} model calls in one turn"
            )
        yield from itertools.count(1)

    def reset(self) -> None:
        """Forget the conversation, keeping the system message."""
        if self._busy:
            raise ConversationBusyError("Cannot reset while a turn is in progress")
        self.conversation.reset()

    # ------------------------------------------------------------------
    # Buffered mode
    # ------------------------------------------------------------------

    async def message(self, text: str) -> str:
        """
        Run one turn with buffered completions and return the final answer.

        Only the first choice of each completion drives the loop.
        """
        turn_id = self._begin_turn()
        try:
            self.conversation.append(Message.user(text))

            for round_no in self._rounds():
                completion = await self.client.complete(
                    self.conversation.snapshot(), self.tool_definitions
                )
                if not completion.choices:
                    raise EmptyResponseError("No choices returned from API")
                if len(completion.choices) > 1:
                    logger.debug(
                        "Using the first of %d choices", len(completion.choices)
                    )

                reply = completion.choices[0].message
                if reply.tool_calls:
                    reply = replace(reply, tool_calls=_with_ids(reply.tool_calls))
                self.conversation.append(reply)

                if not reply.tool_calls:
                    return reply.content or ""

                logger.debug(
                    "Round %d: %d tool call(s)", round_no, len(reply.tool_calls)
                )
                await self._run_tool_calls(reply.tool_calls, self.conversation.append)
        finally:
            self._end_turn(turn_id)
        raise AssertionError("unreachable")  # pragma: no cover

    # ------------------------------------------------------------------
    # Streaming mode
    # ------------------------------------------------------------------

    async def message_stream(self, text: str) -> TurnStream:
        """
        Start a streaming turn and return its ``TurnStream``.

        The conversation is left untouched until the turn finishes; then the
        user message, every tool round and the final answer are committed
        together.
        """
        turn_id = self._begin_turn()
        working = self.conversation.snapshot()
        working.append(Message.user(text))

        queue: asyncio.Queue = asyncio.Queue(maxsize=self.channel_capacity)
        task = asyncio.create_task(self._stream_turn(turn_id, working, queue))
        task.add_done_callback(lambda _t: self._end_turn(turn_id))
        return TurnStream(queue, task)

    async def _stream_turn(
        self, turn_id: int, working: list[Message], queue: asyncio.Queue
    ) -> None:
        try:
            final = await self._stream_rounds(working, queue)
        except Exception as exc:
            logger.debug("Streaming turn failed: %s", exc)
            self._end_turn(turn_id)
            await queue.put(_Failure(exc))
            return

        working.append(Message.assistant(final.final_text))
        self.conversation.commit(working)
        self._end_turn(turn_id)
        await queue.put(final)
        await queue.put(_END)

    async def _stream_rounds(self, working: list[Message], queue: asyncio.Queue) -> Finished:
        """Stream model rounds into *working* until the model stops asking for tools."""
        for round_no in self._rounds():
            outcome: StreamEvent | None = None
            async with await self.client.stream(working, self.tool_definitions) as events:
                async for event in events:
                    if isinstance(event, TextDelta):
                        await queue.put(event)
                    elif isinstance(event, (Finished, ToolCallsReady)):
                        outcome = event

            if isinstance(outcome, ToolCallsReady) and outcome.calls:
                logger.debug("Round %d: %d tool call(s)", round_no, len(outcome.calls))
                await queue.put(outcome)
                working.append(Message.assistant(outcome.content or None, outcome.calls))
                await self._run_tool_calls(outcome.calls, working.append)
                continue

            if isinstance(outcome, ToolCallsReady):
                return Finished(final_text=outcome.content)
            return outcome if outcome is not None else Finished(final_text="")
        raise AssertionError("unreachable")  # pragma: no cover

    # ------------------------------------------------------------------
    # Tool execution
    # ------------------------------------------------------------------

    async def _run_tool_calls(
        self,
        calls: tuple[ToolCallRequest, ...],
        append: Callable[[Message], None],
    ) -> None:
        """
        Execute *calls* one at a time, appending one tool-result message each.

        Argument and execution failures become ``{"error": ...}`` results.
        """
        for call in calls:
            name = call.name or ""
            if self.tool_callback is not None:
                self.tool_callback(call)
            logger.info("Processing tool call: %s %s", name, call.arguments[:200])

            try:
                args = parse_arguments(call.arguments)
                result = await self.registry.execute(name, args)
            except ToolError as exc:
                logger.warning("Tool call %s failed: %s", name, exc)
                append(Message.tool_result(call.id, {"error": str(exc)}))
                continue

            append(Message.tool_result(call.id, result))


def _with_ids(calls: tuple[ToolCallRequest, ...]) -> tuple[ToolCallRequest, ...]:
    """Give every call an id so its result message can reference it."""
    return tuple(
        call if call.id else replace(call, id=f"call_{idx}")
        for idx, call in enumerate(calls)
    )
