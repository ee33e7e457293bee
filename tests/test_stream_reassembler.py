"""Tests for codr.llm.stream: SSE reassembly and the EventStream wrapper."""

from __future__ import annotations

import json

import httpx
import pytest

from codr.errors import TransportError
from codr.llm.stream import EventStream, StreamReassembler
from codr.llm.types import (
    Finished,
    TextDelta,
    ToolCallDelta,
    ToolCallRequest,
    ToolCallsReady,
)
from tests.mock_client import (
    DONE,
    aiter_chunks,
    finish_chunk,
    sse,
    text_chunk,
    tool_chunk,
)


def run(chunks: list[bytes]) -> list:
    r = StreamReassembler()
    events = []
    for chunk in chunks:
        events.extend(r.feed(chunk))
    events.extend(r.close())
    return events


def resplit(data: bytes, *cuts: int) -> list[bytes]:
    points = [0, *cuts, len(data)]
    return [data[a:b] for a, b in zip(points, points[1:])]


TEXT_STREAM = b"".join([
    text_chunk("Hello"),
    text_chunk(", wörld"),
    text_chunk("!", finish_reason="stop"),
    DONE,
])

TOOL_STREAM = b"".join([
    tool_chunk(id="call_1", name="get_folder_files"),
    tool_chunk('{"folder'),
    tool_chunk('_path": "./src"}'),
    finish_chunk("tool_calls"),
    DONE,
])


class TestTextStream:
    def test_text_then_finished(self):
        events = run([TEXT_STREAM])
        assert events == [
            TextDelta("Hello"),
            TextDelta(", wörld"),
            TextDelta("!"),
            Finished(final_text="Hello, wörld!"),
        ]

    def test_every_two_way_split_yields_same_events(self):
        expected = run([TEXT_STREAM])
        for cut in range(1, len(TEXT_STREAM)):
            assert run(resplit(TEXT_STREAM, cut)) == expected, cut

    def test_byte_at_a_time(self):
        chunks = [TEXT_STREAM[i:i + 1] for i in range(len(TEXT_STREAM))]
        assert run(chunks) == run([TEXT_STREAM])

    def test_multibyte_character_split(self):
        data = text_chunk("été", finish_reason="stop")
        mid = data.index("é".encode("utf-8")) + 1
        events = run(resplit(data, mid))
        assert events[0] == TextDelta("été")

    def test_crlf_line_endings(self):
        data = TEXT_STREAM.replace(b"\n", b"\r\n")
        assert run([data]) == run([TEXT_STREAM])

    def test_done_sentinel_emits_nothing(self):
        r = StreamReassembler()
        assert r.feed(DONE) == []
        assert not r.done


class TestToolStream:
    def test_tool_calls_ready(self):
        events = run([TOOL_STREAM])
        deltas = [e for e in events if isinstance(e, ToolCallDelta)]
        assert len(deltas) == 3
        assert events[-1] == ToolCallsReady(
            calls=(
                ToolCallRequest(
                    arguments='{"folder_path": "./src"}',
                    id="call_1",
                    name="get_folder_files",
                    type="function",
                ),
            ),
            content="",
        )

    def test_every_two_way_split_yields_same_events(self):
        expected = run([TOOL_STREAM])
        for cut in range(1, len(TOOL_STREAM)):
            assert run(resplit(TOOL_STREAM, cut)) == expected, cut

    def test_three_way_splits(self):
        expected = run([TOOL_STREAM])
        step = max(1, len(TOOL_STREAM) // 20)
        for a in range(1, len(TOOL_STREAM), step):
            for b in range(a + 1, len(TOOL_STREAM), step):
                assert run(resplit(TOOL_STREAM, a, b)) == expected

    def test_text_before_tool_calls_is_kept(self):
        events = run([
            text_chunk("Let me look. "),
            tool_chunk('{"folder_path": "."}', id="c", name="get_folder_files"),
            finish_chunk("tool_calls"),
        ])
        assert events[0] == TextDelta("Let me look. ")
        assert events[-1].content == "Let me look. "

    def test_text_during_tool_call_is_dropped(self):
        events = run([
            tool_chunk(id="c", name="get_folder_files"),
            text_chunk("noise"),
            tool_chunk('{"folder_path": "."}'),
            finish_chunk("tool_calls"),
        ])
        assert not any(isinstance(e, TextDelta) for e in events)
        assert events[-1].calls[0].arguments == '{"folder_path": "."}'

    def test_pending_calls_win_over_stop_reason(self):
        events = run([tool_chunk("{}", id="c", name="echo", finish_reason="stop")])
        assert isinstance(events[-1], ToolCallsReady)

    def test_two_parallel_calls(self):
        events = run([
            tool_chunk(id="a", name="read_file", index=0),
            tool_chunk(id="b", name="read_file", index=1),
            tool_chunk('{"file_path": "x"}', index=0),
            tool_chunk('{"file_path": "y"}', index=1),
            finish_chunk("tool_calls"),
        ])
        calls = events[-1].calls
        assert [c.id for c in calls] == ["a", "b"]
        assert [json.loads(c.arguments)["file_path"] for c in calls] == ["x", "y"]


class TestRobustness:
    def test_malformed_line_is_skipped(self):
        events = run([sse("{not json"), text_chunk("ok", finish_reason="stop")])
        assert events == [TextDelta("ok"), Finished(final_text="ok")]

    def test_non_data_lines_are_ignored(self):
        events = run([b": keep-alive\n\nevent: ping\n", text_chunk("ok", finish_reason="stop")])
        assert events == [TextDelta("ok"), Finished(final_text="ok")]

    def test_non_object_payload_is_skipped(self):
        events = run([sse("[1, 2]"), text_chunk("ok", finish_reason="stop")])
        assert events[0] == TextDelta("ok")

    def test_nothing_after_terminal_event(self):
        r = StreamReassembler()
        first = r.feed(text_chunk("a", finish_reason="stop"))
        assert isinstance(first[-1], Finished)
        assert r.feed(text_chunk("late")) == []
        assert r.close() == []

    def test_eof_without_finish_reason(self):
        events = run([text_chunk("partial")])
        assert events == [TextDelta("partial"), Finished(final_text="partial")]

    def test_eof_with_pending_calls(self):
        events = run([tool_chunk("{}", id="c", name="echo")])
        assert isinstance(events[-1], ToolCallsReady)

    def test_final_line_without_newline(self):
        data = text_chunk("x", finish_reason="stop").rstrip(b"\n")
        assert run([data]) == [TextDelta("x"), Finished(final_text="x")]

    def test_empty_content_is_not_emitted(self):
        events = run([text_chunk(""), text_chunk("x", finish_reason="stop")])
        assert events == [TextDelta("x"), Finished(final_text="x")]


class TestEventStream:
    async def test_iterates_and_closes(self):
        closed = []

        async def _close():
            closed.append(True)

        stream = EventStream(aiter_chunks([TEXT_STREAM]), close=_close)
        async with stream as events:
            collected = [e async for e in events]
        assert collected[-1] == Finished(final_text="Hello, wörld!")
        assert closed == [True]

    async def test_stops_after_terminal_event(self):
        chunks = [text_chunk("a", finish_reason="stop"), text_chunk("never")]
        collected = [e async for e in EventStream(aiter_chunks(chunks))]
        assert collected == [TextDelta("a"), Finished(final_text="a")]

    async def test_transport_failure_is_wrapped(self):
        async def broken():
            yield text_chunk("a")
            raise httpx.ReadError("connection reset")

        with pytest.raises(TransportError, match="connection reset"):
            async for _ in EventStream(broken()):
                pass
