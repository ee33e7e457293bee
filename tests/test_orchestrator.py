"""Tests for the orchestrator core."""

from __future__ import annotations

import asyncio
import json

import pytest

from codr.errors import (
    ConversationBusyError,
    EmptyResponseError,
    RemoteError,
    ToolArgumentError,
    TurnLimitError,
)
from codr.llm.stream import EventStream
from codr.llm.types import Finished, Message, Role, TextDelta, ToolCallsReady
from codr.orchestrator.conversation import Conversation
from codr.orchestrator.core import Orchestrator, parse_arguments
from codr.tools.registry import ToolRegistry
from codr.types import ErrorCode
from tests.mock_client import (
    DONE,
    MockChatClient,
    completion,
    finish_chunk,
    text_chunk,
    text_completion,
    tool_chunk,
    tool_completion,
)
from tests.mock_tools import EchoTool, FailingTool, ListFilesStub, RaisingTool


@pytest.fixture
def list_tool():
    return ListFilesStub()


@pytest.fixture
def registry(list_tool):
    reg = ToolRegistry()
    reg.register(list_tool)
    reg.register(EchoTool())
    reg.register(FailingTool())
    reg.register(RaisingTool())
    return reg


def make_orchestrator(client, registry, **kwargs) -> Orchestrator:
    return Orchestrator(client=client, registry=registry, system_prompt="You are codr.", **kwargs)


def tool_messages(orch: Orchestrator) -> list[Message]:
    return [m for m in orch.conversation.snapshot() if m.role is Role.TOOL]


class TestParseArguments:
    def test_object(self):
        assert parse_arguments('{"a": 1}') == {"a": 1}

    def test_empty_string_is_empty_object(self):
        assert parse_arguments("") == {}
        assert parse_arguments("   ") == {}

    def test_malformed(self):
        with pytest.raises(ToolArgumentError, match="Failed to parse arguments"):
            parse_arguments('{"folder_path":}')

    def test_parse_failures_carry_invalid_arguments_code(self):
        for raw in ('{"folder_path":}', "[1, 2]", "\"text\""):
            with pytest.raises(ToolArgumentError) as exc_info:
                parse_arguments(raw)
            assert exc_info.value.code == ErrorCode.INVALID_ARGUMENTS

    def test_non_object(self):
        with pytest.raises(ToolArgumentError, match="JSON object"):
            parse_arguments("[1, 2]")


class TestBufferedTurn:
    async def test_plain_text_answer(self, registry):
        client = MockChatClient(completions=[text_completion("Hi there.")])
        orch = make_orchestrator(client, registry)

        assert await orch.message("hello") == "Hi there."
        roles = [m.role for m in orch.conversation]
        assert roles == [Role.SYSTEM, Role.USER, Role.ASSISTANT]

    async def test_list_files_scenario(self, registry, list_tool):
        client = MockChatClient(completions=[
            tool_completion(("call_1", "get_folder_files", '{"folder_path": "./src"}')),
            text_completion("You have 2 files."),
        ])
        orch = make_orchestrator(client, registry)

        answer = await orch.message("List files in ./src")

        assert answer == "You have 2 files."
        messages = orch.conversation.snapshot()
        assert len(messages) == 5
        assert [m.role for m in messages] == [
            Role.SYSTEM, Role.USER, Role.ASSISTANT, Role.TOOL, Role.ASSISTANT,
        ]
        assert messages[2].tool_calls[0].name == "get_folder_files"
        assert messages[3].tool_call_id == "call_1"
        assert json.loads(messages[3].content) == {"files": ["a.rs", "b.rs"], "folders": []}
        assert list_tool.calls == [{"folder_path": "./src"}]

    async def test_second_request_carries_tool_result(self, registry):
        client = MockChatClient(completions=[
            tool_completion(("call_1", "echo", '{"message": "ping"}')),
            text_completion("done"),
        ])
        orch = make_orchestrator(client, registry)
        await orch.message("go")

        assert client.call_count == 2
        second = client.requests[1]
        assert second[-1].role is Role.TOOL
        assert json.loads(second[-1].content) == {"echo": "ping"}

    async def test_tool_schemas_are_sent(self, registry):
        client = MockChatClient(completions=[text_completion("ok")])
        orch = make_orchestrator(client, registry)
        await orch.message("x")
        assert {d.name for d in client.last_tools} == {"get_folder_files", "echo", "fail", "explode"}

    async def test_malformed_arguments_become_error_result(self, registry, list_tool):
        client = MockChatClient(completions=[
            tool_completion(("call_1", "get_folder_files", '{"folder_path":}')),
            text_completion("Sorry, retrying."),
        ])
        orch = make_orchestrator(client, registry)

        assert await orch.message("list") == "Sorry, retrying."
        assert list_tool.calls == []
        (result,) = tool_messages(orch)
        assert result.tool_call_id == "call_1"
        assert "Failed to parse arguments" in json.loads(result.content)["error"]

    async def test_schema_violation_becomes_error_result(self, registry, list_tool):
        client = MockChatClient(completions=[
            tool_completion(("c", "get_folder_files", '{"path": "./src"}')),
            text_completion("ok"),
        ])
        orch = make_orchestrator(client, registry)
        await orch.message("list")

        assert list_tool.calls == []
        assert "Invalid arguments" in json.loads(tool_messages(orch)[0].content)["error"]

    async def test_unknown_tool_becomes_error_result(self, registry):
        client = MockChatClient(completions=[
            tool_completion(("c", "rm_rf", "{}")),
            text_completion("ok"),
        ])
        orch = make_orchestrator(client, registry)
        await orch.message("x")
        assert "Unknown tool: rm_rf" in json.loads(tool_messages(orch)[0].content)["error"]

    async def test_failed_and_raising_tools_do_not_abort(self, registry):
        client = MockChatClient(completions=[
            tool_completion(("a", "fail", "{}"), ("b", "explode", "")),
            text_completion("recovered"),
        ])
        orch = make_orchestrator(client, registry)

        assert await orch.message("x") == "recovered"
        results = tool_messages(orch)
        assert [m.tool_call_id for m in results] == ["a", "b"]
        assert json.loads(results[0].content) == {"error": "disk on fire"}
        assert json.loads(results[1].content) == {"error": "kaboom"}

    async def test_missing_call_ids_are_synthesized(self, registry):
        client = MockChatClient(completions=[
            completion({
                "role": "assistant",
                "tool_calls": [{"function": {"name": "echo", "arguments": '{"message": "x"}'}}],
            }),
            text_completion("ok"),
        ])
        orch = make_orchestrator(client, registry)
        await orch.message("x")

        messages = orch.conversation.snapshot()
        assert messages[2].tool_calls[0].id == "call_0"
        assert messages[3].tool_call_id == "call_0"

    async def test_first_choice_drives_the_loop(self, registry):
        client = MockChatClient(completions=[
            completion(choices=[
                {"index": 0, "message": {"role": "assistant", "content": "first"}},
                {"index": 1, "message": {"role": "assistant", "content": "second"}},
            ]),
        ])
        orch = make_orchestrator(client, registry)
        assert await orch.message("x") == "first"
        assert len(orch.conversation) == 3

    async def test_zero_choices(self, registry):
        client = MockChatClient(completions=[completion(choices=[])])
        orch = make_orchestrator(client, registry)
        with pytest.raises(EmptyResponseError):
            await orch.message("x")
        assert not orch.busy

    async def test_remote_error_propagates(self, registry):
        client = MockChatClient(completions=[RemoteError(500, "boom")])
        orch = make_orchestrator(client, registry)
        with pytest.raises(RemoteError, match="Error 500: boom"):
            await orch.message("x")

    async def test_max_rounds(self, registry):
        looping = [tool_completion((f"c{i}", "echo", '{"message": "x"}')) for i in range(3)]
        client = MockChatClient(completions=looping)
        orch = make_orchestrator(client, registry, max_rounds=3)
        with pytest.raises(TurnLimitError):
            await orch.message("x")
        assert client.call_count == 3

    async def test_tool_callback_sees_each_call(self, registry):
        seen = []
        client = MockChatClient(completions=[
            tool_completion(("a", "echo", '{"message": "1"}'), ("b", "echo", '{"message": "2"}')),
            text_completion("ok"),
        ])
        orch = make_orchestrator(client, registry, tool_callback=seen.append)
        await orch.message("x")
        assert [c.id for c in seen] == ["a", "b"]


class TestStreamingTurn:
    async def test_text_deltas_then_finished(self, registry):
        client = MockChatClient(streams=[[
            text_chunk("Hello"),
            text_chunk(" world", finish_reason="stop"),
            DONE,
        ]])
        orch = make_orchestrator(client, registry)

        turn = await orch.message_stream("hi")
        events = [e async for e in turn]

        assert events == [TextDelta("Hello"), TextDelta(" world"), Finished(final_text="Hello world")]
        messages = orch.conversation.snapshot()
        assert messages[-1] == Message.assistant("Hello world")
        assert len(messages) == 3
        assert client.closed_streams == 1

    async def test_tool_round_reissues_stream(self, registry, list_tool):
        client = MockChatClient(streams=[
            [
                tool_chunk(id="call_1", name="get_folder_files"),
                tool_chunk('{"folder_path"'),
                tool_chunk(': "./src"}'),
                finish_chunk("tool_calls"),
                DONE,
            ],
            [
                text_chunk("You have "),
                text_chunk("2 files.", finish_reason="stop"),
                DONE,
            ],
        ])
        orch = make_orchestrator(client, registry)

        turn = await orch.message_stream("List files in ./src")
        events = [e async for e in turn]

        assert isinstance(events[0], ToolCallsReady)
        assert [e.text for e in events if isinstance(e, TextDelta)] == ["You have ", "2 files."]
        assert events[-1] == Finished(final_text="You have 2 files.")

        messages = orch.conversation.snapshot()
        assert len(messages) == 5
        assert messages[2].tool_calls[0].arguments == '{"folder_path": "./src"}'
        assert messages[3].tool_call_id == "call_1"
        assert list_tool.calls == [{"folder_path": "./src"}]
        assert client.call_count == 2
        assert client.requests[1][-1].role is Role.TOOL

    async def test_text_helper(self, registry):
        client = MockChatClient(streams=[[text_chunk("a"), text_chunk("b", finish_reason="stop")]])
        orch = make_orchestrator(client, registry)
        turn = await orch.message_stream("x")
        assert [t async for t in turn.text()] == ["a", "b"]

    async def test_conversation_untouched_until_finished(self, registry):
        gate = asyncio.Event()

        async def slow_chunks():
            yield text_chunk("partial")
            await gate.wait()
            yield finish_chunk("stop")

        client = MockChatClient()
        async def stream(messages, tools=None):
            client.requests.append(list(messages))
            return EventStream(slow_chunks())

        client.stream = stream
        orch = make_orchestrator(client, registry)

        turn = await orch.message_stream("x")
        first = await turn.__anext__()
        assert first == TextDelta("partial")
        assert len(orch.conversation) == 1
        assert orch.busy

        gate.set()
        rest = [e async for e in turn]
        assert rest == [Finished(final_text="partial")]
        assert len(orch.conversation) == 3
        assert not orch.busy

    async def test_error_is_reraised_and_nothing_committed(self, registry):
        client = MockChatClient(streams=[
            [tool_chunk('{"message": "x"}', id="c", name="echo", finish_reason="tool_calls")],
            RemoteError(503, "overloaded"),
        ])
        orch = make_orchestrator(client, registry)

        turn = await orch.message_stream("x")
        with pytest.raises(RemoteError, match="overloaded"):
            async for _ in turn:
                pass

        await asyncio.sleep(0)
        assert len(orch.conversation) == 1
        assert not orch.busy

    async def test_busy_while_streaming(self, registry):
        client = MockChatClient(streams=[[text_chunk("ok", finish_reason="stop")]])
        orch = make_orchestrator(client, registry)

        turn = await orch.message_stream("x")
        with pytest.raises(ConversationBusyError):
            await orch.message("y")
        with pytest.raises(ConversationBusyError):
            await orch.message_stream("y")
        with pytest.raises(ConversationBusyError):
            orch.reset()

        async with turn:
            [e async for e in turn]
        await asyncio.sleep(0)
        assert not orch.busy

    async def test_aclose_cancels_task(self, registry):
        async def endless():
            while True:
                yield text_chunk("x")
                await asyncio.sleep(0)

        client = MockChatClient()
        async def stream(messages, tools=None):
            return EventStream(endless())

        client.stream = stream
        orch = make_orchestrator(client, registry, channel_capacity=2)

        turn = await orch.message_stream("x")
        await turn.__anext__()
        await turn.aclose()
        await asyncio.sleep(0)

        assert not orch.busy
        assert len(orch.conversation) == 1
        assert [e async for e in turn] == []

    async def test_streaming_max_rounds(self, registry):
        script = [tool_chunk('{"message": "x"}', id="c", name="echo", finish_reason="tool_calls")]
        client = MockChatClient(streams=[list(script), list(script)])
        orch = make_orchestrator(client, registry, max_rounds=2)

        turn = await orch.message_stream("x")
        with pytest.raises(TurnLimitError):
            [e async for e in turn]

    async def test_malformed_streamed_arguments(self, registry, list_tool):
        client = MockChatClient(streams=[
            [tool_chunk('{"folder_path":}', id="c", name="get_folder_files", finish_reason="tool_calls")],
            [text_chunk("retry", finish_reason="stop")],
        ])
        orch = make_orchestrator(client, registry)
        turn = await orch.message_stream("x")
        events = [e async for e in turn]

        assert events[-1] == Finished(final_text="retry")
        assert list_tool.calls == []
        assert "Failed to parse arguments" in json.loads(tool_messages(orch)[0].content)["error"]


class TestReset:
    async def test_reset_keeps_system_message(self, registry):
        client = MockChatClient(completions=[text_completion("ok")])
        orch = make_orchestrator(client, registry)
        await orch.message("x")
        orch.reset()
        assert orch.conversation.snapshot() == [Message.system("You are codr.")]


class TestConversation:
    def test_rejects_second_system_message(self):
        conv = Conversation("sys")
        with pytest.raises(ValueError):
            conv.append(Message.system("again"))

    def test_snapshot_is_a_copy(self):
        conv = Conversation("sys")
        snap = conv.snapshot()
        snap.append(Message.user("x"))
        assert len(conv) == 1

    def test_commit_extends(self):
        conv = Conversation("sys")
        working = conv.snapshot() + [Message.user("x"), Message.assistant("y")]
        conv.commit(working)
        assert len(conv) == 3

    def test_commit_rejects_diverged_copy(self):
        conv = Conversation("sys")
        working = conv.snapshot() + [Message.user("x")]
        conv.append(Message.user("other"))
        with pytest.raises(ValueError):
            conv.commit(working)
