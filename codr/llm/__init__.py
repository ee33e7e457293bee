"""LLM subsystem -- wire types, transport client and stream reassembly."""

from codr.llm.client import ChatClient
from codr.llm.stream import EventStream, StreamReassembler
from codr.llm.tool_call_assembler import ToolCallAssembler
from codr.llm.types import (
    ChatCompletion,
    Choice,
    Finished,
    Message,
    Role,
    StreamEvent,
    TextDelta,
    ToolCallDelta,
    ToolCallRequest,
    ToolCallsReady,
    ToolDefinition,
)

__all__ = [
    "ChatClient",
    "ChatCompletion",
    "Choice",
    "EventStream",
    "Finished",
    "Message",
    "Role",
    "StreamEvent",
    "StreamReassembler",
    "TextDelta",
    "ToolCallAssembler",
    "ToolCallDelta",
    "ToolCallRequest",
    "ToolCallsReady",
    "ToolDefinition",
]
