"""
Core types for the LLM subsystem.

Every type here maps onto the OpenAI chat-completions wire shape.  Optional
fields are ``None`` when they were never set and are *omitted* (not sent as
``null``) when serialized, which is what the remote API expects.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from codr.errors import DecodeError


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class ToolCallRequest:
    """
    A tool call requested by the model.

    While streaming, fragments of the same call share an ``index``; only the
    first fragment carries ``id`` and ``name``, and ``arguments`` holds the
    piece of the JSON document that arrived with that fragment.  Once the
    assembler has finished, ``arguments`` is the full (possibly still
    malformed) document.
    """

    arguments: str = ""
    id: str | None = None
    name: str | None = None
    type: str | None = None
    index: int | None = field(default=None, compare=False)

    def to_wire(self) -> dict:
        function: dict[str, Any] = {}
        if self.name is not None:
            function["name"] = self.name
        function["arguments"] = self.arguments

        wire: dict[str, Any] = {}
        if self.id is not None:
            wire["id"] = self.id
        if self.type is not None:
            wire["type"] = self.type
        wire["function"] = function
        return wire

    @classmethod
    def from_wire(cls, data: Any) -> ToolCallRequest:
        if not isinstance(data, dict):
            raise DecodeError(f"tool call must be an object, got {type(data).__name__}")
        function = data.get("function") or {}
        if not isinstance(function, dict):
            raise DecodeError("tool call 'function' must be an object")
        arguments = function.get("arguments")
        if arguments is None:
            arguments = ""
        elif not isinstance(arguments, str):
            # Some providers send already-decoded arguments.
            arguments = json.dumps(arguments)
        return cls(
            arguments=arguments,
            id=data.get("id"),
            name=function.get("name"),
            type=data.get("type"),
            index=data.get("index"),
        )


@dataclass(frozen=True)
class Message:
    """A single message in a conversation."""

    role: Role
    content: str | None = None
    tool_calls: tuple[ToolCallRequest, ...] | None = None
    tool_call_id: str | None = None

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(
        cls,
        content: str | None,
        tool_calls: list[ToolCallRequest] | tuple[ToolCallRequest, ...] | None = None,
    ) -> Message:
        return cls(
            role=Role.ASSISTANT,
            content=content,
            tool_calls=tuple(tool_calls) if tool_calls else None,
        )

    @classmethod
    def tool_result(cls, tool_call_id: str, result: Any) -> Message:
        """Build a ``tool`` message carrying the JSON-serialized *result*."""
        content = result if isinstance(result, str) else json.dumps(result)
        return cls(role=Role.TOOL, content=content, tool_call_id=tool_call_id)

    # ------------------------------------------------------------------
    # Wire format
    # ------------------------------------------------------------------

    def to_wire(self) -> dict:
        wire: dict[str, Any] = {"role": self.role.value}
        if self.content is not None:
            wire["content"] = self.content
        if self.tool_calls is not None:
            wire["tool_calls"] = [tc.to_wire() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            wire["tool_call_id"] = self.tool_call_id
        return wire

    @classmethod
    def from_wire(cls, data: Any) -> Message:
        if not isinstance(data, dict):
            raise DecodeError(f"message must be an object, got {type(data).__name__}")
        try:
            role = Role(data.get("role"))
        except ValueError as exc:
            raise DecodeError(f"unknown message role: {data.get('role')!r}") from exc

        content = data.get("content")
        if content is not None and not isinstance(content, str):
            raise DecodeError("message 'content' must be a string")

        raw_calls = data.get("tool_calls")
        tool_calls: tuple[ToolCallRequest, ...] | None = None
        if raw_calls is not None:
            if not isinstance(raw_calls, list):
                raise DecodeError("message 'tool_calls' must be a list")
            tool_calls = tuple(ToolCallRequest.from_wire(tc) for tc in raw_calls)

        return cls(
            role=role,
            content=content,
            tool_calls=tool_calls,
            tool_call_id=data.get("tool_call_id"),
        )


@dataclass(frozen=True)
class ToolDefinition:
    """A tool schema advertised to the model."""

    name: str
    description: str
    parameters: dict

    def to_wire(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass
class Choice:
    message: Message
    index: int = 0
    finish_reason: str | None = None


@dataclass
class ChatCompletion:
    """A buffered (non-streaming) chat completion."""

    choices: list[Choice]
    model: str | None = None

    @classmethod
    def from_wire(cls, data: Any) -> ChatCompletion:
        if not isinstance(data, dict):
            raise DecodeError("completion must be a JSON object")
        raw_choices = data.get("choices")
        if not isinstance(raw_choices, list):
            raise DecodeError("completion has no 'choices' list")

        choices: list[Choice] = []
        for idx, raw in enumerate(raw_choices):
            if not isinstance(raw, dict) or "message" not in raw:
                raise DecodeError(f"choice {idx} has no 'message'")
            choices.append(
                Choice(
                    message=Message.from_wire(raw["message"]),
                    index=raw.get("index", idx),
                    finish_reason=raw.get("finish_reason"),
                )
            )
        return cls(choices=choices, model=data.get("model"))


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolCallDelta:
    fragment: ToolCallRequest


@dataclass(frozen=True)
class Finished:
    final_text: str


@dataclass(frozen=True)
class ToolCallsReady:
    """
    The model finished requesting tools.

    *content* is any text the model streamed before switching to tool calls.
    """

    calls: tuple[ToolCallRequest, ...]
    content: str = ""


StreamEvent = Union[TextDelta, ToolCallDelta, Finished, ToolCallsReady]
