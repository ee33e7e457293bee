"""Append-only conversation history owned by one orchestrator."""

from __future__ import annotations

from typing import Iterator, Sequence

from codr.llm.types import Message, Role


class Conversation:
    """
    Ordered message history that starts with a system message.

    Only the owning orchestrator appends or commits; everyone else reads
    through ``snapshot()``, which returns a copy.
    """

    def __init__(self, system_prompt: str) -> None:
        self._messages: list[Message] = [Message.system(system_prompt)]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.snapshot())

    @property
    def system_message(self) -> Message:
        return self._messages[0]

    def snapshot(self) -> list[Message]:
        return list(self._messages)

    def append(self, message: Message) -> None:
        if message.role is Role.SYSTEM:
            raise ValueError("The system message is set once at construction")
        self._messages.append(message)

    def commit(self, working: Sequence[Message]) -> None:
        """
        Replace the history with *working*, a copy that was extended from a
        snapshot of this conversation.
        """
        current = len(self._messages)
        if len(working) < current or list(working[:current]) != self._messages:
            raise ValueError("Working copy does not extend the current conversation")
        self._messages.extend(working[current:])

    def reset(self) -> None:
        """Drop everything but the system message."""
        del self._messages[1:]
