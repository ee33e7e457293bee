"""Interactive chat session handler."""

from __future__ import annotations

import asyncio
import logging

from rich.console import Console

from codr.cli.output import OutputFormatter
from codr.errors import CodrError
from codr.orchestrator.core import Orchestrator
from codr.render.fences import resegment_turn, split_text

logger = logging.getLogger(__name__)


class ChatHandler:
    """
    Manages the interactive chat loop.

    Renders answers segment by segment, handles inline commands and keeps
    the loop alive when a turn fails.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        console: Console | None = None,
        *,
        stream: bool = True,
    ) -> None:
        self.orchestrator = orchestrator
        self.console = console or Console()
        self.formatter = OutputFormatter(self.console)
        self.stream = stream
        self._running = True

    async def handle_command(self, command: str) -> bool:
        """
        Handle inline commands. Returns True if the command was handled.
        """
        cmd = command.strip().split(None, 1)[0].lower()

        if cmd in ("/quit", "/exit"):
            self._running = False
            self.console.print("[dim]Goodbye.[/dim]")
            return True

        if cmd == "/history":
            self.formatter.format_history(self.orchestrator.conversation.snapshot())
            return True

        if cmd == "/tools":
            self.formatter.format_tool_list(self.orchestrator.registry.list())
            return True

        if cmd == "/reset":
            self.orchestrator.reset()
            self.console.print("[dim]Conversation cleared.[/dim]")
            return True

        if cmd == "/help":
            self.console.print(
                "  [bold]Commands:[/bold]\n"
                "  /quit     - Exit the chat\n"
                "  /history  - Show the conversation\n"
                "  /tools    - List available tools\n"
                "  /reset    - Start over, keeping the system prompt\n"
                "  /help     - Show this help\n"
            )
            return True

        return False

    async def handle_input(self, user_input: str) -> None:
        """Run one turn and render the answer."""
        try:
            if self.stream:
                turn = await self.orchestrator.message_stream(user_input)
                async with turn:
                    async for segment in resegment_turn(turn):
                        self.formatter.format_segment(segment)
            else:
                answer = await self.orchestrator.message(user_input)
                self.formatter.format_answer(split_text(answer))
        except CodrError as e:
            logger.debug("Turn failed", exc_info=True)
            self.formatter.format_error(e)

    async def run_loop(self) -> None:
        """Main interactive loop."""
        self.console.print(
            "[bold]codr[/bold] - coding assistant\n"
            "[dim]Type /help for commands, /quit to exit.[/dim]\n"
        )

        loop = asyncio.get_running_loop()
        while self._running:
            try:
                user_input = await loop.run_in_executor(
                    None, lambda: input("you> ").strip()
                )
            except (EOFError, KeyboardInterrupt):
                self.console.print("\n[dim]Goodbye.[/dim]")
                break

            if not user_input:
                continue

            if user_input.startswith("/"):
                handled = await self.handle_command(user_input)
                if handled:
                    continue

            await self.handle_input(user_input)
