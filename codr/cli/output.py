"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json
from typing import Iterable

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from codr.llm.types import Message, Role, ToolCallRequest
from codr.render.fences import Segment
from codr.tools.base import Tool, ToolRisk

RISK_COLORS = {
    ToolRisk.READ_ONLY: "green",
    ToolRisk.WRITE: "yellow",
}

ROLE_COLORS = {
    Role.SYSTEM: "dim",
    Role.USER: "blue",
    Role.ASSISTANT: "green",
    Role.TOOL: "cyan",
}


class OutputFormatter:
    """Rich-based output formatting for the codr CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def format_tool_list(self, tools: list[Tool]) -> None:
        if not tools:
            self.console.print("[dim]No tools registered.[/dim]")
            return

        table = Table(title="Registered Tools", show_lines=True)
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Risk", no_wrap=True)
        table.add_column("Description")

        for t in tools:
            color = RISK_COLORS.get(t.risk_level, "white")
            table.add_row(t.name, Text(t.risk_level.name, style=color), t.description)

        self.console.print(table)

    def format_tool_info(self, tool: Tool) -> None:
        color = RISK_COLORS.get(tool.risk_level, "white")
        self.console.print(Panel(
            f"[bold]{tool.name}[/bold]\n\n"
            f"[dim]Risk:[/dim] [{color}]{tool.risk_level.name}[/{color}]\n\n"
            f"{tool.description}",
            title=f"Tool: {tool.name}",
        ))
        schema_json = json.dumps(tool.to_definition().parameters, indent=2)
        self.console.print(Syntax(schema_json, "json", theme="monokai"))

    def format_tool_call(self, call: ToolCallRequest) -> None:
        args = call.arguments if len(call.arguments) <= 120 else call.arguments[:117] + "..."
        self.console.print(Text.assemble(
            "  ", ("tool", "yellow"), " ", (call.name or "?", "bold"), " ", (args, "dim")
        ))

    def format_segment(self, segment: Segment) -> None:
        """Prose goes through Markdown, code blocks through Syntax."""
        if segment.is_code:
            self.console.print(Syntax(
                segment.text.rstrip("\n"),
                segment.language or "text",
                theme="monokai",
                word_wrap=True,
            ))
            if not segment.closed:
                self.console.print("[dim](code block not closed)[/dim]")
        elif segment.text.strip():
            self.console.print(Markdown(segment.text))

    def format_answer(self, segments: Iterable[Segment]) -> None:
        for seg in segments:
            self.format_segment(seg)

    def format_history(self, messages: list[Message]) -> None:
        if len(messages) <= 1:
            self.console.print("[dim]No messages yet.[/dim]")
            return

        for msg in messages:
            color = ROLE_COLORS.get(msg.role, "white")
            if msg.tool_calls:
                names = ", ".join(c.name or "?" for c in msg.tool_calls)
                content = f"-> {names}"
            else:
                content = (msg.content or "").replace("\n", " ")
                if len(content) > 100:
                    content = content[:97] + "..."
            line = Text("  ")
            line.append(f"{msg.role.value:>10s}", style=color)
            line.append(f"  {content}")
            self.console.print(line)

    def format_config(self, config: dict) -> None:
        config_json = json.dumps(config, indent=2, default=str)
        self.console.print(Syntax(config_json, "json", theme="monokai"))

    def format_error(self, error: Exception) -> None:
        self.console.print(Text.assemble(("Error: ", "red"), str(error)))
