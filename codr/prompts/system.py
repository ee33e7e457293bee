"""System prompt builder and loader."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from codr.errors import ConfigError
from codr.tools.base import Tool

if TYPE_CHECKING:
    from codr.config import PromptConfig

logger = logging.getLogger(__name__)


def build_system_prompt(tools: list[Tool] | None = None) -> str:
    """
    Build the built-in system prompt.

    Assembles the assistant's role, the tool rules and a listing of the
    registered tools into a single prompt string.
    """
    sections: list[str] = []

    sections.append(
        "You are a coding assistant working inside the user's project directory. "
        "You can read, write and list files through your tools. "
        "When the user asks you to change a file, use your tools to do it "
        "instead of telling the user what to type."
    )

    sections.append(TOOL_DISCIPLINE_SECTION)
    sections.append(OUTPUT_SECTION)

    if tools:
        tool_lines = []
        for t in tools:
            risk = t.risk_level.name
            tool_lines.append(f"- **{t.name}** [{risk}]: {t.description}")
        sections.append("## Available Tools\n\n" + "\n".join(tool_lines))

    return "\n\n".join(sections)


def load_system_prompt(prompt_cfg: PromptConfig, tools: list[Tool] | None = None) -> str:
    """
    Resolve the system prompt text.

    Inline ``system_prompt`` wins, then the file at ``system_prompt_path``,
    then the built-in prompt.  A configured file that cannot be read is a
    ``ConfigError``.
    """
    if prompt_cfg.system_prompt:
        return prompt_cfg.system_prompt

    if prompt_cfg.system_prompt_path:
        path = Path(prompt_cfg.system_prompt_path).expanduser()
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(
                f"Unable to read system prompt file {path}: {e}",
                code="system_prompt_unreadable",
            ) from e
        logger.debug("Loaded system prompt from %s", path)
        return text

    return build_system_prompt(tools)


TOOL_DISCIPLINE_SECTION = """## Tool Discipline

- Read a file before replacing its content.
- Use `get_folder_files` to discover the layout before guessing paths.
- Create a missing folder with `create_folder` before writing into it.
- If a tool returns an error, report it clearly and try a different approach."""

OUTPUT_SECTION = """## Output Conventions

- Answer in Markdown.
- Put code in fenced blocks tagged with the language.
- Keep explanations short and say which files you changed."""
