from __future__ import annotations

import logging
from typing import Any

from codr.errors import ToolExecutionError
from codr.llm.types import ToolDefinition
from codr.tools.base import Tool, ToolRisk
from codr.tools.validation import ToolValidator
from codr.types import ErrorCode

logger = logging.getLogger(__name__)


class ToolRegistry:
    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool, *, overwrite: bool = False) -> None:
        if tool.name in self._tools and not overwrite:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def require(self, name: str) -> Tool:
        t = self.get(name)
        if not t:
            raise KeyError(name)
        return t

    def list(self, max_risk: ToolRisk | None = None) -> list[Tool]:
        tools = list(self._tools.values())
        if max_risk is None:
            return sorted(tools, key=lambda t: t.name)
        return sorted(
            [t for t in tools if t.risk_level <= max_risk],
            key=lambda t: t.name,
        )

    def list_schemas(self) -> list[ToolDefinition]:
        return [t.to_definition() for t in self.list()]

    async def execute(self, name: str, args: dict) -> Any:
        """
        Look up, validate and run a tool; return its JSON result.

        Raises ``ToolArgumentError`` when *args* do not match the tool's
        schema and ``ToolExecutionError`` for an unknown tool or a failed run.
        """
        tool = self.get(name)
        if tool is None:
            raise ToolExecutionError(f"Unknown tool: {name}", code=ErrorCode.UNKNOWN_TOOL)

        ToolValidator.validate(tool, args)

        logger.info("Running tool %s", name)
        try:
            result = await tool.execute(**args)
        except Exception as e:
            logger.warning("Tool %s raised: %s", name, e)
            raise ToolExecutionError(str(e), code=ErrorCode.TOOL_EXCEPTION) from e

        if not result.success:
            logger.warning("Tool %s failed: %s", name, result.error)
            raise ToolExecutionError(
                result.error or f"{name} failed",
                code=result.error_code or ErrorCode.TOOL_EXCEPTION,
            )
        return result.data
