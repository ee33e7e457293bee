"""Tool interface, registry and the built-in file-system tools."""

from codr.tools.base import Tool, ToolRisk
from codr.tools.file_tools import build_default_registry
from codr.tools.registry import ToolRegistry

__all__ = ["Tool", "ToolRegistry", "ToolRisk", "build_default_registry"]
