"""
File-system tools exposed to the model.

Relative paths are resolved against the tool's ``root`` (the process
working directory unless one is given).  I/O failures are reported as
unsuccessful ``ToolResult`` objects so the model sees the OS error text.
"""

from __future__ import annotations

from pathlib import Path

from codr.tools.base import Tool, ToolRisk
from codr.tools.registry import ToolRegistry
from codr.types import ErrorCode, ToolResult

STATUS_SUCCESS = {"status": "success"}

_FILE_PATH = {"type": "string", "description": "Path to the file"}
_CONTENT = {"type": "string", "description": "Text content"}


def _io_error(exc: OSError) -> ToolResult:
    code = ErrorCode.NOT_FOUND if isinstance(exc, FileNotFoundError) else ErrorCode.TOOL_EXCEPTION
    return ToolResult(success=False, error=str(exc), error_code=code)


class _FileTool(Tool):
    def __init__(self, root: str | Path | None = None) -> None:
        self._root = Path(root) if root is not None else None

    def _resolve(self, raw: str) -> Path:
        path = Path(raw).expanduser()
        if self._root is not None and not path.is_absolute():
            path = self._root / path
        return path


class WriteFileTool(_FileTool):
    @property
    def name(self) -> str:
        return "write_file"

    @property
    def description(self) -> str:
        return (
            "Writes content to a file. If trying to write a file and the folder "
            "does not exist, use create_folder tool to create a folder first"
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "file_path": {**_FILE_PATH, "description": "Path to the file to write"},
                "content": {**_CONTENT, "description": "Content to write to the file"},
            },
            "required": ["file_path", "content"],
        }

    @property
    def risk_level(self) -> ToolRisk:
        return ToolRisk.WRITE

    async def execute(self, **kwargs) -> ToolResult:
        try:
            self._resolve(kwargs["file_path"]).write_text(kwargs["content"], encoding="utf-8")
        except OSError as e:
            return _io_error(e)
        return ToolResult(success=True, data=STATUS_SUCCESS)


class ReplaceFileContentTool(WriteFileTool):
    """Same operation as ``write_file``; kept under its own name for the model."""

    @property
    def name(self) -> str:
        return "replace_file_content"

    @property
    def description(self) -> str:
        return "Replaces content of a file with a new one"

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "file_path": {**_FILE_PATH, "description": "Path to the file to edit"},
                "content": {**_CONTENT, "description": "Content to write to the file"},
            },
            "required": ["file_path", "content"],
        }


class ReadFileTool(_FileTool):
    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return "Reads content from a file"

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "file_path": {**_FILE_PATH, "description": "Path to the file to read"},
            },
            "required": ["file_path"],
        }

    async def execute(self, **kwargs) -> ToolResult:
        try:
            content = self._resolve(kwargs["file_path"]).read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            return ToolResult(
                success=False,
                error=f"File is not UTF-8 text: {e}",
                error_code=ErrorCode.TOOL_EXCEPTION,
            )
        except OSError as e:
            return _io_error(e)
        return ToolResult(success=True, data={"content": content})


class AppendToFileTool(_FileTool):
    @property
    def name(self) -> str:
        return "append_to_file"

    @property
    def description(self) -> str:
        return "Appends content to a file"

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "file_path": {**_FILE_PATH, "description": "Path to the file to append to"},
                "content": {**_CONTENT, "description": "Content to append to the file"},
            },
            "required": ["file_path", "content"],
        }

    @property
    def risk_level(self) -> ToolRisk:
        return ToolRisk.WRITE

    async def execute(self, **kwargs) -> ToolResult:
        path = self._resolve(kwargs["file_path"])
        # The file must already exist; appending never creates it.
        try:
            with path.open("r+", encoding="utf-8") as f:
                f.seek(0, 2)
                f.write(kwargs["content"])
        except OSError as e:
            return _io_error(e)
        return ToolResult(success=True, data=STATUS_SUCCESS)


class CreateFolderTool(_FileTool):
    @property
    def name(self) -> str:
        return "create_folder"

    @property
    def description(self) -> str:
        return "Creates a new folder"

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "folder_path": {
                    "type": "string",
                    "description": "Path to the folder to create",
                },
            },
            "required": ["folder_path"],
        }

    @property
    def risk_level(self) -> ToolRisk:
        return ToolRisk.WRITE

    async def execute(self, **kwargs) -> ToolResult:
        try:
            self._resolve(kwargs["folder_path"]).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return _io_error(e)
        return ToolResult(success=True, data=STATUS_SUCCESS)


class GetFolderFilesTool(_FileTool):
    @property
    def name(self) -> str:
        return "get_folder_files"

    @property
    def description(self) -> str:
        return "Gets a list of files and folders in a directory, including nested contents"

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "folder_path": {
                    "type": "string",
                    "description": "Path to the folder to list files and subfolders from",
                },
                "recursive": {
                    "type": "boolean",
                    "description": "Whether to recursively list files in subfolders (default: true)",
                    "default": True,
                },
            },
            "required": ["folder_path"],
        }

    async def execute(self, **kwargs) -> ToolResult:
        folder = self._resolve(kwargs["folder_path"])
        recursive = kwargs.get("recursive", True)
        try:
            listing = _scan_directory(folder, recursive)
        except OSError as e:
            return _io_error(e)
        return ToolResult(success=True, data=listing)


def _scan_directory(path: Path, recursive: bool) -> dict:
    files: list[dict] = []
    folders: list[dict] = []

    for entry in sorted(path.iterdir(), key=lambda p: p.name):
        if entry.is_dir():
            folder: dict = {"name": entry.name, "path": str(entry)}
            if recursive:
                folder["contents"] = _scan_directory(entry, recursive)
            folders.append(folder)
        elif entry.is_file():
            files.append({"name": entry.name, "path": str(entry)})

    return {"files": files, "folders": folders}


FILE_TOOLS: tuple[type[_FileTool], ...] = (
    WriteFileTool,
    ReplaceFileContentTool,
    ReadFileTool,
    AppendToFileTool,
    CreateFolderTool,
    GetFolderFilesTool,
)


def build_default_registry(
    *,
    root: str | Path | None = None,
    disabled: list[str] | None = None,
    max_risk: ToolRisk | None = None,
) -> ToolRegistry:
    """Register the file tools, skipping *disabled* names and tools above *max_risk*."""
    registry = ToolRegistry()
    skip = set(disabled or [])
    for tool_cls in FILE_TOOLS:
        tool = tool_cls(root)
        if tool.name in skip:
            continue
        if max_risk is not None and tool.risk_level > max_risk:
            continue
        registry.register(tool)
    return registry
