"""JSON-schema validation of tool arguments."""

import jsonschema

from codr.errors import ToolArgumentError
from codr.tools.base import Tool, normalize_schema
from codr.types import ErrorCode


class ToolValidator:
    @staticmethod
    def validate(tool: Tool, arguments: dict) -> None:
        """Raise ``ToolArgumentError`` if *arguments* do not fit the tool's schema."""
        try:
            jsonschema.validate(
                instance=arguments,
                schema=normalize_schema(tool.parameters),
            )
        except jsonschema.ValidationError as e:
            where = "/".join(str(p) for p in e.absolute_path)
            detail = f"{where}: {e.message}" if where else e.message
            raise ToolArgumentError(
                f"Invalid arguments for {tool.name}: {detail}",
                code=ErrorCode.VALIDATION_ERROR,
            ) from e
