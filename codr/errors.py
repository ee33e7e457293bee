"""
Error taxonomy.

Transport, remote and decode failures are fatal to the current turn and
propagate to the caller.  Tool argument and execution failures are
recovered inside the tool loop: they are turned into tool-result messages
so the model can correct itself on the next round.
"""

from __future__ import annotations


class CodrError(Exception):
    """Base class for every error raised by codr."""

    def __init__(self, message: str, code: str = ""):
        super().__init__(message)
        self.code = code


class ConfigError(CodrError):
    """Required configuration is missing or invalid."""


# ---------------------------------------------------------------------------
# Remote endpoint
# ---------------------------------------------------------------------------


class TransportError(CodrError):
    """The request could not be sent or the connection broke."""


class RemoteError(CodrError):
    """The endpoint answered with a non-2xx status."""

    def __init__(self, status: int, body: str):
        super().__init__(f"Error {status}: {body}", code="remote_error")
        self.status = status
        self.body = body


class DecodeError(CodrError):
    """The response body does not have the expected shape."""


class EmptyResponseError(CodrError):
    """The endpoint returned zero choices."""


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class ToolError(CodrError):
    """Base class for failures that are reported back to the model."""


class ToolArgumentError(ToolError):
    """Tool-call arguments are not valid JSON or do not match the schema."""


class ToolExecutionError(ToolError):
    """The tool ran (or was looked up) and failed."""


# ---------------------------------------------------------------------------
# Turn control
# ---------------------------------------------------------------------------


class TurnLimitError(CodrError):
    """The model kept requesting tools past the configured round limit."""


class ConversationBusyError(CodrError):
    """A turn is already running against this conversation."""
