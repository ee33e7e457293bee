"""codr -- a coding-assistant chat client with local file tools."""

__version__ = "0.1.0"
