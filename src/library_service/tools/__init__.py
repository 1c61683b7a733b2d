"""MCP tools exposed by the Library Service."""

from .circulation import circulation_tools

all_tools = [*circulation_tools]

__all__ = ["all_tools"]
