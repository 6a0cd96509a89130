"""MCP Catalog - build MCP servers from annotated tool and prompt methods.

Tools and prompts are declared with decorators on an async server class. The
catalog and argument schemas are derived from signatures and docstrings,
results are wrapped in a uniform envelope, and the same catalog can be served
over MCP stdio.
"""

from .base import BaseMCPServer
from .decorators import mcp_prompt, mcp_tool
from .errors import MissingArgumentsError, ToolError, UnknownPromptError, UnknownToolError
from .results import ToolContent, assistant_message, user_message

__all__ = [
    "BaseMCPServer",
    "MissingArgumentsError",
    "ToolContent",
    "ToolError",
    "UnknownPromptError",
    "UnknownToolError",
    "assistant_message",
    "mcp_prompt",
    "mcp_tool",
    "user_message",
]
