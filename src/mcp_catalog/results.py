"""Uniform result envelope for tool calls and helpers for prompt messages."""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from mcp import types


@dataclass
class ToolContent:
    """One item of a tool result.

    ``text`` is always a human-readable or JSON rendering of the result.
    ``artifact`` carries the structured value for programmatic callers as
    ``{"type": "json" | "dictionary", "data": ...}``.
    """
    text: str
    type: str = "text"
    artifact: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type, "text": self.text}
        if self.artifact is not None:
            data["artifact"] = self.artifact
        return data

    def to_mcp(self) -> types.TextContent:
        return types.TextContent(type="text", text=self.text)


def to_tool_content(result: Any) -> List[ToolContent]:
    """Wrap a raw tool return value in the envelope."""
    if isinstance(result, ToolContent):
        return [result]
    if isinstance(result, list) and result and all(isinstance(r, ToolContent) for r in result):
        return result
    if isinstance(result, str):
        return [ToolContent(text=result)]
    if isinstance(result, list):
        return [ToolContent(text=json.dumps(result, default=str), artifact={"type": "json", "data": result})]
    if isinstance(result, dict):
        return [
            ToolContent(text=json.dumps(result, default=str), artifact={"type": "dictionary", "data": result})
        ]
    return [ToolContent(text=str(result))]


def user_message(text: str) -> types.PromptMessage:
    return types.PromptMessage(role="user", content=types.TextContent(type="text", text=text))


def assistant_message(text: str) -> types.PromptMessage:
    return types.PromptMessage(role="assistant", content=types.TextContent(type="text", text=text))
