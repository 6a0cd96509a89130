"""Errors raised by the catalog when a call cannot be dispatched."""

from typing import Sequence


class ToolError(ValueError):
    """Base class for dispatch errors; maps to a 400 response."""

    status_code = 400


class UnknownToolError(ToolError):
    """Raised when no tool with the requested name is registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class UnknownPromptError(ToolError):
    """Raised when no prompt with the requested name is registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Prompt not found: {name}")
        self.name = name


class MissingArgumentsError(ToolError):
    """Raised before dispatch when required arguments are absent or empty."""

    def __init__(self, missing: Sequence[str]) -> None:
        super().__init__(f"Missing required parameters: {', '.join(missing)}")
        self.missing = list(missing)
