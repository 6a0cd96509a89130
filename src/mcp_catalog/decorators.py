"""Decorators for marking methods as MCP tools and prompts."""

from functools import wraps
from typing import Any, Callable, Optional


def _mark(func: Callable, kind: str, name: Optional[str], description: Optional[str]) -> Callable:
    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        return await func(*args, **kwargs)

    setattr(wrapper, f"_mcp_{kind}", True)
    setattr(wrapper, f"_mcp_{kind}_name", name or func.__name__.replace("_", "-"))
    setattr(wrapper, f"_mcp_{kind}_description", description)
    return wrapper


def mcp_tool(
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> Callable[[Callable], Callable]:
    """Decorator to mark a method as an MCP tool.

    Args:
        name: Optional custom name for the tool. If not provided, uses the method
            name with underscores replaced by dashes.
        description: Optional description override. If not provided, uses the
            first line of the method's docstring.

    Example:
        @mcp_tool(name="search-emails")
        async def search_emails(self, query: str) -> List[Dict[str, str]]:
            '''Searches emails based on a query.'''
            ...
    """
    def decorator(func: Callable) -> Callable:
        return _mark(func, "tool", name, description)

    return decorator


def mcp_prompt(
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> Callable[[Callable], Callable]:
    """Decorator to mark a method as an MCP prompt.

    Prompt arguments are taken from the method's string parameters; their
    descriptions come from the ``Args:`` section of the docstring. The method
    returns a list of ``mcp.types.PromptMessage``.
    """
    def decorator(func: Callable) -> Callable:
        return _mark(func, "prompt", name, description)

    return decorator
