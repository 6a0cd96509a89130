"""Base class for annotation-based MCP servers."""

import argparse
import asyncio
import inspect
import logging
import sys
from typing import Any, Callable, Dict, List, Optional

import mcp.server.stdio
from mcp import types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .errors import MissingArgumentsError, UnknownPromptError, UnknownToolError
from .results import ToolContent, to_tool_content
from .schema_generator import extract_parameter_schema, first_docstring_line

logger = logging.getLogger(__name__)


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


class BaseMCPServer:
    """Base class for MCP servers built from annotated methods.

    Inherit from this class and use ``@mcp_tool`` / ``@mcp_prompt`` to mark
    methods that should be exposed. The catalog is built once at construction
    and can be used directly (``list_tools``, ``call_tool``, ``get_prompt``)
    or served over MCP stdio with ``run``.

    Example:
        class MailboxServer(BaseMCPServer):
            def __init__(self, service):
                super().__init__("mailbox", "0.1.0")
                self.service = service

            @mcp_tool(name="read-email")
            async def read_email(self, email_id: str) -> Dict[str, str]:
                '''Retrieves given email content.

                Args:
                    email_id: Email ID
                '''
                return await self.service.read_email(email_id)
    """

    def __init__(
        self,
        server_name: str = "mcp-server",
        server_version: str = "0.1.0",
        tool_prefix: str = "",
        log_level: str = "INFO",
    ):
        """Initialize the MCP server.

        Args:
            server_name: Name of the MCP server
            server_version: Version of the MCP server
            tool_prefix: Prefix to add to all tool names (e.g. "gmail_" exposes "gmail_read-email")
            log_level: Root logging level
        """
        self.server_name = server_name
        self.server_version = server_version
        self.tool_prefix = tool_prefix
        self.server = Server(server_name)
        self._tools: Dict[str, Callable] = {}
        self._tool_definitions: Dict[str, types.Tool] = {}
        self._prompts: Dict[str, Callable] = {}
        self._prompt_definitions: Dict[str, types.Prompt] = {}

        logging.basicConfig(
            level=log_level,
            format="%(asctime)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s",
        )

        self._discover()
        self._register_handlers()

    def _discover(self) -> None:
        """Collect methods decorated with @mcp_tool and @mcp_prompt."""
        for name, method in inspect.getmembers(self, predicate=inspect.ismethod):
            if getattr(method, "_mcp_tool", False):
                tool_name = f"{self.tool_prefix}{getattr(method, '_mcp_tool_name', name)}"
                self._tools[tool_name] = method
                self._tool_definitions[tool_name] = types.Tool(
                    name=tool_name,
                    description=self._description(method, "tool") or f"Tool: {tool_name}",
                    inputSchema=extract_parameter_schema(method),
                )
                logger.debug(f"Discovered MCP tool: {tool_name}")
            elif getattr(method, "_mcp_prompt", False):
                prompt_name = getattr(method, "_mcp_prompt_name", name)
                schema = extract_parameter_schema(method)
                required = set(schema.get("required", []))
                self._prompts[prompt_name] = method
                self._prompt_definitions[prompt_name] = types.Prompt(
                    name=prompt_name,
                    description=self._description(method, "prompt"),
                    arguments=[
                        types.PromptArgument(
                            name=arg_name,
                            description=arg_schema.get("description"),
                            required=arg_name in required,
                        )
                        for arg_name, arg_schema in schema["properties"].items()
                    ],
                )
                logger.debug(f"Discovered MCP prompt: {prompt_name}")

    @staticmethod
    def _description(method: Callable, kind: str) -> Optional[str]:
        return getattr(method, f"_mcp_{kind}_description", None) or first_docstring_line(method)

    @staticmethod
    def _accepted_arguments(method: Callable, arguments: Dict[str, Any]) -> Dict[str, Any]:
        params = inspect.signature(method).parameters
        return {key: value for key, value in arguments.items() if key in params}

    def list_tools(self) -> List[types.Tool]:
        """Return the tool catalog."""
        return list(self._tool_definitions.values())

    def list_prompts(self) -> List[types.Prompt]:
        """Return the prompt catalog."""
        return list(self._prompt_definitions.values())

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> List[ToolContent]:
        """Validate arguments, run the tool and wrap its result.

        Raises:
            UnknownToolError: If no tool is registered under ``name``
            MissingArgumentsError: If a required argument is absent or empty;
                the tool is not invoked
        """
        if name not in self._tools:
            raise UnknownToolError(name)

        arguments = arguments or {}
        required = self._tool_definitions[name].inputSchema.get("required", [])
        missing = [param for param in required if _is_blank(arguments.get(param))]
        if missing:
            raise MissingArgumentsError(missing)

        method = self._tools[name]
        logger.info(f"Calling tool: {name}")
        result = await method(**self._accepted_arguments(method, arguments))
        return to_tool_content(result)

    async def get_prompt(self, name: str, arguments: Optional[Dict[str, str]] = None) -> types.GetPromptResult:
        """Build a prompt's message sequence.

        Raises:
            UnknownPromptError: If no prompt is registered under ``name``
            MissingArgumentsError: If a required argument is absent or empty
        """
        if name not in self._prompts:
            raise UnknownPromptError(name)

        arguments = arguments or {}
        definition = self._prompt_definitions[name]
        missing = [
            arg.name for arg in definition.arguments or []
            if arg.required and _is_blank(arguments.get(arg.name))
        ]
        if missing:
            raise MissingArgumentsError(missing)

        method = self._prompts[name]
        messages = await method(**self._accepted_arguments(method, arguments))
        return types.GetPromptResult(description=definition.description, messages=messages)

    def _register_handlers(self) -> None:
        """Register MCP protocol handlers."""

        @self.server.list_tools()
        async def handle_list_tools() -> List[types.Tool]:
            tools = self.list_tools()
            logger.info(f"Listed {len(tools)} tools")
            return tools

        @self.server.call_tool()
        async def handle_call_tool(name: str, arguments: Optional[Dict[str, Any]]) -> List[types.TextContent]:
            if name not in self._tools:
                raise UnknownToolError(name)
            try:
                contents = await self.call_tool(name, arguments)
            except Exception as e:
                logger.error(f"Error executing tool {name}: {e}", exc_info=True)
                return [types.TextContent(type="text", text=f"Error: {e!s}")]
            return [content.to_mcp() for content in contents]

        @self.server.list_prompts()
        async def handle_list_prompts() -> List[types.Prompt]:
            return self.list_prompts()

        @self.server.get_prompt()
        async def handle_get_prompt(name: str, arguments: Optional[Dict[str, str]]) -> types.GetPromptResult:
            return await self.get_prompt(name, arguments)

        @self.server.list_resources()
        async def handle_list_resources() -> List[types.Resource]:
            return []

    async def run(self) -> None:
        """Serve the catalog over MCP stdio."""
        logger.info(f"Starting {self.server_name} v{self.server_version}")

        async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
            await self.server.run(
                read_stream,
                write_stream,
                InitializationOptions(
                    server_name=self.server_name,
                    server_version=self.server_version,
                    capabilities=self.server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                ),
            )

    def describe_tools(self) -> None:
        """Print human-readable descriptions of all tools and prompts."""
        print(f"\n{self.server_name} v{self.server_version}")
        print("=" * 60)
        print("\nAvailable Tools:\n")

        for tool in sorted(self.list_tools(), key=lambda t: t.name):
            print(f"Tool: {tool.name}")
            print(f"  Description: {tool.description or 'No description available'}")
            properties = tool.inputSchema.get("properties", {})
            if properties:
                print("  Parameters:")
                required = tool.inputSchema.get("required", [])
                for param_name, param_info in properties.items():
                    param_type = param_info.get("type", "any")
                    if param_type == "array" and "items" in param_info:
                        param_type = f"array[{param_info['items'].get('type', 'any')}]"
                    flag = "(required)" if param_name in required else "(optional)"
                    print(f"    - {param_name}: {param_type} {flag}")
                    print(f"      {param_info.get('description', 'No description')}")
            else:
                print("  Parameters: None")
            print()

        if self._prompt_definitions:
            print("Available Prompts:\n")
            for prompt in sorted(self.list_prompts(), key=lambda p: p.name):
                print(f"Prompt: {prompt.name}")
                print(f"  Description: {prompt.description or 'No description available'}")
                for arg in prompt.arguments or []:
                    flag = "(required)" if arg.required else "(optional)"
                    print(f"    - {arg.name} {flag}: {arg.description}")
                print()

    def parse_args(self, args: Optional[List[str]] = None) -> argparse.Namespace:
        """Parse command line arguments.

        Args:
            args: Optional list of arguments to parse. If None, uses sys.argv.

        Returns:
            Parsed arguments namespace
        """
        parser = argparse.ArgumentParser(
            prog=self.server_name,
            description=f"{self.server_name} - MCP server",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        parser.add_argument(
            "--describe",
            action="store_true",
            help="Show available tools and prompts and their parameters",
        )
        self.add_arguments(parser)
        return parser.parse_args(args)

    def add_arguments(self, parser: argparse.ArgumentParser) -> None:
        """Override in subclasses to add custom command line arguments."""
        pass

    def configure(self, parsed_args: argparse.Namespace) -> None:
        """Override in subclasses to apply parsed arguments before ``run``."""
        pass

    def main(self, args: Optional[List[str]] = None) -> None:
        """Main entry point for the server.

        Args:
            args: Optional list of command line arguments. If None, uses sys.argv.
        """
        parsed_args = self.parse_args(args)

        if parsed_args.describe:
            self.describe_tools()
            sys.exit(0)

        self.configure(parsed_args)
        asyncio.run(self.run())
