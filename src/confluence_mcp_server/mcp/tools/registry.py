"""ToolSpec and ToolRegistry for read-only tool filtering.

This module provides a centralized registry for MCP tools that can hide
every tool that writes to Confluence, enabling operators to expose a
read-only server to AI agents.

Key concepts:
- ToolSpec: Immutable dataclass linking a Tool definition, a read-only flag,
  and an async handler with standardized signature (client, args) -> CallToolResult.
- ToolRegistry: Filters specs at construction time, then provides
  list_tools() and call_tool() dispatch with error translation.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import mcp.types as types

from ...core.client import ConfluenceClient
from ...errors import DomainError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable specification for a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema).
        handler: Async handler with signature (client, args) -> CallToolResult.
        read_only: True if the tool never writes to Confluence.
    """

    tool: types.Tool
    handler: Callable[
        [ConfluenceClient, dict], Awaitable[types.CallToolResult]
    ]
    read_only: bool = False


class ToolRegistry:
    """Registry of ToolSpecs with optional read-only filtering.

    If read_only is True, only specs flagged read-only are included.
    """

    def __init__(self, specs: list[ToolSpec], read_only: bool = False):
        self._specs: dict[str, ToolSpec] = {}
        for spec in specs:
            if not read_only or spec.read_only:
                self._specs[spec.tool.name] = spec

    def list_tools(self) -> list[types.Tool]:
        """Return list of types.Tool for all registered specs."""
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        """Return number of registered tools."""
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        client: ConfluenceClient,
    ) -> types.CallToolResult:
        """Dispatch tool call to registered handler.

        Provides centralized error handling for domain errors, validation
        errors, and unexpected exceptions, translating them into structured
        CallToolResult responses with corrective actions.

        Args:
            name: Tool name to invoke.
            arguments: Tool arguments (may be None).
            client: ConfluenceClient instance.

        Returns:
            CallToolResult from the handler.

        Raises:
            ValueError: If tool name is not registered (unknown or filtered out).
        """
        from .errors import build_error_response, translate_domain_error

        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        args = arguments or {}
        try:
            return await spec.handler(client, args)
        except DomainError as e:
            logger.warning("%s failed in %s: %s", e.code, name, e.message)
            return translate_domain_error(e)
        except ValueError as e:
            return build_error_response(
                "validation_error",
                str(e),
                "Check parameter values and retry.",
            )
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return build_error_response(
                "server_error",
                str(e),
                "Check Confluence connectivity or retry later.",
            )
