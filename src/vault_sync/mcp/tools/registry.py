"""ToolSpec and ToolRegistry for MCP tool dispatch.

This module provides a centralized registry for MCP tools that supports
a read-only mode, enabling operators to expose only the tools that never
change the vault or the remote repository.

Key concepts:
- ToolSpec: Immutable dataclass linking a Tool definition, its read-only
  flag, and an async handler with standardized signature
  (engine, args) -> CallToolResult.
- ToolRegistry: Filters specs at construction time, then provides
  list_tools() and call_tool() dispatch with error translation.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import mcp.types as types

from ...core.client import RemoteAPIError
from ...sync.engine import SyncEngine
from ...sync.errors import SyncError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable specification for a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema).
        read_only: ``True`` if the tool never writes locally or remotely.
        handler: Async handler with signature (engine, args) -> CallToolResult.
    """

    tool: types.Tool
    read_only: bool
    handler: Callable[[SyncEngine, dict], Awaitable[types.CallToolResult]]


class ToolRegistry:
    """Registry of ToolSpecs with an optional read-only filter.

    If read_only is False, all specs are included.  Otherwise only specs
    flagged read-only are registered.
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
        engine: SyncEngine,
    ) -> types.CallToolResult:
        """Dispatch tool call to registered handler.

        Provides centralized error handling for remote API failures, sync
        errors, validation errors, and unexpected exceptions, translating
        them into structured CallToolResult responses with corrective
        actions.

        Args:
            name: Tool name to invoke.
            arguments: Tool arguments (may be None).
            engine: SyncEngine instance.

        Returns:
            CallToolResult from the handler.

        Raises:
            ValueError: If tool name is not registered (unknown or filtered out).
        """
        from .errors import (
            build_error_response,
            translate_remote_error,
            translate_sync_error,
        )

        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        args = arguments or {}
        try:
            return await spec.handler(engine, args)
        except RemoteAPIError as e:
            logger.warning("Remote API error in %s: %s", name, e)
            return translate_remote_error(e)
        except SyncError as e:
            logger.warning("Sync error in %s: %s", name, e)
            return translate_sync_error(e)
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
                "Check the server log and retry.",
            )
