"""MCP Server for vault synchronisation using stdio transport.

This module implements the Model Context Protocol server that enables
AI agents to synchronise a local vault with a remote repository and to
resolve sync conflicts themselves.

Transport: stdio (for Claude Desktop/Code integration)
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..core.async_utils import run_sync
from ..logger import setup_logging
from ..sync.engine import SyncEngine
from .lifespan import server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response
from .tools.registry import ToolSpec

logger = logging.getLogger(__name__)

# Initialize server instance
server = Server("vault-sync-server")

# Global engine instance (initialized in lifespan)
_engine: SyncEngine | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Ping tool (always available, read-only)
# ---------------------------------------------------------------------------


async def _handle_ping(
    engine: SyncEngine, args: dict
) -> types.CallToolResult:
    """Handle ping tool -- test repository connectivity."""
    try:
        name = await run_sync(engine.client.validate_connection)
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=f"Vault sync server connected successfully. Repository: {name}",
                )
            ]
        )
    except Exception as e:
        return types.CallToolResult(
            content=[
                types.TextContent(
                    type="text",
                    text=f"Repository connection failed: {e}. Check VAULT_SYNC_OWNER, VAULT_SYNC_REPO, VAULT_SYNC_TOKEN.",
                )
            ],
            isError=True,
        )


PING_SPEC = ToolSpec(
    tool=types.Tool(
        name="ping",
        description="Test vault sync server connectivity to the remote repository",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    read_only=True,
    handler=_handle_ping,
)


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_engine() -> SyncEngine:
    """Get the global SyncEngine instance.

    Raises:
        RuntimeError: If engine is not initialized
    """
    if _engine is None:
        raise RuntimeError(
            "SyncEngine not initialized. Server lifespan not started."
        )
    return _engine


def set_engine(engine: SyncEngine | None) -> None:
    """Set the global SyncEngine instance, or None to clear."""
    global _engine
    _engine = engine


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    """Set the global ToolRegistry instance, or None to clear."""
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List available vault sync tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    engine = get_engine()
    try:
        return await get_registry().call_tool(name, arguments, engine)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), validates the
    repository and loads the vault metadata via the lifespan manager, and
    starts the server with stdio transport for JSON-RPC communication.

    Args:
        config_overrides: Optional dict with config values to override
            (owner, repo, token, branch, vault_root, debug, log_file,
            read_only)
    """
    overrides = config_overrides or {}

    # Must run before stdio_server so nothing reaches stdout
    setup_logging(
        mode="mcp",
        debug=overrides.get("debug", False),
        log_file=overrides.get("log_file"),
    )

    read_only = overrides.get("read_only", False)
    all_specs = [PING_SPEC] + ALL_SPECS
    registry = ToolRegistry(all_specs, read_only=read_only)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(all_specs),
    )
    if read_only:
        print(
            f"Read-only mode ({registry.tool_count()} of {len(all_specs)} tools enabled)",
            file=sys.stderr,
        )

    set_registry(registry)

    # set_engine() is called here rather than in the lifespan so that
    # running this file as __main__ updates the same module globals.
    async with server_lifespan(config_overrides=overrides) as ctx:
        set_engine(ctx["engine"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="vault-sync-server",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(
                    read_stream, write_stream, init_options
                )
        finally:
            set_engine(None)
            set_registry(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Vault Sync Server - Model Context Protocol server for two-way vault synchronisation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or config.yml)
  vault-sync-server

  # Sync a specific vault against a specific repository
  vault-sync-server --vault ~/notes --owner alice --repo notes

  # Use another branch
  vault-sync-server --branch devices

  # Expose only tools that never change anything
  vault-sync-server --read-only

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr. Do not pipe stdin/stdout manually.
        """,
    )

    parser.add_argument(
        "--owner",
        help="Override repository owner (takes precedence over VAULT_SYNC_OWNER env var and config files)",
    )
    parser.add_argument(
        "--repo",
        help="Override repository name (takes precedence over VAULT_SYNC_REPO env var and config files)",
    )
    parser.add_argument(
        "--token",
        help="Override API token (takes precedence over VAULT_SYNC_TOKEN env var and config files)"
        " (visible in process list -- prefer VAULT_SYNC_TOKEN env var for security)",
    )
    parser.add_argument(
        "--branch",
        help="Override branch to sync against (default: main)",
    )
    parser.add_argument(
        "--vault",
        help="Override local vault directory (default: current directory)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-file",
        default="/tmp/vault-sync-server.log",
        help="Log file path (default: /tmp/vault-sync-server.log)",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Only expose tools that never modify the vault or the repository",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"vault-sync-server version {__version__}",
    )

    args = parser.parse_args()

    config_overrides = {}
    if args.owner:
        config_overrides["owner"] = args.owner
    if args.repo:
        config_overrides["repo"] = args.repo
    if args.token:
        config_overrides["token"] = args.token
    if args.branch:
        config_overrides["branch"] = args.branch
    if args.vault:
        config_overrides["vault_root"] = args.vault
    if args.debug:
        config_overrides["debug"] = True
    if args.log_file:
        config_overrides["log_file"] = args.log_file
    if args.read_only:
        config_overrides["read_only"] = True

    if config_overrides:
        override_keys = [k for k in config_overrides if k != "token"]
        print(
            f"Config overrides from CLI: {', '.join(override_keys)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
