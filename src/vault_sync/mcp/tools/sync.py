"""MCP tool handlers for vault synchronisation.

Defines five tools:

- ``vault_sync`` -- reconcile the vault with the remote branch.
- ``vault_first_sync`` -- bootstrap a never-synced vault or repository.
- ``vault_sync_status`` -- summarise the local metadata snapshot.
- ``vault_reset_metadata`` -- forget all sync history.
- ``vault_config_dir`` -- start or stop tracking config directory files.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...core.async_utils import run_sync
from ...sync.engine import SyncEngine
from ...sync.models import ConflictResolution
from ...sync.reporter import format_sync_report, report_to_json
from ...sync.resolver import create_resolver
from .registry import ToolSpec

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="vault_sync",
        description=(
            "Synchronize the local vault with the remote repository. "
            "Uploads local changes, downloads remote ones and propagates "
            "deletions in one commit. When both sides changed the same "
            "file, returns the conflicts with a diff; call again with "
            "'resolutions' holding the merged content for each path."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "resolutions": {
                    "type": "array",
                    "description": (
                        "Merged content for conflicting paths reported "
                        "by a previous call"
                    ),
                    "items": {
                        "type": "object",
                        "properties": {
                            "path": {"type": "string"},
                            "content": {"type": "string"},
                        },
                        "required": ["path", "content"],
                    },
                },
            },
            "required": [],
        },
    ),
    types.Tool(
        name="vault_first_sync",
        description=(
            "Bootstrap synchronisation. Uploads the vault when the "
            "repository is empty, or downloads the repository when the "
            "vault is empty. Fails if both hold content."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    types.Tool(
        name="vault_sync_status",
        description=(
            "Show sync state -- repository, last sync time, number of "
            "tracked, modified and deleted files, and whether a first "
            "sync is still required."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    types.Tool(
        name="vault_reset_metadata",
        description=(
            "Forget all recorded sync history. The next run must be "
            "vault_first_sync."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    types.Tool(
        name="vault_config_dir",
        description=(
            "Start ('add') or stop ('remove') tracking the files in the "
            "vault config directory, after the config directory sync "
            "setting was changed."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "enum": ["add", "remove"],
                    "description": "Whether to add or remove the files",
                },
            },
            "required": ["action"],
        },
    ),
]


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _parse_resolutions(raw: Any) -> list[ConflictResolution] | None:
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise ValueError("'resolutions' must be a list of {path, content} objects")
    return [ConflictResolution.model_validate(item) for item in raw]


def _text_result(text: str, structured: dict) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


async def _handle_sync(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    resolutions = _parse_resolutions(args.get("resolutions"))
    resolver = None
    if resolutions is not None:
        resolver = create_resolver("ask", resolutions=resolutions)
        logger.info("Syncing with %d supplied resolutions", len(resolutions))
    report = await engine.sync(resolver)
    return _text_result(format_sync_report(report), report_to_json(report))


async def _handle_first_sync(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    report = await engine.first_sync()
    return _text_result(format_sync_report(report), report_to_json(report))


async def _handle_status(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    status = engine.status()
    lines = [
        f"Repository: {status['repository']} ({status['branch']})",
        f"Vault: {status['vault']}",
        f"Last sync: {status['last_sync'] or 'never'}",
        f"Tracked files: {status['tracked_files']}",
        f"Modified since last sync: {status['dirty_files']}",
        f"Deleted since last sync: {status['tombstones']}",
    ]
    if status["syncing"]:
        lines.append("A sync is currently running.")
    if status["first_sync_required"]:
        lines.append("First sync required: call vault_first_sync.")
    return _text_result("\n".join(lines), status)


async def _handle_reset(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    await run_sync(engine.reset_metadata)
    return _text_result(
        "Sync metadata reset. Run vault_first_sync next.",
        {"reset": True},
    )


async def _handle_config_dir(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    action = args.get("action")
    match action:
        case "add":
            paths = await run_sync(engine.add_config_dir_to_metadata)
            text = f"Now tracking {len(paths)} config directory files."
        case "remove":
            paths = await run_sync(engine.remove_config_dir_from_metadata)
            text = f"Stopped tracking {len(paths)} config directory files."
        case _:
            raise ValueError(
                f"Invalid action '{action}': must be 'add' or 'remove'"
            )
    return _text_result(text, {"action": action, "paths": paths})


# ---------------------------------------------------------------------------
# ToolSpec list for registry
# ---------------------------------------------------------------------------

SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(tool=SYNC_TOOLS[0], read_only=False, handler=_handle_sync),
    ToolSpec(tool=SYNC_TOOLS[1], read_only=False, handler=_handle_first_sync),
    ToolSpec(tool=SYNC_TOOLS[2], read_only=True, handler=_handle_status),
    ToolSpec(tool=SYNC_TOOLS[3], read_only=False, handler=_handle_reset),
    ToolSpec(tool=SYNC_TOOLS[4], read_only=False, handler=_handle_config_dir),
]
