"""Error response builders for MCP tool handlers.

This module provides structured error responses with corrective actions
to help AI agents recover from errors without human intervention.
"""

import mcp.types as types

from ...core.client import RemoteAPIError
from ...sync.errors import (
    BootstrapConflictError,
    ManifestMissingError,
    ManifestParseError,
    SyncError,
    UnresolvedConflictsError,
)
from ...sync.reporter import conflicts_to_json


def build_error_response(
    error_type: str,
    message: str,
    corrective_action: str,
    structured: dict | None = None,
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, permission_denied,
            bootstrap_conflict, conflicts_pending, validation_error,
            server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error
        structured: Optional ``structuredContent`` payload

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "Repository not found", "Check VAULT_SYNC_OWNER.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        structuredContent=structured,
        isError=True,
    )


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------


def translate_remote_error(error: RemoteAPIError) -> types.CallToolResult:
    """Translate a remote API failure to a structured error response."""
    match error.status:
        case 401 | 403:
            return build_error_response(
                "permission_denied",
                str(error),
                "Check VAULT_SYNC_TOKEN and its write access to the repository.",
            )
        case 404:
            return build_error_response(
                "not_found",
                str(error),
                "Check VAULT_SYNC_OWNER, VAULT_SYNC_REPO and VAULT_SYNC_BRANCH.",
            )
        case 409 | 422:
            return build_error_response(
                "remote_busy",
                str(error),
                "The branch is being updated; retry vault_sync shortly.",
            )
        case _:
            return build_error_response(
                "server_error",
                str(error),
                "Retry later or check the hosting service status.",
            )


def translate_sync_error(error: SyncError) -> types.CallToolResult:
    """Translate a sync error to a structured error response."""
    match error:
        case UnresolvedConflictsError():
            return build_error_response(
                "conflicts_pending",
                str(error),
                "Review each diff, then call vault_sync again with "
                "'resolutions': [{'path': ..., 'content': ...}] for every "
                "conflicting path.",
                structured={"conflicts": conflicts_to_json(error.conflicts)},
            )
        case BootstrapConflictError():
            return build_error_response(
                "bootstrap_conflict",
                str(error),
                "Empty the local vault or use an empty repository, then "
                "call vault_first_sync again.",
            )
        case ManifestMissingError():
            return build_error_response(
                "not_initialized",
                str(error),
                "Call vault_first_sync to bootstrap the repository.",
            )
        case ManifestParseError():
            return build_error_response(
                "corrupt_manifest",
                str(error),
                "Call vault_reset_metadata, then vault_first_sync.",
            )
        case _:
            return build_error_response(
                "sync_error",
                str(error),
                "Check the server log and retry.",
            )
