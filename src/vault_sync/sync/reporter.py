"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync operations:

- ``format_sync_report`` -- full post-run summary.
- ``format_conflict_diff`` -- unified diff for external conflict review.
- ``report_to_json`` -- structured dict for MCP tool output.
- ``conflicts_to_json`` -- pending conflicts for MCP tool output.
"""

from __future__ import annotations

import difflib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ConflictFile, SyncReport

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------

_SECTIONS = (
    ("uploads", "Uploaded:"),
    ("downloads", "Downloaded:"),
    ("local_deletes", "Deleted locally:"),
    ("remote_deletes", "Deleted remotely:"),
)


def format_sync_report(report: SyncReport) -> str:
    """Format a complete sync report as human-readable text.

    Sections are only included when they contain at least one path.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    title = "First sync" if report.kind == "first_sync" else "Sync"
    if report.skipped:
        return f"{title} skipped: another sync is already running"

    lines: list[str] = [f"{title} report"]
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    if not report.actions:
        lines.append("Nothing to sync.")
    else:
        lines.append(
            f"Synced {len(report.actions)} files: "
            f"{len(report.uploads)} uploaded, "
            f"{len(report.downloads)} downloaded, "
            f"{len(report.local_deletes) + len(report.remote_deletes)} deleted, "
            f"{len(report.conflicts)} conflicts"
        )
    if report.commit_sha:
        lines.append(f"Commit: {report.commit_sha}")
    lines.append("")

    for attr, label in _SECTIONS:
        paths = getattr(report, attr)
        if paths:
            lines.append(label)
            lines.extend(f"  {p}" for p in paths)
            lines.append("")

    if report.conflicts:
        resolved = set(report.resolved)
        lines.append("Conflicts:")
        for path in report.conflicts:
            state = "resolved" if path in resolved else "policy applied"
            lines.append(f"  {path}: {state}")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Conflict diff
# ------------------------------------------------------------------


def format_conflict_diff(conflict: ConflictFile) -> str:
    """Format a single conflict for review.

    Args:
        conflict: Both versions of the conflicting path.

    Returns:
        Multi-line formatted string with a unified diff from the remote
        version to the local one.
    """
    lines: list[str] = [f"Conflict: {conflict.path}", ""]
    diff = difflib.unified_diff(
        conflict.remote_content.splitlines(keepends=True),
        conflict.local_content.splitlines(keepends=True),
        fromfile=f"remote: {conflict.path}",
        tofile=f"local: {conflict.path}",
    )
    diff_text = "".join(diff)
    lines.append(diff_text.rstrip() if diff_text else "(no textual differences)")
    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Suitable for MCP ``structuredContent`` output.
    """
    return {
        "kind": report.kind,
        "skipped": report.skipped,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "commit_sha": report.commit_sha,
        "counts": {
            "total": len(report.actions),
            "uploaded": len(report.uploads),
            "downloaded": len(report.downloads),
            "deleted_local": len(report.local_deletes),
            "deleted_remote": len(report.remote_deletes),
            "conflicts": len(report.conflicts),
        },
        "actions": [
            {"type": a.type, "path": a.path} for a in report.actions
        ],
        "conflicts": list(report.conflicts),
        "resolved": list(report.resolved),
    }


def conflicts_to_json(conflicts: list[ConflictFile]) -> list[dict]:
    """Describe pending conflicts, both versions and their diff included."""
    return [
        {
            "path": c.path,
            "remote_content": c.remote_content,
            "local_content": c.local_content,
            "remote_deleted": c.remote_deleted,
            "local_deleted": c.local_deleted,
            "diff": format_conflict_diff(c),
        }
        for c in conflicts
    ]
