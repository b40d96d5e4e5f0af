"""Conflict policies for the sync engine.

A policy turns the list of true conflicts into extra sync actions plus
the resolutions whose content must be uploaded and, once the commit
succeeds, written locally.

- ``AskResolver``: Blocks the run on an external callable that returns
  one resolution per conflict; every resolution becomes an upload.
- ``PresetResolver``: Serves resolutions supplied ahead of time (the MCP
  surface); fails with the conflicts attached when one is missing.
- ``OverwriteLocalResolver``: Remote version wins (download, or a local
  delete when the remote deleted the path).
- ``OverwriteRemoteResolver``: Local version wins (upload, or a remote
  delete when the local file was deleted).

The ``create_resolver()`` factory maps ``conflict_handling`` settings to
resolver instances.
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol

from .errors import UnresolvedConflictsError
from .models import (
    ConflictFile,
    ConflictResolution,
    DeleteLocalAction,
    DeleteRemoteAction,
    DownloadAction,
    SyncAction,
    UploadAction,
)

logger = logging.getLogger(__name__)

ResolveCallback = Callable[[list[ConflictFile]], list[ConflictResolution]]


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ConflictResolver(Protocol):
    """Protocol that all conflict resolvers must satisfy."""

    def resolve(
        self, conflicts: list[ConflictFile]
    ) -> tuple[list[SyncAction], list[ConflictResolution]]:
        """Decide the outcome of every conflict.

        Args:
            conflicts: Both versions of each conflicting path.

        Returns:
            ``(actions, resolutions)``.  ``resolutions`` carries the
            content to upload for resolved paths; it is empty for the
            overwrite policies.
        """
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# External resolution
# ---------------------------------------------------------------------------


def _uploads_for(
    resolutions: list[ConflictResolution],
) -> list[SyncAction]:
    return [UploadAction(path=r.path) for r in resolutions]


class AskResolver:
    """Hand the conflicts to an external resolver and wait for it.

    Args:
        callback: Returns one resolution per conflict.  Resolutions for
            paths that are not conflicting are ignored.
    """

    def __init__(self, callback: ResolveCallback) -> None:
        self._callback = callback

    def resolve(
        self, conflicts: list[ConflictFile]
    ) -> tuple[list[SyncAction], list[ConflictResolution]]:
        conflicting = {c.path for c in conflicts}
        resolutions = [
            r for r in self._callback(conflicts) if r.path in conflicting
        ]
        unresolved = conflicting - {r.path for r in resolutions}
        if unresolved:
            logger.warning(
                "Leaving %d conflicts unresolved: %s",
                len(unresolved),
                sorted(unresolved),
            )
        return _uploads_for(resolutions), resolutions


class PresetResolver:
    """Resolve conflicts from resolutions supplied before the run.

    Raises ``UnresolvedConflictsError`` listing every conflict without a
    preset resolution, so the caller can present them and retry.
    """

    def __init__(
        self, resolutions: list[ConflictResolution] | None = None
    ) -> None:
        self._resolutions = {r.path: r for r in resolutions or []}

    def resolve(
        self, conflicts: list[ConflictFile]
    ) -> tuple[list[SyncAction], list[ConflictResolution]]:
        missing = [c for c in conflicts if c.path not in self._resolutions]
        if missing:
            raise UnresolvedConflictsError(missing)
        resolutions = [self._resolutions[c.path] for c in conflicts]
        return _uploads_for(resolutions), resolutions


# ---------------------------------------------------------------------------
# Overwrite policies
# ---------------------------------------------------------------------------


class OverwriteLocalResolver:
    """Always resolve conflicts in favour of the remote version."""

    def resolve(
        self, conflicts: list[ConflictFile]
    ) -> tuple[list[SyncAction], list[ConflictResolution]]:
        """Download every conflicting path the remote still has."""
        actions: list[SyncAction] = [
            DeleteLocalAction(path=c.path)
            if c.remote_deleted
            else DownloadAction(path=c.path)
            for c in conflicts
        ]
        return actions, []


class OverwriteRemoteResolver:
    """Always resolve conflicts in favour of the local version."""

    def resolve(
        self, conflicts: list[ConflictFile]
    ) -> tuple[list[SyncAction], list[ConflictResolution]]:
        """Upload every conflicting path the vault still has."""
        actions: list[SyncAction] = [
            DeleteRemoteAction(path=c.path)
            if c.local_deleted
            else UploadAction(path=c.path)
            for c in conflicts
        ]
        return actions, []


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_STRATEGY_MAP: dict[str, type] = {
    "overwrite_local": OverwriteLocalResolver,
    "overwrite_remote": OverwriteRemoteResolver,
}


def create_resolver(
    strategy: str,
    callback: ResolveCallback | None = None,
    resolutions: list[ConflictResolution] | None = None,
) -> ConflictResolver:
    """Create a conflict resolver for a ``conflict_handling`` setting.

    Args:
        strategy: One of ``"ask"``, ``"overwrite_local"``,
            ``"overwrite_remote"``.
        callback: External resolver for ``"ask"``.  Without one,
            ``"ask"`` serves *resolutions* via ``PresetResolver``.
        resolutions: Preset resolutions for ``"ask"``.

    Returns:
        A ``ConflictResolver`` implementation instance.

    Raises:
        ValueError: If the strategy string is not recognised.
    """
    if strategy == "ask":
        if callback is not None:
            return AskResolver(callback)
        return PresetResolver(resolutions)
    cls = _STRATEGY_MAP.get(strategy)
    if cls is None:
        raise ValueError(
            f"Unknown conflict strategy: '{strategy}'. Valid strategies: {sorted(['ask', *_STRATEGY_MAP])}"
        )
    return cls()  # type: ignore[return-value]
