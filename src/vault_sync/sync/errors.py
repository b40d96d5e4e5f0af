"""Exceptions raised by the sync engine.

Transport failures are raised by the remote client
(``RemoteAPIError``, ``EmptyRepositoryError``); everything here describes
a state of the vault or the remote that stops a run.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ConflictFile


class SyncError(Exception):
    """Base class for errors that abort a sync run."""


class BootstrapConflictError(SyncError):
    """First sync found content on both the local and the remote side."""

    def __init__(self) -> None:
        super().__init__(
            "Both the local vault and the remote repository contain files; "
            "one of them must be empty for the first sync"
        )


class ManifestMissingError(SyncError):
    """The remote tree has no manifest, so it was never bootstrapped."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(
            f"Remote manifest {path} not found; run the first sync"
        )


class ManifestParseError(SyncError):
    """The remote manifest could not be decoded by any known encoding."""


class UnresolvedConflictsError(SyncError):
    """Conflicts need a resolution that was not supplied."""

    def __init__(self, conflicts: list[ConflictFile]) -> None:
        self.conflicts = conflicts
        paths = ", ".join(c.path for c in conflicts)
        super().__init__(f"Unresolved conflicts: {paths}")
