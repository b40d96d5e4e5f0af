"""Pydantic models for the vault sync engine.

Defines the core data contracts used across all sync modules:

- ``FileRecord`` / ``Metadata``: the persisted last-synced snapshot.  The
  snapshot is serialized camelCase (``lastSync``, ``justDownloaded``...)
  because it doubles as the remote manifest.
- ``RemoteTreeEntry`` / ``RemoteTree``: the current remote blob tree.
- ``SyncAction``: tagged union of the four per-path actions.
- ``ConflictFile`` / ``ConflictResolution``: conflict resolver contract.
- ``TreeItem`` / ``FileChange``: commit-time structures.
- ``SyncReport``: outcome of one run.

Snapshot models are mutable because a sync run edits them in place; the
rest are frozen.
"""

from __future__ import annotations

import time
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Metadata snapshot
# ---------------------------------------------------------------------------


class FileRecord(BaseModel):
    """Sync metadata for one tracked path.

    Attributes:
        path: Normalised vault-relative path.
        sha: Blob hash of the content as of the last successful sync with
            this path, or ``None`` if never synced.
        dirty: Locally modified since the last upload.  Advisory only;
            change detection always compares hashes.
        just_downloaded: Set right after a download, cleared on the next
            mutation of the record.
        last_modified: Epoch ms of the last local mutation known to us.
        deleted: Tombstone flag.
        deleted_at: Epoch ms of the deletion when ``deleted`` is set.
    """

    path: str
    sha: str | None = None
    dirty: bool = False
    just_downloaded: bool = False
    last_modified: int = 0
    deleted: bool = False
    deleted_at: int | None = None

    model_config = {"alias_generator": to_camel, "populate_by_name": True}

    def mark_deleted(self, at: int) -> None:
        """Turn the record into a tombstone, keeping an earlier deletion time."""
        if not self.deleted or self.deleted_at is None:
            self.deleted_at = at
        self.deleted = True
        self.just_downloaded = False

    def mark_synced(self, sha: str | None) -> None:
        """Record a successful upload of content hashing to *sha*."""
        self.sha = sha
        self.dirty = False
        self.just_downloaded = False
        self.deleted = False
        self.deleted_at = None


class Metadata(BaseModel):
    """The persisted snapshot of the last successful sync."""

    last_sync: int = 0
    files: dict[str, FileRecord] = Field(default_factory=dict)

    model_config = {"alias_generator": to_camel, "populate_by_name": True}

    def to_json(self) -> str:
        """Serialize with camelCase keys, the on-disk and manifest format."""
        return self.model_dump_json(by_alias=True)


# ---------------------------------------------------------------------------
# Remote tree
# ---------------------------------------------------------------------------


class RemoteTreeEntry(BaseModel):
    """One blob in the remote tree."""

    path: str
    mode: str = "100644"
    type: str = "blob"
    sha: str
    size: int = 0

    model_config = {"frozen": True, "extra": "ignore"}


class RemoteTree(BaseModel):
    """All blobs of the remote branch plus the whole-tree identifier."""

    files: dict[str, RemoteTreeEntry] = Field(default_factory=dict)
    sha: str

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class UploadAction(BaseModel):
    """Push local content for *path* to the remote."""

    type: Literal["upload"] = "upload"
    path: str

    model_config = {"frozen": True}


class DownloadAction(BaseModel):
    """Pull remote content for *path* into the vault."""

    type: Literal["download"] = "download"
    path: str

    model_config = {"frozen": True}


class DeleteLocalAction(BaseModel):
    """Remove *path* from the vault."""

    type: Literal["delete_local"] = "delete_local"
    path: str

    model_config = {"frozen": True}


class DeleteRemoteAction(BaseModel):
    """Remove *path* from the remote tree."""

    type: Literal["delete_remote"] = "delete_remote"
    path: str

    model_config = {"frozen": True}


SyncAction = Annotated[
    Union[UploadAction, DownloadAction, DeleteLocalAction, DeleteRemoteAction],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------


class ConflictFile(BaseModel):
    """Both versions of a path that changed independently on each side.

    A side that deleted the path has empty content and its ``*_deleted``
    flag set.
    """

    path: str
    remote_content: str
    local_content: str
    remote_deleted: bool = False
    local_deleted: bool = False

    model_config = {"frozen": True}


class ConflictResolution(BaseModel):
    """The externally chosen winning content for a conflicting path."""

    path: str
    content: str

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Commit structures
# ---------------------------------------------------------------------------


class TreeItem(BaseModel):
    """Target-tree entry handed to the commit coordinator.

    Attributes:
        sha: Remote blob hash when the path exists in the fetched remote
            tree, ``None`` when it does not.
        upload: Local content must be sent for this path.
        delete: The path must be removed from the remote.
    """

    path: str
    mode: str = "100644"
    type: str = "blob"
    sha: str | None = None
    upload: bool = False
    delete: bool = False


class FileChange(BaseModel):
    """One entry of a batched remote commit."""

    action: Literal["create", "update", "delete"]
    path: str
    content: str | None = None
    encoding: Literal["text", "base64"] | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


class SyncReport(BaseModel):
    """Outcome of one ``sync()`` or ``first_sync()`` run.

    Attributes:
        kind: ``"sync"`` or ``"first_sync"``.
        skipped: The run was a no-op because another run was active.
        actions: Classified actions, conflict-derived ones included.
        conflicts: Paths reported as true conflicts.
        resolved: Paths whose conflict was resolved and committed.
        commit_sha: Identifier of the remote commit, if one was made.
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run completed.
    """

    kind: Literal["sync", "first_sync"] = "sync"
    skipped: bool = False
    actions: list[SyncAction] = []
    conflicts: list[str] = []
    resolved: list[str] = []
    commit_sha: str | None = None
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    def _paths(self, action_type: str) -> list[str]:
        return [a.path for a in self.actions if a.type == action_type]

    @property
    def uploads(self) -> list[str]:
        return self._paths("upload")

    @property
    def downloads(self) -> list[str]:
        return self._paths("download")

    @property
    def local_deletes(self) -> list[str]:
        return self._paths("delete_local")

    @property
    def remote_deletes(self) -> list[str]:
        return self._paths("delete_remote")

    def summary(self) -> str:
        """Format a short human-readable summary of the run."""
        if self.skipped:
            return f"{self.kind}: skipped (another run in progress)"
        lines = [
            f"{self.kind}: {len(self.actions)} actions"
            + (f", commit {self.commit_sha}" if self.commit_sha else ""),
            f"  Uploaded:       {len(self.uploads)}",
            f"  Downloaded:     {len(self.downloads)}",
            f"  Deleted local:  {len(self.local_deletes)}",
            f"  Deleted remote: {len(self.remote_deletes)}",
            f"  Conflicts:      {len(self.conflicts)}",
        ]
        return "\n".join(lines)
