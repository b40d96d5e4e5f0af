"""Commit coordination.

Turns a reconciled target tree into exactly one remote commit.  The
manifest is always the last change of the batch and carries the snapshot
as it will be once the commit lands, so the remote never holds content
without a matching manifest.

The local snapshot is only replaced after the remote accepted the
commit; a failed commit leaves metadata as it was before the run.
"""

from __future__ import annotations

import base64
import logging
import posixpath

from vault_sync.core.async_utils import gather_limited, run_sync, run_sync_limited
from vault_sync.core.client import RemoteClient
from vault_sync.storage import VaultStorage

from .hashing import blob_sha
from .models import (
    ConflictResolution,
    FileChange,
    FileRecord,
    Metadata,
    TreeItem,
    now_ms,
)
from .state import MetadataStore

logger = logging.getLogger(__name__)

COMMIT_MESSAGE = "Sync"

# Extensions uploaded as plain text; everything else goes base64
TEXT_EXTENSIONS = frozenset(
    {
        ".md",
        ".markdown",
        ".txt",
        ".canvas",
        ".json",
        ".css",
        ".js",
        ".ts",
        ".html",
        ".htm",
        ".xml",
        ".svg",
        ".csv",
        ".tsv",
        ".yml",
        ".yaml",
        ".toml",
        ".ini",
        ".tex",
        ".bib",
        ".org",
        ".rst",
    }
)


def has_text_extension(path: str) -> bool:
    """Return ``True`` if *path* is uploaded as text rather than base64."""
    return posixpath.splitext(path)[1].lower() in TEXT_EXTENSIONS


def encode_content(path: str, data: bytes) -> tuple[str, str]:
    """Encode file bytes for the commit API.

    Returns:
        ``(content, encoding)`` where encoding is ``"text"`` or
        ``"base64"``.  Text files that are not valid UTF-8 fall back to
        base64 so the remote blob keeps the exact local bytes.
    """
    if has_text_extension(path):
        try:
            return data.decode("utf-8"), "text"
        except UnicodeDecodeError:
            logger.debug("%s is not UTF-8, sending as base64", path)
    return base64.b64encode(data).decode("ascii"), "base64"


class CommitCoordinator:
    """Build and submit the single commit of a sync run.

    Args:
        client: Remote client.
        storage: Local vault storage.
        store: Metadata store, replaced on success.
        manifest: Vault-relative manifest path.
    """

    def __init__(
        self,
        client: RemoteClient,
        storage: VaultStorage,
        store: MetadataStore,
        manifest: str,
    ) -> None:
        self._client = client
        self._storage = storage
        self._store = store
        self._manifest = manifest

    async def commit(
        self,
        tree: dict[str, TreeItem],
        resolutions: list[ConflictResolution] | None = None,
    ) -> str:
        """Commit every pending upload and deletion of *tree*.

        Args:
            tree: Target tree keyed by path.  Items from the fetched remote
                tree carry its blob hash; items flagged ``upload`` or
                ``delete`` become changes.
            resolutions: Conflict resolutions whose content replaces the
                local file content for the upload.

        Returns:
            The new commit identifier.
        """
        resolutions = resolutions or []
        resolved = {r.path: r for r in resolutions}
        sync_time = now_ms()

        staged = self._store.data.model_copy(deep=True)
        staged.last_sync = sync_time
        for resolution in resolutions:
            record = staged.files.setdefault(
                resolution.path, FileRecord(path=resolution.path)
            )
            record.last_modified = sync_time

        changes: list[FileChange] = []
        pending = [
            item
            for path, item in sorted(tree.items())
            if path != self._manifest and (item.upload or item.delete)
        ]

        uploads = [item for item in pending if item.upload and not item.delete]
        built = await gather_limited(
            [
                run_sync_limited(self._build_upload, item, resolved.get(item.path))
                for item in uploads
            ]
        )
        for item, (change, sha) in zip(uploads, built):
            record = staged.files.get(item.path)
            if record is None:
                record = FileRecord(path=item.path)
                staged.files[item.path] = record
            # Scanned records keep the file's own modification time
            if not record.last_modified:
                record.last_modified = sync_time
            record.mark_synced(sha)
            changes.append(change)

        for item in pending:
            if not item.delete:
                continue
            changes.append(FileChange(action="delete", path=item.path))
            record = staged.files.get(item.path)
            if record is not None:
                record.mark_deleted(sync_time)

        changes.append(self._manifest_change(tree, staged))
        logger.info(
            "Committing %d changes (%d uploads, %d deletions)",
            len(changes),
            len(uploads),
            len(changes) - len(uploads) - 1,
        )
        commit_sha = await run_sync(
            self._client.commit_changes, changes, COMMIT_MESSAGE, retry=True
        )

        self._store.data = staged
        await gather_limited(
            [
                run_sync_limited(self._storage.write, r.path, r.content)
                for r in resolutions
            ]
        )
        await run_sync(self._store.save)
        logger.info("Sync commit %s done", commit_sha)
        return commit_sha

    def _build_upload(
        self, item: TreeItem, resolution: ConflictResolution | None
    ) -> tuple[FileChange, str]:
        if resolution is not None:
            data = resolution.content.encode("utf-8")
        else:
            data = self._storage.read_binary(item.path)
        content, encoding = encode_content(item.path, data)
        # The fetched remote tree decides create vs update
        action = "update" if item.sha is not None else "create"
        change = FileChange(
            action=action, path=item.path, content=content, encoding=encoding
        )
        return change, blob_sha(data)

    def _manifest_change(
        self, tree: dict[str, TreeItem], staged: Metadata
    ) -> FileChange:
        record = staged.files.setdefault(
            self._manifest, FileRecord(path=self._manifest)
        )
        # The manifest cannot carry its own hash, so its record never has one
        record.sha = None
        record.last_modified = staged.last_sync
        content = staged.to_json()
        existing = tree.get(self._manifest)
        return FileChange(
            action="update" if existing is not None and existing.sha else "create",
            path=self._manifest,
            content=content,
            encoding="text",
        )
