"""First sync between a vault and a repository that were never synced.

Exactly one side may hold content:

- **empty repository**: the manifest is created as the very first commit
  (the batch commit endpoint needs an existing branch), then every live
  local record is uploaded in one commit.
- **empty vault**: the branch archive is downloaded and extracted in one
  request instead of one request per file, then the reconciled tree is
  committed so the remote gains a manifest.

Both sides populated is refused with ``BootstrapConflictError``.
"""

from __future__ import annotations

import base64
import io
import logging
import zipfile

from vault_sync.core.async_utils import gather_limited, run_sync, run_sync_limited
from vault_sync.core.client import EmptyRepositoryError, RemoteClient
from vault_sync.storage import VaultStorage

from .committer import CommitCoordinator
from .errors import BootstrapConflictError
from .models import (
    DownloadAction,
    FileRecord,
    RemoteTree,
    SyncAction,
    TreeItem,
    UploadAction,
    now_ms,
)
from .scanner import VaultScanner
from .state import MetadataStore

logger = logging.getLogger(__name__)

FIRST_COMMIT_MESSAGE = "First sync"


def base_tree(remote: RemoteTree) -> dict[str, TreeItem]:
    """Target tree that leaves every remote blob as it is."""
    return {
        path: TreeItem(path=path, mode=entry.mode, type=entry.type, sha=entry.sha)
        for path, entry in remote.files.items()
    }


def strip_archive_root(name: str) -> str:
    """Drop the single top-level folder every repository archive wraps."""
    parts = name.split("/")
    return "/".join(parts[1:]) if len(parts) > 1 else name


class Bootstrapper:
    """Run the first sync.

    Args:
        client: Remote client.
        storage: Local vault storage.
        store: Metadata store, already loaded.
        scanner: Decides which archive entries are syncable.
        committer: Commits the reconciled tree.
        manifest: Vault-relative manifest path.
    """

    def __init__(
        self,
        client: RemoteClient,
        storage: VaultStorage,
        store: MetadataStore,
        scanner: VaultScanner,
        committer: CommitCoordinator,
        manifest: str,
    ) -> None:
        self._client = client
        self._storage = storage
        self._store = store
        self._scanner = scanner
        self._committer = committer
        self._manifest = manifest

    async def run(self) -> tuple[list[SyncAction], str]:
        """Bootstrap and commit.

        Returns:
            ``(actions, commit_sha)`` describing what was transferred.

        Raises:
            BootstrapConflictError: If both sides hold content.
        """
        try:
            remote = await run_sync(self._client.get_repo_content)
        except EmptyRepositoryError as e:
            logger.info("Remote repository is empty (HTTP %d)", e.status)
            remote = None

        if remote is None:
            remote = await self._create_manifest()
            return await self._from_local(remote)

        vault_empty = await run_sync(self._scanner.is_vault_empty)
        if not vault_empty:
            logger.error("Both remote and local have files, can't sync")
            raise BootstrapConflictError()
        return await self._from_remote(remote)

    async def _create_manifest(self) -> RemoteTree:
        await run_sync(self._store.save)
        data = await run_sync(self._storage.read_binary, self._manifest)
        await run_sync(
            self._client.create_file,
            self._manifest,
            base64.b64encode(data).decode("ascii"),
            FIRST_COMMIT_MESSAGE,
            retry=True,
        )
        return await run_sync(self._client.get_repo_content, retry=True)

    # ------------------------------------------------------------------
    # Local -> remote
    # ------------------------------------------------------------------

    async def _from_local(
        self, remote: RemoteTree
    ) -> tuple[list[SyncAction], str]:
        logger.info("First sync from local files")
        await run_sync(self._scanner.refresh, self._store.data.files, now_ms())
        tree = base_tree(remote)
        actions: list[SyncAction] = []
        for path, record in sorted(self._store.data.files.items()):
            if record.deleted or path == self._manifest:
                continue
            existing = tree.get(path)
            tree[path] = TreeItem(
                path=path, sha=existing.sha if existing else None, upload=True
            )
            actions.append(UploadAction(path=path))
        commit_sha = await self._committer.commit(tree)
        return actions, commit_sha

    # ------------------------------------------------------------------
    # Remote -> local
    # ------------------------------------------------------------------

    async def _from_remote(
        self, remote: RemoteTree
    ) -> tuple[list[SyncAction], str]:
        logger.info("First sync from remote files")
        archive = await run_sync(self._client.download_archive, retry=True)
        entries = await run_sync(self._read_archive, archive)
        logger.info("Extracting %d files from archive", len(entries))

        written = await gather_limited(
            [
                run_sync_limited(self._write_entry, path, data)
                for path, data in entries
            ]
        )

        now = now_ms()
        actions: list[SyncAction] = []
        for path in written:
            entry = remote.files.get(path)
            if entry is None:
                logger.warning("%s is not in the remote tree, skipping metadata", path)
                continue
            self._store.upsert(
                FileRecord(
                    path=path,
                    sha=entry.sha,
                    just_downloaded=True,
                    last_modified=now,
                )
            )
            actions.append(DownloadAction(path=path))
        await run_sync(self._store.save)

        tree = base_tree(remote)
        for path, record in sorted(self._store.data.files.items()):
            if path in tree or path == self._manifest or record.deleted:
                continue
            tree[path] = TreeItem(path=path, upload=True)
            actions.append(UploadAction(path=path))

        commit_sha = await self._committer.commit(tree)
        return actions, commit_sha

    def _read_archive(self, archive: bytes) -> list[tuple[str, bytes]]:
        entries: list[tuple[str, bytes]] = []
        with zipfile.ZipFile(io.BytesIO(archive)) as zf:
            for info in zf.infolist():
                path = strip_archive_root(info.filename).rstrip("/")
                # Folders are created with the files they hold
                if not path or info.is_dir():
                    continue
                if not self._scanner.in_scope(path):
                    logger.info("Skipping %s from archive", path)
                    continue
                entries.append((path, zf.read(info)))
        return entries

    def _write_entry(self, path: str, data: bytes) -> str:
        self._storage.write_binary(path, data)
        return path
