"""Conflict detection.

A path is a true conflict only when all three hold:

1. the remote changed since the last sync (remote hash != cached hash),
2. the local file changed since the last sync (actual hash != cached hash),
3. the two current versions differ (remote hash != actual hash).

The third check suppresses conflicts where both sides independently
converged on identical content.

A side that deleted the path contributes empty content. A remote
tombstone is never fetched, since its blob is gone from the tree.
"""

from __future__ import annotations

import logging

from vault_sync.core.async_utils import gather_limited, run_sync_limited
from vault_sync.core.client import RemoteClient
from vault_sync.storage import VaultStorage, decode_text

from .hashing import file_sha
from .manifest import decode_file_payload
from .models import ConflictFile, FileRecord

logger = logging.getLogger(__name__)


class ConflictDetector:
    """Find paths that changed on both sides since the last sync.

    Args:
        client: Remote client used to fetch the remote version.
        storage: Local vault storage.
        local_files: The local metadata snapshot's records.
        manifest: Vault-relative manifest path, never reported.
    """

    def __init__(
        self,
        client: RemoteClient,
        storage: VaultStorage,
        local_files: dict[str, FileRecord],
        manifest: str,
    ) -> None:
        self._client = client
        self._storage = storage
        self._local_files = local_files
        self._manifest = manifest

    async def find_conflicts(
        self, remote_files: dict[str, FileRecord]
    ) -> list[ConflictFile]:
        """Return both versions of every truly conflicting path."""
        common = [
            path
            for path in remote_files
            if path in self._local_files and path != self._manifest
        ]
        if not common:
            return []

        flags = await gather_limited(
            [self._is_conflict(remote_files[p], self._local_files[p]) for p in common]
        )
        conflicting = [path for path, flag in zip(common, flags) if flag]
        if not conflicting:
            return []

        logger.warning("Found %d conflicts: %s", len(conflicting), conflicting)
        return await gather_limited(
            [self._load_versions(path, remote_files[path]) for path in conflicting]
        )

    async def _is_conflict(self, remote: FileRecord, local: FileRecord) -> bool:
        if remote.deleted and local.deleted:
            return False
        actual = await run_sync_limited(file_sha, self._storage, local.path)
        remote_changed = remote.sha != local.sha
        local_changed = actual != local.sha
        diverged = remote.sha != actual
        return remote_changed and local_changed and diverged

    async def _load_versions(self, path: str, remote: FileRecord) -> ConflictFile:
        local_content = await run_sync_limited(self._read_local, path)
        if remote.deleted:
            # The path is gone from the remote tree, nothing to fetch
            remote_content = None
        else:
            payload = await run_sync_limited(
                self._client.get_file_content,
                path,
                retry=True,
                max_retries=1,
            )
            remote_content, _ = decode_text(decode_file_payload(payload))
        return ConflictFile(
            path=path,
            remote_content=remote_content or "",
            local_content=local_content or "",
            remote_deleted=remote_content is None,
            local_deleted=local_content is None,
        )

    def _read_local(self, path: str) -> str | None:
        if not self._storage.exists(path):
            return None
        return self._storage.read(path)
