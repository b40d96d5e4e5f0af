"""Per-path diff classification.

Compares the remote manifest's records with the local snapshot's records
and the actual local content, producing at most one ``SyncAction`` per
path.  Conflicting paths are excluded by the caller and handled by the
conflict policy.

Decision table for a path known to both sides (first match wins):

=====================================  =================================
Situation                              Action
=====================================  =================================
manifest path                          none
both tombstoned                        none
remote hash == actual local hash       none
remote tombstone, local live           later timestamp wins; a tie keeps
                                       the edit (``upload``)
remote live, local tombstone           later timestamp wins; a tie keeps
                                       the edit (``download``)
local content changed                  ``upload``
otherwise                              ``download``
=====================================  =================================

A tombstone carries no content, so its hash never matches a live file.
"""

from __future__ import annotations

import logging

from vault_sync.core.async_utils import gather_limited, run_sync_limited
from vault_sync.storage import VaultStorage

from .hashing import file_sha
from .manifest import in_config_dir
from .models import (
    DeleteLocalAction,
    DeleteRemoteAction,
    DownloadAction,
    FileRecord,
    SyncAction,
    UploadAction,
)

logger = logging.getLogger(__name__)


class Reconciler:
    """Classify every known path into a sync action.

    Args:
        storage: Local vault storage, used to hash current content.
        config_dir: Vault-relative config directory name.
        manifest: Vault-relative manifest path.
        sync_config_dir: Whether config directory files take part.
    """

    def __init__(
        self,
        storage: VaultStorage,
        config_dir: str,
        manifest: str,
        sync_config_dir: bool = False,
    ) -> None:
        self._storage = storage
        self._config_dir = config_dir
        self._manifest = manifest
        self._sync_config_dir = sync_config_dir

    async def classify(
        self,
        remote_files: dict[str, FileRecord],
        local_files: dict[str, FileRecord],
        exclude_paths: set[str] | None = None,
    ) -> list[SyncAction]:
        """Return the actions that bring both sides in line.

        Args:
            remote_files: Records from the remote manifest.
            local_files: Records from the local snapshot.
            exclude_paths: Paths decided elsewhere (conflicts).

        Returns:
            Actions in path order.
        """
        exclude_paths = exclude_paths or set()
        common = sorted(
            path
            for path in remote_files
            if path in local_files
            and path not in exclude_paths
            and path != self._manifest
        )
        decided = await gather_limited(
            [self._classify_common(remote_files[p], local_files[p]) for p in common]
        )
        actions: list[SyncAction] = [a for a in decided if a is not None]

        skip = exclude_paths | {self._manifest}
        for path in sorted(remote_files.keys() - local_files.keys()):
            if path in skip or remote_files[path].deleted:
                continue
            actions.append(DownloadAction(path=path))

        for path in sorted(local_files.keys() - remote_files.keys()):
            if path in skip or local_files[path].deleted:
                continue
            actions.append(UploadAction(path=path))

        actions = self.filter_actions(actions)
        actions.sort(key=lambda a: a.path)
        logger.debug("Classified %d actions", len(actions))
        return actions

    def filter_actions(self, actions: list[SyncAction]) -> list[SyncAction]:
        """Drop config directory actions unless config sync is enabled.

        The manifest always survives.
        """
        if self._sync_config_dir:
            return list(actions)
        return [
            a
            for a in actions
            if a.path == self._manifest
            or not in_config_dir(a.path, self._config_dir)
        ]

    async def _classify_common(
        self, remote: FileRecord, local: FileRecord
    ) -> SyncAction | None:
        if remote.deleted and local.deleted:
            return None

        actual = await run_sync_limited(file_sha, self._storage, local.path)
        remote_sha = None if remote.deleted else remote.sha
        if remote_sha == actual:
            return None

        path = local.path
        if remote.deleted and not local.deleted:
            if (remote.deleted_at or 0) > local.last_modified:
                return DeleteLocalAction(path=path)
            return UploadAction(path=path)

        if local.deleted and not remote.deleted:
            if (local.deleted_at or 0) > remote.last_modified:
                return DeleteRemoteAction(path=path)
            return DownloadAction(path=path)

        if actual != local.sha:
            return UploadAction(path=path)
        return DownloadAction(path=path)
