"""Sync engine that orchestrates one reconciliation run.

The ``SyncEngine`` ties together the metadata store, scanner, conflict
detector, reconciler, conflict policy, and commit coordinator.  A regular
``sync()``:

1. Folds local edits and deletions into the metadata snapshot.
2. Fetches the remote tree and the remote manifest.
3. Detects true conflicts and applies the conflict policy.
4. Classifies every other path into an action.
5. Downloads and deletes locally, concurrently.
6. Commits uploads, remote deletions and the manifest as one commit.

Any failure aborts the run.  Only one run (``sync()`` or
``first_sync()``) is active per engine; a second one started meanwhile
returns a skipped report without doing anything.
"""

from __future__ import annotations

import contextlib
import logging
from datetime import datetime, timezone
from typing import Any, Iterator

from vault_sync.config import Config
from vault_sync.core.async_utils import gather_limited, run_sync, run_sync_limited
from vault_sync.core.client import RemoteClient
from vault_sync.storage import VaultStorage

from .bootstrap import Bootstrapper
from .committer import CommitCoordinator
from .conflicts import ConflictDetector
from .errors import ManifestMissingError
from .ignore import IgnoreRules
from .manifest import (
    decode_file_payload,
    decode_manifest,
    log_file_path,
    manifest_path,
)
from .models import (
    ConflictResolution,
    FileRecord,
    RemoteTree,
    RemoteTreeEntry,
    SyncAction,
    SyncReport,
    TreeItem,
    now_ms,
)
from .reconciler import Reconciler
from .resolver import ConflictResolver, create_resolver
from .scanner import VaultScanner
from .state import MetadataStore

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncEngine:
    """Synchronise one vault with one remote branch.

    Args:
        config: Validated configuration.
        client: Remote client for the configured repository.
        storage: Local vault storage.
        resolver: Conflict policy; defaults to the one named by
            ``config.conflict_handling``.
    """

    def __init__(
        self,
        config: Config,
        client: RemoteClient,
        storage: VaultStorage,
        resolver: ConflictResolver | None = None,
    ) -> None:
        self.config = config
        self.client = client
        self.storage = storage
        self.resolver = resolver or create_resolver(config.conflict_handling)

        self.manifest = manifest_path(config.config_dir)
        self.store = MetadataStore(storage, config.config_dir)
        self.scanner = VaultScanner(
            storage, IgnoreRules(), config.config_dir, config.sync_config_dir
        )
        self.committer = CommitCoordinator(
            client, storage, self.store, self.manifest
        )
        self._syncing = False

    # ------------------------------------------------------------------
    # Run guard
    # ------------------------------------------------------------------

    @property
    def syncing(self) -> bool:
        return self._syncing

    @contextlib.contextmanager
    def _run_guard(self) -> Iterator[bool]:
        """Hold the run token for the duration of the block.

        Yields ``False`` without acquiring anything when another run holds
        the token.
        """
        if self._syncing:
            yield False
            return
        self._syncing = True
        try:
            yield True
        finally:
            self._syncing = False

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def load_metadata(self) -> None:
        """Load ignore rules and the snapshot, seeding an empty snapshot.

        A vault that was never synced gets one record per syncable file
        (no hash yet) plus the manifest record, and is saved right away.
        """
        logger.info("Loading metadata")
        self.scanner.ignore = IgnoreRules.load(self.storage)
        self.store.load()
        if self.store.is_empty:
            logger.info("Metadata was empty, loading all files")
            self.store.data.files = self.scanner.initial_records(now_ms())
            self.store.save()
        logger.info("Loaded metadata for %d files", len(self.store.data.files))

    def reset_metadata(self) -> None:
        """Forget every record; the next run must be a first sync."""
        self.store.reset()
        self.store.save()
        logger.info("Metadata reset")

    def add_config_dir_to_metadata(self) -> list[str]:
        """Track every config directory file after config sync was enabled.

        Returns:
            The paths added.
        """
        now = now_ms()
        added = []
        for path in self.scanner.list_config_dir():
            if path == self.manifest or path == log_file_path(self.config.config_dir):
                continue
            self.store.upsert(FileRecord(path=path, last_modified=now))
            added.append(path)
        self.store.save()
        logger.info("Added %d config dir files to metadata", len(added))
        return added

    def remove_config_dir_from_metadata(self) -> list[str]:
        """Stop tracking config directory files after config sync was disabled.

        The manifest record is kept.

        Returns:
            The paths removed.
        """
        removed = []
        for path in self.scanner.list_config_dir():
            if path == self.manifest:
                continue
            self.store.remove(path)
            removed.append(path)
        self.store.save()
        logger.info("Removed %d config dir files from metadata", len(removed))
        return removed

    def status(self) -> dict[str, Any]:
        """Summarise the local snapshot without contacting the remote."""
        records = [
            r for path, r in self.store.data.files.items() if path != self.manifest
        ]
        last_sync = self.store.data.last_sync
        return {
            "repository": f"{self.config.owner}/{self.config.repo}",
            "branch": self.config.branch,
            "vault": str(self.storage.root),
            "syncing": self._syncing,
            "first_sync_required": last_sync == 0,
            "last_sync": (
                datetime.fromtimestamp(last_sync / 1000, timezone.utc).isoformat()
                if last_sync
                else None
            ),
            "tracked_files": sum(1 for r in records if not r.deleted),
            "dirty_files": sum(1 for r in records if r.dirty and not r.deleted),
            "tombstones": sum(1 for r in records if r.deleted),
        }

    # ------------------------------------------------------------------
    # Per-file operations
    # ------------------------------------------------------------------

    def download_file(self, entry: RemoteTreeEntry, last_modified: int) -> bool:
        """Write the remote version of ``entry.path`` into the vault.

        Skipped when the snapshot already records the remote hash for a
        file that is still present.

        Returns:
            ``True`` if the file was written.
        """
        record = self.store.get(entry.path)
        if (
            record is not None
            and not record.deleted
            and record.sha == entry.sha
            and self.storage.exists(entry.path)
        ):
            return False
        payload = self.client.get_file_content(entry.path, retry=True)
        self.storage.write_binary(entry.path, decode_file_payload(payload))
        self.store.upsert(
            FileRecord(
                path=entry.path,
                sha=entry.sha,
                just_downloaded=True,
                last_modified=last_modified,
            )
        )
        self.store.save()
        logger.info("Downloaded %s", entry.path)
        return True

    def delete_local_file(self, path: str) -> None:
        """Remove *path* from the vault and tombstone its record."""
        if self.storage.exists(path):
            self.storage.remove(path)
        self.store.mark_deleted(path, now_ms())
        self.store.save()
        logger.info("Deleted local %s", path)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def first_sync(self) -> SyncReport:
        """Bootstrap a vault and repository that were never synced.

        Raises:
            BootstrapConflictError: If both sides hold content.
        """
        started_at = _now_iso()
        with self._run_guard() as acquired:
            if not acquired:
                logger.info("First sync already in progress")
                return SyncReport(kind="first_sync", skipped=True, started_at=started_at)

            logger.info(
                "Starting first sync with %s/%s@%s",
                self.config.owner,
                self.config.repo,
                self.config.branch,
            )
            bootstrapper = Bootstrapper(
                self.client,
                self.storage,
                self.store,
                self.scanner,
                self.committer,
                self.manifest,
            )
            actions, commit_sha = await bootstrapper.run()
            return SyncReport(
                kind="first_sync",
                actions=actions,
                commit_sha=commit_sha,
                started_at=started_at,
                completed_at=_now_iso(),
            )

    async def sync(self, resolver: ConflictResolver | None = None) -> SyncReport:
        """Reconcile the vault with the remote branch.

        Args:
            resolver: Conflict policy for this run only.

        Raises:
            ManifestMissingError: If the remote was never bootstrapped.
            ManifestParseError: If the remote manifest cannot be decoded.
            UnresolvedConflictsError: If the policy needs resolutions that
                were not supplied.
        """
        started_at = _now_iso()
        with self._run_guard() as acquired:
            if not acquired:
                logger.info("Sync already in progress")
                return SyncReport(skipped=True, started_at=started_at)
            return await self._sync(resolver or self.resolver, started_at)

    async def _sync(
        self, resolver: ConflictResolver, started_at: str
    ) -> SyncReport:
        logger.info("Starting sync")
        await run_sync(self.scanner.refresh, self.store.data.files, now_ms())

        remote = await run_sync(self.client.get_repo_content, retry=True)
        if self.manifest not in remote.files:
            logger.error("Remote manifest %s is missing", self.manifest)
            raise ManifestMissingError(self.manifest)

        files = dict(remote.files)
        # Never pull a log file that was synced by mistake
        files.pop(log_file_path(self.config.config_dir), None)
        remote = RemoteTree(files=files, sha=remote.sha)

        payload = await run_sync(
            self.client.get_file_content, self.manifest, retry=True
        )
        remote_metadata = decode_manifest(payload.get("content") or "")
        remote_files = remote_metadata.files
        local_files = self.store.data.files

        detector = ConflictDetector(
            self.client, self.storage, local_files, self.manifest
        )
        conflicts = await detector.find_conflicts(remote_files)

        conflict_actions: list[SyncAction] = []
        resolutions: list[ConflictResolution] = []
        if conflicts:
            conflict_actions, resolutions = await run_sync(
                resolver.resolve, conflicts
            )

        reconciler = Reconciler(
            self.storage,
            self.config.config_dir,
            self.manifest,
            self.config.sync_config_dir,
        )
        actions = await reconciler.classify(
            remote_files, local_files, {c.path for c in conflicts}
        )
        actions.extend(conflict_actions)

        report_fields = {
            "conflicts": [c.path for c in conflicts],
            "resolved": [r.path for r in resolutions],
            "started_at": started_at,
        }
        if not actions:
            logger.info("Nothing to sync")
            return SyncReport(completed_at=_now_iso(), **report_fields)
        logger.info("Actions to sync: %s", [(a.type, a.path) for a in actions])

        tree = self._target_tree(remote, actions)
        await self._apply_local(remote, remote_files, actions)
        commit_sha = await self.committer.commit(tree, resolutions)
        return SyncReport(
            actions=actions,
            commit_sha=commit_sha,
            completed_at=_now_iso(),
            **report_fields,
        )

    def _target_tree(
        self, remote: RemoteTree, actions: list[SyncAction]
    ) -> dict[str, TreeItem]:
        tree = {
            path: TreeItem(path=path, mode=entry.mode, type=entry.type, sha=entry.sha)
            for path, entry in remote.files.items()
        }
        for action in actions:
            if action.type == "upload":
                existing = tree.get(action.path)
                tree[action.path] = TreeItem(
                    path=action.path,
                    sha=existing.sha if existing else None,
                    upload=True,
                )
            elif action.type == "delete_remote":
                if action.path in tree:
                    tree[action.path].delete = True
                else:
                    logger.debug("%s already absent from remote", action.path)
        return tree

    async def _apply_local(
        self,
        remote: RemoteTree,
        remote_files: dict[str, FileRecord],
        actions: list[SyncAction],
    ) -> None:
        jobs = []
        for action in actions:
            if action.type == "download":
                entry = remote.files.get(action.path)
                if entry is None:
                    logger.warning(
                        "%s is in the manifest but not in the remote tree",
                        action.path,
                    )
                    continue
                record = remote_files.get(action.path)
                last_modified = record.last_modified if record else now_ms()
                jobs.append(
                    run_sync_limited(self.download_file, entry, last_modified)
                )
            elif action.type == "delete_local":
                jobs.append(run_sync_limited(self.delete_local_file, action.path))
        await gather_limited(jobs)
