"""Local vault scanning.

Decides which local files take part in sync and folds local edits,
creations and deletions made between runs into the metadata snapshot, so
the reconciler sees current ``last_modified`` times and tombstones.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from vault_sync.storage import VaultStorage

from .hashing import file_sha
from .ignore import IgnoreRules
from .manifest import (
    SCAN_SKIP_NAMES,
    in_config_dir,
    log_file_path,
    manifest_path,
)
from .models import FileRecord

logger = logging.getLogger(__name__)


@dataclass
class ScanChanges:
    """Paths whose records changed during a refresh."""

    added: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.added) + len(self.modified) + len(self.deleted)


class VaultScanner:
    """Enumerate syncable local files and refresh their records.

    Args:
        storage: Local vault storage.
        ignore: Parsed ``.gitignore`` rules.
        config_dir: Vault-relative config directory name.
        sync_config_dir: Whether config directory files take part.
    """

    def __init__(
        self,
        storage: VaultStorage,
        ignore: IgnoreRules,
        config_dir: str,
        sync_config_dir: bool = False,
    ) -> None:
        self._storage = storage
        self.ignore = ignore
        self._config_dir = config_dir
        self._sync_config_dir = sync_config_dir
        self._manifest = manifest_path(config_dir)
        self._log_file = log_file_path(config_dir)

    def in_scope(self, path: str) -> bool:
        """Return ``True`` if *path* is a syncable file path.

        The manifest is tracked separately and is never in scope here.
        """
        if path in (self._manifest, self._log_file):
            return False
        if in_config_dir(path, self._config_dir):
            if not self._sync_config_dir:
                return False
            if path.rsplit("/", 1)[-1] in SCAN_SKIP_NAMES:
                return False
        return not self.ignore.is_ignored(path)

    def list_files(self) -> list[str]:
        """Return every syncable file in the vault."""
        skip = set() if self._sync_config_dir else {self._config_dir}
        return [
            path
            for path in self._storage.walk("", skip=skip)
            if self.in_scope(path)
        ]

    def list_config_dir(self) -> list[str]:
        """Return every file below the config directory, manifest included."""
        return self._storage.walk(self._config_dir)

    def is_vault_empty(self) -> bool:
        """Return ``True`` if the vault root holds nothing but the config dir."""
        files, folders = self._storage.list("")
        return not files and all(f == self._config_dir for f in folders)

    def initial_records(self, now: int) -> dict[str, FileRecord]:
        """Records for a vault that has never been synced."""
        records = {
            path: FileRecord(path=path, last_modified=now)
            for path in self.list_files()
        }
        records[self._manifest] = FileRecord(
            path=self._manifest, last_modified=now
        )
        logger.info("Scanned %d files into empty metadata", len(records))
        return records

    def refresh(self, files: dict[str, FileRecord], now: int) -> ScanChanges:
        """Fold local changes since the last run into *files* in place.

        - untracked or tombstoned files that exist become live records
        - live records whose content no longer matches get the file's
          modification time as ``last_modified``
        - live records whose file is gone become tombstones at *now*
        """
        changes = ScanChanges()
        present = set(self.list_files())

        for path in sorted(present):
            mtime = self._storage.mtime_ms(path)
            record = files.get(path)
            if record is None:
                files[path] = FileRecord(path=path, dirty=True, last_modified=mtime)
                changes.added.append(path)
                continue
            if record.deleted:
                record.deleted = False
                record.deleted_at = None
                record.dirty = True
                record.last_modified = max(record.last_modified, mtime)
                changes.added.append(path)
                continue
            if record.sha is None or mtime <= record.last_modified:
                continue
            if file_sha(self._storage, path) != record.sha:
                record.dirty = True
                record.just_downloaded = False
                record.last_modified = mtime
                changes.modified.append(path)

        for path, record in files.items():
            if record.deleted or path in present or not self.in_scope(path):
                continue
            record.mark_deleted(now)
            changes.deleted.append(path)

        if changes.total:
            logger.info(
                "Local changes: %d added, %d modified, %d deleted",
                len(changes.added),
                len(changes.modified),
                len(changes.deleted),
            )
        return changes
