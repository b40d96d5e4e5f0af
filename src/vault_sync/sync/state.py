"""Metadata persistence layer.

The snapshot of the last successful sync lives inside the vault at
``<config_dir>/vault-sync-metadata.json``, the same path the remote
manifest uses.

Key design choices:

* **Atomic writes** -- ``save()`` writes a temp file in the same
  directory, fsyncs it and calls ``os.replace()`` so a crash never leaves
  a truncated snapshot.
* **Fail-soft load** -- a missing or unreadable snapshot loads as empty,
  which routes the next run through the bootstrap procedure.
* **Mutable snapshot** -- ``data`` is edited in place during a run and
  persisted with ``save()``.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading

from pydantic import ValidationError

from vault_sync.storage import VaultStorage

from .manifest import manifest_path
from .models import FileRecord, Metadata

logger = logging.getLogger(__name__)


class MetadataStore:
    """Load, save, and query the sync metadata snapshot.

    Args:
        storage: Vault storage the snapshot lives in.
        config_dir: Vault-relative config directory name.
    """

    def __init__(self, storage: VaultStorage, config_dir: str) -> None:
        self._storage = storage
        self.path = manifest_path(config_dir)
        self.data = Metadata()
        # Downloads and local deletions save from worker threads
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> Metadata:
        """Load the snapshot from disk.

        Returns:
            The loaded snapshot, or an empty one if the file is missing or
            does not parse.
        """
        target = self._storage.resolve(self.path)
        if not target.exists():
            self.data = Metadata()
            return self.data
        try:
            self.data = Metadata.model_validate_json(target.read_bytes())
        except (OSError, ValidationError) as e:
            logger.warning(
                "Ignoring unreadable metadata %s: %s", self.path, e
            )
            self.data = Metadata()
        return self.data

    def save(self) -> None:
        """Persist the snapshot atomically.

        Creates the config directory if it does not exist.
        """
        target = self._storage.resolve(self.path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            fd, tmp_path = tempfile.mkstemp(
                dir=str(target.parent), suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(self.data.to_json())
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_path, target)
            except BaseException:
                # Clean up temp file on any failure.
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
                raise

    def reset(self) -> None:
        """Replace the in-memory snapshot with an empty one."""
        self.data = Metadata()

    # ------------------------------------------------------------------
    # Record helpers
    # ------------------------------------------------------------------

    @property
    def is_empty(self) -> bool:
        return not self.data.files

    def get(self, path: str) -> FileRecord | None:
        return self.data.files.get(path)

    def upsert(self, record: FileRecord) -> None:
        """Insert or replace the record for ``record.path``."""
        with self._lock:
            self.data.files[record.path] = record

    def mark_deleted(self, path: str, at: int) -> None:
        """Tombstone *path*, creating the record if needed."""
        with self._lock:
            record = self.data.files.setdefault(path, FileRecord(path=path))
            record.mark_deleted(at)

    def remove(self, path: str) -> None:
        """Drop *path* from the snapshot.  No-op if not present."""
        with self._lock:
            self.data.files.pop(path, None)
