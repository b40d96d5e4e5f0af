"""Two-way vault synchronisation engine.

Public API for synchronising a local vault directory with a remote git
repository reached only through a hosting REST API.

Architecture
------------
Three snapshots are compared on every run: the metadata recorded at the
last successful sync (``state``), the current local content (hashed with
git's blob algorithm) and the remote manifest committed by the last run
of any device.  Each path is classified into exactly one action; true
conflicts go to a conflict policy; the remote side is updated with one
batched commit that always ends with the manifest.

Modules:

- ``engine``     -- ``SyncEngine``: run guard, ``sync()``, ``first_sync()``.
- ``bootstrap``  -- First sync against an empty vault or repository.
- ``scanner``    -- Local file enumeration and change folding.
- ``conflicts``  -- ``ConflictDetector``.
- ``reconciler`` -- ``Reconciler``: per-path action classification.
- ``resolver``   -- Conflict policies (ask, overwrite local/remote).
- ``committer``  -- ``CommitCoordinator``: single atomic remote commit.
- ``state``      -- ``MetadataStore``: atomic snapshot persistence.
- ``manifest``   -- Manifest paths and decoding.
- ``ignore``     -- ``.gitignore`` rules.
- ``hashing``    -- Git blob hashing.
- ``models``     -- Core data contracts.
- ``reporter``   -- Human-readable and JSON report formatting.

Usage example
-------------
::

    import asyncio
    from pathlib import Path
    from vault_sync.config import load_config
    from vault_sync.core.client import RemoteClient
    from vault_sync.storage import VaultStorage
    from vault_sync.sync.engine import SyncEngine
    from vault_sync.sync.reporter import format_sync_report

    config = load_config()
    engine = SyncEngine(
        config,
        RemoteClient(config),
        VaultStorage(Path(config.vault_root)),
    )
    engine.load_metadata()
    report = asyncio.run(engine.sync())
    print(format_sync_report(report))

The engine is imported from its module rather than re-exported here
because the remote client depends on ``sync.models``.
"""

from .errors import (
    BootstrapConflictError,
    ManifestMissingError,
    ManifestParseError,
    SyncError,
    UnresolvedConflictsError,
)
from .models import (
    ConflictFile,
    ConflictResolution,
    FileRecord,
    Metadata,
    SyncAction,
    SyncReport,
)
from .reporter import format_sync_report, report_to_json

__all__ = [
    "BootstrapConflictError",
    "ConflictFile",
    "ConflictResolution",
    "FileRecord",
    "ManifestMissingError",
    "ManifestParseError",
    "Metadata",
    "SyncAction",
    "SyncError",
    "SyncReport",
    "UnresolvedConflictsError",
    "format_sync_report",
    "report_to_json",
]
