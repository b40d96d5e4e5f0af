"""Tests for per-path action classification.

Covers:
- Local edit of a synced file uploads
- Remote tombstone newer than the local edit deletes locally
- Tombstone tie-break in both directions, ties keeping the edit
- Remote-only and local-only paths, tombstones without counterpart
- Converged content and both-tombstoned paths are no-ops
- Config directory filtering always keeps the manifest
- Idempotence of a second classification after applying the first
"""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import MANIFEST, write_file

from vault_sync.storage import VaultStorage
from vault_sync.sync.hashing import blob_sha
from vault_sync.sync.models import (
    DeleteLocalAction,
    DeleteRemoteAction,
    DownloadAction,
    FileRecord,
    UploadAction,
)
from vault_sync.sync.reconciler import Reconciler

HASH_X = blob_sha(b"version x")
HASH_Y = blob_sha(b"version y")


def _reconciler(root: Path, sync_config_dir: bool = False) -> Reconciler:
    return Reconciler(VaultStorage(root), ".obsidian", MANIFEST, sync_config_dir)


def _tombstone(path: str, at: int, sha: str | None = None) -> FileRecord:
    record = FileRecord(path=path, sha=sha, last_modified=1)
    record.mark_deleted(at)
    return record


class TestCommonPaths:
    async def test_local_edit_uploads(self, tmp_path: Path):
        write_file(tmp_path, "a.md", "version y")
        remote = {"a.md": FileRecord(path="a.md", sha=HASH_X)}
        local = {"a.md": FileRecord(path="a.md", sha=HASH_X)}
        actions = await _reconciler(tmp_path).classify(remote, local)
        assert actions == [UploadAction(path="a.md")]

    async def test_remote_change_downloads(self, tmp_path: Path):
        write_file(tmp_path, "a.md", "version x")
        remote = {"a.md": FileRecord(path="a.md", sha=HASH_Y)}
        local = {"a.md": FileRecord(path="a.md", sha=HASH_X)}
        actions = await _reconciler(tmp_path).classify(remote, local)
        assert actions == [DownloadAction(path="a.md")]

    async def test_newer_remote_delete_deletes_local(self, tmp_path: Path):
        write_file(tmp_path, "a.md", "version x")
        remote = {"a.md": _tombstone("a.md", 100, sha=HASH_X)}
        local = {"a.md": FileRecord(path="a.md", sha=HASH_X, last_modified=50)}
        actions = await _reconciler(tmp_path).classify(remote, local)
        assert actions == [DeleteLocalAction(path="a.md")]

    async def test_newer_local_edit_resurrects_remote(self, tmp_path: Path):
        write_file(tmp_path, "a.md", "version y")
        remote = {"a.md": _tombstone("a.md", 100, sha=HASH_X)}
        local = {"a.md": FileRecord(path="a.md", sha=HASH_X, last_modified=150)}
        actions = await _reconciler(tmp_path).classify(remote, local)
        assert actions == [UploadAction(path="a.md")]

    async def test_remote_delete_tie_keeps_edit(self, tmp_path: Path):
        write_file(tmp_path, "a.md", "version x")
        remote = {"a.md": _tombstone("a.md", 100, sha=HASH_X)}
        local = {"a.md": FileRecord(path="a.md", sha=HASH_X, last_modified=100)}
        actions = await _reconciler(tmp_path).classify(remote, local)
        assert actions == [UploadAction(path="a.md")]

    async def test_newer_local_delete_deletes_remote(self, tmp_path: Path):
        remote = {"a.md": FileRecord(path="a.md", sha=HASH_X, last_modified=50)}
        local = {"a.md": _tombstone("a.md", 100, sha=HASH_X)}
        actions = await _reconciler(tmp_path).classify(remote, local)
        assert actions == [DeleteRemoteAction(path="a.md")]

    async def test_newer_remote_edit_resurrects_local(self, tmp_path: Path):
        remote = {"a.md": FileRecord(path="a.md", sha=HASH_Y, last_modified=150)}
        local = {"a.md": _tombstone("a.md", 100, sha=HASH_X)}
        actions = await _reconciler(tmp_path).classify(remote, local)
        assert actions == [DownloadAction(path="a.md")]

    async def test_local_delete_tie_keeps_edit(self, tmp_path: Path):
        remote = {"a.md": FileRecord(path="a.md", sha=HASH_Y, last_modified=100)}
        local = {"a.md": _tombstone("a.md", 100, sha=HASH_X)}
        actions = await _reconciler(tmp_path).classify(remote, local)
        assert actions == [DownloadAction(path="a.md")]

    async def test_both_tombstoned_is_noop(self, tmp_path: Path):
        remote = {"a.md": _tombstone("a.md", 100)}
        local = {"a.md": _tombstone("a.md", 200)}
        assert await _reconciler(tmp_path).classify(remote, local) == []

    async def test_converged_content_is_noop(self, tmp_path: Path):
        write_file(tmp_path, "a.md", "version y")
        remote = {"a.md": FileRecord(path="a.md", sha=HASH_Y)}
        local = {"a.md": FileRecord(path="a.md", sha=HASH_X)}
        assert await _reconciler(tmp_path).classify(remote, local) == []

    async def test_excluded_paths_skipped(self, tmp_path: Path):
        write_file(tmp_path, "a.md", "version y")
        remote = {"a.md": FileRecord(path="a.md", sha=HASH_X)}
        local = {"a.md": FileRecord(path="a.md", sha=HASH_X)}
        actions = await _reconciler(tmp_path).classify(remote, local, {"a.md"})
        assert actions == []


class TestOneSidedPaths:
    async def test_remote_only_downloads(self, tmp_path: Path):
        remote = {"r.md": FileRecord(path="r.md", sha=HASH_X)}
        assert await _reconciler(tmp_path).classify(remote, {}) == [
            DownloadAction(path="r.md")
        ]

    async def test_local_only_uploads(self, tmp_path: Path):
        write_file(tmp_path, "l.md", "x")
        local = {"l.md": FileRecord(path="l.md")}
        assert await _reconciler(tmp_path).classify({}, local) == [
            UploadAction(path="l.md")
        ]

    async def test_one_sided_tombstones_dropped(self, tmp_path: Path):
        remote = {"r.md": _tombstone("r.md", 5)}
        local = {"l.md": _tombstone("l.md", 5)}
        assert await _reconciler(tmp_path).classify(remote, local) == []

    async def test_manifest_never_classified(self, tmp_path: Path):
        write_file(tmp_path, MANIFEST, "{}")
        remote = {MANIFEST: FileRecord(path=MANIFEST, sha=HASH_X)}
        local = {MANIFEST: FileRecord(path=MANIFEST, sha=HASH_Y)}
        assert await _reconciler(tmp_path).classify(remote, local) == []

    async def test_actions_sorted_by_path(self, tmp_path: Path):
        write_file(tmp_path, "b.md", "x")
        remote = {"c.md": FileRecord(path="c.md", sha=HASH_X), "a.md": FileRecord(path="a.md", sha=HASH_X)}
        local = {"b.md": FileRecord(path="b.md")}
        actions = await _reconciler(tmp_path).classify(remote, local)
        assert [a.path for a in actions] == ["a.md", "b.md", "c.md"]


class TestConfigDirFilter:
    def test_only_manifest_survives(self, tmp_path: Path):
        reconciler = Reconciler(
            VaultStorage(tmp_path), ".config", ".config/vault-sync-metadata.json"
        )
        actions = [
            UploadAction(path=".config/plugin.json"),
            UploadAction(path=".config/vault-sync-metadata.json"),
        ]
        assert reconciler.filter_actions(actions) == [
            UploadAction(path=".config/vault-sync-metadata.json")
        ]

    def test_enabled_keeps_everything(self, tmp_path: Path):
        reconciler = _reconciler(tmp_path, sync_config_dir=True)
        actions = [UploadAction(path=".obsidian/app.json")]
        assert reconciler.filter_actions(actions) == actions

    async def test_classify_drops_config_dir_downloads(self, tmp_path: Path):
        remote = {
            ".obsidian/app.json": FileRecord(path=".obsidian/app.json", sha=HASH_X),
            "note.md": FileRecord(path="note.md", sha=HASH_X),
        }
        actions = await _reconciler(tmp_path).classify(remote, {})
        assert actions == [DownloadAction(path="note.md")]


@pytest.mark.parametrize(
    "deleted_at, edited_at, expected",
    [
        (100, 50, DeleteLocalAction(path="a.md")),
        (50, 100, UploadAction(path="a.md")),
    ],
)
async def test_tombstone_tie_break(tmp_path: Path, deleted_at, edited_at, expected):
    write_file(tmp_path, "a.md", "version y")
    remote = {"a.md": _tombstone("a.md", deleted_at, sha=HASH_X)}
    local = {"a.md": FileRecord(path="a.md", sha=HASH_X, last_modified=edited_at)}
    assert await _reconciler(tmp_path).classify(remote, local) == [expected]


async def test_second_classification_is_empty(tmp_path: Path):
    """Applying the actions and recording the result leaves nothing to do."""
    write_file(tmp_path, "a.md", "version y")
    remote = {"a.md": FileRecord(path="a.md", sha=HASH_X)}
    local = {"a.md": FileRecord(path="a.md", sha=HASH_X)}
    reconciler = _reconciler(tmp_path)
    assert await reconciler.classify(remote, local) == [UploadAction(path="a.md")]

    # The commit records the uploaded hash on both sides
    remote["a.md"] = FileRecord(path="a.md", sha=HASH_Y)
    local["a.md"].mark_synced(HASH_Y)
    assert await reconciler.classify(remote, local) == []
