"""Tests for the first sync.

Covers:
- Empty repository: manifest created first, then one upload commit
- Empty vault: archive extracted, ignore rules and config opt-out honoured
- Both sides populated: BootstrapConflictError
- Helpers: archive root stripping
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import MANIFEST, FakeRemoteClient, write_file

from vault_sync.sync.bootstrap import strip_archive_root
from vault_sync.sync.errors import BootstrapConflictError
from vault_sync.sync.hashing import blob_sha
from vault_sync.sync.ignore import IgnoreRules


class TestStripArchiveRoot:
    def test_strips_top_folder(self):
        assert strip_archive_root("repo-abc/notes/a.md") == "notes/a.md"

    def test_root_folder_itself(self):
        assert strip_archive_root("repo-abc/") == ""

    def test_no_folder(self):
        assert strip_archive_root("a.md") == "a.md"


class TestEmptyRepository:
    async def test_uploads_every_local_file(self, tmp_path: Path, make_engine):
        write_file(tmp_path, "a.md", "alpha")
        write_file(tmp_path, "sub/b.md", "beta")
        client = FakeRemoteClient()
        engine = make_engine(tmp_path, client)

        report = await engine.first_sync()

        assert report.kind == "first_sync"
        assert client.created == [MANIFEST]
        assert len(client.commits) == 1
        assert sorted(report.uploads) == ["a.md", "sub/b.md"]
        assert client.files["a.md"] == b"alpha"
        assert client.files["sub/b.md"] == b"beta"

        _, changes = client.commits[0]
        assert changes[-1].path == MANIFEST
        manifest = json.loads(client.files[MANIFEST])
        assert manifest["files"]["a.md"]["sha"] == blob_sha(b"alpha")
        assert manifest["lastSync"] > 0

    async def test_ignored_files_not_uploaded(self, tmp_path: Path, make_engine):
        write_file(tmp_path, ".gitignore", "*.tmp\n")
        write_file(tmp_path, "a.md", "alpha")
        write_file(tmp_path, "scratch.tmp", "junk")
        client = FakeRemoteClient()
        engine = make_engine(tmp_path, client)

        await engine.first_sync()

        assert "scratch.tmp" not in client.files
        assert ".gitignore" in client.files

    async def test_config_dir_not_uploaded_by_default(self, tmp_path: Path, make_engine):
        write_file(tmp_path, "a.md", "alpha")
        write_file(tmp_path, ".obsidian/app.json", "{}")
        client = FakeRemoteClient()
        await make_engine(tmp_path, client).first_sync()
        assert ".obsidian/app.json" not in client.files
        assert MANIFEST in client.files

    async def test_files_added_after_load_are_uploaded(self, tmp_path: Path, make_engine):
        client = FakeRemoteClient()
        engine = make_engine(tmp_path, client)
        write_file(tmp_path, "late.md", "late")
        report = await engine.first_sync()
        assert report.uploads == ["late.md"]


class TestEmptyVault:
    async def test_downloads_archive(self, tmp_path: Path, make_engine):
        client = FakeRemoteClient(
            {
                "a.md": b"alpha",
                "img/pic.png": b"\x89PNG",
                MANIFEST: b'{"lastSync": 1, "files": {}}',
            }
        )
        engine = make_engine(tmp_path, client)

        report = await engine.first_sync()

        assert (tmp_path / "a.md").read_bytes() == b"alpha"
        assert (tmp_path / "img/pic.png").read_bytes() == b"\x89PNG"
        assert sorted(report.downloads) == ["a.md", "img/pic.png"]
        record = engine.store.get("a.md")
        assert record.sha == blob_sha(b"alpha")
        assert record.just_downloaded
        assert engine.store.data.last_sync > 0

        # The reconciled tree is committed back with a fresh manifest
        _, changes = client.commits[-1]
        assert [(c.action, c.path) for c in changes] == [("update", MANIFEST)]

    async def test_hashes_match_remote(self, tmp_path: Path, make_engine):
        client = FakeRemoteClient({"a.md": b"alpha", "b/c.md": b"gamma"})
        engine = make_engine(tmp_path, client)
        await engine.first_sync()
        tree = client.get_repo_content()
        for path in ("a.md", "b/c.md"):
            assert blob_sha((tmp_path / path).read_bytes()) == tree.files[path].sha

    async def test_skips_ignored_and_config_entries(self, tmp_path: Path, make_engine):
        client = FakeRemoteClient(
            {
                "a.md": b"alpha",
                "private/secret.md": b"s",
                ".obsidian/app.json": b"{}",
                ".obsidian/vault-sync.log": b"log",
            }
        )
        engine = make_engine(tmp_path, client)
        # A .gitignore file would make the vault non-empty
        engine.scanner.ignore = IgnoreRules.parse("private/\n")

        await engine.first_sync()

        assert (tmp_path / "a.md").exists()
        assert not (tmp_path / "private/secret.md").exists()
        assert not (tmp_path / ".obsidian/app.json").exists()
        assert not (tmp_path / ".obsidian/vault-sync.log").exists()


class TestBothPopulated:
    async def test_refuses(self, tmp_path: Path, make_engine):
        write_file(tmp_path, "local.md", "mine")
        client = FakeRemoteClient({"remote.md": b"theirs"})
        engine = make_engine(tmp_path, client)

        with pytest.raises(BootstrapConflictError):
            await engine.first_sync()

        assert client.commits == []
        assert not engine.syncing
