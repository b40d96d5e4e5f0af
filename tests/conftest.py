"""Shared pytest fixtures for vault-sync-server tests."""

import base64
import io
import os
import zipfile
from pathlib import Path

import pytest

import vault_sync.core.async_utils as async_utils
from vault_sync.config import Config
from vault_sync.core.client import EmptyRepositoryError, RemoteAPIError
from vault_sync.storage import VaultStorage
from vault_sync.sync.engine import SyncEngine
from vault_sync.sync.hashing import blob_sha
from vault_sync.sync.models import FileChange, RemoteTree, RemoteTreeEntry

MANIFEST = ".obsidian/vault-sync-metadata.json"


class FakeRemoteClient:
    """In-memory stand-in for RemoteClient.

    Holds the branch as a ``path -> bytes`` dict and records every commit.
    """

    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self.files: dict[str, bytes] = dict(files or {})
        self.commits: list[tuple[str, list[FileChange]]] = []
        self.created: list[str] = []
        self.content_requests: list[str] = []
        self.fail_commit: Exception | None = None

    def get_repo_content(self, retry: bool = False) -> RemoteTree:
        if not self.files:
            raise EmptyRepositoryError(409, "Git Repository is empty.")
        entries = {
            path: RemoteTreeEntry(path=path, sha=blob_sha(data), size=len(data))
            for path, data in self.files.items()
        }
        tree_sha = blob_sha(
            "\n".join(f"{p}:{e.sha}" for p, e in sorted(entries.items())).encode()
        )
        return RemoteTree(files=entries, sha=tree_sha)

    def get_file_content(
        self, path: str, retry: bool = False, max_retries: int | None = None
    ) -> dict:
        self.content_requests.append(path)
        if path not in self.files:
            raise RemoteAPIError(404, "Not Found")
        return {
            "path": path,
            "encoding": "base64",
            "content": base64.b64encode(self.files[path]).decode("ascii"),
        }

    def create_file(
        self, path: str, content: str, message: str, retry: bool = False
    ) -> dict:
        self.files[path] = base64.b64decode(content)
        self.created.append(path)
        return {"content": {"path": path}}

    def commit_changes(
        self, changes: list[FileChange], message: str, retry: bool = False
    ) -> str:
        if self.fail_commit is not None:
            raise self.fail_commit
        for change in changes:
            if change.action == "delete":
                self.files.pop(change.path, None)
            elif change.encoding == "base64":
                self.files[change.path] = base64.b64decode(change.content)
            else:
                self.files[change.path] = change.content.encode("utf-8")
        self.commits.append((message, list(changes)))
        return f"c{len(self.commits):039d}"

    def download_archive(self, retry: bool = False) -> bytes:
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as zf:
            zf.writestr("alice-notes-1a2b3c/", b"")
            for path, data in self.files.items():
                zf.writestr(f"alice-notes-1a2b3c/{path}", data)
        return buf.getvalue()

    def validate_connection(self) -> str:
        return "alice/notes"


def write_file(root: Path, path: str, content: str | bytes, mtime_ms: int | None = None) -> Path:
    """Write a vault file, optionally pinning its modification time."""
    target = root / path
    target.parent.mkdir(parents=True, exist_ok=True)
    data = content.encode("utf-8") if isinstance(content, str) else content
    target.write_bytes(data)
    if mtime_ms is not None:
        ns = mtime_ms * 1_000_000
        os.utime(target, ns=(ns, ns))
    return target


@pytest.fixture(autouse=True)
def reset_semaphore():
    """Keep the module semaphore from leaking across event loops."""
    original = async_utils._semaphore
    async_utils._semaphore = None
    yield
    async_utils._semaphore = original


@pytest.fixture
def make_config():
    """Factory for a Config pointing at a vault directory."""

    def _make(vault: Path, **overrides) -> Config:
        values = {
            "owner": "alice",
            "repo": "notes",
            "token": "secret-token",
            "vault_root": str(vault),
        }
        values.update(overrides)
        return Config(**values)

    return _make


@pytest.fixture
def mock_config(tmp_path: Path, make_config) -> Config:
    return make_config(tmp_path)


@pytest.fixture
def remote() -> FakeRemoteClient:
    return FakeRemoteClient()


@pytest.fixture
def make_engine(make_config):
    """Factory for a SyncEngine over a vault directory and a fake remote."""

    def _make(vault: Path, client: FakeRemoteClient, **overrides) -> SyncEngine:
        vault.mkdir(parents=True, exist_ok=True)
        engine = SyncEngine(
            make_config(vault, **overrides), client, VaultStorage(vault)
        )
        engine.load_metadata()
        return engine

    return _make
