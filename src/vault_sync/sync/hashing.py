"""Git blob hashing.

Hashes are byte-compatible with git's object ids for blobs, so a locally
computed hash compares directly against the ids in the remote tree.
"""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vault_sync.storage import VaultStorage


def blob_sha(data: bytes) -> str:
    """Return the git blob id of *data*: SHA-1 over ``blob <len>\\0<data>``."""
    header = b"blob %d\x00" % len(data)
    return hashlib.sha1(header + data).hexdigest()


def file_sha(storage: VaultStorage, path: str) -> str | None:
    """Hash the file at *path*, or return ``None`` if it does not exist."""
    target = storage.resolve(path)
    if not target.is_file():
        return None
    return blob_sha(target.read_bytes())
