"""Local vault storage: path confinement and encoding-aware read/write.

Every method takes a vault-relative path in the normalised forward-slash
space used by the metadata snapshot and the remote tree.  Methods are
synchronous; the sync engine runs them in worker threads via
``run_sync_limited()``.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from charset_normalizer import from_bytes

from vault_sync.validators import normalize_path, validate_relative_path

logger = logging.getLogger(__name__)


def decode_text(raw: bytes) -> tuple[str, str]:
    """Decode bytes with automatic encoding detection.

    Uses charset-normalizer to detect the encoding.  Defaults to UTF-8 for
    empty input or when detection fails.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    if not raw:
        return ("", "utf-8")

    result = from_bytes(raw).best()
    if result is None:
        return (raw.decode("utf-8", errors="replace"), "utf-8")

    encoding = result.encoding
    # ascii is a strict subset of utf-8
    if encoding == "ascii":
        encoding = "utf-8"
    return (str(result), encoding)


class VaultStorage:
    """Read and write files under a vault root directory.

    Args:
        root: Vault root directory.  Created on first write if missing.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root).resolve()

    # ------------------------------------------------------------------
    # Path handling
    # ------------------------------------------------------------------

    def resolve(self, path: str) -> Path:
        """Map a vault-relative path to an absolute path under the root.

        Raises:
            ValueError: If the path is invalid or escapes the vault root.
        """
        normalized = normalize_path(path)
        if normalized == "":
            return self.root
        is_valid, reason = validate_relative_path(normalized)
        if not is_valid:
            raise ValueError(f"{reason}: {path}")
        resolved = (self.root / normalized).resolve()
        if not resolved.is_relative_to(self.root):
            raise ValueError(
                f"Path is outside the vault: {path}"
            )
        return resolved

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def exists(self, path: str) -> bool:
        return self.resolve(path).exists()

    def mtime_ms(self, path: str) -> int:
        """Modification time of *path* in epoch milliseconds."""
        return self.resolve(path).stat().st_mtime_ns // 1_000_000

    def list(self, folder: str = "") -> tuple[list[str], list[str]]:
        """List the direct children of *folder*.

        Returns:
            ``(files, folders)`` as sorted vault-relative paths.  A missing
            folder lists as empty.
        """
        target = self.resolve(folder)
        if not target.is_dir():
            return [], []
        files: list[str] = []
        folders: list[str] = []
        for child in sorted(target.iterdir()):
            if child.is_dir():
                folders.append(self._relative(child))
            else:
                files.append(self._relative(child))
        return files, folders

    def walk(self, folder: str = "", skip: set[str] | None = None) -> list[str]:
        """Return every file below *folder*, not descending into *skip*."""
        skip = skip or set()
        found: list[str] = []
        pending = [normalize_path(folder)]
        while pending:
            current = pending.pop()
            if current in skip:
                continue
            files, folders = self.list(current)
            found.extend(files)
            pending.extend(folders)
        return sorted(found)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def read(self, path: str) -> str:
        """Read a text file with encoding detection."""
        content, _ = decode_text(self.resolve(path).read_bytes())
        return content

    def read_binary(self, path: str) -> bytes:
        return self.resolve(path).read_bytes()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def write(self, path: str, content: str, encoding: str = "utf-8") -> int:
        """Write text content, creating parent directories as needed.

        Returns:
            Number of bytes written.
        """
        return self.write_binary(path, content.encode(encoding))

    def write_binary(self, path: str, data: bytes) -> int:
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.debug("Wrote %d bytes to %s", len(data), path)
        return len(data)

    def mkdir(self, path: str) -> None:
        self.resolve(path).mkdir(parents=True, exist_ok=True)

    def remove(self, path: str) -> None:
        """Remove a file or directory tree.

        Raises:
            FileNotFoundError: If nothing exists at *path*.
        """
        target = self.resolve(path)
        if target.is_dir():
            shutil.rmtree(target)
        else:
            target.unlink()
        logger.debug("Removed %s", path)
