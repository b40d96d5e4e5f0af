"""Manifest location and decoding.

The manifest is the metadata snapshot stored as a regular file in the
vault's config directory and committed with every sync.  Its presence in
the remote tree marks a repository that has been bootstrapped.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any, Callable

from pydantic import ValidationError

from .errors import ManifestParseError
from .models import Metadata

logger = logging.getLogger(__name__)

MANIFEST_NAME = "vault-sync-metadata.json"
LOG_FILE_NAME = "vault-sync.log"

# Names skipped by the initial vault scan
SCAN_SKIP_NAMES = frozenset({"workspace.json"})


def manifest_path(config_dir: str) -> str:
    """Vault-relative path of the manifest."""
    return f"{config_dir}/{MANIFEST_NAME}"


def log_file_path(config_dir: str) -> str:
    """Vault-relative path of the log file that is never synced."""
    return f"{config_dir}/{LOG_FILE_NAME}"


def in_config_dir(path: str, config_dir: str) -> bool:
    return path == config_dir or path.startswith(f"{config_dir}/")


# ---------------------------------------------------------------------------
# Content decoding
# ---------------------------------------------------------------------------


def _b64(text: str) -> str:
    return base64.b64decode(text).decode("utf-8")


def _direct(text: str) -> str:
    return text


def _single_base64(text: str) -> str:
    return _b64(text)


def _double_base64(text: str) -> str:
    return _b64(_b64(text))


_DECODERS: list[tuple[str, Callable[[str], str]]] = [
    ("json", _direct),
    ("base64", _single_base64),
    ("double base64", _double_base64),
]


def decode_manifest(raw: str) -> Metadata:
    """Parse manifest content of unknown encoding.

    Tries plain JSON, then base64-encoded JSON, then JSON base64-encoded
    twice.

    Raises:
        ManifestParseError: If no strategy yields a valid snapshot.
    """
    for name, decoder in _DECODERS:
        try:
            data = json.loads(decoder(raw))
            metadata = Metadata.model_validate(data)
        except (
            ValueError,
            binascii.Error,
            UnicodeDecodeError,
            ValidationError,
        ):
            continue
        logger.debug("Decoded manifest as %s", name)
        return metadata
    raise ManifestParseError("Remote manifest is not valid JSON or base64 JSON")


def decode_file_payload(payload: dict[str, Any]) -> bytes:
    """Return the raw bytes of a file-content API payload."""
    content = payload.get("content") or ""
    if payload.get("encoding", "base64") == "base64":
        return base64.b64decode(content)
    return content.encode("utf-8")
