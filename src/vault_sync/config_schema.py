"""Unified configuration schema for vault_sync.

Defines Pydantic models for the unified config structure with dedicated
sections for the remote repository, sync behaviour, and logging. Includes
an adapter function that produces the flat ``Config`` dataclass the rest
of the package consumes.

Usage:
    from vault_sync.config_schema import (
        UnifiedConfig, build_config, to_legacy_config,
    )

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = to_legacy_config(unified, cli_overrides={"repo": "notes"})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class RemoteConfig(BaseModel):
    """Remote repository settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    owner: str | None = Field(
        default=None, description="Repository owner"
    )
    repo: str | None = Field(default=None, description="Repository name")
    token: str | None = Field(
        default=None, description="API access token"
    )
    branch: str | None = Field(
        default=None, description="Branch to sync against"
    )
    api_base: str | None = Field(
        default=None, description="REST API base URL"
    )
    max_retries: int = Field(
        default=5,
        ge=0,
        le=20,
        description="Retries on transient (HTTP 422) failures (0-20)",
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Local vault and reconciliation settings."""

    vault_root: str | None = Field(
        default=None, description="Local vault directory"
    )
    config_dir: str = Field(
        default=".obsidian",
        description="Vault config directory holding the manifest",
    )
    sync_config_dir: bool = Field(
        default=False,
        description="Also sync files under the config directory",
    )
    conflict_handling: Literal[
        "ask", "overwrite_local", "overwrite_remote"
    ] = Field(default="ask", description="Conflict resolution policy")
    max_parallel_requests: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum concurrent per-file operations (1-100)",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid.
    """

    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}

    def fallbacks(self) -> dict:
        """Flatten the ``remote`` and ``sync`` sections for ``load_config``.

        ``None`` values are dropped so they never shadow built-in defaults.
        """
        merged = {
            **self.remote.model_dump(),
            **self.sync.model_dump(),
        }
        return {k: v for k, v in merged.items() if v is not None}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully: anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> Config dataclass
# ---------------------------------------------------------------------------


def to_legacy_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Convert a ``UnifiedConfig`` into the ``Config`` dataclass, applying
    CLI overrides on top.

    The precedence applied here is:
        CLI override > unified config value > built-in default

    CLI overrides dict keys: owner, repo, token, branch, vault_root, debug.

    Args:
        unified: The unified config produced by ``build_config()``.
        cli_overrides: Optional dict of CLI argument values.

    Returns:
        ``Config`` dataclass instance (NOT validated; caller should run
        ``validate_config()`` separately if needed).
    """
    # Import here to avoid circular imports
    from .config import DEFAULT_API_BASE, Config

    overrides = cli_overrides or {}
    remote = unified.remote
    sync = unified.sync

    return Config(
        owner=overrides.get("owner") or remote.owner or "",
        repo=overrides.get("repo") or remote.repo or "",
        token=overrides.get("token") or remote.token or "",
        branch=overrides.get("branch") or remote.branch or "main",
        vault_root=overrides.get("vault_root") or sync.vault_root or ".",
        config_dir=sync.config_dir,
        sync_config_dir=sync.sync_config_dir,
        conflict_handling=sync.conflict_handling,
        max_retries=remote.max_retries,
        max_parallel_requests=sync.max_parallel_requests,
        api_base=remote.api_base or DEFAULT_API_BASE,
        debug=overrides.get("debug", False),
    )
