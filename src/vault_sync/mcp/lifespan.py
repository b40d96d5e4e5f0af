"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from ..config import load_config
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import build_config
from ..core.async_utils import init_semaphore, run_sync
from ..core.client import RemoteClient
from ..storage import VaultStorage
from ..sync.engine import SyncEngine

logger = logging.getLogger(__name__)

_CREDENTIALS_HINT = "Ensure VAULT_SYNC_OWNER, VAULT_SYNC_REPO, VAULT_SYNC_TOKEN are set."


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Create RemoteClient and validate repository access
    - Open the vault and load the sync metadata
    - Fail fast if the repository is unreachable or the vault is missing

    Args:
        config_overrides: Optional dict with config values from CLI
            (owner, repo, token, branch, vault_root, debug)

    Yields:
        Dict with 'engine' key containing the initialized SyncEngine

    Raises:
        RuntimeError: If configuration is invalid or startup fails.
    """
    logger.info("MCP server starting...")
    _stderr_print("Vault Sync Server starting...")

    try:
        # .env first so ${VAR} interpolation in YAML can use its values
        load_dotenv()

        yaml_fallbacks: dict[str, Any] | None = None
        config_files = discover_config_files()
        sources = []

        if config_files:
            config_path = config_files[0]
            unified = build_config(load_hierarchical_config())
            yaml_fallbacks = unified.fallbacks()
            sources.append(f"config file: {config_path}")

        overrides = config_overrides or {}
        config = load_config(
            owner=overrides.get("owner"),
            repo=overrides.get("repo"),
            token=overrides.get("token"),
            branch=overrides.get("branch"),
            vault_root=overrides.get("vault_root"),
            debug=overrides.get("debug", False),
            yaml_fallbacks=yaml_fallbacks,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        logger.info(
            "Repository: %s/%s@%s", config.owner, config.repo, config.branch
        )
        _stderr_print(
            f"  Repository: {config.owner}/{config.repo}@{config.branch}"
        )
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print(f"  {_CREDENTIALS_HINT}")
        raise RuntimeError(
            f"Configuration error: {e}. {_CREDENTIALS_HINT}"
        ) from e

    vault = Path(config.vault_root).expanduser().resolve()
    if not vault.is_dir():
        _stderr_print(f"ERROR: Vault directory not found: {vault}")
        raise RuntimeError(f"Vault directory not found: {vault}")
    _stderr_print(f"  Vault: {vault}")

    logger.info("Validating repository access...")
    _stderr_print("  Validating repository access...")
    try:
        client = RemoteClient(config)
        name = await run_sync(client.validate_connection)
        logger.info("Successfully connected to repository %s", name)
        _stderr_print(f"  Connected to repository {name}")
        init_semaphore(config.max_parallel_requests)
        _stderr_print(
            f"  Parallel requests: {config.max_parallel_requests}"
        )
    except Exception as e:
        logger.error("Failed to reach repository: %s", e)
        _stderr_print("ERROR: Repository connection failed.")
        _stderr_print(f"  {e}")
        _stderr_print(f"  {_CREDENTIALS_HINT}")
        raise RuntimeError(
            f"Repository connection failed: {e}. {_CREDENTIALS_HINT}"
        ) from e

    engine = SyncEngine(config, client, VaultStorage(vault))
    await run_sync(engine.load_metadata)
    _stderr_print(
        f"  Conflict handling: {config.conflict_handling}"
    )
    _stderr_print("Server ready. Waiting for MCP client connection...")

    yield {"engine": engine}

    logger.info("MCP server shutting down")
    _stderr_print("Vault Sync Server shutting down.")
