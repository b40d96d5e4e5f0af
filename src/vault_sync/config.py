"""Configuration for the vault sync server.

Reads remote repository settings from CLI args, environment variables,
.env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    VAULT_SYNC_OWNER: Repository owner (required)
    VAULT_SYNC_REPO: Repository name (required)
    VAULT_SYNC_TOKEN: API access token (required)
    VAULT_SYNC_BRANCH: Branch to sync against (optional, default: main)
    VAULT_SYNC_VAULT: Local vault root directory (optional, default: CWD)
    VAULT_SYNC_CONFIG_DIR: Vault config directory name (optional, default: .obsidian)
    VAULT_SYNC_SYNC_CONFIG_DIR: Also sync the config directory (optional, default: false)
    VAULT_SYNC_CONFLICT_HANDLING: ask | overwrite_local | overwrite_remote
    VAULT_SYNC_MAX_RETRIES: Retries on transient remote failures (optional, default: 5)
    VAULT_SYNC_MAX_PARALLEL_REQUESTS: Max concurrent per-file operations (optional, default: 5)
"""

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

CONFLICT_POLICIES = ("ask", "overwrite_local", "overwrite_remote")

DEFAULT_API_BASE = "https://gitee.com/api/v5"


@dataclass
class Config:
    owner: str
    repo: str
    token: str
    branch: str = "main"
    vault_root: str = "."
    config_dir: str = ".obsidian"
    sync_config_dir: bool = False
    conflict_handling: str = "ask"
    max_retries: int = 5
    max_parallel_requests: int = 5
    api_base: str = DEFAULT_API_BASE
    debug: bool = False


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If credentials are empty, the API base URL is
            malformed, or a numeric/enum setting is out of range.
    """
    for field_name, env_name in (
        ("owner", "VAULT_SYNC_OWNER"),
        ("repo", "VAULT_SYNC_REPO"),
        ("token", "VAULT_SYNC_TOKEN"),
    ):
        value = getattr(config, field_name).strip()
        if not value:
            raise ValueError(
                f"Repository {field_name} cannot be empty. Set {env_name} environment variable."
            )
        setattr(config, field_name, value)

    if not config.branch.strip():
        raise ValueError("Branch cannot be empty.")

    config.api_base = config.api_base.strip()
    if not config.api_base.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid API base URL '{config.api_base}': must start with http:// or https://"
        )
    if not urlparse(config.api_base).hostname:
        raise ValueError(
            f"Invalid API base URL '{config.api_base}': URL must include a hostname"
        )
    config.api_base = config.api_base.removesuffix("/")

    # Config dir is a vault-relative folder name, never a path
    config.config_dir = config.config_dir.strip().strip("/")
    if not config.config_dir or ".." in config.config_dir:
        raise ValueError(
            f"Invalid config directory '{config.config_dir}'"
        )

    if config.conflict_handling not in CONFLICT_POLICIES:
        raise ValueError(
            f"Invalid conflict handling '{config.conflict_handling}': "
            f"must be one of {list(CONFLICT_POLICIES)}"
        )

    if not (0 <= config.max_retries <= 20):
        raise ValueError(
            f"Invalid max_retries {config.max_retries}: must be between 0 and 20"
        )
    if not (1 <= config.max_parallel_requests <= 100):
        raise ValueError(
            f"Invalid max_parallel_requests {config.max_parallel_requests}: must be between 1 and 100"
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_int_env(key: str, low: int, high: int) -> int | None:
    """Return an int from env var, or None if unset."""
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        ) from None
    if not (low <= value <= high):
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        )
    return value


def load_config(
    owner: str | None = None,
    repo: str | None = None,
    token: str | None = None,
    branch: str | None = None,
    vault_root: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        owner: Override repository owner.
        repo: Override repository name.
        token: Override API token.
        branch: Override branch name.
        vault_root: Override local vault directory.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flat dict merged from the YAML ``remote`` and
            ``sync`` sections. Used when CLI arg and env var are unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If owner, repo, or token is missing after checking
            all sources, or any value fails validation.
    """
    fb = yaml_fallbacks or {}

    # --- Required string fields: CLI > env > YAML > error ---

    final_owner = owner or os.getenv("VAULT_SYNC_OWNER") or fb.get("owner")
    if not final_owner:
        raise ValueError(
            "Repository owner not found. Set VAULT_SYNC_OWNER environment variable, "
            "pass --owner CLI argument, or add 'owner' to config.yml."
        )

    final_repo = repo or os.getenv("VAULT_SYNC_REPO") or fb.get("repo")
    if not final_repo:
        raise ValueError(
            "Repository name not found. Set VAULT_SYNC_REPO environment variable, "
            "pass --repo CLI argument, or add 'repo' to config.yml."
        )

    final_token = token or os.getenv("VAULT_SYNC_TOKEN") or fb.get("token")
    if not final_token:
        raise ValueError(
            "Access token not found. Set VAULT_SYNC_TOKEN environment variable, "
            "pass --token CLI argument, or add 'token' to config.yml."
        )

    # --- Optional string fields: CLI > env > YAML > default ---

    final_branch = (
        branch or os.getenv("VAULT_SYNC_BRANCH") or fb.get("branch") or "main"
    )
    final_vault = (
        vault_root
        or os.getenv("VAULT_SYNC_VAULT")
        or fb.get("vault_root")
        or "."
    )
    final_config_dir = (
        os.getenv("VAULT_SYNC_CONFIG_DIR")
        or fb.get("config_dir")
        or ".obsidian"
    )
    final_conflicts = (
        os.getenv("VAULT_SYNC_CONFLICT_HANDLING")
        or fb.get("conflict_handling")
        or "ask"
    )
    final_api_base = (
        os.getenv("VAULT_SYNC_API_BASE")
        or fb.get("api_base")
        or DEFAULT_API_BASE
    )

    # --- Boolean fields: CLI > env > YAML > default ---

    env_sync_config = _get_bool_env("VAULT_SYNC_SYNC_CONFIG_DIR")
    if env_sync_config is not None:
        final_sync_config = env_sync_config
    else:
        final_sync_config = bool(fb.get("sync_config_dir", False))

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("VAULT_SYNC_DEBUG")
        final_debug = (
            env_debug
            if env_debug is not None
            else bool(fb.get("debug", False))
        )

    # --- Numeric fields: env > YAML > default ---

    final_retries = _get_int_env("VAULT_SYNC_MAX_RETRIES", 0, 20)
    if final_retries is None:
        final_retries = int(fb.get("max_retries", 5))

    final_parallel = _get_int_env(
        "VAULT_SYNC_MAX_PARALLEL_REQUESTS", 1, 100
    )
    if final_parallel is None:
        final_parallel = int(fb.get("max_parallel_requests", 5))

    config = Config(
        owner=final_owner,
        repo=final_repo,
        token=final_token,
        branch=final_branch,
        vault_root=final_vault,
        config_dir=final_config_dir,
        sync_config_dir=final_sync_config,
        conflict_handling=final_conflicts,
        max_retries=final_retries,
        max_parallel_requests=final_parallel,
        api_base=final_api_base,
        debug=final_debug,
    )

    validate_config(config)

    return config
