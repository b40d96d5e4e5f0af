"""Remote transport and async helpers shared by the sync engine and MCP server."""

from .async_utils import run_sync
from .client import EmptyRepositoryError, RemoteAPIError, RemoteClient

__all__ = [
    "EmptyRepositoryError",
    "RemoteAPIError",
    "RemoteClient",
    "run_sync",
]
