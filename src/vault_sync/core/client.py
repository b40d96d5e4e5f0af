import logging
import threading
from typing import Any
from urllib.parse import quote

import requests

from ..config import Config
from ..sync.models import FileChange, RemoteTree, RemoteTreeEntry
from .retry import retry_until

logger = logging.getLogger(__name__)

# Status the hosting API returns while a branch is still being updated
RETRYABLE_STATUS = 422
EMPTY_REPOSITORY_STATUSES = (404, 409)


class RemoteAPIError(Exception):
    """A remote call finished with a status outside 200-399."""

    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(f"HTTP {status}: {message}")


class EmptyRepositoryError(RemoteAPIError):
    """The remote repository has no commits yet."""


class RemoteClient:
    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.repo_url = self._get_repo_url()

    @property
    def session(self) -> requests.Session:
        """Session for the calling thread."""
        return self._get_session()

    def _get_repo_url(self) -> str:
        return (
            f"{self.config.api_base.rstrip('/')}/repos/"
            f"{quote(self.config.owner, safe='')}/"
            f"{quote(self.config.repo, safe='')}"
        )

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers["Accept"] = "application/json"
        return session

    def _request(
        self,
        method: str,
        url: str,
        retry: bool,
        max_retries: int | None = None,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> requests.Response:
        """
        Perform one API call, retrying on HTTP 422 when *retry* is set.

        Raises:
            RemoteAPIError: If the final response status is outside 200-399.
        """
        if max_retries is None:
            max_retries = self.config.max_retries
        session = self._get_session()
        query = {"access_token": self.config.token, **(params or {})}
        if json is not None:
            # Write endpoints take the token in the body
            json = {"access_token": self.config.token, **json}
            query = params or {}

        def attempt() -> requests.Response:
            return session.request(
                method,
                url,
                params=query,
                json=json,
                timeout=(10, 60),
            )

        response = retry_until(
            attempt,
            lambda r: r.status_code != RETRYABLE_STATUS,
            max_retries if retry else 0,
        )
        if not 200 <= response.status_code < 400:
            raise RemoteAPIError(response.status_code, _error_message(response))
        return response

    def _contents_url(self, path: str) -> str:
        return f"{self.repo_url}/contents/{quote(path)}"

    def get_repo_content(self, retry: bool = False) -> RemoteTree:
        """
        Fetch the recursive blob tree of the configured branch.

        Raises:
            EmptyRepositoryError: If the repository has no commits.
        """
        url = (
            f"{self.repo_url}/git/trees/"
            f"{quote(self.config.branch, safe='')}"
        )
        try:
            response = self._request(
                "GET", url, retry, params={"recursive": 1}
            )
        except RemoteAPIError as e:
            if e.status in EMPTY_REPOSITORY_STATUSES:
                raise EmptyRepositoryError(e.status, e.message) from e
            raise

        body = response.json()
        files = {
            item["path"]: RemoteTreeEntry.model_validate(item)
            for item in body.get("tree", [])
            if item.get("type") == "blob"
        }
        logger.debug("Fetched remote tree %s with %d blobs", body["sha"], len(files))
        return RemoteTree(files=files, sha=body["sha"])

    def get_file_content(
        self,
        path: str,
        retry: bool = False,
        max_retries: int | None = None,
    ) -> dict[str, Any]:
        """
        Fetch one file from the configured branch.

        Returns:
            The API payload; ``content`` is base64 unless ``encoding`` says
            otherwise.
        """
        response = self._request(
            "GET",
            self._contents_url(path),
            retry,
            max_retries=max_retries,
            params={"ref": self.config.branch},
        )
        return response.json()

    def create_file(
        self,
        path: str,
        content: str,
        message: str,
        retry: bool = False,
    ) -> dict[str, Any]:
        """Create a single file with base64 *content* as its own commit."""
        response = self._request(
            "POST",
            self._contents_url(path),
            retry,
            json={
                "content": content,
                "message": message,
                "branch": self.config.branch,
            },
        )
        logger.info("Created %s on %s", path, self.config.branch)
        return response.json()

    def commit_changes(
        self,
        changes: list[FileChange],
        message: str,
        retry: bool = False,
    ) -> str:
        """
        Submit a batch of changes as exactly one commit.

        Returns:
            The new commit identifier.
        """
        actions = [
            change.model_dump(exclude_none=True) for change in changes
        ]
        response = self._request(
            "POST",
            f"{self.repo_url}/commits",
            retry,
            json={
                "message": message,
                "branch": self.config.branch,
                "actions": actions,
            },
        )
        body = response.json()
        commit_sha = body.get("sha") or body.get("commit", {}).get("sha", "")
        logger.info("Committed %d changes as %s", len(changes), commit_sha)
        return commit_sha

    def download_archive(self, retry: bool = False) -> bytes:
        """Download the configured branch as a zip archive."""
        response = self._request(
            "GET",
            f"{self.repo_url}/zipball",
            retry,
            params={"ref": self.config.branch},
        )
        logger.info("Downloaded archive (%d bytes)", len(response.content))
        return response.content

    def validate_connection(self) -> str:
        """
        Check that the repository is reachable with the configured token.

        Returns:
            A short description of the repository.
        """
        response = self._request("GET", self.repo_url, retry=False)
        body = response.json()
        return body.get("full_name") or f"{self.config.owner}/{self.config.repo}"


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason or ""
    if isinstance(body, dict):
        return str(body.get("message") or body)
    return str(body)
