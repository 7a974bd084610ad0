"""Content store backed by the GitHub repository contents API."""

from __future__ import annotations

import base64
import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from beadsync.content_store import FileContent
from beadsync.errors import (
    NotFoundError,
    StoreError,
    VersionConflictError,
    WriteRejectedError,
)

if TYPE_CHECKING:
    from typing_extensions import Self

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
USER_AGENT = "beadsync"

# Status codes GitHub uses when the supplied blob sha is stale
_VERSION_CONFLICT_STATUSES = frozenset({409, 422})


class GitHubContentStore:
    """Read and conditionally write files in one GitHub repository.

    The version token is the git blob sha GitHub returns for the file.
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str | None = None,
        *,
        branch: str | None = None,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            owner: Repository owner (user or organization).
            repo: Repository name.
            token: Access token; anonymous access when None.
            branch: Branch to read and commit to (default branch when None).
            api_url: Base URL of the GitHub API.
            timeout: Per-request timeout in seconds.
            client: Pre-built client, mainly for tests.  Its base URL and
                headers are used as-is.
        """
        self.owner = owner
        self.repo = repo
        self.branch = branch or None
        if client is None:
            headers = {
                "Accept": "application/vnd.github.v3+json",
                "User-Agent": USER_AGENT,
            }
            if token:
                headers["Authorization"] = f"token {token}"
            client = httpx.Client(base_url=api_url, headers=headers, timeout=timeout)
        self._client = client

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def _url(self, path: str) -> str:
        return (
            f"/repos/{quote(self.owner)}/{quote(self.repo)}"
            f"/contents/{quote(path.strip('/'))}"
        )

    def _params(self) -> dict[str, str]:
        return {"ref": self.branch} if self.branch else {}

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, turning transport failures into StoreError."""
        try:
            return self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            msg = f"GitHub request {method} {url} failed: {e}"
            raise StoreError(msg) from e

    @staticmethod
    def _error_message(response: httpx.Response, default: str) -> str:
        try:
            body = response.json()
        except ValueError:
            return default
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return default

    def read(self, path: str) -> FileContent:
        """Return the file's content and blob sha."""
        url = self._url(path)
        response = self._request("GET", url, params=self._params())
        if response.status_code == 404:
            msg = f"File {path} not found in {self.owner}/{self.repo}"
            raise NotFoundError(msg)
        if response.status_code != 200:
            msg = self._error_message(
                response,
                f"Failed to fetch {path} (HTTP {response.status_code})",
            )
            raise StoreError(msg)

        body = response.json()
        if not isinstance(body, dict) or "sha" not in body:
            msg = f"{path} is not a file"
            raise StoreError(msg)

        encoded = body.get("content") or ""
        if encoded or not body.get("size"):
            data = base64.b64decode(encoded.replace("\n", ""))
        else:
            # Files over 1 MB come back without inline content
            raw = self._request(
                "GET",
                url,
                params=self._params(),
                headers={"Accept": "application/vnd.github.raw+json"},
            )
            if raw.status_code != 200:
                msg = f"Failed to fetch raw content of {path} (HTTP {raw.status_code})"
                raise StoreError(msg)
            data = raw.content

        logger.debug("Read %s@%s (%d bytes)", path, body["sha"], len(data))
        return FileContent(data=data, version=str(body["sha"]))

    def write_if_version(
        self,
        path: str,
        data: bytes,
        expected_version: str | None,
        message: str,
    ) -> str:
        """Commit new content if the file is still at ``expected_version``."""
        payload: dict[str, str] = {
            "message": message,
            "content": base64.b64encode(data).decode("ascii"),
        }
        if expected_version is not None:
            payload["sha"] = expected_version
        if self.branch:
            payload["branch"] = self.branch

        response = self._request("PUT", self._url(path), json=payload)
        if response.status_code in (200, 201):
            new_sha = response.json().get("content", {}).get("sha", "")
            logger.debug("Committed %s@%s: %s", path, new_sha, message)
            return str(new_sha)

        reason = self._error_message(
            response,
            f"Failed to save {path} (HTTP {response.status_code})",
        )
        if response.status_code in _VERSION_CONFLICT_STATUSES:
            raise VersionConflictError(reason)
        if 400 <= response.status_code < 500:
            raise WriteRejectedError(reason, status_code=response.status_code)
        raise StoreError(reason)

    def list_dir(self, path: str) -> list[str]:
        """Return the file names directly below ``path``."""
        response = self._request("GET", self._url(path), params=self._params())
        if response.status_code == 404:
            return []
        if response.status_code != 200:
            msg = f"Failed to list {path} (HTTP {response.status_code})"
            raise StoreError(msg)
        body = response.json()
        if not isinstance(body, list):
            return []
        return sorted(
            str(entry["name"])
            for entry in body
            if isinstance(entry, dict) and entry.get("type") == "file"
        )
