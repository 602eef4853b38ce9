"""Source reader backed by the GitHub repository contents API."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)


class GitHubSourceReader:
    """Reads files from a GitHub repository at a given ref.

    Usage:
        reader = GitHubSourceReader(token="ghp_xxx", repository="owner/repo")
        content = await reader.read_file("cypress/e2e/login.cy.ts", "main")
        await reader.aclose()
    """

    BASE_URL = "https://api.github.com"

    def __init__(
        self,
        token: str,
        repository: str,
        *,
        base_url: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the reader.

        Args:
            token: GitHub personal access token or GITHUB_TOKEN
            repository: Repository in owner/repo form
            base_url: API root, for GitHub Enterprise
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        if not token:
            raise ValueError("GitHub token is required")
        owner, _, repo = repository.partition("/")
        if not owner or not repo:
            raise ValueError(f"Repository must be in owner/repo form, got: {repository!r}")

        self.owner = owner
        self.repo = repo
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {token}",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _contents_url(self, path: str) -> str:
        return (
            f"{self.base_url}/repos/{self.owner}/{self.repo}/contents/"
            f"{quote(path.lstrip('/'))}"
        )

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=self._headers,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the shared HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> GitHubSourceReader:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def read_file(self, path: str, revision: str) -> str | None:
        """Read a file at a ref.

        Args:
            path: Repository-relative file path
            revision: Branch, tag or commit SHA

        Returns:
            Decoded file content, or None when the file is missing, is a
            directory, or the request fails
        """
        try:
            response = await self._get_client().get(
                self._contents_url(path), params={"ref": revision}
            )
        except httpx.RequestError as e:
            logger.warning("github_read_failed: path=%s, error=%s", path, str(e))
            return None

        if response.status_code == 404:
            logger.debug("github_file_not_found: path=%s, ref=%s", path, revision)
            return None
        if response.status_code >= 400:
            logger.warning(
                "github_read_failed: path=%s, status=%d",
                path,
                response.status_code,
            )
            return None

        try:
            payload = response.json()
        except ValueError:
            logger.warning("github_decode_failed: path=%s, reason=non-json body", path)
            return None
        return self._decode(payload, path)


    @staticmethod
    def _decode(payload: Any, path: str) -> str | None:
        """Decode a contents API payload; directories have no content."""
        if not isinstance(payload, dict) or "content" not in payload:
            return None
        if payload.get("encoding", "base64") != "base64":
            return payload["content"]
        try:
            return base64.b64decode(payload["content"]).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            logger.warning("github_decode_failed: path=%s", path)
            return None
