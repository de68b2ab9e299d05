"""Transport for the GitHub REST and GraphQL APIs.

HTTP errors are mapped onto the library exceptions: 404 becomes
`NotFoundError`, rate limiting, server errors and connection failures become
`TransientAPIError` and are retried here with exponential backoff before
being raised to the caller.
"""

import asyncio
import logging
from typing import Any

import aiohttp

from chart_release.config import GitHubConfig, RepositoryConfig
from chart_release.exceptions import (
    ConcurrencyConflict,
    GitHubApiException,
    NotFoundError,
    TransientAPIError,
)

__all__ = [
    "GitHubClient",
]

_LOGGER = logging.getLogger(__name__)

API_VERSION = "2022-11-28"
_RETRY_STATUSES = {429, 500, 502, 503, 504}
_BACKOFF = 1.0
_STALE_DATA = "STALE_DATA"
_NOT_FOUND = "NOT_FOUND"
_HEAD_MISMATCH = "Expected branch to point to"


def _graphql_error(errors: list[dict[str, Any]]) -> GitHubApiException:
    """Map GraphQL errors onto the most specific exception."""
    types = {error.get("type") for error in errors if isinstance(error, dict)}
    message = "; ".join(
        str(error.get("message", error)) if isinstance(error, dict) else str(error)
        for error in errors
    )
    if _STALE_DATA in types or _HEAD_MISMATCH in message:
        return ConcurrencyConflict(f"GraphQL head revision conflict: {message}")
    if _NOT_FOUND in types:
        return NotFoundError(f"GraphQL object not found: {message}", 404)
    return GitHubApiException(f"GraphQL request failed: {message}")


class GitHubClient:
    """Issues authenticated requests to the GitHub API for one repository."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        config: GitHubConfig,
        repository: RepositoryConfig,
    ) -> None:
        """Initialize GitHubClient."""
        self._session = session
        self._config = config
        self._repository = repository
        self._headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
        }
        if config.token:
            self._headers["Authorization"] = f"Bearer {config.token}"

    @property
    def owner(self) -> str:
        """Return the repository owner."""
        return self._repository.owner

    @property
    def repo(self) -> str:
        """Return the repository name."""
        return self._repository.name

    @property
    def repo_path(self) -> str:
        """Return the REST path prefix of the repository."""
        return f"/repos/{self.owner}/{self.repo}"

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self._config.api_url.rstrip('/')}{path}"

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        data: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Issue a request, retrying transient failures, and return the JSON body."""
        url = self._url(path)
        attempt = 1
        while True:
            try:
                return await self._send(
                    method, url, params=params, json=json, data=data, headers=headers
                )
            except TransientAPIError as err:
                if attempt >= self._config.retries:
                    raise
                delay = _BACKOFF * 2 ** (attempt - 1)
                _LOGGER.info(
                    "Retrying %s %s in %.1fs (attempt %d): %s",
                    method,
                    url,
                    delay,
                    attempt,
                    err,
                )
                await asyncio.sleep(delay)
                attempt += 1

    async def _send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None,
        json: Any,
        data: bytes | None,
        headers: dict[str, str] | None,
    ) -> Any:
        _LOGGER.debug("GitHub API request: %s %s %s", method, url, params or "")
        try:
            async with self._session.request(
                method,
                url,
                params=params,
                json=json,
                data=data,
                headers={**self._headers, **(headers or {})},
            ) as resp:
                if resp.status == 404:
                    raise NotFoundError(f"{method} {url} was not found", resp.status)
                if resp.status in _RETRY_STATUSES or (
                    resp.status == 403
                    and resp.headers.get("x-ratelimit-remaining") == "0"
                ):
                    raise TransientAPIError(
                        f"{method} {url} failed with status {resp.status}", resp.status
                    )
                if resp.status >= 400:
                    text = await resp.text()
                    raise GitHubApiException(
                        f"{method} {url} failed with status {resp.status}: {text}",
                        resp.status,
                    )
                if resp.status == 204:
                    return None
                body = await resp.read()
                if not body:
                    return None
                return await resp.json(content_type=None)
        except aiohttp.ClientError as err:
            raise TransientAPIError(f"{method} {url} failed: {err}") from err
        except asyncio.TimeoutError as err:
            raise TransientAPIError(f"{method} {url} timed out") from err

    async def graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        """Run a GraphQL query and return its `data` object."""
        payload = await self.request(
            "POST",
            self._config.graphql_url,
            json={"query": query, "variables": variables},
        )
        if not isinstance(payload, dict):
            raise GitHubApiException(f"Invalid GraphQL response: {payload}")
        if errors := payload.get("errors"):
            raise _graphql_error(errors if isinstance(errors, list) else [errors])
        data = payload.get("data")
        if not isinstance(data, dict):
            raise GitHubApiException(f"GraphQL response missing data: {payload}")
        return data
