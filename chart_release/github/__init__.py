"""Clients for the GitHub APIs used by the release pipeline.

The `GitHub` facade owns one `aiohttp.ClientSession` for the duration of a
run and exposes the REST and GraphQL operations:
```python
async with GitHub(config.github, config.repository) as github:
    release = await github.rest.get_release_by_tag("nginx-1.4.0")
```
"""

import logging
from types import TracebackType
from typing import Self

import aiohttp

from chart_release.config import GitHubConfig, RepositoryConfig

from .api import GitHubClient
from .graphql import GraphQL
from .rest import Rest

__all__ = [
    "GitHub",
    "GitHubClient",
    "GraphQL",
    "Rest",
]

_LOGGER = logging.getLogger(__name__)

_TIMEOUT = aiohttp.ClientTimeout(total=120)


class GitHub:
    """Access to the REST and GraphQL APIs of one repository."""

    def __init__(
        self,
        config: GitHubConfig,
        repository: RepositoryConfig,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize GitHub."""
        self._config = config
        self._repository = repository
        self._session = session
        self._owns_session = session is None
        self._rest: Rest | None = None
        self._graphql: GraphQL | None = None
        if session is not None:
            self._bind(session)

    def _bind(self, session: aiohttp.ClientSession) -> None:
        client = GitHubClient(session, self._config, self._repository)
        self._rest = Rest(client)
        self._graphql = GraphQL(client)

    @property
    def rest(self) -> Rest:
        """Return the REST operations."""
        if self._rest is None:
            raise RuntimeError("GitHub session is not open")
        return self._rest

    @property
    def graphql(self) -> GraphQL:
        """Return the GraphQL operations."""
        if self._graphql is None:
            raise RuntimeError("GitHub session is not open")
        return self._graphql

    async def __aenter__(self) -> Self:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=_TIMEOUT)
            self._bind(self._session)
            _LOGGER.debug("Opened GitHub session for %s", self._repository.full_name)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
            self._rest = None
            self._graphql = None
