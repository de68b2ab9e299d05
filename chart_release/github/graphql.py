"""GitHub GraphQL API operations."""

import base64
import logging
from typing import Any

from chart_release.exceptions import GitHubApiException

from .api import GitHubClient
from .models import Commit, FileAddition, FileDeletion, Issue, OwnerType, Release, ReleaseAsset
from .paginate import DEFAULT_PAGE_SIZE, graphql_extractor, paginate

__all__ = [
    "GraphQL",
]

_LOGGER = logging.getLogger(__name__)


CREATE_COMMIT = """
mutation CreateCommit($input: CreateCommitOnBranchInput!) {
  createCommitOnBranch(input: $input) {
    commit {
      url
      oid
    }
  }
}
"""

GET_RELEASES = """
query GetReleases($owner: String!, $repo: String!, $first: Int!, $cursor: String) {
  repository(owner: $owner, name: $repo) {
    releases(first: $first, after: $cursor, orderBy: {field: CREATED_AT, direction: DESC}) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        databaseId
        name
        tagName
        createdAt
        description
        isDraft
        isPrerelease
        releaseAssets(first: 100) {
          nodes {
            name
            downloadUrl
            contentType
            size
          }
        }
      }
    }
  }
}
"""

GET_ISSUES = """
query GetIssues($owner: String!, $repo: String!, $first: Int!, $cursor: String) {
  repository(owner: $owner, name: $repo) {
    issues(
      first: $first,
      after: $cursor,
      states: [OPEN, CLOSED],
      orderBy: {field: UPDATED_AT, direction: DESC}
    ) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        number
        state
        title
        url
        bodyText
        createdAt
        updatedAt
        labels(first: 10) {
          nodes {
            name
          }
        }
      }
    }
  }
}
"""

GET_OWNER_TYPE = """
query GetOwnerType($owner: String!) {
  repositoryOwner(login: $owner) {
    __typename
  }
}
"""


def _release(node: dict[str, Any]) -> Release:
    try:
        return Release(
            id=node["databaseId"],
            tag_name=node["tagName"],
            name=node.get("name"),
            body=node.get("description"),
            draft=bool(node.get("isDraft")),
            prerelease=bool(node.get("isPrerelease")),
            created_at=node.get("createdAt"),
            assets=[
                ReleaseAsset(
                    name=asset["name"],
                    download_url=asset.get("downloadUrl"),
                    content_type=asset.get("contentType"),
                    size=asset.get("size"),
                )
                for asset in (node.get("releaseAssets") or {}).get("nodes", [])
            ],
        )
    except (KeyError, TypeError) as err:
        raise GitHubApiException(f"Invalid release node: {node}") from err


def _issue(node: dict[str, Any]) -> Issue:
    try:
        return Issue(
            number=node["number"],
            state=node["state"],
            title=node["title"],
            url=node["url"],
            labels=[label["name"] for label in (node.get("labels") or {}).get("nodes", [])],
            body_text=node.get("bodyText") or "",
            created_at=node.get("createdAt"),
            updated_at=node.get("updatedAt"),
        )
    except (KeyError, TypeError) as err:
        raise GitHubApiException(f"Invalid issue node: {node}") from err


class GraphQL:
    """GitHub GraphQL API operations for one repository."""

    def __init__(self, client: GitHubClient) -> None:
        """Initialize GraphQL."""
        self._client = client

    async def create_signed_commit(
        self,
        branch: str,
        expected_head: str,
        additions: list[FileAddition],
        deletions: list[FileDeletion],
        message: str,
    ) -> Commit:
        """Create a verified commit on a branch via the API.

        Raises ConcurrencyConflict when the branch head is not `expected_head`.
        The caller decides whether to refresh the head and retry.
        """
        file_changes: dict[str, Any] = {}
        if additions:
            file_changes["additions"] = [
                {
                    "path": addition.path,
                    "contents": base64.b64encode(addition.contents).decode("ascii"),
                }
                for addition in additions
            ]
        if deletions:
            file_changes["deletions"] = [{"path": deletion.path} for deletion in deletions]
        variables = {
            "input": {
                "branch": {
                    "repositoryNameWithOwner": f"{self._client.owner}/{self._client.repo}",
                    "branchName": branch,
                },
                "message": {"headline": message},
                "expectedHeadOid": expected_head,
                "fileChanges": file_changes,
            }
        }
        data = await self._client.graphql(CREATE_COMMIT, variables)
        try:
            commit = data["createCommitOnBranch"]["commit"]
            result = Commit(commit_id=commit["oid"], url=commit["url"])
        except (KeyError, TypeError) as err:
            raise GitHubApiException(f"Invalid createCommitOnBranch response: {data}") from err
        _LOGGER.info("Successfully created '%s' signed commit", result.commit_id)
        return result

    async def get_releases(
        self, prefix: str | None = None, limit: int | None = None
    ) -> list[Release]:
        """Return releases, newest first, optionally filtered by tag prefix."""

        async def fetch(cursor: str | None) -> dict[str, Any]:
            return await self._client.graphql(
                GET_RELEASES,
                {
                    "owner": self._client.owner,
                    "repo": self._client.repo,
                    "first": DEFAULT_PAGE_SIZE,
                    "cursor": cursor,
                },
            )

        nodes = await paginate(
            fetch,
            graphql_extractor(lambda data: data["repository"]["releases"]),
            (lambda node: str(node.get("tagName", "")).startswith(prefix)) if prefix else None,
            limit,
        )
        releases = [_release(node) for node in nodes]
        suffix = f" with '{prefix}' tag prefix" if prefix else ""
        _LOGGER.info("Found %d releases%s", len(releases), suffix)
        return releases

    async def get_issues(self, since: str | None = None, limit: int = 50) -> list[Issue]:
        """Return issues updated most recently, created or updated after `since`."""

        async def fetch(cursor: str | None) -> dict[str, Any]:
            return await self._client.graphql(
                GET_ISSUES,
                {
                    "owner": self._client.owner,
                    "repo": self._client.repo,
                    "first": min(limit, DEFAULT_PAGE_SIZE),
                    "cursor": cursor,
                },
            )

        def recent(node: dict[str, Any]) -> bool:
            if since is None:
                return True
            return str(node.get("createdAt") or node.get("updatedAt") or "") > since

        nodes = await paginate(
            fetch,
            graphql_extractor(lambda data: data["repository"]["issues"]),
            recent,
            limit,
        )
        return [_issue(node) for node in nodes]

    async def get_owner_type(self, owner: str) -> OwnerType:
        """Return whether the owner is an organization or a user."""
        data = await self._client.graphql(GET_OWNER_TYPE, {"owner": owner})
        try:
            typename = str(data["repositoryOwner"]["__typename"]).lower()
        except (KeyError, TypeError) as err:
            raise GitHubApiException(f"Invalid repositoryOwner response: {data}") from err
        try:
            owner_type = OwnerType(typename)
        except ValueError as err:
            raise GitHubApiException(f"Unknown repository owner type: {typename}") from err
        _LOGGER.info("Repository owner '%s' is of '%s' type", owner, owner_type)
        return owner_type
