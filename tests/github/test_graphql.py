"""Tests for the GitHub GraphQL operations."""

import base64
from typing import Any

import pytest

from chart_release.exceptions import GitHubApiException, MalformedResponse
from chart_release.github.graphql import GraphQL
from chart_release.github.models import FileAddition, FileDeletion, OwnerType


class FakeClient:
    """Returns queued GraphQL responses and records the variables."""

    owner = "example"
    repo = "charts"

    def __init__(self, responses: list[dict[str, Any]]) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    async def graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(variables)
        return self.responses.pop(0)


def releases_page(tags: list[str], cursor: str | None) -> dict[str, Any]:
    """Return a page of the releases connection."""
    return {
        "repository": {
            "releases": {
                "nodes": [
                    {
                        "databaseId": i,
                        "tagName": tag,
                        "name": tag,
                        "createdAt": f"2024-01-{i + 1:02d}T00:00:00Z",
                        "releaseAssets": {"nodes": [{"name": "application.tgz"}]},
                    }
                    for i, tag in enumerate(tags)
                ],
                "pageInfo": {"hasNextPage": cursor is not None, "endCursor": cursor},
            }
        }
    }


async def test_create_signed_commit() -> None:
    """Test file contents are encoded and the expected head is sent."""
    client = FakeClient(
        [{"createCommitOnBranch": {"commit": {"oid": "def456", "url": "https://c"}}}]
    )
    commit = await GraphQL(client).create_signed_commit(  # type: ignore[arg-type]
        "update-charts",
        "abc123",
        [FileAddition(path="application/nginx/Chart.lock", contents=b"digest: x\n")],
        [FileDeletion(path="library/common/Chart.lock")],
        "chore(github-action): update dependency lock file(s)",
    )
    assert commit.commit_id == "def456"
    request = client.calls[0]["input"]
    assert request["expectedHeadOid"] == "abc123"
    assert request["branch"] == {
        "repositoryNameWithOwner": "example/charts",
        "branchName": "update-charts",
    }
    addition = request["fileChanges"]["additions"][0]
    assert base64.b64decode(addition["contents"]) == b"digest: x\n"
    assert request["fileChanges"]["deletions"] == [{"path": "library/common/Chart.lock"}]


async def test_create_signed_commit_malformed() -> None:
    """Test a response without a commit."""
    client = FakeClient([{"createCommitOnBranch": None}])
    with pytest.raises(GitHubApiException) as err:
        await GraphQL(client).create_signed_commit(  # type: ignore[arg-type]
            "main", "abc", [], [], "message"
        )
    assert not isinstance(err.value, MalformedResponse)


async def test_get_releases_prefix() -> None:
    """Test releases are filtered by tag prefix across pages."""
    client = FakeClient(
        [
            releases_page(["nginx-1.1.0", "redis-2.0.0", "nginx-1.0.0"], "c1"),
            releases_page(["nginx-0.9.0", "nginx-exporter-1.0.0"], None),
        ]
    )
    releases = await GraphQL(client).get_releases(prefix="nginx-")  # type: ignore[arg-type]
    assert [r.tag_name for r in releases] == [
        "nginx-1.1.0",
        "nginx-1.0.0",
        "nginx-0.9.0",
        "nginx-exporter-1.0.0",
    ]
    assert releases[0].assets[0].name == "application.tgz"
    assert [call["cursor"] for call in client.calls] == [None, "c1"]


async def test_get_releases_limit() -> None:
    """Test no further pages are read once the limit is reached."""
    client = FakeClient(
        [
            releases_page(["nginx-1.1.0", "nginx-1.0.0"], "c1"),
            releases_page(["nginx-0.9.0"], None),
        ]
    )
    releases = await GraphQL(client).get_releases(limit=1)  # type: ignore[arg-type]
    assert [r.tag_name for r in releases] == ["nginx-1.1.0"]
    assert len(client.calls) == 1


async def test_get_issues_since() -> None:
    """Test issues older than the cutoff are skipped."""
    client = FakeClient(
        [
            {
                "repository": {
                    "issues": {
                        "nodes": [
                            {
                                "number": 2,
                                "state": "OPEN",
                                "title": "chart: nginx is broken",
                                "url": "https://github.com/example/charts/issues/2",
                                "createdAt": "2024-03-01T00:00:00Z",
                                "labels": {"nodes": [{"name": "application"}]},
                            },
                            {
                                "number": 1,
                                "state": "CLOSED",
                                "title": "chart: nginx old bug",
                                "url": "https://github.com/example/charts/issues/1",
                                "createdAt": "2023-01-01T00:00:00Z",
                            },
                        ],
                        "pageInfo": {"hasNextPage": False, "endCursor": None},
                    }
                }
            }
        ]
    )
    issues = await GraphQL(client).get_issues(  # type: ignore[arg-type]
        since="2024-01-01T00:00:00Z"
    )
    assert [issue.number for issue in issues] == [2]
    assert issues[0].labels == ["application"]


@pytest.mark.parametrize(
    ("typename", "expected"),
    [
        ("Organization", OwnerType.ORGANIZATION),
        ("User", OwnerType.USER),
    ],
)
async def test_get_owner_type(typename: str, expected: OwnerType) -> None:
    """Test the owner type is read from the GraphQL typename."""
    client = FakeClient([{"repositoryOwner": {"__typename": typename}}])
    assert await GraphQL(client).get_owner_type("example") == expected  # type: ignore[arg-type]


async def test_get_owner_type_unknown() -> None:
    """Test an unexpected owner type."""
    client = FakeClient([{"repositoryOwner": {"__typename": "Bot"}}])
    with pytest.raises(GitHubApiException, match="Unknown repository owner type"):
        await GraphQL(client).get_owner_type("example")  # type: ignore[arg-type]
