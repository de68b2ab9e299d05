"""Objects returned by the GitHub API clients."""

from dataclasses import dataclass, field
from enum import StrEnum

__all__ = [
    "Release",
    "ReleaseAsset",
    "Commit",
    "FileAddition",
    "FileDeletion",
    "Issue",
    "PackageVersion",
    "OwnerType",
    "Event",
]


class OwnerType(StrEnum):
    """Account type of a repository owner, which selects the packages API route."""

    ORGANIZATION = "organization"
    USER = "user"


@dataclass(frozen=True)
class ReleaseAsset:
    """A file attached to a release."""

    name: str
    download_url: str | None = None
    content_type: str | None = None
    size: int | None = None


@dataclass(frozen=True)
class Release:
    """A GitHub release identified by its tag."""

    id: int
    """Numeric release id used by the REST API."""

    tag_name: str
    """The git tag of the release."""

    name: str | None = None
    """The release title."""

    body: str | None = None
    """The release notes."""

    draft: bool = False
    prerelease: bool = False

    created_at: str | None = None
    """ISO 8601 creation timestamp."""

    upload_url: str | None = None
    """Templated URL for uploading assets."""

    html_url: str | None = None

    assets: list[ReleaseAsset] = field(default_factory=list)


@dataclass(frozen=True)
class Commit:
    """A commit created on a branch."""

    commit_id: str
    url: str


@dataclass(frozen=True)
class FileAddition:
    """A file added or modified by a signed commit."""

    path: str
    """Repository-relative path."""

    contents: bytes
    """Raw file contents."""


@dataclass(frozen=True)
class FileDeletion:
    """A file deleted by a signed commit."""

    path: str
    """Repository-relative path."""


@dataclass(frozen=True)
class Issue:
    """A repository issue."""

    number: int
    state: str
    title: str
    url: str
    labels: list[str] = field(default_factory=list)
    body_text: str = ""
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class PackageVersion:
    """A version of a container package."""

    id: int
    name: str
    tags: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Event:
    """The repository event that triggered a run."""

    name: str
    """Event name, e.g. `push` or `pull_request`."""

    before: str | None = None
    """Base commit of a push."""

    after: str | None = None
    """Head commit of a push."""

    pull_number: int | None = None
    """Pull request number of a pull_request event."""
