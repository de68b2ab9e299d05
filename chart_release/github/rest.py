"""GitHub REST API operations."""

import logging
from typing import Any
from urllib.parse import quote

from chart_release.exceptions import (
    GitHubApiException,
    InputException,
    NotFoundError,
)

from .api import GitHubClient
from .models import Event, Issue, OwnerType, PackageVersion, Release, ReleaseAsset
from .paginate import DEFAULT_PAGE_SIZE, paginate, rest_extractor

__all__ = [
    "Rest",
]

_LOGGER = logging.getLogger(__name__)

PULL_REQUEST_EVENT = "pull_request"
CONTAINER = "container"


def _release(doc: Any) -> Release:
    try:
        return Release(
            id=doc["id"],
            tag_name=doc["tag_name"],
            name=doc.get("name"),
            body=doc.get("body"),
            draft=bool(doc.get("draft")),
            prerelease=bool(doc.get("prerelease")),
            created_at=doc.get("created_at"),
            upload_url=doc.get("upload_url"),
            html_url=doc.get("html_url"),
            assets=[
                ReleaseAsset(
                    name=asset["name"],
                    download_url=asset.get("browser_download_url"),
                    content_type=asset.get("content_type"),
                    size=asset.get("size"),
                )
                for asset in doc.get("assets") or []
            ],
        )
    except (KeyError, TypeError) as err:
        raise GitHubApiException(f"Invalid release response: {doc}") from err


def _packages_path(owner_type: OwnerType, owner: str, package: str) -> str:
    scope = "orgs" if owner_type == OwnerType.ORGANIZATION else "users"
    return f"/{scope}/{owner}/packages/{CONTAINER}/{quote(package, safe='')}"


class Rest:
    """GitHub REST API operations for one repository."""

    def __init__(self, client: GitHubClient) -> None:
        """Initialize Rest."""
        self._client = client

    async def get_release_by_tag(self, tag: str) -> Release | None:
        """Return the release with the tag, or None if there is none."""
        try:
            doc = await self._client.request(
                "GET", f"{self._client.repo_path}/releases/tags/{quote(tag, safe='')}"
            )
        except NotFoundError:
            return None
        return _release(doc)

    async def create_release(
        self,
        tag: str,
        name: str,
        body: str,
        draft: bool = False,
        prerelease: bool = False,
    ) -> Release:
        """Create a release and its tag on the default branch."""
        doc = await self._client.request(
            "POST",
            f"{self._client.repo_path}/releases",
            json={
                "tag_name": tag,
                "name": name,
                "body": body,
                "draft": draft,
                "prerelease": prerelease,
            },
        )
        release = _release(doc)
        _LOGGER.info("Successfully created '%s' release", tag)
        return release

    async def upload_release_asset(
        self,
        release: Release,
        name: str,
        data: bytes,
        content_type: str = "application/gzip",
    ) -> ReleaseAsset:
        """Upload an asset to a release."""
        if not release.upload_url:
            raise GitHubApiException(f"Release {release.tag_name} has no upload url")
        url = release.upload_url.split("{", 1)[0]
        doc = await self._client.request(
            "POST",
            url,
            params={"name": name},
            data=data,
            headers={"Content-Type": content_type},
        )
        try:
            asset = ReleaseAsset(
                name=doc["name"],
                download_url=doc.get("browser_download_url"),
                content_type=doc.get("content_type"),
                size=doc.get("size"),
            )
        except (KeyError, TypeError) as err:
            raise GitHubApiException(f"Invalid release asset response: {doc}") from err
        _LOGGER.info("Successfully uploaded '%s' asset to '%s' release", name, release.tag_name)
        return asset

    async def delete_release(self, release_id: int) -> bool:
        """Delete a release, returning False if it did not exist."""
        try:
            await self._client.request(
                "DELETE", f"{self._client.repo_path}/releases/{release_id}"
            )
        except NotFoundError:
            _LOGGER.debug("Release %s was already deleted", release_id)
            return False
        return True

    async def delete_tag(self, tag: str) -> bool:
        """Delete a git tag, returning False if it did not exist."""
        try:
            await self._client.request(
                "DELETE",
                f"{self._client.repo_path}/git/refs/tags/{quote(tag, safe='')}",
            )
        except NotFoundError:
            _LOGGER.debug("Tag '%s' was already deleted", tag)
            return False
        return True

    async def get_branch_head(self, branch: str) -> str:
        """Return the commit id at the head of a branch."""
        doc = await self._client.request(
            "GET",
            f"{self._client.repo_path}/git/ref/heads/{quote(branch, safe='/')}",
        )
        try:
            return str(doc["object"]["sha"])
        except (KeyError, TypeError) as err:
            raise GitHubApiException(f"Invalid branch reference response: {doc}") from err

    async def get_updated_files(self, event: Event) -> dict[str, str]:
        """Return the files changed by the event mapped to their status.

        Pull request files are paginated. A push is compared in one request,
        which lists up to 300 changed files.
        """
        if event.name == PULL_REQUEST_EVENT:
            files = await self._pull_request_files(event)
        else:
            files = await self._compare_files(event)
        result: dict[str, str] = {}
        for item in files:
            try:
                result[item["filename"]] = item["status"]
            except (KeyError, TypeError) as err:
                raise GitHubApiException(f"Invalid changed file: {item}") from err
        _LOGGER.info("Found %d files changed by %s event", len(result), event.name)
        return result

    async def _pull_request_files(self, event: Event) -> list[Any]:
        if event.pull_number is None:
            raise InputException("Pull request event without a number")
        path = f"{self._client.repo_path}/pulls/{event.pull_number}/files"

        async def fetch(page: int) -> tuple[int, Any]:
            body = await self._client.request(
                "GET", path, params={"per_page": DEFAULT_PAGE_SIZE, "page": page}
            )
            return page, body

        return await paginate(fetch, rest_extractor(), start=1)

    async def _compare_files(self, event: Event) -> list[Any]:
        if not event.before or not event.after:
            raise InputException(f"{event.name} event without commit range")
        doc = await self._client.request(
            "GET", f"{self._client.repo_path}/compare/{event.before}...{event.after}"
        )
        files = doc.get("files") if isinstance(doc, dict) else None
        if not isinstance(files, list):
            raise GitHubApiException(f"Invalid compare response: {doc}")
        return files

    async def list_package_versions(
        self, owner_type: OwnerType, package: str
    ) -> list[PackageVersion]:
        """Return every version of a container package."""
        path = f"{_packages_path(owner_type, self._client.owner, package)}/versions"

        async def fetch(page: int) -> tuple[int, Any]:
            body = await self._client.request(
                "GET", path, params={"per_page": DEFAULT_PAGE_SIZE, "page": page}
            )
            return page, body

        items = await paginate(fetch, rest_extractor(), start=1)
        try:
            return [
                PackageVersion(
                    id=item["id"],
                    name=item["name"],
                    tags=list(
                        (item.get("metadata") or {})
                        .get(CONTAINER, {})
                        .get("tags", [])
                    ),
                )
                for item in items
            ]
        except (KeyError, TypeError, AttributeError) as err:
            raise GitHubApiException(f"Invalid package versions response: {items}") from err

    async def delete_package_version(
        self, owner_type: OwnerType, package: str, version_id: int
    ) -> bool:
        """Delete one version of a container package."""
        path = _packages_path(owner_type, self._client.owner, package)
        try:
            await self._client.request("DELETE", f"{path}/versions/{version_id}")
        except NotFoundError:
            return False
        return True

    async def delete_package(self, owner_type: OwnerType, package: str) -> bool:
        """Delete a container package with all its versions."""
        try:
            await self._client.request(
                "DELETE", _packages_path(owner_type, self._client.owner, package)
            )
        except NotFoundError:
            _LOGGER.debug("Package '%s' was already deleted", package)
            return False
        _LOGGER.info("Successfully deleted '%s' package", package)
        return True

    async def create_issue(self, title: str, body: str, labels: list[str]) -> Issue:
        """Open an issue."""
        doc = await self._client.request(
            "POST",
            f"{self._client.repo_path}/issues",
            json={"title": title, "body": body, "labels": labels},
        )
        try:
            issue = Issue(
                number=doc["number"],
                state=doc["state"],
                title=doc["title"],
                url=doc["html_url"],
                labels=[label["name"] for label in doc.get("labels") or []],
                body_text=doc.get("body") or "",
                created_at=doc.get("created_at"),
                updated_at=doc.get("updated_at"),
            )
        except (KeyError, TypeError) as err:
            raise GitHubApiException(f"Invalid issue response: {doc}") from err
        _LOGGER.info("Created issue #%d: %s", issue.number, title)
        return issue
