"""In-memory GitHub and helm collaborators used by the tests."""

import io
from pathlib import Path
import tarfile
from typing import Any

import yaml

from chart_release.exceptions import ConcurrencyConflict, HelmException, NotFoundError
from chart_release.github.models import (
    Commit,
    Event,
    FileAddition,
    FileDeletion,
    Issue,
    OwnerType,
    PackageVersion,
    Release,
    ReleaseAsset,
)
from chart_release.manifest import CHART_FILE, CHART_LOCK_FILE

INITIAL_HEAD = "head-0"


def write_chart(
    root: Path,
    path: str,
    version: str = "1.0.0",
    name: str | None = None,
    dependencies: list[dict[str, Any]] | None = None,
    application: str | None = None,
    description: str = "Test chart",
) -> Path:
    """Write a chart directory with a Chart.yaml and optional application.yaml."""
    chart_dir = root / path
    chart_dir.mkdir(parents=True, exist_ok=True)
    doc: dict[str, Any] = {
        "apiVersion": "v2",
        "name": name or chart_dir.name,
        "version": version,
        "description": description,
        "appVersion": "1.0",
    }
    if dependencies is not None:
        doc["dependencies"] = dependencies
    (chart_dir / CHART_FILE).write_text(yaml.dump(doc, sort_keys=False))
    if application is not None:
        (chart_dir / "application.yaml").write_text(
            yaml.dump(
                {
                    "apiVersion": "argoproj.io/v1alpha1",
                    "kind": "Application",
                    "spec": {"source": {"targetRevision": application}},
                },
                sort_keys=False,
            )
        )
    return chart_dir


class FakeHelm:
    """Packages charts into real archives without running helm."""

    def __init__(self) -> None:
        self.dependency_updates: list[Path] = []
        self.packaged: list[Path] = []
        self.linted: list[Path] = []
        self.fail: set[str] = set()
        self.lock_content = "digest: sha256:abc\n"

    def _check(self, chart_dir: Path) -> None:
        if chart_dir.name in self.fail:
            raise HelmException(f"Chart {chart_dir} is broken")

    async def dependency_update(self, chart_dir: Path) -> None:
        self._check(chart_dir)
        self.dependency_updates.append(chart_dir)
        (chart_dir / CHART_LOCK_FILE).write_text(self.lock_content)

    async def package(self, chart_dir: Path, destination: Path) -> Path:
        self._check(chart_dir)
        chart_yaml = (chart_dir / CHART_FILE).read_bytes()
        doc = yaml.safe_load(chart_yaml)
        archive = destination / f"{doc['name']}-{doc['version']}.tgz"
        with tarfile.open(archive, mode="w:gz") as tar:
            info = tarfile.TarInfo(f"{doc['name']}/{CHART_FILE}")
            info.size = len(chart_yaml)
            tar.addfile(info, io.BytesIO(chart_yaml))
        self.packaged.append(chart_dir)
        return archive

    async def lint(self, chart_dir: Path, strict: bool = True) -> None:
        self._check(chart_dir)
        self.linted.append(chart_dir)


class FakeRest:
    """REST operations backed by dictionaries."""

    def __init__(self) -> None:
        self.head = INITIAL_HEAD
        self.releases: dict[str, Release] = {}
        self.assets: dict[str, list[ReleaseAsset]] = {}
        self.deleted_releases: list[int] = []
        self.deleted_tags: list[str] = []
        self.files: dict[str, str] = {}
        self.package_versions: dict[str, list[PackageVersion]] = {}
        self.deleted_packages: list[str] = []
        self.deleted_versions: list[tuple[str, int]] = []
        self.issues: list[Issue] = []
        self.head_reads = 0
        self._next_id = 1

    def add_release(self, tag: str, created_at: str = "2024-01-01T00:00:00Z") -> Release:
        release = Release(
            id=self._next_id,
            tag_name=tag,
            name=tag,
            created_at=created_at,
            upload_url=f"https://uploads.example.com/releases/{self._next_id}/assets{{?name,label}}",
        )
        self._next_id += 1
        self.releases[tag] = release
        return release

    async def get_release_by_tag(self, tag: str) -> Release | None:
        return self.releases.get(tag)

    async def create_release(
        self, tag: str, name: str, body: str, draft: bool = False, prerelease: bool = False
    ) -> Release:
        release = self.add_release(tag)
        self.releases[tag] = Release(
            id=release.id,
            tag_name=tag,
            name=name,
            body=body,
            created_at=release.created_at,
            upload_url=release.upload_url,
        )
        return self.releases[tag]

    async def upload_release_asset(
        self, release: Release, name: str, data: bytes, content_type: str = "application/gzip"
    ) -> ReleaseAsset:
        asset = ReleaseAsset(name=name, content_type=content_type, size=len(data))
        self.assets.setdefault(release.tag_name, []).append(asset)
        return asset

    async def delete_release(self, release_id: int) -> bool:
        for tag, release in list(self.releases.items()):
            if release.id == release_id:
                del self.releases[tag]
                self.deleted_releases.append(release_id)
                return True
        return False

    async def delete_tag(self, tag: str) -> bool:
        self.deleted_tags.append(tag)
        return True

    async def get_branch_head(self, branch: str) -> str:
        self.head_reads += 1
        return self.head

    async def get_updated_files(self, event: Event) -> dict[str, str]:
        return dict(self.files)

    async def list_package_versions(
        self, owner_type: OwnerType, package: str
    ) -> list[PackageVersion]:
        if package not in self.package_versions:
            raise NotFoundError(f"Package {package} not found", 404)
        return list(self.package_versions[package])

    async def delete_package_version(
        self, owner_type: OwnerType, package: str, version_id: int
    ) -> bool:
        self.deleted_versions.append((package, version_id))
        return True

    async def delete_package(self, owner_type: OwnerType, package: str) -> bool:
        self.deleted_packages.append(package)
        return True

    async def create_issue(self, title: str, body: str, labels: list[str]) -> Issue:
        issue = Issue(
            number=len(self.issues) + 1,
            state="OPEN",
            title=title,
            url=f"https://github.com/example/charts/issues/{len(self.issues) + 1}",
            labels=labels,
            body_text=body,
        )
        self.issues.append(issue)
        return issue


class FakeGraphQL:
    """GraphQL operations sharing state with a FakeRest."""

    def __init__(self, rest: FakeRest) -> None:
        self._rest = rest
        self.commits: list[dict[str, Any]] = []
        self.issues: list[Issue] = []
        self.owner_type = OwnerType.ORGANIZATION
        self.owner_type_calls = 0
        self.conflicts = 0

    async def create_signed_commit(
        self,
        branch: str,
        expected_head: str,
        additions: list[FileAddition],
        deletions: list[FileDeletion],
        message: str,
    ) -> Commit:
        if self.conflicts:
            self.conflicts -= 1
            self._rest.head = f"{self._rest.head}-moved"
            raise ConcurrencyConflict("Expected branch to point to another commit")
        if expected_head != self._rest.head:
            raise ConcurrencyConflict(f"Expected branch to point to {expected_head}")
        commit_id = f"head-{len(self.commits) + 1}"
        self.commits.append(
            {
                "branch": branch,
                "expected_head": expected_head,
                "additions": {a.path: a.contents for a in additions},
                "deletions": [d.path for d in deletions],
                "message": message,
            }
        )
        self._rest.head = commit_id
        return Commit(commit_id=commit_id, url=f"https://github.com/commit/{commit_id}")

    async def get_releases(
        self, prefix: str | None = None, limit: int | None = None
    ) -> list[Release]:
        releases = [
            release
            for release in reversed(list(self._rest.releases.values()))
            if prefix is None or release.tag_name.startswith(prefix)
        ]
        return releases[:limit] if limit is not None else releases

    async def get_issues(self, since: str | None = None, limit: int = 50) -> list[Issue]:
        return [
            issue
            for issue in self.issues
            if since is None or (issue.created_at or "") > since
        ][:limit]

    async def get_owner_type(self, owner: str) -> OwnerType:
        self.owner_type_calls += 1
        return self.owner_type


class FakeGitHub:
    """A GitHub facade with in-memory REST and GraphQL operations."""

    def __init__(self) -> None:
        self.rest = FakeRest()
        self.graphql = FakeGraphQL(self.rest)
