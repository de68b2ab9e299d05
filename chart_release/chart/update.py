"""Mutators for the descriptor files of a batch of charts.

Each mutator processes its whole batch in parallel, one task per chart, and
then commits every file it touched in a single signed commit. A chart that
fails is recorded as a non-fatal failure and left out of the commit.

The mutators are:
- `application`: points `spec.source.targetRevision` of `application.yaml`
  at the release tag of the chart's current version.
- `lock`: refreshes `Chart.lock` for charts with dependencies and removes a
  stale lock from charts without any.
- `metadata`: adds the current version to the `metadata.yaml` version index.
- `inventory`: records added, modified and removed charts in the chart type
  inventory ledger.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
import hashlib
import logging
from pathlib import Path, PurePosixPath
import tempfile

import aiofiles
import aiofiles.os
from aiofiles.ospath import exists

from chart_release.config import Config
from chart_release.exceptions import ConcurrencyConflict, InputException
from chart_release.executor import Executor
from chart_release.github import GitHub
from chart_release.github.models import Commit, FileAddition, FileDeletion
from chart_release.inventory import Inventory, upsert_record
from chart_release.manifest import (
    APPLICATION_FILE,
    CHART_FILE,
    CHART_LOCK_FILE,
    METADATA_FILE,
    PACKAGE_SUFFIX,
    ChartDescriptor,
    ChartState,
    ChartType,
    InventoryRecord,
    MetadataEntry,
    MetadataIndex,
    DirectoryPath,
    read_yaml,
    write_yaml,
)
from chart_release.release.package import Packager

from .discovery import ChartDir

__all__ = [
    "Update",
    "UpdateResult",
    "BranchCommitter",
]

_LOGGER = logging.getLogger(__name__)

REMOVED = "removed"


@dataclass
class UpdateResult:
    """The outcome of one mutator over a batch of charts."""

    kind: str
    """The kind of files updated, used in the commit message."""

    files: list[str] = field(default_factory=list)
    """Repository-relative paths committed."""

    failed: list[str] = field(default_factory=list)
    """Charts that failed to update."""

    commit: Commit | None = None
    """The commit, if any files changed."""

    @property
    def success(self) -> bool:
        """Return True if no chart failed."""
        return not self.failed


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _plural(count: int, word: str) -> str:
    return word if count == 1 else f"{word}s"


async def _read_bytes(path: Path) -> bytes | None:
    if not await exists(path):
        return None
    async with aiofiles.open(str(path), mode="rb") as handle:
        return await handle.read()


class BranchCommitter:
    """Creates signed commits of local files on one branch.

    The head revision returned by a commit is reused as the expected head of
    the next one. After a head conflict the head is re-read and the commit is
    retried up to `retries` times before the conflict is raised.
    """

    def __init__(
        self, root: Path, github: GitHub, branch: str, retries: int = 1
    ) -> None:
        """Initialize BranchCommitter."""
        self._root = root
        self._github = github
        self._branch = branch
        self._retries = retries
        self._head: str | None = None

    async def commit(self, paths: list[str], message: str) -> Commit:
        """Commit the current local state of the paths."""
        additions: list[FileAddition] = []
        deletions: list[FileDeletion] = []
        for path in paths:
            contents = await _read_bytes(self._root / path)
            if contents is None:
                deletions.append(FileDeletion(path=path))
            else:
                additions.append(FileAddition(path=path, contents=contents))
        attempt = 0
        while True:
            if self._head is None:
                self._head = await self._github.rest.get_branch_head(self._branch)
            try:
                commit = await self._github.graphql.create_signed_commit(
                    self._branch, self._head, additions, deletions, message
                )
            except ConcurrencyConflict as err:
                self._head = None
                if attempt >= self._retries:
                    raise
                attempt += 1
                _LOGGER.info("Branch '%s' moved, retrying commit: %s", self._branch, err)
                continue
            self._head = commit.commit_id
            return commit


class Update:
    """Updates the descriptor files of charts and commits the changes."""

    def __init__(
        self,
        root: Path,
        config: Config,
        packager: Packager,
        committer: BranchCommitter,
        executor: Executor,
        inventory: Inventory | None = None,
    ) -> None:
        """Initialize Update."""
        self._root = root
        self._config = config
        self._packager = packager
        self._committer = committer
        self._executor = executor
        self._inventory = inventory or Inventory(root, config.chart)

    async def _batch(
        self,
        kind: str,
        charts: list[ChartDir],
        update: Callable[[ChartDir], Awaitable[list[str]]],
    ) -> UpdateResult:
        """Run a mutator over the charts and commit the touched files."""
        result = UpdateResult(kind=kind)
        if not charts:
            return result
        _LOGGER.info(
            "Updating %s files for %d %s...", kind, len(charts), _plural(len(charts), "chart")
        )
        outcomes = await asyncio.gather(
            *(
                self._executor.best_effort(f"update '{chart}' {kind} file", update(chart))
                for chart in charts
            )
        )
        for chart, files in zip(charts, outcomes):
            if files is None:
                result.failed.append(chart.path)
            else:
                result.files.extend(files)
        await self._commit(result)
        return result

    async def _commit(self, result: UpdateResult) -> None:
        if not result.files:
            _LOGGER.info("No %s file changes to commit", result.kind)
            return
        message = (
            f"chore(github-action): update {result.kind} "
            f"{_plural(len(result.files), 'file')}"
        )
        result.commit = await self._executor.must_succeed(
            f"commit {result.kind} files",
            self._committer.commit(sorted(result.files), message),
        )

    async def application(self, charts: list[ChartDir]) -> UpdateResult:
        """Point application descriptors at the release tag of each chart."""
        return await self._batch("application", charts, self._update_application)

    async def _update_application(self, chart: ChartDir) -> list[str]:
        chart_dir = chart.resolve(self._root)
        app_path = chart_dir / APPLICATION_FILE
        if not await exists(app_path):
            return []
        descriptor = await ChartDescriptor.read(chart_dir)
        doc = await read_yaml(app_path)
        source = (doc.get("spec") or {}).get("source") if isinstance(doc, dict) else None
        if not isinstance(source, dict):
            _LOGGER.debug("No deployable source in '%s'", app_path)
            return []
        tag = self._config.release.tag.render(descriptor.name, descriptor.version)
        if source.get("targetRevision") == tag:
            return []
        source["targetRevision"] = tag
        await write_yaml(app_path, doc)
        _LOGGER.info("Successfully updated '%s' application file", chart)
        return [chart.join(APPLICATION_FILE)]

    async def lock(self, charts: list[ChartDir]) -> UpdateResult:
        """Refresh or remove the dependency lock file of each chart."""
        return await self._batch("dependency lock", charts, self._update_lock)

    async def _update_lock(self, chart: ChartDir) -> list[str]:
        chart_dir = chart.resolve(self._root)
        lock_path = chart_dir / CHART_LOCK_FILE
        descriptor = await ChartDescriptor.read(chart_dir)
        if descriptor.dependencies:
            before = await _read_bytes(lock_path)
            await self._packager.resolve_dependencies(chart_dir)
            if await _read_bytes(lock_path) == before:
                return []
            _LOGGER.info("Successfully updated '%s' dependency lock file", chart)
            return [chart.join(CHART_LOCK_FILE)]
        if await exists(lock_path):
            await aiofiles.os.remove(lock_path)
            _LOGGER.info("Successfully removed '%s' dependency lock file", chart)
            return [chart.join(CHART_LOCK_FILE)]
        return []

    async def metadata(self, charts: list[ChartDir]) -> UpdateResult:
        """Add the current version of each chart to its version index."""
        return await self._batch("metadata", charts, self._update_metadata)

    async def _update_metadata(self, chart: ChartDir) -> list[str]:
        chart_dir = chart.resolve(self._root)
        metadata_path = chart_dir / METADATA_FILE
        descriptor = await ChartDescriptor.read(chart_dir)
        index = MetadataIndex()
        if await exists(metadata_path):
            doc = await read_yaml(metadata_path)
            if doc is not None:
                if not isinstance(doc, dict):
                    raise InputException(f"Invalid {metadata_path}: expected a mapping")
                index = MetadataIndex.parse_doc(doc)
            if index.has_version(descriptor.name, descriptor.version):
                return []
        entry = await self._metadata_entry(chart, descriptor)
        index.merge(descriptor.name, [entry], self._config.chart.retention)
        index.generated = entry.created
        await write_yaml(metadata_path, index.to_dict())
        _LOGGER.info("Successfully updated '%s' metadata file", chart)
        return [chart.join(METADATA_FILE)]

    async def _metadata_entry(
        self, chart: ChartDir, descriptor: ChartDescriptor
    ) -> MetadataEntry:
        """Package the chart into a scratch directory and describe the archive."""
        with tempfile.TemporaryDirectory(prefix="chart-metadata-") as scratch:
            archive = await self._packager.package(chart.resolve(self._root), Path(scratch))
            contents = await _read_bytes(archive)
        if contents is None:
            raise InputException(f"Packaged archive {archive} for {chart} is missing")
        tag = self._config.release.tag.render(descriptor.name, descriptor.version)
        base_url = f"{self._config.repository.html_url}/releases/download"
        return MetadataEntry(
            version=descriptor.version,
            created=_now(),
            urls=[f"{base_url}/{tag}/{chart.type.value}{PACKAGE_SUFFIX}"],
            name=descriptor.name,
            description=descriptor.description,
            app_version=descriptor.app_version,
            api_version=descriptor.api_version,
            digest=hashlib.sha256(contents).hexdigest(),
            type=descriptor.type,
            icon=descriptor.icon,
            dependencies=descriptor.dependencies or None,
        )

    async def inventory(self, files: dict[str, str]) -> UpdateResult:
        """Record changed charts in the inventory of their chart type.

        Added and modified charts are upserted as released, charts whose
        Chart.yaml was removed are marked for remote cleanup.
        """
        result = UpdateResult(kind="inventory")
        changes: dict[ChartType, dict[str, str]] = {}
        for file, status in sorted(files.items()):
            path = PurePosixPath(file)
            if path.name != CHART_FILE or len(path.parts) < 3:
                continue
            chart_type = self._config.chart.type_of(DirectoryPath(str(path.parent.parent)))
            if chart_type is None:
                continue
            changes.setdefault(chart_type, {})[str(path.parent)] = status
        if not changes:
            return result
        _LOGGER.info("Updating inventory files for %d chart types...", len(changes))
        for chart_type, charts in changes.items():
            records = await self._executor.must_succeed(
                f"load {chart_type} inventory", self._inventory.load(chart_type)
            )
            updated = list(records)
            for chart_path, status in charts.items():
                chart = ChartDir(type=chart_type, path=chart_path)
                record = await self._executor.best_effort(
                    f"update '{chart}' inventory record",
                    self._inventory_record(chart, status, updated),
                )
                if record is None:
                    result.failed.append(chart.path)
                    continue
                updated = upsert_record(updated, record)
            if updated != records:
                await self._executor.must_succeed(
                    f"save {chart_type} inventory",
                    self._inventory.save(chart_type, updated),
                )
                result.files.append(self._inventory.relative_path(chart_type))
        await self._commit(result)
        return result

    async def _inventory_record(
        self, chart: ChartDir, status: str, records: list[InventoryRecord]
    ) -> InventoryRecord:
        existing = next((record for record in records if record.name == chart.name), None)
        if status == REMOVED:
            if existing is None:
                raise InputException(f"Chart '{chart.name}' not found in {chart.type} inventory")
            return InventoryRecord(
                name=existing.name,
                version=existing.version,
                description=existing.description,
                state=ChartState.REMOVED,
            )
        descriptor = await ChartDescriptor.read(chart.resolve(self._root))
        return InventoryRecord(
            name=descriptor.name,
            version=descriptor.version,
            description=descriptor.description or "",
            state=ChartState.RELEASED,
        )