"""Top level driver of a release run.

A run moves through the stages `IDLE → DISCOVERING → CLEANING → PACKAGING →
PUBLISHING → RECONCILING → DONE`. Loading and saving the inventory must
succeed: an error there aborts the run with the ledger left untouched. Every
per-chart step is best effort, and a run with recorded failures ends in the
`FAILED` stage while still returning its summary.
"""

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
import logging
from pathlib import Path

from chart_release.chart.discovery import ChartDir
from chart_release.config import Config
from chart_release.executor import Executor, Failure
from chart_release.github import GitHub
from chart_release.inventory import Inventory
from chart_release.manifest import ChartState, ChartType, InventoryRecord, Package
from chart_release.version import version_key

from .package import Packager, collect_packages
from .publish import ReleasePublisher
from .registry import RegistryPublisher

__all__ = [
    "Orchestrator",
    "RunResult",
    "Stage",
]

_LOGGER = logging.getLogger(__name__)


class Stage(StrEnum):
    """Stage of a release run."""

    IDLE = "idle"
    DISCOVERING = "discovering"
    CLEANING = "cleaning"
    PACKAGING = "packaging"
    PUBLISHING = "publishing"
    RECONCILING = "reconciling"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunResult:
    """Summary of a release run."""

    processed: int = 0
    """Charts considered by the run."""

    published: int = 0
    """Releases created."""

    deleted: int = 0
    """Removed charts cleaned up and dropped from the inventory."""

    failures: list[Failure] = field(default_factory=list)
    """Non-fatal failures of the run."""

    def summary(self) -> dict[str, int]:
        """Return the counts of the run."""
        return {
            "processed": self.processed,
            "published": self.published,
            "deleted": self.deleted,
        }


class Orchestrator:
    """Runs cleanup, packaging and publishing for every inventory chart."""

    def __init__(
        self,
        root: Path,
        config: Config,
        github: GitHub,
        executor: Executor,
        packager: Packager,
        publisher: ReleasePublisher,
        registry: RegistryPublisher,
        inventory: Inventory | None = None,
    ) -> None:
        """Initialize Orchestrator."""
        self._root = root
        self._config = config
        self._github = github
        self._executor = executor
        self._packager = packager
        self._publisher = publisher
        self._registry = registry
        self._inventory = inventory or Inventory(root, config.chart)
        self.stage = Stage.IDLE

    def _enter(self, stage: Stage) -> None:
        _LOGGER.debug("Release run stage %s -> %s", self.stage, stage)
        self.stage = stage

    async def run(self) -> RunResult:
        """Run the release and return its summary.

        A fatal error leaves the stage at FAILED and is raised to the caller.
        """
        try:
            return await self._run()
        except Exception:
            self.stage = Stage.FAILED
            raise

    async def _run(self) -> RunResult:
        result = RunResult()

        self._enter(Stage.DISCOVERING)
        ledgers: dict[ChartType, list[InventoryRecord]] = {}
        for chart_type in self._config.chart.chart_types:
            ledgers[chart_type] = await self._executor.must_succeed(
                f"load {chart_type} inventory", self._inventory.load(chart_type)
            )
        result.processed = sum(len(records) for records in ledgers.values())

        self._enter(Stage.CLEANING)
        for chart_type, records in ledgers.items():
            removed = [r for r in records if r.state == ChartState.REMOVED]
            if not removed:
                continue
            cleaned = await asyncio.gather(
                *(
                    self._executor.best_effort(
                        f"delete '{chart_type}/{record.name}' chart",
                        self._clean(chart_type, record.name),
                        False,
                    )
                    for record in removed
                )
            )
            deleted = {record.name for record, ok in zip(removed, cleaned) if ok}
            ledgers[chart_type] = [r for r in records if r.name not in deleted]
            result.deleted += len(deleted)

        self._enter(Stage.PACKAGING)
        active = {
            chart_type: [
                ChartDir(
                    type=chart_type,
                    path=self._config.chart.directory(chart_type).join(record.name),
                )
                for record in records
                if record.state == ChartState.RELEASED
            ]
            for chart_type, records in ledgers.items()
        }
        packages = collect_packages(await self._packager.package_all(active))

        self._enter(Stage.PUBLISHING)
        releases = await self._publisher.publish(packages)
        result.published = len(releases)
        if self._config.chart.packages_enabled:
            await self._executor.best_effort(
                "generate chart indexes", self._publisher.generate_indexes(), 0
            )
        if self._config.oci.enabled:
            await self._registry.publish(packages)

        self._enter(Stage.RECONCILING)
        reconciled = {
            chart_type: _reconcile(records, chart_type, packages)
            for chart_type, records in ledgers.items()
        }
        await self._executor.must_succeed(
            "save inventories", self._inventory.save_all(reconciled)
        )

        result.failures = self._executor.failures
        self._enter(Stage.FAILED if result.failures else Stage.DONE)
        _LOGGER.info(
            "Release run finished: %d processed, %d published, %d deleted, %d failures",
            result.processed,
            result.published,
            result.deleted,
            len(result.failures),
        )
        return result

    async def _clean(self, chart_type: ChartType, name: str) -> bool:
        """Delete every release and registry package of a removed chart."""
        tag = self._config.release.tag
        releases = await self._github.graphql.get_releases(prefix=tag.prefix(name))
        matching = [release for release in releases if tag.match(release.tag_name, name)]
        _LOGGER.info("Deleting %d releases of '%s' chart...", len(matching), name)
        for release in matching:
            await self._github.rest.delete_release(release.id)
            await self._github.rest.delete_tag(release.tag_name)
        if self._config.oci.enabled:
            await self._registry.delete_package(chart_type, name)
        _LOGGER.info("Successfully deleted '%s/%s' chart", chart_type, name)
        return True


def _reconcile(
    records: list[InventoryRecord], chart_type: ChartType, packages: list[Package]
) -> list[InventoryRecord]:
    """Return the records with the highest packaged version of each chart."""
    versions: dict[str, str] = {}
    for package in packages:
        if package.type != chart_type:
            continue
        current = versions.get(package.name)
        if current is None or version_key(package.version) > version_key(current):
            versions[package.name] = package.version
    return [
        InventoryRecord(
            name=record.name,
            version=versions.get(record.name, record.version),
            description=record.description,
            state=record.state,
        )
        for record in records
    ]
