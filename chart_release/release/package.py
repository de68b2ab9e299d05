"""Packaging of charts into versioned archives partitioned by chart type."""

import asyncio
from dataclasses import dataclass
import logging
from pathlib import Path

import aiofiles.os

from chart_release.chart.discovery import ChartDir
from chart_release.config import Config
from chart_release.executor import Executor
from chart_release.helm import Helm
from chart_release.manifest import ChartType, Package

__all__ = [
    "Packager",
    "PackageResult",
    "collect_packages",
]

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PackageResult:
    """The outcome of packaging one chart."""

    chart_dir: ChartDir
    success: bool
    type: ChartType
    package: Package | None = None
    """The archive packaged by this run, set on success."""


def collect_packages(results: list[PackageResult]) -> list[Package]:
    """Return the archives packaged by the successful results."""
    return [result.package for result in results if result.package is not None]


class Packager:
    """Resolves dependencies and packages charts with helm."""

    def __init__(
        self, root: Path, config: Config, helm: Helm, executor: Executor
    ) -> None:
        """Initialize Packager."""
        self._root = root
        self._config = config
        self._helm = helm
        self._executor = executor

    @property
    def packages_dir(self) -> Path:
        """Return the local directory holding the packaged archives."""
        return self._root / self._config.release.packages

    def destination(self, chart_type: ChartType) -> Path:
        """Return the package directory of a chart type."""
        return self._config.chart.directory(chart_type).resolve(self.packages_dir)

    async def resolve_dependencies(self, chart_dir: Path) -> None:
        """Resolve the dependencies declared by a chart."""
        await self._helm.dependency_update(chart_dir)

    async def package(self, chart_dir: Path, destination: Path) -> Path:
        """Package a chart into the destination directory."""
        return await self._helm.package(chart_dir, destination)

    async def package_all(
        self, charts: dict[ChartType, list[ChartDir]]
    ) -> list[PackageResult]:
        """Package charts into one directory per chart type.

        A chart that fails to package is reported with `success=False` and
        does not stop the other charts.
        """
        for chart_type in charts:
            await aiofiles.os.makedirs(self.destination(chart_type), exist_ok=True)
        total = sum(len(items) for items in charts.values())
        _LOGGER.info("Packaging %d charts...", total)

        async def package(chart: ChartDir) -> PackageResult:
            chart_dir = chart.resolve(self._root)
            await self.resolve_dependencies(chart_dir)
            archive = await self.package(chart_dir, self.destination(chart.type))
            return PackageResult(
                chart_dir=chart,
                success=True,
                type=chart.type,
                package=Package.parse(archive, chart.type),
            )

        results = await asyncio.gather(
            *(
                self._executor.best_effort(
                    f"package '{chart}' chart",
                    package(chart),
                    PackageResult(chart_dir=chart, success=False, type=chart.type),
                )
                for items in charts.values()
                for chart in items
            )
        )
        packaged = sum(1 for result in results if result.success)
        _LOGGER.info("Successfully packaged %d chart%s", packaged, "" if packaged == 1 else "s")
        return list(results)
