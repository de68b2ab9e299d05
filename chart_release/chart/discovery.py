"""Discovery and validation of chart directories."""

import asyncio
from dataclasses import dataclass
import logging
from pathlib import Path, PurePosixPath

from aiofiles.ospath import exists

from chart_release.config import ChartConfig
from chart_release.exceptions import HelmException, ValidationFailure
from chart_release.executor import Executor
from chart_release.helm import Helm
from chart_release.manifest import CHART_FILE, ChartType

__all__ = [
    "ChartDir",
    "find_charts",
    "lint_charts",
]

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, order=True)
class ChartDir:
    """A chart directory of a given chart type."""

    type: ChartType
    """The chart type, from the directory the chart lives in."""

    path: str
    """Repository-relative posix path, e.g. `application/ubuntu`."""

    @property
    def name(self) -> str:
        """Return the name of the chart directory."""
        return PurePosixPath(self.path).name

    def resolve(self, root: Path) -> Path:
        """Return the local path of the chart directory."""
        return root / self.path

    def join(self, *parts: str) -> str:
        """Return a repository-relative path of a file in the chart."""
        return str(PurePosixPath(self.path, *parts))

    def __str__(self) -> str:
        return self.path


def _chart_dir(config: ChartConfig, file: str) -> ChartDir | None:
    """Return the chart directory a changed file belongs to, if any."""
    path = PurePosixPath(file)
    for chart_type, directory in config.directories.items():
        try:
            relative = path.relative_to(directory.value)
        except ValueError:
            continue
        # The file must sit inside a chart directory, not the type directory
        if len(relative.parts) < 2:
            return None
        return ChartDir(type=chart_type, path=directory.join(relative.parts[0]))
    return None


async def find_charts(
    root: Path, config: ChartConfig, files: list[str]
) -> dict[ChartType, list[ChartDir]]:
    """Return the chart directories touched by the changed files, by chart type.

    Only directories that still contain a Chart.yaml are returned.
    """
    candidates = sorted({chart for file in files if (chart := _chart_dir(config, file))})
    found = await asyncio.gather(
        *(exists(chart.resolve(root) / CHART_FILE) for chart in candidates)
    )
    charts: dict[ChartType, list[ChartDir]] = {
        chart_type: [] for chart_type in config.chart_types
    }
    for chart, present in zip(candidates, found):
        if present:
            charts[chart.type].append(chart)
    total = sum(len(items) for items in charts.values())
    if total:
        _LOGGER.info("Found %d modified chart%s", total, "" if total == 1 else "s")
    return charts


async def lint_charts(
    helm: Helm, executor: Executor, root: Path, charts: list[ChartDir]
) -> list[ChartDir]:
    """Lint charts in strict mode, returning the charts that passed.

    A chart that fails linting is recorded as a non-fatal failure.
    """
    if not charts:
        return []
    _LOGGER.info("Linting %d charts", len(charts))

    async def lint(chart: ChartDir) -> bool:
        try:
            await helm.lint(chart.resolve(root), strict=True)
        except HelmException as err:
            raise ValidationFailure(chart.path, str(err)) from err
        return True

    results = await asyncio.gather(
        *(
            executor.best_effort(f"lint '{chart}' chart", lint(chart), False)
            for chart in charts
        )
    )
    return [chart for chart, passed in zip(charts, results) if passed]
