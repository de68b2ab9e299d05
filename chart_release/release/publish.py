"""Publishing of packaged charts as GitHub releases and static chart indexes."""

import asyncio
import logging
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os
from aiofiles.ospath import exists

from chart_release.config import Config
from chart_release.executor import Executor
from chart_release.github import GitHub
from chart_release.github.models import Release
from chart_release.inventory import Inventory
from chart_release.manifest import (
    CHART_FILE,
    METADATA_FILE,
    PACKAGE_SUFFIX,
    ChartDescriptor,
    ChartState,
    ChartType,
    Package,
)
from chart_release.template import TemplateRenderer

from .issue import IssueService

__all__ = [
    "ReleasePublisher",
]

_LOGGER = logging.getLogger(__name__)

INDEX_FILE = "index.yaml"
REDIRECT_FILE = "index.html"


class ReleasePublisher:
    """Creates one GitHub release per packaged chart version."""

    def __init__(
        self,
        root: Path,
        config: Config,
        github: GitHub,
        executor: Executor,
        renderer: TemplateRenderer,
        issues: IssueService | None = None,
        inventory: Inventory | None = None,
    ) -> None:
        """Initialize ReleasePublisher."""
        self._root = root
        self._config = config
        self._github = github
        self._executor = executor
        self._renderer = renderer
        self._issues = issues or IssueService(config, github, renderer)
        self._inventory = inventory or Inventory(root, config.chart)

    def asset_name(self, chart_type: ChartType) -> str:
        """Return the release asset name for a chart type."""
        return f"{chart_type.value}{PACKAGE_SUFFIX}"

    async def publish(self, packages: list[Package]) -> list[Release]:
        """Create a release for each package that does not have one yet.

        An existing release for the tag is left as is. A package that fails
        to publish does not stop the others.
        """
        if not self._config.chart.packages_enabled:
            _LOGGER.info("Publishing of chart packages is disabled")
            return []
        if not packages:
            _LOGGER.info("No charts to publish to GitHub releases")
            return []
        _LOGGER.info("Publishing %d GitHub releases...", len(packages))
        results = await asyncio.gather(
            *(
                self._executor.best_effort(
                    f"publish '{package.filename}' release", self._publish(package)
                )
                for package in packages
            )
        )
        releases = [release for release in results if release is not None]
        if releases:
            _LOGGER.info("Successfully published %d GitHub releases", len(releases))
        return releases

    async def _publish(self, package: Package) -> Release | None:
        tag = self._config.release.tag.render(package.name, package.version)
        if await self._github.rest.get_release_by_tag(tag):
            _LOGGER.info("Release '%s' already exists, skipping", tag)
            return None
        _LOGGER.info("Processing '%s' repository release...", tag)
        body = await self._content(package, tag)
        release = await self._github.rest.create_release(tag, tag, body)
        async with aiofiles.open(str(package.source), mode="rb") as archive:
            data = await archive.read()
        await self._github.rest.upload_release_asset(
            release, self.asset_name(package.type), data
        )
        return release

    async def _content(self, package: Package, tag: str) -> str:
        """Render the release notes of a package."""
        chart_path = self._config.chart.directory(package.type).join(package.name)
        chart_dir = self._root / chart_path
        _LOGGER.info("Generating release content for '%s' chart...", chart_path)
        descriptor: ChartDescriptor | None = None
        if await exists(chart_dir / CHART_FILE):
            descriptor = await ChartDescriptor.read(chart_dir)
        has_icon = await exists(chart_dir / self._config.chart.icon)
        issues = await self._executor.best_effort(
            f"get '{chart_path}' chart issues",
            self._issues.get(package.name, package.type),
            [],
        )
        repository = self._config.repository
        source = f"{repository.html_url}/blob/{tag}/{chart_path}/{CHART_FILE}"
        context: dict[str, Any] = {
            "name": package.name,
            "version": package.version,
            "type": package.type.value,
            "tag": tag,
            "description": (descriptor.description if descriptor else None) or "",
            "app_version": descriptor.app_version if descriptor else None,
            "kube_version": descriptor.kube_version if descriptor else None,
            "icon": f"{chart_path}/{self._config.chart.icon}" if has_icon else None,
            "dependencies": [
                {
                    "name": dependency.name,
                    "version": dependency.version,
                    "repository": dependency.repository,
                    "source": source,
                }
                for dependency in (descriptor.dependencies if descriptor else [])
            ],
            "issues": issues,
            "owner": repository.owner,
            "repo_url": repository.url,
            "branch": repository.default_branch,
        }
        return self._renderer.render(self._config.release.template, context)

    async def generate_indexes(self, output: Path | None = None) -> int:
        """Rebuild the index and redirect page of every released chart.

        This is a full rebuild from the inventory, independent of which
        charts were published in this run. Returns the number of indexes.
        """
        if not self._config.chart.packages_enabled:
            _LOGGER.info("Chart indexes generation is disabled")
            return 0
        output = output or self._root
        _LOGGER.info("Generating chart indexes...")
        charts: list[tuple[ChartType, str]] = []
        for chart_type in self._config.chart.chart_types:
            records = await self._executor.must_succeed(
                f"load {chart_type} inventory", self._inventory.load(chart_type)
            )
            charts.extend(
                (chart_type, record.name)
                for record in records
                if record.state != ChartState.REMOVED
            )
        results = await asyncio.gather(
            *(
                self._executor.best_effort(
                    f"generate '{chart_type}/{name}' chart index",
                    self._create_index(chart_type, name, output),
                    False,
                )
                for chart_type, name in charts
            )
        )
        count = sum(1 for result in results if result)
        if count:
            _LOGGER.info("Successfully generated %d chart indexes", count)
        return count

    async def _create_index(self, chart_type: ChartType, name: str, output: Path) -> bool:
        directory = self._config.chart.directory(chart_type)
        metadata_path = self._root / directory.join(name, METADATA_FILE)
        if not await exists(metadata_path):
            _LOGGER.warning(
                "No %s found for '%s', skipping index generation",
                METADATA_FILE,
                directory.join(name),
            )
            return False
        target = output / directory.join(name)
        await aiofiles.os.makedirs(target, exist_ok=True)
        async with aiofiles.open(str(metadata_path)) as source:
            content = await source.read()
        async with aiofiles.open(str(target / INDEX_FILE), mode="w") as index:
            await index.write(content)
        redirect = self._renderer.render(
            self._config.chart.redirect_template,
            {
                "repo_url": self._config.repository.url,
                "type": directory.value,
                "name": name,
            },
        )
        async with aiofiles.open(str(target / REDIRECT_FILE), mode="w") as page:
            await page.write(redirect)
        _LOGGER.info("Generated index for '%s'", directory.join(name))
        return True
