"""Publishing of packaged charts to an OCI registry.

Charts are pushed with the Helm media types so they can be installed with
`helm install oci://<registry>/<owner>/<repo>/<type>/<name>`. Pushing a new
artifact never removes an old one, so the package version carrying the same
tag is deleted through the GitHub packages API before each push.
"""

import asyncio
from dataclasses import dataclass
import json
import logging
from pathlib import Path
import tarfile
import tempfile

from oras.client import OrasClient

from chart_release.config import Config
from chart_release.exceptions import InputException, NotFoundError, RegistryException
from chart_release.executor import Executor
from chart_release.github import GitHub
from chart_release.github.models import OwnerType
from chart_release.manifest import CHART_FILE, ChartType, Package, load_yaml

__all__ = [
    "RegistryPublisher",
    "PublishedPackage",
]

_LOGGER = logging.getLogger(__name__)

CHART_MEDIA_TYPE = "application/vnd.cncf.helm.chart.content.v1.tar.gz"
CONFIG_MEDIA_TYPE = "application/vnd.cncf.helm.config.v1+json"


@dataclass(frozen=True)
class PublishedPackage:
    """A chart archive pushed to the registry."""

    type: ChartType
    source: str
    """The archive file name."""

    registry: str
    """The `oci://` repository the chart was pushed to."""


def _chart_config(archive: Path) -> str:
    """Return the chart metadata of an archive as the OCI config JSON."""
    with tarfile.open(archive, mode="r:gz") as tar:
        for member in tar.getmembers():
            parts = member.name.split("/")
            if len(parts) == 2 and parts[1] == CHART_FILE:
                handle = tar.extractfile(member)
                if handle is None:
                    break
                doc = load_yaml(handle.read().decode("utf-8"))
                return json.dumps(doc)
    raise InputException(f"Package {archive} does not contain a {CHART_FILE}")


class RegistryPublisher:
    """Pushes chart archives to the OCI registry of the repository owner."""

    def __init__(
        self,
        config: Config,
        github: GitHub,
        executor: Executor,
        client: OrasClient | None = None,
    ) -> None:
        """Initialize RegistryPublisher."""
        self._config = config
        self._github = github
        self._executor = executor
        self._client = client or OrasClient(hostname=config.oci.registry)
        self._owner_type: OwnerType | None = None

    def repository(self, chart_type: ChartType) -> str:
        """Return the registry repository for a chart type."""
        full_name = self._config.repository.full_name
        return f"{self._config.oci.registry}/{full_name}/{chart_type.value}"

    def package_name(self, chart_type: ChartType, name: str) -> str:
        """Return the GitHub package name of a chart."""
        return f"{self._config.repository.name}/{chart_type.value}/{name}"

    async def owner_type(self) -> OwnerType:
        """Return the repository owner type, resolved once per run."""
        if self._owner_type is None:
            self._owner_type = await self._github.graphql.get_owner_type(
                self._config.repository.owner
            )
        return self._owner_type

    async def authenticate(self) -> bool:
        """Log in to the registry with the GitHub token."""
        token = self._config.github.token
        if not token:
            _LOGGER.warning("GitHub token not available for OCI authentication")
            return False
        registry = self._config.oci.registry

        async def login() -> bool:
            try:
                await asyncio.to_thread(
                    self._client.login,
                    hostname=registry,
                    username=self._config.repository.owner,
                    password=token,
                )
            except Exception as err:  # pylint: disable=broad-except
                raise RegistryException(f"Unable to log in to {registry}: {err}") from err
            _LOGGER.info("Successfully authenticated to '%s' OCI registry", registry)
            return True

        return await self._executor.best_effort(
            "authenticate to OCI registry", login(), False
        )

    async def delete_version(self, package: Package) -> bool:
        """Delete the package version tagged with the package version, if any."""
        owner_type = await self.owner_type()
        name = self.package_name(package.type, package.name)
        try:
            versions = await self._github.rest.list_package_versions(owner_type, name)
        except NotFoundError:
            _LOGGER.debug("Package '%s' does not exist yet", name)
            return False
        deleted = False
        for version in versions:
            if package.version in version.tags:
                deleted |= await self._github.rest.delete_package_version(
                    owner_type, name, version.id
                )
        if deleted:
            _LOGGER.info("Deleted existing OCI package version '%s:%s'", name, package.version)
        return deleted

    async def delete_package(self, chart_type: ChartType, name: str) -> bool:
        """Delete every version of a chart from the registry."""
        owner_type = await self.owner_type()
        return await self._github.rest.delete_package(
            owner_type, self.package_name(chart_type, name)
        )

    async def publish(self, packages: list[Package]) -> list[PublishedPackage]:
        """Push each package, replacing an artifact with the same version."""
        if not self._config.oci.enabled:
            _LOGGER.info("Publishing of OCI packages is disabled")
            return []
        if not packages:
            _LOGGER.info("No packages to publish to OCI registry")
            return []
        if not await self.authenticate():
            _LOGGER.warning("OCI authentication failed, skipping OCI publishing")
            return []
        _LOGGER.info("Publishing %d OCI packages...", len(packages))
        results = await asyncio.gather(
            *(
                self._executor.best_effort(
                    f"publish '{package.filename}' package", self._publish(package)
                )
                for package in packages
            )
        )
        published = [result for result in results if result is not None]
        if published:
            _LOGGER.info("Successfully published %d OCI packages", len(published))
        return published

    async def _publish(self, package: Package) -> PublishedPackage:
        await self._executor.best_effort(
            f"delete '{package.name}' package version", self.delete_version(package), False
        )
        repository = self.repository(package.type)
        target = f"{repository}/{package.name}:{package.version}"
        with tempfile.TemporaryDirectory(prefix="chart-oci-") as scratch:
            config_path = Path(scratch) / "config.json"
            config_path.write_text(_chart_config(package.source))
            try:
                await asyncio.to_thread(
                    self._client.push,
                    target=target,
                    files=[f"{package.source}:{CHART_MEDIA_TYPE}"],
                    manifest_config=f"{config_path}:{CONFIG_MEDIA_TYPE}",
                    disable_path_validation=True,
                )
            except Exception as err:  # pylint: disable=broad-except
                raise RegistryException(f"Unable to push {target}: {err}") from err
        _LOGGER.info("Successfully published '%s' chart package to OCI registry", package.filename)
        return PublishedPackage(
            type=package.type, source=package.filename, registry=f"oci://{repository}"
        )
