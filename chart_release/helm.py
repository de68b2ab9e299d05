"""Library for running `helm` commands against local chart directories.

This is an example that packages a chart with its dependencies:
```python
from chart_release.helm import Helm

helm = Helm()
await helm.dependency_update(Path("application/ubuntu"))
archive = await helm.package(Path("application/ubuntu"), Path("/tmp/packages"))
print(f"Packaged chart {archive}")
```
"""

from dataclasses import dataclass
import logging
from pathlib import Path

from . import command
from .exceptions import HelmException

__all__ = [
    "Helm",
    "Options",
]

_LOGGER = logging.getLogger(__name__)


HELM_BIN = "helm"
PACKAGE_OUTPUT = "Successfully packaged chart and saved it to:"


@dataclass
class Options:
    """Options to use when running helm commands.

    Internally, these translate into command line flags.
    """

    repository_cache: Path | None = None
    """Value of the helm --repository-cache flag."""

    repository_config: Path | None = None
    """Value of the helm --repository-config flag."""

    registry_config: Path | None = None
    """Value of the helm --registry-config flag."""

    @property
    def base_args(self) -> list[str]:
        """Helm CLI arguments built from the options."""
        args: list[str] = []
        if self.repository_cache:
            args.extend(["--repository-cache", str(self.repository_cache)])
        if self.repository_config:
            args.extend(["--repository-config", str(self.repository_config)])
        if self.registry_config:
            args.extend(["--registry-config", str(self.registry_config)])
        return args


class Helm:
    """Runs helm commands for chart directories."""

    def __init__(self, options: Options | None = None) -> None:
        """Initialize Helm."""
        self._options = options or Options()

    async def dependency_update(self, chart_dir: Path) -> None:
        """Resolve chart dependencies, refreshing Chart.lock and charts/."""
        _LOGGER.debug("Updating dependencies for '%s' chart", chart_dir)
        args = [HELM_BIN, "dependency", "update", str(chart_dir)]
        args.extend(self._options.base_args)
        await command.run(command.Command(args, exc=HelmException))

    async def package(self, chart_dir: Path, destination: Path) -> Path:
        """Package a chart into the destination directory, returning the archive."""
        _LOGGER.info("Packaging '%s' chart to '%s' directory...", chart_dir, destination)
        args = [HELM_BIN, "package", str(chart_dir), "--destination", str(destination)]
        out = await command.run(command.Command(args, exc=HelmException))
        for line in out.splitlines():
            if PACKAGE_OUTPUT in line:
                archive = Path(line.split(PACKAGE_OUTPUT, 1)[1].strip())
                _LOGGER.debug("Packaged '%s' chart to '%s'", chart_dir, archive)
                return archive
        raise HelmException(f"Unable to find packaged archive for {chart_dir}: {out}")

    async def lint(self, chart_dir: Path, strict: bool = True) -> None:
        """Lint a chart, raising HelmException on lint errors."""
        args = [HELM_BIN, "lint", str(chart_dir)]
        if strict:
            args.append("--strict")
        await command.run(command.Command(args, exc=HelmException))
        _LOGGER.info("Chart validation passed for '%s'", chart_dir)
