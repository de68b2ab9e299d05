"""Typed configuration for the chart release pipeline.

The configuration is built once at startup from defaults, an optional YAML
file and the GitHub Actions environment, validated eagerly, and then passed
to each component constructor. It is never mutated after construction.

Example `chart-release.yaml`:
```yaml
repository:
  url: https://example.github.io/charts
chart:
  retention: 5
release:
  title: "{name}-{version}"
oci:
  registry: ghcr.io
```
"""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import StrEnum
from functools import cached_property
import logging
import os
from pathlib import Path
from typing import Any

from mashumaro import DataClassDictMixin
from mashumaro.exceptions import MissingField, InvalidFieldValue

from .exceptions import InputException
from .manifest import ChartType, DirectoryPath, load_yaml
from .tag import TagTemplate

__all__ = [
    "Config",
    "RepositoryConfig",
    "ChartConfig",
    "ReleaseConfig",
    "OciConfig",
    "GitHubConfig",
    "WorkflowConfig",
    "IssuePolicy",
    "CONFIG_FILE",
]

_LOGGER = logging.getLogger(__name__)

CONFIG_FILE = "chart-release.yaml"
GITHUB_URL = "https://github.com"


class IssuePolicy(StrEnum):
    """When a release run opens a workflow issue."""

    NEVER = "never"
    ON_FAILURE = "on_failure"


@dataclass(frozen=True)
class RepositoryConfig(DataClassDictMixin):
    """The GitHub repository holding the charts."""

    owner: str = ""
    """Repository owner login."""

    name: str = ""
    """Repository name."""

    url: str = ""
    """Public URL of the published chart repository."""

    default_branch: str = "main"
    """Branch used in links from release notes."""

    @property
    def full_name(self) -> str:
        """Return `owner/name`."""
        return f"{self.owner}/{self.name}"

    @property
    def html_url(self) -> str:
        """Return the repository web URL."""
        return f"{GITHUB_URL}/{self.full_name}"


@dataclass(frozen=True)
class ChartConfig(DataClassDictMixin):
    """Chart layout and metadata settings."""

    types: dict[ChartType, str] = field(
        default_factory=lambda: {
            ChartType.APPLICATION: "application",
            ChartType.LIBRARY: "library",
        }
    )
    """Directory holding the charts of each chart type."""

    icon: str = "icon.png"
    """File name of an optional chart icon."""

    packages_enabled: bool = True
    """Publish GitHub releases and chart indexes."""

    retention: int = 10
    """Maximum metadata entries kept per chart, 0 keeps all."""

    redirect_template: str = "redirect.html.j2"
    """Template for the per-chart redirect page."""

    @cached_property
    def directories(self) -> dict[ChartType, DirectoryPath]:
        """Return the directory of each chart type."""
        return {
            chart_type: DirectoryPath(directory)
            for chart_type, directory in self.types.items()
        }

    @property
    def chart_types(self) -> list[ChartType]:
        """Return the configured chart types."""
        return list(self.directories)

    def directory(self, chart_type: ChartType) -> DirectoryPath:
        """Return the directory for a chart type."""
        if chart_type not in self.directories:
            raise InputException(f"Chart type '{chart_type}' is not configured")
        return self.directories[chart_type]

    def type_of(self, directory: DirectoryPath) -> ChartType | None:
        """Return the chart type stored in a directory, if any."""
        for chart_type, value in self.directories.items():
            if value == directory:
                return chart_type
        return None


@dataclass(frozen=True)
class ReleaseConfig(DataClassDictMixin):
    """Release packaging and GitHub release settings."""

    packages: str = ".cr-release-packages"
    """Directory where packaged charts are written."""

    title: str = "{name}-{version}"
    """Template for release tag names and titles."""

    template: str = "release.md.j2"
    """Template for release notes."""

    issues: int = 50
    """Maximum number of issues considered for release notes."""

    @property
    def tag(self) -> TagTemplate:
        """Return the release tag template."""
        return TagTemplate(self.title)


@dataclass(frozen=True)
class OciConfig(DataClassDictMixin):
    """OCI registry publishing settings."""

    enabled: bool = True
    """Publish packaged charts to the OCI registry."""

    registry: str = "ghcr.io"
    """Registry host without protocol."""


@dataclass(frozen=True)
class GitHubConfig(DataClassDictMixin):
    """GitHub API access settings."""

    api_url: str = "https://api.github.com"
    """Base URL of the REST API."""

    token: str | None = field(default=None, repr=False)
    """Token used for API calls and registry login."""

    branch: str | None = None
    """Branch receiving signed commits."""

    retries: int = 3
    """Attempts for transient API failures."""

    commit_retries: int = 1
    """Retries of a signed commit after a head revision conflict."""

    @property
    def graphql_url(self) -> str:
        """Return the GraphQL endpoint."""
        return f"{self.api_url.rstrip('/')}/graphql"


@dataclass(frozen=True)
class WorkflowConfig(DataClassDictMixin):
    """Settings for workflow issue reporting."""

    issue_policy: IssuePolicy = IssuePolicy.NEVER
    """Whether a run with failures opens an issue."""

    labels: list[str] = field(default_factory=lambda: ["bug", "triage", "workflow"])
    """Labels applied to workflow issues."""

    title: str = "workflow: Issues Detected"
    """Title of workflow issues."""


@dataclass(frozen=True)
class Config(DataClassDictMixin):
    """Configuration for a release pipeline run."""

    repository: RepositoryConfig = field(default_factory=RepositoryConfig)
    chart: ChartConfig = field(default_factory=ChartConfig)
    release: ReleaseConfig = field(default_factory=ReleaseConfig)
    oci: OciConfig = field(default_factory=OciConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)

    def __post_init__(self) -> None:
        """Validate the configuration."""
        self.validate()

    def validate(self) -> None:
        """Raise InputException if the configuration is not usable."""
        if not self.chart.types:
            raise InputException("At least one chart type directory is required")
        directories = self.chart.directories
        if len(set(directories.values())) != len(directories):
            raise InputException(
                f"Chart type directories must be distinct: {self.chart.types}"
            )
        if self.chart.retention < 0:
            raise InputException(
                f"Chart retention must not be negative: {self.chart.retention}"
            )
        if self.github.retries < 1:
            raise InputException(f"GitHub retries must be positive: {self.github.retries}")
        TagTemplate(self.release.title)

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Config":
        """Parse a configuration document."""
        try:
            return cls.from_dict(doc)
        except (MissingField, InvalidFieldValue, ValueError, TypeError) as err:
            raise InputException(f"Invalid configuration: {err}") from err

    @classmethod
    def load(
        cls,
        path: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> "Config":
        """Build the configuration from a file and the environment.

        A missing file at the default location is not an error, the defaults
        are used instead.
        """
        doc: dict[str, Any] = {}
        if path is not None:
            if not path.exists():
                raise InputException(f"Configuration file {path} does not exist")
            doc = _read(path)
        elif Path(CONFIG_FILE).exists():
            doc = _read(Path(CONFIG_FILE))
        config = cls.parse_doc(doc)
        return config.with_environment(os.environ if env is None else env)

    def with_environment(self, env: Mapping[str, str]) -> "Config":
        """Return a copy filled in from GitHub Actions environment variables."""
        repository = self.repository
        if (full_name := env.get("GITHUB_REPOSITORY")) and "/" in full_name:
            owner, name = full_name.split("/", 1)
            repository = replace(
                repository,
                owner=repository.owner or owner,
                name=repository.name or name,
            )
        if not repository.url and repository.owner:
            repository = replace(
                repository,
                url=f"https://{repository.owner}.github.io/{repository.name}",
            )
        github = replace(
            self.github,
            token=self.github.token or env.get("GITHUB_TOKEN"),
            branch=self.github.branch
            or env.get("GITHUB_HEAD_REF")
            or env.get("GITHUB_REF_NAME"),
            api_url=env.get("GITHUB_API_URL", self.github.api_url),
        )
        _LOGGER.debug("Using repository %s", repository.full_name)
        return replace(self, repository=repository, github=github)


def _read(path: Path) -> dict[str, Any]:
    doc = load_yaml(path.read_text())
    if doc is None:
        return {}
    if not isinstance(doc, dict):
        raise InputException(f"Configuration file {path} must contain a mapping")
    return doc
