"""Representation of the chart files managed by the release pipeline.

Each chart directory contains a `Chart.yaml` descriptor and may contain an
`application.yaml` (an Argo CD Application pointing at a release tag), a
`Chart.lock` and a `metadata.yaml` version index. Each chart type directory
contains an `inventory.yaml` ledger of the charts it holds.
"""

from dataclasses import dataclass, field
from enum import StrEnum
import logging
from pathlib import Path, PurePosixPath
from typing import Any, Self, cast

import aiofiles
import yaml
from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import MissingField, InvalidFieldValue

from .exceptions import InputException
from .version import version_key

__all__ = [
    "ChartType",
    "ChartState",
    "DirectoryPath",
    "Dependency",
    "ChartDescriptor",
    "InventoryRecord",
    "MetadataEntry",
    "MetadataIndex",
    "Package",
    "merge_entries",
    "read_yaml",
    "load_yaml",
    "dump_yaml",
    "write_yaml",
]

_LOGGER = logging.getLogger(__name__)

CHART_FILE = "Chart.yaml"
CHART_LOCK_FILE = "Chart.lock"
APPLICATION_FILE = "application.yaml"
METADATA_FILE = "metadata.yaml"
INVENTORY_FILE = "inventory.yaml"
PACKAGE_SUFFIX = ".tgz"
INDEX_API_VERSION = "v1"


class _Loader(yaml.SafeLoader):
    """Safe YAML loader that keeps timestamps as plain strings."""


_Loader.yaml_implicit_resolvers = {
    key: [(tag, regexp) for tag, regexp in resolvers if not tag.endswith(":timestamp")]
    for key, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


class ChartType(StrEnum):
    """Category of a chart, used in all business-logic comparisons."""

    APPLICATION = "application"
    LIBRARY = "library"


class ChartState(StrEnum):
    """Lifecycle state of a chart in the inventory."""

    RELEASED = "released"
    REMOVED = "removed"


@dataclass(frozen=True, order=True)
class DirectoryPath:
    """A repository-relative directory, used only for path construction."""

    value: str

    def __post_init__(self) -> None:
        """Normalize and validate the directory."""
        normalized = str(PurePosixPath(self.value.strip().strip("/")))
        if not self.value.strip() or normalized in (".", ""):
            raise InputException(f"Invalid empty directory path: '{self.value}'")
        if ".." in PurePosixPath(normalized).parts:
            raise InputException(f"Directory path may not escape the repo: '{self.value}'")
        object.__setattr__(self, "value", normalized)

    def join(self, *parts: str) -> str:
        """Return a repository-relative posix path below this directory."""
        return str(PurePosixPath(self.value, *parts))

    def resolve(self, root: Path) -> Path:
        """Return the local filesystem path below the repository root."""
        return root / self.value

    def __str__(self) -> str:
        return self.value


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all serialized chart files."""

    @classmethod
    def parse_yaml(cls, content: str) -> Self:
        """Parse a serialized file."""
        doc = load_yaml(content)
        if not isinstance(doc, dict):
            raise InputException(f"Invalid {cls.__name__} expected a mapping: {doc}")
        return cls.parse_doc(doc)

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> Self:
        """Parse an object from a dictionary, raising InputException on error."""
        try:
            return cls.from_dict(doc)
        except (MissingField, InvalidFieldValue, ValueError, TypeError) as err:
            raise InputException(f"Invalid {cls.__name__}: {err}") from err

    def yaml(self) -> str:
        """Return a YAML string representation of the object."""
        return cast(str, yaml.dump(self.to_dict(), sort_keys=False))

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass
class Dependency(BaseManifest):
    """A chart dependency declared in Chart.yaml."""

    name: str
    """The name of the dependency chart."""

    version: str
    """The version or version range of the dependency."""

    repository: str | None = None
    """The repository the dependency is fetched from."""


@dataclass
class ChartDescriptor(BaseManifest):
    """The contents of a Chart.yaml file."""

    name: str
    """The immutable chart name."""

    version: str
    """The semantic version of the chart."""

    api_version: str = field(metadata=field_options(alias="apiVersion"), default="v2")
    """The chart API version."""

    app_version: str | None = field(
        metadata=field_options(alias="appVersion"), default=None
    )
    """The version of the packaged application."""

    description: str | None = None
    """A single-sentence description of the chart."""

    icon: str | None = None
    """URL of the chart icon."""

    kube_version: str | None = field(
        metadata=field_options(alias="kubeVersion"), default=None
    )
    """Supported Kubernetes version constraint."""

    type: str | None = None
    """The helm chart type (application or library)."""

    dependencies: list[Dependency] = field(default_factory=list)
    """The ordered list of chart dependencies."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ChartDescriptor":
        """Parse a ChartDescriptor from a Chart.yaml document."""
        if not (name := doc.get("name")):
            raise InputException(f"Invalid Chart.yaml missing name: {doc}")
        if not doc.get("version"):
            raise InputException(f"Invalid Chart.yaml for {name} missing version")
        doc = {**doc, "version": str(doc["version"])}
        if doc.get("appVersion") is not None:
            doc["appVersion"] = str(doc["appVersion"])
        if doc.get("dependencies") is None:
            doc["dependencies"] = []
        return cast(ChartDescriptor, super().parse_doc(doc))

    @classmethod
    async def read(cls, chart_dir: Path) -> "ChartDescriptor":
        """Read the Chart.yaml from a chart directory."""
        doc = await read_yaml(chart_dir / CHART_FILE)
        if not isinstance(doc, dict):
            raise InputException(f"Invalid {chart_dir / CHART_FILE}: expected a mapping")
        return cls.parse_doc(doc)


@dataclass
class InventoryRecord(BaseManifest):
    """One chart in a chart-type inventory ledger."""

    name: str
    """The chart name, unique within the ledger."""

    version: str
    """The last known chart version."""

    description: str = ""
    """The chart description."""

    state: ChartState = ChartState.RELEASED
    """Whether the chart is released or pending remote cleanup."""


@dataclass
class MetadataEntry(BaseManifest):
    """One version of a chart in its historical version index."""

    version: str
    """The chart version, unique within the index."""

    created: str
    """RFC 3339 timestamp of when the entry was generated."""

    urls: list[str] = field(default_factory=list)
    """Download URLs of the packaged chart."""

    name: str | None = None
    """The chart name."""

    description: str | None = None
    """The chart description at this version."""

    app_version: str | None = field(
        metadata=field_options(alias="appVersion"), default=None
    )
    """The application version at this version."""

    api_version: str | None = field(
        metadata=field_options(alias="apiVersion"), default=None
    )
    """The chart API version."""

    digest: str | None = None
    """The sha256 digest of the packaged chart."""

    type: str | None = None
    """The helm chart type."""

    icon: str | None = None
    """URL of the chart icon."""

    dependencies: list[Dependency] | None = None
    """Dependencies declared at this version."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "MetadataEntry":
        """Parse an entry, coercing scalar versions and timestamps to strings."""
        doc = dict(doc)
        for key in ("version", "appVersion", "created"):
            if doc.get(key) is not None:
                doc[key] = str(doc[key])
        return cast(MetadataEntry, super().parse_doc(doc))


def merge_entries(
    existing: list[MetadataEntry],
    new: list[MetadataEntry],
    retention: int,
) -> list[MetadataEntry]:
    """Merge entries keeping one per version, newest first, at most `retention`.

    Entries already present win over new entries for the same version so that
    repeated runs leave the stored index unchanged. A retention of 0 keeps
    every version.
    """
    seen: set[str] = set()
    merged: list[MetadataEntry] = []
    for entry in [*existing, *new]:
        if entry.version in seen:
            continue
        seen.add(entry.version)
        merged.append(entry)
    merged.sort(key=lambda entry: version_key(entry.version), reverse=True)
    if retention and len(merged) > retention:
        merged = merged[:retention]
    return merged


@dataclass
class MetadataIndex(BaseManifest):
    """The contents of a metadata.yaml file, a Helm repository index."""

    entries: dict[str, list[MetadataEntry]] = field(default_factory=dict)
    """Version entries keyed by chart name."""

    api_version: str = field(
        metadata=field_options(alias="apiVersion"), default=INDEX_API_VERSION
    )
    """The index API version."""

    generated: str | None = None
    """RFC 3339 timestamp of when the index was last written."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "MetadataIndex":
        """Parse a metadata index document."""
        entries = doc.get("entries") or {}
        if not isinstance(entries, dict):
            raise InputException(f"Invalid metadata entries: {entries}")
        generated = doc.get("generated")
        return cls(
            entries={
                str(name): [MetadataEntry.parse_doc(entry) for entry in items or []]
                for name, items in entries.items()
            },
            api_version=doc.get("apiVersion", INDEX_API_VERSION),
            generated=str(generated) if generated is not None else None,
        )

    def has_version(self, name: str, version: str) -> bool:
        """Return True if the chart already has an entry for the version."""
        return any(entry.version == version for entry in self.entries.get(name, []))

    def merge(self, name: str, entries: list[MetadataEntry], retention: int) -> None:
        """Merge new entries for a chart applying dedup, ordering and retention."""
        self.entries[name] = merge_entries(
            self.entries.get(name, []), entries, retention
        )


@dataclass(frozen=True)
class Package:
    """A packaged chart archive awaiting publishing."""

    source: Path
    """Local path of the archive."""

    type: ChartType
    """The chart type the archive was packaged for."""

    name: str
    """The chart name."""

    version: str
    """The chart version."""

    @property
    def filename(self) -> str:
        """Return the archive file name."""
        return self.source.name

    @classmethod
    def parse(cls, source: Path, chart_type: ChartType) -> "Package":
        """Parse `<name>-<version>.tgz`, splitting on the rightmost dash."""
        filename = source.name
        if not filename.endswith(PACKAGE_SUFFIX):
            raise InputException(f"Invalid package file name: {filename}")
        stem = filename[: -len(PACKAGE_SUFFIX)]
        name, sep, version = stem.rpartition("-")
        if not sep or not name or not version:
            raise InputException(f"Invalid package file name: {filename}")
        return cls(source=source, type=chart_type, name=name, version=version)


async def read_yaml(path: Path) -> Any:
    """Return the parsed contents of a YAML file."""
    async with aiofiles.open(str(path)) as yaml_file:
        content = await yaml_file.read()
    try:
        return load_yaml(content)
    except InputException as err:
        raise InputException(f"File {path} failed to parse as yaml: {err}") from err


def load_yaml(content: str) -> Any:
    """Parse YAML content with the safe loader, keeping timestamps as strings."""
    try:
        return yaml.load(content, Loader=_Loader)  # noqa: S506
    except yaml.YAMLError as err:
        raise InputException(str(err)) from err


def dump_yaml(data: Any) -> str:
    """Return the data as YAML, preserving key order."""
    return yaml.dump(data, sort_keys=False)


async def write_yaml(path: Path, data: Any) -> None:
    """Write the data to a YAML file, preserving key order."""
    content = dump_yaml(data)
    async with aiofiles.open(str(path), mode="w") as yaml_file:
        await yaml_file.write(content)
