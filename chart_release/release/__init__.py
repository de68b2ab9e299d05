"""Packaging and publishing of chart releases.

This module provides the release orchestrator along with the packager and
the publishers for GitHub releases and the OCI registry.
"""

from .orchestrator import Orchestrator, RunResult, Stage
from .package import Packager, PackageResult, collect_packages
from .publish import ReleasePublisher
from .registry import RegistryPublisher, PublishedPackage
from .issue import IssueService

__all__ = [
    "Orchestrator",
    "RunResult",
    "Stage",
    "Packager",
    "PackageResult",
    "collect_packages",
    "ReleasePublisher",
    "RegistryPublisher",
    "PublishedPackage",
    "IssueService",
]
