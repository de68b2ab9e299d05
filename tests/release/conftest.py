"""Fixtures for the release tests."""

from pathlib import Path

import pytest

from chart_release.config import Config
from chart_release.executor import Executor
from chart_release.release import IssueService, Packager, ReleasePublisher
from chart_release.template import TemplateRenderer

from ..fakes import FakeGitHub, FakeHelm


@pytest.fixture(name="renderer")
def renderer_fixture(root: Path, config: Config) -> TemplateRenderer:
    """Renders the bundled templates."""
    return TemplateRenderer(root, config.repository.html_url)


@pytest.fixture(name="packager")
def packager_fixture(
    root: Path, config: Config, helm: FakeHelm, executor: Executor
) -> Packager:
    """Packages charts with the fake helm."""
    return Packager(root, config, helm, executor)  # type: ignore[arg-type]


@pytest.fixture(name="issues")
def issues_fixture(
    config: Config, github: FakeGitHub, renderer: TemplateRenderer
) -> IssueService:
    """Issue lookups against the fake GitHub."""
    return IssueService(config, github, renderer)  # type: ignore[arg-type]


@pytest.fixture(name="publisher")
def publisher_fixture(
    root: Path,
    config: Config,
    github: FakeGitHub,
    executor: Executor,
    renderer: TemplateRenderer,
    issues: IssueService,
) -> ReleasePublisher:
    """Publishes GitHub releases to the fake GitHub."""
    return ReleasePublisher(root, config, github, executor, renderer, issues)  # type: ignore[arg-type]
