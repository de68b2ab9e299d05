"""Fixtures shared by the chart-release tests."""

from pathlib import Path

import pytest

from chart_release.config import Config
from chart_release.executor import Executor

from .fakes import FakeGitHub, FakeHelm


@pytest.fixture(name="config")
def config_fixture() -> Config:
    """Configuration for the `example/charts` repository."""
    return Config.parse_doc(
        {
            "repository": {
                "owner": "example",
                "name": "charts",
                "url": "https://example.github.io/charts",
            },
            "github": {"token": "secret", "branch": "update-charts"},
        }
    )


@pytest.fixture(name="root")
def root_fixture(tmp_path: Path) -> Path:
    """An empty chart repository."""
    (tmp_path / "application").mkdir()
    (tmp_path / "library").mkdir()
    return tmp_path


@pytest.fixture(name="executor")
def executor_fixture() -> Executor:
    """A fresh executor for a run."""
    return Executor()


@pytest.fixture(name="github")
def github_fixture() -> FakeGitHub:
    """In-memory GitHub."""
    return FakeGitHub()


@pytest.fixture(name="helm")
def helm_fixture() -> FakeHelm:
    """Helm that packages charts without the helm binary."""
    return FakeHelm()
