"""Tests for the shared command line setup."""

import json
from pathlib import Path

import git
import pytest

from chart_release.exceptions import InputException
from chart_release.tool import selector

GITHUB_ENV = (
    "GITHUB_REPOSITORY",
    "GITHUB_TOKEN",
    "GITHUB_HEAD_REF",
    "GITHUB_REF_NAME",
    "GITHUB_API_URL",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Run without the GitHub Actions environment of the host."""
    for name in GITHUB_ENV:
        monkeypatch.delenv(name, raising=False)


def test_load_push_event(tmp_path: Path) -> None:
    """Test a push event is read from the event payload."""
    event_path = tmp_path / "event.json"
    event_path.write_text(json.dumps({"before": "aaa", "after": "bbb"}))
    event = selector.load_event(
        {"GITHUB_EVENT_PATH": str(event_path), "GITHUB_EVENT_NAME": "push"}
    )
    assert event.name == "push"
    assert event.before == "aaa"
    assert event.after == "bbb"
    assert event.pull_number is None


def test_load_pull_request_event(tmp_path: Path) -> None:
    """Test the pull request number is read from the event payload."""
    event_path = tmp_path / "event.json"
    event_path.write_text(json.dumps({"pull_request": {"number": 12}}))
    event = selector.load_event(
        {"GITHUB_EVENT_PATH": str(event_path), "GITHUB_EVENT_NAME": "pull_request"}
    )
    assert event.name == "pull_request"
    assert event.pull_number == 12


def test_load_event_flags() -> None:
    """Test command line flags override the environment."""
    event = selector.load_event({"GITHUB_EVENT_NAME": "push"}, pull_request=7)
    assert event.name == "pull_request"
    assert event.pull_number == 7

    event = selector.load_event({}, before="aaa", after="bbb")
    assert event.name == "push"
    assert (event.before, event.after) == ("aaa", "bbb")


def test_run_url() -> None:
    """Test the workflow run URL."""
    assert (
        selector.run_url(
            {
                "GITHUB_SERVER_URL": "https://github.com",
                "GITHUB_REPOSITORY": "example/charts",
                "GITHUB_RUN_ID": "42",
            }
        )
        == "https://github.com/example/charts/actions/runs/42"
    )


def test_build_config(tmp_path: Path) -> None:
    """Test the configuration file in the repository root is used."""
    (tmp_path / "chart-release.yaml").write_text(
        "repository:\n  owner: example\n  name: charts\nchart:\n  retention: 3\n"
    )
    config = selector.build_config(tmp_path, None)
    assert config.chart.retention == 3
    assert config.repository.url == "https://example.github.io/charts"


def test_build_config_missing_file(tmp_path: Path) -> None:
    """Test an explicit configuration file must exist."""
    with pytest.raises(InputException, match="does not exist"):
        selector.build_config(tmp_path, tmp_path / "missing.yaml")


def test_build_helm(tmp_path: Path) -> None:
    """Test helm flags are passed to the helm command."""
    helm = selector.build_helm(repository_cache=tmp_path / "cache", path=None)
    assert helm._options.base_args == ["--repository-cache", str(tmp_path / "cache")]


def test_repo_root(tmp_path: Path) -> None:
    """Test the repository root is found from a subdirectory."""
    git.Repo.init(tmp_path)
    subdir = tmp_path / "application" / "ubuntu"
    subdir.mkdir(parents=True)
    assert selector.repo_root(subdir).resolve() == tmp_path.resolve()


def test_repo_root_missing(tmp_path: Path) -> None:
    """Test a path that does not exist."""
    with pytest.raises(InputException, match="Not a git repository"):
        selector.repo_root(tmp_path / "missing")
