"""Tests for the configuration."""

from pathlib import Path

import pytest

from chart_release.config import Config, IssuePolicy
from chart_release.exceptions import InputException
from chart_release.manifest import ChartType, DirectoryPath


def test_defaults() -> None:
    """Test the default configuration."""
    config = Config()
    assert config.chart.retention == 10
    assert config.chart.directory(ChartType.APPLICATION) == DirectoryPath("application")
    assert config.chart.type_of(DirectoryPath("library")) == ChartType.LIBRARY
    assert config.chart.type_of(DirectoryPath("docs")) is None
    assert config.release.packages == ".cr-release-packages"
    assert config.release.tag.render("nginx", "1.4.0") == "nginx-1.4.0"
    assert config.oci.registry == "ghcr.io"
    assert config.workflow.issue_policy == IssuePolicy.NEVER
    assert config.github.graphql_url == "https://api.github.com/graphql"


def test_parse_doc() -> None:
    """Test parsing a configuration document."""
    config = Config.parse_doc(
        {
            "chart": {
                "types": {"application": "charts/apps", "library": "charts/lib"},
                "retention": 5,
            },
            "release": {"title": "{name}/v{version}"},
            "workflow": {"issue_policy": "on_failure"},
        }
    )
    assert config.chart.directory(ChartType.APPLICATION).join("ubuntu") == "charts/apps/ubuntu"
    assert config.chart.retention == 5
    assert config.release.tag.render("nginx", "1.0.0") == "nginx/v1.0.0"
    assert config.workflow.issue_policy == IssuePolicy.ON_FAILURE


@pytest.mark.parametrize(
    ("doc", "match"),
    [
        ({"chart": {"types": {}}}, "At least one chart type"),
        (
            {"chart": {"types": {"application": "charts", "library": "charts/"}}},
            "must be distinct",
        ),
        ({"chart": {"retention": -1}}, "must not be negative"),
        ({"release": {"title": "{name}"}}, "must contain"),
        ({"github": {"retries": 0}}, "must be positive"),
        ({"chart": {"types": {"plugin": "plugins"}}}, "Invalid configuration"),
        ({"workflow": {"issue_policy": "always"}}, "Invalid configuration"),
    ],
)
def test_invalid(doc: dict, match: str) -> None:
    """Test invalid configuration is rejected eagerly."""
    with pytest.raises(InputException, match=match):
        Config.parse_doc(doc)


def test_unknown_chart_type_directory() -> None:
    """Test looking up a chart type that is not configured."""
    config = Config.parse_doc({"chart": {"types": {"application": "application"}}})
    with pytest.raises(InputException, match="is not configured"):
        config.chart.directory(ChartType.LIBRARY)


def test_with_environment() -> None:
    """Test values filled in from the GitHub Actions environment."""
    config = Config().with_environment(
        {
            "GITHUB_REPOSITORY": "example/charts",
            "GITHUB_TOKEN": "secret",
            "GITHUB_HEAD_REF": "update-charts",
            "GITHUB_REF_NAME": "1/merge",
        }
    )
    assert config.repository.full_name == "example/charts"
    assert config.repository.html_url == "https://github.com/example/charts"
    assert config.repository.url == "https://example.github.io/charts"
    assert config.github.token == "secret"
    assert config.github.branch == "update-charts"
    assert "secret" not in repr(config.github)


def test_file_values_win_over_environment() -> None:
    """Test explicit values are not overwritten by the environment."""
    config = Config.parse_doc(
        {"repository": {"owner": "other", "name": "repo"}, "github": {"branch": "main"}}
    ).with_environment({"GITHUB_REPOSITORY": "example/charts", "GITHUB_REF_NAME": "dev"})
    assert config.repository.full_name == "other/repo"
    assert config.github.branch == "main"


def test_load(tmp_path: Path) -> None:
    """Test loading a configuration file."""
    path = tmp_path / "chart-release.yaml"
    path.write_text("chart:\n  retention: 3\noci:\n  enabled: false\n")
    config = Config.load(path, env={})
    assert config.chart.retention == 3
    assert not config.oci.enabled


def test_load_missing_file(tmp_path: Path) -> None:
    """Test an explicit configuration file must exist."""
    with pytest.raises(InputException, match="does not exist"):
        Config.load(tmp_path / "missing.yaml", env={})
