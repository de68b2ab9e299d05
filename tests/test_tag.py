"""Tests for release tag templates."""

import pytest

from chart_release.exceptions import InputException
from chart_release.tag import TagTemplate


def test_render_is_deterministic() -> None:
    """Test the tag name for a chart version."""
    template = TagTemplate("{name}-{version}")
    assert template.render("nginx", "1.4.0") == "nginx-1.4.0"
    assert template.render("nginx", "1.4.0") == template.render("nginx", "1.4.0")


def test_prefix() -> None:
    """Test the literal tag prefix of a chart."""
    assert TagTemplate("{name}-{version}").prefix("nginx") == "nginx-"
    assert TagTemplate("charts/{name}/v{version}").prefix("nginx") == "charts/nginx/v"


@pytest.mark.parametrize(
    ("tag", "expected"),
    [
        ("nginx-1.4.0", "1.4.0"),
        ("nginx-2.0.0-rc.1", "2.0.0-rc.1"),
        ("nginx-ingress-1.0.0", None),
        ("nginx-", None),
        ("redis-1.0.0", None),
    ],
)
def test_match(tag: str, expected: str | None) -> None:
    """Test matching tags rendered for a chart name."""
    assert TagTemplate("{name}-{version}").match(tag, "nginx") == expected


def test_match_dashed_name() -> None:
    """Test a chart name containing dashes."""
    template = TagTemplate("{name}-{version}")
    assert template.match("my-chart-name-2.3.1", "my-chart-name") == "2.3.1"
    assert template.match("my-chart-name-2.3.1", "my-chart") is None


@pytest.mark.parametrize(
    "template",
    ["{name}", "{version}", "{name}-{version}-{version}", "release"],
)
def test_invalid_template(template: str) -> None:
    """Test templates missing a placeholder are rejected."""
    with pytest.raises(InputException, match="must contain"):
        TagTemplate(template)
