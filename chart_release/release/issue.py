"""Issue lookups for release notes and workflow failure reports."""

import logging
import re

from chart_release.config import Config, IssuePolicy
from chart_release.executor import Failure
from chart_release.github import GitHub
from chart_release.github.models import Issue
from chart_release.manifest import ChartType
from chart_release.template import TemplateRenderer

__all__ = [
    "IssueService",
]

_LOGGER = logging.getLogger(__name__)

WORKFLOW_TEMPLATE = "workflow-issue.md.j2"


class IssueService:
    """Finds chart issues and reports workflow failures."""

    def __init__(
        self, config: Config, github: GitHub, renderer: TemplateRenderer
    ) -> None:
        """Initialize IssueService."""
        self._config = config
        self._github = github
        self._renderer = renderer

    async def get(self, name: str, chart_type: ChartType) -> list[Issue]:
        """Return issues for a chart updated since its latest release.

        An issue belongs to a chart when its body contains `chart: <name>`
        and it carries the chart type label.
        """
        chart = f"{chart_type}/{name}"
        _LOGGER.info("Fetching '%s' chart issues...", chart)
        tag = self._config.release.tag
        releases = await self._github.graphql.get_releases(prefix=tag.prefix(name))
        latest = next(
            (release for release in releases if tag.match(release.tag_name, name)), None
        )
        issues = await self._github.graphql.get_issues(
            since=latest.created_at if latest else None,
            limit=self._config.release.issues,
        )
        pattern = re.compile(rf"chart:\s*{re.escape(name)}\b", re.IGNORECASE)
        result = [
            issue
            for issue in issues
            if pattern.search(issue.body_text) and chart_type.value in issue.labels
        ]
        if result:
            _LOGGER.info("Successfully fetched %d issues for '%s' chart", len(result), chart)
        else:
            _LOGGER.info("Found no issues for '%s' chart", chart)
        return result

    async def report(
        self, failures: list[Failure], workflow: str, run_url: str
    ) -> Issue | None:
        """Open a workflow issue for the failures if the issue policy asks for it."""
        policy = self._config.workflow.issue_policy
        if policy == IssuePolicy.NEVER or not failures:
            return None
        body = self._renderer.render(
            WORKFLOW_TEMPLATE,
            {
                "workflow": workflow,
                "branch": self._config.github.branch
                or self._config.repository.default_branch,
                "failures": [str(failure) for failure in failures],
                "run_url": run_url,
            },
        )
        return await self._github.rest.create_issue(
            self._config.workflow.title, body, list(self._config.workflow.labels)
        )
