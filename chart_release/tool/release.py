"""Chart-release release action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
import sys
from typing import cast

import yaml

from chart_release.executor import Executor
from chart_release.github import GitHub
from chart_release.release import (
    IssueService,
    Orchestrator,
    Packager,
    RegistryPublisher,
    ReleasePublisher,
)
from chart_release.template import TemplateRenderer

from . import selector

_LOGGER = logging.getLogger(__name__)

WORKFLOW = "release"


class ReleaseAction:
    """Chart-release release action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "release",
                help="Package and publish every chart in the inventory",
                description="""Cleans up removed charts, packages the released
                    charts and publishes them as GitHub releases and OCI packages,
                    then writes back the inventory.""",
            ),
        )
        selector.add_common_flags(args)
        selector.add_helm_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        path: pathlib.Path | None,
        config: pathlib.Path | None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        root = selector.repo_root(path)
        settings = selector.build_config(root, config)
        helm = selector.build_helm(**kwargs)
        executor = Executor()
        renderer = TemplateRenderer(root, settings.repository.html_url)

        async with GitHub(settings.github, settings.repository) as github:
            issues = IssueService(settings, github, renderer)
            orchestrator = Orchestrator(
                root,
                settings,
                github,
                executor,
                Packager(root, settings, helm, executor),
                ReleasePublisher(root, settings, github, executor, renderer, issues),
                RegistryPublisher(settings, github, executor),
            )
            result = await orchestrator.run()
            if result.failures:
                await executor.best_effort(
                    "report workflow issue",
                    issues.report(result.failures, WORKFLOW, selector.run_url()),
                )

        print(yaml.dump(result.summary(), sort_keys=False), end="")
        for failure in result.failures:
            print(failure, file=sys.stderr)
