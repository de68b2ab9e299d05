"""Chart-release update action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
import sys
from typing import cast

import yaml

from chart_release.chart import find_charts, lint_charts
from chart_release.chart.update import BranchCommitter, Update
from chart_release.exceptions import ChartReleaseException, InputException
from chart_release.executor import Executor
from chart_release.github import GitHub
from chart_release.release import Packager

from . import selector

_LOGGER = logging.getLogger(__name__)


class UpdateAction:
    """Chart-release update action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "update",
                help="Update descriptor files of the charts changed by an event",
                description="""Finds the charts changed by a pull request or push
                    and commits updated application, dependency lock, metadata and
                    inventory files as signed commits.""",
            ),
        )
        args.add_argument(
            "--pull-request",
            type=int,
            default=None,
            help="Pull request number, defaults to the GitHub event payload",
        )
        args.add_argument("--before", default=None, help="Base commit of a push")
        args.add_argument("--after", default=None, help="Head commit of a push")
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
        if not settings.github.branch:
            raise InputException("A branch is required to commit chart updates")
        event = selector.load_event(**kwargs)
        helm = selector.build_helm(**kwargs)
        executor = Executor()

        async with GitHub(settings.github, settings.repository) as github:
            files = await executor.must_succeed(
                "get updated files", github.rest.get_updated_files(event)
            )
            found = await executor.must_succeed(
                "find modified charts", find_charts(root, settings.chart, list(files))
            )
            charts = [chart for items in found.values() for chart in items]
            update = Update(
                root,
                settings,
                Packager(root, settings, helm, executor),
                BranchCommitter(
                    root, github, settings.github.branch, settings.github.commit_retries
                ),
                executor,
            )
            results = [
                await update.application(charts),
                await update.lock(charts),
                await update.metadata(charts),
            ]
            await lint_charts(helm, executor, root, charts)
            results.append(await update.inventory(files))

        summary = {
            result.kind: {
                "files": result.files,
                "commit": result.commit.commit_id if result.commit else None,
            }
            for result in results
        }
        print(yaml.dump(summary, sort_keys=False), end="")
        if failures := executor.failures:
            for failure in failures:
                print(failure, file=sys.stderr)
            raise ChartReleaseException(f"{len(failures)} chart operations failed")
