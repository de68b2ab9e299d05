"""Chart-release index action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
from typing import cast

from chart_release.executor import Executor
from chart_release.github import GitHub
from chart_release.release import ReleasePublisher
from chart_release.template import TemplateRenderer

from . import selector

_LOGGER = logging.getLogger(__name__)


class IndexAction:
    """Chart-release index action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "index",
                help="Generate the index and redirect page of every chart",
                description="""Copies each released chart's metadata.yaml to an
                    index.yaml and renders its redirect page.""",
            ),
        )
        args.add_argument(
            "--output",
            type=pathlib.Path,
            default=None,
            help="Directory receiving the chart indexes, defaults to the repository",
        )
        selector.add_common_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        path: pathlib.Path | None,
        config: pathlib.Path | None,
        output: pathlib.Path | None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        root = selector.repo_root(path)
        settings = selector.build_config(root, config)
        executor = Executor()
        renderer = TemplateRenderer(root, settings.repository.html_url)
        async with GitHub(settings.github, settings.repository) as github:
            publisher = ReleasePublisher(root, settings, github, executor, renderer)
            count = await publisher.generate_indexes(output)
        print(f"Generated {count} chart indexes")
