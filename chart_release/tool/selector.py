"""Shared command line flags and run setup for chart-release actions."""

from argparse import ArgumentParser
from collections.abc import Mapping
import json
import logging
import os
import pathlib
from typing import Any

import git

from chart_release.config import Config
from chart_release.exceptions import InputException
from chart_release.github.models import Event
from chart_release.helm import Helm, Options

_LOGGER = logging.getLogger(__name__)

PULL_REQUEST = "pull_request"


def add_common_flags(args: ArgumentParser) -> None:
    """Add the flags shared by all actions."""
    args.add_argument(
        "--config",
        type=pathlib.Path,
        default=None,
        help="Path to the chart-release.yaml configuration file",
    )
    args.add_argument(
        "--path",
        type=pathlib.Path,
        default=None,
        help="Path inside the chart repository, defaults to the current git repository",
    )


def add_helm_flags(args: ArgumentParser) -> None:
    """Add flags that configure the helm command."""
    args.add_argument(
        "--repository-cache",
        type=pathlib.Path,
        default=None,
        help="Helm repository cache directory",
    )
    args.add_argument(
        "--repository-config",
        type=pathlib.Path,
        default=None,
        help="Helm repository configuration file",
    )


def repo_root(path: pathlib.Path | None = None) -> pathlib.Path:
    """Return the root of the git repository holding the path."""
    try:
        git_repo = git.repo.Repo(
            str(path or os.getcwd()), search_parent_directories=True
        )
    except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError) as err:
        raise InputException(f"Not a git repository: {path or os.getcwd()}") from err
    return pathlib.Path(git_repo.git.rev_parse("--show-toplevel"))


def build_config(root: pathlib.Path, config: pathlib.Path | None) -> Config:
    """Load the configuration, defaulting to the file in the repository root."""
    default = root / "chart-release.yaml"
    if config is None and default.exists():
        config = default
    return Config.load(config)


def build_helm(**kwargs: Any) -> Helm:
    """Create the helm client from the command line flags."""
    return Helm(
        Options(
            repository_cache=kwargs.get("repository_cache"),
            repository_config=kwargs.get("repository_config"),
        )
    )


def load_event(
    env: Mapping[str, str] | None = None, **kwargs: Any
) -> Event:
    """Return the triggering event from the flags or the GitHub environment."""
    env = os.environ if env is None else env
    payload: dict[str, Any] = {}
    if (event_path := env.get("GITHUB_EVENT_PATH")) and os.path.exists(event_path):
        with open(event_path, encoding="utf-8") as event_file:
            payload = json.load(event_file)
    name = env.get("GITHUB_EVENT_NAME", "push")
    pull_number = kwargs.get("pull_request") or (payload.get(PULL_REQUEST) or {}).get(
        "number"
    )
    if kwargs.get("pull_request"):
        name = PULL_REQUEST
    return Event(
        name=name,
        before=kwargs.get("before") or payload.get("before"),
        after=kwargs.get("after") or payload.get("after"),
        pull_number=pull_number,
    )


def run_url(env: Mapping[str, str] | None = None) -> str:
    """Return the URL of the current workflow run."""
    env = os.environ if env is None else env
    server = env.get("GITHUB_SERVER_URL", "https://github.com")
    return f"{server}/{env.get('GITHUB_REPOSITORY', '')}/actions/runs/{env.get('GITHUB_RUN_ID', '')}"
