"""Jinja2 rendering of release notes, redirect pages and workflow issues.

Templates are looked up in the repository first so a chart repository can
override them, then in the templates bundled with this package.
"""

import logging
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from .exceptions import InputException

__all__ = [
    "TemplateRenderer",
]

_LOGGER = logging.getLogger(__name__)

BUILTIN_TEMPLATES = Path(__file__).parent / "templates"


class TemplateRenderer:
    """Renders named templates with a context."""

    def __init__(self, root: Path | None = None, repo_url: str = "") -> None:
        """Initialize TemplateRenderer."""
        search_path = [str(BUILTIN_TEMPLATES)]
        if root is not None:
            search_path.insert(0, str(root))
        self._env = Environment(
            loader=FileSystemLoader(search_path),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            autoescape=False,
        )
        self._env.filters["raw_url"] = self._raw_url
        self._repo_url = repo_url

    def _raw_url(self, path: str, ref: str = "main") -> str:
        """Return the raw.githubusercontent.com URL of a repository file."""
        repo = self._repo_url.removeprefix("https://github.com/")
        return f"https://raw.githubusercontent.com/{repo}/{ref}/{path.lstrip('/')}"

    def render(self, name: str, context: dict[str, Any]) -> str:
        """Render a template by name."""
        try:
            template = self._env.get_template(name)
            return template.render(**context)
        except TemplateError as err:
            raise InputException(f"Unable to render template '{name}': {err}") from err
