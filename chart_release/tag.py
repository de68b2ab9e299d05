"""Deterministic release tag names derived from a chart name and version."""

from dataclasses import dataclass
import re

from .exceptions import InputException
from .version import is_version

__all__ = [
    "TagTemplate",
]

NAME = "{name}"
VERSION = "{version}"


@dataclass(frozen=True)
class TagTemplate:
    """A release tag template such as `{name}-{version}`."""

    template: str

    def __post_init__(self) -> None:
        """Validate the template placeholders."""
        if NAME not in self.template or self.template.count(VERSION) != 1:
            raise InputException(
                f"Release title template must contain {NAME} and {VERSION}: {self.template}"
            )

    def render(self, name: str, version: str) -> str:
        """Return the tag name for a chart version."""
        return self.template.replace(NAME, name).replace(VERSION, version)

    def prefix(self, name: str) -> str:
        """Return the literal text preceding the version for a chart."""
        return self.template.split(VERSION, 1)[0].replace(NAME, name)

    def match(self, tag: str, name: str) -> str | None:
        """Return the version if the tag was rendered for this chart name."""
        pattern = "".join(
            (
                re.escape(name)
                if part == NAME
                else "(?P<version>.+)" if part == VERSION else re.escape(part)
            )
            for part in re.split(r"(\{name\}|\{version\})", self.template)
        )
        if not (result := re.fullmatch(pattern, tag)):
            return None
        version = result.group("version")
        return version if is_version(version) else None
