"""Core source abstractions shared by every source scheme."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar


class AgixError(Exception):
    """Base error raised by the package."""


class InvalidSourceError(AgixError):
    """A source string could not be parsed or interpreted."""


@dataclass(frozen=True)
class Fetched:
    """Files were fetched into ``path``."""

    path: Path
    sha: str | None = None
    content_hash: str | None = None


@dataclass(frozen=True)
class DelegateToDriver:
    """No files were fetched; a CLI driver installs the plugin itself."""

    marketplace: str
    plugin: str


FetchOutcome = Fetched | DelegateToDriver


class Source(ABC):
    """A dependency source addressed as ``<scheme>:<value>``.

    Two sources are equal when their canonical forms are equal.
    """

    scheme: ClassVar[str] = ""

    @abstractmethod
    def canonical(self) -> str:
        """Canonical ``<scheme>:<value>`` form; parses back to an equal source."""

    @abstractmethod
    def suggested_name(self) -> str:
        """Name to use when the source is added without an explicit one."""

    @abstractmethod
    def fetch(self, dest: Path) -> FetchOutcome:
        """Fetch the source's files into ``dest``, or delegate to a driver."""

    def local_path(self) -> Path | None:
        """Filesystem path this source refers to, if any."""
        return None

    def as_marketplace(self) -> tuple[str, str] | None:
        """``(marketplace, plugin)`` when the source delegates to a marketplace."""
        return None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Source):
            return NotImplemented
        return self.canonical() == other.canonical()

    def __hash__(self) -> int:
        return hash(self.canonical())

    def __str__(self) -> str:
        return self.canonical()


def split_ref(value: str) -> tuple[str, str | None]:
    """Split ``value`` at its first ``@`` into ``(path, ref)``."""
    head, sep, tail = value.partition("@")
    if not sep:
        return value, None
    return head, tail