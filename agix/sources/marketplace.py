"""Plugins installed through a CLI's own marketplace."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar

from agix.sources.base import DelegateToDriver, InvalidSourceError, Source


@dataclass(eq=False)
class MarketplaceSource(Source):
    """A plugin in a marketplace, written as ``marketplace:<org/repo>@<plugin>``."""

    scheme: ClassVar[str] = "marketplace"

    marketplace: str
    plugin: str

    def canonical(self) -> str:
        return f"marketplace:{self.marketplace}@{self.plugin}"

    def suggested_name(self) -> str:
        return self.plugin

    def fetch(self, dest: Path) -> DelegateToDriver:
        return DelegateToDriver(marketplace=self.marketplace, plugin=self.plugin)

    def as_marketplace(self) -> tuple[str, str]:
        return self.marketplace, self.plugin


def parse(value: str) -> MarketplaceSource:
    """Parse the value part of a ``marketplace:`` source."""
    marketplace, sep, plugin = value.partition("@")
    if not sep:
        raise InvalidSourceError(
            "marketplace source must be 'marketplace:<org/repo>@<plugin>', "
            f"got: marketplace:{value}"
        )
    return MarketplaceSource(marketplace=marketplace, plugin=plugin)