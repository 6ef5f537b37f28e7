"""Lookup of source schemes and parsing of ``<scheme>:<value>`` strings."""

from __future__ import annotations

from collections.abc import Callable

from agix.sources import git, github, local, marketplace
from agix.sources.base import InvalidSourceError, Source

_SCHEMES: dict[str, Callable[[str], Source]] = {
    "local": local.parse,
    "github": github.parse,
    "git": git.parse,
    "marketplace": marketplace.parse,
}


def scheme_names() -> list[str]:
    """Names of every registered scheme, in registration order."""
    return list(_SCHEMES)


def parse_source(text: str) -> Source:
    """Parse a ``<scheme>:<value>`` string into a source."""
    scheme, sep, value = text.partition(":")
    if not sep:
        raise InvalidSourceError(f"missing scheme in source: {text}")
    try:
        parser = _SCHEMES[scheme]
    except KeyError:
        raise InvalidSourceError(f"unknown source scheme: {scheme}") from None
    return parser(value)