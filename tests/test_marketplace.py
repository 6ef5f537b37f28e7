import pytest

from agix.sources.base import DelegateToDriver, InvalidSourceError
from agix.sources.local import parse as parse_local
from agix.sources.marketplace import MarketplaceSource, parse


def test_parse_marketplace_source():
    src = parse("fantoine/claude-plugins@roundtable")
    assert src.scheme == "marketplace"
    assert src.canonical() == "marketplace:fantoine/claude-plugins@roundtable"
    assert src.suggested_name() == "roundtable"
    assert src.as_marketplace() == ("fantoine/claude-plugins", "roundtable")


def test_parse_without_plugin_fails():
    with pytest.raises(InvalidSourceError) as info:
        parse("org/repo")
    assert "marketplace:org/repo" in str(info.value)


def test_parse_splits_at_first_at():
    src = parse("org/repo@a@b")
    assert src.marketplace == "org/repo"
    assert src.plugin == "a@b"


def test_canonical_roundtrip():
    src = parse("org/repo@plugin")
    again = parse(src.canonical().removeprefix("marketplace:"))
    assert again == src


def test_fetch_delegates_to_driver(tmp_path):
    outcome = parse("org/repo@plug").fetch(tmp_path)
    assert outcome == DelegateToDriver(marketplace="org/repo", plugin="plug")
    assert list(tmp_path.iterdir()) == []


def test_local_path_is_none():
    assert MarketplaceSource(marketplace="org/repo", plugin="plug").local_path() is None


def test_not_equal_to_other_scheme():
    assert parse("org/repo@plug") != parse_local("org/repo@plug")