from pathlib import Path

import pytest

from agix.sources.base import (
    AgixError,
    DelegateToDriver,
    Fetched,
    InvalidSourceError,
    Source,
    split_ref,
)


class _Named(Source):
    scheme = "named"

    def __init__(self, value):
        self.value = value

    def canonical(self):
        return f"named:{self.value}"

    def suggested_name(self):
        return self.value

    def fetch(self, dest):
        return Fetched(path=Path(dest))


def test_split_ref_with_ref():
    assert split_ref("org/repo@main") == ("org/repo", "main")


def test_split_ref_without_ref():
    assert split_ref("org/repo") == ("org/repo", None)


def test_split_ref_uses_first_at():
    assert split_ref("a@b@c") == ("a", "b@c")


def test_split_ref_empty_ref():
    assert split_ref("org/repo@") == ("org/repo", "")


def test_source_is_abstract():
    with pytest.raises(TypeError):
        Source()


def test_default_local_path_and_marketplace_are_none():
    src = _Named("x")
    assert Source.local_path(src) is None
    assert Source.as_marketplace(src) is None


def test_equality_and_hash_follow_canonical():
    a = _Named("pkg")
    b = _Named("pkg")
    c = _Named("other")
    assert Source.__eq__(a, b) is True
    assert Source.__hash__(a) == Source.__hash__(b)
    assert Source.__eq__(a, c) is False
    assert len({a, b, c}) == 2


def test_str_is_canonical():
    assert Source.__str__(_Named("pkg")) == "named:pkg"


def test_invalid_source_error_is_agix_error():
    err = InvalidSourceError("bad")
    assert str(err) == "bad"
    assert issubclass(InvalidSourceError, AgixError) is True
    assert err.args == ("bad",)


def test_fetch_outcome_fields(tmp_path):
    outcome = _Named("pkg").fetch(tmp_path)
    assert outcome == Fetched(path=tmp_path, sha=None, content_hash=None)
    delegate = DelegateToDriver(marketplace="org/repo", plugin="plug")
    assert (delegate.marketplace, delegate.plugin) == ("org/repo", "plug")