import io
import zipfile

import pytest
import responses

from agix.sources.base import AgixError, Fetched, InvalidSourceError
from agix.sources.github import (
    BASE_URL_ENV_VAR,
    DEFAULT_API_BASE,
    DEFAULT_WEB_BASE,
    GitHubSource,
    parse,
    parse_org_repo,
    resolve_bases,
)

BASE = "http://mock.example.com"
SHA = "abc123def456abc123def456abc123def456abc1"


@pytest.fixture
def rsps():
    with responses.RequestsMock() as mock:
        yield mock


def build_github_style_zip() -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_STORED) as zf:
        zf.writestr("repo-abc1234/", "")
        zf.writestr("repo-abc1234/README.md", "# hello")
        zf.writestr("repo-abc1234/skills/s.md", "# skill")
    return buf.getvalue()


def test_resolve_tag_returns_sha(rsps):
    rsps.add(
        responses.GET,
        f"{BASE}/repos/org/repo/git/ref/tags/v1.0.0",
        json={"object": {"sha": SHA}},
    )
    source = GitHubSource("org", "repo", "v1.0.0", base=BASE)
    assert source.resolve_ref() == SHA
    assert len(rsps.calls) == 1
    assert rsps.calls[0].request.headers["User-Agent"] == "agix/0.1"


def test_resolve_branch_falls_back_when_tag_missing(rsps):
    rsps.add(responses.GET, f"{BASE}/repos/org/repo/git/ref/tags/main", status=404)
    rsps.add(
        responses.GET,
        f"{BASE}/repos/org/repo/git/ref/heads/main",
        json={"object": {"sha": "deadbeefdeadbeefdeadbeefdeadbeefdeadbeef"}},
    )
    source = GitHubSource("org", "repo", "main", base=BASE)
    assert source.resolve_ref() == "deadbeefdeadbeefdeadbeefdeadbeefdeadbeef"
    assert [c.request.url for c in rsps.calls] == [
        f"{BASE}/repos/org/repo/git/ref/tags/main",
        f"{BASE}/repos/org/repo/git/ref/heads/main",
    ]


def test_resolve_exact_40_hex_sha_returns_directly(rsps):
    source = GitHubSource("org", "repo", SHA, base="http://localhost:1")
    assert source.resolve_ref() == SHA
    assert len(rsps.calls) == 0


def test_resolve_without_ref_uses_head_commit(rsps):
    rsps.add(responses.GET, f"{BASE}/repos/org/repo/commits/HEAD", json={"sha": SHA})
    source = GitHubSource("org", "repo", base=BASE)
    assert source.resolve_ref() == SHA


def test_resolve_unknown_ref_falls_back_to_head(rsps):
    rsps.add(responses.GET, f"{BASE}/repos/org/repo/git/ref/tags/nope", status=404)
    rsps.add(responses.GET, f"{BASE}/repos/org/repo/git/ref/heads/nope", status=404)
    rsps.add(responses.GET, f"{BASE}/repos/org/repo/commits/HEAD", json={"sha": SHA})
    source = GitHubSource("org", "repo", "nope", base=BASE)
    assert source.resolve_ref() == SHA
    assert len(rsps.calls) == 3


def test_resolve_fails_when_head_unavailable(rsps):
    rsps.add(responses.GET, f"{BASE}/repos/org/repo/commits/HEAD", status=404)
    source = GitHubSource("org", "repo", base=BASE)
    with pytest.raises(AgixError, match="could not resolve ref for org/repo"):
        source.resolve_ref()


def test_parse_org_repo_valid():
    assert parse_org_repo("org/repo") == ("org", "repo")


def test_parse_org_repo_invalid():
    with pytest.raises(InvalidSourceError):
        parse_org_repo("invalid")


def test_fetch_uses_web_base_for_archive(rsps, tmp_path):
    rsps.add(
        responses.GET,
        f"{BASE}/repos/org/repo/git/ref/tags/v1.0.0",
        json={"object": {"sha": SHA}},
    )
    rsps.add(
        responses.GET,
        f"{BASE}/org/repo/archive/{SHA}.zip",
        body=build_github_style_zip(),
        content_type="application/zip",
    )
    dest = tmp_path / "dest"
    source = GitHubSource("org", "repo", "v1.0.0", base=BASE)
    outcome = source.fetch(dest)

    assert outcome == Fetched(path=dest, sha=SHA, content_hash=None)
    assert (dest / "README.md").read_text() == "# hello"
    assert (dest / "skills" / "s.md").read_text() == "# skill"
    assert not (dest / "repo-abc1234").exists()


def test_fetch_with_invalid_archive_raises(rsps, tmp_path):
    rsps.add(responses.GET, f"{BASE}/org/repo/archive/{SHA}.zip", body=b"not a zip")
    source = GitHubSource("org", "repo", SHA, base=BASE)
    with pytest.raises(AgixError, match="zip open error"):
        source.fetch(tmp_path / "dest")


def test_env_var_overrides_default_bases(monkeypatch):
    monkeypatch.setenv(BASE_URL_ENV_VAR, "http://127.0.0.1:9999")
    assert resolve_bases(None) == ("http://127.0.0.1:9999", "http://127.0.0.1:9999")


def test_explicit_override_wins_over_env_var(monkeypatch):
    monkeypatch.setenv(BASE_URL_ENV_VAR, "http://env-base.invalid")
    assert resolve_bases("http://explicit.invalid") == (
        "http://explicit.invalid",
        "http://explicit.invalid",
    )


def test_defaults_when_env_var_unset(monkeypatch):
    monkeypatch.delenv(BASE_URL_ENV_VAR, raising=False)
    assert resolve_bases(None) == (DEFAULT_API_BASE, DEFAULT_WEB_BASE)


def test_empty_env_var_uses_defaults(monkeypatch):
    monkeypatch.setenv(BASE_URL_ENV_VAR, "")
    assert resolve_bases(None) == (DEFAULT_API_BASE, DEFAULT_WEB_BASE)


def test_source_picks_up_env_base(monkeypatch):
    monkeypatch.setenv(BASE_URL_ENV_VAR, "http://127.0.0.1:9999")
    source = GitHubSource("org", "repo")
    assert (source.api_base, source.web_base) == (
        "http://127.0.0.1:9999",
        "http://127.0.0.1:9999",
    )


def test_parse_with_ref():
    source = parse("org/repo@main")
    assert source.canonical() == "github:org/repo@main"
    assert source.suggested_name() == "repo"
    assert source.ref == "main"


def test_parse_without_ref():
    source = parse("org/repo")
    assert source.canonical() == "github:org/repo"
    assert source.ref is None
    assert source.local_path() is None
    assert source.as_marketplace() is None


def test_parse_without_slash_fails():
    with pytest.raises(InvalidSourceError, match="github:org/repo"):
        parse("justrepo")


def test_equality_uses_canonical_form():
    assert parse("org/repo@v1") == GitHubSource("org", "repo", "v1", base=BASE)
    assert parse("org/repo@v1") != parse("org/repo@v2")