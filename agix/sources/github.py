"""Packages hosted in a GitHub repository, fetched as source archives."""

from __future__ import annotations

import io
import os
import string
import zipfile
from dataclasses import InitVar, dataclass, field
from pathlib import Path
from typing import Any, ClassVar

import requests

from agix.sources.base import AgixError, Fetched, InvalidSourceError, Source, split_ref

DEFAULT_API_BASE = "https://api.github.com"
DEFAULT_WEB_BASE = "https://github.com"
BASE_URL_ENV_VAR = "AGIX_GITHUB_BASE_URL"
USER_AGENT = "agix/0.1"


def resolve_bases(override_base: str | None = None) -> tuple[str, str]:
    """Pick ``(api_base, web_base)``.

    An explicit override wins, then the ``AGIX_GITHUB_BASE_URL`` environment
    variable (both collapse to a single base), then the public GitHub hosts.
    """
    if override_base is not None:
        return override_base, override_base
    env_base = os.environ.get(BASE_URL_ENV_VAR, "")
    if env_base:
        return env_base, env_base
    return DEFAULT_API_BASE, DEFAULT_WEB_BASE


def parse_org_repo(text: str) -> tuple[str, str]:
    """Split ``org/repo`` at its first slash."""
    org, sep, repo = text.partition("/")
    if not sep:
        raise InvalidSourceError(f"expected 'org/repo', got: {text}")
    return org, repo


def _is_full_sha(ref: str) -> bool:
    return len(ref) == 40 and all(c in string.hexdigits for c in ref)


def _session() -> requests.Session:
    session = requests.Session()
    session.headers["User-Agent"] = USER_AGENT
    return session


def _get(session: requests.Session, url: str) -> requests.Response:
    try:
        return session.get(url)
    except requests.RequestException as exc:
        raise AgixError(f"http error: {exc}") from exc


def _json(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError as exc:
        raise AgixError(f"http error: invalid JSON from {resp.url}: {exc}") from exc


def _object_sha(payload: Any) -> str | None:
    if isinstance(payload, dict):
        obj = payload.get("object")
        if isinstance(obj, dict) and isinstance(obj.get("sha"), str):
            return obj["sha"]
    return None


@dataclass(eq=False)
class GitHubSource(Source):
    """A GitHub repository, written as ``github:<org>/<repo>[@<ref>]``.

    ``base`` redirects both API and archive requests to one host.
    """

    scheme: ClassVar[str] = "github"

    org: str
    repo: str
    ref: str | None = None
    base: InitVar[str | None] = None
    api_base: str = field(init=False)
    web_base: str = field(init=False)

    def __post_init__(self, base: str | None) -> None:
        self.api_base, self.web_base = resolve_bases(base)

    def resolve_ref(self) -> str:
        """Resolve the ref to a commit SHA: full SHA, tag, branch, then HEAD."""
        if self.ref is None:
            return self._fetch_default_sha()
        # A short SHA is ambiguous with tag/branch names, so only a full one
        # is taken as-is.
        if _is_full_sha(self.ref):
            return self.ref

        repo_url = f"{self.api_base}/repos/{self.org}/{self.repo}"
        with _session() as session:
            for kind in ("tags", "heads"):
                resp = _get(session, f"{repo_url}/git/ref/{kind}/{self.ref}")
                if resp.ok:
                    sha = _object_sha(_json(resp))
                    if sha is not None:
                        return sha
        return self._fetch_default_sha()

    def _fetch_default_sha(self) -> str:
        url = f"{self.api_base}/repos/{self.org}/{self.repo}/commits/HEAD"
        with _session() as session:
            resp = _get(session, url)
            if resp.ok:
                payload = _json(resp)
                if isinstance(payload, dict) and isinstance(payload.get("sha"), str):
                    return payload["sha"]
        raise AgixError(f"could not resolve ref for {self.org}/{self.repo}")

    def canonical(self) -> str:
        base = f"github:{self.org}/{self.repo}"
        return f"{base}@{self.ref}" if self.ref is not None else base

    def suggested_name(self) -> str:
        return self.repo

    def fetch(self, dest: Path) -> Fetched:
        dest = Path(dest)
        sha = self.resolve_ref()
        zip_url = f"{self.web_base}/{self.org}/{self.repo}/archive/{sha}.zip"

        with _session() as session:
            data = _get(session, zip_url).content

        try:
            archive = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as exc:
            raise AgixError(f"zip open error: {exc}") from exc

        dest.mkdir(parents=True, exist_ok=True)
        with archive:
            for info in archive.infolist():
                raw_name = info.filename
                # Drop the prefix GitHub adds, e.g. "repo-abc1234/".
                _prefix, sep, rest = raw_name.partition("/")
                stripped = rest.rstrip("/") if sep else ""
                if not stripped:
                    continue
                out_path = dest / stripped
                if raw_name.endswith("/"):
                    out_path.mkdir(parents=True, exist_ok=True)
                    continue
                out_path.parent.mkdir(parents=True, exist_ok=True)
                try:
                    content = archive.read(info)
                except (zipfile.BadZipFile, OSError) as exc:
                    raise AgixError(f"zip read error: {exc}") from exc
                out_path.write_bytes(content)

        return Fetched(path=dest, sha=sha, content_hash=None)


def parse(value: str) -> GitHubSource:
    """Parse the value part of a ``github:`` source."""
    path, ref = split_ref(value)
    org, sep, repo = path.partition("/")
    if not sep:
        raise InvalidSourceError(
            f"github source must be 'github:org/repo', got: github:{value}"
        )
    return GitHubSource(org, repo, ref)