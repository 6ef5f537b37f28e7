"""Packages hosted in any git repository, read without a git executable.

Local repositories (plain paths or ``file://`` URLs) are read straight from
their object store; ``http://`` and ``https://`` remotes are spoken to with
the smart HTTP protocol.
"""

from __future__ import annotations

import hashlib
import os
import shutil
import string
import struct
import zlib
from collections.abc import Iterator
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import ClassVar, Protocol

import requests

from agix.sources.base import AgixError, Fetched, Source, split_ref

GIT_READER_VERSION = "1.0.0"
USER_AGENT = "agix/0.1"

_TYPE_NAMES = {1: "commit", 2: "tree", 3: "blob", 4: "tag"}
_OFS_DELTA = 6
_REF_DELTA = 7
_CHUNK = 1 << 16

GitObject = tuple[str, bytes]


@dataclass(frozen=True)
class GitSupport:
    """Git capabilities available to the running program."""

    reader_version: str
    cli_available: bool


def detect_git_support() -> GitSupport:
    """Report the built-in git reader version and whether ``git`` is on PATH."""
    return GitSupport(
        reader_version=GIT_READER_VERSION,
        cli_available=shutil.which("git") is not None,
    )


def _is_full_sha(ref: str) -> bool:
    return len(ref) == 40 and all(c in string.hexdigits for c in ref)


def _object_id(kind: str, body: bytes) -> str:
    return hashlib.sha1(f"{kind} {len(body)}".encode() + b"\0" + body).hexdigest()


# ---------------------------------------------------------------------------
# Pack and delta decoding
# ---------------------------------------------------------------------------


def _apply_delta(base: bytes, delta: bytes) -> bytes:
    pos = 0

    def varint() -> int:
        nonlocal pos
        value = shift = 0
        while True:
            byte = delta[pos]
            pos += 1
            value |= (byte & 0x7F) << shift
            shift += 7
            if not byte & 0x80:
                return value

    try:
        source_size = varint()
        target_size = varint()
        if source_size != len(base):
            raise AgixError("corrupt delta: base size mismatch")
        out = bytearray()
        while pos < len(delta):
            op = delta[pos]
            pos += 1
            if op & 0x80:
                offset = size = 0
                for bit in range(4):
                    if op & (1 << bit):
                        offset |= delta[pos] << (8 * bit)
                        pos += 1
                for bit in range(3):
                    if op & (1 << (4 + bit)):
                        size |= delta[pos] << (8 * bit)
                        pos += 1
                out += base[offset : offset + (size or 0x10000)]
            elif op:
                out += delta[pos : pos + op]
                pos += op
            else:
                raise AgixError("corrupt delta: zero opcode")
    except IndexError as exc:
        raise AgixError("corrupt delta: truncated") from exc
    if len(out) != target_size:
        raise AgixError("corrupt delta: result size mismatch")
    return bytes(out)


def _entry_header(data: bytes, pos: int) -> tuple[int, int | str | None, int]:
    """Decode a pack entry header; return ``(kind, base, body_offset)``."""
    try:
        byte = data[pos]
        pos += 1
        kind = (byte >> 4) & 0x07
        while byte & 0x80:
            byte = data[pos]
            pos += 1
        base: int | str | None = None
        if kind == _OFS_DELTA:
            byte = data[pos]
            pos += 1
            offset = byte & 0x7F
            while byte & 0x80:
                byte = data[pos]
                pos += 1
                offset = ((offset + 1) << 7) | (byte & 0x7F)
            base = offset
        elif kind == _REF_DELTA:
            base = data[pos : pos + 20].hex()
            pos += 20
    except IndexError as exc:
        raise AgixError("invalid pack: truncated entry header") from exc
    return kind, base, pos


def _inflate(data: bytes, pos: int) -> tuple[bytes, int]:
    """Inflate the zlib stream at ``pos``; return it and the offset after it."""
    view = memoryview(data)
    decompressor = zlib.decompressobj()
    parts: list[bytes] = []
    cursor = pos
    try:
        while not decompressor.eof:
            chunk = view[cursor : cursor + _CHUNK]
            if not chunk:
                raise AgixError("invalid pack: truncated object data")
            parts.append(decompressor.decompress(chunk))
            cursor += len(chunk)
    except zlib.error as exc:
        raise AgixError(f"invalid pack: {exc}") from exc
    return b"".join(parts), cursor - len(decompressor.unused_data)


def _parse_pack(data: bytes) -> dict[str, GitObject]:
    """Decode a whole pack stream into a map of object id to object."""
    if data[:4] != b"PACK":
        raise AgixError("invalid pack: missing signature")
    count = int.from_bytes(data[8:12], "big")
    entries: dict[int, tuple[int, int | str | None, bytes]] = {}
    pos = 12
    for _ in range(count):
        start = pos
        kind, base, pos = _entry_header(data, pos)
        body, pos = _inflate(data, pos)
        entries[start] = (kind, base, body)

    objects: dict[str, GitObject] = {}
    resolved: dict[int, GitObject] = {}

    def resolve(offset: int) -> GitObject | None:
        if offset in resolved:
            return resolved[offset]
        kind, base, body = entries[offset]
        if kind in _TYPE_NAMES:
            result = (_TYPE_NAMES[kind], body)
        else:
            if kind == _OFS_DELTA:
                base_offset = offset - int(base)  # type: ignore[arg-type]
                if base_offset not in entries:
                    raise AgixError("invalid pack: delta base outside pack")
                parent = resolve(base_offset)
            elif kind == _REF_DELTA:
                parent = objects.get(str(base))
            else:
                raise AgixError(f"invalid pack: unknown object type {kind}")
            if parent is None:
                return None
            result = (parent[0], _apply_delta(parent[1], body))
        resolved[offset] = result
        return result

    pending = list(entries)
    while pending:
        remaining = []
        for offset in pending:
            result = resolve(offset)
            if result is None:
                remaining.append(offset)
            else:
                objects[_object_id(*result)] = result
        if len(remaining) == len(pending):
            raise AgixError("invalid pack: unresolved delta base")
        pending = remaining
    return objects


class _ObjectStore(Protocol):
    def read(self, sha: str) -> GitObject: ...


class _PackStore:
    """Objects decoded from a pack received over the network."""

    def __init__(self, objects: dict[str, GitObject]) -> None:
        self._objects = objects

    def read(self, sha: str) -> GitObject:
        try:
            return self._objects[sha]
        except KeyError:
            raise AgixError(f"object {sha} missing from fetched pack") from None


class _PackFile:
    """An on-disk pack with its version 2 index."""

    def __init__(self, index_path: Path) -> None:
        self._index_path = index_path
        self._pack_path = index_path.with_suffix(".pack")

    @cached_property
    def offsets(self) -> dict[str, int]:
        raw = self._index_path.read_bytes()
        if raw[:4] != b"\xfftOc" or int.from_bytes(raw[4:8], "big") != 2:
            raise AgixError(f"unsupported pack index: {self._index_path}")
        count = int.from_bytes(raw[8 + 255 * 4 : 8 + 256 * 4], "big")
        names_at = 8 + 256 * 4
        names = raw[names_at : names_at + 20 * count].hex()
        shas = [names[i : i + 40] for i in range(0, len(names), 40)]
        offsets_at = names_at + 24 * count
        small = struct.unpack(f">{count}I", raw[offsets_at : offsets_at + 4 * count])
        large_at = offsets_at + 4 * count

        def real(offset: int) -> int:
            if not offset & 0x80000000:
                return offset
            slot = large_at + 8 * (offset & 0x7FFFFFFF)
            return int.from_bytes(raw[slot : slot + 8], "big")

        return {sha: real(offset) for sha, offset in zip(shas, small)}

    @cached_property
    def data(self) -> bytes:
        return self._pack_path.read_bytes()

    def __contains__(self, sha: str) -> bool:
        return sha in self.offsets

    def read(self, sha: str, store: _ObjectStore) -> GitObject:
        return self._read_at(self.offsets[sha], store)

    def _read_at(self, offset: int, store: _ObjectStore) -> GitObject:
        kind, base, pos = _entry_header(self.data, offset)
        body, _end = _inflate(self.data, pos)
        if kind in _TYPE_NAMES:
            return _TYPE_NAMES[kind], body
        if kind == _OFS_DELTA:
            parent = self._read_at(offset - int(base), store)  # type: ignore[arg-type]
        elif kind == _REF_DELTA:
            parent = store.read(str(base))
        else:
            raise AgixError(f"invalid pack: unknown object type {kind}")
        return parent[0], _apply_delta(parent[1], body)


# ---------------------------------------------------------------------------
# Repositories and remotes
# ---------------------------------------------------------------------------


def _tag_target(body: bytes) -> str:
    for line in body.split(b"\n"):
        if line.startswith(b"object "):
            return line[7:].decode().strip()
    raise AgixError("malformed tag object")


def _peel(store: _ObjectStore, sha: str) -> tuple[str, str, bytes]:
    """Follow tag objects until a non-tag; return ``(sha, kind, body)``."""
    kind, body = store.read(sha)
    while kind == "tag":
        sha = _tag_target(body)
        kind, body = store.read(sha)
    return sha, kind, body


class _LocalRepository:
    """A repository read directly from its directory."""

    def __init__(self, path: Path) -> None:
        dot_git = path / ".git"
        git_dir = dot_git if dot_git.is_dir() else path
        if not (git_dir / "HEAD").is_file() or not (git_dir / "objects").is_dir():
            raise AgixError(f"not a git repository: {path}")
        self.git_dir = git_dir

    @cached_property
    def packs(self) -> list[_PackFile]:
        pack_dir = self.git_dir / "objects" / "pack"
        if not pack_dir.is_dir():
            return []
        return [_PackFile(p) for p in sorted(pack_dir.glob("*.idx"))]

    def read(self, sha: str) -> GitObject:
        loose = self.git_dir / "objects" / sha[:2] / sha[2:]
        if loose.is_file():
            try:
                raw = zlib.decompress(loose.read_bytes())
            except zlib.error as exc:
                raise AgixError(f"corrupt object {sha}: {exc}") from exc
            header, _, body = raw.partition(b"\0")
            return header.split(b" ", 1)[0].decode(), body
        for pack in self.packs:
            if sha in pack:
                return pack.read(sha, self)
        raise AgixError(f"object {sha} not found in {self.git_dir}")

    def _refs(self) -> dict[str, str]:
        refs: dict[str, str] = {}
        packed = self.git_dir / "packed-refs"
        if packed.is_file():
            for line in packed.read_text().splitlines():
                if not line or line.startswith(("#", "^")):
                    continue
                sha, _, name = line.partition(" ")
                refs[name.strip()] = sha
        symbolic: dict[str, str] = {}
        for root, _dirs, names in os.walk(self.git_dir / "refs"):
            for filename in names:
                path = Path(root, filename)
                name = path.relative_to(self.git_dir).as_posix()
                content = path.read_text().strip()
                if content.startswith("ref: "):
                    symbolic[name] = content[5:]
                else:
                    refs[name] = content
        for name, target in symbolic.items():
            if target in refs:
                refs[name] = refs[target]
        return refs

    def list_remote(self) -> list[tuple[str, str]]:
        refs = self._refs()
        listing: list[tuple[str, str]] = []
        head = (self.git_dir / "HEAD").read_text().strip()
        head_sha = refs.get(head[5:]) if head.startswith("ref: ") else head
        if head_sha:
            listing.append(("HEAD", head_sha))
        for name in sorted(refs):
            sha = refs[name]
            listing.append((name, sha))
            if name.startswith("refs/tags/"):
                peeled = _peel(self, sha)[0]
                if peeled != sha:
                    listing.append((f"{name}^{{}}", peeled))
        return listing

    def expand_prefix(self, prefix: str) -> str | None:
        if len(prefix) < 4 or not all(c in string.hexdigits for c in prefix):
            return None
        prefix = prefix.lower()
        matches: set[str] = set()
        loose_dir = self.git_dir / "objects" / prefix[:2]
        if loose_dir.is_dir():
            matches.update(
                prefix[:2] + p.name
                for p in loose_dir.iterdir()
                if (prefix[:2] + p.name).startswith(prefix)
            )
        for pack in self.packs:
            matches.update(s for s in pack.offsets if s.startswith(prefix))
        if len(matches) > 1:
            raise AgixError(f"short SHA '{prefix}' is ambiguous")
        return next(iter(matches), None)


def _pkt(text: str) -> bytes:
    payload = text.encode()
    return f"{len(payload) + 4:04x}".encode() + payload


def _pkt_lines(data: bytes) -> Iterator[bytes | None]:
    """Yield pkt-line payloads, with ``None`` for flush packets."""
    pos = 0
    while pos + 4 <= len(data):
        try:
            length = int(data[pos : pos + 4], 16)
        except ValueError as exc:
            raise AgixError("malformed pkt-line from remote") from exc
        if length == 0:
            yield None
            pos += 4
            continue
        if length < 4:
            raise AgixError("malformed pkt-line from remote")
        yield data[pos + 4 : pos + length]
        pos += length


def _strip_negotiation(data: bytes) -> bytes:
    """Skip the NAK/ACK lines that precede the pack in an upload-pack reply."""
    pos = 0
    while not data.startswith(b"PACK", pos):
        if pos + 4 > len(data):
            raise AgixError("remote sent no pack data")
        try:
            length = int(data[pos : pos + 4], 16)
        except ValueError as exc:
            raise AgixError("malformed upload-pack response") from exc
        payload = data[pos + 4 : pos + length] if length else b""
        if payload.startswith(b"ERR "):
            raise AgixError(f"remote error: {payload[4:].decode(errors='replace').strip()}")
        pos += length if length >= 4 else 4
    return data[pos:]


class _HttpRemote:
    """A remote spoken to over the smart HTTP protocol."""

    def __init__(self, url: str) -> None:
        self.url = url.rstrip("/")

    def _request(self, method: str, url: str, **kwargs: object) -> requests.Response:
        headers = {"User-Agent": USER_AGENT}
        headers.update(kwargs.pop("headers", {}))  # type: ignore[arg-type]
        try:
            resp = requests.request(method, url, headers=headers, **kwargs)  # type: ignore[arg-type]
        except requests.RequestException as exc:
            raise AgixError(f"http error: {exc}") from exc
        if not resp.ok:
            raise AgixError(f"http error: {resp.status_code} from {url}")
        return resp

    def list_remote(self) -> list[tuple[str, str]]:
        resp = self._request(
            "GET", f"{self.url}/info/refs", params={"service": "git-upload-pack"}
        )
        listing: list[tuple[str, str]] = []
        for line in _pkt_lines(resp.content):
            if line is None or line.startswith(b"#"):
                continue
            text = line.split(b"\0", 1)[0].decode().rstrip("\n")
            sha, _, name = text.partition(" ")
            if name and name != "capabilities^{}":
                listing.append((name, sha))
        return listing

    def objects_for(self, sha: str) -> _ObjectStore:
        body = _pkt(f"want {sha} ofs-delta\n") + b"0000" + _pkt("done\n")
        resp = self._request(
            "POST",
            f"{self.url}/git-upload-pack",
            data=body,
            headers={"Content-Type": "application/x-git-upload-pack-request"},
        )
        return _PackStore(_parse_pack(_strip_negotiation(resp.content)))


def _open_remote(url: str) -> _LocalRepository | _HttpRemote:
    if url.startswith(("http://", "https://")):
        return _HttpRemote(url)
    if url.startswith("file://"):
        return _LocalRepository(Path(url[len("file://") :]))
    if "://" in url:
        raise AgixError(f"unsupported git transport: {url}")
    return _LocalRepository(Path(url))


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


def _parse_tree(body: bytes) -> Iterator[tuple[str, str, str]]:
    pos = 0
    while pos < len(body):
        space = body.index(b" ", pos)
        nul = body.index(b"\0", space)
        mode = body[pos:space].decode()
        name = body[space + 1 : nul].decode("utf-8", "surrogateescape")
        sha = body[nul + 1 : nul + 21].hex()
        pos = nul + 21
        yield mode, name, sha


def _checkout_tree(store: _ObjectStore, tree_sha: str, dest: Path) -> None:
    dest.mkdir(parents=True, exist_ok=True)
    kind, body = store.read(tree_sha)
    if kind != "tree":
        raise AgixError(f"expected tree object {tree_sha}, found {kind}")
    for mode, name, sha in _parse_tree(body):
        if name in ("", ".", "..") or "/" in name or "\\" in name:
            raise AgixError(f"refusing unsafe tree entry name: {name!r}")
        target = dest / name
        if mode == "40000":
            _checkout_tree(store, sha, target)
        elif mode == "160000":
            # Submodules are not fetched; leave an empty directory in place.
            target.mkdir(exist_ok=True)
        elif mode == "120000":
            link = store.read(sha)[1].decode("utf-8", "surrogateescape")
            os.symlink(link, target)
        else:
            target.write_bytes(store.read(sha)[1])
            if mode == "100755":
                target.chmod(0o755)


def _commit_tree(store: _ObjectStore, sha: str) -> tuple[str, str]:
    """Peel ``sha`` to a commit; return ``(commit_sha, tree_sha)``."""
    commit_sha, kind, body = _peel(store, sha)
    if kind != "commit":
        raise AgixError(f"object {sha} does not point at a commit")
    first_line = body.split(b"\n", 1)[0]
    if not first_line.startswith(b"tree "):
        raise AgixError(f"malformed commit {commit_sha}")
    return commit_sha, first_line[5:].decode().strip()


# ---------------------------------------------------------------------------
# Source
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class GitSource(Source):
    """A git repository, written as ``git:<url>[@<ref>]``."""

    scheme: ClassVar[str] = "git"

    url: str
    ref: str | None = None

    def resolve_ref(self) -> str:
        """Resolve the ref to a SHA by listing the remote, without fetching.

        Priority: exact 40-char SHA, peeled tag or branch, raw tag, HEAD when
        no ref is declared.
        """
        if self.ref is not None and _is_full_sha(self.ref):
            return self.ref

        listing = _open_remote(self.url).list_remote()
        if self.ref is None:
            for name, sha in listing:
                if name == "HEAD":
                    return sha
            raise AgixError(f"could not resolve HEAD on remote {self.url}")

        ref = self.ref
        tag, tag_peel, branch = f"refs/tags/{ref}", f"refs/tags/{ref}^{{}}", f"refs/heads/{ref}"
        tag_sha: str | None = None
        for name, sha in listing:
            if name in (tag_peel, branch):
                return sha
            if name == tag:
                tag_sha = sha
        if tag_sha is not None:
            return tag_sha
        raise AgixError(f"ref '{ref}' not found on remote {self.url}")

    def canonical(self) -> str:
        base = f"git:{self.url}"
        return f"{base}@{self.ref}" if self.ref is not None else base

    def suggested_name(self) -> str:
        name = self.url.rstrip("/").rsplit("/", 1)[-1]
        while name.endswith(".git"):
            name = name[: -len(".git")]
        return name

    def _select(self, remote: _LocalRepository | _HttpRemote, listing: list[tuple[str, str]]) -> str:
        refs = dict(listing)
        if self.ref is None:
            try:
                return refs["HEAD"]
            except KeyError:
                raise AgixError(f"could not resolve HEAD on remote {self.url}") from None
        ref = self.ref
        if _is_full_sha(ref):
            return ref.lower()
        for candidate in (ref, f"refs/{ref}", f"refs/tags/{ref}", f"refs/heads/{ref}"):
            if candidate in refs:
                return refs[candidate]
        # Short SHAs can only be expanded against a local object store.
        if isinstance(remote, _LocalRepository):
            expanded = remote.expand_prefix(ref)
            if expanded is not None:
                return expanded
        raise AgixError(f"revspec '{ref}' not found in {self.url}")

    def fetch(self, dest: Path) -> Fetched:
        dest = Path(dest)
        remote = _open_remote(self.url)
        wanted = self._select(remote, remote.list_remote())
        store: _ObjectStore = (
            remote if isinstance(remote, _LocalRepository) else remote.objects_for(wanted)
        )
        commit_sha, tree_sha = _commit_tree(store, wanted)
        _checkout_tree(store, tree_sha, dest)
        return Fetched(path=dest, sha=commit_sha, content_hash=None)


def parse(value: str) -> GitSource:
    """Parse the value part of a ``git:`` source."""
    url, ref = split_ref(value)
    return GitSource(url, ref)