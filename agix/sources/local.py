"""Sources that live in a directory on the local filesystem."""

from __future__ import annotations

import hashlib
import os
import shutil
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import ClassVar

from agix.sources.base import Fetched, InvalidSourceError, Source


@dataclass(eq=False)
class LocalSource(Source):
    """A package directory on disk, written as ``local:<path>``."""

    scheme: ClassVar[str] = "local"

    path: str

    def __post_init__(self) -> None:
        self.path = os.fspath(self.path)

    def canonical(self) -> str:
        return f"local:{self.path}"

    def suggested_name(self) -> str:
        pure = PurePath(self.path)
        parts = pure.parts[1:] if pure.anchor else pure.parts
        normal = [part for part in parts if part not in (".", "..")]
        if not normal:
            raise InvalidSourceError(f"cannot derive name from path {self.path}")
        return normal[-1]

    def fetch(self, dest: Path) -> Fetched:
        dest = Path(dest)
        copy_dir_all(Path(self.path), dest)
        return Fetched(path=dest, sha=None, content_hash=hash_dir(dest))

    def local_path(self) -> Path:
        return Path(self.path)


def hash_dir(directory: Path) -> str:
    """Hash every regular file under ``directory`` with its relative path.

    Files are visited in path order so the digest is deterministic.
    """
    directory = Path(directory)
    files: list[Path] = []
    for root, _dirs, names in os.walk(directory):
        for name in names:
            full = Path(root, name)
            if full.is_file() and not full.is_symlink():
                files.append(full)
    files.sort(key=lambda p: p.parts)

    hasher = hashlib.blake2b(digest_size=32)
    for file in files:
        rel = file.relative_to(directory)
        hasher.update(str(rel).encode("utf-8", "surrogateescape"))
        hasher.update(file.read_bytes())
    return hasher.hexdigest()


def copy_dir_all(src: Path, dst: Path) -> None:
    """Recursively copy the contents of ``src`` into ``dst``."""
    src, dst = Path(src), Path(dst)
    dst.mkdir(parents=True, exist_ok=True)
    with os.scandir(src) as entries:
        for entry in entries:
            target = dst / entry.name
            if entry.is_dir(follow_symlinks=False):
                copy_dir_all(Path(entry.path), target)
            else:
                shutil.copy(entry.path, target)


def parse(value: str) -> LocalSource:
    """Parse the value part of a ``local:`` source."""
    return LocalSource(value)