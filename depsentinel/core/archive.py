"""Archive store and repository index — where manifest bytes come from.

The scan service only depends on the two protocols below. Two
implementations ship here: :class:`ZipArchiveStore` for uploaded zip
archives (one ``<analysis_id>.zip`` per analysis) and
:class:`LocalRepository` for a checkout on disk, used by the CLI.
"""

from __future__ import annotations

import asyncio
import os
import re
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

# Directories never worth walking for manifests.
_PRUNED_DIRS = frozenset({".git", "node_modules", ".venv", "venv", "__pycache__"})


class ArchiveError(Exception):
    """Base exception for archive access failures."""


class ArchiveNotReadyError(ArchiveError):
    """The archive for an analysis is missing or has expired."""


class ArchiveCorruptError(ArchiveError):
    """The archive (or one entry of it) cannot be read."""


@dataclass(frozen=True)
class RepoMeta:
    repo_name: str
    root: str | None
    files: tuple[str, ...]


@runtime_checkable
class ArchiveStore(Protocol):
    async def get_file(self, analysis_id: str, path: str) -> bytes: ...


@runtime_checkable
class RepositoryIndex(Protocol):
    async def get_repo_meta(self, analysis_id: str) -> RepoMeta | None: ...


def common_root(names: list[str]) -> str | None:
    """Return the single top-level directory shared by every entry, if any.

    GitHub zipballs wrap the tree in ``<repo>-<sha>/``; file paths handed to
    the parsers are relative to that prefix.
    """
    first_parts = {name.split("/", 1)[0] for name in names}
    if len(first_parts) != 1 or any("/" not in name for name in names):
        return None
    return first_parts.pop()


class ZipArchiveStore:
    """Archive store + repository index over ``<base_dir>/<analysis_id>.zip``.

    Zip reads run in a worker thread so concurrent scans share the loop.
    """

    def __init__(self, base_dir: Path) -> None:
        self._base_dir = base_dir

    def _archive_path(self, analysis_id: str) -> Path | None:
        if not _SAFE_ID_RE.match(analysis_id):
            return None
        return self._base_dir / f"{analysis_id}.zip"

    async def get_repo_meta(self, analysis_id: str) -> RepoMeta | None:
        return await asyncio.to_thread(self._repo_meta_sync, analysis_id)

    def _repo_meta_sync(self, analysis_id: str) -> RepoMeta | None:
        path = self._archive_path(analysis_id)
        if path is None or not path.is_file():
            return None
        try:
            with zipfile.ZipFile(path) as zf:
                names = [n for n in zf.namelist() if not n.endswith("/")]
        except zipfile.BadZipFile as exc:
            raise ArchiveCorruptError(f"{analysis_id}: {exc}") from exc

        root = common_root(names)
        if root is not None:
            files = tuple(n[len(root) + 1 :] for n in names)
        else:
            files = tuple(names)
        return RepoMeta(repo_name=root or analysis_id, root=root, files=files)

    async def get_file(self, analysis_id: str, path: str) -> bytes:
        return await asyncio.to_thread(self._read_sync, analysis_id, path)

    def _read_sync(self, analysis_id: str, path: str) -> bytes:
        archive = self._archive_path(analysis_id)
        if archive is None or not archive.is_file():
            raise ArchiveNotReadyError(f"archive for {analysis_id!r} not ready or expired")
        try:
            with zipfile.ZipFile(archive) as zf:
                return zf.read(path)
        except KeyError as exc:
            raise ArchiveCorruptError(f"{path} missing from archive {analysis_id}") from exc
        except (zipfile.BadZipFile, OSError) as exc:
            raise ArchiveCorruptError(f"{analysis_id}/{path}: {exc}") from exc


class LocalRepository:
    """Serves a single directory on disk, whatever analysis id is asked for."""

    def __init__(self, repo_path: Path) -> None:
        self._repo_path = repo_path

    async def get_repo_meta(self, analysis_id: str) -> RepoMeta | None:
        return await asyncio.to_thread(self._walk_sync)

    def _walk_sync(self) -> RepoMeta | None:
        if not self._repo_path.is_dir():
            return None
        files: list[str] = []
        for dirpath, dirnames, filenames in os.walk(self._repo_path):
            dirnames[:] = sorted(d for d in dirnames if d not in _PRUNED_DIRS)
            rel_dir = Path(dirpath).relative_to(self._repo_path)
            for name in sorted(filenames):
                files.append((rel_dir / name).as_posix())
        return RepoMeta(repo_name=self._repo_path.name, root=None, files=tuple(files))

    async def get_file(self, analysis_id: str, path: str) -> bytes:
        return await asyncio.to_thread(self._read_sync, path)

    def _read_sync(self, path: str) -> bytes:
        target = (self._repo_path / path).resolve()
        if not target.is_relative_to(self._repo_path.resolve()):
            raise ArchiveCorruptError(f"{path} escapes repository root")
        try:
            return target.read_bytes()
        except FileNotFoundError as exc:
            raise ArchiveCorruptError(f"{path} not found") from exc
        except OSError as exc:
            raise ArchiveCorruptError(f"{path}: {exc}") from exc
