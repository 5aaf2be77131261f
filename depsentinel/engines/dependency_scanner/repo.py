"""Git clone helper for scanning remote repositories from the CLI."""

from __future__ import annotations

import asyncio
import shutil
import uuid
from pathlib import Path

import structlog

log = structlog.get_logger("depsentinel.engine")


class CloneError(RuntimeError):
    """Raised when git exits non-zero."""


def is_git_url(target: str) -> bool:
    return target.startswith(("https://", "http://", "git@", "ssh://"))


async def shallow_clone(repo_url: str, ref: str | None, workdir: Path) -> Path:
    """Clone *repo_url* into *workdir* and return the clone path.

    Only lockfiles are read afterwards, so history is not needed: a
    ``--depth 1`` clone of the default branch or of *ref* is tried first.
    ``--branch`` rejects commit SHAs, so a failed shallow clone of a ref
    falls back to a full clone followed by ``git checkout``.

    The caller is responsible for cleaning up *workdir*.
    """
    target = workdir / f"repo-{uuid.uuid4().hex[:8]}"

    shallow_cmd = ["git", "clone", "--depth", "1"]
    if ref:
        shallow_cmd += ["--branch", ref]
    try:
        await _run([*shallow_cmd, "--", repo_url, str(target)])
        return target
    except CloneError:
        if not ref:
            raise
        log.info("clone.shallow_failed", repo_url=repo_url, ref=ref)
        shutil.rmtree(target, ignore_errors=True)

    await _run(["git", "clone", "--", repo_url, str(target)])
    await _run(["git", "-C", str(target), "checkout", ref])
    return target


async def _run(cmd: list[str]) -> None:
    """Run a git command, raising CloneError on failure."""
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    _, stderr = await proc.communicate()
    if proc.returncode != 0:
        raise CloneError(
            f"git command failed (exit {proc.returncode}): {stderr.decode().strip()}"
        )
