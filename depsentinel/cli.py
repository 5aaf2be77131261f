"""CLI entry point: depsentinel.

Subcommands:
    depsentinel scan ./my-project                      # Scan a local checkout
    depsentinel scan https://github.com/user/project   # Clone, then scan
    depsentinel serve --port 8000                      # Run the REST API
"""

from __future__ import annotations

import asyncio
import json
import sys
import tempfile
from pathlib import Path

import click

from depsentinel.core.archive import LocalRepository
from depsentinel.core.cache import MemoryCache
from depsentinel.core.config import load_settings
from depsentinel.core.logging import setup_logging
from depsentinel.engines.dependency_scanner.repo import CloneError, is_git_url, shallow_clone
from depsentinel.engines.vuln_correlator import OsvClient, ScanResult
from depsentinel.services import ServiceError
from depsentinel.services.scan_service import DependencyScanService

_SEVERITY_COLORS = {"CRITICAL": "red", "HIGH": "magenta", "MEDIUM": "yellow", "LOW": "blue"}


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """DepSentinel: match pinned dependencies against the OSV database."""
    setup_logging("DEBUG" if verbose else None)


@main.command("scan")
@click.argument("target")
@click.option("--ref", default=None, help="Branch, tag or commit to check out (git URLs only)")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.option("--max-deps", type=int, default=None, help="Maximum dependencies to query")
@click.option("--max-vulns", type=int, default=None, help="Maximum vulnerability records to fetch")
def scan(
    target: str,
    ref: str | None,
    as_json: bool,
    max_deps: int | None,
    max_vulns: int | None,
) -> None:
    """Scan TARGET (a local directory or a git URL) for vulnerable dependencies."""
    if not is_git_url(target) and not Path(target).is_dir():
        click.echo(f"Error: {target} is neither a directory nor a git URL", err=True)
        sys.exit(2)

    try:
        result = asyncio.run(_scan(target, ref, max_deps, max_vulns))
    except CloneError as e:
        click.echo(f"Error: clone failed: {e}", err=True)
        sys.exit(1)
    except ServiceError as e:
        click.echo(f"Error [{e.code}]: {e}", err=True)
        sys.exit(1)

    if as_json:
        from depsentinel.api.schemas.scan import ScanResponse

        payload = ScanResponse.from_result(result).model_dump(by_alias=True, exclude_none=True)
        click.echo(json.dumps(payload, indent=2))
    else:
        _print_report(result)


@main.command("serve")
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", default=8000, type=int, help="Bind port")
def serve(host: str, port: int) -> None:
    """Run the REST API with uvicorn."""
    import uvicorn

    uvicorn.run("depsentinel.api:create_app", factory=True, host=host, port=port)


async def _scan(
    target: str,
    ref: str | None,
    max_deps: int | None,
    max_vulns: int | None,
) -> ScanResult:
    if not is_git_url(target):
        path = Path(target).resolve()
        return await _scan_directory(path, max_deps, max_vulns)

    with tempfile.TemporaryDirectory(prefix="depsentinel-clone-") as tmp:
        click.echo(f"Cloning {target}{'@' + ref if ref else ''} ...", err=True)
        path = await shallow_clone(target, ref, Path(tmp))
        return await _scan_directory(path, max_deps, max_vulns)


async def _scan_directory(
    path: Path,
    max_deps: int | None,
    max_vulns: int | None,
) -> ScanResult:
    settings = load_settings()
    repo = LocalRepository(path)
    async with OsvClient(
        settings.osv_url,
        timeout=settings.osv_timeout,
        batch_size=settings.batch_size,
        workers=settings.detail_workers,
    ) as osv:
        service = DependencyScanService(repo, repo, osv, MemoryCache(), settings)
        return await service.scan(path.name or "local", max_deps=max_deps, max_vulns=max_vulns)


def _print_report(result: ScanResult) -> None:
    click.echo(result.note)
    if result.manifests_used:
        click.echo(f"\nManifests: {', '.join(result.manifests_used)}")
    click.echo(
        f"Dependencies: {result.scanned_deps} scanned of {result.total_parsed_deps} parsed"
        f"{' (truncated)' if result.truncated else ''}"
    )
    if not result.findings:
        return

    click.echo(f"\nFindings ({len(result.findings)}):")
    for f in result.findings:
        severity = click.style(f"{f.severity:<8}", fg=_SEVERITY_COLORS.get(f.severity))
        fix = f" -> fix {f.fixed_version}" if f.fixed_version else ""
        if f.fixed_version_is_fallback:
            fix += " (not newer)"
        click.echo(f"  {severity} {f.ecosystem}:{f.name}@{f.version}  {f.vuln_id}{fix}")
        click.echo(f"           {f.summary}")
