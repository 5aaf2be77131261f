"""DependencyScanService — the scan pipeline callers actually talk to.

Idle -> ManifestsDiscovered -> {NoManifests | DepsParsed}
     -> {NoPinnedDeps | DepsCapped} -> QueryingBatch
     -> {BatchFailed | IdsCollected} -> FetchingDetails -> FindingsAssembled
"""

from __future__ import annotations

from enum import Enum

import structlog

from depsentinel.core.archive import (
    ArchiveCorruptError,
    ArchiveNotReadyError,
    ArchiveStore,
    RepoMeta,
    RepositoryIndex,
)
from depsentinel.core.cache import ResultCache
from depsentinel.core.config import MAX_DEPS_RANGE, MAX_VULNS_RANGE, ScanSettings, clamp
from depsentinel.engines.dependency_scanner import (
    BuildOutcome,
    DependencySet,
    ParsedManifest,
    ParseResult,
    build_dependency_set,
    locate_manifests,
)
from depsentinel.engines.vuln_correlator import (
    OsvClient,
    RateLimitError,
    RegistryError,
    ScanResult,
    assemble_findings,
)
from depsentinel.engines.vuln_correlator.models import Finding
from depsentinel.services import (
    ArchiveUnavailableError,
    InvalidScanParametersError,
    ManifestUnreadableError,
    NotFoundError,
    UpstreamRateLimitedError,
    UpstreamUnavailableError,
)

log = structlog.get_logger("depsentinel.service")

NO_MANIFESTS_NOTE = (
    "No dependency manifests detected. Add a lockfile (package-lock.json, yarn.lock, "
    "pnpm-lock.yaml or poetry.lock) or a requirements.txt pinned with ==."
)
NO_PINNED_NOTE = (
    "Manifests detected but no pinned dependencies found to scan. For npm, commit a "
    "lockfile. For Python, pin exact versions with == or commit poetry.lock."
)

_DEPS_SAMPLE_SIZE = 8


class ScanState(str, Enum):
    IDLE = "idle"
    MANIFESTS_DISCOVERED = "manifests_discovered"
    NO_MANIFESTS = "no_manifests"
    DEPS_PARSED = "deps_parsed"
    NO_PINNED_DEPS = "no_pinned_deps"
    DEPS_CAPPED = "deps_capped"
    QUERYING_BATCH = "querying_batch"
    BATCH_FAILED = "batch_failed"
    IDS_COLLECTED = "ids_collected"
    FETCHING_DETAILS = "fetching_details"
    FINDINGS_ASSEMBLED = "findings_assembled"


def cache_key(analysis_id: str, max_deps: int, max_vulns: int) -> str:
    return f"scan:deps:{analysis_id}:{max_deps}:{max_vulns}"


def normalize_params(
    analysis_id: object,
    max_deps: object,
    max_vulns: object,
    settings: ScanSettings,
) -> tuple[str, int, int]:
    """Validate and clamp caller input; raises before any I/O happens."""
    if not isinstance(analysis_id, str) or not analysis_id.strip():
        raise InvalidScanParametersError("analysis_id must be a non-empty string")
    for name, value in (("max_deps", max_deps), ("max_vulns", max_vulns)):
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            raise InvalidScanParametersError(f"{name} must be an integer")
    deps = settings.default_max_deps if max_deps is None else max_deps
    vulns = settings.default_max_vulns if max_vulns is None else max_vulns
    return (
        analysis_id.strip(),
        clamp(deps, MAX_DEPS_RANGE),  # type: ignore[arg-type]
        clamp(vulns, MAX_VULNS_RANGE),  # type: ignore[arg-type]
    )


def _plural(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"


def _diagnostic_sentences(dep_set: DependencySet, max_deps: int) -> list[str]:
    sentences = []
    if dep_set.truncated:
        sentences.append(
            f"Scanned {len(dep_set.dependencies)} of {dep_set.unique_count} unique "
            f"dependencies (maxDeps={max_deps})."
        )
    if dep_set.unpinned:
        sentences.append(
            f"Skipped {_plural(dep_set.unpinned, 'unpinned entry', 'unpinned entries')}; "
            "pin exact versions (==) or commit a lockfile to include them."
        )
    sentences.extend(f"{note}." for note in dep_set.notes)
    if dep_set.unreadable:
        sentences.append(f"Unreadable manifests ignored: {', '.join(dep_set.unreadable)}.")
    return sentences


def compose_note(
    *,
    manifests: list[ParsedManifest],
    dep_set: DependencySet,
    max_deps: int,
    total_hits: int,
    unique_ids: int,
    capped: bool,
    missing_details: int,
    findings: tuple[Finding, ...],
) -> str:
    """Deterministic audit trail of one scan."""
    labels = ", ".join(f"{m.ecosystem}: {m.path}" for m in manifests if m.readable)
    parts = [
        f"Scanned dependencies via OSV ({labels}).",
        f"deps(parsed={dep_set.total_parsed}, scanned={len(dep_set.dependencies)}"
        f"{', truncated' if dep_set.truncated else ''});",
        f"vulns(hits={total_hits}, unique={unique_ids}{', capped' if capped else ''}).",
    ]
    parts.extend(_diagnostic_sentences(dep_set, max_deps))
    if missing_details:
        parts.append(
            f"Details unavailable for {_plural(missing_details, 'vulnerability', 'vulnerabilities')}; "
            "affected findings are omitted."
        )
    fallback = sum(1 for f in findings if f.fixed_version_is_fallback)
    if fallback:
        parts.append(
            f"{_plural(fallback, 'finding lists', 'findings list')} a fixed version that is "
            "not newer than the installed one; verify before changing versions."
        )
    if not findings:
        parts.append("No known vulnerabilities found.")
    return " ".join(parts)


class DependencyScanService:
    """Compose manifest parsing, OSV correlation and caching for one analysis."""

    def __init__(
        self,
        archive: ArchiveStore,
        index: RepositoryIndex,
        osv_client: OsvClient,
        cache: ResultCache,
        settings: ScanSettings | None = None,
    ) -> None:
        self._archive = archive
        self._index = index
        self._osv = osv_client
        self._cache = cache
        self._settings = settings or ScanSettings()

    async def scan(
        self,
        analysis_id: str,
        max_deps: int | None = None,
        max_vulns: int | None = None,
    ) -> ScanResult:
        """Scan the dependencies of *analysis_id* for known vulnerabilities.

        Cached results are returned without any I/O. Only successful results
        are cached; every :class:`~depsentinel.services.ServiceError` raised
        here leaves the cache untouched.
        """
        analysis_id, max_deps, max_vulns = normalize_params(
            analysis_id, max_deps, max_vulns, self._settings
        )
        key = cache_key(analysis_id, max_deps, max_vulns)
        cached = await self._cache.get(key)
        if cached is not None:
            log.info("scan.cache_hit", analysis_id=analysis_id, key=key)
            return cached

        result = await self._run(analysis_id, max_deps, max_vulns)
        await self._cache.set(key, result, self._settings.cache_ttl_seconds)
        return result

    # ── pipeline ───────────────────────────────────────────────────────────

    async def _run(self, analysis_id: str, max_deps: int, max_vulns: int) -> ScanResult:
        self._transition(analysis_id, ScanState.IDLE, max_deps=max_deps, max_vulns=max_vulns)
        meta = await self._read_meta(analysis_id)
        manifests = await self._load_manifests(analysis_id, meta)
        self._transition(analysis_id, ScanState.MANIFESTS_DISCOVERED, manifests=len(manifests))

        dep_set = build_dependency_set(manifests, max_deps)

        if dep_set.outcome is BuildOutcome.NO_MANIFESTS:
            self._transition(analysis_id, ScanState.NO_MANIFESTS)
            return ScanResult(note=NO_MANIFESTS_NOTE)

        if dep_set.outcome is BuildOutcome.NO_READABLE_MANIFESTS:
            log.error(
                "scan.no_readable_manifests",
                analysis_id=analysis_id,
                manifests=list(dep_set.unreadable),
            )
            raise ManifestUnreadableError(
                f"found {_plural(len(dep_set.unreadable), 'manifest', 'manifests')} but none "
                f"could be read: {', '.join(dep_set.unreadable)}"
            )

        self._transition(
            analysis_id,
            ScanState.DEPS_PARSED,
            parsed=dep_set.total_parsed,
            unique=dep_set.unique_count,
        )

        if dep_set.outcome is BuildOutcome.NO_PINNED_DEPENDENCIES:
            self._transition(analysis_id, ScanState.NO_PINNED_DEPS)
            note = " ".join([NO_PINNED_NOTE, *_diagnostic_sentences(dep_set, max_deps)])
            return ScanResult(
                note=note,
                total_parsed_deps=dep_set.total_parsed,
                manifests_used=dep_set.manifests_used,
            )

        self._transition(
            analysis_id,
            ScanState.DEPS_CAPPED,
            scanned=len(dep_set.dependencies),
            truncated=dep_set.truncated,
        )

        self._transition(analysis_id, ScanState.QUERYING_BATCH)
        try:
            batch = await self._osv.query_batches(dep_set.dependencies)
        except RateLimitError as exc:
            self._transition(analysis_id, ScanState.BATCH_FAILED, reason="rate_limited")
            raise UpstreamRateLimitedError(str(exc), retry_after=exc.retry_after) from exc
        except RegistryError as exc:
            self._transition(analysis_id, ScanState.BATCH_FAILED, reason="upstream_error")
            raise UpstreamUnavailableError(str(exc), status=exc.status, detail=exc.detail) from exc

        self._transition(
            analysis_id,
            ScanState.IDS_COLLECTED,
            hits=batch.total_hits,
            unique=len(batch.unique_ids),
        )

        wanted = batch.unique_ids[:max_vulns]
        self._transition(analysis_id, ScanState.FETCHING_DETAILS, ids=len(wanted))
        details = await self._osv.fetch_details(wanted)
        findings = assemble_findings(batch, details)

        note = compose_note(
            manifests=manifests,
            dep_set=dep_set,
            max_deps=max_deps,
            total_hits=batch.total_hits,
            unique_ids=len(batch.unique_ids),
            capped=len(batch.unique_ids) > max_vulns,
            missing_details=len(wanted) - len(details),
            findings=findings,
        )
        self._transition(analysis_id, ScanState.FINDINGS_ASSEMBLED, findings=len(findings))

        return ScanResult(
            findings=findings,
            note=note,
            scanned_deps=len(dep_set.dependencies),
            total_parsed_deps=dep_set.total_parsed,
            manifests_used=dep_set.manifests_used,
            unique_vuln_ids=len(batch.unique_ids),
            total_vuln_hits=batch.total_hits,
            truncated=dep_set.truncated,
            deps_sample=dep_set.dependencies[:_DEPS_SAMPLE_SIZE],
        )

    async def _read_meta(self, analysis_id: str) -> RepoMeta:
        try:
            meta = await self._index.get_repo_meta(analysis_id)
        except ArchiveNotReadyError as exc:
            raise ArchiveUnavailableError(str(exc)) from exc
        except ArchiveCorruptError as exc:
            raise ManifestUnreadableError(f"repository archive is corrupt: {exc}") from exc
        if meta is None:
            raise NotFoundError(f"repository {analysis_id!r} not found")
        return meta

    async def _load_manifests(self, analysis_id: str, meta: RepoMeta) -> list[ParsedManifest]:
        """Read and parse every located manifest, in scan order.

        A corrupt entry is recorded as unreadable; an archive that is not
        ready aborts the scan.
        """
        manifests: list[ParsedManifest] = []
        for parser, path in locate_manifests(meta.files):
            archive_path = f"{meta.root}/{path}" if meta.root else path
            content: str | None
            try:
                raw = await self._archive.get_file(analysis_id, archive_path)
            except ArchiveNotReadyError as exc:
                raise ArchiveUnavailableError(str(exc)) from exc
            except ArchiveCorruptError as exc:
                log.warning(
                    "scan.manifest_unreadable",
                    analysis_id=analysis_id,
                    path=path,
                    error=str(exc),
                )
                content = None
            else:
                content = raw.decode("utf-8", errors="replace").lstrip("\ufeff")

            if content and content.strip():
                result = parser.parse(content, path)
            else:
                result = ParseResult()
            manifests.append(
                ParsedManifest(
                    path=path,
                    detection_method=parser.detection_method,
                    ecosystem=parser.ecosystem,
                    content=content,
                    result=result,
                )
            )
        return manifests

    @staticmethod
    def _transition(analysis_id: str, state: ScanState, **fields: object) -> None:
        log.info("scan.state", analysis_id=analysis_id, state=state.value, **fields)
