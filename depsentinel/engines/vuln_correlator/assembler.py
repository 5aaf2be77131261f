"""Turn (dependency, vulnerability) pairs into sorted findings."""

from __future__ import annotations

import math
import re
from collections.abc import Mapping

from depsentinel.engines.dependency_scanner.models import Dependency
from depsentinel.engines.vuln_correlator.models import (
    SEVERITY_LEVELS,
    SEVERITY_RANK,
    BatchQueryResult,
    Finding,
    Severity,
    VulnerabilityDetail,
)
from depsentinel.engines.vuln_correlator.versions import compare_versions, is_newer, parses

SUMMARY_FALLBACK = "Vulnerability reported by OSV"
_SUMMARY_FROM_DETAILS_CHARS = 180
_DETAILS_MAX_CHARS = 1800
_MAX_REFERENCES = 4

_PEP503_RE = re.compile(r"[-_.]+")


def _score_severity(score: float) -> Severity:
    if score >= 9:
        return "CRITICAL"
    if score >= 7:
        return "HIGH"
    if score >= 4:
        return "MEDIUM"
    return "LOW"


def severity_of(detail: VulnerabilityDetail) -> Severity:
    """Numeric score first, then the ecosystem's own label, else MEDIUM.

    CVSS vector strings (``CVSS:3.1/AV:N/...``) are not numeric and are
    skipped; computing a base score from a vector is out of scope.
    """
    for raw in detail.severity_scores:
        try:
            score = float(raw)
        except ValueError:
            continue
        if not math.isnan(score):
            return _score_severity(score)

    label = (detail.ecosystem_severity or "").upper()
    if label in SEVERITY_LEVELS:
        return label  # type: ignore[return-value]
    return "MEDIUM"


def _normalize_name(ecosystem: str, name: str) -> str:
    if ecosystem == "PyPI":
        return _PEP503_RE.sub("-", name).lower()
    return name


def fixed_version_of(dep: Dependency, detail: VulnerabilityDetail) -> tuple[str | None, bool]:
    """Nearest fixed release above ``dep.version``.

    Returns ``(version, is_fallback)``. When no known fix is newer than the
    pinned version, the smallest known fix is returned with
    ``is_fallback=True``; that value may look like a downgrade and callers
    must flag it as such. Fixed values the ecosystem comparator cannot parse
    are ignored.
    """
    wanted = _normalize_name(dep.ecosystem, dep.name)
    candidates: set[str] = set()
    for affected in detail.affected:
        if affected.ecosystem != dep.ecosystem:
            continue
        if _normalize_name(dep.ecosystem, affected.name) != wanted:
            continue
        candidates.update(v for v in affected.fixed_versions if parses(dep.ecosystem, v))

    if not candidates:
        return None, False

    def smallest(values: set[str]) -> str:
        best: str | None = None
        for value in sorted(values):
            if best is None or compare_versions(dep.ecosystem, value, best) < 0:
                best = value
        return best  # type: ignore[return-value]

    newer = {v for v in candidates if is_newer(dep.ecosystem, v, dep.version)}
    if newer:
        return smallest(newer), False
    return smallest(candidates), True


def _finding(dep: Dependency, vuln_id: str, detail: VulnerabilityDetail) -> Finding:
    fixed, is_fallback = fixed_version_of(dep, detail)
    details = detail.details[:_DETAILS_MAX_CHARS]
    summary = (
        detail.summary
        or detail.details[:_SUMMARY_FROM_DETAILS_CHARS].strip()
        or SUMMARY_FALLBACK
    )
    references = detail.references[:_MAX_REFERENCES]
    return Finding(
        id=f"{dep.key}:{vuln_id}",
        ecosystem=dep.ecosystem,
        name=dep.name,
        version=dep.version,
        vuln_id=vuln_id,
        severity=severity_of(detail),
        summary=summary,
        details=details or None,
        fixed_version=fixed,
        references=references or None,
        fixed_version_is_fallback=is_fallback,
    )


def sort_key(finding: Finding) -> tuple:
    return (
        SEVERITY_RANK[finding.severity],
        f"{finding.name}@{finding.version}",
        finding.ecosystem,
        finding.vuln_id,
    )


def assemble_findings(
    batch: BatchQueryResult,
    details: Mapping[str, VulnerabilityDetail],
) -> tuple[Finding, ...]:
    """One finding per (dependency, vuln id) whose detail was fetched.

    Sorted by severity (CRITICAL first), then ``name@version``.
    """
    findings = [
        _finding(dep, vid, details[vid])
        for dep, ids in batch.ids_by_dependency
        for vid in ids
        if vid in details
    ]
    findings.sort(key=sort_key)
    return tuple(findings)
