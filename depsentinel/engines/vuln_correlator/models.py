"""Data models for the vulnerability correlator engine.

Everything here is frozen: a :class:`ScanResult` is cached as-is and
handed to concurrent readers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from depsentinel.engines.dependency_scanner.models import Dependency, Ecosystem

Severity = Literal["CRITICAL", "HIGH", "MEDIUM", "LOW"]

SEVERITY_LEVELS: tuple[Severity, ...] = ("CRITICAL", "HIGH", "MEDIUM", "LOW")
SEVERITY_RANK: dict[str, int] = {s: i for i, s in enumerate(SEVERITY_LEVELS)}


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


@dataclass(frozen=True)
class AffectedPackage:
    ecosystem: str
    name: str
    fixed_versions: tuple[str, ...] = ()
    severity: str | None = None


@dataclass(frozen=True)
class VulnerabilityDetail:
    """The subset of an OSV record the assembler needs."""

    id: str
    summary: str = ""
    details: str = ""
    severity_scores: tuple[str, ...] = ()
    ecosystem_severity: str | None = None
    affected: tuple[AffectedPackage, ...] = ()
    references: tuple[str, ...] = ()

    @classmethod
    def from_osv(cls, vuln_id: str, data: Any) -> VulnerabilityDetail:
        """Build from a ``GET /v1/vulns/{id}`` body; missing fields degrade to empty."""
        data = _as_dict(data)

        scores = []
        for entry in _as_list(data.get("severity")):
            score = _as_dict(entry).get("score")
            if isinstance(score, (int, float)) and not isinstance(score, bool):
                scores.append(str(score))
            elif isinstance(score, str) and score.strip():
                scores.append(score.strip())
        db_specific = _as_dict(data.get("database_specific"))
        cvss = db_specific.get("cvss")
        if isinstance(cvss, (int, float, str)) and not isinstance(cvss, bool):
            scores.append(str(cvss))

        affected = []
        for entry in _as_list(data.get("affected")):
            entry = _as_dict(entry)
            package = _as_dict(entry.get("package"))
            fixed = []
            for rng in _as_list(entry.get("ranges")):
                for event in _as_list(_as_dict(rng).get("events")):
                    value = _as_dict(event).get("fixed")
                    if isinstance(value, str) and value.strip():
                        fixed.append(value.strip())
            entry_db = _as_dict(entry.get("database_specific"))
            if isinstance(entry_db.get("fixed"), str) and entry_db["fixed"].strip():
                fixed.append(entry_db["fixed"].strip())
            entry_severity = (
                _as_str(_as_dict(entry.get("ecosystem_specific")).get("severity"))
                or _as_str(entry_db.get("severity"))
                or None
            )
            affected.append(
                AffectedPackage(
                    ecosystem=_as_str(package.get("ecosystem")),
                    name=_as_str(package.get("name")),
                    fixed_versions=tuple(fixed),
                    severity=entry_severity,
                )
            )

        references = tuple(
            url
            for url in (_as_str(_as_dict(r).get("url")) for r in _as_list(data.get("references")))
            if url
        )

        ecosystem_severity = _as_str(db_specific.get("severity")) or next(
            (a.severity for a in affected if a.severity), None
        )

        return cls(
            id=_as_str(data.get("id")) or vuln_id,
            summary=_as_str(data.get("summary")),
            details=_as_str(data.get("details")),
            severity_scores=tuple(scores),
            ecosystem_severity=ecosystem_severity,
            affected=tuple(affected),
            references=references,
        )


@dataclass(frozen=True)
class BatchQueryResult:
    """Phase-1 output: vulnerability ids per dependency, in query order."""

    ids_by_dependency: tuple[tuple[Dependency, tuple[str, ...]], ...] = ()
    unique_ids: tuple[str, ...] = ()
    total_hits: int = 0


@dataclass(frozen=True)
class Finding:
    id: str
    ecosystem: Ecosystem
    name: str
    version: str
    vuln_id: str
    severity: Severity
    summary: str
    details: str | None = None
    fixed_version: str | None = None
    references: tuple[str, ...] | None = None
    fixed_version_is_fallback: bool = False


@dataclass(frozen=True)
class ScanResult:
    findings: tuple[Finding, ...] = ()
    note: str = ""
    scanned_deps: int = 0
    total_parsed_deps: int = 0
    manifests_used: tuple[str, ...] = ()
    unique_vuln_ids: int = 0
    total_vuln_hits: int = 0
    truncated: bool = False
    deps_sample: tuple[Dependency, ...] = field(default=())
