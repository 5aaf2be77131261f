"""Dependency scan request/response schemas (camelCase on the wire)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, StrictInt
from pydantic.alias_generators import to_camel

from depsentinel.engines.dependency_scanner.models import Dependency
from depsentinel.engines.vuln_correlator.models import Finding, ScanResult


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScanRequest(_CamelModel):
    analysis_id: str = Field(min_length=1)
    max_deps: StrictInt | None = None
    max_vulns: StrictInt | None = None


class DependencyItem(_CamelModel):
    ecosystem: str
    name: str
    version: str


class FindingItem(_CamelModel):
    id: str
    ecosystem: str
    name: str
    version: str
    vuln_id: str
    severity: str
    summary: str
    details: str | None = None
    fixed_version: str | None = None
    references: list[str] | None = None
    # only present when no fix is newer than the installed version
    fixed_version_is_fallback: bool | None = None

    @classmethod
    def from_finding(cls, finding: Finding) -> FindingItem:
        return cls(
            id=finding.id,
            ecosystem=finding.ecosystem,
            name=finding.name,
            version=finding.version,
            vuln_id=finding.vuln_id,
            severity=finding.severity,
            summary=finding.summary,
            details=finding.details,
            fixed_version=finding.fixed_version,
            references=list(finding.references) if finding.references else None,
            fixed_version_is_fallback=finding.fixed_version_is_fallback or None,
        )


class ScanResponse(_CamelModel):
    findings: list[FindingItem]
    note: str
    scanned_deps: int
    total_parsed_deps: int
    manifests_used: list[str]
    unique_vuln_ids: int
    total_vuln_hits: int
    truncated: bool
    deps_sample: list[DependencyItem]

    @classmethod
    def from_result(cls, result: ScanResult) -> ScanResponse:
        return cls(
            findings=[FindingItem.from_finding(f) for f in result.findings],
            note=result.note,
            scanned_deps=result.scanned_deps,
            total_parsed_deps=result.total_parsed_deps,
            manifests_used=list(result.manifests_used),
            unique_vuln_ids=result.unique_vuln_ids,
            total_vuln_hits=result.total_vuln_hits,
            truncated=result.truncated,
            deps_sample=[_dependency_item(d) for d in result.deps_sample],
        )


def _dependency_item(dep: Dependency) -> DependencyItem:
    return DependencyItem(ecosystem=dep.ecosystem, name=dep.name, version=dep.version)


class ErrorResponse(BaseModel):
    error: str
    detail: str
    retryable: bool = False
