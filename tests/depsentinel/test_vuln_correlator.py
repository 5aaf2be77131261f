"""Tests for version ordering, OSV record parsing and finding assembly."""

from __future__ import annotations

from depsentinel.engines.dependency_scanner.models import Dependency
from depsentinel.engines.vuln_correlator import (
    BatchQueryResult,
    VulnerabilityDetail,
    assemble_findings,
    fixed_version_of,
    severity_of,
)
from depsentinel.engines.vuln_correlator.models import AffectedPackage
from depsentinel.engines.vuln_correlator.versions import (
    compare_npm,
    compare_pypi,
    is_newer,
    parse_npm,
    parse_pypi,
    parses,
)


def _detail(vid: str = "GHSA-1", **kw) -> VulnerabilityDetail:
    return VulnerabilityDetail(id=vid, **kw)


def _affected(eco: str, name: str, *fixed: str) -> AffectedPackage:
    return AffectedPackage(ecosystem=eco, name=name, fixed_versions=fixed)


# ── versions ─────────────────────────────────────────────────────────────


class TestVersions:
    def test_parse_npm(self):
        assert parse_npm("4.17.21") == (4, 17, 21)
        assert parse_npm("v1.2.3-beta.1") == (1, 2, 3)
        assert parse_npm("1.2") is None

    def test_parse_pypi(self):
        assert parse_pypi("2.31.0") == (2, 31, 0)
        assert parse_pypi("1.0rc1") == (1, 0, 1)
        assert parse_pypi("dev") is None

    def test_compare_npm(self):
        assert compare_npm("4.17.21", "4.17.9") == 1
        assert compare_npm("1.0.0", "1.0.0") == 0
        assert compare_npm("0.9.0", "1.0.0") == -1

    def test_compare_pypi_zero_padded(self):
        assert compare_pypi("1.0", "1.0.0") == 0
        assert compare_pypi("1.10", "1.9") == 1
        assert compare_pypi("2.0", "2.0.1") == -1

    def test_unparseable_falls_back_to_lexical(self):
        assert compare_npm("abc", "abd") == -1
        assert compare_pypi("zzz", "aaa") == 1

    def test_is_newer_and_parses(self):
        assert is_newer("PyPI", "2.0.1", "2.0")
        assert not is_newer("npm", "1.0.0", "1.0.0")
        assert parses("npm", "1.2.3")
        assert not parses("npm", "latest")


# ── OSV record parsing ───────────────────────────────────────────────────


class TestVulnerabilityDetail:
    def test_from_osv_full(self):
        data = {
            "id": "GHSA-xxxx",
            "summary": "Prototype pollution",
            "details": "Long text",
            "severity": [{"type": "CVSS_V3", "score": "CVSS:3.1/AV:N/AC:L"}],
            "database_specific": {"severity": "HIGH"},
            "affected": [
                {
                    "package": {"ecosystem": "npm", "name": "lodash"},
                    "ranges": [
                        {
                            "type": "SEMVER",
                            "events": [{"introduced": "0"}, {"fixed": "4.17.21"}],
                        }
                    ],
                }
            ],
            "references": [{"url": "https://a"}, {"type": "WEB"}, {"url": "https://b"}],
        }
        detail = VulnerabilityDetail.from_osv("GHSA-xxxx", data)
        assert detail.summary == "Prototype pollution"
        assert detail.severity_scores == ("CVSS:3.1/AV:N/AC:L",)
        assert detail.ecosystem_severity == "HIGH"
        assert detail.affected[0].fixed_versions == ("4.17.21",)
        assert detail.references == ("https://a", "https://b")

    def test_from_osv_garbage(self):
        detail = VulnerabilityDetail.from_osv("X-1", {"affected": "nope", "severity": None})
        assert detail.id == "X-1"
        assert detail.affected == ()
        assert detail.severity_scores == ()

    def test_entry_level_severity_used_when_top_level_missing(self):
        data = {
            "affected": [
                {
                    "package": {"ecosystem": "PyPI", "name": "django"},
                    "ecosystem_specific": {"severity": "critical"},
                }
            ]
        }
        assert VulnerabilityDetail.from_osv("X", data).ecosystem_severity == "critical"


# ── severity ─────────────────────────────────────────────────────────────


class TestSeverity:
    def test_numeric_thresholds(self):
        assert severity_of(_detail(severity_scores=("9.8",))) == "CRITICAL"
        assert severity_of(_detail(severity_scores=("7.0",))) == "HIGH"
        assert severity_of(_detail(severity_scores=("4.0",))) == "MEDIUM"
        assert severity_of(_detail(severity_scores=("3.9",))) == "LOW"

    def test_first_numeric_score_wins(self):
        detail = _detail(severity_scores=("CVSS:3.1/AV:N", "nan", "5.3", "9.9"))
        assert severity_of(detail) == "MEDIUM"

    def test_numeric_beats_label(self):
        detail = _detail(severity_scores=("9.1",), ecosystem_severity="LOW")
        assert severity_of(detail) == "CRITICAL"

    def test_label_fallback(self):
        assert severity_of(_detail(ecosystem_severity="high")) == "HIGH"

    def test_unknown_label_defaults_medium(self):
        assert severity_of(_detail(ecosystem_severity="MODERATE")) == "MEDIUM"
        assert severity_of(_detail()) == "MEDIUM"


# ── fixed version ────────────────────────────────────────────────────────


class TestFixedVersion:
    def test_smallest_newer_fix(self):
        dep = Dependency(ecosystem="npm", name="lodash", version="4.17.15")
        detail = _detail(affected=(_affected("npm", "lodash", "4.17.21", "4.17.19", "3.0.0"),))
        assert fixed_version_of(dep, detail) == ("4.17.19", False)

    def test_fallback_when_nothing_newer(self):
        dep = Dependency(ecosystem="npm", name="lodash", version="5.0.0")
        detail = _detail(affected=(_affected("npm", "lodash", "4.17.21", "4.17.19"),))
        assert fixed_version_of(dep, detail) == ("4.17.19", True)

    def test_other_packages_and_ecosystems_ignored(self):
        dep = Dependency(ecosystem="npm", name="lodash", version="4.0.0")
        detail = _detail(
            affected=(
                _affected("npm", "lodash-es", "4.5.0"),
                _affected("PyPI", "lodash", "4.1.0"),
            )
        )
        assert fixed_version_of(dep, detail) == (None, False)

    def test_pypi_names_normalized(self):
        dep = Dependency(ecosystem="PyPI", name="Flask_Login", version="0.4.0")
        detail = _detail(affected=(_affected("PyPI", "flask-login", "0.4.1"),))
        assert fixed_version_of(dep, detail) == ("0.4.1", False)

    def test_unparseable_fix_ignored(self):
        dep = Dependency(ecosystem="npm", name="qs", version="6.0.0")
        detail = _detail(affected=(_affected("npm", "qs", "next", "6.2.4"),))
        assert fixed_version_of(dep, detail) == ("6.2.4", False)


# ── assembly ─────────────────────────────────────────────────────────────


class TestAssembleFindings:
    def test_sorted_and_filtered(self):
        lodash = Dependency(ecosystem="npm", name="lodash", version="4.17.15")
        flask = Dependency(ecosystem="PyPI", name="flask", version="0.12")
        batch = BatchQueryResult(
            ids_by_dependency=(
                (lodash, ("GHSA-low", "GHSA-missing")),
                (flask, ("PYSEC-crit",)),
            ),
            unique_ids=("GHSA-low", "GHSA-missing", "PYSEC-crit"),
            total_hits=3,
        )
        details = {
            "GHSA-low": _detail("GHSA-low", summary="low one", severity_scores=("2.0",)),
            "PYSEC-crit": _detail("PYSEC-crit", details="D" * 300, severity_scores=("9.5",)),
        }
        findings = assemble_findings(batch, details)
        assert [f.vuln_id for f in findings] == ["PYSEC-crit", "GHSA-low"]
        crit, low = findings
        assert crit.id == "PyPI:flask@0.12:PYSEC-crit"
        assert crit.severity == "CRITICAL"
        assert crit.summary == "D" * 180
        assert low.summary == "low one"
        assert low.details is None
        assert low.references is None

    def test_summary_and_reference_limits(self):
        dep = Dependency(ecosystem="npm", name="qs", version="6.0.0")
        batch = BatchQueryResult(ids_by_dependency=((dep, ("X",)),), unique_ids=("X",))
        refs = tuple(f"https://r/{i}" for i in range(10))
        details = {"X": _detail("X", details="d" * 5000, references=refs)}
        (finding,) = assemble_findings(batch, details)
        assert finding.summary == "d" * 180
        assert len(finding.details) == 1800
        assert finding.references == refs[:4]

    def test_summary_fallback_text(self):
        dep = Dependency(ecosystem="npm", name="qs", version="6.0.0")
        batch = BatchQueryResult(ids_by_dependency=((dep, ("X",)),), unique_ids=("X",))
        (finding,) = assemble_findings(batch, {"X": _detail("X")})
        assert finding.summary == "Vulnerability reported by OSV"

    def test_same_severity_orders_by_name_then_ecosystem(self):
        a = Dependency(ecosystem="PyPI", name="aaa", version="1.0")
        b_npm = Dependency(ecosystem="npm", name="bbb", version="1.0.0")
        b_pypi = Dependency(ecosystem="PyPI", name="bbb", version="1.0.0")
        batch = BatchQueryResult(
            ids_by_dependency=((b_pypi, ("V2",)), (b_npm, ("V1",)), (a, ("V3",))),
            unique_ids=("V1", "V2", "V3"),
        )
        details = {v: _detail(v, severity_scores=("7.5",)) for v in ("V1", "V2", "V3")}
        findings = assemble_findings(batch, details)
        assert [(f.name, f.ecosystem) for f in findings] == [
            ("aaa", "PyPI"),
            ("bbb", "PyPI"),
            ("bbb", "npm"),
        ]
