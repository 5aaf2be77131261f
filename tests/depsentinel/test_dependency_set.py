"""Tests for manifest location and dependency-set building."""

from __future__ import annotations

from depsentinel.engines.dependency_scanner import (
    PARSER_REGISTRY,
    BuildOutcome,
    Dependency,
    ParsedManifest,
    ParseResult,
    build_dependency_set,
    locate_manifests,
)


def _manifest(path: str, deps: list[Dependency], content: str | None = "x", **kw) -> ParsedManifest:
    return ParsedManifest(
        path=path,
        detection_method="pip-requirements",
        ecosystem="PyPI",
        content=content,
        result=ParseResult(dependencies=deps, **kw),
    )


def _pypi(name: str, version: str) -> Dependency:
    return Dependency(ecosystem="PyPI", name=name, version=version)


# ── Parser registry ──────────────────────────────────────────────────────


class TestRegistry:
    def test_all_parsers_registered_in_scan_order(self):
        assert list(PARSER_REGISTRY) == [
            "npm-lock",
            "yarn-lock",
            "pnpm-lock",
            "pip-requirements",
            "poetry-lock",
            "pyproject-toml",
        ]

    def test_locate_by_basename(self):
        files = [
            "README.md",
            "package-lock.json",
            "web/yarn.lock",
            "requirements-dev.txt",
            "requirements/prod.txt",
            "backend/pyproject.toml",
            "src/app.py",
        ]
        located = [(p.detection_method, path) for p, path in locate_manifests(files)]
        assert located == [
            ("npm-lock", "package-lock.json"),
            ("yarn-lock", "web/yarn.lock"),
            ("pip-requirements", "requirements-dev.txt"),
            ("pip-requirements", "requirements/prod.txt"),
            ("pyproject-toml", "backend/pyproject.toml"),
        ]

    def test_shortest_path_first_and_capped(self):
        files = [f"pkg{i}/sub/requirements.txt" for i in range(8)] + ["requirements.txt"]
        located = [path for _, path in locate_manifests(files, per_format=3)]
        assert located == [
            "requirements.txt",
            "pkg0/sub/requirements.txt",
            "pkg1/sub/requirements.txt",
        ]

    def test_vendored_dirs_ignored(self):
        files = [
            "node_modules/lodash/package-lock.json",
            ".venv/lib/requirements.txt",
            "app/package-lock.json",
        ]
        located = [path for _, path in locate_manifests(files)]
        assert located == ["app/package-lock.json"]

    def test_basename_match_is_case_insensitive(self):
        located = [path for _, path in locate_manifests(["Requirements.txt"])]
        assert located == ["Requirements.txt"]


# ── build_dependency_set ─────────────────────────────────────────────────


class TestBuildDependencySet:
    def test_no_manifests(self):
        result = build_dependency_set([], 200)
        assert result.outcome is BuildOutcome.NO_MANIFESTS
        assert result.dependencies == ()

    def test_all_unreadable(self):
        manifests = [_manifest("a.txt", [], content=None), _manifest("b.txt", [], content="  \n")]
        result = build_dependency_set(manifests, 200)
        assert result.outcome is BuildOutcome.NO_READABLE_MANIFESTS
        assert result.unreadable == ("a.txt", "b.txt")

    def test_readable_but_no_pins(self):
        result = build_dependency_set([_manifest("requirements.txt", [], skipped=3)], 200)
        assert result.outcome is BuildOutcome.NO_PINNED_DEPENDENCIES
        assert result.unpinned == 3
        assert result.manifests_used == ("requirements.txt",)

    def test_dedupe_first_occurrence_wins(self):
        first = _pypi("flask", "2.0.1")
        manifests = [
            _manifest("requirements.txt", [first, _pypi("jinja2", "3.0.0")]),
            _manifest("poetry.lock", [_pypi("flask", "2.0.1"), _pypi("flask", "2.0.2")]),
        ]
        result = build_dependency_set(manifests, 200)
        assert result.outcome is BuildOutcome.READY
        assert [d.key for d in result.dependencies] == [
            "PyPI:flask@2.0.1",
            "PyPI:jinja2@3.0.0",
            "PyPI:flask@2.0.2",
        ]
        assert result.dependencies[0] is first
        assert result.total_parsed == 4
        assert result.unique_count == 3
        assert not result.truncated

    def test_cap_sets_truncated(self):
        deps = [_pypi(f"pkg{i}", "1.0") for i in range(30)]
        result = build_dependency_set([_manifest("requirements.txt", deps)], 20)
        assert len(result.dependencies) == 20
        assert result.dependencies[-1].name == "pkg19"
        assert result.truncated
        assert result.unique_count == 30

    def test_exactly_at_cap_is_not_truncated(self):
        deps = [_pypi(f"pkg{i}", "1.0") for i in range(20)]
        result = build_dependency_set([_manifest("requirements.txt", deps)], 20)
        assert len(result.dependencies) == 20
        assert not result.truncated

    def test_unreadable_alongside_readable(self):
        manifests = [
            _manifest("package-lock.json", [], content=None),
            _manifest("requirements.txt", [_pypi("six", "1.16.0")]),
        ]
        result = build_dependency_set(manifests, 200)
        assert result.outcome is BuildOutcome.READY
        assert result.unreadable == ("package-lock.json",)
        assert result.manifests_used == ("requirements.txt",)

    def test_parser_notes_are_collected(self):
        manifests = [
            _manifest("package-lock.json", [], note="unparseable JSON"),
            _manifest("requirements.txt", [_pypi("six", "1.16.0")]),
        ]
        result = build_dependency_set(manifests, 200)
        assert result.notes == ("package-lock.json: unparseable JSON",)
