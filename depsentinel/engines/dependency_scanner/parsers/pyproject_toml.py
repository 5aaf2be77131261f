"""Parser for Python pyproject.toml — PEP 621 and Poetry dependency tables."""

from __future__ import annotations

import re
import sys
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from depsentinel.engines.dependency_scanner.models import Dependency, ParseResult
from depsentinel.engines.dependency_scanner.parsers.pip_requirements import (
    match_pinned,
    strip_requirement_line,
)
from depsentinel.engines.dependency_scanner.registry import register_parser

# Poetry pins are bare dotted numbers: "2.31.0". Carets, tildes, ranges
# and wildcards are constraints, not pins.
_NUMERIC_VERSION_RE = re.compile(r"^\d+(\.\d+)*$")


def _table(data: dict, key: str) -> dict:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _poetry_version(spec: Any) -> str | None:
    if isinstance(spec, str):
        return spec.strip()
    if isinstance(spec, dict):
        version = spec.get("version")
        if isinstance(version, str):
            return version.strip()
    return None


class PyprojectTomlParser:
    detection_method = "pyproject-toml"
    ecosystem = "PyPI"
    file_patterns = ["pyproject.toml"]

    def parse(self, content: str, source_file: str = "") -> ParseResult:
        result = ParseResult()
        try:
            data = tomllib.loads(content)
        except (tomllib.TOMLDecodeError, RecursionError):
            result.note = "unparseable TOML"
            return result

        project = data.get("project")
        dep_strings: Any = data.get("dependencies")
        if isinstance(project, dict) and "dependencies" in project:
            dep_strings = project.get("dependencies")
        if isinstance(dep_strings, list):
            for raw in dep_strings:
                if not isinstance(raw, str):
                    continue
                line = strip_requirement_line(raw)
                if not line:
                    continue
                pinned = match_pinned(line)
                if pinned is None:
                    result.skipped += 1
                    continue
                name, version = pinned
                result.dependencies.append(
                    Dependency(
                        ecosystem="PyPI", name=name, version=version, source_file=source_file
                    )
                )

        poetry_deps = _table(_table(_table(data, "tool"), "poetry"), "dependencies")
        if poetry_deps:
            for name, spec in poetry_deps.items():
                if name.lower() == "python":
                    continue
                version = _poetry_version(spec)
                if version is None or not _NUMERIC_VERSION_RE.match(version):
                    result.skipped += 1
                    continue
                result.dependencies.append(
                    Dependency(ecosystem="PyPI", name=name, version=version, source_file=source_file)
                )

        return result


register_parser(PyprojectTomlParser())
