"""Parser for poetry.lock files."""

from __future__ import annotations

import sys

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from depsentinel.engines.dependency_scanner.models import Dependency, ParseResult
from depsentinel.engines.dependency_scanner.registry import register_parser


class PoetryLockParser:
    detection_method = "poetry-lock"
    ecosystem = "PyPI"
    file_patterns = ["poetry.lock"]

    def parse(self, content: str, source_file: str = "") -> ParseResult:
        result = ParseResult()
        try:
            data = tomllib.loads(content)
        except (tomllib.TOMLDecodeError, RecursionError):
            result.note = "unparseable TOML"
            return result

        packages = data.get("package", [])
        if not isinstance(packages, list):
            return result

        for block in packages:
            if not isinstance(block, dict):
                continue
            name = block.get("name")
            version = block.get("version")
            if not isinstance(name, str) or not isinstance(version, str) or not name or not version:
                result.skipped += 1
                continue
            result.dependencies.append(
                Dependency(ecosystem="PyPI", name=name, version=version, source_file=source_file)
            )

        return result


register_parser(PoetryLockParser())
