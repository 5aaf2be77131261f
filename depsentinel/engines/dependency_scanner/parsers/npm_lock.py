"""Parser for npm package-lock.json / npm-shrinkwrap.json (lockfile v1, v2, v3)."""

from __future__ import annotations

import json
from typing import Any

from depsentinel.engines.dependency_scanner.models import Dependency, ParseResult
from depsentinel.engines.dependency_scanner.registry import register_parser

_NODE_MODULES = "node_modules/"


class NpmLockParser:
    detection_method = "npm-lock"
    ecosystem = "npm"
    file_patterns = ["package-lock.json", "npm-shrinkwrap.json"]

    def parse(self, content: str, source_file: str = "") -> ParseResult:
        result = ParseResult()
        try:
            data = json.loads(content)
        except (ValueError, RecursionError):
            result.note = "unparseable JSON"
            return result
        if not isinstance(data, dict):
            result.note = "unexpected lockfile shape"
            return result

        seen: set[tuple[str, str]] = set()

        def add(name: str, version: Any) -> None:
            if not name or not isinstance(version, str) or not version:
                result.skipped += 1
                return
            if (name, version) in seen:
                return
            seen.add((name, version))
            result.dependencies.append(
                Dependency(ecosystem="npm", name=name, version=version, source_file=source_file)
            )

        # lockfile v2/v3: {"packages": {"node_modules/<name>": {"version": ...}}}
        packages = data.get("packages")
        if isinstance(packages, dict):
            for key, info in packages.items():
                if not isinstance(key, str) or _NODE_MODULES not in key:
                    continue  # "" is the root project, others are workspace links
                if not isinstance(info, dict) or info.get("link"):
                    continue
                add(key.rsplit(_NODE_MODULES, 1)[-1], info.get("version"))

        # lockfile v1: {"dependencies": {"<name>": {"version", "dependencies"}}}
        self._walk(data.get("dependencies"), add)

        return result

    def _walk(self, deps: Any, add) -> None:
        # explicit stack in pre-order; nesting depth comes from the file
        stack = list(reversed(deps.items())) if isinstance(deps, dict) else []
        while stack:
            name, info = stack.pop()
            if not isinstance(info, dict):
                continue
            add(str(name), info.get("version"))
            children = info.get("dependencies")
            if isinstance(children, dict):
                stack.extend(reversed(children.items()))


register_parser(NpmLockParser())
