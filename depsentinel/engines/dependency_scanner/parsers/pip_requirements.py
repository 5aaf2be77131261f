"""Parser for pip requirements.txt files — exact pins only."""

from __future__ import annotations

import re

from depsentinel.engines.dependency_scanner.models import Dependency, ParseResult
from depsentinel.engines.dependency_scanner.registry import register_parser

# Matches: a line that starts like a requirement (package name first)
_REQ_NAME_RE = re.compile(r"^[A-Za-z0-9]([A-Za-z0-9._-]*[A-Za-z0-9])?")

# name[extras] == version   /   name === version
_PINNED_RE = re.compile(
    r"^([A-Za-z0-9]([A-Za-z0-9._-]*[A-Za-z0-9])?)"  # package name
    r"(\[[^\]]*\])?"  # optional extras
    r"\s*(===|==)\s*"
    r"([A-Za-z0-9][A-Za-z0-9._+!-]*)$",  # exact version, no wildcards
)


def strip_requirement_line(raw_line: str) -> str:
    """Drop comments, trailing pip options, continuations and env markers."""
    line = raw_line.strip()
    if line.startswith("#"):
        return ""
    hash_pos = line.find(" #")
    if hash_pos != -1:
        line = line[:hash_pos]
    line = line.rstrip("\\").strip()
    opt_pos = line.find(" --")
    if opt_pos != -1:
        line = line[:opt_pos]
    marker_pos = line.find(";")
    if marker_pos != -1:
        line = line[:marker_pos]
    return line.strip()


def match_pinned(requirement: str) -> tuple[str, str] | None:
    """Return ``(name, version)`` when *requirement* is an exact ``==`` pin."""
    m = _PINNED_RE.match(requirement)
    if not m:
        return None
    return m.group(1), m.group(5)


class PipRequirementsParser:
    detection_method = "pip-requirements"
    ecosystem = "PyPI"
    file_patterns = ["requirements.txt", "requirements-*.txt", "requirements/*.txt"]

    def parse(self, content: str, source_file: str = "") -> ParseResult:
        result = ParseResult()

        for raw_line in content.splitlines():
            line = strip_requirement_line(raw_line)
            if not line:
                continue
            # -r / -c / -e / --index-url ... are options, not requirements
            if line.startswith("-"):
                continue

            pinned = match_pinned(line)
            if pinned is None:
                if _REQ_NAME_RE.match(line):
                    result.skipped += 1
                continue

            name, version = pinned
            result.dependencies.append(
                Dependency(ecosystem="PyPI", name=name, version=version, source_file=source_file)
            )

        return result


register_parser(PipRequirementsParser())
