"""Parser registry — match repository file paths to manifest parsers."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import PurePosixPath
from typing import Protocol, runtime_checkable

from depsentinel.engines.dependency_scanner.models import Ecosystem, ParseResult

# At most this many files per format are parsed (shortest paths win).
MAX_MANIFESTS_PER_FORMAT = 5

# Vendored trees carry other projects' manifests.
_IGNORED_DIRS = frozenset({"node_modules", ".venv", "venv", "site-packages", ".git"})


@runtime_checkable
class ManifestParser(Protocol):
    """Interface that every manifest parser must satisfy."""

    detection_method: str
    ecosystem: Ecosystem
    file_patterns: list[str]

    def parse(self, content: str, source_file: str = "") -> ParseResult: ...


PARSER_REGISTRY: dict[str, ManifestParser] = {}


def register_parser(parser: ManifestParser) -> None:
    """Register a parser instance by its detection_method.

    Registration order is the manifest scan order, which in turn decides
    which occurrence of a duplicated dependency wins.
    """
    PARSER_REGISTRY[parser.detection_method] = parser


def _matches(path: str, patterns: list[str]) -> bool:
    pure = PurePosixPath(path)
    if any(part in _IGNORED_DIRS for part in pure.parts[:-1]):
        return False
    name = pure.name.lower()
    for pattern in patterns:
        if "/" in pattern:
            if pure.match(pattern):
                return True
        elif PurePosixPath(name).match(pattern):
            return True
    return False


def locate_manifests(
    files: Iterable[str],
    *,
    per_format: int = MAX_MANIFESTS_PER_FORMAT,
) -> list[tuple[ManifestParser, str]]:
    """Match repository file paths to registered parsers.

    Returns ``(parser, path)`` pairs in registry order; within one parser,
    root-level (shortest) paths come first.
    """
    paths = list(files)
    matches: list[tuple[ManifestParser, str]] = []
    for parser in PARSER_REGISTRY.values():
        hits = sorted(
            (p for p in paths if _matches(p, parser.file_patterns)),
            key=lambda p: (len(p), p),
        )
        matches.extend((parser, hit) for hit in hits[:per_format])
    return matches
