"""Data models for the dependency scanner engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

Ecosystem = Literal["npm", "PyPI"]


@dataclass(frozen=True)
class Dependency:
    """A single pinned dependency detected from a manifest file."""

    ecosystem: Ecosystem
    name: str
    version: str
    source_file: str = ""

    @property
    def key(self) -> str:
        """Identity key — unique within a deduplicated set."""
        return f"{self.ecosystem}:{self.name}@{self.version}"


@dataclass
class ParseResult:
    """Output of one parser run over one manifest.

    *skipped* counts dependency-shaped entries that were rejected (typically
    unpinned requirements); *note* carries a human-readable diagnostic such
    as "unparseable JSON".
    """

    dependencies: list[Dependency] = field(default_factory=list)
    skipped: int = 0
    note: str | None = None


@dataclass(frozen=True)
class ParsedManifest:
    """A located manifest with its raw text and parser output.

    *content* is ``None`` when the file could not be read from the archive.
    """

    path: str
    detection_method: str
    ecosystem: Ecosystem
    content: str | None
    result: ParseResult

    @property
    def readable(self) -> bool:
        return bool(self.content and self.content.strip())


class BuildOutcome(str, Enum):
    NO_MANIFESTS = "no_manifests"
    NO_READABLE_MANIFESTS = "no_readable_manifests"
    NO_PINNED_DEPENDENCIES = "no_pinned_dependencies"
    READY = "ready"


@dataclass(frozen=True)
class DependencySet:
    """Deduplicated, capped dependency list plus the bookkeeping the note needs."""

    outcome: BuildOutcome
    dependencies: tuple[Dependency, ...] = ()
    total_parsed: int = 0
    unique_count: int = 0
    truncated: bool = False
    unpinned: int = 0
    manifests_used: tuple[str, ...] = ()
    unreadable: tuple[str, ...] = ()
    notes: tuple[str, ...] = ()
