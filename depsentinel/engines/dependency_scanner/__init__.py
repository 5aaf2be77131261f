"""Dependency scanner engine — pinned dependencies from lockfiles and manifests."""

# Ensure parsers are registered before any scan runs.
import depsentinel.engines.dependency_scanner.parsers  # noqa: F401
from depsentinel.engines.dependency_scanner.builder import build_dependency_set
from depsentinel.engines.dependency_scanner.models import (
    BuildOutcome,
    Dependency,
    DependencySet,
    ParsedManifest,
    ParseResult,
)
from depsentinel.engines.dependency_scanner.registry import (
    PARSER_REGISTRY,
    locate_manifests,
)

__all__ = [
    "PARSER_REGISTRY",
    "BuildOutcome",
    "Dependency",
    "DependencySet",
    "ParseResult",
    "ParsedManifest",
    "build_dependency_set",
    "locate_manifests",
]
