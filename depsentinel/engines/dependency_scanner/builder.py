"""Merge parser outputs into a deduplicated, size-capped dependency set."""

from __future__ import annotations

from collections.abc import Sequence

from depsentinel.engines.dependency_scanner.models import (
    BuildOutcome,
    Dependency,
    DependencySet,
    ParsedManifest,
)


def build_dependency_set(manifests: Sequence[ParsedManifest], max_deps: int) -> DependencySet:
    """Apply the dependency-set policy to *manifests* (in scan order).

    1. no manifests at all              -> ``NO_MANIFESTS``
    2. every manifest empty/unreadable  -> ``NO_READABLE_MANIFESTS``
    3. dedupe by ``ecosystem:name@version``, first occurrence wins
    4. cap to *max_deps*, flagging truncation
    5. nothing left                     -> ``NO_PINNED_DEPENDENCIES``
    """
    if not manifests:
        return DependencySet(outcome=BuildOutcome.NO_MANIFESTS)

    readable = [m for m in manifests if m.readable]
    unreadable = tuple(m.path for m in manifests if not m.readable)
    if not readable:
        return DependencySet(
            outcome=BuildOutcome.NO_READABLE_MANIFESTS,
            unreadable=unreadable,
        )

    notes = tuple(f"{m.path}: {m.result.note}" for m in readable if m.result.note)
    unpinned = sum(m.result.skipped for m in readable)
    manifests_used = tuple(m.path for m in readable)

    total_parsed = 0
    seen: set[str] = set()
    unique: list[Dependency] = []
    for manifest in readable:
        for dep in manifest.result.dependencies:
            total_parsed += 1
            if dep.key in seen:
                continue
            seen.add(dep.key)
            unique.append(dep)

    capped = unique[:max_deps]
    truncated = len(unique) > max_deps

    return DependencySet(
        outcome=BuildOutcome.READY if capped else BuildOutcome.NO_PINNED_DEPENDENCIES,
        dependencies=tuple(capped),
        total_parsed=total_parsed,
        unique_count=len(unique),
        truncated=truncated,
        unpinned=unpinned,
        manifests_used=manifests_used,
        unreadable=unreadable,
        notes=notes,
    )
