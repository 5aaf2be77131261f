"""Ecosystem version ordering.

Deliberately narrow approximations of SemVer and PEP 440: pre-release,
build-metadata and local segments are ignored. Good enough to pick the
nearest fixed release; not a range-satisfaction engine.
"""

from __future__ import annotations

import re
from collections.abc import Callable

_NPM_RE = re.compile(r"^\s*[v=]?(\d+)\.(\d+)\.(\d+)")
_NON_DIGITS_RE = re.compile(r"\D+")


def parse_npm(version: str) -> tuple[int, int, int] | None:
    m = _NPM_RE.match(version)
    if not m:
        return None
    return int(m.group(1)), int(m.group(2)), int(m.group(3))


def parse_pypi(version: str) -> tuple[int, ...] | None:
    parts = [p for p in _NON_DIGITS_RE.split(version) if p]
    if not parts:
        return None
    return tuple(int(p) for p in parts)


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


def compare_npm(a: str, b: str) -> int:
    """Compare two npm versions; ``-1``, ``0`` or ``1``."""
    pa, pb = parse_npm(a), parse_npm(b)
    if pa is None or pb is None:
        return _cmp(a, b)
    return _cmp(pa, pb)


def compare_pypi(a: str, b: str) -> int:
    """Compare two PyPI versions as zero-padded integer sequences."""
    pa, pb = parse_pypi(a), parse_pypi(b)
    if pa is None or pb is None:
        return _cmp(a, b)
    width = max(len(pa), len(pb))
    pa += (0,) * (width - len(pa))
    pb += (0,) * (width - len(pb))
    return _cmp(pa, pb)


_COMPARATORS: dict[str, tuple[Callable[[str, str], int], Callable[[str], object]]] = {
    "npm": (compare_npm, parse_npm),
    "PyPI": (compare_pypi, parse_pypi),
}


def compare_versions(ecosystem: str, a: str, b: str) -> int:
    compare, _ = _COMPARATORS[ecosystem]
    return compare(a, b)


def is_newer(ecosystem: str, a: str, b: str) -> bool:
    """True when version *a* sorts strictly after *b* in *ecosystem*."""
    return compare_versions(ecosystem, a, b) > 0


def parses(ecosystem: str, version: str) -> bool:
    _, parse = _COMPARATORS[ecosystem]
    return parse(version) is not None
