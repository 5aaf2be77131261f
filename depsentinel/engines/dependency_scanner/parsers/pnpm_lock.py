"""Parser for pnpm-lock.yaml files.

Only the ``packages:`` section is read, line by line; no YAML library is
needed for the two-space-indented package keys.
"""

from __future__ import annotations

import re

from depsentinel.engines.dependency_scanner.models import Dependency, ParseResult
from depsentinel.engines.dependency_scanner.registry import register_parser


# lockfile v5: /<name>/<version>[_<peer suffix>], e.g. /react-dom/18.2.0_react@18.2.0
_V5_KEY_RE = re.compile(r"^((?:@[^/@]+/)?[^/@]+)/(\d[^/_(]*)(?:_.*)?$")


def _split_key(key: str) -> tuple[str, str] | None:
    """``/@scope/pkg@1.2.3(peer@4.0.0)`` -> ``("@scope/pkg", "1.2.3")``.

    ``/@scope/pkg/1.2.3_peer@4.0.0`` (lockfile v5) splits the same way.
    """
    key = key.strip().strip("'\"").lstrip("/")
    v5 = _V5_KEY_RE.match(key)
    if v5:
        return v5.group(1), v5.group(2)
    paren = key.find("(")
    if paren != -1:
        key = key[:paren]
    at = key.rfind("@")
    if at <= 0:
        return None
    name, version = key[:at], key[at + 1 :]
    if not name or not version:
        return None
    return name, version


class PnpmLockParser:
    detection_method = "pnpm-lock"
    ecosystem = "npm"
    file_patterns = ["pnpm-lock.yaml"]

    def parse(self, content: str, source_file: str = "") -> ParseResult:
        result = ParseResult()
        in_packages = False

        for line in content.replace("\r", "").split("\n"):
            if not line.strip() or line.lstrip().startswith("#"):
                continue
            if not line[0].isspace():
                in_packages = line.rstrip() == "packages:"
                continue
            if not in_packages:
                continue
            # package keys sit at exactly two spaces; deeper lines are fields
            if not line.startswith("  ") or line[2].isspace():
                continue
            stripped = line.rstrip()
            if not stripped.endswith(":"):
                continue

            parsed = _split_key(stripped[:-1])
            if parsed is None:
                result.skipped += 1
                continue
            name, version = parsed
            result.dependencies.append(
                Dependency(ecosystem="npm", name=name, version=version, source_file=source_file)
            )

        return result


register_parser(PnpmLockParser())
