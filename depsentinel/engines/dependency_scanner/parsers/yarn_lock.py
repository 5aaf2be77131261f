"""Parser for yarn.lock files (classic v1 and berry)."""

from __future__ import annotations

import re

from depsentinel.engines.dependency_scanner.models import Dependency, ParseResult
from depsentinel.engines.dependency_scanner.registry import register_parser

# classic: `  version "1.2.3"`    berry: `  version: 1.2.3`
_VERSION_RE = re.compile(r'^\s+version:?\s+"?([^"\s]+)"?\s*$')


def _block_name(header: str) -> str | None:
    """Package name from a block header such as ``"@scope/pkg@^1.0", "@scope/pkg@^1.1":``."""
    selector = header[:-1].split(",", 1)[0].strip().strip('"').strip("'")
    at = selector.rfind("@")
    if at <= 0:
        return None
    return selector[:at]


class YarnLockParser:
    detection_method = "yarn-lock"
    ecosystem = "npm"
    file_patterns = ["yarn.lock"]

    def parse(self, content: str, source_file: str = "") -> ParseResult:
        result = ParseResult()
        current: str | None = None

        for line in content.replace("\r", "").split("\n"):
            if not line.strip() or line.lstrip().startswith("#"):
                continue

            if not line[0].isspace():
                if current is not None:
                    result.skipped += 1  # previous block had no version line
                current = None
                stripped = line.rstrip()
                if stripped.endswith(":") and "@" in stripped:
                    current = _block_name(stripped)
                    if current is None:
                        result.skipped += 1
                continue

            if current is None:
                continue
            m = _VERSION_RE.match(line)
            if m:
                result.dependencies.append(
                    Dependency(
                        ecosystem="npm",
                        name=current,
                        version=m.group(1),
                        source_file=source_file,
                    )
                )
                current = None

        if current is not None:
            result.skipped += 1
        return result


register_parser(YarnLockParser())
