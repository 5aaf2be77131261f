"""Runtime settings, read once from ``DEPSENTINEL_*`` environment variables."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

# Hard bounds for caller-supplied limits. Out-of-range values are clamped.
MAX_DEPS_RANGE = (20, 1500)
MAX_VULNS_RANGE = (20, 400)

DEFAULT_MAX_DEPS = 200
DEFAULT_MAX_VULNS = 200


@dataclass(frozen=True)
class ScanSettings:
    osv_url: str = "https://api.osv.dev"
    osv_timeout: float = 20.0
    batch_size: int = 300
    detail_workers: int = 10
    cache_ttl_seconds: int = 60 * 30
    archive_dir: Path = Path(tempfile.gettempdir()) / "depsentinel-archives"
    default_max_deps: int = DEFAULT_MAX_DEPS
    default_max_vulns: int = DEFAULT_MAX_VULNS


def _env_float(key: str, default: float) -> float:
    return float(os.environ.get(key, default))


def _env_int(key: str, default: int) -> int:
    return int(os.environ.get(key, default))


def load_settings() -> ScanSettings:
    """Build :class:`ScanSettings` from the environment.

    Unset variables fall back to the dataclass defaults. A malformed
    numeric value raises ``ValueError`` at startup rather than at scan time.
    """
    defaults = ScanSettings()
    return ScanSettings(
        osv_url=os.environ.get("DEPSENTINEL_OSV_URL", defaults.osv_url).rstrip("/"),
        osv_timeout=_env_float("DEPSENTINEL_OSV_TIMEOUT", defaults.osv_timeout),
        batch_size=max(1, _env_int("DEPSENTINEL_OSV_BATCH_SIZE", defaults.batch_size)),
        detail_workers=max(1, _env_int("DEPSENTINEL_OSV_WORKERS", defaults.detail_workers)),
        cache_ttl_seconds=_env_int("DEPSENTINEL_CACHE_TTL_SECONDS", defaults.cache_ttl_seconds),
        archive_dir=Path(os.environ.get("DEPSENTINEL_ARCHIVE_DIR", str(defaults.archive_dir))),
        default_max_deps=clamp(
            _env_int("DEPSENTINEL_DEFAULT_MAX_DEPS", defaults.default_max_deps), MAX_DEPS_RANGE
        ),
        default_max_vulns=clamp(
            _env_int("DEPSENTINEL_DEFAULT_MAX_VULNS", defaults.default_max_vulns),
            MAX_VULNS_RANGE,
        ),
    )


def clamp(value: int, bounds: tuple[int, int]) -> int:
    low, high = bounds
    return max(low, min(high, value))
