"""Dependency injection — settings, stores and the scan service singleton."""

from __future__ import annotations

from depsentinel.core.archive import ZipArchiveStore
from depsentinel.core.cache import MemoryCache
from depsentinel.core.config import ScanSettings, load_settings
from depsentinel.engines.vuln_correlator import OsvClient
from depsentinel.services.scan_service import DependencyScanService

# ---------------------------------------------------------------------------
# Process-wide singletons
# ---------------------------------------------------------------------------
_settings: ScanSettings | None = None
_cache = MemoryCache()
_osv_client: OsvClient | None = None
_scan_service: DependencyScanService | None = None


def get_settings() -> ScanSettings:
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def init_scan_service(osv_client: OsvClient | None = None) -> DependencyScanService:
    """Create the OSV client and scan service. Called once at startup."""
    global _osv_client, _scan_service  # noqa: PLW0603
    settings = get_settings()
    _osv_client = osv_client or OsvClient(
        settings.osv_url,
        timeout=settings.osv_timeout,
        batch_size=settings.batch_size,
        workers=settings.detail_workers,
    )
    store = ZipArchiveStore(settings.archive_dir)
    _scan_service = DependencyScanService(store, store, _osv_client, _cache, settings)
    return _scan_service


async def close_scan_service() -> None:
    """Close the OSV client, releasing pooled connections."""
    global _osv_client, _scan_service  # noqa: PLW0603
    if _osv_client is not None:
        await _osv_client.close()
    _osv_client = None
    _scan_service = None


def get_scan_service() -> DependencyScanService:
    if _scan_service is None:
        raise RuntimeError("call init_scan_service() before handling requests")
    return _scan_service
