"""Async OSV API client — batched id lookup, then bounded-concurrency detail fetch."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from depsentinel.engines.dependency_scanner.models import Dependency
from depsentinel.engines.vuln_correlator.models import BatchQueryResult, VulnerabilityDetail

log = structlog.get_logger("depsentinel.engine")

OSV_API_URL = "https://api.osv.dev"

# Backpressure knobs for the upstream registry.
OSV_BATCH_SIZE = 300
OSV_DETAIL_WORKERS = 10
OSV_TIMEOUT = 20.0

_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds
_DEFAULT_RETRY_AFTER = 60


class RateLimitError(Exception):
    """Raised when OSV answers a batch query with HTTP 429."""

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(f"OSV rate limit exceeded, retry after {retry_after}s")


class RegistryError(Exception):
    """Raised when a batch query fails for any reason other than rate limiting."""

    def __init__(self, status: int | None, detail: str) -> None:
        self.status = status
        self.detail = detail
        label = f"HTTP {status}" if status is not None else "no response"
        super().__init__(f"OSV querybatch failed ({label}): {detail}")


class OsvClient:
    """Thin async wrapper around the OSV REST API."""

    def __init__(
        self,
        base_url: str = OSV_API_URL,
        *,
        timeout: float = OSV_TIMEOUT,
        batch_size: int = OSV_BATCH_SIZE,
        workers: int = OSV_DETAIL_WORKERS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout
        self._batch_size = max(1, batch_size)
        self._workers = max(1, workers)
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            headers={"Accept": "application/json", "User-Agent": "depsentinel"},
            timeout=timeout,
        )

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> OsvClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── phase 1: ids only ──────────────────────────────────────────────────

    async def query_batches(self, deps: Sequence[Dependency]) -> BatchQueryResult:
        """Look up vulnerability ids for every dependency.

        Dependencies are sent in chunks of ``batch_size``; ``results[i]`` of
        each response belongs to the i-th query of that chunk. Any failed
        chunk aborts the whole lookup with :class:`RateLimitError` or
        :class:`RegistryError`.
        """
        ids_by_dep: list[tuple[Dependency, tuple[str, ...]]] = []
        unique: dict[str, None] = {}
        total_hits = 0

        for start in range(0, len(deps), self._batch_size):
            batch = deps[start : start + self._batch_size]
            results = await self._post_batch(batch)
            if len(results) != len(batch):
                log.warning(
                    "osv.batch_length_mismatch",
                    expected=len(batch),
                    received=len(results),
                )
            for i, dep in enumerate(batch):
                ids = _vuln_ids(results[i] if i < len(results) else None)
                total_hits += len(ids)
                for vid in ids:
                    unique.setdefault(vid, None)
                ids_by_dep.append((dep, ids))
            log.debug("osv.batch_done", offset=start, size=len(batch))

        return BatchQueryResult(
            ids_by_dependency=tuple(ids_by_dep),
            unique_ids=tuple(unique),
            total_hits=total_hits,
        )

    # ── phase 2: details ───────────────────────────────────────────────────

    async def fetch_details(self, vuln_ids: Sequence[str]) -> dict[str, VulnerabilityDetail]:
        """Fetch full records with a fixed pool of workers draining one queue.

        Ids whose fetch fails are simply absent from the returned mapping.
        Cancelling the caller cancels every in-flight fetch.
        """
        queue: asyncio.Queue[str] = asyncio.Queue()
        for vid in vuln_ids:
            queue.put_nowait(vid)
        details: dict[str, VulnerabilityDetail] = {}

        async def worker() -> None:
            while True:
                try:
                    vid = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                detail = await self.get_vuln(vid)
                if detail is not None:
                    details[vid] = detail

        pool = min(self._workers, len(vuln_ids))
        await asyncio.gather(*(worker() for _ in range(pool)))

        if len(details) < len(vuln_ids):
            log.warning(
                "osv.details_partial",
                requested=len(vuln_ids),
                fetched=len(details),
            )
        return details

    async def get_vuln(self, vuln_id: str) -> VulnerabilityDetail | None:
        """Fetch one record; ``None`` on any failure, never raises."""
        try:
            resp = await asyncio.wait_for(
                self._client.get(f"/v1/vulns/{quote(vuln_id, safe='')}"),
                timeout=self._timeout,
            )
        except (httpx.HTTPError, asyncio.TimeoutError) as exc:
            log.warning(
                "osv.detail_failed",
                vuln_id=vuln_id,
                error=str(exc) or type(exc).__name__,
            )
            return None

        if resp.status_code != 200:
            log.warning("osv.detail_failed", vuln_id=vuln_id, status=resp.status_code)
            return None
        try:
            data = resp.json()
        except ValueError:
            log.warning("osv.detail_invalid_json", vuln_id=vuln_id)
            return None
        return VulnerabilityDetail.from_osv(vuln_id, data)

    # ── internal ───────────────────────────────────────────────────────────

    async def _post_batch(self, batch: Sequence[Dependency]) -> list[Any]:
        """POST one querybatch with backoff on 5xx and timeouts; 429 is not retried."""
        body = {
            "queries": [
                {"package": {"ecosystem": d.ecosystem, "name": d.name}, "version": d.version}
                for d in batch
            ]
        }
        last_exc: RegistryError | None = None
        for attempt in range(_MAX_RETRIES):
            try:
                resp = await self._client.post("/v1/querybatch", json=body)
            except httpx.TimeoutException as exc:
                log.warning(
                    "osv.batch_timeout",
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = RegistryError(None, f"timeout: {exc}")
            except httpx.TransportError as exc:
                log.warning(
                    "osv.batch_transport_error",
                    error=str(exc),
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = RegistryError(None, str(exc) or type(exc).__name__)
            else:
                if resp.status_code == 429:
                    wait = self._get_retry_after(resp)
                    log.warning("osv.rate_limit", retry_after=wait, batch_size=len(batch))
                    raise RateLimitError(wait)

                if resp.status_code < 500:
                    if not resp.is_success:
                        raise RegistryError(resp.status_code, resp.text[:500])
                    try:
                        data = resp.json()
                    except ValueError as exc:
                        raise RegistryError(resp.status_code, "invalid JSON body") from exc
                    results = data.get("results") if isinstance(data, dict) else None
                    return results if isinstance(results, list) else []

                log.warning(
                    "osv.server_error",
                    status=resp.status_code,
                    attempt=attempt + 1,
                    max_retries=_MAX_RETRIES,
                )
                last_exc = RegistryError(resp.status_code, resp.text[:500])

            if attempt < _MAX_RETRIES - 1:
                await asyncio.sleep(_RETRY_BASE_DELAY * (2**attempt))

        raise last_exc  # type: ignore[misc]

    @staticmethod
    def _get_retry_after(response: httpx.Response) -> int:
        retry_after = response.headers.get("Retry-After")
        if retry_after is not None:
            try:
                return max(int(retry_after), 1)
            except (ValueError, TypeError):
                pass
        return _DEFAULT_RETRY_AFTER


def _vuln_ids(entry: Any) -> tuple[str, ...]:
    """Distinct vulnerability ids of one querybatch result, in response order."""
    if not isinstance(entry, dict):
        return ()
    vulns = entry.get("vulns")
    if not isinstance(vulns, list):
        return ()
    ids: dict[str, None] = {}
    for vuln in vulns:
        if isinstance(vuln, dict) and isinstance(vuln.get("id"), str) and vuln["id"]:
            ids.setdefault(vuln["id"], None)
    return tuple(ids)
