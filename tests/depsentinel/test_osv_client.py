"""Tests for the OSV client (no network: httpx.MockTransport)."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from depsentinel.engines.dependency_scanner.models import Dependency
from depsentinel.engines.vuln_correlator import OsvClient, RateLimitError, RegistryError


def _deps(n: int) -> list[Dependency]:
    return [Dependency(ecosystem="npm", name=f"pkg{i}", version="1.0.0") for i in range(n)]


def _client(handler, **kw) -> OsvClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://osv.test")
    return OsvClient(client=http, **kw)


def _batch_handler(ids_for):
    """Answer querybatch with ``ids_for(name)`` ids per query, recording request sizes."""
    sizes: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        queries = json.loads(request.content)["queries"]
        sizes.append(len(queries))
        results = []
        for q in queries:
            ids = ids_for(q["package"]["name"])
            results.append({"vulns": [{"id": vid} for vid in ids]} if ids else {})
        return httpx.Response(200, json={"results": results})

    return handler, sizes


# ── phase 1 ──────────────────────────────────────────────────────────────


class TestQueryBatches:
    @pytest.mark.anyio
    async def test_chunks_of_batch_size(self):
        handler, sizes = _batch_handler(lambda name: [])
        async with _client(handler, batch_size=300) as osv:
            result = await osv.query_batches(_deps(650))
        assert sizes == [300, 300, 50]
        assert len(result.ids_by_dependency) == 650
        assert result.total_hits == 0

    @pytest.mark.anyio
    async def test_positional_alignment_and_dedupe(self):
        table = {"pkg0": ["GHSA-a", "GHSA-b", "GHSA-a"], "pkg2": ["GHSA-b", "GHSA-c"]}
        handler, _ = _batch_handler(lambda name: table.get(name, []))
        async with _client(handler) as osv:
            result = await osv.query_batches(_deps(3))
        by_name = {dep.name: ids for dep, ids in result.ids_by_dependency}
        assert by_name == {"pkg0": ("GHSA-a", "GHSA-b"), "pkg1": (), "pkg2": ("GHSA-b", "GHSA-c")}
        assert result.unique_ids == ("GHSA-a", "GHSA-b", "GHSA-c")
        assert result.total_hits == 4

    @pytest.mark.anyio
    async def test_request_body_shape(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"results": [{}]})

        dep = Dependency(ecosystem="PyPI", name="django", version="3.2.0")
        async with _client(handler) as osv:
            await osv.query_batches([dep])
        assert seen["path"] == "/v1/querybatch"
        assert seen["body"] == {
            "queries": [
                {"package": {"ecosystem": "PyPI", "name": "django"}, "version": "3.2.0"}
            ]
        }

    @pytest.mark.anyio
    async def test_short_response_treated_as_no_hits(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"results": [{"vulns": [{"id": "X"}]}]})

        async with _client(handler) as osv:
            result = await osv.query_batches(_deps(3))
        assert [ids for _, ids in result.ids_by_dependency] == [("X",), (), ()]

    @pytest.mark.anyio
    async def test_malformed_vulns_treated_as_no_hits(self):
        def handler(request: httpx.Request) -> httpx.Response:
            results = [{"vulns": 5}, {"vulns": "GHSA-x"}, {"vulns": [{"id": "Y"}, 7]}]
            return httpx.Response(200, json={"results": results})

        async with _client(handler) as osv:
            result = await osv.query_batches(_deps(3))
        assert [ids for _, ids in result.ids_by_dependency] == [(), (), ("Y",)]
        assert result.total_hits == 1

    @pytest.mark.anyio
    async def test_rate_limit_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(429, headers={"Retry-After": "17"})

        async with _client(handler) as osv:
            with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
                with pytest.raises(RateLimitError) as exc_info:
                    await osv.query_batches(_deps(2))
        assert exc_info.value.retry_after == 17
        assert len(calls) == 1
        mock_sleep.assert_not_called()

    @pytest.mark.anyio
    async def test_rate_limit_default_retry_after(self):
        async with _client(lambda request: httpx.Response(429)) as osv:
            with pytest.raises(RateLimitError) as exc_info:
                await osv.query_batches(_deps(1))
        assert exc_info.value.retry_after == 60

    @pytest.mark.anyio
    async def test_retry_on_server_error(self):
        responses = [httpx.Response(502), httpx.Response(200, json={"results": [{}]})]

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.pop(0)

        async with _client(handler) as osv:
            with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
                result = await osv.query_batches(_deps(1))
        assert result.total_hits == 0
        mock_sleep.assert_called_once_with(1.0)

    @pytest.mark.anyio
    async def test_retry_exhausted(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503, text="down")

        async with _client(handler) as osv:
            with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
                with pytest.raises(RegistryError) as exc_info:
                    await osv.query_batches(_deps(1))
        assert exc_info.value.status == 503
        assert len(calls) == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0]

    @pytest.mark.anyio
    async def test_retry_on_timeout(self):
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ReadTimeout("timeout", request=request)
            return httpx.Response(200, json={"results": [{}]})

        async with _client(handler) as osv:
            with patch("asyncio.sleep", new_callable=AsyncMock):
                await osv.query_batches(_deps(1))
        assert len(attempts) == 2

    @pytest.mark.anyio
    async def test_client_error_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400, text="bad query")

        async with _client(handler) as osv:
            with pytest.raises(RegistryError) as exc_info:
                await osv.query_batches(_deps(1))
        assert exc_info.value.status == 400
        assert len(calls) == 1

    @pytest.mark.anyio
    async def test_later_batch_failure_aborts(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 2:
                return httpx.Response(429)
            return httpx.Response(200, json={"results": []})

        async with _client(handler, batch_size=2) as osv:
            with pytest.raises(RateLimitError):
                await osv.query_batches(_deps(5))
        assert len(calls) == 2


# ── phase 2 ──────────────────────────────────────────────────────────────


class TestFetchDetails:
    @pytest.mark.anyio
    async def test_failures_are_skipped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            vid = request.url.path.rsplit("/", 1)[-1]
            if vid == "GHSA-404":
                return httpx.Response(404)
            if vid == "GHSA-bad":
                return httpx.Response(200, content=b"<html>")
            if vid == "GHSA-boom":
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"id": vid, "summary": f"summary {vid}"})

        ids = ["GHSA-1", "GHSA-404", "GHSA-bad", "GHSA-boom", "GHSA-2"]
        async with _client(handler) as osv:
            details = await osv.fetch_details(ids)
        assert set(details) == {"GHSA-1", "GHSA-2"}
        assert details["GHSA-2"].summary == "summary GHSA-2"

    @pytest.mark.anyio
    async def test_worker_pool_bounded(self):
        import asyncio

        in_flight = 0
        peak = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return httpx.Response(200, json={"id": "x"})

        ids = [f"V-{i}" for i in range(40)]
        async with _client(handler, workers=4) as osv:
            details = await osv.fetch_details(ids)
        assert len(details) == 40
        assert peak <= 4

    @pytest.mark.anyio
    async def test_empty_input(self):
        async with _client(lambda request: httpx.Response(500)) as osv:
            assert await osv.fetch_details([]) == {}

    @pytest.mark.anyio
    async def test_id_is_url_quoted(self):
        paths = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.raw_path)
            return httpx.Response(200, json={})

        async with _client(handler) as osv:
            detail = await osv.get_vuln("weird/id")
        assert paths == [b"/v1/vulns/weird%2Fid"]
        assert detail is not None
        assert detail.id == "weird/id"
