"""Tests for HttpEntityDirectory over a mocked httpx transport."""

import json
import uuid

import httpx
import pytest

from ruc_ownership.adapters.directory.http_entity_directory import HttpEntityDirectory

ALFA = {"id": str(uuid.uuid4()), "tax_id": "20100000001", "name": "Alfa Logística SAC"}
BETA = {"id": str(uuid.uuid4()), "tax_id": "20100000002", "name": "Beta Textil EIRL", "district": "Ate"}


class Recorder:
    """Fake directory service that records every request it serves."""

    def __init__(self, status: int = 200):
        self.status = status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status != 200:
            return httpx.Response(self.status, json={"detail": "boom"})
        if request.url.path == "/entities/resolve":
            wanted = set(json.loads(request.content)["tax_ids"])
            return httpx.Response(200, json={"items": [e for e in (ALFA, BETA) if e["tax_id"] in wanted]})
        if request.url.path == "/entities/lookup":
            wanted = set(json.loads(request.content)["ids"])
            return httpx.Response(200, json={"items": [e for e in (ALFA, BETA) if e["id"] in wanted]})
        if request.url.path == "/entities/search":
            return httpx.Response(200, json={"items": [BETA]})
        return httpx.Response(404)


def _directory(recorder: Recorder) -> HttpEntityDirectory:
    return HttpEntityDirectory(
        base_url="http://directory.test/", timeout=1.0, transport=httpx.MockTransport(recorder)
    )


@pytest.mark.asyncio
async def test_resolve_tax_ids_caches_hits():
    recorder = Recorder()
    directory = _directory(recorder)

    first = await directory.resolve_tax_ids(["20100000001", "20999999999"])
    assert list(first) == ["20100000001"]
    assert first["20100000001"].name == "Alfa Logística SAC"

    again = await directory.resolve_tax_ids(["20100000001"])
    assert again["20100000001"].id == uuid.UUID(ALFA["id"])
    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_get_many_and_search():
    recorder = Recorder()
    directory = _directory(recorder)

    found = await directory.get_many([uuid.UUID(BETA["id"]), uuid.uuid4()])
    assert [e.district for e in found.values()] == ["Ate"]

    results = await directory.search("beta", limit=5)
    assert [e.tax_id for e in results] == ["20100000002"]
    assert recorder.requests[-1].url.params["limit"] == "5"
    assert await directory.search("   ") == []


@pytest.mark.asyncio
async def test_server_errors_propagate():
    directory = _directory(Recorder(status=503))
    with pytest.raises(httpx.HTTPStatusError):
        await directory.resolve_tax_ids(["20100000001"])


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_cached_entities_expire_after_ttl():
    recorder = Recorder()
    clock = Clock()
    directory = HttpEntityDirectory(
        base_url="http://directory.test", transport=httpx.MockTransport(recorder),
        cache_ttl=60.0, clock=clock,
    )

    await directory.resolve_tax_ids(["20100000001"])
    clock.now = 59.0
    await directory.resolve_tax_ids(["20100000001"])
    assert len(recorder.requests) == 1

    clock.now = 61.0
    await directory.resolve_tax_ids(["20100000001"])
    assert len(recorder.requests) == 2


@pytest.mark.asyncio
async def test_cache_keeps_only_the_most_recent_entities():
    recorder = Recorder()
    directory = HttpEntityDirectory(
        base_url="http://directory.test", transport=httpx.MockTransport(recorder), cache_size=1,
    )

    await directory.resolve_tax_ids(["20100000001"])
    await directory.resolve_tax_ids(["20100000002"])
    await directory.resolve_tax_ids(["20100000002"])
    assert len(recorder.requests) == 2

    await directory.resolve_tax_ids(["20100000001"])
    assert len(recorder.requests) == 3


@pytest.mark.asyncio
async def test_search_follows_pages_until_a_short_one():
    catalog = [
        {"id": str(uuid.uuid4()), "tax_id": f"20{i:09d}", "name": f"Empresa Norte {i}"}
        for i in range(1203)
    ]
    offsets: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        offset = int(request.url.params["offset"])
        limit = int(request.url.params["limit"])
        offsets.append(request.url.params["offset"])
        return httpx.Response(200, json={"items": catalog[offset:offset + limit]})

    directory = HttpEntityDirectory(
        base_url="http://directory.test", transport=httpx.MockTransport(handler)
    )

    results = await directory.search("norte")
    assert len(results) == 1203
    assert results[-1].tax_id == "20000001202"
    assert offsets == ["0", "500", "1000"]
