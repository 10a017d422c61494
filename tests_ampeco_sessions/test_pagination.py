import asyncio

import aiohttp
import pytest

from ampeco_sessions.api import ListingError
from ampeco_sessions.pagination import async_fan_out, async_walk_pages

PATH = "/public-api/resources/things/v1.0"


@pytest.mark.asyncio
async def test_walk_follows_next_links(routed_client, paged):
    client = routed_client({PATH: paged(PATH, [[1, 2], [3], []])})
    counts = {}
    seen = []
    async for page in async_walk_pages(client, client.listing_url(PATH), stage="things", page_counts=counts):
        seen.append(page)
    assert seen == [[1, 2], [3], []]
    assert counts == {"things": 3}


@pytest.mark.asyncio
async def test_walk_tolerates_odd_envelopes(routed_client):
    client = routed_client({PATH: {"data": {"not": "a list"}, "links": None}})
    pages = [p async for p in async_walk_pages(client, client.listing_url(PATH), stage="things")]
    assert pages == [[]]


@pytest.mark.asyncio
async def test_walk_failure_carries_stage_status_url_body(routed_client, fail):
    client = routed_client({PATH: fail(403, "forbidden")})
    url = client.listing_url(PATH)
    with pytest.raises(ListingError) as exc:
        async for _ in async_walk_pages(client, url, stage="things"):
            pass
    err = exc.value
    assert err.stage == "things"
    assert err.status == 403
    assert err.url == url
    assert err.as_payload() == {"stage": "things", "upstreamStatus": 403, "url": url, "body": "forbidden"}


@pytest.mark.asyncio
async def test_walk_failure_on_later_page(routed_client, paged):
    handler = paged(PATH, [[1], [2]])

    def _second_page_fails(url):
        if url.query.get("cursor"):
            raise aiohttp.ClientConnectionError("reset")
        return handler(url)

    client = routed_client({PATH: _second_page_fails})
    got = []
    with pytest.raises(ListingError) as exc:
        async for page in async_walk_pages(client, client.listing_url(PATH), stage="things"):
            got.extend(page)
    assert got == [1]
    assert exc.value.status is None
    assert "reset" in exc.value.body


@pytest.mark.asyncio
async def test_fan_out_bounds_concurrency_and_skips_failures():
    active = 0
    peak = 0

    async def fetch(n):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0)
        active -= 1
        if n == 3:
            raise RuntimeError("nope")
        if n == 4:
            return None
        return n * 10

    out = await async_fan_out([1, 2, 3, 4, 5, 6, 7, 1, 2], fetch, batch_size=3)
    assert out == {1: 10, 2: 20, 5: 50, 6: 60, 7: 70}
    assert peak <= 3


@pytest.mark.asyncio
async def test_fan_out_stops_when_done():
    calls = []

    async def fetch(n):
        calls.append(n)
        return n

    out = await async_fan_out(range(10), fetch, batch_size=2, done=lambda: len(calls) >= 4)
    assert calls == [0, 1, 2, 3]
    assert out == {0: 0, 1: 1, 2: 2, 3: 3}
