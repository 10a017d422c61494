from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Hashable, Iterable, TypeVar

import aiohttp

from .api import AmpecoClient, ListingError, UpstreamResponseError
from .const import DEFAULT_MAX_PAGES

_LOGGER = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


async def async_walk_pages(
    client: AmpecoClient,
    url: str,
    *,
    stage: str,
    max_pages: int = DEFAULT_MAX_PAGES,
    page_counts: dict[str, int] | None = None,
) -> AsyncIterator[list[Any]]:
    """Yield the ``data`` array of each page of a cursor-paginated listing.

    Follows ``links.next`` until it is empty or ``max_pages`` pages were read.
    A failed page raises ``ListingError`` tagged with ``stage``; nothing
    collected so far is returned to the caller as if complete.
    """
    pages = 0
    next_url: str | None = url
    while next_url and pages < max_pages:
        try:
            payload = await client.async_get_json(next_url)
        except UpstreamResponseError as err:
            raise ListingError(stage, err.status, next_url, err.body) from err
        except (aiohttp.ClientError, asyncio.TimeoutError) as err:
            raise ListingError(stage, None, next_url, str(err)) from err
        pages += 1
        if page_counts is not None:
            page_counts[stage] = page_counts.get(stage, 0) + 1

        if not isinstance(payload, dict):
            payload = {}
        data = payload.get("data")
        yield data if isinstance(data, list) else []

        links = payload.get("links")
        next_url = (links.get("next") if isinstance(links, dict) else None) or None

    if next_url:
        _LOGGER.warning("Stopped %s listing at page cap %s; results may be incomplete", stage, max_pages)


async def async_fan_out(
    ids: Iterable[K],
    fetch: Callable[[K], Awaitable[V | None]],
    *,
    batch_size: int,
    done: Callable[[], bool] | None = None,
) -> dict[K, V]:
    """Run ``fetch`` for each distinct id, ``batch_size`` at a time.

    A batch is awaited in full before the next one starts. Ids whose fetch
    raises or returns ``None`` are left out of the result. ``done`` is checked
    before every batch and ends the fan-out early once it returns True.
    """
    unique = list(dict.fromkeys(ids))
    out: dict[K, V] = {}
    size = max(1, int(batch_size))
    for start in range(0, len(unique), size):
        if done is not None and done():
            break
        chunk = unique[start : start + size]
        results = await asyncio.gather(*(fetch(key) for key in chunk), return_exceptions=True)
        for key, result in zip(chunk, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                _LOGGER.debug("Skipping %s after fetch failure: %s", key, result)
                continue
            if result is not None:
                out[key] = result
    return out
