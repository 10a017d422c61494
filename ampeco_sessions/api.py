from __future__ import annotations

import json
import logging
import re
from typing import Any, Mapping

import aiohttp
import async_timeout
from yarl import URL

from .const import (
    CHARGE_POINTS_PATH,
    DEFAULT_API_TIMEOUT,
    ID_TAGS_PATH,
    MAX_PER_PAGE,
    USERS_PATH,
)

_LOGGER = logging.getLogger(__name__)

_BEARER_RE = re.compile(r"^Bearer\s", re.IGNORECASE)


class AmpecoError(Exception):
    """Base exception for the session report pipeline."""


class InvalidRequest(AmpecoError):
    """Raised when the report request body cannot be parsed or validated."""


class MissingCredentials(AmpecoError):
    """Raised when no partner token is configured."""


class UpstreamResponseError(AmpecoError):
    """Raised when the upstream API answers with a non-success status."""

    def __init__(self, status: int | None, url: str, body: str = "") -> None:
        super().__init__(f"Upstream error {status} at {url}")
        self.status = status
        self.url = url
        self.body = body


class ListingError(UpstreamResponseError):
    """Raised when a mandatory listing walk fails; aborts the whole run."""

    def __init__(self, stage: str, status: int | None, url: str, body: str = "") -> None:
        super().__init__(status, url, body)
        self.stage = stage

    def as_payload(self) -> dict[str, Any]:
        return {
            "stage": self.stage,
            "upstreamStatus": self.status,
            "url": self.url,
            "body": self.body,
        }


def bearer_header(token: str) -> str:
    """Return an Authorization header value, adding the Bearer scheme if absent."""

    token = (token or "").strip()
    if not token:
        raise MissingCredentials("Missing partner token")
    if _BEARER_RE.match(token):
        return token
    return f"Bearer {token}"


def unwrap_entity(payload: Any) -> Any:
    """Per-id endpoints return the entity either bare or as ``{"data": {...}}``."""

    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        return payload["data"]
    return payload


class AmpecoClient:
    def __init__(
        self,
        session: aiohttp.ClientSession,
        base_url: str,
        token: str,
        timeout: int = DEFAULT_API_TIMEOUT,
    ):
        self._s = session
        self._base = str(base_url).rstrip("/")
        self._timeout = int(timeout)
        self._h = {
            "Authorization": bearer_header(token),
            "Accept": "application/json",
        }

    @property
    def base_url(self) -> str:
        return self._base

    def url(self, path: str, query: Mapping[str, Any] | None = None) -> str:
        """Build an absolute URL for a resource path with an ordered query."""

        url = URL(f"{self._base}{path}")
        if query:
            url = url.with_query({k: str(v) for k, v in query.items()})
        return str(url)

    def listing_url(
        self,
        path: str,
        *,
        per_page: int = MAX_PER_PAGE,
        extra: Mapping[str, Any] | None = None,
    ) -> str:
        """First-page URL of a cursor listing; the empty cursor enables cursor paging."""

        query: dict[str, Any] = {
            "per_page": min(int(per_page), MAX_PER_PAGE),
            "cursor": "",
        }
        if extra:
            query.update(extra)
        return self.url(path, query)

    def charge_point_evses_url(self, charge_point_id: Any) -> str:
        return self.listing_url(f"{CHARGE_POINTS_PATH}/{charge_point_id}/evses")

    async def _json(self, method: str, url: str, **kwargs) -> Any:
        """Perform an HTTP request and decode the JSON body.

        Any status outside 2xx raises ``UpstreamResponseError`` carrying the
        response text so callers can surface it verbatim.
        """
        headers = dict(self._h)
        extra_headers = kwargs.pop("headers", None)
        if isinstance(extra_headers, dict):
            headers.update(extra_headers)

        async with async_timeout.timeout(self._timeout):
            async with self._s.request(method, url, headers=headers, **kwargs) as r:
                if not 200 <= r.status < 300:
                    try:
                        body = await r.text()
                    except Exception:  # noqa: BLE001 - body is informational only
                        body = ""
                    _LOGGER.debug("%s %s returned HTTP %s", method, url, r.status)
                    raise UpstreamResponseError(r.status, url, body)
                text = await r.text()
        if not text:
            return {}
        try:
            return json.loads(text)
        except ValueError as err:
            raise UpstreamResponseError(r.status, url, text[:512]) from err

    async def async_get_json(self, url: str) -> Any:
        return await self._json("GET", url)

    async def user(self, user_id: Any) -> dict | None:
        """Fetch one user by id. Returns ``None`` when the payload is not an object."""

        data = unwrap_entity(await self.async_get_json(f"{self._base}{USERS_PATH}/{user_id}"))
        return data if isinstance(data, dict) else None

    async def id_tag_user_id(self, tag: str) -> Any:
        """Look up the user id bound to an id-tag uid, if any."""

        url = self.url(ID_TAGS_PATH, {"filter[uid]": tag, "per_page": 1})
        payload = await self.async_get_json(url)
        rows = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(rows, list) or not rows or not isinstance(rows[0], dict):
            return None
        row = rows[0]
        user_id = row.get("userId")
        if user_id is None and isinstance(row.get("user"), dict):
            user_id = row["user"].get("id")
        return user_id
