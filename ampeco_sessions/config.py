from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any, Mapping

import voluptuous as vol

from .api import InvalidRequest, MissingCredentials
from .const import (
    CONF_BASE_URL,
    CONF_TIMEOUT,
    CONF_TOKEN,
    DEFAULT_API_TIMEOUT,
    DEFAULT_BASE_URL,
    DEFAULT_MAX_PAGES,
    ENV_BASE_URL,
    ENV_TIMEOUT,
    ENV_TOKEN,
    MAX_PER_PAGE,
    REQ_ENDED_AFTER,
    REQ_ENDED_BEFORE,
    REQ_MAX_PAGES,
    REQ_PER_PAGE,
    REQ_STARTED_AFTER,
    REQ_STARTED_BEFORE,
    REQ_TARIFF_SNAPSHOT_ID,
)
from .extract import finite_number


def page_size(value: Any) -> int:
    """Clamp a requested page size to the upstream maximum.

    Missing, zero, negative or non-numeric sizes fall back to the maximum.
    """
    num = finite_number(value)
    if num is None or num < 1:
        return MAX_PER_PAGE
    return int(min(num, MAX_PER_PAGE))


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (dict, list, bool)):
        raise vol.Invalid("expected a timestamp string")
    return str(value)


REQUEST_SCHEMA = vol.Schema(
    {
        vol.Optional(REQ_STARTED_AFTER, default=None): _optional_text,
        vol.Optional(REQ_STARTED_BEFORE, default=None): _optional_text,
        vol.Optional(REQ_ENDED_AFTER, default=None): _optional_text,
        vol.Optional(REQ_ENDED_BEFORE, default=None): _optional_text,
        vol.Optional(REQ_TARIFF_SNAPSHOT_ID, default=None): vol.Any(None, int, str),
        vol.Optional(REQ_PER_PAGE, default=MAX_PER_PAGE): page_size,
        vol.Optional(REQ_MAX_PAGES, default=DEFAULT_MAX_PAGES): vol.Any(
            None, vol.All(vol.Coerce(int), vol.Range(min=1))
        ),
    },
    extra=vol.ALLOW_EXTRA,
)

CONFIG_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_TOKEN): vol.All(str, vol.Length(min=1)),
        vol.Optional(CONF_BASE_URL, default=DEFAULT_BASE_URL): vol.All(str, vol.Length(min=1)),
        vol.Optional(CONF_TIMEOUT, default=DEFAULT_API_TIMEOUT): vol.All(vol.Coerce(int), vol.Range(min=1)),
    }
)


def parse_json_body(raw: bytes | str | None) -> dict[str, Any]:
    """Decode a request body; an empty body is an empty request."""

    if raw is None:
        return {}
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as err:
            raise InvalidRequest("Invalid JSON body") from err
    if not raw.strip():
        return {}
    try:
        body = json.loads(raw)
    except ValueError as err:
        raise InvalidRequest("Invalid JSON body") from err
    if not isinstance(body, dict):
        raise InvalidRequest("Invalid JSON body")
    return body


@dataclass(frozen=True)
class ReportRequest:
    """Filters and paging limits for one report run."""

    started_after: str | None = None
    started_before: str | None = None
    ended_after: str | None = None
    ended_before: str | None = None
    tariff_snapshot_id: int | str | None = None
    per_page: int = MAX_PER_PAGE
    max_pages: int = DEFAULT_MAX_PAGES

    @classmethod
    def from_body(cls, body: Mapping[str, Any] | None) -> ReportRequest:
        try:
            data = REQUEST_SCHEMA(dict(body or {}))
        except vol.Invalid as err:
            raise InvalidRequest(f"Invalid request: {err}") from err
        return cls(
            started_after=data[REQ_STARTED_AFTER],
            started_before=data[REQ_STARTED_BEFORE],
            ended_after=data[REQ_ENDED_AFTER],
            ended_before=data[REQ_ENDED_BEFORE],
            tariff_snapshot_id=data[REQ_TARIFF_SNAPSHOT_ID],
            per_page=data[REQ_PER_PAGE],
            max_pages=data[REQ_MAX_PAGES] or DEFAULT_MAX_PAGES,
        )

    def session_filters(self) -> dict[str, str]:
        """Upstream ``filter[...]`` query parameters for the sessions listing."""

        filters: dict[str, str] = {}
        for key, value in (
            (REQ_STARTED_AFTER, self.started_after),
            (REQ_STARTED_BEFORE, self.started_before),
            (REQ_ENDED_AFTER, self.ended_after),
            (REQ_ENDED_BEFORE, self.ended_before),
        ):
            if value:
                filters[f"filter[{key}]"] = value
        if self.tariff_snapshot_id is not None:
            filters[f"filter[{REQ_TARIFF_SNAPSHOT_ID}]"] = str(self.tariff_snapshot_id)
        return filters


@dataclass(frozen=True)
class ApiConfig:
    token: str
    base_url: str = DEFAULT_BASE_URL
    timeout: int = DEFAULT_API_TIMEOUT

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ApiConfig:
        if not str(data.get(CONF_TOKEN) or "").strip():
            raise MissingCredentials(f"Missing {ENV_TOKEN}")
        try:
            conf = CONFIG_SCHEMA({k: v for k, v in data.items() if v not in (None, "")})
        except vol.Invalid as err:
            raise InvalidRequest(f"Invalid configuration: {err}") from err
        return cls(
            token=conf[CONF_TOKEN].strip(),
            base_url=conf[CONF_BASE_URL].rstrip("/"),
            timeout=conf[CONF_TIMEOUT],
        )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ApiConfig:
        env = os.environ if environ is None else environ
        return cls.from_mapping(
            {
                CONF_TOKEN: env.get(ENV_TOKEN, ""),
                CONF_BASE_URL: env.get(ENV_BASE_URL),
                CONF_TIMEOUT: env.get(ENV_TIMEOUT),
            }
        )
