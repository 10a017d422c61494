from __future__ import annotations

import logging
import uuid
from typing import Any

from .api import AmpecoClient
from .config import ReportRequest
from .const import SESSIONS_PATH, STAGE_SESSIONS
from .extract import dig, finite_number, first_value, positive_int
from .pagination import async_walk_pages

_LOGGER = logging.getLogger(__name__)

SESSION_ENERGY_WH_PATHS = ("energy", "energyConsumption.total")
SESSION_ID_TAG_PATHS = ("idTag", "authorization.rfidTagUid")
SESSION_USER_ID_PATHS = ("userId", "authorization.userId")

NO_USER = 0


def build_sessions_url(client: AmpecoClient, request: ReportRequest) -> str:
    extra: dict[str, Any] = {"withAuthorization": "true"}
    extra.update(request.session_filters())
    return client.listing_url(SESSIONS_PATH, per_page=request.per_page, extra=extra)


def session_key(raw: dict[str, Any]) -> str:
    """Dedup key; records without an id get a unique key and are never merged."""

    sid = raw.get("id")
    if sid is None:
        return uuid.uuid4().hex
    return str(sid)


def resolve_user_id(raw: dict[str, Any]) -> int:
    for path in SESSION_USER_ID_PATHS:
        uid = positive_int(dig(raw, path))
        if uid is not None:
            return uid
    return NO_USER


def resolve_id_tag(raw: dict[str, Any]) -> Any:
    return first_value(raw, SESSION_ID_TAG_PATHS)


def energy_kwh(raw: dict[str, Any]) -> float:
    """Session energy in kWh (upstream reports Wh), rounded to 3 decimals."""

    wh = finite_number(first_value(raw, SESSION_ENERGY_WH_PATHS)) or 0.0
    return round(wh / 1000, 3)


def normalize_session(raw: dict[str, Any]) -> dict[str, Any]:
    """Copy a raw session, adding resolved identity and energy fields.

    The upstream ``userId``/``idTag`` values are kept under ``userIdRaw`` and
    ``idTagRaw``.
    """
    out = dict(raw)
    out["userIdRaw"] = raw.get("userId")
    out["userId"] = resolve_user_id(raw)
    out["idTagRaw"] = raw.get("idTag")
    out["idTag"] = resolve_id_tag(raw)
    out["kWh"] = energy_kwh(raw)
    return out


async def async_collect_sessions(
    client: AmpecoClient,
    request: ReportRequest,
    *,
    page_counts: dict[str, int] | None = None,
) -> list[dict[str, Any]]:
    """Walk the sessions listing and return de-duplicated, normalized sessions."""

    sessions: list[dict[str, Any]] = []
    seen: set[str] = set()
    url = build_sessions_url(client, request)
    async for page in async_walk_pages(
        client,
        url,
        stage=STAGE_SESSIONS,
        max_pages=request.max_pages,
        page_counts=page_counts,
    ):
        for raw in page:
            if not isinstance(raw, dict):
                continue
            key = session_key(raw)
            if key in seen:
                continue
            seen.add(key)
            sessions.append(normalize_session(raw))
    _LOGGER.debug("Collected %s sessions", len(sessions))
    return sessions
