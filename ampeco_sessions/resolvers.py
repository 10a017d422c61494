"""Join stages that enrich collected sessions with related upstream resources.

Every resolver reads and writes only its own maps on the per-run
``ReportContext``; nothing here is shared between report runs. Ids are
indexed by their string form so ``5`` and ``"5"`` name the same entity.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from .api import AmpecoClient, ListingError
from .config import ReportRequest
from .const import (
    CHARGE_POINTS_PATH,
    CP_EVSE_CONCURRENCY,
    EVSES_PATH,
    ID_TAG_CONCURRENCY,
    LOCATIONS_PATH,
    STAGE_CHARGE_POINTS,
    STAGE_CP_EVSES,
    STAGE_EVSES,
    STAGE_LOCATIONS,
    USER_CONCURRENCY,
)
from .extract import (
    CHARGE_POINT_EVSES_PATHS,
    CHARGE_POINT_ID_PATHS,
    CHARGE_POINT_LOCATION_PATHS,
    EVSE_ID_PATHS,
    ID_PATHS,
    as_list,
    entity_id,
    extract_user_fields,
    first_value,
    positive_int,
)
from .pagination import async_fan_out, async_walk_pages

_LOGGER = logging.getLogger(__name__)


def id_key(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


@dataclass
class ReportContext:
    """Mutable state owned by a single report run."""

    client: AmpecoClient
    request: ReportRequest
    sessions: list[dict[str, Any]] = field(default_factory=list)
    charge_points: dict[str, dict[str, Any]] = field(default_factory=dict)
    locations: dict[str, dict[str, Any]] = field(default_factory=dict)
    users: dict[int, dict[str, Any]] = field(default_factory=dict)
    tag_users: dict[str, int] = field(default_factory=dict)
    evses: dict[str, dict[str, Any]] = field(default_factory=dict)
    evse_sources: dict[str, str] = field(default_factory=dict)
    page_counts: dict[str, int] = field(default_factory=dict)

    def session_values(self, key: str) -> list[Any]:
        """Distinct non-null values of ``key`` across sessions, in session order."""

        out: dict[str, Any] = {}
        for sess in self.sessions:
            k = id_key(sess.get(key))
            if k is not None and k not in out:
                out[k] = sess.get(key)
        return list(out.values())

    def walk(self, url: str, stage: str):
        return async_walk_pages(
            self.client,
            url,
            stage=stage,
            max_pages=self.request.max_pages,
            page_counts=self.page_counts,
        )

    def remember_evse(self, evse: Any, source: str) -> str | None:
        """Index an EVSE unless an earlier tier already resolved its id."""

        key = id_key(entity_id(evse, EVSE_ID_PATHS))
        if key is None or key in self.evses:
            return None
        self.evses[key] = evse
        self.evse_sources[key] = source
        return key


# ---------------------------------------------------------------------------
# Charge points and locations
# ---------------------------------------------------------------------------


async def _async_scan_listing(
    ctx: ReportContext,
    url: str,
    stage: str,
    wanted: set[str],
    id_paths: Iterable[str],
) -> dict[str, dict[str, Any]]:
    """Walk a listing until every wanted id is found or the listing ends."""

    found: dict[str, dict[str, Any]] = {}
    missing = set(wanted)
    if not missing:
        return found
    async for page in ctx.walk(url, stage):
        for item in page:
            key = id_key(entity_id(item, id_paths))
            if key is None or key not in missing:
                continue
            found[key] = item
            missing.discard(key)
        if not missing:
            break
    if missing:
        _LOGGER.debug("%s listing exhausted with %s ids not found", stage, len(missing))
    return found


async def async_resolve_charge_points(ctx: ReportContext) -> None:
    wanted = {id_key(v) for v in ctx.session_values("chargePointId")}
    found = await _async_scan_listing(
        ctx,
        ctx.client.listing_url(CHARGE_POINTS_PATH),
        STAGE_CHARGE_POINTS,
        wanted,
        CHARGE_POINT_ID_PATHS,
    )
    ctx.charge_points.update(found)
    # Embedded EVSEs are the first equipment tier
    for cp in found.values():
        for evse in as_list(first_value(cp, CHARGE_POINT_EVSES_PATHS)):
            ctx.remember_evse(evse, STAGE_CHARGE_POINTS)


async def async_resolve_locations(ctx: ReportContext) -> None:
    wanted = {
        key
        for key in (id_key(first_value(cp, CHARGE_POINT_LOCATION_PATHS)) for cp in ctx.charge_points.values())
        if key is not None
    }
    found = await _async_scan_listing(
        ctx,
        ctx.client.listing_url(LOCATIONS_PATH),
        STAGE_LOCATIONS,
        wanted,
        ID_PATHS,
    )
    ctx.locations.update(found)


# ---------------------------------------------------------------------------
# Holder identity
# ---------------------------------------------------------------------------


def has_label(session: dict[str, Any]) -> bool:
    label = session.get("idTagLabel")
    return bool(label) and bool(str(label).strip())


async def async_resolve_users(ctx: ReportContext) -> None:
    client = ctx.client

    async def _fetch_user(uid: int) -> dict[str, Any] | None:
        user = await client.user(uid)
        return extract_user_fields(user) if user is not None else None

    async def _lookup_tag(tag: str) -> int | None:
        return positive_int(await client.id_tag_user_id(tag))

    user_ids = [s["userId"] for s in ctx.sessions if positive_int(s.get("userId")) is not None]
    ctx.users.update(await async_fan_out(user_ids, _fetch_user, batch_size=USER_CONCURRENCY))

    tags = [
        str(s["idTag"])
        for s in ctx.sessions
        if not has_label(s) and s.get("idTag") and id_key(s.get("idTag")) is not None
    ]
    ctx.tag_users.update(await async_fan_out(tags, _lookup_tag, batch_size=ID_TAG_CONCURRENCY))

    extra_ids = [uid for uid in ctx.tag_users.values() if uid not in ctx.users]
    ctx.users.update(await async_fan_out(extra_ids, _fetch_user, batch_size=USER_CONCURRENCY))


def user_for_session(ctx: ReportContext, session: dict[str, Any]) -> dict[str, Any] | None:
    uid = session.get("userId")
    if uid and uid in ctx.users:
        return ctx.users[uid]
    tag = id_key(session.get("idTag"))
    tag_uid = ctx.tag_users.get(tag) if tag is not None else None
    if tag_uid is not None:
        return ctx.users.get(tag_uid)
    return None


def holder_name(session: dict[str, Any], user: dict[str, Any] | None) -> str | None:
    """Existing label, then user name, then "first last", then email."""

    if has_label(session):
        return str(session["idTagLabel"]).strip()
    if not user:
        return None
    if user.get("name"):
        return user["name"]
    joined = " ".join(str(p) for p in (user.get("firstName"), user.get("lastName")) if p)
    if joined:
        return joined
    return user.get("email") or None


# ---------------------------------------------------------------------------
# Equipment
# ---------------------------------------------------------------------------


async def async_resolve_evses(ctx: ReportContext) -> None:
    """Resolve session EVSEs: embedded charge-point data, per charge point, then global."""

    wanted = {id_key(v) for v in ctx.session_values("evseId")}
    missing = {key for key in wanted if key not in ctx.evses}
    if not missing:
        return

    def _absorb(page: list[Any], source: str) -> None:
        for evse in page:
            key = id_key(entity_id(evse, EVSE_ID_PATHS))
            if key in missing and ctx.remember_evse(evse, source) is not None:
                missing.discard(key)

    async def _walk_charge_point(cp_id: Any) -> None:
        url = ctx.client.charge_point_evses_url(cp_id)
        try:
            async for page in ctx.walk(url, STAGE_CP_EVSES):
                _absorb(page, STAGE_CP_EVSES)
                if not missing:
                    break
        except ListingError as err:
            _LOGGER.debug("EVSE listing for charge point %s unavailable: %s", cp_id, err)

    cp_ids: dict[str, Any] = {}
    for sess in ctx.sessions:
        cp_key = id_key(sess.get("chargePointId"))
        if cp_key is not None and id_key(sess.get("evseId")) in missing:
            cp_ids.setdefault(cp_key, sess["chargePointId"])

    await async_fan_out(
        cp_ids.values(),
        _walk_charge_point,
        batch_size=CP_EVSE_CONCURRENCY,
        done=lambda: not missing,
    )
    if not missing:
        return

    try:
        async for page in ctx.walk(ctx.client.listing_url(EVSES_PATH), STAGE_EVSES):
            _absorb(page, STAGE_EVSES)
            if not missing:
                break
    except ListingError as err:
        # Not every deployment exposes the global EVSE resource
        _LOGGER.debug("Global EVSE listing unavailable: %s", err)
    if missing:
        _LOGGER.debug("%s EVSE ids left unresolved", len(missing))
