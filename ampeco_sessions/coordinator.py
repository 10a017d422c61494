from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Mapping

from .api import AmpecoClient, ListingError
from .config import ReportRequest
from .diagnostics import report_diagnostics
from .extract import extract_charge_point_fields, extract_evse_fields, extract_location_fields
from .resolvers import (
    ReportContext,
    async_resolve_charge_points,
    async_resolve_evses,
    async_resolve_locations,
    async_resolve_users,
    holder_name,
    id_key,
    user_for_session,
)
from .sessions import async_collect_sessions

_LOGGER = logging.getLogger(__name__)


def merge_session(session: Mapping[str, Any], extra: Mapping[str, Any]) -> dict[str, Any]:
    """Shallow-copy ``session`` and add ``extra`` without touching existing keys."""

    out = dict(session)
    for key, value in extra.items():
        if key not in out:
            out[key] = value
    return out


def enrich_session(ctx: ReportContext, session: dict[str, Any]) -> dict[str, Any]:
    cp_key = id_key(session.get("chargePointId"))
    cp_fields = extract_charge_point_fields(ctx.charge_points.get(cp_key) if cp_key else None)
    loc_key = id_key(cp_fields["locationId"])
    loc_fields = extract_location_fields(ctx.locations.get(loc_key) if loc_key else None)

    user = user_for_session(ctx, session)
    evse_key = id_key(session.get("evseId"))
    evse_fields = extract_evse_fields(ctx.evses.get(evse_key) if evse_key else None)

    extra: dict[str, Any] = {
        "chargePointName": cp_fields["chargePointName"],
        "locationId": cp_fields["locationId"],
        "holderName": holder_name(session, user),
        "holderEmail": (user or {}).get("email"),
    }
    extra.update(evse_fields)
    extra.update(loc_fields)
    return merge_session(session, extra)


class SessionReportCoordinator:
    """Builds the denormalized session report, one fresh context per run."""

    def __init__(self, client: AmpecoClient):
        self.client = client
        self.last_success_utc: datetime | None = None
        self.latency_ms: int | None = None
        self.last_error: str | None = None
        self.last_diagnostics: dict[str, Any] | None = None

    async def async_build_report(self, request: ReportRequest | None = None) -> dict[str, Any]:
        ctx = ReportContext(client=self.client, request=request or ReportRequest())
        t0 = time.monotonic()
        try:
            ctx.sessions = await async_collect_sessions(
                self.client, ctx.request, page_counts=ctx.page_counts
            )
            if not ctx.sessions:
                data: list[dict[str, Any]] = []
            else:
                await async_resolve_charge_points(ctx)
                await async_resolve_locations(ctx)
                await async_resolve_users(ctx)
                await async_resolve_evses(ctx)
                data = [enrich_session(ctx, s) for s in ctx.sessions]
        except ListingError as err:
            self.last_error = f"{err.stage}: HTTP {err.status}"
            _LOGGER.warning("Report failed at stage %s (status %s) for %s", err.stage, err.status, err.url)
            raise
        finally:
            self.latency_ms = int((time.monotonic() - t0) * 1000)

        self.last_error = None
        self.last_success_utc = datetime.now(timezone.utc)
        self.last_diagnostics = report_diagnostics(ctx)
        _LOGGER.info("Built session report with %s sessions in %s ms", len(data), self.latency_ms)
        _LOGGER.debug("Report diagnostics: %s", self.last_diagnostics)
        return {"count": len(data), "data": data}
