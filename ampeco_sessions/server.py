from __future__ import annotations

import logging
import os
from typing import Any, Mapping

import aiohttp
from aiohttp import web

from .api import AmpecoClient, InvalidRequest, ListingError, MissingCredentials
from .config import ApiConfig, ReportRequest, parse_json_body
from .const import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    ENV_HOST,
    ENV_PORT,
    ENV_TOKEN,
    REPORT_ROUTE,
)
from .coordinator import SessionReportCoordinator
from .diagnostics import redact_config

_LOGGER = logging.getLogger(__name__)

CLIENT_SESSION_KEY = web.AppKey("client_session", aiohttp.ClientSession)
ENVIRON_KEY = web.AppKey("environ", dict)


async def async_handle_report(
    method: str,
    raw_body: bytes | str | None,
    *,
    session: aiohttp.ClientSession,
    environ: Mapping[str, str] | None = None,
) -> tuple[int, dict[str, Any]]:
    """Run one report request, returning ``(http_status, json_payload)``."""

    if str(method).upper() != "POST":
        return 405, {"error": "Method Not Allowed. Use POST."}

    try:
        config = ApiConfig.from_env(environ)
    except MissingCredentials:
        return 500, {"error": f"Missing {ENV_TOKEN}"}
    except InvalidRequest as err:
        return 500, {"error": str(err)}

    try:
        request = ReportRequest.from_body(parse_json_body(raw_body))
    except InvalidRequest as err:
        return 400, {"error": str(err)}

    _LOGGER.debug("Report request %s with config %s", request, redact_config(config))
    client = AmpecoClient(session, config.base_url, config.token, timeout=config.timeout)
    coordinator = SessionReportCoordinator(client)
    try:
        payload = await coordinator.async_build_report(request)
    except ListingError as err:
        status = err.status if isinstance(err.status, int) and err.status >= 400 else 502
        return status, err.as_payload()
    return 200, payload


async def _handle_report(request: web.Request) -> web.Response:
    raw = await request.read()
    status, payload = await async_handle_report(
        request.method,
        raw,
        session=request.app[CLIENT_SESSION_KEY],
        environ=request.app[ENVIRON_KEY],
    )
    return web.json_response(payload, status=status)


async def _client_session_ctx(app: web.Application):
    async with aiohttp.ClientSession() as session:
        app[CLIENT_SESSION_KEY] = session
        yield


def create_app(environ: Mapping[str, str] | None = None) -> web.Application:
    app = web.Application()
    app[ENVIRON_KEY] = dict(os.environ if environ is None else environ)
    app.cleanup_ctx.append(_client_session_ctx)
    app.router.add_route("*", REPORT_ROUTE, _handle_report)
    return app


def main() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    host = os.environ.get(ENV_HOST) or DEFAULT_HOST
    port = int(os.environ.get(ENV_PORT) or DEFAULT_PORT)
    web.run_app(create_app(), host=host, port=port)
