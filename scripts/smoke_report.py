from __future__ import annotations

import asyncio
import json
import logging
import os
import pathlib
import sys

import aiohttp

# Ensure repo root is on sys.path when running from scripts/
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ampeco_sessions.api import AmpecoClient, ListingError, MissingCredentials  # noqa: E402
from ampeco_sessions.config import ApiConfig, ReportRequest  # noqa: E402
from ampeco_sessions.coordinator import SessionReportCoordinator  # noqa: E402


async def main() -> None:
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO").upper())
    try:
        config = ApiConfig.from_env()
    except MissingCredentials:
        print("Missing env. Set AMPECO_PARTNER_TOKEN (and optionally AMPECO_BASE_URL).")
        return

    body = {
        "startedAfter": os.environ.get("STARTED_AFTER") or input("startedAfter (ISO, blank for none): ").strip(),
        "startedBefore": os.environ.get("STARTED_BEFORE") or None,
        "maxPages": os.environ.get("MAX_PAGES") or 5,
    }
    request = ReportRequest.from_body({k: v for k, v in body.items() if v})

    async with aiohttp.ClientSession() as session:
        client = AmpecoClient(session, config.base_url, config.token, timeout=config.timeout)
        coordinator = SessionReportCoordinator(client)
        try:
            report = await coordinator.async_build_report(request)
        except ListingError as err:
            print(f"Stage {err.stage} failed with HTTP {err.status} at {err.url}")
            print(err.body[:500])
            return

    print(f"{config.base_url}: {report['count']} session(s) in {coordinator.latency_ms} ms")
    print(json.dumps(coordinator.last_diagnostics, indent=2))
    for row in report["data"][:20]:
        print(
            f"- {row.get('id')} | {row.get('chargePointName')} | {row.get('city')} | "
            f"holder={row.get('holderName')} | evse={row.get('evseType')} {row.get('maxPowerKw')} kW | "
            f"{row.get('kWh')} kWh"
        )


if __name__ == "__main__":
    asyncio.run(main())
