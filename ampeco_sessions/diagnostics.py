from __future__ import annotations

from collections import Counter
from dataclasses import asdict, is_dataclass
from typing import Any

REDACTED = "***redacted***"
_SECRET_KEYS = ("token", "authorization", "AMPECO_PARTNER_TOKEN")


def redact_config(config: Any) -> dict[str, Any]:
    out = asdict(config) if is_dataclass(config) else dict(config or {})
    for k in _SECRET_KEYS:
        if out.get(k):
            out[k] = REDACTED
    return out


def report_diagnostics(ctx) -> dict[str, Any]:
    """Summarize how much of one report run could be resolved."""

    sessions = ctx.sessions
    return {
        "sessions": len(sessions),
        "pages": dict(ctx.page_counts),
        "charge_points": len(ctx.charge_points),
        "locations": len(ctx.locations),
        "users": len(ctx.users),
        "id_tags_mapped": len(ctx.tag_users),
        "evses": len(ctx.evses),
        "evse_sources": dict(Counter(ctx.evse_sources.values())),
        "sessions_without_user": sum(1 for s in sessions if not s.get("userId")),
    }
