"""Schema-tolerant field extraction for AMPECO resource payloads.

Different tenant deployments expose the same logical field under different
keys (``latitude`` vs ``lat``, ``address`` vs ``siteAddress``...). Each logical
field is described by an ordered tuple of dotted key paths; the first path that
resolves to a non-``None`` value wins. Extend the tuples when a new upstream
shape shows up.
"""
from __future__ import annotations

import math
from typing import Any, Iterable, Mapping

ID_PATHS = ("id",)
CHARGE_POINT_ID_PATHS = ("id", "chargePointId")
EVSE_ID_PATHS = ("id", "evseId")

CHARGE_POINT_NAME_PATHS = ("name", "title", "reference", "code")
CHARGE_POINT_LOCATION_PATHS = ("locationId",)
CHARGE_POINT_EVSES_PATHS = ("evses",)

LOCATION_NAME_PATHS = ("name", "title")
LOCATION_ADDRESS_PATHS = ("address", "siteAddress", "location.address")
ADDRESS_LINE1_PATHS = ("line1", "addressLine1", "street", "line")
ADDRESS_CITY_PATHS = ("city", "town", "locality")
ADDRESS_COUNTRY_PATHS = ("country", "countryCode")
LOCATION_GEO_PATHS = ("geoposition", "geo", "location.geoposition")
GEO_LATITUDE_PATHS = ("latitude", "lat")
GEO_LONGITUDE_PATHS = ("longitude", "lng")

USER_FIRST_NAME_PATHS = ("firstName", "firstname")
USER_LAST_NAME_PATHS = ("lastName", "lastname")
USER_EMAIL_PATHS = ("email",)
USER_NAME_PATHS = ("name",)

EVSE_TYPE_PATHS = ("type", "evseType", "currentType", "powerType", "dcAc")
EVSE_CONNECTORS_PATHS = ("connectors", "connectorList")
CONNECTOR_STANDARD_PATHS = ("standard", "type", "connectorType", "format")
EVSE_POWER_KW_PATHS = ("maxPowerKw", "powerKw", "power")
EVSE_POWER_W_PATHS = ("maxPowerW", "powerW")


def dig(obj: Any, path: str) -> Any:
    """Follow a dotted key path, returning ``None`` at the first missing hop."""

    cur = obj
    for key in path.split("."):
        if not isinstance(cur, Mapping):
            return None
        cur = cur.get(key)
        if cur is None:
            return None
    return cur


def first_value(obj: Any, paths: Iterable[str]) -> Any:
    """Return the value of the first candidate path that is not ``None``."""

    if not isinstance(obj, Mapping):
        return None
    for path in paths:
        val = dig(obj, path)
        if val is not None:
            return val
    return None


def first_truthy(obj: Any, paths: Iterable[str]) -> Any:
    if not isinstance(obj, Mapping):
        return None
    for path in paths:
        val = dig(obj, path)
        if val:
            return val
    return None


def finite_number(value: Any) -> float | None:
    """Coerce to a finite float; booleans, blanks and garbage yield ``None``."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(num):
        return None
    return num


def positive_int(value: Any) -> int | None:
    """Return ``value`` as an int when it is a finite positive integer."""

    num = finite_number(value)
    if num is None or num <= 0 or not num.is_integer():
        return None
    return int(num)


def entity_id(obj: Any, paths: Iterable[str] = ID_PATHS) -> Any:
    return first_value(obj, paths)


def as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def extract_charge_point_fields(cp: Any) -> dict[str, Any]:
    return {
        "chargePointName": first_value(cp, CHARGE_POINT_NAME_PATHS),
        "locationId": first_value(cp, CHARGE_POINT_LOCATION_PATHS),
    }


def extract_location_fields(loc: Any) -> dict[str, Any]:
    address = first_value(loc, LOCATION_ADDRESS_PATHS)
    geo = first_value(loc, LOCATION_GEO_PATHS)
    return {
        "locationName": first_value(loc, LOCATION_NAME_PATHS),
        "addressLine1": first_value(address, ADDRESS_LINE1_PATHS),
        "city": first_value(address, ADDRESS_CITY_PATHS),
        "country": first_value(address, ADDRESS_COUNTRY_PATHS),
        "latitude": first_value(geo, GEO_LATITUDE_PATHS),
        "longitude": first_value(geo, GEO_LONGITUDE_PATHS),
    }


def extract_user_fields(user: Any) -> dict[str, Any]:
    first = first_value(user, USER_FIRST_NAME_PATHS)
    last = first_value(user, USER_LAST_NAME_PATHS)
    name = first_value(user, USER_NAME_PATHS)
    if name is None:
        name = " ".join(str(part) for part in (first, last) if part) or None
    return {
        "firstName": first,
        "lastName": last,
        "email": first_value(user, USER_EMAIL_PATHS),
        "name": name,
    }


def extract_evse_fields(evse: Any) -> dict[str, Any]:
    if not isinstance(evse, Mapping):
        return {"evseType": None, "connectorStandards": None, "maxPowerKw": None}

    standards: list[str] = []
    for conn in as_list(first_truthy(evse, EVSE_CONNECTORS_PATHS)):
        std = first_truthy(conn, CONNECTOR_STANDARD_PATHS)
        if std and std not in standards:
            standards.append(std)

    max_kw = finite_number(first_value(evse, EVSE_POWER_KW_PATHS))
    if max_kw is None:
        watts = finite_number(first_value(evse, EVSE_POWER_W_PATHS))
        if watts is not None:
            max_kw = watts / 1000

    return {
        "evseType": first_value(evse, EVSE_TYPE_PATHS),
        "connectorStandards": standards or None,
        "maxPowerKw": max_kw,
    }
