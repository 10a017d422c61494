from unittest.mock import MagicMock

import pytest
from yarl import URL

from ampeco_sessions.api import (
    AmpecoClient,
    MissingCredentials,
    UpstreamResponseError,
    bearer_header,
    unwrap_entity,
)
from ampeco_sessions.const import CHARGE_POINTS_PATH, ID_TAGS_PATH, USERS_PATH

BASE = "https://ampeco.test"


def test_bearer_header_formatting():
    assert bearer_header("abc") == "Bearer abc"
    assert bearer_header("Bearer abc") == "Bearer abc"
    assert bearer_header("bearer abc") == "bearer abc"
    with pytest.raises(MissingCredentials):
        bearer_header("   ")


def test_unwrap_entity():
    assert unwrap_entity({"data": {"id": 1}}) == {"id": 1}
    assert unwrap_entity({"id": 1, "data": [1]}) == {"id": 1, "data": [1]}
    assert unwrap_entity(None) is None


def test_listing_url_caps_page_size():
    client = AmpecoClient(MagicMock(), f"{BASE}/", "tok")
    url = URL(client.listing_url(CHARGE_POINTS_PATH, per_page=250))
    assert str(url).startswith(f"{BASE}{CHARGE_POINTS_PATH}?")
    assert dict(url.query) == {"per_page": "100", "cursor": ""}
    assert URL(client.charge_point_evses_url(7)).path == f"{CHARGE_POINTS_PATH}/7/evses"


@pytest.mark.asyncio
async def test_json_sends_auth_headers_and_decodes(dummy_session):
    session = dummy_session({USERS_PATH + "/3": (200, {"data": {"id": 3, "email": "a@b.c"}})})
    client = AmpecoClient(session, BASE, "tok")

    user = await client.user(3)

    assert user == {"id": 3, "email": "a@b.c"}
    method, url, kwargs = session.requests[0]
    assert method == "GET"
    assert url == f"{BASE}{USERS_PATH}/3"
    assert kwargs["headers"]["Authorization"] == "Bearer tok"
    assert kwargs["headers"]["Accept"] == "application/json"


@pytest.mark.asyncio
async def test_json_raises_with_status_and_body(dummy_session):
    session = dummy_session({USERS_PATH + "/3": (404, "User not found")})
    client = AmpecoClient(session, BASE, "tok")
    with pytest.raises(UpstreamResponseError) as exc:
        await client.user(3)
    assert exc.value.status == 404
    assert exc.value.body == "User not found"
    assert exc.value.url.endswith("/users/v1.0/3")


@pytest.mark.asyncio
async def test_json_rejects_non_json_success(dummy_session):
    session = dummy_session({USERS_PATH + "/3": (200, "<html>login</html>")})
    client = AmpecoClient(session, BASE, "tok")
    with pytest.raises(UpstreamResponseError) as exc:
        await client.user(3)
    assert exc.value.status == 200


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"data": [{"userId": 5}]}, 5),
        ({"data": [{"user": {"id": 6}}]}, 6),
        ({"data": [{"uid": "X"}]}, None),
        ({"data": []}, None),
        ({}, None),
    ],
)
async def test_id_tag_user_id(dummy_session, payload, expected):
    session = dummy_session({ID_TAGS_PATH: (200, payload)})
    client = AmpecoClient(session, BASE, "tok")
    assert await client.id_tag_user_id("04AB") == expected
    url = URL(session.requests[0][1])
    assert url.query["filter[uid]"] == "04AB"
    assert url.query["per_page"] == "1"
