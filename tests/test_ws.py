from unittest import mock

import fakeredis
import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from foodlink.main import create_app
from foodlink.services import matcher

from conftest import listing_payload, make_settings


@pytest.fixture
def client(tmp_path):
    application = create_app(make_settings(tmp_path), redis_factory=fakeredis.FakeAsyncRedis)
    with TestClient(application) as c:
        yield c


def _token(client, email, role):
    r = client.post("/api/auth/register", json={"email": email, "password": "secret123", "role": role})
    assert r.status_code == 200, r.text
    r = client.post("/api/auth/login", json={"email": email, "password": "secret123"})
    return r.json()["access_token"]


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


def test_listings_feed_pushes_changes(client):
    donor = _token(client, "d@example.com", "donor")
    with client.websocket_connect("/ws/listings") as ws:
        initial = ws.receive_json()
        assert initial == {"type": "listings", "items": [], "change": None}

        listing = client.post("/api/listings", json=listing_payload(), headers=_auth(donor)).json()
        update = ws.receive_json()
        assert update["change"] == {"kind": "added", "collection": "listings", "id": listing["id"]}
        assert [item["id"] for item in update["items"]] == [listing["id"]]

        client.delete(f"/api/listings/{listing['id']}", headers=_auth(donor))
        update = ws.receive_json()
        assert update["change"]["kind"] == "removed"
        assert update["items"] == []


def test_listings_feed_applies_filters(client):
    donor = _token(client, "d@example.com", "donor")
    client.post("/api/listings", json=listing_payload(title="Veg"), headers=_auth(donor))
    client.post("/api/listings", json=listing_payload(title="Chicken", category="non-veg"), headers=_auth(donor))
    with client.websocket_connect("/ws/listings?category=non-veg") as ws:
        assert [item["title"] for item in ws.receive_json()["items"]] == ["Chicken"]


def test_donor_inbox_updates_on_new_request(client):
    donor = _token(client, "d@example.com", "donor")
    receiver = _token(client, "r@example.com", "receiver")
    listing = client.post("/api/listings", json=listing_payload(), headers=_auth(donor)).json()
    with client.websocket_connect(f"/ws/requests?token={donor}") as ws:
        initial = ws.receive_json()
        assert initial["type"] == "inbox"
        assert initial["active"] == [] and initial["history"] == []

        req = client.post(f"/api/listings/{listing['id']}/requests", headers=_auth(receiver)).json()
        update = ws.receive_json()
        assert update["change"]["collection"] == "requests"
        assert [item["id"] for item in update["active"]] == [req["id"]]


def test_receiver_sees_own_request_decided(client):
    donor = _token(client, "d@example.com", "donor")
    receiver = _token(client, "r@example.com", "receiver")
    listing = client.post("/api/listings", json=listing_payload(), headers=_auth(donor)).json()
    req = client.post(f"/api/listings/{listing['id']}/requests", headers=_auth(receiver)).json()
    with client.websocket_connect(f"/ws/requests?token={receiver}") as ws:
        initial = ws.receive_json()
        assert initial["type"] == "my_requests"
        assert [item["status"] for item in initial["items"]] == ["pending"]

        client.post(f"/api/requests/{req['id']}/accept", headers=_auth(donor))
        update = ws.receive_json()
        assert update["change"] == {"kind": "modified", "collection": "requests", "id": req["id"]}
        assert update["items"][0]["status"] == "accepted"
        assert update["items"][0]["listing_title"] == listing["title"]


@pytest.mark.parametrize(
    "path, code",
    [
        ("/ws/listings?token=garbage", 4001),
        ("/ws/listings?max_distance_km=far", 4003),
        ("/ws/requests", 4003),
    ],
)
def test_bad_connections_are_closed(client, path, code):
    with client.websocket_connect(path) as ws:
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()
    assert exc.value.code == code


def test_failed_render_closes_with_error(client):
    donor = _token(client, "d@example.com", "donor")
    home_feed = mock.AsyncMock(side_effect=[[], RuntimeError("store went away")])
    with mock.patch.object(matcher, "home_feed", home_feed):
        with client.websocket_connect("/ws/listings") as ws:
            assert ws.receive_json()["items"] == []
            client.post("/api/listings", json=listing_payload(), headers=_auth(donor))
            error = ws.receive_json()
            assert error["type"] == "error"
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_json()
    assert exc.value.code == 1011


def test_donor_inbox_ignores_other_donors_listings(client):
    donor = _token(client, "d@example.com", "donor")
    other = _token(client, "d2@example.com", "donor")
    receiver = _token(client, "r@example.com", "receiver")
    listing = client.post("/api/listings", json=listing_payload(), headers=_auth(donor)).json()
    with client.websocket_connect(f"/ws/requests?token={donor}") as ws:
        ws.receive_json()
        client.post("/api/listings", json=listing_payload(title="Elsewhere"), headers=_auth(other))
        client.post(f"/api/listings/{listing['id']}/requests", headers=_auth(receiver))
        update = ws.receive_json()
        # The first push is the request, not the other donor's new listing
        assert update["change"]["collection"] == "requests"
        assert len(update["active"]) == 1
