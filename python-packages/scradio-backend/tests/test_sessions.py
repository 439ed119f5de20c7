"""Tests for POST/GET /sessions and POST /sessions/<id>/state."""

from datetime import datetime

import pytest


def _ms(iso):
    return round(datetime.fromisoformat(iso).timestamp() * 1000)


# ---------------------------------------------------------------------------
# POST /sessions
# ---------------------------------------------------------------------------


def test_create_session_returns_links(created):
    sid = created["session_id"]
    secret = created["host_secret"]
    assert created["session_url_listener"] == f"http://localhost/session/{sid}"
    assert created["session_url_host"] == f"http://localhost/session/{sid}#host={secret}"


def test_create_session_uses_app_url(client, app, track_url):
    app.config["APP_URL"] = "https://radio.example.com"
    data = client.post("/sessions/", json={"track_url": track_url}).get_json()
    assert data["session_url_listener"].startswith("https://radio.example.com/session/")


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"track_url": ""},
        {"track_url": "not a url"},
        {"track_url": "https://example.com/track"},
        {"track_url": "ftp://soundcloud.com/a/b"},
        {"track_url": 123},
    ],
)
def test_create_session_rejects_invalid_track(client, body):
    res = client.post("/sessions", json=body)
    assert res.status_code == 400
    assert res.get_json()["error"] == "Invalid SoundCloud track URL"


def test_create_session_persists_hash_not_secret(created, store):
    row = store.get(created["session_id"])
    assert row["host_secret_hash"] != created["host_secret"]
    assert created["host_secret"] not in row.values()


# ---------------------------------------------------------------------------
# GET /sessions/<id>
# ---------------------------------------------------------------------------


def test_get_session_before_any_write(client, created, clock):
    data = client.get(f"/sessions/{created['session_id']}").get_json()
    assert data["playing"] is False
    assert data["position_ms"] == 0
    assert data["track_url"] == "https://soundcloud.com/artist/some-track"
    assert _ms(data["state_updated_at"]) == clock.now
    assert _ms(data["host_lease_expires_at"]) == clock.now + 20_000
    assert data["last_error"] is None


def test_get_session_hides_secret_hash(client, created):
    data = client.get(f"/sessions/{created['session_id']}").get_json()
    assert "host_secret_hash" not in data
    assert created["host_secret"] not in str(data)


def test_get_session_not_found(client):
    res = client.get("/sessions/ghost")
    assert res.status_code == 404
    assert res.get_json()["error"] == "Session not found"


# ---------------------------------------------------------------------------
# POST /sessions/<id>/state
# ---------------------------------------------------------------------------


def test_state_requires_authorization(client, created):
    res = client.post(
        f"/sessions/{created['session_id']}/state",
        json={"playing": True, "position_ms": 0},
    )
    assert res.status_code == 401
    assert res.get_json()["error"] == "Missing authorization"


def test_state_wrong_secret_is_rejected_without_change(client, created, store, auth):
    sid = created["session_id"]
    before = store.get(sid)
    res = client.post(
        f"/sessions/{sid}/state",
        json={"playing": True, "position_ms": 5000},
        headers=auth("wrong-secret"),
    )
    assert res.status_code == 401
    assert store.get(sid) == before


def test_state_unknown_session(client, auth):
    res = client.post(
        "/sessions/ghost/state",
        json={"playing": True, "position_ms": 0},
        headers=auth("whatever"),
    )
    assert res.status_code == 404


def test_state_malformed_payload(client, created, auth):
    res = client.post(
        f"/sessions/{created['session_id']}/state",
        json={"playing": "yes"},
        headers=auth(created["host_secret"]),
    )
    assert res.status_code == 400


def test_state_accepted(client, created, store, clock, auth):
    sid = created["session_id"]
    clock.advance(2500)
    res = client.post(
        f"/sessions/{sid}/state",
        json={"action": "PLAY", "playing": True, "position_ms": 1234.56, "client_sent_at_ms": 1},
        headers=auth(created["host_secret"]),
    )
    assert res.status_code == 200
    body = res.get_json()
    assert body["ok"] is True
    assert _ms(body["server_time"]) == clock.now
    assert _ms(body["host_lease_expires_at"]) == clock.now + 20_000

    row = store.get(sid)
    assert row["playing"] is True
    assert row["position_ms"] == 1234


def test_state_non_finite_position_is_clamped(client, created, store, auth):
    sid = created["session_id"]
    res = client.post(
        f"/sessions/{sid}/state",
        data='{"playing": true, "position_ms": NaN}',
        content_type="application/json",
        headers=auth(created["host_secret"]),
    )
    assert res.status_code == 200
    assert store.get(sid)["position_ms"] == 0


def test_state_negative_position_is_clamped(client, created, store, auth):
    sid = created["session_id"]
    client.post(
        f"/sessions/{sid}/state",
        json={"playing": False, "position_ms": -300},
        headers=auth(created["host_secret"]),
    )
    assert store.get(sid)["position_ms"] == 0


def test_state_oversized_position_is_capped(client, created, store, auth):
    sid = created["session_id"]
    res = client.post(
        f"/sessions/{sid}/state",
        json={"playing": True, "position_ms": 1e30},
        headers=auth(created["host_secret"]),
    )
    assert res.status_code == 200
    assert store.get(sid)["position_ms"] == 2 ** 63 - 1


# ---------------------------------------------------------------------------
# GET /time
# ---------------------------------------------------------------------------


def test_time_returns_authority_clock(client, clock):
    data = client.get("/time").get_json()
    assert _ms(data["server_time"]) == clock.now
    clock.advance(750)
    assert _ms(client.get("/time/").get_json()["server_time"]) == clock.now
