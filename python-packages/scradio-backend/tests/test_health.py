"""Tests for GET /health."""


def test_health_returns_200(client):
    res = client.get("/health")
    assert res.status_code == 200


def test_health_body(client):
    data = client.get("/health").get_json()
    assert data["ok"] is True
    assert isinstance(data["uptime"], (int, float))
    assert data["uptime"] >= 0
    assert data["activeSessions"] == 0


def test_health_reflects_session_count(client, authority):
    authority.create_session("https://soundcloud.com/a/b")
    data = client.get("/health").get_json()
    assert data["activeSessions"] == 1
