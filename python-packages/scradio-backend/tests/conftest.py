"""Shared pytest fixtures for scradio-backend tests."""

import pytest

from scradio_backend.app import create_app

T0 = 1_700_000_000_000  # fixed authority time (epoch ms)


class FakeClock:
    """Manually advanced authority clock in epoch milliseconds."""

    def __init__(self, now: int = T0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app(tmp_path, monkeypatch, clock):
    """Create a Flask test app with a temp database and a fake clock."""
    monkeypatch.setenv("SECRET_PEPPER", "test-pepper")
    monkeypatch.setenv("CLEANUP_INTERVAL", "0")
    monkeypatch.setenv("EVENTS_KEEPALIVE", "0.05")
    monkeypatch.delenv("APP_URL", raising=False)
    flask_app = create_app(db_path=str(tmp_path / "test.db"), testing=True, clock=clock)
    yield flask_app
    flask_app.config["STORE"].stop_cleanup()
    flask_app.config["DB"].close()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def db(app):
    """Direct database connection from the app config."""
    return app.config["DB"]


@pytest.fixture
def store(app):
    """Session store from the app config."""
    return app.config["STORE"]


@pytest.fixture
def authority(app):
    """Lease & authority manager from the app config."""
    return app.config["AUTHORITY"]


@pytest.fixture
def track_url():
    return "https://soundcloud.com/artist/some-track"


@pytest.fixture
def created(client, track_url):
    """Create a session over HTTP and return the creation response body."""
    res = client.post("/sessions", json={"track_url": track_url})
    assert res.status_code == 200
    return res.get_json()


def bearer(secret):
    return {"Authorization": f"Bearer {secret}"}


@pytest.fixture
def auth():
    """Build an ``Authorization: Bearer`` header dict."""
    return bearer
