"""Shared pytest fixtures for scradio client tests.

Everything here runs without a backend: ``FakeApi`` mirrors the public
surface of ``SessionApiClient`` and ``FakeWidget`` the ``PlaybackWidget``
protocol.
"""

import asyncio
from collections import defaultdict

import pytest

from scradio.clock import ClockOffsetEstimator
from scradio.config import SyncTimings
from scradio.errors import NetworkError, SessionNotFoundError
from scradio.models import AppliedState, SessionSnapshot

T0 = 1_700_000_000_000  # fixed local and authority time (epoch ms)


class FakeNow:
    """Manually advanced local clock in epoch milliseconds."""

    def __init__(self, now: float = T0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> float:
        self.now += ms
        return self.now


class FakeWidget:
    """Playback widget double that records every command it receives.

    While playing, each position read advances the playhead by
    ``advance_per_read`` ms; set it to 0 to simulate blocked autoplay.
    """

    def __init__(self, position: int = 0, fail_ready: str | None = None, advance_per_read: int = 500):
        self.position = position
        self.playing = False
        self.fail_ready = fail_ready
        self.advance_per_read = advance_per_read
        self.calls: list[tuple] = []
        self.reads = 0
        self.handlers = defaultdict(list)

    async def ready(self):
        if self.fail_ready:
            raise RuntimeError(self.fail_ready)

    def bind(self, event, callback):
        self.handlers[event].append(callback)

    def unbind(self, event, callback):
        self.handlers[event].remove(callback)

    def emit(self, event):
        for callback in list(self.handlers[event]):
            callback()

    def bound_events(self):
        return {event for event, callbacks in self.handlers.items() if callbacks}

    async def get_position(self):
        self.reads += 1
        if self.playing:
            self.position += self.advance_per_read
        return self.position

    async def seek_to(self, ms):
        self.calls.append(("seek", ms))
        self.position = ms

    async def play(self):
        self.calls.append(("play",))
        self.playing = True

    async def pause(self):
        self.calls.append(("pause",))
        self.playing = False

    def commands(self, name):
        return [call for call in self.calls if call[0] == name]


class FakeApi:
    """Stand-in for SessionApiClient that never touches the network."""

    def __init__(self, snapshot: SessionSnapshot | None = None, server_time: int = T0):
        self.snapshot = snapshot
        self.server_time = server_time
        self.posts = []
        self.get_calls = 0
        self.fail_get = False
        self.fail_posts = False

    def server_time_ms(self):
        return self.server_time

    def get_session(self, session_id):
        self.get_calls += 1
        if self.fail_get:
            raise NetworkError("connection refused")
        if self.snapshot is None:
            raise SessionNotFoundError("Session not found", 404)
        return self.snapshot

    def post_state(self, session_id, host_secret, update):
        if self.fail_posts:
            raise NetworkError("HTTP 503", 503)
        self.posts.append((session_id, host_secret, update))
        return AppliedState(server_time=self.server_time, host_lease_expires_at=self.server_time + 20_000)

    def actions(self):
        return [update.action for _, _, update in self.posts]


class FakeSubscriber:
    """Push subscription factory; tests deliver snapshots through ``push``."""

    def __init__(self):
        self.session_ids = []
        self.callback = None
        self.closed = False

    def __call__(self, client, session_id, on_snapshot):
        self.session_ids.append(session_id)
        self.callback = on_snapshot
        return self

    async def push(self, snapshot):
        # Deliver from a worker thread, like the real stream reader.
        await asyncio.to_thread(self.callback, snapshot)

    def close(self):
        self.closed = True


def make_snapshot(**overrides) -> SessionSnapshot:
    values = dict(
        id="sess-1",
        track_url="https://soundcloud.com/artist/track",
        playing=True,
        position_ms=5000,
        state_updated_at=T0 - 3000,
        host_lease_expires_at=T0 + 20_000,
    )
    values.update(overrides)
    return SessionSnapshot(**values)


async def wait_for(predicate, timeout: float = 2.0):
    """Yield to the loop until ``predicate()`` holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


# Timers long enough that no background heartbeat, poll or tick fires
# unless a test shortens it.
QUIET_TIMINGS = SyncTimings(
    seek_resend_delays_ms=(10, 20),
    progress_throttle_ms=1200,
    heartbeat_playing_ms=60_000,
    heartbeat_paused_ms=60_000,
    poll_interval_ms=60_000,
    autoplay_probe_delay_ms=10,
    ui_tick_ms=60_000,
)


@pytest.fixture
def now():
    return FakeNow()


@pytest.fixture
def api():
    return FakeApi(snapshot=make_snapshot())


@pytest.fixture
def widget():
    return FakeWidget()


@pytest.fixture
def clock(api, now):
    return ClockOffsetEstimator(api.server_time_ms, now_ms=now)


@pytest.fixture
def timings():
    return QUIET_TIMINGS


@pytest.fixture
def subscriber():
    return FakeSubscriber()


@pytest.fixture
def widget_cls():
    return FakeWidget


@pytest.fixture
def snapshot():
    """Factory for session snapshots (playing at 5 s, updated 3 s ago)."""
    return make_snapshot


@pytest.fixture
def settle():
    return wait_for
