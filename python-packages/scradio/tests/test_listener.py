"""Tests for ListenerReconciler: following the host's timeline."""

import asyncio
from dataclasses import replace

import pytest

from scradio.listener import ListenerReconciler, ListenerStatus
from scradio.models import Role, SyncReason

T0 = 1_700_000_000_000


@pytest.fixture
def make_listener(api, widget, clock, timings, subscriber):
    def factory(**kwargs):
        options = dict(clock=clock, timings=timings, subscribe=subscriber)
        options.update(kwargs)
        target_widget = options.pop("widget", widget)
        return ListenerReconciler("sess-1", api, target_widget, **options)

    return factory


# ---------------------------------------------------------------------------
# Target position and host presence
# ---------------------------------------------------------------------------


def test_target_extrapolates_while_playing(make_listener, snapshot):
    listener = make_listener()
    assert listener.role is Role.LISTENER
    assert listener.target_ms(snapshot()) == 8000


def test_target_is_stored_position_while_paused(make_listener, snapshot):
    assert make_listener().target_ms(snapshot(playing=False)) == 5000


def test_target_ignores_future_update_time(make_listener, snapshot):
    assert make_listener().target_ms(snapshot(state_updated_at=T0 + 500)) == 5000


def test_host_offline_after_lease_expiry(make_listener, snapshot):
    listener = make_listener()
    assert listener.host_offline() is False
    assert listener.host_offline(snapshot(host_lease_expires_at=T0 - 1)) is True
    assert listener.host_offline(snapshot(host_lease_expires_at=T0 + 1)) is False


@pytest.mark.parametrize(
    "overrides, label",
    [
        ({}, "LIVE"),
        ({"playing": False}, "PAUSED"),
        ({"host_lease_expires_at": T0 - 1}, "HOST OFFLINE"),
    ],
)
def test_status_label(make_listener, snapshot, overrides, label):
    listener = make_listener()
    listener.latest = snapshot(**overrides)
    assert listener.status().label == label


def test_status_label_empty_before_load():
    status = ListenerStatus("sess-1", None, False, False, False)
    assert status.label == ""


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_periodic_drift_seeks_while_host_online(make_listener, widget, snapshot):
    widget.position = 6000
    result = await make_listener().reconcile(snapshot(), SyncReason.PERIODIC)

    assert (result.target_ms, result.drift_ms, result.seeked) == (8000, 2000, True)
    assert widget.commands("seek") == [("seek", 8000)]
    assert result.action == "play"


@pytest.mark.asyncio
async def test_periodic_small_drift_is_tolerated(make_listener, widget, snapshot):
    widget.position = 7000
    result = await make_listener().reconcile(snapshot(), SyncReason.PERIODIC)

    assert result.seeked is False
    assert widget.commands("seek") == []


@pytest.mark.asyncio
async def test_pushed_update_uses_tighter_threshold(make_listener, widget, snapshot):
    widget.position = 7000
    result = await make_listener().reconcile(snapshot(), SyncReason.PUSHED)

    assert result.seeked is True
    assert widget.commands("seek") == [("seek", 8000)]


@pytest.mark.asyncio
async def test_pushed_update_does_not_seek_while_host_offline(make_listener, widget, snapshot):
    widget.position = 6000
    result = await make_listener().reconcile(
        snapshot(host_lease_expires_at=T0 - 1), SyncReason.PUSHED
    )

    assert result.seeked is False
    assert widget.commands("seek") == []
    assert widget.commands("play") == [("play",)]


@pytest.mark.asyncio
async def test_periodic_update_seeks_even_while_host_offline(make_listener, widget, snapshot):
    widget.position = 6000
    result = await make_listener().reconcile(
        snapshot(host_lease_expires_at=T0 - 1), SyncReason.PERIODIC
    )

    assert result.seeked is True


@pytest.mark.asyncio
async def test_paused_snapshot_pauses(make_listener, widget, snapshot):
    result = await make_listener().reconcile(snapshot(playing=False), SyncReason.PUSHED)

    assert result.action == "pause"
    assert widget.calls == [("seek", 5000), ("pause",)]


@pytest.mark.asyncio
async def test_autoplay_probe_passes_when_playhead_advances(make_listener, widget, snapshot):
    listener = make_listener()
    await listener.reconcile(snapshot(), SyncReason.INITIAL)

    assert listener.autoplay_blocked is False
    reads = widget.reads
    await listener.reconcile(snapshot(), SyncReason.PUSHED)
    # Probe runs once per listener: only the drift read this time.
    assert widget.reads == reads + 1


@pytest.mark.asyncio
async def test_blocked_autoplay_waits_for_manual_start(make_listener, widget_cls, snapshot):
    widget = widget_cls(advance_per_read=0)
    listener = make_listener(widget=widget)
    listener._widget_ready = True

    await listener.reconcile(snapshot(), SyncReason.INITIAL)
    assert listener.autoplay_blocked is True
    assert listener.status().needs_manual_start is True

    result = await listener.reconcile(snapshot(), SyncReason.PUSHED)
    assert result.action == "blocked"
    assert len(widget.commands("play")) == 1

    assert await listener.manual_start() is True
    assert listener.autoplay_blocked is False
    assert listener.manually_started is True
    assert widget.calls[-2:] == [("seek", 8000), ("play",)]

    result = await listener.reconcile(snapshot(), SyncReason.PUSHED)
    assert result.action == "play"
    assert listener.autoplay_blocked is False


@pytest.mark.asyncio
async def test_manual_start_needs_loaded_widget(make_listener, widget):
    assert await make_listener().manual_start() is False
    assert widget.calls == []


# ---------------------------------------------------------------------------
# Lifecycle and snapshot sources
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_start_applies_initial_snapshot(make_listener, widget, subscriber, settle):
    listener = await make_listener().start()
    await settle(lambda: widget.commands("play"))

    assert widget.calls[0] == ("seek", 8000)
    assert subscriber.session_ids == ["sess-1"]
    await listener.close()


@pytest.mark.asyncio
async def test_initial_fetch_failure_stops_startup(make_listener, api, widget, subscriber):
    api.snapshot = None
    listener = await make_listener().start()

    assert listener.error == "Session not found"
    assert subscriber.callback is None
    assert widget.calls == []
    await listener.close()


@pytest.mark.asyncio
async def test_widget_failure_is_recorded(make_listener, widget_cls):
    widget = widget_cls(fail_ready="Track not embeddable")
    listener = await make_listener(widget=widget).start()

    assert listener.widget_error == "Track not embeddable"
    assert listener.status().widget_error == "Track not embeddable"
    await asyncio.sleep(0.02)
    assert widget.calls == []
    await listener.close()


@pytest.mark.asyncio
async def test_pushed_snapshot_is_reconciled(make_listener, widget, subscriber, snapshot, settle):
    listener = await make_listener().start()
    await settle(lambda: widget.commands("play"))

    await subscriber.push(snapshot(playing=False, position_ms=12_000))
    await settle(lambda: widget.commands("pause"))

    assert ("seek", 12_000) in widget.calls
    assert listener.latest.playing is False
    await listener.close()


@pytest.mark.asyncio
async def test_poll_picks_up_missed_changes(make_listener, api, widget, timings, snapshot, settle):
    listener = await make_listener(timings=replace(timings, poll_interval_ms=10)).start()
    await settle(lambda: widget.commands("play"))

    api.snapshot = snapshot(playing=False, position_ms=1000)
    await settle(lambda: widget.commands("pause"))
    await listener.close()


@pytest.mark.asyncio
async def test_poll_failure_reuses_latest_snapshot(make_listener, api, widget, timings, settle):
    listener = await make_listener(timings=replace(timings, poll_interval_ms=10)).start()
    await settle(lambda: widget.commands("play"))

    api.fail_get = True
    calls = api.get_calls
    await settle(lambda: api.get_calls >= calls + 2)
    await settle(lambda: len(widget.commands("play")) >= 2)

    assert listener.error is None
    await listener.close()


@pytest.mark.asyncio
async def test_status_callback_ticks(make_listener, timings, settle):
    statuses = []
    listener = await make_listener(
        timings=replace(timings, ui_tick_ms=10), on_status=statuses.append
    ).start()
    await settle(lambda: len(statuses) >= 3)

    assert statuses[-1].label == "LIVE"
    await listener.close()


@pytest.mark.asyncio
async def test_close_drops_late_snapshots(make_listener, widget, subscriber, snapshot, settle):
    listener = await make_listener().start()
    await settle(lambda: widget.commands("play"))
    await listener.close()

    assert listener.closed is True
    assert subscriber.closed is True
    calls = list(widget.calls)
    await subscriber.push(snapshot(playing=False))
    await asyncio.sleep(0.02)
    assert widget.calls == calls
