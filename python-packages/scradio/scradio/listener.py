"""Listener reconciler: keeps local playback on the host's timeline."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .clock import ClockOffsetEstimator
from .config import DEFAULT_TIMINGS, SyncTimings
from .errors import ScradioError
from .models import Role, SessionSnapshot, SyncReason, clamp_ms
from .realtime import subscribe_session
from .widget import PlaybackWidget, normalize_ms

logger = logging.getLogger(__name__)


def target_position_ms(snapshot: SessionSnapshot, server_now_ms: float) -> int:
    """Where playback should be at authority time ``server_now_ms``."""
    base = clamp_ms(snapshot.position_ms)
    if not snapshot.playing:
        return base
    elapsed = server_now_ms - snapshot.state_updated_at
    return clamp_ms(base + max(0, elapsed))


def lease_expired(snapshot: SessionSnapshot, server_now_ms: float) -> bool:
    return server_now_ms > snapshot.host_lease_expires_at


@dataclass
class ReconcileResult:
    """What one reconciliation pass saw and did."""

    reason: SyncReason
    target_ms: int
    current_ms: int
    drift_ms: int
    seeked: bool
    action: str  # "pause", "play" or "blocked"


@dataclass
class ListenerStatus:
    """UI-facing state of a listener, refreshed on every tick."""

    session_id: str
    snapshot: Optional[SessionSnapshot]
    host_offline: bool
    autoplay_blocked: bool
    manually_started: bool
    error: Optional[str] = None
    widget_error: Optional[str] = None

    @property
    def label(self) -> str:
        if self.snapshot is None:
            return ""
        if self.host_offline:
            return "HOST OFFLINE"
        return "LIVE" if self.snapshot.playing else "PAUSED"

    @property
    def needs_manual_start(self) -> bool:
        return self.autoplay_blocked and not self.manually_started


class ListenerReconciler:
    """Drives a listener's widget toward the host's current position.

    Snapshots arrive from three sources (initial fetch, push stream, periodic
    poll) and are funnelled through one queue into a single consumer, so
    reconciliation never runs concurrently with itself.

    Example:
        >>> listener = ListenerReconciler(session_id, client, widget)
        >>> await listener.start()
        >>> if listener.status().needs_manual_start:
        ...     await listener.manual_start()
        >>> await listener.close()
    """

    role = Role.LISTENER

    def __init__(
        self,
        session_id: str,
        client,
        widget: PlaybackWidget,
        *,
        clock: Optional[ClockOffsetEstimator] = None,
        timings: SyncTimings = DEFAULT_TIMINGS,
        subscribe: Optional[Callable] = subscribe_session,
        on_status: Optional[Callable[[ListenerStatus], None]] = None,
    ):
        """Initialize the reconciler.

        Args:
            session_id: Session to follow.
            client: ``SessionApiClient`` (or anything with the same methods).
            widget: Local playback widget.
            clock: Offset estimator; one is created from ``client`` if omitted.
            timings: Poll, tick, threshold and autoplay-probe settings.
            subscribe: ``subscribe(client, session_id, on_snapshot)`` returning
                an object with ``close()``; None disables push updates.
            on_status: Called with a fresh ``ListenerStatus`` on every change
                and UI tick.
        """
        self.session_id = session_id
        self._client = client
        self._widget = widget
        self._clock = clock or ClockOffsetEstimator(client.server_time_ms)
        self._timings = timings
        self._subscribe = subscribe
        self._on_status = on_status

        self.latest: Optional[SessionSnapshot] = None
        self.autoplay_blocked = False
        self.manually_started = False
        self.error: Optional[str] = None
        self.widget_error: Optional[str] = None

        self._queue: asyncio.Queue = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._subscription = None
        self._tasks: list[asyncio.Task] = []
        self._widget_ready = False
        self._probe_done = False
        self._closed = False

    @property
    def clock(self) -> ClockOffsetEstimator:
        return self._clock

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> "ListenerReconciler":
        """Calibrate, load the session, then start following it.

        A failed initial load is kept as ``error`` and nothing else starts.

        Returns:
            Self for method chaining.
        """
        self._loop = asyncio.get_running_loop()
        await self._clock.estimate()

        try:
            snapshot = await asyncio.to_thread(self._client.get_session, self.session_id)
        except ScradioError as exc:
            self.error = str(exc) or "Failed to load session"
            logger.warning("Listener could not load session %s: %s", self.session_id, self.error)
            self._publish()
            return self
        if self._closed:
            return self
        self.latest = snapshot

        if self._subscribe is not None:
            self._subscription = self._subscribe(self._client, self.session_id, self._on_pushed)
        self._tasks.append(asyncio.create_task(self._tick_loop()))
        self._publish()

        try:
            await self._widget.ready()
        except Exception as exc:
            self.widget_error = str(exc) or "Widget failed to load"
            logger.error("Widget failed to load for session %s: %s", self.session_id, self.widget_error)
            self._publish()
            return self
        if self._closed:
            return self

        self._widget_ready = True
        self._queue.put_nowait((self.latest, SyncReason.INITIAL))
        self._tasks.append(asyncio.create_task(self._consume()))
        self._tasks.append(asyncio.create_task(self._poll_loop()))
        return self

    async def close(self) -> None:
        """Cancel every timer and stop listening; later arrivals are dropped."""
        if self._closed:
            return
        self._closed = True
        if self._subscription is not None:
            await asyncio.to_thread(self._subscription.close)
            self._subscription = None
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    def target_ms(self, snapshot: SessionSnapshot) -> int:
        """Where playback should be now according to ``snapshot``."""
        return target_position_ms(snapshot, self._clock.server_now_ms())

    def host_offline(self, snapshot: Optional[SessionSnapshot] = None) -> bool:
        """True once the host lease of ``snapshot`` (default: latest) has expired."""
        snapshot = snapshot or self.latest
        if snapshot is None:
            return False
        return lease_expired(snapshot, self._clock.server_now_ms())

    def status(self) -> ListenerStatus:
        return ListenerStatus(
            session_id=self.session_id,
            snapshot=self.latest,
            host_offline=self.host_offline(),
            autoplay_blocked=self.autoplay_blocked,
            manually_started=self.manually_started,
            error=self.error,
            widget_error=self.widget_error,
        )

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def reconcile(self, snapshot: SessionSnapshot, reason: SyncReason) -> ReconcileResult:
        """Correct local playback toward ``snapshot``."""
        self.latest = snapshot
        target = self.target_ms(snapshot)
        current = normalize_ms(await self._widget.get_position())

        threshold = (
            self._timings.periodic_drift_threshold_ms if reason is SyncReason.PERIODIC
            else self._timings.drift_threshold_ms
        )
        drift = abs(current - target)
        lease_expired = self.host_offline(snapshot)

        # Do not chase possibly stale data while the host looks offline,
        # except on the safety-net poll.
        seeked = False
        if drift > threshold and (not lease_expired or reason is SyncReason.PERIODIC):
            await self._widget.seek_to(target)
            seeked = True

        def result(action: str) -> ReconcileResult:
            return ReconcileResult(reason, target, current, drift, seeked, action)

        if not snapshot.playing:
            await self._widget.pause()
            return result("pause")

        if self.autoplay_blocked and not self.manually_started:
            return result("blocked")

        await self._widget.play()

        if reason is not SyncReason.PERIODIC and not self.manually_started and not self._probe_done:
            self._probe_done = True
            await self._probe_autoplay()

        return result("play")

    async def _probe_autoplay(self) -> None:
        before = normalize_ms(await self._widget.get_position())
        await asyncio.sleep(self._timings.autoplay_probe_delay_ms / 1000)
        if self._closed or self.manually_started:
            return
        after = normalize_ms(await self._widget.get_position())

        self.autoplay_blocked = after - before < self._timings.autoplay_min_advance_ms
        if self.autoplay_blocked:
            logger.info("Autoplay looks blocked for session %s; waiting for manual start", self.session_id)
        self._publish()

    async def manual_start(self) -> bool:
        """User-initiated start: jump to the live position and play.

        Disables the autoplay gate and the probe for the rest of this
        listener's life.

        Returns:
            False if there is nothing to play yet.
        """
        if not self._widget_ready or self.latest is None or self._closed:
            return False
        await self._widget.seek_to(self.target_ms(self.latest))
        await self._widget.play()
        self.manually_started = True
        self.autoplay_blocked = False
        self._publish()
        return True

    # ------------------------------------------------------------------
    # Snapshot sources
    # ------------------------------------------------------------------

    def _accept(self, snapshot: SessionSnapshot, reason: SyncReason) -> None:
        if self._closed:
            return
        self.latest = snapshot
        if self._widget_ready:
            self._queue.put_nowait((snapshot, reason))
        self._publish()

    def _on_pushed(self, snapshot: SessionSnapshot) -> None:
        # Called from the subscription thread.
        loop = self._loop
        if loop is None or self._closed:
            return
        try:
            loop.call_soon_threadsafe(self._accept, snapshot, SyncReason.PUSHED)
        except RuntimeError:
            pass  # loop already closed

    async def _consume(self) -> None:
        while True:
            snapshot, reason = await self._queue.get()
            if self._closed:
                return
            try:
                await self.reconcile(snapshot, reason)
            except Exception:
                logger.exception("Reconciliation (%s) failed for session %s", reason.value, self.session_id)

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._timings.poll_interval_ms / 1000)
            try:
                snapshot = await asyncio.to_thread(self._client.get_session, self.session_id)
            except ScradioError as exc:
                logger.debug("Periodic fetch failed for %s: %s", self.session_id, exc)
                snapshot = self.latest
            if snapshot is not None:
                self._accept(snapshot, SyncReason.PERIODIC)

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self._timings.ui_tick_ms / 1000)
            self._publish()

    def _publish(self) -> None:
        if self._on_status is None or self._closed:
            return
        try:
            self._on_status(self.status())
        except Exception:
            logger.exception("Status callback failed for session %s", self.session_id)
