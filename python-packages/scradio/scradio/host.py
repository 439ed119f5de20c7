"""Host reporter: turns local playback events into authority state writes."""

import asyncio
import logging
from typing import Coroutine, Optional

from .clock import ClockOffsetEstimator
from .config import DEFAULT_TIMINGS, SyncTimings
from .errors import ScradioError
from .models import AppliedState, HostAction, Role, StateUpdate
from .widget import PlaybackWidget, WidgetEvent, normalize_ms

logger = logging.getLogger(__name__)


class HostReporter:
    """Reports the host's playback state so listeners can follow it.

    Runs only on the client holding the host secret. Every send is
    fire-and-forget: a failed write is dropped and the next event or
    heartbeat re-establishes state. Each accepted write also renews the
    host lease on the backend.

    Example:
        >>> reporter = HostReporter(session_id, secret, client, widget)
        >>> await reporter.start()
        >>> ...
        >>> await reporter.close()
    """

    role = Role.HOST

    def __init__(
        self,
        session_id: str,
        host_secret: str,
        client,
        widget: PlaybackWidget,
        *,
        clock: Optional[ClockOffsetEstimator] = None,
        timings: SyncTimings = DEFAULT_TIMINGS,
        playing: bool = False,
    ):
        """Initialize the reporter.

        Args:
            session_id: Session to report for.
            host_secret: Plaintext host credential.
            client: ``SessionApiClient`` (or anything with the same methods).
            widget: Local playback widget.
            clock: Offset estimator; one is created from ``client`` if omitted.
            timings: Heartbeat, throttle and seek-resend delays.
            playing: Initial play intent, until the session row is loaded.
        """
        self.session_id = session_id
        self._secret = host_secret
        self._client = client
        self._widget = widget
        self._clock = clock or ClockOffsetEstimator(client.server_time_ms)
        self._timings = timings

        self.playing = playing
        self._last_progress_post = float("-inf")
        self._tasks: set[asyncio.Task] = set()
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._bound: list[tuple[WidgetEvent, object]] = []
        self._closed = False
        self.widget_error: Optional[str] = None
        self.last_applied: Optional[AppliedState] = None

    @property
    def clock(self) -> ClockOffsetEstimator:
        return self._clock

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> "HostReporter":
        """Calibrate the clock, load the stored intent, bind widget events.

        Returns:
            Self for method chaining.
        """
        await self._clock.estimate()
        try:
            snapshot = await asyncio.to_thread(self._client.get_session, self.session_id)
        except ScradioError as exc:
            logger.debug("Host could not load session %s: %s", self.session_id, exc)
        else:
            if self._closed:
                return self
            self.playing = snapshot.playing

        try:
            await self._widget.ready()
        except Exception as exc:
            self.widget_error = str(exc) or "Widget failed to load"
            logger.error("Widget failed to load for session %s: %s", self.session_id, self.widget_error)
            return self
        if self._closed:
            return self

        self._bind(WidgetEvent.PLAY, self.on_play)
        self._bind(WidgetEvent.PAUSE, self.on_pause)
        self._bind(WidgetEvent.FINISH, self.on_pause)
        self._bind(WidgetEvent.SEEK, self.on_seek)
        self._bind(WidgetEvent.PLAY_PROGRESS, self.on_progress)

        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        return self

    async def close(self) -> None:
        """Unbind events and cancel every pending send and timer."""
        if self._closed:
            return
        self._closed = True
        for event, callback in self._bound:
            self._widget.unbind(event, callback)
        self._bound.clear()

        pending = list(self._tasks)
        if self._heartbeat_task is not None:
            pending.append(self._heartbeat_task)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()

    def _bind(self, event: WidgetEvent, callback) -> None:
        self._widget.bind(event, callback)
        self._bound.append((event, callback))

    # ------------------------------------------------------------------
    # Widget events
    # ------------------------------------------------------------------

    def on_play(self) -> None:
        self.playing = True
        self._spawn(self.report(HostAction.PLAY, playing=True))

    def on_pause(self) -> None:
        self.playing = False
        self._spawn(self.report(HostAction.PAUSE, playing=False))

    def on_seek(self) -> None:
        # The widget can report a stale position right after a seek, so the
        # report is repeated once it has settled.
        self._spawn(self.report(HostAction.SEEK))
        for delay_ms in self._timings.seek_resend_delays_ms:
            self._spawn(self._report_later(delay_ms, HostAction.SEEK))

    def on_progress(self) -> None:
        now = self._clock.local_now_ms()
        if now - self._last_progress_post < self._timings.progress_throttle_ms:
            return
        self._last_progress_post = now
        self._spawn(self.report(HostAction.HEARTBEAT))

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def report(self, action: HostAction, playing: Optional[bool] = None) -> Optional[AppliedState]:
        """Send one state write; failures are logged and dropped.

        Args:
            action: Why the report is sent.
            playing: Overrides the current play intent when given.

        Returns:
            The backend acknowledgement, or None if dropped.
        """
        if self._closed:
            return None
        try:
            position = normalize_ms(await self._widget.get_position())
        except Exception as exc:
            logger.debug("Host could not read widget position: %s", exc)
            return None

        update = StateUpdate(
            action=action,
            playing=self.playing if playing is None else playing,
            position_ms=position,
            client_sent_at_ms=int(self._clock.local_now_ms()),
        )
        t0 = self._clock.local_now_ms()
        try:
            applied = await asyncio.to_thread(
                self._client.post_state, self.session_id, self._secret, update
            )
        except ScradioError as exc:
            logger.debug("Dropped %s report for %s: %s", action.value, self.session_id, exc)
            return None
        t1 = self._clock.local_now_ms()

        if self._closed:
            return None
        self._clock.observe(applied.server_time, t0, t1)
        self.last_applied = applied
        return applied

    async def _report_later(self, delay_ms: int, action: HostAction) -> None:
        await asyncio.sleep(delay_ms / 1000)
        await self.report(action)

    async def _heartbeat_loop(self) -> None:
        while not self._closed:
            delay_ms = (
                self._timings.heartbeat_playing_ms if self.playing
                else self._timings.heartbeat_paused_ms
            )
            await asyncio.sleep(delay_ms / 1000)
            await self.report(HostAction.HEARTBEAT)

    def _spawn(self, coro: Coroutine) -> None:
        if self._closed:
            coro.close()
            return
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
