"""Push notifications: the backend's server-sent session event stream."""

import http.client
import json
import logging
import threading
from typing import Callable, Iterable, Iterator

from .errors import ScradioError, ValidationError
from .models import SessionSnapshot

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[SessionSnapshot], None]


def iter_session_events(lines: Iterable[bytes | str]) -> Iterator[SessionSnapshot]:
    """Decode ``session`` events from a raw SSE line stream.

    Comments (keepalives) and other event types are skipped; a malformed
    ``data`` payload is logged and skipped.
    """
    event = "message"
    data: list[str] = []
    for raw in lines:
        line = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        line = line.rstrip("\r\n")

        if not line:
            if data and event == "session":
                try:
                    yield SessionSnapshot.from_dict(json.loads("\n".join(data)))
                except (json.JSONDecodeError, ValidationError, TypeError) as exc:
                    logger.warning("Skipping malformed session event: %s", exc)
            event = "message"
            data = []
            continue

        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if field == "event":
            event = value
        elif field == "data":
            data.append(value)


class SessionSubscription:
    """Delivers every pushed session row to ``on_snapshot`` until closed.

    Reads the stream on a daemon thread and reconnects after
    ``reconnect_delay`` seconds when the stream drops. ``on_snapshot`` is
    called on that thread.

    Args:
        client: ``SessionApiClient`` (anything with ``open_events``).
        session_id: Session to follow.
        on_snapshot: Called with each pushed ``SessionSnapshot``.
        reconnect_delay: Seconds to wait before reopening a dropped stream.
    """

    def __init__(
        self,
        client,
        session_id: str,
        on_snapshot: SnapshotCallback,
        reconnect_delay: float = 2.0,
    ) -> None:
        self._client = client
        self._session_id = session_id
        self._on_snapshot = on_snapshot
        self._reconnect_delay = reconnect_delay
        self._stop_event = threading.Event()
        self._response = None
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def closed(self) -> bool:
        return self._stop_event.is_set()

    def start(self) -> "SessionSubscription":
        if self._thread and self._thread.is_alive():
            return self
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, daemon=True, name=f"scradio-events-{self._session_id}"
        )
        self._thread.start()
        return self

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                response = self._client.open_events(self._session_id)
                with self._lock:
                    if self._stop_event.is_set():
                        response.close()
                        return
                    self._response = response
                with response:
                    for snapshot in iter_session_events(response):
                        if self._stop_event.is_set():
                            return
                        self._on_snapshot(snapshot)
            except (ScradioError, OSError, ValueError, http.client.HTTPException) as exc:
                if self._stop_event.is_set():
                    return
                logger.warning(
                    "Session event stream for %s dropped (%s); reconnecting in %.1fs",
                    self._session_id, exc, self._reconnect_delay,
                )
            finally:
                with self._lock:
                    self._response = None
            self._stop_event.wait(self._reconnect_delay)

    def close(self) -> None:
        """Stop delivering snapshots and disconnect."""
        self._stop_event.set()
        with self._lock:
            response = self._response
        if response is not None:
            try:
                response.close()
            except OSError:
                pass
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=1.0)


def subscribe_session(client, session_id: str, on_snapshot: SnapshotCallback) -> SessionSubscription:
    """Open a push subscription for ``session_id`` and start it."""
    return SessionSubscription(client, session_id, on_snapshot).start()
