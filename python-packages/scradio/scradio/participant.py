"""Joining a session as host or listener."""

import logging
from typing import Callable, Optional, Protocol, runtime_checkable

from .clock import ClockOffsetEstimator
from .config import DEFAULT_TIMINGS, SyncTimings
from .credentials import MemoryCredentialStore, parse_session_url, strip_fragment
from .host import HostReporter
from .listener import ListenerReconciler, ListenerStatus
from .models import Role
from .realtime import subscribe_session
from .widget import PlaybackWidget

logger = logging.getLogger(__name__)

__all__ = ["Participant", "Role", "join_session"]


@runtime_checkable
class Participant(Protocol):
    """What both roles share: a session id, a role and a lifecycle."""

    role: Role
    session_id: str

    async def start(self) -> "Participant": ...

    async def close(self) -> None: ...


async def join_session(
    client,
    session_url: str,
    widget: PlaybackWidget,
    *,
    credentials=None,
    timings: Optional[SyncTimings] = None,
    clock: Optional[ClockOffsetEstimator] = None,
    subscribe: Optional[Callable] = subscribe_session,
    on_status: Optional[Callable[[ListenerStatus], None]] = None,
) -> Participant:
    """Open a session link and start the matching participant.

    A secret in the link fragment is stored for the session and used; without
    one, a previously stored secret is used. The link is only ever logged
    with its fragment removed. Holding a secret makes this
    client the host, otherwise it is a listener.

    Args:
        client: ``SessionApiClient`` for the backend.
        session_url: ``.../session/<id>`` link, optionally with ``#host=<secret>``.
        widget: Local playback widget.
        credentials: Store with ``get``/``put`` (default: in-memory only).
        timings: Sync timings (default ``DEFAULT_TIMINGS``).
        clock: Offset estimator to share (default: a new one on ``client``).
        subscribe: Push subscription factory for listeners.
        on_status: Listener status callback.

    Returns:
        The started ``HostReporter`` or ``ListenerReconciler``.

    Raises:
        ValidationError: If ``session_url`` is not a session link.
    """
    session_id, secret = parse_session_url(session_url)
    link = strip_fragment(session_url)
    store = credentials if credentials is not None else MemoryCredentialStore()
    timings = timings or DEFAULT_TIMINGS

    if secret:
        store.put(session_id, secret)
    else:
        secret = store.get(session_id)

    participant: Participant
    if secret:
        logger.info("Joining session %s as host via %s", session_id, link)
        participant = HostReporter(
            session_id, secret, client, widget, clock=clock, timings=timings
        )
    else:
        logger.info("Joining session %s as listener via %s", session_id, link)
        participant = ListenerReconciler(
            session_id,
            client,
            widget,
            clock=clock,
            timings=timings,
            subscribe=subscribe,
            on_status=on_status,
        )
    await participant.start()
    return participant
