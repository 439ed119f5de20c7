"""HTTP client for scradio-backend."""

import json
import logging
import urllib.error
import urllib.request
from typing import Any, Iterator
from urllib.parse import quote

from .errors import (
    InvalidStateError,
    NetworkError,
    SessionNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from .models import AppliedState, CreatedSession, SessionSnapshot, StateUpdate, parse_timestamp
from .realtime import iter_session_events

logger = logging.getLogger(__name__)

_STATUS_ERRORS: dict[int, type[NetworkError]] = {
    400: InvalidStateError,
    401: UnauthorizedError,
    404: SessionNotFoundError,
}


def error_for_status(status_code: int, message: str) -> NetworkError:
    """Map an HTTP error status onto the client error taxonomy."""
    error_class = _STATUS_ERRORS.get(status_code, NetworkError)
    return error_class(message, status_code)


class SessionApiClient:
    """Talk to a scradio-backend server.

    All methods block; async callers run them with ``asyncio.to_thread``.

    Example:
        >>> client = SessionApiClient("https://radio.example.com")
        >>> created = client.create_session("https://soundcloud.com/artist/track")
        >>> snapshot = client.get_session(created.session_id)
        >>> client.post_state(
        ...     created.session_id,
        ...     created.host_secret,
        ...     StateUpdate(HostAction.PLAY, playing=True, position_ms=0),
        ... )
    """

    def __init__(
        self,
        backend_url: str,
        timeout: float = 10.0,
        events_timeout: float = 45.0,
        verbose: bool = False,
    ):
        """Initialize the client.

        Args:
            backend_url: Base URL of the scradio-backend server
                         (e.g. ``"https://radio.example.com"``).
            timeout: Socket timeout in seconds for ordinary requests.
            events_timeout: Socket timeout in seconds for the event stream.
                            Must exceed the server's keepalive period.
            verbose: Enable debug logging.
        """
        self._backend_url = backend_url.rstrip("/")
        self._timeout = timeout
        self._events_timeout = events_timeout

        if verbose:
            logging.basicConfig(level=logging.DEBUG)
            logging.getLogger("scradio").setLevel(logging.DEBUG)

    @property
    def backend_url(self) -> str:
        return self._backend_url

    # ------------------------------------------------------------------
    # Internal fetch helper
    # ------------------------------------------------------------------

    def _fetch(
        self,
        path: str,
        method: str = "GET",
        body: dict | None = None,
        token: str | None = None,
    ) -> dict:
        """Make a JSON request to the backend.

        Args:
            path: Endpoint path (e.g. ``"/sessions/abc"``).
            method: HTTP method.
            body: Request body (serialised to JSON).
            token: Host secret sent as ``Authorization: Bearer``.

        Returns:
            Parsed JSON response dict.

        Raises:
            NetworkError: On non-2xx response or network failure. 400, 401
                and 404 raise the matching subclass.
        """
        url = f"{self._backend_url}{path}"
        data = json.dumps(body).encode() if body is not None else None

        headers = {"Content-Type": "application/json", "Cache-Control": "no-store"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        req = urllib.request.Request(url, data=data, headers=headers, method=method)

        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                return json.loads(resp.read())
        except urllib.error.HTTPError as exc:
            try:
                error_body = json.loads(exc.read())
                msg = error_body.get("error", f"HTTP {exc.code}")
            except Exception:
                msg = f"HTTP {exc.code}"
            raise error_for_status(exc.code, msg) from exc
        except Exception as exc:
            raise NetworkError(str(exc)) from exc

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, track_url: str) -> CreatedSession:
        """Create a session for a SoundCloud track.

        Returns:
            CreatedSession with the host secret (shown once) and both links.

        Raises:
            InvalidStateError: If the backend rejects the track URL.
            NetworkError: If the request fails.
        """
        data = self._fetch("/sessions", method="POST", body={"track_url": track_url})
        return CreatedSession(
            session_id=data["session_id"],
            host_secret=data["host_secret"],
            session_url_host=data["session_url_host"],
            session_url_listener=data["session_url_listener"],
        )

    def get_session(self, session_id: str) -> SessionSnapshot:
        """Fetch the public session row.

        Raises:
            SessionNotFoundError: If the session does not exist.
            NetworkError: If the request fails.
        """
        data = self._fetch(f"/sessions/{quote(session_id, safe='')}")
        try:
            return SessionSnapshot.from_dict(data)
        except (ValidationError, AttributeError, TypeError) as exc:
            raise NetworkError(f"Malformed session payload: {exc}") from exc

    def post_state(self, session_id: str, host_secret: str, update: StateUpdate) -> AppliedState:
        """Report host playback state. Every accepted write renews the lease.

        Returns:
            AppliedState carrying the authority's write time.

        Raises:
            UnauthorizedError: If the host secret is wrong.
            SessionNotFoundError: If the session does not exist.
            NetworkError: If the request fails.
        """
        data = self._fetch(
            f"/sessions/{quote(session_id, safe='')}/state",
            method="POST",
            body=update.to_dict(),
            token=host_secret,
        )
        lease = data.get("host_lease_expires_at")
        try:
            return AppliedState(
                server_time=parse_timestamp(data["server_time"]),
                host_lease_expires_at=parse_timestamp(lease) if lease else None,
            )
        except (KeyError, ValidationError) as exc:
            raise NetworkError(f"Malformed state response: {exc}") from exc

    # ------------------------------------------------------------------
    # Clock and events
    # ------------------------------------------------------------------

    def server_time_ms(self) -> int:
        """Return the authority clock in epoch milliseconds."""
        data = self._fetch("/time")
        try:
            return parse_timestamp(data["server_time"])
        except (KeyError, ValidationError) as exc:
            raise NetworkError(f"Malformed time response: {exc}") from exc

    def open_events(self, session_id: str) -> Any:
        """Open the server-sent event stream of a session.

        Returns:
            The open HTTP response; iterate it for raw lines and ``close()``
            it to disconnect.

        Raises:
            NetworkError: If the stream cannot be opened.
        """
        url = f"{self._backend_url}/sessions/{quote(session_id, safe='')}/events"
        req = urllib.request.Request(url, headers={"Accept": "text/event-stream"})
        try:
            return urllib.request.urlopen(req, timeout=self._events_timeout)
        except urllib.error.HTTPError as exc:
            raise error_for_status(exc.code, f"HTTP {exc.code}") from exc
        except Exception as exc:
            raise NetworkError(str(exc)) from exc

    def iter_events(self, session_id: str) -> Iterator[SessionSnapshot]:
        """Yield each pushed session row until the stream ends.

        The first snapshot is the current row.

        Raises:
            NetworkError: If the stream cannot be opened.
        """
        with self.open_events(session_id) as resp:
            yield from iter_session_events(resp)
