"""Lease & authority manager for scradio-backend.

One host credential per session may write playback state. Each accepted
write renews the host lease for ``LEASE_DURATION_MS``; listeners treat an
expired lease as "host offline". Writes are last-writer-wins in arrival
order, with no fencing between two tabs holding the same credential.
"""

import logging
import math
import sqlite3
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .credentials import generate_host_secret, hash_host_secret, safe_secret_match
from .store import SessionStore

logger = logging.getLogger(__name__)

LEASE_DURATION_MS = 20_000

# Largest value a SQLite INTEGER column holds.
MAX_POSITION_MS = 2 ** 63 - 1

HOST_ACTIONS = frozenset({"PLAY", "PAUSE", "SEEK", "HEARTBEAT"})


class AuthorityError(Exception):
    """Base class for rejected state writes."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SessionNotFound(AuthorityError):
    status_code = 404

    def __init__(self, message: str = "Session not found"):
        super().__init__(message)


class Unauthorized(AuthorityError):
    status_code = 401

    def __init__(self, message: str = "Invalid host secret"):
        super().__init__(message)


class InvalidState(AuthorityError):
    status_code = 400

    def __init__(self, message: str = "Invalid payload", field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class StoreUnavailable(AuthorityError):
    status_code = 500

    def __init__(self, message: str = "Failed to update state"):
        super().__init__(message)


@dataclass
class RequestedState:
    """A decoded host state write."""

    playing: bool
    position_ms: int
    action: Optional[str] = None
    client_sent_at_ms: Optional[float] = None


@dataclass
class AppliedState:
    """Result of an accepted write. ``server_time`` is the authority clock (ms)."""

    session_id: str
    playing: bool
    position_ms: int
    state_updated_at: int
    host_lease_expires_at: int
    server_time: int


@dataclass
class CreatedSession:
    session_id: str
    host_secret: str
    row: dict


def clamp_position(raw: Any) -> int:
    """Clamp a reported position to a whole number of ms in
    ``[0, MAX_POSITION_MS]``.

    Non-finite values become 0 rather than being rejected.
    """
    if isinstance(raw, int) and not isinstance(raw, bool):
        return min(MAX_POSITION_MS, max(0, raw))
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(value):
        return 0
    return min(MAX_POSITION_MS, max(0, math.floor(value)))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_requested_state(payload: Any) -> RequestedState:
    """Decode a state-write body.

    Raises:
        InvalidState: If the body is not an object, ``playing`` is not a bool,
            ``position_ms`` is not a number, or ``action`` is unknown.
    """
    if not isinstance(payload, dict):
        raise InvalidState("Invalid payload")
    if not isinstance(payload.get("playing"), bool):
        raise InvalidState("playing must be a boolean", field="playing")
    if not _is_number(payload.get("position_ms")):
        raise InvalidState("position_ms must be a number", field="position_ms")

    action = payload.get("action")
    if action is not None and action not in HOST_ACTIONS:
        raise InvalidState(f"Unknown action: {action!r}", field="action")

    sent_at = payload.get("client_sent_at_ms")
    return RequestedState(
        playing=payload["playing"],
        position_ms=clamp_position(payload["position_ms"]),
        action=action,
        client_sent_at_ms=sent_at if _is_number(sent_at) else None,
    )


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class LeaseAuthorityManager:
    """Grants and renews the single write lease of each session.

    Args:
        store: Session state store.
        pepper: Secret pepper mixed into credential hashes.
        clock: Authority clock in epoch milliseconds (injectable for tests).
    """

    def __init__(
        self,
        store: SessionStore,
        pepper: str = "",
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._store = store
        self._pepper = pepper
        self._clock = clock or _wall_clock_ms

    def now(self) -> int:
        """Current authority time in epoch milliseconds."""
        return int(self._clock())

    def create_session(self, track_url: str) -> CreatedSession:
        """Create a session and its one host credential.

        The plaintext secret is returned once and never stored.
        """
        secret = generate_host_secret()
        now = self.now()
        row = self._store.create({
            "id": uuid.uuid4().hex,
            "track_url": track_url,
            "host_secret_hash": hash_host_secret(secret, self._pepper),
            "created_at": now,
            "playing": False,
            "position_ms": 0,
            "state_updated_at": now,
            "host_lease_expires_at": now + LEASE_DURATION_MS,
            "last_error": None,
        })
        logger.info("Created session %s", row["id"])
        return CreatedSession(session_id=row["id"], host_secret=secret, row=row)

    def validate_and_apply(
        self,
        session_id: str,
        credential: Optional[str],
        requested: RequestedState,
    ) -> AppliedState:
        """Validate the host credential and persist the requested state.

        Every accepted write renews the lease, whatever the action.

        Raises:
            SessionNotFound: Unknown session id.
            Unauthorized: Missing credential or hash mismatch. Nothing is written.
            StoreUnavailable: The store rejected the write.
        """
        def build(row: dict) -> dict:
            if not credential or not safe_secret_match(credential, row["host_secret_hash"], self._pepper):
                raise Unauthorized()
            # Never move state_updated_at backwards, even if the wall clock does.
            now = max(self.now(), row["state_updated_at"])
            return {
                "playing": requested.playing,
                "position_ms": clamp_position(requested.position_ms),
                "state_updated_at": now,
                "host_lease_expires_at": now + LEASE_DURATION_MS,
                "last_error": None,
            }

        try:
            updated = self._store.update_with(session_id, build)
        except (sqlite3.Error, OverflowError) as exc:
            logger.error("State write failed for %s: %s", session_id, exc)
            raise StoreUnavailable() from exc
        if updated is None:
            raise SessionNotFound()

        logger.debug(
            "Applied %s for %s: playing=%s position_ms=%d",
            requested.action or "state", session_id, updated["playing"], updated["position_ms"],
        )
        return AppliedState(
            session_id=session_id,
            playing=updated["playing"],
            position_ms=updated["position_ms"],
            state_updated_at=updated["state_updated_at"],
            host_lease_expires_at=updated["host_lease_expires_at"],
            server_time=updated["state_updated_at"],
        )
