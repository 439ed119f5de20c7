"""Data classes shared by the host and listener sides."""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .errors import ValidationError


class HostAction(str, Enum):
    """Kinds of host state report."""

    PLAY = "PLAY"
    PAUSE = "PAUSE"
    SEEK = "SEEK"
    HEARTBEAT = "HEARTBEAT"


class Role(str, Enum):
    """What a participant may do: the host writes state, listeners only read."""

    HOST = "host"
    LISTENER = "listener"

    @property
    def can_write_state(self) -> bool:
        return self is Role.HOST


class SyncReason(str, Enum):
    """Why a listener reconciliation is running."""

    INITIAL = "initial"
    PUSHED = "pushed"
    PERIODIC = "periodic"


def clamp_ms(ms: Any) -> int:
    """Clamp a position to a non-negative whole number of milliseconds."""
    try:
        value = float(ms)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(value):
        return 0
    return max(0, math.floor(value))


def parse_timestamp(value: Any) -> int:
    """Parse a wire timestamp into epoch milliseconds.

    Accepts ISO-8601 strings (``Z`` or offset suffix; naive means UTC) and
    numeric epoch milliseconds.

    Raises:
        ValidationError: If the value cannot be interpreted.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    if not isinstance(value, str) or not value:
        raise ValidationError(f"Invalid timestamp: {value!r}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(f"Invalid timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return round(parsed.timestamp() * 1000)


@dataclass
class SessionSnapshot:
    """A listener's view of one session row. Timestamps are epoch ms."""

    id: str
    track_url: str
    playing: bool
    position_ms: int
    state_updated_at: int
    host_lease_expires_at: int
    created_at: int | None = None
    last_error: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionSnapshot":
        """Build a snapshot from a ``GET /sessions/<id>`` body."""
        if not isinstance(data, dict):
            raise ValidationError(f"Session payload is not an object: {type(data).__name__}")
        try:
            created = data.get("created_at")
            return cls(
                id=str(data["id"]),
                track_url=str(data["track_url"]),
                playing=bool(data["playing"]),
                position_ms=clamp_ms(data["position_ms"]),
                state_updated_at=parse_timestamp(data["state_updated_at"]),
                host_lease_expires_at=parse_timestamp(data["host_lease_expires_at"]),
                created_at=parse_timestamp(created) if created is not None else None,
                last_error=data.get("last_error"),
            )
        except KeyError as exc:
            raise ValidationError(f"Session payload missing {exc.args[0]!r}", field=exc.args[0]) from exc


@dataclass
class StateUpdate:
    """One host state report."""

    action: HostAction
    playing: bool
    position_ms: int
    client_sent_at_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "action": self.action.value,
            "playing": self.playing,
            "position_ms": clamp_ms(self.position_ms),
        }
        if self.client_sent_at_ms is not None:
            body["client_sent_at_ms"] = self.client_sent_at_ms
        return body


@dataclass
class AppliedState:
    """Backend acknowledgement of a state write (authority clock, epoch ms)."""

    server_time: int
    host_lease_expires_at: int | None = None


@dataclass
class CreatedSession:
    """Result of ``POST /sessions``. ``host_secret`` is only ever shown once."""

    session_id: str
    host_secret: str
    session_url_host: str
    session_url_listener: str
