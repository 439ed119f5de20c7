"""Wire representations of session rows."""

from datetime import datetime, timezone
from typing import Optional

PUBLIC_FIELDS = (
    "id",
    "track_url",
    "created_at",
    "playing",
    "position_ms",
    "state_updated_at",
    "host_lease_expires_at",
    "last_error",
)

_TIMESTAMP_FIELDS = ("created_at", "state_updated_at", "host_lease_expires_at")


def to_iso(ms: Optional[int]) -> Optional[str]:
    """Epoch milliseconds -> ISO-8601 UTC string with millisecond precision."""
    if ms is None:
        return None
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat(timespec="milliseconds")


def public_session(row: dict) -> dict:
    """Project a stored row onto the fields any reader may see.

    ``host_secret_hash`` is never included.
    """
    data = {name: row.get(name) for name in PUBLIC_FIELDS}
    for name in _TIMESTAMP_FIELDS:
        data[name] = to_iso(data[name])
    return data
