"""Host credential transport: URL fragments and a local per-session store."""

import json
import logging
import threading
from pathlib import Path
from urllib.parse import parse_qs, urlparse, urlunparse

from .errors import ConfigError, ValidationError

logger = logging.getLogger(__name__)


def parse_session_url(url: str) -> tuple[str, str | None]:
    """Split a session link into ``(session_id, host_secret or None)``.

    Host links look like ``https://host/session/<id>#host=<secret>``;
    listener links have no fragment.

    Raises:
        ValidationError: If the path is not ``/session/<id>``.
    """
    parsed = urlparse(url)
    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) < 2 or parts[-2] != "session":
        raise ValidationError(f"Not a session link: {url!r}", field="url")

    secret = None
    if parsed.fragment:
        values = parse_qs(parsed.fragment).get("host")
        if values and values[0].strip():
            secret = values[0].strip()
    return parts[-1], secret


def strip_fragment(url: str) -> str:
    """Drop the fragment so the host secret is not shown or shared further."""
    return urlunparse(urlparse(url)._replace(fragment=""))


class HostCredentialStore:
    """Host secrets persisted per session id in a small JSON file.

    The secret is reused across restarts of the same client, so a host only
    needs the secret-bearing link once.
    """

    def __init__(self, path: Path | str):
        self._path = Path(path).expanduser()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in credentials file: {e}") from e
        except OSError as e:
            raise ConfigError(f"Cannot read credentials file: {e}") from e
        return {str(k): str(v) for k, v in data.items()} if isinstance(data, dict) else {}

    def _write(self, data: dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w") as f:
                json.dump(data, f, indent=2)
            self._path.chmod(0o600)
        except OSError as e:
            raise ConfigError(f"Cannot write credentials file: {e}") from e

    def get(self, session_id: str) -> str | None:
        """Return the stored secret for a session, or None."""
        with self._lock:
            return self._read().get(session_id)

    def put(self, session_id: str, secret: str) -> None:
        """Remember the secret for a session."""
        with self._lock:
            data = self._read()
            data[session_id] = secret
            self._write(data)
        logger.debug("Stored host credential for session %s", session_id)

    def forget(self, session_id: str) -> bool:
        """Drop a stored secret. Returns True if one was stored."""
        with self._lock:
            data = self._read()
            if session_id not in data:
                return False
            del data[session_id]
            self._write(data)
            return True


class MemoryCredentialStore:
    """In-process stand-in for ``HostCredentialStore`` (nothing is persisted)."""

    def __init__(self) -> None:
        self._secrets: dict[str, str] = {}

    def get(self, session_id: str) -> str | None:
        return self._secrets.get(session_id)

    def put(self, session_id: str, secret: str) -> None:
        self._secrets[session_id] = secret

    def forget(self, session_id: str) -> bool:
        return self._secrets.pop(session_id, None) is not None
