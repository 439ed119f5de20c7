"""scradio - synchronized SoundCloud listening sessions for Python.

One host controls playback of a SoundCloud track; any number of listeners
follow along in near-real-time through a small backend that stores the
host's authoritative state.

Example:
    >>> from scradio import SessionApiClient, join_session
    >>> client = SessionApiClient("https://radio.example.com")
    >>> created = client.create_session("https://soundcloud.com/artist/track")
    >>> participant = await join_session(client, created.session_url_listener, widget)
    >>> ...
    >>> await participant.close()
"""

from .client import SessionApiClient
from .clock import ClockOffsetEstimator, compute_offset
from .config import (
    DEFAULT_BACKEND_URL,
    DEFAULT_TIMINGS,
    ScradioConfig,
    SyncTimings,
    get_default_config_path,
    load_config,
    save_config,
)
from .credentials import HostCredentialStore, MemoryCredentialStore, parse_session_url
from .errors import (
    ConfigError,
    InvalidStateError,
    NetworkError,
    ScradioError,
    SessionNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from .host import HostReporter
from .listener import (
    ListenerReconciler,
    ListenerStatus,
    ReconcileResult,
    lease_expired,
    target_position_ms,
)
from .models import (
    AppliedState,
    CreatedSession,
    HostAction,
    Role,
    SessionSnapshot,
    StateUpdate,
    SyncReason,
)
from .participant import Participant, join_session
from .realtime import SessionSubscription, subscribe_session
from .widget import PlaybackWidget, WidgetEvent

__version__ = "0.1.0"
__all__ = [
    # Main classes
    "SessionApiClient",
    "HostReporter",
    "ListenerReconciler",
    "ClockOffsetEstimator",
    "SessionSubscription",
    "Participant",
    "PlaybackWidget",
    # Data classes
    "SessionSnapshot",
    "StateUpdate",
    "AppliedState",
    "CreatedSession",
    "ListenerStatus",
    "ReconcileResult",
    "HostAction",
    "Role",
    "SyncReason",
    "WidgetEvent",
    "SyncTimings",
    "ScradioConfig",
    # Errors
    "ScradioError",
    "ConfigError",
    "ValidationError",
    "NetworkError",
    "SessionNotFoundError",
    "UnauthorizedError",
    "InvalidStateError",
    # Utilities
    "join_session",
    "subscribe_session",
    "parse_session_url",
    "compute_offset",
    "target_position_ms",
    "lease_expired",
    "HostCredentialStore",
    "MemoryCredentialStore",
    "load_config",
    "save_config",
    "get_default_config_path",
    "DEFAULT_BACKEND_URL",
    "DEFAULT_TIMINGS",
]
