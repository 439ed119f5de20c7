"""Configuration management for scradio."""

import json
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any

from .errors import ConfigError

DEFAULT_BACKEND_URL = "http://localhost:3000"
DEFAULT_CONFIG_FILENAME = ".scradio-config.json"
DEFAULT_CREDENTIALS_FILENAME = ".scradio-hosts.json"


@dataclass(frozen=True)
class SyncTimings:
    """Every timer used by the host reporter and the listener reconciler.

    All values are milliseconds.
    """

    # Host reporter
    seek_resend_delays_ms: tuple[int, ...] = (350, 900)
    progress_throttle_ms: int = 1200
    heartbeat_playing_ms: int = 1500
    heartbeat_paused_ms: int = 10_000

    # Listener reconciler
    poll_interval_ms: int = 9000
    drift_threshold_ms: int = 700
    periodic_drift_threshold_ms: int = 1800
    autoplay_probe_delay_ms: int = 1200
    autoplay_min_advance_ms: int = 200
    ui_tick_ms: int = 1000

    def scaled(self, factor: float) -> "SyncTimings":
        """Return a copy with every delay multiplied by ``factor``.

        Thresholds (drift, autoplay advance) are left unchanged.
        """
        return SyncTimings(
            seek_resend_delays_ms=tuple(int(d * factor) for d in self.seek_resend_delays_ms),
            progress_throttle_ms=int(self.progress_throttle_ms * factor),
            heartbeat_playing_ms=int(self.heartbeat_playing_ms * factor),
            heartbeat_paused_ms=int(self.heartbeat_paused_ms * factor),
            poll_interval_ms=int(self.poll_interval_ms * factor),
            drift_threshold_ms=self.drift_threshold_ms,
            periodic_drift_threshold_ms=self.periodic_drift_threshold_ms,
            autoplay_probe_delay_ms=int(self.autoplay_probe_delay_ms * factor),
            autoplay_min_advance_ms=self.autoplay_min_advance_ms,
            ui_tick_ms=int(self.ui_tick_ms * factor),
        )


DEFAULT_TIMINGS = SyncTimings()


@dataclass
class ScradioConfig:
    """Client configuration."""

    backend_url: str = DEFAULT_BACKEND_URL
    credentials_path: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScradioConfig":
        """Create config from dictionary."""
        # Accept camelCase keys written by the web client
        return cls(
            backend_url=data.get("backend_url", data.get("backendUrl", DEFAULT_BACKEND_URL)),
            credentials_path=data.get("credentials_path", data.get("credentialsPath", "")),
        )

    def resolved_credentials_path(self) -> Path:
        if self.credentials_path:
            return Path(self.credentials_path).expanduser()
        return Path.home() / DEFAULT_CREDENTIALS_FILENAME


def get_default_config_path() -> Path:
    """Get the default config file path (~/.scradio-config.json)."""
    return Path.home() / DEFAULT_CONFIG_FILENAME


def load_config(config_path: Path | str | None = None) -> ScradioConfig:
    """Load configuration from file.

    Args:
        config_path: Path to config file. If None, uses default path.

    Returns:
        ScradioConfig instance (defaults when the file does not exist).

    Raises:
        ConfigError: If config file exists but cannot be parsed.
    """
    if config_path is None:
        config_path = get_default_config_path()
    else:
        config_path = Path(config_path)

    if not config_path.exists():
        return ScradioConfig()

    try:
        with open(config_path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a JSON object")
    return ScradioConfig.from_dict(data)


def save_config(config: ScradioConfig, config_path: Path | str | None = None) -> None:
    """Save configuration to file.

    Args:
        config: ScradioConfig instance to save.
        config_path: Path to config file. If None, uses default path.

    Raises:
        ConfigError: If config cannot be saved.
    """
    if config_path is None:
        config_path = get_default_config_path()
    else:
        config_path = Path(config_path)

    try:
        with open(config_path, "w") as f:
            json.dump(config.to_dict(), f, indent=2)
    except OSError as e:
        raise ConfigError(f"Cannot write config file: {e}") from e
