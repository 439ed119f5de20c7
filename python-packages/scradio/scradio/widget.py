"""Playback widget capability used by hosts and listeners.

The widget is whatever actually plays the track (an embedded SoundCloud
player driven over a bridge, a local audio engine, a test double). The sync
core only needs the surface below.
"""

from enum import Enum
from typing import Callable, Protocol

from .models import clamp_ms


class WidgetEvent(str, Enum):
    READY = "READY"
    PLAY = "PLAY"
    PAUSE = "PAUSE"
    SEEK = "SEEK"
    FINISH = "FINISH"
    PLAY_PROGRESS = "PLAY_PROGRESS"


WidgetCallback = Callable[[], None]


class PlaybackWidget(Protocol):
    """Capability surface of a playback widget.

    ``ready()`` raises if the track cannot be loaded or embedded. Callbacks
    bound with ``bind()`` are invoked on the event loop thread.
    """

    async def ready(self) -> None: ...

    def bind(self, event: WidgetEvent, callback: WidgetCallback) -> None: ...

    def unbind(self, event: WidgetEvent, callback: WidgetCallback) -> None: ...

    async def get_position(self) -> float: ...

    async def seek_to(self, ms: int) -> None: ...

    async def play(self) -> None: ...

    async def pause(self) -> None: ...


normalize_ms = clamp_ms
