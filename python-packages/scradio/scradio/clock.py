"""Clock offset estimation against the authority clock."""

import asyncio
import logging
import time
from typing import Callable

from .errors import ScradioError

logger = logging.getLogger(__name__)


def wall_clock_ms() -> float:
    """Local wall-clock time in epoch milliseconds."""
    return time.time() * 1000


def compute_offset(t0: float, t_server: float, t1: float) -> float:
    """Offset to add to local time to approximate authority time.

    Assumes the request and response legs took equally long, so the
    authority read its clock halfway through the round trip.

    Args:
        t0: Local time the request was sent.
        t_server: Authority time reported in the response.
        t1: Local time the response arrived.
    """
    return t_server + (t1 - t0) / 2 - t1


class ClockOffsetEstimator:
    """Tracks ``server_now = local_now + offset`` for one client.

    Args:
        fetch_server_time: Blocking call returning authority epoch ms
            (e.g. ``SessionApiClient.server_time_ms``).
        now_ms: Local clock in epoch ms (injectable for tests).
    """

    def __init__(
        self,
        fetch_server_time: Callable[[], float],
        now_ms: Callable[[], float] = wall_clock_ms,
    ) -> None:
        self._fetch_server_time = fetch_server_time
        self._now_ms = now_ms
        self.offset_ms: float = 0.0

    def local_now_ms(self) -> float:
        return self._now_ms()

    def server_now_ms(self) -> float:
        """Estimated authority time right now."""
        return self._now_ms() + self.offset_ms

    def observe(self, t_server: float, t0: float, t1: float) -> float:
        """Recalibrate from an authority timestamp carried by any response."""
        self.offset_ms = compute_offset(t0, t_server, t1)
        return self.offset_ms

    async def estimate(self) -> float:
        """One round trip to the authority clock; no retry.

        A failure keeps the previous offset.

        Returns:
            The offset in effect afterwards.
        """
        t0 = self._now_ms()
        try:
            t_server = await asyncio.to_thread(self._fetch_server_time)
        except ScradioError as exc:
            logger.debug("Clock offset estimate failed, keeping %.1f ms: %s", self.offset_ms, exc)
            return self.offset_ms
        t1 = self._now_ms()
        return self.observe(t_server, t0, t1)
