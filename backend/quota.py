"""Per-client quota on card generation requests."""

import logging
import time
from collections import deque
from collections.abc import Callable

from backend.config import settings

logger = logging.getLogger(__name__)


class RequestQuota:
    """Sliding-window request counter keyed by client (e.g. IP address).

    A request is allowed when fewer than ``limit`` requests from the same
    client were accepted in the last ``window_seconds``.
    """

    def __init__(
        self,
        limit: int = settings.generation_requests_per_window,
        window_seconds: float = settings.generation_window_seconds,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: dict[str, deque[float]] = {}

    def _prune(self, key: str) -> deque[float]:
        """Drop timestamps outside the window. Clients left with none are forgotten."""
        timestamps = self._requests.get(key)
        if timestamps is None:
            return deque()
        now = self._clock()
        while timestamps and now - timestamps[0] >= self.window_seconds:
            timestamps.popleft()
        if not timestamps:
            del self._requests[key]
        return timestamps

    def _expire_idle(self) -> None:
        for key in list(self._requests):
            self._prune(key)

    def check(self, key: str) -> bool:
        """Record a request for ``key`` if it is within quota. Returns whether it was allowed."""
        self._expire_idle()
        timestamps = self._requests.get(key, deque())
        if len(timestamps) >= self.limit:
            logger.info("Generation quota exceeded for %s", key)
            return False
        timestamps.append(self._clock())
        self._requests[key] = timestamps
        return True

    def remaining(self, key: str) -> int:
        return max(0, self.limit - len(self._prune(key)))

    @property
    def tracked_clients(self) -> int:
        return len(self._requests)

    def reset(self) -> None:
        self._requests.clear()


generation_quota = RequestQuota()
