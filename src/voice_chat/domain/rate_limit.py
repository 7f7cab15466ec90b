import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from voice_chat.errors import RateLimitedError

logger = logging.getLogger(__name__)

RATE_LIMIT_MAX = 30
RATE_LIMIT_WINDOW_SECONDS = 60.0


@dataclass
class RateWindow:
    count: int
    window_start: float


class RateLimiter:
    def __init__(
        self,
        max_requests: int = RATE_LIMIT_MAX,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, RateWindow] = {}

    def window(self, client_id: str) -> RateWindow | None:
        return self._windows.get(client_id)

    def check(self, client_id: str) -> None:
        now = self._clock()
        window = self._windows.get(client_id)

        if window is None or now - window.window_start > self._window_seconds:
            self._windows[client_id] = RateWindow(count=1, window_start=now)
            return

        if window.count >= self._max_requests:
            logger.warning("Rate limit exceeded for %s (%d requests)", client_id, window.count)
            raise RateLimitedError("Too many requests. Please wait a moment.")

        window.count += 1
