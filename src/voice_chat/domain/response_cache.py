import collections
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_MAX_ENTRIES = 1000


def make_cache_key(transcript: str, locale: str | None = None) -> str:
    normalized = transcript.strip().lower()
    if locale:
        return f"{locale}-{normalized}"
    return normalized


@dataclass(frozen=True)
class CacheEntry:
    text: str
    created_at: float


class ResponseCache:
    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int | None = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: collections.OrderedDict[str, CacheEntry] = collections.OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.created_at > self._ttl_seconds:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry.text

    def put(self, key: str, text: str) -> None:
        self._entries[key] = CacheEntry(text=text, created_at=self._clock())
        self._entries.move_to_end(key)
        if self._max_entries is not None:
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Cache full, evicted '%s'", evicted)

    def clear(self) -> None:
        self._entries.clear()
