import collections
from collections.abc import Callable
from dataclasses import dataclass
import time

DEFAULT_HISTORY_SIZE = 10


@dataclass
class LatencyMetrics:
    capture_to_transcript: float | None = None
    transcript_to_completion: float | None = None
    completion_to_speech_done: float | None = None
    total: float | None = None

    def to_dict(self) -> dict[str, float | None]:
        return {
            "capture_to_transcript": self.capture_to_transcript,
            "transcript_to_completion": self.transcript_to_completion,
            "completion_to_speech_done": self.completion_to_speech_done,
            "total": self.total,
        }


class LatencyTracker:
    """Per-cycle stage timing plus a bounded history of cycle totals.

    The cycle clock starts when recording stops, so ``total`` measures how long
    the user waited for a spoken reply rather than how long they talked.
    """

    def __init__(
        self,
        history_size: int = DEFAULT_HISTORY_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._history: collections.deque[float] = collections.deque(maxlen=history_size)
        self._current = LatencyMetrics()
        self._cycle_start: float | None = None
        self._mark: float | None = None

    @property
    def current(self) -> LatencyMetrics:
        return self._current

    @property
    def history(self) -> list[float]:
        return list(self._history)

    @property
    def average(self) -> float | None:
        if not self._history:
            return None
        return sum(self._history) / len(self._history)

    def begin_cycle(self) -> None:
        self._current = LatencyMetrics()
        self._cycle_start = self._clock()
        self._mark = self._cycle_start

    def _lap(self) -> float:
        now = self._clock()
        elapsed = now - (self._mark if self._mark is not None else now)
        self._mark = now
        return elapsed

    def transcript_received(self) -> None:
        self._current.capture_to_transcript = self._lap()

    def completion_received(self) -> None:
        self._current.transcript_to_completion = self._lap()

    def speech_finished(self) -> None:
        self._current.completion_to_speech_done = self._lap()

    def end_cycle(self, record_history: bool = True) -> LatencyMetrics:
        if self._cycle_start is None:
            return self._current
        self._current.total = self._clock() - self._cycle_start
        if record_history:
            self._history.append(self._current.total)
        self._cycle_start = None
        self._mark = None
        return self._current
