import logging
import threading
from collections.abc import Callable

import numpy as np

logger = logging.getLogger(__name__)

SILENCE_THRESHOLD = 0.01

BlockObserver = Callable[[np.ndarray], None]


def is_near_silence(block: np.ndarray, threshold: float = SILENCE_THRESHOLD) -> bool:
    if block.size == 0:
        return True
    return float(np.max(np.abs(block))) < threshold


class AudioSession:
    def __init__(
        self,
        silence_threshold: float = SILENCE_THRESHOLD,
        observer: BlockObserver | None = None,
    ) -> None:
        self._silence_threshold = silence_threshold
        self._observer = observer
        self._blocks: list[np.ndarray] = []
        self._lock = threading.Lock()
        self._closed = False
        self._stream = None
        self._blocks_seen = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def accepted_blocks(self) -> int:
        return len(self._blocks)

    @property
    def blocks_seen(self) -> int:
        return self._blocks_seen

    def attach_stream(self, stream) -> None:
        self._stream = stream

    def append(self, block: np.ndarray) -> bool:
        samples = np.asarray(block, dtype=np.float32).reshape(-1)
        with self._lock:
            if self._closed:
                return False
            self._blocks_seen += 1

        if self._observer is not None:
            try:
                self._observer(samples)
            except Exception:
                logger.exception("Waveform observer failed")

        if is_near_silence(samples, self._silence_threshold):
            return False

        with self._lock:
            if self._closed:
                return False
            self._blocks.append(samples.copy())
        return True

    def close(self) -> np.ndarray:
        with self._lock:
            if self._closed:
                return np.zeros(0, dtype=np.float32)
            self._closed = True
            blocks = self._blocks
            self._blocks = []

        self._release_stream()

        if not blocks:
            logger.info("Recording stopped with no speech captured")
            return np.zeros(0, dtype=np.float32)

        audio = np.concatenate(blocks)
        logger.info(
            "Recording stopped: %d/%d blocks accepted, %d samples",
            len(blocks), self._blocks_seen, audio.size,
        )
        return audio

    def _release_stream(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()
