import logging
import os

import numpy as np
import sounddevice as sd

from voice_chat.domain.audio_session import SILENCE_THRESHOLD, AudioSession, BlockObserver
from voice_chat.errors import DeviceError

logger = logging.getLogger(__name__)


class SounddeviceRecorder:
    def __init__(
        self,
        device: str | int | None = None,
        sample_rate: int = 16000,
        block_size: int = 2048,
        gain: float = 1.0,
        silence_threshold: float = SILENCE_THRESHOLD,
        observer: BlockObserver | None = None,
    ) -> None:
        self._device = device
        self._sample_rate = sample_rate
        self._block_size = block_size
        self._gain = gain
        self._silence_threshold = silence_threshold
        self._observer = observer
        self._session: AudioSession | None = None

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def block_size(self) -> int:
        return self._block_size

    @property
    def is_recording(self) -> bool:
        return self._session is not None

    async def start(self) -> None:
        if self._session is not None:
            raise DeviceError("Recording already in progress")

        session = AudioSession(
            silence_threshold=self._silence_threshold,
            observer=self._observer,
        )
        gain = self._gain

        def audio_callback(indata: np.ndarray, frames: int, time_info, status) -> None:
            if status:
                logger.warning("Audio capture status: %s", status)
            block = indata[:, 0]
            if gain != 1.0:
                block = np.clip(block * gain, -1.0, 1.0)
            session.append(block)

        try:
            device = self._resolve_device()
            stream = sd.InputStream(
                device=device,
                samplerate=self._sample_rate,
                channels=1,
                dtype="float32",
                blocksize=self._block_size,
                callback=audio_callback,
            )
        except (sd.PortAudioError, ValueError) as exc:
            raise DeviceError(
                "Failed to access microphone. Please check permissions."
            ) from exc

        session.attach_stream(stream)
        try:
            stream.start()
        except sd.PortAudioError as exc:
            session.close()
            raise DeviceError(
                "Failed to access microphone. Please check permissions."
            ) from exc

        self._session = session
        logger.info(
            "Audio capture started (device=%s, rate=%d, block=%d)",
            device, self._sample_rate, self._block_size,
        )

    def stop(self) -> np.ndarray:
        session = self._session
        if session is None:
            return np.zeros(0, dtype=np.float32)
        self._session = None
        return session.close()

    def _resolve_device(self) -> str | int | None:
        if self._device is None or self._device == "":
            return None
        if isinstance(self._device, int):
            return self._device
        try:
            return int(self._device)
        except ValueError:
            pass
        for i, dev in enumerate(sd.query_devices()):
            if self._device.lower() in dev["name"].lower() and dev["max_input_channels"] > 0:
                logger.info("Resolved device '%s' -> %d (%s)", self._device, i, dev["name"])
                return i
        os.environ["PIPEWIRE_NODE"] = self._device
        logger.info("Device '%s' not in PortAudio, set PIPEWIRE_NODE for PipeWire routing", self._device)
        return None
