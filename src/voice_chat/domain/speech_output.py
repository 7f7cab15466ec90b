import asyncio
import logging

from voice_chat.errors import SpeechError
from voice_chat.ports.synthesizer import SpeechEnginePort, Voice

logger = logging.getLogger(__name__)

VOICE_POLL_SECONDS = 0.1
PREPARE_WAIT_SECONDS = 0.05


def select_voice(voices: list[Voice], locale: str) -> Voice | None:
    if not voices:
        return None
    prefix = locale.lower()
    for voice in voices:
        if voice.lang.lower().startswith(prefix):
            return voice
    return voices[0]


class SpeechOutput:
    def __init__(
        self,
        engine: SpeechEnginePort,
        locale: str = "en",
        poll_interval: float = VOICE_POLL_SECONDS,
    ) -> None:
        self._engine = engine
        self._locale = locale
        self._poll_interval = poll_interval
        self._voice: Voice | None = None
        self._ready_event = asyncio.Event()
        self._discovery_task: asyncio.Task | None = None
        self._generation = 0
        self._speaking = False

    @property
    def voice(self) -> Voice | None:
        return self._voice

    @property
    def speaking(self) -> bool:
        return self._speaking

    def is_ready(self) -> bool:
        return self._ready_event.is_set()

    def acquire(self) -> None:
        if self._discovery_task is not None:
            return
        self._discovery_task = asyncio.create_task(self._discover_voices())

    async def release(self) -> None:
        if self._discovery_task is not None and not self._discovery_task.done():
            self._discovery_task.cancel()
            try:
                await self._discovery_task
            except asyncio.CancelledError:
                pass
        self._discovery_task = None
        self.stop()
        self._engine.close()

    async def prepare(self, timeout: float = PREPARE_WAIT_SECONDS) -> None:
        if self.is_ready():
            return
        try:
            await asyncio.wait_for(self._ready_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.debug("Speech output still discovering voices after %.2fs", timeout)

    async def speak(self, text: str, rate: float, volume: float) -> None:
        if not self.is_ready():
            raise SpeechError("TTS not initialized yet. Please wait for voices to load.")

        self.stop()
        self._generation += 1
        generation = self._generation
        self._speaking = True
        try:
            await self._engine.say(text, self._voice, rate, volume)
        except asyncio.CancelledError:
            self._engine.cancel()
            raise
        except SpeechError:
            raise
        except Exception as exc:
            raise SpeechError(f"TTS failed: {exc}") from exc
        finally:
            if generation == self._generation:
                self._speaking = False

        if generation != self._generation:
            raise SpeechError("TTS failed: interrupted")
        logger.info("Playback complete (%d chars)", len(text))

    def stop(self) -> None:
        if not self._speaking:
            return
        self._generation += 1
        self._speaking = False
        try:
            self._engine.cancel()
        except Exception:
            logger.warning("Speech cancel failed", exc_info=True)

    async def _discover_voices(self) -> None:
        while True:
            try:
                voices = await self._engine.list_voices()
            except Exception as exc:
                logger.debug("Voice discovery attempt failed: %s", exc)
                voices = []
            if voices:
                self._voice = select_voice(voices, self._locale)
                self._ready_event.set()
                logger.info(
                    "TTS voice selected: %s (%s)",
                    self._voice.name if self._voice else "default",
                    self._voice.lang if self._voice else "-",
                )
                return
            await asyncio.sleep(self._poll_interval)
