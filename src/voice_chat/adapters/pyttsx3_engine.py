import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor

import pyttsx3

from voice_chat.errors import SpeechError
from voice_chat.ports.synthesizer import Voice

logger = logging.getLogger(__name__)

BASE_WORDS_PER_MINUTE = 180


def _voice_language(raw_voice) -> str:
    for language in getattr(raw_voice, "languages", None) or []:
        if isinstance(language, bytes):
            language = language.decode("utf-8", errors="ignore")
        cleaned = "".join(ch for ch in str(language) if ch.isprintable()).strip()
        if cleaned:
            return cleaned
    return ""


class Pyttsx3SpeechEngine:
    """On-device synthesis through pyttsx3.

    pyttsx3 drivers must be driven from the thread that created them, so every
    engine call goes through a single-thread executor.
    """

    def __init__(self, base_words_per_minute: int = BASE_WORDS_PER_MINUTE) -> None:
        self._base_wpm = base_words_per_minute
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pyttsx3")
        self._engine = None
        self._generation = 0
        self._cancelled_generation = 0
        self._speaking_generation = 0

    async def list_voices(self) -> list[Voice]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self._list_voices_blocking)

    async def say(self, text: str, voice: Voice | None, rate: float, volume: float) -> None:
        self._generation += 1
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            self._executor, self._say_blocking, self._generation, text, voice, rate, volume,
        )

    def cancel(self) -> None:
        self._cancelled_generation = self._generation

    def close(self) -> None:
        self.cancel()
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _ensure_engine(self):
        if self._engine is None:
            try:
                self._engine = pyttsx3.init()
            except Exception as exc:
                raise SpeechError(f"Speech synthesis not available: {exc}") from exc
            self._engine.connect("started-word", self._on_word)
        return self._engine

    def _list_voices_blocking(self) -> list[Voice]:
        engine = self._ensure_engine()
        return [
            Voice(id=raw.id, name=raw.name or raw.id, lang=_voice_language(raw))
            for raw in engine.getProperty("voices") or []
        ]

    def _say_blocking(
        self, generation: int, text: str, voice: Voice | None, rate: float, volume: float,
    ) -> None:
        engine = self._ensure_engine()
        self._speaking_generation = generation
        if voice is not None:
            engine.setProperty("voice", voice.id)
        engine.setProperty("rate", int(self._base_wpm * rate))
        engine.setProperty("volume", volume)
        engine.say(text)
        engine.runAndWait()

    def _on_word(self, name, location, length) -> None:
        # Stops only utterances submitted before the latest cancel().
        if self._speaking_generation <= self._cancelled_generation:
            self._engine.stop()
