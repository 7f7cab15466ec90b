import asyncio
import logging

from voice_chat.domain.response_cache import ResponseCache, make_cache_key
from voice_chat.domain.voice_settings import VoiceSettings
from voice_chat.errors import CompletionTimeoutError
from voice_chat.ports.completion import CompletionBackendPort

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I couldn't generate a response."
DEFAULT_TIMEOUT_SECONDS = 8.0

SYSTEM_PROMPTS = {
    "en": (
        "You are a helpful AI assistant. "
        "Keep responses very brief and conversational (1-2 sentences max)."
    ),
    "hi": (
        "You are a helpful AI assistant. Respond in Hindi when user speaks Hindi, "
        "English when they speak English. Keep responses very brief (1-2 sentences max)."
    ),
}


def build_prompt(transcript: str, locale: str = "en") -> str:
    system_prompt = SYSTEM_PROMPTS.get(locale, SYSTEM_PROMPTS["en"])
    return f'{system_prompt}\n\nUser: "{transcript}"'


class CompletionService:
    def __init__(
        self,
        backend: CompletionBackendPort,
        cache: ResponseCache,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        default_locale: str = "en",
    ) -> None:
        self._backend = backend
        self._cache = cache
        self._timeout_seconds = timeout_seconds
        self._default_locale = default_locale

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    async def complete(
        self,
        transcript: str,
        settings: VoiceSettings,
        locale: str | None = None,
    ) -> str:
        key = make_cache_key(transcript, locale)
        if settings.caching_enabled:
            cached = self._cache.get(key)
            if cached is not None:
                logger.info("Cache hit for '%s'", key)
                return cached

        prompt = build_prompt(transcript.strip(), locale or self._default_locale)
        try:
            text = await asyncio.wait_for(
                self._backend.generate(prompt),
                timeout=self._timeout_seconds,
            )
        except CompletionTimeoutError:
            raise
        except asyncio.TimeoutError:
            raise CompletionTimeoutError(
                f"Completion timed out after {self._timeout_seconds:.0f}s"
            ) from None

        if not text or not text.strip():
            logger.warning("Completion returned no candidate text, using fallback")
            text = FALLBACK_REPLY
        text = text.strip()

        if settings.caching_enabled:
            self._cache.put(key, text)
        logger.info("Reply: %s", text)
        return text

    async def aclose(self) -> None:
        await self._backend.aclose()
