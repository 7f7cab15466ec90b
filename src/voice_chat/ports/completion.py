from typing import Protocol

from voice_chat.domain.voice_settings import VoiceSettings


class CompletionBackendPort(Protocol):
    async def generate(self, prompt: str) -> str | None: ...
    async def aclose(self) -> None: ...


class ReplyPort(Protocol):
    async def complete(
        self,
        transcript: str,
        settings: VoiceSettings,
        locale: str | None = None,
    ) -> str: ...
    async def aclose(self) -> None: ...
