from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class Voice:
    id: str
    name: str
    lang: str


class SpeechEnginePort(Protocol):
    async def list_voices(self) -> list[Voice]: ...
    async def say(self, text: str, voice: Voice | None, rate: float, volume: float) -> None: ...
    def cancel(self) -> None: ...
    def close(self) -> None: ...
