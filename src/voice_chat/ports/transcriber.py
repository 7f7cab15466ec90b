from collections.abc import Callable
from typing import Protocol

import numpy as np


class TranscriptionEngine(Protocol):
    def transcribe(self, audio: np.ndarray) -> str: ...


EngineLoader = Callable[[Callable[[str], None]], TranscriptionEngine]


class TranscriberPort(Protocol):
    @property
    def is_ready(self) -> bool: ...
    async def start(self) -> None: ...
    async def initialize(self) -> None: ...
    async def transcribe(self, audio: np.ndarray) -> str: ...
    async def close(self) -> None: ...
