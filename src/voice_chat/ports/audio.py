from typing import Protocol

import numpy as np


class RecorderPort(Protocol):
    @property
    def is_recording(self) -> bool: ...
    async def start(self) -> None: ...
    def stop(self) -> np.ndarray: ...
