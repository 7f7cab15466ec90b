import logging
from collections.abc import Callable, Sequence

import numpy as np
from faster_whisper import WhisperModel

from voice_chat.errors import ModelLoadError

logger = logging.getLogger(__name__)

DEFAULT_MODELS = ("tiny.en", "base.en")
DEFAULT_CHUNK_LENGTH_SECONDS = 15


class WhisperEngine:
    def __init__(
        self,
        model: WhisperModel,
        model_name: str,
        language: str = "en",
        chunk_length: int = DEFAULT_CHUNK_LENGTH_SECONDS,
    ) -> None:
        self._model = model
        self._model_name = model_name
        self._language = language
        self._chunk_length = chunk_length

    @property
    def model_name(self) -> str:
        return self._model_name

    def transcribe(self, audio: np.ndarray) -> str:
        segments, _ = self._model.transcribe(
            np.asarray(audio, dtype=np.float32),
            language=self._language,
            beam_size=1,
            chunk_length=self._chunk_length,
            condition_on_previous_text=False,
            without_timestamps=True,
        )
        return " ".join(segment.text.strip() for segment in segments).strip()


def load_whisper_engine(
    progress: Callable[[str], None],
    models: Sequence[str] = DEFAULT_MODELS,
    device: str = "cpu",
    compute_type: str = "int8",
    language: str = "en",
    chunk_length: int = DEFAULT_CHUNK_LENGTH_SECONDS,
) -> WhisperEngine:
    last_error: Exception | None = None
    for index, name in enumerate(models):
        progress("Loading fast model..." if index == 0 else f"Loading enhanced model ({name})...")
        try:
            model = WhisperModel(name, device=device, compute_type=compute_type)
        except Exception as exc:
            logger.warning("Whisper model %s failed to load: %s", name, exc)
            last_error = exc
            continue
        progress(f"Model {name} loaded")
        return WhisperEngine(model, name, language=language, chunk_length=chunk_length)

    raise ModelLoadError(f"Speech recognition failed: {last_error}")
