import asyncio

import numpy as np
import pytest

from voice_chat.domain.speech_output import SpeechOutput
from voice_chat.domain.voice_settings import VoiceSettings
from voice_chat.errors import DeviceError
from voice_chat.ports.synthesizer import Voice


SAMPLE_RATE = 16000
BLOCK_SIZE = 2048


def generate_silence_block(size: int = BLOCK_SIZE, level: float = 0.0) -> np.ndarray:
    return np.full(size, level, dtype=np.float32)


def generate_sine_block(
    frequency: float = 440.0,
    size: int = BLOCK_SIZE,
    amplitude: float = 0.5,
    sample_rate: int = SAMPLE_RATE,
) -> np.ndarray:
    t = np.arange(size) / sample_rate
    return (np.sin(2 * np.pi * frequency * t) * amplitude).astype(np.float32)


def generate_speech_like_audio(duration_ms: int = 2000, sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    num_samples = int(sample_rate * duration_ms / 1000)
    t = np.arange(num_samples) / sample_rate
    fundamental = np.sin(2 * np.pi * 150 * t) * 0.4
    harmonic2 = np.sin(2 * np.pi * 300 * t) * 0.2
    harmonic3 = np.sin(2 * np.pi * 450 * t) * 0.1
    return (fundamental + harmonic2 + harmonic3).astype(np.float32)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)

    @property
    def total(self) -> float:
        return sum(self.delays)


class FakeRecorder:
    def __init__(self, audio: np.ndarray | None = None, fail_with: Exception | None = None) -> None:
        self._audio = audio if audio is not None else np.zeros(0, dtype=np.float32)
        self._fail_with = fail_with
        self._recording = False
        self.start_count = 0
        self.stop_count = 0

    @property
    def is_recording(self) -> bool:
        return self._recording

    def set_audio(self, audio: np.ndarray) -> None:
        self._audio = audio

    async def start(self) -> None:
        self.start_count += 1
        if self._fail_with is not None:
            raise self._fail_with
        self._recording = True

    def stop(self) -> np.ndarray:
        if not self._recording:
            return np.zeros(0, dtype=np.float32)
        self._recording = False
        self.stop_count += 1
        return self._audio


class FakeTranscriber:
    def __init__(self, text: str = "hello there", ready: bool = True, fail_with: Exception | None = None) -> None:
        self._text = text
        self._ready = ready
        self._fail_with = fail_with
        self.calls: list[np.ndarray] = []
        self.started = False
        self.closed = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def start(self) -> None:
        self.started = True

    async def initialize(self) -> None:
        self._ready = True

    async def transcribe(self, audio: np.ndarray) -> str:
        self.calls.append(audio)
        await asyncio.sleep(0)
        if self._fail_with is not None:
            raise self._fail_with
        return self._text

    async def close(self) -> None:
        self.closed = True
        self._ready = False


class FakeReplies:
    """Scripted outcomes: strings are returned, exceptions are raised, in order."""

    def __init__(self, outcomes: list | None = None) -> None:
        self._outcomes = list(outcomes or ["Hi! How can I help?"])
        self.calls: list[tuple[str, VoiceSettings, str | None]] = []
        self.closed = False

    async def complete(self, transcript: str, settings: VoiceSettings, locale: str | None = None) -> str:
        self.calls.append((transcript, settings, locale))
        await asyncio.sleep(0)
        outcome = self._outcomes[0] if len(self._outcomes) == 1 else self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def aclose(self) -> None:
        self.closed = True


class FakeBackend:
    def __init__(self, responses: list | None = None, delay: float = 0.0) -> None:
        self._responses = list(responses or ["Hi! How can I help?"])
        self._delay = delay
        self.prompts: list[str] = []
        self.closed = False

    @property
    def call_count(self) -> int:
        return len(self.prompts)

    async def generate(self, prompt: str) -> str | None:
        self.prompts.append(prompt)
        if self._delay:
            await asyncio.sleep(self._delay)
        response = self._responses[0] if len(self._responses) == 1 else self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def aclose(self) -> None:
        self.closed = True


class FakeSpeechEngine:
    def __init__(
        self,
        voices: list[Voice] | None = None,
        fail_with: Exception | None = None,
        empty_polls: int = 0,
        duration: float = 0.0,
    ) -> None:
        self._voices = voices if voices is not None else [
            Voice(id="de", name="Anna", lang="de-DE"),
            Voice(id="en", name="Samantha", lang="en-US"),
        ]
        self._fail_with = fail_with
        self._empty_polls = empty_polls
        self._duration = duration
        self._cancelled = asyncio.Event()
        self.list_calls = 0
        self.spoken: list[tuple[str, Voice | None, float, float]] = []
        self.cancel_count = 0
        self.closed = False

    async def list_voices(self) -> list[Voice]:
        self.list_calls += 1
        if self.list_calls <= self._empty_polls:
            return []
        return self._voices

    async def say(self, text: str, voice: Voice | None, rate: float, volume: float) -> None:
        self._cancelled.clear()
        self.spoken.append((text, voice, rate, volume))
        if self._fail_with is not None:
            raise self._fail_with
        if self._duration:
            try:
                await asyncio.wait_for(self._cancelled.wait(), timeout=self._duration)
            except asyncio.TimeoutError:
                pass
        else:
            await asyncio.sleep(0)

    def cancel(self) -> None:
        self.cancel_count += 1
        self._cancelled.set()

    def close(self) -> None:
        self.closed = True


async def ready_speech_output(engine: FakeSpeechEngine | None = None, locale: str = "en") -> SpeechOutput:
    speech = SpeechOutput(engine or FakeSpeechEngine(), locale=locale, poll_interval=0.001)
    speech.acquire()
    await speech.prepare(timeout=1.0)
    return speech


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def speech_audio():
    return generate_speech_like_audio(duration_ms=2000)


@pytest.fixture
def fake_recorder(speech_audio):
    return FakeRecorder(audio=speech_audio)


@pytest.fixture
def failing_recorder():
    return FakeRecorder(fail_with=DeviceError("Permission denied"))


@pytest.fixture
def fake_transcriber():
    return FakeTranscriber()


@pytest.fixture
def fake_replies():
    return FakeReplies()


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def fake_speech_engine():
    return FakeSpeechEngine()
