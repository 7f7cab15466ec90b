import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from voice_chat.domain.latency import LatencyMetrics, LatencyTracker
from voice_chat.domain.retry import retry_with_backoff
from voice_chat.domain.speech_output import SpeechOutput
from voice_chat.domain.state import PipelineState, validate_transition
from voice_chat.domain.voice_settings import VoiceSettings
from voice_chat.errors import (
    EmptyAudioError,
    PipelineBusyError,
    SpeechError,
    SystemNotReadyError,
    VoiceChatError,
)
from voice_chat.ports.audio import RecorderPort
from voice_chat.ports.completion import ReplyPort
from voice_chat.ports.transcriber import TranscriberPort

logger = logging.getLogger(__name__)

NO_AUDIO_MESSAGE = "No audio data captured. Please try again."
NO_SPEECH_MESSAGE = "No speech recognized. Please try again."


@dataclass
class CycleResult:
    transcript: str = ""
    reply: str = ""
    error: str | None = None
    speech_error: str | None = None
    latency: LatencyMetrics = field(default_factory=LatencyMetrics)

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.reply)

    def to_dict(self) -> dict[str, Any]:
        return {
            "transcript": self.transcript,
            "reply": self.reply,
            "error": self.error,
            "speech_error": self.speech_error,
            "latency": self.latency.to_dict(),
        }


class VoiceChatPipeline:
    def __init__(
        self,
        recorder: RecorderPort,
        transcriber: TranscriberPort,
        replies: ReplyPort,
        speech: SpeechOutput,
        settings: VoiceSettings | None = None,
        locale: str | None = None,
        latency: LatencyTracker | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_state_change: Callable[[PipelineState], None] | None = None,
    ) -> None:
        self._recorder = recorder
        self._transcriber = transcriber
        self._replies = replies
        self._speech = speech
        self._settings = settings or VoiceSettings()
        self._locale = locale
        self._latency = latency or LatencyTracker()
        self._sleep = sleep
        self._on_state_change = on_state_change

        self._state = PipelineState.IDLE
        self._retry_count = 0
        self._last_error: str | None = None
        self._last_result = CycleResult()

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def settings(self) -> VoiceSettings:
        return self._settings

    @property
    def latency(self) -> LatencyTracker:
        return self._latency

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def last_result(self) -> CycleResult:
        return self._last_result

    @property
    def is_system_ready(self) -> bool:
        return self._transcriber.is_ready and self._speech.is_ready()

    def update_settings(self, **changes: Any) -> VoiceSettings:
        self._settings = self._settings.with_changes(**changes)
        logger.info("Settings updated: %s", self._settings)
        return self._settings

    def _transition_to(self, target: PipelineState) -> None:
        validate_transition(self._state, target)
        logger.info("State: %s -> %s", self._state.name, target.name)
        self._state = target
        if self._on_state_change is not None:
            self._on_state_change(target)

    async def toggle(self) -> CycleResult | None:
        if self._state == PipelineState.IDLE:
            await self.start()
            return None
        if self._state == PipelineState.RECORDING:
            return await self.stop()
        raise PipelineBusyError(f"Pipeline busy ({self._state.name.lower()})")

    async def start(self) -> None:
        if self._state != PipelineState.IDLE:
            raise PipelineBusyError("A voice interaction is already in progress")
        if not self.is_system_ready:
            raise SystemNotReadyError(
                "System not ready (speech recognition: %s, speech output: %s)"
                % (
                    "ready" if self._transcriber.is_ready else "loading",
                    "ready" if self._speech.is_ready() else "loading",
                )
            )

        self._transition_to(PipelineState.RECORDING)
        self._last_error = None
        self._retry_count = 0
        self._last_result = CycleResult()

        try:
            await self._recorder.start()
        except VoiceChatError as exc:
            self._recorder.stop()
            self._fail(f"Failed to start recording: {exc}")
            raise

    async def stop(self) -> CycleResult:
        if self._state != PipelineState.RECORDING:
            logger.debug("Stop ignored in state %s", self._state.name)
            return CycleResult()

        settings = self._settings
        audio = self._recorder.stop()
        self._latency.begin_cycle()
        result = CycleResult()
        self._last_result = result

        if audio.size == 0:
            return self._abort(result, NO_AUDIO_MESSAGE)

        try:
            self._transition_to(PipelineState.TRANSCRIBING)
            try:
                transcript = await self._transcriber.transcribe(audio)
            except EmptyAudioError:
                return self._abort(result, NO_AUDIO_MESSAGE)
            except VoiceChatError as exc:
                return self._abort(result, f"Speech recognition error: {exc}")
            self._latency.transcript_received()
            result.transcript = transcript
            if not transcript:
                return self._abort(result, NO_SPEECH_MESSAGE)

            self._transition_to(PipelineState.COMPLETING)
            try:
                reply, _ = await asyncio.gather(
                    self._complete_with_retry(transcript, settings),
                    self._speech.prepare(),
                )
            except VoiceChatError as exc:
                attempts = self._retry_count
                return self._abort(
                    result,
                    f"{exc} (failed after {attempts} attempt{'s' if attempts != 1 else ''})",
                )
            self._latency.completion_received()
            result.reply = reply

            self._transition_to(PipelineState.SPEAKING)
            try:
                await self._speech.speak(reply, settings.speech_rate, settings.speech_volume)
            except SpeechError as exc:
                logger.warning("Speech output failed: %s", exc)
                result.speech_error = str(exc)
                self._last_error = str(exc)
            self._latency.speech_finished()
        except asyncio.CancelledError:
            self._speech.stop()
            self._reset()
            raise
        except Exception as exc:
            logger.exception("Unexpected failure during voice interaction")
            return self._abort(result, str(exc) or "Failed to process your request.")

        result.latency = self._latency.end_cycle()
        logger.info(
            "Latency: total=%.2fs (stt=%.2fs, api=%.2fs, tts=%.2fs)",
            result.latency.total or 0.0,
            result.latency.capture_to_transcript or 0.0,
            result.latency.transcript_to_completion or 0.0,
            result.latency.completion_to_speech_done or 0.0,
        )
        self._transition_to(PipelineState.IDLE)
        return result

    async def open(self) -> None:
        self._speech.acquire()
        await self._transcriber.start()
        await self._transcriber.initialize()

    async def close(self) -> None:
        await self.abort()
        await self._speech.release()
        await self._transcriber.close()
        await self._replies.aclose()

    async def abort(self) -> None:
        if self._recorder.is_recording:
            self._recorder.stop()
        self._speech.stop()
        self._reset()

    async def _complete_with_retry(self, transcript: str, settings: VoiceSettings) -> str:
        def count_failure(attempt: int, exc: Exception) -> None:
            self._retry_count += 1

        return await retry_with_backoff(
            lambda: self._replies.complete(transcript, settings, self._locale),
            max_retries=settings.max_retries,
            sleep=self._sleep,
            on_failure=count_failure,
        )

    def _abort(self, result: CycleResult, message: str) -> CycleResult:
        result.error = message
        result.latency = self._latency.end_cycle(record_history=False)
        self._fail(message)
        return result

    def _fail(self, message: str) -> None:
        logger.error("Cycle failed: %s", message)
        self._last_error = message
        self._transition_to(PipelineState.ERROR)
        self._transition_to(PipelineState.IDLE)

    def _reset(self) -> None:
        if self._state != PipelineState.IDLE:
            logger.info("State: %s -> IDLE (reset)", self._state.name)
        self._state = PipelineState.IDLE

    def status(self) -> dict[str, Any]:
        return {
            "state": self._state.name,
            "system_ready": self.is_system_ready,
            "settings": self._settings.to_dict(),
            "latency": self._latency.current.to_dict(),
            "history": self._latency.history,
            "average_total": self._latency.average,
            "retry_count": self._retry_count,
            "last_error": self._last_error,
            "last_result": self._last_result.to_dict(),
        }
