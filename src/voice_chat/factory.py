import functools
import logging

from voice_chat.config import VoiceChatConfig
from voice_chat.adapters.sounddevice_recorder import SounddeviceRecorder
from voice_chat.adapters.transcription_worker import TranscriptionWorker
from voice_chat.domain.completion import CompletionService
from voice_chat.domain.latency import LatencyTracker
from voice_chat.domain.pipeline import VoiceChatPipeline
from voice_chat.domain.rate_limit import RateLimiter
from voice_chat.domain.response_cache import ResponseCache
from voice_chat.domain.speech_output import SpeechOutput
from voice_chat.ports.completion import ReplyPort
from voice_chat.ports.synthesizer import SpeechEnginePort

logger = logging.getLogger(__name__)


def create_recorder(config: VoiceChatConfig) -> SounddeviceRecorder:
    return SounddeviceRecorder(
        device=config.capture_device,
        sample_rate=config.sample_rate,
        block_size=config.block_size,
        gain=config.capture_gain,
        silence_threshold=config.silence_threshold,
    )


def create_transcriber(config: VoiceChatConfig) -> TranscriptionWorker:
    from voice_chat.adapters.whisper_engine import load_whisper_engine

    loader = functools.partial(
        load_whisper_engine,
        models=tuple(config.stt_models),
        device=config.stt_device,
        compute_type=config.stt_compute_type,
        language=config.stt_language,
        chunk_length=config.stt_chunk_length_seconds,
    )
    return TranscriptionWorker(loader=loader)


def create_completion_service(config: VoiceChatConfig) -> CompletionService:
    from voice_chat.adapters.gemini_completion import GeminiCompletion

    backend = GeminiCompletion(
        api_key=config.gemini_api_key(),
        model=config.gemini_model,
        base_url=config.gemini_base_url,
        timeout_seconds=config.request_timeout_seconds,
        max_output_tokens=config.max_output_tokens,
        temperature=config.temperature,
        top_k=config.top_k,
        top_p=config.top_p,
        safety_threshold=config.safety_threshold,
    )
    cache = ResponseCache(
        ttl_seconds=config.cache_ttl_seconds,
        max_entries=config.cache_max_entries,
    )
    return CompletionService(
        backend=backend,
        cache=cache,
        timeout_seconds=config.request_timeout_seconds,
        default_locale=config.locale,
    )


def create_rate_limiter(config: VoiceChatConfig) -> RateLimiter:
    return RateLimiter(
        max_requests=config.rate_limit_max,
        window_seconds=config.rate_limit_window_seconds,
    )


def create_replies(config: VoiceChatConfig) -> ReplyPort:
    if config.completion_mode == "http":
        from voice_chat.adapters.http_chat_client import HttpChatClient

        return HttpChatClient(
            base_url=config.chat_endpoint_url,
            endpoint=config.chat_endpoint_path,
            timeout_seconds=config.request_timeout_seconds + 2.0,
        )
    return create_completion_service(config)


def create_speech_engine(config: VoiceChatConfig) -> SpeechEnginePort:
    if config.tts_engine == "edge-tts":
        from voice_chat.adapters.edge_tts_engine import EdgeTtsSpeechEngine

        return EdgeTtsSpeechEngine(default_voice=config.tts_edge_voice)

    from voice_chat.adapters.pyttsx3_engine import Pyttsx3SpeechEngine

    return Pyttsx3SpeechEngine()


def create_pipeline(config: VoiceChatConfig) -> VoiceChatPipeline:
    speech = SpeechOutput(engine=create_speech_engine(config), locale=config.locale)
    return VoiceChatPipeline(
        recorder=create_recorder(config),
        transcriber=create_transcriber(config),
        replies=create_replies(config),
        speech=speech,
        settings=config.voice_settings(),
        latency=LatencyTracker(history_size=config.latency_history_size),
    )
