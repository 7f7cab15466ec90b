import os
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from voice_chat.domain.voice_settings import VoiceSettings


class VoiceChatConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="VOICE_CHAT_")

    capture_device: str = "echo-cancel-source"
    capture_gain: float = 1.0
    sample_rate: int = 16000
    block_size: int = 2048
    silence_threshold: float = 0.01

    stt_models: list[str] = ["tiny.en", "base.en"]
    stt_device: str = "cpu"
    stt_compute_type: str = "int8"
    stt_language: str = "en"
    stt_chunk_length_seconds: int = 15

    completion_mode: Literal["direct", "http"] = "direct"
    chat_endpoint_url: str = "http://127.0.0.1:8787"
    chat_endpoint_path: str = "/api/chat"

    gemini_api_key_file: str = ""
    gemini_model: str = "gemini-1.5-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    request_timeout_seconds: float = 8.0
    max_output_tokens: int = 50
    temperature: float = 0.7
    top_k: int = 10
    top_p: float = 0.8
    safety_threshold: str = "BLOCK_MEDIUM_AND_ABOVE"

    cache_ttl_seconds: float = 300.0
    cache_max_entries: int = 1000

    rate_limit_max: int = 30
    rate_limit_window_seconds: float = 60.0

    server_host: str = "127.0.0.1"
    server_port: int = 8787

    tts_engine: Literal["pyttsx3", "edge-tts"] = "pyttsx3"
    tts_edge_voice: str = "en-US-GuyNeural"
    locale: str = "en"

    speech_rate: float = 1.2
    speech_volume: float = 0.8
    enable_caching: bool = True
    max_retries: int = 3

    latency_history_size: int = 10

    socket_path: str = "/tmp/voice-chat.sock"
    log_file: str = ""

    def read_secret(self, path: str) -> str:
        if not path:
            return ""
        try:
            with open(path) as f:
                return f.read().strip()
        except FileNotFoundError:
            return ""

    def gemini_api_key(self) -> str:
        return self.read_secret(self.gemini_api_key_file) or os.environ.get("GEMINI_API_KEY", "")

    def voice_settings(self) -> VoiceSettings:
        return VoiceSettings(
            speech_rate=self.speech_rate,
            speech_volume=self.speech_volume,
            caching_enabled=self.enable_caching,
            max_retries=self.max_retries,
        )
