import pytest

from voice_chat import health
from voice_chat.config import VoiceChatConfig
from voice_chat.domain.completion import CompletionService
from voice_chat.factory import create_rate_limiter, create_replies
from voice_chat.health import HealthCheckResult, has_critical_failures


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    for name in ("VOICE_CHAT_LOCALE", "VOICE_CHAT_MAX_RETRIES", "VOICE_CHAT_COMPLETION_MODE"):
        monkeypatch.delenv(name, raising=False)


class TestVoiceChatConfig:
    def test_defaults(self):
        config = VoiceChatConfig()
        assert config.sample_rate == 16000
        assert config.block_size == 2048
        assert config.stt_models == ["tiny.en", "base.en"]
        assert config.cache_ttl_seconds == 300.0
        assert config.rate_limit_max == 30
        assert config.completion_mode == "direct"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("VOICE_CHAT_LOCALE", "hi")
        monkeypatch.setenv("VOICE_CHAT_MAX_RETRIES", "5")
        config = VoiceChatConfig()
        assert config.locale == "hi"
        assert config.voice_settings().max_retries == 5

    def test_api_key_from_file(self, tmp_path):
        key_file = tmp_path / "gemini"
        key_file.write_text("file-key\n")
        config = VoiceChatConfig(gemini_api_key_file=str(key_file))
        assert config.gemini_api_key() == "file-key"

    def test_api_key_falls_back_to_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "env-key")
        config = VoiceChatConfig(gemini_api_key_file=str(tmp_path / "missing"))
        assert config.gemini_api_key() == "env-key"

    def test_voice_settings(self):
        settings = VoiceChatConfig(speech_rate=1.0, enable_caching=False).voice_settings()
        assert settings.speech_rate == 1.0
        assert settings.caching_enabled is False


class TestFactory:
    def test_direct_mode_uses_completion_service(self):
        replies = create_replies(VoiceChatConfig())
        assert isinstance(replies, CompletionService)

    def test_http_mode_uses_chat_client(self):
        from voice_chat.adapters.http_chat_client import HttpChatClient

        replies = create_replies(VoiceChatConfig(completion_mode="http"))
        assert isinstance(replies, HttpChatClient)

    def test_rate_limiter_uses_config(self):
        limiter = create_rate_limiter(VoiceChatConfig(rate_limit_max=2))
        limiter.check("a")
        limiter.check("a")
        assert limiter.window("a").count == 2


class TestHealthChecks:
    def test_missing_key_is_critical(self):
        results = [health._check_api_keys(VoiceChatConfig())]
        assert not results[0].passed
        assert has_critical_failures(results)

    def test_key_present(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "k")
        assert health._check_api_keys(VoiceChatConfig()).passed

    def test_http_mode_skips_key_check(self):
        assert health._check_api_keys(VoiceChatConfig(completion_mode="http")).passed

    def test_non_critical_failure_does_not_block(self):
        results = [
            HealthCheckResult(name="audio_device", passed=True, detail="ok"),
            HealthCheckResult(name="speech_engine", passed=False, detail="ffmpeg not found"),
        ]
        assert not has_critical_failures(results)

    def test_chat_endpoint_skipped_in_direct_mode(self):
        assert health._check_chat_endpoint(VoiceChatConfig()).passed
