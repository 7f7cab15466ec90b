import logging
from dataclasses import dataclass

import httpx
import sounddevice as sd

from voice_chat.config import VoiceChatConfig

logger = logging.getLogger(__name__)

CRITICAL_CHECKS = {"audio_device", "api_keys"}


@dataclass
class HealthCheckResult:
    name: str
    passed: bool
    detail: str


def run_startup_checks(config: VoiceChatConfig) -> list[HealthCheckResult]:
    results = [
        _check_audio_device(config),
        _check_api_keys(config),
        _check_chat_endpoint(config),
        _check_speech_engine(config),
    ]

    passed = sum(1 for r in results if r.passed)
    logger.info("Health check: %d/%d passed", passed, len(results))
    for result in results:
        level = logging.INFO if result.passed else logging.WARNING
        symbol = "OK" if result.passed else "FAIL"
        logger.log(level, "  [%s] %s: %s", symbol, result.name, result.detail)

    return results


def has_critical_failures(results: list[HealthCheckResult]) -> bool:
    return any(not r.passed and r.name in CRITICAL_CHECKS for r in results)


def _check_audio_device(config: VoiceChatConfig) -> HealthCheckResult:
    name = "audio_device"
    try:
        device_name = config.capture_device
        for dev in sd.query_devices():
            if device_name and device_name.lower() in dev["name"].lower() and dev["max_input_channels"] > 0:
                return HealthCheckResult(name=name, passed=True, detail=f"Device '{device_name}' found")

        try:
            default = sd.query_devices(kind="input")
        except sd.PortAudioError:
            return HealthCheckResult(name=name, passed=False, detail="No input devices available")
        return HealthCheckResult(
            name=name,
            passed=True,
            detail=f"'{device_name}' not in PortAudio (will use PIPEWIRE_NODE), default input: {default['name']}",
        )
    except Exception as exc:
        return HealthCheckResult(name=name, passed=False, detail=str(exc))


def _check_api_keys(config: VoiceChatConfig) -> HealthCheckResult:
    name = "api_keys"
    if config.completion_mode != "direct":
        return HealthCheckResult(name=name, passed=True, detail="Skipped (completion via chat endpoint)")
    if not config.gemini_api_key():
        source = config.gemini_api_key_file or "GEMINI_API_KEY"
        return HealthCheckResult(name=name, passed=False, detail=f"Missing: gemini ({source})")
    return HealthCheckResult(name=name, passed=True, detail="Gemini API key loaded")


def _check_chat_endpoint(config: VoiceChatConfig) -> HealthCheckResult:
    name = "chat_endpoint"
    if config.completion_mode != "http":
        return HealthCheckResult(name=name, passed=True, detail=f"Skipped (mode={config.completion_mode})")
    url = f"{config.chat_endpoint_url.rstrip('/')}/health"
    try:
        response = httpx.get(url, timeout=3.0, headers={"User-Agent": "voice-chat/healthcheck"})
    except httpx.HTTPError as exc:
        return HealthCheckResult(name=name, passed=False, detail=f"Unreachable: {exc}")
    return HealthCheckResult(
        name=name,
        passed=response.status_code == 200,
        detail=f"Reachable ({response.status_code})",
    )


def _check_speech_engine(config: VoiceChatConfig) -> HealthCheckResult:
    name = "speech_engine"
    if config.tts_engine == "edge-tts":
        import shutil

        if shutil.which("ffmpeg") is None:
            return HealthCheckResult(name=name, passed=False, detail="ffmpeg not found (required by edge-tts)")
        return HealthCheckResult(name=name, passed=True, detail="edge-tts with ffmpeg decoding")
    try:
        import pyttsx3  # noqa: F401
    except ImportError as exc:
        return HealthCheckResult(name=name, passed=False, detail=str(exc))
    return HealthCheckResult(name=name, passed=True, detail="pyttsx3 available")
