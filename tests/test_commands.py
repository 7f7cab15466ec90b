import numpy as np
import pytest
import pytest_asyncio

from voice_chat.commands import PipelineCommandHandler, parse_settings_payload
from voice_chat.domain.pipeline import VoiceChatPipeline
from voice_chat.domain.state import PipelineState
from voice_chat.ports.control import ControlCommand

from tests.conftest import (
    FakeRecorder,
    FakeReplies,
    FakeSpeechEngine,
    FakeTranscriber,
    ready_speech_output,
)


@pytest_asyncio.fixture
async def pipeline():
    speech = await ready_speech_output(FakeSpeechEngine())
    return VoiceChatPipeline(
        recorder=FakeRecorder(audio=np.full(8000, 0.2, dtype=np.float32)),
        transcriber=FakeTranscriber(),
        replies=FakeReplies(),
        speech=speech,
    )


class TestParseSettingsPayload:
    def test_coerces_types(self):
        changes = parse_settings_payload({"speech_rate": "1.5", "max_retries": 2.0})
        assert changes == {"speech_rate": 1.5, "max_retries": 2}

    def test_rejects_unknown_key(self):
        with pytest.raises(ValueError, match="Unknown setting"):
            parse_settings_payload({"pitch": 2})

    def test_caching_flag_must_be_boolean(self):
        assert parse_settings_payload({"caching_enabled": False}) == {"caching_enabled": False}
        with pytest.raises(ValueError, match="true or false"):
            parse_settings_payload({"caching_enabled": "false"})
        with pytest.raises(ValueError):
            parse_settings_payload({"caching_enabled": 0})

    @pytest.mark.parametrize("payload", [{"speech_rate": "fast"}, {"max_retries": None}])
    def test_uncoercible_value_is_value_error(self, payload):
        with pytest.raises(ValueError, match="Invalid value"):
            parse_settings_payload(payload)


class TestPipelineCommandHandler:
    @pytest.mark.asyncio
    async def test_toggle_starts_then_completes_cycle(self, pipeline):
        handler = PipelineCommandHandler(pipeline)

        started = await handler(ControlCommand(action="toggle"))
        assert started == {"status": "ok", "action": "toggle", "state": "RECORDING"}

        stopped = await handler(ControlCommand(action="toggle"))
        assert stopped["status"] == "ok"

        result = await handler.wait_for_cycle()
        assert result.reply == "Hi! How can I help?"
        assert pipeline.state == PipelineState.IDLE

    @pytest.mark.asyncio
    async def test_toggle_while_processing_reports_busy(self, pipeline):
        handler = PipelineCommandHandler(pipeline)
        await handler(ControlCommand(action="toggle"))
        await handler(ControlCommand(action="toggle"))
        assert pipeline.state == PipelineState.TRANSCRIBING

        busy = await handler(ControlCommand(action="toggle"))

        assert busy["status"] == "error"
        assert "Busy (transcribing)" in busy["error"]
        await handler.wait_for_cycle()

    @pytest.mark.asyncio
    async def test_status(self, pipeline):
        handler = PipelineCommandHandler(pipeline)
        status = await handler(ControlCommand(action="status"))
        assert status["status"] == "ok"
        assert status["state"] == "IDLE"
        assert status["system_ready"] is True

    @pytest.mark.asyncio
    async def test_settings_update(self, pipeline):
        handler = PipelineCommandHandler(pipeline)
        response = await handler(
            ControlCommand(action="settings", payload={"speech_volume": 0.5, "caching_enabled": False})
        )
        assert response["settings"]["speech_volume"] == 0.5
        assert pipeline.settings.caching_enabled is False

    @pytest.mark.asyncio
    async def test_invalid_setting_value_raises(self, pipeline):
        handler = PipelineCommandHandler(pipeline)
        with pytest.raises(ValueError):
            await handler(ControlCommand(action="settings", payload={"speech_volume": 3.0}))

    @pytest.mark.asyncio
    async def test_unknown_action(self, pipeline):
        handler = PipelineCommandHandler(pipeline)
        response = await handler(ControlCommand(action="reticulate"))
        assert response == {
            "status": "error",
            "action": "reticulate",
            "error": "Unknown command: reticulate",
        }

    @pytest.mark.asyncio
    async def test_wait_for_cycle_without_cycle(self, pipeline):
        assert await PipelineCommandHandler(pipeline).wait_for_cycle() is None
