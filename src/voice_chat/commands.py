import asyncio
import logging

from voice_chat.domain.pipeline import CycleResult, VoiceChatPipeline
from voice_chat.domain.state import PipelineState
from voice_chat.ports.control import ControlCommand

logger = logging.getLogger(__name__)

SETTING_TYPES = {
    "speech_rate": float,
    "speech_volume": float,
    "caching_enabled": bool,
    "max_retries": int,
}


def parse_settings_payload(payload: dict) -> dict:
    changes = {}
    for key, value in payload.items():
        if key not in SETTING_TYPES:
            raise ValueError(f"Unknown setting: {key}")
        expected = SETTING_TYPES[key]
        if expected is bool:
            if not isinstance(value, bool):
                raise ValueError(f"Setting {key} must be true or false")
            changes[key] = value
            continue
        try:
            changes[key] = expected(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid value for {key}: {value!r}") from exc
    return changes


class PipelineCommandHandler:
    def __init__(self, pipeline: VoiceChatPipeline) -> None:
        self._pipeline = pipeline
        self._cycle_task: asyncio.Task | None = None

    async def __call__(self, command: ControlCommand) -> dict:
        if command.action == "toggle":
            return await self._toggle()
        if command.action == "status":
            return {"status": "ok", "action": "status", **self._pipeline.status()}
        if command.action == "settings":
            changes = parse_settings_payload(command.payload or {})
            settings = self._pipeline.update_settings(**changes)
            return {"status": "ok", "action": "settings", "settings": settings.to_dict()}
        return {"status": "error", "action": command.action, "error": f"Unknown command: {command.action}"}

    async def _toggle(self) -> dict:
        state = self._pipeline.state
        if state == PipelineState.IDLE:
            await self._pipeline.start()
        elif state == PipelineState.RECORDING:
            self._cycle_task = asyncio.create_task(self._finish_cycle())
            await asyncio.sleep(0)
        else:
            return {
                "status": "error",
                "action": "toggle",
                "error": f"Busy ({state.name.lower()}), try again when idle",
            }
        return {"status": "ok", "action": "toggle", "state": self._pipeline.state.name}

    async def _finish_cycle(self) -> CycleResult:
        result = await self._pipeline.stop()
        if result.error:
            logger.warning("Interaction ended with error: %s", result.error)
        return result

    async def wait_for_cycle(self) -> CycleResult | None:
        if self._cycle_task is None:
            return None
        task, self._cycle_task = self._cycle_task, None
        return await task
