import asyncio
import json
import logging
import os
from pathlib import Path

from voice_chat.ports.control import CommandHandler, ControlCommand

logger = logging.getLogger(__name__)

DEFAULT_SOCKET_PATH = "/tmp/voice-chat.sock"
READ_TIMEOUT_SECONDS = 5.0
RESPONSE_TIMEOUT_SECONDS = 10.0


def _encode(message: dict) -> bytes:
    return (json.dumps(message) + "\n").encode()


def parse_request(raw: bytes) -> ControlCommand:
    """Decode one newline-terminated ``{"action": ..., "payload": {...}}`` line."""
    request = json.loads(raw.decode())
    if not isinstance(request, dict):
        raise ValueError("Request must be a JSON object")
    action = request.get("action")
    if not isinstance(action, str) or not action:
        raise ValueError("Request is missing an action")
    payload = request.get("payload")
    if payload is not None and not isinstance(payload, dict):
        raise ValueError("Payload must be a JSON object")
    return ControlCommand(action=action, payload=payload)


class UnixSocketControlServer:
    def __init__(
        self,
        handler: CommandHandler,
        socket_path: str = DEFAULT_SOCKET_PATH,
    ) -> None:
        self._handler = handler
        self._socket_path = Path(socket_path)
        self._server: asyncio.Server | None = None

    async def start(self) -> None:
        self._socket_path.unlink(missing_ok=True)
        self._server = await asyncio.start_unix_server(
            self._serve_connection,
            path=str(self._socket_path),
        )
        os.chmod(self._socket_path, 0o600)
        logger.info("Control socket listening at %s", self._socket_path)

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        self._socket_path.unlink(missing_ok=True)

    async def _serve_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        try:
            raw = await asyncio.wait_for(reader.readline(), timeout=READ_TIMEOUT_SECONDS)
            if not raw.strip():
                return
            writer.write(_encode(await self._dispatch(raw)))
            await writer.drain()
        except asyncio.TimeoutError:
            logger.warning("Control client sent nothing within %.0fs", READ_TIMEOUT_SECONDS)
        except ConnectionError as exc:
            logger.debug("Control client went away: %s", exc)
        finally:
            writer.close()
            await writer.wait_closed()

    async def _dispatch(self, raw: bytes) -> dict:
        try:
            command = parse_request(raw)
        except ValueError as exc:
            logger.warning("Rejected control request: %s", exc)
            return {"status": "error", "error": f"Invalid request: {exc}"}

        logger.debug("Control command: %s %s", command.action, command.payload or "")
        try:
            return await self._handler(command)
        except Exception as exc:
            logger.warning("Control command '%s' failed: %s", command.action, exc)
            return {"status": "error", "action": command.action, "error": str(exc)}


class UnixSocketControlClient:
    def __init__(
        self,
        socket_path: str = DEFAULT_SOCKET_PATH,
        timeout_seconds: float = RESPONSE_TIMEOUT_SECONDS,
    ) -> None:
        self._socket_path = socket_path
        self._timeout_seconds = timeout_seconds

    async def send_command(self, action: str, payload: dict | None = None) -> dict:
        request: dict = {"action": action}
        if payload:
            request["payload"] = payload

        reader, writer = await asyncio.open_unix_connection(self._socket_path)
        try:
            writer.write(_encode(request))
            await writer.drain()
            raw = await asyncio.wait_for(reader.readline(), timeout=self._timeout_seconds)
        finally:
            writer.close()
            await writer.wait_closed()

        if not raw:
            raise ConnectionError("Control socket closed without a response")
        return json.loads(raw.decode())
