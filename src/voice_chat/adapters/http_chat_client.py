import logging

import httpx

from voice_chat.domain.completion import FALLBACK_REPLY
from voice_chat.domain.voice_settings import VoiceSettings
from voice_chat.errors import CompletionTimeoutError, RateLimitedError, UpstreamError

logger = logging.getLogger(__name__)


class HttpChatClient:
    def __init__(
        self,
        base_url: str,
        endpoint: str = "/api/chat",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def complete(
        self,
        transcript: str,
        settings: VoiceSettings,
        locale: str | None = None,
    ) -> str:
        payload: dict = {
            "message": transcript,
            "enableCaching": settings.caching_enabled,
        }
        if locale:
            payload["language"] = locale

        try:
            response = await self._client.post(self._endpoint, json=payload)
        except httpx.TimeoutException as exc:
            raise CompletionTimeoutError("Chat endpoint timed out") from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(None, f"Chat endpoint unreachable: {exc}") from exc

        data = _json_or_empty(response)
        if response.status_code == 429:
            raise RateLimitedError(data.get("error") or "Too many requests")
        if response.status_code >= 400:
            raise UpstreamError(
                response.status_code,
                data.get("error") or f"Server error: {response.status_code}",
                retryable=bool(data.get("retryable", True)),
            )

        content = data.get("content")
        if not isinstance(content, str) or not content.strip():
            return FALLBACK_REPLY
        return content.strip()

    async def aclose(self) -> None:
        await self._client.aclose()


def _json_or_empty(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
