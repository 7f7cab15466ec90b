import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from voice_chat.domain.completion import CompletionService
from voice_chat.domain.rate_limit import RateLimiter
from voice_chat.domain.voice_settings import VoiceSettings
from voice_chat.errors import RateLimitedError

logger = logging.getLogger(__name__)

NON_RETRYABLE_MARKERS = ("api key", "not configured", "quota")


def is_retryable_message(message: str) -> bool:
    lowered = message.lower()
    return not any(marker in lowered for marker in NON_RETRYABLE_MARKERS)


def client_address(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


def create_app(
    service: CompletionService,
    limiter: RateLimiter,
    base_settings: VoiceSettings | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        await service.aclose()

    app = FastAPI(title="voice-chat", lifespan=lifespan)
    app.state.service = service
    app.state.limiter = limiter
    settings = base_settings or VoiceSettings()

    async def chat(request: Request) -> JSONResponse:
        client_id = client_address(request)
        try:
            limiter.check(client_id)
        except RateLimitedError as exc:
            return JSONResponse({"error": str(exc)}, status_code=429)

        try:
            body = await request.json()
            if not isinstance(body, dict):
                raise ValueError("Request body must be a JSON object")
            message = body.get("message")
            if not isinstance(message, str) or not message.strip():
                raise ValueError("message required")
            language = body.get("language")
            locale = language if isinstance(language, str) and language.strip() else None
            request_settings = settings.with_changes(
                caching_enabled=bool(body.get("enableCaching", True)),
            )
            content = await service.complete(message, request_settings, locale=locale)
        except Exception as exc:
            logger.exception("Chat request from %s failed", client_id)
            error = str(exc) or "Failed to get AI response"
            return JSONResponse(
                {
                    "error": error,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "retryable": is_retryable_message(error),
                },
                status_code=500,
            )

        return JSONResponse({"content": content})

    app.add_api_route("/api/chat", chat, methods=["POST"])
    app.add_api_route("/api/voice-chat", chat, methods=["POST"])

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "cache_entries": len(service.cache)}

    return app
