import logging

import httpx

from voice_chat.errors import CompletionTimeoutError, ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-1.5-flash"

HARM_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)


def extract_candidate_text(data) -> str | None:
    if not isinstance(data, dict):
        return None
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    candidate = candidates[0]
    content = candidate.get("content") if isinstance(candidate, dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
        return None
    text = parts[0].get("text")
    return text if isinstance(text, str) else None


class GeminiCompletion:
    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = GEMINI_BASE_URL,
        timeout_seconds: float = 8.0,
        max_output_tokens: int = 50,
        temperature: float = 0.7,
        top_k: int = 10,
        top_p: float = 0.8,
        safety_threshold: str = "BLOCK_MEDIUM_AND_ABOVE",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._url = f"{base_url.rstrip('/')}/models/{model}:generateContent"
        self._generation_config = {
            "maxOutputTokens": max_output_tokens,
            "temperature": temperature,
            "topK": top_k,
            "topP": top_p,
        }
        self._safety_settings = [
            {"category": category, "threshold": safety_threshold}
            for category in HARM_CATEGORIES
        ]
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    def build_payload(self, prompt: str) -> dict:
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": self._generation_config,
            "safetySettings": self._safety_settings,
        }

    async def generate(self, prompt: str) -> str | None:
        if not self._api_key:
            raise ConfigurationError("Gemini API key not configured")

        try:
            response = await self._client.post(
                self._url,
                params={"key": self._api_key},
                json=self.build_payload(prompt),
            )
        except httpx.TimeoutException as exc:
            raise CompletionTimeoutError("Gemini request timed out") from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(None, f"Gemini request failed: {exc}") from exc

        if response.status_code >= 400:
            message = _error_message(response)
            logger.error("Gemini API error: %s %s", response.status_code, message)
            raise UpstreamError(response.status_code, message)

        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamError(response.status_code, "Invalid JSON from Gemini") from exc
        return extract_candidate_text(data)

    async def aclose(self) -> None:
        await self._client.aclose()


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return str(error.get("message", ""))
    if isinstance(error, str):
        return error
    return ""
