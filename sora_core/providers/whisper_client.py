"""Cloud speech-to-text via the Hugging Face Inference API (Whisper).

The API auto-detects the spoken language, so the locale is only logged.
"""

import httpx

from sora_core.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from sora_core.infrastructure.logging.logger import logger


class WhisperClient:
    name = "hf-whisper"

    def __init__(self, settings):
        self._settings = settings

    def is_configured(self) -> bool:
        return bool(getattr(self._settings, "hf_token", None))

    async def transcribe(self, audio: bytes, locale: str, content_type: str = "audio/wav") -> str:
        if not self.is_configured():
            raise ValidationError(
                code="MISSING_API_KEY",
                message="Hugging Face API token not configured. Add HF_TOKEN to your environment.",
                http_status=500,
            )
        url = f"{self._settings.hf_base_url.rstrip('/')}/{self._settings.whisper_model}"
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = await client.post(
                    url,
                    content=audio,
                    headers={
                        "Authorization": f"Bearer {self._settings.hf_token}",
                        "Content-Type": content_type,
                    },
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="Hugging Face rate limit", provider=self.name)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, provider=self.name)
        try:
            data = resp.json()
        except ValueError:
            raise ApiError(code="BAD_RESPONSE", message="transcription response is not JSON", provider=self.name)
        if isinstance(data, dict) and data.get("error"):
            raise ApiError(code="API_ERROR", message=str(data["error"]), provider=self.name)
        text = data.get("text") if isinstance(data, dict) else None
        text = text.strip() if isinstance(text, str) else ""
        logger.info(
            "stt.cloud.result",
            extra={"extra": {"locale": locale, "bytes": len(audio), "chars": len(text)}},
        )
        return text
