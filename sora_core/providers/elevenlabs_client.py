"""Cloud text-to-speech via ElevenLabs.

The multilingual v2 model covers both English and Japanese; only the
voice differs per locale.
"""

import httpx

from sora_core.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError


MODEL_ID = "eleven_multilingual_v2"
VOICE_SETTINGS = {
    "stability": 0.5,
    "similarity_boost": 0.75,
    "style": 0.0,
    "use_speaker_boost": True,
}


class ElevenLabsClient:
    name = "elevenlabs"

    def __init__(self, settings):
        self._settings = settings

    def is_configured(self) -> bool:
        return bool(getattr(self._settings, "elevenlabs_api_key", None))

    def voice_for(self, locale: str) -> str:
        if locale == "ja":
            return self._settings.elevenlabs_voice_ja
        return self._settings.elevenlabs_voice_en

    async def synthesize(self, text: str, locale: str) -> bytes:
        """Return MP3 bytes for ``text``."""

        if not self.is_configured():
            raise ValidationError(code="MISSING_API_KEY", message="ELEVENLABS_API_KEY not set")
        url = f"{self._settings.elevenlabs_base_url.rstrip('/')}/text-to-speech/{self.voice_for(locale)}"
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = await client.post(
                    url,
                    json={"text": text, "model_id": MODEL_ID, "voice_settings": VOICE_SETTINGS},
                    headers={
                        "xi-api-key": self._settings.elevenlabs_api_key,
                        "Content-Type": "application/json",
                        "Accept": "audio/mpeg",
                    },
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="ElevenLabs rate limit", provider=self.name)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, provider=self.name)
        if not resp.content:
            raise ApiError(code="EMPTY_AUDIO", message="ElevenLabs returned no audio", provider=self.name)
        return resp.content
