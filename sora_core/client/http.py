"""Async HTTP client for the Sora server.

Maps transport failures to NetworkError and non-2xx answers to ApiError /
RateLimitError so callers only deal with business errors.
"""

import base64
import json
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

import httpx

from sora_core.config.settings import settings
from sora_core.domain.exceptions import ApiError, NetworkError, RateLimitError
from sora_core.domain.models import Message, ReplyEvent, WebResult


class SoraClient:
    name = "sora-server"

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self._base_url = (base_url or settings.server_url).rstrip("/")
        self._timeout = timeout or settings.http_timeout

    async def stream_reply(
        self,
        messages: Sequence[Message],
        locale: str,
        message_id: str,
    ) -> AsyncIterator[ReplyEvent]:
        """POST /reply and yield the decoded frames in arrival order."""

        payload = {
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "locale": locale,
            "messageId": message_id,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                async with client.stream("POST", f"{self._base_url}/reply", json=payload) as resp:
                    if resp.status_code >= 400:
                        body = await resp.aread()
                        self._raise_for_status(resp.status_code, body.decode("utf-8", errors="replace"))
                    async for line in resp.aiter_lines():
                        line = line.strip()
                        if not line:
                            continue
                        try:
                            yield ReplyEvent.from_dict(json.loads(line))
                        except (json.JSONDecodeError, ValueError, KeyError) as e:
                            raise ApiError(code="BAD_FRAME", message=f"unreadable reply frame: {e}", provider=self.name)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)

    async def transcribe(self, audio: bytes, locale: str, filename: str = "recording.wav") -> str:
        data = await self._post(
            "/transcribe",
            files={"audio": (filename, audio, "audio/wav")},
            data={"locale": locale},
        )
        if data.get("error"):
            raise ApiError(code="TRANSCRIPTION_FAILED", message=str(data["error"]), provider=self.name)
        text = data.get("text")
        return text.strip() if isinstance(text, str) else ""

    async def speak(self, text: str, locale: str) -> Optional[bytes]:
        """Return audio bytes, or None when the server signals fallback."""

        data = await self._post("/speak", json={"text": text, "locale": locale})
        if data.get("fallback") or data.get("error") or not data.get("audioContent"):
            return None
        try:
            return base64.b64decode(data["audioContent"])
        except (ValueError, TypeError):
            raise ApiError(code="BAD_AUDIO", message="audioContent is not valid base64", provider=self.name)

    async def search(self, query: str, locale: str) -> List[WebResult]:
        data = await self._post("/search", json={"query": query, "locale": locale})
        return [WebResult.from_dict(r) for r in data.get("results") or []]

    async def search_guarded(self, query: str, locale: str) -> Tuple[bool, List[WebResult]]:
        data = await self._post("/searchGuarded", json={"query": query, "locale": locale})
        results = [WebResult.from_dict(r) for r in data.get("results") or []]
        return bool(data.get("shouldShowResults")), results

    async def _post(self, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                resp = await client.post(f"{self._base_url}{path}", **kwargs)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)
        if resp.status_code >= 400:
            self._raise_for_status(resp.status_code, resp.text)
        try:
            data = resp.json()
        except ValueError:
            raise ApiError(code="BAD_RESPONSE", message=f"{path} did not return JSON", provider=self.name)
        if not isinstance(data, dict):
            raise ApiError(code="BAD_RESPONSE", message=f"{path} did not return an object", provider=self.name)
        return data

    def _raise_for_status(self, status: int, body: str) -> None:
        if status == 429:
            raise RateLimitError(code="RATE_LIMIT", message=body, provider=self.name)
        code = "API_ERROR"
        try:
            parsed = json.loads(body)
            if isinstance(parsed, dict) and isinstance(parsed.get("error"), str):
                code = parsed["error"] if parsed["error"].isupper() else code
        except json.JSONDecodeError:
            pass
        raise ApiError(code=code, message=body, http_status=status, provider=self.name)
