"""Groq Provider 适配器。

本模块负责：

1. 接收统一的 ChatRequest。
2. 转换为 OpenAI 兼容的 chat/completions 请求体。
3. 调用 HTTP 接口，把网络/API 异常映射为业务异常。
4. 将 JSON（或 SSE 流）解析为 ChatResult / ChatStreamChunk。
"""

import json
from typing import Any, AsyncIterator, Dict

import httpx

from sora_core.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from sora_core.domain.models import ChatMessage, ChatRequest, ChatResult, ChatStreamChunk, ChatUsage
from sora_core.providers.registry import GROQ_CONFIG, ModelConfig


class GroqClient:
    """Groq 对话补全客户端。"""

    name = "groq"

    def __init__(self, settings):
        # Settings 里包含 base_url、api_key、超时等配置
        self._settings = settings

    async def chat(self, req: ChatRequest) -> ChatResult:
        """执行一次非流式调用。

        步骤：
        1. 逻辑模型名 -> 厂商模型名。
        2. 构造请求 payload。
        3. 发送请求，处理网络错误、429 限流和其他 >= 400 状态。
        4. 解析为 ChatResult。
        """

        self._require_key()
        model_cfg = GROQ_CONFIG.models[req.model]
        payload = self._build_payload(req, model_cfg)
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = await client.post(
                    f"{self._base_url()}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="Groq rate limit", provider=self.name)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, provider=self.name)
        try:
            data = resp.json()
        except ValueError:
            raise ApiError(code="BAD_RESPONSE", message="chat response is not JSON", provider=self.name)
        return self._parse_response(data, req)

    async def chat_stream(self, req: ChatRequest) -> AsyncIterator[ChatStreamChunk]:
        """流式调用，按模型输出顺序产出 ChatStreamChunk。"""

        self._require_key()
        model_cfg = GROQ_CONFIG.models[req.model]
        payload = self._build_payload(req, model_cfg)
        payload["stream"] = True
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                async with client.stream(
                    "POST",
                    f"{self._base_url()}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                ) as resp:
                    if resp.status_code == 429:
                        raise RateLimitError(code="RATE_LIMIT", message="Groq rate limit", provider=self.name)
                    if resp.status_code >= 400:
                        body = await resp.aread()
                        raise ApiError(
                            code="API_ERROR",
                            message=body.decode("utf-8", errors="replace"),
                            provider=self.name,
                        )
                    async for line in resp.aiter_lines():
                        if not line:
                            continue
                        data_str = line
                        if data_str.startswith("data:"):
                            data_str = data_str[5:].strip()
                        else:
                            data_str = data_str.strip()
                        if not data_str or data_str == "[DONE]":
                            continue
                        try:
                            payload_chunk = json.loads(data_str)
                        except json.JSONDecodeError:
                            continue
                        yield self._parse_stream_chunk(payload_chunk, req)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)

    def _require_key(self) -> None:
        if not getattr(self._settings, "groq_api_key", None):
            # missing configuration is a ValidationError so callers handle it uniformly
            raise ValidationError(code="MISSING_API_KEY", message="GROQ_API_KEY not set")

    def _base_url(self) -> str:
        return (getattr(self._settings, "groq_base_url", None) or GROQ_CONFIG.base_url).rstrip("/")

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.groq_api_key}",
            "Content-Type": "application/json",
        }

    def _build_payload(self, req: ChatRequest, model_cfg: ModelConfig) -> dict:
        """将 ChatRequest 转成 chat/completions 请求 JSON。"""

        temperature = req.temperature if req.temperature is not None else model_cfg.default_temperature
        return {
            "model": model_cfg.provider_model,
            "messages": [self._message_to_payload(m) for m in req.messages],
            "temperature": temperature,
            "max_tokens": req.max_tokens or model_cfg.max_tokens,
            "top_p": req.top_p,
        }

    def _parse_response(self, data: dict, req: ChatRequest) -> ChatResult:
        choices = data.get("choices") or []
        first = choices[0] if choices else {}
        msg = first.get("message") or {}
        return ChatResult(
            provider=self.name,
            model=req.model,
            content=msg.get("content") or "",
            finish_reason=first.get("finish_reason"),
            usage=self._parse_usage(data.get("usage")),
            raw=data,
        )

    def _parse_stream_chunk(self, data: dict, req: ChatRequest) -> ChatStreamChunk:
        choices = data.get("choices") or []
        first = choices[0] if choices else {}
        delta = first.get("delta") or {}
        # Groq reports usage under x_groq on the final chunk
        usage_raw = data.get("usage") or (data.get("x_groq") or {}).get("usage")
        return ChatStreamChunk(
            provider=self.name,
            model=req.model,
            delta=delta.get("content") or "",
            finish_reason=first.get("finish_reason"),
            usage=self._parse_usage(usage_raw),
            raw=data,
        )

    @staticmethod
    def _parse_usage(usage_raw: Any) -> ChatUsage | None:
        if not usage_raw:
            return None
        return ChatUsage(
            prompt_tokens=usage_raw.get("prompt_tokens", 0),
            completion_tokens=usage_raw.get("completion_tokens", 0),
            total_tokens=usage_raw.get("total_tokens", 0),
        )

    @staticmethod
    def _message_to_payload(message: ChatMessage) -> Dict[str, Any]:
        return {"role": message.role, "content": message.content}
