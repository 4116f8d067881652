"""回复流式引擎。

一次 ``generate_reply`` 调用对应一轮对话：先为最后一条用户消息做上下文增强，
再拼装系统指令并流式输出模型回复，最后把搜索结果作为旁路帧附加上去，
旁路帧与回复使用同一个 assistant 消息 ID。
"""

from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence
import logging
import time
from uuid import uuid4

from sora_core.config.settings import settings
from sora_core.domain.exceptions import ValidationError
from sora_core.domain.models import (
    ChatMessage,
    ChatRequest,
    EnrichmentContext,
    ReplyEvent,
    SUPPORTED_LOCALES,
    new_message_id,
)
from sora_core.flows.runner import ContextEnricher
from sora_core.infrastructure.logging.logger import logger
from sora_core.prompts import DEFAULT_PERSONA, compose_directive
from sora_core.providers.base import ProviderClient
from sora_core.providers.registry import CHAT_MODEL


@dataclass
class ReplyConfig:
    provider: str = "groq"
    model: str = CHAT_MODEL
    persona: str = DEFAULT_PERSONA
    temperature: Optional[float] = None
    max_context_messages: Optional[int] = None


class ReplyAgent:
    def __init__(
        self,
        provider_client: ProviderClient,
        enricher: ContextEnricher,
        config: Optional[ReplyConfig] = None,
    ):
        self._provider_client = provider_client
        self._enricher = enricher
        self._config = config or ReplyConfig(provider=provider_client.name)

    async def generate_reply(
        self,
        history: Sequence[ChatMessage],
        locale: str,
        message_id: Optional[str] = None,
    ) -> AsyncIterator[ReplyEvent]:
        """流式生成一条 assistant 回复。

        依次产出 ``start``、按模型输出顺序的 ``token``、至多一个携带搜索结果的
        ``data``，最后是 ``done``。模型调用失败时以 ``error`` 事件结束；
        上下文增强失败不会中断回复。

        Args:
            history: 历史消息，按时间先后排列，最后一条必须是用户消息。
            locale: "en" 或 "ja"。
            message_id: assistant 消息的关联 ID，缺省时自动生成。
        """

        self.validate_history(history, locale)
        assistant_id = message_id or new_message_id()
        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "message_id": assistant_id,
            "locale": locale,
        }
        start_time = time.time()
        yield ReplyEvent(kind="start", message_id=assistant_id)

        user_text = history[-1].content
        enrichment = await self._enricher.enrich(user_text, locale)
        self._log(
            logging.INFO,
            "reply.enriched",
            log_ctx,
            location=enrichment.location_name,
            has_weather=enrichment.weather is not None,
            results=len(enrichment.web_results),
        )

        req = self._build_request(history, locale, enrichment, log_ctx)
        pieces: List[str] = []
        try:
            async for chunk in self._provider_client.chat_stream(req):
                if chunk.usage:
                    self._log(
                        logging.INFO,
                        "reply.usage",
                        log_ctx,
                        prompt_tokens=chunk.usage.prompt_tokens,
                        completion_tokens=chunk.usage.completion_tokens,
                        total_tokens=chunk.usage.total_tokens,
                    )
                if not chunk.delta:
                    continue
                pieces.append(chunk.delta)
                yield ReplyEvent(kind="token", message_id=assistant_id, text=chunk.delta)
        except Exception as exc:
            # the model call is the one step without a fallback
            code = getattr(exc, "code", "MODEL_STREAM_FAILED")
            message = getattr(exc, "message", None) or str(exc)
            self._log(logging.ERROR, "reply.stream_failed", log_ctx, code=code, error=message)
            yield ReplyEvent(kind="error", message_id=assistant_id, code=code, message=message)
            return

        if enrichment.web_results:
            yield ReplyEvent(
                kind="data",
                message_id=assistant_id,
                web_search_results=list(enrichment.web_results),
            )
        self._log(
            logging.INFO,
            "reply.done",
            log_ctx,
            elapsed_seconds=round(time.time() - start_time, 2),
            chars=sum(len(p) for p in pieces),
        )
        yield ReplyEvent(kind="done", message_id=assistant_id)

    @staticmethod
    def validate_history(history: Sequence[ChatMessage], locale: str) -> None:
        if locale not in SUPPORTED_LOCALES:
            raise ValidationError(code="UNSUPPORTED_LOCALE", message=f"unsupported locale: {locale!r}")
        if not history:
            raise ValidationError(code="EMPTY_HISTORY", message="messages must not be empty")
        last = history[-1]
        if last.role != "user" or not last.content.strip():
            raise ValidationError(code="NO_USER_TURN", message="the last message must be a non-empty user turn")

    def _build_request(
        self,
        history: Sequence[ChatMessage],
        locale: str,
        enrichment: EnrichmentContext,
        log_ctx: Dict[str, Any],
    ) -> ChatRequest:
        directive = compose_directive(locale, enrichment, persona=self._config.persona)
        # the composed directive is the only system entry sent to the model
        turns = [m for m in history if m.role != "system"]
        max_context = self._config.max_context_messages or getattr(settings, "max_context_messages", 20)
        if len(turns) > max_context:
            self._log(
                logging.INFO,
                "reply.truncated_context",
                log_ctx,
                max_context=max_context,
                trimmed=len(turns) - max_context,
            )
            turns = turns[-max_context:]
        messages = [ChatMessage(role="system", content=directive)] + [
            ChatMessage(role=m.role, content=m.content) for m in turns
        ]
        self._log(
            logging.INFO,
            "reply.calling_provider",
            log_ctx,
            provider=self._config.provider,
            model=self._config.model,
            message_count=len(messages),
        )
        return ChatRequest(
            provider=self._config.provider,
            model=self._config.model,
            messages=messages,
            temperature=self._config.temperature,
        )

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
