"""Provider 协议。

回复流水线和上下文增强图不直接调用厂商 HTTP 接口，只依赖以下协议：

- ProviderClient：对话补全（一次性与流式）。
- SpeechToTextClient / TextToSpeechClient：云端语音引擎。

接入新厂商时只需再实现一个满足协议的客户端，流水线无需改动。
"""

from typing import AsyncIterator, Protocol

from sora_core.domain.models import ChatRequest, ChatResult, ChatStreamChunk


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    - name：Provider 名称，用于日志。
    - chat(req)：一次非流式调用，返回 ChatResult。
    - chat_stream(req)：流式调用，按顺序产出 ChatStreamChunk。
    """

    name: str

    async def chat(self, req: ChatRequest) -> ChatResult:
        ...

    def chat_stream(self, req: ChatRequest) -> AsyncIterator[ChatStreamChunk]:
        ...


class SpeechToTextClient(Protocol):
    name: str

    async def transcribe(self, audio: bytes, locale: str, content_type: str = "audio/wav") -> str:
        ...


class TextToSpeechClient(Protocol):
    name: str

    def is_configured(self) -> bool:
        ...

    async def synthesize(self, text: str, locale: str) -> bytes:
        ...
