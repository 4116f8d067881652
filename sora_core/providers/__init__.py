"""云端 Provider 集成层。

- base：Provider 协议定义。
- registry：Provider 与逻辑模型配置。
- groq_client：对话补全（语言模型）。
- whisper_client：云端语音识别。
- elevenlabs_client：云端语音合成。
"""

from typing import Optional

from sora_core.config.settings import settings
from sora_core.providers.base import ProviderClient
from sora_core.providers.groq_client import GroqClient


def create_provider(name: Optional[str] = None) -> ProviderClient:
    """按名称创建 LLM Provider 客户端（默认 groq）。"""

    provider_name = (name or "groq").lower()
    if provider_name == "groq":
        return GroqClient(settings)
    raise KeyError(f"Unknown provider: {provider_name!r}")
