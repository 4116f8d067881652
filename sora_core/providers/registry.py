"""Provider 与模型配置。

代码中只使用逻辑模型名，与厂商模型 ID 解耦：

- logical_name：流水线使用的名称，例如 "sora-chat"。
- provider_model：厂商模型 ID，例如 "llama-3.1-8b-instant"。

更换某个角色背后的模型只需修改这里。
"""

from dataclasses import dataclass
from typing import Dict, Mapping


@dataclass
class ModelConfig:
    """Configuration of one logical model."""

    logical_name: str
    provider_model: str
    max_tokens: int
    default_temperature: float


@dataclass
class ProviderConfig:
    """Configuration of one provider."""

    name: str
    base_url: str
    models: Dict[str, ModelConfig]


CHAT_MODEL = "sora-chat"
EXTRACT_MODEL = "sora-extract"
CLASSIFY_MODEL = "sora-classify"


GROQ_CONFIG = ProviderConfig(
    name="groq",
    base_url="https://api.groq.com/openai/v1",
    models={
        CHAT_MODEL: ModelConfig(
            logical_name=CHAT_MODEL,
            provider_model="llama-3.1-8b-instant",
            max_tokens=1024,
            default_temperature=0.7,
        ),
        # location extraction: short answer, place name or NONE
        EXTRACT_MODEL: ModelConfig(
            logical_name=EXTRACT_MODEL,
            provider_model="llama-3.1-8b-instant",
            max_tokens=50,
            default_temperature=0.0,
        ),
        # search guard: JSON {"shouldShowResults": bool}
        CLASSIFY_MODEL: ModelConfig(
            logical_name=CLASSIFY_MODEL,
            provider_model="meta-llama/llama-4-scout-17b-16e-instruct",
            max_tokens=32,
            default_temperature=0.0,
        ),
    },
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "groq": GROQ_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """按名称（不区分大小写）查找 ProviderConfig。"""

    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")
