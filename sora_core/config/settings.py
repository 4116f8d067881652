"""配置管理模块。

配置来源按优先级依次为：初始化参数、环境变量、``.env``、可选的 ``config.yaml``。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """读取 config.yaml（如果存在）。"""
    candidates = []
    explicit = os.getenv("SORA_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
        Path(__file__).resolve().parents[1] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """Runtime settings for the Sora server and client core."""

    # ---- language model (Groq, OpenAI compatible) ----
    groq_api_key: Optional[str] = Field(default=None, description="Groq API key")
    groq_base_url: str = Field(
        default="https://api.groq.com/openai/v1",
        description="Groq OpenAI-compatible base URL",
    )

    # ---- speech ----
    hf_token: Optional[str] = Field(default=None, description="Hugging Face Inference token")
    hf_base_url: str = Field(
        default="https://router.huggingface.co/hf-inference/models",
        description="Hugging Face Inference base URL",
    )
    whisper_model: str = Field(default="openai/whisper-large-v3-turbo")
    local_whisper_model: str = Field(
        default="base",
        description="Model name for the local Whisper fallback recognizer",
    )
    elevenlabs_api_key: Optional[str] = Field(default=None, description="ElevenLabs API key")
    elevenlabs_base_url: str = Field(default="https://api.elevenlabs.io/v1")
    elevenlabs_voice_en: str = Field(default="pNInz6obpgDQGcFmaJgB")
    elevenlabs_voice_ja: str = Field(default="GxxMAMfQkDlnqjpzjLHH")

    # ---- enrichment providers ----
    search_base_url: str = Field(default="https://api.duckduckgo.com/")
    geocoder_base_url: str = Field(default="https://nominatim.openstreetmap.org/search")
    weather_base_url: str = Field(default="https://api.open-meteo.com/v1/forecast")
    user_agent: str = Field(
        default="SoraAIApp/1.0",
        description="User-Agent sent to providers that require one (Nominatim)",
    )

    # ---- limits ----
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP timeout (seconds)")
    enrichment_timeout: float = Field(
        default=4.0,
        gt=0.0,
        description="Budget for each enrichment sub-pipeline (seconds)",
    )
    search_max_results: int = Field(default=3, ge=1, le=10)
    transcribe_min_bytes: int = Field(default=1000, ge=0)
    transcribe_max_bytes: int = Field(default=25 * 1024 * 1024, ge=1)
    max_context_messages: int = Field(default=20, ge=1, le=100, description="Max prior turns sent to the model")

    # ---- client / server ----
    default_locale: str = Field(default="en")
    storage_root: str = Field(default=".storage", description="Client key-value storage directory")
    server_url: str = Field(default="http://127.0.0.1:8000", description="Base URL used by the client core")
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ]
    )

    # ---- logging ----
    log_dir: str = Field(default="logs", description="Log directory")
    log_level: str = Field(default="INFO", description="Level of the sora_core logger")
    log_console: bool = Field(default=False, description="Also write log records to stderr")
    log_redact_content: bool = Field(default=False, description="Truncate logged message bodies")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("groq_api_key", "elevenlabs_api_key", "hf_token")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        if v.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {v}")
        return v.upper()

    @field_validator("default_locale")
    @classmethod
    def validate_locale(cls, v: str) -> str:
        if v not in ("en", "ja"):
            raise ValueError("default_locale must be 'en' or 'ja'")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
