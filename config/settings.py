"""Centralized configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Dict, List, Optional
from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()

# Fixed base URL for NVIDIA NIM
NVIDIA_NIM_BASE_URL = "https://integrate.api.nvidia.com/v1"


class GroupSettings(BaseModel):
    """Per-group overrides, keyed by chat id in ``Settings.groups``."""

    allow_from: List[str] = []
    require_mention: Optional[bool] = None
    enabled: bool = True


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ==================== Outbound Delivery ====================
    text_chunk_limit: int = 4000
    chunk_mode: str = "boundary"  # "boundary" | "length"
    render_mode: str = "auto"  # "plain" | "rich" | "auto"
    stream_replies: bool = True
    stream_debounce_ms: int = 1000
    typing_emoji: str = "✍"
    response_prefix: Optional[str] = None  # e.g. "[{model}] "
    turn_timeout: float = 0.0  # seconds, 0 disables

    # ==================== Pending History ====================
    history_limit: int = 50
    history_max_keys: int = 1000

    # ==================== Rate Limiting ====================
    messaging_rate_limit: int = 1
    messaging_rate_window: float = 1.0

    # ==================== Access Policy ====================
    dm_policy: str = "open"  # "open" | "allowlist" | "disabled"
    allow_from: List[str] = []
    group_policy: str = "open"  # "open" | "allowlist" | "disabled"
    group_allow_from: List[str] = []
    require_mention: bool = True
    groups: Dict[str, GroupSettings] = {}

    # ==================== NVIDIA NIM Config ====================
    nvidia_nim_api_key: str = ""
    nvidia_nim_base_url: str = NVIDIA_NIM_BASE_URL
    model: str = "moonshotai/kimi-k2-instruct"
    system_prompt: str = "You are a helpful assistant replying in a Telegram chat."
    nvidia_nim_temperature: float = 1.0
    nvidia_nim_max_tokens: int = 8192
    nvidia_nim_timeout: float = 120.0

    # ==================== Whisper Config (Voice Transcription) ====================
    whisper_model: str = "base"
    whisper_device: str = "auto"
    whisper_language: str = "auto"
    audio_download_dir: str = "./audio_downloads"
    cleanup_audio_files: bool = True

    # ==================== Bot Wrapper Config ====================
    telegram_bot_token: Optional[str] = None
    # Updates handled at once; each one may run a full reply turn
    telegram_concurrent_updates: int = 256

    # ==================== Server ====================
    host: str = "0.0.0.0"
    port: int = 8082

    @field_validator("text_chunk_limit", "stream_debounce_ms", "telegram_concurrent_updates")
    @classmethod
    def require_positive(cls, v):
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("history_limit", "history_max_keys")
    @classmethod
    def require_non_negative(cls, v):
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("chunk_mode")
    @classmethod
    def validate_chunk_mode(cls, v):
        v = v.strip().lower()
        if v not in ("boundary", "length"):
            raise ValueError(f"unknown chunk mode: {v}")
        return v

    @field_validator("render_mode")
    @classmethod
    def validate_render_mode(cls, v):
        v = v.strip().lower()
        if v not in ("plain", "rich", "auto"):
            raise ValueError(f"unknown render mode: {v}")
        return v

    @field_validator("dm_policy", "group_policy")
    @classmethod
    def validate_policy(cls, v):
        v = v.strip().lower()
        if v not in ("open", "allowlist", "disabled"):
            raise ValueError(f"unknown policy: {v}")
        return v

    # Handle empty strings for optional string fields
    @field_validator("telegram_bot_token", "response_prefix", mode="before")
    @classmethod
    def parse_optional_str(cls, v):
        if v == "":
            return None
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
