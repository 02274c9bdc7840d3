"""CaddieNet Configuration Management.

Uses Pydantic Settings for type-safe configuration with environment variable support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """Redis connection settings."""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: str | None = None

    @property
    def url(self) -> str:
        """Build Redis URL."""
        if self.password:
            return f"redis://:{self.password}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class OpenAISettings(BaseSettings):
    """External transcription/classification service settings.

    ``api_key`` is the application's shared credential. Users may bring their
    own key through their credential preference.
    """

    model_config = SettingsConfigDict(env_prefix="OPENAI_")

    api_key: SecretStr | None = None
    base_url: str = "https://api.openai.com/v1"

    transcription_model: str = "whisper-1"
    classification_model: str = "gpt-4-turbo-preview"
    language: str = "en"

    timeout_seconds: float = Field(default=30.0, gt=0)


class AssistantSettings(BaseSettings):
    """Interaction pipeline settings."""

    model_config = SettingsConfigDict(env_prefix="ASSISTANT_")

    # Delay before a navigate action fires, so the confirmation renders first
    navigation_delay_ms: int = Field(default=1500, ge=0)

    # Diagnostic mode: exposes the step-through trace controls
    verbose_trace: bool = False

    # Per-user cap on stored interactions
    max_logged_interactions: int = Field(default=200, ge=1)


class AudioSettings(BaseSettings):
    """Microphone capture settings."""

    model_config = SettingsConfigDict(env_prefix="AUDIO_")

    sample_rate: int = 16000
    channels: int = 1
    blocksize: int = 8000
    device: int | None = None

    # Elapsed-time counter resolution
    tick_interval_seconds: float = Field(default=1.0, gt=0)

    # Local live captions (non-authoritative)
    live_caption_enabled: bool = False
    live_caption_model: str = "distil-small.en"
    live_caption_device: str = "cpu"
    live_caption_compute_type: str = "int8"


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="CADDIENET_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment
    env: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # API Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Master key for encrypting user credentials at rest
    master_key: SecretStr | None = None

    # Nested settings
    redis: RedisSettings = Field(default_factory=RedisSettings)
    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    assistant: AssistantSettings = Field(default_factory=AssistantSettings)
    audio: AudioSettings = Field(default_factory=AudioSettings)

    @property
    def shared_credential(self) -> str | None:
        """The application's shared external-service credential, if configured."""
        if self.openai.api_key is None:
            return None
        return self.openai.api_key.get_secret_value() or None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are loaded once and reused.
    """
    return Settings()
