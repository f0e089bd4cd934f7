"""Application Settings - Environment-based configuration.

Uses Pydantic Settings for validation and type coercion.

Timing bounds default to the chat contract constants; tests and demos shrink
them through the environment.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pairchat.config.constants import CHAT


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API Configuration
    api_host: str = Field(default="127.0.0.1", description="API bind host")
    api_port: int = Field(default=8080, ge=1024, le=65535, description="API port")
    log_level: Literal["DEBUG", "INFO", "WARN", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment name"
    )

    # Matchmaking
    connect_delay_min_ms: int = Field(
        default=CHAT.CONNECT_DELAY_MIN_MS,
        ge=0,
        le=60_000,
        description="Lower bound of the simulated matchmaking delay",
    )
    connect_delay_max_ms: int = Field(
        default=CHAT.CONNECT_DELAY_MAX_MS,
        ge=0,
        le=60_000,
        description="Upper bound of the simulated matchmaking delay",
    )

    # Simulated replies
    reply_delay_min_ms: int = Field(
        default=CHAT.REPLY_DELAY_MIN_MS,
        ge=0,
        le=60_000,
        description="Lower bound of the simulated reply delay",
    )
    reply_delay_max_ms: int = Field(
        default=CHAT.REPLY_DELAY_MAX_MS,
        ge=0,
        le=60_000,
        description="Upper bound of the simulated reply delay",
    )
    reply_probability: float = Field(
        default=CHAT.REPLY_PROBABILITY,
        ge=0.0,
        le=1.0,
        description="Chance that a sent message gets a simulated reply",
    )

    # Messages
    max_message_length: int = Field(
        default=CHAT.MAX_MESSAGE_LENGTH,
        ge=1,
        le=10_000,
        description="Maximum length of a locally authored message",
    )
    greeting_text: str = Field(
        default=CHAT.GREETING_TEXT,
        min_length=1,
        description="Greeting seeded when a pairing connects",
    )
    random_seed: int | None = Field(
        default=None,
        description="Seed for the session random source (unseeded if unset)",
    )

    # Local media
    media_backend: Literal["capture", "mock"] = Field(
        default="capture",
        description="Host media capability (capture devices or synthetic tracks)",
    )
    video_device: str = Field(default="/dev/video0", description="Video capture device")
    video_format: str | None = Field(
        default="v4l2", description="FFmpeg input format for the video device"
    )
    audio_device: str = Field(default="default", description="Audio capture device")
    audio_format: str | None = Field(
        default="pulse", description="FFmpeg input format for the audio device"
    )

    # Observability
    metrics_enabled: bool = Field(default=True, description="Enable Prometheus metrics")

    def model_post_init(self, __context) -> None:
        """Validate paired bounds after model creation."""
        if self.connect_delay_min_ms > self.connect_delay_max_ms:
            raise ValueError(
                "connect_delay_min_ms must not exceed connect_delay_max_ms"
            )

        if self.reply_delay_min_ms > self.reply_delay_max_ms:
            raise ValueError(
                "reply_delay_min_ms must not exceed reply_delay_max_ms"
            )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
