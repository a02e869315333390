"""
Application configuration.

Supports environment-based configuration for the server and the streaming client.
"""
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Seconds between render buffer flushes.
DEFAULT_FLUSH_INTERVAL = 0.08

# Largest chunk, in bytes, inspected for an embedded JSON error.
DEFAULT_SNIFF_LIMIT = 64 * 1024


class Settings(BaseSettings):
    """Application settings with production defaults."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = "PromptIQ"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"

    # Database
    database_url: str = "sqlite+aiosqlite:///./promptiq.db"

    # Upstream inference provider
    upstream_url: str = "https://openrouter.ai/api/v1/chat/completions"
    upstream_api_key: str = ""
    upstream_timeout: float = 30.0  # connect timeout only, streams may run long

    # Models
    default_model: str = "openai/gpt-oss-20b:free"
    available_models: list[str] = Field(
        default_factory=lambda: [
            "openai/gpt-oss-20b:free",
            "moonshotai/kimi-k2:free",
            "qwen/qwen3-4b:free",
            "deepseek/deepseek-r1:free",
        ]
    )

    # Streaming client
    stream_flush_interval: float = DEFAULT_FLUSH_INTERVAL
    stream_error_sniff_limit: int = DEFAULT_SNIFF_LIMIT
    stream_read_timeout: float | None = None  # None waits until the user aborts
    stream_stopped_marker: str = "\n\n_(stopped by user)_ "

    # Threads
    reuse_empty_thread: bool = True
    default_thread_title: str = "New Thread"

    # Security
    jwt_secret_key: str = Field(default="change-me-in-production-with-a-long-random-secret")
    jwt_algorithm: str = "HS256"

    # Observability
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
