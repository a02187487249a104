"""
MangaMotion Configuration

Pydantic settings for the service: remote endpoints, timeouts, retry and
polling budgets, storage location and logging.
"""

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MANGAMOTION_",
        extra="ignore",
    )

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    debug: bool = Field(default=False)

    # CORS
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"]
    )

    # Remote inference services
    panel_api_url: str = Field(default="http://localhost:9001")
    colorize_api_url: str = Field(default="http://localhost:9002")
    animation_api_url: str = Field(default="http://localhost:9001")
    merge_api_url: str = Field(default="http://localhost:9003")

    # Per-call timeouts (seconds)
    panel_timeout: float = Field(default=120.0)
    colorize_timeout: float = Field(default=300.0)
    manual_animation_timeout: float = Field(default=180.0)
    ai_animation_timeout: float = Field(default=300.0)
    status_timeout: float = Field(default=30.0)
    merge_timeout: float = Field(default=300.0)
    image_proxy_timeout: float = Field(default=60.0)
    route_budget: float = Field(default=600.0)

    # Colorization retries: total attempts and fixed pause between them
    colorize_attempts: int = Field(default=3, ge=1)
    colorize_backoff: float = Field(default=5.0, ge=0)

    # AI task polling
    poll_interval: float = Field(default=5.0, ge=0)
    poll_max_attempts: int = Field(default=120, ge=1)

    # Fallbacks
    fallback_panel_slots: int = Field(default=5, ge=1)

    # Storage and logging
    data_dir: Path = Field(default=Path("data"))
    log_level: str = Field(default="INFO")
    log_dir: Optional[Path] = Field(default=None)

    # Rate limit for generation endpoints (slowapi syntax)
    generation_rate_limit: str = Field(default="30/minute")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
