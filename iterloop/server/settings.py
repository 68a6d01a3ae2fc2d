"""Service configuration."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings loaded from the environment (ITERLOOP_*) or .env."""

    # API
    port: int = 8811
    debug: bool = False
    log_level: str = "INFO"

    # Loops
    default_preset: str = "balanced"

    # SSE
    heartbeat_interval: float = 1.0  # seconds without events before a heartbeat

    model_config = SettingsConfigDict(
        env_prefix="ITERLOOP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
