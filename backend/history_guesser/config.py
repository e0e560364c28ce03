from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # Immich Connection (optional: without it the built-in catalogue is used)
    IMMICH_API_URL: Optional[str] = None
    IMMICH_API_KEY: Optional[str] = None

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./history_guesser.db"

    # Local snapshot storage
    SNAPSHOT_DIR: str = ".history_guesser"

    # Logging
    LOG_LEVEL: str = "INFO"

    # Game Configuration
    DEFAULT_TIMER_SECONDS: int = 180
    TIMER_TICK_SECONDS: float = 1.0
    DEFAULT_HINTS_PER_GAME: int = 10
    ROUNDS_PER_GAME: int = 5

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
