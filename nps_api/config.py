"""Application configuration via environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # App
    debug: bool = False
    environment: str = "development"

    # CORS (public survey pages call the session endpoints from the browser)
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Storage / API collaborator (campaigns, forms, situations, responses)
    storage_api_url: str = "http://localhost:3001/api"
    storage_api_key: str = ""

    # Survey page language when the browser sends nothing usable
    default_language: str = "en"

    # Survey sessions (one per open survey tab)
    session_ttl_seconds: int = 1800
    max_sessions: int = 10_000

    model_config = {"env_file": ".env", "extra": "ignore"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
