from __future__ import annotations
"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Clipforge application settings.

    Loaded from environment variables or .env file.
    """

    # --- Application ---
    APP_NAME: str = "Clipforge"
    DEBUG: bool = False

    # --- Runway gateway (useapi.net) ---
    USEAPI_TOKEN: str = ""
    RUNWAY_BASE_URL: str = "https://api.useapi.net/v1/runwayml"
    RUNWAY_EMAIL: str = ""
    RUNWAY_PASSWORD: str = ""
    RUNWAY_MAX_JOBS: int = 5

    # --- Outbound HTTP ---
    HTTP_TIMEOUT: float = 30.0
    HTTP_MAX_RETRIES: int = 5
    HTTP_RETRY_BASE_DELAY: float = 2.0

    # --- Job polling ---
    POLL_MAX_ATTEMPTS: int = 60
    POLL_INTERVAL: float = 5.0

    # --- Fallback images ---
    EXAMPLE_IMAGES: str = ""  # comma-separated, overrides the built-in pool

    # --- CORS ---
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    @property
    def example_image_urls(self) -> list[str]:
        return [u.strip() for u in self.EXAMPLE_IMAGES.split(",") if u.strip()]

    @property
    def has_account_credentials(self) -> bool:
        return bool(self.RUNWAY_EMAIL and self.RUNWAY_PASSWORD)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()
