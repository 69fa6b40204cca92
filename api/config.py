"""
HTTP server settings for the TRANSITSIM API.

Simulation tuning lives in ``transitsim.config``; this module only covers
how the server runs and what viewport it simulates before any client
reports one.
"""
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Server settings, read from the environment or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    environment: str = "development"
    log_level: str = "info"
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # Simulation lifecycle
    simulation_autostart: bool = True
    stream_interval_ms: int = Field(100, ge=10)

    # Viewport simulated until the first client report (New York City)
    initial_min_lng: float = -74.1
    initial_max_lng: float = -73.9
    initial_min_lat: float = 40.6
    initial_max_lat: float = 40.8
    initial_zoom: float = 12.0

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
