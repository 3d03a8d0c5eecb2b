"""Configuration management using pydantic-settings."""
from pathlib import Path
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Upstream chart data endpoint (Google Apps Script web app)
    upstream_url: str = (
        "https://script.google.com/macros/s/"
        "AKfycbzhGL1Zdvz5UBrqvFL3JAkCDNisd8wha3HCfK9cN1dfUwxu1zXIgX-vqGDHPMJr7U2h/exec"
    )
    upstream_timeout_seconds: float = 30.0
    upstream_retry_attempts: int = 2

    # Operating schedule (0 = Sunday .. 6 = Saturday)
    operating_days: List[int] = [0, 3]
    operating_hour_start: int = 17
    operating_hour_end: int = 20
    timezone_name: str = "America/New_York"

    # Cache lifetimes
    cache_ttl_operating_seconds: int = 60
    cache_ttl_max_seconds: int = 24 * 60 * 60
    cache_ttl_stale_seconds: int = 60
    cache_ttl_test_mode_seconds: int = 60

    # Cache backend: "memory" (per process) or "sqlite" (survives restarts)
    cache_backend: str = "memory"
    cache_db_path: Path = Path("./cache/chart_data.db")

    # Bump on deploy to invalidate persisted entries
    deploy_version: str = "1"

    @field_validator("operating_days")
    @classmethod
    def _check_operating_days(cls, value: List[int]) -> List[int]:
        if len(value) != 2 or any(day < 0 or day > 6 for day in value):
            raise ValueError("operating_days must be two weekday numbers in 0..6")
        return value

    @field_validator("cache_backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        if value not in ("memory", "sqlite"):
            raise ValueError("cache_backend must be 'memory' or 'sqlite'")
        return value

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
