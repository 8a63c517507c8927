# backend/healthcast/config.py
from functools import lru_cache
from typing import List
import secrets

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # environment: "dev" for running the app locally, "test" for pytest
    ENV: str = "dev"

    DATABASE_URL: str | None = None
    TEST_DATABASE_URL: str | None = None
    DB_APP_ROLE: str | None = None
    DB_REQUIRE_SSL: bool = True

    LOG_LEVEL: str = "INFO"

    # --- Auth / JWT ---
    JWT_SECRET: str | None = Field(None, description="JWT signing secret. Must be set outside dev/test.")
    JWT_ALG: str = "HS256"
    JWT_ACCESS_MIN: int = 30
    JWT_REFRESH_DAYS: int = 7

    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    )

    # --- Forecasting ---
    FORECAST_MIN_POINTS: int = 7
    FORECAST_HIGH_QUALITY_POINTS: int = 30
    FORECAST_CONFIDENCE_Z: float = 1.96  # ~95% coverage
    # Only events in these lifecycle states count towards demand history.
    FORECAST_COUNTABLE_STATES: List[str] = Field(default_factory=lambda: ["completed"])
    FORECAST_DEFAULT_GRANULARITY: str = "monthly"
    FORECAST_DEFAULT_HORIZON: int = 12
    FORECAST_MAX_HORIZON: int = 366
    # Predictions are capped at this multiple of the historical maximum.
    FORECAST_GROWTH_CAP: float = 5.0
    FORECAST_SEASONALITY_THRESHOLD: float = 0.15

    AREA_CACHE_TTL_SECONDS: int = 300

    @model_validator(mode="after")
    def _check_jwt_secret(self):
        # In dev/test, auto-generate an ephemeral secret if none provided to avoid committing secrets.
        if self.ENV in ("dev", "test"):
            if not self.JWT_SECRET:
                self.JWT_SECRET = secrets.token_urlsafe(32)
            return self
        if not self.JWT_SECRET:
            raise ValueError("JWT_SECRET must be set via environment for non-dev/test environments.")
        return self

    @model_validator(mode="after")
    def _check_granularity(self):
        if self.FORECAST_DEFAULT_GRANULARITY not in ("daily", "monthly"):
            raise ValueError("FORECAST_DEFAULT_GRANULARITY must be 'daily' or 'monthly'.")
        return self

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
