from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServiceSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    # MarketCheck price prediction + comparables
    marketcheck_api_key: str = Field(default="", alias="MARKETCHECK_API_KEY")
    marketcheck_base_url: str = Field(
        default="https://api.marketcheck.com/v2", alias="MARKETCHECK_BASE_URL"
    )
    marketcheck_timeout_seconds: float = Field(default=30.0, alias="MARKETCHECK_TIMEOUT_SECONDS")
    marketcheck_max_attempts: int = Field(default=3, alias="MARKETCHECK_MAX_ATTEMPTS")
    marketcheck_initial_delay_seconds: float = Field(default=1.0, alias="MARKETCHECK_INITIAL_DELAY_SECONDS")
    marketcheck_max_delay_seconds: float = Field(default=8.0, alias="MARKETCHECK_MAX_DELAY_SECONDS")
    marketcheck_use_mock: bool = Field(default=False, alias="MARKETCHECK_USE_MOCK")

    # Response cache
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    valuation_cache_ttl_seconds: int = Field(default=86_400, alias="VALUATION_CACHE_TTL_SECONDS")

    default_selection_limit: int = Field(default=10, ge=1, alias="DEFAULT_SELECTION_LIMIT")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")
